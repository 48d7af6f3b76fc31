"""Tests for the parser: node shapes, precedence and syntax errors."""

from __future__ import annotations

import pytest

from jinjavm import ErrorKind, TemplateSyntaxError
from jinjavm.nodes import (
    AutoEscape,
    BinOp,
    Block,
    Call,
    CallBlock,
    Const,
    Do,
    EmitExpr,
    EmitRaw,
    Extends,
    Filter,
    FilterBlock,
    ForLoop,
    FromImport,
    GetAttr,
    GetItem,
    IfCond,
    IfExpr,
    Import,
    Include,
    Kwargs,
    List,
    Macro,
    Map,
    Set,
    SetBlock,
    Slice,
    Template,
    Test,
    UnaryOp,
    Var,
    WithBlock,
)
from jinjavm.parser import ParseError, parse, parse_expr


def _stmt(source: str):
    tree = parse(source)
    assert isinstance(tree, Template)
    assert len(tree.children) == 1
    return tree.children[0]


def _syntax_error(source: str) -> TemplateSyntaxError:
    with pytest.raises(TemplateSyntaxError) as exc_info:
        parse(source, "t.txt")
    return exc_info.value


class TestOutput:
    def test_raw_and_expression(self) -> None:
        tree = parse("Hello {{ name }}!")
        assert [type(c) for c in tree.children] == [EmitRaw, EmitExpr, EmitRaw]
        assert tree.children[0].raw == "Hello "
        assert tree.children[1].expr == Var(tree.children[1].expr.span, "name")

    def test_trailing_newline_stripped(self) -> None:
        tree = parse("a\n")
        assert tree.children[0].raw == "a"

    def test_trailing_newline_kept(self) -> None:
        tree = parse("a\n", keep_trailing_newline=True)
        assert tree.children[0].raw == "a\n"

    def test_only_one_newline_stripped(self) -> None:
        tree = parse("a\n\n")
        assert tree.children[0].raw == "a\n"


class TestExpressions:
    def test_constants(self) -> None:
        for source, value in [
            ("true", True),
            ("False", False),
            ("none", None),
            ("None", None),
            ("42", 42),
            ("'s'", "s"),
        ]:
            expr = parse_expr(source)
            assert isinstance(expr, Const)
            assert expr.value == value

    def test_precedence_mul_over_add(self) -> None:
        expr = parse_expr("1 + 2 * 3")
        assert isinstance(expr, BinOp)
        assert expr.op == "+"
        assert isinstance(expr.right, BinOp)
        assert expr.right.op == "*"

    def test_left_associative(self) -> None:
        expr = parse_expr("10 - 4 - 3")
        assert expr.op == "-"
        assert isinstance(expr.left, BinOp)
        assert expr.left.op == "-"
        assert expr.right.value == 3

    def test_power_is_left_associative(self) -> None:
        expr = parse_expr("2 ** 3 ** 2")
        assert expr.op == "**"
        assert expr.left.op == "**"
        assert expr.right.value == 2

    def test_concat_between_add_and_mul(self) -> None:
        expr = parse_expr("a ~ b * c + d")
        assert expr.op == "+"
        assert expr.left.op == "~"
        assert expr.left.right.op == "*"

    def test_boolean_layers(self) -> None:
        expr = parse_expr("a or b and not c")
        assert expr.op == "or"
        assert expr.right.op == "and"
        assert isinstance(expr.right.right, UnaryOp)
        assert expr.right.right.op == "not"

    def test_not_in(self) -> None:
        expr = parse_expr("a not in b")
        assert isinstance(expr, UnaryOp)
        assert expr.op == "not"
        assert expr.expr.op == "in"

    def test_comparison(self) -> None:
        expr = parse_expr("a + 1 >= b")
        assert expr.op == ">="
        assert expr.left.op == "+"

    def test_if_expression(self) -> None:
        expr = parse_expr("a if b else c")
        assert isinstance(expr, IfExpr)
        assert expr.test_expr.id == "b"
        assert expr.true_expr.id == "a"
        assert expr.false_expr.id == "c"

    def test_if_expression_without_else(self) -> None:
        expr = parse_expr("a if b")
        assert isinstance(expr, IfExpr)
        assert expr.false_expr is None

    def test_postfix_chain(self) -> None:
        expr = parse_expr("a.b[0].c(1)")
        assert isinstance(expr, Call)
        assert isinstance(expr.expr, GetAttr)
        assert expr.expr.name == "c"
        assert isinstance(expr.expr.expr, GetItem)

    def test_dot_integer_is_item(self) -> None:
        expr = parse_expr("items.0")
        assert isinstance(expr, GetItem)
        assert expr.subscript_expr.value == 0

    def test_slice(self) -> None:
        expr = parse_expr("x[1:3]")
        assert isinstance(expr, Slice)
        assert expr.start.value == 1
        assert expr.stop.value == 3
        assert expr.step is None

    def test_open_slices(self) -> None:
        expr = parse_expr("x[::2]")
        assert isinstance(expr, Slice)
        assert expr.start is None
        assert expr.stop is None
        assert expr.step.value == 2

    def test_list_and_tuple(self) -> None:
        assert isinstance(parse_expr("[1, 2, 3]"), List)
        tup = parse_expr("(1, 2)")
        assert isinstance(tup, List)
        assert len(tup.items) == 2
        assert isinstance(parse_expr("()"), List)
        assert isinstance(parse_expr("(1)"), Const)

    def test_trailing_commas(self) -> None:
        assert len(parse_expr("[1, 2,]").items) == 2
        assert len(parse_expr("{'a': 1,}").keys) == 1

    def test_map(self) -> None:
        expr = parse_expr("{'a': 1, 'b': x}")
        assert isinstance(expr, Map)
        assert [k.value for k in expr.keys] == ["a", "b"]
        assert isinstance(expr.values[1], Var)

    def test_kwargs_become_trailing_node(self) -> None:
        expr = parse_expr("f(1, a=2, b=3)")
        assert isinstance(expr, Call)
        assert isinstance(expr.args[0], Const)
        kwargs = expr.args[-1]
        assert isinstance(kwargs, Kwargs)
        assert [name for name, _ in kwargs.pairs] == ["a", "b"]

    def test_positional_after_keyword(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="non-keyword arg after keyword arg"):
            parse_expr("f(a=1, 2)")


class TestFiltersAndTests:
    def test_filter_chain(self) -> None:
        expr = parse_expr("name | trim | upper")
        assert isinstance(expr, Filter)
        assert expr.name == "upper"
        assert expr.expr.name == "trim"
        assert expr.expr.expr.id == "name"

    def test_filter_args(self) -> None:
        expr = parse_expr("x | default('n', true)")
        assert expr.name == "default"
        assert [a.value for a in expr.args] == ["n", True]

    def test_filter_binds_tighter_than_add(self) -> None:
        expr = parse_expr("1 + x | abs")
        assert expr.op == "+"
        assert isinstance(expr.right, Filter)

    def test_filter_applies_after_unary_minus(self) -> None:
        expr = parse_expr("-x | abs")
        assert isinstance(expr, Filter)
        assert isinstance(expr.expr, UnaryOp)
        assert expr.expr.op == "-"

    def test_test_without_args(self) -> None:
        expr = parse_expr("x is defined")
        assert isinstance(expr, Test)
        assert expr.name == "defined"
        assert expr.args == ()

    def test_test_with_bare_arg(self) -> None:
        expr = parse_expr("x is divisibleby 3")
        assert isinstance(expr, Test)
        assert [a.value for a in expr.args] == [3]

    def test_test_with_parenthesised_args(self) -> None:
        expr = parse_expr("x is sameas(y)")
        assert isinstance(expr.args[0], Var)

    def test_is_not(self) -> None:
        expr = parse_expr("x is not none")
        assert isinstance(expr, UnaryOp)
        assert expr.op == "not"
        assert isinstance(expr.expr, Test)
        assert expr.expr.name == "none"

    def test_bare_arg_stops_at_keyword(self) -> None:
        expr = parse_expr("x is odd and y")
        assert expr.op == "and"
        assert expr.left.args == ()


class TestStatements:
    def test_for(self) -> None:
        node = _stmt("{% for a, b in items if a recursive %}x{% else %}y{% endfor %}")
        assert isinstance(node, ForLoop)
        assert isinstance(node.target, List)
        assert [v.id for v in node.target.items] == ["a", "b"]
        assert node.iter.id == "items"
        assert node.filter_expr.id == "a"
        assert node.recursive
        assert node.body[0].raw == "x"
        assert node.else_body[0].raw == "y"

    def test_if_elif_else(self) -> None:
        node = _stmt("{% if a %}1{% elif b %}2{% else %}3{% endif %}")
        assert isinstance(node, IfCond)
        nested = node.false_body[0]
        assert isinstance(nested, IfCond)
        assert nested.expr.id == "b"
        assert nested.false_body[0].raw == "3"

    def test_with(self) -> None:
        node = _stmt("{% with a = 1, (b, c) = pair %}{{ a }}{% endwith %}")
        assert isinstance(node, WithBlock)
        assert len(node.assignments) == 2
        assert isinstance(node.assignments[1][0], List)

    def test_set(self) -> None:
        node = _stmt("{% set x = 1 %}")
        assert isinstance(node, Set)
        assert node.target.id == "x"

    def test_set_unpacking(self) -> None:
        node = _stmt("{% set (a, b) = pair %}")
        assert isinstance(node.target, List)

    def test_set_block(self) -> None:
        node = _stmt("{% set x %}body{% endset %}")
        assert isinstance(node, SetBlock)
        assert node.filter is None

    def test_set_block_with_filter(self) -> None:
        node = _stmt("{% set x | trim | upper %}body{% endset %}")
        assert isinstance(node, SetBlock)
        assert node.filter.name == "upper"
        assert node.filter.expr.name == "trim"
        assert node.filter.expr.expr is None

    def test_autoescape(self) -> None:
        node = _stmt("{% autoescape 'html' %}x{% endautoescape %}")
        assert isinstance(node, AutoEscape)
        assert node.enabled.value == "html"

    def test_filter_block(self) -> None:
        node = _stmt("{% filter upper %}x{% endfilter %}")
        assert isinstance(node, FilterBlock)
        assert node.filter.name == "upper"

    def test_block(self) -> None:
        node = _stmt("{% block body %}x{% endblock body %}")
        assert isinstance(node, Block)
        assert node.name == "body"

    def test_extends(self) -> None:
        node = _stmt("{% extends 'base.html' %}")
        assert isinstance(node, Extends)
        assert node.name.value == "base.html"

    def test_include(self) -> None:
        node = _stmt("{% include ['a', 'b'] ignore missing %}")
        assert isinstance(node, Include)
        assert node.ignore_missing
        assert isinstance(node.name, List)

    def test_import(self) -> None:
        node = _stmt("{% import 'm.html' as m %}")
        assert isinstance(node, Import)
        assert node.name.id == "m"

    def test_from_import(self) -> None:
        node = _stmt("{% from 'm.html' import a, b as c %}")
        assert isinstance(node, FromImport)
        assert [(n.id, alias.id if alias else None) for n, alias in node.names] == [
            ("a", None),
            ("b", "c"),
        ]

    def test_macro(self) -> None:
        node = _stmt("{% macro m(a, b=2) %}x{% endmacro %}")
        assert isinstance(node, Macro)
        assert node.name == "m"
        assert [a.id for a in node.args] == ["a", "b"]
        assert [d.value for d in node.defaults] == [2]

    def test_call_block(self) -> None:
        node = _stmt("{% call(item) m(1) %}{{ item }}{% endcall %}")
        assert isinstance(node, CallBlock)
        assert isinstance(node.call, Call)
        assert node.macro_decl.name == "caller"
        assert [a.id for a in node.macro_decl.args] == ["item"]

    def test_do(self) -> None:
        node = _stmt("{% do items.append(1) %}")
        assert isinstance(node, Do)
        assert isinstance(node.call, Call)


class TestSyntaxErrors:
    def test_unknown_statement_suggestion(self) -> None:
        err = _syntax_error("{% iff x %}{% endif %}")
        assert err.detail == "unknown statement iff"
        assert err.suggestion == "if"
        assert err.kind is ErrorKind.SYNTAX_ERROR

    def test_stray_end_tag(self) -> None:
        err = _syntax_error("{% endfor %}")
        assert err.detail == "unknown statement endfor"

    def test_missing_end_tag(self) -> None:
        err = _syntax_error("{% if x %}never closed")
        assert "unexpected end of input" in err.detail
        assert "`endif`" in err.detail

    def test_reserved_assignment(self) -> None:
        err = _syntax_error("{% set loop = 1 %}")
        assert err.detail == "cannot assign to reserved variable name loop"

    def test_reserved_for_target(self) -> None:
        err = _syntax_error("{% for true in x %}{% endfor %}")
        assert "reserved variable name true" in err.detail

    def test_block_defined_twice(self) -> None:
        err = _syntax_error("{% block a %}{% endblock %}{% block a %}{% endblock %}")
        assert err.detail == "block 'a' defined twice"

    def test_block_in_macro(self) -> None:
        err = _syntax_error("{% macro m() %}{% block a %}{% endblock %}{% endmacro %}")
        assert err.detail == "block tags in macros are not allowed"

    def test_mismatched_endblock_name(self) -> None:
        err = _syntax_error("{% block a %}{% endblock b %}")
        assert "mismatching name on block" in err.detail

    def test_do_requires_call(self) -> None:
        err = _syntax_error("{% do x %}")
        assert err.detail == "expected call expression in do block, got var"

    def test_call_block_requires_call(self) -> None:
        err = _syntax_error("{% call x.y %}{% endcall %}")
        assert "expected call expression in call block" in err.detail

    def test_missing_default_after_default(self) -> None:
        err = _syntax_error("{% macro m(a=1, b) %}{% endmacro %}")
        assert "expected `=`" in err.detail

    def test_empty_variable(self) -> None:
        err = _syntax_error("{{ }}")
        assert err.detail == "unexpected end of variable block"

    def test_unclosed_paren(self) -> None:
        err = _syntax_error("{{ (1 + 2 }}")
        assert "expected `)`" in err.detail

    def test_lexer_error_surfaces(self) -> None:
        err = _syntax_error("{{ 'oops }}")
        assert err.detail == "unexpected end of string"

    def test_trailing_input_in_expression(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="unexpected input after expression"):
            parse_expr("a b")

    def test_error_location(self) -> None:
        err = _syntax_error("line one\n{{ a + }}")
        assert err.name == "t.txt"
        assert err.lineno == 2
        assert err.source == "line one\n{{ a + }}"
        assert str(err).endswith("(in t.txt:2)")

    def test_parse_error_keeps_token(self) -> None:
        err = _syntax_error("{% iff %}")
        assert isinstance(err, ParseError)
        assert err.token is not None
        assert err.token.value == "iff"

    def test_deep_nesting_is_rejected(self) -> None:
        source = "{{ " + "(" * 300 + "1" + ")" * 300 + " }}"
        err = _syntax_error(source)
        assert err.detail == "template exceeds maximum recursion limits"
