"""Expression parsing for the jinjavm parser.

Precedence, loosest first::

    if_expr      a if b else c
    or           a or b
    and          a and b
    not          not a
    compare      == != < <= > >= in, not in   (chained left to right)
    math1        + -
    concat       ~
    math2        * / // %
    pow          **
    unary        -a
    primary      literals, names, (tuples), [lists], {maps}
    postfix      .name  [key]  [a:b:c]  (args)  |filter  is test

The four arithmetic levels are parsed by precedence climbing in
``_parse_math``; all binary operators are left associative.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import Span, Token, TokenType
from jinjavm.nodes import (
    BinOp,
    Call,
    Const,
    Expr,
    Filter,
    GetAttr,
    GetItem,
    IfExpr,
    Kwargs,
    List,
    Map,
    Slice,
    Test,
    UnaryOp,
    Var,
)
from jinjavm.parser.errors import unexpected, unexpected_eof

if TYPE_CHECKING:
    from jinjavm.parser.errors import ParseError

MAX_RECURSION = 150

_MATH_OPS: dict[TokenType, tuple[str, int]] = {
    TokenType.PLUS: ("+", 1),
    TokenType.MINUS: ("-", 1),
    TokenType.TILDE: ("~", 2),
    TokenType.MUL: ("*", 3),
    TokenType.DIV: ("/", 3),
    TokenType.FLOOR_DIV: ("//", 3),
    TokenType.MOD: ("%", 3),
    TokenType.POW: ("**", 4),
}

_COMPARE_OPS: dict[TokenType, str] = {
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.LT: "<",
    TokenType.LTE: "<=",
    TokenType.GT: ">",
    TokenType.GTE: ">=",
}

_CONSTANTS = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "none": None,
    "None": None,
}

# Identifiers that end an expression instead of starting a bare test argument.
_TEST_ARG_STOP = frozenset({"and", "or", "else", "is", "if", "in", "not", "recursive"})


class ExpressionParsingMixin:
    """Mixin for parsing expressions.

    Host attributes and cross-mixin dependencies are declared in the
    TYPE_CHECKING block below.
    """

    if TYPE_CHECKING:
        _depth: int
        _last_span: Span

        @property
        def _current(self) -> Token | None: ...
        def _current_span(self) -> Span: ...
        def _advance(self) -> Token | None: ...
        def _match(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _match_ident(self, *names: str) -> bool: ...
        def _skip(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _skip_ident(self, *names: str) -> bool: ...
        def _expect(self, token_type: TokenType, expected: str | None = None) -> Token: ...
        def _expect_ident(self, name: str, expected: str | None = None) -> Token: ...
        def _expand(self, span: Span) -> Span: ...
        def _error(
            self, message: str, token: Token | None = None, suggestion: str | None = None
        ) -> ParseError: ...

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_RECURSION:
            raise self._error("template exceeds maximum recursion limits")

    def _leave(self) -> None:
        self._depth -= 1

    # -- entry points ----------------------------------------------------------

    def _parse_expression(self) -> Expr:
        self._enter()
        try:
            return self._parse_if_expr()
        finally:
            self._leave()

    def _parse_expression_no_if(self) -> Expr:
        return self._parse_or()

    # -- boolean layers ----------------------------------------------------------

    def _parse_if_expr(self) -> Expr:
        span = self._current_span()
        expr = self._parse_or()
        while self._skip_ident("if"):
            test_expr = self._parse_or()
            false_expr = None
            if self._skip_ident("else"):
                false_expr = self._parse_if_expr()
            expr = IfExpr(self._expand(span), test_expr, expr, false_expr)
        return expr

    def _parse_or(self) -> Expr:
        span = self._current_span()
        left = self._parse_and()
        while self._skip_ident("or"):
            right = self._parse_and()
            left = BinOp(self._expand(span), "or", left, right)
        return left

    def _parse_and(self) -> Expr:
        span = self._current_span()
        left = self._parse_not()
        while self._skip_ident("and"):
            right = self._parse_not()
            left = BinOp(self._expand(span), "and", left, right)
        return left

    def _parse_not(self) -> Expr:
        span = self._current_span()
        if self._skip_ident("not"):
            expr = self._parse_not()
            return UnaryOp(self._expand(span), "not", expr)
        return self._parse_compare()

    def _parse_compare(self) -> Expr:
        span = self._current_span()
        expr = self._parse_math()
        while True:
            tok = self._current
            if tok is None:
                break
            negated = False
            if tok.type in _COMPARE_OPS:
                op = _COMPARE_OPS[tok.type]
                self._advance()
            elif tok.is_ident("in"):
                op = "in"
                self._advance()
            elif tok.is_ident("not"):
                self._advance()
                self._expect_ident("in")
                op = "in"
                negated = True
            else:
                break
            right = self._parse_math()
            expr = BinOp(self._expand(span), op, expr, right)  # type: ignore[arg-type]
            if negated:
                expr = UnaryOp(self._expand(span), "not", expr)
        return expr

    # -- arithmetic ------------------------------------------------------------

    def _parse_math(self, min_prec: int = 1) -> Expr:
        span = self._current_span()
        left = self._parse_unary()
        while True:
            tok = self._current
            if tok is None:
                break
            entry = _MATH_OPS.get(tok.type)
            if entry is None or entry[1] < min_prec:
                break
            op, prec = entry
            self._advance()
            right = self._parse_math(prec + 1)
            left = BinOp(self._expand(span), op, left, right)  # type: ignore[arg-type]
        return left

    def _parse_unary(self, with_filter: bool = True) -> Expr:
        span = self._current_span()
        if self._skip(TokenType.MINUS):
            operand = self._parse_unary(with_filter=False)
            expr: Expr = UnaryOp(self._expand(span), "-", operand)
        else:
            expr = self._parse_postfix(self._parse_primary(), span)
        if with_filter:
            expr = self._parse_filter_expr(expr, span)
        return expr

    # -- postfix -----------------------------------------------------------------

    def _parse_postfix(self, expr: Expr, span: Span) -> Expr:
        while True:
            tok = self._current
            if tok is None:
                break
            if tok.type is TokenType.DOT:
                self._advance()
                name_tok = self._advance()
                if name_tok is None:
                    raise unexpected_eof("identifier")
                if name_tok.type is TokenType.IDENT:
                    expr = GetAttr(self._expand(span), expr, name_tok.value)
                elif name_tok.type is TokenType.INT:
                    index = Const(name_tok.span, name_tok.value)
                    expr = GetItem(self._expand(span), expr, index)
                else:
                    raise unexpected(name_tok, "identifier", name_tok)
            elif tok.type is TokenType.BRACKET_OPEN:
                self._advance()
                expr = self._parse_subscript(expr, span)
            elif tok.type is TokenType.PAREN_OPEN:
                args = self._parse_args()
                expr = Call(self._expand(span), expr, tuple(args))
            else:
                break
        return expr

    def _parse_subscript(self, expr: Expr, span: Span) -> Expr:
        start = stop = step = None
        is_slice = False
        if not self._match(TokenType.COLON):
            start = self._parse_expression()
        if self._skip(TokenType.COLON):
            is_slice = True
            if not (self._match(TokenType.BRACKET_CLOSE) or self._match(TokenType.COLON)):
                stop = self._parse_expression()
            if self._skip(TokenType.COLON) and not self._match(TokenType.BRACKET_CLOSE):
                step = self._parse_expression()
        self._expect(TokenType.BRACKET_CLOSE, "`]`")
        if not is_slice:
            if start is None:
                raise self._error("empty subscript")
            return GetItem(self._expand(span), expr, start)
        return Slice(self._expand(span), expr, start, stop, step)

    def _parse_filter_expr(self, expr: Expr, span: Span) -> Expr:
        while True:
            tok = self._current
            if tok is None:
                break
            if tok.type is TokenType.PIPE:
                self._advance()
                name_tok = self._expect(TokenType.IDENT, "identifier")
                args: list[Expr] = []
                if self._match(TokenType.PAREN_OPEN):
                    args = self._parse_args()
                expr = Filter(self._expand(span), name_tok.value, expr, tuple(args))
            elif tok.is_ident("is"):
                self._advance()
                negated = self._skip_ident("not")
                name_tok = self._expect(TokenType.IDENT, "identifier")
                args = self._parse_test_args()
                expr = Test(self._expand(span), name_tok.value, expr, tuple(args))
                if negated:
                    expr = UnaryOp(self._expand(span), "not", expr)
            else:
                break
        return expr

    def _parse_test_args(self) -> list[Expr]:
        if self._match(TokenType.PAREN_OPEN):
            return self._parse_args()
        tok = self._current
        if tok is None:
            return []
        bare = tok.type in (TokenType.STRING, TokenType.INT, TokenType.FLOAT) or (
            tok.type is TokenType.IDENT and tok.value not in _TEST_ARG_STOP
        )
        if not bare:
            return []
        span = self._current_span()
        arg = self._parse_primary()
        return [self._parse_postfix(arg, span)]

    def _parse_args(self) -> list[Expr]:
        """Parse ``(a, b, key=value)``; keyword pairs become a trailing ``Kwargs``."""
        args: list[Expr] = []
        kwargs: list[tuple[str, Expr]] = []
        kwargs_span: Span | None = None
        self._expect(TokenType.PAREN_OPEN, "`(`")
        while not self._skip(TokenType.PAREN_CLOSE):
            if args or kwargs:
                self._expect(TokenType.COMMA, "`,`")
                if self._skip(TokenType.PAREN_CLOSE):
                    break
            expr = self._parse_expression()
            if isinstance(expr, Var) and self._skip(TokenType.ASSIGN):
                if kwargs_span is None:
                    kwargs_span = expr.span
                kwargs.append((expr.id, self._parse_expression_no_if()))
            elif kwargs:
                raise self._error("non-keyword arg after keyword arg")
            else:
                args.append(expr)
        if kwargs:
            assert kwargs_span is not None
            args.append(Kwargs(self._expand(kwargs_span), tuple(kwargs)))
        return args

    # -- primary -----------------------------------------------------------------

    def _parse_primary(self) -> Expr:
        self._enter()
        try:
            return self._parse_primary_impl()
        finally:
            self._leave()

    def _parse_primary_impl(self) -> Expr:
        tok = self._advance()
        if tok is None:
            raise unexpected_eof("expression")
        span = tok.span
        if tok.type is TokenType.IDENT:
            if tok.value in _CONSTANTS:
                return Const(span, _CONSTANTS[tok.value])
            return Var(span, tok.value)
        if tok.type in (TokenType.STRING, TokenType.INT, TokenType.FLOAT):
            return Const(span, tok.value)
        if tok.type is TokenType.PAREN_OPEN:
            return self._parse_tuple_or_expression(span)
        if tok.type is TokenType.BRACKET_OPEN:
            return self._parse_list_expr(span)
        if tok.type is TokenType.BRACE_OPEN:
            return self._parse_map_expr(span)
        raise self._error(f"unexpected {tok}", tok)

    def _parse_list_expr(self, span: Span) -> Expr:
        items: list[Expr] = []
        while not self._skip(TokenType.BRACKET_CLOSE):
            if items:
                self._expect(TokenType.COMMA, "`,`")
                if self._skip(TokenType.BRACKET_CLOSE):
                    break
            items.append(self._parse_expression())
        return List(self._expand(span), tuple(items))

    def _parse_map_expr(self, span: Span) -> Expr:
        keys: list[Expr] = []
        values: list[Expr] = []
        while not self._skip(TokenType.BRACE_CLOSE):
            if keys:
                self._expect(TokenType.COMMA, "`,`")
                if self._skip(TokenType.BRACE_CLOSE):
                    break
            keys.append(self._parse_expression())
            self._expect(TokenType.COLON, "`:`")
            values.append(self._parse_expression())
        return Map(self._expand(span), tuple(keys), tuple(values))

    def _parse_tuple_or_expression(self, span: Span) -> Expr:
        # Tuples are lists at runtime.
        if self._skip(TokenType.PAREN_CLOSE):
            return List(self._expand(span), ())
        expr = self._parse_expression()
        if self._match(TokenType.COMMA):
            items = [expr]
            while not self._skip(TokenType.PAREN_CLOSE):
                self._expect(TokenType.COMMA, "`,`")
                if self._skip(TokenType.PAREN_CLOSE):
                    break
                items.append(self._parse_expression())
            return List(self._expand(span), tuple(items))
        self._expect(TokenType.PAREN_CLOSE, "`)`")
        return expr

    # -- filter chains for {% filter %} and {% set x | f %} ------------------------

    def _parse_filter_chain(self) -> Expr:
        chain: Filter | None = None
        while not self._match(TokenType.BLOCK_END):
            if chain is not None:
                self._expect(TokenType.PIPE, "`|`")
            name_tok = self._expect(TokenType.IDENT, "identifier")
            args: list[Expr] = []
            if self._match(TokenType.PAREN_OPEN):
                args = self._parse_args()
            chain = Filter(self._expand(name_tok.span), name_tok.value, chain, tuple(args))
        if chain is None:
            raise self._error("expected a filter")
        return chain
