"""Expression compilation for the jinjavm code generator.

Every expression leaves exactly one value on the stack. Calls are lowered
by callee identity:

    ==========================  ==========================================
    ``name(...)``               ``CALL_FUNCTION`` (``super``/``loop`` are
                                resolved by the VM)
    ``self.name()``             ``CALL_BLOCK`` inside a capture
    ``expr.name(...)``          ``CALL_METHOD`` with the receiver first
    anything else               ``CALL_OBJECT`` with the callee first
    ==========================  ==========================================

Keyword arguments travel as one trailing ``Kwargs`` value built by
``BUILD_KWARGS``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from jinjavm.compiler.instructions import CaptureMode, Op
from jinjavm.nodes import GetAttr, Kwargs, List, Var
from jinjavm.value.core import Undefined
from jinjavm.value.indexmap import IndexMap

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.nodes import (
        BinOp,
        Call,
        Const,
        Expr,
        Filter,
        GetItem,
        IfExpr,
        Macro,
        Map,
        Slice,
        Test,
        UnaryOp,
    )

_BINOP_INSTRUCTIONS: dict[str, Op] = {
    "==": Op.EQ,
    "!=": Op.NE,
    "<": Op.LT,
    "<=": Op.LTE,
    ">": Op.GT,
    ">=": Op.GTE,
    "+": Op.ADD,
    "-": Op.SUB,
    "*": Op.MUL,
    "/": Op.DIV,
    "//": Op.INT_DIV,
    "%": Op.REM,
    "**": Op.POW,
    "~": Op.STRING_CONCAT,
    "in": Op.IN,
}


def call_identity(call: Call) -> tuple[str, Any]:
    """Classify a call by what is being called.

    Returns one of ``("function", name)``, ``("block", name)``,
    ``("method", (receiver, name))`` or ``("object", callee)``.
    """
    expr = call.expr
    if isinstance(expr, Var):
        return "function", expr.id
    if isinstance(expr, GetAttr):
        if isinstance(expr.expr, Var) and expr.expr.id == "self":
            return "block", expr.name
        return "method", (expr.expr, expr.name)
    return "object", expr


class ExpressionCompilationMixin:
    """Mixin for compiling expressions.

    Host attributes and cross-mixin dependencies are declared in the
    TYPE_CHECKING block below.
    """

    if TYPE_CHECKING:
        _filter_local_ids: dict[str, int]
        _test_local_ids: dict[str, int]

        def _add(self, op: Op, arg: object = None) -> int: ...
        def _add_with_span(self, op: Op, span: Span, arg: object = None) -> int: ...
        def _set_line_from_span(self, span: Span) -> None: ...
        def _spanned(self, span: Span): ...
        def _start_if(self) -> None: ...
        def _start_else(self) -> None: ...
        def _end_if(self) -> None: ...
        def _start_sc_bool(self) -> None: ...
        def _sc_bool(self, is_and: bool) -> None: ...
        def _end_sc_bool(self) -> None: ...
        @staticmethod
        def _local_id(ids: dict[str, int], name: str) -> int: ...
        def _compile_macro_expression(self, macro: Macro) -> None: ...

    def _compile_expr(self, expr: Expr) -> None:
        handler = self._get_expr_dispatch().get(type(expr).__name__)
        if handler is None:
            raise NotImplementedError(f"cannot compile {type(expr).__name__}")
        handler(expr)

    def _get_expr_dispatch(self) -> dict[str, Callable[..., None]]:
        """Get expression type dispatch table (cached on first call)."""
        if not hasattr(self, "_expr_dispatch"):
            self._expr_dispatch = {
                "Var": self._compile_var,
                "Const": self._compile_const,
                "Slice": self._compile_slice,
                "UnaryOp": self._compile_unary_op,
                "BinOp": self._compile_bin_op,
                "IfExpr": self._compile_if_expr,
                "Filter": self._compile_filter,
                "Test": self._compile_test,
                "GetAttr": self._compile_get_attr,
                "GetItem": self._compile_get_item,
                "Call": self._compile_call_expr,
                "List": self._compile_list,
                "Map": self._compile_map,
                "Kwargs": self._compile_kwargs,
            }
        return self._expr_dispatch

    def _compile_var(self, node: Var) -> None:
        self._set_line_from_span(node.span)
        self._add(Op.LOOKUP, node.id)

    def _compile_const(self, node: Const) -> None:
        self._set_line_from_span(node.span)
        self._add(Op.LOAD_CONST, node.value)

    def _compile_slice(self, node: Slice) -> None:
        with self._spanned(node.span):
            self._compile_expr(node.expr)
            for part, default in ((node.start, 0), (node.stop, None), (node.step, 1)):
                if part is not None:
                    self._compile_expr(part)
                else:
                    self._add(Op.LOAD_CONST, default)
            self._add(Op.SLICE)

    def _compile_unary_op(self, node: UnaryOp) -> None:
        self._set_line_from_span(node.span)
        self._compile_expr(node.expr)
        if node.op == "not":
            self._add(Op.NOT)
        else:
            self._add_with_span(Op.NEG, node.span)

    def _compile_bin_op(self, node: BinOp) -> None:
        with self._spanned(node.span):
            if node.op in ("and", "or"):
                self._start_sc_bool()
                self._compile_expr(node.left)
                self._sc_bool(node.op == "and")
                self._compile_expr(node.right)
                self._end_sc_bool()
                return
            self._compile_expr(node.left)
            self._compile_expr(node.right)
            self._add(_BINOP_INSTRUCTIONS[node.op])

    def _compile_if_expr(self, node: IfExpr) -> None:
        self._set_line_from_span(node.span)
        self._compile_expr(node.test_expr)
        self._start_if()
        self._compile_expr(node.true_expr)
        self._start_else()
        if node.false_expr is not None:
            self._compile_expr(node.false_expr)
        else:
            self._add(Op.LOAD_CONST, Undefined)
        self._end_if()

    def _compile_filter(self, node: Filter) -> None:
        # Without an input expression the value is already on the stack
        # (filter blocks and filtered set blocks).
        with self._spanned(node.span):
            if node.expr is not None:
                self._compile_expr(node.expr)
            self._compile_all(node.args)
            local_id = self._local_id(self._filter_local_ids, node.name)
            self._add(Op.APPLY_FILTER, (node.name, len(node.args) + 1, local_id))

    def _compile_test(self, node: Test) -> None:
        with self._spanned(node.span):
            self._compile_expr(node.expr)
            self._compile_all(node.args)
            local_id = self._local_id(self._test_local_ids, node.name)
            self._add(Op.PERFORM_TEST, (node.name, len(node.args) + 1, local_id))

    def _compile_get_attr(self, node: GetAttr) -> None:
        with self._spanned(node.span):
            self._compile_expr(node.expr)
            self._add(Op.GET_ATTR, node.name)

    def _compile_get_item(self, node: GetItem) -> None:
        with self._spanned(node.span):
            self._compile_expr(node.expr)
            self._compile_expr(node.subscript_expr)
            self._add(Op.GET_ITEM)

    def _compile_call_expr(self, node: Call) -> None:
        self._compile_call(node, node.span)

    def _compile_list(self, node: List) -> None:
        value = node.as_const()
        if value is not None:
            self._add(Op.LOAD_CONST, value)
            return
        self._set_line_from_span(node.span)
        self._compile_all(node.items)
        self._add(Op.BUILD_LIST, len(node.items))

    def _compile_map(self, node: Map) -> None:
        pairs = node.as_const()
        if pairs is not None:
            self._add(Op.LOAD_CONST, IndexMap(pairs))
            return
        self._set_line_from_span(node.span)
        for key, value in zip(node.keys, node.values, strict=True):
            self._compile_expr(key)
            self._compile_expr(value)
        self._add(Op.BUILD_MAP, len(node.keys))

    def _compile_kwargs(self, node: Kwargs) -> None:
        self._set_line_from_span(node.span)
        for key, value in node.pairs:
            self._add(Op.LOAD_CONST, key)
            self._compile_expr(value)
        self._add(Op.BUILD_KWARGS, len(node.pairs))

    def _compile_all(self, exprs: Sequence[Expr]) -> None:
        for expr in exprs:
            self._compile_expr(expr)

    # -- calls ---------------------------------------------------------------

    def _compile_call(self, call: Call, span: Span, caller: Macro | None = None) -> None:
        with self._spanned(span):
            kind, target = call_identity(call)
            if kind == "function":
                argc = self._compile_call_args(call.args, caller)
                self._add(Op.CALL_FUNCTION, (target, argc))
            elif kind == "block":
                self._add(Op.BEGIN_CAPTURE, CaptureMode.CAPTURE)
                self._add(Op.CALL_BLOCK, target)
                self._add(Op.END_CAPTURE)
            elif kind == "method":
                receiver, name = target
                self._compile_expr(receiver)
                argc = self._compile_call_args(call.args, caller)
                self._add(Op.CALL_METHOD, (name, argc + 1))
            else:
                self._compile_expr(target)
                argc = self._compile_call_args(call.args, caller)
                self._add(Op.CALL_OBJECT, argc + 1)

    def _compile_call_args(self, args: Sequence[Expr], caller: Macro | None) -> int:
        """Push call arguments, injecting ``caller`` for call blocks."""
        if caller is None:
            self._compile_all(args)
            return len(args)

        injected = False
        for arg in args:
            if isinstance(arg, Kwargs):
                self._set_line_from_span(arg.span)
                for key, value in arg.pairs:
                    self._add(Op.LOAD_CONST, key)
                    self._compile_expr(value)
                self._add(Op.LOAD_CONST, "caller")
                self._compile_macro_expression(caller)
                self._add(Op.BUILD_KWARGS, len(arg.pairs) + 1)
                injected = True
            else:
                self._compile_expr(arg)

        if injected:
            return len(args)
        self._add(Op.LOAD_CONST, "caller")
        self._compile_macro_expression(caller)
        self._add(Op.BUILD_KWARGS, 1)
        return len(args) + 1

    # -- assignment ----------------------------------------------------------

    def _compile_assignment(self, target: Expr) -> None:
        """Store the top of the stack into ``target``, unpacking lists."""
        if isinstance(target, Var):
            self._add(Op.STORE_LOCAL, target.id)
        elif isinstance(target, List):
            with self._spanned(target.span):
                self._add(Op.UNPACK_LIST, len(target.items))
                for item in target.items:
                    self._compile_assignment(item)
        else:
            raise NotImplementedError(f"cannot assign to {type(target).__name__}")
