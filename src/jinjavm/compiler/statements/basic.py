"""Basic statement compilation for the jinjavm code generator.

Raw template data and ``{{ expr }}`` output. A few call shapes in output
position get dedicated instructions so that no intermediate capture is
needed: ``{{ super() }}``, ``{{ loop(children) }}`` and ``{{ self.name() }}``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm.compiler.expressions import call_identity
from jinjavm.compiler.instructions import Op
from jinjavm.nodes import Call

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.nodes import EmitExpr, EmitRaw, Expr


class BasicStatementMixin:
    """Mixin for compiling output statements."""

    if TYPE_CHECKING:
        raw_template_bytes: int

        def _add(self, op: Op, arg: object = None) -> int: ...
        def _add_with_span(self, op: Op, span: Span, arg: object = None) -> int: ...
        def _set_line_from_span(self, span: Span) -> None: ...
        def _compile_expr(self, expr: Expr) -> None: ...

    def _compile_emit_raw(self, node: EmitRaw) -> None:
        if not node.raw:
            return
        self._add(Op.EMIT_RAW, node.raw)
        self.raw_template_bytes += len(node.raw)

    def _compile_emit_expr(self, node: EmitExpr) -> None:
        self._set_line_from_span(node.span)
        expr = node.expr
        if isinstance(expr, Call):
            kind, target = call_identity(expr)
            if kind == "function":
                if target == "super" and not expr.args:
                    self._add_with_span(Op.FAST_SUPER, expr.span)
                    return
                if target == "loop" and len(expr.args) == 1:
                    self._compile_expr(expr.args[0])
                    self._add(Op.FAST_RECURSE)
                    return
            elif kind == "block":
                self._add(Op.CALL_BLOCK, target)
                return
        self._compile_expr(expr)
        self._add(Op.EMIT)
