"""Special block compilation for the jinjavm code generator.

``{% autoescape %}``, ``{% filter %}`` and ``{% do %}``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from jinjavm.compiler.instructions import CaptureMode, Op

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.nodes import AutoEscape, Call, Do, Expr, FilterBlock, Macro, Node


class SpecialBlockMixin:
    """Mixin for compiling auto-escape, filter and do blocks."""

    if TYPE_CHECKING:

        def _add(self, op: Op, arg: object = None) -> int: ...
        def _set_line_from_span(self, span: Span) -> None: ...
        def _compile_expr(self, expr: Expr) -> None: ...
        def _compile_body(self, body: Sequence[Node]) -> None: ...
        def _compile_call(self, call: Call, span: Span, caller: Macro | None = None) -> None: ...

    def _compile_auto_escape(self, node: AutoEscape) -> None:
        self._set_line_from_span(node.span)
        self._compile_expr(node.enabled)
        self._add(Op.PUSH_AUTO_ESCAPE)
        self._compile_body(node.body)
        self._add(Op.POP_AUTO_ESCAPE)

    def _compile_filter_block(self, node: FilterBlock) -> None:
        self._set_line_from_span(node.span)
        self._add(Op.BEGIN_CAPTURE, CaptureMode.CAPTURE)
        self._compile_body(node.body)
        self._add(Op.END_CAPTURE)
        self._compile_expr(node.filter)
        self._add(Op.EMIT)

    def _compile_do(self, node: Do) -> None:
        self._compile_call(node.call, node.span)
        self._add(Op.DISCARD_TOP)
