"""Variable assignment compilation for the jinjavm code generator."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from jinjavm.compiler.instructions import CaptureMode, Op

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.nodes import Expr, Node, Set, SetBlock, WithBlock


class VariableAssignmentMixin:
    """Mixin for ``set``, block ``set`` and ``with``."""

    if TYPE_CHECKING:

        def _add(self, op: Op, arg: object = None) -> int: ...
        def _set_line_from_span(self, span: Span) -> None: ...
        def _compile_expr(self, expr: Expr) -> None: ...
        def _compile_assignment(self, target: Expr) -> None: ...
        def _compile_body(self, body: Sequence[Node]) -> None: ...

    def _compile_set(self, node: Set) -> None:
        self._set_line_from_span(node.span)
        self._compile_expr(node.expr)
        self._compile_assignment(node.target)

    def _compile_set_block(self, node: SetBlock) -> None:
        self._set_line_from_span(node.span)
        self._add(Op.BEGIN_CAPTURE, CaptureMode.CAPTURE)
        self._compile_body(node.body)
        self._add(Op.END_CAPTURE)
        if node.filter is not None:
            self._compile_expr(node.filter)
        self._compile_assignment(node.target)

    def _compile_with_block(self, node: WithBlock) -> None:
        # Values are computed in the outer scope, then bound in the new one.
        self._set_line_from_span(node.span)
        for _, expr in node.assignments:
            self._compile_expr(expr)
        self._add(Op.PUSH_WITH)
        for target, _ in reversed(node.assignments):
            self._compile_assignment(target)
        self._compile_body(node.body)
        self._add(Op.POP_FRAME)
