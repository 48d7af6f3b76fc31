"""Control flow compilation for the jinjavm code generator.

``for`` loops with an inline filter (``{% for x in items if x %}``) run in
two passes: the first builds the filtered list without a loop variable, the
second iterates it. That keeps ``loop.length`` and ``loop.last`` exact for
the filtered sequence.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from jinjavm.compiler.instructions import Op

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.nodes import Expr, ForLoop, IfCond, Node


class ControlFlowMixin:
    """Mixin for compiling ``for`` and ``if`` statements."""

    if TYPE_CHECKING:

        def _add(self, op: Op, arg: object = None) -> int: ...
        def _set_line_from_span(self, span: Span) -> None: ...
        def _compile_expr(self, expr: Expr) -> None: ...
        def _compile_assignment(self, target: Expr) -> None: ...
        def _compile_body(self, body: Sequence[Node]) -> None: ...
        def _start_if(self) -> None: ...
        def _start_else(self) -> None: ...
        def _end_if(self) -> None: ...
        def _start_for_loop(self, with_loop_var: bool, recursive: bool) -> None: ...
        def _end_for_loop(self, push_did_not_iterate: bool) -> None: ...

    def _compile_for_loop(self, node: ForLoop) -> None:
        self._set_line_from_span(node.span)
        if node.filter_expr is not None:
            self._add(Op.BUILD_LIST, 0)
            self._compile_expr(node.iter)
            self._start_for_loop(False, False)
            self._add(Op.DUP_TOP)
            self._compile_assignment(node.target)
            self._compile_expr(node.filter_expr)
            self._start_if()
            self._add(Op.LIST_APPEND)
            self._start_else()
            self._add(Op.DISCARD_TOP)
            self._end_if()
            self._end_for_loop(False)
        else:
            self._compile_expr(node.iter)

        self._start_for_loop(True, node.recursive)
        self._compile_assignment(node.target)
        self._compile_body(node.body)
        self._end_for_loop(bool(node.else_body))
        if node.else_body:
            self._start_if()
            self._compile_body(node.else_body)
            self._end_if()

    def _compile_if_cond(self, node: IfCond) -> None:
        self._set_line_from_span(node.span)
        self._compile_expr(node.expr)
        self._start_if()
        self._compile_body(node.true_body)
        if node.false_body:
            self._start_else()
            self._compile_body(node.false_body)
        self._end_if()
