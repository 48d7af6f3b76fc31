"""Template structure compilation for the jinjavm code generator.

Blocks are compiled by a sub-generator into their own ``Instructions`` and
referenced from the main code by ``CALL_BLOCK``. Includes and imports run
the other template in a fresh frame so that its top-level assignments do
not leak into the including template. Imports additionally discard the
imported template's output and collect its locals.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from jinjavm.compiler.instructions import CaptureMode, Op

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.compiler.instructions import Instructions
    from jinjavm.nodes import Block, Expr, Extends, FromImport, Import, Include, Node


class TemplateStructureMixin:
    """Mixin for ``block``, ``extends``, ``include``, ``import`` and ``from``."""

    if TYPE_CHECKING:
        _blocks: dict[str, Instructions]

        def _add(self, op: Op, arg: object = None) -> int: ...
        def _add_with_span(self, op: Op, span: Span, arg: object = None) -> int: ...
        def _set_line_from_span(self, span: Span) -> None: ...
        def _compile_expr(self, expr: Expr) -> None: ...
        def _compile_assignment(self, target: Expr) -> None: ...
        def _compile_body(self, body: Sequence[Node]) -> None: ...
        def _new_subgenerator(self): ...
        def _finish_subgenerator(self, sub) -> Instructions: ...

    def _compile_block(self, node: Block) -> None:
        self._set_line_from_span(node.span)
        sub = self._new_subgenerator()
        sub._compile_body(node.body)
        self._blocks[node.name] = self._finish_subgenerator(sub)
        self._add(Op.CALL_BLOCK, node.name)

    def _compile_extends(self, node: Extends) -> None:
        self._set_line_from_span(node.span)
        self._compile_expr(node.name)
        self._add_with_span(Op.LOAD_BLOCKS, node.span)

    def _compile_include(self, node: Include) -> None:
        self._set_line_from_span(node.span)
        self._add(Op.PUSH_WITH)
        self._compile_expr(node.name)
        self._add_with_span(Op.INCLUDE, node.span, node.ignore_missing)
        self._add(Op.POP_FRAME)

    def _compile_import(self, node: Import) -> None:
        self._set_line_from_span(node.span)
        self._add(Op.BEGIN_CAPTURE, CaptureMode.DISCARD)
        self._add(Op.PUSH_WITH)
        self._compile_expr(node.expr)
        self._add_with_span(Op.INCLUDE, node.span, False)
        self._add(Op.EXPORT_LOCALS)
        self._add(Op.POP_FRAME)
        self._compile_assignment(node.name)
        self._add(Op.END_CAPTURE)
        self._add(Op.DISCARD_TOP)

    def _compile_from_import(self, node: FromImport) -> None:
        self._set_line_from_span(node.span)
        self._add(Op.BEGIN_CAPTURE, CaptureMode.DISCARD)
        self._add(Op.PUSH_WITH)
        self._compile_expr(node.expr)
        self._add_with_span(Op.INCLUDE, node.span, False)
        for name, _ in node.names:
            self._compile_expr(name)
        self._add(Op.POP_FRAME)
        for name, alias in reversed(node.names):
            self._compile_assignment(alias if alias is not None else name)
        self._add(Op.END_CAPTURE)
        self._add(Op.DISCARD_TOP)
