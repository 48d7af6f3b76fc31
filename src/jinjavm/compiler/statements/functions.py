"""Macro compilation for the jinjavm code generator.

A macro body is compiled inline and jumped over. The VM enters it at the
recorded offset with the argument values on the stack, last argument on
top, and leaves it at ``RETURN``::

    JUMP end
    <prologue: store args in reverse, evaluating defaults for undefined ones>
    <body>
    RETURN
    end: ENCLOSE free names, GET_CLOSURE, LOAD_CONST arg names, BUILD_MACRO
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from jinjavm.compiler.closure import find_macro_closure
from jinjavm.compiler.instructions import MacroFlags, Op
from jinjavm.nodes import Var

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.compiler.instructions import Instructions
    from jinjavm.nodes import Call, CallBlock, Expr, Macro, Node


class FunctionCompilationMixin:
    """Mixin for compiling ``macro`` and ``call`` blocks."""

    if TYPE_CHECKING:
        instructions: Instructions

        def _add(self, op: Op, arg: object = None) -> int: ...
        def _set_line_from_span(self, span: Span) -> None: ...
        def _next_instruction(self) -> int: ...
        def _compile_expr(self, expr: Expr) -> None: ...
        def _compile_assignment(self, target: Expr) -> None: ...
        def _compile_body(self, body: Sequence[Node]) -> None: ...
        def _compile_call(self, call: Call, span: Span, caller: Macro | None = None) -> None: ...
        def _start_if(self) -> None: ...
        def _end_if(self) -> None: ...

    def _compile_macro_expression(self, macro: Macro) -> None:
        """Compile ``macro`` and leave the macro object on the stack."""
        self._set_line_from_span(macro.span)
        jump_inst = self._add(Op.JUMP, -1)

        defaults = list(macro.defaults)
        for arg in reversed(macro.args):
            if defaults:
                default = defaults.pop()
                self._add(Op.DUP_TOP)
                self._add(Op.IS_UNDEFINED)
                self._start_if()
                self._add(Op.DISCARD_TOP)
                self._compile_expr(default)
                self._end_if()
            self._compile_assignment(arg)
        self._compile_body(macro.body)
        self._add(Op.RETURN)

        free_names = find_macro_closure(macro)
        flags = MacroFlags(0)
        if "caller" in free_names:
            flags |= MacroFlags.CALLER
        macro_inst = self._next_instruction()
        for name in free_names:
            if name != "caller":
                self._add(Op.ENCLOSE, name)
        self._add(Op.GET_CLOSURE)
        self._add(Op.LOAD_CONST, [arg.id for arg in macro.args if isinstance(arg, Var)])
        self._add(Op.BUILD_MACRO, (macro.name, jump_inst + 1, flags))
        self.instructions.set_jump_target(jump_inst, macro_inst)

    def _compile_macro(self, node: Macro) -> None:
        self._compile_macro_expression(node)
        self._add(Op.STORE_LOCAL, node.name)

    def _compile_call_block(self, node: CallBlock) -> None:
        self._compile_call(node.call, node.span, node.macro_decl)
        self._add(Op.EMIT)
