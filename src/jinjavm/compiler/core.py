"""jinjavm code generator core.

``CodeGenerator`` lowers the AST produced by ``jinjavm.parser`` into a flat
``Instructions`` list for the stack machine in ``jinjavm.template.vm``. It
is assembled from mixins the same way the parser is:

- ``ExpressionCompilationMixin``: expressions, calls, assignment targets
- ``StatementCompilationMixin``: one mixin per family of statements

Design Principles:
1. **Flat code**: Control flow is jumps; there are no nested code objects
   except block bodies, which get their own ``Instructions``.
2. **Back-patching**: Forward jumps are emitted with a placeholder target and
   patched when the target is known. The open patch sites live on a stack
   of pending blocks (branch, loop, short-circuit boolean).
3. **Sparse locations**: Every instruction records the current line; inside
   a ``_spanned`` region the span is recorded too, so runtime errors can
   point at the exact expression.
4. **O(1) dispatch**: Node class name to handler lookup.

Example:
    >>> from jinjavm.parser import parse
    >>> gen = CodeGenerator("hello.txt", "Hello {{ name }}!")
    >>> gen.compile_stmt(parse("Hello {{ name }}!", "hello.txt"))
    >>> instructions, blocks = gen.finish()
    >>> instructions.instructions
    [EmitRaw('Hello '), Lookup('name'), Emit, EmitRaw('!')]
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from jinjavm.compiler.expressions import ExpressionCompilationMixin
from jinjavm.compiler.instructions import (
    LOCAL_ID_NONE,
    MAX_LOCALS,
    Instruction,
    Instructions,
    LoopFlags,
    Op,
)
from jinjavm.compiler.statements import StatementCompilationMixin

if TYPE_CHECKING:
    from jinjavm._types import Span
    from jinjavm.nodes import Expr, Node, Template

logger = logging.getLogger(__name__)

_PLACEHOLDER = -1


@dataclass(slots=True)
class _Branch:
    jump_inst: int


@dataclass(slots=True)
class _Loop:
    iter_inst: int


@dataclass(slots=True)
class _ScBool:
    jump_insts: list[int] = field(default_factory=list)


class CodeGenerator(ExpressionCompilationMixin, StatementCompilationMixin):
    """Compile one template into instructions plus block subprograms.

    Args:
        name: Template name, recorded for error locations.
        source: Template source, recorded for error snippets.
    """

    __slots__ = (
        "_blocks",
        "_current_line",
        "_expr_dispatch",
        "_filter_local_ids",
        "_node_dispatch",
        "_pending",
        "_span_stack",
        "_test_local_ids",
        "instructions",
        "raw_template_bytes",
    )

    def __init__(self, name: str, source: str):
        self.instructions = Instructions(name, source)
        self._blocks: dict[str, Instructions] = {}
        self._pending: list[_Branch | _Loop | _ScBool] = []
        self._current_line = 0
        self._span_stack: list[Span] = []
        self._filter_local_ids: dict[str, int] = {}
        self._test_local_ids: dict[str, int] = {}
        self.raw_template_bytes = 0

    # -- emission ------------------------------------------------------------

    def _set_line(self, lineno: int) -> None:
        self._current_line = lineno

    def _set_line_from_span(self, span: Span) -> None:
        self._current_line = span.start_line

    @contextmanager
    def _spanned(self, span: Span) -> Iterator[None]:
        """Record ``span`` on instructions emitted on its first line."""
        self._span_stack.append(span)
        self._set_line_from_span(span)
        try:
            yield
        finally:
            self._span_stack.pop()

    def _add(self, op: Op, arg: object = None) -> int:
        instr = Instruction(op, arg)
        if self._span_stack:
            span = self._span_stack[-1]
            if span.start_line == self._current_line:
                return self.instructions.add_with_span(instr, span)
        return self.instructions.add_with_line(instr, self._current_line)

    def _add_with_span(self, op: Op, span: Span, arg: object = None) -> int:
        return self.instructions.add_with_span(Instruction(op, arg), span)

    def _next_instruction(self) -> int:
        return len(self.instructions)

    @staticmethod
    def _local_id(ids: dict[str, int], name: str) -> int:
        """Small per-template id for the VM's filter and test caches."""
        local_id = ids.get(name)
        if local_id is not None:
            return local_id
        if len(ids) >= MAX_LOCALS:
            return LOCAL_ID_NONE
        ids[name] = local_id = len(ids)
        return local_id

    # -- pending blocks ------------------------------------------------------

    def _start_if(self) -> None:
        self._pending.append(_Branch(self._add(Op.JUMP_IF_FALSE, _PLACEHOLDER)))

    def _start_else(self) -> None:
        jump_inst = self._add(Op.JUMP, _PLACEHOLDER)
        self._end_condition(jump_inst + 1)
        self._pending.append(_Branch(jump_inst))

    def _end_if(self) -> None:
        self._end_condition(self._next_instruction())

    def _end_condition(self, target: int) -> None:
        block = self._pending.pop()
        assert isinstance(block, _Branch), block
        self.instructions.set_jump_target(block.jump_inst, target)

    def _start_for_loop(self, with_loop_var: bool, recursive: bool) -> None:
        flags = LoopFlags(0)
        if with_loop_var:
            flags |= LoopFlags.WITH_LOOP_VAR
        if recursive:
            flags |= LoopFlags.RECURSIVE
        self._add(Op.PUSH_LOOP, flags)
        self._pending.append(_Loop(self._add(Op.ITERATE, _PLACEHOLDER)))

    def _end_for_loop(self, push_did_not_iterate: bool) -> None:
        block = self._pending.pop()
        assert isinstance(block, _Loop), block
        self._add(Op.JUMP, block.iter_inst)
        loop_end = self._next_instruction()
        if push_did_not_iterate:
            self._add(Op.PUSH_DID_NOT_ITERATE)
        self._add(Op.POP_FRAME)
        self.instructions.set_jump_target(block.iter_inst, loop_end)

    def _start_sc_bool(self) -> None:
        self._pending.append(_ScBool())

    def _sc_bool(self, is_and: bool) -> None:
        block = self._pending[-1]
        assert isinstance(block, _ScBool), block
        op = Op.JUMP_IF_FALSE_OR_POP if is_and else Op.JUMP_IF_TRUE_OR_POP
        block.jump_insts.append(self._add(op, _PLACEHOLDER))

    def _end_sc_bool(self) -> None:
        block = self._pending.pop()
        assert isinstance(block, _ScBool), block
        end = self._next_instruction()
        for idx in block.jump_insts:
            self.instructions.set_jump_target(idx, end)

    # -- sub-generators for blocks --------------------------------------------

    def _new_subgenerator(self) -> CodeGenerator:
        sub = CodeGenerator(self.instructions.name, self.instructions.source)
        sub._current_line = self._current_line
        if self._span_stack:
            sub._span_stack.append(self._span_stack[-1])
        return sub

    def _finish_subgenerator(self, sub: CodeGenerator) -> Instructions:
        self._current_line = sub._current_line
        instructions, blocks = sub.finish()
        self._blocks.update(blocks)
        return instructions

    # -- statements ----------------------------------------------------------

    def compile_stmt(self, node: Node) -> None:
        """Compile a statement node (or a whole ``Template``)."""
        handler = self._get_node_dispatch().get(type(node).__name__)
        if handler is None:
            raise NotImplementedError(f"cannot compile {type(node).__name__}")
        handler(node)

    def _compile_body(self, body: Sequence[Node]) -> None:
        for node in body:
            self.compile_stmt(node)

    def _compile_template(self, node: Template) -> None:
        self._compile_body(node.children)

    def _get_node_dispatch(self) -> dict[str, Callable[..., None]]:
        """Get node type dispatch table (cached on first call)."""
        if not hasattr(self, "_node_dispatch"):
            self._node_dispatch = {
                "Template": self._compile_template,
                "EmitRaw": self._compile_emit_raw,
                "EmitExpr": self._compile_emit_expr,
                "ForLoop": self._compile_for_loop,
                "IfCond": self._compile_if_cond,
                "WithBlock": self._compile_with_block,
                "Set": self._compile_set,
                "SetBlock": self._compile_set_block,
                "AutoEscape": self._compile_auto_escape,
                "FilterBlock": self._compile_filter_block,
                "Block": self._compile_block,
                "Extends": self._compile_extends,
                "Include": self._compile_include,
                "Import": self._compile_import,
                "FromImport": self._compile_from_import,
                "Macro": self._compile_macro,
                "CallBlock": self._compile_call_block,
                "Do": self._compile_do,
            }
        return self._node_dispatch

    def finish(self) -> tuple[Instructions, dict[str, Instructions]]:
        """Return the main instructions and the block subprograms."""
        assert not self._pending, self._pending
        return self.instructions, self._blocks


def compile_template(
    tree: Template, name: str, source: str
) -> tuple[Instructions, dict[str, Instructions]]:
    """Compile a parsed template.

    Returns:
        The main instructions and a mapping of block name to block body.
    """
    gen = CodeGenerator(name, source)
    gen.compile_stmt(tree)
    instructions, blocks = gen.finish()
    logger.debug(
        "compiled template %r: %d instructions, blocks %s",
        name,
        len(instructions),
        sorted(blocks),
    )
    return instructions, blocks


def compile_expression(expr: Expr, source: str) -> Instructions:
    """Compile a standalone expression; the VM leaves its value on the stack."""
    gen = CodeGenerator("<expression>", source)
    gen._compile_expr(expr)
    instructions, _ = gen.finish()
    return instructions
