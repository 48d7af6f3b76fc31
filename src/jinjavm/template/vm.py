"""Stack machine executing compiled jinjavm instructions.

Architecture:
    One ``VirtualMachine`` per environment; it holds no render state. Each
    evaluation gets a ``State`` (context stack, blocks, auto-escape) and a
    value stack local to the ``_eval_impl`` call, so nested evaluations
    (block calls, includes, ``super()``, macros) are plain recursive calls.

Inheritance:
    ``LOAD_BLOCKS`` registers the parent's blocks behind the child's and
    starts discarding output. When the child's instructions run out, the
    machine switches to the parent's instructions, ends the discard and
    starts over at index 0. ``CALL_BLOCK`` then resolves to the most derived
    implementation.

Recursive loops:
    ``loop(items)`` jumps back to the loop's ``PUSH_LOOP`` with ``items`` on
    the stack, after recording ``(return pc, capture)``. The new loop frame
    takes over that record, and its ``POP_FRAME`` jumps back to the caller,
    ending the capture when ``loop()`` was used as an expression.

Errors:
    A ``TemplateError`` leaving the loop gets the location of the failing
    instruction attached, unless a nested evaluation already did.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from jinjavm.compiler.instructions import LOCAL_ID_NONE, CaptureMode, LoopFlags, MacroFlags, Op
from jinjavm.environment.exceptions import (
    ErrorKind,
    TemplateError,
    TemplateRuntimeError,
    closest_name,
)
from jinjavm.template.loop_context import EMPTY_SLOT, Loop, LoopState
from jinjavm.template.macro import Macro
from jinjavm.template.output import AutoEscape, Output
from jinjavm.template.state import (
    INCLUDE_RECURSION_COST,
    MACRO_RECURSION_COST,
    BlockStack,
    Context,
    Frame,
    State,
    UndefinedBehavior,
)
from jinjavm.value import ops
from jinjavm.value.callables import call_host, call_value
from jinjavm.value.core import (
    InvalidValue,
    Object,
    ObjectKind,
    Undefined,
    is_true,
    to_str,
    value_kind,
)
from jinjavm.value.indexmap import IndexMap, Kwargs

if TYPE_CHECKING:
    from jinjavm.compiler.instructions import Instructions
    from jinjavm.environment.core import Environment
    from jinjavm.template.output import CustomEscape

logger = logging.getLogger(__name__)


def prepare_blocks(blocks: Mapping[str, Instructions]) -> dict[str, BlockStack]:
    return {name: BlockStack(instructions) for name, instructions in blocks.items()}


def _check_invalid(value: Any) -> Any:
    if isinstance(value, InvalidValue):
        raise TemplateError.from_kind(ErrorKind.BAD_SERIALIZATION, value.detail)
    return value


def _pop_args(stack: list[Any], count: int) -> list[Any]:
    if count == 0:
        return []
    args = stack[-count:]
    del stack[-count:]
    return args


def _unpack(value: Any, count: int) -> list[Any]:
    if isinstance(value, (list, tuple)):
        items = list(value)
    elif isinstance(value, Object) and value.kind is ObjectKind.SEQ:
        items = [value.get_item(i) for i in range(value.item_count())]
    else:
        raise TemplateRuntimeError("not a sequence", kind=ErrorKind.CANNOT_UNPACK)
    if len(items) != count:
        raise TemplateRuntimeError(
            f"sequence of wrong length (expected {count}, got {len(items)})",
            kind=ErrorKind.CANNOT_UNPACK,
        )
    return items


def derive_auto_escape(
    value: Any, initial: AutoEscape | CustomEscape
) -> AutoEscape | CustomEscape:
    """Auto-escape mode selected by ``{% autoescape value %}``."""
    if isinstance(value, str):
        if value == "html":
            return AutoEscape.HTML
        if value == "json":
            return AutoEscape.JSON
        if value == "none":
            return AutoEscape.NONE
    elif value is True:
        return AutoEscape.HTML if initial is AutoEscape.NONE else initial
    raise TemplateRuntimeError("invalid value to autoescape tag")


def call_method(state: State, obj: Any, name: str, args: list[Any]) -> Any:
    """``obj.name(*args)``: object methods, or callable map members."""
    if isinstance(obj, Object):
        return obj.call_method(state, name, args)
    member = ops.get_attr(obj, name)
    if member is not Undefined and (isinstance(member, Object) or callable(member)):
        return call_value(state, member, args)
    raise TemplateRuntimeError(
        f"{value_kind(obj)} has no method named {name}", kind=ErrorKind.UNKNOWN_METHOD
    )


class VirtualMachine:
    """Executes ``Instructions`` for an environment.

    Example:
        >>> vm = VirtualMachine(env)
        >>> out = Output()
        >>> vm.eval(tmpl.instructions, {"name": "World"}, tmpl.blocks, out, AutoEscape.NONE)
        >>> out.getvalue()
        'Hello World!'
    """

    __slots__ = ("env",)

    def __init__(self, env: Environment):
        self.env = env

    # -- entry points --------------------------------------------------------

    def eval(
        self,
        instructions: Instructions,
        root: Any,
        blocks: Mapping[str, Instructions],
        out: Output,
        auto_escape: AutoEscape | CustomEscape,
    ) -> tuple[Any, State]:
        """Run a template (or expression) against ``root``.

        Returns:
            The value left on top of the stack (``None`` if empty) and the
            final ``State``.
        """
        ctx = Context(Frame(root), recursion_limit=self.env.recursion_limit)
        state = State(self.env, ctx, auto_escape, instructions, prepare_blocks(blocks))
        try:
            rv = self._eval_impl(state, out, [], 0)
        except RecursionError:
            raise TemplateRuntimeError("recursion limit exceeded") from None
        return rv, state

    def eval_macro(
        self, macro: Macro, state: State, args: list[Any], caller: Any, out: Output
    ) -> Any:
        """Run a macro body with ``args`` already bound in parameter order."""
        ctx = Context(Frame(macro.closure), recursion_limit=state.ctx.recursion_limit)
        if caller is not None:
            ctx.store("caller", caller)
        ctx.incr_depth(state.ctx.depth() + MACRO_RECURSION_COST)
        macro_state = State(self.env, ctx, state.auto_escape, macro.instructions, {})
        return self._eval_impl(macro_state, out, list(args), macro.offset)

    def _eval_state(self, state: State, out: Output) -> Any:
        return self._eval_impl(state, out, [], 0)

    # -- main loop -----------------------------------------------------------

    def _eval_impl(self, state: State, out: Output, stack: list[Any], pc: int) -> Any:
        env = self.env
        ctx = state.ctx
        undefined_behavior = env.undefined_behavior
        initial_auto_escape = state.auto_escape
        instructions = state.instructions
        code = instructions.instructions
        auto_escape_stack: list[Any] = []
        next_recursion_jump: tuple[int, bool] | None = None
        parent_instructions: Instructions | None = None
        filters: dict[int, Any] = {}
        tests: dict[int, Any] = {}

        try:
            while True:
                if pc >= len(code):
                    if parent_instructions is None:
                        break
                    instructions = state.instructions = parent_instructions
                    code = instructions.instructions
                    parent_instructions = None
                    filters.clear()
                    tests.clear()
                    out.end_capture(AutoEscape.NONE)
                    pc = 0
                    continue

                op, arg = code[pc]

                if op is Op.EMIT_RAW:
                    out.write(arg)
                elif op is Op.EMIT:
                    env.format(out, state, stack.pop())
                elif op is Op.LOOKUP:
                    stack.append(_check_invalid(ctx.load(env, arg)))
                elif op is Op.STORE_LOCAL:
                    ctx.store(arg, stack.pop())
                elif op is Op.LOAD_CONST:
                    stack.append(arg)
                elif op is Op.GET_ATTR:
                    obj = _check_invalid(stack.pop())
                    value = ops.get_attr(obj, arg)
                    if value is Undefined:
                        value = undefined_behavior.handle_undefined(obj is Undefined)
                    stack.append(_check_invalid(value))
                elif op is Op.GET_ITEM:
                    key = stack.pop()
                    obj = _check_invalid(stack.pop())
                    value = ops.get_item(obj, key)
                    if value is Undefined:
                        value = undefined_behavior.handle_undefined(obj is Undefined)
                    stack.append(_check_invalid(value))
                elif op is Op.SLICE:
                    step = stack.pop()
                    stop = stack.pop()
                    start = stack.pop()
                    obj = stack.pop()
                    if obj is Undefined and undefined_behavior is UndefinedBehavior.STRICT:
                        undefined_behavior.handle_undefined(True)
                    stack.append(ops.slice_value(obj, start, stop, step))
                elif op is Op.JUMP:
                    pc = arg
                    continue
                elif op is Op.JUMP_IF_FALSE:
                    if not is_true(stack.pop()):
                        pc = arg
                        continue
                elif op is Op.JUMP_IF_FALSE_OR_POP:
                    if not is_true(stack[-1]):
                        pc = arg
                        continue
                    stack.pop()
                elif op is Op.JUMP_IF_TRUE_OR_POP:
                    if is_true(stack[-1]):
                        pc = arg
                        continue
                    stack.pop()
                elif op is Op.ITERATE:
                    loop_state = ctx.current_loop()
                    item = loop_state.loop.advance(loop_state.iterator)
                    if item is EMPTY_SLOT:
                        pc = arg
                        continue
                    stack.append(_check_invalid(item))
                elif op is Op.PUSH_LOOP:
                    self._push_loop(state, stack.pop(), arg, pc, next_recursion_jump)
                    next_recursion_jump = None
                elif op is Op.PUSH_DID_NOT_ITERATE:
                    stack.append(ctx.current_loop().loop.idx == 0)
                elif op is Op.PUSH_WITH:
                    ctx.push_frame(Frame())
                elif op is Op.POP_FRAME:
                    frame = ctx.pop_frame()
                    loop_state = frame.current_loop
                    if loop_state is not None and loop_state.current_recursion_jump is not None:
                        pc, end_capture = loop_state.current_recursion_jump
                        if end_capture:
                            stack.append(out.end_capture(state.auto_escape))
                        continue
                elif op in _BINARY_OPS:
                    rhs = stack.pop()
                    stack.append(_BINARY_OPS[op](stack.pop(), rhs))
                elif op is Op.NOT:
                    stack.append(not is_true(stack.pop()))
                elif op is Op.NEG:
                    stack.append(ops.neg(stack.pop()))
                elif op is Op.IN:
                    container = stack.pop()
                    stack.append(ops.contains(container, stack.pop()))
                elif op is Op.APPLY_FILTER:
                    name, argc, local_id = arg
                    func = filters.get(local_id)
                    if func is None:
                        func = self._resolve_filter(name)
                        if local_id != LOCAL_ID_NONE:
                            filters[local_id] = func
                    stack.append(call_host(func, state, _pop_args(stack, argc)))
                elif op is Op.PERFORM_TEST:
                    name, argc, local_id = arg
                    func = tests.get(local_id)
                    if func is None:
                        func = self._resolve_test(name)
                        if local_id != LOCAL_ID_NONE:
                            tests[local_id] = func
                    stack.append(is_true(call_host(func, state, _pop_args(stack, argc))))
                elif op is Op.BUILD_LIST:
                    stack.append(_pop_args(stack, arg))
                elif op is Op.BUILD_MAP:
                    items = _pop_args(stack, arg * 2)
                    stack.append(IndexMap(list(zip(items[::2], items[1::2]))))
                elif op is Op.BUILD_KWARGS:
                    items = _pop_args(stack, arg * 2)
                    stack.append(Kwargs(list(zip(items[::2], items[1::2]))))
                elif op is Op.UNPACK_LIST:
                    stack.extend(reversed(_unpack(stack.pop(), arg)))
                elif op is Op.LIST_APPEND:
                    value = stack.pop()
                    target = stack[-1]
                    if not isinstance(target, list):
                        raise TemplateRuntimeError("cannot append to non-list")
                    target.append(value)
                elif op is Op.DUP_TOP:
                    stack.append(stack[-1])
                elif op is Op.DISCARD_TOP:
                    stack.pop()
                elif op is Op.BEGIN_CAPTURE:
                    out.begin_capture(arg)
                elif op is Op.END_CAPTURE:
                    stack.append(out.end_capture(state.auto_escape))
                elif op is Op.PUSH_AUTO_ESCAPE:
                    value = stack.pop()
                    auto_escape_stack.append(state.auto_escape)
                    state.auto_escape = derive_auto_escape(value, initial_auto_escape)
                elif op is Op.POP_AUTO_ESCAPE:
                    state.auto_escape = auto_escape_stack.pop()
                elif op is Op.CALL_FUNCTION:
                    name, argc = arg
                    args = _pop_args(stack, argc)
                    if name == "super":
                        if args:
                            raise TemplateRuntimeError("super() takes no arguments")
                        stack.append(self._perform_super(state, out, capture=True))
                    elif name == "loop":
                        if len(args) != 1:
                            raise TemplateRuntimeError(
                                f"loop() takes one argument, got {len(args)}"
                            )
                        stack.append(args[0])
                        next_recursion_jump = (pc + 1, True)
                        out.begin_capture(CaptureMode.CAPTURE)
                        pc = self._loop_recursion_target(state)
                        continue
                    else:
                        func = ctx.load(env, name)
                        if func is Undefined:
                            raise TemplateRuntimeError(
                                f"{name} is unknown", kind=ErrorKind.UNKNOWN_FUNCTION
                            )
                        stack.append(call_value(state, func, args))
                elif op is Op.CALL_METHOD:
                    name, argc = arg
                    args = _pop_args(stack, argc)
                    stack.append(call_method(state, args[0], name, args[1:]))
                elif op is Op.CALL_OBJECT:
                    args = _pop_args(stack, arg)
                    stack.append(call_value(state, args[0], args[1:]))
                elif op is Op.FAST_SUPER:
                    self._perform_super(state, out, capture=False)
                elif op is Op.FAST_RECURSE:
                    next_recursion_jump = (pc + 1, False)
                    pc = self._loop_recursion_target(state)
                    continue
                elif op is Op.CALL_BLOCK:
                    if parent_instructions is None and not out.is_discarding():
                        self.call_block(arg, state, out)
                elif op is Op.LOAD_BLOCKS:
                    name = stack.pop()
                    if parent_instructions is not None:
                        raise TemplateRuntimeError("tried to extend a second time in a template")
                    parent_instructions = self._load_blocks(name, state)
                    out.begin_capture(CaptureMode.DISCARD)
                elif op is Op.INCLUDE:
                    self._perform_include(stack.pop(), state, out, ignore_missing=arg)
                elif op is Op.EXPORT_LOCALS:
                    stack.append(IndexMap(list(ctx.current_locals().items())))
                elif op is Op.BUILD_MACRO:
                    name, offset, flags = arg
                    arg_spec = stack.pop()
                    closure = stack.pop()
                    stack.append(
                        Macro(
                            name,
                            list(arg_spec),
                            instructions,
                            offset,
                            closure,
                            bool(flags & MacroFlags.CALLER),
                        )
                    )
                elif op is Op.RETURN:
                    break
                elif op is Op.IS_UNDEFINED:
                    stack.append(stack.pop() is Undefined)
                elif op is Op.ENCLOSE:
                    ctx.enclose(env, arg)
                elif op is Op.GET_CLOSURE:
                    stack.append(ctx.take_closure())
                else:
                    raise NotImplementedError(f"unhandled instruction {op.name}")

                pc += 1
        except TemplateError as err:
            self._attach_location(err, instructions, pc)
            raise

        return stack[-1] if stack else None

    @staticmethod
    def _attach_location(err: TemplateError, instructions: Instructions, pc: int) -> None:
        if err.has_location:
            return
        span = instructions.get_span(pc)
        if span is not None:
            err.attach_location(instructions.name, span.start_line, span, instructions.source)
            return
        lineno = instructions.get_line(pc)
        if lineno is not None:
            err.attach_location(instructions.name, lineno, None, instructions.source)

    # -- callables -----------------------------------------------------------

    def _resolve_filter(self, name: str) -> Any:
        func = self.env.get_filter(name)
        if func is None:
            raise TemplateRuntimeError(
                f"filter {name} is unknown",
                kind=ErrorKind.UNKNOWN_FILTER,
                suggestion=closest_name(name, self.env.filters),
            )
        return func

    def _resolve_test(self, name: str) -> Any:
        func = self.env.get_test(name)
        if func is None:
            raise TemplateRuntimeError(
                f"test {name} is unknown",
                kind=ErrorKind.UNKNOWN_TEST,
                suggestion=closest_name(name, self.env.tests),
            )
        return func

    # -- loops ---------------------------------------------------------------

    def _push_loop(
        self,
        state: State,
        iterable: Any,
        flags: LoopFlags,
        pc: int,
        current_recursion_jump: tuple[int, bool] | None,
    ) -> None:
        iterator, length = state.undefined_behavior.try_iter(iterable)
        parent = state.ctx.current_loop()
        depth = 0
        if parent is not None and parent.recurse_jump_target is not None:
            depth = parent.loop.depth + 1
        loop_state = LoopState(
            iterator=iterator,
            loop=Loop(length, depth),
            with_loop_var=bool(flags & LoopFlags.WITH_LOOP_VAR),
            recurse_jump_target=pc if flags & LoopFlags.RECURSIVE else None,
            current_recursion_jump=current_recursion_jump,
        )
        state.ctx.push_frame(Frame(current_loop=loop_state))

    @staticmethod
    def _loop_recursion_target(state: State) -> int:
        loop_state = state.ctx.current_loop()
        if loop_state is None:
            raise TemplateRuntimeError("cannot recurse outside of loop")
        if loop_state.recurse_jump_target is None:
            raise TemplateRuntimeError("cannot recurse outside of recursive loop")
        return loop_state.recurse_jump_target

    # -- blocks and inheritance ----------------------------------------------

    def call_block(self, name: str, state: State, out: Output) -> None:
        block_stack = state.blocks.get(name)
        if block_stack is None:
            raise TemplateRuntimeError(f"block '{name}' not found", kind=ErrorKind.UNKNOWN_BLOCK)
        old_block = state.current_block
        old_instructions = state.instructions
        state.current_block = name
        state.instructions = block_stack.instructions()
        state.ctx.push_frame(Frame())
        try:
            self._eval_state(state, out)
        finally:
            state.ctx.pop_frame()
            state.instructions = old_instructions
            state.current_block = old_block

    def _perform_super(self, state: State, out: Output, capture: bool) -> Any:
        name = state.current_block
        if name is None:
            raise TemplateRuntimeError("cannot super outside of block")
        block_stack = state.blocks[name]
        if not block_stack.push():
            raise TemplateRuntimeError("no parent block exists")

        if capture:
            out.begin_capture(CaptureMode.CAPTURE)
        old_instructions = state.instructions
        state.instructions = block_stack.instructions()
        state.ctx.push_frame(Frame())
        try:
            self._eval_state(state, out)
        except TemplateError as err:
            raise TemplateRuntimeError(
                "error in super block", kind=ErrorKind.EVAL_BLOCK
            ) from err
        finally:
            state.ctx.pop_frame()
            state.instructions = old_instructions
            block_stack.pop()

        if capture:
            return out.end_capture(state.auto_escape)
        return Undefined

    def _load_blocks(self, name: Any, state: State) -> Instructions:
        if not isinstance(name, str):
            raise TemplateRuntimeError("template name was not a string")
        if name in state.loaded_templates:
            raise TemplateRuntimeError(
                f'cycle in template inheritance. "{name}" was referenced more than once'
            )
        tmpl = self.env.get_template(name)
        state.loaded_templates.add(tmpl.name)
        for block_name, block in tmpl.blocks.items():
            block_stack = state.blocks.get(block_name)
            if block_stack is None:
                state.blocks[block_name] = BlockStack(block)
            else:
                block_stack.append_instructions(block)
        logger.debug("template %r extends %r", state.name, tmpl.name)
        return tmpl.instructions

    # -- includes ------------------------------------------------------------

    def _perform_include(
        self, name: Any, state: State, out: Output, ignore_missing: bool
    ) -> None:
        choices = list(name) if isinstance(name, (list, tuple)) else [name]
        tried: list[str] = []
        for choice in choices:
            if not isinstance(choice, str):
                raise TemplateRuntimeError("template name was not a string")
            try:
                tmpl = self.env.get_template(choice)
            except TemplateError as err:
                if err.kind is not ErrorKind.TEMPLATE_NOT_FOUND:
                    raise
                tried.append(choice)
                continue
            self._render_include(tmpl, state, out)
            return

        if not tried:
            return
        if ignore_missing:
            logger.debug("ignoring missing include %s", to_str(tried))
            return
        if len(tried) == 1:
            detail = f'tried to include non-existing template "{tried[0]}"'
        else:
            detail = (
                "tried to include one of multiple templates, none of which existed "
                + to_str(tried)
            )
        raise TemplateError.from_kind(ErrorKind.TEMPLATE_NOT_FOUND, detail)

    def _render_include(self, tmpl: Any, state: State, out: Output) -> None:
        old_escape = state.auto_escape
        old_instructions = state.instructions
        old_blocks = state.blocks
        old_block = state.current_block
        old_loaded = set(state.loaded_templates)
        state.auto_escape = tmpl.initial_auto_escape
        state.instructions = tmpl.instructions
        state.blocks = prepare_blocks(tmpl.blocks)
        state.current_block = None
        state.ctx.incr_depth(INCLUDE_RECURSION_COST)
        try:
            self._eval_state(state, out)
        except TemplateError as err:
            if not self.env.wrap_include_errors:
                raise
            raise TemplateRuntimeError(
                f'error in "{tmpl.name}"', kind=ErrorKind.BAD_INCLUDE
            ) from err
        finally:
            state.ctx.decr_depth(INCLUDE_RECURSION_COST)
            state.auto_escape = old_escape
            state.instructions = old_instructions
            state.blocks = old_blocks
            state.current_block = old_block
            state.loaded_templates = old_loaded


def _gt(lhs: Any, rhs: Any) -> bool:
    return ops.compare(lhs, rhs) > 0


def _gte(lhs: Any, rhs: Any) -> bool:
    return ops.compare(lhs, rhs) >= 0


def _lt(lhs: Any, rhs: Any) -> bool:
    return ops.compare(lhs, rhs) < 0


def _lte(lhs: Any, rhs: Any) -> bool:
    return ops.compare(lhs, rhs) <= 0


def _ne(lhs: Any, rhs: Any) -> bool:
    return not ops.values_equal(lhs, rhs)


_BINARY_OPS = {
    Op.ADD: ops.add,
    Op.SUB: ops.sub,
    Op.MUL: ops.mul,
    Op.DIV: ops.div,
    Op.INT_DIV: ops.int_div,
    Op.REM: ops.rem,
    Op.POW: ops.pow_,
    Op.STRING_CONCAT: ops.string_concat,
    Op.EQ: ops.values_equal,
    Op.NE: _ne,
    Op.GT: _gt,
    Op.GTE: _gte,
    Op.LT: _lt,
    Op.LTE: _lte,
}
