"""Per-render state: frames, the context stack, block stacks.

Scoping:
    Each ``for``, ``with``, include and block call pushes a ``Frame``.
    ``Context.load`` searches frames innermost-out. Inside a frame the
    order is its locals, then ``loop`` (for loop frames), then the frame's
    context value (the render context for the root frame, the closure for a
    macro's root frame). Environment globals come last.

Recursion limit:
    ``Context.depth()`` is the number of frames plus an outer depth that
    includes and macro calls add to (10 and 5 units respectively). Going
    above ``MAX_RECURSION`` raises ``recursion limit exceeded``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from jinjavm.environment.exceptions import ErrorKind, TemplateRuntimeError, UndefinedError
from jinjavm.template.macro import Closure, Macro
from jinjavm.template.output import Output
from jinjavm.value.core import Undefined, try_iter
from jinjavm.value.indexmap import IndexMap, Kwargs
from jinjavm.value.ops import get_attr

if TYPE_CHECKING:
    from collections.abc import Iterator

    from jinjavm.compiler.instructions import Instructions
    from jinjavm.environment.core import Environment
    from jinjavm.template.loop_context import LoopState
    from jinjavm.template.output import AutoEscape, CustomEscape

MAX_RECURSION = 500
INCLUDE_RECURSION_COST = 10
MACRO_RECURSION_COST = 5


class UndefinedBehavior(Enum):
    """How undefined values behave.

    ==========  ==================  =====================  ===============
    mode        ``{{ undef }}``     ``undef.attr``         ``for x in undef``
    ==========  ==================  =====================  ===============
    LENIENT     empty               error                  empty
    CHAINABLE   empty               undefined              empty
    STRICT      error               error                  error
    ==========  ==================  =====================  ===============

    Attribute access on a defined value that lacks the attribute returns
    undefined in every mode.
    """

    LENIENT = "lenient"
    CHAINABLE = "chainable"
    STRICT = "strict"

    def handle_undefined(self, parent_was_undefined: bool) -> Any:
        """Result of a failed attribute or item lookup."""
        if parent_was_undefined and self is not UndefinedBehavior.CHAINABLE:
            raise UndefinedError(kind=ErrorKind.UNDEFINED_ERROR)
        return Undefined

    def try_iter(self, value: Any) -> tuple[Iterator[Any], int | None]:
        if value is Undefined and self is UndefinedBehavior.STRICT:
            raise UndefinedError(kind=ErrorKind.UNDEFINED_ERROR)
        return try_iter(value)


@dataclass(slots=True)
class Frame:
    """One scope on the context stack.

    ``closures`` lists the closures of macros declared in this frame; stores
    into the frame are mirrored into them. ``pending_closure`` collects the
    ``ENCLOSE`` captures of the macro currently being declared.
    """

    ctx: Any = Undefined
    locals: dict[str, Any] = field(default_factory=dict)
    current_loop: LoopState | None = None
    closures: list[Closure] = field(default_factory=list)
    pending_closure: Closure | None = None


class Context:
    """Stack of frames with recursion accounting."""

    __slots__ = ("_outer_depth", "_stack", "recursion_limit")

    def __init__(self, root: Frame | None = None, recursion_limit: int = MAX_RECURSION):
        self._stack: list[Frame] = [root if root is not None else Frame()]
        self._outer_depth = 0
        self.recursion_limit = recursion_limit

    def load(self, env: Environment, key: str) -> Any:
        """Resolve ``key``; ``Undefined`` if no frame or global has it."""
        for frame in reversed(self._stack):
            if key in frame.locals:
                return frame.locals[key]
            loop = frame.current_loop
            if loop is not None and loop.with_loop_var and key == "loop":
                return loop.loop
            ctx = frame.ctx
            if ctx is not Undefined and ctx is not None:
                value = get_attr(ctx, key)
                if value is not Undefined:
                    return value
        return env.get_global(key)

    def store(self, key: str, value: Any) -> None:
        top = self._stack[-1]
        top.locals[key] = value
        for closure in top.closures:
            closure.store_if_missing(key, value)

    def enclose(self, env: Environment, key: str) -> None:
        """Capture the current value of ``key`` for the macro being declared."""
        top = self._stack[-1]
        if top.pending_closure is None:
            top.pending_closure = Closure()
        value = self.load(env, key)
        if value is not Undefined:
            top.pending_closure.store(key, value)

    def take_closure(self) -> Closure:
        """Finish the closure of the macro being declared and register it."""
        top = self._stack[-1]
        closure = top.pending_closure if top.pending_closure is not None else Closure()
        top.pending_closure = None
        top.closures.append(closure)
        return closure

    def push_frame(self, frame: Frame) -> None:
        self._stack.append(frame)
        self._check_depth()

    def pop_frame(self) -> Frame:
        return self._stack.pop()

    def current_locals(self) -> dict[str, Any]:
        return self._stack[-1].locals

    def current_loop(self) -> LoopState | None:
        for frame in reversed(self._stack):
            if frame.current_loop is not None:
                return frame.current_loop
        return None

    def depth(self) -> int:
        return len(self._stack) + self._outer_depth

    def incr_depth(self, delta: int) -> None:
        self._outer_depth += delta
        self._check_depth()

    def decr_depth(self, delta: int) -> None:
        self._outer_depth -= delta

    def _check_depth(self) -> None:
        if self.depth() > self.recursion_limit:
            raise TemplateRuntimeError("recursion limit exceeded")


class BlockStack:
    """Implementations of one block, most derived first.

    ``super()`` walks one layer towards the base template.
    """

    __slots__ = ("_depth", "_layers")

    def __init__(self, instructions: Instructions):
        self._layers = [instructions]
        self._depth = 0

    def instructions(self) -> Instructions:
        return self._layers[self._depth]

    def push(self) -> bool:
        if self._depth + 1 < len(self._layers):
            self._depth += 1
            return True
        return False

    def pop(self) -> None:
        if self._depth > 0:
            self._depth -= 1

    def append_instructions(self, instructions: Instructions) -> None:
        self._layers.append(instructions)


class State:
    """State of one template evaluation.

    Passed to filters, tests and functions marked with ``@pass_state`` and
    to ``Object.call``.

    Attributes:
        env: The environment.
        ctx: The context stack.
        current_block: Name of the block being rendered, if any.
        auto_escape: Active auto-escape mode.
        instructions: Instructions being executed.
        blocks: Block name to ``BlockStack``.
        loaded_templates: Names seen while following ``extends``.
    """

    __slots__ = (
        "auto_escape",
        "blocks",
        "ctx",
        "current_block",
        "env",
        "instructions",
        "loaded_templates",
    )

    def __init__(
        self,
        env: Environment,
        ctx: Context,
        auto_escape: AutoEscape | CustomEscape,
        instructions: Instructions,
        blocks: dict[str, BlockStack],
    ):
        self.env = env
        self.ctx = ctx
        self.current_block: str | None = None
        self.auto_escape = auto_escape
        self.instructions = instructions
        self.blocks = blocks
        self.loaded_templates: set[str] = set()

    @property
    def name(self) -> str:
        """Name of the template being rendered."""
        return self.instructions.name

    @property
    def undefined_behavior(self) -> UndefinedBehavior:
        return self.env.undefined_behavior

    def lookup(self, name: str) -> Any:
        """Look up a variable the way the template would."""
        return self.ctx.load(self.env, name)

    def exports(self) -> IndexMap:
        """Top-level names assigned by the template, in assignment order."""
        return IndexMap(list(self.ctx.current_locals().items()))

    def call_macro(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Call a macro the template defined.

        Example:
            >>> state = env.template_from_str(
            ...     "{% macro hi(n) %}Hi {{ n }}{% endmacro %}").eval_to_state()
            >>> state.call_macro("hi", "there")
            'Hi there'
        """
        macro = self.lookup(name)
        if not isinstance(macro, Macro):
            raise TemplateRuntimeError(f"cannot find macro {name}")
        call_args = list(args)
        if kwargs:
            call_args.append(Kwargs(kwargs))
        return macro.call(self, call_args)

    def render_block(self, name: str) -> str:
        """Render block ``name`` against this state.

        After ``eval_to_state`` the block stacks reflect the whole
        inheritance chain, so this renders the most derived implementation.
        """
        from jinjavm.template.vm import VirtualMachine

        out = Output()
        VirtualMachine(self.env).call_block(name, self, out)
        return out.getvalue()

    def __repr__(self) -> str:
        return f"<State {self.name!r} block={self.current_block!r}>"
