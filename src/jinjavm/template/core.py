"""jinjavm Template: compiled instructions ready for rendering.

Architecture:
    ```
    Template
    ├── _env_ref: WeakRef[Environment]   # Prevents circular refs
    ├── instructions: Instructions        # Main program
    ├── blocks: dict[str, Instructions]   # One program per {% block %}
    ├── initial_auto_escape               # From the environment's callback
    └── _name, _source                    # For error messages
    ```

Memory Safety:
Uses ``weakref.ref(env)`` to break the cycle
``Template → (weak) → Environment → templates → Template``.

Thread-Safety:
- Templates are immutable after construction
- ``render()`` creates only local state (``State``, ``Output``)
- Multiple threads can call ``render()`` concurrently
"""

from __future__ import annotations

import weakref
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from jinjavm.template.output import AutoEscape, Output
from jinjavm.template.vm import VirtualMachine

if TYPE_CHECKING:
    from jinjavm.compiler.instructions import Instructions
    from jinjavm.environment.core import Environment
    from jinjavm.template.output import CustomEscape
    from jinjavm.template.state import State


def _build_context(args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
    ctx: dict[str, Any] = {}
    if args:
        if len(args) == 1 and (isinstance(args[0], Mapping) or args[0] is None):
            ctx.update(args[0] or {})
        else:
            raise TypeError(
                f"render() takes at most 1 positional argument (a mapping), got {len(args)}"
            )
    ctx.update(kwargs)
    return ctx


class Template:
    """Compiled template ready for rendering.

    Created by ``Environment.get_template()`` / ``template_from_str()``;
    not meant to be constructed directly.

    Example:
        >>> env = Environment()
        >>> env.add_template("hello.txt", "Hello {{ name }}!")
        >>> env.get_template("hello.txt").render(name="World")
        'Hello World!'
    """

    __slots__ = (
        "_env_ref",
        "_name",
        "_source",
        "blocks",
        "initial_auto_escape",
        "instructions",
    )

    def __init__(
        self,
        env: Environment,
        name: str,
        source: str,
        instructions: Instructions,
        blocks: dict[str, Instructions],
        initial_auto_escape: AutoEscape | CustomEscape = AutoEscape.NONE,
    ):
        self._env_ref = weakref.ref(env)
        self._name = name
        self._source = source
        self.instructions = instructions
        self.blocks = blocks
        self.initial_auto_escape = initial_auto_escape

    @property
    def _env(self) -> Environment:
        """Get the Environment (dereferences weak reference)."""
        env = self._env_ref()
        if env is None:
            raise RuntimeError(f"Environment has been garbage collected (template: {self._name})")
        return env

    @property
    def name(self) -> str:
        return self._name

    @property
    def source(self) -> str:
        return self._source

    def render(self, *args: Any, **kwargs: Any) -> str:
        """Render the template with the given context.

        Args:
            *args: Optional single mapping of context variables
            **kwargs: Context variables as keyword arguments

        Example:
            >>> t.render(name="World")
            'Hello World!'
            >>> t.render({"name": "World"})
            'Hello World!'
        """
        out = Output()
        self._eval(_build_context(args, kwargs), out)
        return out.getvalue()

    def eval_to_state(self, *args: Any, **kwargs: Any) -> State:
        """Evaluate the template and return its final ``State``.

        Output is discarded. The state gives access to the template's
        top-level variables and macros.

        Example:
            >>> tmpl = env.template_from_str("{% set title = 'Home' %}")
            >>> tmpl.eval_to_state().lookup("title")
            'Home'
        """
        _, state = self._eval(_build_context(args, kwargs), Output())
        return state

    def render_block(self, block_name: str, *args: Any, **kwargs: Any) -> str:
        """Render a single block, resolving inheritance the way ``render`` does."""
        state = self.eval_to_state(*args, **kwargs)
        return state.render_block(block_name)

    def list_blocks(self) -> list[str]:
        """Names of the blocks defined in this template."""
        return list(self.blocks)

    def _eval(self, ctx: dict[str, Any], out: Output) -> tuple[Any, State]:
        vm = VirtualMachine(self._env)
        return vm.eval(self.instructions, ctx, self.blocks, out, self.initial_auto_escape)

    def __repr__(self) -> str:
        return f"<Template {self._name!r}>"


class Expression:
    """A compiled standalone expression.

    Example:
        >>> expr = env.compile_expression("number > 10 and number < 20")
        >>> expr.eval(number=15)
        True
    """

    __slots__ = ("_env_ref", "_source", "instructions")

    def __init__(self, env: Environment, source: str, instructions: Instructions):
        self._env_ref = weakref.ref(env)
        self._source = source
        self.instructions = instructions

    @property
    def source(self) -> str:
        return self._source

    def eval(self, *args: Any, **kwargs: Any) -> Any:
        """Evaluate the expression against the given context."""
        env = self._env_ref()
        if env is None:
            raise RuntimeError("Environment has been garbage collected (expression)")
        rv, _ = VirtualMachine(env).eval(
            self.instructions, _build_context(args, kwargs), {}, Output(), AutoEscape.NONE
        )
        return rv

    def __repr__(self) -> str:
        return f"<Expression {self._source!r}>"
