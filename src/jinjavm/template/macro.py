"""Macro values and the closures they capture.

A ``{% macro %}`` declaration evaluates to a ``Macro`` object. Its body is
compiled inline in the declaring template (jumped over at declaration time)
and runs in a fresh virtual machine invocation whose root context is the
macro's ``Closure``.

Closure semantics:
    The names a macro body reads from its surroundings are captured when the
    macro is declared. Names assigned in the declaring frame *after* the
    declaration are mirrored into the closure unless it already holds them,
    so macros can call themselves and macros declared later.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from jinjavm.environment.exceptions import ErrorKind, TemplateRuntimeError
from jinjavm.template.output import AutoEscape, Output
from jinjavm.utils.html import Markup
from jinjavm.value.core import Object, ObjectKind, Undefined
from jinjavm.value.indexmap import Kwargs

if TYPE_CHECKING:
    from jinjavm.compiler.instructions import Instructions
    from jinjavm.template.state import State


class Closure(Object):
    """Name to value map captured by a macro."""

    __slots__ = ("values",)

    kind = ObjectKind.STRUCT

    def __init__(self, values: dict[str, Any] | None = None):
        self.values: dict[str, Any] = dict(values) if values else {}

    def store(self, key: str, value: Any) -> None:
        self.values[key] = value

    def store_if_missing(self, key: str, value: Any) -> None:
        self.values.setdefault(key, value)

    def get_field(self, name: str) -> Any:
        return self.values.get(name, Undefined)

    def fields(self) -> tuple[str, ...]:
        return tuple(self.values)

    def __repr__(self) -> str:
        return f"<Closure {sorted(self.values)}>"


class Macro(Object):
    """A callable template macro.

    Attributes:
        name: Declared macro name (``caller`` for call blocks).
        arg_spec: Parameter names in declaration order.
        instructions: Instructions holding the macro body.
        offset: Index of the first instruction of the body.
        closure: Captured ``Closure``.
        caller_reference: Whether the body refers to ``caller``.

    Exposed fields: ``name``, ``arguments``, ``caller``.
    """

    __slots__ = ("arg_spec", "caller_reference", "closure", "instructions", "name", "offset")

    kind = ObjectKind.STRUCT

    def __init__(
        self,
        name: str,
        arg_spec: list[str],
        instructions: Instructions,
        offset: int,
        closure: Any,
        caller_reference: bool,
    ):
        self.name = name
        self.arg_spec = arg_spec
        self.instructions = instructions
        self.offset = offset
        self.closure = closure
        self.caller_reference = caller_reference

    def static_fields(self) -> tuple[str, ...]:
        return ("name", "arguments", "caller")

    def get_field(self, name: str) -> Any:
        if name == "name":
            return self.name
        if name == "arguments":
            return list(self.arg_spec)
        if name == "caller":
            return self.caller_reference
        return Undefined

    def _bind(self, args: list[Any]) -> tuple[list[Any], Any]:
        """Match call arguments to the parameter list.

        Returns the argument values in parameter order (``Undefined`` for
        missing ones) and the ``caller`` value, or ``None`` if the body does
        not use one.
        """
        kwargs: Kwargs | None = None
        if args and isinstance(args[-1], Kwargs):
            kwargs = args[-1]
            args = args[:-1]

        if len(args) > len(self.arg_spec):
            raise TemplateRuntimeError(None, kind=ErrorKind.TOO_MANY_ARGUMENTS)

        used: set[str] = set()
        values: list[Any] = []
        for idx, name in enumerate(self.arg_spec):
            has_kwarg = kwargs is not None and name in kwargs
            if idx < len(args):
                if has_kwarg:
                    raise TemplateRuntimeError(
                        f"duplicate argument `{name}`", kind=ErrorKind.TOO_MANY_ARGUMENTS
                    )
                values.append(args[idx])
            elif has_kwarg:
                used.add(name)
                values.append(kwargs[name])
            else:
                values.append(Undefined)

        caller = None
        if self.caller_reference:
            used.add("caller")
            caller = kwargs.get_arg("caller") if kwargs is not None else Undefined

        if kwargs is not None:
            for key in kwargs:
                if key not in used:
                    raise TemplateRuntimeError(
                        f"unknown keyword argument `{key}`", kind=ErrorKind.TOO_MANY_ARGUMENTS
                    )
        return values, caller

    def call(self, state: State, args: list[Any]) -> Any:
        from jinjavm.template.vm import VirtualMachine

        values, caller = self._bind(args)
        out = Output()
        VirtualMachine(state.env).eval_macro(self, state, values, caller, out)
        rv = out.getvalue()
        if state.auto_escape is AutoEscape.NONE:
            return rv
        return Markup(rv)

    def __str__(self) -> str:
        return f"<macro {self.name}>"
