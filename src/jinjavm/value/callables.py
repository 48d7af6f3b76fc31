"""Adapters between template calls and Python callables.

Filters, tests and global functions are ordinary Python callables. The VM
calls them with a flat argument list whose last element may be a ``Kwargs``
map; ``call_host`` splits that map off, turns it into Python keyword
arguments, and translates binding failures into template errors:

    ======================  ==========================
    Python failure          Template error kind
    ======================  ==========================
    missing parameter       ``MISSING_ARGUMENT``
    extra positional        ``TOO_MANY_ARGUMENTS``
    unknown keyword         ``TOO_MANY_ARGUMENTS``
    ======================  ==========================

Callables that need the render state (the ``select`` family resolves tests
through it, ``map`` resolves filters) are marked with ``@pass_state`` and
receive it as their first argument.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from jinjavm.environment.exceptions import ErrorKind, TemplateRuntimeError
from jinjavm.value.core import Object, value_kind
from jinjavm.value.indexmap import Kwargs

if TYPE_CHECKING:
    from jinjavm.template.state import State

_PASS_STATE_ATTR = "_jinjavm_pass_state"


def pass_state(func: Callable[..., Any]) -> Callable[..., Any]:
    """Mark ``func`` as wanting the render ``State`` as its first argument.

    Example:
        >>> @pass_state
        ... def current_name(state, value):
        ...     return state.name
    """
    setattr(func, _PASS_STATE_ATTR, True)
    return func


def wants_state(func: Callable[..., Any]) -> bool:
    return getattr(func, _PASS_STATE_ATTR, False)


def split_kwargs(args: list[Any]) -> tuple[list[Any], dict[str, Any]]:
    """Separate a trailing ``Kwargs`` map from positional arguments."""
    if args and isinstance(args[-1], Kwargs):
        kwargs = args[-1]
        return list(args[:-1]), {str(k): v for k, v in kwargs.items()}
    return list(args), {}


def _binding_error(func: Callable[..., Any], args: list[Any], kwargs: dict[str, Any]) -> None:
    """Raise a template error if ``func`` cannot be called with the arguments."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return
    try:
        sig.bind(*args, **kwargs)
    except TypeError as exc:
        msg = str(exc)
        if msg.startswith("missing"):
            raise TemplateRuntimeError(None, kind=ErrorKind.MISSING_ARGUMENT) from None
        if msg.startswith("got an unexpected keyword argument"):
            name = msg.rsplit(" ", 1)[-1].strip("'")
            raise TemplateRuntimeError(
                f"unknown keyword argument `{name}`", kind=ErrorKind.TOO_MANY_ARGUMENTS
            ) from None
        if "multiple values for argument" in msg:
            name = msg.rsplit(" ", 1)[-1].strip("'")
            raise TemplateRuntimeError(
                f"duplicate argument `{name}`", kind=ErrorKind.TOO_MANY_ARGUMENTS
            ) from None
        raise TemplateRuntimeError(None, kind=ErrorKind.TOO_MANY_ARGUMENTS) from None


def call_host(func: Callable[..., Any], state: State | None, args: list[Any]) -> Any:
    """Invoke a Python callable with template arguments.

    Raises:
        TemplateRuntimeError: On argument binding failures, or whatever the
            callable itself raises.
    """
    positional, kwargs = split_kwargs(args)
    if wants_state(func):
        positional.insert(0, state)
    _binding_error(func, positional, kwargs)
    return func(*positional, **kwargs)


class BoxedFunction(Object):
    """A Python callable exposed to templates as a callable value.

    Globals registered on the environment are wrapped in this so that
    ``{{ fn(1, x=2) }}`` goes through ``call_host``.
    """

    __slots__ = ("func", "name")

    def __init__(self, func: Callable[..., Any], name: str | None = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "function")

    def call(self, state: State, args: list[Any]) -> Any:
        return call_host(self.func, state, args)

    def __str__(self) -> str:
        return f"<function {self.name}>"


def call_value(state: State, value: Any, args: list[Any]) -> Any:
    """Call a template value as a function (``CALL_OBJECT``)."""
    if isinstance(value, Object):
        return value.call(state, args)
    if callable(value) and not isinstance(value, type):
        return call_host(value, state, args)
    raise TemplateRuntimeError(f"value of type {value_kind(value)} is not callable")


__all__ = [
    "BoxedFunction",
    "call_host",
    "call_value",
    "pass_state",
    "split_kwargs",
    "wants_state",
]
