"""The ``loop`` variable of ``{% for %}`` blocks.

``Loop`` is the object templates see; ``LoopState`` is the VM-side record
kept on the loop's frame (iterator, recursion bookkeeping).

The VM advances a three-slot window (previous, current, next item) on every
iteration so that ``previtem``, ``nextitem`` and ``last`` are available even
when the iterable's length is unknown.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jinjavm.environment.exceptions import ErrorKind, TemplateRuntimeError
from jinjavm.value.core import Object, ObjectKind, Undefined
from jinjavm.value.ops import values_equal

if TYPE_CHECKING:
    from jinjavm.template.state import State

# Marks an empty slot of the item window (distinct from Undefined items).
_EMPTY = object()


class Loop(Object):
    """Loop iteration context.

    Attributes available in templates:

    ==============  ==============================================
    index           1-based iteration count
    index0          0-based iteration count
    length          number of items (undefined if not known)
    revindex        iterations left, counting the current one
    revindex0       iterations left after the current one
    first           true on the first iteration
    last            true on the last iteration
    depth           1-based nesting level of recursive loops
    depth0          0-based nesting level of recursive loops
    previtem        item of the previous iteration (undefined first)
    nextitem        item of the next iteration (undefined last)
    ==============  ==============================================

    Methods: ``loop.cycle(a, b, ...)`` and ``loop.changed(value, ...)``.

    Example:
        >>> {% for item in items %}
        ...   {{ loop.index }}/{{ loop.length }}: {{ item }}
        ...   {% if loop.first %}(first){% endif %}
        ... {% endfor %}

    Before the first iteration every attribute is undefined.
    """

    __slots__ = ("_last_changed", "depth", "idx", "length", "window")

    kind = ObjectKind.STRUCT

    _FIELDS = (
        "index0",
        "index",
        "length",
        "revindex",
        "revindex0",
        "first",
        "last",
        "depth",
        "depth0",
        "previtem",
        "nextitem",
    )

    def __init__(self, length: int | None, depth: int):
        self.length = length
        self.depth = depth
        self.idx = -1
        self.window: list[Any] = [_EMPTY, _EMPTY, _EMPTY]
        self._last_changed: list[Any] | None = None

    def advance(self, iterator: Iterator[Any]) -> Any:
        """Shift the item window forward; return the new current item.

        Returns ``_EMPTY`` once the iterator is exhausted.
        """
        self.idx += 1
        window = self.window
        if window[2] is _EMPTY and self.idx == 0:
            window[2] = next(iterator, _EMPTY)
        window[0] = window[1]
        window[1] = window[2]
        window[2] = next(iterator, _EMPTY) if window[1] is not _EMPTY else _EMPTY
        return window[1]

    def _is_last(self) -> bool:
        if self.length is not None:
            return self.idx == self.length - 1 or self.length == 0
        return self.window[2] is _EMPTY

    def static_fields(self) -> tuple[str, ...]:
        return self._FIELDS

    def get_field(self, name: str) -> Any:
        idx = self.idx
        if idx < 0:
            return Undefined
        length = self.length
        if name == "index0":
            return idx
        if name == "index":
            return idx + 1
        if name == "length":
            return length if length is not None else Undefined
        if name == "revindex":
            return max(length - idx, 0) if length is not None else Undefined
        if name == "revindex0":
            return max(length - idx - 1, 0) if length is not None else Undefined
        if name == "first":
            return idx == 0
        if name == "last":
            return self._is_last()
        if name == "depth":
            return self.depth + 1
        if name == "depth0":
            return self.depth
        if name == "previtem":
            return _slot(self.window[0])
        if name == "nextitem":
            return _slot(self.window[2])
        return Undefined

    def call_method(self, state: State, name: str, args: list[Any]) -> Any:
        if name == "changed":
            if self._last_changed is not None and len(self._last_changed) == len(args):
                if all(values_equal(a, b) for a, b in zip(self._last_changed, args)):
                    return False
            self._last_changed = list(args)
            return True
        if name == "cycle":
            if not args:
                return Undefined
            return args[max(self.idx, 0) % len(args)]
        raise TemplateRuntimeError(
            f"loop object has no method named {name}", kind=ErrorKind.UNKNOWN_METHOD
        )

    def call(self, state: State, args: list[Any]) -> Any:
        # loop(...) is resolved by the VM; reaching this means the loop
        # object escaped its frame.
        raise TemplateRuntimeError("loop cannot be called if reassigned to different variable")

    def __str__(self) -> str:
        length = "?" if self.length is None else self.length
        return f"<loop {self.idx}/{length}>"


def _slot(value: Any) -> Any:
    return Undefined if value is _EMPTY else value


@dataclass(slots=True)
class LoopState:
    """VM bookkeeping for one running loop.

    Attributes:
        iterator: The item source.
        loop: The ``Loop`` object exposed as ``loop``.
        with_loop_var: Whether ``loop`` is visible to the body.
        recurse_jump_target: Instruction index of the loop's ``ITERATE``
            predecessor, set for ``recursive`` loops.
        current_recursion_jump: ``(pc, end_capture)`` to resume when this
            (recursive) loop finishes.
    """

    iterator: Iterator[Any]
    loop: Loop
    with_loop_var: bool
    recurse_jump_target: int | None = None
    current_recursion_jump: tuple[int, bool] | None = None


EMPTY_SLOT = _EMPTY
