"""Core value model.

Template values are plain Python objects; this module defines the few
engine-specific ones and the projections the rest of the engine relies on.

Python Mapping:
    ================  ==========================================
    Undefined         the ``Undefined`` singleton
    None              ``None``
    Bool              ``bool``
    Integers          ``int`` (checked against the i128/u128 range)
    Float             ``float``
    String            ``str``, or ``Markup`` when safe
    Bytes             ``bytes``
    Seq               ``list`` / ``tuple``
    Map               ``IndexMap`` or any ``collections.abc.Mapping``
    Dynamic           ``Object`` subclasses
    Invalid           ``InvalidValue``
    ================  ==========================================

``value_kind`` projects a value to its ``ValueKind``; ``to_str`` renders the
display form used by ``{{ }}`` and ``value_repr`` the debug form used inside
sequences and maps.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from jinjavm.environment.exceptions import ErrorKind, TemplateRuntimeError
from jinjavm.utils.html import Markup

if TYPE_CHECKING:
    from jinjavm.template.state import State

I128_MIN = -(2**127)
U128_MAX = 2**128 - 1


class UndefinedType:
    """The type of the ``Undefined`` singleton.

    Undefined is falsy, renders as the empty string and iterates as an empty
    sequence. Whether those uses are allowed is decided by the environment's
    ``UndefinedBehavior``, not by the value itself.
    """

    __slots__ = ()
    _instance: UndefinedType | None = None

    def __new__(cls) -> UndefinedType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return ""

    def __repr__(self) -> str:
        return "Undefined"

    def __iter__(self) -> Iterator[Any]:
        return iter(())

    def __len__(self) -> int:
        return 0

    def __reduce__(self) -> str:
        return "Undefined"


Undefined = UndefinedType()


@dataclass(frozen=True, slots=True)
class InvalidValue:
    """Poison value carrying a deferred serialization error.

    The VM raises ``BAD_SERIALIZATION`` as soon as it fetches one.
    """

    detail: str

    def __str__(self) -> str:
        return f"<invalid value: {self.detail}>"


# ---------------------------------------------------------------------------
# Dynamic objects
# ---------------------------------------------------------------------------


class ObjectKind(Enum):
    PLAIN = "plain"
    SEQ = "seq"
    STRUCT = "struct"


class Object:
    """Base class for dynamic template objects.

    The ``kind`` selects which capability set the engine probes:

    - ``PLAIN``: opaque; only ``call`` and ``call_method`` apply.
    - ``SEQ``: indexable by integer with a known ``item_count``.
    - ``STRUCT``: named fields via ``get_field``, iterable over ``fields()``.

    Loops, macros, closures and boxed functions subclass it, and hosts can
    too::

        class Point(Object):
            kind = ObjectKind.STRUCT

            def __init__(self, x, y):
                self.x, self.y = x, y

            def get_field(self, name):
                return {"x": self.x, "y": self.y}.get(name, Undefined)

            def static_fields(self):
                return ("x", "y")
    """

    __slots__ = ()

    kind: ObjectKind = ObjectKind.PLAIN

    def call(self, state: State, args: list[Any]) -> Any:
        raise TemplateRuntimeError("tried to call non callable object")

    def call_method(self, state: State, name: str, args: list[Any]) -> Any:
        raise TemplateRuntimeError(
            f"object has no method named {name}", kind=ErrorKind.UNKNOWN_METHOD
        )

    def get_item(self, index: int) -> Any:
        """Item at a non-negative ``index``, or ``Undefined`` when out of range."""
        return Undefined

    def item_count(self) -> int:
        return 0

    def get_field(self, name: str) -> Any:
        """Field value, or ``Undefined`` when the field does not exist."""
        return Undefined

    def static_fields(self) -> tuple[str, ...] | None:
        return None

    def fields(self) -> tuple[str, ...]:
        return self.static_fields() or ()

    def __str__(self) -> str:
        if self.kind is ObjectKind.SEQ:
            return to_str([self.get_item(i) for i in range(self.item_count())])
        if self.kind is ObjectKind.STRUCT:
            return to_str({name: self.get_field(name) for name in self.fields()})
        return f"<{type(self).__name__}>"


class ValueKind(Enum):
    """User visible value categories, in comparison order."""

    UNDEFINED = "undefined"
    NONE = "none"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    BYTES = "bytes"
    SEQ = "sequence"
    MAP = "map"
    PLAIN = "plain"

    @property
    def order(self) -> int:
        return _KIND_ORDER[self]

    def __str__(self) -> str:
        return self.value


_KIND_ORDER = {kind: i for i, kind in enumerate(ValueKind)}


def value_kind(value: Any) -> ValueKind:
    """Return the ``ValueKind`` of a template value."""
    if value is Undefined:
        return ValueKind.UNDEFINED
    if value is None:
        return ValueKind.NONE
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (bytes, bytearray)):
        return ValueKind.BYTES
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQ
    if isinstance(value, (Mapping, InvalidValue)):
        return ValueKind.MAP
    if isinstance(value, Object):
        if value.kind is ObjectKind.SEQ:
            return ValueKind.SEQ
        if value.kind is ObjectKind.STRUCT:
            return ValueKind.MAP
    return ValueKind.PLAIN


def is_true(value: Any) -> bool:
    """Template truthiness."""
    if isinstance(value, Object):
        if value.kind is ObjectKind.SEQ:
            return value.item_count() != 0
        if value.kind is ObjectKind.STRUCT:
            return len(value.fields()) != 0
        return True
    if isinstance(value, InvalidValue):
        return True
    return bool(value)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_safe(value: Any) -> bool:
    return isinstance(value, Markup)


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


def format_float(f: float) -> str:
    """Render a float without exponent, always with a fractional part.

    Example:
        >>> format_float(1.0), format_float(1e20), format_float(float("nan"))
        ('1.0', '100000000000000000000.0', 'NaN')
    """
    if math.isnan(f):
        return "NaN"
    if math.isinf(f):
        return "inf" if f > 0 else "-inf"
    s = repr(f)
    if "e" in s or "E" in s:
        s = format(Decimal(s), "f")
    if "." not in s:
        s += ".0"
    return s


def to_str(value: Any) -> str:
    """Display form of a value, as written by ``{{ value }}``."""
    if value is Undefined:
        return ""
    if value is None:
        return "none"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(value_repr(item) for item in value) + "]"
    if isinstance(value, Mapping):
        return (
            "{"
            + ", ".join(f"{value_repr(k)}: {value_repr(v)}" for k, v in value.items())
            + "}"
        )
    return str(value)


def value_repr(value: Any) -> str:
    """Debug form of a value, used for items inside sequences and maps."""
    if value is Undefined:
        return "Undefined"
    if value is None:
        return "None"
    if isinstance(value, str):
        return json.dumps(str(value), ensure_ascii=False)
    return to_str(value)


# ---------------------------------------------------------------------------
# Iteration
# ---------------------------------------------------------------------------


def try_iter(value: Any) -> tuple[Iterator[Any], int | None]:
    """Iterate a value the way ``{% for %}`` does.

    Maps iterate their keys, strings their characters, and undefined or
    none iterate as empty. Returns the iterator and the exact length when
    it is known up front.

    Raises:
        TemplateRuntimeError: If the value is not iterable.
    """
    if value is Undefined or value is None:
        return iter(()), 0
    if isinstance(value, str):
        return iter(value), len(value)
    if isinstance(value, (list, tuple, Mapping)):
        return iter(value), len(value)
    if isinstance(value, (bytes, bytearray)):
        return iter(bytes(value)), len(value)
    if isinstance(value, Object):
        if value.kind is ObjectKind.SEQ:
            count = value.item_count()
            return (value.get_item(i) for i in range(count)), count
        if value.kind is ObjectKind.STRUCT:
            fields = value.fields()
            return iter(fields), len(fields)
        if isinstance(value, Iterable):
            return iter(value), None
    elif isinstance(value, Iterable) and not isinstance(value, InvalidValue):
        try:
            length = len(value)  # type: ignore[arg-type]
        except TypeError:
            length = None
        return iter(value), length
    raise TemplateRuntimeError(f"{value_kind(value)} is not iterable")


def to_list(value: Any) -> list[Any]:
    it, _ = try_iter(value)
    return list(it)


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def to_json_compatible(value: Any) -> Any:
    """Convert a template value into something ``json.dumps`` accepts."""
    if value is Undefined or value is None:
        return None
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return list(bytes(value))
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(item) for item in value]
    if isinstance(value, Mapping):
        return {to_str(k): to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, InvalidValue):
        raise TemplateRuntimeError.from_kind(ErrorKind.BAD_SERIALIZATION, value.detail)
    if isinstance(value, Object):
        if value.kind is ObjectKind.SEQ:
            return [to_json_compatible(value.get_item(i)) for i in range(value.item_count())]
        if value.kind is ObjectKind.STRUCT:
            return {
                name: to_json_compatible(value.get_field(name)) for name in value.fields()
            }
    return to_str(value)


def dumps_json(value: Any, *, pretty: bool = False) -> str:
    data = to_json_compatible(value)
    if pretty:
        return json.dumps(data, ensure_ascii=False, indent=2)
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))