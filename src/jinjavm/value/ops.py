"""Operators on template values.

Arithmetic follows a fixed numeric lattice: if either operand is a float
both are coerced to float, otherwise integer arithmetic is used (bools count
as integers). Integer results must fit the i128/u128 range; anything outside
raises ``InvalidOperation`` instead of silently growing. Strings concatenate
only with strings.

``/`` always yields a float; ``//`` and ``%`` are Euclidean, so the
remainder is never negative.

Comparison is total: numbers compare numerically (floats by total order),
sequences lexicographically, maps entry by entry in iteration order, and
values of unrelated kinds by kind order.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Mapping
from typing import Any

from jinjavm.environment.exceptions import TemplateRuntimeError
from jinjavm.utils.html import Markup
from jinjavm.value.core import (
    I128_MIN,
    U128_MAX,
    InvalidValue,
    Object,
    ObjectKind,
    Undefined,
    ValueKind,
    to_str,
    value_kind,
)

_INT = 1
_FLOAT = 2
_STR = 3


def _failed_op(op: str, lhs: Any, rhs: Any) -> TemplateRuntimeError:
    return TemplateRuntimeError(f"unable to calculate {to_str(lhs)} {op} {to_str(rhs)}")


def _impossible_op(op: str, lhs: Any, rhs: Any) -> TemplateRuntimeError:
    return TemplateRuntimeError(
        f"tried to use {op} operator on unsupported types {value_kind(lhs)} and {value_kind(rhs)}"
    )


def _as_number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    return None


def _coerce(lhs: Any, rhs: Any) -> tuple[int, Any, Any] | None:
    if isinstance(lhs, str) and isinstance(rhs, str):
        return _STR, lhs, rhs
    a = _as_number(lhs)
    b = _as_number(rhs)
    if a is None or b is None:
        return None
    if isinstance(a, float) or isinstance(b, float):
        return _FLOAT, float(a), float(b)
    return _INT, a, b


def _checked(result: int, op: str, lhs: Any, rhs: Any) -> int:
    if I128_MIN <= result <= U128_MAX:
        return result
    raise _failed_op(op, lhs, rhs)


def _concat_str(a: str, b: str) -> str:
    if isinstance(a, Markup) and isinstance(b, Markup):
        return Markup(str.__add__(a, b))
    return str.__add__(str(a), str(b))


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def add(lhs: Any, rhs: Any) -> Any:
    c = _coerce(lhs, rhs)
    if c is not None:
        tag, a, b = c
        if tag == _STR:
            return _concat_str(a, b)
        if tag == _FLOAT:
            return a + b
        return _checked(a + b, "+", lhs, rhs)
    if isinstance(lhs, (list, tuple)) and isinstance(rhs, (list, tuple)):
        return [*lhs, *rhs]
    raise _impossible_op("+", lhs, rhs)


def sub(lhs: Any, rhs: Any) -> Any:
    c = _coerce(lhs, rhs)
    if c is not None and c[0] != _STR:
        tag, a, b = c
        if tag == _FLOAT:
            return a - b
        return _checked(a - b, "-", lhs, rhs)
    raise _impossible_op("-", lhs, rhs)


def mul(lhs: Any, rhs: Any) -> Any:
    c = _coerce(lhs, rhs)
    if c is not None and c[0] != _STR:
        tag, a, b = c
        if tag == _FLOAT:
            return a * b
        return _checked(a * b, "*", lhs, rhs)
    raise _impossible_op("*", lhs, rhs)


def _float_div(a: float, b: float) -> float:
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def div(lhs: Any, rhs: Any) -> float:
    a = _as_number(lhs)
    b = _as_number(rhs)
    if a is None or b is None:
        raise _impossible_op("/", lhs, rhs)
    try:
        return _float_div(float(a), float(b))
    except OverflowError:
        raise _failed_op("/", lhs, rhs) from None


def _float_rem_euclid(a: float, b: float) -> float:
    if b == 0.0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
        return math.nan
    r = math.fmod(a, b)
    if r < 0.0:
        r += abs(b)
    return r


def _float_div_euclid(a: float, b: float) -> float:
    q = _float_div(a, b)
    if not math.isfinite(q):
        return q
    q = float(math.trunc(q))
    if math.fmod(a, b) < 0.0:
        return q - 1.0 if b > 0.0 else q + 1.0
    return q


def int_div(lhs: Any, rhs: Any) -> Any:
    c = _coerce(lhs, rhs)
    if c is not None and c[0] != _STR:
        tag, a, b = c
        if tag == _FLOAT:
            return _float_div_euclid(a, b)
        if b == 0:
            raise _failed_op("//", lhs, rhs)
        q, r = divmod(a, b)
        if r < 0:
            q += 1
        return _checked(q, "//", lhs, rhs)
    raise _impossible_op("//", lhs, rhs)


def rem(lhs: Any, rhs: Any) -> Any:
    c = _coerce(lhs, rhs)
    if c is not None and c[0] != _STR:
        tag, a, b = c
        if tag == _FLOAT:
            return _float_rem_euclid(a, b)
        if b == 0:
            raise _failed_op("%", lhs, rhs)
        r = a % b
        if r < 0:
            r -= b
        return r
    raise _impossible_op("%", lhs, rhs)


def pow_(lhs: Any, rhs: Any) -> Any:
    c = _coerce(lhs, rhs)
    if c is not None and c[0] != _STR:
        tag, a, b = c
        if tag == _FLOAT:
            try:
                return math.pow(a, b)
            except ValueError:
                return math.nan
            except OverflowError:
                return math.inf
        if b < 0 or (abs(a) > 1 and b > 128):
            raise _failed_op("**", lhs, rhs)
        return _checked(a**b, "**", lhs, rhs)
    raise _impossible_op("**", lhs, rhs)


def neg(value: Any) -> Any:
    n = _as_number(value)
    if n is None:
        raise TemplateRuntimeError(f"tried to negate value of type {value_kind(value)}")
    if isinstance(n, float):
        return -n
    return _checked(-n, "-", 0, value)


def string_concat(lhs: Any, rhs: Any) -> str:
    """The ``~`` operator: concatenate the display forms of both operands."""
    return _concat_str(to_str(lhs), to_str(rhs))


# ---------------------------------------------------------------------------
# Equality and ordering
# ---------------------------------------------------------------------------


def _seq_items(value: Any) -> list[Any] | None:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, Object) and value.kind is ObjectKind.SEQ:
        return [value.get_item(i) for i in range(value.item_count())]
    return None


def _map_items(value: Any) -> list[tuple[Any, Any]] | None:
    if isinstance(value, Mapping):
        return list(value.items())
    if isinstance(value, Object) and value.kind is ObjectKind.STRUCT:
        return [(name, value.get_field(name)) for name in value.fields()]
    return None


def values_equal(lhs: Any, rhs: Any) -> bool:
    """Engine equality (the ``==`` operator)."""
    if lhs is rhs:
        return True
    ka = value_kind(lhs)
    kb = value_kind(rhs)
    if ka is ValueKind.NONE or kb is ValueKind.NONE:
        return ka is kb
    if ka is ValueKind.UNDEFINED or kb is ValueKind.UNDEFINED:
        return ka is kb
    if ka is ValueKind.STRING and kb is ValueKind.STRING:
        return str(lhs) == str(rhs)
    if ka is ValueKind.BYTES and kb is ValueKind.BYTES:
        return bytes(lhs) == bytes(rhs)
    c = _coerce(lhs, rhs)
    if c is not None:
        return c[1] == c[2]
    a_items = _seq_items(lhs)
    b_items = _seq_items(rhs)
    if a_items is not None and b_items is not None:
        return len(a_items) == len(b_items) and all(
            values_equal(x, y) for x, y in zip(a_items, b_items, strict=True)
        )
    a_map = _map_items(lhs)
    b_map = _map_items(rhs)
    if a_map is not None and b_map is not None:
        if len(a_map) != len(b_map):
            return False
        return all(
            any(values_equal(k, k2) and values_equal(v, v2) for k2, v2 in b_map)
            for k, v in a_map
        )
    if ka is ValueKind.PLAIN and kb is ValueKind.PLAIN:
        return lhs == rhs
    return False


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _float_key(f: float) -> int:
    bits = struct.unpack("<q", struct.pack("<d", f))[0]
    if bits < 0:
        bits ^= 0x7FFF_FFFF_FFFF_FFFF
    return bits


def _float_total_cmp(a: float, b: float) -> int:
    if a == b:
        return 0
    return _cmp(_float_key(a), _float_key(b))


def compare(lhs: Any, rhs: Any) -> int:
    """Total ordering of two values: negative, zero or positive."""
    ka = value_kind(lhs)
    kb = value_kind(rhs)
    if ka is kb and ka in (ValueKind.NONE, ValueKind.UNDEFINED):
        return 0
    if ka is ValueKind.STRING and kb is ValueKind.STRING:
        return _cmp(str(lhs), str(rhs))
    if ka is ValueKind.BYTES and kb is ValueKind.BYTES:
        return _cmp(bytes(lhs), bytes(rhs))
    c = _coerce(lhs, rhs)
    if c is not None:
        tag, a, b = c
        if tag == _FLOAT:
            return _float_total_cmp(a, b)
        return _cmp(a, b)
    a_items = _seq_items(lhs)
    b_items = _seq_items(rhs)
    if a_items is not None and b_items is not None:
        for x, y in zip(a_items, b_items):
            rv = compare(x, y)
            if rv != 0:
                return rv
        return _cmp(len(a_items), len(b_items))
    a_map = _map_items(lhs)
    b_map = _map_items(rhs)
    if a_map is not None and b_map is not None and ka is kb:
        for (k1, v1), (k2, v2) in zip(a_map, b_map):
            rv = compare(k1, k2) or compare(v1, v2)
            if rv != 0:
                return rv
        return _cmp(len(a_map), len(b_map))
    if ka is ValueKind.PLAIN and kb is ValueKind.PLAIN:
        if lhs is rhs or lhs == rhs:
            return 0
        return _cmp(id(lhs), id(rhs))
    return _cmp(ka.order, kb.order)


# ---------------------------------------------------------------------------
# Containment, items and slicing
# ---------------------------------------------------------------------------


def contains(container: Any, item: Any) -> bool:
    """The ``in`` operator.

    Strings test for substrings, sequences for an equal element and maps for
    a key. An undefined container holds nothing.
    """
    if container is Undefined or item is Undefined:
        return False
    if isinstance(container, str):
        needle = item if isinstance(item, str) else to_str(item)
        return needle in container
    items = _seq_items(container)
    if items is not None:
        return any(values_equal(x, item) for x in items)
    if isinstance(container, Mapping):
        return lookup_key(container, item) is not Undefined
    if isinstance(container, Object) and container.kind is ObjectKind.STRUCT:
        return isinstance(item, str) and item in container.fields()
    raise TemplateRuntimeError("cannot perform a containment check on this value")


def lookup_key(mapping: Mapping, key: Any) -> Any:
    try:
        return mapping[key]
    except (KeyError, TypeError):
        return Undefined


def _normalize_index(index: Any, length: int) -> int | None:
    if isinstance(index, float):
        if not index.is_integer():
            return None
        index = int(index)
    if not isinstance(index, int):
        return None
    if index < 0:
        index += length
    if 0 <= index < length:
        return index
    return None


_NO_ATTRS = (str, bytes, bytearray, int, float, list, tuple, Mapping, InvalidValue)


def get_item(container: Any, key: Any) -> Any:
    """``container[key]``; returns ``Undefined`` when there is no such item."""
    if container is Undefined or container is None:
        return Undefined
    if isinstance(container, Mapping):
        return lookup_key(container, key)
    if isinstance(container, (list, tuple, str)):
        idx = _normalize_index(key, len(container))
        return Undefined if idx is None else container[idx]
    if isinstance(container, Object):
        if container.kind is ObjectKind.SEQ:
            idx = _normalize_index(key, container.item_count())
            return Undefined if idx is None else container.get_item(idx)
        if container.kind is ObjectKind.STRUCT and isinstance(key, str):
            return container.get_field(key)
        return Undefined
    if isinstance(key, str) and not isinstance(container, _NO_ATTRS):
        return _host_attr(container, key)
    return Undefined


def get_attr(value: Any, name: str) -> Any:
    """``value.name``; returns ``Undefined`` when there is no such attribute."""
    if value is Undefined or value is None:
        return Undefined
    if isinstance(value, Mapping):
        return lookup_key(value, name)
    if isinstance(value, Object):
        if value.kind is ObjectKind.STRUCT:
            return value.get_field(name)
        return Undefined
    if isinstance(value, _NO_ATTRS):
        return Undefined
    return _host_attr(value, name)


def _host_attr(value: Any, name: str) -> Any:
    if name.startswith("_"):
        return Undefined
    return getattr(value, name, Undefined)


def _slice_bounds(start: Any, stop: Any, step: Any) -> slice:
    if step is None:
        step = 1
    if not isinstance(step, int) or isinstance(step, bool):
        raise TemplateRuntimeError("slice step must be an integer")
    if step < 0:
        raise TemplateRuntimeError("cannot slice by negative step size")
    if step == 0:
        raise TemplateRuntimeError("cannot slice by step size of 0")
    for bound in (start, stop):
        if bound is not None and (not isinstance(bound, int) or isinstance(bound, bool)):
            raise TemplateRuntimeError("slice indices must be integers or none")
    return slice(start, stop, step)


def slice_value(value: Any, start: Any, stop: Any, step: Any) -> Any:
    """``value[start:stop:step]`` with Python index normalization."""
    bounds = _slice_bounds(start, stop, step)
    if value is Undefined or value is None:
        return []
    if isinstance(value, str):
        return str(value)[bounds]
    items = _seq_items(value)
    if items is not None:
        return items[bounds]
    raise TemplateRuntimeError(f"value of type {value_kind(value)} cannot be sliced")
