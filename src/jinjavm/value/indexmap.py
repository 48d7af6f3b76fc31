"""Insertion-ordered map keyed by template values.

Map literals, ``dict()`` and keyword argument bundles are all ``IndexMap``
instances. Keys are arbitrary template values wrapped in ``KeyRef``: two
keys are equal iff both are strings with the same text or, otherwise, iff
they compare equal under engine equality (so ``1`` and ``1.0`` are the same
key). Hashing agrees with that equality, which lets a plain ``dict`` do the
probing while the entries themselves live in parallel lists.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from jinjavm.value.core import Undefined, UndefinedType
from jinjavm.value.ops import values_equal


def _key_hash(value: Any) -> int:
    if isinstance(value, str):
        return hash(str(value))
    if isinstance(value, float):
        if value.is_integer():
            return hash(int(value))
        return hash(value)
    if isinstance(value, (list, tuple)):
        return hash(tuple(_key_hash(item) for item in value))
    if isinstance(value, (bytes, bytearray)):
        return hash(bytes(value))
    if value is None or isinstance(value, (bool, int, UndefinedType)):
        return hash(value)
    if isinstance(value, Mapping):
        return hash(("map", len(value)))
    try:
        return hash(value)
    except TypeError:
        return id(value)


class KeyRef:
    """Hashable wrapper around a map key."""

    __slots__ = ("_hash", "value")

    def __init__(self, value: Any):
        self.value = value
        self._hash = _key_hash(value)

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyRef):
            return NotImplemented
        a, b = self.value, other.value
        if isinstance(a, str) and isinstance(b, str):
            return str(a) == str(b)
        return values_equal(a, b)

    def __repr__(self) -> str:
        return f"KeyRef({self.value!r})"


class IndexMap(Mapping):
    """Ordered map from template values to template values.

    Example:
        >>> m = IndexMap()
        >>> m["b"] = 1
        >>> m["a"] = 2
        >>> m.delete("b")
        True
        >>> list(m)
        ['a']
    """

    __slots__ = ("_index", "_keys", "_values")

    def __init__(self, items: Mapping | list[tuple[Any, Any]] | None = None):
        self._index: dict[KeyRef, int] = {}
        self._keys: list[Any] = []
        self._values: list[Any] = []
        if items is not None:
            pairs = items.items() if isinstance(items, Mapping) else items
            for key, value in pairs:
                self.insert(key, value)

    def insert(self, key: Any, value: Any) -> None:
        """Insert a new entry, or overwrite the value of an existing key in place."""
        ref = KeyRef(key)
        idx = self._index.get(ref)
        if idx is None:
            self._index[ref] = len(self._keys)
            self._keys.append(key)
            self._values.append(value)
        else:
            self._values[idx] = value

    def delete(self, key: Any) -> bool:
        """Remove ``key``; surviving entries keep their relative order."""
        idx = self._index.pop(KeyRef(key), None)
        if idx is None:
            return False
        del self._keys[idx]
        del self._values[idx]
        for ref, pos in self._index.items():
            if pos > idx:
                self._index[ref] = pos - 1
        return True

    def entry_at(self, index: int) -> tuple[Any, Any]:
        return self._keys[index], self._values[index]

    def copy(self) -> IndexMap:
        rv = type(self)()
        rv._index = dict(self._index)
        rv._keys = list(self._keys)
        rv._values = list(self._values)
        return rv

    def get(self, key: Any, default: Any = None) -> Any:
        try:
            idx = self._index.get(KeyRef(key))
        except TypeError:
            return default
        return default if idx is None else self._values[idx]

    def __getitem__(self, key: Any) -> Any:
        idx = self._index.get(KeyRef(key))
        if idx is None:
            raise KeyError(key)
        return self._values[idx]

    def __setitem__(self, key: Any, value: Any) -> None:
        self.insert(key, value)

    def __delitem__(self, key: Any) -> None:
        if not self.delete(key):
            raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        return KeyRef(key) in self._index

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def keys(self) -> list[Any]:  # type: ignore[override]
        return list(self._keys)

    def values(self) -> list[Any]:  # type: ignore[override]
        return list(self._values)

    def items(self) -> list[tuple[Any, Any]]:  # type: ignore[override]
        return list(zip(self._keys, self._values, strict=True))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return values_equal(self, other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        body = ", ".join(f"{k!r}: {v!r}" for k, v in self.items())
        return f"{type(self).__name__}({{{body}}})"


class Kwargs(IndexMap):
    """Keyword arguments of a call.

    Only the ``BUILD_KWARGS`` instruction creates these; a map literal never
    is one, even if it has the same shape.
    """

    __slots__ = ()

    def get_arg(self, name: str) -> Any:
        return self.get(name, Undefined)
