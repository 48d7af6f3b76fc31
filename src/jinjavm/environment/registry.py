"""Filter, test and global registry for jinjavm environments.

Provides a Jinja2-compatible dict-like interface over the environment's
lookup tables.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from jinjavm.environment.core import Environment


class FilterRegistry:
    """Dict-like interface for filters/tests/globals that matches Jinja2's API.

    Supports:
        - env.filters['name'] = func
        - env.filters.update({'name': func})
        - func = env.filters['name']
        - 'name' in env.filters
        - del env.filters['name']

    All mutations use copy-on-write, so a render that already fetched the
    table keeps a consistent view. ``wrap`` is applied to stored values
    (globals box plain callables this way).
    """

    __slots__ = ("_attr", "_env", "_wrap")

    def __init__(self, env: Environment, attr: str, wrap: Callable[[str, Any], Any] | None = None):
        self._env = env
        self._attr = attr
        self._wrap = wrap

    def _get_dict(self) -> dict[str, Any]:
        return getattr(self._env, self._attr)

    def _set_dict(self, d: dict[str, Any]) -> None:
        setattr(self._env, self._attr, d)

    def _prepare(self, name: str, value: Any) -> Any:
        return self._wrap(name, value) if self._wrap is not None else value

    def __getitem__(self, name: str) -> Any:
        return self._get_dict()[name]

    def __setitem__(self, name: str, value: Any) -> None:
        new = self._get_dict().copy()
        new[name] = self._prepare(name, value)
        self._set_dict(new)

    def __delitem__(self, name: str) -> None:
        new = self._get_dict().copy()
        del new[name]
        self._set_dict(new)

    def __contains__(self, name: object) -> bool:
        return name in self._get_dict()

    def __iter__(self) -> Iterator[str]:
        return iter(self._get_dict())

    def __len__(self) -> int:
        return len(self._get_dict())

    def get(self, name: str, default: Any = None) -> Any:
        return self._get_dict().get(name, default)

    def update(self, mapping: dict[str, Any]) -> None:
        """Batch update (Jinja2 compatibility)."""
        new = self._get_dict().copy()
        for name, value in mapping.items():
            new[name] = self._prepare(name, value)
        self._set_dict(new)

    def copy(self) -> dict[str, Any]:
        """Return a copy of the underlying dict."""
        return self._get_dict().copy()

    def keys(self):
        return self._get_dict().keys()

    def values(self):
        return self._get_dict().values()

    def items(self):
        return self._get_dict().items()

    def __repr__(self) -> str:
        return f"<FilterRegistry {self._attr.lstrip('_')}: {sorted(self._get_dict())}>"
