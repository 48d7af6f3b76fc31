"""Default global functions for templates.

These are registered on every ``Environment`` and can be replaced or removed
through ``env.globals`` like any other global.

    - `range(upper)` / `range(lower, upper, step=1)`: A list of integers,
      capped at 10 000 elements
    - `dict(**kwargs)`: Build a map from keyword arguments
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from jinjavm.environment.exceptions import TemplateRuntimeError
from jinjavm.value.core import Undefined, value_kind
from jinjavm.value.indexmap import IndexMap

MAX_RANGE = 10_000


def _check_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TemplateRuntimeError(f"range expects integers, got {value_kind(value)}")
    return value


def range_func(lower: int, upper: int | None = None, step: int = 1) -> list[int]:
    """Python-style ``range`` returning a list.

    Example:
        >>> env.render_str("{% for i in range(3) %}{{ i }}{% endfor %}")
        '012'

    Raises:
        TemplateRuntimeError: For a zero step or more than 10 000 elements.
    """
    if upper is None:
        lower, upper = 0, lower
    lower, upper, step = _check_int(lower), _check_int(upper), _check_int(step)
    if step == 0:
        raise TemplateRuntimeError("cannot create range with step of 0")
    rv = range(lower, upper, step)
    if len(rv) > MAX_RANGE:
        raise TemplateRuntimeError("range has too many elements")
    return list(rv)


def dict_func(value: Any = Undefined, **kwargs: Any) -> IndexMap:
    """``dict(a=1, b=2)``; a single map argument is copied."""
    if value is Undefined:
        return IndexMap(kwargs)
    if not isinstance(value, Mapping):
        raise TemplateRuntimeError(f"cannot convert value of type {value_kind(value)} to a map")
    rv = IndexMap(value)
    for key, item in kwargs.items():
        rv.insert(key, item)
    return rv


DEFAULT_GLOBALS: dict[str, Callable[..., Any]] = {
    "dict": dict_func,
    "range": range_func,
}
