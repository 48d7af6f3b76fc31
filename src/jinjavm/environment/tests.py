"""Built-in tests for jinjavm templates.

Tests are boolean predicates used with `is` in conditionals:
`{% if value is test %}` or `{% if value is test(arg) %}`

Categories:
**Type Tests**:
    - `defined` / `undefined`: Value is (not) undefined
    - `none`: Value is none
    - `safe` / `escaped`: Value is a safe string
    - `number`, `string`, `sequence`, `mapping`: Value kind checks

**Number Tests**:
    - `odd`, `even`: Integer parity (false for non-integers)
    - `divisibleby(n)`: Integer is divisible by n

**String Tests**:
    - `startingwith(prefix)`, `endingwith(suffix)`

**Comparison Tests**:
    - `eq` / `equalto` / `==`, `ne` / `!=`
    - `lt` / `lessthan` / `<`, `le` / `<=`
    - `gt` / `greaterthan` / `>`, `ge` / `>=`
    - `in(container)`: Value is contained in container

**Boolean Tests**:
    - `true`, `false`: Value is exactly that boolean

**Environment Tests**:
    - `filter`, `test`: A filter / test with that name is registered

Negation:
Use `is not` for negated tests:
`{% if user is not defined %}` or `{% if count is not even %}`

Custom Tests:
    >>> env.add_test("prime", lambda n: n > 1 and all(n % i for i in range(2, n)))
    >>> env.render_str("{{ 17 is prime }}")
    'true'
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from jinjavm.environment.exceptions import TemplateError
from jinjavm.utils.html import is_safe
from jinjavm.value.callables import pass_state
from jinjavm.value.core import Undefined, ValueKind, to_str, value_kind
from jinjavm.value.ops import compare, contains, values_equal

if TYPE_CHECKING:
    from jinjavm.template.state import State


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _test_defined(value: Any) -> bool:
    """Test if value is defined."""
    return value is not Undefined


def _test_undefined(value: Any) -> bool:
    return value is Undefined


def _test_none(value: Any) -> bool:
    return value is None


def _test_safe(value: Any) -> bool:
    return is_safe(value)


def _test_odd(value: Any) -> bool:
    """Test if value is an odd integer."""
    n = _as_int(value)
    return n is not None and n % 2 != 0


def _test_even(value: Any) -> bool:
    """Test if value is an even integer."""
    n = _as_int(value)
    return n is not None and n % 2 == 0


def _test_divisibleby(value: Any, divisor: Any) -> bool:
    n = _as_int(value)
    d = _as_int(divisor)
    return n is not None and d is not None and d != 0 and n % d == 0


def _test_number(value: Any) -> bool:
    """Test if value is a number (booleans are not)."""
    return value_kind(value) is ValueKind.NUMBER


def _test_string(value: Any) -> bool:
    return value_kind(value) is ValueKind.STRING


def _test_sequence(value: Any) -> bool:
    return value_kind(value) is ValueKind.SEQ


def _test_mapping(value: Any) -> bool:
    return value_kind(value) is ValueKind.MAP


def _test_startingwith(value: Any, prefix: Any) -> bool:
    return to_str(value).startswith(to_str(prefix))


def _test_endingwith(value: Any, suffix: Any) -> bool:
    return to_str(value).endswith(to_str(suffix))


def _test_eq(value: Any, other: Any) -> bool:
    """Test equality."""
    return values_equal(value, other)


def _test_ne(value: Any, other: Any) -> bool:
    """Test inequality."""
    return not values_equal(value, other)


def _test_lt(value: Any, other: Any) -> bool:
    """Test if value < other."""
    return compare(value, other) < 0


def _test_le(value: Any, other: Any) -> bool:
    """Test if value <= other."""
    return compare(value, other) <= 0


def _test_gt(value: Any, other: Any) -> bool:
    """Test if value > other."""
    return compare(value, other) > 0


def _test_ge(value: Any, other: Any) -> bool:
    """Test if value >= other."""
    return compare(value, other) >= 0


def _test_in(value: Any, container: Any) -> bool:
    """Test if value is in container.

    Containers that do not support containment checks hold nothing.
    """
    try:
        return contains(container, value)
    except TemplateError:
        return False


def _test_true(value: Any) -> bool:
    return value is True


def _test_false(value: Any) -> bool:
    return value is False


@pass_state
def _test_filter(state: State, name: Any) -> bool:
    """Test if a filter with this name is registered.

    Example:
        >>> env.render_str("{{ 'lower' is filter }}")
        'true'
    """
    return isinstance(name, str) and state.env.get_filter(name) is not None


@pass_state
def _test_test(state: State, name: Any) -> bool:
    """Test if a test with this name is registered."""
    return isinstance(name, str) and state.env.get_test(name) is not None


# Default tests
DEFAULT_TESTS: dict[str, Callable[..., bool]] = {
    "!=": _test_ne,
    "<": _test_lt,
    "<=": _test_le,
    "==": _test_eq,
    ">": _test_gt,
    ">=": _test_ge,
    "defined": _test_defined,
    "divisibleby": _test_divisibleby,
    "endingwith": _test_endingwith,
    "eq": _test_eq,
    "equalto": _test_eq,
    "escaped": _test_safe,
    "even": _test_even,
    "false": _test_false,
    "filter": _test_filter,
    "ge": _test_ge,
    "greaterthan": _test_gt,
    "gt": _test_gt,
    "in": _test_in,
    "le": _test_le,
    "lessthan": _test_lt,
    "lt": _test_lt,
    "mapping": _test_mapping,
    "ne": _test_ne,
    "none": _test_none,
    "number": _test_number,
    "odd": _test_odd,
    "safe": _test_safe,
    "sequence": _test_sequence,
    "startingwith": _test_startingwith,
    "string": _test_string,
    "test": _test_test,
    "true": _test_true,
    "undefined": _test_undefined,
}
