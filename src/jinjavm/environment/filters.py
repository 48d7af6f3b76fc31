"""Built-in filters for jinjavm templates.

Filters transform a value with the pipe syntax: ``{{ value | filter }}`` or
``{{ value | filter(arg, key=value) }}``. Each filter is a plain Python
function whose first parameter is the filtered value. Filters that resolve
other filters or tests, or that honour the undefined behavior, are marked
with ``@pass_state`` and receive the render ``State`` first.

Categories:
**String Filters**:
    - `lower`, `upper`, `capitalize`: Case conversion
    - `title`: Upper-cases the whole string
    - `replace(old, new)`: Replace every occurrence
    - `trim(chars=None)`: Strip whitespace or the given characters
    - `indent(width=4, first=False, blank=False)`: Indent lines
    - `urlencode`: Percent-encode a string or a mapping

**Sequence Filters**:
    - `length` / `count`: Number of items
    - `first`, `last`, `reverse`: Ends and order
    - `sort(attribute=None, reverse=False, case_sensitive=False)`
    - `dictsort(by="key", reverse=False, case_sensitive=False)`
    - `items`: ``[key, value]`` pairs of a map
    - `unique`, `join(sep="")`, `list`, `min`, `max`
    - `batch(count, fill_with)`, `slice(count, fill_with)`: Grouping
    - `select`, `reject`, `selectattr`, `rejectattr`: Filter by test
    - `map(filter_name, ...)` / `map(attribute=..., default=...)`

**Numeric Filters**:
    - `abs`, `round(precision=0)`, `int`, `float`

**Escaping and Output**:
    - `safe`: Mark as safe
    - `escape` / `e`: Escape for the active mode (HTML when none is active)
    - `tojson(pretty=False)`: Serialize as HTML-safe JSON

**Misc**:
    - `default` / `d`: Fallback for undefined values
    - `attr(name)`: Item or attribute lookup
    - `bool`, `string`: Conversions

Custom Filters:
    >>> env.add_filter("double", lambda x: x * 2)
    >>> env.render_str("{{ 21 | double }}")
    '42'
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from functools import cmp_to_key
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from jinjavm.environment.exceptions import (
    ErrorKind,
    TemplateError,
    TemplateRuntimeError,
)
from jinjavm.template.output import AutoEscape, escape_value
from jinjavm.utils.html import Markup, is_safe, json_escape_html
from jinjavm.value.callables import call_host, pass_state
from jinjavm.value.core import (
    Object,
    ObjectKind,
    Undefined,
    dumps_json,
    is_number,
    is_true,
    to_str,
    try_iter,
    value_kind,
)
from jinjavm.value.indexmap import KeyRef, Kwargs
from jinjavm.value.ops import compare, get_attr, get_item

if TYPE_CHECKING:
    from jinjavm.template.state import State

_MISSING: Any = object()

# Keeps 10.0 ** precision a finite, non-zero float.
_MAX_PRECISION = 308


# -- helpers ------------------------------------------------------------------


def _seq(value: Any) -> list[Any] | None:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, Object) and value.kind is ObjectKind.SEQ:
        return [value.get_item(i) for i in range(value.item_count())]
    return None


def _pairs(value: Any) -> list[list[Any]]:
    if isinstance(value, Mapping):
        return [[k, v] for k, v in value.items()]
    if isinstance(value, Object) and value.kind is ObjectKind.STRUCT:
        return [[name, value.get_field(name)] for name in value.fields()]
    raise TemplateRuntimeError("cannot convert value into pair list")


def _collect(state: State, value: Any) -> list[Any]:
    """Materialize ``value`` honouring the undefined behavior."""
    try:
        it, _ = state.undefined_behavior.try_iter(value)
        return list(it)
    except TemplateError as err:
        raise TemplateRuntimeError("cannot convert value to list") from err


def _get_path(value: Any, path: str) -> Any:
    """Follow a dotted path; numeric segments index sequences."""
    for part in path.split("."):
        if part.isdigit():
            value = get_item(value, int(part))
        else:
            value = get_attr(value, part)
    return value


def _compare_ci(a: Any, b: Any) -> int:
    if isinstance(a, str) and isinstance(b, str):
        a, b = a.lower(), b.lower()
        return (a > b) - (a < b)
    return compare(a, b)


def _sort_key(case_sensitive: Any, reverse: Any, key: Callable[[Any], Any]) -> Callable[[Any], Any]:
    cmp = compare if is_true(case_sensitive) else _compare_ci
    sign = -1 if is_true(reverse) else 1
    return cmp_to_key(lambda a, b: sign * cmp(key(a), key(b)))


def _check_count(count: Any) -> int:
    if count == 0:
        raise TemplateRuntimeError("count cannot be 0")
    if not is_number(count) or count < 0 or int(count) != count:
        raise TemplateRuntimeError("count must be a positive integer")
    return int(count)


def _check_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TemplateRuntimeError(f"{what} must be an integer, got {value_kind(value)}")
    return value


# -- string filters -----------------------------------------------------------


def _filter_safe(value: Any) -> Markup:
    return Markup(to_str(value))


@pass_state
def _filter_escape(state: State, value: Any) -> Markup:
    """Escape for the active auto-escape mode, falling back to HTML."""
    if is_safe(value):
        return value
    mode = state.auto_escape
    if mode is AutoEscape.NONE:
        mode = AutoEscape.HTML
    return Markup(escape_value(state.env, mode, value))


def _filter_lower(value: Any) -> str:
    return str(to_str(value)).lower()


def _filter_upper(value: Any) -> str:
    return str(to_str(value)).upper()


def _filter_title(value: Any) -> str:
    """Upper-case the whole string.

    Unlike Jinja2 this does not capitalize word by word.
    """
    return str(to_str(value)).upper()


def _filter_capitalize(value: Any) -> str:
    s = str(to_str(value))
    return s[:1].upper() + s[1:].lower()


def _filter_replace(value: Any, old: Any, new: Any) -> str:
    return str(to_str(value)).replace(to_str(old), to_str(new))


def _filter_trim(value: Any, chars: Any = None) -> str:
    s = str(to_str(value))
    if chars is None or chars is Undefined:
        return s.strip()
    return s.strip(to_str(chars))


def _filter_indent(value: Any, width: int = 4, first: bool = False, blank: bool = False) -> str:
    """Indent every line but the first by ``width`` spaces.

    Blank lines stay empty unless ``blank`` is true; ``first`` indents the
    first line too. A single trailing newline is dropped.
    """

    def strip_newline(s: str) -> str:
        if s.endswith("\n"):
            s = s[:-1]
        if s.endswith("\r"):
            s = s[:-1]
        return s

    prefix = " " * _check_int(width, "indent width")
    lines = strip_newline(str(to_str(value))).split("\n")
    out: list[str] = []
    for i, line in enumerate(lines):
        if i == 0 and not is_true(first):
            out.append(line)
        elif line:
            out.append(prefix + line)
        else:
            out.append(prefix if is_true(blank) else "")
    return strip_newline("\n".join(out))


def _urlquote(s: str) -> str:
    return quote(s, safe="/").replace("~", "%7E")


def _filter_urlencode(value: Any) -> str:
    """Percent-encode a string; maps become ``key=value&...`` query strings."""
    if isinstance(value, Mapping) or (
        isinstance(value, Object) and value.kind is ObjectKind.STRUCT
    ):
        return "&".join(f"{_urlquote(to_str(k))}={_urlquote(to_str(v))}" for k, v in _pairs(value))
    if value is None or value is Undefined:
        return ""
    return _urlquote(to_str(value))


# -- sequence filters ---------------------------------------------------------


def _filter_length(value: Any) -> int:
    if isinstance(value, (str, list, tuple, Mapping, bytes)):
        return len(value)
    if isinstance(value, Object):
        if value.kind is ObjectKind.SEQ:
            return value.item_count()
        if value.kind is ObjectKind.STRUCT:
            return len(value.fields())
    raise TemplateRuntimeError(f"cannot calculate length of value of type {value_kind(value)}")


def _filter_first(value: Any) -> Any:
    if isinstance(value, str):
        return value[0] if value else Undefined
    items = _seq(value)
    if items is None:
        raise TemplateRuntimeError("cannot get first item from value")
    return items[0] if items else Undefined


def _filter_last(value: Any) -> Any:
    if isinstance(value, str):
        return value[-1] if value else Undefined
    items = _seq(value)
    if items is None:
        raise TemplateRuntimeError("cannot get last item from value")
    return items[-1] if items else Undefined


def _filter_reverse(value: Any) -> Any:
    if isinstance(value, str):
        return str(value)[::-1]
    items = _seq(value)
    if items is None:
        raise TemplateRuntimeError(f"cannot reverse value of type {value_kind(value)}")
    items.reverse()
    return items


@pass_state
def _filter_sort(
    state: State,
    value: Any,
    *,
    attribute: str | None = None,
    reverse: bool = False,
    case_sensitive: bool = False,
) -> list[Any]:
    """Sort a sequence; strings compare case-insensitively unless told otherwise.

    Example:
        >>> env.render_str(
        ...     "{{ users | sort(attribute='age') | map(attribute='name') | join(',') }}",
        ...     users=[{"name": "b", "age": 2}, {"name": "a", "age": 1}])
        'a,b'
    """
    items = _collect(state, value)
    if isinstance(attribute, str) and attribute:
        key = _sort_key(case_sensitive, reverse, lambda item: _get_path(item, attribute))
    else:
        key = _sort_key(case_sensitive, reverse, lambda item: item)
    items.sort(key=key)
    return items


def _filter_dictsort(
    value: Any,
    *,
    by: str = "key",
    reverse: bool = False,
    case_sensitive: bool = False,
) -> list[list[Any]]:
    """Sort a map into ``[key, value]`` pairs, by key or by value."""
    pairs = _pairs(value)
    index = 0
    if isinstance(by, str):
        if by == "value":
            index = 1
        elif by != "key":
            raise TemplateRuntimeError(f"invalid value '{by}' for 'by' parameter")
    pairs.sort(key=_sort_key(case_sensitive, reverse, lambda pair: pair[index]))
    return pairs


def _filter_items(value: Any) -> list[list[Any]]:
    return _pairs(value)


def _filter_unique(value: Any) -> list[Any]:
    seen: set[KeyRef] = set()
    rv = []
    it, _ = try_iter(value)
    for item in it:
        ref = KeyRef(item)
        if ref not in seen:
            seen.add(ref)
            rv.append(item)
    return rv


def _filter_join(value: Any, sep: Any = "") -> str:
    if value is Undefined or value is None:
        return ""
    sep = to_str(sep)
    if isinstance(value, str):
        return sep.join(value)
    items = _seq(value)
    if items is None:
        raise TemplateRuntimeError(f"cannot join value of type {value_kind(value)}")
    return sep.join(to_str(item) for item in items)


@pass_state
def _filter_list(state: State, value: Any) -> list[Any]:
    return _collect(state, value)


@pass_state
def _filter_min(state: State, value: Any) -> Any:
    items = _collect(state, value)
    if not items:
        return Undefined
    return min(items, key=cmp_to_key(compare))


@pass_state
def _filter_max(state: State, value: Any) -> Any:
    items = _collect(state, value)
    if not items:
        return Undefined
    return max(items, key=cmp_to_key(compare))


@pass_state
def _filter_batch(
    state: State, value: Any, count: int, fill_with: Any = _MISSING
) -> list[list[Any]]:
    """Split into lists of ``count`` items; the last one is padded with ``fill_with``.

    Example:
        >>> env.render_str("{{ [1, 2, 3] | batch(2, 0) }}")
        '[[1, 2], [3, 0]]'
    """
    count = _check_count(count)
    items = _collect(state, value)
    rv = [items[i : i + count] for i in range(0, len(items), count)]
    if rv and fill_with is not _MISSING:
        rv[-1].extend([fill_with] * (count - len(rv[-1])))
    return rv


@pass_state
def _filter_slice(
    state: State, value: Any, count: int, fill_with: Any = _MISSING
) -> list[list[Any]]:
    """Split into ``count`` columns of nearly equal length.

    The first ``len % count`` columns get one extra item; with ``fill_with``
    the shorter columns are padded to match.
    """
    count = _check_count(count)
    items = _collect(state, value)
    per_slice, with_extra = divmod(len(items), count)
    rv = []
    offset = 0
    for i in range(count):
        start = offset + i * per_slice
        if i < with_extra:
            offset += 1
        end = offset + (i + 1) * per_slice
        column = items[start:end]
        if fill_with is not _MISSING and i >= with_extra:
            column.append(fill_with)
        rv.append(column)
    return rv


def _select_or_reject(
    state: State,
    invert: bool,
    value: Any,
    attr: str | None,
    test_name: Any,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> list[Any]:
    test = None
    if test_name is not None and test_name is not Undefined:
        test = state.env.get_test(to_str(test_name))
        if test is None:
            raise TemplateRuntimeError(
                f"test {to_str(test_name)} is unknown", kind=ErrorKind.UNKNOWN_TEST
            )
    extra = list(args)
    if kwargs:
        extra.append(Kwargs(kwargs))
    rv = []
    for item in _collect(state, value):
        test_value = _get_path(item, attr) if attr is not None else item
        if test is not None:
            passed = is_true(call_host(test, state, [test_value, *extra]))
        else:
            passed = is_true(test_value)
        if passed != invert:
            rv.append(item)
    return rv


@pass_state
def _filter_select(
    state: State, value: Any, test_name: Any = None, *args: Any, **kwargs: Any
) -> list[Any]:
    """Keep items passing ``test_name`` (or truthy items without a test)."""
    return _select_or_reject(state, False, value, None, test_name, args, kwargs)


@pass_state
def _filter_reject(
    state: State, value: Any, test_name: Any = None, *args: Any, **kwargs: Any
) -> list[Any]:
    return _select_or_reject(state, True, value, None, test_name, args, kwargs)


@pass_state
def _filter_selectattr(
    state: State, value: Any, attr: str, test_name: Any = None, *args: Any, **kwargs: Any
) -> list[Any]:
    """Keep items whose ``attr`` passes ``test_name``.

    Example:
        >>> env.render_str("{{ users | selectattr('active') | length }}",
        ...                users=[{"active": True}, {"active": False}])
        '1'
    """
    return _select_or_reject(state, False, value, to_str(attr), test_name, args, kwargs)


@pass_state
def _filter_rejectattr(
    state: State, value: Any, attr: str, test_name: Any = None, *args: Any, **kwargs: Any
) -> list[Any]:
    return _select_or_reject(state, True, value, to_str(attr), test_name, args, kwargs)


@pass_state
def _filter_map(state: State, value: Any, *args: Any, **kwargs: Any) -> list[Any]:
    """Apply a filter to every item, or pluck an attribute.

    ``map(attribute="name", default="?")`` looks up a dotted path (or any
    key when ``attribute`` is not a string); ``map("upper")`` applies the
    named filter, forwarding the remaining arguments.
    """
    if "attribute" in kwargs:
        attribute = kwargs.pop("attribute")
        default = kwargs.pop("default", Undefined)
        if args or kwargs:
            raise TemplateRuntimeError(None, kind=ErrorKind.TOO_MANY_ARGUMENTS)
        rv = []
        for item in _collect(state, value):
            if isinstance(attribute, str):
                sub = _get_path(item, attribute)
            else:
                sub = get_item(item, attribute)
            rv.append(default if sub is Undefined else sub)
        return rv

    if not args:
        raise TemplateRuntimeError("filter name is required")
    name, *rest = args
    if not isinstance(name, str):
        raise TemplateRuntimeError("filter name must be a string")
    func = state.env.get_filter(name)
    if func is None:
        raise TemplateRuntimeError(f"filter {name} is unknown", kind=ErrorKind.UNKNOWN_FILTER)
    if kwargs:
        rest.append(Kwargs(kwargs))
    return [call_host(func, state, [item, *rest]) for item in _collect(state, value)]


# -- numeric filters ----------------------------------------------------------


def _filter_abs(value: Any) -> Any:
    if not is_number(value):
        raise TemplateRuntimeError("cannot get absolute value")
    return abs(value)


def _filter_round(value: Any, precision: int = 0) -> Any:
    """Round floats half away from zero; integers are returned unchanged."""
    if is_number(value) and isinstance(value, int):
        return value
    if not isinstance(value, float):
        raise TemplateRuntimeError("cannot round value")
    if math.isnan(value) or math.isinf(value):
        return value
    precision = max(-_MAX_PRECISION, min(_check_int(precision, "precision"), _MAX_PRECISION))
    factor = 10.0**precision
    scaled = abs(value) * factor
    if math.isinf(scaled):
        return value
    return math.copysign(math.floor(scaled + 0.5), value) / factor


def _filter_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        s = value.strip()
        try:
            return int(s)
        except ValueError:
            pass
        try:
            return int(float(s))
        except (ValueError, OverflowError):
            return default
    return default


def _filter_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


# -- misc -----------------------------------------------------------------------


def _filter_default(value: Any, default_value: Any = "") -> Any:
    """Replace undefined values; ``none`` and empty values are kept."""
    return default_value if value is Undefined else value


def _filter_attr(value: Any, name: Any) -> Any:
    return get_item(value, name)


def _filter_bool(value: Any) -> bool:
    return is_true(value)


def _filter_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    return to_str(value)


def _filter_tojson(value: Any, pretty: bool = False) -> Markup:
    """Serialize to JSON that is safe inside HTML ``<script>`` tags and attributes."""
    return Markup(json_escape_html(dumps_json(value, pretty=is_true(pretty))))


DEFAULT_FILTERS: dict[str, Callable[..., Any]] = {
    "abs": _filter_abs,
    "attr": _filter_attr,
    "batch": _filter_batch,
    "bool": _filter_bool,
    "capitalize": _filter_capitalize,
    "count": _filter_length,
    "d": _filter_default,
    "default": _filter_default,
    "dictsort": _filter_dictsort,
    "e": _filter_escape,
    "escape": _filter_escape,
    "first": _filter_first,
    "float": _filter_float,
    "indent": _filter_indent,
    "int": _filter_int,
    "items": _filter_items,
    "join": _filter_join,
    "last": _filter_last,
    "length": _filter_length,
    "list": _filter_list,
    "lower": _filter_lower,
    "map": _filter_map,
    "max": _filter_max,
    "min": _filter_min,
    "reject": _filter_reject,
    "rejectattr": _filter_rejectattr,
    "replace": _filter_replace,
    "reverse": _filter_reverse,
    "round": _filter_round,
    "safe": _filter_safe,
    "select": _filter_select,
    "selectattr": _filter_selectattr,
    "slice": _filter_slice,
    "sort": _filter_sort,
    "string": _filter_string,
    "title": _filter_title,
    "tojson": _filter_tojson,
    "trim": _filter_trim,
    "unique": _filter_unique,
    "upper": _filter_upper,
    "urlencode": _filter_urlencode,
}
