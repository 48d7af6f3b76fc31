"""Property-based tests for engine-wide invariants.

Uses hypothesis to verify properties that must hold for all inputs:

- Node spans stay inside the source they were parsed from
- Maps iterate in insertion order, also after deletions
- Equality and ordering of numbers are symmetric
- Safe strings pass every auto-escape mode untouched
- Loop counters match the position in the sequence
- Unbounded recursion ends in a template error, not a stack overflow
"""

from __future__ import annotations

import dataclasses

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jinjavm import (
    AutoEscape,
    DictLoader,
    Environment,
    ErrorKind,
    IndexMap,
    TemplateRuntimeError,
)
from jinjavm.nodes import Node
from jinjavm.parser import parse
from jinjavm.value.ops import compare, values_equal

from .strategies import any_number, html_text, map_key, template_fragment

# Shared environment instance -- immutable, safe to reuse
_env = Environment()


def _walk(value):
    """Yield every node reachable from ``value``."""
    if isinstance(value, Node):
        yield value
        for f in dataclasses.fields(value):
            yield from _walk(getattr(value, f.name))
    elif isinstance(value, (tuple, list)):
        for item in value:
            yield from _walk(item)


def _assert_spans_in_bounds(source: str) -> int:
    tree = parse(source, keep_trailing_newline=True)
    count = 0
    for node in _walk(tree):
        span = node.span
        assert 0 <= span.start_offset <= span.end_offset <= len(source), (
            f"{type(node).__name__} span {span} outside source of length {len(source)}"
        )
        count += 1
    return count


_COMPLEX_SOURCES = [
    "Hello {{ name | upper }}!",
    "{% for a, b in pairs if a %}{{ loop.index }}:{{ a ~ b }}{% else %}-{% endfor %}",
    "{% if x is defined and not y %}{{ x[1:3] }}{% elif z %}{{ z.attr }}{% endif %}",
    "{% macro m(a, b=2) %}{{ a + b }}{% endmacro %}{{ m(1, b=3) }}",
    "{% call(item) m() %}[{{ item }}]{% endcall %}",
    "{% set t %}captured{% endset %}{% with q = {'k': [1, 2.5, none]} %}{{ q }}{% endwith %}",
    "{% filter upper %}text{% endfilter %}{% autoescape true %}{{ '<' }}{% endautoescape %}",
    "{% extends 'base.html' %}{% block body %}{{ super() }}{% endblock %}",
    "{% include ['a', 'b'] ignore missing %}{% import 'm' as m %}{% from 'm' import a as b %}",
    "{% do items.append(1) %}{{ -x ** 2 if x else y | default('n') }}",
    "line one\n  {%- if a -%}\n  two\n  {%- endif %}\n{# comment #}tail",
    "{% raw %}{{ not parsed }}{% endraw %}{{ 'é' ~ '\\u00e9' }}",
]


class TestSpanProperties:
    """Every node span lies within the parsed source."""

    @pytest.mark.parametrize("source", _COMPLEX_SOURCES)
    def test_known_templates(self, source: str) -> None:
        """Spans of all statement and expression kinds are in bounds."""
        assert _assert_spans_in_bounds(source) > 1

    @given(source=template_fragment)
    @settings(max_examples=200)
    def test_generated_templates(self, source: str) -> None:
        """Spans of generated text/variable/comment/set mixes are in bounds."""
        _assert_spans_in_bounds(source)


class TestMapOrderProperties:
    """IndexMap keeps insertion order."""

    @given(keys=st.lists(map_key, unique=True, max_size=30))
    @settings(max_examples=200)
    def test_iteration_matches_insertion(self, keys: list) -> None:
        """Inserting k1..kn then iterating yields k1..kn."""
        m = IndexMap()
        for i, key in enumerate(keys):
            m.insert(key, i)
        assert list(m) == keys
        assert m.values() == list(range(len(keys)))

    @given(keys=st.lists(map_key, unique=True, min_size=1, max_size=30), data=st.data())
    @settings(max_examples=200)
    def test_delete_keeps_relative_order(self, keys: list, data: st.DataObject) -> None:
        """Deleting ki leaves the other keys in their original order."""
        m = IndexMap([(key, None) for key in keys])
        victim = data.draw(st.sampled_from(keys))
        assert m.delete(victim)
        expected = [k for k in keys if k != victim]
        assert list(m) == expected
        # The index stays usable after the shift.
        for key in expected:
            assert key in m

    @given(
        keys=st.lists(
            st.text(
                alphabet=st.characters(blacklist_categories=("Cs",), blacklist_characters="\x00"),
                min_size=1,
                max_size=8,
            ),
            unique=True,
            max_size=15,
        )
    )
    @settings(max_examples=100)
    def test_map_literal_order_in_template(self, keys: list) -> None:
        """A map passed to a template iterates in insertion order."""
        data = IndexMap([(k, 1) for k in keys])
        rendered = _env.render_str("{% for k in data %}{{ k }}\x00{% endfor %}", data=data)
        assert rendered.split("\x00")[:-1] == keys

    def test_overwrite_keeps_position(self) -> None:
        """Re-inserting an existing key updates its value in place."""
        m = IndexMap([("a", 1), ("b", 2), ("c", 3)])
        m.insert("a", 10)
        assert m.items() == [("a", 10), ("b", 2), ("c", 3)]


class TestNumericLatticeProperties:
    """Equality and ordering are symmetric across numeric types."""

    @given(a=any_number, b=any_number)
    @settings(max_examples=500)
    def test_equality_symmetric(self, a, b) -> None:
        """Eq(a, b) == Eq(b, a)."""
        assert values_equal(a, b) == values_equal(b, a)

    @given(a=any_number, b=any_number)
    @settings(max_examples=500)
    def test_compare_antisymmetric(self, a, b) -> None:
        """Cmp(a, b) == -Cmp(b, a)."""
        assert compare(a, b) == -compare(b, a)

    @given(a=st.integers(min_value=-(2**53), max_value=2**53))
    @settings(max_examples=200)
    def test_int_equals_same_float(self, a: int) -> None:
        """Integers and exactly representable floats are equal."""
        assert values_equal(a, float(a))
        assert compare(a, float(a)) == 0


class TestSafeStringProperties:
    """safe values render verbatim in every auto-escape mode."""

    @pytest.mark.parametrize("template_name", ["t.txt", "t.html", "t.json"])
    @given(x=html_text)
    @settings(max_examples=100)
    def test_safe_is_verbatim(self, template_name: str, x: str) -> None:
        """{{ x|safe }} renders the literal of x."""
        env = Environment()
        env.add_template(template_name, "{{ x|safe }}")
        assert env.get_template(template_name).render(x=x) == x

    @given(x=html_text)
    @settings(max_examples=100)
    def test_safe_survives_custom_escaper(self, x: str) -> None:
        """Custom escapers never see safe values."""
        from jinjavm import CustomEscape

        env = Environment(auto_escape_callback=lambda name: CustomEscape("upper"))
        env.custom_escapers["upper"] = lambda value: str(value).upper()
        assert env.render_str("{{ x|safe }}", x=x) == x
        assert env.render_str("{{ x }}", x=x) == x.upper()

    @given(x=html_text)
    @settings(max_examples=100)
    def test_unsafe_is_escaped_in_html(self, x: str) -> None:
        """Without safe the same value is escaped exactly once."""
        env = Environment(auto_escape_callback=lambda name: AutoEscape.HTML)
        rendered = env.render_str("{{ x }}", x=x)
        assert "<" not in rendered
        assert ">" not in rendered
        assert rendered.replace("&lt;", "<").replace("&gt;", ">").replace(
            "&quot;", '"'
        ).replace("&#x27;", "'").replace("&#x2f;", "/").replace("&amp;", "&") == x


_LOOP_TEMPLATE = (
    "{% for item in items %}"
    "{{ loop.index }},{{ loop.index0 }},{{ loop.first }},{{ loop.last }};"
    "{% endfor %}"
)


def _expected_counters(n: int) -> str:
    parts = []
    for i in range(1, n + 1):
        first = "true" if i == 1 else "false"
        last = "true" if i == n else "false"
        parts.append(f"{i},{i - 1},{first},{last};")
    return "".join(parts)


class TestLoopCounterProperties:
    """loop.index, index0, first and last track the iteration."""

    @given(n=st.integers(min_value=0, max_value=40))
    @settings(max_examples=50)
    def test_counters_over_list(self, n: int) -> None:
        """For a sequence of length n the counters run 1..n and 0..n-1."""
        assert _env.render_str(_LOOP_TEMPLATE, items=list(range(n))) == _expected_counters(n)

    @given(n=st.integers(min_value=0, max_value=40))
    @settings(max_examples=50)
    def test_counters_over_iterator(self, n: int) -> None:
        """loop.last is exact even when the length is not known up front."""
        items = (i for i in range(n))
        assert _env.render_str(_LOOP_TEMPLATE, items=items) == _expected_counters(n)

    @given(n=st.integers(min_value=1, max_value=40))
    @settings(max_examples=50)
    def test_revindex_and_length(self, n: int) -> None:
        """revindex counts down to 1 and length is constant."""
        rendered = _env.render_str(
            "{% for x in items %}{{ loop.revindex }}/{{ loop.length }} {% endfor %}",
            items=list(range(n)),
        )
        assert rendered.split() == [f"{n - i}/{n}" for i in range(n)]


class TestRecursionGuardProperties:
    """Deep recursion fails with a template error."""

    def _assert_recursion_error(self, exc: TemplateRuntimeError) -> None:
        assert exc.kind is ErrorKind.INVALID_OPERATION
        assert exc.detail == "recursion limit exceeded"

    def test_unbounded_macro_recursion(self, env: Environment) -> None:
        """A macro calling itself forever aborts."""
        source = "{% macro f(n) %}{{ f(n + 1) }}{% endmacro %}{{ f(0) }}"
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str(source)
        self._assert_recursion_error(exc_info.value)

    def test_self_include(self) -> None:
        """A template including itself aborts."""
        env = Environment(loader=DictLoader({"loop.txt": "x{% include 'loop.txt' %}"}))
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.get_template("loop.txt").render()
        self._assert_recursion_error(exc_info.value)

    def test_mutual_macro_recursion(self, env: Environment) -> None:
        """Two macros calling each other forever abort."""
        source = (
            "{% macro a() %}{{ b() }}{% endmacro %}"
            "{% macro b() %}{{ a() }}{% endmacro %}"
            "{{ a() }}"
        )
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str(source)
        self._assert_recursion_error(exc_info.value)

    @given(depth=st.integers(min_value=0, max_value=20))
    @settings(max_examples=20, deadline=None)
    def test_bounded_recursion_succeeds(self, depth: int) -> None:
        """Shallow recursion stays well below the limit."""
        source = (
            "{% macro count(n) %}{% if n > 0 %}{{ n }} {{ count(n - 1) }}{% endif %}"
            "{% endmacro %}{{ count(depth) }}"
        )
        rendered = _env.render_str(source, depth=depth)
        assert rendered.split() == [str(i) for i in range(depth, 0, -1)]

    def test_custom_limit(self) -> None:
        """A lower recursion limit trips earlier."""
        env = Environment(recursion_limit=30)
        source = (
            "{% macro count(n) %}{% if n > 0 %}{{ count(n - 1) }}{% endif %}"
            "{% endmacro %}{{ count(depth) }}"
        )
        assert env.render_str(source, depth=1) == ""
        with pytest.raises(TemplateRuntimeError):
            env.render_str(source, depth=50)
