"""For loops and the loop object."""

from __future__ import annotations

import pytest

from jinjavm import Environment, ErrorKind, TemplateRuntimeError

TREE = [
    {"name": "a", "children": [{"name": "a1", "children": []}]},
    {"name": "b", "children": []},
]


class TestIteration:
    def test_sequence(self, env: Environment) -> None:
        assert env.render_str("{% for x in [1, 2, 3] %}{{ x }}{% endfor %}") == "123"

    def test_string_iterates_characters(self, env: Environment) -> None:
        assert env.render_str("{% for c in 'abc' %}{{ c }}.{% endfor %}") == "a.b.c."

    def test_map_iterates_keys_in_order(self, env: Environment) -> None:
        out = env.render_str("{% for k in m %}{{ k }}{% endfor %}", m={"b": 1, "a": 2})
        assert out == "ba"

    def test_unpacking(self, env: Environment) -> None:
        out = env.render_str("{% for k, v in m|items %}{{ k }}={{ v }};{% endfor %}", m={"a": 1, "b": 2})
        assert out == "a=1;b=2;"

    def test_nested_unpacking(self, env: Environment) -> None:
        out = env.render_str("{% for a, (b, c) in [[1, [2, 3]]] %}{{ a }}{{ b }}{{ c }}{% endfor %}")
        assert out == "123"

    def test_unpacking_wrong_length(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str("{% for a, b in [[1, 2, 3]] %}{% endfor %}")
        assert exc_info.value.kind is ErrorKind.CANNOT_UNPACK

    def test_else_branch(self, env: Environment) -> None:
        assert env.render_str("{% for x in [] %}x{% else %}empty{% endfor %}") == "empty"
        assert env.render_str("{% for x in [1] %}x{% else %}empty{% endfor %}") == "x"

    def test_undefined_and_none_iterate_empty(self, env: Environment) -> None:
        assert env.render_str("{% for x in missing %}x{% else %}-{% endfor %}") == "-"
        assert env.render_str("{% for x in none %}x{% endfor %}") == ""

    def test_number_is_not_iterable(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError, match="not iterable"):
            env.render_str("{% for x in 42 %}{% endfor %}")

    def test_generator(self, env: Environment) -> None:
        out = env.render_str("{% for x in items %}{{ x }}{% endfor %}", items=(i * 2 for i in range(3)))
        assert out == "024"

    def test_loop_variables_do_not_leak(self, env: Environment) -> None:
        out = env.render_str("{% for x in [1] %}{% set y = 2 %}{% endfor %}[{{ x }}{{ y }}]")
        assert out == "[]"

    def test_outer_variable_shadowed(self, env: Environment) -> None:
        out = env.render_str("{% set x = 'outer' %}{% for x in [1] %}{{ x }}{% endfor %}{{ x }}")
        assert out == "1outer"

    def test_filtered_loop(self, env: Environment) -> None:
        out = env.render_str(
            "{% for x in [1, 2, 3, 4] if x is even %}{{ loop.index }}:{{ x }}/{{ loop.length }} {% endfor %}"
        )
        assert out == "1:2/2 2:4/2 "

    def test_filtered_loop_else(self, env: Environment) -> None:
        out = env.render_str("{% for x in [1, 3] if x is even %}x{% else %}none{% endfor %}")
        assert out == "none"


class TestLoopObject:
    def test_counters(self, env: Environment) -> None:
        out = env.render_str(
            "{% for x in 'abc' %}"
            "{{ loop.index }}{{ loop.index0 }}{{ loop.revindex }}{{ loop.revindex0 }} "
            "{% endfor %}"
        )
        assert out == "1032 2121 3210 "

    def test_first_last(self, env: Environment) -> None:
        out = env.render_str(
            "{% for x in [1, 2, 3] %}{% if loop.first %}F{% endif %}{{ x }}"
            "{% if loop.last %}L{% endif %}{% endfor %}"
        )
        assert out == "F123L"

    def test_last_with_unknown_length(self, env: Environment) -> None:
        out = env.render_str(
            "{% for x in items %}{{ x }}{% if not loop.last %},{% endif %}{% endfor %}",
            items=iter([1, 2, 3]),
        )
        assert out == "1,2,3"

    def test_length_unknown_for_iterators(self, env: Environment) -> None:
        out = env.render_str("{% for x in items %}{{ loop.length is undefined }}{% endfor %}", items=iter([1]))
        assert out == "true"

    def test_prev_and_next(self, env: Environment) -> None:
        out = env.render_str(
            "{% for x in [1, 2, 3] %}"
            "({{ loop.previtem|default('-') }},{{ loop.nextitem|default('-') }})"
            "{% endfor %}"
        )
        assert out == "(-,2)(1,3)(2,-)"

    def test_cycle(self, env: Environment) -> None:
        out = env.render_str("{% for x in [1, 2, 3] %}{{ loop.cycle('odd', 'even') }} {% endfor %}")
        assert out == "odd even odd "

    def test_changed(self, env: Environment) -> None:
        out = env.render_str(
            "{% for x in [1, 1, 2, 2, 1] %}{% if loop.changed(x) %}{{ x }}{% endif %}{% endfor %}"
        )
        assert out == "121"

    def test_unknown_method(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str("{% for x in [1] %}{{ loop.nope() }}{% endfor %}")
        assert exc_info.value.kind is ErrorKind.UNKNOWN_METHOD

    def test_nested_loops_see_innermost_loop(self, env: Environment) -> None:
        out = env.render_str(
            "{% for a in [1, 2] %}{% for b in 'xyz' %}{{ loop.length }}{% endfor %}"
            "{{ loop.length }}|{% endfor %}"
        )
        assert out == "3332|3332|"

    def test_outer_loop_via_assignment(self, env: Environment) -> None:
        out = env.render_str(
            "{% for a in [1, 2] %}{% set outer = loop %}"
            "{% for b in [1] %}{{ outer.index }}{% endfor %}{% endfor %}"
        )
        assert out == "12"


class TestRecursiveLoops:
    def test_recursive_statement(self, env: Environment) -> None:
        out = env.render_str(
            "{% for item in tree recursive %}{{ item.name }}"
            "{% if item.children %}[{{ loop(item.children) }}]{% endif %}"
            "{% endfor %}",
            tree=TREE,
        )
        assert out == "a[a1]b"

    def test_recursive_depth(self, env: Environment) -> None:
        out = env.render_str(
            "{% for item in tree recursive %}{{ item.name }}{{ loop.depth }}{{ loop.depth0 }} "
            "{{ loop(item.children) }}{% endfor %}",
            tree=TREE,
        )
        assert out == "a10 a121 b10 "

    def test_recursion_result_is_a_value(self, env: Environment) -> None:
        out = env.render_str(
            "{% for item in tree recursive %}{{ item.name }}"
            "{{ loop(item.children)|upper }}{% endfor %}",
            tree=[{"name": "p", "children": [{"name": "c", "children": []}]}],
        )
        assert out == "pC"

    def test_loop_call_outside_recursive_loop(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError, match="cannot recurse outside of recursive loop"):
            env.render_str("{% for x in [[1]] %}{{ loop(x) }}{% endfor %}")
