import pytest

from jinjavm import Environment, Markup, Undefined
from jinjavm.environment.tests import DEFAULT_TESTS


@pytest.mark.parametrize(
    ("value", "test_name", "args", "expected"),
    [
        (None, "defined", (), True),
        (Undefined, "defined", (), False),
        (Undefined, "undefined", (), True),
        (None, "none", (), True),
        (0, "none", (), False),
        (2, "odd", (), False),
        (3, "odd", (), True),
        (4, "even", (), True),
        (4.0, "even", (), True),
        (4.5, "even", (), False),
        ("4", "even", (), False),
        (6, "divisibleby", (3,), True),
        (7, "divisibleby", (3,), False),
        (6, "divisibleby", (0,), False),
        (1, "number", (), True),
        (1.5, "number", (), True),
        (True, "number", (), False),
        ("x", "string", (), True),
        ([1, 2], "sequence", (), True),
        ("ab", "sequence", (), False),
        ({}, "mapping", (), True),
        (Markup("x"), "safe", (), True),
        ("x", "escaped", (), False),
        ("foobar", "startingwith", ("foo",), True),
        ("foobar", "endingwith", ("bar",), True),
        (1, "eq", (1.0,), True),
        (1, "!=", (2,), True),
        (1, "lt", (2,), True),
        (2, "<=", (2,), True),
        (3, "greaterthan", (2,), True),
        (2, ">=", (3,), False),
        (2, "in", ([1, 2],), True),
        ("b", "in", ("abc",), True),
        (1, "in", (5,), False),
        (True, "true", (), True),
        (1, "true", (), False),
        (False, "false", (), True),
    ],
)
def test_builtin_tests(value, test_name, args, expected):
    assert DEFAULT_TESTS[test_name](value, *args) is expected


def test_aliases_share_callables() -> None:
    funcs = DEFAULT_TESTS
    assert funcs["eq"] is funcs["equalto"] is funcs["=="]
    assert funcs["gt"] is funcs["greaterthan"] is funcs[">"]
    assert funcs["lt"] is funcs["lessthan"] is funcs["<"]
    assert funcs["safe"] is funcs["escaped"]


class TestTestsInTemplates:
    def test_bare_argument(self, env: Environment) -> None:
        assert env.render_str("{{ 6 is divisibleby 3 }}") == "true"

    def test_parenthesised_argument(self, env: Environment) -> None:
        assert env.render_str("{{ 'abc' is startingwith('a') }}") == "true"

    def test_negation(self, env: Environment) -> None:
        assert env.render_str("{{ x is not defined }}") == "true"
        assert env.render_str("{{ 3 is not odd }}") == "false"

    def test_registry_tests(self, env: Environment) -> None:
        assert env.render_str("{{ 'lower' is filter }}") == "true"
        assert env.render_str("{{ 'nope' is filter }}") == "false"
        assert env.render_str("{{ 'odd' is test }}") == "true"

    def test_custom_test(self, env: Environment) -> None:
        env.add_test("prime", lambda n: n > 1 and all(n % i for i in range(2, n)))
        assert env.render_str("{{ 17 is prime }}|{{ 18 is prime }}") == "true|false"

    def test_custom_test_result_uses_truthiness(self, env: Environment) -> None:
        env.add_test("nonempty", lambda v: v)
        assert env.render_str("{% if [1] is nonempty %}yes{% endif %}") == "yes"

    def test_unknown_test_suggests(self, env: Environment) -> None:
        from jinjavm import ErrorKind, TemplateRuntimeError

        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str("{{ 1 is od }}")
        assert exc_info.value.kind is ErrorKind.UNKNOWN_TEST
        assert exc_info.value.suggestion == "odd"
