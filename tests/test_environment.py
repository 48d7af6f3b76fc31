"""Environment configuration, registries and template management."""

from __future__ import annotations

import pytest

from jinjavm import (
    AutoEscape,
    CustomEscape,
    DictLoader,
    Environment,
    ErrorKind,
    Expression,
    Markup,
    SyntaxConfig,
    Template,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    pass_state,
)
from jinjavm.environment.core import default_auto_escape_callback


class TestTemplateRegistry:
    def test_add_and_get(self, env: Environment) -> None:
        env.add_template("hello.txt", "Hello {{ name }}!")
        tmpl = env.get_template("hello.txt")
        assert isinstance(tmpl, Template)
        assert tmpl.name == "hello.txt"
        assert tmpl.source == "Hello {{ name }}!"
        assert tmpl.render(name="World") == "Hello World!"
        assert repr(tmpl) == "<Template 'hello.txt'>"

    def test_syntax_errors_surface_when_added(self, env: Environment) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            env.add_template("bad.txt", "line\n{% if %}")
        assert exc_info.value.name == "bad.txt"
        assert exc_info.value.lineno == 2

    def test_replace_template(self, env: Environment) -> None:
        env.add_template("t.txt", "one")
        env.add_template("t.txt", "two")
        assert env.get_template("t.txt").render() == "two"

    def test_remove_template(self, env: Environment) -> None:
        env.add_template("t.txt", "x")
        env.remove_template("t.txt")
        with pytest.raises(TemplateNotFoundError):
            env.get_template("t.txt")

    def test_clear_templates(self, env: Environment) -> None:
        env.add_template("a.txt", "a")
        env.clear_templates()
        assert env.list_templates() == []

    def test_not_found_suggests_name(self, env: Environment) -> None:
        env.add_template("index.html", "")
        with pytest.raises(TemplateNotFoundError) as exc_info:
            env.get_template("indx.html")
        assert exc_info.value.kind is ErrorKind.TEMPLATE_NOT_FOUND
        assert exc_info.value.suggestion == "index.html"

    def test_list_templates_merges_loader(self) -> None:
        env = Environment(loader=DictLoader({"b.txt": "", "c.txt": ""}))
        env.add_template("a.txt", "")
        assert env.list_templates() == ["a.txt", "b.txt", "c.txt"]

    def test_loaded_templates_are_cached(self) -> None:
        calls = []

        def load(name: str) -> str:
            calls.append(name)
            return "loaded"

        env = Environment(loader=load)
        assert env.get_template("x.txt") is env.get_template("x.txt")
        assert calls == ["x.txt"]

    def test_registered_template_wins_over_loader(self) -> None:
        env = Environment(loader=DictLoader({"t.txt": "loader"}))
        env.add_template("t.txt", "registered")
        assert env.get_template("t.txt").render() == "registered"


class TestRendering:
    def test_render_with_mapping(self, env: Environment) -> None:
        tmpl = env.template_from_str("{{ a }}{{ b }}")
        assert tmpl.render({"a": 1}, b=2) == "12"
        assert tmpl.render(None) == ""

    def test_render_rejects_extra_positionals(self, env: Environment) -> None:
        with pytest.raises(TypeError, match="at most 1 positional argument"):
            env.template_from_str("").render({}, {})

    def test_host_objects(self, env: Environment) -> None:
        class User:
            def __init__(self) -> None:
                self.name = "ann"
                self._secret = "hidden"

        assert env.render_str("{{ u.name }}[{{ u._secret }}]", u=User()) == "ann[]"

    def test_trailing_newline_dropped(self, env: Environment) -> None:
        assert env.render_str("a\n") == "a"

    def test_keep_trailing_newline(self) -> None:
        env = Environment(keep_trailing_newline=True)
        assert env.render_str("a\n") == "a\n"

    def test_custom_syntax(self) -> None:
        env = Environment(syntax=SyntaxConfig(variable_start="${", variable_end="}"))
        assert env.render_str("${ a }{{ b }}", a=1) == "1{{ b }}"

    def test_raw_block(self, env: Environment) -> None:
        assert env.render_str("{% raw %}{{ x }}{% endraw %}") == "{{ x }}"

    def test_eval_to_state(self, env: Environment) -> None:
        state = env.template_from_str("{% set title = 'Home' %}").eval_to_state()
        assert state.lookup("title") == "Home"
        assert state.name == "<string>"


class TestStatements:
    def test_set(self, env: Environment) -> None:
        assert env.render_str("{% set x = 1 + 2 %}{{ x }}") == "3"

    def test_set_unpacking(self, env: Environment) -> None:
        assert env.render_str("{% set (a, b) = [1, 2] %}{{ b }}{{ a }}") == "21"

    def test_set_block(self, env: Environment) -> None:
        assert env.render_str("{% set x %}<{{ 1 }}>{% endset %}[{{ x }}]") == "[<1>]"

    def test_set_block_with_filter(self, env: Environment) -> None:
        assert env.render_str("{% set x | upper | trim %} abc {% endset %}{{ x }}") == "ABC"

    def test_with_block(self, env: Environment) -> None:
        out = env.render_str("{% with a = 1, b = 2 %}{{ a + b }}{% endwith %}[{{ a }}]")
        assert out == "3[]"

    def test_filter_block(self, env: Environment) -> None:
        assert env.render_str("{% filter upper %}abc{{ 'd' }}{% endfilter %}") == "ABCD"

    def test_do(self, env: Environment) -> None:
        seen = []
        env.add_global("record", lambda value: seen.append(value))
        assert env.render_str("{% do record(42) %}") == ""
        assert seen == [42]

    def test_if_elif_else(self, env: Environment) -> None:
        source = "{% if x == 1 %}one{% elif x == 2 %}two{% else %}many{% endif %}"
        assert [env.render_str(source, x=n) for n in (1, 2, 3)] == ["one", "two", "many"]

    def test_inline_if(self, env: Environment) -> None:
        assert env.render_str("{{ 'y' if ok else 'n' }}", ok=True) == "y"
        assert env.render_str("[{{ 'y' if ok }}]", ok=False) == "[]"


class TestRegistries:
    def test_filters_are_dict_like(self, env: Environment) -> None:
        assert "upper" in env.filters
        env.filters["shout"] = lambda v: f"{v}!"
        assert env.render_str("{{ 'a'|shout }}") == "a!"
        del env.filters["shout"]
        assert "shout" not in env.filters

    def test_update(self, env: Environment) -> None:
        env.tests.update({"big": lambda v: v > 100})
        assert env.render_str("{{ 1000 is big }}") == "true"

    def test_copy_on_write(self, env: Environment) -> None:
        before = env.filters.copy()
        env.add_filter("new", lambda v: v)
        assert "new" not in before

    def test_pass_state(self, env: Environment) -> None:
        @pass_state
        def template_name(state, value):
            return f"{state.name}:{value}"

        env.add_filter("where", template_name)
        env.add_template("t.txt", "{{ 1|where }}")
        assert env.get_template("t.txt").render() == "t.txt:1"

    def test_filter_errors_propagate(self, env: Environment) -> None:
        def boom(value):
            raise ValueError("host failure")

        env.add_filter("boom", boom)
        with pytest.raises(ValueError, match="host failure"):
            env.render_str("{{ 1|boom }}")

    def test_missing_filter_argument(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str("{{ 'a'|replace('a') }}")
        assert exc_info.value.kind is ErrorKind.MISSING_ARGUMENT


class TestGlobals:
    def test_global_value(self, env: Environment) -> None:
        env.add_global("site", "jinjavm")
        assert env.render_str("{{ site }}") == "jinjavm"

    def test_context_shadows_global(self, env: Environment) -> None:
        env.add_global("site", "global")
        assert env.render_str("{{ site }}", site="ctx") == "ctx"

    def test_global_function(self, env: Environment) -> None:
        env.add_global("greet", lambda name, punct="!": f"hi {name}{punct}")
        assert env.render_str("{{ greet('a') }} {{ greet('b', punct='?') }}") == "hi a! hi b?"
        assert env.render_str("{{ greet }}") == "<function greet>"

    def test_remove_global(self, env: Environment) -> None:
        env.add_global("x", 1)
        env.remove_global("x")
        assert env.render_str("[{{ x }}]") == "[]"

    def test_unknown_function(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str("{{ nope() }}")
        assert exc_info.value.kind is ErrorKind.UNKNOWN_FUNCTION

    def test_calling_a_non_callable(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError, match="is not callable"):
            env.render_str("{{ x() }}", x=1)

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{{ range(3) }}", "[0, 1, 2]"),
            ("{{ range(1, 4) }}", "[1, 2, 3]"),
            ("{{ range(10, 0, -3) }}", "[10, 7, 4, 1]"),
            ("{{ range(0) }}", "[]"),
        ],
    )
    def test_range(self, env: Environment, source: str, expected: str) -> None:
        assert env.render_str(source) == expected

    def test_range_limits(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError, match="too many elements"):
            env.render_str("{{ range(100000) }}")
        with pytest.raises(TemplateRuntimeError, match="step of 0"):
            env.render_str("{{ range(1, 2, 0) }}")
        with pytest.raises(TemplateRuntimeError, match="range expects integers"):
            env.render_str("{{ range('a') }}")

    def test_dict(self, env: Environment) -> None:
        assert env.render_str("{{ dict(a=1, b='x') }}") == '{"a": 1, "b": "x"}'
        assert env.render_str("{{ dict(m, c=3) }}", m={"a": 1}) == '{"a": 1, "c": 3}'

    def test_dict_of_non_mapping(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError, match="cannot convert value of type sequence"):
            env.render_str("{{ dict([1]) }}")


class TestAutoEscape:
    @pytest.mark.parametrize(
        ("name", "mode"),
        [
            ("page.html", AutoEscape.HTML),
            ("feed.xml", AutoEscape.HTML),
            ("data.json", AutoEscape.JSON),
            ("conf.yml", AutoEscape.JSON),
            ("notes.txt", AutoEscape.NONE),
            ("noextension", AutoEscape.NONE),
            ("page.min.html", AutoEscape.NONE),
            ("archive.tar.json", AutoEscape.NONE),
        ],
    )
    def test_default_callback(self, name: str, mode: AutoEscape) -> None:
        assert default_auto_escape_callback(name) is mode

    def test_html_escaping(self, env: Environment) -> None:
        env.add_template("t.html", "{{ v }}|{{ safe }}")
        out = env.get_template("t.html").render(v="<a href='x'>", safe=Markup("<br>"))
        assert out == "&lt;a href=&#x27;x&#x27;&gt;|<br>"

    def test_raw_text_is_not_escaped(self, env: Environment) -> None:
        env.add_template("t.html", "<p>{{ '&' }}</p>")
        assert env.get_template("t.html").render() == "<p>&amp;</p>"

    def test_json_mode(self, env: Environment) -> None:
        env.add_template("t.json", '{"name": {{ name }}, "tags": {{ tags }}}')
        out = env.get_template("t.json").render(name='a"b', tags=["x", 1])
        assert out == '{"name": "a\\"b", "tags": ["x",1]}'

    def test_autoescape_tag(self, env: Environment) -> None:
        source = "{% autoescape true %}{{ v }}{% endautoescape %}{{ v }}"
        assert env.render_str(source, v="<") == "&lt;<"

    def test_autoescape_tag_disables(self, env: Environment) -> None:
        env.add_template("t.html", "{% autoescape 'none' %}{{ v }}{% endautoescape %}{{ v }}")
        assert env.get_template("t.html").render(v="<") == "<&lt;"

    def test_autoescape_tag_by_name(self, env: Environment) -> None:
        assert env.render_str("{% autoescape 'json' %}{{ v }}{% endautoescape %}", v="a") == '"a"'

    def test_autoescape_tag_rejects_unknown_mode(self, env: Environment) -> None:
        with pytest.raises(TemplateRuntimeError, match="invalid value to autoescape tag"):
            env.render_str("{% autoescape 'yaml' %}{% endautoescape %}")

    @pytest.mark.parametrize("value", ["false", "42", "none", "['html']"])
    def test_autoescape_tag_rejects_non_strings(self, env: Environment, value: str) -> None:
        source = "{% autoescape " + value + " %}{{ '<a>' }}{% endautoescape %}"
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str(source)
        assert "invalid value to autoescape tag" in str(exc_info.value)
        assert exc_info.value.kind is ErrorKind.INVALID_OPERATION

    def test_custom_callback_and_escaper(self) -> None:
        env = Environment(
            auto_escape_callback=lambda name: CustomEscape("shout"),
            custom_escapers={"shout": lambda value: str(value).upper()},
        )
        assert env.render_str("{{ v }}", v="hi") == "HI"

    def test_custom_escape_without_escaper(self) -> None:
        env = Environment(auto_escape_callback=lambda name: CustomEscape("latex"))
        with pytest.raises(TemplateRuntimeError, match="no escaper registered") as exc_info:
            env.render_str("{{ v }}", v="x")
        assert exc_info.value.kind is ErrorKind.INVALID_OPERATION

    def test_custom_formatter(self) -> None:
        def formatter(out, state, value):
            out.write(f"<{value}>")

        env = Environment(formatter=formatter)
        assert env.render_str("{{ 1 }}{{ 'a' }}") == "<1><a>"


class TestExpressions:
    def test_compile_expression(self, env: Environment) -> None:
        expr = env.compile_expression("age >= 18")
        assert isinstance(expr, Expression)
        assert expr.eval(age=21) is True
        assert expr.eval({"age": 3}) is False
        assert expr.source == "age >= 18"

    def test_expression_with_filters(self, env: Environment) -> None:
        expr = env.compile_expression("items|map('upper')|join(',')")
        assert expr.eval(items=["a", "b"]) == "A,B"

    def test_expression_returns_values(self, env: Environment) -> None:
        assert env.compile_expression("[1, x]").eval(x=2) == [1, 2]

    def test_power_chains_left_to_right(self, env: Environment) -> None:
        assert env.compile_expression("2 ** 3 ** 2").eval() == 64
        assert env.render_str("{{ 2 ** 3 ** 2 }}") == "64"

    def test_expression_syntax_error(self, env: Environment) -> None:
        with pytest.raises(TemplateSyntaxError):
            env.compile_expression("1 +")

    def test_trailing_input_rejected(self, env: Environment) -> None:
        with pytest.raises(TemplateSyntaxError, match="unexpected input after expression"):
            env.compile_expression("a b")


class TestRecursionLimit:
    def test_custom_limit(self) -> None:
        env = Environment(recursion_limit=30)
        source = "{% macro m(n) %}{% if n %}{{ m(n - 1) }}{% endif %}{% endmacro %}{{ m(depth) }}"
        assert env.render_str(source, depth=2) == ""
        with pytest.raises(TemplateRuntimeError, match="recursion limit exceeded"):
            env.render_str(source, depth=50)
