"""Tests for error kinds, messages and terminal diagnostics."""

from __future__ import annotations

import pytest

from jinjavm import (
    Environment,
    ErrorKind,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
)
from jinjavm.environment import terminal
from jinjavm.environment.exceptions import build_source_snippet, closest_name


class TestErrorKind:
    def test_codes_are_unique(self) -> None:
        codes = [kind.value for kind in ErrorKind]
        assert len(codes) == len(set(codes))

    @pytest.mark.parametrize(
        ("kind", "category"),
        [
            (ErrorKind.SYNTAX_ERROR, "syntax"),
            (ErrorKind.TEMPLATE_NOT_FOUND, "template"),
            (ErrorKind.INVALID_OPERATION, "runtime"),
            (ErrorKind.UNKNOWN_FILTER, "call"),
        ],
    )
    def test_category(self, kind: ErrorKind, category: str) -> None:
        assert kind.category == category

    def test_description(self) -> None:
        assert ErrorKind.INVALID_OPERATION.description == "invalid operation"
        assert ErrorKind.BAD_ESCAPE.description == "bad string escape"


class TestTemplateError:
    def test_str_without_location(self) -> None:
        err = TemplateRuntimeError("tried to divide")
        assert str(err) == "invalid operation: tried to divide"

    def test_str_with_location(self) -> None:
        err = TemplateRuntimeError("boom", name="page.html", lineno=3)
        assert str(err) == "invalid operation: boom (in page.html:3)"

    def test_str_without_detail(self) -> None:
        err = TemplateError(kind=ErrorKind.MISSING_ARGUMENT)
        assert str(err) == ErrorKind.MISSING_ARGUMENT.description

    def test_class_defaults(self) -> None:
        assert TemplateSyntaxError("x").kind is ErrorKind.SYNTAX_ERROR
        assert TemplateNotFoundError("x").kind is ErrorKind.TEMPLATE_NOT_FOUND
        assert UndefinedError().kind is ErrorKind.UNDEFINED_ERROR
        assert TemplateRuntimeError().code == "J-RUN-001"

    @pytest.mark.parametrize(
        ("kind", "cls"),
        [
            (ErrorKind.BAD_ESCAPE, TemplateSyntaxError),
            (ErrorKind.TEMPLATE_NOT_FOUND, TemplateNotFoundError),
            (ErrorKind.UNDEFINED_ERROR, UndefinedError),
            (ErrorKind.CANNOT_UNPACK, TemplateRuntimeError),
        ],
    )
    def test_from_kind(self, kind: ErrorKind, cls: type[TemplateError]) -> None:
        err = TemplateError.from_kind(kind, "detail")
        assert type(err) is cls
        assert err.kind is kind
        assert err.detail == "detail"

    def test_attach_location_only_once(self) -> None:
        err = TemplateRuntimeError("x")
        assert not err.has_location
        err.attach_location("a.txt", 2)
        err.attach_location("b.txt", 9)
        assert (err.name, err.lineno) == ("a.txt", 2)
        assert err.has_location


class TestFormatCompact:
    def test_header_and_location(self) -> None:
        with pytest.raises(TemplateError) as exc_info:
            Environment().render_str("a\n{{ 1 + 'x' }}")
        report = exc_info.value.format_compact()
        lines = report.splitlines()
        assert lines[0].startswith("J-RUN-001: invalid operation:")
        assert lines[1].startswith("  --> <string>:2:")

    def test_snippet_with_caret(self) -> None:
        env = Environment()
        env.add_template("page.txt", "line one\n{{ x|nope }}")
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.get_template("page.txt").render()
        report = exc_info.value.format_compact()
        assert "> 2 | {{ x|nope }}" in report
        assert " 1 | line one" in report
        assert "^" in report

    def test_hint(self) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            Environment().render_str("{{ 'a'|uper }}")
        assert "Hint: Did you mean 'upper'?" in exc_info.value.format_compact()

    def test_caused_by(self) -> None:
        try:
            try:
                raise TemplateRuntimeError("inner")
            except TemplateRuntimeError as inner:
                raise TemplateError("outer", kind=ErrorKind.BAD_INCLUDE) from inner
        except TemplateError as outer:
            report = outer.format_compact()
        assert "caused by:" in report
        assert report.index("outer") < report.index("inner")

    def test_colored_output(self) -> None:
        terminal.set_color_enabled(True)
        report = TemplateRuntimeError("x", name="t", lineno=1).format_compact()
        assert "\033[" in report
        assert terminal.strip_ansi(report).startswith("J-RUN-001: invalid operation: x")


class TestSourceSnippet:
    def test_context_lines(self) -> None:
        snippet = build_source_snippet("a\nb\nc\nd", 4)
        assert snippet.lines == ((2, "b"), (3, "c"), (4, "d"))
        assert snippet.error_line == 4

    def test_first_line(self) -> None:
        snippet = build_source_snippet("only", 1, column=2)
        assert snippet.lines == ((1, "only"),)
        assert "  ^" in snippet.format()


class TestClosestName:
    def test_match(self) -> None:
        assert closest_name("lenght", ["length", "lower"]) == "length"

    def test_no_match(self) -> None:
        assert closest_name("zzz", ["length"]) is None


class TestTerminal:
    def test_paint_disabled(self) -> None:
        assert terminal.paint("x", "red") == "x"

    def test_paint_enabled(self) -> None:
        terminal.set_color_enabled(True)
        assert terminal.paint("x", "red") == "\033[31mx\033[0m"

    def test_detect_respects_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        assert terminal.detect_color_support() is False
        monkeypatch.setenv("FORCE_COLOR", "1")
        assert terminal.detect_color_support() is True
