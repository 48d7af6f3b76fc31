"""Tests for the lexer: tokens, spans, whitespace control and delimiters."""

from __future__ import annotations

import pytest
from hypothesis import given, settings

from jinjavm import ErrorKind, SyntaxConfig, TemplateSyntaxError
from jinjavm._types import TokenType
from jinjavm.lexer import Lexer, tokenize, unescape

from ..strategies import arbitrary_template_source, plain_text


def _types(source: str, **kwargs) -> list[TokenType]:
    return [t.type for t in Lexer(source, **kwargs)]


def _values(source: str, **kwargs) -> list:
    return [t.value for t in Lexer(source, **kwargs)]


class TestBasicTokens:
    """Template data, tags and operators."""

    def test_plain_text(self) -> None:
        tokens = list(Lexer("Hello World"))
        assert len(tokens) == 1
        assert tokens[0].type is TokenType.TEMPLATE_DATA
        assert tokens[0].value == "Hello World"

    def test_empty_source(self) -> None:
        assert list(Lexer("")) == []

    def test_variable(self) -> None:
        assert _types("Hi {{ name }}") == [
            TokenType.TEMPLATE_DATA,
            TokenType.VARIABLE_START,
            TokenType.IDENT,
            TokenType.VARIABLE_END,
        ]

    def test_block(self) -> None:
        assert _types("{% if x %}") == [
            TokenType.BLOCK_START,
            TokenType.IDENT,
            TokenType.IDENT,
            TokenType.BLOCK_END,
        ]
        assert _values("{% if x %}") == [None, "if", "x", None]

    def test_literals(self) -> None:
        tokens = list(Lexer("{{ 42 3.5 1e3 'hi' \"there\" }}"))[1:-1]
        assert [(t.type, t.value) for t in tokens] == [
            (TokenType.INT, 42),
            (TokenType.FLOAT, 3.5),
            (TokenType.FLOAT, 1000.0),
            (TokenType.STRING, "hi"),
            (TokenType.STRING, "there"),
        ]

    def test_two_char_operators_win(self) -> None:
        assert _types("{{ a // b ** c == d != e >= f <= g }}")[1:-1] == [
            TokenType.IDENT,
            TokenType.FLOOR_DIV,
            TokenType.IDENT,
            TokenType.POW,
            TokenType.IDENT,
            TokenType.EQ,
            TokenType.IDENT,
            TokenType.NE,
            TokenType.IDENT,
            TokenType.GTE,
            TokenType.IDENT,
            TokenType.LTE,
            TokenType.IDENT,
        ]

    def test_braces_inside_variable(self) -> None:
        """A map literal's closing brace does not end the variable tag."""
        assert _types("{{ {'a': 1} }}") == [
            TokenType.VARIABLE_START,
            TokenType.BRACE_OPEN,
            TokenType.STRING,
            TokenType.COLON,
            TokenType.INT,
            TokenType.BRACE_CLOSE,
            TokenType.VARIABLE_END,
        ]

    def test_tokenize_function(self) -> None:
        assert [t.type for t in tokenize("{{ x }}")] == _types("{{ x }}")

    def test_in_expr_mode(self) -> None:
        """Standalone expressions start inside a variable block."""
        assert _types("a + 1", in_expr=True) == [
            TokenType.IDENT,
            TokenType.PLUS,
            TokenType.INT,
        ]

    def test_integer_too_large(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="invalid integer"):
            list(Lexer("{{ " + str(2**128) + " }}"))

    def test_u128_max_is_accepted(self) -> None:
        tokens = list(Lexer("{{ " + str(2**128 - 1) + " }}"))
        assert tokens[1].value == 2**128 - 1


class TestComments:
    def test_comment_is_dropped(self) -> None:
        assert _values("a{# note #}b") == ["a", "b"]

    def test_unterminated_comment(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="unexpected end of comment"):
            list(Lexer("a{# never closed"))

    def test_comment_trim_marker(self) -> None:
        assert _values("a{# x -#}   b") == ["a", "b"]


class TestSpans:
    """Tokens carry 1-based lines and 0-based columns and offsets."""

    def test_span_of_identifier(self) -> None:
        tokens = list(Lexer("ab\n{{ foo }}"))
        ident = tokens[2]
        assert ident.value == "foo"
        assert ident.span.start_line == 2
        assert ident.span.start_col == 3
        assert ident.span.start_offset == 6
        assert ident.span.end_offset == 9
        assert ident.lineno == 2

    def test_span_covers_text(self) -> None:
        source = "x {{ 'str' }} y"
        for token in Lexer(source):
            text = source[token.span.start_offset : token.span.end_offset]
            if token.type is TokenType.TEMPLATE_DATA:
                assert text == token.value
            elif token.type is TokenType.STRING:
                assert text == "'str'"

    @given(source=plain_text)
    @settings(max_examples=100)
    def test_plain_text_roundtrip(self, source: str) -> None:
        """Text without delimiters comes back as a single data token."""
        tokens = list(Lexer(source))
        assert [t.value for t in tokens] == [source]


class TestWhitespaceControl:
    def test_trim_before(self) -> None:
        assert _values("a   {{- x }}") == ["a", None, "x", None]

    def test_trim_after(self) -> None:
        assert _values("{{ x -}}  \n b") == [None, "x", None, "b"]

    def test_trim_block(self) -> None:
        assert _values("a \n{%- if x -%}\n b") == ["a", None, "if", "x", None, "b"]

    def test_whitespace_only_data_disappears(self) -> None:
        assert _types("{{ x -}}   {{- y }}") == [
            TokenType.VARIABLE_START,
            TokenType.IDENT,
            TokenType.VARIABLE_END,
            TokenType.VARIABLE_START,
            TokenType.IDENT,
            TokenType.VARIABLE_END,
        ]


class TestRawBlocks:
    def test_raw_content_is_data(self) -> None:
        tokens = list(Lexer("{% raw %}{{ not }}{% x %}{% endraw %}"))
        assert len(tokens) == 1
        assert tokens[0].type is TokenType.TEMPLATE_DATA
        assert tokens[0].value == "{{ not }}{% x %}"

    def test_raw_with_trim(self) -> None:
        assert _values("{% raw -%}  a  {%- endraw %}") == ["a"]

    def test_raw_trim_after_end(self) -> None:
        assert _values("{% raw %}a{% endraw -%}   b") == ["a", "b"]

    def test_unterminated_raw(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="unexpected end of raw block"):
            list(Lexer("{% raw %}forever"))


class TestStrings:
    def test_escapes(self) -> None:
        tokens = list(Lexer(r"{{ 'a\nb\té\'' }}"))
        assert tokens[1].value == "a\nb\té'"

    def test_unterminated_string(self) -> None:
        with pytest.raises(TemplateSyntaxError, match="unexpected end of string"):
            list(Lexer("{{ 'abc }}"))

    def test_bad_escape_kind(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            list(Lexer(r"{{ 'a\qb' }}"))
        assert exc_info.value.kind is ErrorKind.BAD_ESCAPE
        assert exc_info.value.span is not None

    def test_lexer_latches_after_error(self) -> None:
        lexer = Lexer("{{ 'abc")
        with pytest.raises(TemplateSyntaxError):
            list(lexer)
        assert lexer.failed
        assert lexer.next_token() is None


class TestUnescape:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (r"plain", "plain"),
            (r"\"", '"'),
            (r"\\", "\\"),
            (r"\/", "/"),
            (r"\b\f\n\r\t", "\b\f\n\r\t"),
            (r"\u0041", "A"),
            (r"\ud83d\ude00", "\U0001f600"),
        ],
    )
    def test_valid(self, raw: str, expected: str) -> None:
        assert unescape(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [r"\x41", "trailing\\", r"\u12", r"\ud83d", r"\ude00", r"\ud83dx"],
    )
    def test_invalid(self, raw: str) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            unescape(raw)
        assert exc_info.value.kind is ErrorKind.BAD_ESCAPE


class TestCustomDelimiters:
    def test_custom_markers(self) -> None:
        syntax = SyntaxConfig(
            block_start="<%",
            block_end="%>",
            variable_start="${",
            variable_end="}",
            comment_start="<#",
            comment_end="#>",
        )
        tokens = list(Lexer("<% if a %>${ b }<# c #>{{ d }}", syntax))
        assert [t.type for t in tokens] == [
            TokenType.BLOCK_START,
            TokenType.IDENT,
            TokenType.IDENT,
            TokenType.BLOCK_END,
            TokenType.VARIABLE_START,
            TokenType.IDENT,
            TokenType.VARIABLE_END,
            TokenType.TEMPLATE_DATA,
        ]
        assert tokens[-1].value == "{{ d }}"

    def test_empty_marker_rejected(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            SyntaxConfig(variable_start="")
        assert exc_info.value.kind is ErrorKind.INVALID_DELIMITER

    def test_overlapping_markers_rejected(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            SyntaxConfig(block_start="{{")
        assert exc_info.value.kind is ErrorKind.INVALID_DELIMITER

    def test_prefix_markers_rejected(self) -> None:
        with pytest.raises(TemplateSyntaxError):
            SyntaxConfig(block_start="<", variable_start="<<", comment_start="{#")


class TestRobustness:
    @given(source=arbitrary_template_source)
    @settings(max_examples=300)
    def test_never_crashes(self, source: str) -> None:
        """Arbitrary input either tokenizes or raises a syntax error."""
        try:
            for token in Lexer(source):
                assert token.span.start_offset <= token.span.end_offset <= len(source)
        except TemplateSyntaxError:
            pass
