"""Shared lexer types: spans, tokens and delimiter configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from jinjavm.environment.exceptions import ErrorKind, TemplateSyntaxError


@dataclass(frozen=True, slots=True)
class Span:
    """Source range of a token or node.

    Lines are 1-based, columns and offsets 0-based. Offsets count
    characters, so ``source[span.start_offset:span.end_offset]`` is the
    covered text.
    """

    start_line: int
    start_col: int
    start_offset: int
    end_line: int
    end_col: int
    end_offset: int

    def expand_to(self, other: Span) -> Span:
        """Return a span from this span's start to ``other``'s end."""
        return Span(
            self.start_line,
            self.start_col,
            self.start_offset,
            other.end_line,
            other.end_col,
            other.end_offset,
        )

    def __str__(self) -> str:
        return f" @ {self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


class TokenType(Enum):
    """Token types. The value is the human readable name used in errors."""

    TEMPLATE_DATA = "template-data"
    VARIABLE_START = "start of variable block"
    VARIABLE_END = "end of variable block"
    BLOCK_START = "start of block"
    BLOCK_END = "end of block"

    IDENT = "identifier"
    STRING = "string"
    INT = "integer"
    FLOAT = "float"

    PLUS = "`+`"
    MINUS = "`-`"
    MUL = "`*`"
    DIV = "`/`"
    FLOOR_DIV = "`//`"
    POW = "`**`"
    MOD = "`%`"
    BANG = "`!`"
    DOT = "`.`"
    COMMA = "`,`"
    COLON = "`:`"
    TILDE = "`~`"
    ASSIGN = "`=`"
    PIPE = "`|`"
    EQ = "`==`"
    NE = "`!=`"
    GT = "`>`"
    GTE = "`>=`"
    LT = "`<`"
    LTE = "`<=`"
    BRACKET_OPEN = "`[`"
    BRACKET_CLOSE = "`]`"
    PAREN_OPEN = "`(`"
    PAREN_CLOSE = "`)`"
    BRACE_OPEN = "`{`"
    BRACE_CLOSE = "`}`"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Token:
    """A lexed token.

    ``value`` holds the payload for literals and identifiers (``str`` for
    template data, identifiers and strings, ``int``/``float`` for numbers)
    and is ``None`` for operators and delimiters.
    """

    type: TokenType
    value: Any
    span: Span

    @property
    def lineno(self) -> int:
        return self.span.start_line

    @property
    def col_offset(self) -> int:
        return self.span.start_col

    def is_ident(self, name: str | None = None) -> bool:
        if self.type is not TokenType.IDENT:
            return False
        return name is None or self.value == name

    def __str__(self) -> str:
        return str(self.type)


@dataclass(frozen=True, slots=True)
class SyntaxConfig:
    """Delimiter configuration.

    The three start markers must be non-empty and distinct, and none may be
    a prefix of another, so that the lexer can always tell which kind of tag
    starts at a position. End markers may be shared.

    Example:
        >>> cfg = SyntaxConfig(variable_start="${", variable_end="}")
        >>> SyntaxConfig(block_start="{{")
        Traceback (most recent call last):
        ...
        jinjavm.environment.exceptions.TemplateSyntaxError: invalid custom delimiters: ...
    """

    block_start: str = "{%"
    block_end: str = "%}"
    variable_start: str = "{{"
    variable_end: str = "}}"
    comment_start: str = "{#"
    comment_end: str = "#}"

    def __post_init__(self) -> None:
        markers = (
            self.block_start,
            self.block_end,
            self.variable_start,
            self.variable_end,
            self.comment_start,
            self.comment_end,
        )
        if not all(markers):
            raise TemplateSyntaxError(
                "delimiters must not be empty", kind=ErrorKind.INVALID_DELIMITER
            )
        starts = (self.block_start, self.variable_start, self.comment_start)
        for i, a in enumerate(starts):
            for b in starts[i + 1 :]:
                if a.startswith(b) or b.startswith(a):
                    raise TemplateSyntaxError(
                        f"start delimiters {a!r} and {b!r} overlap",
                        kind=ErrorKind.INVALID_DELIMITER,
                    )


DEFAULT_SYNTAX = SyntaxConfig()
