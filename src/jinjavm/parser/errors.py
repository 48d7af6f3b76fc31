"""Parser error handling for jinjavm.

``ParseError`` is the ``TemplateSyntaxError`` raised by the parser. It keeps
the offending token so that tools can point at it, and renders through the
shared ``format_compact()`` diagnostic (code, location, snippet, caret).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm.environment.exceptions import TemplateSyntaxError

if TYPE_CHECKING:
    from jinjavm._types import Span, Token


class ParseError(TemplateSyntaxError):
    """Syntax error with the token it was raised at."""

    def __init__(
        self,
        message: str,
        token: Token | None = None,
        *,
        span: Span | None = None,
        suggestion: str | None = None,
    ):
        if span is None and token is not None:
            span = token.span
        super().__init__(message, span=span, suggestion=suggestion)
        self.token = token


def unexpected(found: object, expected: str, token: Token | None = None) -> ParseError:
    """``unexpected {found}, expected {expected}``"""
    return ParseError(f"unexpected {found}, expected {expected}", token)


def unexpected_eof(expected: str) -> ParseError:
    return unexpected("end of input", expected)
