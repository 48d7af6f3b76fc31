"""Token stream navigation for the jinjavm parser."""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import Span, Token, TokenType
from jinjavm.environment.exceptions import TemplateSyntaxError
from jinjavm.parser.errors import ParseError, unexpected, unexpected_eof

if TYPE_CHECKING:
    from jinjavm.lexer import Lexer


class TokenNavigationMixin:
    """Cursor over the lazy token stream.

    The lexer is pulled one token ahead. A lexer error is held back until
    the parser actually looks at the position where it occurred, so that a
    failure after the last token the grammar needs is still reported in
    context.

    Required Host Attributes:
        - _lexer: Lexer
        - _cur: Token | None
        - _cur_error: TemplateSyntaxError | None
        - _last_span: Span
    """

    if TYPE_CHECKING:
        _lexer: Lexer
        _cur: Token | None
        _cur_error: TemplateSyntaxError | None
        _last_span: Span

    def _fetch(self) -> None:
        try:
            self._cur = self._lexer.next_token()
            self._cur_error = None
        except TemplateSyntaxError as exc:
            self._cur = None
            self._cur_error = exc

    @property
    def _current(self) -> Token | None:
        """The current token, or ``None`` at the end of input."""
        if self._cur_error is not None:
            raise self._cur_error
        return self._cur

    def _current_span(self) -> Span:
        tok = self._current
        return tok.span if tok is not None else self._last_span

    def _advance(self) -> Token | None:
        """Consume and return the current token."""
        tok = self._current
        if tok is not None:
            self._last_span = tok.span
        self._fetch()
        return tok

    def _match(self, token_type: TokenType, value: str | None = None) -> bool:
        tok = self._current
        if tok is None or tok.type is not token_type:
            return False
        return value is None or tok.value == value

    def _match_ident(self, *names: str) -> bool:
        tok = self._current
        return tok is not None and tok.type is TokenType.IDENT and tok.value in names

    def _skip(self, token_type: TokenType, value: str | None = None) -> bool:
        if self._match(token_type, value):
            self._advance()
            return True
        return False

    def _skip_ident(self, *names: str) -> bool:
        if self._match_ident(*names):
            self._advance()
            return True
        return False

    def _expect(self, token_type: TokenType, expected: str | None = None) -> Token:
        """Consume a token of ``token_type`` or raise a syntax error."""
        tok = self._advance()
        description = expected or str(token_type)
        if tok is None:
            raise unexpected_eof(description)
        if tok.type is not token_type:
            raise unexpected(tok, description, tok)
        return tok

    def _expect_ident(self, name: str, expected: str | None = None) -> Token:
        tok = self._advance()
        if tok is None:
            raise unexpected_eof(expected or name)
        if not tok.is_ident(name):
            raise unexpected(tok, expected or name, tok)
        return tok

    def _expand(self, span: Span) -> Span:
        """Extend ``span`` to the end of the last consumed token."""
        return span.expand_to(self._last_span)

    def _error(self, message: str, token: Token | None = None, suggestion: str | None = None) -> ParseError:
        if token is None:
            token = self._cur
        if token is None:
            return ParseError(message, span=self._last_span, suggestion=suggestion)
        return ParseError(message, token, suggestion=suggestion)
