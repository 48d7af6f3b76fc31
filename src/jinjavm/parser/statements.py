"""Statement parsing for the jinjavm parser.

``_subparse`` turns the token stream into a list of nodes until one of
the given end keywords appears right after a block start. The keyword is
left as the current token so that the caller can inspect and consume it
(``{% else %}`` and ``{% elif %}`` continue a statement instead of ending
it). The closing ``%}`` of every statement, end tags included, is consumed
by ``_subparse`` itself.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import Span, Token, TokenType
from jinjavm.environment.exceptions import closest_name
from jinjavm.nodes import EmitExpr, EmitRaw, List, Var
from jinjavm.parser.errors import unexpected_eof

if TYPE_CHECKING:
    from jinjavm.nodes import Expr, Node
    from jinjavm.parser.errors import ParseError

RESERVED_NAMES = frozenset({"true", "True", "false", "False", "none", "None", "loop", "self"})

# keyword -> parser method
_STATEMENTS: dict[str, str] = {
    "for": "_parse_for_stmt",
    "if": "_parse_if_cond",
    "with": "_parse_with_block",
    "set": "_parse_set",
    "autoescape": "_parse_auto_escape",
    "filter": "_parse_filter_block",
    "block": "_parse_block_tag",
    "extends": "_parse_extends",
    "include": "_parse_include",
    "import": "_parse_import",
    "from": "_parse_from_import",
    "macro": "_parse_macro",
    "call": "_parse_call_block",
    "do": "_parse_do",
}


class StatementParsingMixin:
    """Mixin for template bodies and statement dispatch.

    Host attributes and cross-mixin dependencies are declared in the
    TYPE_CHECKING block below.
    """

    if TYPE_CHECKING:
        _last_span: Span

        @property
        def _current(self) -> Token | None: ...
        def _current_span(self) -> Span: ...
        def _advance(self) -> Token | None: ...
        def _match(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _skip(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _expect(self, token_type: TokenType, expected: str | None = None) -> Token: ...
        def _expand(self, span: Span) -> Span: ...
        def _error(
            self, message: str, token: Token | None = None, suggestion: str | None = None
        ) -> ParseError: ...
        def _enter(self) -> None: ...
        def _leave(self) -> None: ...
        def _parse_expression(self) -> Expr: ...

    def _subparse(self, *end_names: str) -> list[Node]:
        """Parse template content until ``{% <end_name>`` or end of input.

        With end names given, running out of input is an error.
        """
        body: list[Node] = []
        while True:
            tok = self._advance()
            if tok is None:
                if end_names:
                    raise unexpected_eof(" or ".join(f"`{name}`" for name in end_names))
                return body
            if tok.type is TokenType.TEMPLATE_DATA:
                body.append(EmitRaw(tok.span, tok.value))
            elif tok.type is TokenType.VARIABLE_START:
                expr = self._parse_expression()
                body.append(EmitExpr(self._expand(tok.span), expr))
                self._expect(TokenType.VARIABLE_END, "end of variable block")
            elif tok.type is TokenType.BLOCK_START:
                cur = self._current
                if cur is None:
                    raise self._error("unexpected end of input, expected keyword")
                if cur.type is TokenType.IDENT and cur.value in end_names:
                    return body
                body.append(self._parse_stmt())
                self._expect(TokenType.BLOCK_END, "end of block")
            else:
                raise self._error(f"unexpected {tok}", tok)

    def _parse_stmt(self) -> Node:
        self._enter()
        try:
            tok = self._advance()
            if tok is None:
                raise unexpected_eof("block keyword")
            if tok.type is not TokenType.IDENT:
                raise self._error(f"unknown {tok}, expected statement", tok)
            method = _STATEMENTS.get(tok.value)
            if method is None:
                raise self._error(
                    f"unknown statement {tok.value}",
                    tok,
                    suggestion=closest_name(tok.value, _STATEMENTS),
                )
            return getattr(self, method)(tok.span)
        finally:
            self._leave()

    def _end_tag(self, name: str) -> Token:
        """Consume the end keyword ``_subparse`` stopped at."""
        tok = self._advance()
        assert tok is not None and tok.is_ident(name)
        return tok

    # -- assignment targets ------------------------------------------------------

    def _parse_assign_name(self) -> Var:
        tok = self._expect(TokenType.IDENT, "identifier")
        if tok.value in RESERVED_NAMES:
            raise self._error(f"cannot assign to reserved variable name {tok.value}", tok)
        return Var(tok.span, tok.value)

    def _parse_assignment(self) -> Expr:
        """Parse ``a``, ``a, b`` or ``(a, (b, c))`` as an unpacking target."""
        span = self._current_span()
        items: list[Expr] = []
        is_tuple = False
        while True:
            if items:
                self._expect(TokenType.COMMA, "`,`")
            tok = self._current
            if tok is None or tok.type in (
                TokenType.PAREN_CLOSE,
                TokenType.VARIABLE_END,
                TokenType.BLOCK_END,
            ) or tok.is_ident("in"):
                break
            if self._skip(TokenType.PAREN_OPEN):
                item = self._parse_assignment()
                self._expect(TokenType.PAREN_CLOSE, "`)`")
            else:
                item = self._parse_assign_name()
            items.append(item)
            if self._match(TokenType.COMMA):
                is_tuple = True
            else:
                break
        if not is_tuple and len(items) == 1:
            return items[0]
        return List(self._expand(span), tuple(items))
