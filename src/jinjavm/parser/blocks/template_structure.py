"""Template structure block parsing for the jinjavm parser.

Provides mixin for parsing template structure statements (block, extends,
include, import, from-import).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import TokenType
from jinjavm.nodes import Block, Extends, FromImport, Import, Include

if TYPE_CHECKING:
    from jinjavm._types import Span, Token
    from jinjavm.nodes import Expr, Node
    from jinjavm.parser.errors import ParseError


class TemplateStructureBlockParsingMixin:
    """Mixin for parsing template structure blocks.

    Required Host Attributes:
        - _in_macro: bool, set while a macro body is parsed
        - _blocks: set[str], block names seen so far in this template
        - All from TokenNavigationMixin
        - _subparse, _end_tag, _parse_assign_name: from StatementParsingMixin
        - _parse_expression: from ExpressionParsingMixin
    """

    if TYPE_CHECKING:
        _in_macro: bool
        _blocks: set[str]

        def _match(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _skip_ident(self, *names: str) -> bool: ...
        def _expect(self, token_type: TokenType, expected: str | None = None) -> Token: ...
        def _expect_ident(self, name: str, expected: str | None = None) -> Token: ...
        def _expand(self, span: Span) -> Span: ...
        def _error(
            self, message: str, token: Token | None = None, suggestion: str | None = None
        ) -> ParseError: ...
        def _subparse(self, *end_names: str) -> list[Node]: ...
        def _end_tag(self, name: str) -> Token: ...
        def _parse_assign_name(self) -> Expr: ...
        def _parse_expression(self) -> Expr: ...

    def _parse_block_tag(self, span: Span) -> Block:
        """Parse ``{% block name %}...{% endblock [name] %}``."""
        if self._in_macro:
            raise self._error("block tags in macros are not allowed")
        name_tok = self._expect(TokenType.IDENT, "identifier")
        name = name_tok.value
        if name in self._blocks:
            raise self._error(f"block '{name}' defined twice", name_tok)
        self._blocks.add(name)

        self._expect(TokenType.BLOCK_END, "end of block")
        body = self._subparse("endblock")
        self._end_tag("endblock")

        if self._match(TokenType.IDENT):
            end_tok = self._expect(TokenType.IDENT, "identifier")
            if end_tok.value != name:
                raise self._error(
                    f"mismatching name on block. Got `{end_tok.value}`, expected `{name}`",
                    end_tok,
                )

        return Block(self._expand(span), name, tuple(body))

    def _parse_extends(self, span: Span) -> Extends:
        """Parse ``{% extends "base.html" %}``."""
        name = self._parse_expression()
        return Extends(self._expand(span), name)

    def _parse_include(self, span: Span) -> Include:
        """Parse ``{% include "partial.html" [ignore missing] %}``.

        The name may evaluate to a list of candidates; the first one that
        exists is rendered.
        """
        name = self._parse_expression()
        ignore_missing = False
        if self._skip_ident("ignore"):
            self._expect_ident("missing")
            ignore_missing = True
        return Include(self._expand(span), name, ignore_missing)

    def _parse_import(self, span: Span) -> Import:
        """Parse ``{% import "macros.html" as m %}``."""
        expr = self._parse_expression()
        self._expect_ident("as")
        name = self._parse_assign_name()
        return Import(self._expand(span), expr, name)

    def _parse_from_import(self, span: Span) -> FromImport:
        """Parse ``{% from "macros.html" import a, b as c %}``."""
        expr = self._parse_expression()
        self._expect_ident("import")
        names: list[tuple[Expr, Expr | None]] = []
        while not self._match(TokenType.BLOCK_END):
            if names:
                self._expect(TokenType.COMMA, "`,`")
                if self._match(TokenType.BLOCK_END):
                    break
            name = self._parse_assign_name()
            alias = self._parse_assign_name() if self._skip_ident("as") else None
            names.append((name, alias))
        if not names:
            raise self._error("expected at least one name to import")
        return FromImport(self._expand(span), expr, tuple(names))
