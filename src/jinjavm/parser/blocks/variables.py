"""Variable block parsing for the jinjavm parser.

Provides mixin for parsing ``set`` (expression and block forms) and
``with`` scopes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import TokenType
from jinjavm.nodes import Set, SetBlock, WithBlock

if TYPE_CHECKING:
    from jinjavm._types import Span, Token
    from jinjavm.nodes import Expr, Node


class VariableBlockParsingMixin:
    """Mixin for parsing variable assignment blocks.

    Required Host Attributes:
        - All from TokenNavigationMixin
        - _subparse, _end_tag, _parse_assign_name, _parse_assignment:
          from StatementParsingMixin
        - _parse_expression, _parse_filter_chain: from ExpressionParsingMixin
    """

    if TYPE_CHECKING:
        def _match(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _skip(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _expect(self, token_type: TokenType, expected: str | None = None) -> Token: ...
        def _expand(self, span: Span) -> Span: ...
        def _subparse(self, *end_names: str) -> list[Node]: ...
        def _end_tag(self, name: str) -> Token: ...
        def _parse_assign_name(self) -> Expr: ...
        def _parse_assignment(self) -> Expr: ...
        def _parse_expression(self) -> Expr: ...
        def _parse_filter_chain(self) -> Expr: ...

    def _parse_set(self, span: Span) -> Set | SetBlock:
        """Parse ``{% set x = expr %}``, ``{% set (a, b) = expr %}`` or the block form.

        ``{% set x %}...{% endset %}`` captures its body; ``{% set x | upper %}``
        additionally pipes the captured string through a filter chain.
        """
        if self._skip(TokenType.PAREN_OPEN):
            target = self._parse_assignment()
            self._expect(TokenType.PAREN_CLOSE, "`)`")
        else:
            target = self._parse_assign_name()
            if self._match(TokenType.BLOCK_END) or self._match(TokenType.PIPE):
                return self._parse_set_block(span, target)

        self._expect(TokenType.ASSIGN, "assignment operator")
        expr = self._parse_expression()
        return Set(self._expand(span), target, expr)

    def _parse_set_block(self, span: Span, target: Expr) -> SetBlock:
        filter_expr = None
        if self._skip(TokenType.PIPE):
            filter_expr = self._parse_filter_chain()
        self._expect(TokenType.BLOCK_END, "end of block")
        body = self._subparse("endset")
        self._end_tag("endset")
        return SetBlock(self._expand(span), target, tuple(body), filter_expr)

    def _parse_with_block(self, span: Span) -> WithBlock:
        """Parse ``{% with a = 1, (b, c) = pair %}...{% endwith %}``."""
        assignments: list[tuple[Expr, Expr]] = []
        while not self._match(TokenType.BLOCK_END):
            if assignments:
                self._expect(TokenType.COMMA, "`,`")
            if self._skip(TokenType.PAREN_OPEN):
                target = self._parse_assignment()
                self._expect(TokenType.PAREN_CLOSE, "`)`")
            else:
                target = self._parse_assign_name()
            self._expect(TokenType.ASSIGN, "assignment operator")
            assignments.append((target, self._parse_expression()))
        self._expect(TokenType.BLOCK_END, "end of block")
        body = self._subparse("endwith")
        self._end_tag("endwith")
        return WithBlock(self._expand(span), tuple(assignments), tuple(body))
