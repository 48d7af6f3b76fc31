"""Control flow block parsing for the jinjavm parser.

Provides mixin for parsing ``for`` loops and ``if``/``elif``/``else``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import TokenType
from jinjavm.nodes import ForLoop, IfCond

if TYPE_CHECKING:
    from jinjavm._types import Span, Token
    from jinjavm.nodes import Expr, Node


class ControlFlowBlockParsingMixin:
    """Mixin for parsing control flow blocks.

    Required Host Attributes:
        - All from TokenNavigationMixin
        - _subparse, _end_tag, _parse_assignment: from StatementParsingMixin
        - _parse_expression, _parse_expression_no_if: from ExpressionParsingMixin
    """

    if TYPE_CHECKING:
        def _advance(self) -> Token | None: ...
        def _skip_ident(self, *names: str) -> bool: ...
        def _expect(self, token_type: TokenType, expected: str | None = None) -> Token: ...
        def _expect_ident(self, name: str, expected: str | None = None) -> Token: ...
        def _expand(self, span: Span) -> Span: ...
        def _subparse(self, *end_names: str) -> list[Node]: ...
        def _end_tag(self, name: str) -> Token: ...
        def _parse_assignment(self) -> Expr: ...
        def _parse_expression(self) -> Expr: ...
        def _parse_expression_no_if(self) -> Expr: ...

    def _parse_for_stmt(self, span: Span) -> ForLoop:
        """Parse ``{% for target in iter [if cond] [recursive] %}...{% endfor %}``."""
        target = self._parse_assignment()
        self._expect_ident("in")
        iterable = self._parse_expression_no_if()
        filter_expr = None
        if self._skip_ident("if"):
            filter_expr = self._parse_expression()
        recursive = self._skip_ident("recursive")
        self._expect(TokenType.BLOCK_END, "end of block")

        body = self._subparse("endfor", "else")
        else_body: list[Node] = []
        if self._skip_ident("else"):
            self._expect(TokenType.BLOCK_END, "end of block")
            else_body = self._subparse("endfor")
        self._end_tag("endfor")

        return ForLoop(
            self._expand(span),
            target=target,
            iter=iterable,
            body=tuple(body),
            else_body=tuple(else_body),
            filter_expr=filter_expr,
            recursive=recursive,
        )

    def _parse_if_cond(self, span: Span) -> IfCond:
        """Parse ``{% if %}``; an ``elif`` becomes a nested ``IfCond`` in the false branch."""
        expr = self._parse_expression_no_if()
        self._expect(TokenType.BLOCK_END, "end of block")
        true_body = self._subparse("endif", "else", "elif")

        false_body: list[Node] = []
        tok = self._advance()
        assert tok is not None
        if tok.is_ident("else"):
            self._expect(TokenType.BLOCK_END, "end of block")
            false_body = self._subparse("endif")
            self._end_tag("endif")
        elif tok.is_ident("elif"):
            false_body = [self._parse_if_cond(tok.span)]

        return IfCond(self._expand(span), expr, tuple(true_body), tuple(false_body))
