"""Special block parsing for the jinjavm parser.

Provides mixin for parsing ``autoescape``, ``filter`` and ``do``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import TokenType
from jinjavm.nodes import AutoEscape, Call, Do, FilterBlock

if TYPE_CHECKING:
    from jinjavm._types import Span, Token
    from jinjavm.nodes import Expr, Node
    from jinjavm.parser.errors import ParseError


class SpecialBlockParsingMixin:
    """Mixin for parsing output-modifying and side-effect blocks.

    Required Host Attributes:
        - All from TokenNavigationMixin
        - _subparse, _end_tag: from StatementParsingMixin
        - _parse_expression, _parse_filter_chain: from ExpressionParsingMixin
    """

    if TYPE_CHECKING:
        def _expect(self, token_type: TokenType, expected: str | None = None) -> Token: ...
        def _expand(self, span: Span) -> Span: ...
        def _error(
            self, message: str, token: Token | None = None, suggestion: str | None = None
        ) -> ParseError: ...
        def _subparse(self, *end_names: str) -> list[Node]: ...
        def _end_tag(self, name: str) -> Token: ...
        def _parse_expression(self) -> Expr: ...
        def _parse_filter_chain(self) -> Expr: ...

    def _parse_auto_escape(self, span: Span) -> AutoEscape:
        """Parse ``{% autoescape expr %}...{% endautoescape %}``."""
        enabled = self._parse_expression()
        self._expect(TokenType.BLOCK_END, "end of block")
        body = self._subparse("endautoescape")
        self._end_tag("endautoescape")
        return AutoEscape(self._expand(span), enabled, tuple(body))

    def _parse_filter_block(self, span: Span) -> FilterBlock:
        """Parse ``{% filter upper|trim %}...{% endfilter %}``."""
        chain = self._parse_filter_chain()
        self._expect(TokenType.BLOCK_END, "end of block")
        body = self._subparse("endfilter")
        self._end_tag("endfilter")
        return FilterBlock(self._expand(span), chain, tuple(body))

    def _parse_do(self, span: Span) -> Do:
        """Parse ``{% do call(...) %}``; the result of the call is discarded."""
        expr = self._parse_expression()
        if not isinstance(expr, Call):
            raise self._error(f"expected call expression in do block, got {_expr_name(expr)}")
        return Do(self._expand(span), expr)


def _expr_name(expr: Expr) -> str:
    """Lower-case node name used in error messages (``getattr``, ``const``)."""
    return type(expr).__name__.lower()
