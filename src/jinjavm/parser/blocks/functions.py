"""Function block parsing for the jinjavm parser.

Provides mixin for parsing ``macro`` definitions and ``call`` blocks.
A call block is parsed into the call expression plus an anonymous macro
named ``caller`` holding the block body; code generation passes that macro
to the callee as the ``caller`` keyword argument.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinjavm._types import TokenType
from jinjavm.nodes import Call, CallBlock, Macro
from jinjavm.parser.blocks.special_blocks import _expr_name

if TYPE_CHECKING:
    from jinjavm._types import Span, Token
    from jinjavm.nodes import Expr, Node, Var
    from jinjavm.parser.errors import ParseError


class FunctionBlockParsingMixin:
    """Mixin for parsing function blocks.

    Required Host Attributes:
        - _in_macro: bool
        - All from TokenNavigationMixin
        - _subparse, _end_tag, _parse_assign_name: from StatementParsingMixin
        - _parse_expression: from ExpressionParsingMixin
    """

    if TYPE_CHECKING:
        _in_macro: bool

        def _match(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _skip(self, token_type: TokenType, value: str | None = None) -> bool: ...
        def _expect(self, token_type: TokenType, expected: str | None = None) -> Token: ...
        def _expand(self, span: Span) -> Span: ...
        def _error(
            self, message: str, token: Token | None = None, suggestion: str | None = None
        ) -> ParseError: ...
        def _subparse(self, *end_names: str) -> list[Node]: ...
        def _end_tag(self, name: str) -> Token: ...
        def _parse_assign_name(self) -> Var: ...
        def _parse_expression(self) -> Expr: ...

    def _parse_macro_args_and_defaults(self) -> tuple[list[Var], list[Expr]]:
        """Parse ``(a, b, c=1)``.

        Defaults apply to the trailing parameters, so once one parameter has
        a default every following one needs one too.
        """
        args: list[Var] = []
        defaults: list[Expr] = []
        self._expect(TokenType.PAREN_OPEN, "`(`")
        while not self._skip(TokenType.PAREN_CLOSE):
            if args:
                self._expect(TokenType.COMMA, "`,`")
                if self._skip(TokenType.PAREN_CLOSE):
                    break
            args.append(self._parse_assign_name())
            if self._skip(TokenType.ASSIGN):
                defaults.append(self._parse_expression())
            elif defaults:
                self._expect(TokenType.ASSIGN, "`=`")
        return args, defaults

    def _parse_macro_body(
        self, span: Span, name: str, args: list[Var], defaults: list[Expr], end: str
    ) -> Macro:
        self._expect(TokenType.BLOCK_END, "end of block")
        old_in_macro = self._in_macro
        self._in_macro = True
        try:
            body = self._subparse(end)
        finally:
            self._in_macro = old_in_macro
        self._end_tag(end)
        return Macro(self._expand(span), name, tuple(args), tuple(defaults), tuple(body))

    def _parse_macro(self, span: Span) -> Macro:
        """Parse ``{% macro name(args) %}...{% endmacro %}``."""
        name = self._parse_assign_name()
        args, defaults = self._parse_macro_args_and_defaults()
        return self._parse_macro_body(span, name.id, args, defaults, "endmacro")

    def _parse_call_block(self, span: Span) -> CallBlock:
        """Parse ``{% call(args) callee(...) %}...{% endcall %}``."""
        args: list[Var] = []
        defaults: list[Expr] = []
        if self._match(TokenType.PAREN_OPEN):
            args, defaults = self._parse_macro_args_and_defaults()
        call = self._parse_expression()
        if not isinstance(call, Call):
            raise self._error(
                f"expected call expression in call block, got {_expr_name(call)}"
            )
        macro_decl = self._parse_macro_body(span, "caller", args, defaults, "endcall")
        return CallBlock(self._expand(span), call, macro_decl)
