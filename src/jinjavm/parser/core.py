"""Parser for jinjavm templates.

``Parser`` pulls tokens from a ``Lexer`` one at a time and builds the
immutable AST from ``jinjavm.nodes``. It is assembled from mixins:

- ``TokenNavigationMixin``: cursor, ``_expect``/``_skip`` helpers, spans
- ``ExpressionParsingMixin``: the expression grammar
- ``StatementParsingMixin``: template bodies and statement dispatch
- ``*BlockParsingMixin``: one mixin per family of ``{% ... %}`` tags

Errors raised anywhere below are ``TemplateSyntaxError``; before leaving
the parser they receive the template name, source and the location of
the last token seen, unless they already carry one.
"""

from __future__ import annotations

from jinjavm._types import DEFAULT_SYNTAX, Span, SyntaxConfig, Token
from jinjavm.environment.exceptions import TemplateSyntaxError
from jinjavm.lexer import Lexer
from jinjavm.nodes import Expr, Template
from jinjavm.parser.blocks import (
    ControlFlowBlockParsingMixin,
    FunctionBlockParsingMixin,
    SpecialBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
    VariableBlockParsingMixin,
)
from jinjavm.parser.expressions import ExpressionParsingMixin
from jinjavm.parser.statements import StatementParsingMixin
from jinjavm.parser.tokens import TokenNavigationMixin

_INITIAL_SPAN = Span(1, 0, 0, 1, 0, 0)


class Parser(
    TokenNavigationMixin,
    ExpressionParsingMixin,
    StatementParsingMixin,
    ControlFlowBlockParsingMixin,
    VariableBlockParsingMixin,
    SpecialBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
    FunctionBlockParsingMixin,
):
    """Recursive descent parser over a lazy token stream.

    Args:
        source: Template source (or a bare expression with ``in_expr``).
        name: Template name used in error locations.
        syntax: Delimiter configuration for the lexer.
        in_expr: Parse a standalone expression instead of a template.

    Example:
        >>> Parser("Hello {{ name }}!", "hello.txt").parse()
        Template(span=..., children=(EmitRaw(...), EmitExpr(...), EmitRaw(...)))
    """

    __slots__ = (
        "_blocks",
        "_cur",
        "_cur_error",
        "_depth",
        "_in_macro",
        "_last_span",
        "_lexer",
        "_name",
        "_source",
    )

    def __init__(
        self,
        source: str,
        name: str = "<string>",
        syntax: SyntaxConfig = DEFAULT_SYNTAX,
        *,
        in_expr: bool = False,
    ):
        self._source = source
        self._name = name
        self._lexer = Lexer(source, syntax, in_expr=in_expr)
        self._cur: Token | None = None
        self._cur_error: TemplateSyntaxError | None = None
        self._last_span = _INITIAL_SPAN
        self._depth = 0
        self._in_macro = False
        self._blocks: set[str] = set()
        self._fetch()

    def parse(self) -> Template:
        """Parse the whole template."""
        span = self._last_span
        try:
            children = self._subparse()
        except TemplateSyntaxError as exc:
            self._attach(exc)
            raise
        return Template(self._expand(span), tuple(children))

    def parse_standalone_expression(self) -> Expr:
        """Parse a single expression that must consume the whole input."""
        try:
            expr = self._parse_expression()
            if self._current is not None:
                raise self._error("unexpected input after expression")
        except TemplateSyntaxError as exc:
            self._attach(exc)
            raise
        return expr

    def _attach(self, exc: TemplateSyntaxError) -> None:
        span = exc.span if exc.span is not None else self._last_span
        exc.attach_location(self._name, span.start_line, span, self._source)


def parse(
    source: str,
    name: str = "<string>",
    syntax: SyntaxConfig = DEFAULT_SYNTAX,
    keep_trailing_newline: bool = False,
) -> Template:
    """Parse template source into a ``Template`` node.

    Unless ``keep_trailing_newline`` is set, a single trailing newline is
    removed first so that templates stored in files render without one.
    """
    if not keep_trailing_newline:
        source = source.removesuffix("\n").removesuffix("\r")
    return Parser(source, name, syntax).parse()


def parse_expr(source: str, syntax: SyntaxConfig = DEFAULT_SYNTAX) -> Expr:
    """Parse a standalone expression such as ``user.age >= 18``."""
    return Parser(source, "<expression>", syntax, in_expr=True).parse_standalone_expression()
