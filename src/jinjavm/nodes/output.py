"""Output and escaping nodes for the jinjavm AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from jinjavm.nodes.base import Node
from jinjavm.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class EmitExpr(Node):
    """Output expression: {{ expr }}"""

    expr: Expr


@dataclass(frozen=True, slots=True)
class EmitRaw(Node):
    """Raw text data between template constructs."""

    raw: str


@dataclass(frozen=True, slots=True)
class AutoEscape(Node):
    """Control autoescaping: {% autoescape "html" %}...{% endautoescape %}"""

    enabled: Expr
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class FilterBlock(Node):
    """Apply filter to block: {% filter upper %}...{% endfilter %}"""

    filter: Expr
    body: Sequence[Node]
