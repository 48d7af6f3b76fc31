"""Variable and scoping nodes for the jinjavm AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from jinjavm.nodes.base import Node
from jinjavm.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class Set(Node):
    """Assignment: {% set x = expr %} or {% set a, b = pair %}"""

    target: Expr
    expr: Expr


@dataclass(frozen=True, slots=True)
class SetBlock(Node):
    """Block assignment: {% set x | filter %}...{% endset %}"""

    target: Expr
    body: Sequence[Node]
    filter: Expr | None = None


@dataclass(frozen=True, slots=True)
class WithBlock(Node):
    """Scoped assignments: {% with a=1, b=2 %}...{% endwith %}"""

    assignments: Sequence[tuple[Expr, Expr]]
    body: Sequence[Node]
