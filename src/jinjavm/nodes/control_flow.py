"""Control flow nodes for the jinjavm AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from jinjavm.nodes.base import Node
from jinjavm.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class IfCond(Node):
    """Conditional: {% if cond %}...{% else %}...{% endif %}

    ``elif`` chains are nested ``IfCond`` nodes in ``false_body``.
    """

    expr: Expr
    true_body: Sequence[Node]
    false_body: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class ForLoop(Node):
    """For loop: {% for x in items if cond recursive %}...{% else %}...{% endfor %}"""

    target: Expr
    iter: Expr
    body: Sequence[Node]
    else_body: Sequence[Node] = ()
    filter_expr: Expr | None = None
    recursive: bool = False
