"""Macro and call nodes for the jinjavm AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from jinjavm.nodes.base import Node
from jinjavm.nodes.expressions import Call, Expr


@dataclass(frozen=True, slots=True)
class Macro(Node):
    """Macro definition: {% macro name(a, b=1) %}...{% endmacro %}

    ``defaults`` align with the tail of ``args``.
    """

    name: str
    args: Sequence[Expr]
    defaults: Sequence[Expr]
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class CallBlock(Node):
    """Call with a caller body: {% call name(args) %}...{% endcall %}

    The body is compiled as an anonymous ``caller`` macro.
    """

    call: Call
    macro_decl: Macro


@dataclass(frozen=True, slots=True)
class Do(Node):
    """Evaluate a call for its side effects: {% do list.append(1) %}"""

    call: Call
