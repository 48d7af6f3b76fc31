"""Template structure nodes for the jinjavm AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from jinjavm.nodes.base import Node
from jinjavm.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class Template(Node):
    """Root node representing a complete template."""

    children: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Block(Node):
    """Named block for inheritance: {% block name %}...{% endblock %}"""

    name: str
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Extends(Node):
    """Template inheritance: {% extends "base.html" %}"""

    name: Expr


@dataclass(frozen=True, slots=True)
class Include(Node):
    """Include another template: {% include "partial.html" ignore missing %}"""

    name: Expr
    ignore_missing: bool = False


@dataclass(frozen=True, slots=True)
class Import(Node):
    """Import a template's exports: {% import "macros.html" as m %}"""

    expr: Expr
    name: Expr


@dataclass(frozen=True, slots=True)
class FromImport(Node):
    """Import specific names: {% from "macros.html" import a, b as c %}"""

    expr: Expr
    names: Sequence[tuple[Expr, Expr | None]]
