"""Expression nodes for the jinjavm AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal

from jinjavm.nodes.base import Node

BinOpKind = Literal[
    "==", "!=", "<", "<=", ">", ">=", "and", "or",
    "+", "-", "*", "/", "//", "%", "**", "~", "in",
]  # fmt: skip


@dataclass(frozen=True, slots=True)
class Expr(Node):
    """Base class for expressions."""


@dataclass(frozen=True, slots=True)
class Var(Expr):
    """Variable reference: {{ user }}"""

    id: str


@dataclass(frozen=True, slots=True)
class Const(Expr):
    """Constant value: string, number, boolean, none, or a folded literal."""

    value: Any


@dataclass(frozen=True, slots=True)
class Slice(Expr):
    """Slice: obj[start:stop:step]"""

    expr: Expr
    start: Expr | None = None
    stop: Expr | None = None
    step: Expr | None = None


@dataclass(frozen=True, slots=True)
class UnaryOp(Expr):
    """Unary operation: not x, -x"""

    op: Literal["not", "-"]
    expr: Expr


@dataclass(frozen=True, slots=True)
class BinOp(Expr):
    """Binary operation, including short-circuit and/or and containment."""

    op: BinOpKind
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class IfExpr(Expr):
    """Conditional expression: a if cond else b"""

    test_expr: Expr
    true_expr: Expr
    false_expr: Expr | None = None


@dataclass(frozen=True, slots=True)
class Filter(Expr):
    """Filter application: value|name(args)

    ``expr`` is ``None`` for the filter of a ``{% filter %}`` block, whose
    input is the captured body.
    """

    name: str
    expr: Expr | None
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class Test(Expr):
    """Test application: value is name(args)"""

    name: str
    expr: Expr
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class GetAttr(Expr):
    """Attribute access: obj.name"""

    expr: Expr
    name: str


@dataclass(frozen=True, slots=True)
class GetItem(Expr):
    """Subscript access: obj[key]"""

    expr: Expr
    subscript_expr: Expr


@dataclass(frozen=True, slots=True)
class Call(Expr):
    """Call: func(args). A trailing ``Kwargs`` holds keyword arguments."""

    expr: Expr
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class List(Expr):
    """List literal: [a, b]. Tuples parse to this too."""

    items: Sequence[Expr]

    def as_const(self) -> list[Any] | None:
        if not all(isinstance(item, Const) for item in self.items):
            return None
        return [item.value for item in self.items]  # type: ignore[attr-defined]


@dataclass(frozen=True, slots=True)
class Map(Expr):
    """Map literal: {a: b}"""

    keys: Sequence[Expr]
    values: Sequence[Expr]

    def as_const(self) -> list[tuple[Any, Any]] | None:
        if not all(isinstance(e, Const) for e in (*self.keys, *self.values)):
            return None
        return [
            (k.value, v.value)  # type: ignore[attr-defined]
            for k, v in zip(self.keys, self.values, strict=True)
        ]


@dataclass(frozen=True, slots=True)
class Kwargs(Expr):
    """Keyword arguments of a call: f(a=1, b=2)"""

    pairs: Sequence[tuple[str, Expr]]
