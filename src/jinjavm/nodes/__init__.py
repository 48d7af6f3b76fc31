"""AST nodes for jinjavm templates.

Nodes are frozen, slotted dataclasses. Every node carries the ``Span`` it
was parsed from (see ``jinjavm._types.Span``).
"""

from jinjavm.nodes.base import Node
from jinjavm.nodes.control_flow import ForLoop, IfCond
from jinjavm.nodes.expressions import (
    BinOp,
    Call,
    Const,
    Expr,
    Filter,
    GetAttr,
    GetItem,
    IfExpr,
    Kwargs,
    List,
    Map,
    Slice,
    Test,
    UnaryOp,
    Var,
)
from jinjavm.nodes.functions import CallBlock, Do, Macro
from jinjavm.nodes.output import AutoEscape, EmitExpr, EmitRaw, FilterBlock
from jinjavm.nodes.structure import Block, Extends, FromImport, Import, Include, Template
from jinjavm.nodes.variables import Set, SetBlock, WithBlock

__all__ = [
    "AutoEscape",
    "BinOp",
    "Block",
    "Call",
    "CallBlock",
    "Const",
    "Do",
    "EmitExpr",
    "EmitRaw",
    "Expr",
    "Extends",
    "Filter",
    "FilterBlock",
    "ForLoop",
    "FromImport",
    "GetAttr",
    "GetItem",
    "IfCond",
    "IfExpr",
    "Import",
    "Include",
    "Kwargs",
    "List",
    "Macro",
    "Map",
    "Node",
    "Set",
    "SetBlock",
    "Slice",
    "Template",
    "Test",
    "UnaryOp",
    "Var",
    "WithBlock",
]
