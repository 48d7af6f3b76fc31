"""Base node class for the jinjavm AST."""

from __future__ import annotations

from dataclasses import dataclass

from jinjavm._types import Span


@dataclass(frozen=True, slots=True)
class Node:
    """Base class for all AST nodes.

    Every node carries the ``Span`` of the source it was parsed from.
    Nodes are immutable; the AST lives only until code generation is done.

    """

    span: Span

    @property
    def lineno(self) -> int:
        return self.span.start_line

    @property
    def col_offset(self) -> int:
        return self.span.start_col
