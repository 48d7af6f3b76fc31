"""Free variable analysis for macros.

A macro body can refer to names from the template it is declared in. The
code generator emits one ``ENCLOSE`` per such name right before
``BUILD_MACRO`` so that the value visible at declaration is captured in the
macro's closure.

The walk keeps a stack of assigned-name scopes. A name read while not
assigned in any open scope is free; after its first read it counts as
assigned, so every free name is reported once, in order of first use.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from jinjavm.nodes import List, Var

if TYPE_CHECKING:
    from jinjavm.nodes import (
        AutoEscape,
        BinOp,
        Block,
        Call,
        CallBlock,
        Do,
        EmitExpr,
        Expr,
        Filter,
        FilterBlock,
        ForLoop,
        FromImport,
        GetAttr,
        GetItem,
        IfCond,
        IfExpr,
        Import,
        Kwargs,
        Macro,
        Map,
        Node,
        Set,
        SetBlock,
        Slice,
        Template,
        Test,
        UnaryOp,
        WithBlock,
    )


class ClosureTracker:
    """Collect the free names of a macro.

    Thread-safe: Creates new state for each analyze() call.

    Example:
        >>> from jinjavm.parser import parse
        >>> macro = parse("{% macro m(a) %}{{ a }}{{ d }}{% endmacro %}").children[0]
        >>> ClosureTracker().analyze(macro)
        ['d']
    """

    def __init__(self) -> None:
        self._assigned: list[set[str]] = []
        self._out: list[str] = []
        self._dispatch: dict[str, Callable[..., None]] = {}
        for name in dir(self):
            if name.startswith("_visit_") and name != "_visit_all":
                self._dispatch[name[7:]] = getattr(self, name)

    def analyze(self, macro: Macro) -> list[str]:
        self._assigned = [set()]
        self._out = []
        for arg in macro.args:
            self._assign_target(arg)
        self._visit_all(macro.defaults)
        self._visit_all(macro.body)
        return self._out

    # -- scope bookkeeping ---------------------------------------------------

    def _is_assigned(self, name: str) -> bool:
        return any(name in scope for scope in self._assigned)

    def _assign(self, name: str) -> None:
        self._assigned[-1].add(name)

    def _assign_target(self, target: Expr) -> None:
        if isinstance(target, Var):
            self._assign(target.id)
        elif isinstance(target, List):
            for item in target.items:
                self._assign_target(item)

    def _scoped(self, body: Sequence[Node], *names: str) -> None:
        self._assigned.append(set(names))
        self._visit_all(body)
        self._assigned.pop()

    def _visit(self, node: Node | None) -> None:
        if node is None:
            return
        handler = self._dispatch.get(type(node).__name__.lower())
        if handler:
            handler(node)

    def _visit_all(self, nodes: Sequence[Node]) -> None:
        for node in nodes:
            self._visit(node)

    # -- expressions ---------------------------------------------------------

    def _visit_var(self, node: Var) -> None:
        if not self._is_assigned(node.id):
            self._out.append(node.id)
            self._assign(node.id)

    def _visit_unaryop(self, node: UnaryOp) -> None:
        self._visit(node.expr)

    def _visit_getattr(self, node: GetAttr) -> None:
        self._visit(node.expr)

    def _visit_binop(self, node: BinOp) -> None:
        self._visit(node.left)
        self._visit(node.right)

    def _visit_ifexpr(self, node: IfExpr) -> None:
        self._visit(node.test_expr)
        self._visit(node.true_expr)
        self._visit(node.false_expr)

    def _visit_filter(self, node: Filter) -> None:
        self._visit(node.expr)
        self._visit_all(node.args)

    def _visit_test(self, node: Test) -> None:
        self._visit(node.expr)
        self._visit_all(node.args)

    def _visit_call(self, node: Call) -> None:
        self._visit(node.expr)
        self._visit_all(node.args)

    def _visit_getitem(self, node: GetItem) -> None:
        self._visit(node.expr)
        self._visit(node.subscript_expr)

    def _visit_slice(self, node: Slice) -> None:
        self._visit(node.expr)
        self._visit(node.start)
        self._visit(node.stop)
        self._visit(node.step)

    def _visit_list(self, node: List) -> None:
        self._visit_all(node.items)

    def _visit_map(self, node: Map) -> None:
        for key, value in zip(node.keys, node.values, strict=True):
            self._visit(key)
            self._visit(value)

    def _visit_kwargs(self, node: Kwargs) -> None:
        for _, value in node.pairs:
            self._visit(value)

    # -- statements ----------------------------------------------------------

    def _visit_template(self, node: Template) -> None:
        self._assign("self")
        self._visit_all(node.children)

    def _visit_emitexpr(self, node: EmitExpr) -> None:
        self._visit(node.expr)

    def _visit_forloop(self, node: ForLoop) -> None:
        self._assigned.append({"loop"})
        self._visit(node.iter)
        self._assign_target(node.target)
        self._visit(node.filter_expr)
        self._visit_all(node.body)
        self._assigned.pop()
        self._scoped(node.else_body)

    def _visit_ifcond(self, node: IfCond) -> None:
        self._visit(node.expr)
        self._scoped(node.true_body)
        self._scoped(node.false_body)

    def _visit_withblock(self, node: WithBlock) -> None:
        self._assigned.append(set())
        for target, expr in node.assignments:
            self._assign_target(target)
            self._visit(expr)
        self._visit_all(node.body)
        self._assigned.pop()

    def _visit_set(self, node: Set) -> None:
        self._assign_target(node.target)
        self._visit(node.expr)

    def _visit_setblock(self, node: SetBlock) -> None:
        self._assign_target(node.target)
        self._visit(node.filter)
        self._scoped(node.body)

    def _visit_autoescape(self, node: AutoEscape) -> None:
        self._visit(node.enabled)
        self._scoped(node.body)

    def _visit_filterblock(self, node: FilterBlock) -> None:
        self._visit(node.filter)
        self._scoped(node.body)

    def _visit_block(self, node: Block) -> None:
        self._scoped(node.body, "super")

    def _visit_import(self, node: Import) -> None:
        self._visit(node.expr)
        self._assign_target(node.name)

    def _visit_fromimport(self, node: FromImport) -> None:
        self._visit(node.expr)
        for name, alias in node.names:
            self._assign_target(alias if alias is not None else name)

    def _visit_macro(self, node: Macro) -> None:
        self._assign(node.name)
        self._nested_macro(node)

    def _visit_callblock(self, node: CallBlock) -> None:
        self._visit(node.call)
        self._nested_macro(node.macro_decl)

    def _visit_do(self, node: Do) -> None:
        self._visit(node.call)

    def _nested_macro(self, macro: Macro) -> None:
        # A nested macro encloses its free names from this macro's scope,
        # so they have to be captured here as well.
        self._assigned.append({"caller"})
        for arg in macro.args:
            self._assign_target(arg)
        self._visit_all(macro.defaults)
        self._visit_all(macro.body)
        self._assigned.pop()


def find_macro_closure(macro: Macro) -> list[str]:
    """Free names of ``macro``, in order of first use."""
    return ClosureTracker().analyze(macro)
