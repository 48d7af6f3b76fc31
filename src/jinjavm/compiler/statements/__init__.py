"""Statement compilation for the jinjavm code generator.

The statements package is organized into logical modules:
- basic: Raw text and ``{{ expr }}`` output
- control_flow: ``for`` loops and ``if`` conditions
- variables: ``set``, block ``set`` and ``with``
- template_structure: ``block``, ``extends``, ``include``, ``import``, ``from``
- functions: ``macro`` and ``call`` blocks
- special_blocks: ``autoescape``, ``filter`` blocks and ``do``

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from jinjavm.compiler.statements.basic import BasicStatementMixin
from jinjavm.compiler.statements.control_flow import ControlFlowMixin
from jinjavm.compiler.statements.functions import FunctionCompilationMixin
from jinjavm.compiler.statements.special_blocks import SpecialBlockMixin
from jinjavm.compiler.statements.template_structure import TemplateStructureMixin
from jinjavm.compiler.statements.variables import VariableAssignmentMixin


class StatementCompilationMixin(
    BasicStatementMixin,
    ControlFlowMixin,
    VariableAssignmentMixin,
    TemplateStructureMixin,
    FunctionCompilationMixin,
    SpecialBlockMixin,
):
    """Combined mixin for compiling all statement types.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks in each individual mixin.
    """
