"""Statement block parsing mixins for the jinjavm parser."""

from jinjavm.parser.blocks.control_flow import ControlFlowBlockParsingMixin
from jinjavm.parser.blocks.functions import FunctionBlockParsingMixin
from jinjavm.parser.blocks.special_blocks import SpecialBlockParsingMixin
from jinjavm.parser.blocks.template_structure import TemplateStructureBlockParsingMixin
from jinjavm.parser.blocks.variables import VariableBlockParsingMixin

__all__ = [
    "ControlFlowBlockParsingMixin",
    "FunctionBlockParsingMixin",
    "SpecialBlockParsingMixin",
    "TemplateStructureBlockParsingMixin",
    "VariableBlockParsingMixin",
]
