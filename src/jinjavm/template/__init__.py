"""Template runtime: the virtual machine and the objects it works with.

Example:
    >>> from jinjavm import Environment
    >>> env = Environment()
    >>> env.template_from_str("{{ 2 ** 3 }}").render()
    '8'
"""

from jinjavm.template.core import Expression, Template
from jinjavm.template.loop_context import Loop, LoopState
from jinjavm.template.macro import Closure, Macro
from jinjavm.template.output import AutoEscape, CustomEscape, Output, escape_formatter
from jinjavm.template.state import BlockStack, Context, Frame, State, UndefinedBehavior
from jinjavm.template.vm import VirtualMachine

__all__ = [
    "AutoEscape",
    "BlockStack",
    "Closure",
    "Context",
    "CustomEscape",
    "Expression",
    "Frame",
    "Loop",
    "LoopState",
    "Macro",
    "Output",
    "State",
    "Template",
    "UndefinedBehavior",
    "VirtualMachine",
    "escape_formatter",
]
