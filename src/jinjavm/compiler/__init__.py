"""Code generator for jinjavm templates.

Lowers the parsed AST into the flat instruction stream executed by
``jinjavm.template.vm``.

Example:
    >>> from jinjavm.parser import parse
    >>> from jinjavm.compiler import compile_template
    >>> instructions, blocks = compile_template(parse("{{ 1 + 2 }}"), "<string>", "{{ 1 + 2 }}")
"""

from jinjavm.compiler.closure import find_macro_closure
from jinjavm.compiler.core import CodeGenerator, compile_expression, compile_template
from jinjavm.compiler.instructions import (
    CaptureMode,
    Instruction,
    Instructions,
    LoopFlags,
    MacroFlags,
    Op,
)

__all__ = [
    "CaptureMode",
    "CodeGenerator",
    "Instruction",
    "Instructions",
    "LoopFlags",
    "MacroFlags",
    "Op",
    "compile_expression",
    "compile_template",
    "find_macro_closure",
]
