"""jinjavm: a Jinja2-compatible template engine running on a stack VM.

Templates are tokenized, parsed into an immutable AST, lowered to a flat
instruction list and executed by a small virtual machine. The template
language follows Jinja2: inheritance, blocks, macros with lexical closures,
call blocks, includes, imports, filters and tests.

Quickstart:
    >>> from jinjavm import Environment
    >>> env = Environment()
    >>> env.add_template("hello.txt", "Hello {{ name }}!")
    >>> env.get_template("hello.txt").render(name="World")
    'Hello World!'

Architecture:
Template Source → Lexer → Parser → AST → Code Generator → Instructions → VM

Pipeline stages:
1. **Lexer**: Tokenizes template source, honouring custom delimiters
2. **Parser**: Builds frozen dataclass nodes
3. **Compiler**: Emits instructions with back-patched jumps; each block
   gets its own subprogram
4. **VM**: Executes instructions against a frame stack, writing to an
   ``Output`` with a capture stack

Auto-escaping:
The initial mode comes from the template name (``.html`` escapes HTML,
``.json`` emits JSON values); ``Markup`` strings are never escaped:

    >>> env.add_template("page.html", "{{ x }}")
    >>> env.get_template("page.html").render(x="<b>")
    '&lt;b&gt;'

Undefined values:
``UndefinedBehavior.LENIENT`` (default) renders them empty,
``CHAINABLE`` also allows attribute access on them and ``STRICT`` raises
``UndefinedError`` as soon as one is printed or iterated.
"""

# The environment package must be imported first: it loads the exception
# module every other subpackage depends on.
from jinjavm.environment import (
    ChoiceLoader,
    DictLoader,
    Environment,
    ErrorKind,
    FileSystemLoader,
    FunctionLoader,
    Loader,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
)
from jinjavm._types import SyntaxConfig
from jinjavm.template import (
    AutoEscape,
    CustomEscape,
    Expression,
    State,
    Template,
    UndefinedBehavior,
)
from jinjavm.utils.html import Markup, html_escape
from jinjavm.value import IndexMap, Kwargs, Object, ObjectKind, Undefined, pass_state

__version__ = "0.1.0"

__all__ = [
    "AutoEscape",
    "ChoiceLoader",
    "CustomEscape",
    "DictLoader",
    "Environment",
    "ErrorKind",
    "Expression",
    "FileSystemLoader",
    "FunctionLoader",
    "IndexMap",
    "Kwargs",
    "Loader",
    "Markup",
    "Object",
    "ObjectKind",
    "State",
    "SyntaxConfig",
    "Template",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "Undefined",
    "UndefinedBehavior",
    "UndefinedError",
    "__version__",
    "html_escape",
    "pass_state",
]
