"""Parser for jinjavm templates.

Example:
    >>> from jinjavm.parser import parse
    >>> tree = parse("{% for x in items %}{{ x }}{% endfor %}")
"""

from jinjavm.parser.core import Parser, parse, parse_expr
from jinjavm.parser.errors import ParseError

__all__ = ["ParseError", "Parser", "parse", "parse_expr"]
