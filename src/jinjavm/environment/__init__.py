"""Environment, loaders, filters, tests and the error types.

``exceptions`` is imported first: every other jinjavm module imports its
error classes from ``jinjavm.environment.exceptions`` while this package is
still initializing.
"""

from jinjavm.environment.exceptions import (
    ErrorKind,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
    build_source_snippet,
)
from jinjavm.environment.core import Environment, default_auto_escape_callback
from jinjavm.environment.loaders import (
    ChoiceLoader,
    DictLoader,
    FileSystemLoader,
    FunctionLoader,
    Loader,
)
from jinjavm.environment.registry import FilterRegistry

__all__ = [
    "ChoiceLoader",
    "DictLoader",
    "Environment",
    "ErrorKind",
    "FileSystemLoader",
    "FilterRegistry",
    "FunctionLoader",
    "Loader",
    "SourceSnippet",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "UndefinedError",
    "build_source_snippet",
    "default_auto_escape_callback",
]
