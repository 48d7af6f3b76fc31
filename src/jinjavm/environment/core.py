"""Core Environment class for jinjavm.

The Environment is the central configuration object: it owns the template
registry, the filter/test/global tables, the delimiter syntax, the
undefined behavior and the output formatter.

Lifecycle:
    1. Create an ``Environment`` with configuration keywords
    2. Register templates (``add_template``) or configure a loader
    3. Fetch templates with ``get_template`` and render them

Adding a template parses and compiles it eagerly, so syntax errors surface
at registration time rather than at first render.

Thread-Safety:
    Filter, test and global tables are replaced (copy-on-write) on every
    mutation, and rendering never mutates the environment. Registering
    templates concurrently with renders is not synchronized.

Example:
    >>> from jinjavm import Environment
    >>> env = Environment()
    >>> env.add_template("hello.txt", "Hello {{ name }}!")
    >>> env.get_template("hello.txt").render(name="World")
    'Hello World!'
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from jinjavm._types import DEFAULT_SYNTAX, SyntaxConfig
from jinjavm.compiler import compile_expression, compile_template
from jinjavm.environment.exceptions import closest_name
from jinjavm.environment.filters import DEFAULT_FILTERS
from jinjavm.environment.globals import DEFAULT_GLOBALS
from jinjavm.environment.loaders import as_loader, not_found
from jinjavm.environment.registry import FilterRegistry
from jinjavm.environment.tests import DEFAULT_TESTS
from jinjavm.parser import parse, parse_expr
from jinjavm.template import (
    AutoEscape,
    CustomEscape,
    Expression,
    Template,
    UndefinedBehavior,
    escape_formatter,
)
from jinjavm.template.state import MAX_RECURSION
from jinjavm.value.callables import BoxedFunction
from jinjavm.value.core import Object, Undefined

if TYPE_CHECKING:
    from jinjavm.environment.loaders import Loader
    from jinjavm.template import Output, State

logger = logging.getLogger(__name__)

_HTML_EXTENSIONS = frozenset({"html", "htm", "xml"})
_JSON_EXTENSIONS = frozenset({"json", "json5", "js", "yaml", "yml"})


def default_auto_escape_callback(name: str) -> AutoEscape:
    """Pick the auto-escape mode from everything after the name's first dot.

    - HTML: ``.html``, ``.htm``, ``.xml``
    - JSON: ``.json``, ``.json5``, ``.js``, ``.yaml``, ``.yml``
    - none: everything else, including ``page.min.html``
    """
    _, dot, ext = name.partition(".")
    if dot:
        if ext in _HTML_EXTENSIONS:
            return AutoEscape.HTML
        if ext in _JSON_EXTENSIONS:
            return AutoEscape.JSON
    return AutoEscape.NONE


def _box_global(name: str, value: Any) -> Any:
    if callable(value) and not isinstance(value, (Object, type)):
        return BoxedFunction(value, name)
    return value


@dataclass(eq=False)
class Environment:
    """Central configuration and template management.

    Attributes:
        loader: Source of templates not registered with ``add_template``;
            a ``Loader`` or a plain ``name -> str | None`` callable
        syntax: Delimiter configuration
        auto_escape_callback: Maps a template name to its initial
            auto-escape mode
        undefined_behavior: ``LENIENT``, ``CHAINABLE`` or ``STRICT``
        keep_trailing_newline: Keep a single trailing newline of the source
        wrap_include_errors: Wrap errors raised inside included templates
            in a ``BAD_INCLUDE`` error naming the include
        formatter: ``(out, state, value)`` callable writing ``{{ value }}``
        recursion_limit: Depth budget shared by macros, includes and blocks
        custom_escapers: Escape functions for ``CustomEscape(name)`` modes
        filters: Filter registry (dict-like, copy-on-write)
        tests: Test registry (dict-like, copy-on-write)
        globals: Global variables and functions (dict-like, copy-on-write)

    Example:
        >>> env = Environment(undefined_behavior=UndefinedBehavior.STRICT)
        >>> env.add_filter("double", lambda x: x * 2)
        >>> env.render_str("{{ n | double }}", n=21)
        '42'
    """

    loader: Loader | Callable[[str], str | None] | None = None
    syntax: SyntaxConfig = DEFAULT_SYNTAX
    auto_escape_callback: Callable[[str], AutoEscape | CustomEscape] = (
        default_auto_escape_callback
    )
    undefined_behavior: UndefinedBehavior = UndefinedBehavior.LENIENT
    keep_trailing_newline: bool = False
    wrap_include_errors: bool = False
    formatter: Callable[[Output, State, Any], None] = escape_formatter
    recursion_limit: int = MAX_RECURSION
    custom_escapers: dict[str, Callable[[Any], str]] = field(default_factory=dict)

    _filters: dict[str, Callable[..., Any]] = field(init=False, repr=False)
    _tests: dict[str, Callable[..., Any]] = field(init=False, repr=False)
    _globals: dict[str, Any] = field(init=False, repr=False)
    _templates: dict[str, Template] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.loader = as_loader(self.loader)
        self._filters = dict(DEFAULT_FILTERS)
        self._tests = dict(DEFAULT_TESTS)
        self._globals = {name: _box_global(name, func) for name, func in DEFAULT_GLOBALS.items()}
        self._templates = {}

    # -- registries ----------------------------------------------------------

    @property
    def filters(self) -> FilterRegistry:
        """Get filters as dict-like registry."""
        return FilterRegistry(self, "_filters")

    @property
    def tests(self) -> FilterRegistry:
        """Get tests as dict-like registry."""
        return FilterRegistry(self, "_tests")

    @property
    def globals(self) -> FilterRegistry:
        """Get globals as dict-like registry; callables are boxed on insert."""
        return FilterRegistry(self, "_globals", _box_global)

    def add_filter(self, name: str, func: Callable[..., Any]) -> None:
        """Register a filter.

        The callable receives the filtered value first, then the filter's
        arguments; keyword arguments arrive as Python keywords. Decorate it
        with ``@pass_state`` to receive the render state before the value.
        """
        self.filters[name] = func

    def remove_filter(self, name: str) -> None:
        del self.filters[name]

    def add_test(self, name: str, func: Callable[..., Any]) -> None:
        """Register a test; its result is interpreted by template truthiness."""
        self.tests[name] = func

    def remove_test(self, name: str) -> None:
        del self.tests[name]

    def add_global(self, name: str, value: Any) -> None:
        """Register a global variable or function."""
        self.globals[name] = value

    def remove_global(self, name: str) -> None:
        del self.globals[name]

    def get_filter(self, name: str) -> Callable[..., Any] | None:
        return self._filters.get(name)

    def get_test(self, name: str) -> Callable[..., Any] | None:
        return self._tests.get(name)

    def get_global(self, name: str) -> Any:
        return self._globals.get(name, Undefined)

    # -- templates -----------------------------------------------------------

    def _compile(self, name: str, source: str) -> Template:
        tree = parse(source, name, self.syntax, self.keep_trailing_newline)
        instructions, blocks = compile_template(tree, name, source)
        return Template(
            self, name, source, instructions, blocks, self.auto_escape_callback(name)
        )

    def add_template(self, name: str, source: str) -> None:
        """Parse, compile and register a template under ``name``.

        Raises:
            TemplateSyntaxError: If the source does not parse
        """
        self._templates[name] = self._compile(name, source)

    def remove_template(self, name: str) -> None:
        self._templates.pop(name, None)

    def clear_templates(self) -> None:
        """Forget every registered and loaded template."""
        self._templates.clear()

    def get_template(self, name: str) -> Template:
        """Get a registered template, falling back to the loader.

        Loaded templates are compiled once and cached under their name.

        Raises:
            TemplateNotFoundError: If the template is registered nowhere
            TemplateSyntaxError: If a loaded template does not parse
        """
        tmpl = self._templates.get(name)
        if tmpl is not None:
            return tmpl
        loader = self.loader
        if loader is None:
            raise not_found(name, closest_name(name, self._templates))
        source, filename = loader.get_source(name)
        logger.debug("loaded template %r from %s", name, filename or type(loader).__name__)
        tmpl = self._compile(name, source)
        self._templates[name] = tmpl
        return tmpl

    def list_templates(self) -> list[str]:
        """Registered template names plus those the loader can enumerate."""
        names = set(self._templates)
        if self.loader is not None and hasattr(self.loader, "list_templates"):
            names.update(self.loader.list_templates())
        return sorted(names)

    def template_from_str(self, source: str, name: str = "<string>") -> Template:
        """Compile a template without registering it.

        Example:
            >>> env.template_from_str("{{ a ~ b }}").render(a=1, b=2)
            '12'
        """
        return self._compile(name, source)

    def render_str(self, source: str, *args: Any, **kwargs: Any) -> str:
        """Compile ``source`` and render it once."""
        return self.template_from_str(source).render(*args, **kwargs)

    def compile_expression(self, source: str) -> Expression:
        """Compile a standalone expression for repeated evaluation.

        Example:
            >>> expr = env.compile_expression("age >= 18")
            >>> expr.eval(age=21)
            True
        """
        instructions = compile_expression(parse_expr(source, self.syntax), source)
        return Expression(self, source, instructions)

    # -- rendering hooks -----------------------------------------------------

    def format(self, out: Output, state: State, value: Any) -> None:
        """Write ``{{ value }}`` through the configured formatter."""
        self.formatter(out, state, value)
