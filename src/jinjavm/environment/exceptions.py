"""Exceptions for the jinjavm template engine.

Exception Hierarchy:
TemplateError (base, carries an ErrorKind)
├── TemplateSyntaxError       # lexer/parser failures, bad escapes, delimiters
├── TemplateNotFoundError     # loader could not find a template
├── UndefinedError            # undefined value used where strict semantics apply
└── TemplateRuntimeError      # every other render-time failure

Every error carries a stable ``ErrorKind`` so hosts can discriminate
failures without parsing messages. ``str(error)`` renders the familiar
one-line form::

    invalid operation: tried to use + operator on unsupported types number and string (in page.html:3)

while ``format_compact()`` produces a terminal diagnostic with the error
code, a source snippet, and a caret under the offending column::

    J-RUN-001: invalid operation: tried to use + operator on ...
      --> page.html:3:7
       |
      2 | {% set x = 1 %}
     >3 | {{ x + "a" }}
       |        ^
       |

Location is attached lazily: the virtual machine fills in the template name,
line, and span for the first frame that sees an error without one
(``attach_location``). Nested failures (an error inside an include when
``wrap_include_errors`` is set, or inside ``super()``) are chained with
``raise ... from``, so the original error stays reachable via ``__cause__``.

"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import get_close_matches
from enum import Enum
from typing import TYPE_CHECKING

from jinjavm.environment import terminal

if TYPE_CHECKING:
    from collections.abc import Iterable

    from jinjavm._types import Span

# ---------------------------------------------------------------------------
# Error kinds
# ---------------------------------------------------------------------------


class ErrorKind(Enum):
    """Stable error identifiers.

    Format: J-{CATEGORY}-{NUMBER}
    Categories: SYN (syntax), TPL (template loading and structure),
    RUN (runtime), CAL (calls), VAL (values)
    """

    # Syntax errors (J-SYN-xxx)
    SYNTAX_ERROR = "J-SYN-001"
    BAD_ESCAPE = "J-SYN-002"
    INVALID_DELIMITER = "J-SYN-003"

    # Template errors (J-TPL-xxx)
    TEMPLATE_NOT_FOUND = "J-TPL-001"
    BAD_INCLUDE = "J-TPL-002"
    EVAL_BLOCK = "J-TPL-003"
    UNKNOWN_BLOCK = "J-TPL-004"

    # Runtime errors (J-RUN-xxx)
    INVALID_OPERATION = "J-RUN-001"
    UNDEFINED_ERROR = "J-RUN-002"
    CANNOT_UNPACK = "J-RUN-003"
    WRITE_FAILURE = "J-RUN-004"
    OUT_OF_FUEL = "J-RUN-005"

    # Call errors (J-CAL-xxx)
    TOO_MANY_ARGUMENTS = "J-CAL-001"
    MISSING_ARGUMENT = "J-CAL-002"
    UNKNOWN_FILTER = "J-CAL-003"
    UNKNOWN_TEST = "J-CAL-004"
    UNKNOWN_FUNCTION = "J-CAL-005"
    UNKNOWN_METHOD = "J-CAL-006"

    # Value errors (J-VAL-xxx)
    NON_PRIMITIVE = "J-VAL-001"
    NON_KEY = "J-VAL-002"
    BAD_SERIALIZATION = "J-VAL-003"
    CANNOT_DESERIALIZE = "J-VAL-004"

    @property
    def description(self) -> str:
        """Short human readable description used as the message prefix."""
        return _DESCRIPTIONS[self]

    @property
    def category(self) -> str:
        """Error category (e.g., 'syntax', 'runtime', 'call')."""
        prefix = self.value.split("-")[1]
        return {
            "SYN": "syntax",
            "TPL": "template",
            "RUN": "runtime",
            "CAL": "call",
            "VAL": "value",
        }.get(prefix, "unknown")


_DESCRIPTIONS = {
    ErrorKind.NON_PRIMITIVE: "not a primitive",
    ErrorKind.NON_KEY: "not a key type",
    ErrorKind.INVALID_OPERATION: "invalid operation",
    ErrorKind.SYNTAX_ERROR: "syntax error",
    ErrorKind.TEMPLATE_NOT_FOUND: "template not found",
    ErrorKind.TOO_MANY_ARGUMENTS: "too many arguments",
    ErrorKind.MISSING_ARGUMENT: "missing argument",
    ErrorKind.UNKNOWN_FILTER: "unknown filter",
    ErrorKind.UNKNOWN_FUNCTION: "unknown function",
    ErrorKind.UNKNOWN_TEST: "unknown test",
    ErrorKind.UNKNOWN_METHOD: "unknown method",
    ErrorKind.BAD_ESCAPE: "bad string escape",
    ErrorKind.UNDEFINED_ERROR: "undefined value",
    ErrorKind.BAD_SERIALIZATION: "could not serialize to value",
    ErrorKind.BAD_INCLUDE: "could not render include",
    ErrorKind.EVAL_BLOCK: "could not render block",
    ErrorKind.CANNOT_UNPACK: "cannot unpack",
    ErrorKind.WRITE_FAILURE: "failed to write output",
    ErrorKind.CANNOT_DESERIALIZE: "cannot deserialize",
    ErrorKind.OUT_OF_FUEL: "engine ran out of fuel",
    ErrorKind.INVALID_DELIMITER: "invalid custom delimiters",
    ErrorKind.UNKNOWN_BLOCK: "unknown block",
}


# ---------------------------------------------------------------------------
# Source snippets
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source lines surrounding an error.

    Attributes:
        lines: ``(line_number, content)`` pairs around the error.
        error_line: The 1-based line number where the error occurred.
        column: Optional 0-based column for the caret pointer.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self) -> str:
        width = max((len(str(n)) for n, _ in self.lines), default=1) + 1
        bar = terminal.muted(" " * (width + 1) + "|")
        parts = [bar]
        for lineno, content in self.lines:
            parts.append(
                terminal.gutter_line(lineno, content, width, is_error=lineno == self.error_line)
            )
            if lineno == self.error_line and self.column is not None:
                caret = " " * self.column + "^"
                parts.append(f"{bar} {terminal.paint(caret, 'bright_red')}")
        parts.append(bar)
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 2,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before the error line.
        column: Optional column offset for the caret pointer.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TemplateError(Exception):
    """Base exception for all template errors.

    Attributes:
        kind: The ``ErrorKind`` of this error.
        detail: Optional detail message.
        name: Name of the template the error was raised in, once attached.
        lineno: 1-based line number, once attached.
        span: Source ``Span`` of the failing construct, when known.
        source: Template source, used for snippets in ``format_compact``.
        suggestion: Optional "did you mean" candidate.

    Example:
        >>> try:
        ...     env.render_str("{{ 1 + 'a' }}")
        ... except TemplateError as e:
        ...     assert e.kind is ErrorKind.INVALID_OPERATION
    """

    kind: ErrorKind = ErrorKind.INVALID_OPERATION

    def __init__(
        self,
        detail: str | None = None,
        *,
        kind: ErrorKind | None = None,
        name: str | None = None,
        lineno: int | None = None,
        span: Span | None = None,
        source: str | None = None,
        suggestion: str | None = None,
    ):
        if kind is not None:
            self.kind = kind
        self.detail = detail
        self.name = name
        self.lineno = lineno
        self.span = span
        self.source = source
        self.suggestion = suggestion
        super().__init__(detail)

    @classmethod
    def from_kind(cls, kind: ErrorKind, detail: str | None = None, **kwargs) -> TemplateError:
        """Create an error of ``kind`` using the matching subclass."""
        return _CLASS_FOR_KIND.get(kind, TemplateRuntimeError)(detail, kind=kind, **kwargs)

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def has_location(self) -> bool:
        return self.lineno is not None

    def attach_location(
        self,
        name: str | None,
        lineno: int,
        span: Span | None = None,
        source: str | None = None,
    ) -> None:
        """Record where the error happened, unless already known."""
        if self.lineno is not None:
            return
        self.name = name
        self.lineno = lineno
        self.span = span
        if self.source is None:
            self.source = source

    def __str__(self) -> str:
        msg = self.kind.description
        if self.detail:
            msg += f": {self.detail}"
        if self.name is not None and self.lineno is not None:
            msg += f" (in {self.name}:{self.lineno})"
        return msg

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.name}, detail={self.detail!r})"

    def format_compact(self) -> str:
        """Format the error as a terminal diagnostic.

        Includes the error code, location, a source snippet with a caret
        when the source and span are known, a suggestion if one was
        computed, and the chained cause for wrapped errors.
        """
        header = f"{terminal.code(self.code)}: {self.kind.description}"
        if self.detail:
            header += f": {self.detail}"
        parts = [header]

        if self.lineno is not None:
            loc = f"{self.name or '<template>'}:{self.lineno}"
            if self.span is not None:
                loc += f":{self.span.start_col}"
            parts.append(f"  --> {terminal.location(loc)}")
            if self.source:
                column = self.span.start_col if self.span is not None else None
                parts.append(build_source_snippet(self.source, self.lineno, column=column).format())

        if self.suggestion:
            parts.append(
                f"  {terminal.hint('Hint:')} Did you mean '{terminal.suggestion(self.suggestion)}'?"
            )

        cause = self.__cause__
        if isinstance(cause, TemplateError):
            parts.append(terminal.muted("caused by:"))
            parts.append(cause.format_compact())

        return "\n".join(parts)


class TemplateSyntaxError(TemplateError):
    """Template source could not be tokenized or parsed.

    Also used for malformed string escapes and invalid delimiter
    configurations.
    """

    kind = ErrorKind.SYNTAX_ERROR


class TemplateNotFoundError(TemplateError):
    """No template with the requested name is registered or loadable.

    ``{% include ... ignore missing %}`` recovers from this error only.
    """

    kind = ErrorKind.TEMPLATE_NOT_FOUND


class UndefinedError(TemplateError):
    """An undefined value was used where the undefined behavior forbids it."""

    kind = ErrorKind.UNDEFINED_ERROR


class TemplateRuntimeError(TemplateError):
    """Render-time failure: bad operands, bad calls, unpacking, and so on."""

    kind = ErrorKind.INVALID_OPERATION


_CLASS_FOR_KIND: dict[ErrorKind, type[TemplateError]] = {
    ErrorKind.SYNTAX_ERROR: TemplateSyntaxError,
    ErrorKind.BAD_ESCAPE: TemplateSyntaxError,
    ErrorKind.INVALID_DELIMITER: TemplateSyntaxError,
    ErrorKind.TEMPLATE_NOT_FOUND: TemplateNotFoundError,
    ErrorKind.UNDEFINED_ERROR: UndefinedError,
}


def closest_name(name: str, candidates: Iterable[str]) -> str | None:
    """Return the closest match for ``name`` among ``candidates``, if any."""
    matches = get_close_matches(name, list(candidates), n=1, cutoff=0.6)
    return matches[0] if matches else None
