"""Output sink with a capture stack, and the escaping applied at the
format boundary.

``Output`` collects rendered text. ``begin_capture`` redirects writes into a
fresh buffer (``CaptureMode.CAPTURE``) or drops them (``CaptureMode.DISCARD``)
until the matching ``end_capture``, which returns what was captured.

Escaping rules, by ``AutoEscape`` mode:

    ==========  ===============================================
    NONE        written verbatim
    HTML        ``& < > " ' /`` replaced by entities
    JSON        written as a JSON value
    Custom      dispatched to ``Environment.custom_escapers``
    ==========  ===============================================

Safe strings (``Markup``) are always written verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from jinjavm.compiler.instructions import CaptureMode
from jinjavm.environment.exceptions import ErrorKind, TemplateRuntimeError, UndefinedError
from jinjavm.utils.html import Markup, html_escape, is_safe
from jinjavm.value.core import Undefined, dumps_json, to_str

if TYPE_CHECKING:
    from jinjavm.environment.core import Environment
    from jinjavm.template.state import State


class AutoEscape(Enum):
    """Built-in auto-escape modes."""

    NONE = "none"
    HTML = "html"
    JSON = "json"


@dataclass(frozen=True, slots=True)
class CustomEscape:
    """Auto-escape mode handled by an escaper registered under ``name``.

    Example:
        >>> env = Environment(auto_escape_callback=lambda name: CustomEscape("latex"))
        >>> env.custom_escapers["latex"] = latex_escape
    """

    name: str


class Output:
    """Rendered text plus a stack of captures.

    Example:
        >>> out = Output()
        >>> out.write("a")
        >>> out.begin_capture(CaptureMode.CAPTURE)
        >>> out.write("b")
        >>> out.end_capture(AutoEscape.NONE)
        'b'
        >>> out.getvalue()
        'a'
    """

    __slots__ = ("_buf", "_captures")

    def __init__(self) -> None:
        self._buf: list[str] = []
        # None stands for a discarding capture
        self._captures: list[list[str] | None] = []

    def write(self, text: str) -> None:
        if self._captures:
            target = self._captures[-1]
            if target is not None:
                target.append(text)
        else:
            self._buf.append(text)

    def begin_capture(self, mode: CaptureMode) -> None:
        self._captures.append([] if mode is CaptureMode.CAPTURE else None)

    def end_capture(self, auto_escape: AutoEscape | CustomEscape) -> Any:
        """Pop the innermost capture and return its text.

        The text is safe unless auto-escaping is off. A discarding capture
        returns ``Undefined``.
        """
        captured = self._captures.pop()
        if captured is None:
            return Undefined
        text = "".join(captured)
        if auto_escape is AutoEscape.NONE:
            return text
        return Markup(text)

    def is_discarding(self) -> bool:
        return bool(self._captures) and self._captures[-1] is None

    def getvalue(self) -> str:
        return "".join(self._buf)


def escape_value(env: Environment, auto_escape: AutoEscape | CustomEscape, value: Any) -> str:
    """Escape ``value`` for ``auto_escape``; safe values pass through."""
    if is_safe(value) or auto_escape is AutoEscape.NONE:
        return to_str(value)
    if auto_escape is AutoEscape.HTML:
        if isinstance(value, str):
            return html_escape(value)
        if value is None or value is Undefined or isinstance(value, (bool, int, float)):
            return to_str(value)
        return html_escape(to_str(value))
    if auto_escape is AutoEscape.JSON:
        return dumps_json(value)
    escaper = env.custom_escapers.get(auto_escape.name)
    if escaper is None:
        raise TemplateRuntimeError(
            f"no escaper registered for custom auto escape `{auto_escape.name}`"
        )
    return escaper(value)


def write_escaped(out: Output, state: State, value: Any) -> None:
    """Write ``value`` to ``out`` escaped for the state's auto-escape mode."""
    out.write(escape_value(state.env, state.auto_escape, value))


def escape_formatter(out: Output, state: State, value: Any) -> None:
    """Default formatter: reject undefined in strict mode, then escape."""
    from jinjavm.template.state import UndefinedBehavior

    if value is Undefined and state.undefined_behavior is UndefinedBehavior.STRICT:
        raise UndefinedError(kind=ErrorKind.UNDEFINED_ERROR)
    write_escaped(out, state, value)
