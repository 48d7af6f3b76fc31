"""HTML and JSON escaping helpers.

``Markup`` is the engine's safe string: a ``str`` subclass that the output
formatter writes verbatim regardless of the active auto-escape mode. Any
``str`` method returns a plain ``str`` again, so safety is lost on
transformation; only ``Markup + Markup`` stays safe.
"""

from __future__ import annotations

from typing import Any

_HTML_ESCAPE_TABLE = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#x27;",
        "/": "&#x2f;",
    }
)

_JSON_HTML_TABLE = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "'": "\\u0027",
    }
)


class Markup(str):
    """A string that is already safe for output.

    Example:
        >>> Markup("<b>") + Markup("</b>")
        Markup('<b></b>')
        >>> type(Markup("<b>").upper())
        <class 'str'>
    """

    __slots__ = ()

    def __new__(cls, base: Any = "") -> Markup:
        if hasattr(base, "__html__") and not isinstance(base, str):
            base = base.__html__()
        return super().__new__(cls, base)

    def __html__(self) -> Markup:
        return self

    def __add__(self, other: str) -> str:
        if isinstance(other, Markup):
            return Markup(str.__add__(self, other))
        return str.__add__(self, other)

    def __radd__(self, other: str) -> str:
        if isinstance(other, Markup):
            return Markup(str.__add__(other, self))
        return str.__add__(other, self)

    def __repr__(self) -> str:
        return f"Markup({str.__repr__(self)})"


def is_safe(value: Any) -> bool:
    return isinstance(value, Markup) or hasattr(value, "__html__")


def html_escape(text: str) -> str:
    """Escape ``& < > " '`` and ``/`` for safe inclusion in HTML.

    Example:
        >>> html_escape("A & B")
        'A &amp; B'
    """
    return text.translate(_HTML_ESCAPE_TABLE)


def json_escape_html(text: str) -> str:
    """Make serialized JSON safe to embed in HTML (``<script>`` blocks and
    single-quoted attributes)."""
    return text.translate(_JSON_HTML_TABLE)
