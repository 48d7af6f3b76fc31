"""ANSI styling for template diagnostics.

Error reports produced by ``TemplateError.format_compact()`` are colored
when the terminal supports it. Detection honours the ``NO_COLOR`` and
``FORCE_COLOR`` conventions and falls back to checking whether stderr is a
TTY, since diagnostics are normally written there.
"""

from __future__ import annotations

import os
import re
import sys
from typing import Literal

_STYLES = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
}

StyleName = Literal[
    "reset", "bold", "dim", "red", "green", "yellow", "cyan",
    "bright_red", "bright_green",
]

_ANSI_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")


def detect_color_support() -> bool:
    """Decide whether diagnostics should carry ANSI codes.

    ``FORCE_COLOR`` wins over ``NO_COLOR``; without either, color is used
    only when stderr is attached to a terminal.
    """
    if os.environ.get("FORCE_COLOR"):
        return True
    if os.environ.get("NO_COLOR"):
        return False
    stream = sys.stderr
    return hasattr(stream, "isatty") and stream.isatty()


_enabled = detect_color_support()


def color_enabled() -> bool:
    return _enabled


def set_color_enabled(enabled: bool) -> None:
    """Override the detected setting (used by tests and embedding hosts)."""
    global _enabled
    _enabled = enabled


def paint(text: str, *styles: StyleName) -> str:
    """Wrap ``text`` in the given styles, or return it unchanged."""
    if not _enabled or not styles:
        return text
    prefix = "".join(_STYLES[s] for s in styles)
    return f"{prefix}{text}{_STYLES['reset']}"


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


# Semantic helpers


def code(text: str) -> str:
    return paint(text, "bright_red", "bold")


def location(text: str) -> str:
    return paint(text, "cyan")


def muted(text: str) -> str:
    return paint(text, "dim")


def hint(text: str) -> str:
    return paint(text, "green")


def suggestion(text: str) -> str:
    return paint(text, "bright_green", "bold")


def gutter_line(lineno: int, content: str, width: int, *, is_error: bool) -> str:
    """Render one numbered source line of a snippet.

    The error line gets a ``>`` marker and is highlighted; context lines are
    dimmed.
    """
    marker = ">" if is_error else " "
    number = paint(f"{marker}{lineno:>{width}}", "yellow")
    body = paint(content, "bright_red") if is_error else muted(content)
    return f"{number} | {body}"
