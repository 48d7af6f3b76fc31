"""Escaping helpers shared by the runtime and the filters."""

from jinjavm.utils.html import Markup, html_escape, is_safe, json_escape_html

__all__ = ["Markup", "html_escape", "is_safe", "json_escape_html"]
