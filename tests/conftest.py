"""Pytest configuration and fixtures for jinjavm tests."""

import pytest

from jinjavm import DictLoader, Environment, UndefinedBehavior
from jinjavm.environment import terminal


@pytest.fixture(autouse=True)
def _no_color():
    """Keep diagnostics free of ANSI codes regardless of the terminal."""
    previous = terminal.color_enabled()
    terminal.set_color_enabled(False)
    yield
    terminal.set_color_enabled(previous)


@pytest.fixture
def env():
    """Create a basic jinjavm Environment."""
    return Environment()


@pytest.fixture
def env_html():
    """Create an Environment that HTML-escapes every template."""
    from jinjavm import AutoEscape

    return Environment(auto_escape_callback=lambda name: AutoEscape.HTML)


@pytest.fixture
def env_strict():
    """Create an Environment with strict undefined handling."""
    return Environment(undefined_behavior=UndefinedBehavior.STRICT)


@pytest.fixture
def env_with_loader():
    """Create an Environment with DictLoader and test templates."""
    loader = DictLoader(
        {
            "base.html": (
                "<html>"
                "<head>{% block head %}{% endblock %}</head>"
                "<body>{% block body %}{% endblock %}</body>"
                "</html>"
            ),
            "child.html": ('{% extends "base.html" %}{% block body %}Hello World{% endblock %}'),
            "partial.html": "<p>Partial content</p>",
            "macros.html": (
                "{% macro greet(name) %}Hello {{ name }}{% endmacro %}"
                "{% macro add(a, b) %}{{ a + b }}{% endmacro %}"
            ),
        }
    )
    return Environment(loader=loader)


def assert_template_equal(template_result: str, expected: str) -> None:
    """Assert template result equals expected, normalizing whitespace.

    Args:
        template_result: The actual template rendering result.
        expected: The expected output.
    """
    actual_normalized = " ".join(template_result.split())
    expected_normalized = " ".join(expected.split())
    assert actual_normalized == expected_normalized, (
        f"Template output mismatch:\n"
        f"  Actual: {actual_normalized!r}\n"
        f"  Expected: {expected_normalized!r}"
    )


def assert_contains(template_result: str, *expected_parts: str) -> None:
    """Assert template result contains all expected parts.

    Args:
        template_result: The actual template rendering result.
        expected_parts: Strings that should all be present in the result.
    """
    for part in expected_parts:
        assert part in template_result, (
            f"Template output missing expected content:\n"
            f"  Missing: {part!r}\n"
            f"  Actual: {template_result!r}"
        )
