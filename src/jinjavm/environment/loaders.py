"""Template loaders for jinjavm environments.

Loaders provide template source on demand, for ``get_template`` calls,
``{% extends %}``, ``{% include %}`` and ``{% import %}`` of names that were
not added with ``Environment.add_template``. They implement
``get_source(name)`` returning ``(source, filename)`` and raise
``TemplateNotFoundError`` for unknown names. Any other exception is a real
failure and propagates to the render.

Built-in Loaders:
- `FileSystemLoader`: Load from filesystem directories
- `DictLoader`: Load from an in-memory dictionary (testing/embedded)
- `ChoiceLoader`: Try multiple loaders in order (theme fallback)
- `FunctionLoader`: Wrap a callable as a loader

A plain callable ``name -> str | None`` is accepted wherever a loader is
(``Environment(loader=my_func)``); it is wrapped in a ``FunctionLoader``.

Custom Loaders:
Implement the Loader protocol:
    ```python
    class DatabaseLoader:
        def get_source(self, name: str) -> tuple[str, str | None]:
            row = db.query("SELECT source FROM templates WHERE name = ?", name)
            if not row:
                raise TemplateNotFoundError(f'template "{name}" does not exist')
            return row.source, f"db://{name}"

        def list_templates(self) -> list[str]:
            return [r.name for r in db.query("SELECT name FROM templates")]
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from difflib import get_close_matches
from pathlib import Path
from typing import Protocol, runtime_checkable

from jinjavm.environment.exceptions import TemplateNotFoundError

logger = logging.getLogger(__name__)


@runtime_checkable
class Loader(Protocol):
    def get_source(self, name: str) -> tuple[str, str | None]: ...


def not_found(name: str, suggestion: str | None = None) -> TemplateNotFoundError:
    return TemplateNotFoundError(f'template "{name}" does not exist', suggestion=suggestion)


class FileSystemLoader:
    """Load templates from filesystem directories.

    Template names always use ``/`` as separator. Names with a segment
    starting with ``.`` or containing a backslash are treated as missing,
    so templates cannot reach outside the search paths.

    Search Order:
        Directories are searched in order. First match wins:
            ```python
            loader = FileSystemLoader(["themes/custom/", "themes/default/"])
            ```

    Example:
        >>> loader = FileSystemLoader("templates/")
        >>> source, filename = loader.get_source("pages/about.html")
        >>> filename
        'templates/pages/about.html'

    Raises:
        TemplateNotFoundError: If the template is in none of the paths
    """

    __slots__ = ("_encoding", "_paths")

    def __init__(
        self,
        paths: str | Path | list[str | Path],
        encoding: str = "utf-8",
    ):
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self._paths = [Path(p) for p in paths]
        self._encoding = encoding

    def get_source(self, name: str) -> tuple[str, str]:
        segments = name.split("/")
        if any(seg.startswith(".") or "\\" in seg for seg in segments):
            raise not_found(name)
        for base in self._paths:
            path = base.joinpath(*segments)
            if path.is_file():
                return path.read_text(self._encoding), str(path)
        logger.debug("template %r not found in %s", name, [str(p) for p in self._paths])
        raise not_found(name)

    def list_templates(self) -> list[str]:
        """All files below the search paths, as template names."""
        templates: set[str] = set()
        for base in self._paths:
            if base.is_dir():
                for path in base.rglob("*"):
                    rel = path.relative_to(base)
                    if path.is_file() and not any(p.startswith(".") for p in rel.parts):
                        templates.add(rel.as_posix())
        return sorted(templates)


class DictLoader:
    """Load templates from an in-memory dictionary.

    Example:
        >>> loader = DictLoader({
        ...     "base.html": "<html>{% block content %}{% endblock %}</html>",
        ...     "page.html": "{% extends 'base.html' %}{% block content %}Hi{% endblock %}",
        ... })
        >>> env = Environment(loader=loader)
        >>> env.get_template("page.html").render()
        '<html>Hi</html>'

    Raises:
        TemplateNotFoundError: If the name is not in the mapping; the error
            suggests the closest known name.
    """

    __slots__ = ("_mapping",)

    def __init__(self, mapping: dict[str, str]):
        self._mapping = mapping

    def get_source(self, name: str) -> tuple[str, None]:
        if name not in self._mapping:
            matches = get_close_matches(name, sorted(self._mapping), n=1, cutoff=0.6)
            raise not_found(name, matches[0] if matches else None)
        return self._mapping[name], None

    def list_templates(self) -> list[str]:
        return sorted(self._mapping)


class FunctionLoader:
    """Wrap a callable as a loader.

    The callable receives the template name and returns the source string,
    a ``(source, filename)`` tuple, or ``None`` when the template does not
    exist.

    Example:
        >>> def load(name):
        ...     return {"hello.txt": "Hello {{ name }}"}.get(name)
        >>> env = Environment(loader=FunctionLoader(load))
    """

    __slots__ = ("_load_func",)

    def __init__(self, load_func: Callable[[str], str | tuple[str, str | None] | None]):
        self._load_func = load_func

    def get_source(self, name: str) -> tuple[str, str | None]:
        result = self._load_func(name)
        if result is None:
            raise not_found(name)
        if isinstance(result, str):
            return result, None
        return result

    def list_templates(self) -> list[str]:
        """A function cannot enumerate its templates."""
        return []


class ChoiceLoader:
    """Try multiple loaders in order, returning the first match.

    Example:
        >>> custom = DictLoader({"nav.html": "<nav>Custom</nav>"})
        >>> default = DictLoader({"nav.html": "<nav>Default</nav>", "footer.html": "<footer/>"})
        >>> env = Environment(loader=ChoiceLoader([custom, default]))
        >>> env.get_template("nav.html").render()
        '<nav>Custom</nav>'
    """

    __slots__ = ("_loaders",)

    def __init__(self, loaders: list[Loader]):
        self._loaders = loaders

    def get_source(self, name: str) -> tuple[str, str | None]:
        for loader in self._loaders:
            try:
                return loader.get_source(name)
            except TemplateNotFoundError:
                continue
        raise not_found(name)

    def list_templates(self) -> list[str]:
        templates: set[str] = set()
        for loader in self._loaders:
            if hasattr(loader, "list_templates"):
                templates.update(loader.list_templates())
        return sorted(templates)


def as_loader(loader: Loader | Callable[[str], str | None] | None) -> Loader | None:
    """Accept loader objects and plain ``name -> source`` callables."""
    if loader is None or isinstance(loader, Loader):
        return loader
    if callable(loader):
        return FunctionLoader(loader)
    raise TypeError(f"expected a loader or a callable, got {type(loader).__name__}")
