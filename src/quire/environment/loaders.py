"""Template loaders for Quire environment.

Loaders provide template source to the Environment on a cache miss. They
implement ``get_source(name)`` returning ``(source, filename)`` and raise
``TemplateNotFoundError`` when they do not know the name.

Built-in Loaders:
- `DictLoader`: Load from an in-memory mapping (testing/embedded)
- `FunctionLoader`: Wrap a callable as a loader (databases, CMS, generated sources)
- `ChoiceLoader`: Try multiple loaders in order (overrides with fallback)

Custom Loaders:
Implement the Loader protocol:
    ```python
    class DatabaseLoader:
        def get_source(self, name: str) -> tuple[str, str | None]:
            row = db.query("SELECT source FROM templates WHERE name = ?", name)
            if not row:
                raise TemplateNotFoundError(f"Template '{name}' not found")
            return row.source, f"db://{name}"
    ```

Thread-Safety:
Loaders should be thread-safe for concurrent ``get_source()`` calls. The
built-in loaders hold no mutable state of their own.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from difflib import get_close_matches
from typing import Protocol, runtime_checkable

from quire.environment.exceptions import TemplateNotFoundError


@runtime_checkable
class Loader(Protocol):
    """Anything with a ``get_source(name) -> (source, filename)`` method."""

    def get_source(self, name: str) -> tuple[str, str | None]: ...


class DictLoader:
    """Load templates from an in-memory mapping.

    Example:
            >>> loader = DictLoader({
            ...     "base.html": "<html>{% block content %}{% end %}</html>",
            ...     "page.html": "{% extends 'base.html' %}{% block content %}Hi{% end %}",
            ... })
            >>> env = Environment(loader=loader)
            >>> env.get_template("page.html").render()
            '<html>Hi</html>'

    Raises:
        TemplateNotFoundError: If template name not in mapping
    """

    __slots__ = ("_mapping",)

    def __init__(self, mapping: Mapping[str, str]):
        self._mapping = mapping

    def get_source(self, name: str) -> tuple[str, None]:
        if name not in self._mapping:
            available = sorted(self._mapping.keys())
            msg = f"Template '{name}' not found"
            matches = get_close_matches(name, available, n=1, cutoff=0.6)
            if matches:
                msg += f". Did you mean '{matches[0]}'?"
            elif available:
                msg += f". Available: {', '.join(available[:10])}"
                if len(available) > 10:
                    msg += f" ... ({len(available)} total)"
            raise TemplateNotFoundError(msg)
        return self._mapping[name], None

    def list_templates(self) -> list[str]:
        return sorted(self._mapping.keys())


class FunctionLoader:
    """Wrap a callable as a template loader.

    The function takes a template name and returns either the source, a
    ``(source, filename)`` tuple, or ``None`` when the template does not
    exist. Bare callables passed to ``Environment(loader=...)`` are wrapped
    in a ``FunctionLoader`` automatically.

    Example:
            >>> def load(name):
            ...     if name == "greeting.html":
            ...         return "Hello, {{ name }}!"
            ...     return None
            >>> env = Environment(loader=FunctionLoader(load))
            >>> env.get_template("greeting.html").render(name="World")
            'Hello, World!'

    Raises:
        TemplateNotFoundError: If ``load_func`` returns ``None``
    """

    __slots__ = ("_load_func",)

    def __init__(self, load_func: Callable[[str], str | tuple[str, str | None] | None]):
        self._load_func = load_func

    def get_source(self, name: str) -> tuple[str, str | None]:
        result = self._load_func(name)
        if result is None:
            raise TemplateNotFoundError(f"Template '{name}' not found")
        if isinstance(result, str):
            return result, "<function>"
        return result

    def list_templates(self) -> list[str]:
        """FunctionLoader cannot enumerate templates."""
        return []


class ChoiceLoader:
    """Try multiple loaders in order, returning the first match.

    Example:
            >>> custom = DictLoader({"nav.html": "<nav>Custom</nav>"})
            >>> default = DictLoader({
            ...     "nav.html": "<nav>Default</nav>",
            ...     "footer.html": "<footer>Default</footer>",
            ... })
            >>> env = Environment(loader=ChoiceLoader([custom, default]))
            >>> env.get_template("nav.html").render()
            '<nav>Custom</nav>'
            >>> env.get_template("footer.html").render()
            '<footer>Default</footer>'

    Raises:
        TemplateNotFoundError: If no loader can find the template
    """

    __slots__ = ("_loaders",)

    def __init__(self, loaders: Sequence[Loader]):
        self._loaders = list(loaders)

    def get_source(self, name: str) -> tuple[str, str | None]:
        for loader in self._loaders:
            try:
                return loader.get_source(name)
            except TemplateNotFoundError:
                continue
        raise TemplateNotFoundError(
            f"Template '{name}' not found in any of {len(self._loaders)} loaders"
        )

    def list_templates(self) -> list[str]:
        """Merge template lists from all loaders (deduplicated, sorted)."""
        templates: set[str] = set()
        for loader in self._loaders:
            if hasattr(loader, "list_templates"):
                templates.update(loader.list_templates())
        return sorted(templates)


def as_loader(loader: Loader | Callable[[str], str | None] | None) -> Loader | None:
    """Accept a loader object or a bare ``load(name)`` callable."""
    if loader is None or isinstance(loader, Loader):
        return loader
    if callable(loader):
        return FunctionLoader(loader)
    raise TypeError(f"expected a loader or a callable, got {type(loader).__name__}")
