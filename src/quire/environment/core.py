"""Core Environment class for Quire template system.

The Environment is the central configuration object for Quire. It manages:

- Template loading and caching
- Filter, test and global registries
- Autoescape policy, undefined behavior and resource limits
- Delimiter syntax and whitespace handling

Thread-Safety:
The Environment is designed for concurrent access:
- Registries use copy-on-write (``FilterRegistry``)
- The template cache is only written under ``_lock``; lookups are lock-free
- Each render runs on its own ``Vm``, so render state is never shared

Example:
    >>> from quire import DictLoader, Environment
    >>> env = Environment(loader=DictLoader({"hello.html": "Hello, {{ name }}!"}))
    >>> env.render("hello.html", name="World")
    'Hello, World!'
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from quire.compiler import Compiler, Program
from quire.environment.exceptions import TemplateNotFoundError
from quire.environment.filters import DEFAULT_FILTERS
from quire.environment.globals import DEFAULT_GLOBALS
from quire.environment.loaders import Loader, as_loader
from quire.environment.registry import FilterRegistry
from quire.environment.tests import DEFAULT_TESTS
from quire.lexer import tokenize
from quire.parser import Parser
from quire.syntax import DEFAULT_SYNTAX, SyntaxConfig, WhitespaceConfig
from quire.template import Template
from quire.value.display import AutoEscape, coerce_autoescape
from quire.value.undefined import UndefinedBehavior

logger = logging.getLogger(__name__)

AutoescapePolicy = bool | str | AutoEscape | Callable[[str], Any]

_JSON_EXTENSIONS = (".json", ".json5", ".js", ".yaml", ".yml")
_PLAIN_EXTENSIONS = (".txt", ".text", ".md", ".csv", ".sql", ".ini", ".toml")

STRING_TEMPLATE_NAME = "<string>"


def select_autoescape(name: str) -> AutoEscape:
    """Default autoescape policy: choose a mode from the template's extension.

    Example:
        >>> select_autoescape("page.html")
        <AutoEscape.HTML: 'html'>
        >>> select_autoescape("data.json")
        <AutoEscape.JSON: 'json'>
        >>> select_autoescape("notes.txt")
        <AutoEscape.NONE: 'none'>
    """
    lowered = name.lower()
    if lowered.endswith(_JSON_EXTENSIONS):
        return AutoEscape.JSON
    if lowered.endswith(_PLAIN_EXTENSIONS):
        return AutoEscape.NONE
    return AutoEscape.HTML


class Environment:
    """Central configuration and template management hub.

    Configuration:
        loader: Template source provider on cache miss (``Loader`` or a
            ``load(name) -> str | None`` callable)
        autoescape: ``bool``, ``AutoEscape``, mode string, or a
            ``callable(name)`` returning one of those. Defaults to
            ``select_autoescape`` (by file extension)
        undefined: ``UndefinedBehavior.LENIENT`` (default) or ``STRICT``
        recursion_limit: Maximum nesting cost of macros, includes and blocks
        fuel: Maximum number of instructions per render, or None
        syntax: Delimiters (``SyntaxConfig``)
        trim_blocks / lstrip_blocks / keep_trailing_newline: Whitespace policy

    Registries (copy-on-write, dict-like):
        filters, tests, globals

    Example:
        >>> env = Environment(autoescape=False, undefined="strict")
        >>> env.register_filter("money", lambda v: f"${v:,.2f}")
        >>> env.render_str("{{ price | money }}", price=1234.5)
        '$1,234.50'
    """

    def __init__(
        self,
        loader: Loader | Callable[[str], str | None] | None = None,
        *,
        autoescape: AutoescapePolicy = select_autoescape,
        undefined: UndefinedBehavior | str = UndefinedBehavior.LENIENT,
        recursion_limit: int = 500,
        fuel: int | None = None,
        syntax: SyntaxConfig | None = None,
        trim_blocks: bool = False,
        lstrip_blocks: bool = False,
        keep_trailing_newline: bool = False,
    ):
        self._lock = threading.RLock()
        self._cache: dict[str, Template] = {}
        self._sources: dict[str, str] = {}
        self._filters: dict[str, Callable[..., Any]] = dict(DEFAULT_FILTERS)
        self._tests: dict[str, Callable[..., Any]] = dict(DEFAULT_TESTS)
        self._globals: dict[str, Any] = dict(DEFAULT_GLOBALS)

        self.loader = as_loader(loader)
        self.autoescape: AutoescapePolicy = autoescape
        self.undefined = UndefinedBehavior(undefined)
        self.recursion_limit = _check_limit("recursion_limit", recursion_limit)
        self.fuel = fuel if fuel is None else _check_limit("fuel", fuel)
        self.syntax = syntax or DEFAULT_SYNTAX
        self.whitespace = WhitespaceConfig(
            trim_blocks=trim_blocks,
            lstrip_blocks=lstrip_blocks,
            keep_trailing_newline=keep_trailing_newline,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Registries
    # ─────────────────────────────────────────────────────────────────────

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
        """Get globals as dict-like registry."""
        return FilterRegistry(self, "_globals")

    def register_filter(self, name: str, func: Callable[..., Any]) -> None:
        """Register a filter; templates resolve filters at call time.

        Replacing a built-in filter is allowed but logged as a warning.
        """
        if name in DEFAULT_FILTERS and self._filters.get(name) is DEFAULT_FILTERS[name]:
            logger.warning("Replacing built-in filter %r", name)
        self.filters[name] = func

    def register_test(self, name: str, func: Callable[..., Any]) -> None:
        self.tests[name] = func

    def register_function(self, name: str, func: Callable[..., Any]) -> None:
        """Register a global function callable from templates as ``name(...)``."""
        if not callable(func):
            raise TypeError(f"register_function() expects a callable, got {type(func).__name__}")
        self.globals[name] = func

    def add_global(self, name: str, value: Any) -> None:
        self.globals[name] = value

    def update_filters(self, filters: Mapping[str, Callable[..., Any]]) -> None:
        self.filters.update(dict(filters))

    def update_tests(self, tests: Mapping[str, Callable[..., Any]]) -> None:
        self.tests.update(dict(tests))

    # ─────────────────────────────────────────────────────────────────────
    # Settings
    # ─────────────────────────────────────────────────────────────────────

    def set_autoescape(self, policy: AutoescapePolicy) -> None:
        """Change the autoescape policy; applies to renders started afterwards."""
        if not callable(policy):
            coerce_autoescape(policy)
        self.autoescape = policy

    def set_undefined_behavior(self, behavior: UndefinedBehavior | str) -> None:
        self.undefined = UndefinedBehavior(behavior)

    def set_recursion_limit(self, limit: int) -> None:
        self.recursion_limit = _check_limit("recursion_limit", limit)

    def set_fuel(self, fuel: int | None) -> None:
        """Limit the instructions a single render may execute (None disables)."""
        self.fuel = fuel if fuel is None else _check_limit("fuel", fuel)

    def set_syntax(self, syntax: SyntaxConfig) -> None:
        """Change delimiters. Cached templates are recompiled on next use."""
        self.syntax = syntax
        self._invalidate()

    def set_whitespace(
        self,
        *,
        trim_blocks: bool | None = None,
        lstrip_blocks: bool | None = None,
        keep_trailing_newline: bool | None = None,
    ) -> None:
        current = self.whitespace
        self.whitespace = WhitespaceConfig(
            trim_blocks=current.trim_blocks if trim_blocks is None else trim_blocks,
            lstrip_blocks=current.lstrip_blocks if lstrip_blocks is None else lstrip_blocks,
            keep_trailing_newline=(
                current.keep_trailing_newline
                if keep_trailing_newline is None
                else keep_trailing_newline
            ),
        )
        self._invalidate()

    def set_loader(self, loader: Loader | Callable[[str], str | None] | None) -> None:
        """Replace the loader. Templates it produced are dropped from the cache."""
        with self._lock:
            self.loader = as_loader(loader)
            self._cache = {name: t for name, t in self._cache.items() if name in self._sources}

    def autoescape_for(self, name: str) -> AutoEscape:
        """Autoescape mode for a template named ``name``."""
        policy = self.autoescape
        if callable(policy) and not isinstance(policy, AutoEscape):
            return coerce_autoescape(policy(name))
        return coerce_autoescape(policy)

    # ─────────────────────────────────────────────────────────────────────
    # Templates
    # ─────────────────────────────────────────────────────────────────────

    def compile(self, source: str, name: str | None = None) -> Program:
        """Lex, parse and compile ``source`` without caching the result.

        Raises:
            TemplateSyntaxError: Lexer or parser error
            TemplateCompileError: The AST cannot be lowered
        """
        tokens = tokenize(source, self.syntax, self.whitespace, name)
        ast = Parser(tokens, name, source).parse()
        return Compiler().compile(ast, name)

    def add_template(self, name: str, source: str) -> Template:
        """Compile ``source`` and register it under ``name``.

        Compilation errors are raised here, not at render time.
        """
        template = Template(self, self.compile(source, name), source)
        with self._lock:
            self._sources[name] = source
            self._cache[name] = template
        logger.debug("Added template %r", name)
        return template

    def get_template(self, name: str) -> Template:
        """Return the compiled template ``name``, loading it on first use.

        Raises:
            TemplateNotFoundError: Not registered and not found by the loader
        """
        template = self._cache.get(name)
        if template is not None:
            return template

        source = self._sources.get(name)
        if source is None:
            if self.loader is None:
                raise TemplateNotFoundError(f"Template '{name}' not found (no loader configured)")
            logger.debug("Cache miss for %r, consulting loader", name)
            source, _filename = self.loader.get_source(name)

        template = Template(self, self.compile(source, name), source)
        with self._lock:
            # Another thread may have won the race; keep the first one.
            return self._cache.setdefault(name, template)

    def from_string(self, source: str, name: str | None = None) -> Template:
        """Compile a template from a string. The result is not cached.

        Example:
            >>> env.from_string("{{ 1 + 2 }}").render()
            '3'
        """
        name = name or STRING_TEMPLATE_NAME
        return Template(self, self.compile(source, name), source)

    def render(self, name: str, context: Mapping[str, Any] | None = None, **kwargs: Any) -> str:
        """Render the template ``name``."""
        return self.get_template(name).render(_merge(context, kwargs))

    def render_str(self, source: str, context: Mapping[str, Any] | None = None, **kwargs: Any) -> str:
        """Compile and render ``source`` in one step."""
        return self.from_string(source).render(_merge(context, kwargs))

    def remove_template(self, name: str) -> None:
        with self._lock:
            self._cache.pop(name, None)
            self._sources.pop(name, None)
        logger.debug("Removed template %r", name)

    def clear_templates(self) -> None:
        """Forget every registered and cached template."""
        with self._lock:
            self._cache = {}
            self._sources = {}
        logger.debug("Cleared template cache")

    def list_templates(self) -> list[str]:
        """Names of registered templates plus those the loader can enumerate."""
        names = set(self._sources)
        if self.loader is not None and hasattr(self.loader, "list_templates"):
            names.update(self.loader.list_templates())
        return sorted(names)

    def _invalidate(self) -> None:
        with self._lock:
            self._cache = {}
        logger.debug("Compile settings changed, template cache invalidated")

    def __repr__(self) -> str:
        return (
            f"<Environment templates={len(self._cache)} "
            f"undefined={self.undefined.value} recursion_limit={self.recursion_limit}>"
        )


def _merge(context: Mapping[str, Any] | None, kwargs: dict[str, Any]) -> dict[str, Any]:
    merged = dict(context or {})
    merged.update(kwargs)
    return merged


def _check_limit(what: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"{what} must be a non-negative integer, got {value!r}")
    return value

