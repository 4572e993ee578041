"""Default global functions available in all templates.

These are registered in ``Environment.__init__`` and can be shadowed by
context variables or replaced with ``env.add_global()``.

Globals:
    - `range(stop)` / `range(start, stop[, step])`: Integer sequence,
      at most ``MAX_RANGE`` items
    - `dict(**items)`: Build a map from keyword arguments
    - `namespace(**attrs)`: Mutable attribute bag for ``{% set ns.x = ... %}``
    - `cycler(*items)`: Rotate through values with ``next()``
    - `joiner(sep=", ")`: Returns ``""`` on the first call, then ``sep``
    - `debug()`: Dump the names visible to the template

Usage:
    {% set ns = namespace(found=false) %}
    {% for item in items %}{% if item.ok %}{% set ns.found = true %}{% endif %}{% endfor %}

    {% set row = cycler("odd", "even") %}
    {% for user in users %}<tr class="{{ row.next() }}">{% endfor %}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from quire.environment.exceptions import TemplateRuntimeError
from quire.utils.decorators import pass_state
from quire.value.display import literal
from quire.value.objects import Namespace

if TYPE_CHECKING:
    from quire.vm.state import State

MAX_RANGE = 100_000


def _range(*args: int) -> range:
    """Like Python's ``range``, refusing sequences longer than ``MAX_RANGE``."""
    if not 1 <= len(args) <= 3:
        raise TemplateRuntimeError(f"range expected 1 to 3 arguments, got {len(args)}")
    for arg in args:
        if not isinstance(arg, int) or isinstance(arg, bool):
            raise TemplateRuntimeError(f"range arguments must be integers, got {arg!r}")
    if len(args) == 3 and args[2] == 0:
        raise TemplateRuntimeError("range step must not be zero")
    result = range(*args)
    if len(result) > MAX_RANGE:
        raise TemplateRuntimeError(
            f"range has too many elements ({len(result)}, limit is {MAX_RANGE})"
        )
    return result


def _dict(*args: Mapping[str, Any], **kwargs: Any) -> dict[str, Any]:
    if len(args) > 1:
        raise TemplateRuntimeError("dict expected at most 1 positional argument")
    result: dict[str, Any] = dict(args[0]) if args else {}
    result.update(kwargs)
    return result


def _namespace(*args: Mapping[str, Any], **kwargs: Any) -> Namespace:
    return Namespace(_dict(*args, **kwargs))


class Cycler:
    """Cycle through values, independent of any loop.

    Example:
        {% set c = cycler("a", "b") %}{{ c.next() }}{{ c.next() }}{{ c.next() }}
        → aba
    """

    def __init__(self, *items: Any):
        if not items:
            raise TemplateRuntimeError("cycler requires at least one item")
        self.items = items
        self.pos = 0

    @property
    def current(self) -> Any:
        return self.items[self.pos]

    def next(self) -> Any:
        value = self.current
        self.pos = (self.pos + 1) % len(self.items)
        return value

    def reset(self) -> None:
        self.pos = 0

    def __repr__(self) -> str:
        return f"<Cycler {self.items!r} at {self.pos}>"


class Joiner:
    """Callable returning ``""`` the first time and ``sep`` afterwards."""

    def __init__(self, sep: str = ", "):
        self.sep = sep
        self.used = False

    def __call__(self) -> str:
        if not self.used:
            self.used = True
            return ""
        return self.sep

    def __repr__(self) -> str:
        return f"<Joiner {self.sep!r}>"


@pass_state
def _debug(state: State) -> str:
    """Describe the render: visible names, filters and tests."""
    names = sorted(state.vm.known_names())
    context = {name: state.context[name] for name in sorted(state.context)}
    return "\n".join(
        [
            f"context: {literal(context)}",
            f"names: {', '.join(names)}",
            f"filters: {', '.join(sorted(state.env.filters))}",
            f"tests: {', '.join(sorted(state.env.tests))}",
        ]
    )


DEFAULT_GLOBALS: dict[str, Any] = {
    "cycler": Cycler,
    "debug": _debug,
    "dict": _dict,
    "joiner": Joiner,
    "namespace": _namespace,
    "range": _range,
}


__all__ = ["DEFAULT_GLOBALS", "MAX_RANGE", "Cycler", "Joiner"]
