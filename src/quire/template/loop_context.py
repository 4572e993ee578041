"""Loop iteration metadata for Quire ``{% for %}`` blocks."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from quire.value.undefined import Undefined

_NO_VALUE = object()


class LoopContext:
    """Loop iteration metadata accessible as `loop` inside `{% for %}` blocks.

    Provides index tracking, boundary detection, and utility methods for
    common iteration patterns. All properties are computed on-access.

    Properties:
        index: 1-based iteration count (1, 2, 3, ...)
        index0: 0-based iteration count (0, 1, 2, ...)
        first: True on the first iteration
        last: True on the final iteration
        length: Total number of items in the sequence
        revindex: Reverse 1-based index (counts down to 1)
        revindex0: Reverse 0-based index (counts down to 0)
        depth: Nesting level of a recursive loop, starting at 1
        depth0: Nesting level of a recursive loop, starting at 0
        previtem: Previous item in sequence (undefined on first)
        nextitem: Next item in sequence (undefined on last)

    Methods:
        cycle(*values): Return values[index0 % len(values)]
        changed(*values): True when ``values`` differ from the previous call
        loop(iterable): Re-run a ``recursive`` loop body over ``iterable``

    Example:
            ```jinja
            <ul>
            {% for item in items %}
                <li class="{{ loop.cycle('odd', 'even') }}">
                    {{ loop.index }}/{{ loop.length }}: {{ item }}
                    {% if loop.first %}← First{% endif %}
                    {% if loop.last %}← Last{% endif %}
                </li>
            {% endfor %}
            </ul>
            ```

    Output:
            ```html
            <ul>
                <li class="odd">1/3: Apple ← First</li>
                <li class="even">2/3: Banana</li>
                <li class="odd">3/3: Cherry ← Last</li>
            </ul>
            ```
    """

    __slots__ = ("_depth0", "_index", "_items", "_last_changed", "_length", "_recurse")

    def __init__(
        self,
        items: list[Any],
        depth0: int = 0,
        recurse: Callable[[Any], Any] | None = None,
    ) -> None:
        self._items = items
        self._length = len(items)
        self._index = -1
        self._depth0 = depth0
        self._recurse = recurse
        self._last_changed: Any = _NO_VALUE

    def advance(self) -> tuple[bool, Any]:
        """Step to the next item; ``(False, None)`` once exhausted."""
        if self._index + 1 >= self._length:
            self._index = self._length
            return False, None
        self._index += 1
        return True, self._items[self._index]

    @property
    def iterated(self) -> bool:
        """True once the loop body has run at least once."""
        return self._length > 0 and self._index >= 0

    @property
    def recursive(self) -> bool:
        return self._recurse is not None

    @property
    def recursion(self) -> Callable[[Any], Any] | None:
        """Entry point used by ``loop(iterable)`` in a recursive loop."""
        return self._recurse

    @property
    def index(self) -> int:
        """1-based iteration count."""
        return self._index + 1

    @property
    def index0(self) -> int:
        """0-based iteration count."""
        return self._index

    @property
    def first(self) -> bool:
        """True if this is the first iteration."""
        return self._index == 0

    @property
    def last(self) -> bool:
        """True if this is the last iteration."""
        return self._index == self._length - 1

    @property
    def length(self) -> int:
        """Total number of items in the sequence."""
        return self._length

    @property
    def revindex(self) -> int:
        """Reverse 1-based index (counts down to 1)."""
        return self._length - self._index

    @property
    def revindex0(self) -> int:
        """Reverse 0-based index (counts down to 0)."""
        return self._length - self._index - 1

    @property
    def depth(self) -> int:
        """Recursion level, 1 for the outermost loop."""
        return self._depth0 + 1

    @property
    def depth0(self) -> int:
        """Recursion level, 0 for the outermost loop."""
        return self._depth0

    @property
    def previtem(self) -> Any:
        """Previous item in the sequence, or undefined if first."""
        if self._index <= 0:
            return Undefined("loop.previtem")
        return self._items[self._index - 1]

    @property
    def nextitem(self) -> Any:
        """Next item in the sequence, or undefined if last."""
        if self._index >= self._length - 1:
            return Undefined("loop.nextitem")
        return self._items[self._index + 1]

    def cycle(self, *values: Any) -> Any:
        """Cycle through the given values.

        Example:
            {{ loop.cycle('odd', 'even') }}
        """
        if not values:
            from quire.environment.exceptions import TemplateRuntimeError

            raise TemplateRuntimeError("loop.cycle() needs at least one value")
        return values[self._index % len(values)]

    def changed(self, *values: Any) -> bool:
        """True on the first call and whenever ``values`` differ from the last call.

        Example:
            {% if loop.changed(entry.category) %}<h2>{{ entry.category }}</h2>{% endif %}
        """
        if values != self._last_changed:
            self._last_changed = values
            return True
        return False

    def __call__(self, iterable: Any) -> Any:
        """Render the body of a ``recursive`` loop for ``iterable``."""
        if self._recurse is None:
            from quire.environment.exceptions import TemplateRuntimeError

            raise TemplateRuntimeError(
                "loop() can only be called in a loop marked 'recursive'",
                suggestion="Declare the loop as {% for x in items recursive %}",
            )
        return self._recurse(iterable)

    def __repr__(self) -> str:
        return f"<LoopContext {self.index}/{self.length}>"
