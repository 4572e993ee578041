"""Value classification, host objects and attribute/item lookup.

Template values are plain Python values. ``None``, ``bool``, ``int``,
``float``, ``str`` (``Markup`` for safe strings), ``bytes``, ``list``/``tuple``
and ``dict`` map onto the template language directly. Anything else is a
*dynamic* value: either an ``Object`` subclass that spells out what templates
may do with it, or an arbitrary host object accessed through its own
attributes and items (names starting with ``_`` are never exposed).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from enum import Enum
from typing import Any, Final

from quire.value.undefined import Undefined


class _Missing:
    """Sentinel returned by lookups that found nothing."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()


class ValueKind(Enum):
    """Coarse value classification, in sort order."""

    UNDEFINED = "undefined"
    NONE = "none"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    BYTES = "bytes"
    SEQUENCE = "sequence"
    MAP = "map"
    DYNAMIC = "dynamic"


class Object:
    """Base class for host objects with explicit template capabilities.

    Override the hooks a template should be able to use. Unimplemented
    hooks behave like the capability is absent: lookups return ``MISSING``,
    ``iterate`` returns None (not iterable), ``call`` raises.

    Example:
        >>> class Point(Object):
        ...     def __init__(self, x, y):
        ...         self.x, self.y = x, y
        ...     def get_attr(self, name):
        ...         return {"x": self.x, "y": self.y}.get(name, MISSING)
        ...     def render(self):
        ...         return f"({self.x}, {self.y})"
    """

    __slots__ = ()

    def get_attr(self, name: str) -> Any:
        return MISSING

    def get_item(self, key: Any) -> Any:
        if isinstance(key, str):
            return self.get_attr(key)
        return MISSING

    def iterate(self) -> Iterable[Any] | None:
        return None

    def length(self) -> int | None:
        return None

    def contains(self, item: Any) -> bool:
        items = self.iterate()
        if items is None:
            from quire.environment.exceptions import TemplateRuntimeError

            raise TemplateRuntimeError(f"'in' is not supported by {type(self).__name__}")
        return any(item == x for x in items)

    def call(self, state: Any, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        from quire.environment.exceptions import TemplateRuntimeError

        raise TemplateRuntimeError(f"{type(self).__name__} object is not callable")

    def is_true(self) -> bool:
        return True

    def render(self) -> str:
        return f"<{type(self).__name__}>"


class Namespace(Object):
    """Mutable attribute bag created by ``namespace()``.

    The only value whose attributes templates may assign
    (``{% set ns.found = true %}``), which makes it the way to carry state
    out of a loop body.
    """

    __slots__ = ("_attrs",)

    def __init__(self, attrs: Mapping[str, Any] | None = None):
        self._attrs: dict[str, Any] = dict(attrs or {})

    def get_attr(self, name: str) -> Any:
        return self._attrs.get(name, MISSING)

    def set_attr(self, name: str, value: Any) -> None:
        self._attrs[name] = value

    def iterate(self) -> Iterable[Any]:
        return list(self._attrs)

    def length(self) -> int:
        return len(self._attrs)

    def contains(self, item: Any) -> bool:
        return item in self._attrs

    def render(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._attrs.items())
        return f"<Namespace {inner}>"

    def __repr__(self) -> str:
        return f"Namespace({self._attrs!r})"


# Side-effect free methods templates may call on builtin values.
_STR_METHODS: Final = frozenset(
    {
        "upper",
        "lower",
        "strip",
        "lstrip",
        "rstrip",
        "title",
        "capitalize",
        "startswith",
        "endswith",
        "split",
        "splitlines",
        "replace",
        "count",
        "find",
        "format",
        "join",
        "isdigit",
        "isalpha",
        "isspace",
    }
)
_MAP_METHODS: Final = frozenset({"items", "keys", "values", "get"})


def kind_of(value: Any) -> ValueKind:
    """Classify a template value."""
    if value is None:
        return ValueKind.NONE
    if isinstance(value, Undefined):
        return ValueKind.UNDEFINED
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (bytes, bytearray)):
        return ValueKind.BYTES
    if isinstance(value, Object):
        return ValueKind.DYNAMIC
    if isinstance(value, Mapping):
        return ValueKind.MAP
    if isinstance(value, Sequence):
        return ValueKind.SEQUENCE
    return ValueKind.DYNAMIC


def is_number(value: Any) -> bool:
    """True for ints, floats and bools."""
    return isinstance(value, (int, float))


def get_attr(obj: Any, name: str) -> Any:
    """Look up ``obj.name`` as templates see it, or ``MISSING``."""
    if isinstance(obj, Object):
        return obj.get_attr(name)
    if obj is None or isinstance(obj, (bool, int, float, bytes, Undefined)):
        return MISSING
    if isinstance(obj, Mapping):
        try:
            if name in obj:
                return obj[name]
        except TypeError:
            return MISSING
        if name in _MAP_METHODS:
            return getattr(obj, name)
        return MISSING
    if isinstance(obj, str):
        return getattr(obj, name) if name in _STR_METHODS else MISSING
    if isinstance(obj, (list, tuple)):
        return MISSING
    if name.startswith("_"):
        return MISSING
    try:
        return getattr(obj, name)
    except AttributeError:
        pass
    if hasattr(obj, "__getitem__"):
        try:
            return obj[name]
        except (LookupError, TypeError):
            pass
    return MISSING


def get_item(obj: Any, key: Any) -> Any:
    """Look up ``obj[key]`` as templates see it, or ``MISSING``.

    Integer indexes on sequences may be negative. String keys on objects
    that have no such item fall back to attribute lookup.
    """
    if isinstance(obj, Object):
        return obj.get_item(key)
    if obj is None or isinstance(obj, (bool, int, float, Undefined)):
        return MISSING
    if isinstance(obj, Mapping):
        try:
            return obj.get(key, MISSING)
        except TypeError:
            return MISSING
    if isinstance(obj, (str, bytes, list, tuple)):
        if isinstance(key, bool) or not isinstance(key, int):
            return MISSING
        try:
            return obj[key]
        except IndexError:
            return MISSING
    if hasattr(obj, "__getitem__") and not (isinstance(key, str) and key.startswith("_")):
        try:
            return obj[key]
        except (LookupError, TypeError):
            pass
    if isinstance(key, str):
        return get_attr(obj, key)
    return MISSING


def iterate(value: Any) -> Iterator[Any] | None:
    """Iterator over a value's items, or None if it is not iterable.

    Maps iterate their keys, strings their characters.
    """
    if isinstance(value, Object):
        items = value.iterate()
        return iter(items) if items is not None else None
    if value is None or isinstance(value, (bool, int, float)):
        return None
    if isinstance(value, Iterable):
        return iter(value)
    return None


def length(value: Any) -> int | None:
    """Length of a value, or None if it has none."""
    if isinstance(value, Object):
        return value.length()
    if isinstance(value, (str, bytes, Mapping, Sequence)) or hasattr(value, "__len__"):
        return len(value)
    return None
