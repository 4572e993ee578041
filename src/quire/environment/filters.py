"""Built-in filters for Quire templates.

Filters transform values in template expressions using the pipe syntax:
`{{ value | filter }}` or `{{ value | filter(arg1, arg2) }}`

Categories:
**String Filters**:
    - `upper`, `lower`, `title`, `capitalize`, `trim`, `replace`
    - `truncate`, `wordcount`, `center`, `indent`, `striptags`, `format`

**HTML/Security Filters**:
    - `escape` / `e`: HTML-escape the value
    - `safe`: Mark as safe (no escaping)
    - `urlencode`: Percent-encode for URLs
    - `tojson`: JSON that is safe to embed in HTML

**Collection Filters**:
    - `first`, `last`, `length` / `count`, `list`, `items`, `reverse`
    - `sort`, `dictsort`, `unique`, `batch`, `slice`, `join`
    - `sum`, `min`, `max`

**Functional Filters**:
    - `map`: Apply a filter or extract an attribute from each item
    - `select` / `reject`: Keep or drop items passing a test
    - `selectattr` / `rejectattr`: The same, on an attribute of each item
    - `attr`: Look up one attribute

**Conversion Filters**:
    - `int`, `float`, `string`, `bool`, `abs`, `round`, `default` / `d`, `pprint`

Attribute arguments accept dotted paths (``attribute="author.name"``) and
integer segments (``attribute="tags.0"``).

Custom Filters:
    >>> env.register_filter('money', lambda v: f"${v:,.2f}")
    >>> # {{ price | money }}
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

from quire.environment.exceptions import FilterNotFoundError, TemplateRuntimeError, TestNotFoundError
from quire.utils.decorators import accepts_undefined, pass_state, wants_state
from quire.utils.html import Markup, html_escape, striptags
from quire.value.display import AutoEscape, dump_json, literal, to_str
from quire.value.objects import MISSING, get_attr, get_item, iterate, length
from quire.value.ops import BINARY_OPS, is_true, sort_key, type_name
from quire.value.undefined import Undefined

if TYPE_CHECKING:
    from quire.vm.state import State

_WORD_RE = re.compile(r"\w+")


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _soft(value: Any, text: str) -> str:
    """Keep ``text`` safe if ``value`` was safe."""
    return Markup(text) if isinstance(value, Markup) else text


def _iter(value: Any, what: str) -> list[Any]:
    if value is None or isinstance(value, Undefined):
        return []
    items = iterate(value)
    if items is None:
        raise TemplateRuntimeError(f"{what}: '{type_name(value)}' object is not iterable")
    return list(items)


def _attr_getter(attribute: str | int | None) -> Callable[[Any], Any]:
    """Item getter for ``attribute``: a dotted path, or an index."""
    if attribute is None:
        return lambda item: item
    if isinstance(attribute, int):
        parts: list[str | int] = [attribute]
    else:
        parts = [int(part) if part.isdigit() else part for part in attribute.split(".")]

    def getter(item: Any) -> Any:
        for part in parts:
            value = get_item(item, part)
            if value is MISSING and isinstance(part, str):
                value = get_attr(item, part)
            if value is MISSING:
                return Undefined(str(attribute))
            item = value
        return item

    return getter


def _fold(value: Any, case_sensitive: bool) -> Any:
    if not case_sensitive and isinstance(value, str):
        return value.lower()
    return value


def _call_registered(state: State, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    if wants_state(func):
        return func(state, *args, **kwargs)
    return func(*args, **kwargs)


def _lookup_test(state: State, name: str) -> Callable[..., Any]:
    func = state.env.tests.get(name)
    if func is None:
        raise TestNotFoundError(name, available_names=frozenset(state.env.tests))
    return func


def _select(
    state: State,
    value: Any,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    attribute: str | None,
    keep: bool,
) -> list[Any]:
    getter = _attr_getter(attribute)
    if args:
        test = _lookup_test(state, args[0])

        def passes(item: Any) -> bool:
            return bool(_call_registered(state, test, getter(item), *args[1:], **kwargs))
    else:

        def passes(item: Any) -> bool:
            return is_true(getter(item))

    return [item for item in _iter(value, "select") if passes(item) is keep]


# ─────────────────────────────────────────────────────────────────────────────
# String filters
# ─────────────────────────────────────────────────────────────────────────────


def _filter_upper(value: Any) -> str:
    return _soft(value, to_str(value).upper())


def _filter_lower(value: Any) -> str:
    return _soft(value, to_str(value).lower())


def _filter_title(value: Any) -> str:
    return _soft(value, to_str(value).title())


def _filter_capitalize(value: Any) -> str:
    return _soft(value, to_str(value).capitalize())


def _filter_trim(value: Any, chars: str | None = None) -> str:
    return _soft(value, to_str(value).strip(chars))


def _filter_replace(value: Any, old: Any, new: Any, count: int | None = None) -> str:
    """Replace occurrences of ``old`` with ``new``.

    On safe strings the replacement is escaped first, so the result stays safe.
    """
    text = to_str(value)
    limit = -1 if count is None else count
    if isinstance(value, Markup):
        old_text, new_text = str(html_escape(to_str(old))), str(html_escape(to_str(new)))
        return Markup(text.replace(old_text, new_text, limit))
    return text.replace(to_str(old), to_str(new), limit)


def _filter_truncate(
    value: Any,
    length: int = 255,
    killwords: bool = False,
    end: str = "...",
    leeway: int = 5,
) -> str:
    """Truncate to ``length`` characters, cutting at a word boundary.

    Text at most ``leeway`` characters too long is left alone.
    """
    text = to_str(value)
    if length < len(end):
        raise TemplateRuntimeError(f"truncate: length must be at least {len(end)}")
    if len(text) <= length + leeway:
        return text
    if killwords:
        return text[: length - len(end)] + end
    head = text[: length - len(end)].rsplit(" ", 1)[0]
    return head + end


def _filter_wordcount(value: Any) -> int:
    return len(_WORD_RE.findall(to_str(value)))


def _filter_center(value: Any, width: int = 80) -> str:
    return to_str(value).center(width)


def _filter_indent(value: Any, width: int | str = 4, first: bool = False, blank: bool = False) -> str:
    """Indent every line but the first by ``width`` spaces (or the given string).

    Blank lines stay empty unless ``blank`` is true.
    """
    prefix = width if isinstance(width, str) else " " * width
    text = to_str(value)
    lines = text.split("\n")
    out = []
    for i, line in enumerate(lines):
        if (i == 0 and not first) or (not line.strip() and not blank):
            out.append(line)
        else:
            out.append(prefix + line)
    return _soft(value, "\n".join(out))


def _filter_striptags(value: Any) -> str:
    return striptags(to_str(value))


def _filter_format(value: Any, *args: Any, **kwargs: Any) -> str:
    """printf-style formatting: ``{{ "%s - %s" | format("a", "b") }}``."""
    if args and kwargs:
        raise TemplateRuntimeError("format: use positional or keyword arguments, not both")
    try:
        return to_str(value) % (kwargs or args)
    except (TypeError, ValueError, KeyError) as exc:
        raise TemplateRuntimeError(f"format: {exc}") from exc


# ─────────────────────────────────────────────────────────────────────────────
# HTML and encoding
# ─────────────────────────────────────────────────────────────────────────────


def _filter_safe(value: Any) -> Markup:
    return value if isinstance(value, Markup) else Markup(to_str(value))


def _filter_escape(value: Any) -> Markup:
    if isinstance(value, Markup):
        return value
    return html_escape(to_str(value))


def _filter_urlencode(value: Any) -> str:
    """Percent-encode a string, or build a query string from a map or pairs."""
    if isinstance(value, Mapping):
        return urlencode([(to_str(k), to_str(v)) for k, v in value.items()])
    if isinstance(value, (list, tuple)):
        return urlencode([(to_str(k), to_str(v)) for k, v in value])
    return quote(to_str(value), safe="/")


def _filter_tojson(value: Any, indent: int | None = None) -> Markup:
    """Serialize to JSON; ``<``, ``>``, ``&`` and ``'`` are escaped for HTML."""
    return Markup(dump_json(value, indent=indent))


def _filter_pprint(value: Any) -> str:
    return literal(value)


# ─────────────────────────────────────────────────────────────────────────────
# Collections
# ─────────────────────────────────────────────────────────────────────────────


def _filter_length(value: Any) -> int:
    size = length(value)
    if size is None:
        raise TemplateRuntimeError(f"length: '{type_name(value)}' object has no length")
    return size


def _filter_first(value: Any) -> Any:
    for item in _iter(value, "first"):
        return item
    return Undefined("first")


def _filter_last(value: Any) -> Any:
    items = _iter(value, "last")
    return items[-1] if items else Undefined("last")


def _filter_reverse(value: Any) -> Any:
    if isinstance(value, str):
        return _soft(value, value[::-1])
    return _iter(value, "reverse")[::-1]


def _filter_list(value: Any) -> list[Any]:
    return _iter(value, "list")


def _filter_items(value: Any) -> list[tuple[Any, Any]]:
    if value is None or isinstance(value, Undefined):
        return []
    if not isinstance(value, Mapping):
        raise TemplateRuntimeError(f"items: expected a map, got '{type_name(value)}'")
    return list(value.items())


def _filter_sort(
    value: Any,
    reverse: bool = False,
    case_sensitive: bool = False,
    attribute: str | None = None,
) -> list[Any]:
    getter = _attr_getter(attribute)
    return sorted(
        _iter(value, "sort"),
        key=lambda item: sort_key(_fold(getter(item), case_sensitive)),
        reverse=reverse,
    )


def _filter_dictsort(
    value: Any,
    case_sensitive: bool = False,
    by: str = "key",
    reverse: bool = False,
) -> list[tuple[Any, Any]]:
    if by not in ("key", "value"):
        raise TemplateRuntimeError("dictsort: 'by' must be 'key' or 'value'")
    index = 0 if by == "key" else 1
    return sorted(
        _filter_items(value),
        key=lambda pair: sort_key(_fold(pair[index], case_sensitive)),
        reverse=reverse,
    )


def _filter_unique(
    value: Any, case_sensitive: bool = False, attribute: str | None = None
) -> list[Any]:
    getter = _attr_getter(attribute)
    seen: list[Any] = []
    out = []
    for item in _iter(value, "unique"):
        key = sort_key(_fold(getter(item), case_sensitive))
        if key not in seen:
            seen.append(key)
            out.append(item)
    return out


def _filter_batch(value: Any, linecount: int, fill_with: Any = None) -> list[list[Any]]:
    """Split into rows of ``linecount`` items, padding the last row if asked."""
    if linecount <= 0:
        raise TemplateRuntimeError("batch: size must be positive")
    items = _iter(value, "batch")
    rows = [items[i : i + linecount] for i in range(0, len(items), linecount)]
    if rows and fill_with is not None:
        rows[-1].extend([fill_with] * (linecount - len(rows[-1])))
    return rows


def _filter_slice(value: Any, slices: int, fill_with: Any = None) -> list[list[Any]]:
    """Split into ``slices`` columns of near-equal length."""
    if slices <= 0:
        raise TemplateRuntimeError("slice: count must be positive")
    items = _iter(value, "slice")
    per_slice, extra = divmod(len(items), slices)
    out = []
    offset = 0
    for i in range(slices):
        size = per_slice + (1 if i < extra else 0)
        column = items[offset : offset + size]
        offset += size
        if fill_with is not None and extra and i >= extra:
            column.append(fill_with)
        out.append(column)
    return out


@pass_state
def _filter_join(state: State, value: Any, d: str = "", attribute: str | None = None) -> str:
    """Join items with ``d``; under HTML autoescape unsafe items are escaped."""
    getter = _attr_getter(attribute)
    items = [getter(item) for item in _iter(value, "join")]
    if state.autoescape is AutoEscape.HTML or any(isinstance(i, Markup) for i in items):
        return html_escape(to_str(d)).join(
            item if isinstance(item, Markup) else to_str(item) for item in items
        )
    return to_str(d).join(to_str(item) for item in items)


def _filter_sum(value: Any, attribute: str | None = None, start: Any = 0) -> Any:
    getter = _attr_getter(attribute)
    add = BINARY_OPS["+"]
    total = start
    for item in _iter(value, "sum"):
        total = add(total, getter(item))
    return total


def _extreme(
    value: Any, case_sensitive: bool, attribute: str | None, pick: Callable[..., Any], what: str
) -> Any:
    items = _iter(value, what)
    if not items:
        return Undefined(what)
    getter = _attr_getter(attribute)
    return pick(items, key=lambda item: sort_key(_fold(getter(item), case_sensitive)))


def _filter_min(value: Any, case_sensitive: bool = False, attribute: str | None = None) -> Any:
    return _extreme(value, case_sensitive, attribute, min, "min")


def _filter_max(value: Any, case_sensitive: bool = False, attribute: str | None = None) -> Any:
    return _extreme(value, case_sensitive, attribute, max, "max")


# ─────────────────────────────────────────────────────────────────────────────
# Functional filters
# ─────────────────────────────────────────────────────────────────────────────


@pass_state
def _filter_map(
    state: State,
    value: Any,
    *args: Any,
    attribute: str | None = None,
    default: Any = None,
    **kwargs: Any,
) -> list[Any]:
    """Apply a filter to every item, or pick an attribute of every item.

    Example:
        {{ users | map(attribute="name") | join(", ") }}
        {{ names | map("upper") | list }}
    """
    items = _iter(value, "map")
    if attribute is not None:
        getter = _attr_getter(attribute)
        out = []
        for item in items:
            picked = getter(item)
            out.append(default if isinstance(picked, Undefined) and default is not None else picked)
        return out
    if not args:
        return items
    name, *rest = args
    func = state.env.filters.get(name)
    if func is None:
        raise FilterNotFoundError(name, available_names=frozenset(state.env.filters))
    return [_call_registered(state, func, item, *rest, **kwargs) for item in items]


@pass_state
def _filter_select(state: State, value: Any, *args: Any, **kwargs: Any) -> list[Any]:
    return _select(state, value, args, kwargs, None, True)


@pass_state
def _filter_reject(state: State, value: Any, *args: Any, **kwargs: Any) -> list[Any]:
    return _select(state, value, args, kwargs, None, False)


@pass_state
def _filter_selectattr(
    state: State, value: Any, attribute: str, *args: Any, **kwargs: Any
) -> list[Any]:
    return _select(state, value, args, kwargs, attribute, True)


@pass_state
def _filter_rejectattr(
    state: State, value: Any, attribute: str, *args: Any, **kwargs: Any
) -> list[Any]:
    return _select(state, value, args, kwargs, attribute, False)


def _filter_attr(value: Any, name: str) -> Any:
    result = get_attr(value, name)
    return Undefined(name) if result is MISSING else result


# ─────────────────────────────────────────────────────────────────────────────
# Conversion
# ─────────────────────────────────────────────────────────────────────────────


@accepts_undefined
def _filter_default(value: Any, default_value: Any = "", boolean: bool = False) -> Any:
    """Fallback for undefined values, or for any falsy value with ``boolean=true``.

    Example:
        {{ user.nickname | default(user.name) }}
        {{ "" | default("n/a", true) }}
    """
    if isinstance(value, Undefined) or (boolean and not is_true(value)):
        return default_value
    return value


def _filter_int(value: Any, default: int = 0, base: int = 10) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    try:
        if isinstance(value, str):
            text = value.strip().replace("_", "")
            if base == 10:
                return int(float(text)) if "." in text or "e" in text.lower() else int(text)
            return int(text, base)
    except ValueError:
        pass
    return default


def _filter_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(to_str(value).strip())
    except ValueError:
        return default


def _filter_string(value: Any) -> str:
    return value if isinstance(value, str) else to_str(value)


def _filter_bool(value: Any) -> bool:
    return is_true(value)


def _filter_abs(value: Any) -> Any:
    if not isinstance(value, (int, float)):
        raise TemplateRuntimeError(f"abs: expected a number, got '{type_name(value)}'")
    return abs(value)


def _filter_round(value: Any, precision: int = 0, method: str = "common") -> float:
    """Round to ``precision`` digits. ``method`` is common, ceil or floor."""
    if not isinstance(value, (int, float)):
        raise TemplateRuntimeError(f"round: expected a number, got '{type_name(value)}'")
    if method == "common":
        return float(round(value, precision))
    if method not in ("ceil", "floor"):
        raise TemplateRuntimeError("round: method must be 'common', 'ceil' or 'floor'")
    func = math.ceil if method == "ceil" else math.floor
    factor = 10**precision
    return float(func(value * factor) / factor)


def _filter_count(value: Any) -> int:
    return _filter_length(value)


# Default filters
DEFAULT_FILTERS: dict[str, Callable[..., Any]] = {
    "abs": _filter_abs,
    "attr": _filter_attr,
    "batch": _filter_batch,
    "bool": _filter_bool,
    "capitalize": _filter_capitalize,
    "center": _filter_center,
    "count": _filter_count,
    "d": _filter_default,
    "default": _filter_default,
    "dictsort": _filter_dictsort,
    "e": _filter_escape,
    "escape": _filter_escape,
    "first": _filter_first,
    "float": _filter_float,
    "format": _filter_format,
    "indent": _filter_indent,
    "int": _filter_int,
    "items": _filter_items,
    "join": _filter_join,
    "last": _filter_last,
    "length": _filter_length,
    "list": _filter_list,
    "lower": _filter_lower,
    "map": _filter_map,
    "max": _filter_max,
    "min": _filter_min,
    "pprint": _filter_pprint,
    "reject": _filter_reject,
    "rejectattr": _filter_rejectattr,
    "replace": _filter_replace,
    "reverse": _filter_reverse,
    "round": _filter_round,
    "safe": _filter_safe,
    "select": _filter_select,
    "selectattr": _filter_selectattr,
    "slice": _filter_slice,
    "sort": _filter_sort,
    "string": _filter_string,
    "striptags": _filter_striptags,
    "sum": _filter_sum,
    "title": _filter_title,
    "tojson": _filter_tojson,
    "trim": _filter_trim,
    "truncate": _filter_truncate,
    "unique": _filter_unique,
    "upper": _filter_upper,
    "urlencode": _filter_urlencode,
    "wordcount": _filter_wordcount,
}

