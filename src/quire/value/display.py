"""Rendering values to text.

``to_str`` is what ``{{ value }}`` prints before escaping: ``none``,
``true``/``false``, empty for undefined, and template-literal syntax for
containers (``["a", 1, true]``). ``escape_for`` applies an autoescape mode.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any

from quire.utils.html import Markup, html_escape
from quire.value.objects import Object, iterate
from quire.value.undefined import Undefined


class AutoEscape(Enum):
    """Autoescape modes for emitted values."""

    NONE = "none"
    HTML = "html"
    JSON = "json"


def literal(value: Any) -> str:
    """Template-literal representation used inside containers and by pprint."""
    if isinstance(value, str):
        return json.dumps(str(value), ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(literal(item) for item in value) + "]"
    if isinstance(value, Mapping):
        return "{" + ", ".join(f"{literal(k)}: {literal(v)}" for k, v in value.items()) + "}"
    return to_str(value)


def to_str(value: Any) -> str:
    """Stringify a value the way templates print it."""
    if isinstance(value, str):
        return value
    if value is None:
        return "none"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, Undefined):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, Object):
        return value.render()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, (list, tuple, Mapping)):
        return literal(value)
    return str(value)


def to_json(value: Any) -> Any:
    """Convert a template value into JSON-serializable data."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return str(value) if isinstance(value, Markup) else value
    if isinstance(value, Undefined):
        return None
    if isinstance(value, Mapping):
        return {to_str(k): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, Object):
        items = iterate(value)
        return [to_json(item) for item in items] if items is not None else value.render()
    return to_str(value)


def dump_json(value: Any, *, indent: int | None = None) -> str:
    """JSON text safe to embed in HTML ``<script>`` tags."""
    text = json.dumps(to_json(value), indent=indent, sort_keys=True, ensure_ascii=False)
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("'", "\\u0027")
    )


def escape_for(value: Any, mode: AutoEscape) -> str:
    """Render ``value`` for output under autoescape ``mode``.

    Safe strings (``Markup`` or objects with ``__html__``) pass through
    unchanged in every mode.
    """
    if isinstance(value, Markup):
        return value
    if hasattr(value, "__html__"):
        return Markup(value)
    if mode is AutoEscape.HTML:
        if isinstance(value, str):
            return html_escape(value)
        if value is None or isinstance(value, (bool, int, float, Undefined)):
            return to_str(value)
        return html_escape(to_str(value))
    if mode is AutoEscape.JSON:
        if isinstance(value, Undefined):
            return ""
        return dump_json(value)
    return to_str(value)


def coerce_autoescape(value: Any) -> AutoEscape:
    """Interpret ``True``/``False``, a mode name or an ``AutoEscape`` member."""
    if isinstance(value, AutoEscape):
        return value
    if value is True:
        return AutoEscape.HTML
    if value is False or value is None or isinstance(value, Undefined):
        return AutoEscape.NONE
    if isinstance(value, str):
        try:
            return AutoEscape(value.lower())
        except ValueError:
            pass
    from quire.environment.exceptions import TemplateRuntimeError

    raise TemplateRuntimeError(
        f"invalid autoescape mode {value!r}",
        suggestion="Use true, false, 'html', 'json' or 'none'",
    )
