"""HTML escaping and the safe-string type.

``Markup`` is a ``str`` subclass flagging text as already escaped. The
renderer never escapes a ``Markup`` value a second time, and operations that
mix ``Markup`` with plain strings escape the plain side first, so the
result is still safe to emit verbatim.

Escaping is a single pass via ``str.translate()``.
"""

from __future__ import annotations

import re
from typing import Any

_ESCAPE_TABLE = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&#34;",
        "'": "&#39;",
    }
)

_STRIPTAGS_RE = re.compile(r"(<!--.*?-->|<[^>]*>)", re.DOTALL)


class Markup(str):
    """String that is safe to emit without escaping.

    Example:
        >>> Markup("<b>") + "<i>"
        Markup('<b>&lt;i&gt;')
    """

    __slots__ = ()

    def __new__(cls, value: Any = "") -> Markup:
        if hasattr(value, "__html__") and not isinstance(value, str):
            value = value.__html__()
        return super().__new__(cls, value)

    def __html__(self) -> Markup:
        return self

    def __add__(self, other: object) -> Markup:
        if isinstance(other, str):
            return Markup(str.__add__(self, html_escape(other)))
        return NotImplemented

    def __radd__(self, other: object) -> Markup:
        if isinstance(other, str):
            return Markup(str.__add__(html_escape(other), self))
        return NotImplemented

    def __mul__(self, count: int) -> Markup:  # type: ignore[override]
        return Markup(str.__mul__(self, count))

    def join(self, items: Any) -> Markup:  # type: ignore[override]
        return Markup(str.join(self, (html_escape(item) for item in items)))

    def striptags(self) -> str:
        """Remove tags and collapse whitespace, returning plain text."""
        text = _STRIPTAGS_RE.sub("", self)
        return " ".join(text.split())

    def __repr__(self) -> str:
        return f"Markup({str.__repr__(self)})"

    @classmethod
    def escape(cls, value: Any) -> Markup:
        """Escape ``value`` unless it is already safe."""
        return html_escape(value)


def html_escape(value: Any) -> Markup:
    """Escape ``value`` for HTML, passing ``Markup`` (and ``__html__``) through."""
    if isinstance(value, Markup):
        return value
    if hasattr(value, "__html__"):
        return Markup(value.__html__())
    return Markup(str(value).translate(_ESCAPE_TABLE))


def striptags(value: str) -> str:
    """Strip SGML/XML tags and collapse adjacent whitespace."""
    return " ".join(_STRIPTAGS_RE.sub("", value).split())
