"""Output sink with a capture stack.

Rendered text goes to the innermost open capture, or to the base sink:
a list of chunks joined at the end, or a host writer for streaming.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Final

_DISCARD: Final = None


class Output:
    """Append-only output with nested captures.

    A capture opened with ``discard=True`` swallows everything written
    while it is innermost (used for template imports and the tail of a
    child template after ``extends``).
    """

    __slots__ = ("_chunks", "_stack", "_writer")

    def __init__(self, writer: Callable[[str], object] | None = None):
        self._writer = writer
        self._chunks: list[str] = []
        self._stack: list[list[str] | None] = []

    def write(self, text: str) -> None:
        if not text:
            return
        if self._stack:
            target = self._stack[-1]
            if target is not _DISCARD:
                target.append(text)
        elif self._writer is not None:
            self._writer(text)
        else:
            self._chunks.append(text)

    def begin_capture(self, *, discard: bool = False) -> None:
        self._stack.append(_DISCARD if discard else [])

    def end_capture(self) -> str:
        chunks = self._stack.pop()
        return "".join(chunks) if chunks is not _DISCARD else ""

    @property
    def depth(self) -> int:
        return len(self._stack)

    def truncate(self, depth: int) -> None:
        """Drop captures opened above ``depth``."""
        del self._stack[depth:]

    def getvalue(self) -> str:
        return "".join(self._chunks)
