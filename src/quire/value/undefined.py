"""The ``Undefined`` value and the undefined-handling policy."""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum


class UndefinedBehavior(Enum):
    """How the VM treats undefined values.

    LENIENT: undefined renders as an empty string; attribute, item and
        arithmetic access on it yield ``Undefined`` again; it iterates as an
        empty sequence and is falsy.
    STRICT: any use other than an existence check (``is defined``,
        ``is undefined``, ``is none``, ``default``) raises ``UndefinedError``
        naming the variable or attribute chain.
    """

    LENIENT = "lenient"
    STRICT = "strict"


class Undefined:
    """A name that is not bound, distinct from ``None``.

    Carries the variable or attribute chain that produced it so that strict
    mode can report ``user.email`` rather than just ``email``.
    """

    __slots__ = ("_name",)

    def __init__(self, name: str | None = None):
        self._name = name

    @property
    def name(self) -> str:
        return self._name or "<undefined>"

    def child(self, attr: str | int) -> Undefined:
        """Undefined produced by accessing ``attr`` on this value."""
        if isinstance(attr, int):
            return Undefined(f"{self.name}[{attr}]")
        return Undefined(f"{self.name}.{attr}")

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return ""

    def __len__(self) -> int:
        return 0

    def __iter__(self) -> Iterator[object]:
        return iter(())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Undefined)

    def __hash__(self) -> int:
        return hash(Undefined)

    def __repr__(self) -> str:
        return f"Undefined({self._name!r})" if self._name else "Undefined"


def is_undefined(value: object) -> bool:
    return isinstance(value, Undefined)
