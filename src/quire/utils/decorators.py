"""Markers for filters, tests and globals that need special treatment.

Example:
    >>> @pass_state
    ... def current_mode(state, value):
    ...     return f"{value} ({state.autoescape.value})"
    >>> env.register_filter("mode", current_mode)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


def pass_state(func: F) -> F:
    """Call ``func`` with the render ``State`` as its first argument."""
    func._quire_pass_state = True  # type: ignore[attr-defined]
    return func


def accepts_undefined(func: F) -> F:
    """Let ``func`` receive undefined arguments in strict mode.

    Existence checks (``defined``, ``default``) need to see the undefined
    value itself instead of having the VM raise on their behalf.
    """
    func._quire_accepts_undefined = True  # type: ignore[attr-defined]
    return func


def wants_state(func: Any) -> bool:
    return getattr(func, "_quire_pass_state", False) is True


def allows_undefined(func: Any) -> bool:
    return getattr(func, "_quire_accepts_undefined", False) is True
