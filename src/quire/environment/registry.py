"""Filter, test and global registries for Quire environment.

Provides a Jinja2-compatible dict-like interface over the Environment's
registries.
"""

from __future__ import annotations

from collections.abc import ItemsView, Iterator, KeysView, ValuesView
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quire.environment.core import Environment


class FilterRegistry:
    """Dict-like view of one Environment registry.

    Supports:
        - env.filters['name'] = func
        - env.filters.update({'name': func})
        - func = env.filters['name']
        - 'name' in env.filters

    All mutations use copy-on-write: a writer builds a new dict and swaps
    it in under the environment lock, so a render that already fetched a
    function never sees a half-updated mapping. Lookups take no lock.
    """

    __slots__ = ("_attr", "_env")

    def __init__(self, env: Environment, attr: str):
        self._env = env
        self._attr = attr

    def _get_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = getattr(self._env, self._attr)
        return result

    def _set_dict(self, d: dict[str, Any]) -> None:
        setattr(self._env, self._attr, d)

    def __getitem__(self, name: str) -> Any:
        return self._get_dict()[name]

    def __setitem__(self, name: str, value: Any) -> None:
        with self._env._lock:
            new = self._get_dict().copy()
            new[name] = value
            self._set_dict(new)

    def __delitem__(self, name: str) -> None:
        with self._env._lock:
            new = self._get_dict().copy()
            del new[name]
            self._set_dict(new)

    def __contains__(self, name: object) -> bool:
        return name in self._get_dict()

    def __iter__(self) -> Iterator[str]:
        return iter(self._get_dict())

    def __len__(self) -> int:
        return len(self._get_dict())

    def get(self, name: str, default: Any = None) -> Any:
        return self._get_dict().get(name, default)

    def update(self, mapping: dict[str, Any]) -> None:
        """Batch update (Jinja2 compatibility)."""
        with self._env._lock:
            new = self._get_dict().copy()
            new.update(mapping)
            self._set_dict(new)

    def copy(self) -> dict[str, Any]:
        """Return a copy of the underlying dict."""
        return self._get_dict().copy()

    def keys(self) -> KeysView[str]:
        return self._get_dict().keys()

    def values(self) -> ValuesView[Any]:
        return self._get_dict().values()

    def items(self) -> ItemsView[str, Any]:
        return self._get_dict().items()

    def __repr__(self) -> str:
        return f"<FilterRegistry {self._attr.strip('_')} ({len(self)} entries)>"
