"""
In-memory keyed store.

Process-wide tables (accounts, chat sessions, live games) sit behind this
small interface so the games and the reaper can be exercised against a
fresh instance in tests instead of module-level dicts.
"""

from typing import Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class MemoryStore(Generic[K, V]):
    """Dict-backed store with get/set/delete/iterate."""

    def __init__(self):
        self._items: Dict[K, V] = {}

    def get(self, key: K) -> Optional[V]:
        return self._items.get(key)

    def set(self, key: K, value: V) -> None:
        self._items[key] = value

    def delete(self, key: K) -> Optional[V]:
        return self._items.pop(key, None)

    def items(self) -> List[Tuple[K, V]]:
        """Snapshot of all entries; safe to mutate the store while iterating it."""
        return list(self._items.items())

    def values(self) -> List[V]:
        return list(self._items.values())

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._items))
