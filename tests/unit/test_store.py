"""Tests for the in-memory store."""

from casino_bot.services.store import MemoryStore


def test_basic_operations():
    store = MemoryStore()
    store.set("a", 1)
    store.set("b", 2)

    assert store.get("a") == 1
    assert "b" in store
    assert len(store) == 2
    assert store.delete("a") == 1
    assert store.delete("a") is None
    assert store.get("a") is None


def test_items_is_a_snapshot():
    store = MemoryStore()
    for key in "abc":
        store.set(key, key.upper())

    for key, _ in store.items():
        store.delete(key)

    assert len(store) == 0
