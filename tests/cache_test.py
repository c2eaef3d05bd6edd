"""Tests for the identity caches."""

from __future__ import annotations

import gc
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor

from asfldap.cache import IdentityCache, MemberList, WeakSlot


class _Thing:
    def __init__(self, name: str) -> None:
        self.name = name


def test_find_or_create() -> None:
    cache: IdentityCache[_Thing] = IdentityCache()
    thing = cache.find_or_create("a", _Thing)
    assert thing.name == "a"
    assert cache.find_or_create("a", _Thing) is thing
    assert cache.get("a") is thing
    assert "a" in cache
    assert len(cache) == 1
    assert cache.find_or_create("b", _Thing) is not thing


def test_reclaimed() -> None:
    cache: IdentityCache[_Thing] = IdentityCache()
    thing = cache.find_or_create("a", _Thing)
    ref = weakref.ref(thing)

    del thing
    gc.collect()
    assert ref() is None
    assert cache.get("a") is None
    assert "a" not in cache
    assert cache.values() == []

    fresh = cache.find_or_create("a", _Thing)
    assert fresh.name == "a"
    assert cache.values() == [fresh]


def test_store_and_clear() -> None:
    cache: IdentityCache[_Thing] = IdentityCache()
    first = cache.find_or_create("a", _Thing)
    second = _Thing("a")
    cache.store("a", second)
    assert cache.get("a") is second

    cache.clear()
    assert cache.get("a") is None
    assert len(cache) == 0
    assert cache.find_or_create("a", _Thing) not in (first, second)


def test_threads() -> None:
    cache: IdentityCache[_Thing] = IdentityCache()
    calls = 0
    lock = threading.Lock()

    def factory(name: str) -> _Thing:
        nonlocal calls
        with lock:
            calls += 1
        return _Thing(name)

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [
            pool.submit(cache.find_or_create, "a", factory)
            for _ in range(64)
        ]
        results = [f.result() for f in futures]

    assert calls == 1
    assert all(r is results[0] for r in results)


def test_weak_slot() -> None:
    slot: WeakSlot[MemberList[str]] = WeakSlot()
    assert slot.get() is None

    members = MemberList(["alice", "bob"])
    slot.set(members)
    assert slot.get() is members
    assert slot.get() == ["alice", "bob"]

    del members
    gc.collect()
    assert slot.get() is None
