"""Process-wide identity caches.

These caches are process-global, managed by `~asfldap.factory.ProcessContext`.
Unlike a conventional cache, nothing here expires on a timer or a size
limit. Entries are held only by weak references, so an entry lives exactly
as long as something outside the cache still refers to it. Until then,
every lookup for the same key returns the same object, so holding on to the
result of a lookup (by assigning it to a variable) is sufficient to prevent
it from being reclaimed. Once all such references are dropped, the garbage
collector may reclaim the object, and the next lookup builds a fresh one,
which in turn fetches fresh data from the directory.

For example, the following is likely to print the same ID twice followed by
a new one:

.. code-block:: python

   print(id(people.find("rubys")))
   print(id(people.find("rubys")))
   gc.collect()
   print(id(people.find("rubys")))

whereas the following is guaranteed to print the same ID three times:

.. code-block:: python

   rubys1 = people.find("rubys")
   rubys2 = people.find("rubys")
   gc.collect()
   rubys3 = people.find("rubys")
   print(id(rubys1), id(rubys2), id(rubys3))
"""

from __future__ import annotations

import asyncio
import threading
import weakref
from collections.abc import Callable
from typing import Generic, TypeVar

__all__ = [
    "IdentityCache",
    "MemberList",
    "T",
    "V",
    "WeakSlot",
]

T = TypeVar("T")
"""Type of an element of a member list."""

V = TypeVar("V")
"""Type of content stored in a cache."""


class MemberList(list[T], Generic[T]):
    """A list that can be the target of a weak reference.

    Built-in lists cannot be weakly referenced, so lists of members that are
    cached only for as long as the caller holds them use this subclass.
    """


class WeakSlot(Generic[V]):
    """Holder for at most one weakly referenced value.

    Used for data attached to an entity that should be dropped independently
    of the entity, such as its member list.
    """

    def __init__(self) -> None:
        self._ref: weakref.ref[V] | None = None

    def get(self) -> V | None:
        """Return the held value, or `None` if unset or reclaimed."""
        if self._ref is None:
            return None
        return self._ref()

    def set(self, value: V) -> None:
        """Hold a weak reference to a new value.

        Parameters
        ----------
        value
            The value, which must support weak references.
        """
        self._ref = weakref.ref(value)


class IdentityCache(Generic[V]):
    """A cache mapping keys to weakly held objects.

    One instance of this class is created for each entity type, so that a
    group and a person with the same name do not collide.

    Notes
    -----
    Lookups happen from asyncio tasks but may also happen from threads (such
    as a thread pool used by a web framework), so the check for a live entry
    and the creation of a new one are done while holding a thread lock.  The
    factory passed to `find_or_create` must therefore be cheap and must not
    do any I/O.
    """

    def __init__(self) -> None:
        self._cache: weakref.WeakValueDictionary[str, V]
        self._cache = weakref.WeakValueDictionary()
        self._key_locks: weakref.WeakValueDictionary[str, asyncio.Lock]
        self._key_locks = weakref.WeakValueDictionary()
        self._lock = threading.Lock()

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        """Invalidate the cache.

        Used primarily for testing.  Objects already handed out stay valid
        but are no longer returned by lookups.
        """
        with self._lock:
            self._cache = weakref.WeakValueDictionary()
            self._key_locks = weakref.WeakValueDictionary()

    def find_or_create(self, key: str, factory: Callable[[str], V]) -> V:
        """Return the live object for a key, creating it if needed.

        Parameters
        ----------
        key
            Key of the object within this cache.
        factory
            Called with the key to create the object on a cache miss.

        Returns
        -------
        Any
            The object registered for that key.
        """
        with self._lock:
            value = self._cache.get(key)
            if value is None:
                value = factory(key)
                self._cache[key] = value
            return value

    def get(self, key: str) -> V | None:
        """Retrieve an object from the cache.

        Parameters
        ----------
        key
            Key of the object.

        Returns
        -------
        Any or None
            The object if it is still alive, else `None`.
        """
        return self._cache.get(key)

    def lock(self, key: str) -> asyncio.Lock:
        """Return the lock for creating the object for a key.

        The return value should be used with ``async with`` to hold a lock
        around checking the cache and, if nothing is found, fetching and
        storing a new object, so that concurrent callers share one object.
        The lock is kept only while some caller holds or waits on it.

        Parameters
        ----------
        key
            Key of the object.

        Returns
        -------
        asyncio.Lock
            Lock shared by everyone currently working on that key.
        """
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._key_locks[key] = lock
            return lock

    def store(self, key: str, value: V) -> None:
        """Store an object in the cache, replacing any live one.

        Parameters
        ----------
        key
            Key of the object.
        value
            Object to store, which must support weak references.
        """
        with self._lock:
            self._cache[key] = value

    def values(self) -> list[V]:
        """Return all objects in the cache that are still alive."""
        with self._lock:
            return list(self._cache.values())
