"""Deferred loading of directory attributes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator, Mapping
from enum import Enum

__all__ = [
    "AttributeLoader",
    "AttributeState",
    "Attributes",
    "LazyAttributes",
]

Attributes = dict[str, list[str]]
"""Attributes of a directory entry, mapping names to lists of values."""

AttributeLoader = Callable[[], Awaitable[Attributes | None]]
"""Callback that fetches all attributes of one directory entry."""


class AttributeState(Enum):
    """Loading state of a `LazyAttributes` store."""

    unloaded = "unloaded"
    """Nothing has been fetched or merged yet."""

    loading = "loading"
    """The loader is running."""

    loaded = "loaded"
    """The loader has run and its results have been merged."""

    preloaded = "preloaded"
    """Data was merged by a bulk preload without running the loader."""


class LazyAttributes:
    """Attribute map of one entity, fetched on first use.

    The store starts out empty and holds a loader for the full entry.  The
    first read of an attribute that is not already present runs the loader
    and merges its results; after that, the loader is dropped and all reads
    are plain dictionary lookups.  Bulk preloads populate the store with
    `merge` instead, in which case reads of the preloaded attributes never
    run the loader.

    Values are `None` for an attribute the directory does not have, and an
    empty list for an attribute that a preload asked for but the directory
    did not return.

    Parameters
    ----------
    loader
        Callback to fetch the attributes of the entry, returning `None` if
        there is no such entry.
    """

    def __init__(self, loader: AttributeLoader | None = None) -> None:
        self._data: Attributes = {}
        self._loader = loader
        self._lock = asyncio.Lock()
        self._state = AttributeState.unloaded

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    @property
    def loaded(self) -> bool:
        """Whether any data has been fetched or merged."""
        return self._state in (AttributeState.loaded, AttributeState.preloaded)

    @property
    def state(self) -> AttributeState:
        """Current loading state."""
        return self._state

    async def get(self, name: str) -> list[str] | None:
        """Return the values of an attribute, loading the entry if needed.

        Parameters
        ----------
        name
            Name of the attribute.

        Returns
        -------
        list of str or None
            Values of the attribute, or `None` if the entry does not have
            that attribute.

        Raises
        ------
        asfldap.exceptions.SearchFailedError
            Raised if the entry had to be loaded and the search failed.
        """
        if name in self._data:
            return self._data[name]
        await self.load()
        return self._data.get(name)

    async def load(self) -> None:
        """Run the loader if it has not run yet.

        Concurrent callers wait for a single fetch.  If the loader fails, the
        store is left as it was and the next read tries again.
        """
        if self._loader is None:
            return
        async with self._lock:
            loader = self._loader
            if loader is None:
                return
            previous = self._state
            self._state = AttributeState.loading
            try:
                data = await loader()
            except BaseException:
                self._state = previous
                raise
            self._data.update(data or {})
            self._loader = None
            self._state = AttributeState.loaded

    def merge(self, data: Mapping[str, list[str]]) -> None:
        """Merge attributes obtained elsewhere, such as from a bulk preload.

        Parameters
        ----------
        data
            Attributes to merge, replacing any existing values.
        """
        self._data.update((k, list(v)) for k, v in data.items())
        if self._state == AttributeState.unloaded:
            self._state = AttributeState.preloaded

    def peek(self, name: str) -> list[str] | None:
        """Return the values of an attribute without loading anything."""
        return self._data.get(name)

    def set(self, name: str, values: list[str]) -> None:
        """Record new values for an attribute after a successful write.

        Parameters
        ----------
        name
            Name of the attribute.
        values
            New values of that attribute.
        """
        self._data[name] = list(values)
