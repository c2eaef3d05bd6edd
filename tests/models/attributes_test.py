"""Tests for lazily loaded attributes."""

from __future__ import annotations

import asyncio

import pytest

from asfldap.models.attributes import (
    Attributes,
    AttributeState,
    LazyAttributes,
)


class _Loader:
    def __init__(self, data: Attributes | None) -> None:
        self.data = data
        self.calls = 0
        self.fail = False

    async def __call__(self) -> Attributes | None:
        self.calls += 1
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("Search failed")
        return self.data


@pytest.mark.asyncio
async def test_load_once() -> None:
    loader = _Loader({"mail": ["alice@example.org"], "cn": ["Alice"]})
    attributes = LazyAttributes(loader)
    assert attributes.state == AttributeState.unloaded
    assert not attributes.loaded
    assert attributes.peek("mail") is None

    results = await asyncio.gather(
        *(attributes.get("mail") for _ in range(5))
    )
    assert results == [["alice@example.org"]] * 5
    assert loader.calls == 1
    assert attributes.state == AttributeState.loaded
    assert attributes.loaded
    assert sorted(attributes) == ["cn", "mail"]
    assert len(attributes) == 2

    assert await attributes.get("loginShell") is None
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_missing_entry() -> None:
    loader = _Loader(None)
    attributes = LazyAttributes(loader)
    assert await attributes.get("mail") is None
    assert attributes.state == AttributeState.loaded
    assert await attributes.get("cn") is None
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_load_failure() -> None:
    loader = _Loader({"mail": ["alice@example.org"]})
    loader.fail = True
    attributes = LazyAttributes(loader)

    with pytest.raises(RuntimeError):
        await attributes.get("mail")
    assert attributes.state == AttributeState.unloaded
    assert len(attributes) == 0

    loader.fail = False
    assert await attributes.get("mail") == ["alice@example.org"]
    assert attributes.state == AttributeState.loaded
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_merge() -> None:
    loader = _Loader({"mail": ["alice@example.org"], "cn": ["Alice"]})
    attributes = LazyAttributes(loader)
    attributes.merge({"mail": []})
    assert attributes.state == AttributeState.preloaded
    assert attributes.loaded
    assert "mail" in attributes

    # Preloaded attributes are used as is.
    assert await attributes.get("mail") == []
    assert loader.calls == 0

    # Anything else still comes from the full entry.
    assert await attributes.get("cn") == ["Alice"]
    assert loader.calls == 1
    assert attributes.state == AttributeState.loaded


@pytest.mark.asyncio
async def test_set() -> None:
    attributes = LazyAttributes()
    assert await attributes.get("mail") is None
    attributes.set("mail", ["new@example.org"])
    assert attributes.peek("mail") == ["new@example.org"]
    assert await attributes.get("mail") == ["new@example.org"]
