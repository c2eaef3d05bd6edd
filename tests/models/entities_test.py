"""Tests for the entity models."""

from __future__ import annotations

import pytest

from asfldap.cache import MemberList
from asfldap.models.attributes import Attributes, LazyAttributes
from asfldap.models.entities import Committee, Group, Person


def _person(name: str, data: Attributes) -> Person:
    attributes = LazyAttributes()
    attributes.merge(data)
    return Person(name, attributes)


@pytest.mark.asyncio
async def test_person() -> None:
    person = _person(
        "alice",
        {
            "dn": ["uid=alice,ou=people,dc=apache,dc=org"],
            "cn": ["Alice Example", "Alice"],
            "mail": ["alice@example.org"],
            "asf-altEmail": ["alice@example.com"],
            "asf-personalURL": ["https://example.org/alice"],
            "asf-pgpKeyFingerprint": ["0123 4567"],
            "loginShell": ["/bin/bash"],
        },
    )
    assert person.name == "alice"
    assert repr(person) == "Person('alice')"
    assert await person.get_dn() == "uid=alice,ou=people,dc=apache,dc=org"
    assert await person.get_public_name() == "Alice Example"
    assert await person.get_mail() == ["alice@example.org"]
    assert await person.get_alt_email() == ["alice@example.com"]
    assert await person.get_urls() == ["https://example.org/alice"]
    assert await person.get_pgp_key_fingerprints() == ["0123 4567"]
    assert await person.get_attribute("loginShell") == ["/bin/bash"]
    assert await person.get_attribute("title") is None
    assert not await person.is_banned()


@pytest.mark.asyncio
async def test_person_missing() -> None:
    person = _person("nobody", {})
    assert await person.get_dn() is None
    assert await person.get_public_name() is None
    assert await person.get_mail() == []
    assert await person.get_alt_email() == []
    assert await person.get_urls() == []


@pytest.mark.asyncio
async def test_is_banned() -> None:
    assert await _person("a", {}).is_banned()
    for shell in ("/usr/bin/false", "/sbin/nologin", "/usr/local/bin/no-cla"):
        person = _person("a", {"loginShell": [shell]})
        assert await person.is_banned(), shell
    assert not await _person("a", {"loginShell": ["/bin/sh"]}).is_banned()


def test_member_cache() -> None:
    group = Group("committers", LazyAttributes())
    assert group.cached_member_ids() is None
    assert group.modify_timestamp is None

    members = MemberList(["alice"])
    group.cache_member_ids(members)
    assert group.cached_member_ids() is members

    committee = Committee("whimsy", LazyAttributes())
    assert committee.dn is None
    assert committee.cached_member_ids() is None
