"""Tests for the authentication service."""

from __future__ import annotations

import pytest

from asfldap.config import Config
from asfldap.exceptions import AuthenticationError
from asfldap.factory import Factory
from asfldap.storage.ldap import DirectorySession

from ..support.ldap import MockLDAP


@pytest.mark.asyncio
async def test_authenticate(
    factory: Factory, config: Config, mock_ldap: MockLDAP
) -> None:
    dn = f"uid=alice,{config.people_base_dn}"
    mock_ldap.passwords[dn] = "some-password"
    auth = factory.create_authentication_service()

    person = await auth.authenticate("alice", "some-password")
    assert person is factory.create_person_directory().find("alice")

    seen: list[list[str]] = []

    async def continuation(session: DirectorySession) -> None:
        results = await session.search(
            config.people_base_dn, "(uid=alice)", ["mail"]
        )
        seen.append(results[0]["mail"])

    await auth.authenticate("alice", "some-password", continuation)
    assert seen == [["alice@example.org"]]


@pytest.mark.asyncio
async def test_authenticate_failure(
    factory: Factory, config: Config, mock_ldap: MockLDAP
) -> None:
    dn = f"uid=alice,{config.people_base_dn}"
    mock_ldap.passwords[dn] = "some-password"
    auth = factory.create_authentication_service()

    with pytest.raises(AuthenticationError):
        await auth.authenticate("alice", "wrong-password")
    with pytest.raises(AuthenticationError):
        await auth.authenticate("alice", "")
    with pytest.raises(AuthenticationError) as excinfo:
        await auth.authenticate("nobody", "some-password")
    assert excinfo.value.user == "nobody"

    # Rejected passwords are not retried on other servers.
    failed = [h for h, ok in mock_ldap.connect_attempts if not ok]
    assert len(failed) == 1
