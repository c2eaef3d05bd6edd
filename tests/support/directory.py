"""Standard directory contents for tests."""

from __future__ import annotations

from asfldap.config import Config

from .ldap import MockLDAP

__all__ = ["add_test_directory"]


def add_test_directory(mock_ldap: MockLDAP, config: Config) -> None:
    """Populate the mock directory with a small foundation.

    ``alice`` is a foundation member and committer on the whimsy committee,
    ``bob`` is a committer and PMC chair, and ``carol`` has a disabled
    account and no memberships.

    Parameters
    ----------
    mock_ldap
        Mock directory to populate.
    config
        Configuration giving the base DNs.
    """
    people = config.people_base_dn
    alice = mock_ldap.add_entry(
        people,
        "uid=alice",
        {
            "cn": ["Alice Example"],
            "mail": ["alice@example.org"],
            "asf-altEmail": ["alice@example.com"],
            "loginShell": ["/bin/bash"],
        },
    )
    bob = mock_ldap.add_entry(
        people,
        "uid=bob",
        {"cn": ["Bob Example"], "loginShell": ["/bin/zsh"]},
    )
    mock_ldap.add_entry(
        people,
        "uid=carol",
        {
            "cn": ["Carol Example"],
            "mail": ["carol@example.org"],
            "loginShell": ["/usr/bin/false"],
        },
    )

    groups = config.groups_base_dn
    mock_ldap.add_entry(groups, "cn=member", {"memberUid": ["alice"]})
    mock_ldap.add_entry(
        groups, "cn=committers", {"memberUid": ["alice", "bob"]}
    )
    mock_ldap.add_entry(
        config.committees_base_dn,
        "cn=whimsy",
        {"member": [alice], "modifyTimestamp": ["20240101000000Z"]},
    )
    mock_ldap.add_entry(
        config.committees_base_dn,
        "cn=empty",
        {"modifyTimestamp": ["20230101000000Z"]},
    )
    mock_ldap.add_entry(
        config.services_base_dn, "cn=pmc-chairs", {"member": [bob]}
    )
