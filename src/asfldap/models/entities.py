"""Models for entities stored in the directory.

Entities are created only by the directory classes in `asfldap.services`,
which guarantee that there is only one live instance per name.  Entities
therefore compare by identity.
"""

from __future__ import annotations

import asyncio

from ..cache import MemberList, WeakSlot
from .attributes import LazyAttributes

__all__ = [
    "Committee",
    "Entity",
    "Group",
    "MembershipEntity",
    "Person",
    "Service",
]

_BANNED_SHELLS = ("/usr/bin/false", "bin/nologin", "bin/no-cla")
"""Login shell fragments that mark an account as disabled."""


class Entity:
    """Base class for a directory entity.

    Parameters
    ----------
    name
        Name of the entity, unique for its type.
    attributes
        Lazily loaded attributes of the entity.
    """

    def __init__(self, name: str, attributes: LazyAttributes) -> None:
        self._name = name
        self.attributes = attributes

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r})"

    @property
    def name(self) -> str:
        """Name of the entity, which is its key in the identity cache."""
        return self._name

    async def get_attribute(self, name: str) -> list[str] | None:
        """Return the values of an arbitrary attribute.

        Parameters
        ----------
        name
            Name of the attribute.

        Returns
        -------
        list of str or None
            Values of the attribute, or `None` if the entity does not have
            it.
        """
        return await self.attributes.get(name)


class Person(Entity):
    """A person (committer account) in the directory."""

    async def get_alt_email(self) -> list[str]:
        """Return the alternate email addresses of the person."""
        return await self.attributes.get("asf-altEmail") or []

    async def get_dn(self) -> str | None:
        """Return the DN of the entry, or `None` if there is no entry."""
        dn = await self.attributes.get("dn")
        return dn[0] if dn else None

    async def get_mail(self) -> list[str]:
        """Return the email addresses of the person."""
        return await self.attributes.get("mail") or []

    async def get_pgp_key_fingerprints(self) -> list[str]:
        """Return the PGP key fingerprints of the person."""
        return await self.attributes.get("asf-pgpKeyFingerprint") or []

    async def get_public_name(self) -> str | None:
        """Return the public name (first ``cn``) of the person."""
        cn = await self.attributes.get("cn")
        return cn[0] if cn else None

    async def get_urls(self) -> list[str]:
        """Return the personal URLs of the person."""
        return await self.attributes.get("asf-personalURL") or []

    async def is_banned(self) -> bool:
        """Whether the account is disabled.

        An account is disabled if it has no login shell or if its login
        shell is one of the shells used to lock accounts.
        """
        shell = await self.attributes.get("loginShell")
        if not shell:
            return True
        return any(s in shell[0] for s in _BANNED_SHELLS)


class MembershipEntity(Entity):
    """An entity that has a list of members.

    The member list is cached separately from the attributes, and only
    weakly, so that it is dropped once nothing holds on to it.
    """

    def __init__(self, name: str, attributes: LazyAttributes) -> None:
        super().__init__(name, attributes)
        self._members: WeakSlot[MemberList[str]] = WeakSlot()
        self.members_lock = asyncio.Lock()
        self.modify_timestamp: str | None = None

    def cache_member_ids(self, members: MemberList[str]) -> None:
        """Remember the member identifiers, held by a weak reference."""
        self._members.set(members)

    def cached_member_ids(self) -> MemberList[str] | None:
        """Return the member identifiers if still alive."""
        return self._members.get()


class Group(MembershipEntity):
    """A Unix group, whose members are listed by uid."""


class Committee(MembershipEntity):
    """A project management committee, whose members are listed by DN."""

    def __init__(self, name: str, attributes: LazyAttributes) -> None:
        super().__init__(name, attributes)
        self.dn: str | None = None


class Service(MembershipEntity):
    """A service group, whose members are listed by DN."""
