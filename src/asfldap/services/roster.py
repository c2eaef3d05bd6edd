"""Membership questions spanning several entity types."""

from __future__ import annotations

from bonsai.utils import escape_filter_exp
from structlog.stdlib import BoundLogger

from ..cache import IdentityCache, MemberList
from ..models.entities import Committee, Group, Person
from .base import MembershipDirectory
from .groups import CommitteeDirectory, GroupDirectory, ServiceDirectory
from .people import PersonDirectory

__all__ = ["RosterService"]


class RosterService:
    """Answer questions about foundation membership and roles.

    The rosters of members, committers and PMC chairs are large, so each is
    cached for as long as some caller holds on to it.

    Parameters
    ----------
    people
        Directory of people.
    groups
        Directory of Unix groups.
    committees
        Directory of project management committees.
    services
        Directory of service groups.
    cache
        Weak cache of rosters.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        people: PersonDirectory,
        groups: GroupDirectory,
        committees: CommitteeDirectory,
        services: ServiceDirectory,
        cache: IdentityCache[MemberList[Person]],
        logger: BoundLogger,
    ) -> None:
        self._people = people
        self._groups = groups
        self._committees = committees
        self._services = services
        self._cache = cache
        self._logger = logger

    async def get_committees(self, person: Person) -> list[Committee]:
        """Return the committees of which a person is a member."""
        dn = f"uid={person.name},{self._people.base_dn}"
        filter_exp = f"(member={escape_filter_exp(dn)})"
        return await self._committees.find_all(filter_exp)

    async def get_committers(self) -> MemberList[Person]:
        """Return everyone in the ``committers`` group."""
        return await self._get_roster(self._groups, "committers")

    async def get_groups(self, person: Person) -> list[Group]:
        """Return the Unix groups of which a person is a member."""
        filter_exp = f"(memberUid={escape_filter_exp(person.name)})"
        return await self._groups.find_all(filter_exp)

    async def get_members(self) -> MemberList[Person]:
        """Return the members of the foundation (the ``member`` group)."""
        return await self._get_roster(self._groups, "member")

    async def get_pmc_chairs(self) -> MemberList[Person]:
        """Return everyone in the ``pmc-chairs`` service group."""
        return await self._get_roster(self._services, "pmc-chairs")

    async def is_committer(self, person: Person) -> bool:
        """Whether a person is in the ``committers`` group."""
        committers = self._groups.find("committers")
        return await self._groups.includes(committers, person)

    async def is_member(self, person: Person) -> bool:
        """Whether a person is a member of the foundation."""
        return person in await self.get_members()

    async def is_officer_or_member(self, person: Person) -> bool:
        """Whether a person is a foundation member or a PMC chair."""
        if await self.is_member(person):
            return True
        return person in await self.get_pmc_chairs()

    async def _get_roster(
        self, directory: MembershipDirectory, name: str
    ) -> MemberList[Person]:
        key = f"{type(directory).__name__}:{name}"
        roster = self._cache.get(key)
        if roster is not None:
            return roster
        async with self._cache.lock(key):
            roster = self._cache.get(key)
            if roster is None:
                self._logger.debug("Loading roster", roster=name)
                entity = directory.find(name)
                roster = MemberList(await directory.get_members(entity))
                self._cache.store(key, roster)
            return roster
