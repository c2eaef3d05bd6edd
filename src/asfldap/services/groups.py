"""Directories of groups, committees and services."""

from __future__ import annotations

from typing import override

from bonsai.utils import escape_filter_exp

from ..models.attributes import LazyAttributes
from ..models.entities import Committee, Group, Person, Service
from .base import MembershipDirectory

__all__ = ["CommitteeDirectory", "GroupDirectory", "ServiceDirectory"]


class GroupDirectory(MembershipDirectory[Group]):
    """Lookups of Unix groups, whose members are listed by uid."""

    member_attribute = "memberUid"

    async def includes(self, group: Group, person: Person) -> bool:
        """Check whether a person is a member of a group.

        This asks the directory directly rather than fetching the whole
        member list.

        Parameters
        ----------
        group
            The group.
        person
            The person.

        Returns
        -------
        bool
            Whether the person is a member.
        """
        filter_exp = "(&(cn={})(memberUid={}))".format(
            escape_filter_exp(group.name), escape_filter_exp(person.name)
        )
        results = await self._storage.search(self.base_dn, filter_exp, "cn")
        return bool(results)

    @override
    def _build(self, name: str, attributes: LazyAttributes) -> Group:
        return Group(name, attributes)

    @override
    def _member_name(self, value: str) -> str | None:
        return value

    @override
    async def _member_value(self, person: Person) -> str:
        return person.name


class CommitteeDirectory(MembershipDirectory[Committee]):
    """Lookups of project management committees."""

    @override
    async def get_dn(self, entity: Committee) -> str | None:
        """Return the DN of a committee, looked up once by search."""
        if entity.dn is None:
            filter_exp = f"(cn={escape_filter_exp(entity.name)})"
            results = await self._storage.search(
                self.base_dn, filter_exp, "dn"
            )
            if results:
                entity.dn = results[0][0]
        return entity.dn

    @override
    def _build(self, name: str, attributes: LazyAttributes) -> Committee:
        return Committee(name, attributes)


class ServiceDirectory(MembershipDirectory[Service]):
    """Lookups of service groups, such as ``pmc-chairs``."""

    @override
    def _build(self, name: str, attributes: LazyAttributes) -> Service:
        return Service(name, attributes)
