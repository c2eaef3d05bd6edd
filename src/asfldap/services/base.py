"""Base classes for the directories of each entity type."""

from __future__ import annotations

import re
from abc import ABCMeta, abstractmethod
from collections.abc import Callable, Iterable
from functools import partial
from typing import TYPE_CHECKING, ClassVar, Generic, TypeVar

from bonsai import LDAPModOp
from bonsai.utils import escape_filter_exp
from structlog.stdlib import BoundLogger

from ..cache import IdentityCache, MemberList
from ..exceptions import ModifyFailedError
from ..models.attributes import Attributes, LazyAttributes
from ..models.entities import Entity, MembershipEntity, Person
from ..storage.ldap import DirectoryStorage

if TYPE_CHECKING:
    from .people import PersonDirectory

__all__ = ["E", "EntityDirectory", "M", "MembershipDirectory"]

E = TypeVar("E", bound=Entity)
"""Type of entity managed by a directory."""

M = TypeVar("M", bound=MembershipEntity)
"""Type of entity with members managed by a directory."""

_CN_REGEX = re.compile(r"^cn=(.*?),")
"""Regex extracting the name of a group from its DN."""

_UID_REGEX = re.compile(r"uid=(.*?),")
"""Regex extracting the username from a person DN."""


class EntityDirectory(Generic[E], metaclass=ABCMeta):
    """Lookups, bulk preloads and changes for one type of entity.

    All entities are obtained through the identity cache, so every lookup
    of the same name returns the same object for as long as anything holds
    on to it.

    Parameters
    ----------
    base_dn
        Base DN under which entities of this type live.
    storage
        The underlying LDAP storage layer.
    cache
        Identity cache for entities of this type.
    logger
        Logger to use.
    """

    key_attribute: ClassVar[str] = "cn"
    """Attribute whose value is the name of the entity."""

    def __init__(
        self,
        *,
        base_dn: str,
        storage: DirectoryStorage,
        cache: IdentityCache[E],
        logger: BoundLogger,
    ) -> None:
        self.base_dn = base_dn
        self._storage = storage
        self._cache = cache
        self._logger = logger.bind(ldap_base=base_dn)

    async def find_all(self, filter_exp: str | None = None) -> list[E]:
        """Return all entities matching a filter.

        Parameters
        ----------
        filter_exp
            Search filter.  Defaults to all entities of this type.

        Returns
        -------
        list of Entity
            Matching entities.
        """
        return [self.find(n) for n in await self.list_names(filter_exp)]

    def find(self, name: str) -> E:
        """Return the entity with a given name.

        This does no I/O.  The entity's attributes are loaded on first use,
        and the entity is returned even if there is no such entry in the
        directory.

        Parameters
        ----------
        name
            Name of the entity.

        Returns
        -------
        Entity
            The live entity for that name.
        """
        return self._cache.find_or_create(name, self._create)

    async def get_dn(self, entity: E) -> str | None:
        """Return the DN of the directory entry for an entity.

        Parameters
        ----------
        entity
            The entity.

        Returns
        -------
        str or None
            Its DN, or `None` if it cannot be determined.
        """
        return f"{self.key_attribute}={entity.name},{self.base_dn}"

    async def list_names(self, filter_exp: str | None = None) -> list[str]:
        """Return the names of all entities matching a filter.

        Parameters
        ----------
        filter_exp
            Search filter.  Defaults to all entities of this type.

        Returns
        -------
        list of str
            Names of the matching entities.
        """
        if not filter_exp:
            filter_exp = f"({self.key_attribute}=*)"
        results = await self._storage.search(
            self.base_dn, filter_exp, self.key_attribute
        )
        return [name for values in results for name in values]

    async def modify(
        self, entity: E, attribute: str, values: str | Iterable[str]
    ) -> None:
        """Replace the values of one attribute of an entity.

        The local copy of the attributes is updated once the directory has
        accepted the change.

        Parameters
        ----------
        entity
            Entity to change.
        attribute
            Name of the attribute.
        values
            New value or values.

        Raises
        ------
        asfldap.exceptions.ModifyFailedError
            Raised if the entity has no directory entry or the directory
            rejected the change.
        """
        values = [values] if isinstance(values, str) else list(values)
        dn = await self._require_dn(entity)
        await self._storage.modify(dn, attribute, values, LDAPModOp.REPLACE)
        entity.attributes.set(attribute, values)

    async def preload(
        self,
        attributes: str | Iterable[str],
        keys: Iterable[str | E] = (),
    ) -> list[E]:
        """Fetch some attributes of many entities with one search.

        Parameters
        ----------
        attributes
            Attribute or attributes to fetch.
        keys
            Names of (or entities for) the entities to fetch.  If empty,
            every entity that has any of the attributes is fetched.

        Returns
        -------
        list of Entity
            Entities whose attributes were populated.  Requested attributes
            the directory did not return are recorded as empty lists.  If no
            keys were given, this also includes every other live entity of
            this type, whose requested attributes are all recorded as empty
            since the directory has none of them.
        """
        attributes = (
            [attributes] if isinstance(attributes, str) else list(attributes)
        )
        names = [k if isinstance(k, str) else k.name for k in keys]
        if names:
            key = self.key_attribute
            terms = [f"({key}={escape_filter_exp(n)})" for n in names]
        elif attributes:
            terms = [f"({a}=*)" for a in attributes]
        else:
            return []
        filter_exp = "(|{})".format("".join(terms))
        attrlist = list(attributes)
        if self.key_attribute not in attrlist:
            attrlist.append(self.key_attribute)
        results = await self._storage.search(
            self.base_dn, filter_exp, attrlist
        )

        zero: Attributes = {a: [] for a in attributes}
        entities: list[E] = []
        seen: set[str] = set()
        for result in results:
            values = result.get(self.key_attribute)
            if not values:
                msg = "Entry without key attribute, ignoring"
                self._logger.warning(msg, ldap_result=result)
                continue
            entity = self.find(values[0])
            entity.attributes.merge({**zero, **result})
            if entity.name not in seen:
                seen.add(entity.name)
                entities.append(entity)

        if not names:
            for entity in self._cache.values():
                if entity.name not in seen:
                    entity.attributes.merge(zero)
                    entities.append(entity)

        self._logger.debug(
            "Preloaded attributes",
            ldap_attrs=attributes,
            count=len(entities),
        )
        return entities

    @abstractmethod
    def _build(self, name: str, attributes: LazyAttributes) -> E:
        """Construct a new entity of this type."""

    def _create(self, name: str) -> E:
        return self._build(
            name, LazyAttributes(partial(self._load_attributes, name))
        )

    async def _load_attributes(self, name: str) -> Attributes | None:
        filter_exp = f"({self.key_attribute}={escape_filter_exp(name)})"
        results = await self._storage.search(self.base_dn, filter_exp)
        return results[0] if results else None

    async def _require_dn(self, entity: E) -> str:
        dn = await self.get_dn(entity)
        if not dn:
            msg = f"No directory entry for {entity.name}"
            self._logger.warning(msg)
            raise ModifyFailedError(msg)
        return dn


class MembershipDirectory(EntityDirectory[M], metaclass=ABCMeta):
    """Directory of entities that have members.

    Member lists are kept apart from the rest of the attributes and held
    only weakly, so they are fetched again once nobody is using them.

    Parameters
    ----------
    base_dn
        Base DN under which entities of this type live.
    storage
        The underlying LDAP storage layer.
    cache
        Identity cache for entities of this type.
    people
        Directory used to turn members into people.
    logger
        Logger to use.
    """

    member_attribute: ClassVar[str] = "member"
    """Attribute listing the members."""

    def __init__(
        self,
        *,
        base_dn: str,
        storage: DirectoryStorage,
        cache: IdentityCache[M],
        people: PersonDirectory,
        logger: BoundLogger,
    ) -> None:
        super().__init__(
            base_dn=base_dn, storage=storage, cache=cache, logger=logger
        )
        self._people = people

    async def add_members(self, entity: M, people: Iterable[Person]) -> None:
        """Add people as members.

        Parameters
        ----------
        entity
            Entity to which to add members.
        people
            People to add.

        Raises
        ------
        asfldap.exceptions.ModifyFailedError
            Raised if the directory rejected the change.
        """
        values = [await self._member_value(p) for p in people]
        dn = await self._require_dn(entity)
        await self._storage.modify(
            dn, self.member_attribute, values, LDAPModOp.ADD
        )
        self._update_members(
            entity, lambda m: m + [v for v in values if v not in m]
        )

    async def get_member_ids(self, entity: M) -> MemberList[str]:
        """Return the raw member values of an entity.

        Parameters
        ----------
        entity
            The entity.

        Returns
        -------
        MemberList of str
            Values of the member attribute.  These stay cached on the entity
            for as long as the caller holds on to this list.
        """
        members = entity.cached_member_ids()
        if members is not None:
            return members
        async with entity.members_lock:
            members = entity.cached_member_ids()
            if members is None:
                filter_exp = f"(cn={escape_filter_exp(entity.name)})"
                results = await self._storage.search(
                    self.base_dn, filter_exp, self.member_attribute
                )
                members = MemberList(v for values in results for v in values)
                entity.cache_member_ids(members)
            return members

    async def get_members(self, entity: M) -> list[Person]:
        """Return the members of an entity as people.

        Parameters
        ----------
        entity
            The entity.

        Returns
        -------
        list of Person
            Its members.
        """
        people = []
        for value in await self.get_member_ids(entity):
            name = self._member_name(value)
            if name is None:
                msg = "Invalid member value, ignoring"
                self._logger.warning(msg, group=entity.name, member=value)
                continue
            people.append(self._people.find(name))
        return people

    async def preload_members(self) -> dict[M, MemberList[str]]:
        """Fetch the members of every entity of this type with one search.

        Also records the last modification time of each entity.

        Returns
        -------
        dict of MemberList of str
            Raw member values for each entity.  The caller should hold on to
            this result for as long as it wants the member lists cached.
        """
        attrlist = ["dn", self.member_attribute, "modifyTimestamp"]
        results = await self._storage.search(self.base_dn, "(cn=*)", attrlist)
        preloaded: dict[M, MemberList[str]] = {}
        for result in results:
            match = _CN_REGEX.match(result.get("dn", [""])[0])
            if not match:
                msg = "Invalid DN, ignoring"
                self._logger.warning(msg, ldap_result=result)
                continue
            entity = self.find(match.group(1))
            timestamps = result.get("modifyTimestamp")
            entity.modify_timestamp = timestamps[0] if timestamps else None
            members = MemberList(result.get(self.member_attribute, []))
            entity.cache_member_ids(members)
            preloaded[entity] = members
        return preloaded

    async def remove_members(
        self, entity: M, people: Iterable[Person]
    ) -> None:
        """Remove people from the members.

        Parameters
        ----------
        entity
            Entity from which to remove members.
        people
            People to remove.

        Raises
        ------
        asfldap.exceptions.ModifyFailedError
            Raised if the directory rejected the change.
        """
        values = [await self._member_value(p) for p in people]
        dn = await self._require_dn(entity)
        await self._storage.modify(
            dn, self.member_attribute, values, LDAPModOp.DELETE
        )
        self._update_members(
            entity, lambda m: [v for v in m if v not in values]
        )

    def _member_name(self, value: str) -> str | None:
        """Convert a member value to a username.

        The default handles members listed by DN.
        """
        match = _UID_REGEX.search(value)
        return match.group(1) if match else None

    async def _member_value(self, person: Person) -> str:
        """Convert a person to a member value.

        The default lists members by DN.
        """
        dn = await person.get_dn()
        if not dn:
            msg = f"No directory entry for {person.name}"
            self._logger.warning(msg)
            raise ModifyFailedError(msg)
        return dn

    def _update_members(
        self, entity: M, change: Callable[[list[str]], list[str]]
    ) -> None:
        members = entity.cached_member_ids()
        if members is not None:
            members[:] = change(members)
        current = entity.attributes.peek(self.member_attribute)
        if current is not None:
            entity.attributes.set(self.member_attribute, change(current))
