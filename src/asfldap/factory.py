"""Create asfldap components."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Self

import structlog
from httpx import AsyncClient
from structlog.stdlib import BoundLogger

from .cache import IdentityCache, MemberList
from .config import Config
from .constants import HTTP_TIMEOUT
from .models.entities import Committee, Group, Person, Service
from .services.auth import AuthenticationService
from .services.groups import (
    CommitteeDirectory,
    GroupDirectory,
    ServiceDirectory,
)
from .services.ldapconf import LDAPConfService
from .services.people import PersonDirectory
from .services.roster import RosterService
from .storage.connection import ConnectionManager
from .storage.hosts import HostRegistry
from .storage.ldap import DirectoryStorage
from .storage.puppet import PuppetStorage

__all__ = ["Factory", "ProcessContext"]


@dataclass(frozen=True, slots=True)
class ProcessContext:
    """Per-process application context.

    This object holds all of the per-process singletons: the resolved host
    list, the shared directory connection, and the identity caches.  Every
    `Factory` built from the same context therefore returns the same entity
    object for the same name.
    """

    config: Config
    """asfldap configuration."""

    http_client: AsyncClient
    """Shared HTTP client."""

    hosts: HostRegistry
    """Registry of directory servers."""

    connections: ConnectionManager
    """Owner of the shared directory connection."""

    person_cache: IdentityCache[Person]
    """Identity cache of people."""

    group_cache: IdentityCache[Group]
    """Identity cache of Unix groups."""

    committee_cache: IdentityCache[Committee]
    """Identity cache of committees."""

    service_cache: IdentityCache[Service]
    """Identity cache of service groups."""

    roster_cache: IdentityCache[MemberList[Person]]
    """Weak cache of the member, committer and PMC chair rosters."""

    @classmethod
    async def from_config(cls, config: Config) -> Self:
        """Create a new process context from the asfldap configuration.

        No connections are opened until the first directory operation.

        Parameters
        ----------
        config
            The asfldap configuration.

        Returns
        -------
        ProcessContext
            Shared context for an asfldap process.
        """
        logger = structlog.get_logger("asfldap")
        hosts = HostRegistry(config, logger)
        return cls(
            config=config,
            http_client=AsyncClient(timeout=HTTP_TIMEOUT),
            hosts=hosts,
            connections=ConnectionManager(config, hosts, logger),
            person_cache=IdentityCache(),
            group_cache=IdentityCache(),
            committee_cache=IdentityCache(),
            service_cache=IdentityCache(),
            roster_cache=IdentityCache(),
        )

    async def aclose(self) -> None:
        """Clean up a process context.

        Called during shutdown, or before recreating the process context using
        a different configuration.
        """
        try:
            await self.connections.aclose()
        finally:
            await self.http_client.aclose()
        self.person_cache.clear()
        self.group_cache.clear()
        self.committee_cache.clear()
        self.service_cache.clear()
        self.roster_cache.clear()


class Factory:
    """Build asfldap components.

    Uses the contents of a `ProcessContext` to construct the components of the
    application on demand.

    Parameters
    ----------
    context
        Shared process context.
    logger
        Logger to use for errors.
    """

    @classmethod
    async def create(cls, config: Config) -> Self:
        """Create a component factory.

        If an async context manager can be used, call `standalone` rather than
        this method.

        Parameters
        ----------
        config
            asfldap configuration.

        Returns
        -------
        Factory
            Newly-created factory.  The caller must call `aclose` on the
            returned object during shutdown.
        """
        logger = structlog.get_logger("asfldap")
        context = await ProcessContext.from_config(config)
        return cls(context, logger)

    @classmethod
    @asynccontextmanager
    async def standalone(cls, config: Config) -> AsyncIterator[Self]:
        """Async context manager for asfldap components.

        Parameters
        ----------
        config
            asfldap configuration.

        Yields
        ------
        Factory
            The factory.  Must be used as an async context manager.

        Examples
        --------
        .. code-block:: python

           async with Factory.standalone(config) as factory:
               people = factory.create_person_directory()
               mail = await people.find("rubys").get_mail()
        """
        factory = await cls.create(config)
        async with aclosing(factory):
            yield factory

    def __init__(self, context: ProcessContext, logger: BoundLogger) -> None:
        self._context = context
        self._logger = logger

    @property
    def context(self) -> ProcessContext:
        """Underlying process context, mainly for tests."""
        return self._context

    async def aclose(self) -> None:
        """Shut down the factory.

        After this method is called, the factory object is no longer valid and
        must not be used.
        """
        await self._context.aclose()

    def create_authentication_service(self) -> AuthenticationService:
        """Create a service for checking user credentials.

        Returns
        -------
        AuthenticationService
            Newly-created authentication service.
        """
        return AuthenticationService(
            people=self.create_person_directory(),
            storage=self.create_directory_storage(),
            logger=self._logger,
        )

    def create_committee_directory(self) -> CommitteeDirectory:
        """Create the directory of project management committees.

        Returns
        -------
        CommitteeDirectory
            Newly-created committee directory.
        """
        return CommitteeDirectory(
            base_dn=self._context.config.committees_base_dn,
            storage=self.create_directory_storage(),
            cache=self._context.committee_cache,
            people=self.create_person_directory(),
            logger=self._logger,
        )

    def create_directory_storage(self) -> DirectoryStorage:
        """Create the LDAP storage layer.

        Returns
        -------
        DirectoryStorage
            Newly-created storage layer, sharing the process-wide connection.
        """
        return DirectoryStorage(
            self._context.config,
            self._context.hosts,
            self._context.connections,
            self._logger,
        )

    def create_group_directory(self) -> GroupDirectory:
        """Create the directory of Unix groups.

        Returns
        -------
        GroupDirectory
            Newly-created group directory.
        """
        return GroupDirectory(
            base_dn=self._context.config.groups_base_dn,
            storage=self.create_directory_storage(),
            cache=self._context.group_cache,
            people=self.create_person_directory(),
            logger=self._logger,
        )

    def create_ldap_conf_service(self) -> LDAPConfService:
        """Create the service that repairs the system LDAP configuration.

        Returns
        -------
        LDAPConfService
            Newly-created configuration service.
        """
        return LDAPConfService(
            config=self._context.config,
            hosts=self._context.hosts,
            puppet=self.create_puppet_storage(),
            logger=self._logger,
        )

    def create_person_directory(self) -> PersonDirectory:
        """Create the directory of people.

        Returns
        -------
        PersonDirectory
            Newly-created person directory.
        """
        return PersonDirectory(
            base_dn=self._context.config.people_base_dn,
            storage=self.create_directory_storage(),
            cache=self._context.person_cache,
            logger=self._logger,
        )

    def create_puppet_storage(self) -> PuppetStorage:
        """Create the storage layer for the infrastructure puppet data.

        Returns
        -------
        PuppetStorage
            Newly-created puppet storage.
        """
        return PuppetStorage(
            config=self._context.config,
            http_client=self._context.http_client,
            logger=self._logger,
        )

    def create_roster_service(self) -> RosterService:
        """Create the service answering membership questions.

        Returns
        -------
        RosterService
            Newly-created roster service.
        """
        return RosterService(
            people=self.create_person_directory(),
            groups=self.create_group_directory(),
            committees=self.create_committee_directory(),
            services=self.create_service_directory(),
            cache=self._context.roster_cache,
            logger=self._logger,
        )

    def create_service_directory(self) -> ServiceDirectory:
        """Create the directory of service groups.

        Returns
        -------
        ServiceDirectory
            Newly-created service directory.
        """
        return ServiceDirectory(
            base_dn=self._context.config.services_base_dn,
            storage=self.create_directory_storage(),
            cache=self._context.service_cache,
            people=self.create_person_directory(),
            logger=self._logger,
        )
