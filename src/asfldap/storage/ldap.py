"""LDAP storage layer for asfldap."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any, overload

import bonsai
from bonsai import LDAPEntry, LDAPModOp, LDAPSearchScope
from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import (
    DirectoryConnectionError,
    ModifyFailedError,
    SearchFailedError,
)
from ..models.attributes import Attributes
from .connection import ConnectionManager, DirectoryHandle
from .hosts import HostRegistry

__all__ = ["DirectorySession", "DirectoryStorage", "normalize_entry"]


def normalize_entry(entry: Mapping[str, Any]) -> Attributes:
    """Convert a search result entry to a plain dictionary.

    Parameters
    ----------
    entry
        Entry returned by bonsai (or any mapping of attribute names to
        values).

    Returns
    -------
    dict of list of str
        Attributes of the entry, with values as strings.  The DN of the
        entry, if known, is included under the ``dn`` key.
    """
    result: Attributes = {}
    for key, values in entry.items():
        if isinstance(values, (str, bytes)):
            values = [values]
        result[str(key)] = [
            v.decode(errors="replace") if isinstance(v, bytes) else str(v)
            for v in values
        ]
    dn = getattr(entry, "dn", None)
    if dn is not None:
        result["dn"] = [str(dn)]
    return result


class DirectorySession:
    """Operations on one specific directory connection, without retries.

    This is used directly for connections bound as a particular user, and
    by `DirectoryStorage` for each attempt on the shared connection.

    Parameters
    ----------
    handle
        Connection to use.
    config
        asfldap configuration.
    logger
        Logger to use.
    """

    def __init__(
        self, handle: DirectoryHandle, config: Config, logger: BoundLogger
    ) -> None:
        self._handle = handle
        self._config = config
        self._logger = logger.bind(ldap_host=handle.host)

    @property
    def host(self) -> str:
        """URI of the server this session talks to."""
        return self._handle.host

    async def modify(
        self,
        dn: str,
        attribute: str,
        values: list[str],
        operation: LDAPModOp = LDAPModOp.REPLACE,
    ) -> None:
        """Change one attribute of an entry.

        Parameters
        ----------
        dn
            DN of the entry.
        attribute
            Name of the attribute.
        values
            Values to replace, add or delete.
        operation
            Type of modification.

        Raises
        ------
        bonsai.LDAPError
            Raised if the directory rejected the change.
        """
        self._logger.info(
            "Modifying LDAP entry",
            ldap_dn=dn,
            ldap_attr=attribute,
            ldap_op=operation.name,
        )
        entry = LDAPEntry(dn, self._handle.connection)
        entry.change_attribute(attribute, operation, *values)
        await entry.modify(timeout=self._config.timeout)

    async def search(
        self,
        base: str,
        filter_exp: str,
        attrlist: list[str] | None = None,
        *,
        scope: LDAPSearchScope = LDAPSearchScope.ONELEVEL,
    ) -> list[Attributes]:
        """Run a search and normalize the results.

        Parameters
        ----------
        base
            Base DN of the search.
        filter_exp
            Search filter.
        attrlist
            Attributes to retrieve, or `None` for all of them.
        scope
            Scope of the search.

        Returns
        -------
        list of dict
            Matching entries in the order returned by the directory.

        Raises
        ------
        bonsai.LDAPError
            Raised if the search failed.
        """
        self._logger.debug(
            "Querying LDAP",
            ldap_attrs=attrlist,
            ldap_base=base,
            ldap_search=filter_exp,
        )
        entries = await self._handle.connection.search(
            base=base,
            scope=scope,
            filter_exp=filter_exp,
            attrlist=attrlist,
            timeout=self._config.timeout,
        )
        return [normalize_entry(e) for e in entries]


class DirectoryStorage:
    """LDAP storage layer.

    Runs searches and modifications on the shared connection, failing over
    to other directory servers when searches fail.

    Parameters
    ----------
    config
        asfldap configuration.
    hosts
        Registry of directory servers, used to size the retry budget.
    connections
        Owner of the shared connection.
    logger
        Logger for debug messages and errors.
    """

    def __init__(
        self,
        config: Config,
        hosts: HostRegistry,
        connections: ConnectionManager,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._hosts = hosts
        self._connections = connections
        self._logger = logger

    @asynccontextmanager
    async def bind(
        self, dn: str, password: str
    ) -> AsyncIterator[DirectorySession]:
        """Open a session bound as a particular user.

        Parameters
        ----------
        dn
            DN to bind as.
        password
            Password for that DN.

        Yields
        ------
        DirectorySession
            Session using a connection bound as that DN, which is closed when
            the context manager exits.

        Raises
        ------
        asfldap.exceptions.AuthenticationError
            Raised if the credentials were rejected.
        """
        async with self._connections.bind(dn, password) as handle:
            yield DirectorySession(handle, self._config, self._logger)

    async def modify(
        self,
        dn: str,
        attribute: str,
        values: list[str],
        operation: LDAPModOp = LDAPModOp.REPLACE,
    ) -> None:
        """Change one attribute of an entry using the shared connection.

        Modifications are not retried.

        Parameters
        ----------
        dn
            DN of the entry.
        attribute
            Name of the attribute.
        values
            Values to replace, add or delete.
        operation
            Type of modification.

        Raises
        ------
        asfldap.exceptions.ModifyFailedError
            Raised if the directory rejected the change.
        asfldap.exceptions.NoHostsAvailableError
            Raised if no directory server could be reached.
        """
        handle = None
        try:
            async with self._connections.session() as handle:
                session = DirectorySession(handle, self._config, self._logger)
                await session.modify(dn, attribute, values, operation)
        except (bonsai.LDAPError, OSError) as e:
            logger = self._logger.bind(ldap_dn=dn, ldap_attr=attribute)
            logger.exception("Cannot modify LDAP entry", error=str(e))
            if isinstance(e, (bonsai.ConnectionError, OSError)):
                await self._connections.reset(handle)
            msg = f"Cannot modify {attribute} of {dn}: {e}"
            raise ModifyFailedError(msg) from e

    @overload
    async def search(
        self,
        base: str,
        filter_exp: str,
        attributes: str,
        *,
        scope: LDAPSearchScope = ...,
    ) -> list[list[str]]: ...

    @overload
    async def search(
        self,
        base: str,
        filter_exp: str,
        attributes: Iterable[str] | None = None,
        *,
        scope: LDAPSearchScope = ...,
    ) -> list[Attributes]: ...

    async def search(
        self,
        base: str,
        filter_exp: str,
        attributes: str | Iterable[str] | None = None,
        *,
        scope: LDAPSearchScope = LDAPSearchScope.ONELEVEL,
    ) -> list[list[str]] | list[Attributes]:
        """Search the directory, failing over to other servers on errors.

        Parameters
        ----------
        base
            Base DN of the search.
        filter_exp
            Search filter.
        attributes
            Attributes to retrieve, or `None` for all of them.  If this is a
            single attribute name rather than a list, each result is just
            the list of values of that attribute, and entries without that
            attribute are omitted.
        scope
            Scope of the search.

        Returns
        -------
        list
            Matching entries in the order returned by the directory, or the
            values of the single requested attribute.  Empty if nothing
            matched.

        Raises
        ------
        asfldap.exceptions.SearchFailedError
            Raised if the search failed on every attempt.

        Notes
        -----
        The search is attempted once per known server, and at least twice
        even when there is only one server.  After each failure, the shared
        connection is discarded so that the next attempt reconnects, which
        moves on to the next server in round-robin order.
        """
        if isinstance(attributes, str):
            attrlist: list[str] | None = [attributes]
        else:
            attrlist = list(attributes) if attributes is not None else None
        logger = self._logger.bind(
            ldap_attrs=attrlist, ldap_base=base, ldap_search=filter_exp
        )

        attempts_left = max(self._hosts.count, 2)
        while True:
            attempts_left -= 1
            handle = None
            try:
                async with self._connections.session() as handle:
                    session = DirectorySession(handle, self._config, logger)
                    results = await session.search(
                        base, filter_exp, attrlist, scope=scope
                    )
                break
            except (
                bonsai.LDAPError,
                OSError,
                DirectoryConnectionError,
            ) as e:
                if handle:
                    host: str | None = handle.host
                else:
                    host = self._connections.last_attempt
                if attempts_left <= 0:
                    logger.error(
                        "Cannot query LDAP", ldap_host=host, error=str(e)
                    )
                    msg = f"LDAP query failed on {host}: {e!r}"
                    raise SearchFailedError(msg, host) from e
                logger.warning(
                    "LDAP query failed, retrying",
                    ldap_host=host,
                    error=str(e),
                )
                await self._connections.reset(handle)
                await asyncio.sleep(self._config.retry_delay)

        if isinstance(attributes, str):
            return [r[attributes] for r in results if r.get(attributes)]
        return results
