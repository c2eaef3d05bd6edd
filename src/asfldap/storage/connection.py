"""Management of the shared directory session."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import bonsai
from bonsai import LDAPClient
from bonsai.asyncio import AIOLDAPConnection
from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import AuthenticationError, NoHostsAvailableError
from .hosts import HostRegistry

__all__ = ["ConnectionManager", "DirectoryHandle"]

_TRANSPORT_ERRORS = (bonsai.LDAPError, OSError)
"""Errors that mean a server could not be used and the next one is tried.

`TimeoutError` is a subclass of `OSError`.
"""


@dataclass(frozen=True, slots=True)
class DirectoryHandle:
    """An open, bound connection to one directory server."""

    host: str
    """URI of the server."""

    connection: AIOLDAPConnection
    """The underlying bonsai connection."""


class ConnectionManager:
    """Owner of the single shared directory session.

    There is at most one shared connection at a time.  It is opened on first
    use, trying each known server at most once, and replaced wholesale when
    a caller reports that it has failed.  All use of the shared connection
    goes through `session`, which serializes access, since bonsai does not
    support concurrent use of one connection reliably and two callers must
    not race to replace it.

    Parameters
    ----------
    config
        asfldap configuration.
    hosts
        Registry of directory servers.
    logger
        Logger to use.
    """

    def __init__(
        self, config: Config, hosts: HostRegistry, logger: BoundLogger
    ) -> None:
        self._config = config
        self._hosts = hosts
        self._logger = logger
        self._handle: DirectoryHandle | None = None
        self._host: str | None = None
        self._last_attempt: str | None = None
        self._lock = asyncio.Lock()

    @property
    def host(self) -> str | None:
        """URI of the server of the last successful connection."""
        return self._host

    @property
    def last_attempt(self) -> str | None:
        """URI of the server most recently tried, whether or not it worked."""
        return self._last_attempt

    async def aclose(self) -> None:
        """Close the shared connection, if any."""
        async with self._lock:
            self._close(self._handle)
            self._handle = None

    @asynccontextmanager
    async def bind(
        self, dn: str, password: str
    ) -> AsyncIterator[DirectoryHandle]:
        """Open a separate connection bound with the given credentials.

        The connection is not shared and is closed when the context manager
        exits.

        Parameters
        ----------
        dn
            DN to bind as.
        password
            Password for that DN.

        Yields
        ------
        DirectoryHandle
            The bound connection.

        Raises
        ------
        asfldap.exceptions.AuthenticationError
            Raised if the directory rejected the credentials.
        asfldap.exceptions.NoHostsAvailableError
            Raised if no server could be reached.
        """
        logger = self._logger.bind(user=dn)
        for _ in range(self._hosts.count):
            host = self._hosts.next_host()
            try:
                connection = await self._open(host, dn, password)
            except bonsai.AuthenticationError as e:
                logger.info("Invalid credentials", ldap_host=host)
                msg = f"Invalid credentials for {dn}"
                raise AuthenticationError(msg, dn) from e
            except _TRANSPORT_ERRORS as e:
                msg = "Error connecting to LDAP server (continuing)"
                logger.warning(msg, ldap_host=host, error=str(e))
                continue
            handle = DirectoryHandle(host=host, connection=connection)
            try:
                yield handle
            finally:
                self._close(handle)
            return
        msg = "Failed to connect to any LDAP host"
        logger.error(msg)
        raise NoHostsAvailableError(msg, dn)

    async def connect(self) -> DirectoryHandle:
        """Open a new shared connection, replacing any existing one.

        Returns
        -------
        DirectoryHandle
            The new connection.

        Raises
        ------
        asfldap.exceptions.NoHostsAvailableError
            Raised if every server failed.
        """
        async with self._lock:
            return await self._connect()

    async def get_handle(self) -> DirectoryHandle:
        """Return the shared connection, opening it if necessary."""
        async with self._lock:
            return self._handle or await self._connect()

    async def reset(self, handle: DirectoryHandle | None) -> None:
        """Discard a shared connection that has failed.

        Nothing is done if the connection has already been replaced by
        someone else.

        Parameters
        ----------
        handle
            The connection that failed.
        """
        async with self._lock:
            if handle is not None and handle is self._handle:
                self._handle = None
                self._close(handle)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[DirectoryHandle]:
        """Hold exclusive use of the shared connection.

        Yields
        ------
        DirectoryHandle
            The shared connection, opened if necessary.

        Raises
        ------
        asfldap.exceptions.NoHostsAvailableError
            Raised if there was no connection and every server failed.
        """
        async with self._lock:
            yield self._handle or await self._connect()

    def _close(self, handle: DirectoryHandle | None) -> None:
        if handle is None:
            return
        try:
            handle.connection.close()
        except Exception as e:
            msg = "Error closing LDAP connection (ignoring)"
            self._logger.warning(msg, ldap_host=handle.host, error=str(e))

    async def _connect(self) -> DirectoryHandle:
        """Connect to the next working server.  Must hold the lock."""
        password = None
        if self._config.password:
            password = self._config.password.get_secret_value()
        for _ in range(self._hosts.count):
            host = self._hosts.next_host()
            self._last_attempt = host
            self._logger.info("Connecting to LDAP server", ldap_host=host)
            try:
                connection = await self._open(
                    host, self._config.bind_dn, password
                )
            except _TRANSPORT_ERRORS as e:
                msg = "Error connecting to LDAP server (continuing)"
                self._logger.warning(msg, ldap_host=host, error=str(e))
                continue
            handle = DirectoryHandle(host=host, connection=connection)
            self._close(self._handle)
            self._handle = handle
            self._host = host
            return handle
        msg = "Failed to connect to any LDAP host"
        self._logger.error(msg)
        raise NoHostsAvailableError(msg)

    async def _open(
        self, host: str, dn: str | None, password: str | None
    ) -> AIOLDAPConnection:
        """Open and bind a connection to one server.

        The bind is anonymous unless a DN and password are given.  TLS is
        used if the URI scheme is ``ldaps``.
        """
        client = LDAPClient(host)
        if dn and password is not None:
            client.set_credentials("SIMPLE", user=dn, password=password)
        if self._config.ca_cert_path:
            client.set_ca_cert(str(self._config.ca_cert_path))
        return await client.connect(
            is_async=True, timeout=self._config.timeout
        )
