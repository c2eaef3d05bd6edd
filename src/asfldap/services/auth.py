"""Verification of user credentials against the directory."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from structlog.stdlib import BoundLogger

from ..exceptions import AuthenticationError
from ..models.entities import Person
from ..storage.ldap import DirectorySession, DirectoryStorage
from .people import PersonDirectory

__all__ = ["AuthenticationService", "Continuation"]

Continuation = Callable[[DirectorySession], Awaitable[Any]]
"""Callback run with a session bound as the authenticated user."""


class AuthenticationService:
    """Check usernames and passwords by binding to the directory.

    Parameters
    ----------
    people
        Directory of people, used to find the DN for a username.
    storage
        The underlying LDAP storage layer.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        people: PersonDirectory,
        storage: DirectoryStorage,
        logger: BoundLogger,
    ) -> None:
        self._people = people
        self._storage = storage
        self._logger = logger

    async def authenticate(
        self,
        username: str,
        password: str,
        continuation: Continuation | None = None,
    ) -> Person:
        """Verify a username and password.

        The bound session is closed before returning.  If the caller needs
        to do something as that user, it can pass a continuation, which is
        run with the bound session before it is closed.

        Parameters
        ----------
        username
            Username of the person.
        password
            Their password.
        continuation
            If given, awaited with the bound session.

        Returns
        -------
        Person
            The authenticated person.

        Raises
        ------
        asfldap.exceptions.AuthenticationError
            Raised if the user does not exist, the password is empty, or the
            directory rejected the credentials.
        """
        logger = self._logger.bind(user=username)
        person = self._people.find(username)
        dn = await person.get_dn()
        if not dn:
            logger.info("Authentication failed for unknown user")
            raise AuthenticationError("Unknown user", username)

        # An empty password would be an unauthenticated bind, which succeeds.
        if not password:
            logger.info("Authentication failed without password")
            raise AuthenticationError("No password provided", username)

        async with self._storage.bind(dn, password) as session:
            logger.info("Authenticated user", ldap_host=session.host)
            if continuation:
                await continuation(session)
        return person
