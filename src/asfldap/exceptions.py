"""Exceptions for asfldap."""

from __future__ import annotations

from safir.slack.blockkit import SlackException

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DirectoryConnectionError",
    "DirectoryError",
    "ModifyFailedError",
    "NoHostsAvailableError",
    "SearchFailedError",
]


class DirectoryError(SlackException):
    """Base class for errors talking to the directory.

    The directory may be affected by an outage of some or all of its
    servers, so these exceptions carry enough context (the user on whose
    behalf the operation was done, if any) to be reported without a stack
    trace.
    """


class ConfigurationError(DirectoryError):
    """The directory client is not configured well enough to run.

    Raised when no directory hosts can be found from any source, or when the
    maintenance code cannot obtain a certificate.  This is never retried.
    """


class DirectoryConnectionError(DirectoryError):
    """Connecting or binding to a directory server failed."""


class NoHostsAvailableError(DirectoryConnectionError):
    """Every known directory server failed in a single connect attempt."""


class SearchFailedError(DirectoryError):
    """A search failed on every attempt allowed by the retry budget.

    Parameters
    ----------
    message
        Error message, which includes the underlying cause.
    host
        Directory server used for the last attempt, if any.
    """

    def __init__(self, message: str, host: str | None = None) -> None:
        super().__init__(message)
        self.host = host


class ModifyFailedError(DirectoryError):
    """The directory rejected a modification, or there was nothing to modify.

    Writes are not retried since they are not safe to replay blindly.
    """


class AuthenticationError(DirectoryError):
    """The supplied credentials were not accepted by the directory."""
