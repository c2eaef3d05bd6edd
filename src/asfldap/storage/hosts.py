"""Resolution of the directory servers to use."""

from __future__ import annotations

import itertools
import random
import re
import threading
from collections.abc import Iterator

from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import ConfigurationError

__all__ = ["HostRegistry", "parse_ldap_conf_hosts"]

_URI_LINE_REGEX = re.compile(r"^uri\s+(.*)", re.IGNORECASE | re.MULTILINE)
"""Regex matching the ``uri`` line of :file:`ldap.conf`."""

_URI_REGEX = re.compile(r"ldaps?://\S+?:\d+")
"""Regex matching one host URI on that line."""


def parse_ldap_conf_hosts(content: str) -> list[str]:
    """Extract directory host URIs from the contents of :file:`ldap.conf`.

    Parameters
    ----------
    content
        Contents of the LDAP client configuration file.

    Returns
    -------
    list of str
        Host URIs on the first ``uri`` line, which may be empty.  Only URIs
        with an explicit port are recognized.
    """
    match = _URI_LINE_REGEX.search(content)
    if not match:
        return []
    return _URI_REGEX.findall(match.group(1))


class HostRegistry:
    """The list of directory servers, and a round-robin cursor over it.

    The list is resolved once, on first use, from (in order of preference)
    the asfldap configuration, the system LDAP client configuration, and
    the configured default hosts.  It is then shuffled, so that separate
    processes spread their load across servers, and never changes again.

    Parameters
    ----------
    config
        asfldap configuration.
    logger
        Logger to use.
    """

    def __init__(self, config: Config, logger: BoundLogger) -> None:
        self._config = config
        self._logger = logger
        self._hosts: list[str] | None = None
        self._cycle: Iterator[str] | None = None
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        """Number of known directory servers."""
        return len(self.resolve())

    def next_host(self) -> str:
        """Return the next server in round-robin order.

        The sequence never ends, so repeated failover eventually comes back
        around to every server.

        Raises
        ------
        ConfigurationError
            Raised if no servers are known.
        """
        hosts = self.resolve()
        with self._lock:
            if self._cycle is None:
                self._cycle = itertools.cycle(hosts)
            return next(self._cycle)

    def resolve(self) -> list[str]:
        """Return the list of directory servers, resolving it if needed.

        Returns
        -------
        list of str
            Server URIs in the order in which they should be tried.

        Raises
        ------
        ConfigurationError
            Raised if no servers are listed by any source.
        """
        if self._hosts is not None:
            return self._hosts
        with self._lock:
            if self._hosts is None:
                hosts = self._find_hosts()
                if self._config.shuffle_hosts:
                    random.shuffle(hosts)
                self._hosts = hosts
            return self._hosts

    def sample(self) -> str:
        """Return a random directory server."""
        return random.choice(self.resolve())

    def _find_hosts(self) -> list[str]:
        hosts = list(self._config.hosts)
        if hosts:
            self._logger.debug("Using hosts from asfldap configuration")
            return hosts

        path = self._config.ldap_conf_path
        if path.exists():
            hosts = parse_ldap_conf_hosts(path.read_text())
            if hosts:
                self._logger.debug(
                    "Using hosts from LDAP configuration", path=str(path)
                )
                return hosts

        hosts = list(self._config.default_hosts)
        if not hosts:
            msg = "No directory hosts configured"
            self._logger.error(msg, path=str(path))
            raise ConfigurationError(msg)
        self._logger.debug("Using default host list")
        return hosts
