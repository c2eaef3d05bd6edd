"""Storage layer for the infrastructure puppet data."""

from __future__ import annotations

from typing import Any

import yaml
from httpx import AsyncClient, HTTPError
from structlog.stdlib import BoundLogger

from ..config import Config
from ..constants import LDAPS_PORT, PUPPET_CERT_KEY, PUPPET_SERVERS_KEY

__all__ = ["PuppetStorage"]


class PuppetStorage:
    """Retrieve directory client settings from the puppet data.

    The ASF infrastructure puppet repository publishes the directory client
    certificate and the list of directory servers.  Both are optional
    enrichments, so failures are logged and reported as missing data rather
    than raised.

    Parameters
    ----------
    config
        asfldap configuration.
    http_client
        HTTP client to use.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        config: Config,
        http_client: AsyncClient,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._http_client = http_client
        self._logger = logger
        self._data: dict[str, Any] | None = None
        self._fetched = False

    async def get_data(self) -> dict[str, Any] | None:
        """Fetch and parse the puppet data.

        The data is fetched only once per storage object, even if fetching
        it failed.

        Returns
        -------
        dict or None
            Parsed puppet data, or `None` if it could not be retrieved.
        """
        if self._fetched:
            return self._data
        self._fetched = True
        url = str(self._config.puppet_url)
        try:
            r = await self._http_client.get(url)
            r.raise_for_status()
            data = yaml.safe_load(r.text)
        except (HTTPError, yaml.YAMLError) as e:
            error = f"{type(e).__name__}: {e!s}"
            msg = "Cannot retrieve puppet data"
            self._logger.warning(msg, puppet_url=url, error=error)
            return None
        if not isinstance(data, dict):
            msg = "Puppet data is not a mapping, ignoring"
            self._logger.warning(msg, puppet_url=url)
            return None
        self._data = data
        return data

    async def get_ldap_cert(self) -> str | None:
        """Return the directory client certificate in PEM format.

        Returns
        -------
        str or None
            The certificate, or `None` if not available.
        """
        data = await self.get_data()
        if not data:
            return None
        cert = data.get(PUPPET_CERT_KEY)
        if not isinstance(cert, str) or not cert.strip():
            self._logger.warning("No LDAP certificate in puppet data")
            return None
        return cert

    async def get_ldap_servers(self) -> list[str] | None:
        """Return the directory servers listed in the puppet data.

        Returns
        -------
        list of str or None
            Server URIs in the form ``ldaps://host:636``, or `None` if not
            available.
        """
        data = await self.get_data()
        if not data:
            return None
        peers = data.get(PUPPET_SERVERS_KEY)
        if not isinstance(peers, dict) or not peers:
            self._logger.warning("No LDAP servers in puppet data")
            return None
        return [f"ldaps://{h}:{LDAPS_PORT}" for h in peers.values()]
