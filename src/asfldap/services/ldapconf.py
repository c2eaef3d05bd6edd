"""Repair of the system LDAP client configuration.

This is a maintenance operation, run with root privileges on a new host (or
after the directory servers change) so that command-line LDAP tools and
anything else using the system client configuration talk to the ASF
directory servers with the correct certificate.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urlparse

from structlog.stdlib import BoundLogger

from ..config import Config
from ..constants import CERT_GLOB, CERT_NAME
from ..exceptions import ConfigurationError
from ..storage.hosts import HostRegistry
from ..storage.puppet import PuppetStorage

__all__ = ["LDAPConfService", "update_ldap_conf"]

_ASF_CERT_REGEX = re.compile(r"asf.*-ldap-client\.pem")
_PEM_REGEX = re.compile(
    r"^-+BEGIN.*?\n-+END[^\n]+\n", re.MULTILINE | re.DOTALL
)
_URI_LINE_REGEX = re.compile(r"^uri (.*)$", re.MULTILINE)


def _comment_out(pattern: str, content: str, *, flags: int = 0) -> str:
    regex = re.compile(f"^({pattern})", re.MULTILINE | flags)
    return regex.sub(r"# \1", content)


def update_ldap_conf(
    content: str, *, hosts: Iterable[str], conf_dir: Path, base_dn: str
) -> str:
    """Compute the new contents of :file:`ldap.conf`.

    Parameters
    ----------
    content
        Current contents of the file, possibly empty.
    hosts
        Directory servers to list on the ``uri`` line.
    conf_dir
        Directory holding :file:`ldap.conf` and the client certificate.
    base_dn
        Base DN to configure.

    Returns
    -------
    str
        New contents.  Settings that are replaced are commented out rather
        than removed, and applying this twice gives the same result as
        applying it once.
    """
    if content and not content.endswith("\n"):
        content += "\n"

    if not _ASF_CERT_REGEX.search(content):
        content = _comment_out("TLS_CACERT", content, flags=re.IGNORECASE)
        content += f"TLS_CACERT {conf_dir / CERT_NAME}\n"

    content = _comment_out("URI", content)
    if not _URI_LINE_REGEX.search(content):
        content += "uri \n"
    line = "uri " + " ".join(hosts)
    content = _URI_LINE_REGEX.sub(lambda _: line, content, count=1)

    if f"base {base_dn}" not in content:
        content = _comment_out("BASE", content, flags=re.IGNORECASE)
        content += f"base {base_dn}\n"

    if "openldap" in str(conf_dir) and "REQCERT allow" not in content:
        content = _comment_out("TLS_REQCERT", content, flags=re.IGNORECASE)
        content += "TLS_REQCERT allow\n"

    return content


class LDAPConfService:
    """Install the ASF client certificate and rewrite :file:`ldap.conf`.

    Parameters
    ----------
    config
        asfldap configuration.
    hosts
        Registry of directory servers, used when the puppet data does not
        list any and to pick a server to ask for its certificate.
    puppet
        Storage for the infrastructure puppet data.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        config: Config,
        hosts: HostRegistry,
        puppet: PuppetStorage,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._hosts = hosts
        self._puppet = puppet
        self._logger = logger

    async def configure(self) -> bool:
        """Install the certificate if needed and update :file:`ldap.conf`.

        Returns
        -------
        bool
            Whether :file:`ldap.conf` was changed.

        Raises
        ------
        asfldap.exceptions.ConfigurationError
            Raised if no certificate is installed and none could be obtained.
        OSError
            Raised if the configuration files could not be written.
        """
        conf_dir = self._config.ldap_conf_dir
        await self._install_cert(conf_dir)

        hosts = await self._puppet.get_ldap_servers()
        if hosts:
            self._logger.debug("Using hosts from puppet data")
        else:
            hosts = self._hosts.resolve()

        path = self._config.ldap_conf_path
        current = path.read_text() if path.exists() else ""
        content = update_ldap_conf(
            current,
            hosts=hosts,
            conf_dir=conf_dir,
            base_dn=self._config.base_dn,
        )
        if content == current:
            self._logger.info("LDAP configuration unchanged", path=str(path))
            return False
        path.write_text(content)
        self._logger.info("Updated LDAP configuration", path=str(path))
        return True

    async def _extract_cert(self) -> str | None:
        """Ask a directory server for its certificate with openssl."""
        host = self._hosts.sample()
        url = urlparse(host)
        target = f"{url.hostname}:{url.port}"
        self._logger.info("Retrieving certificate with openssl", host=target)
        try:
            process = await asyncio.create_subprocess_exec(
                "openssl",
                "s_client",
                "-connect",
                target,
                "-showcerts",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await process.communicate()
        except OSError as e:
            msg = "Cannot run openssl"
            self._logger.warning(msg, host=target, error=str(e))
            return None
        match = _PEM_REGEX.search(stdout.decode(errors="replace"))
        return match.group(0) if match else None

    async def _install_cert(self, conf_dir: Path) -> Path:
        existing = sorted(conf_dir.glob(CERT_GLOB))
        if existing:
            return existing[0]
        cert = await self._puppet.get_ldap_cert()
        if not cert:
            cert = await self._extract_cert()
        if not cert:
            raise ConfigurationError("Cannot obtain LDAP client certificate")
        path = conf_dir / CERT_NAME
        path.write_text(cert)
        self._logger.info("Installed LDAP client certificate", path=str(path))
        return path
