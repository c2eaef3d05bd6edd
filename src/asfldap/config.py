"""Configuration for asfldap.

asfldap is configured by an optional YAML file whose keys are the camel-case
forms of the settings below. The settings most likely to differ between
deployments, and secrets, may also be set via environment variables, which
take precedence over the file. Only the settings with explicit
``validation_alias`` settings support configuration via environment
variable.

Every setting has a default, so an empty configuration talks anonymously to
the hosts listed in the system :file:`ldap.conf` or, failing that, to the
production ASF directory servers.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Self, override

import yaml
from pydantic import AliasChoices, Field, HttpUrl, SecretStr, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, configure_logging

from .constants import (
    BASE_DN,
    COMMITTEES_BASE_DN,
    DEFAULT_HOSTS,
    GROUPS_BASE_DN,
    LDAP_CONF_DIR,
    LDAP_TIMEOUT,
    PEOPLE_BASE_DN,
    PUPPET_URL,
    SEARCH_RETRY_DELAY,
    SERVICES_BASE_DN,
)

_HOST_REGEX = re.compile(r"^ldaps?://[^\s:/]+:\d+$")
"""Accepted form of a directory host URI."""

__all__ = [
    "CamelCaseSettings",
    "Config",
    "EnvFirstSettings",
]


class CamelCaseSettings(BaseSettings):
    """Base class for Pydantic settings supporting camel-case.

    This base class also forbids all extra attributes.
    """

    model_config = SettingsConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )


class EnvFirstSettings(CamelCaseSettings):
    """Base class for Pydantic settings with environment overrides.

    Classes that inherit from this base class will prioritize environment
    variables over arguments to the class constructor.
    """

    @override
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Override the sources of settings.

        Deactivate :file:`.env` and secret file support. Allow environment
        variables to override init parameters, since init parameters come
        from the YAML configuration file and we want environment variables
        to take precedent.
        """
        return (env_settings, init_settings)


class Config(EnvFirstSettings):
    """Configuration for asfldap."""

    hosts: list[str] = Field(
        [],
        title="Directory servers",
        description=(
            "URIs of the directory servers to use, in the form"
            " ``ldaps://host:port``. If empty, the ``uri`` line of the"
            " system :file:`ldap.conf` is used, and failing that"
            " ``defaultHosts``."
        ),
        validation_alias=AliasChoices("ASFLDAP_HOSTS", "hosts"),
    )

    default_hosts: list[str] = Field(
        DEFAULT_HOSTS,
        title="Fallback directory servers",
        description=(
            "Directory servers to use if neither ``hosts`` nor the system"
            " LDAP client configuration lists any"
        ),
    )

    shuffle_hosts: bool = Field(
        True,
        title="Shuffle directory servers",
        description=(
            "Whether to shuffle the resolved host list once per process to"
            " spread load across the directory servers"
        ),
    )

    bind_dn: str | None = Field(
        None,
        title="Simple bind DN",
        description=(
            "DN to bind as when querying the directory. If not set, the"
            " client does an anonymous bind."
        ),
        validation_alias=AliasChoices("ASFLDAP_BIND_DN", "bindDn"),
    )

    password: SecretStr | None = Field(
        None,
        title="Simple bind password",
        description="Password for ``bindDn``. Only used if it is set.",
        validation_alias=AliasChoices("ASFLDAP_PASSWORD", "password"),
    )

    ca_cert_path: Path | None = Field(
        None,
        title="CA certificate",
        description=(
            "Path to a PEM CA certificate used to verify the directory"
            " servers. If not set, the system LDAP client setting is used."
        ),
    )

    ldap_conf_dir: Path = Field(
        LDAP_CONF_DIR,
        title="LDAP client configuration directory",
        description=(
            "Directory holding the system :file:`ldap.conf` and the ASF"
            " client certificate"
        ),
        validation_alias=AliasChoices(
            "ASFLDAP_LDAP_CONF_DIR", "ldapConfDir"
        ),
    )

    base_dn: str = Field(BASE_DN, title="Base DN of the directory tree")

    people_base_dn: str = Field(
        PEOPLE_BASE_DN, title="Base DN for person entries"
    )

    groups_base_dn: str = Field(
        GROUPS_BASE_DN, title="Base DN for group entries"
    )

    committees_base_dn: str = Field(
        COMMITTEES_BASE_DN, title="Base DN for committee entries"
    )

    services_base_dn: str = Field(
        SERVICES_BASE_DN, title="Base DN for service entries"
    )

    timeout: float = Field(
        LDAP_TIMEOUT,
        title="Directory timeout",
        description="Timeout in seconds for connects and queries",
        gt=0,
    )

    retry_delay: float = Field(
        SEARCH_RETRY_DELAY,
        title="Search retry delay",
        description="Seconds to wait before retrying a failed search",
        ge=0,
    )

    puppet_url: HttpUrl = Field(
        PUPPET_URL,
        title="Infrastructure puppet data",
        description=(
            "URL of the puppet YAML data holding the directory client"
            " certificate and server list. Only used by the maintenance"
            " command."
        ),
        validate_default=True,
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Logging level",
        description="Python logging level",
        validation_alias=AliasChoices("ASFLDAP_LOG_LEVEL", "logLevel"),
    )

    @field_validator("hosts", "default_hosts")
    @classmethod
    def _validate_hosts(cls, v: list[str]) -> list[str]:
        hosts = []
        for host in v:
            host = host.rstrip("/")
            if not _HOST_REGEX.match(host):
                msg = f"Invalid directory host {host}"
                raise ValueError(msg)
            hosts.append(host)
        return hosts

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a Config object from a configuration file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding `Config` object.
        """
        with path.open("r") as f:
            return cls(**(yaml.safe_load(f) or {}))

    @property
    def ldap_conf_path(self) -> Path:
        """Path to the system LDAP client configuration file."""
        return self.ldap_conf_dir / "ldap.conf"

    def configure_logging(self) -> None:
        """Configure logging based on the asfldap configuration."""
        configure_logging(name="asfldap", log_level=self.log_level)
