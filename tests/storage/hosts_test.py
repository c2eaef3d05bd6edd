"""Tests for resolution of the directory servers."""

from __future__ import annotations

from pathlib import Path

import pytest
from structlog.stdlib import BoundLogger

from asfldap.config import Config
from asfldap.constants import DEFAULT_HOSTS
from asfldap.exceptions import ConfigurationError
from asfldap.storage.hosts import HostRegistry, parse_ldap_conf_hosts

from ..support.constants import TEST_HOSTS

_LDAP_CONF = """\
# System LDAP configuration.
BASE dc=apache,dc=org
URI ldaps://ldap-a.example.org:636 ldaps://ldap-b.example.org:636 ldap://x
TLS_CACERT /etc/ldap/asf-ldap-client.pem
"""


def test_parse_ldap_conf_hosts() -> None:
    assert parse_ldap_conf_hosts(_LDAP_CONF) == [
        "ldaps://ldap-a.example.org:636",
        "ldaps://ldap-b.example.org:636",
    ]
    assert parse_ldap_conf_hosts("uri\tldap://ldap.example.org:389\n") == [
        "ldap://ldap.example.org:389"
    ]
    assert parse_ldap_conf_hosts("BASE dc=apache,dc=org\n") == []
    assert parse_ldap_conf_hosts("") == []


def test_config_hosts(tmp_path: Path, logger: BoundLogger) -> None:
    (tmp_path / "ldap.conf").write_text(_LDAP_CONF)
    config = Config(
        hosts=TEST_HOSTS, shuffle_hosts=False, ldap_conf_dir=tmp_path
    )
    hosts = HostRegistry(config, logger)
    assert hosts.resolve() == TEST_HOSTS
    assert hosts.count == 2


def test_ldap_conf_hosts(tmp_path: Path, logger: BoundLogger) -> None:
    (tmp_path / "ldap.conf").write_text(_LDAP_CONF)
    config = Config(shuffle_hosts=False, ldap_conf_dir=tmp_path)
    hosts = HostRegistry(config, logger)
    assert hosts.resolve() == [
        "ldaps://ldap-a.example.org:636",
        "ldaps://ldap-b.example.org:636",
    ]


def test_default_hosts(tmp_path: Path, logger: BoundLogger) -> None:
    (tmp_path / "ldap.conf").write_text("BASE dc=apache,dc=org\n")
    config = Config(shuffle_hosts=False, ldap_conf_dir=tmp_path)
    hosts = HostRegistry(config, logger)
    assert hosts.resolve() == DEFAULT_HOSTS
    assert hosts.sample() in DEFAULT_HOSTS


def test_no_hosts(tmp_path: Path, logger: BoundLogger) -> None:
    config = Config(default_hosts=[], ldap_conf_dir=tmp_path)
    hosts = HostRegistry(config, logger)
    with pytest.raises(ConfigurationError):
        hosts.resolve()
    with pytest.raises(ConfigurationError):
        hosts.next_host()


def test_shuffle(tmp_path: Path, logger: BoundLogger) -> None:
    config = Config(ldap_conf_dir=tmp_path)
    hosts = HostRegistry(config, logger)
    resolved = hosts.resolve()
    assert sorted(resolved) == sorted(DEFAULT_HOSTS)

    # The order is fixed once resolved.
    assert hosts.resolve() == resolved
    assert [hosts.next_host() for _ in resolved] == resolved


def test_next_host(config: Config, logger: BoundLogger) -> None:
    hosts = HostRegistry(config, logger)
    assert [hosts.next_host() for _ in range(5)] == [
        TEST_HOSTS[0],
        TEST_HOSTS[1],
        TEST_HOSTS[0],
        TEST_HOSTS[1],
        TEST_HOSTS[0],
    ]
