"""Constants for asfldap."""

from pathlib import Path

__all__ = [
    "BASE_DN",
    "CERT_GLOB",
    "CERT_NAME",
    "COMMITTEES_BASE_DN",
    "CONFIG_PATH",
    "DEFAULT_HOSTS",
    "GROUPS_BASE_DN",
    "HTTP_TIMEOUT",
    "LDAP_CONF_DIR",
    "LDAP_TIMEOUT",
    "LDAPS_PORT",
    "PEOPLE_BASE_DN",
    "PUPPET_CERT_KEY",
    "PUPPET_SERVERS_KEY",
    "PUPPET_URL",
    "SEARCH_RETRY_DELAY",
    "SERVICES_BASE_DN",
]

BASE_DN = "dc=apache,dc=org"
"""Base DN of the ASF directory tree."""

PEOPLE_BASE_DN = f"ou=people,{BASE_DN}"
"""Base DN for person entries."""

GROUPS_BASE_DN = f"ou=groups,{BASE_DN}"
"""Base DN for Unix group entries."""

COMMITTEES_BASE_DN = f"ou=pmc,ou=committees,ou=groups,{BASE_DN}"
"""Base DN for project management committee entries."""

SERVICES_BASE_DN = f"ou=groups,ou=services,{BASE_DN}"
"""Base DN for service group entries."""

CERT_GLOB = "asf*-ldap-client.pem"
"""Pattern for an already-installed ASF LDAP client certificate."""

CERT_NAME = "asf-ldap-client.pem"
"""File name used when installing the ASF LDAP client certificate."""

CONFIG_PATH = "/etc/asfldap/asfldap.yaml"
"""Default configuration path."""

DEFAULT_HOSTS = [
    "ldaps://ldap1-us-west.apache.org:636",
    "ldaps://ldap1-lw-us.apache.org:636",
    "ldaps://ldap2-us-west.apache.org:636",
    "ldaps://ldap1-lw-eu.apache.org:636",
    "ldaps://snappy5.apache.org:636",
    "ldaps://ldap2-lw-us.apache.org:636",
    "ldaps://ldap2-lw-eu.apache.org:636",
]
"""Directory servers used when no other source lists any.

Taken from ``ldapserver::slapd_peers`` in the infrastructure puppet data.
"""

HTTP_TIMEOUT = 20.0
"""Timeout (in seconds) for fetching the infrastructure puppet data."""

LDAP_CONF_DIR = (
    Path("/etc/openldap")
    if Path("/etc/openldap").is_dir()
    else Path("/etc/ldap")
)
"""Directory holding the system LDAP client configuration."""

LDAP_TIMEOUT = 10.0
"""Timeout (in seconds) for LDAP connects and queries."""

LDAPS_PORT = 636
"""Port used for hosts listed in the puppet configuration."""

PUPPET_CERT_KEY = "ldapclient::ldapcert"
"""Key of the LDAP client certificate in the puppet data."""

PUPPET_SERVERS_KEY = "ldapserver::slapd_peers"
"""Key of the LDAP server peers in the puppet data."""

PUPPET_URL = (
    "https://raw.githubusercontent.com/apache/infrastructure-puppet"
    "/deployment/data/common.yaml"
)
"""URL of the infrastructure puppet common data."""

SEARCH_RETRY_DELAY = 1.0
"""How long (in seconds) to wait before retrying a failed search."""
