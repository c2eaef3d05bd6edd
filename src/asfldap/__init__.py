"""Cached access to the ASF LDAP directory."""
