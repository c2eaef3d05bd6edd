"""Test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
import structlog
from structlog.stdlib import BoundLogger

from asfldap.config import Config
from asfldap.factory import Factory

from .support.constants import TEST_HOSTS
from .support.directory import add_test_directory
from .support.ldap import MockLDAP, patch_ldap


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Return the default test configuration.

    The hosts are tried in a fixed order, retries do not sleep, and the
    system LDAP configuration directory is a temporary directory.

    Notes
    -----
    This fixture must not be async so that it can be used by the cli tests,
    which must not be async because the Click support starts its own asyncio
    loop.
    """
    return Config(
        hosts=TEST_HOSTS,
        shuffle_hosts=False,
        retry_delay=0,
        ldap_conf_dir=tmp_path,
    )


@pytest_asyncio.fixture
async def factory(
    config: Config, mock_ldap: MockLDAP
) -> AsyncIterator[Factory]:
    """Return a component factory talking to the mock directory."""
    add_test_directory(mock_ldap, config)
    async with Factory.standalone(config) as factory:
        yield factory


@pytest.fixture
def logger() -> BoundLogger:
    """Return a logger for constructing components directly."""
    return structlog.get_logger("asfldap")


@pytest.fixture
def mock_ldap() -> Iterator[MockLDAP]:
    """Replace the bonsai LDAP API with a mock class."""
    yield from patch_ldap()
