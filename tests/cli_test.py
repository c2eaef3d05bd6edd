"""Tests for the command-line interface.

Be careful when writing tests in this framework because the click command
handling code starts its own asyncio loop.  None of these tests can
therefore be async.
"""

from __future__ import annotations

from pathlib import Path

import respx
import yaml
from click.testing import CliRunner

from asfldap.cli import main
from asfldap.constants import PUPPET_URL

from .support.constants import TEST_HOSTS


def _write_config(tmp_path: Path) -> Path:
    config_path = tmp_path / "asfldap.yaml"
    settings = {
        "hosts": TEST_HOSTS,
        "shuffleHosts": False,
        "ldapConfDir": str(tmp_path),
    }
    config_path.write_text(yaml.safe_dump(settings))
    return config_path


def test_help() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["help"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Commands:" in result.output

    result = runner.invoke(main, ["help", "configure"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Options:" in result.output

    result = runner.invoke(main, ["help", "unknown-command"])
    assert result.exit_code != 0


def test_configure(tmp_path: Path, respx_mock: respx.Router) -> None:
    respx_mock.get(PUPPET_URL).respond(404)
    config_path = _write_config(tmp_path)
    (tmp_path / "asf-ldap-client.pem").write_text("cert\n")
    ldap_conf = tmp_path / "ldap.conf"

    runner = CliRunner()
    result = runner.invoke(
        main,
        ["configure", "--config-path", str(config_path)],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    assert f"Updated {ldap_conf}" in result.output
    assert f"uri {TEST_HOSTS[0]} {TEST_HOSTS[1]}\n" in ldap_conf.read_text()

    result = runner.invoke(
        main,
        ["configure"],
        catch_exceptions=False,
        env={"ASFLDAP_CONFIG_PATH": str(config_path)},
    )
    assert result.exit_code == 0
    assert f"{ldap_conf} already up to date" in result.output


def test_configure_no_cert(tmp_path: Path, respx_mock: respx.Router) -> None:
    respx_mock.get(PUPPET_URL).respond(404)
    config_path = _write_config(tmp_path)

    runner = CliRunner()
    result = runner.invoke(
        main,
        ["configure", "--config-path", str(config_path)],
        env={"PATH": str(tmp_path)},
    )
    assert result.exit_code == 1
    assert "Cannot obtain LDAP client certificate" in result.output
    assert not (tmp_path / "ldap.conf").exists()
