"""Administrative command-line interface."""

from __future__ import annotations

import os
from pathlib import Path

import click
import structlog
from safir.asyncio import run_with_asyncio
from safir.click import display_help

from .config import Config
from .constants import CONFIG_PATH
from .exceptions import ConfigurationError
from .factory import Factory

__all__ = [
    "configure",
    "help",
    "main",
]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Administrative command-line interface for asfldap."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic)


@main.command()
@click.option(
    "--config-path",
    envvar="ASFLDAP_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=None,
    help="Application configuration file.",
)
@run_with_asyncio
async def configure(*, config_path: Path | None) -> None:
    """Install the ASF LDAP certificate and update ldap.conf.

    Must be run with permission to write to the LDAP client configuration
    directory.
    """
    config = _load_config(config_path)
    logger = structlog.get_logger("asfldap")
    logger.debug("Starting LDAP configuration update")
    async with Factory.standalone(config) as factory:
        ldap_conf_service = factory.create_ldap_conf_service()
        try:
            changed = await ldap_conf_service.configure()
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from e
    path = config.ldap_conf_path
    if changed:
        click.echo(f"Updated {path}")
    else:
        click.echo(f"{path} already up to date")


def _load_config(config_path: Path | None) -> Config:
    """Load the configuration file, if there is one."""
    if not config_path:
        config_path = Path(os.getenv("ASFLDAP_CONFIG_PATH", CONFIG_PATH))
    if config_path.exists():
        config = Config.from_file(config_path)
    else:
        config = Config()
    config.configure_logging()
    return config
