"""
Helpers shared by the CLI commands.
"""

import json
import logging
import sys
from typing import Any, NoReturn

import click

from config import load_console_config
from deployment import DeploymentCoordinator
from errors import ConsoleError

logger = logging.getLogger(__name__)


def get_coordinator(ctx: click.Context, **overrides: Any) -> DeploymentCoordinator:
    """Build a coordinator from the settings file, environment and global flags."""
    obj = ctx.ensure_object(dict)
    settings = {**obj.get("overrides", {}), **overrides}
    config = load_console_config(obj.get("settings_path"), **settings)
    return DeploymentCoordinator(config, settings_path=obj.get("settings_path"))


def echo_result(result: Any) -> None:
    """Print a command result as JSON, or as is if it's a string."""
    if result is None:
        return
    if isinstance(result, str):
        click.echo(result)
    else:
        click.echo(json.dumps(result, indent=2, default=str))


def fail(error: Exception) -> NoReturn:
    """Report an error and exit with status 1."""
    if not isinstance(error, ConsoleError):
        logger.debug("Unexpected error", exc_info=error)
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)
