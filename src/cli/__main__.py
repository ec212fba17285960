#!/usr/bin/env python3
"""Main CLI entry point for stack-console."""

import logging
from typing import Optional

import click

from .conf import deploy, init, load
from .remote import data, exec_command, functions, info, invoke, log, tail
from .stack import destroy, enable_services, list_stacks


@click.group()
@click.version_option(package_name="stack-console")
@click.option("--stack-name", "-s", help="Stack to manage")
@click.option("--profile", help="AWS profile to use")
@click.option("--region", help="AWS region")
@click.option("--local", "-l", is_flag=True, help="Target the local emulator")
@click.option("--remote", "-r", is_flag=True, help="Target the deployed stack")
@click.option("--project", type=click.Path(), help="Path to the local serverless project")
@click.option("--inspect", is_flag=True, help="Run local node with --inspect")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False),
    help="Settings file (default: ./.stack-console.yml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    stack_name: Optional[str],
    profile: Optional[str],
    region: Optional[str],
    local: bool,
    remote: bool,
    project: Optional[str],
    inspect: bool,
    settings_path: Optional[str],
    verbose: bool,
) -> None:
    """Manage your MyCloud stack.

    Deploy configuration, run commands remotely or against a local
    emulator, and create or destroy stacks.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s" if not verbose else "%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    for name in ("botocore", "boto3", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["settings_path"] = settings_path
    ctx.obj["overrides"] = {
        "stack_name": stack_name,
        "profile": profile,
        "region": region,
        "local": local or None,
        "remote": remote or None,
        "project": project,
        "node_flags": {"inspect": True} if inspect else None,
    }


cli.add_command(deploy)
cli.add_command(load)
cli.add_command(init)
cli.add_command(exec_command)
cli.add_command(invoke)
cli.add_command(info)
cli.add_command(functions)
cli.add_command(log)
cli.add_command(tail)
cli.add_command(data)
cli.add_command(destroy)
cli.add_command(enable_services)
cli.add_command(list_stacks)


if __name__ == "__main__":
    cli()
