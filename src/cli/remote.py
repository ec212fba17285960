#!/usr/bin/env python3
"""
Commands that run against the stack's functions.
"""

import json
import sys
from typing import Any, Optional

import click

from errors import InvalidInput

from .common import echo_result, fail, get_coordinator


def _parse_arg(arg: Optional[str]) -> Any:
    if arg is None:
        return None
    try:
        return json.loads(arg)
    except ValueError:
        # plain strings are passed through
        return arg


@click.command(name="exec")
@click.argument("command", nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, help="Skip the remote confirmation")
@click.pass_context
def exec_command(ctx, command, yes: bool) -> None:
    """Execute a cli command on your MyCloud, e.g. "setenvvar --key A --value B"."""
    try:
        coordinator = get_coordinator(ctx)
        echo_result(coordinator.exec(" ".join(command), confirmed=yes))
    except Exception as e:
        fail(e)


@click.command()
@click.argument("function_name")
@click.option("--arg", "-a", help="Argument to pass, as JSON")
@click.option("--yes", "-y", is_flag=True, help="Skip the remote confirmation")
@click.pass_context
def invoke(ctx, function_name: str, arg: Optional[str], yes: bool) -> None:
    """Invoke a function of your MyCloud."""
    try:
        coordinator = get_coordinator(ctx)
        echo_result(coordinator.invoke_and_return(function_name, _parse_arg(arg), confirmed=yes))
    except Exception as e:
        fail(e)


@click.command()
@click.pass_context
def info(ctx) -> None:
    """Show your MyCloud's endpoint, links and version."""
    try:
        echo_result(get_coordinator(ctx).info())
    except Exception as e:
        fail(e)


@click.command()
@click.pass_context
def functions(ctx) -> None:
    """List your MyCloud's functions."""
    try:
        for name in get_coordinator(ctx).get_functions():
            click.echo(name)
    except Exception as e:
        fail(e)


def log_options(func):
    """Add awslogs pass-through options to a command."""
    func = click.option("--timestamp", is_flag=True, help="Print the event timestamp")(func)
    func = click.option("--filter-pattern", "-f", help="CloudWatch Logs filter pattern")(func)
    func = click.option("--end", "-e", help="End time, e.g. 2h or 2024-01-01 10:00")(func)
    func = click.option("--start", "-s", help="Start time, e.g. 1h, 1d (default: 5m)")(func)
    return func


@click.command()
@click.argument("function_name")
@log_options
@click.option("--watch", "-w", is_flag=True, help="Keep following new events")
@click.pass_context
def log(ctx, function_name: str, start, end, filter_pattern, timestamp, watch: bool) -> None:
    """Print a function's logs."""
    try:
        code = get_coordinator(ctx).log(
            function_name,
            watch=watch,
            start=start,
            end=end,
            filter_pattern=filter_pattern,
            timestamp=timestamp,
        )
    except Exception as e:
        fail(e)
    sys.exit(code)


@click.command()
@click.argument("function_name")
@log_options
@click.pass_context
def tail(ctx, function_name: str, start, end, filter_pattern, timestamp) -> None:
    """Follow a function's logs."""
    try:
        code = get_coordinator(ctx).tail(
            function_name,
            start=start,
            end=end,
            filter_pattern=filter_pattern,
            timestamp=timestamp,
        )
    except Exception as e:
        fail(e)
    sys.exit(code)


@click.group()
def data() -> None:
    """Data import utilities."""
    pass


@data.command(name="create-bundle")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def create_bundle(ctx, path: str) -> None:
    """Upload a data bundle from a JSON file."""
    try:
        echo_result(get_coordinator(ctx).create_data_bundle(path))
    except Exception as e:
        fail(e)


@data.command(name="create-claim")
@click.option("--key", required=True, help="Data bundle key")
@click.option("--claim-type", required=True, type=click.Choice(["prefill", "bulk"]), help="Claim type")
@click.pass_context
def create_claim(ctx, key: str, claim_type: str) -> None:
    """Create a claim stub for a data bundle."""
    try:
        echo_result(get_coordinator(ctx).create_data_claim({"key": key, "claimType": claim_type}))
    except Exception as e:
        fail(e)


@data.command(name="list-claims")
@click.option("--key", required=True, help="Data bundle key")
@click.pass_context
def list_claims(ctx, key: str) -> None:
    """List claim stubs of a data bundle."""
    try:
        echo_result(get_coordinator(ctx).list_data_claims({"key": key}))
    except Exception as e:
        fail(e)


@data.command(name="get-bundle")
@click.option("--key", help="Data bundle key")
@click.option("--claim-id", help="Claim id")
@click.pass_context
def get_bundle(ctx, key: Optional[str], claim_id: Optional[str]) -> None:
    """Get a data bundle by key or claim id."""
    try:
        if not (key or claim_id):
            raise InvalidInput('expected "key" or "claimId"')
        query = {"key": key, "claimId": claim_id}
        echo_result(
            get_coordinator(ctx).get_data_bundle({k: v for k, v in query.items() if v})
        )
    except Exception as e:
        fail(e)
