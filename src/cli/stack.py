#!/usr/bin/env python3
"""
Stack lifecycle CLI commands.
"""

from typing import Optional

import click

from naming import get_console_link

from .common import echo_result, fail, get_coordinator


@click.command(name="list-stacks")
@click.option("--all", "show_all", is_flag=True, help="Include stacks that aren't MyClouds")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_stacks(ctx, show_all: bool, output_json: bool) -> None:
    """List stacks for the selected profile and region."""
    try:
        coordinator = get_coordinator(ctx)
        stacks = coordinator.list_stacks(mycloud_only=not show_all)
        if output_json:
            echo_result(stacks)
            return

        if not stacks:
            click.echo("No stacks found")
            return

        for stack in stacks:
            click.echo(f"{stack['name']:<50} {stack['status']}")

        region = coordinator.clients.region
        if region:
            click.echo(f"\n{get_console_link(region)}")
    except Exception as e:
        fail(e)


@click.command()
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.pass_context
def destroy(ctx, dry_run: bool) -> None:
    """Destroy your MyCloud and its buckets. There's no undo."""
    try:
        get_coordinator(ctx).destroy(dry_run=dry_run)
    except Exception as e:
        fail(e)


@click.command(name="enable-services")
@click.option("--trueface-spoof", is_flag=True, help="Enable the TrueFace Spoof service")
@click.option("--rank-one", is_flag=True, help="Enable the RankOne service")
@click.option("--key", "key_name", help="EC2 key pair for SSH access to service instances")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.pass_context
def enable_services(ctx, trueface_spoof: bool, rank_one: bool, key_name: Optional[str], dry_run: bool) -> None:
    """Create or update the optional services stack."""
    try:
        name = get_coordinator(ctx).enable_services(
            {
                "trueface_spoof": trueface_spoof,
                "rank_one": rank_one,
                "key_name": key_name,
                "dry_run": dry_run,
            }
        )
        click.echo(f"Services stack: {name}")
    except Exception as e:
        fail(e)
