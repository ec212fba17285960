#!/usr/bin/env python3
"""
Configuration CLI commands: deploy, load and init.
"""

from pathlib import Path
from typing import Optional, Tuple

import click

from constants import DEFAULT_SETTINGS_FILE

from .common import echo_result, fail, get_coordinator


def deploy_item_options(func):
    """Add the deployable item selection flags to a command."""
    for name, help_text in reversed(
        [
            ("bot", "Bot configuration (conf/bot.json)"),
            ("style", "Style (conf/style.json)"),
            ("models", "Models and lenses (models/, lenses/)"),
            ("terms", "Terms and conditions (conf/terms-and-conditions.md)"),
            ("all", "Everything above"),
        ]
    ):
        func = click.option(f"--{name}", is_flag=True, help=help_text)(func)
    return func


@click.command()
@deploy_item_options
@click.option("--dry-run", is_flag=True, help="Show what would be deployed")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.argument("args", nargs=-1)
@click.pass_context
def deploy(ctx, bot, style, models, terms, all, dry_run, yes, args: Tuple[str, ...]) -> None:
    """Push local configuration to your MyCloud."""
    try:
        coordinator = get_coordinator(ctx)
        result = coordinator.deploy(
            {
                "bot": bot,
                "style": style,
                "models": models,
                "terms": terms,
                "all": all,
                "dry_run": dry_run,
                "yes": yes,
                "args": list(args),
            }
        )
        echo_result(result)
    except Exception as e:
        fail(e)


@click.command()
@deploy_item_options
@click.option("--dry-run", is_flag=True, help="Show what would be loaded")
@click.argument("args", nargs=-1)
@click.pass_context
def load(ctx, bot, style, models, terms, all, dry_run, args: Tuple[str, ...]) -> None:
    """Pull your MyCloud's current configuration into local files."""
    try:
        coordinator = get_coordinator(ctx)
        written = coordinator.load(
            {
                "bot": bot,
                "style": style,
                "models": models,
                "terms": terms,
                "all": all,
                "dry_run": dry_run,
                "args": list(args),
            }
        )
        if written:
            click.echo(f"Loaded: {', '.join(written)}")
        elif written is not None:
            click.echo("Nothing to load")
    except Exception as e:
        fail(e)


@click.command()
@click.option("--stack-name", "-s", help="Stack to manage (prompted if omitted)")
@click.option("--profile", help="AWS profile to use")
@click.option("--region", help="AWS region")
@click.option("--project", type=click.Path(), help="Path to a local serverless project")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing settings")
@click.pass_context
def init(ctx, stack_name: Optional[str], profile: Optional[str], region: Optional[str], project: Optional[str], force: bool) -> None:
    """Select a stack and save local settings."""
    try:
        settings_path = Path(ctx.obj.get("settings_path") or DEFAULT_SETTINGS_FILE)
        overwrite = True
        if settings_path.exists() and not force:
            overwrite = click.confirm(f"{settings_path} exists. Overwrite?", default=False)

        coordinator = get_coordinator(ctx)
        if overwrite and not stack_name:
            stacks = coordinator.list_stacks(profile=profile, region=region, mycloud_only=True)
            if not stacks:
                raise click.UsageError("no MyCloud stacks found, pass --stack-name")
            for i, stack in enumerate(stacks, 1):
                click.echo(f"  {i}. {stack['name']} ({stack['status']})")
            choice = click.prompt(
                "Which stack?", type=click.IntRange(1, len(stacks)), default=1
            )
            stack_name = stacks[choice - 1]["name"]

        config = coordinator.init(
            {
                "overwrite": overwrite,
                "stack_name": stack_name,
                "profile": profile,
                "region": region,
                "project": project,
            }
        )
        if config is None:
            click.echo("Keeping existing settings")
            return

        echo_result(config.to_dict())
    except Exception as e:
        fail(e)
