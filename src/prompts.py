"""
Interactive confirmation prompts.
"""

from typing import Callable

import click

from errors import UserAborted

Confirm = Callable[[str], bool]


def confirm(message: str) -> bool:
    """Ask a yes/no question on the terminal."""
    return click.confirm(message, default=False)


def confirm_or_abort(message: str, ask: Confirm = confirm) -> None:
    """
    Ask for confirmation and abort if declined.

    Raises:
        UserAborted: If the user declines
    """
    if not ask(message):
        raise UserAborted()
