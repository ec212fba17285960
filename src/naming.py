"""
Naming convention utilities for MyCloud stacks.

Primary stacks are named ``tdl-<org>-ltd-<stage>``. The optional companion
services stack derives its name from ``<org>`` and must stay within 20
characters.
"""

import hashlib
import re
from typing import Tuple

from errors import InvalidInput

STACK_NAME_PATTERN = re.compile(r"^tdl-(.*?)-ltd-([a-zA-Z]+)$")

SERVICES_STACK_SUFFIX = "-srvcs"
SERVICES_STACK_ORG_MAX_LENGTH = 14
HASH_LENGTH = 6


def sha256(value: str) -> str:
    """Hex SHA-256 digest of a string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def shorten(value: str, max_length: int) -> str:
    """
    Shorten a string to ``max_length``, keeping it unique with a hash suffix.

    Args:
        value: String to shorten
        max_length: Maximum length of the result

    Returns:
        ``value`` unchanged if it fits, else its prefix plus 6 hash characters

    Raises:
        ValueError: If ``value`` is too short to carry a hash suffix
    """
    if len(value) <= max_length:
        return value

    if len(value) < HASH_LENGTH:
        raise ValueError(f"string is too short: {value}")

    return value[: max_length - HASH_LENGTH] + sha256(value)[:HASH_LENGTH]


def is_mycloud_stack_name(name: str) -> bool:
    """Check if a name follows the primary stack naming convention."""
    return bool(STACK_NAME_PATTERN.match(name))


def parse_stack_name(name: str) -> Tuple[str, str]:
    """
    Parse a primary stack name.

    Returns:
        Tuple of (org, stage)

    Raises:
        InvalidInput: If the name doesn't follow the convention
    """
    match = STACK_NAME_PATTERN.match(name or "")
    if not match:
        raise InvalidInput(f"invalid stack name: {name}")
    return match.group(1), match.group(2)


def get_services_stack_name(stack_name: str) -> str:
    """Get the companion services stack name (max length 20 chars)."""
    org, _ = parse_stack_name(stack_name)
    return f"{shorten(org, SERVICES_STACK_ORG_MAX_LENGTH)}{SERVICES_STACK_SUFFIX}"


def get_long_function_name(stack_name: str, function_name: str) -> str:
    """Prefix a function name with the stack name, unless already prefixed."""
    if function_name.startswith(stack_name):
        return function_name
    return f"{stack_name}-{function_name}"


def get_short_function_name(stack_name: str, function_name: str) -> str:
    """Strip the stack name prefix from a function name."""
    prefix = f"{stack_name}-"
    if function_name.startswith(prefix):
        return function_name[len(prefix):]
    return function_name


def get_console_link(region: str, status: str = "active") -> str:
    """Get the CloudFormation console link for stacks in a region."""
    return (
        f"https://{region}.console.aws.amazon.com/cloudformation/home"
        f"?region={region}#/stacks?filter={status}"
    )
