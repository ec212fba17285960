"""
Configuration management for stack-console.

Handles the settings that select which stack to talk to, with which AWS
credentials, and whether commands run remotely or against a local emulator.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from constants import DEFAULT_SETTINGS_FILE
from errors import InvalidInput


@dataclass(frozen=True)
class ClientConfig:
    """Region and credential profile used to build provider clients."""

    region: Optional[str] = None
    profile: Optional[str] = None


def is_valid_project_path(project: Union[str, Path, None]) -> bool:
    """Check that a path points at a serverless project directory."""
    if not project:
        return False
    return (Path(project) / "serverless.yml").exists()


@dataclass
class ConsoleConfig:
    """Settings for one console session."""

    stack_name: Optional[str] = None
    profile: Optional[str] = None
    region: Optional[str] = None

    # Execution target
    local: Optional[bool] = None
    remote: Optional[bool] = None
    project: Optional[str] = None

    # Flags passed to node when invoking locally, e.g. {"inspect": True}
    node_flags: Dict[str, Any] = field(default_factory=dict)

    api_base_url: Optional[str] = None

    @property
    def client_config(self) -> ClientConfig:
        """Get the client factory key for this config."""
        return ClientConfig(region=self.region, profile=self.profile)

    def is_local(self) -> bool:
        """
        Decide whether commands target the local emulator.

        Raises:
            InvalidInput: If both targets are requested, or a local target
                lacks a valid project directory
        """
        if self.local and self.remote:
            raise InvalidInput('expected "local" or "remote" but not both')

        if self.local:
            if not self.project:
                raise InvalidInput(
                    'expected "project", the path to your local serverless project'
                )
            if not is_valid_project_path(self.project):
                raise InvalidInput(
                    'expected "project" to point to serverless project dir'
                )
            return True

        if isinstance(self.remote, bool):
            return not self.remote

        return bool(self.project)

    def normalize(self) -> "ConsoleConfig":
        """
        Return a copy with ``local`` resolved and node flags normalized.

        ``remote`` is left as given: an explicit ``remote=True`` is what lets
        remote invocations skip the confirmation prompt.
        """
        local = self.is_local()
        node_flags = dict(self.node_flags)
        if not node_flags.get("inspect") and (
            node_flags.get("debug") or node_flags.get("debug-brk")
        ):
            node_flags["inspect"] = True

        return replace(self, local=local, node_flags=node_flags)

    def require_stack_name(self) -> str:
        """Get the stack name or fail."""
        if not self.stack_name:
            raise InvalidInput('expected "stackName"')
        return self.stack_name

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary, dropping unset values."""
        return {
            k: v for k, v in self.__dict__.items()
            if v is not None and v != {}
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConsoleConfig":
        """Create config from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


# Environment variables that may supply settings, in priority order
ENVIRONMENT_KEYS: Dict[str, tuple] = {
    "stack_name": ("STACK_NAME", "stackName"),
    "profile": ("AWS_PROFILE", "awsProfile"),
    "region": ("AWS_REGION", "AWS_DEFAULT_REGION"),
    "project": ("PROJECT", "project"),
    "api_base_url": ("API_BASE_URL", "apiBaseUrl"),
}


def _from_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    values = {}
    for attr, names in ENVIRONMENT_KEYS.items():
        for name in names:
            if environ.get(name):
                values[attr] = environ[name]
                break
    return values


def load_console_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ConsoleConfig:
    """
    Load console settings.

    Values come from the YAML settings file, then environment variables,
    then explicit overrides. ``None`` overrides are ignored.

    Args:
        path: Settings file (defaults to ./.stack-console.yml)
        environ: Environment mapping (defaults to os.environ)
        **overrides: Explicit values, e.g. from CLI flags

    Returns:
        ConsoleConfig
    """
    settings_file = Path(path) if path else Path.cwd() / DEFAULT_SETTINGS_FILE
    data: Dict[str, Any] = {}

    if settings_file.exists():
        with open(settings_file, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise InvalidInput(f"expected a mapping in {settings_file}")
        data.update(loaded)

    data.update(_from_environment(os.environ if environ is None else environ))
    data.update({k: v for k, v in overrides.items() if v is not None})

    return ConsoleConfig.from_dict(data)


def save_console_config(
    config: ConsoleConfig, path: Optional[Union[str, Path]] = None
) -> Path:
    """Save console settings to the YAML settings file."""
    settings_file = Path(path) if path else Path.cwd() / DEFAULT_SETTINGS_FILE
    with open(settings_file, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False)
    return settings_file
