"""
Platshim Configuration

Settings for command resolution and privileged operations, optionally
loaded from a YAML file.

Example file::

    log_level: debug
    use_sudo: false
    timeout_grace: 2
    commands:
      sed: /opt/homebrew/bin/gsed
    alternates:
      awk: [mawk, nawk]
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from platshim.errors import ConfigurationError


ENV_CONFIG_PATH = "PLATSHIM_CONFIG"


@dataclass
class PlatshimConfig:
    """
    Configuration for the platform layer.

    Attributes:
        log_level: Level name for the platshim logger (None = environment/default)
        use_sudo: Prefix privileged DNS/network commands with sudo when not root
        timeout_grace: Seconds between SIGTERM and SIGKILL in timeout emulation
        commands: Logical command name -> binary pinned by the user
        alternates: Logical command name -> extra preferred names, tried first
    """

    log_level: Optional[str] = None
    use_sudo: bool = True
    timeout_grace: float = 1.0
    commands: Dict[str, str] = field(default_factory=dict)
    alternates: Dict[str, List[str]] = field(default_factory=dict)


def _known_commands() -> set[str]:
    from platshim.platform.tables import CommandKey

    return {key.value for key in CommandKey}


def _check_command_names(section: str, mapping: Dict[str, Any]) -> None:
    unknown = sorted(set(mapping) - _known_commands())
    if unknown:
        raise ConfigurationError(
            f"Unknown logical command in '{section}': {', '.join(unknown)}",
            key=unknown[0],
        )


def config_from_dict(data: Dict[str, Any]) -> PlatshimConfig:
    """Build a PlatshimConfig from parsed YAML data."""
    known = {"log_level", "use_sudo", "timeout_grace", "commands", "alternates"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration key: {unknown[0]}", key=unknown[0])

    commands = data.get("commands") or {}
    alternates = data.get("alternates") or {}
    if not isinstance(commands, dict) or not isinstance(alternates, dict):
        raise ConfigurationError("'commands' and 'alternates' must be mappings")
    _check_command_names("commands", commands)
    _check_command_names("alternates", alternates)

    normalized_alternates: Dict[str, List[str]] = {}
    for name, value in alternates.items():
        if isinstance(value, str):
            normalized_alternates[name] = value.split()
        else:
            normalized_alternates[name] = [str(v) for v in value]

    try:
        grace = float(data.get("timeout_grace", 1.0))
    except (TypeError, ValueError) as e:
        raise ConfigurationError("'timeout_grace' must be a number", key="timeout_grace") from e
    if grace < 0:
        raise ConfigurationError("'timeout_grace' must not be negative", key="timeout_grace")

    log_level = data.get("log_level")
    return PlatshimConfig(
        log_level=str(log_level) if log_level is not None else None,
        use_sudo=bool(data.get("use_sudo", True)),
        timeout_grace=grace,
        commands={k: str(v) for k, v in commands.items()},
        alternates=normalized_alternates,
    )


def load_config(path: Optional[str] = None) -> PlatshimConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: File to read; defaults to $PLATSHIM_CONFIG. With neither set,
            the defaults are returned.

    Raises:
        ConfigurationError: If the file is missing, unparsable or has unknown keys
    """
    path = path or os.environ.get(ENV_CONFIG_PATH)
    if not path:
        return PlatshimConfig()

    config_file = Path(path)
    if not config_file.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}", details=str(e)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")
    return config_from_dict(data)


# Default configuration
_config = PlatshimConfig()


def get_config() -> PlatshimConfig:
    """Get the current configuration."""
    return _config


def set_config(config: PlatshimConfig) -> None:
    """Set the configuration."""
    global _config
    _config = config


def configure(**kwargs: Any) -> None:
    """Update individual settings on the current configuration."""
    for key, value in kwargs.items():
        if not hasattr(_config, key):
            raise ConfigurationError(f"Unknown configuration key: {key}", key=key)
        setattr(_config, key, value)
