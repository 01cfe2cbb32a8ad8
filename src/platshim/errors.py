# Copyright (c) 2025 Platshim Contributors
# MIT License

"""
Platshim Error Classes.

All custom exceptions for clear error handling and exit codes.
Detection never raises; operations carry these on their OpResult and the
CLI maps them to process exit codes.
"""

from __future__ import annotations

import enum
from typing import Sequence


class ExitCode(enum.IntEnum):
    """Exit codes used by the platshim CLI."""

    SUCCESS = 0
    GENERIC_ERROR = 1
    USAGE_ERROR = 2
    CONFIG_ERROR = 3
    UNSUPPORTED_PLATFORM = 4
    KEYBOARD_INTERRUPT = 130


class PlatshimError(Exception):
    """Base exception for all platshim errors."""

    exit_code: int = ExitCode.GENERIC_ERROR

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n  Details: {self.details}"
        return self.message


class UsageError(PlatshimError):
    """A required argument was missing or malformed."""

    exit_code: int = ExitCode.USAGE_ERROR


class ConfigurationError(PlatshimError):
    """Unknown semantic key requested, or a bad configuration file."""

    exit_code: int = ExitCode.CONFIG_ERROR

    def __init__(self, message: str, key: str | None = None, details: str | None = None) -> None:
        self.key = key
        super().__init__(message, details)


class ResolutionFailure(PlatshimError):
    """No binary could be found for a logical command."""

    def __init__(self, command: str | Sequence[str], details: str | None = None) -> None:
        if isinstance(command, str):
            self.commands = [command]
        else:
            self.commands = list(command)
        names = ", ".join(self.commands)
        label = "command" if len(self.commands) == 1 else "commands"
        super().__init__(f"No binary found for {label}: {names}", details)


class PlatformUnsupported(PlatshimError):
    """No implementation strategy exists for this operation on this host."""

    exit_code: int = ExitCode.UNSUPPORTED_PLATFORM

    def __init__(self, operation: str, os_name: str, suggestion: str | None = None) -> None:
        self.operation = operation
        self.os_name = os_name
        msg = f"{operation} is not supported on {os_name}"
        if suggestion:
            msg += f"\n  Suggestion: {suggestion}"
        super().__init__(msg)


class ExecutionFailure(PlatshimError):
    """A resolved binary ran but returned a nonzero exit status."""

    def __init__(
        self,
        argv: Sequence[str],
        rc: int,
        stderr: str | None = None,
    ) -> None:
        self.argv = list(argv)
        self.rc = rc
        self.stderr = stderr

        details_parts = [f"rc={rc}"]
        if stderr:
            details_parts.append(f"stderr: {stderr.strip()[:200]}")

        program = self.argv[0] if self.argv else "<empty>"
        super().__init__(f"'{program}' failed", "; ".join(details_parts))


class EnvironmentAmbiguous(PlatshimError):
    """The userland variant could not be decided from the probes."""

    def __init__(self, probe: str, output: str | None = None) -> None:
        self.probe = probe
        self.output = output
        details = None
        if output:
            first_line = output.strip().splitlines()[0] if output.strip() else ""
            details = f"first line: {first_line[:120]}"
        super().__init__(f"Inconclusive variant probe: {probe}", details)
