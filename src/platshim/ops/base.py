"""
Platshim Operation Helpers

Shared plumbing for the abstracted operations: argument checks, context
lookup, process execution with normalized results, privilege wrapping.
"""

import subprocess
from typing import Any, List, Optional, Sequence

from platshim.errors import ExecutionFailure, ResolutionFailure, UsageError
from platshim.log import get_logger
from platshim.platform import proc
from platshim.platform.context import PlatformContext, get_context
from platshim.results import OpResult

logger = get_logger(__name__)


def resolve_context(ctx: Optional[PlatformContext]) -> PlatformContext:
    """Return ``ctx`` or the process-wide default context."""
    return ctx if ctx is not None else get_context()


def require_args(operation: str, usage: str, *values: Any) -> None:
    """
    Raise UsageError if any required argument is empty.

    Zero is a valid value (epoch 0), so only None and empty strings count
    as missing.
    """
    for value in values:
        if value is None or (isinstance(value, str) and not value):
            raise UsageError(f"Usage: {usage}", details=f"{operation}: missing required argument")


def execute(
    ctx: PlatformContext,
    operation: str,
    argv: Sequence[str],
    strip: bool = True,
    **kwargs: Any,
) -> OpResult:
    """
    Run ``argv`` and wrap the outcome in an OpResult.

    Nonzero exits become failed results carrying an ExecutionFailure; a
    program that vanished from disk becomes a ResolutionFailure.
    """
    try:
        result = ctx.run(argv, **kwargs)
    except FileNotFoundError as e:
        return OpResult.failure(operation, str(e), error=ResolutionFailure(argv[0]), rc=127)
    except subprocess.TimeoutExpired as e:
        return OpResult.failure(
            operation,
            f"{argv[0]} did not finish within {e.timeout}s",
            error=ExecutionFailure(argv, 124, "timed out"),
            rc=124,
        )

    output = result.output if strip else result.stdout
    if result.failed:
        error = ExecutionFailure(argv, result.returncode, result.stderr)
        logger.debug("%s: %s", operation, error)
        return OpResult.failure(
            operation,
            f"{operation} failed",
            error=error,
            rc=result.returncode,
            output=output,
        )
    return OpResult.success(operation, output)


def wrap_privileged(ctx: PlatformContext, argv: Sequence[str]) -> List[str]:
    """Prefix ``argv`` with sudo when not root and sudo is enabled and available."""
    argv = list(argv)
    if proc.is_root() or not ctx.config.use_sudo:
        return argv
    sudo = ctx.which("sudo")
    if not sudo:
        return argv
    # -n: never prompt, fail instead
    return [sudo, "-n"] + argv
