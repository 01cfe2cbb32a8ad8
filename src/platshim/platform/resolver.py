"""
Command resolution.

Finds the best available binary for a logical command name. On BSD and
macOS hosts GNU tools are usually installed with a ``g`` prefix (``gsed``,
``gstat``), so callers pass those as preferred alternates.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Union

from platshim.errors import UsageError
from platshim.log import get_logger
from platshim.platform import proc

logger = get_logger(__name__)

Which = Callable[[str], Optional[str]]


def split_alternates(preferred: Union[str, Iterable[str], None]) -> list[str]:
    """Normalize ``"gsed gnu-sed"`` or ``["gsed", "gnu-sed"]`` to a list."""
    if not preferred:
        return []
    if isinstance(preferred, str):
        return preferred.split()
    return [name for name in preferred if name]


def find_command(
    logical_name: str,
    preferred: Union[str, Iterable[str], None] = None,
    which: Optional[Which] = None,
) -> Optional[str]:
    """
    Find the best available version of a command.

    Args:
        logical_name: Command name to fall back to, e.g. "sed"
        preferred: Alternates tried first, in order (e.g. "gsed")
        which: PATH lookup function (default: shutil.which)

    Returns:
        Full path of the first hit, or None when nothing resolves.
    """
    if not logical_name:
        raise UsageError("find_command requires a command name")

    which = which or proc.which

    for name in split_alternates(preferred) + [logical_name]:
        path = which(name)
        if path:
            return path

    logger.debug("Command not found: %s", logical_name)
    return None
