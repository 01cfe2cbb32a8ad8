"""
Date formatting across GNU, BusyBox and BSD ``date``.

GNU and BusyBox render a given instant with ``-d @EPOCH``; BSD uses
``-r EPOCH``. The named presets map to different flag strings per dialect.
"""

from typing import List, Optional, Union

from platshim.errors import UsageError
from platshim.ops.base import execute, require_args, resolve_context
from platshim.platform.context import PlatformContext
from platshim.platform.detect import Variant
from platshim.platform.tables import CommandKey, FlagKey
from platshim.results import OpResult

DATE_PRESETS = {
    "iso8601": FlagKey.DATE_ISO8601,
    "epoch": FlagKey.DATE_EPOCH,
    "rfc3339": FlagKey.DATE_RFC3339,
}

FROM_EPOCH = "from_epoch"

Epoch = Union[int, str]


def _parse_epoch(epoch: Epoch) -> int:
    try:
        return int(str(epoch).strip())
    except ValueError:
        raise UsageError(f"Epoch seconds must be an integer, got {epoch!r}") from None


def _epoch_args(ctx: PlatformContext, epoch: int) -> List[str]:
    if ctx.dialect(CommandKey.DATE) is Variant.BSD:
        return ["-r", str(epoch)]
    return ["-d", f"@{epoch}"]


def date(
    fmt: str,
    epoch: Optional[Epoch] = None,
    ctx: Optional[PlatformContext] = None,
) -> OpResult:
    """
    Format a date.

    Args:
        fmt: A preset (iso8601, epoch, rfc3339), ``from_epoch``, or a raw
            ``date`` pattern such as ``+%Y-%m-%d``
        epoch: Seconds since the epoch to render instead of now; required
            for ``from_epoch``
        ctx: Platform context (default context when omitted)
    """
    require_args("date", "date(<format>, [epoch])", fmt)

    seconds = _parse_epoch(epoch) if epoch is not None and epoch != "" else None

    ctx = resolve_context(ctx)
    ctx.ensure_ready()
    date_cmd = ctx.require_command(CommandKey.DATE)

    if fmt == FROM_EPOCH:
        if seconds is None:
            raise UsageError("from_epoch requires epoch seconds")
        return execute(ctx, "date", [date_cmd, *_epoch_args(ctx, seconds)])

    if fmt in DATE_PRESETS:
        args = ctx.flag_args(DATE_PRESETS[fmt])
        if not args:
            return OpResult.unsupported(
                "date", ctx.profile.os.value, msg=f"date preset '{fmt}' has no flag for this date"
            )
    else:
        args = [fmt]

    argv = [date_cmd]
    if seconds is not None:
        argv += _epoch_args(ctx, seconds)
    argv += args
    return execute(ctx, "date", argv)
