"""
File operations: stat, in-place sed, canonical paths, temp files, checksums.
"""

import os
from typing import Callable, Optional, Tuple, Union

from platshim.errors import ConfigurationError, ResolutionFailure
from platshim.log import get_logger
from platshim.ops.base import execute, require_args, resolve_context
from platshim.platform.context import PlatformContext, flag_key
from platshim.platform.tables import CommandKey, FlagKey
from platshim.results import OpResult

logger = get_logger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

STAT_FORMATS = ("size", "mtime", "atime", "ctime", "mode")

# Preferred tool first; BSD/macOS ship shasum and md5 instead of *sum
CHECKSUM_TOOLS = {
    "md5": (("md5sum",), ("md5", "-q")),
    "sha1": (("sha1sum",), ("shasum", "-a", "1")),
    "sha256": (("sha256sum",), ("shasum", "-a", "256")),
    "sha512": (("sha512sum",), ("shasum", "-a", "512")),
}


def _operand(path: str) -> str:
    """Keep a path that starts with a dash from being read as an option."""
    if path.startswith("-"):
        return os.path.join(".", path)
    return path


def _normalize_mode(raw: str) -> str:
    """Reduce ``100644`` (BSD %p) or ``644`` (GNU %a) to permission bits."""
    try:
        return format(int(raw, 8) & 0o7777, "o")
    except ValueError:
        return raw


def stat(fmt: str, path: PathLike, ctx: Optional[PlatformContext] = None) -> OpResult:
    """
    Get one file statistic as a scalar string.

    Args:
        fmt: One of size, mtime, atime, ctime, mode
        path: File to inspect
        ctx: Platform context (default context when omitted)
    """
    require_args("stat", "stat(<format>, <file>)", fmt, path)
    path = os.fspath(path)

    if not os.path.exists(path):
        return OpResult.failure("stat", f"File not found: {path}")

    ctx = resolve_context(ctx)
    ctx.ensure_ready()

    try:
        key = flag_key(f"stat_{fmt}")
    except ConfigurationError as e:
        return OpResult.failure("stat", f"Unknown stat format: {fmt}", error=e)

    flag = ctx.flag(key)
    if not flag:
        return OpResult.unsupported(
            "stat", ctx.profile.os.value, msg=f"stat format '{fmt}' has no flag for this stat"
        )

    stat_cmd = ctx.require_command(CommandKey.STAT)
    result = execute(ctx, "stat", [stat_cmd, *ctx.flag_args(key), _operand(path)])
    if result.ok and key is FlagKey.STAT_MODE:
        result.output = _normalize_mode(result.output)
    return result


def sed_inplace(expr: str, path: PathLike, ctx: Optional[PlatformContext] = None) -> OpResult:
    """
    Edit a file in place with a sed expression, leaving no backup behind.

    BSD sed takes the backup suffix as a separate, mandatory argument to
    ``-i``; the flag table carries it as ``-i ''``.
    """
    require_args("sed_inplace", "sed_inplace(<expression>, <file>)", expr, path)
    path = os.fspath(path)

    if not os.path.isfile(path):
        return OpResult.failure("sed_inplace", f"File not found: {path}")

    ctx = resolve_context(ctx)
    ctx.ensure_ready()

    sed = ctx.require_command(CommandKey.SED)
    inplace = ctx.flag_args(FlagKey.SED_INPLACE) or ["-i"]
    return execute(ctx, "sed_inplace", [sed, *inplace, "-e", expr, _operand(path)])


# Canonical path fallbacks for readlink without -f. Each returns None when
# its interpreter is not installed.

_PY_REALPATH = "import os, sys; print(os.path.realpath(sys.argv[1]))"
_PERL_ABS_PATH = "print Cwd::abs_path($ARGV[0])"
_SH_PWD = 'cd -- "$1" && pwd -P'


def _via_python(ctx: PlatformContext, path: str) -> Optional[OpResult]:
    python = ctx.which("python3")
    if not python:
        return None
    return execute(ctx, "readlink_canonical", [python, "-c", _PY_REALPATH, _operand(path)])


def _via_perl(ctx: PlatformContext, path: str) -> Optional[OpResult]:
    perl = ctx.which("perl")
    if not perl:
        return None
    return execute(ctx, "readlink_canonical", [perl, "-MCwd", "-e", _PERL_ABS_PATH, _operand(path)])


def _via_shell(ctx: PlatformContext, path: str) -> Optional[OpResult]:
    sh = ctx.which("sh")
    if not sh:
        return None

    if os.path.isdir(path):
        return execute(ctx, "readlink_canonical", [sh, "-c", _SH_PWD, "sh", path])

    trimmed = path.rstrip("/") or "/"
    parent = os.path.dirname(trimmed) or "."
    name = os.path.basename(trimmed)
    result = execute(ctx, "readlink_canonical", [sh, "-c", _SH_PWD, "sh", parent])
    if result.ok:
        result.output = result.output.rstrip("/") + "/" + name
    return result


_STRATEGIES: Tuple[Tuple[str, Callable[[PlatformContext, str], Optional[OpResult]]], ...] = (
    ("python3", _via_python),
    ("perl", _via_perl),
    ("sh", _via_shell),
)


def readlink_canonical(path: PathLike, ctx: Optional[PlatformContext] = None) -> OpResult:
    """
    Resolve a path to its absolute, symlink-free form.

    Works for a non-existent final component. Without a readlink that
    supports ``-f``, falls back to python3, then perl, then a ``cd && pwd``
    reconstruction; with none of them available the result is unsupported.
    """
    require_args("readlink_canonical", "readlink_canonical(<path>)", path)
    path = os.fspath(path)

    ctx = resolve_context(ctx)
    ctx.ensure_ready()

    readlink = ctx.command(CommandKey.READLINK)
    canonical = ctx.flag_args(FlagKey.READLINK_CANONICAL)
    if readlink and canonical:
        result = execute(ctx, "readlink_canonical", [readlink, *canonical, _operand(path)])
        result.data["strategy"] = "readlink"
        return result

    last_failure: Optional[OpResult] = None
    for name, strategy in _STRATEGIES:
        result = strategy(ctx, path)
        if result is None:
            continue
        if result.ok and result.output:
            result.data["strategy"] = name
            return result
        logger.debug("Canonical path via %s failed for %s", name, path)
        last_failure = result

    if last_failure is not None:
        return last_failure
    return OpResult.unsupported(
        "readlink_canonical",
        ctx.profile.os.value,
        msg="No canonical path strategy available (need greadlink, python3, perl or sh)",
    )


def mktemp(
    is_dir: bool = False,
    template: Optional[str] = None,
    ctx: Optional[PlatformContext] = None,
) -> OpResult:
    """Create a temporary file, or a directory with ``is_dir``, and return its path."""
    ctx = resolve_context(ctx)
    ctx.ensure_ready()

    mktemp_cmd = ctx.command(CommandKey.MKTEMP)
    if not mktemp_cmd:
        return OpResult.failure("mktemp", "mktemp not available", error=ResolutionFailure("mktemp"))

    argv = [mktemp_cmd]
    if is_dir:
        argv.append("-d")
    if template:
        argv.append(template)
    return execute(ctx, "mktemp", argv)


def checksum(algo: str, path: PathLike, ctx: Optional[PlatformContext] = None) -> OpResult:
    """
    Hex digest of a file with md5, sha1, sha256 or sha512.

    Raises:
        ConfigurationError: For any other algorithm
    """
    require_args("checksum", "checksum(<algorithm>, <file>)", algo, path)
    path = os.fspath(path)

    tools = CHECKSUM_TOOLS.get(algo.lower())
    if tools is None:
        raise ConfigurationError(
            f"Unknown checksum algorithm: {algo}",
            key=algo,
            details=f"supported: {', '.join(CHECKSUM_TOOLS)}",
        )

    if not os.path.isfile(path):
        return OpResult.failure("checksum", f"File not found: {path}")

    ctx = resolve_context(ctx)

    for program, *args in tools:
        binary = ctx.which(program)
        if not binary:
            continue
        result = execute(ctx, "checksum", [binary, *args, _operand(path)])
        if result.ok:
            fields = result.output.split()
            result.output = fields[0].lower() if fields else ""
            result.data["tool"] = program
        return result

    return OpResult.unsupported(
        "checksum",
        ctx.profile.os.value,
        msg=f"No {algo.upper()} command available",
    )
