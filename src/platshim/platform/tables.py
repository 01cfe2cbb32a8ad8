"""
Command and flag tables.

Maps logical commands to resolved binaries and semantic flag keys to the
literal flag strings of each binary's dialect. Flag strings are kept as the
shell would read them (``"-i ''"``) and split into argv tokens at execution
time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from platshim.log import get_logger
from platshim.platform import proc
from platshim.platform.detect import PlatformProfile, Variant, classify_binary
from platshim.platform.resolver import find_command

logger = get_logger(__name__)

Runner = Callable[..., proc.ProcessResult]
Which = Callable[[str], Optional[str]]


class CommandKey(str, Enum):
    """Logical command names."""

    STAT = "stat"
    DATE = "date"
    SED = "sed"
    BASE64 = "base64"
    FIND = "find"
    XARGS = "xargs"
    GREP = "grep"
    AWK = "awk"
    READLINK = "readlink"
    TAR = "tar"
    MKTEMP = "mktemp"
    TIMEOUT = "timeout"


class FlagKey(str, Enum):
    """Semantic flag keys, named ``<command>_<meaning>``."""

    STAT_SIZE = "stat_size"
    STAT_MTIME = "stat_mtime"
    STAT_ATIME = "stat_atime"
    STAT_CTIME = "stat_ctime"
    STAT_MODE = "stat_mode"
    DATE_ISO8601 = "date_iso8601"
    DATE_EPOCH = "date_epoch"
    DATE_RFC3339 = "date_rfc3339"
    SED_INPLACE = "sed_inplace"
    SED_EXTENDED = "sed_extended"
    READLINK_CANONICAL = "readlink_canonical"
    FIND_MINDEPTH = "find_mindepth"
    FIND_MAXDEPTH = "find_maxdepth"
    TAR_CREATE = "tar_create"
    TAR_EXTRACT = "tar_extract"
    TAR_LIST = "tar_list"

    @property
    def command(self) -> CommandKey:
        """The logical command this flag belongs to."""
        return CommandKey(self.value.split("_", 1)[0])


CRITICAL_COMMANDS: Tuple[CommandKey, ...] = (
    CommandKey.STAT,
    CommandKey.DATE,
    CommandKey.SED,
    CommandKey.FIND,
    CommandKey.GREP,
    CommandKey.AWK,
)

# GNU builds installed next to a BSD userland (Homebrew coreutils & co.)
GNU_ALTERNATES: Dict[CommandKey, Tuple[str, ...]] = {
    CommandKey.STAT: ("gstat",),
    CommandKey.DATE: ("gdate",),
    CommandKey.SED: ("gsed",),
    CommandKey.BASE64: ("gbase64",),
    CommandKey.FIND: ("gfind",),
    CommandKey.XARGS: ("gxargs",),
    CommandKey.GREP: ("ggrep",),
    CommandKey.AWK: ("gawk",),
    CommandKey.READLINK: ("greadlink",),
    CommandKey.TAR: ("gtar",),
    CommandKey.MKTEMP: (),
    CommandKey.TIMEOUT: ("gtimeout",),
}

FlagSet = Dict[CommandKey, Dict[FlagKey, str]]

_COMMON_FIND = {FlagKey.FIND_MINDEPTH: "-mindepth", FlagKey.FIND_MAXDEPTH: "-maxdepth"}
_COMMON_TAR = {FlagKey.TAR_CREATE: "-czf", FlagKey.TAR_EXTRACT: "-xzf", FlagKey.TAR_LIST: "-tzf"}

GNU_FLAGS: FlagSet = {
    CommandKey.STAT: {
        FlagKey.STAT_SIZE: "-c%s",
        FlagKey.STAT_MTIME: "-c%Y",
        FlagKey.STAT_ATIME: "-c%X",
        FlagKey.STAT_CTIME: "-c%Z",
        FlagKey.STAT_MODE: "-c%a",
    },
    CommandKey.DATE: {
        FlagKey.DATE_ISO8601: "-Iseconds",
        FlagKey.DATE_EPOCH: "+%s",
        FlagKey.DATE_RFC3339: "--rfc-3339=seconds",
    },
    CommandKey.SED: {FlagKey.SED_INPLACE: "-i", FlagKey.SED_EXTENDED: "-E"},
    CommandKey.READLINK: {FlagKey.READLINK_CANONICAL: "-f"},
    CommandKey.FIND: dict(_COMMON_FIND),
    CommandKey.TAR: dict(_COMMON_TAR),
}

BSD_FLAGS: FlagSet = {
    CommandKey.STAT: {
        FlagKey.STAT_SIZE: "-f%z",
        FlagKey.STAT_MTIME: "-f%m",
        FlagKey.STAT_ATIME: "-f%a",
        FlagKey.STAT_CTIME: "-f%c",
        FlagKey.STAT_MODE: "-f%p",
    },
    CommandKey.DATE: {
        FlagKey.DATE_ISO8601: "-u +%Y-%m-%dT%H:%M:%S%z",
        FlagKey.DATE_EPOCH: "+%s",
        FlagKey.DATE_RFC3339: "-u '+%Y-%m-%d %H:%M:%S%z'",
    },
    # The empty suffix argument is mandatory; without it the next token
    # is taken as the backup suffix.
    CommandKey.SED: {FlagKey.SED_INPLACE: "-i ''", FlagKey.SED_EXTENDED: "-E"},
    # No readlink -f equivalent
    CommandKey.READLINK: {},
    CommandKey.FIND: dict(_COMMON_FIND),
    CommandKey.TAR: dict(_COMMON_TAR),
}

BUSYBOX_FLAGS: FlagSet = {
    CommandKey.STAT: {
        FlagKey.STAT_SIZE: "-c%s",
        FlagKey.STAT_MTIME: "-c%Y",
        FlagKey.STAT_MODE: "-c%a",
    },
    CommandKey.DATE: {
        FlagKey.DATE_EPOCH: "+%s",
        FlagKey.DATE_ISO8601: "+%Y-%m-%dT%H:%M:%S%z",
    },
    CommandKey.SED: {FlagKey.SED_INPLACE: "-i", FlagKey.SED_EXTENDED: "-E"},
    CommandKey.READLINK: {FlagKey.READLINK_CANONICAL: "-f"},
    CommandKey.FIND: dict(_COMMON_FIND),
    CommandKey.TAR: dict(_COMMON_TAR),
}


def flag_set_for(dialect: Variant) -> FlagSet:
    """Return the flag set matching a binary's dialect."""
    if dialect is Variant.BSD:
        return BSD_FLAGS
    if dialect is Variant.BUSYBOX:
        return BUSYBOX_FLAGS
    if dialect in (Variant.GNU, Variant.SOLARIS, Variant.UNKNOWN):
        return GNU_FLAGS
    raise ValueError(f"Unhandled dialect: {dialect!r}")


@dataclass(frozen=True)
class TableBuild:
    """Outcome of one table construction."""

    commands: Mapping[CommandKey, str]
    flags: Mapping[FlagKey, str]
    dialects: Mapping[CommandKey, Variant]
    missing_critical: Tuple[CommandKey, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return not self.missing_critical


def _dialect_on_probing_host(variant: Variant, classified: Variant) -> Variant:
    """Decide a binary's dialect on a host whose variant needs per-binary probes."""
    if classified in (Variant.GNU, Variant.BUSYBOX):
        return classified
    if variant is Variant.BSD:
        # Anything that is not GNU on a BSD host speaks BSD flags
        return Variant.BSD
    if classified is Variant.BSD:
        return Variant.BSD
    logger.debug("Dialect inconclusive on %s host; assuming gnu", variant.value)
    return Variant.GNU


def _resolve(
    key: CommandKey,
    which: Which,
    alternates: Sequence[str],
    overrides: Mapping[str, str],
) -> Tuple[str, bool]:
    """Resolve one command; returns (path, pinned_by_override)."""
    pinned = overrides.get(key.value)
    if pinned:
        path = which(pinned)
        if path:
            return path, True
        logger.warning("Configured binary for %s not found: %s", key.value, pinned)
    return find_command(key.value, alternates, which=which) or "", False


def build_tables(
    profile: PlatformProfile,
    which: Optional[Which] = None,
    runner: Optional[Runner] = None,
    overrides: Optional[Mapping[str, str]] = None,
    extra_alternates: Optional[Mapping[str, Iterable[str]]] = None,
) -> TableBuild:
    """
    Populate the command, flag and dialect tables for a profile.

    GNU and BusyBox hosts resolve every command by name and trust the
    detected variant. BSD hosts try the g-prefixed GNU builds first and then
    classify each resolved binary, since a BSD host can carry GNU tools under
    plain names. Solaris and unknown hosts get the same probing treatment
    after a warning.

    Tables are returned even when a critical command is missing.
    """
    which = which or proc.which
    overrides = overrides or {}
    extra_alternates = extra_alternates or {}
    variant = profile.variant

    probing = variant not in (Variant.GNU, Variant.BUSYBOX)
    if variant in (Variant.SOLARIS, Variant.UNKNOWN):
        logger.warning(
            "No dedicated command table for variant %s on %s; probing binaries",
            variant.value,
            profile.os.value,
        )

    commands: Dict[CommandKey, str] = {}
    dialects: Dict[CommandKey, Variant] = {}

    for key in CommandKey:
        alternates = list(extra_alternates.get(key.value, ()))
        if probing:
            alternates += list(GNU_ALTERNATES[key])

        path, pinned = _resolve(key, which, alternates, overrides)
        commands[key] = path

        if probing or pinned:
            classified = classify_binary(path, runner) if path else Variant.UNKNOWN
            if probing:
                dialects[key] = _dialect_on_probing_host(variant, classified)
            else:
                dialects[key] = classified if classified is not Variant.UNKNOWN else variant
        else:
            dialects[key] = variant

    flags: Dict[FlagKey, str] = {}
    for key, dialect in dialects.items():
        flags.update(flag_set_for(dialect).get(key, {}))

    if FlagKey.READLINK_CANONICAL not in flags:
        logger.warning("readlink has no -f here; canonical paths will use a fallback")
    if not commands[CommandKey.TIMEOUT]:
        logger.warning("timeout not found; bounded execution will use a watchdog")

    missing = tuple(key for key in CRITICAL_COMMANDS if not commands[key])
    for key in missing:
        logger.error("Critical command not found: %s", key.value)

    return TableBuild(
        commands=MappingProxyType(commands),
        flags=MappingProxyType(flags),
        dialects=MappingProxyType(dialects),
        missing_critical=missing,
    )
