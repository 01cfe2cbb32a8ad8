"""
OS family and userland variant detection.

The OS family comes from the kernel name (``uname -s``), refined to WSL by
looking for "microsoft"/"wsl" in the kernel release and version text. The
variant is the flavor of the installed core utilities, which on Linux has to
be probed from ``stat --version``.

Detection never raises: anything unrecognized maps to ``unknown``.
"""

from __future__ import annotations

import platform as _platform
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

from platshim.errors import EnvironmentAmbiguous
from platshim.log import get_logger
from platshim.platform import proc

logger = get_logger(__name__)

Runner = Callable[..., proc.ProcessResult]
Which = Callable[[str], Optional[str]]
UnameProbe = Callable[[], Tuple[str, str, str]]

PROBE_TIMEOUT = 5.0


class OSFamily(str, Enum):
    """Host operating system family."""

    LINUX = "linux"
    MACOS = "macos"
    WSL = "wsl"
    FREEBSD = "freebsd"
    OPENBSD = "openbsd"
    NETBSD = "netbsd"
    SOLARIS = "solaris"
    WINDOWS = "windows"
    UNKNOWN = "unknown"

    @property
    def is_bsd(self) -> bool:
        """True for the BSD family proper (macOS excluded)."""
        return self in (OSFamily.FREEBSD, OSFamily.OPENBSD, OSFamily.NETBSD)

    @property
    def is_linux(self) -> bool:
        return self in (OSFamily.LINUX, OSFamily.WSL)


class Variant(str, Enum):
    """Installed core-utility flavor, independent of the OS family."""

    GNU = "gnu"
    BSD = "bsd"
    BUSYBOX = "busybox"
    SOLARIS = "solaris"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PlatformProfile:
    """Detected OS family and variant."""

    os: OSFamily
    variant: Variant

    def __str__(self) -> str:
        return f"{self.os.value} ({self.variant.value})"


_KERNEL_PREFIXES = (
    ("Darwin", OSFamily.MACOS),
    ("FreeBSD", OSFamily.FREEBSD),
    ("OpenBSD", OSFamily.OPENBSD),
    ("NetBSD", OSFamily.NETBSD),
    ("SunOS", OSFamily.SOLARIS),
    ("CYGWIN", OSFamily.WINDOWS),
    ("MINGW", OSFamily.WINDOWS),
    ("MSYS", OSFamily.WINDOWS),
    ("Windows", OSFamily.WINDOWS),
)

_WSL_MARKER = re.compile(r"microsoft|wsl", re.IGNORECASE)
_BSD_MARKER = re.compile(r"illegal option|unknown option|^usage:", re.IGNORECASE | re.MULTILINE)


def classify_os(system: str, kernel_text: str = "") -> OSFamily:
    """
    Classify the kernel name reported by ``uname -s``.

    Args:
        system: Kernel name, e.g. "Linux", "Darwin", "MINGW64_NT-10.0"
        kernel_text: Kernel release/version text, consulted for WSL only
    """
    system = (system or "").strip()
    if system.startswith("Linux"):
        if _WSL_MARKER.search(kernel_text or ""):
            return OSFamily.WSL
        return OSFamily.LINUX
    for prefix, family in _KERNEL_PREFIXES:
        if system.startswith(prefix):
            return family
    return OSFamily.UNKNOWN


def classify_version_text(text: str) -> Variant:
    """
    Classify the output of ``<tool> --version``.

    GNU tools name themselves; BusyBox applets print a BusyBox banner; BSD
    tools reject ``--version`` with a usage line.
    """
    if not text:
        return Variant.UNKNOWN
    if "GNU" in text:
        return Variant.GNU
    if "busybox" in text.lower():
        return Variant.BUSYBOX
    if _BSD_MARKER.search(text):
        return Variant.BSD
    return Variant.UNKNOWN


def probe_version_text(path: str, runner: Optional[Runner] = None) -> str:
    """Return stdout+stderr of ``<path> --version``, or "" if it cannot run."""
    runner = runner or proc.run
    try:
        result = runner([path, "--version"], timeout=PROBE_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Version probe of %s failed: %s", path, e)
        return ""
    return result.combined


def classify_binary(path: str, runner: Optional[Runner] = None) -> Variant:
    """Classify the dialect of the binary at ``path``."""
    if not path:
        return Variant.UNKNOWN
    return classify_version_text(probe_version_text(path, runner))


def _default_uname() -> Tuple[str, str, str]:
    uname = _platform.uname()
    return uname.system, uname.release, uname.version


class Detector:
    """
    Cached OS/variant detection.

    Both answers are computed at most once per instance; there is no
    re-detection API.
    """

    def __init__(
        self,
        runner: Optional[Runner] = None,
        which: Optional[Which] = None,
        uname: Optional[UnameProbe] = None,
        proc_version: str = "/proc/version",
    ):
        self._runner = runner or proc.run
        self._which = which or proc.which
        self._uname = uname or _default_uname
        self._proc_version = proc_version
        self._os: Optional[OSFamily] = None
        self._variant: Optional[Variant] = None

    def _kernel_text(self, release: str, version: str) -> str:
        parts = [release, version]
        try:
            parts.append(Path(self._proc_version).read_text(encoding="utf-8", errors="replace"))
        except OSError:
            pass
        return " ".join(parts)

    def detect_os(self) -> OSFamily:
        """Detect the operating system family (cached)."""
        if self._os is not None:
            return self._os

        try:
            system, release, version = self._uname()
        except OSError as e:
            logger.debug("uname probe failed: %s", e)
            system, release, version = "", "", ""

        kernel_text = ""
        if system.startswith("Linux"):
            kernel_text = self._kernel_text(release, version)

        self._os = classify_os(system, kernel_text)
        logger.debug("Detected OS: %s", self._os.value)
        return self._os

    def _probe_linux_variant(self) -> Variant:
        stat_path = self._which("stat")
        if not stat_path:
            raise EnvironmentAmbiguous("stat --version", "stat not found on PATH")

        text = probe_version_text(stat_path, self._runner)
        variant = classify_version_text(text)
        if variant in (Variant.GNU, Variant.BUSYBOX):
            return variant
        raise EnvironmentAmbiguous(f"{stat_path} --version", text)

    def detect_variant(self) -> Variant:
        """Detect the userland variant (cached)."""
        if self._variant is not None:
            return self._variant

        os_family = self.detect_os()

        if os_family is OSFamily.MACOS or os_family.is_bsd:
            variant = Variant.BSD
        elif os_family.is_linux:
            try:
                variant = self._probe_linux_variant()
            except EnvironmentAmbiguous as e:
                # GNU tools are the common superset on Linux
                logger.debug("%s; assuming gnu", e)
                variant = Variant.GNU
        elif os_family is OSFamily.SOLARIS:
            variant = Variant.SOLARIS
        else:
            variant = Variant.UNKNOWN

        self._variant = variant
        logger.debug("Detected variant: %s", variant.value)
        return variant

    def profile(self) -> PlatformProfile:
        """Return the detected profile, detecting on first call."""
        return PlatformProfile(os=self.detect_os(), variant=self.detect_variant())


_detector = Detector()


def get_detector() -> Detector:
    """Get the process-wide default detector."""
    return _detector


def detect_os() -> OSFamily:
    """Detect the host OS family using the process-wide detector."""
    return _detector.detect_os()


def detect_variant() -> Variant:
    """Detect the host userland variant using the process-wide detector."""
    return _detector.detect_variant()
