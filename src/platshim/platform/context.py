"""
Platform context.

A PlatformContext owns one detector and the command/flag/dialect tables
built from it. Operations receive a context explicitly; callers that do not
care use the process-wide default from get_context().
"""

from __future__ import annotations

import shlex
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from platshim.config import PlatshimConfig, get_config
from platshim.errors import ConfigurationError, ResolutionFailure
from platshim.log import get_logger
from platshim.platform import proc
from platshim.platform.detect import Detector, PlatformProfile, Variant, get_detector
from platshim.platform.tables import (
    CommandKey,
    FlagKey,
    TableBuild,
    build_tables,
)

logger = get_logger(__name__)

Runner = Callable[..., proc.ProcessResult]
Which = Callable[[str], Optional[str]]

_EMPTY: Mapping[Any, Any] = MappingProxyType({})


class PlatformContext:
    """
    Detected platform plus resolved command tables.

    Tables are built lazily by setup_commands() and are read-only once
    published.
    """

    def __init__(
        self,
        detector: Optional[Detector] = None,
        which: Optional[Which] = None,
        runner: Optional[Runner] = None,
        config: Optional[PlatshimConfig] = None,
    ):
        self._which = which or proc.which
        self._runner = runner or proc.run
        if detector is None:
            # Host detection is shared unless the probes are injected
            if which is None and runner is None:
                detector = get_detector()
            else:
                detector = Detector(runner=self._runner, which=self._which)
        self.detector = detector
        self._config = config
        self._initialized = False
        self._build: Optional[TableBuild] = None

    @property
    def config(self) -> PlatshimConfig:
        return self._config if self._config is not None else get_config()

    @property
    def profile(self) -> PlatformProfile:
        return self.detector.profile()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def commands(self) -> Mapping[CommandKey, str]:
        return self._build.commands if self._build else _EMPTY

    @property
    def flags(self) -> Mapping[FlagKey, str]:
        return self._build.flags if self._build else _EMPTY

    @property
    def dialects(self) -> Mapping[CommandKey, Variant]:
        return self._build.dialects if self._build else _EMPTY

    @property
    def missing_critical(self) -> List[CommandKey]:
        return list(self._build.missing_critical) if self._build else []

    def setup_commands(self) -> bool:
        """
        Build the command and flag tables once.

        Returns True when every critical command resolved. A failed build
        still publishes its partial tables and is retried on the next call.
        """
        # Both halves of the gate are required: a set flag over an empty
        # table means the tables were never populated in this context.
        if self._initialized and len(self.commands) > 0:
            return True

        profile = self.profile
        build = build_tables(
            profile,
            which=self._which,
            runner=self._runner,
            overrides=self.config.commands,
            extra_alternates=self.config.alternates,
        )
        self._build = build

        if build.ok:
            self._initialized = True
            logger.passed("Platform commands initialized for %s", profile.variant.value)
        else:
            logger.failed("Platform initialization failed")
        return build.ok

    def ensure_ready(self) -> None:
        """Build the tables, raising if a critical command is missing."""
        if not self.setup_commands():
            raise ResolutionFailure(
                [key.value for key in self.missing_critical],
                details="critical commands are required by every operation",
            )

    def command(self, key: Union[CommandKey, str]) -> str:
        """Resolved binary for a logical command ("" when unresolved)."""
        return self.commands.get(_command_key(key), "")

    def require_command(self, key: Union[CommandKey, str]) -> str:
        """Resolved binary for a logical command, raising if unresolved."""
        path = self.command(key)
        if not path:
            raise ResolutionFailure(_command_key(key).value)
        return path

    def flag(self, key: Union[FlagKey, str]) -> str:
        """
        Literal flag string for a semantic key ("" when the dialect has none).

        Raises:
            ConfigurationError: If the key is not a known flag name
        """
        return self.flags.get(flag_key(key), "")

    def flag_args(self, key: Union[FlagKey, str]) -> List[str]:
        """Flag string split into argv tokens, ``"-i ''"`` -> ``["-i", ""]``."""
        return shlex.split(self.flag(key))

    def dialect(self, key: Union[CommandKey, str]) -> Variant:
        """Dialect of the resolved binary for a logical command."""
        return self.dialects.get(_command_key(key), self.profile.variant)

    def which(self, name: str) -> Optional[str]:
        return self._which(name)

    def run(self, argv: Sequence[str], **kwargs: Any) -> proc.ProcessResult:
        return self._runner(list(argv), **kwargs)


def flag_key(key: Union[FlagKey, str]) -> FlagKey:
    """Validate a semantic flag name."""
    if isinstance(key, FlagKey):
        return key
    try:
        return FlagKey(key)
    except ValueError:
        raise ConfigurationError(f"Unknown flag key: {key}", key=str(key)) from None


def _command_key(key: Union[CommandKey, str]) -> CommandKey:
    if isinstance(key, CommandKey):
        return key
    try:
        return CommandKey(key)
    except ValueError:
        raise ConfigurationError(f"Unknown logical command: {key}", key=str(key)) from None


# Process-wide default context
_context: Optional[PlatformContext] = None


def get_context() -> PlatformContext:
    """Get the default context, creating it on first use."""
    global _context
    if _context is None:
        _context = PlatformContext()
    return _context


def set_context(context: PlatformContext) -> None:
    """Replace the default context."""
    global _context
    _context = context


def reset_context() -> None:
    """Drop the default context; the next get_context() builds a fresh one."""
    global _context
    _context = None


def setup_commands(ctx: Optional[PlatformContext] = None) -> bool:
    """Build the tables of ``ctx`` (default context when omitted)."""
    return (ctx or get_context()).setup_commands()
