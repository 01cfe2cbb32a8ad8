"""Platshim logging with PASS and FAIL levels.

Extends the standard logging module with two extra severities used by the
platform layer and the self-test: PASS (a check succeeded) and FAIL (a check
failed). Records are single lines on stderr, colored when stderr is a TTY.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING, Final, cast

from yachalk import chalk

if TYPE_CHECKING:
    from collections.abc import Mapping

PASS_LEVEL: Final[int] = logging.INFO + 5
FAIL_LEVEL: Final[int] = logging.WARNING + 5

ENV_LOG_LEVEL: Final[str] = "PLATSHIM_LOG_LEVEL"


class PlatshimLogger(logging.Logger):
    """Logger with ``passed()`` and ``failed()`` helpers."""

    def passed(
        self,
        msg: object,
        *args: object,
        extra: Mapping[str, object] | None = None,
    ) -> None:
        """Log 'msg % args' with severity 'PASS'."""
        if self.isEnabledFor(PASS_LEVEL):
            self._log(PASS_LEVEL, msg=msg, args=args, extra=extra, stacklevel=2)

    def failed(
        self,
        msg: object,
        *args: object,
        extra: Mapping[str, object] | None = None,
    ) -> None:
        """Log 'msg % args' with severity 'FAIL'."""
        if self.isEnabledFor(FAIL_LEVEL):
            self._log(FAIL_LEVEL, msg=msg, args=args, extra=extra, stacklevel=2)


logging.addLevelName(PASS_LEVEL, "PASS")
logging.addLevelName(FAIL_LEVEL, "FAIL")

logging.setLoggerClass(PlatshimLogger)


# Fixed-width tags so every record lines up as "[INFO ] ..."
_TAGS: Final[dict[int, str]] = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO ",
    PASS_LEVEL: "PASS ",
    logging.WARNING: "WARN ",
    FAIL_LEVEL: "FAIL ",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}

LOG_FORMAT = "[%(tag)s] %(message)s"
DEBUG_LOG_FORMAT = "[%(tag)s] [%(name)s:%(lineno)d] %(message)s"


class TagFormatter(logging.Formatter):
    """Formatter emitting fixed-width level tags, optionally colored."""

    def __init__(self, fmt: str = LOG_FORMAT, color: bool = False) -> None:
        super().__init__(fmt)
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        record.tag = _TAGS.get(record.levelno, record.levelname[:5].ljust(5))
        message = super().format(record)
        if not self.color:
            return message

        level = record.levelno
        if level >= logging.ERROR:
            return chalk.red(message)
        if level >= FAIL_LEVEL:
            return chalk.red_bright(message)
        if level >= logging.WARNING:
            return chalk.yellow(message)
        if level >= PASS_LEVEL:
            return chalk.green(message)
        if level >= logging.INFO:
            return chalk.cyan(message)
        return chalk.gray(message)


def resolve_env_log_level() -> int | None:
    """Return a logging level from the environment or None if unset.

    Honors PLATSHIM_LOG_LEVEL (e.g. "DEBUG", "PASS", "WARN", numeric "10").
    """
    val = os.environ.get(ENV_LOG_LEVEL)
    if not val:
        return None
    return parse_level(val)


def parse_level(value: str | int | None) -> int | None:
    """Translate a level name or number into a logging level."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    v = value.strip().upper()
    if v.isdigit():
        return int(v)
    name_to_level = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "PASS": PASS_LEVEL,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "FAIL": FAIL_LEVEL,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return name_to_level.get(v)


def setup_logging(level: int | None = None) -> None:
    """Attach a stderr handler to the ``platshim`` logger.

    If ``level`` is None, PLATSHIM_LOG_LEVEL is consulted; the default is
    WARNING so library use stays quiet.
    """
    if level is None:
        level = resolve_env_log_level() or logging.WARNING

    pkg_logger = logging.getLogger("platshim")
    pkg_logger.setLevel(level)

    # Replace our own handlers only; the host application's stay untouched
    for handler in pkg_logger.handlers[:]:
        pkg_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    color = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
    handler.setFormatter(
        TagFormatter(LOG_FORMAT if level >= logging.INFO else DEBUG_LOG_FORMAT, color=color)
    )
    pkg_logger.addHandler(handler)
    pkg_logger.propagate = False


def get_logger(name: str) -> PlatshimLogger:
    """Retrieve a PlatshimLogger with the specified name."""
    logger = logging.getLogger(name)
    if not isinstance(logger, PlatshimLogger):
        # Created before this module set the logger class
        logger.__class__ = PlatshimLogger
    return cast("PlatshimLogger", logger)
