"""
Platshim Result Classes

Every abstracted operation returns an OpResult whose status is kept apart
from its output, so an empty but valid output is never read as a failure.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from platshim.errors import PlatshimError, PlatformUnsupported


class OpStatus(Enum):
    """Outcome of one operation call."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNSUPPORTED = "unsupported"


@dataclass
class OpResult:
    """Result of a single abstracted operation."""

    operation: str
    status: OpStatus
    output: str = ""
    rc: int = 0
    msg: str = ""
    error: Optional[PlatshimError] = None
    # Operation-specific facts (strategy used, timed_out, ...)
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, operation: str, output: str = "", **kwargs: Any) -> "OpResult":
        return cls(operation=operation, status=OpStatus.SUCCEEDED, output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        operation: str,
        msg: str,
        error: Optional[PlatshimError] = None,
        **kwargs: Any,
    ) -> "OpResult":
        if error is None:
            error = PlatshimError(msg)
        kwargs.setdefault("rc", 1)
        return cls(operation=operation, status=OpStatus.FAILED, msg=msg, error=error, **kwargs)

    @classmethod
    def unsupported(cls, operation: str, os_name: str, msg: str = "", **kwargs: Any) -> "OpResult":
        error = PlatformUnsupported(operation, os_name)
        return cls(
            operation=operation,
            status=OpStatus.UNSUPPORTED,
            msg=msg or error.message,
            error=error,
            rc=kwargs.pop("rc", 1),
            **kwargs,
        )

    @property
    def ok(self) -> bool:
        """Check if the operation succeeded."""
        return self.status is OpStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status is OpStatus.FAILED

    @property
    def is_unsupported(self) -> bool:
        return self.status is OpStatus.UNSUPPORTED

    def check(self) -> str:
        """Return the output, raising the carried error unless succeeded."""
        if self.ok:
            return self.output
        raise self.error or PlatshimError(self.msg or f"{self.operation} {self.status.value}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result: Dict[str, Any] = {
            "operation": self.operation,
            "status": self.status.value,
            "rc": self.rc,
            "output": self.output,
        }
        if self.msg:
            result["msg"] = self.msg
        if self.data:
            result["data"] = self.data
        return result
