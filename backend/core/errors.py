from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    INCOMPLETE_RUN = "INCOMPLETE_RUN"
    MALFORMED_EVENT = "MALFORMED_EVENT"
    UNKNOWN_EVENT_KIND = "UNKNOWN_EVENT_KIND"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


@dataclass(eq=False)
class ReporterError(Exception):
    error_code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"


class IncompleteRun(ReporterError):
    def __init__(self, message: str = "snapshot requested before run end") -> None:
        super().__init__(ErrorCode.INCOMPLETE_RUN, message)


class MalformedEvent(ReporterError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.MALFORMED_EVENT, message)


class UnknownEventKind(ReporterError):
    def __init__(self, kind: Any) -> None:
        super().__init__(ErrorCode.UNKNOWN_EVENT_KIND, f"unknown event kind: {kind!r}")
        self.kind = kind


class PersistenceFailure(ReporterError):
    """Write of a persisted artifact failed; computed results ride along on `outcome`."""

    def __init__(self, message: str, path: Optional[str] = None, outcome: Any = None) -> None:
        super().__init__(ErrorCode.PERSISTENCE_FAILURE, message)
        self.path = path
        self.outcome = outcome
