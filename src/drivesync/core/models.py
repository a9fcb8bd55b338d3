"""Outcome records and reason codes produced by a sync run."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class Direction(str, Enum):
    """Which side of a sync is the source."""
    DOWNLOAD = "download"
    UPLOAD = "upload"


class ReasonCode(str, Enum):
    """Why an item was or was not transferred."""
    FORCE = "force"
    SKIP_EXISTING = "skip-existing"
    SIZE_AND_TIME_MATCH = "size-and-time-match"
    REMOTE_NEWER = "remote-newer"
    LOCAL_NEWER = "local-newer"
    LOCAL_NEWER_OR_SAME = "local-newer-or-same"
    REMOTE_NEWER_OR_SAME = "remote-newer-or-same"
    NOT_FOUND_LOCALLY = "not-found-locally"
    CREATED = "created"
    UPDATED = "updated"
    ERROR = "error"


@dataclass(frozen=True)
class SyncOutcome:
    """Result of processing one leaf item."""

    path: Path
    transferred: bool
    reason: ReasonCode
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.reason == ReasonCode.ERROR

    @classmethod
    def failed(cls, path: Path, error: str) -> "SyncOutcome":
        return cls(path=path, transferred=False, reason=ReasonCode.ERROR, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert outcome to dictionary."""
        return {
            "path": str(self.path),
            "transferred": self.transferred,
            "reason": self.reason.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class WalkFailure:
    """A directory whose walk was abandoned after an error."""

    path: Path
    error: str
    error_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": str(self.path), "error": self.error, "error_type": self.error_type}
