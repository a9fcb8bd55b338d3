"""Core sync engine package."""

from .models import Direction, ReasonCode, SyncOutcome, WalkFailure
from .policy import LocalEntry, decide, decide_download, decide_upload, stat_local
from .transfer import TransferExecutor, sanitize_filename
from .walker import (
    DirectoryTask,
    TreeWalker,
    RemoteToLocalWalker,
    LocalToRemoteWalker,
    count_local_items,
    count_remote_items
)
from .sync_engine import Endpoint, SyncEngine, SyncEngineError, SyncReport

__all__ = [
    # Models
    "Direction",
    "ReasonCode",
    "SyncOutcome",
    "WalkFailure",

    # Staleness policy
    "LocalEntry",
    "decide",
    "decide_download",
    "decide_upload",
    "stat_local",

    # Transfers and walking
    "TransferExecutor",
    "sanitize_filename",
    "DirectoryTask",
    "TreeWalker",
    "RemoteToLocalWalker",
    "LocalToRemoteWalker",
    "count_local_items",
    "count_remote_items",

    # Orchestration
    "Endpoint",
    "SyncEngine",
    "SyncEngineError",
    "SyncReport"
]
