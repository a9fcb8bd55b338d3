"""Sync orchestrator: resolves the direction of a run and drives the tree walk."""

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..api_clients.base import BaseRemoteClient, RemoteStoreError
from ..config.schema import ConfigurationError, SyncConfig
from ..performance.progress import ProgressAggregator, ProgressPhase
from ..utils.logging import get_logger, log_async_execution_time
from .models import Direction, SyncOutcome, WalkFailure
from .transfer import TransferExecutor
from .walker import (
    DirectoryTask,
    LocalToRemoteWalker,
    RemoteToLocalWalker,
    count_local_items,
    count_remote_items
)


REMOTE_PREFIX = "gdrive:"


class SyncEngineError(Exception):
    """Raised when a sync run fails as a whole."""
    pass


@dataclass(frozen=True)
class Endpoint:
    """A parsed source or destination designator."""

    designator: str
    remote_id: Optional[str] = None
    local_path: Optional[Path] = None

    @property
    def is_remote(self) -> bool:
        return self.remote_id is not None

    @classmethod
    def parse(cls, designator: str) -> "Endpoint":
        """Parse ``gdrive:<id>`` as a remote item and anything else as a local path.

        Raises:
            ConfigurationError: If the designator is empty or has no identifier
        """
        if not designator or not designator.strip():
            raise ConfigurationError("Empty sync endpoint")

        if designator.startswith(REMOTE_PREFIX):
            remote_id = designator[len(REMOTE_PREFIX):].strip()
            if not remote_id:
                raise ConfigurationError(f"Missing Google Drive identifier in {designator!r}")
            return cls(designator=designator, remote_id=remote_id)

        return cls(designator=designator, local_path=Path(designator).expanduser())


@dataclass
class SyncReport:
    """Result of a sync run."""

    direction: Direction
    outcomes: List[SyncOutcome] = field(default_factory=list)
    failures: List[WalkFailure] = field(default_factory=list)
    aborted: bool = False
    duration: float = 0.0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def transferred_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.transferred)

    @property
    def skipped_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.transferred and not outcome.is_error)

    @property
    def error_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.is_error)

    @property
    def success(self) -> bool:
        """True when no item and no directory failed."""
        return self.error_count == 0 and not self.failures and not self.aborted

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary."""
        return {
            "direction": self.direction.value,
            "total": self.total,
            "transferred": self.transferred_count,
            "skipped": self.skipped_count,
            "errors": self.error_count,
            "failed_directories": [failure.to_dict() for failure in self.failures],
            "aborted": self.aborted,
            "duration": round(self.duration, 3),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class SyncEngine:
    """Top-level entry point of a differential sync between Drive and a local tree."""

    def __init__(
        self,
        client: BaseRemoteClient,
        config: Optional[SyncConfig] = None,
        progress: Optional[ProgressAggregator] = None
    ):
        """Initialize sync engine.

        Args:
            client: Remote store client
            config: Run configuration, defaults to SyncConfig()
            progress: Aggregator to report into; one is created from the
                config's progress sink when omitted
        """
        self.client = client
        self.config = config or SyncConfig()
        self.progress = progress or ProgressAggregator(sink=self.config.progress_sink)
        self.logger = get_logger(self.__class__.__name__)

    @log_async_execution_time
    async def sync(self, source: str, destination: str) -> SyncReport:
        """Synchronize ``source`` into ``destination``.

        Exactly one side must be a ``gdrive:<id>`` designator.

        Args:
            source: Item to copy from
            destination: Item to copy into

        Returns:
            SyncReport with one outcome per leaf item

        Raises:
            ConfigurationError: If the endpoints do not form a supported pair
            SyncEngineError: If the root cannot be read or listed
        """
        source_endpoint = Endpoint.parse(source)
        destination_endpoint = Endpoint.parse(destination)

        if source_endpoint.is_remote and destination_endpoint.is_remote:
            raise ConfigurationError("Google Drive to Google Drive sync is not supported")
        if not source_endpoint.is_remote and not destination_endpoint.is_remote:
            raise ConfigurationError("Local to local sync is not supported")

        direction = Direction.DOWNLOAD if source_endpoint.is_remote else Direction.UPLOAD
        phase = ProgressPhase.DOWNLOADING if direction == Direction.DOWNLOAD else ProgressPhase.UPLOADING
        self.progress.reset(phase=phase)

        self.logger.info(
            "Starting sync",
            source=source,
            destination=destination,
            direction=direction.value,
            mode=self.config.mode.value,
            concurrency=self.config.concurrency
        )

        start_time = time.monotonic()
        report = SyncReport(direction=direction)
        executor = TransferExecutor(self.client, self.config, self.progress)

        try:
            if direction == Direction.DOWNLOAD:
                await self._download(source_endpoint.remote_id, destination_endpoint.local_path, executor, report)
            else:
                await self._upload(source_endpoint.local_path, destination_endpoint.remote_id, executor, report)
        except (RemoteStoreError, OSError) as e:
            self.logger.error("Sync failed", source=source, destination=destination, error=str(e))
            raise SyncEngineError(f"Sync failed: {e}") from e

        report.duration = time.monotonic() - start_time
        self.progress.finish()

        self.logger.info(
            "Sync completed",
            direction=direction.value,
            total=report.total,
            transferred=report.transferred_count,
            skipped=report.skipped_count,
            errors=report.error_count,
            failed_directories=len(report.failures),
            aborted=report.aborted,
            duration=f"{report.duration:.2f}s"
        )

        return report

    async def _download(
        self,
        folder_id: str,
        local_path: Path,
        executor: TransferExecutor,
        report: SyncReport
    ):
        root = await self.client.get_metadata(folder_id)

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, lambda: local_path.mkdir(parents=True, exist_ok=True))

        if not root.is_folder:
            self.progress.set_total(1)
            report.outcomes = [await executor.download(root, local_path)]
            return

        if self.config.prescan:
            self.progress.begin_scan()
            self.progress.set_total(await count_remote_items(self.client, root.item_id))

        walker = RemoteToLocalWalker(self.client, self.config, executor)
        report.outcomes = await walker.walk(DirectoryTask(path=local_path, remote_id=root.item_id))
        report.failures = list(walker.failures)
        report.aborted = walker.stopped

    async def _upload(
        self,
        local_path: Path,
        folder_id: str,
        executor: TransferExecutor,
        report: SyncReport
    ):
        if not local_path.exists():
            raise SyncEngineError(f"Local source not found: {local_path}")

        folder = await self.client.get_metadata(folder_id)
        if not folder.is_folder:
            raise SyncEngineError(f"Upload destination is not a folder: {folder_id}")

        if local_path.is_file():
            self.progress.set_total(1)
            report.outcomes = [await executor.upload(local_path, folder.item_id)]
            return

        if not local_path.is_dir():
            raise SyncEngineError(f"Unsupported file type: {local_path}")

        if self.config.prescan:
            self.progress.begin_scan()
            loop = asyncio.get_event_loop()
            self.progress.set_total(await loop.run_in_executor(None, count_local_items, local_path))

        walker = LocalToRemoteWalker(self.client, self.config, executor)
        report.outcomes = await walker.walk(DirectoryTask(path=local_path, remote_id=folder.item_id))
        report.failures = list(walker.failures)
        report.aborted = walker.stopped
