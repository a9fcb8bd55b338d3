"""Progress aggregation and throttled snapshot emission for a sync run."""

import threading
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..utils.logging import get_logger


class ProgressPhase(str, Enum):
    """Phase of a sync run reported in progress snapshots."""
    SCANNING = "scanning"
    DOWNLOADING = "downloading"
    UPLOADING = "uploading"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of the run counters handed to a progress sink."""

    phase: ProgressPhase
    total: Optional[int]
    completed: int
    transferred: int
    skipped: int
    errors: int
    elapsed: float = 0.0
    current_item: Optional[str] = None
    throughput: Optional[float] = None
    eta_seconds: Optional[float] = None

    @property
    def throughput_description(self) -> Optional[str]:
        if self.throughput is None:
            return None
        return f"{self.throughput:.1f} items/sec"

    @property
    def eta_description(self) -> Optional[str]:
        if self.eta_seconds is None:
            return None
        return format_duration(self.eta_seconds)

    def to_dict(self) -> Dict[str, Any]:
        """Convert snapshot to dictionary."""
        data = asdict(self)
        data["phase"] = self.phase.value
        data["throughput_description"] = self.throughput_description
        data["eta_description"] = self.eta_description
        return data


def format_duration(seconds: float) -> str:
    """Format a duration as ``m:ss``."""
    whole = max(0, int(seconds))
    minutes, secs = divmod(whole, 60)
    return f"{minutes}:{secs:02d}"


ProgressSink = Callable[[ProgressSnapshot], None]


class ProgressAggregator:
    """Counters for one sync run, updated once per completed item.

    One aggregator is created per top-level run and handed to every
    component that completes items. Snapshots reach the sink at most once
    per ``throttle_interval`` seconds, piggybacking on whichever ``report``
    call crosses the threshold.
    """

    def __init__(
        self,
        sink: Optional[ProgressSink] = None,
        clock: Callable[[], float] = time.monotonic,
        throttle_interval: float = 0.1
    ):
        """Initialize progress aggregator.

        Args:
            sink: Callback receiving snapshots, or None to only count
            clock: Monotonic time source
            throttle_interval: Minimum seconds between two emissions
        """
        self.sink = sink
        self.throttle_interval = throttle_interval
        self._clock = clock
        self._lock = threading.Lock()

        self.logger = get_logger(self.__class__.__name__)

        self.reset()

    def reset(self, phase: ProgressPhase = ProgressPhase.DOWNLOADING, total: Optional[int] = None):
        """Zero every counter and restart the run clock."""
        with self._lock:
            self.phase = phase
            self.total = total
            self.completed = 0
            self.transferred = 0
            self.skipped = 0
            self.errors = 0
            self.started_at = self._clock()
            self.last_emitted_at: Optional[float] = None

    def begin_scan(self):
        """Emit the one-shot scanning snapshot that precedes a pre-scan count."""
        self._emit(self.snapshot(phase=ProgressPhase.SCANNING))

    def set_total(self, total: Optional[int]):
        with self._lock:
            self.total = total

    def report(self, outcome) -> None:
        """Record one completed item.

        Args:
            outcome: SyncOutcome of the item; error outcomes count as both
                skipped and errors
        """
        now = self._clock()

        with self._lock:
            self.completed += 1
            if outcome.transferred:
                self.transferred += 1
            else:
                self.skipped += 1
            if outcome.is_error:
                self.errors += 1

            if self.sink is None:
                return
            if self.last_emitted_at is not None and now - self.last_emitted_at < self.throttle_interval:
                return
            self.last_emitted_at = now

        self._emit(self.snapshot(current_item=outcome.path.name if outcome.path else None, now=now))

    def finish(self) -> ProgressSnapshot:
        """Emit the final unthrottled snapshot of the run."""
        snapshot = self.snapshot(phase=ProgressPhase.COMPLETE)
        self._emit(snapshot)
        return snapshot

    def snapshot(
        self,
        phase: Optional[ProgressPhase] = None,
        current_item: Optional[str] = None,
        now: Optional[float] = None
    ) -> ProgressSnapshot:
        """Build a snapshot of the current counters."""
        if now is None:
            now = self._clock()

        with self._lock:
            elapsed = max(0.0, now - self.started_at)
            completed = self.completed
            total = self.total

            throughput = completed / elapsed if elapsed > 0 else None
            eta = None
            if total is not None and throughput:
                eta = max(0, total - completed) / throughput

            return ProgressSnapshot(
                phase=phase or self.phase,
                total=total,
                completed=completed,
                transferred=self.transferred,
                skipped=self.skipped,
                errors=self.errors,
                elapsed=elapsed,
                current_item=current_item,
                throughput=throughput,
                eta_seconds=eta
            )

    def _emit(self, snapshot: ProgressSnapshot):
        if self.sink is None:
            return
        try:
            self.sink(snapshot)
        except Exception as e:
            self.logger.warning("Progress sink failed", error=str(e), phase=snapshot.phase.value)
