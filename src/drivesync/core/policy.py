"""Staleness decisions: does an item need to be transferred, and why."""

import errno
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from ..config.schema import CompareMode, SyncConfig
from .models import Direction, ReasonCode


# Sizes equal and timestamps closer than this count as unchanged
SIZE_AND_TIME_TOLERANCE = 1.0

NOT_FOUND_ERRNOS = (errno.ENOENT, errno.ENOTDIR)


@dataclass(frozen=True)
class LocalEntry:
    """Snapshot of a local path taken right before a decision."""

    path: Path
    modified_time: float
    size: int

    @property
    def modified_seconds(self) -> int:
        return math.floor(self.modified_time)


def stat_local(path: Path) -> Optional[LocalEntry]:
    """Stat a local path.

    Returns:
        LocalEntry, or None when the path does not exist

    Raises:
        OSError: For any failure other than the path being absent
    """
    try:
        st = os.stat(path)
    except OSError as e:
        if e.errno in NOT_FOUND_ERRNOS:
            return None
        raise
    return LocalEntry(path=Path(path), modified_time=st.st_mtime, size=st.st_size)


def decide(
    source_time: Optional[float],
    source_size: Optional[int],
    destination_time: Optional[float],
    destination_size: Optional[int],
    destination_exists: bool,
    config: SyncConfig,
    direction: Direction = Direction.DOWNLOAD
) -> Tuple[bool, ReasonCode]:
    """Decide whether the source must be copied over the destination.

    Rules are evaluated in order and the first match wins. Timestamps are
    epoch seconds; the newer-than comparison discards the fractional part.

    Args:
        source_time: Modification time of the item being copied
        source_size: Byte size of the item being copied, if known
        destination_time: Modification time of the existing copy
        destination_size: Byte size of the existing copy, if known
        destination_exists: Whether the destination exists at all
        config: Run configuration
        direction: DOWNLOAD compares remote over local, UPLOAD the reverse

    Returns:
        Tuple of (should_transfer, reason)
    """
    if config.mode == CompareMode.FORCE:
        return True, ReasonCode.FORCE

    if not destination_exists:
        if direction == Direction.UPLOAD:
            return True, ReasonCode.CREATED
        return True, ReasonCode.NOT_FOUND_LOCALLY

    if config.mode == CompareMode.SKIP_EXISTING:
        return False, ReasonCode.SKIP_EXISTING

    if (
        config.mode == CompareMode.SIZE_AND_TIME
        and source_size is not None
        and destination_size is not None
        and source_size == destination_size
        and source_time is not None
        and destination_time is not None
        and abs(source_time - destination_time) < SIZE_AND_TIME_TOLERANCE
    ):
        return False, ReasonCode.SIZE_AND_TIME_MATCH

    source_seconds = _whole_seconds(source_time)
    destination_seconds = _whole_seconds(destination_time)

    if direction == Direction.UPLOAD:
        if source_seconds > destination_seconds:
            return True, ReasonCode.LOCAL_NEWER
        return False, ReasonCode.REMOTE_NEWER_OR_SAME

    if source_seconds > destination_seconds:
        return True, ReasonCode.REMOTE_NEWER
    return False, ReasonCode.LOCAL_NEWER_OR_SAME


def decide_download(remote, local: Optional[LocalEntry], config: SyncConfig) -> Tuple[bool, ReasonCode]:
    """Decide whether a remote item must be downloaded over ``local``."""
    return decide(
        source_time=remote.modified_seconds,
        source_size=remote.size,
        destination_time=local.modified_time if local else None,
        destination_size=local.size if local else None,
        destination_exists=local is not None,
        config=config,
        direction=Direction.DOWNLOAD
    )


def decide_upload(local: LocalEntry, remote, config: SyncConfig) -> Tuple[bool, ReasonCode]:
    """Decide whether a local file must be uploaded over ``remote``."""
    return decide(
        source_time=local.modified_time,
        source_size=local.size,
        destination_time=remote.modified_seconds if remote else None,
        destination_size=remote.size if remote else None,
        destination_exists=remote is not None,
        config=config,
        direction=Direction.UPLOAD
    )


def _whole_seconds(value: Optional[float]) -> int:
    # An unknown timestamp sorts before every known one
    if value is None:
        return -1
    return math.floor(value)
