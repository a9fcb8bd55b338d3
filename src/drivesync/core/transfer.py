"""Single-item transfers between the remote store and the local filesystem."""

import asyncio
import mimetypes
import os
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional

from ..api_clients.base import BaseRemoteClient, ContentKind, RemoteItem
from ..config.schema import SyncConfig
from ..performance.progress import ProgressAggregator
from ..utils.logging import get_logger
from .models import ReasonCode, SyncOutcome
from .policy import LocalEntry, decide_download, decide_upload, stat_local


UNSAFE_NAME_CHARACTERS = ("/", "\\", "\r", "\n", "\t")
RESERVED_NAMES = (".", "..")
PARTIAL_SUFFIX = ".part"
DEFAULT_UPLOAD_MIME_TYPE = "application/octet-stream"


def sanitize_filename(name: str) -> str:
    """Replace characters that would break a local path with ``_``.

    The names ``.`` and ``..`` become ``_`` so they cannot leave the parent.
    """
    for character in UNSAFE_NAME_CHARACTERS:
        name = name.replace(character, "_")
    if name in RESERVED_NAMES:
        return "_"
    return name


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or DEFAULT_UPLOAD_MIME_TYPE


class TransferExecutor:
    """Transfers one item once the staleness policy approves it.

    Every call returns exactly one SyncOutcome and reports it to the progress
    aggregator exactly once. Failures become error outcomes and never
    propagate to the caller.
    """

    def __init__(
        self,
        client: BaseRemoteClient,
        config: SyncConfig,
        progress: Optional[ProgressAggregator] = None
    ):
        self.client = client
        self.config = config
        self.progress = progress
        self.logger = get_logger(self.__class__.__name__)

    def local_name(self, item: RemoteItem) -> str:
        """File name a remote item is stored under locally.

        Virtual documents get the extension of their export format appended.
        """
        name = sanitize_filename(item.name)
        kind = item.effective_kind
        if kind.is_virtual:
            name = f"{name}.{self.config.export_formats.extension_for(kind)}"
        return name

    async def download(self, item: RemoteItem, destination_dir: Path) -> SyncOutcome:
        """Download one remote item into ``destination_dir``.

        Shortcuts are resolved to their target for content while keeping the
        shortcut's own name and timestamps.
        """
        path = Path(destination_dir) / sanitize_filename(item.name)

        try:
            kind = item.effective_kind
            if kind == ContentKind.FOLDER:
                return self._finish(SyncOutcome.failed(path, "shortcut target is a folder"))

            path = Path(destination_dir) / self.local_name(item)
            local = await self._stat(path)

            should_transfer, reason = decide_download(item, local, self.config)
            if not should_transfer:
                return self._finish(SyncOutcome(path=path, transferred=False, reason=reason))

            if kind.is_virtual:
                stream = self.client.iter_export(
                    item.effective_id,
                    self.config.export_formats.mime_type_for(kind)
                )
            else:
                stream = self.client.iter_content(item.effective_id)

            await self._write_stream(stream, path)
            await self._apply_timestamps(path, item)

        except Exception as e:
            return self._finish(SyncOutcome.failed(path, str(e) or type(e).__name__))

        return self._finish(SyncOutcome(path=path, transferred=True, reason=reason))

    async def upload(self, local_path: Path, parent_id: str) -> SyncOutcome:
        """Upload one local file into the remote folder ``parent_id``.

        An existing file of the same name is updated in place when the
        policy approves it; otherwise a new file is created.
        """
        local_path = Path(local_path)

        try:
            local = await self._stat(local_path)
            if local is None:
                return self._finish(SyncOutcome.failed(local_path, "local file not found"))

            existing = await self.client.find_child(parent_id, local_path.name, folder=False)

            should_transfer, reason = decide_upload(local, existing, self.config)
            if not should_transfer:
                return self._finish(SyncOutcome(path=local_path, transferred=False, reason=reason))

            mime_type = guess_mime_type(local_path)

            if existing is None:
                await self.client.create_file(local_path.name, parent_id, local_path, mime_type)
                reason = ReasonCode.CREATED
            else:
                await self.client.update_file(existing.item_id, local_path, mime_type)
                if reason != ReasonCode.FORCE:
                    reason = ReasonCode.UPDATED

        except Exception as e:
            return self._finish(SyncOutcome.failed(local_path, str(e) or type(e).__name__))

        return self._finish(SyncOutcome(path=local_path, transferred=True, reason=reason))

    async def _stat(self, path: Path) -> Optional[LocalEntry]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, stat_local, path)

    async def _write_stream(self, stream: AsyncIterator[bytes], path: Path):
        """Stream content to a partial file and move it over ``path`` when complete."""
        loop = asyncio.get_event_loop()
        # Unique per transfer, never the name of a sibling item
        partial = path.with_name(f".{path.name}.{uuid.uuid4().hex}{PARTIAL_SUFFIX}")

        handle = await loop.run_in_executor(None, open, partial, "xb")
        try:
            try:
                async for chunk in stream:
                    await loop.run_in_executor(None, handle.write, chunk)
            finally:
                await loop.run_in_executor(None, handle.close)

            await loop.run_in_executor(None, os.replace, partial, path)

        except BaseException:
            await loop.run_in_executor(None, _remove_quietly, partial)
            raise

    async def _apply_timestamps(self, path: Path, item: RemoteItem):
        """Copy the remote timestamps onto the file, at whole-second resolution."""
        modified = item.modified_seconds
        if modified is None:
            return

        created = item.created_seconds if item.created_seconds is not None else modified
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, os.utime, path, (int(created), int(modified)))

    def _finish(self, outcome: SyncOutcome) -> SyncOutcome:
        if outcome.is_error:
            self.logger.warning("Item transfer failed", path=str(outcome.path), error=outcome.error)
        elif outcome.transferred:
            self.logger.info("Item transferred", path=str(outcome.path), reason=outcome.reason.value)
        else:
            self.logger.debug("Item skipped", path=str(outcome.path), reason=outcome.reason.value)

        if self.progress is not None:
            self.progress.report(outcome)

        return outcome


def _remove_quietly(path: Path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
