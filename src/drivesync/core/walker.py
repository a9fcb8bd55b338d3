"""Directory tree walkers driving the transfer executor over a whole hierarchy."""

import asyncio
import errno
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from ..api_clients.base import BaseRemoteClient, RemoteItem, RemoteStoreError
from ..config.schema import SyncConfig
from ..performance.batch_processor import run_batch
from ..utils.logging import get_logger
from .models import SyncOutcome, WalkFailure
from .transfer import TransferExecutor, sanitize_filename


SortKey = Tuple[int, ...]

# Position of leaves and subfolders within one listing page
LEAF_SLOT = 0
FOLDER_SLOT = 1

UNREADABLE_ERRNOS = (errno.EACCES, errno.EPERM)


@dataclass
class DirectoryTask:
    """One directory waiting to be listed.

    ``path`` is always the local side of the pair. ``remote_id`` is None for
    upload tasks until the remote folder has been looked up or created.
    """

    path: Path
    remote_id: Optional[str] = None
    parent_remote_id: Optional[str] = None
    key: SortKey = ()
    depth: int = 0

    @property
    def is_root(self) -> bool:
        return self.depth == 0


class TreeWalker(ABC):
    """Walks a directory tree through a queue of directory tasks.

    The root directory is processed inline so a failure to list it is fatal.
    Every other directory is picked up by one of ``folder_concurrency``
    workers; a failure there abandons only that subtree and is recorded in
    ``failures``. Outcomes are returned in structural order: per page, the
    page's leaves then the contents of its subfolders, pages in order.
    """

    def __init__(self, client: BaseRemoteClient, config: SyncConfig, executor: TransferExecutor):
        self.client = client
        self.config = config
        self.executor = executor
        self.logger = get_logger(self.__class__.__name__)

        self.failures: List[WalkFailure] = []
        self.max_depth_seen = 0
        self._results: List[Tuple[SortKey, SyncOutcome]] = []
        self._queue: Optional[asyncio.Queue] = None
        self._stop_requested = False

    @property
    def pending_directories(self) -> int:
        """Directories queued but not yet picked up by a worker."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def stopped(self) -> bool:
        return self._stop_requested

    def request_stop(self):
        """Stop scheduling new work; items already in flight finish."""
        if not self._stop_requested:
            self.logger.warning("Stopping walk after item failure")
        self._stop_requested = True

    async def walk(self, root: DirectoryTask) -> List[SyncOutcome]:
        """Walk the tree below ``root`` and return every leaf outcome."""
        self._results = []
        self.failures = []
        self.max_depth_seen = 0
        self._stop_requested = False
        self._queue = asyncio.Queue()

        workers = [
            asyncio.ensure_future(self._worker())
            for _ in range(self.config.folder_concurrency)
        ]

        try:
            await self._process(root)
            await self._queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        self._results.sort(key=lambda entry: entry[0])
        outcomes = [outcome for _, outcome in self._results]

        self.logger.info(
            "Tree walk finished",
            root=str(root.path),
            items=len(outcomes),
            failed_directories=len(self.failures),
            max_depth=self.max_depth_seen,
            stopped=self._stop_requested
        )

        return outcomes

    async def _worker(self):
        while True:
            task = await self._queue.get()
            try:
                if self._stop_requested:
                    continue
                await self._process(task)
            except Exception as e:
                self.logger.error(
                    "Directory walk failed",
                    path=str(task.path),
                    error=str(e),
                    error_type=type(e).__name__
                )
                self.failures.append(WalkFailure(path=task.path, error=str(e), error_type=type(e).__name__))
            finally:
                self._queue.task_done()

    async def _process(self, task: DirectoryTask):
        """List one directory page by page, transferring leaves and queueing subfolders."""
        if not await self._ensure(task):
            return

        self.max_depth_seen = max(self.max_depth_seen, task.depth)
        self.logger.debug(
            "Listing directory",
            path=str(task.path),
            depth=task.depth,
            pending_directories=self.pending_directories
        )

        page_index = 0
        page_token = None

        while not self._stop_requested:
            leaves, folders, page_token = await self._list_page(task, page_token)

            async def run_leaf(entry, task=task):
                key, leaf = entry
                outcome = await self._transfer(leaf, task)
                if outcome.is_error and self.config.abort_on_error:
                    self.request_stop()
                return key, outcome

            self._results.extend(await run_batch(
                [
                    (task.key + (page_index, LEAF_SLOT, leaf_index), leaf)
                    for leaf_index, leaf in enumerate(leaves)
                ],
                run_leaf,
                self.config.concurrency,
                should_stop=lambda: self._stop_requested
            ))

            if self._stop_requested:
                break

            for folder_index, child in enumerate(folders):
                self._enqueue(child, task.key + (page_index, FOLDER_SLOT, folder_index), task.depth + 1)

            page_index += 1
            if not page_token:
                break

    def _enqueue(self, child: DirectoryTask, key: SortKey, depth: int):
        if self.config.max_depth is not None and depth > self.config.max_depth:
            self.logger.warning(
                "Skipping directory beyond maximum depth",
                path=str(child.path),
                depth=depth,
                max_depth=self.config.max_depth
            )
            return

        child.key = key
        child.depth = depth
        self._queue.put_nowait(child)

    @abstractmethod
    async def _ensure(self, task: DirectoryTask) -> bool:
        """Make sure the destination directory of ``task`` exists.

        Returns:
            False to skip the directory and everything below it
        """
        pass

    @abstractmethod
    async def _list_page(
        self,
        task: DirectoryTask,
        page_token: Optional[str]
    ) -> Tuple[list, List[DirectoryTask], Optional[str]]:
        """Fetch one page of children.

        Returns:
            Tuple of (leaf items, subdirectory tasks, next page token)
        """
        pass

    @abstractmethod
    async def _transfer(self, leaf, task: DirectoryTask) -> SyncOutcome:
        pass


class RemoteToLocalWalker(TreeWalker):
    """Downloads a remote folder tree into a local directory."""

    async def _ensure(self, task: DirectoryTask) -> bool:
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, lambda: task.path.mkdir(parents=True, exist_ok=True))
        return True

    async def _list_page(self, task: DirectoryTask, page_token: Optional[str]):
        page = await self.client.list_children(task.remote_id, page_token)

        leaves: List[RemoteItem] = []
        folders: List[DirectoryTask] = []
        for item in page.items:
            if item.is_folder:
                folders.append(DirectoryTask(
                    path=task.path / sanitize_filename(item.name),
                    remote_id=item.item_id,
                    parent_remote_id=task.remote_id
                ))
            else:
                leaves.append(item)

        return leaves, folders, page.next_page_token

    async def _transfer(self, leaf: RemoteItem, task: DirectoryTask) -> SyncOutcome:
        return await self.executor.download(leaf, task.path)


class LocalToRemoteWalker(TreeWalker):
    """Uploads a local directory tree into a remote folder."""

    async def _ensure(self, task: DirectoryTask) -> bool:
        if task.remote_id is not None:
            return True

        name = task.path.name
        existing = await self.client.find_child(task.parent_remote_id, name, folder=True)
        if existing is not None:
            task.remote_id = existing.item_id
            return True

        if not self.config.create_folders:
            self.logger.warning("Remote folder missing, skipping subtree", path=str(task.path))
            return False

        created = await self.client.create_folder(name, task.parent_remote_id)
        task.remote_id = created.item_id
        return True

    async def _list_page(self, task: DirectoryTask, page_token: Optional[str]):
        loop = asyncio.get_event_loop()
        entries = await loop.run_in_executor(None, _scan_directory, task.path)

        leaves: List[Path] = []
        folders: List[DirectoryTask] = []
        for path, is_dir in entries:
            if is_dir:
                folders.append(DirectoryTask(path=path, parent_remote_id=task.remote_id))
            else:
                leaves.append(path)

        # A local directory is always listed in one page
        return leaves, folders, None

    async def _transfer(self, leaf: Path, task: DirectoryTask) -> SyncOutcome:
        return await self.executor.upload(leaf, task.remote_id)


def _scan_directory(path: Path) -> List[Tuple[Path, bool]]:
    """List a local directory as (path, is_directory) pairs sorted by name."""
    entries = []
    with os.scandir(path) as iterator:
        for entry in iterator:
            if entry.is_dir(follow_symlinks=False):
                entries.append((Path(entry.path), True))
            elif entry.is_file(follow_symlinks=False):
                entries.append((Path(entry.path), False))
    entries.sort(key=lambda pair: pair[0].name)
    return entries


async def count_remote_items(client: BaseRemoteClient, folder_id: str) -> int:
    """Count the leaf items below a remote folder.

    Folders that cannot be listed are logged and left out of the count.
    """
    logger = get_logger(__name__)
    total = 0
    pending = [folder_id]

    while pending:
        current = pending.pop()
        page_token = None
        try:
            while True:
                page = await client.list_children(current, page_token)
                for item in page.items:
                    if item.is_folder:
                        pending.append(item.item_id)
                    else:
                        total += 1
                page_token = page.next_page_token
                if not page_token:
                    break
        except RemoteStoreError as e:
            logger.warning("Pre-scan could not list folder", folder_id=current, error=str(e))

    return total


def count_local_items(path: Path) -> int:
    """Count the files below a local directory, ignoring unreadable directories."""
    total = 0
    pending = [Path(path)]

    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as iterator:
                for entry in iterator:
                    if entry.is_dir(follow_symlinks=False):
                        pending.append(Path(entry.path))
                    elif entry.is_file(follow_symlinks=False):
                        total += 1
        except OSError as e:
            if e.errno not in UNREADABLE_ERRNOS:
                raise

    return total
