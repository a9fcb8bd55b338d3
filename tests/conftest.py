"""Shared fixtures: an in-memory remote store standing in for Google Drive."""

import os
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from drivesync.api_clients.base import (
    BaseRemoteClient,
    FOLDER_MIME_TYPE,
    SHORTCUT_MIME_TYPE,
    APIConnectionError,
    ListingPage,
    RemoteItem,
    RemoteNotFoundError,
    ShortcutTarget,
)


def ts(seconds: float) -> datetime:
    """UTC datetime for an epoch timestamp."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def set_mtime(path: Path, seconds: float):
    os.utime(path, (seconds, seconds))


class FakeDriveClient(BaseRemoteClient):
    """Remote store kept in dictionaries, with switchable failures."""

    def __init__(self, page_size: int = 100):
        super().__init__()
        self.page_size = page_size
        self.items: Dict[str, RemoteItem] = {}
        self.children: Dict[str, List[str]] = defaultdict(list)
        self.contents: Dict[str, bytes] = {}

        self.failing_listings: Set[str] = set()
        self.failing_content: Set[str] = set()
        self.failing_lookups: Set[str] = set()

        self.list_calls: List[str] = []
        self.content_calls: List[str] = []
        self.export_calls: List[tuple] = []
        self.created_files: List[str] = []
        self.updated_files: List[str] = []
        self.created_folders: List[str] = []

        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def _store(self, item: RemoteItem, parent_id: Optional[str]) -> RemoteItem:
        self.items[item.item_id] = item
        if parent_id is not None:
            self.children[parent_id].append(item.item_id)
        return item

    def add_folder(self, name: str, parent_id: Optional[str] = None, item_id: Optional[str] = None) -> RemoteItem:
        item = RemoteItem(
            item_id=item_id or self._next_id("folder"),
            name=name,
            mime_type=FOLDER_MIME_TYPE,
            parents=(parent_id,) if parent_id else (),
            created_time=ts(10),
            modified_time=ts(10),
        )
        return self._store(item, parent_id)

    def add_file(
        self,
        name: str,
        parent_id: Optional[str],
        content: bytes = b"data",
        modified: float = 100,
        created: Optional[float] = None,
        mime_type: str = "application/octet-stream",
        item_id: Optional[str] = None
    ) -> RemoteItem:
        item_id = item_id or self._next_id("file")
        virtual = mime_type.startswith("application/vnd.google-apps")
        item = RemoteItem(
            item_id=item_id,
            name=name,
            mime_type=mime_type,
            parents=(parent_id,) if parent_id else (),
            created_time=ts(created if created is not None else modified),
            modified_time=ts(modified),
            size=None if virtual else len(content),
        )
        self.contents[item_id] = content
        return self._store(item, parent_id)

    def add_shortcut(self, name: str, parent_id: str, target: RemoteItem, modified: float = 100) -> RemoteItem:
        item = RemoteItem(
            item_id=self._next_id("shortcut"),
            name=name,
            mime_type=SHORTCUT_MIME_TYPE,
            parents=(parent_id,),
            created_time=ts(modified),
            modified_time=ts(modified),
            shortcut=ShortcutTarget(target_id=target.item_id, target_mime_type=target.mime_type),
        )
        return self._store(item, parent_id)

    def touch(self, item_id: str, modified: float, content: Optional[bytes] = None):
        item = self.items[item_id]
        if content is not None:
            self.contents[item_id] = content
        self.items[item_id] = RemoteItem(
            item_id=item.item_id,
            name=item.name,
            mime_type=item.mime_type,
            parents=item.parents,
            created_time=item.created_time,
            modified_time=ts(modified),
            size=len(self.contents[item_id]) if item.size is not None else None,
            shortcut=item.shortcut,
        )

    def names_under(self, parent_id: str) -> List[str]:
        return [self.items[child].name for child in self.children[parent_id]]

    async def authenticate(self) -> bool:
        self._authenticated = True
        return True

    async def list_children(self, folder_id: str, page_token: Optional[str] = None) -> ListingPage:
        self.list_calls.append(folder_id)
        if folder_id in self.failing_listings:
            raise APIConnectionError(f"listing failed for {folder_id}")
        if folder_id not in self.items:
            raise RemoteNotFoundError(f"Google Drive item not found: {folder_id}")

        offset = int(page_token or 0)
        ids = self.children[folder_id]
        page = ids[offset:offset + self.page_size]
        next_offset = offset + self.page_size

        return ListingPage(
            items=[self.items[item_id] for item_id in page],
            next_page_token=str(next_offset) if next_offset < len(ids) else None
        )

    async def get_metadata(self, item_id: str) -> RemoteItem:
        if item_id not in self.items:
            raise RemoteNotFoundError(f"Google Drive item not found: {item_id}")
        return self.items[item_id]

    async def iter_content(self, item_id: str):
        self.content_calls.append(item_id)
        content = self.contents[item_id]
        if item_id in self.failing_content:
            yield content[:1]
            raise APIConnectionError("stream interrupted")
        yield content

    async def iter_export(self, item_id: str, mime_type: str):
        self.export_calls.append((item_id, mime_type))
        yield self.contents[item_id]

    async def find_child(self, parent_id: str, name: str, folder: bool = False) -> Optional[RemoteItem]:
        if parent_id in self.failing_lookups:
            raise APIConnectionError(f"lookup failed under {parent_id}")
        for child_id in self.children[parent_id]:
            child = self.items[child_id]
            if child.name == name and child.is_folder == folder:
                return child
        return None

    async def create_folder(self, name: str, parent_id: str) -> RemoteItem:
        self.created_folders.append(name)
        return self.add_folder(name, parent_id)

    async def create_file(self, name: str, parent_id: str, local_path: Path, mime_type: str) -> RemoteItem:
        self.created_files.append(name)
        return self.add_file(
            name,
            parent_id,
            content=Path(local_path).read_bytes(),
            modified=time.time(),
            mime_type=mime_type
        )

    async def update_file(self, item_id: str, local_path: Path, mime_type: str) -> RemoteItem:
        self.updated_files.append(self.items[item_id].name)
        self.touch(item_id, time.time(), content=Path(local_path).read_bytes())
        return self.items[item_id]


@pytest.fixture
def drive():
    return FakeDriveClient()
