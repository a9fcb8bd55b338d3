"""Remote store client interface and the remote item model."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..utils.logging import get_logger


FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
SHORTCUT_MIME_TYPE = "application/vnd.google-apps.shortcut"
WORKSPACE_MIME_PREFIX = "application/vnd.google-apps"


class ContentKind(str, Enum):
    """Closed set of content families the sync engine distinguishes."""
    FILE = "file"
    FOLDER = "folder"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    MAP = "map"
    OTHER_VIRTUAL = "other-virtual"
    SHORTCUT = "shortcut"

    @classmethod
    def from_mime_type(cls, mime_type: Optional[str]) -> "ContentKind":
        """Classify a Drive MIME type."""
        if not mime_type:
            return cls.FILE
        if mime_type == FOLDER_MIME_TYPE:
            return cls.FOLDER
        if mime_type == SHORTCUT_MIME_TYPE:
            return cls.SHORTCUT
        if mime_type in _VIRTUAL_KINDS:
            return _VIRTUAL_KINDS[mime_type]
        if mime_type.startswith(WORKSPACE_MIME_PREFIX):
            return cls.OTHER_VIRTUAL
        return cls.FILE

    @property
    def is_virtual(self) -> bool:
        """Virtual documents have no binary form and must be exported."""
        return self in (
            ContentKind.DOCUMENT,
            ContentKind.SPREADSHEET,
            ContentKind.PRESENTATION,
            ContentKind.MAP,
            ContentKind.OTHER_VIRTUAL,
        )


_VIRTUAL_KINDS = {
    "application/vnd.google-apps.document": ContentKind.DOCUMENT,
    "application/vnd.google-apps.spreadsheet": ContentKind.SPREADSHEET,
    "application/vnd.google-apps.presentation": ContentKind.PRESENTATION,
    "application/vnd.google-apps.map": ContentKind.MAP,
}


@dataclass(frozen=True)
class ShortcutTarget:
    """Item a shortcut points to."""

    target_id: str
    target_mime_type: Optional[str] = None

    @property
    def target_kind(self) -> ContentKind:
        return ContentKind.from_mime_type(self.target_mime_type)


@dataclass(frozen=True)
class RemoteItem:
    """One node of the remote hierarchy, as returned by a listing or metadata call."""

    item_id: str
    name: str
    mime_type: Optional[str] = None
    parents: Tuple[str, ...] = ()
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    size: Optional[int] = None
    shortcut: Optional[ShortcutTarget] = None

    @property
    def kind(self) -> ContentKind:
        return ContentKind.from_mime_type(self.mime_type)

    @property
    def is_folder(self) -> bool:
        return self.kind == ContentKind.FOLDER

    @property
    def effective_id(self) -> str:
        """Identifier whose content is transferred (the target, for shortcuts)."""
        if self.shortcut is not None:
            return self.shortcut.target_id
        return self.item_id

    @property
    def effective_mime_type(self) -> Optional[str]:
        if self.shortcut is not None:
            return self.shortcut.target_mime_type
        return self.mime_type

    @property
    def effective_kind(self) -> ContentKind:
        return ContentKind.from_mime_type(self.effective_mime_type)

    @property
    def modified_seconds(self) -> Optional[float]:
        return _epoch_seconds(self.modified_time)

    @property
    def created_seconds(self) -> Optional[float]:
        return _epoch_seconds(self.created_time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary for logging and debugging."""
        return {
            "item_id": self.item_id,
            "name": self.name,
            "mime_type": self.mime_type,
            "kind": self.kind.value,
            "parents": list(self.parents),
            "created_time": self.created_time.isoformat() if self.created_time else None,
            "modified_time": self.modified_time.isoformat() if self.modified_time else None,
            "size": self.size,
            "shortcut_target": self.shortcut.target_id if self.shortcut else None,
        }


def _epoch_seconds(value: Optional[datetime]) -> Optional[float]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


@dataclass
class ListingPage:
    """One page of a folder's direct children."""

    items: List[RemoteItem] = field(default_factory=list)
    next_page_token: Optional[str] = None


class BaseRemoteClient(ABC):
    """Abstract base class for remote object store clients.

    Every operation may raise RemoteNotFoundError, RemotePermissionError,
    RateLimitError or APIConnectionError.
    """

    def __init__(self, **kwargs):
        self.logger = get_logger(self.__class__.__name__)
        self._authenticated = False

    @abstractmethod
    async def authenticate(self) -> bool:
        """Authenticate with the remote service.

        Returns:
            True if authentication successful
        """
        pass

    @abstractmethod
    async def list_children(
        self,
        folder_id: str,
        page_token: Optional[str] = None
    ) -> ListingPage:
        """List one page of a folder's direct children.

        Args:
            folder_id: Identifier of the folder to list
            page_token: Continuation token from the previous page

        Returns:
            ListingPage with items and the token of the next page, if any
        """
        pass

    @abstractmethod
    async def get_metadata(self, item_id: str) -> RemoteItem:
        """Fetch metadata for a single item."""
        pass

    @abstractmethod
    def iter_content(self, item_id: str) -> AsyncIterator[bytes]:
        """Stream the raw content of a binary item in chunks."""
        pass

    @abstractmethod
    def iter_export(self, item_id: str, mime_type: str) -> AsyncIterator[bytes]:
        """Stream a virtual document converted to ``mime_type``."""
        pass

    @abstractmethod
    async def find_child(
        self,
        parent_id: str,
        name: str,
        folder: bool = False
    ) -> Optional[RemoteItem]:
        """Look up a direct child of ``parent_id`` by exact name.

        Args:
            parent_id: Folder to search in
            name: Exact child name
            folder: Match only folders when True, only non-folders otherwise
        """
        pass

    @abstractmethod
    async def create_folder(self, name: str, parent_id: str) -> RemoteItem:
        """Create a folder under ``parent_id``."""
        pass

    @abstractmethod
    async def create_file(
        self,
        name: str,
        parent_id: str,
        local_path: Path,
        mime_type: str
    ) -> RemoteItem:
        """Create a file under ``parent_id`` with the content of ``local_path``."""
        pass

    @abstractmethod
    async def update_file(
        self,
        item_id: str,
        local_path: Path,
        mime_type: str
    ) -> RemoteItem:
        """Replace the content of an existing file."""
        pass


class RemoteStoreError(Exception):
    """Base class for remote store failures."""
    pass


class RemoteNotFoundError(RemoteStoreError):
    """Raised when a remote item does not exist."""
    pass


class RemotePermissionError(RemoteStoreError):
    """Raised when access to a remote item is denied."""
    pass


class RateLimitError(RemoteStoreError):
    """Raised when API rate limit is exceeded."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthenticationError(RemoteStoreError):
    """Raised when API authentication fails."""
    pass


class APIConnectionError(RemoteStoreError):
    """Raised when API connection fails."""
    pass
