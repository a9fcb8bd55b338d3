"""API clients package for the remote object store."""

from .base import (
    BaseRemoteClient,
    ContentKind,
    ListingPage,
    RemoteItem,
    ShortcutTarget,
    FOLDER_MIME_TYPE,
    SHORTCUT_MIME_TYPE,
    RemoteStoreError,
    RemoteNotFoundError,
    RemotePermissionError,
    RateLimitError,
    AuthenticationError,
    APIConnectionError
)

from .google_drive import GoogleDriveClient

__all__ = [
    # Base classes and models
    "BaseRemoteClient",
    "ContentKind",
    "ListingPage",
    "RemoteItem",
    "ShortcutTarget",
    "FOLDER_MIME_TYPE",
    "SHORTCUT_MIME_TYPE",

    # Exceptions
    "RemoteStoreError",
    "RemoteNotFoundError",
    "RemotePermissionError",
    "RateLimitError",
    "AuthenticationError",
    "APIConnectionError",

    # Client implementations
    "GoogleDriveClient"
]
