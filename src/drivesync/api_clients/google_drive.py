"""Google Drive API client implementation."""

import asyncio
import functools
import io
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import google.auth.exceptions
import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from .base import (
    BaseRemoteClient,
    ListingPage,
    RemoteItem,
    ShortcutTarget,
    FOLDER_MIME_TYPE,
    APIConnectionError,
    AuthenticationError,
    RateLimitError,
    RemoteNotFoundError,
    RemotePermissionError,
)
from ..performance.rate_limiter import AsyncRateLimiter
from ..utils.logging import log_async_execution_time


DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]
TOKEN_URI = "https://oauth2.googleapis.com/token"

ITEM_FIELDS = "id, name, parents, mimeType, createdTime, modifiedTime, size, shortcutDetails"
LIST_FIELDS = f"nextPageToken, files({ITEM_FIELDS})"

RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside a quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveClient(BaseRemoteClient):
    """Google Drive v3 client for file synchronization."""

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        client_email: Optional[str] = None,
        private_key: Optional[str] = None,
        supports_all_drives: bool = False,
        page_size: int = 200,
        rate_limit_calls: int = 200,
        rate_limit_window: float = 1.0,
        chunk_size: int = 8 * 1024 * 1024,
        timeout: Optional[float] = 120,
        **kwargs
    ):
        """Initialize Google Drive client.

        Either a service account key file or an inline client e-mail and
        private key must be given.

        Args:
            credentials_path: Path to service account credentials JSON file
            client_email: Service account e-mail address
            private_key: Service account PEM private key
            supports_all_drives: Include shared drives in every request
            page_size: Children returned per listing page
            rate_limit_calls: Requests allowed per rate limit window
            rate_limit_window: Rate limit window in seconds
            chunk_size: Bytes fetched per download chunk
            timeout: Socket timeout for each HTTP request
        """
        super().__init__(**kwargs)
        self.credentials_path = credentials_path
        self.client_email = client_email
        self.private_key = private_key
        self.supports_all_drives = supports_all_drives
        self.page_size = min(max(page_size, 1), 1000)
        self.chunk_size = chunk_size
        self.timeout = timeout

        self.service = None
        self.credentials = None

        self.rate_limiter = AsyncRateLimiter(
            max_calls=rate_limit_calls,
            time_window=rate_limit_window
        )

        self.logger.debug(
            "Google Drive client initialized",
            supports_all_drives=supports_all_drives,
            page_size=self.page_size
        )

    @classmethod
    def from_settings(cls, settings) -> "GoogleDriveClient":
        """Create a client from GoogleDriveSettings."""
        return cls(
            credentials_path=settings.credentials_path,
            client_email=settings.client_email,
            private_key=settings.private_key,
            supports_all_drives=settings.supports_all_drives,
            page_size=settings.page_size,
            rate_limit_calls=settings.rate_limit_calls,
            rate_limit_window=settings.rate_limit_window
        )

    @log_async_execution_time
    async def authenticate(self) -> bool:
        """Authenticate with Google Drive API using a service account."""
        try:
            if self.credentials_path:
                if not os.path.exists(self.credentials_path):
                    raise AuthenticationError(f"Credentials file not found: {self.credentials_path}")

                self.credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_path,
                    scopes=DRIVE_SCOPES
                )
            elif self.client_email and self.private_key:
                self.credentials = service_account.Credentials.from_service_account_info(
                    {
                        "client_email": self.client_email,
                        "private_key": self.private_key,
                        "token_uri": TOKEN_URI,
                    },
                    scopes=DRIVE_SCOPES
                )
            else:
                raise AuthenticationError(
                    "No Google credentials configured: set GOOGLE_CREDENTIALS_PATH "
                    "or GOOGLE_CLIENT_EMAIL and GOOGLE_PRIVATE_KEY"
                )

            loop = asyncio.get_event_loop()
            self.service = await loop.run_in_executor(
                None,
                functools.partial(build, "drive", "v3", credentials=self.credentials, cache_discovery=False)
            )

            about = await self._execute(self.service.about().get(fields="user"))
            user_email = about.get("user", {}).get("emailAddress", "Unknown")

            self._authenticated = True
            self.logger.info("Google Drive authentication successful", user_email=user_email)

            return True

        except AuthenticationError:
            raise

        except json.JSONDecodeError as e:
            error_msg = f"Invalid credentials file format: {e}"
            self.logger.error("Google Drive authentication failed", error=error_msg)
            raise AuthenticationError(error_msg)

        except (ValueError, google.auth.exceptions.GoogleAuthError) as e:
            error_msg = f"Invalid credentials: {e}"
            self.logger.error("Google Drive authentication failed", error=error_msg)
            raise AuthenticationError(error_msg)

        except (RemotePermissionError, RemoteNotFoundError, APIConnectionError) as e:
            error_msg = f"Google API error during authentication: {e}"
            self.logger.error("Google Drive authentication failed", error=error_msg)
            raise AuthenticationError(error_msg)

    async def list_children(
        self,
        folder_id: str,
        page_token: Optional[str] = None
    ) -> ListingPage:
        """List one page of a folder's direct children."""
        await self._ensure_authenticated()

        request = self.service.files().list(
            q=f"'{escape_query_value(folder_id)}' in parents and trashed=false",
            spaces="drive",
            fields=LIST_FIELDS,
            pageSize=self.page_size,
            pageToken=page_token,
            includeItemsFromAllDrives=self.supports_all_drives,
            supportsAllDrives=self.supports_all_drives
        )
        result = await self._execute(request, item_id=folder_id)

        files = result.get("files", [])
        next_token = result.get("nextPageToken")

        self.logger.debug(
            "Retrieved Google Drive listing page",
            folder_id=folder_id,
            files_count=len(files),
            has_next_page=bool(next_token)
        )

        return ListingPage(
            items=[self._convert_to_remote_item(data) for data in files],
            next_page_token=next_token
        )

    async def get_metadata(self, item_id: str) -> RemoteItem:
        """Get metadata for a single file or folder."""
        await self._ensure_authenticated()

        request = self.service.files().get(
            fileId=item_id,
            fields=ITEM_FIELDS,
            supportsAllDrives=self.supports_all_drives
        )
        data = await self._execute(request, item_id=item_id)

        return self._convert_to_remote_item(data)

    async def iter_content(self, item_id: str) -> AsyncIterator[bytes]:
        """Stream the binary content of a file."""
        await self._ensure_authenticated()

        request = self.service.files().get_media(
            fileId=item_id,
            supportsAllDrives=self.supports_all_drives
        )
        async for chunk in self._stream(request, item_id):
            yield chunk

    async def iter_export(self, item_id: str, mime_type: str) -> AsyncIterator[bytes]:
        """Stream a Google Workspace document converted to ``mime_type``."""
        await self._ensure_authenticated()

        request = self.service.files().export_media(fileId=item_id, mimeType=mime_type)
        async for chunk in self._stream(request, item_id):
            yield chunk

    async def find_child(
        self,
        parent_id: str,
        name: str,
        folder: bool = False
    ) -> Optional[RemoteItem]:
        """Search a folder for a child with an exact name."""
        await self._ensure_authenticated()

        operator = "=" if folder else "!="
        query = (
            f"name = '{escape_query_value(name)}' "
            f"and '{escape_query_value(parent_id)}' in parents "
            f"and mimeType {operator} '{FOLDER_MIME_TYPE}' "
            f"and trashed = false"
        )
        request = self.service.files().list(
            q=query,
            spaces="drive",
            fields=LIST_FIELDS,
            pageSize=10,
            includeItemsFromAllDrives=self.supports_all_drives,
            supportsAllDrives=self.supports_all_drives
        )
        result = await self._execute(request, item_id=parent_id)

        files = result.get("files", [])
        if len(files) > 1:
            self.logger.warning(
                "Multiple items share a name, using the first",
                parent_id=parent_id,
                name=name,
                matches=len(files)
            )

        return self._convert_to_remote_item(files[0]) if files else None

    async def create_folder(self, name: str, parent_id: str) -> RemoteItem:
        """Create a folder under ``parent_id``."""
        await self._ensure_authenticated()

        request = self.service.files().create(
            body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
            fields=ITEM_FIELDS,
            supportsAllDrives=self.supports_all_drives
        )
        data = await self._execute(request, item_id=parent_id)

        self.logger.info("Created remote folder", name=name, parent_id=parent_id, folder_id=data.get("id"))
        return self._convert_to_remote_item(data)

    async def create_file(
        self,
        name: str,
        parent_id: str,
        local_path: Path,
        mime_type: str
    ) -> RemoteItem:
        """Upload a new file under ``parent_id``."""
        await self._ensure_authenticated()

        media = MediaFileUpload(str(local_path), mimetype=mime_type, chunksize=self.chunk_size, resumable=True)
        request = self.service.files().create(
            body={"name": name, "parents": [parent_id]},
            media_body=media,
            fields=ITEM_FIELDS,
            supportsAllDrives=self.supports_all_drives
        )
        data = await self._execute(request, item_id=parent_id)

        return self._convert_to_remote_item(data)

    async def update_file(
        self,
        item_id: str,
        local_path: Path,
        mime_type: str
    ) -> RemoteItem:
        """Replace the content of an existing file."""
        await self._ensure_authenticated()

        media = MediaFileUpload(str(local_path), mimetype=mime_type, chunksize=self.chunk_size, resumable=True)
        request = self.service.files().update(
            fileId=item_id,
            media_body=media,
            fields=ITEM_FIELDS,
            supportsAllDrives=self.supports_all_drives
        )
        data = await self._execute(request, item_id=item_id)

        return self._convert_to_remote_item(data)

    async def _ensure_authenticated(self):
        if not self._authenticated:
            await self.authenticate()

    async def _stream(self, request, item_id: str) -> AsyncIterator[bytes]:
        """Download a media request chunk by chunk."""
        request.http = self._authorized_http()
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request, chunksize=self.chunk_size)

        done = False
        while not done:
            async with self.rate_limiter.limit():
                _, done = await self._run_blocking(downloader.next_chunk, item_id=item_id)

            chunk = buffer.getvalue()
            if chunk:
                yield chunk
            buffer.seek(0)
            buffer.truncate(0)

    async def _execute(self, request, item_id: Optional[str] = None) -> Dict[str, Any]:
        """Execute a request in the thread pool on its own HTTP connection."""
        async with self.rate_limiter.limit():
            return await self._run_blocking(
                functools.partial(request.execute, http=self._authorized_http()),
                item_id=item_id
            )

    async def _run_blocking(self, func, item_id: Optional[str] = None):
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, func)
        except HttpError as e:
            raise self._translate_http_error(e, item_id)
        except (httplib2.HttpLib2Error, OSError) as e:
            raise APIConnectionError(f"Google Drive connection error: {e}")

    def _authorized_http(self):
        """httplib2 connections are not thread-safe, so each request gets its own."""
        return google_auth_httplib2.AuthorizedHttp(
            self.credentials,
            http=httplib2.Http(timeout=self.timeout)
        )

    def _translate_http_error(self, error: HttpError, item_id: Optional[str]) -> Exception:
        """Map an HttpError onto the remote store error taxonomy."""
        status = error.resp.status
        reasons = self._error_reasons(error)

        if status == 404:
            return RemoteNotFoundError(f"Google Drive item not found: {item_id}")

        if status == 429 or (status == 403 and reasons & RATE_LIMIT_REASONS):
            retry_after = error.resp.get("retry-after")
            return RateLimitError(
                "Google Drive rate limit exceeded",
                int(retry_after) if retry_after and str(retry_after).isdigit() else None
            )

        if status in (401, 403):
            return RemotePermissionError(f"Access denied to {item_id}: {error}")

        return APIConnectionError(f"Google Drive API error: {error}")

    @staticmethod
    def _error_reasons(error: HttpError) -> set:
        try:
            payload = json.loads(error.content.decode("utf-8"))
        except (ValueError, AttributeError, UnicodeDecodeError):
            return set()

        errors: List[Dict[str, Any]] = payload.get("error", {}).get("errors", []) if isinstance(payload, dict) else []
        return {entry.get("reason") for entry in errors if isinstance(entry, dict)}

    def _convert_to_remote_item(self, file_data: Dict[str, Any]) -> RemoteItem:
        """Convert Google Drive file data to a RemoteItem."""
        # Size is absent for Google Workspace documents and folders
        file_size = None
        if "size" in file_data:
            try:
                file_size = int(file_data["size"])
            except (ValueError, TypeError):
                pass

        shortcut = None
        details = file_data.get("shortcutDetails")
        if details and details.get("targetId"):
            shortcut = ShortcutTarget(
                target_id=details["targetId"],
                target_mime_type=details.get("targetMimeType")
            )

        return RemoteItem(
            item_id=file_data["id"],
            name=file_data.get("name", ""),
            mime_type=file_data.get("mimeType"),
            parents=tuple(file_data.get("parents", [])),
            created_time=self._parse_timestamp(file_data.get("createdTime")),
            modified_time=self._parse_timestamp(file_data.get("modifiedTime")),
            size=file_size,
            shortcut=shortcut
        )

    def _parse_timestamp(self, timestamp_str: Optional[str]) -> Optional[datetime]:
        """Parse a Google Drive RFC 3339 timestamp."""
        if not timestamp_str:
            return None

        try:
            return datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            self.logger.warning("Failed to parse timestamp", timestamp=timestamp_str)
            return None
