"""Configuration schema for a single sync run."""

import mimetypes
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..api_clients.base import ContentKind


# Export targets offered by Drive that are missing from some platform MIME tables
for _mime_type, _extension in (
    ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", ".docx"),
    ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", ".xlsx"),
    ("application/vnd.openxmlformats-officedocument.presentationml.presentation", ".pptx"),
    ("application/vnd.oasis.opendocument.text", ".odt"),
    ("application/vnd.oasis.opendocument.spreadsheet", ".ods"),
    ("application/vnd.oasis.opendocument.presentation", ".odp"),
    ("application/vnd.google-earth.kml+xml", ".kml"),
    ("application/vnd.google-earth.kmz", ".kmz"),
    ("application/epub+zip", ".epub"),
    ("application/rtf", ".rtf"),
    ("text/tab-separated-values", ".tsv"),
    ("text/markdown", ".md"),
):
    mimetypes.add_type(_mime_type, _extension)


class ConfigurationError(ValueError):
    """Raised when a sync configuration is invalid or cannot be loaded."""
    pass


class CompareMode(str, Enum):
    """How an existing destination item is compared with its source."""
    TIMESTAMP = "timestamp"
    FORCE = "force"
    SKIP_EXISTING = "skip-existing"
    SIZE_AND_TIME = "size-and-time"

    @classmethod
    def from_flags(
        cls,
        force: bool = False,
        skip_existing: bool = False,
        size_and_time: bool = False
    ) -> "CompareMode":
        """Resolve the mode from the individual command-line switches.

        Raises:
            ConfigurationError: If more than one switch is set
        """
        selected = [
            mode for mode, enabled in (
                (cls.FORCE, force),
                (cls.SKIP_EXISTING, skip_existing),
                (cls.SIZE_AND_TIME, size_and_time),
            )
            if enabled
        ]

        if len(selected) > 1:
            names = ", ".join(mode.value for mode in selected)
            raise ConfigurationError(f"Conflicting comparison modes requested: {names}")

        return selected[0] if selected else cls.TIMESTAMP


def mime_type_for_extension(extension: str) -> Optional[str]:
    """Look up the MIME type registered for a bare file extension."""
    mime_type, _ = mimetypes.guess_type(f"export.{extension}", strict=False)
    return mime_type


class ExportFormats(BaseModel):
    """Target file format per Google Workspace document family."""

    model_config = ConfigDict(frozen=True)

    docs: str = Field(default="docx", description="Google Docs export format")
    sheets: str = Field(default="xlsx", description="Google Sheets export format")
    slides: str = Field(default="pptx", description="Google Slides export format")
    maps: str = Field(default="kml", description="Google My Maps export format")
    fallback: str = Field(default="pdf", description="Format for any other Workspace type")

    @field_validator("docs", "sheets", "slides", "maps", "fallback")
    @classmethod
    def validate_format(cls, v):
        extension = v.strip().lstrip(".").lower()
        if not extension:
            raise ValueError("Export format must not be empty")
        if mime_type_for_extension(extension) is None:
            raise ValueError(f"Unable to resolve mime type for export format: {extension}")
        return extension

    def extension_for(self, kind: ContentKind) -> str:
        """Return the export extension used for a virtual document kind."""
        if kind == ContentKind.DOCUMENT:
            return self.docs
        if kind == ContentKind.SPREADSHEET:
            return self.sheets
        if kind == ContentKind.PRESENTATION:
            return self.slides
        if kind == ContentKind.MAP:
            return self.maps
        if kind == ContentKind.OTHER_VIRTUAL:
            return self.fallback
        raise ValueError(f"{kind.value} items are not exported")

    def mime_type_for(self, kind: ContentKind) -> str:
        return mime_type_for_extension(self.extension_for(kind))


class SyncConfig(BaseModel):
    """Immutable configuration shared by every operation of one sync run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    concurrency: int = Field(default=10, description="Leaf items transferred at once")
    mode: CompareMode = Field(default=CompareMode.TIMESTAMP)
    export_formats: ExportFormats = Field(default_factory=ExportFormats)
    abort_on_error: bool = Field(default=False, description="Stop scheduling work after the first failed item")
    create_folders: bool = Field(default=True, description="Create missing remote folders on upload")
    prescan: bool = Field(default=False, description="Count items before walking to report a total")
    max_depth: Optional[int] = Field(default=None, ge=0, description="Deepest directory level visited")
    progress_sink: Optional[Callable[[Any], None]] = Field(default=None, exclude=True)

    @field_validator("concurrency", mode="before")
    @classmethod
    def clamp_concurrency(cls, v):
        if v is None:
            return 1
        return max(1, int(v))

    @property
    def folder_concurrency(self) -> int:
        """Concurrency for directory fan-out, half the leaf bound."""
        return max(1, self.concurrency // 2)

    @classmethod
    def create(cls, **kwargs) -> "SyncConfig":
        """Build a config, reporting validation problems as ConfigurationError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid sync configuration: {e}") from e
