"""Application configuration settings."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleDriveSettings(BaseSettings):
    """Google Drive API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    credentials_path: Optional[str] = Field(default=None)
    client_email: Optional[str] = Field(default=None)
    private_key: Optional[str] = Field(default=None)
    supports_all_drives: bool = Field(default=False)
    page_size: int = Field(default=200, ge=1, le=1000)
    rate_limit_calls: int = Field(default=200)
    rate_limit_window: float = Field(default=1.0)

    @field_validator("private_key")
    @classmethod
    def unescape_newlines(cls, v):
        """Keys exported through env files carry literal ``\\n`` sequences."""
        if v is None:
            return v
        return v.replace("\\n", "\n")

    @property
    def has_inline_credentials(self) -> bool:
        return bool(self.client_email and self.private_key)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)


class SyncSettings(BaseSettings):
    """Default sync behaviour, overridable per run."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    concurrency: int = Field(default=10)
    mode: str = Field(default="timestamp")
    docs_type: str = Field(default="docx")
    sheets_type: str = Field(default="xlsx")
    slides_type: str = Field(default="pptx")
    maps_type: str = Field(default="kml")
    fallback_type: str = Field(default="pdf")
    abort_on_error: bool = Field(default=False)
    create_folders: bool = Field(default=True)


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    name: str = Field(default="drivesync")
    version: str = Field(default="1.0.0")

    google_drive: GoogleDriveSettings = Field(default_factory=GoogleDriveSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)


_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings, loading them on first use."""
    global _settings

    if _settings is None:
        _settings = AppSettings()

    return _settings
