"""Configuration management for form-catalog."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from form_catalog.schemas.catalog import Credentials

DATABASE_NAME = "forms.db"
FORMS_DIR_NAME = "forms"
DATA_DIR_NAME = "data"


class CatalogConfig(BaseSettings):
    """Configuration for a form-catalog installation."""

    # Default to ~/.form-catalog but allow override with env var
    home: Path = Field(
        default_factory=lambda: Path.home() / ".form-catalog",
        description="Base path for form-catalog files",
    )

    # Remote catalog
    server_url: str = Field(default="", description="Base URL of the remote form server")
    form_list_path: str = Field(default="/formList", description="Path of the form list")
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    auth_scheme: Literal["basic", "digest"] = "basic"

    # Network behaviour
    request_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    download_attempts: int = Field(default=3, ge=1)
    download_backoff_max: float = Field(default=8.0, description="Upper bound for retry waits")
    max_concurrent_downloads: int = Field(default=4, ge=1)

    # Local behaviour
    hide_old_versions: bool = True
    scan_settle_seconds: float = Field(
        default=0.0, description="Skip files whose size changes within this interval"
    )
    sync_delay: int = Field(default=1000, description="Watch debounce in milliseconds")
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FORM_CATALOG_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def forms_dir(self) -> Path:
        """Get forms directory path."""
        return self.home / FORMS_DIR_NAME

    @property
    def database_path(self) -> Path:
        """Get SQLite database path."""
        return self.home / DATA_DIR_NAME / DATABASE_NAME

    @property
    def credentials(self) -> Optional[Credentials]:
        if not self.username:
            return None
        return Credentials(
            username=self.username,
            password=self.password or SecretStr(""),
            scheme=self.auth_scheme,
        )

    @field_validator("home")
    @classmethod
    def ensure_path_exists(cls, v: Path) -> Path:
        """Ensure home path exists."""
        if not v.exists():
            v.mkdir(parents=True)
        return v


@lru_cache
def get_config() -> CatalogConfig:
    """Load configuration once per process."""
    return CatalogConfig()
