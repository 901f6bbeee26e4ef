"""Configuration settings for tiny11_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

OSCDIMG_DEFAULT_URL = (
    "https://msdl.microsoft.com/download/symbols/oscdimg.exe/3D44737265000/oscdimg.exe"
)

GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024


def _default_work_dir() -> Path:
    """Return the default working directory."""
    return Path.home() / ".local" / "share" / "tiny11-builder"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the TINY11_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="TINY11_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Root directory for staging, scratch mount, themes and logs",
    )
    output_iso: Path | None = Field(
        default=None,
        description="Output ISO path (uses <work_dir>/tiny11.iso if not set)",
    )
    oscdimg_path: Path | None = Field(
        default=None,
        description="Explicit path to oscdimg.exe (searched for if not set)",
    )
    oscdimg_url: str = Field(
        default=OSCDIMG_DEFAULT_URL,
        description="Download URL used when oscdimg.exe is not installed",
    )

    # Operational modes
    offline: bool = Field(
        default=False,
        description="Offline mode - do not download oscdimg.exe",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    keep_on_failure: bool = Field(
        default=True,
        description="Keep working directories for inspection after a fatal error",
    )

    # Concurrency
    max_copy_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum worker threads used to stage the source tree",
    )

    # Export
    export_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made by the image export before giving up",
    )
    export_backoff_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Wait between export attempts",
    )
    export_space_margin_bytes: int = Field(
        default=2 * GIB,
        ge=0,
        description="Free space required beyond the source image size",
    )
    export_min_size_bytes: int = Field(
        default=100 * MIB,
        ge=0,
        description="Smallest exported image accepted as valid",
    )

    # Registry and mount
    hive_unload_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Rounds of registry hive unload before giving up",
    )
    hive_unload_wait_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Wait between hive unload rounds",
    )
    mount_settle_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Wait after discarding a stale mount before clearing it",
    )

    # Timeouts (in seconds)
    tool_timeout: int = Field(
        default=7200,
        ge=60,
        description="Timeout for a single DISM/reg/oscdimg invocation",
    )
    download_timeout: int = Field(
        default=300,
        ge=10,
        description="Timeout for the oscdimg.exe download",
    )

    @property
    def staging_dir(self) -> Path:
        """Clean staged copy of the installation source."""
        return self.work_dir / "build" / "tiny11"

    @property
    def scratch_dir(self) -> Path:
        """Mount point for the offline image."""
        return self.work_dir / "build" / "scratch"

    @property
    def temp_dir(self) -> Path:
        return self.work_dir / "build" / "temp"

    @property
    def themes_dir(self) -> Path:
        return self.work_dir / "themes"

    @property
    def preinstall_dir(self) -> Path:
        return self.work_dir / "preinstall"

    @property
    def resources_dir(self) -> Path:
        return self.work_dir / "resources"

    @property
    def logs_dir(self) -> Path:
        return self.work_dir / "logs"

    @property
    def default_output_iso(self) -> Path:
        """Output ISO path after applying the work_dir fallback."""
        return self.output_iso or self.work_dir / "tiny11.iso"


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["GIB", "MIB", "OSCDIMG_DEFAULT_URL", "Settings", "get_settings", "print_settings_json"]
