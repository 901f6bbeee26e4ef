"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter

from tiny11_builder.config import get_settings

router = APIRouter()


@router.get("")
def get_config() -> dict[str, Any]:
    """Get effective configuration.

    Returns:
        Current configuration as JSON.
    """
    settings = get_settings()
    return {
        "work_dir": str(settings.work_dir),
        "output_iso": str(settings.default_output_iso),
        "oscdimg_path": str(settings.oscdimg_path) if settings.oscdimg_path else None,
        "themes_dir": str(settings.themes_dir),
        "preinstall_dir": str(settings.preinstall_dir),
        "logs_dir": str(settings.logs_dir),
        "offline": settings.offline,
        "log_level": settings.log_level,
        "keep_on_failure": settings.keep_on_failure,
        "max_copy_concurrency": settings.max_copy_concurrency,
        "export_attempts": settings.export_attempts,
        "tool_timeout": settings.tool_timeout,
        "download_timeout": settings.download_timeout,
    }
