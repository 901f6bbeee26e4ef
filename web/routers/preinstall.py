"""Preinstall manifest endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi import status as http_status

from tiny11_builder.config import get_settings
from tiny11_builder.customize.preinstall import load_manifest
from tiny11_builder.errors import BuildError

router = APIRouter()


@router.get("")
def get_preinstall_endpoint() -> dict[str, Any]:
    """Get the preinstall manifest.

    Raises:
        HTTPException: If the manifest cannot be parsed.
    """
    settings = get_settings()
    try:
        manifest = load_manifest(settings.preinstall_dir)
    except BuildError as e:
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": e.code, "message": e.message},
        ) from None
    return manifest.model_dump(mode="json")
