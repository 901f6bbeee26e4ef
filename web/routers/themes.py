"""Theme endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi import status as http_status

from tiny11_builder.config import get_settings
from tiny11_builder.customize.theme import list_themes, load_theme, validate_theme
from tiny11_builder.errors import BuildError, NotFoundError

router = APIRouter()


@router.get("")
def list_themes_endpoint() -> list[dict[str, Any]]:
    """List themes that load cleanly from the themes directory."""
    settings = get_settings()
    themes = []
    for name in list_themes(settings.themes_dir):
        try:
            theme = load_theme(settings.themes_dir, name)
        except BuildError as e:
            themes.append({"id": name, "error": e.to_dict()})
            continue
        themes.append(
            {
                "id": name,
                "name": theme.name,
                "version": theme.version,
                "author": theme.author,
                "description": theme.description,
            }
        )
    return themes


@router.get("/{name}")
def get_theme_endpoint(name: str) -> dict[str, Any]:
    """Get one theme with asset warnings.

    Raises:
        HTTPException: If the theme does not exist or is invalid.
    """
    settings = get_settings()
    try:
        theme = load_theme(settings.themes_dir, name)
    except NotFoundError:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={"code": "theme_not_found", "message": f"Theme not found: {name}"},
        ) from None
    except BuildError as e:
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": e.code, "message": e.message},
        ) from None
    return {
        "id": name,
        **theme.model_dump(mode="json"),
        "warnings": validate_theme(theme),
    }
