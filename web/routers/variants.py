"""Variant description endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi import status as http_status

from tiny11_builder.pipeline.variants import describe_variant
from tiny11_builder.types import Variant

router = APIRouter()


@router.get("")
def list_variants_endpoint() -> list[dict[str, Any]]:
    """List reduction variants with their default step lists."""
    return [describe_variant(variant) for variant in Variant]


@router.get("/{name}")
def get_variant_endpoint(name: str) -> dict[str, Any]:
    """Get one variant by name.

    Raises:
        HTTPException: If the variant does not exist.
    """
    try:
        variant = Variant(name.lower())
    except ValueError:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={
                "code": "variant_not_found",
                "message": f"Unknown variant: {name}. Valid values: standard, core, nano",
            },
        ) from None
    return describe_variant(variant)
