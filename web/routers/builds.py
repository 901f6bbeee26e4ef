"""Build management endpoints.

- GET /builds - List builds
- GET /builds/{id} - Get build by ID
- POST /builds - Queue a build
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status

from tiny11_builder.errors import PermissionDeniedError
from tiny11_builder.pipeline.context import BuildRequest
from tiny11_builder.service import BuildManager, BuildNotFoundError
from tiny11_builder.types import BuildStatus
from web.deps import get_build_manager

router = APIRouter()


@router.get("")
def list_builds_endpoint(
    status: str | None = Query(None, description="Filter by status"),
    manager: BuildManager = Depends(get_build_manager),
) -> list[dict[str, Any]]:
    """List submitted builds.

    Args:
        status: Filter by status.
        manager: Build manager.

    Returns:
        List of build records, oldest first.
    """
    status_filter: BuildStatus | None = None
    if status:
        try:
            status_filter = BuildStatus(status)
        except ValueError:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "invalid_status",
                    "message": (
                        f"Invalid status: {status}. "
                        "Valid values: pending, running, succeeded, failed"
                    ),
                },
            ) from None

    records = manager.list()
    if status_filter is not None:
        records = [r for r in records if r.status is status_filter]
    return [r.to_dict() for r in records]


@router.get("/{build_id}")
def get_build_endpoint(
    build_id: str,
    manager: BuildManager = Depends(get_build_manager),
) -> dict[str, Any]:
    """Get a build record by ID.

    Raises:
        HTTPException: If build not found.
    """
    try:
        return manager.get(build_id).to_dict()
    except BuildNotFoundError:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={
                "code": "build_not_found",
                "message": f"Build not found: {build_id}",
            },
        ) from None


@router.post("", status_code=http_status.HTTP_202_ACCEPTED)
def start_build_endpoint(
    request: BuildRequest,
    manager: BuildManager = Depends(get_build_manager),
) -> dict[str, Any]:
    """Queue a build.

    Builds run one at a time on the manager's worker thread; poll
    GET /builds/{build_id} for progress.

    Returns:
        The build id and its initial status.

    Raises:
        HTTPException: 403 when the server lacks administrator rights.
    """
    try:
        build_id = manager.submit(request)
    except PermissionDeniedError as e:
        raise HTTPException(
            status_code=http_status.HTTP_403_FORBIDDEN,
            detail={"code": e.code, "message": e.message},
        ) from None
    record = manager.get(build_id)
    return {"build_id": build_id, "status": record.status.value}
