"""Build manager dependency for FastAPI.

The manager is created once per application in the lifespan handler and
stored on ``app.state``; route handlers receive it through dependency
injection so tests can install a manager with a fake session factory.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request

from tiny11_builder.service import BuildManager


def get_build_manager(request: Request) -> BuildManager:
    """Get the build manager from app state.

    Args:
        request: FastAPI request object.

    Returns:
        The application's BuildManager.
    """
    manager: Any = request.app.state.build_manager
    return manager  # type: ignore[no-any-return]
