"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured.

Web routes are thin proxies to core APIs.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tiny11_builder import __version__
from tiny11_builder.service import BuildManager
from web.routers import builds, config, health, preinstall, themes, variants


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Starts the build manager on startup and waits for the running build
    on shutdown.
    """
    manager = BuildManager()
    app.state.build_manager = manager
    yield
    manager.shutdown(wait=True)


def include_routers(application: FastAPI) -> FastAPI:
    """Attach every API router to an application."""
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(variants.router, prefix="/variants", tags=["variants"])
    application.include_router(themes.router, prefix="/themes", tags=["themes"])
    application.include_router(preinstall.router, prefix="/preinstall", tags=["preinstall"])
    application.include_router(builds.router, prefix="/builds", tags=["builds"])
    return application


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Tiny11 Builder API",
        description="HTTP API for building reduced Windows 11 installation images",
        version=__version__,
        lifespan=lifespan,
    )
    return include_routers(application)


# Create the default application instance
app = create_app()
