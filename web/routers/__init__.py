"""Router modules for FastAPI web API."""

from web.routers import builds, config, health, preinstall, themes, variants

__all__ = ["builds", "config", "health", "preinstall", "themes", "variants"]
