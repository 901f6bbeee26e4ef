"""FastAPI web application for Tiny11 Builder.

This module provides the HTTP API that mirrors the core services.

All business logic is delegated to core modules in tiny11_builder/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
