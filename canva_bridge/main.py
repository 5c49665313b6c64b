"""
FastAPI application entrypoint for the Canva bridge.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from canva_bridge.api.error_handlers import register_error_handlers
from canva_bridge.api.routes import router as api_router
from canva_bridge.clients import ARTIFACT_ROUTE
from canva_bridge.core.config import get_settings
from canva_bridge.core.logging import configure_logging
from canva_bridge.dependencies import get_artifact_storage


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Canva Bridge",
        version="0.1.0",
        description="Delegated Canva sign-in plus image round-trips through the Canva editor.",
    )
    register_error_handlers(app)
    app.include_router(api_router, prefix="/api")
    app.mount(
        ARTIFACT_ROUTE,
        StaticFiles(directory=get_artifact_storage().root),
        name="artifacts",
    )
    return app


app = create_app()

__all__ = ["app", "create_app"]
