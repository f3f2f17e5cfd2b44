"""Compass Portal - local OAuth landing application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from compass_portal.api.routes import oauth_router
from compass_portal.core.config import Settings, get_settings
from compass_portal.ui.popup import PopupRegistry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(registry: PopupRegistry | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the landing app.

    Args:
        registry: Popups opened by the OAuth flow; shared with the launcher
        settings: Application settings (defaults to :func:`get_settings`)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"OAuth landing app listening for callbacks at {settings.landing_url}")
        yield
        pending = app.state.popups.close_all(result="closed")
        if pending:
            logger.info(f"Shutting down with {pending} popup(s) still pending")

    app = FastAPI(
        title=f"{settings.app_name} Landing",
        version=settings.app_version,
        description="Receives OAuth redirects for popups opened by the Compass portal.",
        lifespan=lifespan,
    )
    app.state.popups = registry if registry is not None else PopupRegistry()
    app.state.settings = settings

    app.include_router(oauth_router)

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    return app


app = create_app()
