"""API routes module."""

from compass_portal.api.routes.oauth import router as oauth_router

__all__ = [
    "oauth_router",
]
