"""API routes package."""

from clusterid.routes.identity_routes import router as identity_router

__all__ = ["identity_router"]
