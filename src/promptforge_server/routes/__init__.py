"""Route registration: mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from promptforge_server.routes.admin import router as admin_router
from promptforge_server.routes.export import router as export_router
from promptforge_server.routes.sessions import router as sessions_router
from promptforge_server.routes.stats import router as stats_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers under the versioned API prefix."""
    app.include_router(sessions_router, prefix=API_PREFIX)
    app.include_router(export_router, prefix=API_PREFIX)
    app.include_router(stats_router, prefix=API_PREFIX)
    app.include_router(admin_router, prefix=API_PREFIX)
