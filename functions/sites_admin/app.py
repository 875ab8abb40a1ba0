"""
FastAPI application entry point for the storage admin backend.
"""

from __future__ import annotations

from fastapi import FastAPI

from sites_admin.config import get_settings
from sites_admin.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="ChiroSites Pro Storage Admin", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
