"""
FastAPI application entry point for the portal backend.
"""

from __future__ import annotations

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from clubportal.config import get_settings
from clubportal.routes import router

SESSION_COOKIE = "clubportal_session"


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Club Portal Backend", version="0.1.0")
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE,
        max_age=settings.session_max_age,
        same_site="lax",
    )
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
