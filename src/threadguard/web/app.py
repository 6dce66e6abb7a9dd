"""FastAPI preview surface for the conversation view."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from threadguard.core.config import load_config
from threadguard.web.security import SecurityHeadersMiddleware, build_csp

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    config = load_config()
    app = FastAPI(title="threadguard", docs_url=None, redoc_url=None)

    app.add_middleware(SecurityHeadersMiddleware, csp=build_csp(config.proxy.image_proxy_url))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return HTMLResponse(f"<h1>{exc.status_code}</h1>", status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled server error")
        return HTMLResponse("<h1>500</h1>", status_code=500)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # Import routes here to avoid circular imports at module level
    from threadguard.web.routes import render as render_routes
    from threadguard.web.routes import threads as thread_routes

    app.include_router(render_routes.router, prefix="/api")
    app.include_router(thread_routes.router, prefix="/threads")

    return app
