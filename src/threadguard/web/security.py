"""Security headers for pages that embed sanitized third-party mail."""

from __future__ import annotations

from urllib.parse import urlparse

from fastapi import Request
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp


def build_csp(image_proxy_url: str = "") -> str:
    """Content-Security-Policy that forbids scripts and limits images to the proxy."""
    img_sources = ["'self'", "data:"]
    parsed = urlparse(image_proxy_url)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        img_sources.append(f"{parsed.scheme}://{parsed.netloc}")
    return (
        "default-src 'none'; "
        "script-src 'none'; "
        "style-src 'self' 'unsafe-inline'; "
        f"img-src {' '.join(img_sources)}; "
        "connect-src 'self'; "
        "frame-ancestors 'none'; "
        "object-src 'none'; "
        "base-uri 'none'; "
        "form-action 'self'"
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to every response."""

    def __init__(self, app: ASGIApp, csp: str = "") -> None:
        super().__init__(app)
        self.csp = csp or build_csp()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Content-Security-Policy"] = self.csp
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        # HSTS only over HTTPS
        if request.headers.get("X-Forwarded-Proto") == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response
