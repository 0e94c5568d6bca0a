"""
Security Middleware

Hardening headers on every response and a cap on declared request body size.
"""

from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.helpers.getters import isProductionMode
from app.logging import get_logger

logger = get_logger(__name__)

BODY_TOO_LARGE_MESSAGE = "Request body too large"

DEFAULT_CSP = (
    "default-src 'self'; "
    "style-src 'self' 'unsafe-inline'; "
    "script-src 'self'; "
    "img-src 'self' data: https:; "
    "frame-ancestors 'none'"
)

# Swagger UI and ReDoc load their assets from a CDN and use inline scripts
DOCS_CSP = (
    "default-src 'self'; "
    "script-src 'self' https://cdn.jsdelivr.net 'unsafe-inline'; "
    "style-src 'self' https://cdn.jsdelivr.net 'unsafe-inline'; "
    "img-src 'self' https: data:; "
    "font-src 'self' https://cdn.jsdelivr.net data:; "
    "connect-src 'self'; "
    "frame-ancestors 'none'"
)

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds the standard hardening headers.

    HSTS is only sent in production, where the API is served over TLS.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
        response.headers.setdefault("X-DNS-Prefetch-Control", "off")

        path = request.url.path
        if path.startswith("/docs") or path.startswith("/redoc"):
            response.headers["Content-Security-Policy"] = DOCS_CSP
        else:
            response.headers.setdefault("Content-Security-Policy", DEFAULT_CSP)

        if isProductionMode():
            response.headers.setdefault("Strict-Transport-Security", HSTS_VALUE)
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests whose Content-Length exceeds ``max_body_size`` with 413.
    """

    def __init__(self, app: ASGIApp, max_body_size: int):
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                return JSONResponse(status_code=400, content={"message": "Invalid Content-Length header"})

            if size > self.max_body_size:
                logger.warning(
                    "Request body too large",
                    path=request.url.path,
                    size=size,
                    limit=self.max_body_size,
                )
                return JSONResponse(status_code=413, content={"message": BODY_TOO_LARGE_MESSAGE})

        return await call_next(request)
