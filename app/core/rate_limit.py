"""
Per-IP rate limiting for the API.
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import settings
from app.logging import get_logger

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=True,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render 429 with the standard error envelope and slowapi's limit headers."""
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    default = _rate_limit_exceeded_handler(request, exc)
    headers = {
        key: value for key, value in default.headers.items()
        if key.lower().startswith("x-ratelimit") or key.lower() == "retry-after"
    }
    return JSONResponse(status_code=default.status_code, content={"message": RATE_LIMIT_MESSAGE}, headers=headers)
