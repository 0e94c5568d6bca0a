import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.api.endpoints import auth, tasks, teams, users
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import init_sentry, setup_logging
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.db.session import create_tables
from app.helpers.getters import isProductionMode, isTestMode
from app.logging import get_logger
from app.middleware.logging import AccessLoggingMiddleware
from app.middleware.security import BodySizeLimitMiddleware, SecurityHeadersMiddleware

logger = get_logger(__name__)

START_TIME = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_sentry()
    if settings.AUTO_CREATE_TABLES:
        await create_tables()
    logger.great("API started", mode=settings.MODE, version=settings.APP_VERSION)
    yield
    logger.info("API shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description="""
## 🔐 Authentication

Session tokens are issued by `POST /api/auth/register` and `POST /api/auth/login`.
They are returned in the body and set as an httponly cookie.

### Authenticating in the Swagger UI:

1. Click **Authorize** (green padlock)
2. Type your **email** in the `username` field and your **password**
3. Leave `client_id` and `client_secret` empty

## 👥 Teams

- **Roles**: owner, admin and collaborator
- **Invitations**: admins invite existing users, who accept or decline
- **Ownership transfer**: the owner hands the team over to another member

## ✅ Tasks

Personal and team tasks with assignment history, archiving, filters and analytics.
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Rate limiting (global middleware + handler)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.MAX_BODY_SIZE)
app.add_middleware(
    AccessLoggingMiddleware,
    enabled=not isTestMode(),
    slow_threshold=settings.SLOW_REQUEST_THRESHOLD,
)
app.add_middleware(SecurityHeadersMiddleware)

# Any localhost port in development, the configured allowlist otherwise
if isProductionMode():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_origin_regex=settings.CORS_DEV_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(teams.router, prefix="/api/teams", tags=["teams"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])


@app.get("/api/health", tags=["health"])
async def health():
    """Liveness probe."""
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - START_TIME, 3),
        "environment": settings.MODE,
        "version": settings.APP_VERSION,
    }


@app.get("/")
def root():
    return {"message": f"Welcome to the {settings.APP_NAME}. The OpenAPI docs are at /docs"}


# Rate limits cover /api only: the root, docs and openapi.json are exempt
for route in app.routes:
    if not route.path.startswith("/api"):
        limiter.exempt(route.endpoint)
