"""
Maijjd - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS and security middleware
- Error envelope handlers
- General (/auth) and admin (/admin-auth) authentication routes
- Database, key-value store and notifier lifecycle management
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from maijjd.auth.admin_routes import router as admin_auth_router
from maijjd.auth.database import get_engine, get_session_factory, init_db, ping
from maijjd.auth.kv import KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore
from maijjd.auth.lockout import AttemptLimiter
from maijjd.auth.models import utcnow
from maijjd.auth.notifications import Notifier
from maijjd.auth.reset_tokens import ResetTokenIssuer
from maijjd.auth.routes import router as auth_router
from maijjd.config import settings
from maijjd.gateway.error_handling import register_exception_handlers
from maijjd.gateway.middleware import SecurityMiddleware
from maijjd.logging import get_logger


logger = get_logger(__name__)


def wire_services(
    state,
    kv: KeyValueStore,
    notifier: Notifier,
    clock: Callable[[], datetime] = utcnow,
) -> None:
    """
    Attach the shared collaborators every request-scoped AuthService uses.

    Args:
        state: app.state
        kv: Store for reset tokens and attempt counters
        notifier: Email/SMS delivery
        clock: Source of "now"
    """
    lockout_seconds = settings.LOGIN_LOCKOUT_MINUTES * 60
    state.kv = kv
    state.clock = clock
    state.notifier = notifier
    state.reset_tokens = ResetTokenIssuer(kv, clock=clock)
    state.login_limiter = AttemptLimiter(kv, settings.LOGIN_MAX_ATTEMPTS, lockout_seconds)
    state.verify_limiter = AttemptLimiter(kv, settings.VERIFY_MAX_ATTEMPTS, lockout_seconds)
    state.ip_limiter = AttemptLimiter(kv, settings.LOGIN_IP_MAX_ATTEMPTS, lockout_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Initialize SQLModel database (Accounts, LoginAttempts)
        - Connect the key-value store (Redis when REDIS_URL is set)
        - Build the notifier from provider settings

    Shutdown:
        - Close HTTP clients, the key-value store and the engine
    """
    if not settings.SECRET_KEY:
        raise RuntimeError("SECRET_KEY must be set")

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)
    app.state.db_engine = engine
    app.state.db_session_factory = get_session_factory(engine)

    if settings.REDIS_URL:
        kv = RedisKeyValueStore(settings.REDIS_URL)
    else:
        logger.warning("kv.in_memory", detail="REDIS_URL not set; reset tokens and lockouts are per-process")
        kv = MemoryKeyValueStore()

    notifier = Notifier.from_settings()
    wire_services(app.state, kv, notifier)
    logger.info("app.started", env=settings.APP_ENV, version=settings.API_VERSION)

    yield

    await notifier.close()
    await kv.close()
    engine.dispose()
    logger.info("app.stopped")


app = FastAPI(
    title="Maijjd API",
    description="Account registration, login, verification and password recovery",
    version=settings.API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)

app.add_middleware(SecurityMiddleware)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(admin_auth_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns 503 when the credential store is unreachable.
    """
    database_ok = ping(app.state.db_engine)
    kv_ok = await app.state.kv.ping()

    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok and kv_ok else "degraded",
            "version": settings.API_VERSION,
            "timestamp": utcnow().isoformat(),
            "services": {
                "database": database_ok,
                "keyValueStore": kv_ok,
            },
        },
    )


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Maijjd API",
        "version": settings.API_VERSION,
        "docs": "/docs",
        "health": "/health",
    }
