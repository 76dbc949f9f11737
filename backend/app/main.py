"""
SnipVault Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware, exception mapping, route mounting and the
       ownership of long-lived resources (database pool, JWKS client).
How:   create_app() returns a configured app; uvicorn serves `app.main:app`.

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                      FastAPI App                        │
    │                                                         │
    │  Middleware:  RateLimit → RequestID → Logging → GZip    │
    │               → CORS                                    │
    │                                                         │
    │  Routes:      /api/snippets[/{id}]   /api/stats  /health│
    │                                                         │
    │  Exception handlers:                                    │
    │    SnipVaultError subclasses → their own status code    │
    │    RequestValidationError    → 400 validation_error     │
    │    anything else             → 500, generic message     │
    │                                                         │
    │  app.state.store              SnippetStore (one pool)   │
    │  app.state.identity_provider  JWTIdentityProvider       │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config check → connect store (waits for the DB with
              backoff) → optional create_all → identity provider
    Shutdown: close what startup created (injected resources are left to
              their owner)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.config import settings
from app.database import SnippetStore
from app.exceptions import (
    SnipVaultError,
    UpstreamUnavailableError,
    ValidationError,
    error_body,
    error_headers,
    unexpected_error_body,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import health, snippets, stats
from app.services.identity_base import IdentityProvider
from app.services.jwt_identity import JWTIdentityProvider

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] app.services.snippet_service: Snippet ... created
    Output goes to stdout so the container runtime collects it.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # These log every pool checkout / HTTP call at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("SnipVault Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: public reads and /health work without an identity provider
        logger.error("Configuration error: %s", e)

    owned_store: Optional[SnippetStore] = None
    owned_provider: Optional[IdentityProvider] = None

    if app.state.store is None:
        owned_store = SnippetStore.from_settings(settings)
        app.state.store = owned_store
    await app.state.store.connect()

    if settings.db_create_schema:
        logger.info("DB_CREATE_SCHEMA set: creating tables if missing")
        await app.state.store.create_schema()

    if app.state.identity_provider is None:
        owned_provider = JWTIdentityProvider.from_settings(settings)
        app.state.identity_provider = owned_provider

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("SnipVault Backend shutting down...")
    if owned_provider is not None:
        await owned_provider.aclose()
    if owned_store is not None:
        await owned_store.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to HTTP responses.

        SnipVaultError subclass  → exc.status_code, body from error_body()
        RequestValidationError   → 400, same shape as ValidationError
        Exception                → 500, generic message

    Messages from `context` and driver errors are logged, never returned.
    """

    @app.exception_handler(SnipVaultError)
    async def handle_app_error(request: Request, exc: SnipVaultError):
        rid = request_id_var.get("")
        if isinstance(exc, UpstreamUnavailableError):
            logger.error("[%s] %s unavailable | Context: %s", rid, exc.service, exc.context)
        elif exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.error_code, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", rid, exc.error_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc, rid),
            headers=error_headers(exc),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        rid = request_id_var.get("")
        error = ValidationError.from_pydantic(exc.errors())
        logger.info("[%s] Validation error: %d problem(s)", rid, len(error.errors))
        return JSONResponse(status_code=error.status_code, content=error_body(error, rid))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return JSONResponse(status_code=500, content=unexpected_error_body(rid))


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    store: Optional[SnippetStore] = None,
    identity_provider: Optional[IdentityProvider] = None,
    rate_limit_requests: Optional[int] = None,
) -> FastAPI:
    """
    Assemble the application.

    Args:
        store: An already-connected SnippetStore to use instead of creating one
            from settings at startup. The caller keeps ownership.
        identity_provider: Token verifier to use instead of JWTIdentityProvider.
        rate_limit_requests: Per-IP request ceiling overriding
            RATE_LIMIT_REQUESTS.
    """
    app = FastAPI(
        title="SnipVault API",
        description="Store, share and search code snippets.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.identity_provider = identity_provider

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After", "WWW-Authenticate"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, max_requests=rate_limit_requests)

    register_exception_handlers(app)

    app.include_router(snippets.router)
    app.include_router(stats.router)
    app.include_router(health.router)

    return app


app = create_app()
