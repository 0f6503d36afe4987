"""
═══════════════════════════════════════════════════════════════════════════════
BookAPI: Application entry point
═══════════════════════════════════════════════════════════════════════════════

Application factory of the BookAPI account service. The lifespan builds the
collaborators once per process (credential store, notifier, event publisher,
session tokens) and injects them into ``AccountLifecycleManager``, which the
routers reach through ``app.state.accounts``.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from bookapi import __version__
from bookapi.api.accounts import router as accounts_router
from bookapi.api.auth import router as auth_router
from bookapi.api.health import router as health_router
from bookapi.api.jwks import build_jwks, router as jwks_router
from bookapi.config import BookApiSettings, get_settings
from bookapi.database import Database
from bookapi.db.repositories.account_repo import AccountRepository, PostgresAccountRepository
from bookapi.events import EventPublisher
from bookapi.exceptions import BookApiError, ValidationFailedError
from bookapi.memory_store import InMemoryAccountRepository
from bookapi.services.account_service import AccountLifecycleManager
from bookapi.services.auth_service import SessionTokens
from bookapi.services.notifier import Notifier, build_notifier

# ═══════════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════════
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def _error_body(code: str, message: str, details: dict | None = None) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }


# ═══════════════════════════════════════════════════════════════════════════════
# Collaborators
# ═══════════════════════════════════════════════════════════════════════════════

async def _open_store(app: FastAPI, settings: BookApiSettings) -> AccountRepository:
    """
    PostgreSQL credential store with migrations applied; when the database
    is unreachable the in-memory store takes over (data lost on restart).
    """
    database = Database.from_settings(settings)
    try:
        await database.connect()
    except Exception as e:
        logger.warning("⚠️  BookAPI DB not available, activating memory store: %s", e)
        app.state.database = None
        return InMemoryAccountRepository()

    try:
        await database.apply_migrations()
    except Exception as e:
        logger.warning("⚠️  Migration apply failed (non-fatal): %s", e)

    app.state.database = database
    logger.info("✅ BookAPI database pool initialized")
    return PostgresAccountRepository(database)


async def _bootstrap_admin(service: AccountLifecycleManager, settings: BookApiSettings) -> None:
    if not settings.bootstrap_admin_enabled:
        return
    try:
        await service.bootstrap_admin(
            settings.bootstrap_admin_username,
            settings.bootstrap_admin_email,
            settings.bootstrap_admin_password,
        )
    except PydanticValidationError as exc:
        raise ValidationFailedError("Invalid BOOTSTRAP_ADMIN_* settings",
                                    details={"errors": exc.errors(include_url=False)}) from exc


# ═══════════════════════════════════════════════════════════════════════════════
# Application factory
# ═══════════════════════════════════════════════════════════════════════════════

def create_app(
    settings: BookApiSettings | None = None,
    repository: AccountRepository | None = None,
    notifier: Notifier | None = None,
    events: EventPublisher | None = None,
) -> FastAPI:
    """
    Creates and configures the FastAPI application.

    Collaborators passed in explicitly are used as is (tests inject the
    in-memory store and a recording notifier); missing ones are built from
    ``settings`` in the lifespan.
    """
    settings = settings or get_settings()
    _is_production = settings.app_env == "production"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            1. Credential store (PostgreSQL, or memory store fallback).
            2. Notifier, event publisher, session tokens and their JWKS.
            3. Bootstrap admin.

        Shutdown:
            1. Event publisher → DB pool.
        """
        logger.info("🚀 BookAPI v%s starting...", __version__)
        logger.info("   Log level: %s", settings.log_level)

        app.state.database = None
        store = repository if repository is not None else await _open_store(app, settings)
        publisher = events if events is not None else EventPublisher(
            settings.nats_url, enabled=settings.nats_enabled,
        )
        tokens = SessionTokens.from_settings(settings)
        # the published key set must match the key tokens are signed with
        app.state.jwks = (
            build_jwks(settings.jwt_public_key_path) if tokens.algorithm == "RS256" else {"keys": []}
        )

        service = AccountLifecycleManager(
            accounts=store,
            notifier=notifier if notifier is not None else build_notifier(settings),
            tokens=tokens,
            events=publisher,
            otp_ttl=timedelta(minutes=settings.otp_ttl_minutes),
        )
        app.state.accounts = service
        await _bootstrap_admin(service, settings)

        yield

        try:
            await publisher.disconnect()
        except Exception as e:
            logger.warning("NATS disconnect failed: %s", e)
        if app.state.database is not None:
            await app.state.database.close()
        logger.info("🛑 BookAPI stopped")

    app = FastAPI(
        redirect_slashes=False,
        title="BookAPI Accounts",
        description=(
            "Account service of the BookAPI catalog: registration, "
            "OTP email verification, manager/admin approval and JWT sessions."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url=None if _is_production else "/docs",
        redoc_url=None if _is_production else "/redoc",
        openapi_url=None if _is_production else "/api/v1/openapi.json",
    )

    # ── CORS middleware ──────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    )

    # ── API routers ──────────────────────────────────────────────────────
    v1_router = APIRouter(prefix="/api/v1")
    v1_router.include_router(auth_router)
    v1_router.include_router(accounts_router)
    v1_router.include_router(jwks_router)
    v1_router.include_router(health_router)
    app.include_router(v1_router)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.exception_handler(BookApiError)
    async def bookapi_error_handler(request: Request, exc: BookApiError) -> JSONResponse:
        """Domain error → HTTP status of its class."""
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, exc.details),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())[1:]), "message": e.get("msg")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=ValidationFailedError.status_code,
            content=_error_body(ValidationFailedError.code, "Request validation failed",
                                {"errors": errors}),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("INTERNAL", "Server error."))

    # ── Root endpoint ────────────────────────────────────────────────────
    @app.get("/")
    async def root():
        return {
            "name": "BookAPI Accounts",
            "version": __version__,
            "docs": "/docs",
            "api": {
                "v1": {
                    "health": "/api/v1/health",
                    "register": "/api/v1/auth/register",
                    "login": "/api/v1/auth/login",
                    "accounts": "/api/v1/accounts",
                },
            },
        }

    return app


# ═══════════════════════════════════════════════════════════════════════════════
# Module-level singleton
# ═══════════════════════════════════════════════════════════════════════════════
app = create_app()


def main() -> None:
    """Runs the service with Uvicorn."""
    settings = get_settings()
    logger.info("Starting BookAPI server on %s:%s", settings.api_host, settings.api_port)
    uvicorn.run(
        "bookapi.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
