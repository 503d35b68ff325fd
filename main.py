import logging
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SettingsError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from dapp_auth.api.endpoints import auth, health
from dapp_auth.core.config import Settings, get_settings
from dapp_auth.core.errors import AuthServiceError, StoreUnavailableError
from dapp_auth.core.jwt_utils import TokenService
from dapp_auth.core.middleware import DeadlineMiddleware
from dapp_auth.core.passwords import PasswordHasher
from dapp_auth.db.manager import Backends
from dapp_auth.services.activity import ActivityService
from dapp_auth.services.auth import AuthService
from dapp_auth.stores.activity import MongoActivityStore, SqlActivityStore
from dapp_auth.stores.challenges import MemoryChallengeStore, RedisChallengeStore
from dapp_auth.stores.identity import SqlIdentityStore

logger = logging.getLogger("dapp_auth")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.is_development else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def build_auth_service(
    settings: Settings,
    backends: Backends,
    hasher: Optional[PasswordHasher] = None,
) -> AuthService:
    """Wire the stores onto the backends that are configured."""
    if backends.redis is not None:
        challenges = RedisChallengeStore(backends.redis, settings.CHALLENGE_EXPIRY_SECONDS)
    elif settings.is_production:
        raise RuntimeError("REDIS_URL is required when NODE_ENV=production")
    else:
        logger.warning("REDIS_URL not set; wallet challenges are kept in process memory")
        challenges = MemoryChallengeStore(settings.CHALLENGE_EXPIRY_SECONDS)

    if backends.mongo is not None:
        activity_store = MongoActivityStore(backends.activity_collection())
    else:
        activity_store = SqlActivityStore(backends.session_factory)

    return AuthService(
        identities=SqlIdentityStore(backends.session_factory),
        challenges=challenges,
        tokens=TokenService(settings.JWT_SECRET, settings.ACCESS_TOKEN_EXPIRE_SECONDS, settings.JWT_ALGORITHM),
        activity=ActivityService(activity_store),
        hasher=hasher or PasswordHasher(),
    )


def create_app(
    settings: Optional[Settings] = None,
    backends: Optional[Backends] = None,
    auth_service: Optional[AuthService] = None,
) -> FastAPI:
    """
    Build the application around explicit handles. Run with
    `uvicorn main:create_app --factory` or `python main.py`.
    """
    settings = settings or get_settings()
    backends = backends or Backends.from_settings(settings)
    auth_service = auth_service or build_auth_service(settings, backends)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
          - Verify backend connectivity and create tables.
        Shutdown:
          - Close the stores, then dispose pools and clients.
        """
        logger.info("Startup: connecting to storage backends...")
        await run_in_threadpool(backends.init, settings.STARTUP_RETRIES)
        logger.info("Startup: mail transport %s:%s", settings.MAIL_HOST, settings.MAIL_PORT)
        yield
        await run_in_threadpool(auth_service.close)
        await run_in_threadpool(backends.close)

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.backends = backends
    app.state.auth_service = auth_service

    app.add_middleware(DeadlineMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthServiceError)
    async def handle_auth_error(request: Request, exc: AuthServiceError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": exc.message},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg", "")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "ValidationError", "message": "Validation failed", "details": details},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = uuid.uuid4().hex
        logger.error(
            "Unhandled error on %s %s [correlation_id=%s]",
            request.method,
            request.url.path,
            correlation_id,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": str(exc) if settings.is_development else "Something went wrong",
                "correlationId": correlation_id,
            },
        )

    app.include_router(health.router)
    app.include_router(auth.router, prefix="/api/auth")
    return app


def run() -> None:
    try:
        settings = get_settings()
    except SettingsError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    configure_logging(settings)
    try:
        backends = Backends.from_settings(settings)
        backends.init(retries=settings.STARTUP_RETRIES)
        app = create_app(settings, backends)
    except (StoreUnavailableError, SQLAlchemyError, RuntimeError, ValueError) as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
