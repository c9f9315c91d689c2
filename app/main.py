from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import HTTPException as FastAPIHTTPException

from app.core.config import SessionPolicy, Settings, settings as default_settings
from app.core.database import Database
from app.core.logger import setup_logging
from app.dependencies.rate_limit import SlidingWindowLimiter
from app.middleware.logging import RequestLoggerMiddleware
from app.middleware import error_handler
from app.services.auth_service import build_auth_service
from app.services.oauth_client import GoogleOAuthClient
from app.services.security_notifier import SecurityNotifier
from app.utils.errors import StoreUnavailableError
from app.utils.helpers import utcnow

# Routers
from app.routers import auth as auth_router
from app.routers import sessions as sessions_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    policy: Optional[SessionPolicy] = None,
    notifier: Optional[SecurityNotifier] = None,
    oauth_client: Optional[GoogleOAuthClient] = None,
    rate_limiter: Optional[SlidingWindowLimiter] = None,
    clock=utcnow,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Configuration is validated here so a bad policy fails at startup. The
    database is opened in the lifespan (or beforehand by the caller) and
    closed at shutdown.
    """
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)
    policy = policy or settings.validate()
    database = database or Database.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.open()
        logger.info(
            "Session engine ready (representation=%s, max_sessions=%s, absolute_cap=%s)",
            policy.token_representation.value,
            policy.max_sessions_per_user,
            policy.absolute_lifetime_cap,
        )
        try:
            yield
        finally:
            database.close()

    openapi_tags = [
        {"name": "authentication", "description": "Login, provider exchange, token refresh and logout."},
        {"name": "sessions", "description": "List and revoke the caller's active sessions."},
    ]

    app = FastAPI(
        title=f"{settings.APP_NAME} Session API",
        version="0.1.0",
        description="Issues, rotates and revokes refresh-token sessions.",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.rate_limiter = rate_limiter or SlidingWindowLimiter.from_settings(settings)
    app.state.auth_service = build_auth_service(
        settings,
        database,
        policy=policy,
        notifier=notifier,
        oauth_client=oauth_client,
        clock=clock,
    )

    # Middleware
    app.add_middleware(RequestLoggerMiddleware)

    # Exception handlers
    app.add_exception_handler(FastAPIHTTPException, error_handler.http_exception_handler)
    app.add_exception_handler(StoreUnavailableError, error_handler.store_unavailable_handler)

    # Include routers
    app.include_router(auth_router.router)
    app.include_router(sessions_router.router)

    return app
