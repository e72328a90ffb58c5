"""FastAPI application for the DHIS2-to-RapidPro bridge.

This module provides:
- create_app(): application factory wiring settings, token store and security
- Lifespan handling (logging set-up, startup connection tests)
- Error handling

Run with:
    uvicorn --factory dhis2rapidpro.api.app:create_app
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dhis2rapidpro import __version__
from dhis2rapidpro.config import Settings
from dhis2rapidpro.connections import ConnectionTester
from dhis2rapidpro.logging_config import configure_logging
from dhis2rapidpro.pipeline.ports import LoggingSyncPipeline, SyncPipeline
from dhis2rapidpro.schemas import ErrorResponse
from dhis2rapidpro.security.csrf import CsrfProtection
from dhis2rapidpro.security.management_auth import ManagementAuthenticator, OperatorCredentials
from dhis2rapidpro.security.middleware import SecurityFilterMiddleware
from dhis2rapidpro.security.policy import build_access_policy
from dhis2rapidpro.security.token_store import TokenStore
from dhis2rapidpro.security.tokens import TokenProvisioner
from dhis2rapidpro.security.webhook_auth import WebhookTokenVerifier

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    logger.info(
        "application_starting",
        version=app.version,
        management_auth=settings.management_auth_enabled,
        webhook_token_auth=settings.webhook_token_auth_enabled,
    )

    # The webhook token is provisioned by the first webhook request, not here.
    if settings.CONNECTION_TEST_ON_STARTUP:
        await app.state.connection_tester.run()

    yield

    logger.info("application_shutting_down")


def create_app(
    settings: Settings | None = None,
    *,
    pipeline: SyncPipeline | None = None,
    token_store: TokenStore | None = None,
    connection_tester: ConnectionTester | None = None,
    title: str = "DHIS2 to RapidPro",
    version: str = __version__,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (read from the environment if not given).
        pipeline: Synchronization pipeline receiving webhooks and triggers.
        token_store: Store for the webhook token digest.
        connection_tester: Startup connection tester.
        title: API title.
        version: API version.

    Returns:
        Configured FastAPI application.

    Raises:
        MalformedConfigurationError: If the settings are unusable.
    """
    settings = settings or Settings.from_env()
    settings.validate()

    store = token_store or TokenStore(
        settings.DATABASE_PATH,
        timeout_seconds=settings.TOKEN_STORE_TIMEOUT_SECONDS,
    )

    webhook_verifier: WebhookTokenVerifier | None = None
    if settings.webhook_token_auth_enabled:
        webhook_verifier = WebhookTokenVerifier(TokenProvisioner(store))

    management_authenticator: ManagementAuthenticator | None = None
    if settings.management_auth_enabled:
        management_authenticator = ManagementAuthenticator(
            OperatorCredentials(
                username=settings.MANAGEMENT_USERNAME,
                password=settings.MANAGEMENT_PASSWORD or "",
            ),
            secret_key=settings.SESSION_SECRET_KEY,
            max_age_seconds=settings.SESSION_MAX_AGE_SECONDS,
        )

    app = FastAPI(
        title=title,
        version=version,
        description="Synchronizes DHIS2 and RapidPro and receives RapidPro webhooks.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.pipeline = pipeline or LoggingSyncPipeline()
    app.state.token_store = store
    app.state.management_authenticator = management_authenticator
    app.state.connection_tester = connection_tester or ConnectionTester(settings)

    app.add_middleware(
        SecurityFilterMiddleware,
        policy=build_access_policy(settings),
        csrf=CsrfProtection(),
        webhook_verifier=webhook_verifier,
        management_authenticator=management_authenticator,
    )

    # Add exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
                detail=None,
            ).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception  # noqa: ARG001
    ) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if app.debug else None,
            ).model_dump(),
        )

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application.

    Args:
        app: FastAPI application.
    """
    from dhis2rapidpro.api.login import router as login_router
    from dhis2rapidpro.api.management import router as management_router
    from dhis2rapidpro.api.webhook import router as webhook_router

    app.include_router(webhook_router)
    app.include_router(management_router)
    app.include_router(login_router)
