"""FastAPI application entry point and lifecycle management."""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subscription_sync.config import get_config
from subscription_sync.errors import SyncError
from subscription_sync.logging_config import configure_logging_from_env, get_logger
from subscription_sync.middleware import ContextMiddleware, RequestLoggingMiddleware
from subscription_sync.repositories.idempotency_store import get_idempotency_store
from subscription_sync.repositories.profile_store import get_profile_store

__version__ = "0.1.0"

logger = get_logger(__name__)


async def idempotency_cleanup_loop(interval_seconds: float) -> None:
    """Purge expired webhook markers every interval until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = get_idempotency_store().sweep_expired()
        except SyncError as e:
            logger.warning("idempotency_cleanup_failed", error=e.code)
            continue
        logger.debug("idempotency_cleanup_tick", purged=purged)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Validate the deployment, then run the marker cleanup for the app's lifetime."""
    logger.info("service_starting", version=__version__)
    config = get_config()

    store = get_idempotency_store()
    if not config.stripe_secret_key:
        logger.warning("billing_disabled", message="STRIPE_SECRET_KEY is not set; billing endpoints return 503")
    if not config.stripe_webhook_secret:
        logger.warning("webhook_disabled", message="STRIPE_WEBHOOK_SECRET is not set")

    cleanup_task = asyncio.create_task(idempotency_cleanup_loop(config.idempotency.cleanup_interval_seconds))
    logger.info("service_started", idempotency_store=type(store).__name__)

    try:
        yield
    finally:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
        logger.info("service_stopped")


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors to their HTTP status; anything else is a retryable 500."""

    @app.exception_handler(SyncError)
    async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            "request_error",
            error=exc.code,
            message=exc.message,
            retryable=exc.retryable,
            status_code=exc.http_status,
            path=request.url.path,
            **exc.context,
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "retryable": True,
            },
        )


def create_app() -> FastAPI:
    """Build the application: logging, middleware, routers, error handlers."""
    configure_logging_from_env()

    app = FastAPI(
        title="Subscription Sync",
        description="Keeps menu profile subscription status consistent with the billing provider",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added last runs first: context is bound before the request is logged
    app.add_middleware(
        RequestLoggingMiddleware,
        include_request_details=os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true",
    )
    app.add_middleware(ContextMiddleware)

    from subscription_sync.api.jobs import router as jobs_router
    from subscription_sync.api.subscriptions import router as subscriptions_router
    from subscription_sync.api.webhooks import router as webhooks_router

    for router in (webhooks_router, subscriptions_router, jobs_router):
        app.include_router(router)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"service": "subscription-sync", "status": "running", "version": __version__}

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Which integrations this deployment has configured."""
        config = get_config()
        return {
            "status": "healthy",
            "billing": "configured" if config.stripe_secret_key else "not_configured",
            "webhooks": "configured" if config.stripe_webhook_secret else "not_configured",
            "idempotency_backend": config.idempotency.backend,
            "profiles": str(get_profile_store().count()),
        }

    register_error_handlers(app)
    logger.info("app_created", routes=len(app.routes))
    return app


app = create_app()
