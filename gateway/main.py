"""
WhatsApp Gateway API

FastAPI application entry point that ties all components together.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gateway.api.middleware.auth import APIKeyMiddleware
from gateway.api.middleware.cors import CORSMiddleware
from gateway.api.routes import health, messages, qr
from gateway.config import Settings, get_settings
from gateway.core.errors import GatewayError
from gateway.core.relay import EventRelay, WebhookClient
from gateway.core.session import SessionManager, get_reconnect_policy, load_backend
from gateway.infra.credentials import get_credential_store
from gateway.infra.redis import RedisClient


def setup_logging(settings: Settings) -> None:
    """Configure logging based on environment."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def build_session_manager(settings: Settings) -> SessionManager:
    """Session manager wired from configuration."""
    return SessionManager(
        backend=load_backend(settings.protocol_backend, settings),
        store=get_credential_store(settings),
        policy=get_reconnect_policy(settings),
    )


def build_event_relay(settings: Settings, manager: SessionManager) -> EventRelay:
    """Event relay wired from configuration."""
    webhook = None
    if settings.webhook_enabled:
        webhook = WebhookClient(settings.webhook_url.strip(), timeout=settings.webhook_timeout)
    return EventRelay(manager, webhook=webhook, auto_reply=settings.auto_reply_enabled)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Starts the session and relay tasks, and tears them down on shutdown.
    """
    settings: Settings = app.state.settings
    manager: SessionManager = app.state.session_manager
    relay: EventRelay = app.state.event_relay

    # === STARTUP ===
    setup_logging(settings)
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")

    health.set_start_time()

    if relay.webhook is not None:
        logger.info(f"Webhook relay enabled: {relay.webhook.url}")
    else:
        logger.info("Webhook relay disabled (WEBHOOK_URL not set)")
    if not settings.auth_enabled:
        logger.warning("API_KEY not set - /send and /send-media are unauthenticated")

    await relay.start()
    await manager.start()

    logger.info(f"Application ready at http://{settings.host}:{settings.port}")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down application...")

    await relay.stop()
    if relay.webhook is not None:
        await relay.webhook.drain(timeout=settings.webhook_timeout)
        await relay.webhook.aclose()

    # The protocol session has no clean close; the handle is abandoned
    await manager.stop()

    if settings.credential_backend == "redis":
        await RedisClient.close()

    logger.info("Shutdown complete")


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Map gateway errors to their status codes."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.detail})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed request bodies are client errors (400)."""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"ok": False, "error": "Invalid request"},
    )


def create_app(
    settings: Optional[Settings] = None,
    session_manager: Optional[SessionManager] = None,
    event_relay: Optional[EventRelay] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to the ones configuration describes; tests pass
    their own.
    """
    settings = settings or get_settings()
    session_manager = session_manager or build_session_manager(settings)
    event_relay = event_relay or build_event_relay(settings, session_manager)

    app = FastAPI(
        title="WhatsApp Gateway API",
        description="""
    HTTP bridge to a single WhatsApp session.

    ## Endpoints
    - `GET /health` - session status
    - `GET /qr` - pairing QR code (PNG)
    - `POST /send` - send a text message
    - `POST /send-media` - send an image or document

    ## Authentication
    When `API_KEY` is configured, send endpoints require the `x-api-key` header.
    """,
        version="1.0.0",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.event_relay = event_relay

    # Last added runs first: CORS answers preflight before the key check
    app.add_middleware(APIKeyMiddleware)
    app.add_middleware(CORSMiddleware)

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.exception(f"Unhandled exception: {exc}")

        # Don't expose internal errors in production
        detail = str(exc) if settings.is_development else "Internal server error"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": "Internal server error", "detail": detail},
        )

    @app.middleware("http")
    async def request_timing_middleware(request: Request, call_next):
        """Log request duration in debug mode."""
        start_time = time.time()
        try:
            return await call_next(request)
        finally:
            if settings.debug:
                duration = time.time() - start_time
                logger.debug(
                    f"{request.method} {request.url.path} "
                    f"completed in {duration:.3f}s"
                )

    app.include_router(health.router)
    app.include_router(qr.router)
    app.include_router(messages.router)

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        """Basic service information."""
        return {
            "name": settings.app_name,
            "version": "1.0.0",
            "status": "running",
            "environment": settings.app_env,
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "gateway.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
        timeout_graceful_shutdown=settings.shutdown_grace_period,
    )


if __name__ == "__main__":
    run()
