"""
FastAPI Application Module

HTTP and realtime surface of the earbud matching marketplace. Users list a
single earbud, look for its opposite-side counterpart, confirm matches and
chat with other owners.

Key Features:
- Listing store with typed filtering
- Race-safe match commit through version-guarded swaps
- Idempotent conversations with read tracking
- Per-user realtime channels over websockets
- Structured logging, Prometheus metrics and OpenTelemetry tracing

Authentication happens upstream; the caller's user id arrives in the
``X-User-Id`` header.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from structlog import get_logger

from .. import __version__
from ..config import Settings, get_settings
from ..domain.errors import BudMatchError, ValidationError
from ..domain.validation import describe_validation_error
from ..logging_setup import configure_logging
from ..metrics import CUSTOM_REGISTRY, ERRORS, REQUESTS
from ..repositories.memory import (
    InMemoryConversationRepository,
    InMemoryFavoritesRepository,
    InMemoryListingRepository,
)
from ..services.realtime import RealtimeHub
from . import listings, messages, realtime

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Starts and stops the realtime hub with the application"""
    hub: RealtimeHub = app.state.realtime_hub
    await hub.start()
    logger.info("application_startup_complete")

    yield

    await hub.stop()
    logger.info("application_shutdown_complete")


def _error_response(status_code: int, code: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BudMatchError)
    async def domain_error_handler(request: Request, exc: BudMatchError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "request_rejected",
            path=request.url.path,
            status_code=exc.status_code,
            code=exc.code,
            error=exc.message
        )
        return _error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        detail = describe_validation_error(exc)
        logger.info("request_invalid", path=request.url.path, error=detail)
        return _error_response(ValidationError.status_code, ValidationError.code, detail)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request_crashed", path=request.url.path, error=str(exc))
        return _error_response(500, "internal_error", "Internal server error")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Builds an application with its own stores and realtime hub"""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Marketplace for matching single lost earbuds with their counterpart",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.listing_repository = InMemoryListingRepository()
    app.state.conversation_repository = InMemoryConversationRepository()
    app.state.favorites_repository = InMemoryFavoritesRepository()
    app.state.realtime_hub = RealtimeHub(
        queue_size=settings.realtime_queue_size,
        send_timeout=settings.realtime_send_timeout
    )

    # Enable cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Counts and logs every HTTP request"""
        REQUESTS.inc()
        logger.info("request_started", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            ERRORS.inc()
            logger.error("request_failed", path=request.url.path, error=str(e))
            raise
        if response.status_code >= 400:
            ERRORS.inc()
        return response

    register_error_handlers(app)
    app.include_router(listings.router)
    app.include_router(messages.router)
    app.include_router(realtime.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    logger.info("application_created", environment=settings.environment)
    return app


app = create_app()
