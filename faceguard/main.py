"""Main FastAPI application for the face access-control service."""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from faceguard import __version__
from faceguard.api.access import create_error_response, events_router, get_correlation_id
from faceguard.api.access import router as access_router
from faceguard.api.gateway import router as gateway_router
from faceguard.clients.descriptor_store import DescriptorStore
from faceguard.clients.recognition_client import RecognitionClient
from faceguard.config import Settings, settings
from faceguard.middleware import (
    MetricsMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    get_metrics
)
from faceguard.models.api_models import HealthResponse
from faceguard.observability import instrument_fastapi_app, setup_observability
from faceguard.services.access_service import AccessControlService
from faceguard.services.detection_service import FaceDetectionService
from faceguard.services.notifier import EventBroadcaster
from faceguard.services.trigger_gate import TriggerGate


logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=getattr(logging, settings.log_level.upper(), logging.INFO)
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

setup_observability(
    service_name="faceguard",
    service_version=__version__,
    otlp_endpoint=settings.otlp_endpoint,
    enable_console_export=settings.enable_console_export
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config = app.state.settings
    logger.info("Starting face access-control service", port=config.port, host=config.host)

    # The service is useless without the detector, so a load failure is fatal
    detector = FaceDetectionService(
        model=config.detection_model,
        upsample_times=config.upsample_times,
        num_jitters=config.num_jitters,
        descriptor_dimension=config.descriptor_dimension
    )
    try:
        await asyncio.to_thread(detector.load)
    except RuntimeError as e:
        logger.error("Failed to initialize face detection", error=str(e))
        raise

    store = DescriptorStore(config.users_path, descriptor_dimension=config.descriptor_dimension)
    await store.load()

    notifier = EventBroadcaster()
    app.state.detector = detector
    app.state.store = store
    app.state.notifier = notifier
    app.state.trigger_gate = TriggerGate(cooldown_ms=config.trigger_cooldown_ms)
    app.state.access_service = AccessControlService(
        store=store,
        detector=detector,
        notifier=notifier,
        threshold=config.recognition_threshold
    )

    app.state.recognition_client = None
    if config.upstream_url:
        app.state.recognition_client = RecognitionClient(config.upstream_url, timeout=config.upstream_timeout)
        logger.info("Gateway forwarding enabled", upstream_url=config.upstream_url)

    logger.info("Face access-control service ready", users=len(store))

    yield

    if app.state.recognition_client is not None:
        await app.state.recognition_client.close()
    logger.info("Shutting down face access-control service")


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400 with field-level detail."""
    fields = [".".join(str(part) for part in error["loc"] if part != "body") for error in exc.errors()]
    return create_error_response(
        "ValidationError",
        "Invalid request body",
        get_correlation_id(request),
        status_code=400,
        details={"fields": [field for field in fields if field]}
    )


async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        modelsLoaded=request.app.state.detector.models_loaded(),
        users=len(request.app.state.store)
    )


async def metrics_endpoint():
    """Application metrics endpoint."""
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "metrics": get_metrics()
    }


def create_app(config: Settings = settings) -> FastAPI:
    """Build the FastAPI application for the given settings."""
    application = FastAPI(
        title="FaceGuard Access Control",
        description="Face registration and verification service for button-triggered access control",
        version=__version__,
        lifespan=lifespan
    )
    application.state.settings = config

    instrument_fastapi_app(application)

    # Add middleware (order matters - last added is executed first)
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(MetricsMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    # Include API routers
    application.include_router(access_router)
    application.include_router(events_router)
    application.include_router(gateway_router)

    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.add_api_route("/health", health_check, methods=["GET"], response_model=HealthResponse)
    application.add_api_route("/metrics", metrics_endpoint, methods=["GET"])

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "faceguard.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False
    )
