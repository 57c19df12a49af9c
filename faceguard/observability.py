"""
OpenTelemetry tracing and metrics for the face access-control service.

Instruments are created by `setup_observability()`; until then every
recording helper and the `trace_function` decorator are no-ops, so the
workflows can be exercised without an exporter.
"""

import asyncio
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = structlog.get_logger()

OTLP_EXPORT_INTERVAL_MS = 30000
CONSOLE_EXPORT_INTERVAL_MS = 60000

tracer: Optional[trace.Tracer] = None
meter: Optional[metrics.Meter] = None

workflow_duration: Optional[metrics.Histogram] = None
registration_counter: Optional[metrics.Counter] = None
verification_counter: Optional[metrics.Counter] = None
match_distance: Optional[metrics.Histogram] = None
trigger_counter: Optional[metrics.Counter] = None


def _build_tracer_provider(resource: Resource, otlp_endpoint: Optional[str], console: bool) -> TracerProvider:
    provider = TracerProvider(resource=resource)
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    if console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    return provider


def _build_meter_provider(resource: Resource, otlp_endpoint: Optional[str], console: bool) -> MeterProvider:
    readers = []
    if otlp_endpoint:
        readers.append(PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=otlp_endpoint),
            export_interval_millis=OTLP_EXPORT_INTERVAL_MS
        ))
    if console:
        readers.append(PeriodicExportingMetricReader(
            exporter=ConsoleMetricExporter(),
            export_interval_millis=CONSOLE_EXPORT_INTERVAL_MS
        ))
    return MeterProvider(resource=resource, metric_readers=readers)


def setup_observability(
    service_name: str = "faceguard",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    enable_console_export: bool = False
) -> None:
    """
    Install tracer and meter providers and create the service's instruments.

    Args:
        service_name: `service.name` resource attribute
        service_version: `service.version` resource attribute
        otlp_endpoint: gRPC OTLP collector endpoint; nothing is exported when unset
        enable_console_export: Also print spans and metrics to stdout
    """
    global tracer, meter
    global workflow_duration, registration_counter, verification_counter, match_distance, trigger_counter

    logger.info(
        "Configuring OpenTelemetry",
        service_name=service_name,
        service_version=service_version,
        otlp_endpoint=otlp_endpoint,
        console_export=enable_console_export
    )

    resource = Resource.create({"service.name": service_name, "service.version": service_version})

    trace.set_tracer_provider(_build_tracer_provider(resource, otlp_endpoint, enable_console_export))
    tracer = trace.get_tracer(__name__)

    metrics.set_meter_provider(_build_meter_provider(resource, otlp_endpoint, enable_console_export))
    meter = metrics.get_meter(__name__)

    # Covers the gateway's outbound calls to the recognition backend
    HTTPXClientInstrumentor().instrument()

    workflow_duration = meter.create_histogram(
        name="faceguard_workflow_duration_seconds",
        description="Duration of register and verify workflows",
        unit="s"
    )
    registration_counter = meter.create_counter(
        name="faceguard_registrations_total",
        description="Registration attempts by outcome",
        unit="1"
    )
    verification_counter = meter.create_counter(
        name="faceguard_verifications_total",
        description="Verification attempts by outcome",
        unit="1"
    )
    match_distance = meter.create_histogram(
        name="faceguard_match_distance",
        description="Nearest descriptor distance per completed verification",
        unit="1"
    )
    trigger_counter = meter.create_counter(
        name="faceguard_capture_triggers_total",
        description="Capture trigger requests by debounce outcome",
        unit="1"
    )


def instrument_fastapi_app(app) -> None:
    """Attach the FastAPI request instrumentation; requires `setup_observability()` first."""
    if tracer is None:
        logger.warning("Skipping FastAPI instrumentation, tracing is not configured")
        return

    FastAPIInstrumentor.instrument_app(app)


@contextmanager
def _operation_span(name: str, func: Callable) -> Iterator[Any]:
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("code.function", func.__name__)
        span.set_attribute("code.namespace", func.__module__)
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_attribute("faceguard.success", False)
            span.set_attribute("faceguard.error_type", type(e).__name__)
            raise
        span.set_attribute("faceguard.success", True)


def trace_function(operation_name: Optional[str] = None):
    """
    Run the decorated function (sync or async) inside its own span.

    Args:
        operation_name: Span name; defaults to the function's qualified name
    """
    def decorator(func: Callable) -> Callable:
        span_name = operation_name or f"{func.__module__}.{func.__name__}"

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                if tracer is None:
                    return await func(*args, **kwargs)
                with _operation_span(span_name, func):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            if tracer is None:
                return func(*args, **kwargs)
            with _operation_span(span_name, func):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


def _outcome_attributes(operation: str, success: bool, error_type: Optional[str]) -> Dict[str, str]:
    attributes = {"operation": operation, "success": str(success).lower()}
    if error_type:
        attributes["error_type"] = error_type
    return attributes


def record_registration_metrics(success: bool, processing_time: float, error_type: Optional[str] = None) -> None:
    """Count a registration attempt and record how long it took."""
    if registration_counter is None:
        return

    attributes = _outcome_attributes("registration", success, error_type)
    registration_counter.add(1, attributes)
    workflow_duration.record(processing_time, attributes)


def record_verification_metrics(
    success: bool,
    processing_time: float,
    distance: Optional[float],
    error_type: Optional[str] = None
) -> None:
    """
    Count a verification attempt and record its duration.

    Args:
        success: Whether access was granted
        processing_time: Workflow duration in seconds
        distance: Nearest descriptor distance, or None when no comparison ran
        error_type: Exception class name when the workflow failed
    """
    if verification_counter is None:
        return

    attributes = _outcome_attributes("verification", success, error_type)
    verification_counter.add(1, attributes)
    workflow_duration.record(processing_time, attributes)

    if distance is not None:
        match_distance.record(distance, {"success": str(success).lower()})


def record_trigger_metrics(accepted: bool) -> None:
    if trigger_counter is None:
        return
    trigger_counter.add(1, {"accepted": str(accepted).lower()})


def get_trace_context() -> Dict[str, Any]:
    """Trace and span ids of the active span, for log correlation; empty when not tracing."""
    span = trace.get_current_span()
    if not span.is_recording():
        return {}

    span_context = span.get_span_context()
    return {
        "trace_id": f"{span_context.trace_id:032x}",
        "span_id": f"{span_context.span_id:016x}"
    }
