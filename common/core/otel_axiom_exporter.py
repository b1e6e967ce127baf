from typing import Any, Dict, Optional
import functools
import asyncio
import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from common.core.config import settings

# Configure logging at module level
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


# Global flag to ensure initialization only happens once
_initialized = False
axiom_tracer = None


def _initialize_telemetry():
    """Initialize telemetry once and only once."""
    global _initialized, axiom_tracer

    if _initialized:
        return

    resource = Resource(
        attributes={
            SERVICE_NAME: settings.otel_service_name,
            SERVICE_VERSION: settings.otel_service_version,
        }
    )

    provider = TracerProvider(resource=resource)

    # Export spans only when an Axiom token is configured; otherwise spans
    # are still created so trace ids show up in logs.
    if settings.axiom_token:
        otlp_trace_exporter = OTLPSpanExporter(
            endpoint="https://api.axiom.co/v1/traces",
            headers={
                "Authorization": f"Bearer {settings.axiom_token}",
                "X-Axiom-Dataset": settings.axiom_dataset or "",
            },
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_trace_exporter))

    axiom_tracer = provider.get_tracer(settings.otel_service_name)

    _initialized = True
    logging.getLogger(__name__).debug("Telemetry initialized")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance. Ensures telemetry is initialized.
    Use this instead of logging.getLogger() directly.
    """
    if not _initialized:
        _initialize_telemetry()
    return logging.getLogger(name)


def _span_name(func, args) -> str:
    # Include the class name for methods
    if args and hasattr(args[0], func.__name__):
        return f"{args[0].__class__.__name__}.{func.__name__}"
    return func.__name__


# Custom decorator for automatic span naming
def trace_span(func):
    """Decorator that automatically creates a span with the function name."""

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        if not _initialized:
            _initialize_telemetry()
        with axiom_tracer.start_as_current_span(_span_name(func, args)):
            return func(*args, **kwargs)

    @functools.wraps(func)
    async def async_wrapper(*args, **kwargs):
        if not _initialized:
            _initialize_telemetry()
        with axiom_tracer.start_as_current_span(_span_name(func, args)):
            return await func(*args, **kwargs)

    # Return appropriate wrapper based on function type
    if asyncio.iscoroutinefunction(func):
        return async_wrapper
    else:
        return sync_wrapper


# Helper function to log within current span context
def log_span_event(message: str, attributes: Optional[Dict[str, Any]] = None):
    """
    Log a message as an event in the current span.
    This will make the log appear in the trace view in Axiom.
    """
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        current_span.add_event(message, attributes=attributes or {})

    # Also log normally so it appears in logs
    logger = get_logger(__name__)
    logger.info(message, extra=attributes)
