"""Observability setup for OpenTelemetry, Prometheus metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "emptyleg-engine"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    registry=REGISTRY
)

SYNC_RUNS = Counter(
    "emptyleg_sync_runs_total",
    "Provider sync runs by outcome",
    ["sync_type", "outcome"],
    registry=REGISTRY
)

SYNC_DURATION = Histogram(
    "emptyleg_sync_duration_seconds",
    "Wall-clock duration of provider sync runs",
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
    registry=REGISTRY
)

SYNC_DEAL_CHANGES = Counter(
    "emptyleg_sync_deal_changes_total",
    "Provider deals changed by sync",
    ["change"],
    registry=REGISTRY
)

DEALS_EXPIRED = Counter(
    "emptyleg_deals_expired_total",
    "Departed internal/operator deals expired by the sweeper",
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    "emptyleg_booking_transitions_total",
    "Booking state transitions by target status",
    ["status"],
    registry=REGISTRY
)

CAPACITY_REJECTIONS = Counter(
    "emptyleg_capacity_rejections_total",
    "Approvals refused because the deal had too few seats",
    registry=REGISTRY
)

NOTIFICATIONS = Counter(
    "emptyleg_notifications_total",
    "Outbound notifications by outcome",
    ["outcome"],
    registry=REGISTRY
)


def _add_trace_context(logger, method_name, event_dict):
    """Attach the active OpenTelemetry span to log events."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def setup_structured_logging() -> None:
    """
    Configure structlog and route stdlib logging through it.

    Services log through ``logging.getLogger(__name__)`` with ``extra=``
    fields; the ProcessorFormatter renders those records with the same
    processors as native structlog events, so both share one format.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        _add_trace_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
    ]
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors + [structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level)


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))
    return metrics.get_meter(__name__)


def instrument_fastapi(app) -> None:
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine) -> None:
    """Instrument the async engine's sync core with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_sync_run(sync_type: str, outcome: str, duration_seconds: float | None = None):
        SYNC_RUNS.labels(sync_type=sync_type, outcome=outcome).inc()
        if duration_seconds is not None:
            SYNC_DURATION.observe(duration_seconds)

    @staticmethod
    def record_sync_changes(created: int, updated: int, removed: int):
        SYNC_DEAL_CHANGES.labels(change="created").inc(created)
        SYNC_DEAL_CHANGES.labels(change="updated").inc(updated)
        SYNC_DEAL_CHANGES.labels(change="removed").inc(removed)

    @staticmethod
    def record_deals_expired(count: int):
        DEALS_EXPIRED.inc(count)

    @staticmethod
    def record_booking_transition(status: str):
        BOOKING_TRANSITIONS.labels(status=status).inc()

    @staticmethod
    def record_capacity_rejection():
        CAPACITY_REJECTIONS.inc()

    @staticmethod
    def record_notification(outcome: str):
        NOTIFICATIONS.labels(outcome=outcome).inc()


def get_prometheus_metrics() -> bytes:
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
