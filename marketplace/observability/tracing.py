"""
Distributed Tracing with OpenTelemetry.

Spans cover HTTP requests, SQL statements and each fulfillment attempt.
Everything here is a no-op when TRACING_ENABLED is false.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from marketplace.config import settings

TRACER_NAME = "marketplace.operations"


def setup_tracing() -> None:
    """Install a TracerProvider exporting to the OTLP collector."""
    if not settings.tracing_enabled:
        return

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.service_name,
                "service.version": settings.api_version,
                "deployment.environment": settings.environment,
            }
        )
    )
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """Trace every request. Call once, after the app is created."""
    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace statements on an async engine."""
    if settings.tracing_enabled:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def span_attributes(**attributes: Any) -> dict[str, str | int | float | bool]:
    """Drop None values and stringify anything OpenTelemetry can't store."""
    return {
        key: value if isinstance(value, (str, int, float, bool)) else str(value)
        for key, value in attributes.items()
        if value is not None
    }


@contextmanager
def trace_operation(operation_name: str, **attributes: Any) -> Iterator[Span]:
    """
    Run a block inside a span; an escaping exception marks the span as failed.

    Usage:
        with trace_operation("order_fulfillment", order_id=order_id) as span:
            span.set_attribute("items", 2)
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(
        operation_name,
        attributes=span_attributes(**attributes),
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except BaseException as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
