# telemetry.py — OpenTelemetry instrumentation for BoardFlow
"""
Configures distributed tracing.
Exports to an OTLP collector when OTEL_EXPORTER_OTLP_ENDPOINT is set,
otherwise spans go to the API's no-op tracer for development/testing.
"""
import os
import logging
from contextlib import contextmanager

from opentelemetry import trace

logger = logging.getLogger("boardflow.telemetry")

# Service identity
SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "boardflow-api")
SERVICE_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")


def setup_telemetry(app=None):
    """Initialise OpenTelemetry tracing and instrument FastAPI, SQLAlchemy and HTTPX.

    The SDK, exporter and instrumentations ship in the ``telemetry`` extra.
    Without them, or without an exporter endpoint, this is a no-op.
    """
    if not OTLP_ENDPOINT:
        logger.info("OpenTelemetry disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    try:
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME as RES_SVC_NAME
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.info("OpenTelemetry SDK not installed, tracing disabled")
        return None

    resource = Resource.create({
        RES_SVC_NAME: SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "deployment.environment": ENVIRONMENT,
    })
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)))
    trace.set_tracer_provider(provider)

    if app is not None:
        try:
            from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
            FastAPIInstrumentor.instrument_app(app, excluded_urls="health", tracer_provider=provider)
            logger.info("FastAPI instrumented with OpenTelemetry")
        except ImportError:
            logger.warning("opentelemetry-instrumentation-fastapi not installed")

    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        SQLAlchemyInstrumentor().instrument(tracer_provider=provider)
        logger.info("SQLAlchemy instrumented with OpenTelemetry")
    except ImportError:
        logger.warning("opentelemetry-instrumentation-sqlalchemy not installed")

    # Outbound text-generation calls
    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
        HTTPXClientInstrumentor().instrument(tracer_provider=provider)
        logger.info("HTTPX instrumented with OpenTelemetry")
    except ImportError:
        logger.warning("opentelemetry-instrumentation-httpx not installed")

    logger.info(f"OpenTelemetry initialised → {OTLP_ENDPOINT}")
    return provider


def get_tracer(name: str = "boardflow"):
    """Get a tracer instance. No-op unless a provider has been registered."""
    return trace.get_tracer(name, SERVICE_VERSION)


@contextmanager
def span(name: str, **attributes):
    """Start a span as the current span, tagging it with the given attributes"""
    with get_tracer().start_as_current_span(name) as current:
        for key, value in attributes.items():
            if value is not None:
                current.set_attribute(key, value)
        yield current
