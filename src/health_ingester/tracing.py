"""OpenTelemetry tracing setup for the ingester."""

from __future__ import annotations

import os
from collections.abc import Mapping

import structlog
from opentelemetry import propagate, trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from . import __version__
from .config import TracingSettings

logger = structlog.get_logger(__name__)


def setup_tracing(settings: TracingSettings) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider when tracing is enabled.

    The exporter reads its endpoint from the standard ``OTEL_EXPORTER_OTLP_*``
    variables; ``OTEL_TRACES_EXPORTER=none`` switches it off.

    Returns:
        The installed provider, or None when tracing stays disabled.
    """
    if not settings.enabled:
        logger.info("tracing_disabled")
        return None

    if os.getenv("OTEL_TRACES_EXPORTER", "otlp").lower() in {"none", ""}:
        logger.info("tracing_exporter_disabled")
        return None

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": settings.service_name, "service.version": __version__}
        )
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.info("tracing_configured", service_name=settings.service_name)
    return provider


def shutdown_tracing(provider: TracerProvider | None) -> None:
    """Flush pending spans and stop the exporter."""
    if provider is not None:
        provider.shutdown()


def request_context(headers: Mapping[str, str]) -> Context | None:
    """Continue a trace started by the caller, if its headers carry one."""
    if not headers:
        return None
    return propagate.extract(dict(headers))
