"""OpenTelemetry tracing for reconciles and signing API calls.

Tracing is off unless ``OTEL_TRACES_ENABLED=true``. When it is off,
``trace_span`` yields None and costs nothing.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Tracer

from . import __version__

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "cfssl-issuer"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_tracer: Tracer | None = None


def tracing_enabled() -> bool:
    return os.getenv("OTEL_TRACES_ENABLED", "false").strip().lower() == "true"


def _build_provider(service_name: str) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.version": __version__})
    )
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    return provider


def initialize_tracing() -> None:
    """Install an OTLP exporting tracer provider if tracing is enabled.

    Environment Variables:
        OTEL_TRACES_ENABLED: "true" to enable (default: disabled)
        OTEL_SERVICE_NAME: Service name (default: cfssl-issuer)
        OTEL_EXPORTER_OTLP_ENDPOINT: OTLP gRPC endpoint (default: http://localhost:4317)
    """
    global _tracer

    if not tracing_enabled():
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME)
    try:
        trace.set_tracer_provider(_build_provider(service_name))
    except Exception as e:
        # A broken exporter must not keep the operator from starting.
        logger.warning(f"Failed to initialize tracing: {e}")
        return
    _tracer = trace.get_tracer(service_name)


def get_tracer() -> Tracer | None:
    """The active tracer, or None when tracing is disabled."""
    return _tracer


@contextmanager
def trace_span(
    name: str,
    kind: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span | None]:
    """Run a block inside a span.

    Args:
        name: Span name
        kind: Resource kind recorded as ``resource.kind``
        attributes: Extra span attributes
    """
    tracer = get_tracer()
    if tracer is None:
        yield None
        return

    attrs = dict(attributes or {})
    if kind:
        attrs["resource.kind"] = kind

    # Exceptions are recorded on the span and mark it as failed.
    with tracer.start_as_current_span(name, attributes=attrs) as span:
        yield span
