"""OTLP tracing for the HTTP layer and the playlist sync phases.

Tracing is opt-in: nothing is exported unless an OTLP endpoint is configured
and the ``otel`` extra is installed. ``sync_span`` is safe to call either way;
without a configured provider OpenTelemetry hands out non-recording spans.
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from flask import Flask

try:
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.flask import FlaskInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
except Exception:  # pragma: no cover - optional dependency
    trace = None  # type: ignore
    FlaskInstrumentor = None  # type: ignore

SYNC_TRACER_NAME = "songtagger.sync"


def _setting(app: Flask, key: str, default: Any = None) -> Any:
    value = app.config.get(key)
    if value is None:
        value = os.getenv(key, default)
    return value


def init_tracing(app: Flask) -> bool:
    """Export spans for requests and sync phases; False when tracing stays off."""
    app.extensions["tracing_enabled"] = False
    if FlaskInstrumentor is None:  # pragma: no cover - optional dependency
        return False
    endpoint = _setting(app, "OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return False

    provider = TracerProvider(
        resource=Resource.create({
            "service.name": _setting(app, "OTEL_SERVICE_NAME", "song-tagger"),
            "service.namespace": "songtagger",
        })
    )
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=endpoint,
                headers=_setting(app, "OTEL_EXPORTER_OTLP_HEADERS"),
                insecure=bool(_setting(app, "OTEL_EXPORTER_OTLP_INSECURE", True)),
            )
        )
    )
    trace.set_tracer_provider(provider)
    # Probe and scrape endpoints are not traced
    FlaskInstrumentor().instrument_app(app, excluded_urls="healthz,readyz,metrics")
    app.extensions["tracing_enabled"] = True
    return True


@contextmanager
def sync_span(name: str, **attributes: Optional[Any]) -> Iterator[Optional[Any]]:
    """Open a span named ``name`` tagged with the non-empty ``attributes``.

    Exceptions propagate unchanged; the span records them and is marked failed.
    """
    if trace is None:  # pragma: no cover - optional dependency
        yield None
        return
    tags: Dict[str, Any] = {
        f"songtagger.{key}": value for key, value in attributes.items() if value is not None
    }
    tracer = trace.get_tracer(SYNC_TRACER_NAME)
    with tracer.start_as_current_span(name, attributes=tags) as span:
        yield span


__all__ = ["SYNC_TRACER_NAME", "init_tracing", "sync_span"]
