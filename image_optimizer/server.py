import logging
from typing import AbstractSet, Dict, Optional, Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from image_optimizer.vars import ORIGIN_SERVER_URL, OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

from .routes import router

logger = logging.getLogger("uvicorn.error")

# ASGI events emitted once per chunk while a proxied body is streamed
STREAMED_EVENT_TYPES = frozenset({"http.request", "http.response.body"})


class ProxySpanExporter(SpanExporter):
    """
    Forwards spans to ``exporter`` without the per-chunk ASGI spans.

    Proxied bodies travel in both directions chunk by chunk, so a single
    page would otherwise add one span for every chunk read and written.
    """

    def __init__(self, exporter: SpanExporter, dropped_event_types: AbstractSet[str] = STREAMED_EVENT_TYPES):
        self.exporter = exporter
        self.dropped_event_types = dropped_event_types

    def is_dropped(self, span: ReadableSpan) -> bool:
        event_type = (span.attributes or {}).get("asgi.event.type")
        return event_type in self.dropped_event_types

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not self.is_dropped(span)]
        return self.exporter.export(kept) if kept else SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def parse_otlp_headers(raw: str) -> Optional[Dict[str, str]]:
    """Parse ``key=value,key2=value2``; entries without a key are skipped."""
    headers = {}
    for entry in raw.split(","):
        key, sep, value = entry.partition("=")
        if not sep or not key.strip():
            if entry.strip():
                logger.warning(f"[Tracing] Ignoring malformed OTLP header entry: {entry.strip()}")
            continue
        headers[key.strip().lower()] = value.strip()
    return headers or None


def configure_tracing(endpoint: Optional[str], raw_headers: str = "") -> TracerProvider:
    """Install the global tracer provider, exporting over OTLP when an endpoint is given."""
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    if endpoint:
        exporter = OTLPSpanExporter(endpoint=endpoint, headers=parse_otlp_headers(raw_headers))
        provider.add_span_processor(BatchSpanProcessor(ProxySpanExporter(exporter)))
        logger.info(f"[Tracing] Exporting spans to {endpoint}")
    trace.set_tracer_provider(provider)
    return provider


app = FastAPI()
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)

configure_tracing(OTLP_ENDPOINT, OTLP_HEADERS)
FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics")

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME, "origin": ORIGIN_SERVER_URL or "unset"})

app.include_router(router)
