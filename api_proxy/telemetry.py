from typing import Sequence

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

from api_proxy.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

# ASGI receive/send events repeated once per body chunk in either direction
RELAY_CHUNK_EVENTS = frozenset({"http.request", "http.response.body"})


def is_relay_chunk_span(span: ReadableSpan) -> bool:
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") in RELAY_CHUNK_EVENTS


class RelaySpanExporter(SpanExporter):
    """
    Exports request-level spans of the proxy and discards chunk spans.

    Buffering an upload and streaming a download each emit one ASGI span per
    chunk; a single relayed file would otherwise export hundreds of them.
    The number discarded is kept in `dropped`.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter
        self.dropped = 0

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = []
        for span in spans:
            if is_relay_chunk_span(span):
                self.dropped += 1
            else:
                kept.append(span)
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self) -> None:
        self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.exporter.force_flush(timeout_millis)


def parse_otlp_headers(raw: str) -> dict:
    headers = {}
    for entry in raw.split(","):
        key, sep, value = entry.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def configure_tracing() -> None:
    """Install the process tracer provider; export only when OTLP_ENDPOINT is set."""
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    if OTLP_ENDPOINT:
        exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=parse_otlp_headers(OTLP_HEADERS) or None,
        )
        provider.add_span_processor(BatchSpanProcessor(RelaySpanExporter(exporter)))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app)
