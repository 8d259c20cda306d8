"""OpenTelemetry + Prometheus fallback wiring for the task viewer."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from taskviewer import config

logger = logging.getLogger("taskviewer.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_watch_event_counter: Any | None = None
_broadcast_counter: Any | None = None
_mutation_counter: Any | None = None
_parser_skip_counter: Any | None = None
_metadata_rebuild_hist: Any | None = None

_prom_enabled = False
_prom_watch_event_counter: Any | None = None
_prom_broadcast_counter: Any | None = None
_prom_mutation_counter: Any | None = None
_prom_parser_skip_counter: Any | None = None
_prom_metadata_rebuild_hist: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _prom_labels(**labels: str) -> dict[str, str]:
    return {key: (value or "").strip() or "unknown" for key, value in labels.items()}


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _watch_event_counter, _broadcast_counter, _mutation_counter
    global _parser_skip_counter, _metadata_rebuild_hist
    global _prom_enabled
    global _prom_watch_event_counter, _prom_broadcast_counter, _prom_mutation_counter
    global _prom_parser_skip_counter, _prom_metadata_rebuild_hist

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (TASKVIEWER_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "taskviewer"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "taskviewer",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("taskviewer")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("taskviewer")

    _watch_event_counter = meter.create_counter(
        "taskviewer_watch_events_total",
        unit="1",
        description="Qualifying filesystem events handled per watched root",
    )
    _broadcast_counter = meter.create_counter(
        "taskviewer_broadcast_deliveries_total",
        unit="1",
        description="Stream event deliveries by outcome",
    )
    _mutation_counter = meter.create_counter(
        "taskviewer_mutations_total",
        unit="1",
        description="Task and session mutations by outcome",
    )
    _parser_skip_counter = meter.create_counter(
        "taskviewer_parser_skips_total",
        unit="1",
        description="Malformed files skipped while scanning",
    )
    _metadata_rebuild_hist = meter.create_histogram(
        "taskviewer_metadata_rebuild_ms",
        unit="ms",
        description="Duration of full session metadata rebuilds",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_watch_event_counter = Counter(
                "taskviewer_watch_events_total",
                "Qualifying filesystem events handled per watched root",
                ["root", "kind"],
            )
            _prom_broadcast_counter = Counter(
                "taskviewer_broadcast_deliveries_total",
                "Stream event deliveries by outcome",
                ["result"],
            )
            _prom_mutation_counter = Counter(
                "taskviewer_mutations_total",
                "Task and session mutations by outcome",
                ["operation", "result"],
            )
            _prom_parser_skip_counter = Counter(
                "taskviewer_parser_skips_total",
                "Malformed files skipped while scanning",
                ["source"],
            )
            _prom_metadata_rebuild_hist = Histogram(
                "taskviewer_metadata_rebuild_ms",
                "Duration of full session metadata rebuilds",
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception:
        logger.debug("FastAPI uninstrumentation failed", exc_info=True)
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception:
        logger.debug("Meter provider shutdown failed", exc_info=True)
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception:
        logger.debug("Trace provider shutdown failed", exc_info=True)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_watch_event(root: str, kind: str) -> None:
    if _enabled and _watch_event_counter is not None:
        _watch_event_counter.add(1, {"root": root or "unknown", "kind": kind or "unknown"})
    if _prom_enabled and _prom_watch_event_counter is not None:
        _prom_watch_event_counter.labels(**_prom_labels(root=root, kind=kind)).inc()


def record_broadcast(delivered: int, dropped: int) -> None:
    for result, count in (("delivered", delivered), ("dropped", dropped)):
        if count <= 0:
            continue
        if _enabled and _broadcast_counter is not None:
            _broadcast_counter.add(count, {"result": result})
        if _prom_enabled and _prom_broadcast_counter is not None:
            _prom_broadcast_counter.labels(result=result).inc(count)


def record_mutation(operation: str, result: str) -> None:
    labels = {"operation": operation or "unknown", "result": result or "unknown"}
    if _enabled and _mutation_counter is not None:
        _mutation_counter.add(1, labels)
    if _prom_enabled and _prom_mutation_counter is not None:
        _prom_mutation_counter.labels(**_prom_labels(**labels)).inc()


def record_parser_skip(source: str) -> None:
    if _enabled and _parser_skip_counter is not None:
        _parser_skip_counter.add(1, {"source": source or "unknown"})
    if _prom_enabled and _prom_parser_skip_counter is not None:
        _prom_parser_skip_counter.labels(**_prom_labels(source=source)).inc()


def record_metadata_rebuild(duration_ms: float) -> None:
    value = max(0.0, float(duration_ms))
    if _enabled and _metadata_rebuild_hist is not None:
        _metadata_rebuild_hist.record(value)
    if _prom_enabled and _prom_metadata_rebuild_hist is not None:
        _prom_metadata_rebuild_hist.observe(value)
