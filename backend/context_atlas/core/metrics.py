"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

INGEST_DURATION = Histogram(
    "ctxa_ingest_duration_seconds",
    "Knowledge source ingestion duration",
    labelnames=("source_type",),
    registry=REGISTRY,
)

INGEST_OUTCOMES = Counter(
    "ctxa_ingest_outcomes_total",
    "Knowledge source ingestion runs by final status",
    labelnames=("status",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "ctxa_knowledge_chunks",
    "Number of knowledge chunks stored",
    registry=REGISTRY,
)

CONTEXT_LATENCY = Histogram(
    "ctxa_context_latency_seconds",
    "Context assembly latency",
    registry=REGISTRY,
)

STAGE_DEGRADED = Counter(
    "ctxa_context_stage_degraded_total",
    "Context assembly stages that degraded to an empty contribution",
    labelnames=("stage",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "INGEST_DURATION",
    "INGEST_OUTCOMES",
    "INDEX_SIZE",
    "CONTEXT_LATENCY",
    "STAGE_DEGRADED",
    "metrics_response",
]
