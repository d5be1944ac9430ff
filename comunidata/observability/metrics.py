"""
Prometheus metrics collection for the comunidata pipeline

Instruments normalization, the two AI stages, the resilience layer and the
report store.
"""
import os
import time
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# INGESTION METRICS
# =======================

rows_normalized_total = Counter(
    name="comunidata_rows_normalized_total",
    documentation="CSV rows turned into reports",
    registry=REGISTRY,
)

rows_skipped_total = Counter(
    name="comunidata_rows_skipped_total",
    documentation="CSV rows skipped because they could not be parsed",
    registry=REGISTRY,
)

uploads_total = Counter(
    name="comunidata_uploads_total",
    documentation="Uploads handled by the orchestrator",
    labelnames=["processing_status"],  # FullyProcessed, NormalizedOnly, failed
    registry=REGISTRY,
)

# =======================
# ENRICHMENT METRICS
# =======================

records_processed_total = Counter(
    name="comunidata_records_processed_total",
    documentation="Reports leaving an AI stage, by stage and resulting status",
    labelnames=["stage", "status"],  # stage: validation, embedding
    registry=REGISTRY,
)

stage_duration_seconds = Histogram(
    name="comunidata_stage_duration_seconds",
    documentation="Wall time of one validation group or one embedding call",
    labelnames=["stage"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 600.0],
    registry=REGISTRY,
)

wave_timeouts_total = Counter(
    name="comunidata_wave_timeouts_total",
    documentation="Groups or records whose result was not received before the deadline",
    labelnames=["stage"],
    registry=REGISTRY,
)

# =======================
# RESILIENCE METRICS
# =======================

provider_calls_total = Counter(
    name="comunidata_provider_calls_total",
    documentation="Calls through the resilient wrapper, by outcome",
    labelnames=["provider", "outcome"],  # outcome: success, failure, rejected, fallback
    registry=REGISTRY,
)

retries_total = Counter(
    name="comunidata_retries_total",
    documentation="Retry attempts against external providers",
    labelnames=["provider"],
    registry=REGISTRY,
)

circuit_breaker_state = Gauge(
    name="comunidata_circuit_breaker_state",
    documentation="Breaker state: 0 closed, 1 half-open, 2 open",
    labelnames=["breaker"],
    registry=REGISTRY,
)

# =======================
# STORE METRICS
# =======================

store_writes_total = Counter(
    name="comunidata_store_writes_total",
    documentation="Reports written to the report store",
    labelnames=["store"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager observing elapsed time on a labelled histogram

    Usage:
        with track_duration(stage_duration_seconds, stage="validation"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.start_time: float | None = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.histogram.labels(**self.labels).observe(time.perf_counter() - self.start_time)
        return False
