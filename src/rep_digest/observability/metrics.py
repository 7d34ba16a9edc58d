"""
Prometheus metrics for rep-digest

The batch job is short-lived, so metrics are either scraped while a run is
in progress (start_metrics_server) or rendered once at the end of a run
(generate_metrics) for a push gateway or a textfile collector.
"""
import os
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# INPUT / MAP METRICS
# =======================

records_enumerated_total = Counter(
    name="digest_records_enumerated_total",
    documentation="Sales-order rows yielded by the input enumerator",
    labelnames=["window"],
    registry=REGISTRY,
)

map_failures_total = Counter(
    name="digest_map_failures_total",
    documentation="Rows dropped after exhausting the map retry budget",
    labelnames=["window"],
    registry=REGISTRY,
)

# =======================
# REDUCE METRICS
# =======================

partitions_reduced_total = Counter(
    name="digest_partitions_reduced_total",
    documentation="Partitions processed by the reduce stage",
    labelnames=["status"],  # status: sent, failed, skipped
    registry=REGISTRY,
)

notifications_sent_total = Counter(
    name="digest_notifications_sent_total",
    documentation="Report notifications handed to the notification interface",
    labelnames=["recipient_kind"],  # recipient_kind: admin, representative
    registry=REGISTRY,
)

partition_size_records = Histogram(
    name="digest_partition_size_records",
    documentation="Number of report rows per partition",
    labelnames=["recipient_kind"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000],
    registry=REGISTRY,
)

# =======================
# SCHEDULER METRICS
# =======================

retries_total = Counter(
    name="digest_retries_total",
    documentation="Unit retry attempts",
    labelnames=["stage"],  # stage: map, reduce
    registry=REGISTRY,
)

stage_duration_seconds = Histogram(
    name="digest_stage_duration_seconds",
    documentation="Time spent in each pipeline stage",
    labelnames=["stage"],  # stage: input, map, reduce, summarize
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 300.0],
    registry=REGISTRY,
)

run_peak_concurrency = Gauge(
    name="digest_run_peak_concurrency",
    documentation="Peak number of units in flight during the last run",
    registry=REGISTRY,
)

runs_total = Counter(
    name="digest_runs_total",
    documentation="Pipeline runs by terminal status",
    labelnames=["status"],  # status: completed, aborted
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Render the registry in Prometheus text format."""
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
    Context manager for tracking stage duration

    Usage:
        with track_duration(stage_duration_seconds, stage="map"):
            ...
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    if labels:
        gauge.labels(**labels).set(value)
    else:
        gauge.set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


def recipient_kind(key: str, admin_key: str = "admin") -> str:
    return "admin" if key == admin_key else "representative"


def record_run_summary(
    window: str,
    input_count: int,
    map_failure_count: int,
    partition_statuses: dict[str, str],
    partition_sizes: dict[str, int],
    retries_by_stage: dict[str, int],
    peak_concurrency: int,
) -> None:
    """
    Publish the end-of-run counters.

    Args:
        window: Query window label (e.g. "2026-09")
        input_count: Rows enumerated
        map_failure_count: Rows dropped in the map stage
        partition_statuses: Partition key -> "sent" | "failed" | "skipped"
        partition_sizes: Partition key -> report row count
        retries_by_stage: Stage name -> retry count
        peak_concurrency: Peak units in flight
    """
    increment_counter(records_enumerated_total, input_count, window=window)
    if map_failure_count:
        increment_counter(map_failures_total, map_failure_count, window=window)

    for key, status in partition_statuses.items():
        kind = recipient_kind(key)
        increment_counter(partitions_reduced_total, 1, status=status)
        if status == "sent":
            increment_counter(notifications_sent_total, 1, recipient_kind=kind)
        observe_histogram(partition_size_records, partition_sizes.get(key, 0), recipient_kind=kind)

    for stage, count in retries_by_stage.items():
        if count:
            increment_counter(retries_total, count, stage=stage)

    set_gauge(run_peak_concurrency, peak_concurrency)
