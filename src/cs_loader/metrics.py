"""
Prometheus metrics for batch dispatch.

Registered in the global REGISTRY on import; expose them with
``prometheus_client.start_http_server`` if the process should be scraped.
"""

from prometheus_client import Counter, Histogram


BATCHES_DISPATCHED_TOTAL = Counter(
    "csload_batches_dispatched_total",
    "Batches handed to the transport",
    ["mode", "outcome"],
)

DOCUMENTS_UPLOADED_TOTAL = Counter(
    "csload_documents_uploaded_total",
    "Documents contained in dispatched batches",
    ["mode"],
)

BATCH_BYTES = Histogram(
    "csload_batch_bytes",
    "Serialized batch payload size in bytes",
    buckets=[1_000, 10_000, 100_000, 500_000, 1_000_000, 2_500_000, 4_000_000, 5_000_000],
)

UPLOAD_LATENCY_SEC = Histogram(
    "csload_upload_latency_seconds",
    "Transport upload latency",
    ["mode"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
)

RATE_LIMIT_WAIT_SEC = Histogram(
    "csload_rate_limit_wait_seconds",
    "Time spent waiting for a dispatch slot",
    buckets=[0, 0.5, 1, 2.5, 5, 7.5, 10],
)

FAILURES_PERSISTED_TOTAL = Counter(
    "csload_failures_persisted_total",
    "Failed payloads handed to the failure sink",
    ["outcome"],
)


class MetricsRegistry:
    """Groups the loader metrics for callers that prefer attribute access."""

    batches_dispatched_total = BATCHES_DISPATCHED_TOTAL
    documents_uploaded_total = DOCUMENTS_UPLOADED_TOTAL
    batch_bytes = BATCH_BYTES
    upload_latency_sec = UPLOAD_LATENCY_SEC
    rate_limit_wait_sec = RATE_LIMIT_WAIT_SEC
    failures_persisted_total = FAILURES_PERSISTED_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
