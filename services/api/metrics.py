"""Prometheus metrics for the invoice extraction API.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Extraction runs by terminal stage
- Extraction and inference durations
- Invoice record operations

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Extraction pipeline metrics
extraction_runs_total = Counter(
    "extraction_runs_total",
    "Total extraction runs by terminal stage",
    ["stage"],  # done, fetch_failed, no_json_found, ...
)

extraction_duration_seconds = Histogram(
    "extraction_duration_seconds",
    "End-to-end extraction duration in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

inference_duration_seconds = Histogram(
    "inference_duration_seconds",
    "Inference provider call duration in seconds",
    ["provider"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

# Invoice record metrics
invoice_operations_total = Counter(
    "invoice_operations_total",
    "Total invoice record operations",
    ["operation", "status"],  # create/update/delete, success/failed
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
