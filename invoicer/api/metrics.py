"""Prometheus metrics for the invoicer API.

Exposes:
- Request counts by endpoint and status
- Request duration histograms
- Extraction runs by method and completeness
- AI extraction calls by provider/status and their latency
- Invoice numbers issued

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

# Extraction metrics
extraction_requests_total = Counter(
    "extraction_requests_total",
    "Total extraction runs",
    ["method", "status"],  # method: regex/ai/hybrid, status: complete/incomplete
)

ai_extraction_requests_total = Counter(
    "ai_extraction_requests_total",
    "Total AI extraction calls",
    ["provider", "status"],  # success, failed
)

ai_extraction_duration_seconds = Histogram(
    "ai_extraction_duration_seconds",
    "AI extraction call duration in seconds",
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 30.0),
)

# Numbering metrics
invoice_numbers_issued_total = Counter(
    "invoice_numbers_issued_total",
    "Total invoice numbers issued",
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
