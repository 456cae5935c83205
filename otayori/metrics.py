"""
Prometheus metrics for the message box API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Path labels are route templates (see route_label)
- Domain counters for token rotations and submitted messages

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

token_rotations_total = Counter(
    "token_rotations_total",
    "Total staff access token rotations",
)

# result: created, validation_error
messages_submitted_total = Counter(
    "messages_submitted_total",
    "Total student message submissions by outcome",
    labelnames=["result"]
)


# =============================================================================
# Helper Functions
# =============================================================================

UNMATCHED_PATH = "unmatched"


def route_label(scope: dict) -> str:
    """
    Path label for a request: the template of the matched route.

    /api/staff/themes/12 -> /api/staff/themes/{theme_id}
    Requests that matched no API or page route share the "unmatched" label.
    """
    path = getattr(scope.get("route"), "path", None)
    if isinstance(path, str) and path:
        return path
    return UNMATCHED_PATH


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template from route_label
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    http_requests_total.labels(
        method=method,
        path=path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=path
    ).observe(latency_seconds)


def record_token_rotation() -> None:
    token_rotations_total.inc()


def record_message_submission(result: str) -> None:
    """
    Record a student submission outcome.

    Args:
        result: "created" or "validation_error"
    """
    messages_submitted_total.labels(result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
