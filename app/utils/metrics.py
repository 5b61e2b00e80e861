"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
click_callbacks_total = Counter(
    "click_callbacks_total",
    "Total Click callbacks by action and response code",
    ["action", "error_code"],
)

payment_transitions_total = Counter(
    "payment_transitions_total",
    "Applied payment status transitions",
    ["event", "new_status"],
)

access_grants_total = Counter(
    "access_grants_total",
    "Access grant attempts",
    ["result"],  # granted, failed, queued
)

telegram_requests_total = Counter(
    "telegram_requests_total",
    "Total Telegram API requests",
    ["method", "status"],
)

# Histograms
click_callback_duration_seconds = Histogram(
    "click_callback_duration_seconds",
    "Click callback handling duration",
    ["action"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5],
)

telegram_request_duration_seconds = Histogram(
    "telegram_request_duration_seconds",
    "Telegram API request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
