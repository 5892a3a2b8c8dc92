"""Prometheus metric definitions for the payments service."""

from contextlib import contextmanager
from typing import Iterator

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


class PaymentMetrics:
    """Lifecycle counters and timers handed to the payment service.

    Each instance registers its own collectors, so tests can pass a fresh
    `CollectorRegistry` and read samples back without touching the process
    registry.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.registry = registry
        self.created_total = Counter(
            "payments_created_total",
            "Total number of payments created",
            registry=registry,
        )
        self.processed_total = Counter(
            "payments_processed_total",
            "Total number of processed payments by outcome",
            ["status"],
            registry=registry,
        )
        self.processing_duration_seconds = Histogram(
            "payments_processing_duration_seconds",
            "Time taken to process payments",
            registry=registry,
        )

    def payment_created(self) -> None:
        self.created_total.inc()

    def payment_processed(self, success: bool) -> None:
        self.processed_total.labels(status="success" if success else "failure").inc()

    @contextmanager
    def time_processing(self) -> Iterator[None]:
        with self.processing_duration_seconds.time():
            yield


# Process-wide handle used by the HTTP app.
payment_metrics = PaymentMetrics()


def metrics_response(registry: CollectorRegistry = REGISTRY) -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(registry), media_type="text/plain")
