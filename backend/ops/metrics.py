"""
Prometheus metrics endpoint.

Exposes application metrics in Prometheus format for scraping.

Metrics exposed:
- ledger_entries_created_total: Journal entries created, by journal
- ledger_entries_posted_total: Journal entries posted, by journal
- ledger_command_failures_total: Refused commands, by command and reason code
- ledger_closures_total: Period/exercise closings, by closure type
- ledger_open_anomalies: Open anomalies by severity (collected on scrape)
- ledger_request_duration_seconds: HTTP request duration histogram
"""
import logging
import re
import time

from django.db.models import Count
from django.http import HttpResponse
from django.views import View
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


entries_created = Counter(
    "ledger_entries_created_total",
    "Journal entries created",
    ["journal"],
)

entries_posted = Counter(
    "ledger_entries_posted_total",
    "Journal entries posted to account balances",
    ["journal"],
)

command_failures = Counter(
    "ledger_command_failures_total",
    "Commands refused with a reason code",
    ["command", "code"],
)

closures = Counter(
    "ledger_closures_total",
    "Successful closing operations",
    ["closure_type"],
)

open_anomalies = Gauge(
    "ledger_open_anomalies",
    "Open anomalies by severity",
    ["severity"],
)

request_duration = Histogram(
    "ledger_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

active_requests = Gauge(
    "ledger_active_requests",
    "Number of requests currently being processed",
)


def record_failure(command: str, code: str | None) -> None:
    command_failures.labels(command=command, code=code or "UNKNOWN").inc()


def collect_metrics():
    """Refresh gauges that are read from the database at scrape time."""
    from accounting.models import Anomaly

    try:
        counts = dict(
            Anomaly.objects.filter(status=Anomaly.Status.OPEN)
            .values_list("severity")
            .annotate(count=Count("id"))
        )
        for severity in Anomaly.Severity.values:
            open_anomalies.labels(severity=severity).set(counts.get(severity, 0))
    except Exception as e:
        logger.error(f"Error collecting metrics: {e}")


class MetricsView(View):
    """
    Prometheus metrics endpoint at /_metrics/.

    Should be protected in production (internal network only).
    """

    def get(self, request):
        collect_metrics()
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)


def track_request_metrics(get_response):
    """
    Middleware to track request duration metrics.

    Add to MIDDLEWARE after SecurityMiddleware:
        "ops.metrics.track_request_metrics",
    """

    def middleware(request):
        start = time.time()
        active_requests.inc()
        status = 500

        try:
            response = get_response(request)
            status = response.status_code
            return response
        finally:
            active_requests.dec()
            duration = time.time() - start

            # Normalize endpoint for cardinality control
            endpoint = re.sub(r"/\d+/", "/{id}/", request.path)
            endpoint = re.sub(r"/[0-9a-f-]{36}/", "/{uuid}/", endpoint)

            request_duration.labels(
                method=request.method,
                endpoint=endpoint[:50],
                status=f"{status // 100}xx",
            ).observe(duration)

    return middleware
