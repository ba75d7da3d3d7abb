"""
Prometheus metrics for the stock ledger.

Stock counters are incremented by InventoryService; HTTP counters by the
request hooks installed in setup_metrics_instrumentation. /metrics is
unauthenticated and meant for the internal network only.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers each write their samples to PROMETHEUS_MULTIPROC_DIR;
# the scrape aggregates them through a throwaway registry.
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = None if MULTIPROCESS_MODE else registry

stock_adjustments_total = Counter(
    'stock_adjustments_total',
    'Stock adjustments by operation and outcome',
    ['operation', 'outcome'],
    registry=_metric_registry
)

low_stock_alerts_total = Counter(
    'low_stock_alerts_total',
    'Low stock notifications emitted after a stock-out',
    registry=_metric_registry
)

notification_failures_total = Counter(
    'stock_notification_failures_total',
    'Stock notifications that could not be delivered',
    ['event'],
    registry=_metric_registry
)

http_requests_total = Counter(
    'http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
)


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status code."""

    @app.before_request
    def start_request_timer():
        g._request_started_at = time.perf_counter()

    @app.after_request
    def record_request_metrics(response):
        started_at = g.pop('_request_started_at', None)
        if started_at is None:
            return response

        endpoint = request.endpoint or 'unknown'
        try:
            http_request_duration_seconds.labels(
                method=request.method, endpoint=endpoint
            ).observe(time.perf_counter() - started_at)
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except ValueError as e:
            app.logger.warning(f"[METRICS] Could not record request metrics: {e}")
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition of every registered metric."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
