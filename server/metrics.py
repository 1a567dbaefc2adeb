"""
Prometheus Metrics Module

Provides instrumentation for the calendar pipeline:
- Upstream requests and durations
- Sync results and cache lookups
- API requests
- Error tracking

Usage:
    from server.metrics import metrics
    metrics.vendor_requests.labels(vendor="legistar", status="success").inc()
    metrics.cache_lookups.labels(result="hit").inc()
"""

from prometheus_client import Counter, Histogram, generate_latest, REGISTRY


class MeetcalMetrics:
    """Centralized metrics for the calendar pipeline and API"""

    def __init__(self):
        # Vendor metrics
        self.vendor_requests = Counter(
            'meetcal_vendor_requests_total',
            'Total upstream source requests',
            ['vendor', 'status']
        )

        self.vendor_request_duration = Histogram(
            'meetcal_vendor_request_duration_seconds',
            'Upstream request duration',
            ['vendor'],
            buckets=[0.25, 0.5, 1, 2, 5, 10, 30]
        )

        # Sync metrics
        self.events_synced = Counter(
            'meetcal_events_synced_total',
            'Normalized in-window events per source',
            ['source']
        )

        self.sync_duration = Histogram(
            'meetcal_sync_duration_seconds',
            'Full multi-source sync duration',
            buckets=[0.5, 1, 2, 5, 10, 20, 30]
        )

        self.cache_lookups = Counter(
            'meetcal_cache_lookups_total',
            'Cache lookups by result',
            ['result']  # hit, miss, stale
        )

        # API metrics
        self.api_requests = Counter(
            'meetcal_api_requests_total',
            'Total calendar API requests',
            ['action', 'status']  # status: success/error/timeout
        )

        # Error metrics
        self.errors = Counter(
            'meetcal_errors_total',
            'Total errors by component and type',
            ['component', 'error_type']
        )

    def record_error(self, component: str, error: Exception):
        """Record an error

        Args:
            component: Component name (vendor/aggregator/normalizer/api)
            error: Exception instance
        """
        error_type = type(error).__name__
        self.errors.labels(component=component, error_type=error_type).inc()


# Global metrics instance
metrics = MeetcalMetrics()


def get_metrics_text() -> str:
    """Get Prometheus metrics in text format

    Returns:
        Metrics text suitable for /metrics endpoint
    """
    return generate_latest(REGISTRY).decode('utf-8')
