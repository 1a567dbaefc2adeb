"""Metrics Protocol - what the pipeline records, without importing prometheus

The aggregator, vendor adapters and calendar service take any object with
these attributes. server/metrics.py provides the prometheus implementation;
NullMetrics is used by the CLI and tests.
"""

from typing import Any, Protocol


class LabeledCounter(Protocol):
    def labels(self, **kwargs: Any) -> "LabeledCounter": ...
    def inc(self, amount: float = 1) -> None: ...


class LabeledHistogram(Protocol):
    def labels(self, **kwargs: Any) -> "LabeledHistogram": ...
    def observe(self, value: float) -> None: ...


class MetricsCollector(Protocol):
    """Instruments recorded by the calendar pipeline

    Label sets:
    - vendor_requests: vendor, status
    - vendor_request_duration: vendor
    - events_synced: source
    - sync_duration: none
    - cache_lookups: result (hit, miss, stale)
    - api_requests: action, status
    """
    vendor_requests: LabeledCounter
    vendor_request_duration: LabeledHistogram
    events_synced: LabeledCounter
    sync_duration: LabeledHistogram
    cache_lookups: LabeledCounter
    api_requests: LabeledCounter

    def record_error(self, component: str, error: Exception) -> None: ...


class _Discard:
    """Accepts any counter or histogram call and drops it"""

    def labels(self, **kwargs: Any) -> "_Discard":
        return self

    def inc(self, amount: float = 1) -> None:
        return None

    def observe(self, value: float) -> None:
        return None


class NullMetrics:
    """No-op metrics for the CLI, tests and standalone use"""

    vendor_requests = vendor_request_duration = _Discard()
    events_synced = sync_duration = cache_lookups = _Discard()
    api_requests = _Discard()

    def record_error(self, component: str, error: Exception) -> None:
        return None
