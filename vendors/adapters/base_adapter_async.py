"""Async Base Adapter - Shared HTTP, JSON decoding and retry for upstream sources."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from config import get_logger
from pipeline.protocols import MetricsCollector, NullMetrics
from vendors.session_manager_async import AsyncSessionManager
from exceptions import VendorHTTPError

logger = get_logger(__name__).bind(component="vendor")

T = TypeVar("T")


class AsyncBaseAdapter:
    """Async base adapter. Subclasses build URLs and call _get_json().

    Contract: every HTTP failure surfaces as VendorHTTPError, and
    _with_retry() retries those with exponential backoff before re-raising.
    """

    def __init__(
        self,
        vendor: str,
        max_attempts: int = 3,
        retry_base_delay: float = 0.5,
        http_timeout: int = 30,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1 for {vendor}")

        self.vendor = vendor
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.http_timeout = http_timeout
        self.metrics = metrics or NullMetrics()
        self._sleep = sleep

        logger.info("initialized async adapter", vendor=vendor, max_attempts=max_attempts)

    async def _get_session(self) -> aiohttp.ClientSession:
        return await AsyncSessionManager.get_session(self.vendor, timeout_total=self.http_timeout)

    def _record(self, status: str, duration: float, error: Optional[Exception] = None) -> None:
        """Count one request outcome; durations only for successes"""
        self.metrics.vendor_requests.labels(vendor=self.vendor, status=status).inc()
        if error is None:
            self.metrics.vendor_request_duration.labels(vendor=self.vendor).observe(duration)
        else:
            self.metrics.record_error(component="vendor", error=error)

    async def _request(self, method: str, url: str, source_id: Optional[str] = None, **kwargs) -> aiohttp.ClientResponse:
        """Send one request. Raises VendorHTTPError on status >= 400, timeout or connection failure."""
        session = await self._get_session()
        kwargs.setdefault("timeout", aiohttp.ClientTimeout(total=self.http_timeout))

        started = time.time()
        try:
            response = await session.request(method, url, **kwargs)
        except asyncio.TimeoutError as e:
            elapsed = time.time() - started
            err = VendorHTTPError(f"Request timeout after {elapsed:.1f}s", vendor=self.vendor, url=url, source_id=source_id)
            self._record("timeout", elapsed, err)
            logger.warning("vendor request timeout", vendor=self.vendor, source=source_id, url=url[:100], duration_seconds=round(elapsed, 2))
            raise err from e
        except aiohttp.ClientError as e:
            elapsed = time.time() - started
            err = VendorHTTPError(f"Request failed: {e}", vendor=self.vendor, url=url, source_id=source_id)
            self._record("error", elapsed, err)
            logger.warning("vendor request failed", vendor=self.vendor, source=source_id, url=url[:100], error=str(e), error_type=type(e).__name__)
            raise err from e

        elapsed = time.time() - started
        logger.debug("vendor response", vendor=self.vendor, source=source_id, method=method, status_code=response.status, duration_seconds=round(elapsed, 2))

        if response.status >= 400:
            body = await response.text()
            err = VendorHTTPError(
                f"HTTP {response.status} error",
                vendor=self.vendor,
                status_code=response.status,
                url=url,
                source_id=source_id,
            )
            self._record(f"http_{response.status}", elapsed, err)
            logger.warning(
                "vendor http error",
                vendor=self.vendor,
                source=source_id,
                status_code=response.status,
                url=url[:100],
                body_preview=body[:500] if body else None,
            )
            raise err

        self._record("success", elapsed)
        return response

    async def _get(self, url: str, source_id: Optional[str] = None, **kwargs) -> aiohttp.ClientResponse:
        return await self._request("GET", url, source_id=source_id, **kwargs)

    async def _get_json(self, url: str, source_id: Optional[str] = None, **kwargs) -> Any:
        """GET and decode JSON. Undecodable bodies raise VendorHTTPError so they are retried."""
        # Legistar serves XML unless JSON is asked for explicitly
        kwargs["headers"] = {"Accept": "application/json", **kwargs.get("headers", {})}

        response = await self._get(url, source_id=source_id, **kwargs)
        try:
            return await response.json(content_type=None)
        except ValueError as e:
            try:
                preview = await response.text()
            except aiohttp.ClientError:
                preview = ""
            logger.warning("vendor json parse failed", vendor=self.vendor, source=source_id, url=url[:100], error=str(e), body_preview=preview[:200] or None)
            raise VendorHTTPError(f"JSON parse failed: {e}", vendor=self.vendor, url=url, source_id=source_id) from e

    async def _with_retry(self, operation: Callable[[], Awaitable[T]], source_id: str, what: str) -> T:
        """Run operation, retrying VendorHTTPError with delay base * 2**attempt.

        Raises the last VendorHTTPError once max_attempts is exhausted.
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except VendorHTTPError as e:
                if attempt >= self.max_attempts - 1:
                    logger.error(
                        "vendor fetch failed after retries",
                        vendor=self.vendor,
                        source=source_id,
                        operation=what,
                        attempts=self.max_attempts,
                        error=e.message,
                        status_code=e.status_code,
                    )
                    raise

                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "vendor fetch failed - retrying",
                    vendor=self.vendor,
                    source=source_id,
                    operation=what,
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    delay_seconds=delay,
                    error=e.message,
                )
                await self._sleep(delay)

        raise AssertionError("unreachable: retry loop always returns or raises")
