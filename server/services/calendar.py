"""
Calendar service - request/response boundary around the Aggregator

Callers (HTTP routes, CLI, or any host message bridge) hand in a request and
get back a plain dict: {"success": True, ...} or {"success": False, "error": ...}.
Each call is bounded by the transport timeout; the pipeline itself never
cancels on its own.
"""

import asyncio
from typing import Any, Awaitable, Dict, Optional

from config import get_logger
from exceptions import MeetcalError, SyncError, ValidationError, VendorError
from pipeline.aggregator import Aggregator
from pipeline.protocols import MetricsCollector, NullMetrics
from server.utils.responses import error_response, success_response

logger = get_logger(__name__).bind(component="api")

ACTION_GET_EVENTS = "getEvents"
ACTION_GET_EVENT_DETAIL = "getEventDetail"


class CalendarService:
    """Maps calendar requests onto Aggregator calls"""

    def __init__(
        self,
        aggregator: Aggregator,
        timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.aggregator = aggregator
        self.timeout = timeout
        self.metrics = metrics or NullMetrics()

    async def _bounded(self, action: str, operation: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
        """Run one operation under the timeout and turn failures into error dicts"""
        try:
            result = await asyncio.wait_for(operation, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("calendar request timed out", action=action, timeout_seconds=self.timeout)
            self._count(action, "timeout")
            return error_response(f"Request timed out after {self.timeout:g}s")
        except ValidationError as e:
            logger.info("calendar request rejected", action=action, error=e.message)
            self._count(action, "invalid")
            return error_response(e.message)
        except SyncError as e:
            self._count(action, "error")
            return error_response(
                f"Unable to load meetings: {e.message}",
                failedSources=e.failed_sources,
            )
        except VendorError as e:
            self._count(action, "error")
            return error_response(f"Lookup failed: {e.message}")
        except MeetcalError as e:
            logger.error("calendar request failed", action=action, error=str(e))
            self._count(action, "error")
            return error_response(e.message)

        self._count(action, "success")
        return result

    def _count(self, action: str, status: str) -> None:
        self.metrics.api_requests.labels(action=action, status=status).inc()

    async def get_events(self, force_refresh: bool = False) -> Dict[str, Any]:
        async def run() -> Dict[str, Any]:
            response = await self.aggregator.get_events(force_refresh=force_refresh)
            return success_response(response.to_dict())

        return await self._bounded(ACTION_GET_EVENTS, run())

    async def get_event_detail(self, client: Optional[str], event_id: Any) -> Dict[str, Any]:
        async def run() -> Dict[str, Any]:
            detail = await self.aggregator.get_event_detail(client, event_id)
            return success_response(detail.to_dict())

        return await self._bounded(ACTION_GET_EVENT_DETAIL, run())

    async def handle_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch a message envelope: {"action": ..., **params}"""
        if not isinstance(message, dict):
            return error_response("Message must be an object")

        action = message.get("action")
        if action == ACTION_GET_EVENTS:
            return await self.get_events(force_refresh=bool(message.get("forceRefresh", False)))
        if action == ACTION_GET_EVENT_DETAIL:
            return await self.get_event_detail(message.get("client"), message.get("eventId"))

        logger.info("unknown calendar action", action=action)
        return error_response(f"Unknown action: {action}")
