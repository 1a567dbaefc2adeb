"""
Async Session Manager for upstream sources

One pooled aiohttp session per vendor, shared by every source on that vendor
and reused for the process lifetime. The API server closes them on shutdown,
CLI commands on exit.
"""

import aiohttp
from typing import Any, Dict

from config import get_logger

logger = get_logger(__name__).bind(component="vendor")

# Few sources, small polite pool
POOL_LIMIT = 10
POOL_LIMIT_PER_HOST = 4
CONNECT_TIMEOUT = 10

DEFAULT_HEADERS = {
    "User-Agent": "meetcal/0.1 (+municipal meeting calendar)",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}


class AsyncSessionManager:
    """Process-wide registry of vendor sessions"""

    _sessions: Dict[str, aiohttp.ClientSession] = {}

    @classmethod
    def _build(cls, timeout_total: int) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(
                total=timeout_total,
                connect=CONNECT_TIMEOUT,
                sock_read=timeout_total,
            ),
            connector=aiohttp.TCPConnector(
                limit=POOL_LIMIT,
                limit_per_host=POOL_LIMIT_PER_HOST,
                ttl_dns_cache=300,
            ),
            headers=DEFAULT_HEADERS,
            raise_for_status=False,  # AsyncBaseAdapter._request maps statuses to errors
        )

    @classmethod
    async def get_session(cls, vendor: str, timeout_total: int = 30) -> aiohttp.ClientSession:
        """Shared session for vendor, created on first use or after a close"""
        session = cls._sessions.get(vendor)
        if session is None or session.closed:
            session = cls._build(timeout_total)
            cls._sessions[vendor] = session
            logger.debug(
                "created async session",
                vendor=vendor,
                max_connections=POOL_LIMIT,
                timeout_seconds=timeout_total,
            )
        return session

    @classmethod
    async def close_all(cls):
        """Close every open session and forget them"""
        if not cls._sessions:
            return

        logger.info("closing async sessions", session_count=len(cls._sessions))
        sessions, cls._sessions = cls._sessions, {}
        for vendor, session in sessions.items():
            if not session.closed:
                await session.close()
                logger.debug("closed async session", vendor=vendor)

    @classmethod
    def get_stats(cls) -> Dict[str, Any]:
        """Open/closed state per vendor, for the health endpoint"""
        return {
            "total_sessions": len(cls._sessions),
            "vendors": {
                vendor: {"closed": session.closed}
                for vendor, session in cls._sessions.items()
            },
        }
