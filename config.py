import os
import logging
import sys
from datetime import tzinfo

import structlog
from dateutil import tz

logger = logging.getLogger("meetcal")


def get_logger(name: str = "meetcal"):
    """Get a structured logger instance

    Usage:
        logger = get_logger(__name__)
        logger = logger.bind(component="vendor", vendor="legistar")
        logger.info("fetching listing", source="milwaukee", attempt=1)

    Args:
        name: Logger name (typically __name__ or module path)

    Returns:
        Structured logger instance with context binding support
    """
    return structlog.get_logger(name)


class Config:
    """Configuration management for meetcal"""

    def __init__(self):
        # Durable cache tier lives next to the repo for local dev
        default_data_dir = os.path.join(os.getcwd(), "data")
        self.DB_DIR = os.getenv("MEETCAL_DB_DIR", default_data_dir)
        self.CACHE_DB_PATH = os.getenv("MEETCAL_CACHE_DB", f"{self.DB_DIR}/cache.db")
        self.EPHEMERAL_CACHE = os.getenv("MEETCAL_EPHEMERAL_CACHE", "true").lower() == "true"

        # Sources
        self.SOURCES = self._parse_list(
            os.getenv("MEETCAL_SOURCES", "milwaukee,milwaukeecounty")
        )
        self.TIMEZONE = os.getenv("MEETCAL_TIMEZONE", "America/Chicago")

        # Cache windows
        self.CACHE_TTL_MINUTES = int(os.getenv("MEETCAL_CACHE_TTL_MINUTES", "30"))
        self.STALE_WINDOW_HOURS = int(os.getenv("MEETCAL_STALE_WINDOW_HOURS", "24"))
        self.WINDOW_DAYS_FORWARD = int(os.getenv("MEETCAL_WINDOW_DAYS_FORWARD", "90"))

        # Upstream fetch policy
        self.MAX_ATTEMPTS = int(os.getenv("MEETCAL_MAX_ATTEMPTS", "3"))
        self.RETRY_BASE_DELAY = float(os.getenv("MEETCAL_RETRY_BASE_DELAY", "0.5"))
        self.LISTING_LIMIT = int(os.getenv("MEETCAL_LISTING_LIMIT", "200"))
        self.HTTP_TIMEOUT = int(os.getenv("MEETCAL_HTTP_TIMEOUT", "30"))

        # Transport ceiling around one pipeline call
        self.REQUEST_TIMEOUT = float(os.getenv("MEETCAL_REQUEST_TIMEOUT", "10"))

        # API configuration
        self.API_HOST = os.getenv("MEETCAL_HOST", "0.0.0.0")
        self.API_PORT = int(os.getenv("MEETCAL_PORT", "8000"))
        self.DEBUG = os.getenv("MEETCAL_DEBUG", "false").lower() == "true"
        self.ALLOWED_ORIGINS = self._parse_list(
            os.getenv("MEETCAL_ALLOWED_ORIGINS", "*")
        )

        # Logging
        self.LOG_LEVEL = os.getenv("MEETCAL_LOG_LEVEL", "INFO").upper()

        # Validate configuration
        self._validate()

    def _parse_list(self, value: str) -> list:
        """Parse comma-separated string"""
        if not value:
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    def _validate(self):
        """Validate configuration values"""
        if not self.SOURCES:
            raise ValueError("MEETCAL_SOURCES must name at least one source")

        if self.CACHE_TTL_MINUTES <= 0:
            raise ValueError("MEETCAL_CACHE_TTL_MINUTES must be positive")

        if self.STALE_WINDOW_HOURS * 60 < self.CACHE_TTL_MINUTES:
            raise ValueError("MEETCAL_STALE_WINDOW_HOURS must cover the cache TTL")

        if self.WINDOW_DAYS_FORWARD <= 0:
            raise ValueError("MEETCAL_WINDOW_DAYS_FORWARD must be positive")

        if self.MAX_ATTEMPTS <= 0:
            raise ValueError("MEETCAL_MAX_ATTEMPTS must be positive")

        if self.RETRY_BASE_DELAY < 0:
            raise ValueError("MEETCAL_RETRY_BASE_DELAY cannot be negative")

        if self.LISTING_LIMIT <= 0 or self.LISTING_LIMIT > 1000:
            raise ValueError("MEETCAL_LISTING_LIMIT must be between 1 and 1000")

        if self.REQUEST_TIMEOUT <= 0:
            raise ValueError("MEETCAL_REQUEST_TIMEOUT must be positive")

        if self.API_PORT <= 0 or self.API_PORT > 65535:
            raise ValueError("MEETCAL_PORT must be between 1 and 65535")

        if tz.gettz(self.TIMEZONE) is None:
            raise ValueError(f"MEETCAL_TIMEZONE is not a known zone: {self.TIMEZONE}")

    def get_timezone(self) -> tzinfo:
        """Local zone used to place upstream dates on the timeline"""
        return tz.gettz(self.TIMEZONE)

    def ensure_data_dir(self) -> str:
        """Lazily create data directory if it doesn't exist

        Returns:
            Path to the data directory
        """
        if not os.path.exists(self.DB_DIR):
            logger.info("creating data directory %s", self.DB_DIR)
            os.makedirs(self.DB_DIR, exist_ok=True)
        return self.DB_DIR

    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.DEBUG

    def summary(self) -> dict:
        """Get a summary of current configuration"""
        return {
            "db_dir": self.DB_DIR,
            "cache_db": os.path.basename(self.CACHE_DB_PATH),
            "ephemeral_cache": self.EPHEMERAL_CACHE,
            "sources": self.SOURCES,
            "timezone": self.TIMEZONE,
            "cache_ttl_minutes": self.CACHE_TTL_MINUTES,
            "stale_window_hours": self.STALE_WINDOW_HOURS,
            "window_days_forward": self.WINDOW_DAYS_FORWARD,
            "max_attempts": self.MAX_ATTEMPTS,
            "retry_base_delay": self.RETRY_BASE_DELAY,
            "listing_limit": self.LISTING_LIMIT,
            "request_timeout": self.REQUEST_TIMEOUT,
            "api_host": self.API_HOST,
            "api_port": self.API_PORT,
            "allowed_origins": self.ALLOWED_ORIGINS,
            "debug": self.DEBUG,
            "log_level": self.LOG_LEVEL,
        }


def configure_structlog(is_development: bool = False, log_level: str = "INFO"):
    """Configure structlog for structured logging

    Args:
        is_development: If True, use human-readable console output. If False, use JSON.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # No timestamp processor - the process supervisor stamps lines
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if is_development:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


# Global configuration instance
config = Config()

configure_structlog(
    is_development=config.is_development(),
    log_level=config.LOG_LEVEL
)
