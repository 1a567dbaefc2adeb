"""
Custom Exception Hierarchy - Domain-specific error types

Provides clear, typed exceptions for the failure modes of the calendar pipeline.
All custom exceptions inherit from MeetcalError for easy catching.

- Exceptions are data: include context for debugging
- Catch specifically: handlers distinguish transport, sync and cache failures
- Log contextually: exception attributes feed structured log fields
"""

from typing import Optional, Dict, Any, List


class MeetcalError(Exception):
    """Base exception for all meetcal errors

    All custom exceptions inherit from this, enabling:
    - Catch all meetcal errors with single except clause
    - Distinguish our errors from library errors
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    @property
    def message(self) -> str:
        """Human-readable message without the context suffix"""
        return super().__str__()

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Vendor Errors ==========


class VendorError(MeetcalError):
    """Upstream source failures

    Includes context about which vendor and source failed.
    """

    def __init__(
        self,
        message: str,
        vendor: str,
        source_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.vendor = vendor
        self.source_id = source_id
        self.original_error = original_error

        context = {'vendor': vendor}
        if source_id:
            context['source_id'] = source_id
        if original_error:
            context['original_error'] = str(original_error)

        super().__init__(message, context)


class VendorHTTPError(VendorError):
    """HTTP request to an upstream source failed

    Examples:
    - 404 Not Found (unknown Legistar client or event)
    - 500 Server Error
    - Timeout or connection reset

    The listing and detail fetches retry every one of these, 4xx included.
    """

    def __init__(
        self,
        message: str,
        vendor: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        source_id: Optional[str] = None,
    ):
        super().__init__(message, vendor=vendor, source_id=source_id)
        self.status_code = status_code
        self.url = url

        if status_code:
            self.context['status_code'] = status_code
        if url:
            self.context['url'] = url


class VendorParsingError(VendorError):
    """Upstream body had an unexpected shape

    Examples:
    - Listing endpoint returned an error object instead of a list
    - Detail endpoint returned a list instead of an object
    """
    pass


# ========== Pipeline Errors ==========


class SyncError(MeetcalError):
    """No source produced a usable listing

    Raised when every configured source was rejected during the fan-out,
    or the fan-out itself failed. Carries the per-source failures.
    """

    def __init__(self, message: str, failures: Optional[Dict[str, Exception]] = None):
        self.failures = failures or {}
        context: Dict[str, Any] = {}
        if self.failures:
            context['failed_sources'] = ",".join(sorted(self.failures))
        super().__init__(message, context)

    @property
    def failed_sources(self) -> List[str]:
        return sorted(self.failures)


class CacheError(MeetcalError):
    """Cache storage failures

    Examples:
    - No storage tier available in this environment
    - Durable tier could not be opened or written
    - Stored value could not be decoded
    """

    def __init__(self, message: str, tier: Optional[str] = None, key: Optional[str] = None):
        self.tier = tier
        self.key = key
        context = {}
        if tier:
            context['tier'] = tier
        if key:
            context['key'] = key
        super().__init__(message, context)


# ========== Configuration Errors ==========


class ConfigurationError(MeetcalError):
    """Configuration or environment errors

    Examples:
    - Unknown source id in MEETCAL_SOURCES
    - Invalid configuration value
    """

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        context = {}
        if config_key:
            context['config_key'] = config_key
        super().__init__(message, context)


# ========== Validation Errors ==========


class ValidationError(MeetcalError):
    """Request validation failures

    Examples:
    - Missing client or event id on a detail lookup
    - Unknown client
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value

        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)

        super().__init__(message, context)
