"""Standardized response helpers.

Ensures consistent response structure for every calendar operation,
whether it arrives over HTTP or as a message envelope.
"""


def success_response(data: dict, **extras) -> dict:
    """Standard success response wrapper.

    Usage:
        return success_response(events_response.to_dict())

    Returns:
        {"success": True, **data, **extras}
    """
    return {"success": True, **data, **extras}


def error_response(message: str, **extras) -> dict:
    """Standard error response wrapper.

    Usage:
        return error_response("client is required")

    Returns:
        {"success": False, "error": message, **extras}
    """
    return {"success": False, "error": message, **extras}
