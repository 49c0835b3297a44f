"""Shared utility modules.

This package provides:
- Structured logging with correlation IDs and secret redaction
- Secret sanitization for log output and stored error messages
- The aiohttp-based HTTP client used by API transports
- Human-readable progress formatting
"""

from bulk_notify.utils.formatting import format_duration, format_progress
from bulk_notify.utils.sanitization import (
    REDACTED,
    sanitize_exception,
    sanitize_mapping,
    sanitize_url,
    sanitize_value,
)

__all__ = [
    # Formatting utilities
    "format_duration",
    "format_progress",
    # Sanitization
    "REDACTED",
    "sanitize_exception",
    "sanitize_mapping",
    "sanitize_url",
    "sanitize_value",
]
