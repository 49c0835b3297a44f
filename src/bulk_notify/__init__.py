"""bulk-notify - Paced, retrying bulk message dispatch with live progress.

This package provides an in-process asynchronous queue that sends one message
per recipient over rate-limited channels (SMTP email, a WhatsApp messaging
API), retries transient failures, and reports per-Job progress to callers.
"""

from bulk_notify.__main__ import main

__all__ = ["main"]
