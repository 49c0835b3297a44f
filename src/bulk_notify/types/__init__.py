"""Type definitions and protocols for bulk-notify.

This package provides:
- Data models (immutable dataclasses and enums)
- Protocol definitions (structural subtyping interfaces)
- Type aliases (PEP 695 modern syntax)
"""

from bulk_notify.types.aliases import (
    Clock,
    JobID,
    Payload,
    SleepFunc,
    TaskHandler,
)
from bulk_notify.types.models import (
    Channel,
    DeliveryResult,
    ErrorClass,
    JobError,
    JobStatus,
    ProgressSnapshot,
    RecipientTask,
    Response,
    SendOutcome,
)
from bulk_notify.types.protocols import (
    HTTPClient,
    TransportClient,
)

__all__ = [
    # Type aliases
    "Clock",
    "JobID",
    "Payload",
    "SleepFunc",
    "TaskHandler",
    # Data models
    "Channel",
    "DeliveryResult",
    "ErrorClass",
    "JobError",
    "JobStatus",
    "ProgressSnapshot",
    "RecipientTask",
    "Response",
    "SendOutcome",
    # Protocols
    "HTTPClient",
    "TransportClient",
]
