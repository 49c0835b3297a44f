"""Data models for bulk-notify.

This module defines the immutable dataclasses and enumerations passed between
the queue core and transport clients.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Self


class Channel(StrEnum):
    """Transport kind used to deliver a Job's messages."""

    EMAIL = "email"
    WHATSAPP = "whatsapp"


class JobStatus(StrEnum):
    """Lifecycle state of a bulk-send Job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Return True for states that end the Job lifecycle."""
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class ErrorClass(StrEnum):
    """Classification of a failed send attempt."""

    PERMANENT = "permanent"
    TRANSIENT = "transient"


def _freeze_payload(payload: Mapping[str, object]) -> Mapping[str, object]:
    return MappingProxyType(dict(payload))


@dataclass(slots=True, frozen=True)
class RecipientTask:
    """One addressee and its ready-to-send payload.

    The payload is copied into a read-only mapping on construction so a task
    cannot change after its Job has been created.
    """

    address: str
    payload: Mapping[str, object] = field(default_factory=dict)
    label: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze_payload(self.payload))
        if not self.label:
            object.__setattr__(self, "label", self.address)


@dataclass(slots=True, frozen=True)
class SendOutcome:
    """Result of a single transport call for one recipient."""

    success: bool
    error_class: ErrorClass | None = None
    message: str | None = None
    rate_limited: bool = False
    retry_after: float | None = None

    @classmethod
    def ok(cls) -> Self:
        return cls(success=True)

    @classmethod
    def permanent(cls, message: str) -> Self:
        return cls(success=False, error_class=ErrorClass.PERMANENT, message=message)

    @classmethod
    def transient(
        cls,
        message: str,
        *,
        rate_limited: bool = False,
        retry_after: float | None = None,
    ) -> Self:
        return cls(
            success=False,
            error_class=ErrorClass.TRANSIENT,
            message=message,
            rate_limited=rate_limited,
            retry_after=retry_after,
        )


@dataclass(slots=True, frozen=True)
class DeliveryResult:
    """Final outcome of delivering one recipient, retries included."""

    success: bool
    attempts: int
    error_message: str | None = None
    error_class: ErrorClass | None = None


@dataclass(slots=True, frozen=True)
class JobError:
    """Error log entry for a recipient that permanently failed."""

    label: str
    message: str


@dataclass(slots=True, frozen=True)
class ProgressSnapshot:
    """Read-only view of a Job at one instant.

    Snapshots are plain values: two snapshots of a Job taken without an
    intervening state change compare equal.
    """

    job_id: str
    channel: Channel
    status: JobStatus
    progress_percent: int
    total: int
    success: int
    failed: int
    errors: tuple[JobError, ...]
    estimated_seconds_remaining: int | None
    cancel_requested: bool
    current_batch: int
    total_batches: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    failure_reason: str | None = None


@dataclass(slots=True)
class Response:
    """HTTP response.

    Represents an HTTP response with status code, body, and headers.
    """

    status: int
    body: Mapping[str, object]
    headers: Mapping[str, str]
