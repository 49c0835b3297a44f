"""Job record and lifecycle state machine.

A Job is the in-memory aggregate of one bulk-send request. Its counters,
progress and status are written only by the Job's own background task; the
``cancel_requested`` flag is the single field other callers may set.

State machine::

    pending ──► processing ──┬──► completed
                             ├──► failed
                             └──► cancelled
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final

from bulk_notify.types.aliases import Clock
from bulk_notify.types.models import (
    Channel,
    JobError,
    JobStatus,
    ProgressSnapshot,
    RecipientTask,
)
from bulk_notify.utils.sanitization import sanitize_url

_ALLOWED_TRANSITIONS: Final[Mapping[JobStatus, frozenset[JobStatus]]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

# Highest value a non-terminal Job may report
_MAX_RUNNING_PROGRESS: Final[int] = 99


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class JobStateError(Exception):
    """Exception raised when a Job is asked to make an illegal transition."""

    def __init__(
        self,
        message: str,
        from_status: JobStatus | None = None,
        to_status: JobStatus | None = None,
    ) -> None:
        """Initialize state error.

        Args:
            message: Error message
            from_status: Status the Job was in
            to_status: Status that was requested
        """
        super().__init__(message)
        self.from_status: JobStatus | None = from_status
        self.to_status: JobStatus | None = to_status


def progress_percent(done: int, total: int) -> int:
    """Compute the integer progress percentage for ``done`` of ``total`` recipients.

    The percentage is ``100 * done / total`` rounded half-up, except that it
    stays at 99 until every recipient has been attempted.

    Examples:
        >>> progress_percent(1, 3)
        33
        >>> progress_percent(1, 2)
        50
        >>> progress_percent(199, 200)
        99
        >>> progress_percent(5, 5)
        100
    """
    if total <= 0 or done <= 0:
        return 0
    if done >= total:
        return 100
    return min((200 * done + total) // (2 * total), 99)


def estimate_seconds_remaining(
    *,
    status: JobStatus,
    progress: int,
    created_at: datetime,
    as_of: datetime,
) -> int | None:
    """Estimate remaining seconds from elapsed time and the progress fraction.

    Args:
        status: Current Job status
        progress: Current progress percentage
        created_at: When the Job was created
        as_of: Instant the progress value was last updated

    Returns:
        0 for finished Jobs, None before any recipient finished, else the estimate
    """
    if status.is_terminal:
        return 0
    if progress <= 0:
        return None
    elapsed = max((as_of - created_at).total_seconds(), 0.0)
    return max(0, round(elapsed / (progress / 100) - elapsed))


@dataclass(slots=True, eq=False)
class Job:
    """One bulk-send request and its running or finished state."""

    id: str
    channel: Channel
    recipients: tuple[RecipientTask, ...]
    clock: Clock = field(default=utc_now, repr=False)
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    success_count: int = 0
    failed_count: int = 0
    errors: list[JobError] = field(default_factory=list)
    cancel_requested: bool = False
    current_batch: int = 0
    total_batches: int = 0
    failure_reason: str | None = None
    created_at: datetime = field(init=False)
    updated_at: datetime = field(init=False)
    completed_at: datetime | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.recipients = tuple(self.recipients)
        self.created_at = self.clock()
        self.updated_at = self.created_at

    @property
    def total(self) -> int:
        """Number of recipients in the Job."""
        return len(self.recipients)

    @property
    def attempted(self) -> int:
        """Number of recipients with a recorded outcome."""
        return self.success_count + self.failed_count

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def request_cancel(self) -> bool:
        """Ask the Job to stop at its next checkpoint.

        Returns:
            True if the Job is still running (or about to run), False if it already finished
        """
        if self.status.is_terminal:
            return False
        self.cancel_requested = True
        return True

    def start(self, total_batches: int) -> None:
        """Move from pending to processing."""
        self._transition(JobStatus.PROCESSING)
        self.total_batches = total_batches

    def enter_batch(self, batch_number: int) -> None:
        """Record the 1-based number of the batch being processed."""
        self._require_processing("enter a batch")
        self.current_batch = batch_number
        self._touch()

    def record_success(self) -> None:
        """Record a recipient that was delivered."""
        self._require_processing("record a success")
        self._require_remaining()
        self.success_count += 1
        self._update_progress()

    def record_failure(self, label: str, message: str) -> None:
        """Record a recipient that failed for good, with its last error message."""
        self._require_processing("record a failure")
        self._require_remaining()
        self.failed_count += 1
        self.errors.append(JobError(label=label, message=sanitize_url(message)))
        self._update_progress()

    def complete(self) -> None:
        """Finish after every recipient has been attempted."""
        if self.attempted != self.total:
            msg = f"Job {self.id} cannot complete with {self.attempted} of {self.total} recipients attempted"
            raise JobStateError(msg, self.status, JobStatus.COMPLETED)
        self._transition(JobStatus.COMPLETED)
        self.progress = 100

    def fail(self, reason: str) -> None:
        """Finish because of a configuration or orchestration fault."""
        self._transition(JobStatus.FAILED)
        self.failure_reason = sanitize_url(reason)

    def mark_cancelled(self) -> None:
        """Finish because cancellation was observed before the list was exhausted."""
        self._transition(JobStatus.CANCELLED)

    def snapshot(self) -> ProgressSnapshot:
        """Return a read-only view of the Job.

        The estimate is computed as of the last state change, so repeated
        snapshots without an intervening change compare equal.
        """
        return ProgressSnapshot(
            job_id=self.id,
            channel=self.channel,
            status=self.status,
            progress_percent=self.progress,
            total=self.total,
            success=self.success_count,
            failed=self.failed_count,
            errors=tuple(self.errors),
            estimated_seconds_remaining=estimate_seconds_remaining(
                status=self.status,
                progress=self.progress,
                created_at=self.created_at,
                as_of=self.updated_at,
            ),
            cancel_requested=self.cancel_requested,
            current_batch=self.current_batch,
            total_batches=self.total_batches,
            created_at=self.created_at,
            updated_at=self.updated_at,
            completed_at=self.completed_at,
            failure_reason=self.failure_reason,
        )

    def _transition(self, target: JobStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            msg = f"Job {self.id} cannot move from {self.status} to {target}"
            raise JobStateError(msg, self.status, target)
        self.status = target
        self._touch()
        if target.is_terminal:
            self.completed_at = self.updated_at

    def _require_processing(self, action: str) -> None:
        if self.status is not JobStatus.PROCESSING:
            msg = f"Job {self.id} cannot {action} while {self.status}"
            raise JobStateError(msg, self.status)

    def _require_remaining(self) -> None:
        if self.attempted >= self.total:
            msg = f"Job {self.id} already has an outcome for all {self.total} recipients"
            raise JobStateError(msg, self.status)

    def _update_progress(self) -> None:
        percent = min(progress_percent(self.attempted, self.total), _MAX_RUNNING_PROGRESS)
        self.progress = max(self.progress, percent)
        self._touch()

    def _touch(self) -> None:
        self.updated_at = self.clock()
