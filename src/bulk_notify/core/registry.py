"""In-memory store of Jobs keyed by job identifier.

The registry's map is the only structure touched by more than one caller
(submit, lookups, cancellation and the eviction sweep), so every access to it
goes through a lock. A Job's own body is written only by its background task.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from bulk_notify.core.job import Job, utc_now
from bulk_notify.types.aliases import Clock
from bulk_notify.types.models import Channel, JobStatus, ProgressSnapshot, RecipientTask

__all__ = ["DEFAULT_RETENTION", "JobRegistry", "default_job_id"]

DEFAULT_RETENTION = timedelta(hours=24)


def default_job_id(channel: Channel) -> str:
    """Return an opaque identifier such as ``email_3f2a9c...``."""
    return f"{channel}_{uuid.uuid4().hex}"


class JobRegistry:
    """Thread-safe registry of Jobs with time-based eviction.

    Args:
        retention: How long a finished Job stays in the registry
        clock: Source of timezone-aware UTC timestamps
        id_factory: Produces a new job identifier for a channel
    """

    def __init__(
        self,
        *,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Clock = utc_now,
        id_factory: Callable[[Channel], str] = default_job_id,
    ) -> None:
        if retention <= timedelta(0):
            msg = "retention must be positive"
            raise ValueError(msg)
        self._retention: timedelta = retention
        self._clock: Clock = clock
        self._id_factory: Callable[[Channel], str] = id_factory
        self._jobs: dict[str, Job] = {}
        self._lock: threading.Lock = threading.Lock()

    @property
    def retention(self) -> timedelta:
        return self._retention

    def create(self, channel: Channel, recipients: Iterable[RecipientTask]) -> Job:
        """Create a pending Job and store it under a fresh identifier."""
        tasks = tuple(recipients)
        with self._lock:
            job_id = self._id_factory(channel)
            if job_id in self._jobs:
                msg = f"Job {job_id!r} already registered"
                raise ValueError(msg)
            job = Job(id=job_id, channel=channel, recipients=tasks, clock=self._clock)
            self._jobs[job_id] = job
        return job

    def get(self, job_id: str) -> Job | None:
        """Return the Job for the identifier, or None if unknown or evicted."""
        with self._lock:
            return self._jobs.get(job_id)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def list(self) -> tuple[Job, ...]:
        """Return all Jobs in creation order."""
        with self._lock:
            return tuple(self._jobs.values())

    def snapshots(self) -> tuple[ProgressSnapshot, ...]:
        """Return a snapshot of every Job in creation order."""
        return tuple(job.snapshot() for job in self.list())

    def evict(self, now: datetime | None = None) -> tuple[str, ...]:
        """Remove finished Jobs whose completion is older than the retention window.

        Args:
            now: Reference time; defaults to the registry clock

        Returns:
            Identifiers of the evicted Jobs
        """
        cutoff = (now if now is not None else self._clock()) - self._retention
        with self._lock:
            expired = tuple(
                job_id
                for job_id, job in self._jobs.items()
                if job.is_terminal and job.completed_at is not None and job.completed_at < cutoff
            )
            for job_id in expired:
                del self._jobs[job_id]
        return expired

    def stats(self) -> dict[str, int]:
        """Count Jobs per status, plus a ``total`` entry."""
        counts = {status.value: 0 for status in JobStatus}
        jobs = self.list()
        for job in jobs:
            counts[job.status.value] += 1
        counts["total"] = len(jobs)
        return counts
