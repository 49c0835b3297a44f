"""Queue service: the composition root of the bulk dispatch engine.

``submit`` creates a Job and starts one asyncio task for it without waiting.
The task walks the Job's batches, hands each recipient to the channel's
dispatcher, and records every outcome on the Job. Callers observe a running
Job only through progress snapshots and may ask it to stop with ``cancel``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Iterable
from datetime import timedelta
from functools import partial
from typing import Self

from bulk_notify.core.batcher import Batcher
from bulk_notify.core.config import ChannelsConfig, MainConfig
from bulk_notify.core.dispatcher import RecipientDispatcher, RetryPolicy, TransportConfigurationError
from bulk_notify.core.job import Job
from bulk_notify.core.registry import JobRegistry
from bulk_notify.transports.registry import TransportRegistry
from bulk_notify.types.aliases import SleepFunc
from bulk_notify.types.models import Channel, JobStatus, ProgressSnapshot, RecipientTask
from bulk_notify.types.protocols import TransportClient
from bulk_notify.utils.logging import (
    clear_correlation_id,
    get_logger,
    log_with_context,
    set_correlation_id,
)
from bulk_notify.utils.sanitization import sanitize_exception

__all__ = ["EmptyRecipientsError", "QueueService", "UnknownChannelError"]


class EmptyRecipientsError(ValueError):
    """Raised when a Job is submitted without recipients."""


class UnknownChannelError(ValueError):
    """Raised when a Job is submitted for a channel with no registered transport."""


class QueueService:
    """Accept bulk-send requests and run each one as a background Job.

    Args:
        transports: Transport per channel
        channels: Pacing and retry settings per channel
        registry: Job store; a fresh one with 24h retention by default
        sweep_interval_seconds: Interval of the eviction sweep started by ``start``
        sleep: Coroutine used for pacing and retry delays
        rng: Random source for retry jitter
    """

    def __init__(
        self,
        transports: TransportRegistry,
        *,
        channels: ChannelsConfig | None = None,
        registry: JobRegistry | None = None,
        sweep_interval_seconds: float = 3600.0,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if sweep_interval_seconds <= 0:
            msg = "sweep_interval_seconds must be greater than zero"
            raise ValueError(msg)
        self._transports: TransportRegistry = transports
        self._channels: ChannelsConfig = channels if channels is not None else ChannelsConfig()
        self._registry: JobRegistry = registry if registry is not None else JobRegistry()
        self._sweep_interval_seconds: float = sweep_interval_seconds
        self._sleep: SleepFunc = sleep
        self._rng: random.Random | None = rng
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._stopping: bool = False

    @classmethod
    def from_config(cls, config: MainConfig, transports: TransportRegistry) -> Self:
        """Build a service from the application configuration."""
        registry = JobRegistry(retention=timedelta(hours=config.queue.retention_hours))
        return cls(
            transports,
            channels=config.channels,
            registry=registry,
            sweep_interval_seconds=config.queue.sweep_interval_seconds,
        )

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    def submit(self, channel: Channel | str, recipients: Iterable[RecipientTask]) -> str:
        """Create a Job and start delivering it in the background.

        Must be called from a running event loop. Returns as soon as the Job
        exists; per-recipient outcomes are only visible through progress.

        Args:
            channel: Channel whose transport delivers the Job
            recipients: Ordered recipient tasks

        Returns:
            Identifier of the new Job

        Raises:
            EmptyRecipientsError: If there are no recipients
            UnknownChannelError: If no transport is registered for the channel
            RuntimeError: If there is no running event loop or the service is stopped
        """
        resolved = self._resolve_channel(channel)
        tasks = tuple(recipients)
        if not tasks:
            msg = "Cannot submit a Job without recipients"
            raise EmptyRecipientsError(msg)

        transport = self._transports.get(resolved)
        if transport is None:
            msg = f"No transport registered for channel {resolved.value!r}"
            raise UnknownChannelError(msg)

        if self._stopping:
            msg = "QueueService is stopped and no longer accepts Jobs"
            raise RuntimeError(msg)

        loop = asyncio.get_running_loop()
        job = self._registry.create(resolved, tasks)
        task = loop.create_task(self._run_job(job, transport), name=f"bulk-notify:{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(partial(self._on_task_done, job.id))

        log_with_context(
            self._logger,
            logging.INFO,
            "Job submitted",
            extra={"job_id": job.id, "channel": resolved.value, "recipients": job.total},
        )
        return job.id

    def get_progress(self, job_id: str) -> ProgressSnapshot | None:
        """Return a snapshot of the Job, or None if it is unknown or evicted."""
        job = self._registry.get(job_id)
        return job.snapshot() if job is not None else None

    def cancel(self, job_id: str) -> bool:
        """Ask a running Job to stop at its next batch or item boundary.

        Returns:
            True if the Job exists and has not finished, otherwise False
        """
        job = self._registry.get(job_id)
        if job is None:
            return False
        accepted = job.request_cancel()
        log_with_context(
            self._logger,
            logging.INFO if accepted else logging.DEBUG,
            "Cancellation requested" if accepted else "Cancellation rejected for finished Job",
            extra={"job_id": job_id, "status": job.status.value},
        )
        return accepted

    def list_jobs(self) -> tuple[ProgressSnapshot, ...]:
        """Return snapshots of every known Job in creation order."""
        return self._registry.snapshots()

    def evict_expired(self) -> tuple[str, ...]:
        """Drop finished Jobs older than the retention window."""
        evicted = self._registry.evict()
        if evicted:
            log_with_context(
                self._logger,
                logging.INFO,
                "Evicted expired Jobs",
                extra={"evicted_count": len(evicted)},
            )
        return evicted

    def stats(self) -> dict[str, int]:
        """Count known Jobs per status."""
        return self._registry.stats()

    async def wait(self, job_id: str) -> ProgressSnapshot | None:
        """Wait until the Job's task has finished and return its final snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            _ = await asyncio.wait({task})
        return self.get_progress(job_id)

    async def start(self) -> None:
        """Start the periodic eviction sweep."""
        if self._sweeper is None or self._sweeper.done():
            self._stopping = False
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="bulk-notify:sweeper")

    async def stop(self) -> None:
        """Stop the sweep and cancel every running Job."""
        self._stopping = True
        if self._sweeper is not None:
            _ = self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None

        running = dict(self._tasks)
        for task in running.values():
            _ = task.cancel()
        if running:
            _ = await asyncio.gather(*running.values(), return_exceptions=True)

        for job_id in running:
            job = self._registry.get(job_id)
            if job is not None and not job.is_terminal:
                self._settle_cancelled(job)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.stop()

    async def _run_job(self, job: Job, transport: TransportClient) -> None:
        set_correlation_id(job.id)
        try:
            settings = self._channels.for_channel(job.channel)
            batcher = Batcher(
                batch_size=settings.batch_size,
                inter_item_delay=settings.inter_item_delay,
                inter_batch_delay=settings.inter_batch_delay,
                sleep=self._sleep,
            )
            dispatcher = RecipientDispatcher(
                transport,
                RetryPolicy.from_settings(settings),
                sleep=self._sleep,
                rng=self._rng,
            )

            job.start(total_batches=len(batcher.partition(job.recipients)))
            log_with_context(
                self._logger,
                logging.INFO,
                "Job started",
                extra={
                    "job_id": job.id,
                    "channel": job.channel.value,
                    "recipients": job.total,
                    "batches": job.total_batches,
                },
            )

            if not transport.validate_config():
                msg = f"{job.channel.value} transport configuration is invalid"
                raise TransportConfigurationError(msg)

            async def handle(task: RecipientTask) -> None:
                result = await dispatcher.send(task)
                if result.success:
                    job.record_success()
                else:
                    job.record_failure(task.label, result.error_message or "unknown error")

            finished = await batcher.run(
                job.recipients,
                handle,
                should_stop=lambda: job.cancel_requested,
                on_batch_start=lambda number, _total: job.enter_batch(number),
            )
            if finished:
                job.complete()
            else:
                job.mark_cancelled()
        except TransportConfigurationError as exc:
            self._settle_failed(job, sanitize_exception(exc))
            log_with_context(
                self._logger,
                logging.ERROR,
                "Job failed: transport not configured",
                extra={"job_id": job.id, "channel": job.channel.value, "error_message": str(exc)},
            )
        except asyncio.CancelledError:
            self._settle_cancelled(job)
            raise
        except Exception as exc:
            self._logger.exception("Job orchestration fault")
            self._settle_failed(job, sanitize_exception(exc))
        else:
            log_with_context(
                self._logger,
                logging.INFO,
                f"Job {job.status.value}",
                extra={
                    "job_id": job.id,
                    "success": job.success_count,
                    "failed": job.failed_count,
                    "total": job.total,
                },
            )
        finally:
            clear_correlation_id()

    def _settle_failed(self, job: Job, reason: str) -> None:
        if job.is_terminal:
            return
        if job.status is JobStatus.PENDING:
            job.start(total_batches=0)
        job.fail(reason)

    def _settle_cancelled(self, job: Job) -> None:
        if job.is_terminal:
            return
        if job.status is JobStatus.PENDING:
            job.start(total_batches=0)
        job.mark_cancelled()
        log_with_context(
            self._logger,
            logging.WARNING,
            "Job cancelled during shutdown",
            extra={"job_id": job.id, "success": job.success_count, "failed": job.failed_count},
        )

    def _on_task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        _ = self._tasks.pop(job_id, None)
        if not task.cancelled() and (exc := task.exception()) is not None:
            self._logger.error("Job task for %s ended with an unhandled error: %s", job_id, sanitize_exception(exc))

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                _ = self.evict_expired()
            except Exception:
                self._logger.exception("Eviction sweep failed")

    @staticmethod
    def _resolve_channel(channel: Channel | str) -> Channel:
        try:
            return Channel(channel)
        except ValueError as exc:
            msg = f"Unknown channel {channel!r}; expected one of: {', '.join(c.value for c in Channel)}"
            raise UnknownChannelError(msg) from exc
