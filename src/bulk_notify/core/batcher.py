"""Batch partitioning and send pacing.

Recipients are handed to the handler one at a time, in order. A short delay
separates items inside a batch and a longer one separates batches, keeping
the send rate under provider connection and per-second limits. The stop
predicate is consulted before every batch and every item.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from bulk_notify.types.aliases import SleepFunc, TaskHandler
from bulk_notify.types.models import RecipientTask

__all__ = ["Batcher"]

type BatchStartCallback = Callable[[int, int], None]


class Batcher:
    """Drive recipients through a handler in fixed-size, paced batches.

    Args:
        batch_size: Recipients per batch (the last batch may be shorter)
        inter_item_delay: Seconds to wait between items of one batch
        inter_batch_delay: Seconds to wait between batches
        sleep: Coroutine used for the delays
    """

    def __init__(
        self,
        *,
        batch_size: int,
        inter_item_delay: float = 0.0,
        inter_batch_delay: float = 0.0,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            msg = "batch_size must be >= 1"
            raise ValueError(msg)
        if inter_item_delay < 0 or inter_batch_delay < 0:
            msg = "delays must be non-negative"
            raise ValueError(msg)
        self._batch_size: int = batch_size
        self._inter_item_delay: float = inter_item_delay
        self._inter_batch_delay: float = inter_batch_delay
        self._sleep: Callable[[float], Awaitable[None]] = sleep

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def partition(
        self,
        recipients: Sequence[RecipientTask],
    ) -> tuple[tuple[RecipientTask, ...], ...]:
        """Split recipients into consecutive batches, preserving order."""
        return tuple(
            tuple(recipients[start : start + self._batch_size])
            for start in range(0, len(recipients), self._batch_size)
        )

    async def run(
        self,
        recipients: Sequence[RecipientTask],
        handle: TaskHandler,
        *,
        should_stop: Callable[[], bool],
        on_batch_start: BatchStartCallback | None = None,
    ) -> bool:
        """Hand every recipient to ``handle`` unless stopped first.

        Args:
            recipients: Ordered recipient tasks
            handle: Coroutine called once per recipient
            should_stop: Checked before each batch and before each item
            on_batch_start: Called with (batch_number, total_batches), 1-based

        Returns:
            True if every recipient was handled, False if stopped early
        """
        batches = self.partition(recipients)
        total_batches = len(batches)

        for batch_index, batch in enumerate(batches):
            if should_stop():
                return False
            if on_batch_start is not None:
                on_batch_start(batch_index + 1, total_batches)

            for item_index, task in enumerate(batch):
                if should_stop():
                    return False
                await handle(task)
                if item_index < len(batch) - 1 and self._inter_item_delay > 0:
                    await self._sleep(self._inter_item_delay)

            if batch_index < total_batches - 1 and self._inter_batch_delay > 0:
                await self._sleep(self._inter_batch_delay)

        return True
