"""Unit tests for batch partitioning and pacing."""

from __future__ import annotations

import pytest

from bulk_notify.core.batcher import Batcher
from bulk_notify.types.models import RecipientTask
from tests.fixtures.transport_doubles import RecordingSleep, make_tasks


@pytest.mark.unit
class TestPartition:
    """Test batch partitioning."""

    def test_partition_preserves_order(self) -> None:
        """Test batches are consecutive slices of the input."""
        tasks = make_tasks(5)

        batches = Batcher(batch_size=2).partition(tasks)

        assert [len(batch) for batch in batches] == [2, 2, 1]
        assert [task for batch in batches for task in batch] == list(tasks)

    def test_partition_empty(self) -> None:
        """Test no recipients produce no batches."""
        assert Batcher(batch_size=3).partition(()) == ()

    @pytest.mark.parametrize("batch_size", [0, -1])
    def test_invalid_batch_size(self, batch_size: int) -> None:
        """Test batch size must be at least one."""
        with pytest.raises(ValueError, match="batch_size"):
            _ = Batcher(batch_size=batch_size)

    def test_negative_delay_rejected(self) -> None:
        """Test pacing delays cannot be negative."""
        with pytest.raises(ValueError, match="non-negative"):
            _ = Batcher(batch_size=1, inter_batch_delay=-0.1)


@pytest.mark.unit
class TestRun:
    """Test driving recipients through a handler."""

    @pytest.mark.asyncio
    async def test_handles_every_recipient_in_order(self) -> None:
        """Test all recipients reach the handler once, in order."""
        handled: list[str] = []

        async def handle(task: RecipientTask) -> None:
            handled.append(task.address)

        tasks = make_tasks(5)
        finished = await Batcher(batch_size=2, sleep=RecordingSleep()).run(
            tasks,
            handle,
            should_stop=lambda: False,
        )

        assert finished is True
        assert handled == [task.address for task in tasks]

    @pytest.mark.asyncio
    async def test_pacing_between_items_and_batches(self) -> None:
        """Test short delays inside batches and long delays between them, none trailing."""
        sleep = RecordingSleep()

        async def handle(_task: RecipientTask) -> None:
            return None

        batcher = Batcher(batch_size=2, inter_item_delay=0.5, inter_batch_delay=1.0, sleep=sleep)
        _ = await batcher.run(make_tasks(5), handle, should_stop=lambda: False)

        assert sleep.delays == [0.5, 1.0, 0.5, 1.0]

    @pytest.mark.asyncio
    async def test_zero_delays_do_not_sleep(self) -> None:
        """Test no sleep calls when pacing is disabled."""
        sleep = RecordingSleep()

        async def handle(_task: RecipientTask) -> None:
            return None

        _ = await Batcher(batch_size=1, sleep=sleep).run(make_tasks(3), handle, should_stop=lambda: False)

        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_reports_batch_numbers(self) -> None:
        """Test the batch callback gets 1-based numbers and the total."""
        seen: list[tuple[int, int]] = []

        async def handle(_task: RecipientTask) -> None:
            return None

        _ = await Batcher(batch_size=2, sleep=RecordingSleep()).run(
            make_tasks(5),
            handle,
            should_stop=lambda: False,
            on_batch_start=lambda number, total: seen.append((number, total)),
        )

        assert seen == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_stop_before_first_batch(self) -> None:
        """Test a pre-set stop flag prevents any handling."""
        handled: list[str] = []

        async def handle(task: RecipientTask) -> None:
            handled.append(task.address)

        finished = await Batcher(batch_size=2).run(make_tasks(3), handle, should_stop=lambda: True)

        assert finished is False
        assert handled == []

    @pytest.mark.asyncio
    async def test_stop_between_items(self) -> None:
        """Test stopping takes effect before the next item, mid-batch."""
        handled: list[str] = []

        async def handle(task: RecipientTask) -> None:
            handled.append(task.address)

        finished = await Batcher(batch_size=5, sleep=RecordingSleep()).run(
            make_tasks(5),
            handle,
            should_stop=lambda: len(handled) >= 2,
        )

        assert finished is False
        assert len(handled) == 2
