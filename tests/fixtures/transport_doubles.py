"""Test doubles shared by queue, dispatcher, and scenario tests."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime, timedelta

from bulk_notify.core.config import ChannelSettings, ChannelsConfig
from bulk_notify.types import Channel, RecipientTask, SendOutcome

type ScriptStep = SendOutcome | BaseException


class ScriptedTransport:
    """TransportClient double returning scripted outcomes per address.

    Each address has a script of outcomes (or exceptions to raise). The last
    step of a script repeats once the earlier ones are used up; addresses
    without a script get ``default``.
    """

    def __init__(
        self,
        channel: Channel = Channel.EMAIL,
        *,
        scripts: Mapping[str, Sequence[ScriptStep]] | None = None,
        default: ScriptStep | None = None,
        valid: bool = True,
        delay: float = 0.0,
        on_send: Callable[[RecipientTask], None] | None = None,
    ) -> None:
        self.channel: Channel = channel
        self._scripts: dict[str, deque[ScriptStep]] = {
            address: deque(steps) for address, steps in (scripts or {}).items()
        }
        self._default: ScriptStep = default if default is not None else SendOutcome.ok()
        self.valid: bool = valid
        self.delay: float = delay
        self.on_send: Callable[[RecipientTask], None] | None = on_send
        self.calls: list[str] = []

    async def send_one(self, task: RecipientTask) -> SendOutcome:
        self.calls.append(task.address)
        if self.on_send is not None:
            self.on_send(task)
        if self.delay:
            await asyncio.sleep(self.delay)
        step = self._next_step(task.address)
        if isinstance(step, BaseException):
            raise step
        return step

    def validate_config(self) -> bool:
        return self.valid

    def attempts_for(self, address: str) -> int:
        return self.calls.count(address)

    def _next_step(self, address: str) -> ScriptStep:
        script = self._scripts.get(address)
        if not script:
            return self._default
        if len(script) > 1:
            return script.popleft()
        return script[0]


class RecordingSleep:
    """Sleep replacement that records requested delays and yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FrozenClock:
    """Manually advanced clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now: datetime = start or datetime(2024, 5, 1, 8, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_tasks(count: int, *, prefix: str = "worker") -> tuple[RecipientTask, ...]:
    """Build ``count`` email tasks with predictable addresses and labels."""
    return tuple(
        RecipientTask(
            address=f"{prefix}{index}@example.com",
            payload={"subject": "Your site pass", "text": f"Hello {prefix} {index}"},
            label=f"{prefix}-{index}",
        )
        for index in range(1, count + 1)
    )


def fast_channels(
    *,
    batch_size: int = 2,
    max_retries: int = 2,
    retry_base_delay: float = 5.0,
    inter_item_delay: float = 0.5,
    inter_batch_delay: float = 1.0,
    attempt_timeout: float = 5.0,
) -> ChannelsConfig:
    """Channel settings for tests; pair with RecordingSleep so no real time passes."""
    settings = ChannelSettings(
        batch_size=batch_size,
        inter_item_delay=inter_item_delay,
        inter_batch_delay=inter_batch_delay,
        attempt_timeout=attempt_timeout,
        max_retries=max_retries,
        retry_base_delay=retry_base_delay,
    )
    return ChannelsConfig(email=settings, whatsapp=settings)
