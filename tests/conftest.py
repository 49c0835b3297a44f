"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import timedelta

import pytest

from bulk_notify.core.queue import QueueService
from bulk_notify.core.registry import JobRegistry
from bulk_notify.transports.registry import TransportRegistry
from bulk_notify.utils.logging import clear_correlation_id
from tests.fixtures.transport_doubles import (
    FrozenClock,
    RecordingSleep,
    ScriptedTransport,
    fast_channels,
)


@pytest.fixture(autouse=True)
def reset_correlation_id() -> Iterator[None]:
    """Keep correlation IDs from leaking between tests."""
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Sleep double that records delays without waiting."""
    return RecordingSleep()


@pytest.fixture
def clock() -> FrozenClock:
    """Manually advanced UTC clock."""
    return FrozenClock()


@pytest.fixture
def email_transport() -> ScriptedTransport:
    """Email transport double that succeeds unless scripted otherwise."""
    return ScriptedTransport()


@pytest.fixture
def make_service(
    recording_sleep: RecordingSleep,
    clock: FrozenClock,
) -> Callable[..., QueueService]:
    """Factory building a QueueService around transport doubles."""

    def _make(
        *transports: ScriptedTransport,
        batch_size: int = 2,
        max_retries: int = 2,
        retention: timedelta = timedelta(hours=24),
    ) -> QueueService:
        registry = TransportRegistry()
        for transport in transports or (ScriptedTransport(),):
            registry.register(transport)
        return QueueService(
            registry,
            channels=fast_channels(batch_size=batch_size, max_retries=max_retries),
            registry=JobRegistry(retention=retention, clock=clock),
            sleep=recording_sleep,
        )

    return _make
