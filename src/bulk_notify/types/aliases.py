"""Type aliases using modern PEP 695 syntax.

This module defines type aliases for common type patterns used by the queue
core and the CLI.
"""

from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime

from bulk_notify.types.models import RecipientTask

# Opaque job identifier returned by QueueService.submit
type JobID = str

# Render-ready per-recipient payload handed to a transport untouched
type Payload = Mapping[str, object]

# Injectable clock returning timezone-aware UTC datetimes
type Clock = Callable[[], datetime]

# Coroutine factory used for pacing and retry delays
type SleepFunc = Callable[[float], Awaitable[None]]

# Per-item callback driven by the Batcher
type TaskHandler = Callable[[RecipientTask], Awaitable[None]]
