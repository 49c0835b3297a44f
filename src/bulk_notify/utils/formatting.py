"""Pure formatting utilities for human-readable progress output."""

from typing import Final

from bulk_notify.types.models import ProgressSnapshot

_MINUTE: Final[int] = 60
_HOUR: Final[int] = 60 * _MINUTE
_DAY: Final[int] = 24 * _HOUR


def format_duration(seconds: float) -> str:
    """Format a duration using its two most significant units.

    Args:
        seconds: Duration in seconds (must be non-negative)

    Returns:
        Text such as "45s", "2m 5s", "1h 30m" or "2d 4h"

    Raises:
        ValueError: If seconds is negative

    Examples:
        >>> format_duration(125)
        '2m 5s'
        >>> format_duration(3600)
        '1h'
    """
    if seconds < 0:
        msg = f"Duration cannot be negative: {seconds}"
        raise ValueError(msg)

    total_seconds = int(seconds)

    if total_seconds >= _DAY:
        days, rest = divmod(total_seconds, _DAY)
        hours = rest // _HOUR
        return f"{days}d {hours}h" if hours else f"{days}d"

    if total_seconds >= _HOUR:
        hours, rest = divmod(total_seconds, _HOUR)
        minutes = rest // _MINUTE
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"

    if total_seconds >= _MINUTE:
        minutes, remaining = divmod(total_seconds, _MINUTE)
        return f"{minutes}m {remaining}s" if remaining else f"{minutes}m"

    return f"{total_seconds}s"


def format_progress(snapshot: ProgressSnapshot) -> str:
    """Render a one-line progress summary for a Job snapshot.

    Examples:
        >>> format_progress(snapshot)  # doctest: +SKIP
        'email_1a2b [processing] 40% (2/5 sent, 0 failed) batch 2/3, ETA 3s'
    """
    done = snapshot.success + snapshot.failed
    line = (
        f"{snapshot.job_id} [{snapshot.status}] {snapshot.progress_percent}% "
        f"({done}/{snapshot.total} sent, {snapshot.failed} failed)"
    )
    if snapshot.total_batches:
        line += f" batch {snapshot.current_batch}/{snapshot.total_batches}"
    if snapshot.estimated_seconds_remaining is not None and not snapshot.status.is_terminal:
        line += f", ETA {format_duration(snapshot.estimated_seconds_remaining)}"
    return line
