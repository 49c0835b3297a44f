"""Unit tests for progress formatting helpers."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from bulk_notify.types.models import Channel, JobStatus, ProgressSnapshot
from bulk_notify.utils.formatting import format_duration, format_progress

CREATED = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)


def _snapshot(**overrides: object) -> ProgressSnapshot:
    values: dict[str, object] = {
        "job_id": "email_1a2b",
        "channel": Channel.EMAIL,
        "status": JobStatus.PROCESSING,
        "progress_percent": 40,
        "total": 5,
        "success": 2,
        "failed": 0,
        "errors": (),
        "estimated_seconds_remaining": 3,
        "cancel_requested": False,
        "current_batch": 2,
        "total_batches": 3,
        "created_at": CREATED,
        "updated_at": CREATED,
        "completed_at": None,
    }
    values.update(overrides)
    return ProgressSnapshot(**values)  # pyright: ignore[reportArgumentType]


class TestFormatDuration:
    """Test duration formatting."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0, "0s"),
            (45, "45s"),
            (59.9, "59s"),
            (120, "2m"),
            (125, "2m 5s"),
            (3600, "1h"),
            (5400, "1h 30m"),
            (86400 * 2, "2d"),
            (86400 * 2 + 3600 * 4, "2d 4h"),
        ],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        """Test the two most significant units are shown."""
        assert format_duration(seconds) == expected

    def test_negative_rejected(self) -> None:
        """Test negative durations are errors."""
        with pytest.raises(ValueError, match="cannot be negative"):
            _ = format_duration(-1)


class TestFormatProgress:
    """Test one-line progress summaries."""

    def test_running_job(self) -> None:
        """Test batch and ETA are shown while running."""
        assert format_progress(_snapshot()) == "email_1a2b [processing] 40% (2/5 sent, 0 failed) batch 2/3, ETA 3s"

    def test_finished_job_has_no_eta(self) -> None:
        """Test finished Jobs omit the estimate."""
        line = format_progress(
            _snapshot(
                status=JobStatus.COMPLETED,
                progress_percent=100,
                success=4,
                failed=1,
                current_batch=3,
                estimated_seconds_remaining=0,
            )
        )

        assert line == "email_1a2b [completed] 100% (5/5 sent, 1 failed) batch 3/3"

    def test_pending_job(self) -> None:
        """Test a Job that has not started shows no batch or ETA."""
        line = format_progress(
            _snapshot(
                status=JobStatus.PENDING,
                progress_percent=0,
                success=0,
                current_batch=0,
                total_batches=0,
                estimated_seconds_remaining=None,
            )
        )

        assert line == "email_1a2b [pending] 0% (0/5 sent, 0 failed)"
