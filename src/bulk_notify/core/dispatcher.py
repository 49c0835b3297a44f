"""Per-recipient delivery with timeout, classification, and retry.

The RecipientDispatcher wraps one transport. Each attempt is bounded by its
own timeout. Permanent failures are not retried; transient failures (timeouts,
connection problems, provider throttling, unexpected transport exceptions)
are retried with a linearly growing delay that is stretched further after a
rate-limit rejection.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Self

from bulk_notify.core.config import ChannelSettings
from bulk_notify.types.aliases import SleepFunc
from bulk_notify.types.models import DeliveryResult, ErrorClass, RecipientTask, SendOutcome
from bulk_notify.types.protocols import TransportClient
from bulk_notify.utils.logging import get_logger, log_with_context
from bulk_notify.utils.sanitization import sanitize_exception, sanitize_url

__all__ = ["RecipientDispatcher", "RetryPolicy", "TransportConfigurationError"]


class TransportConfigurationError(Exception):
    """Raised when a transport cannot send to anyone (missing or rejected credentials).

    Unlike a per-recipient failure this aborts the whole Job.
    """


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Timeout and retry parameters for one channel."""

    attempt_timeout: float = 30.0
    max_retries: int = 2
    base_delay: float = 5.0
    rate_limit_multiplier: float = 2.0
    max_delay: float = 60.0
    jitter_percent: float = 0.0

    def __post_init__(self) -> None:
        if self.attempt_timeout <= 0:
            msg = "attempt_timeout must be greater than zero"
            raise ValueError(msg)
        if self.max_retries < 0:
            msg = "max_retries must be >= 0"
            raise ValueError(msg)
        if self.base_delay < 0 or self.max_delay < 0:
            msg = "retry delays must be non-negative"
            raise ValueError(msg)
        if self.rate_limit_multiplier < 1:
            msg = "rate_limit_multiplier must be >= 1"
            raise ValueError(msg)
        if not 0 <= self.jitter_percent <= 100:
            msg = "jitter_percent must be between 0 and 100"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: ChannelSettings) -> Self:
        return cls(
            attempt_timeout=settings.attempt_timeout,
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            rate_limit_multiplier=settings.rate_limit_multiplier,
            max_delay=settings.max_retry_delay,
            jitter_percent=settings.jitter_percent,
        )

    @property
    def max_attempts(self) -> int:
        return 1 + self.max_retries

    def delay_for(
        self,
        retry_number: int,
        outcome: SendOutcome,
        rng: random.Random | None = None,
    ) -> float:
        """Compute the wait before retry ``retry_number`` (1-based).

        Examples:
            >>> policy = RetryPolicy(base_delay=5.0, max_delay=60.0)
            >>> policy.delay_for(2, SendOutcome.transient("timeout"))
            10.0
            >>> policy.delay_for(2, SendOutcome.transient("busy", rate_limited=True))
            20.0
        """
        delay = self.base_delay * retry_number
        if outcome.rate_limited:
            delay *= self.rate_limit_multiplier
        if outcome.retry_after is not None:
            delay = max(delay, outcome.retry_after)
        if self.jitter_percent > 0 and delay > 0:
            spread = delay * self.jitter_percent / 100
            delay = (rng or random).uniform(delay - spread, delay + spread)
        return max(0.0, min(delay, self.max_delay))


class RecipientDispatcher:
    """Deliver one recipient task through a transport with bounded retries."""

    def __init__(
        self,
        transport: TransportClient,
        policy: RetryPolicy,
        *,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._transport: TransportClient = transport
        self._policy: RetryPolicy = policy
        self._sleep: SleepFunc = sleep
        self._rng: random.Random | None = rng
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def send(self, task: RecipientTask) -> DeliveryResult:
        """Deliver a task, retrying transient failures.

        Returns:
            Final result; every task ends either delivered or failed

        Raises:
            TransportConfigurationError: If the transport reports it cannot send at all
            asyncio.CancelledError: If the surrounding Job task is cancelled
        """
        outcome = SendOutcome.transient("no attempt made")
        attempts = 0

        for attempt in range(1, self._policy.max_attempts + 1):
            attempts = attempt
            outcome = await self._attempt(task)

            if outcome.success:
                log_with_context(
                    self._logger,
                    logging.DEBUG,
                    "Recipient delivered",
                    extra={"recipient": task.label, "attempt": attempt},
                )
                return DeliveryResult(success=True, attempts=attempt)

            if outcome.error_class is ErrorClass.PERMANENT or attempt == self._policy.max_attempts:
                break

            delay = self._policy.delay_for(attempt, outcome, self._rng)
            log_with_context(
                self._logger,
                logging.WARNING,
                "Transient send failure, retrying recipient",
                extra={
                    "recipient": task.label,
                    "attempt": attempt,
                    "max_attempts": self._policy.max_attempts,
                    "delay_seconds": round(delay, 3),
                    "rate_limited": outcome.rate_limited,
                    "error_message": outcome.message,
                },
            )
            if delay > 0:
                await self._sleep(delay)

        error_class = outcome.error_class or ErrorClass.TRANSIENT
        message = sanitize_url(outcome.message or "unknown error")
        log_with_context(
            self._logger,
            logging.ERROR,
            "Recipient delivery failed",
            extra={
                "recipient": task.label,
                "attempts": attempts,
                "error_class": error_class.value,
                "error_message": message,
            },
        )
        return DeliveryResult(
            success=False,
            attempts=attempts,
            error_message=message,
            error_class=error_class,
        )

    async def _attempt(self, task: RecipientTask) -> SendOutcome:
        timeout = self._policy.attempt_timeout
        try:
            async with asyncio.timeout(timeout):
                outcome = await self._transport.send_one(task)
        except TransportConfigurationError:
            raise
        except TimeoutError:
            return SendOutcome.transient(f"Send timed out after {timeout:.1f}s")
        except Exception as exc:
            self._logger.debug("Transport raised during send", exc_info=True)
            return SendOutcome.transient(f"Transport error: {sanitize_exception(exc)}")

        if not outcome.success and outcome.error_class is None:
            return SendOutcome.transient(
                outcome.message or "unclassified failure",
                rate_limited=outcome.rate_limited,
                retry_after=outcome.retry_after,
            )
        return outcome
