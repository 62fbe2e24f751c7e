"""Retry policy for failed workflow sends.

Retries are not slept on in-process: a failed send is rescheduled by
moving the enrollment's ``next_send_at`` forward, and a later
processing pass picks it up again. The strategy only answers two
questions: may this failure be retried, and how long to wait.

Usage:
    strategy = WORKFLOW_RETRY
    attempt = enrollment.retry_count + 1
    if strategy.should_retry(attempt):
        next_send_at = now + strategy.compute_delay(attempt)
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

from core.constants import MAX_SEND_RETRIES, RETRY_BACKOFF_MINUTES


class RetryPolicy(str, Enum):
    """Available retry policies."""
    SCHEDULE = "schedule"
    NONE = "none"


@dataclass(frozen=True)
class RetryStrategy:
    """Retry strategy for workflow step sends.

    ``attempt`` is the 1-based count of consecutive failures of the
    current step, including the one being handled.
    """
    policy: RetryPolicy
    max_retries: int = MAX_SEND_RETRIES
    schedule_minutes: tuple[int, ...] = field(default=RETRY_BACKOFF_MINUTES)

    @classmethod
    def none(cls) -> "RetryStrategy":
        """No retries: fail on the first send failure."""
        return cls(policy=RetryPolicy.NONE, max_retries=0, schedule_minutes=())

    @classmethod
    def schedule(cls, minutes: tuple[int, ...], max_retries: Optional[int] = None) -> "RetryStrategy":
        """Escalating delays; attempts past the end reuse the last slot."""
        if not minutes:
            raise ValueError("Retry schedule needs at least one delay")
        return cls(
            policy=RetryPolicy.SCHEDULE,
            max_retries=len(minutes) if max_retries is None else max_retries,
            schedule_minutes=tuple(minutes),
        )

    def compute_delay(self, attempt: int) -> timedelta:
        """Delay before retrying after failure number ``attempt``.

        Attempt N uses slot N-1, saturating at the last slot.
        """
        if self.policy == RetryPolicy.NONE or not self.schedule_minutes:
            return timedelta(0)
        index = min(max(attempt, 1) - 1, len(self.schedule_minutes) - 1)
        return timedelta(minutes=self.schedule_minutes[index])

    def should_retry(self, attempt: int) -> bool:
        """Whether failure number ``attempt`` may still be retried."""
        if self.policy == RetryPolicy.NONE:
            return False
        return attempt <= self.max_retries


WORKFLOW_RETRY = RetryStrategy.schedule(RETRY_BACKOFF_MINUTES, max_retries=MAX_SEND_RETRIES)
