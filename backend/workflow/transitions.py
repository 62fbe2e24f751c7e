"""Enrollment state transitions.

Pure functions mapping (enrollment, step, send outcome) to the patch
that should be written back. No I/O: the engine applies patches through
the enrollment store, which keeps this module testable on its own.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from core.constants import EnrollmentStatus, OutcomeTag
from workflow.retry_strategies import WORKFLOW_RETRY, RetryStrategy
from workflow.scheduling import compute_next_send_at


@dataclass(frozen=True)
class EnrollmentPatch:
    """Column values to write for one enrollment, plus the reported outcome."""
    outcome: OutcomeTag
    values: dict[str, Any] = field(default_factory=dict)
    detail: str = ""

    @property
    def status(self) -> str:
        return self.values.get("status", EnrollmentStatus.ACTIVE.value)


def pause(workflow_name: Optional[str], workflow_id: str) -> EnrollmentPatch:
    """The workflow was deactivated; halt until it is reactivated."""
    reason = (
        f'Workflow "{workflow_name or "unknown"}" ({workflow_id}) is inactive. '
        "The enrollment was paused."
    )
    return EnrollmentPatch(
        outcome=OutcomeTag.PAUSED,
        values={"status": EnrollmentStatus.PAUSED.value, "last_error": reason},
        detail=reason,
    )


def fail(reason: str) -> EnrollmentPatch:
    """Unrecoverable failure; ``retry_count`` is left as it is."""
    return EnrollmentPatch(
        outcome=OutcomeTag.FAILED,
        values={"status": EnrollmentStatus.FAILED.value, "last_error": reason},
        detail=reason,
    )


def on_failure(
    enrollment,
    error: Optional[str],
    now: datetime,
    strategy: RetryStrategy = WORKFLOW_RETRY,
) -> EnrollmentPatch:
    """Recoverable failure: schedule a retry, or fail once retries run out."""
    error = error or "Send failed"
    attempt = (enrollment.retry_count or 0) + 1

    if not strategy.should_retry(attempt):
        reason = f"Max retries ({strategy.max_retries}) exceeded: {error}"
        return EnrollmentPatch(
            outcome=OutcomeTag.FAILED,
            values={
                "status": EnrollmentStatus.FAILED.value,
                "retry_count": attempt,
                "last_error": reason,
            },
            detail=reason,
        )

    delay = strategy.compute_delay(attempt)
    minutes = int(delay.total_seconds() // 60)
    return EnrollmentPatch(
        outcome=OutcomeTag.RETRIED,
        values={
            "retry_count": attempt,
            "next_send_at": now + delay,
            "last_error": error,
        },
        detail=f"Retry {attempt}/{strategy.max_retries} in {minutes}min: {error}",
    )


def after_send(
    enrollment,
    next_step,
    result,
    now: datetime,
    strategy: RetryStrategy = WORKFLOW_RETRY,
) -> EnrollmentPatch:
    """Decide the state after a dispatch attempt of ``enrollment.current_step``.

    Args:
        enrollment: Snapshot with ``current_step`` and ``retry_count``
        next_step: Step at ``current_step + 1`` or None when it was the last
        result: SendResult of the attempt
        now: Naive UTC time of the pass
        strategy: Retry policy for failed sends
    """
    if not result.success:
        return on_failure(enrollment, result.error, now, strategy)

    current = enrollment.current_step
    if next_step is None:
        return EnrollmentPatch(
            outcome=OutcomeTag.COMPLETED,
            values={
                "status": EnrollmentStatus.COMPLETED.value,
                "completed_at": now,
                "last_error": None,
            },
            detail=f"Last step {current} sent - workflow complete",
        )

    return EnrollmentPatch(
        outcome=OutcomeTag.ADVANCED,
        values={
            "current_step": next_step.step_order,
            "next_send_at": compute_next_send_at(next_step.delay_days, next_step.send_time, now),
            "retry_count": 0,
            "last_error": None,
        },
        detail=f"Step {current} sent, advancing to {next_step.step_order}",
    )
