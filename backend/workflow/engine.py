"""Workflow Execution Engine: processes due enrollments.

One pass selects a bounded batch of due enrollments (``status = active``
and ``next_send_at <= now``, oldest first) and, for each of them:

1. pauses it when its workflow was deactivated;
2. fails it when the current step is missing, its content is not
   sendable (unapproved template, empty email) or the contact has no
   address on the step's channel;
3. retries it with backoff when the channel credentials are missing;
4. otherwise dispatches the step through its channel and advances,
   completes or schedules a retry depending on the send result.

Enrollments are processed sequentially. An exception while handling one
enrollment marks that enrollment failed and the pass moves on; only a
failure to read the due set aborts the whole pass.

Usage:
    async with AsyncSessionLocal() as session:
        summary = await WorkflowProcessor(session).process_due()
        return summary.to_dict(), summary.http_status
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import PASS_STATUS_CODES, PROCESSING_BATCH_SIZE, OutcomeTag, PassStatus
from core.exceptions import StoreUnavailableError
from core.utils import short_id, to_naive_utc, utc_now, utc_now_naive
from messaging.history import DeliveryHistory
from messaging.registry import ChannelRegistry, get_channel_registry
from services.enrollment_store import EnrollmentSnapshot, EnrollmentStore
from workflow import transitions
from workflow.retry_strategies import WORKFLOW_RETRY, RetryStrategy
from workflow.transitions import EnrollmentPatch

logger = structlog.get_logger(__name__)

SENT_OUTCOMES = {OutcomeTag.ADVANCED, OutcomeTag.COMPLETED}
FAILED_OUTCOMES = {OutcomeTag.FAILED, OutcomeTag.RETRIED}
SKIPPED_OUTCOMES = {OutcomeTag.PAUSED, OutcomeTag.SKIPPED}


# ─── Pass Results ─────────────────────────────────────────────

@dataclass
class EnrollmentResult:
    """Outcome of one enrollment within a pass."""
    enrollment_id: str
    contact_id: str
    outcome: OutcomeTag
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "enrollment_id": self.enrollment_id,
            "contact_id": self.contact_id,
            "outcome": self.outcome.value,
            "detail": self.detail,
        }


@dataclass
class ProcessingSummary:
    """Aggregate result of one processing pass."""
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    elapsed_ms: int = 0
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())
    results: list[EnrollmentResult] = field(default_factory=list)
    error: Optional[str] = None

    def add(self, result: EnrollmentResult) -> None:
        self.results.append(result)
        self.processed += 1
        if result.outcome in SENT_OUTCOMES:
            self.sent += 1
        elif result.outcome in FAILED_OUTCOMES:
            self.failed += 1
        elif result.outcome in SKIPPED_OUTCOMES:
            self.skipped += 1

    @property
    def status(self) -> PassStatus:
        if self.error is not None:
            return PassStatus.ERROR
        if self.processed == 0:
            return PassStatus.IDLE
        if self.failed > 0 and self.sent > 0:
            return PassStatus.PARTIAL
        if self.failed > 0:
            return PassStatus.FAILED
        return PassStatus.SUCCESS

    @property
    def http_status(self) -> int:
        return PASS_STATUS_CODES[self.status]

    def to_dict(self) -> dict:
        if self.status == PassStatus.ERROR:
            return {
                "status": self.status.value,
                "error": self.error,
                "elapsed_ms": self.elapsed_ms,
                "timestamp": self.timestamp,
            }
        return {
            "status": self.status.value,
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "elapsed_ms": self.elapsed_ms,
            "timestamp": self.timestamp,
            "results": [r.to_dict() for r in self.results],
        }


# ─── Processor ────────────────────────────────────────────────

class WorkflowProcessor:
    """Runs processing passes over due workflow enrollments."""

    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[ChannelRegistry] = None,
        strategy: RetryStrategy = WORKFLOW_RETRY,
        batch_size: int = PROCESSING_BATCH_SIZE,
        record_history: bool = True,
    ):
        self.store = EnrollmentStore(db)
        self.registry = registry or get_channel_registry()
        self.strategy = strategy
        self.batch_size = batch_size
        self.history = DeliveryHistory(db) if record_history else None

    async def process_due(self, now: Optional[datetime] = None) -> ProcessingSummary:
        """Run one pass over the enrollments due at ``now``.

        Never raises for enrollment-level problems. A failure to read
        the due set is reported as an ``error`` summary and nothing is
        written.
        """
        started = time.monotonic()
        now = to_naive_utc(now) if now is not None else utc_now_naive()
        summary = ProcessingSummary()

        try:
            enrollments = await self.store.fetch_due(now, self.batch_size)
        except StoreUnavailableError as e:
            summary.error = e.message
            summary.elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.error("workflow_pass_aborted", error=e.message, elapsed_ms=summary.elapsed_ms)
            return summary

        if not enrollments:
            summary.elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.debug("workflow_pass_idle")
            return summary

        logger.info("workflow_pass_started", due=len(enrollments), now=now.isoformat())

        for enrollment in enrollments:
            summary.add(await self._process_one(enrollment, now))

        summary.elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "workflow_pass_finished",
            status=summary.status.value,
            processed=summary.processed,
            sent=summary.sent,
            failed=summary.failed,
            skipped=summary.skipped,
            elapsed_ms=summary.elapsed_ms,
        )
        return summary

    async def _process_one(self, enrollment: EnrollmentSnapshot, now: datetime) -> EnrollmentResult:
        log = logger.bind(
            enrollment_id=short_id(enrollment.id),
            workflow_id=enrollment.workflow_id,
            step=enrollment.current_step,
        )

        try:
            patch = await self._evaluate(enrollment, now)
            applied = await self.store.apply(enrollment, patch.values)
        except Exception as e:
            log.error("enrollment_exception", error=str(e), exc_info=True)
            patch = transitions.fail(str(e) or type(e).__name__)
            try:
                await self.store.rollback()
                applied = await self.store.apply(enrollment, patch.values)
            except Exception as write_error:
                # Row keeps its previous state and is re-selected next pass
                log.error("enrollment_fail_write_error", error=str(write_error))
                return EnrollmentResult(
                    enrollment_id=enrollment.id,
                    contact_id=enrollment.contact_id,
                    outcome=OutcomeTag.SKIPPED,
                    detail=f"Failure could not be recorded ({write_error}); enrollment left unchanged: {patch.detail}",
                )

        if not applied:
            log.warning("enrollment_moved_concurrently", attempted=patch.outcome.value)
            return EnrollmentResult(
                enrollment_id=enrollment.id,
                contact_id=enrollment.contact_id,
                outcome=OutcomeTag.SKIPPED,
                detail=f"Enrollment changed by a concurrent pass; {patch.outcome.value} not applied",
            )

        self._log_outcome(log, patch)
        return EnrollmentResult(
            enrollment_id=enrollment.id,
            contact_id=enrollment.contact_id,
            outcome=patch.outcome,
            detail=patch.detail,
        )

    async def _evaluate(self, enrollment: EnrollmentSnapshot, now: datetime) -> EnrollmentPatch:
        """Run the ordered checks and, if they pass, the send."""
        if not enrollment.workflow_is_active:
            return transitions.pause(enrollment.workflow_name, enrollment.workflow_id)

        step = await self.store.get_step(enrollment.workflow_id, enrollment.current_step)
        if step is None:
            return transitions.fail(
                f'Step {enrollment.current_step} not found in workflow '
                f'"{enrollment.workflow_name}". Its steps may have been removed.'
            )

        channel = self.registry.get(step.channel)
        if channel is None:
            return transitions.fail(
                f"Unsupported channel '{step.channel}' on step {step.step_order}"
            )

        reason = channel.check_content(step)
        if reason:
            return transitions.fail(reason)

        contact = await self.store.get_contact(enrollment.contact_id)
        if contact is None:
            return transitions.fail(f"Contact not found: {enrollment.contact_id}")

        if channel.recipient(contact) is None:
            return transitions.fail(channel.missing_recipient_error())

        credentials = await self.store.get_credentials(
            enrollment.organization_id, channel.service_name
        )
        reason = channel.check_credentials(credentials)
        if reason:
            return transitions.on_failure(enrollment, reason, now, self.strategy)

        result = await channel.deliver(
            organization_id=enrollment.organization_id,
            step=step,
            contact=contact,
            credentials=credentials,
            history=self.history,
            metadata={
                "workflow_id": enrollment.workflow_id,
                "workflow_name": enrollment.workflow_name,
                "enrollment_id": enrollment.id,
                "step_order": enrollment.current_step,
            },
        )

        if result.credentials_update:
            await self.store.save_credentials(
                enrollment.organization_id, channel.service_name, result.credentials_update
            )

        next_step = None
        if result.success:
            next_step = await self.store.get_step(
                enrollment.workflow_id, enrollment.current_step + 1
            )
        return transitions.after_send(enrollment, next_step, result, now, self.strategy)

    @staticmethod
    def _log_outcome(log, patch: EnrollmentPatch) -> None:
        if patch.outcome in SENT_OUTCOMES:
            log.info("enrollment_processed", outcome=patch.outcome.value, detail=patch.detail)
        elif patch.outcome == OutcomeTag.FAILED:
            log.error("enrollment_processed", outcome=patch.outcome.value, detail=patch.detail)
        else:
            log.warning("enrollment_processed", outcome=patch.outcome.value, detail=patch.detail)
