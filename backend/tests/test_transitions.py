"""Tests for the pure enrollment state transitions."""

from datetime import datetime, timedelta

import pytest

from core.constants import OutcomeTag
from messaging.channels import SendResult, StepDefinition
from services.enrollment_store import EnrollmentSnapshot
from workflow import transitions
from workflow.retry_strategies import RetryStrategy

NOW = datetime(2026, 3, 2, 10, 0)


def _snapshot(current_step=1, retry_count=0):
    return EnrollmentSnapshot(
        id="enr-1",
        workflow_id="wf-1",
        contact_id="c-1",
        organization_id="org-1",
        current_step=current_step,
        retry_count=retry_count,
        next_send_at=NOW,
        workflow_name="Onboarding",
        workflow_is_active=True,
    )


def _step(order, delay_days=0, send_time=None):
    return StepDefinition(id=f"s-{order}", workflow_id="wf-1", step_order=order,
                          delay_days=delay_days, send_time=send_time)


@pytest.mark.unit
class TestAfterSend:
    def test_advance(self):
        patch = transitions.after_send(_snapshot(), _step(2, 1, "09:00"), SendResult.ok("m-1"), NOW)
        assert patch.outcome == OutcomeTag.ADVANCED
        assert patch.values == {
            "current_step": 2,
            "next_send_at": datetime(2026, 3, 3, 9, 0),
            "retry_count": 0,
            "last_error": None,
        }
        assert patch.status == "active"
        assert patch.detail == "Step 1 sent, advancing to 2"

    def test_advance_resets_retries(self):
        patch = transitions.after_send(_snapshot(retry_count=2), _step(2), SendResult.ok("m-1"), NOW)
        assert patch.values["retry_count"] == 0

    def test_complete_on_last_step(self):
        patch = transitions.after_send(_snapshot(current_step=2), None, SendResult.ok("m-1"), NOW)
        assert patch.outcome == OutcomeTag.COMPLETED
        assert patch.values["status"] == "completed"
        assert patch.values["completed_at"] == NOW
        assert "current_step" not in patch.values

    def test_failure_schedules_retry(self):
        patch = transitions.after_send(_snapshot(), _step(2), SendResult.failure("boom"), NOW)
        assert patch.outcome == OutcomeTag.RETRIED
        assert patch.values == {
            "retry_count": 1,
            "next_send_at": NOW + timedelta(minutes=5),
            "last_error": "boom",
        }
        assert patch.detail == "Retry 1/3 in 5min: boom"


@pytest.mark.unit
class TestOnFailure:
    @pytest.mark.parametrize("previous,minutes", [(0, 5), (1, 15), (2, 30)])
    def test_escalation(self, previous, minutes):
        patch = transitions.on_failure(_snapshot(retry_count=previous), "err", NOW)
        assert patch.outcome == OutcomeTag.RETRIED
        assert patch.values["retry_count"] == previous + 1
        assert patch.values["next_send_at"] == NOW + timedelta(minutes=minutes)

    def test_fourth_failure_fails(self):
        patch = transitions.on_failure(_snapshot(retry_count=3), "Rate limit hit", NOW)
        assert patch.outcome == OutcomeTag.FAILED
        assert patch.values == {
            "status": "failed",
            "retry_count": 4,
            "last_error": "Max retries (3) exceeded: Rate limit hit",
        }

    def test_empty_error_gets_default(self):
        patch = transitions.on_failure(_snapshot(), None, NOW)
        assert patch.values["last_error"] == "Send failed"

    def test_no_retry_strategy_fails_immediately(self):
        patch = transitions.on_failure(_snapshot(), "err", NOW, RetryStrategy.none())
        assert patch.outcome == OutcomeTag.FAILED
        assert patch.values["retry_count"] == 1


@pytest.mark.unit
class TestPauseAndFail:
    def test_pause(self):
        patch = transitions.pause("Onboarding", "wf-1")
        assert patch.outcome == OutcomeTag.PAUSED
        assert patch.values["status"] == "paused"
        assert patch.detail == 'Workflow "Onboarding" (wf-1) is inactive. The enrollment was paused.'

    def test_fail_leaves_retry_count(self):
        patch = transitions.fail("Contact has no phone number")
        assert patch.values == {"status": "failed", "last_error": "Contact has no phone number"}
