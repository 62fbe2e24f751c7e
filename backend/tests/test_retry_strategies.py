"""Tests for workflow retry strategies."""

from datetime import timedelta

import pytest

from workflow.retry_strategies import WORKFLOW_RETRY, RetryPolicy, RetryStrategy


# ─── RetryStrategy creation ───

@pytest.mark.unit
class TestRetryStrategyCreation:
    def test_none_strategy(self):
        s = RetryStrategy.none()
        assert s.policy == RetryPolicy.NONE
        assert s.max_retries == 0

    def test_schedule_defaults_max_to_length(self):
        s = RetryStrategy.schedule((1, 2))
        assert s.max_retries == 2

    def test_schedule_explicit_max(self):
        s = RetryStrategy.schedule((1, 2), max_retries=5)
        assert s.max_retries == 5
        assert s.schedule_minutes == (1, 2)

    def test_empty_schedule_rejected(self):
        with pytest.raises(ValueError):
            RetryStrategy.schedule(())

    def test_workflow_preset(self):
        assert WORKFLOW_RETRY.policy == RetryPolicy.SCHEDULE
        assert WORKFLOW_RETRY.max_retries == 3
        assert WORKFLOW_RETRY.schedule_minutes == (5, 15, 30)


# ─── Delay computation ───

@pytest.mark.unit
class TestDelayComputation:
    def test_workflow_escalation(self):
        assert WORKFLOW_RETRY.compute_delay(1) == timedelta(minutes=5)
        assert WORKFLOW_RETRY.compute_delay(2) == timedelta(minutes=15)
        assert WORKFLOW_RETRY.compute_delay(3) == timedelta(minutes=30)

    def test_saturates_at_last_slot(self):
        assert WORKFLOW_RETRY.compute_delay(4) == timedelta(minutes=30)
        assert WORKFLOW_RETRY.compute_delay(10) == timedelta(minutes=30)

    def test_none_delay(self):
        assert RetryStrategy.none().compute_delay(1) == timedelta(0)


# ─── Retry boundary ───

@pytest.mark.unit
class TestShouldRetry:
    def test_three_retries_then_stop(self):
        assert [WORKFLOW_RETRY.should_retry(n) for n in (1, 2, 3, 4)] == [True, True, True, False]

    def test_none_never_retries(self):
        assert RetryStrategy.none().should_retry(1) is False
