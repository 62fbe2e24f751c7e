"""Tests for step fire-time computation."""

from datetime import datetime, time, timedelta, timezone

import pytest

from workflow.scheduling import compute_next_send_at, parse_send_time

NOW = datetime(2026, 3, 2, 10, 30, 0)


@pytest.mark.unit
class TestParseSendTime:
    def test_hours_minutes(self):
        assert parse_send_time("09:00") == time(9, 0)

    def test_with_seconds(self):
        assert parse_send_time("17:45:30") == time(17, 45)

    @pytest.mark.parametrize("value", [None, "", "9:00", "24:00", "12:60", "noon", "12-30"])
    def test_invalid_means_no_time(self, value):
        assert parse_send_time(value) is None


@pytest.mark.unit
class TestComputeNextSendAt:
    def test_no_time_of_day(self):
        assert compute_next_send_at(2, None, NOW) == NOW + timedelta(days=2)

    def test_zero_delay_no_time_is_now(self):
        assert compute_next_send_at(0, None, NOW) == NOW

    def test_delay_with_time_of_day(self):
        assert compute_next_send_at(1, "09:00", NOW) == datetime(2026, 3, 3, 9, 0)

    def test_same_day_future_time(self):
        assert compute_next_send_at(0, "15:00", NOW) == datetime(2026, 3, 2, 15, 0)

    def test_same_day_past_time_rolls_forward(self):
        assert compute_next_send_at(0, "09:00", NOW) == datetime(2026, 3, 3, 9, 0)

    def test_same_day_exact_time_rolls_forward(self):
        assert compute_next_send_at(0, "10:30", NOW) == datetime(2026, 3, 3, 10, 30)

    def test_delay_with_earlier_time_does_not_roll(self):
        # delay > 0 uses the target day as-is
        assert compute_next_send_at(1, "08:00", NOW) == datetime(2026, 3, 3, 8, 0)

    def test_invalid_time_is_ignored(self):
        assert compute_next_send_at(1, "25:99", NOW) == NOW + timedelta(days=1)

    def test_negative_and_none_delay(self):
        assert compute_next_send_at(-3, None, NOW) == NOW
        assert compute_next_send_at(None, None, NOW) == NOW

    def test_aware_now_is_normalized(self):
        aware = datetime(2026, 3, 2, 12, 30, tzinfo=timezone(timedelta(hours=2)))
        result = compute_next_send_at(0, None, aware)
        assert result.tzinfo is None
        assert result == NOW

    def test_result_is_naive_utc_by_default(self):
        assert compute_next_send_at(0).tzinfo is None
