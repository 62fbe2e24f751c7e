"""Fire-time computation for workflow steps.

Used when enrolling a contact (step 1), when advancing to the next step
and when a paused enrollment is reactivated.
"""

import re
from datetime import datetime, time, timedelta
from typing import Optional

from core.utils import to_naive_utc, utc_now_naive

SEND_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")


def parse_send_time(send_time: Optional[str]) -> Optional[time]:
    """Parse ``HH:MM`` or ``HH:MM:SS`` (UTC). Anything else means no time of day."""
    if not send_time:
        return None
    match = SEND_TIME_PATTERN.match(send_time.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def compute_next_send_at(
    delay_days: Optional[int],
    send_time: Optional[str] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """Compute when a step may fire, as naive UTC.

    Without a time of day the step fires ``delay_days`` days from now.
    With one, it fires on that day at the given UTC time. A same-day
    step (``delay_days == 0``) whose time has already passed rolls to
    the following day, so a step is never scheduled in the past.
    """
    now = to_naive_utc(now) if now is not None else utc_now_naive()
    delay = max(int(delay_days or 0), 0)
    at = parse_send_time(send_time)

    if at is None:
        return now + timedelta(days=delay)

    target = datetime.combine((now + timedelta(days=delay)).date(), at)
    if delay == 0 and target <= now:
        target += timedelta(days=1)
    return target
