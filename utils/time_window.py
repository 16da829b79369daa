"""
Time window helpers
Converts wall-clock instants into day-of-week and minute-of-day and matches
them against schedule rules. Uses the host's local clock, no timezone math.
"""
import re
from datetime import datetime

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r'^(\d{1,2}):(\d{2})$')


def parse_hhmm(value: str) -> int:
    """
    Parse "HH:MM" into minutes since midnight, 0..1440

    "24:00" is the end of the day. Seconds are not accepted.

    Raises:
        ValueError: if the value is not a valid time of day
    """
    match = _HHMM.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"Invalid time: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes):
        raise ValueError(f"Invalid time: {value!r}")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_of_day(instant: datetime) -> int:
    """Minutes since local midnight, 0..1439"""
    return instant.hour * 60 + instant.minute


def day_of_week(instant: datetime) -> int:
    """Day of week with Sunday=0 ... Saturday=6"""
    # datetime.weekday() is Monday=0
    return (instant.weekday() + 1) % 7


def in_window(rule, instant: datetime) -> bool:
    """
    Check whether a schedule rule covers an instant

    The rule needs ``days_list``, ``start_minute`` and ``end_minute``. The
    window is half-open, [start, end), and never wraps past midnight; an end
    of 1440 covers the last minute of the day.
    """
    if day_of_week(instant) not in rule.days_list:
        return False
    return rule.start_minute <= minutes_of_day(instant) < rule.end_minute
