"""
Game Time Helpers

The game runs on UTC: the daily reset is 00:00 UTC and event schedules are
given in UTC. Tasks schedule in local naive datetimes, so these helpers do
the conversion and the recurring event window arithmetic.
"""

from collections import namedtuple
from datetime import datetime, timedelta, timezone
from enum import Enum


class WindowState(Enum):
    BEFORE = 'before'
    INSIDE = 'inside'
    AFTER = 'after'


WindowResult = namedtuple('WindowResult', [
    'state',                # WindowState
    'current_start',        # start of the current (or first) window
    'current_end',          # end of it, inclusive
    'next_start',           # start of the following window
    'minutes_until_next',   # until current_start when BEFORE, else until next_start
    'duration_minutes',
])


def to_utc(value):
    """Local naive (or aware) datetime -> aware UTC datetime"""
    return value.astimezone(timezone.utc)


def to_local(value):
    """Aware datetime -> local naive datetime"""
    return value.astimezone().replace(tzinfo=None)


def get_game_reset(now=None):
    """Next daily reset (00:00 UTC) as a local naive datetime

    Args:
        now: Reference local time (default: datetime.now())
    """
    now_utc = to_utc(now or datetime.now())
    reset = (now_utc + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return to_local(reset)


def next_utc_time(hhmm, now=None):
    """Next occurrence of a UTC wall clock time as a local naive datetime

    Args:
        hhmm: "HH:MM" in UTC
        now: Reference local time (default: datetime.now())

    Raises:
        ValueError: If hhmm is not a valid HH:MM time
    """
    hour, minute = parse_hhmm(hhmm)
    now_utc = to_utc(now or datetime.now())
    candidate = now_utc.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now_utc:
        candidate += timedelta(days=1)
    return to_local(candidate)


def parse_hhmm(text):
    """Parse "HH:MM" into (hour, minute)

    Raises:
        ValueError: If the text is not a valid time
    """
    parsed = datetime.strptime(str(text).strip(), '%H:%M')
    return parsed.hour, parsed.minute


def calculate_window(anchor, variable_minutes, fixed_window_minutes=30,
                     interval_days=2, now=None):
    """Locate now relative to a recurring event window

    The window of each cycle starts variable_minutes before the anchor and
    ends fixed_window_minutes after it (end inclusive). Cycles repeat every
    interval_days days from the anchor.

    Args:
        anchor: Reference event time (local naive datetime)
        variable_minutes: Preparation minutes before the anchor (>= 0)
        fixed_window_minutes: Minutes after the anchor (> 0)
        interval_days: Days between cycles (> 0)
        now: Reference local time (default: datetime.now())

    Returns:
        WindowResult

    Raises:
        ValueError: On negative or zero parameters
    """
    if variable_minutes < 0:
        raise ValueError("variable_minutes must be >= 0")
    if fixed_window_minutes <= 0:
        raise ValueError("fixed_window_minutes must be > 0")
    if interval_days <= 0:
        raise ValueError("interval_days must be > 0")

    now = now or datetime.now()
    duration = fixed_window_minutes + variable_minutes
    reference_start = anchor - timedelta(minutes=variable_minutes)
    interval = timedelta(days=interval_days)

    if now < reference_start:
        current_start = reference_start
        next_start = reference_start
    else:
        cycles = (now - reference_start) // interval
        current_start = reference_start + cycles * interval
        next_start = current_start + interval
    current_end = current_start + timedelta(minutes=duration)

    if now < current_start:
        state = WindowState.BEFORE
        until = current_start - now
    elif now <= current_end:
        state = WindowState.INSIDE
        until = next_start - now
    else:
        state = WindowState.AFTER
        until = next_start - now

    return WindowResult(state, current_start, current_end, next_start,
                        int(until.total_seconds() // 60), duration)
