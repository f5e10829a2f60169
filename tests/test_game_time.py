from datetime import datetime, timedelta

import pytest

from frostbot.game_time import (
    WindowState,
    calculate_window,
    get_game_reset,
    next_utc_time,
    parse_hhmm,
    to_local,
    to_utc,
)

ANCHOR = datetime(2026, 3, 10, 20, 0)


def test_utc_round_trip():
    now = datetime(2026, 3, 10, 12, 34, 56)
    assert to_local(to_utc(now)) == now


def test_game_reset_is_next_utc_midnight():
    now = datetime(2026, 3, 10, 12, 0)
    reset = get_game_reset(now)
    reset_utc = to_utc(reset)

    assert (reset_utc.hour, reset_utc.minute, reset_utc.second) == (0, 0, 0)
    assert timedelta(0) < reset - now <= timedelta(days=1)


def test_next_utc_time_is_within_a_day():
    now = datetime(2026, 3, 10, 12, 0)
    when = next_utc_time('23:50', now)
    when_utc = to_utc(when)

    assert (when_utc.hour, when_utc.minute) == (23, 50)
    assert timedelta(0) < when - now <= timedelta(days=1)


def test_next_utc_time_rolls_over_when_passed():
    target = datetime(2026, 3, 10, 12, 0)
    hhmm = f"{to_utc(target):%H:%M}"

    # Exactly now counts as passed
    assert next_utc_time(hhmm, target) == target + timedelta(days=1)


def test_parse_hhmm():
    assert parse_hhmm(' 07:05 ') == (7, 5)
    with pytest.raises(ValueError):
        parse_hhmm('25:00')
    with pytest.raises(ValueError):
        parse_hhmm('noon')


def test_window_before_first_cycle():
    result = calculate_window(ANCHOR, 5, now=ANCHOR - timedelta(hours=1))

    assert result.state is WindowState.BEFORE
    assert result.current_start == ANCHOR - timedelta(minutes=5)
    assert result.next_start == result.current_start
    assert result.minutes_until_next == 55
    assert result.duration_minutes == 35


def test_window_inside_including_end():
    inside = calculate_window(ANCHOR, 5, now=ANCHOR + timedelta(minutes=10))
    assert inside.state is WindowState.INSIDE
    assert inside.current_end == ANCHOR + timedelta(minutes=30)
    assert inside.next_start == ANCHOR - timedelta(minutes=5) + timedelta(days=2)

    at_end = calculate_window(ANCHOR, 5, now=ANCHOR + timedelta(minutes=30))
    assert at_end.state is WindowState.INSIDE


def test_window_after_points_to_next_cycle():
    result = calculate_window(ANCHOR, 5, now=ANCHOR + timedelta(hours=1))

    assert result.state is WindowState.AFTER
    assert result.next_start == ANCHOR + timedelta(days=2, minutes=-5)
    assert result.minutes_until_next == 2 * 24 * 60 - 65


def test_window_in_later_cycle():
    now = ANCHOR + timedelta(days=4, minutes=1)
    result = calculate_window(ANCHOR, 0, now=now)

    assert result.state is WindowState.INSIDE
    assert result.current_start == ANCHOR + timedelta(days=4)


@pytest.mark.parametrize('kwargs', [
    {'variable_minutes': -1},
    {'variable_minutes': 5, 'fixed_window_minutes': 0},
    {'variable_minutes': 5, 'interval_days': 0},
])
def test_window_rejects_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        calculate_window(ANCHOR, now=ANCHOR, **kwargs)
