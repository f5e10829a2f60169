from datetime import datetime

import numpy as np
import pytest

from frostbot import utils
from frostbot.state_manager import StateManager


@pytest.fixture
def state(database):
    return StateManager(database)


def test_queue_state_upsert(state):
    state.update_queue_state(1, profile_name='Main', is_running=True)
    state.update_queue_state(1, paused=True, current_task='Mail Rewards', bogus='ignored')

    row = state.get_queue_state(1)
    assert row['profile_name'] == 'Main'
    assert row['is_running'] is True
    assert row['paused'] is True
    assert row['needs_reconnect'] is False
    assert row['current_task'] == 'Mail Rewards'
    assert state.get_queue_state(2) is None


def test_reconnect_time_is_stored_as_iso(state):
    when = datetime(2026, 3, 10, 12, 5)
    state.update_queue_state(1, needs_reconnect=True, reconnect_at=when)
    assert state.get_queue_state(1)['reconnect_at'] == '2026-03-10T12:05:00'

    state.update_queue_state(1, needs_reconnect=False, reconnect_at=None)
    assert state.get_queue_state(1)['reconnect_at'] is None


def test_all_queue_states_sorted_by_name(state):
    state.update_queue_state(1, profile_name='beta')
    state.update_queue_state(2, profile_name='Alpha')

    assert [row['profile_name'] for row in state.get_all_queue_states()] == ['Alpha', 'beta']


def test_task_state_lifecycle(state):
    scheduled = datetime(2026, 3, 10, 13, 0)
    state.mark_task_scheduled(1, 'GATHER_RESOURCES', 'meat', next_execution=scheduled)
    assert state.is_task_scheduled(1, 'GATHER_RESOURCES', 'meat')
    assert not state.is_task_scheduled(1, 'GATHER_RESOURCES', 'wood')

    # Unscheduling keeps the known next execution
    state.mark_task_scheduled(1, 'GATHER_RESOURCES', 'meat', scheduled=False)
    row = state.get_task_state(1, 'GATHER_RESOURCES', 'meat')
    assert row['scheduled'] is False
    assert row['next_execution'] == '2026-03-10T13:00:00'

    state.update_task_execution(1, 'GATHER_RESOURCES', 'meat',
                                last_execution=datetime(2026, 3, 10, 13, 1), next_execution=None)
    row = state.get_task_state(1, 'GATHER_RESOURCES', 'meat')
    assert row['last_execution'] == '2026-03-10T13:01:00'
    assert row['next_execution'] is None


def test_clear_scheduled_per_profile(state):
    state.mark_task_scheduled(1, 'MAIL_REWARDS')
    state.mark_task_scheduled(2, 'MAIL_REWARDS')

    state.clear_scheduled(1)
    assert not state.is_task_scheduled(1, 'MAIL_REWARDS')
    assert state.is_task_scheduled(2, 'MAIL_REWARDS')

    state.clear_scheduled()
    assert not state.is_task_scheduled(2, 'MAIL_REWARDS')
    assert len(state.get_task_states(2)) == 1


def test_logs_oldest_first_with_limit(state):
    for i in range(5):
        state.add_log(f"message {i}", task='Mail Rewards', profile='Main')
    state.add_log("other profile", profile='Farm')

    logs = state.get_logs('Main', limit=3)
    assert [entry['message'] for entry in logs] == ['message 2', 'message 3', 'message 4']
    assert logs[0]['task'] == 'Mail Rewards'
    assert len(state.get_logs(limit=100)) == 6


def test_latest_screenshot_is_jpeg(state):
    assert state.get_latest_screenshot('Main') is None

    image = np.zeros((20, 30, 3), dtype=np.uint8)
    state.add_log("with image", profile='Main', screenshot=image)
    state.add_log("without image", profile='Main')

    data = state.get_latest_screenshot('Main')
    assert data[:2] == b'\xff\xd8'


def test_log_function_writes_to_state_manager(state):
    utils.set_state_manager(state)

    utils.log("Claimed", task='Mail Rewards', profile='Main')
    utils.log("hidden", level='DEBUG', profile='Main')

    assert [entry['message'] for entry in state.get_logs('Main')] == ['Claimed']

    utils.set_debug_mode(True)
    utils.log("shown", level='debug', profile='Main')
    assert state.get_logs('Main')[-1]['level'] == 'DEBUG'


def test_log_listener_and_console(capsys):
    records = []
    listener = lambda *args: records.append(args)
    utils.add_log_listener(listener)
    try:
        utils.set_headless_mode(True)
        utils.log("Hello", level='WARNING', task='Arena', profile='Main')
    finally:
        utils.remove_log_listener(listener)

    assert records == [('WARNING', 'Hello', 'Arena', 'Main', None)]
    assert '[WARNING][Main][Arena] Hello' in capsys.readouterr().out


def test_format_log_line():
    line = utils.format_log_line('INFO', 'Done', task='Mail Rewards', profile='Main',
                                 timestamp=datetime(2024, 1, 1, 8, 30, 0))
    assert line == '[08:30:00][INFO][Main][Mail Rewards] Done'


@pytest.mark.parametrize('seconds, expected', [
    (-3, '0s'),
    (45, '45s'),
    (299, '5m'),
    (7500, '2h05m'),
])
def test_format_cooldown_time(seconds, expected):
    assert utils.format_cooldown_time(seconds) == expected
