import base64
from datetime import timedelta

import numpy as np
import pytest

from frostbot.registry import TaskKind
from frostbot.state_manager import StateManager
from frostbot.task_queue_manager import TaskQueueManager
from frostbot.task_types import TaskType
from frostbot.web import create_app


@pytest.fixture
def state(database):
    return StateManager(database)


@pytest.fixture
def manager(registry, state):
    registry.register(TaskKind(TaskType.INITIALIZE, lambda task: task.set_recurring(False)))
    registry.register(TaskKind(TaskType.MAIL_REWARDS,
                               lambda task: task.reschedule(task.now() + timedelta(hours=1))))
    return TaskQueueManager(registry, state_manager=state, max_idle_minutes=15, start_interval=0)


@pytest.fixture
def client(manager, state):
    app = create_app(manager, state)
    app.config['TESTING'] = True
    return app.test_client()


def test_list_queues_merges_persisted_states(client, manager, profile, state):
    manager.create_queue(profile)
    state.update_queue_state(7, profile_name='archived', is_running=False)

    response = client.get('/api/queues')
    data = response.get_json()

    assert response.status_code == 200
    assert data['success'] is True
    assert [q['profile_name'] for q in data['queues']] == ['archived', 'Main']
    assert data['queues'][1]['running'] is False


def test_queue_detail(client, manager, profile):
    manager.execute_task_now(TaskType.MAIL_REWARDS, profile.id)

    data = client.get(f'/api/queues/{profile.id}').get_json()

    assert data['queue']['profile_name'] == 'Main'
    assert [t['task_type'] for t in data['queue']['pending']] == ['MAIL_REWARDS']
    assert data['queue']['tasks'][0]['task_type'] == 'MAIL_REWARDS'
    assert data['queue']['tasks'][0]['scheduled'] is True


def test_unknown_queue_is_404(client):
    assert client.get('/api/queues/99').status_code == 404
    assert client.post('/api/queues/99/pause').status_code == 404
    assert client.post('/api/queues/99/resume').status_code == 404


def test_pause_and_resume(client, manager, profile):
    queue = manager.create_queue(profile)

    assert client.post(f'/api/queues/{profile.id}/pause').get_json() == {'success': True}
    assert queue.is_paused
    client.post(f'/api/queues/{profile.id}/resume')
    assert not queue.is_paused


def test_run_task_now(client, manager, profile, clock):
    response = client.post(f'/api/queues/{profile.id}/tasks/mail_rewards/run')
    data = response.get_json()

    assert data['queued'] is True
    assert data['task'] == 'Mail Rewards'
    assert data['scheduled_time'] == clock().isoformat(timespec='seconds')
    assert manager.get_queue(profile.id).is_task_scheduled(TaskType.MAIL_REWARDS)

    again = client.post(f'/api/queues/{profile.id}/tasks/MAIL_REWARDS/run').get_json()
    assert again['success'] is True
    assert again['queued'] is False

    replaced = client.post(f'/api/queues/{profile.id}/tasks/MAIL_REWARDS/run?replace=1').get_json()
    assert replaced['queued'] is True


def test_run_task_errors(client, profile):
    assert client.post('/api/queues/42/tasks/MAIL_REWARDS/run').status_code == 404

    response = client.post(f'/api/queues/{profile.id}/tasks/DANCE/run')
    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_logs(client, state):
    for i in range(3):
        state.add_log(f"line {i}", profile='Main')

    data = client.get('/api/logs/Main?limit=2').get_json()
    assert [entry['message'] for entry in data['logs']] == ['line 1', 'line 2']

    assert client.get('/api/logs/Main?limit=many').status_code == 400


def test_screenshot(client, state):
    assert client.get('/api/logs/Main/screenshot').status_code == 404

    state.add_log("captured", profile='Main', screenshot=np.full((300, 170, 3), 128, dtype=np.uint8))

    full = client.get('/api/logs/Main/screenshot').get_json()
    assert (full['width'], full['height']) == (170, 300)
    assert full['screenshot'].startswith('data:image/jpeg;base64,')

    preview = client.get('/api/logs/Main/screenshot?size=preview').get_json()
    raw = base64.b64decode(preview['screenshot'].split(',', 1)[1])
    assert raw[:2] == b'\xff\xd8'
