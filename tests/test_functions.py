from datetime import timedelta

import pytest

from frostbot.game_time import get_game_reset, next_utc_time
from frostbot.profiles import ConfigKey
from frostbot.registry import TaskRegistry
from frostbot.task import StartLocation
from frostbot.task_types import TaskType
from games.whiteout_survival import TASK_KINDS, functions
from games.whiteout_survival.functions import (
    ARENA_ATTEMPTS_AREA,
    GATHER_DURATION_AREA,
    GATHER_LEVEL_AREA,
    GATHER_LEVEL_PLUS,
    STAMINA_AREA,
    STOREHOUSE_BONUS_STAMINA_AREA,
    STOREHOUSE_CHEST_TIMER_AREA,
    VIP_EXPIRATION_AREA,
)


@pytest.fixture
def sleeps(services):
    recorded = []
    services.sleep = recorded.append
    return recorded


# ============================================================================
# TASK KIND TABLE
# ============================================================================

def test_task_kind_table(services, profile):
    registry = TaskRegistry(services, TASK_KINDS)

    assert registry.get_kind(TaskType.GATHER_RESOURCES).start_location is StartLocation.WORLD
    assert registry.get_kind(TaskType.GATHER_RESOURCES).consumes_stamina
    assert registry.get_kind(TaskType.VIP_POINTS).start_location is StartLocation.ANY

    profile.set_config(ConfigKey.GATHER_RESOURCES_BOOL, True)
    profile.set_config(ConfigKey.ARENA_TASK_BOOL, True)
    assert registry.enabled_tasks(profile) == [TaskType.ARENA, TaskType.GATHER_RESOURCES]

    keys = [task.distinct_key for task in registry.create_all(TaskType.GATHER_RESOURCES, profile)]
    assert keys == ['meat', 'wood']


def test_read_stamina(make_task, vision, emulators):
    vision.texts[STAMINA_AREA] = '85/120'
    task = make_task()

    assert functions.read_stamina(task) == 85
    assert emulators.names() == ['tap_random', 'tap_back']


# ============================================================================
# VIP POINTS
# ============================================================================

def test_vip_menu_missing_reschedules_to_reset(make_task, vision, clock):
    task = make_task(TaskType.VIP_POINTS)
    functions.do_vip_points(task)
    assert task.scheduled_time == get_game_reset(clock())


def test_vip_claims_and_buys_monthly(make_task, vision, clock):
    task = make_task(TaskType.VIP_POINTS)
    task.profile.set_config(ConfigKey.VIP_MONTHLY_BUY_BOOL, True)
    vision.templates['vip_menu'] = True
    vision.templates['vip_unlock_button'] = True
    vision.texts[VIP_EXPIRATION_AREA] = '2d 00:00:00'

    functions.do_vip_points(task)

    expected_buy = clock() + timedelta(days=2)
    assert task.profile.get_config(ConfigKey.VIP_NEXT_MONTHLY_BUY_TIME_STRING) == expected_buy
    assert task.should_update_config
    assert task.scheduled_time == get_game_reset(clock())


def test_vip_runs_again_for_earlier_monthly_purchase(make_task, vision, clock):
    task = make_task(TaskType.VIP_POINTS)
    next_buy = clock() + timedelta(minutes=30)
    task.profile.set_config(ConfigKey.VIP_MONTHLY_BUY_BOOL, True)
    task.profile.set_config(ConfigKey.VIP_NEXT_MONTHLY_BUY_TIME_STRING, next_buy)
    vision.templates['vip_menu'] = True

    functions.do_vip_points(task)

    assert 'vip_unlock_button' not in vision.searches
    assert task.scheduled_time == min(next_buy, get_game_reset(clock()))


# ============================================================================
# MAIL REWARDS
# ============================================================================

def test_mail_menu_missing_retries(make_task, clock):
    task = make_task()
    functions.do_mail_rewards(task)
    assert task.scheduled_time == clock() + timedelta(minutes=functions.ERROR_RETRY_MINUTES)


def test_mail_claims_every_tab(make_task, vision, emulators, clock):
    vision.templates['mail_menu'] = True
    vision.templates['mail_menu_open'] = True
    vision.templates['mail_unclaimed_rewards'] = [True, True, False]
    task = make_task()
    task.profile.set_config(ConfigKey.MAIL_REWARDS_OFFSET_INT, 45)

    functions.do_mail_rewards(task)

    tab_taps = [call[1] for call in emulators.calls if call[0] == 'tap'][1:]
    assert tab_taps == [point for _, point in functions.MAIL_TABS]
    assert emulators.names().count('swipe') == functions.SWIPES_PER_PAGE
    assert task.scheduled_time == clock() + timedelta(minutes=45)


# ============================================================================
# STOREHOUSE CHEST
# ============================================================================

def test_storehouse_claims_chest_and_stamina(make_task, vision, services, clock):
    vision.templates['storehouse_open'] = True
    vision.templates['storehouse_chest'] = True
    vision.templates['storehouse_stamina'] = True
    vision.texts[STOREHOUSE_CHEST_TIMER_AREA] = '00:30:00'
    vision.texts[STOREHOUSE_BONUS_STAMINA_AREA] = '15'
    task = make_task(TaskType.STOREHOUSE_CHEST)

    functions.do_storehouse_chest(task)

    reset = get_game_reset(clock())
    assert services.stamina.get_current_stamina(task.profile_id) == 135
    assert task.profile.get_config(ConfigKey.STOREHOUSE_NEXT_CLAIM_TIME_STRING) == reset
    assert task.should_update_config
    assert task.scheduled_time == min(clock() + timedelta(minutes=30), reset)


def test_storehouse_skips_stamina_until_due(make_task, vision, clock):
    vision.templates['storehouse_open'] = True
    vision.texts[STOREHOUSE_CHEST_TIMER_AREA] = '5h'
    task = make_task(TaskType.STOREHOUSE_CHEST)
    next_claim = clock() + timedelta(hours=3)
    task.profile.set_config(ConfigKey.STOREHOUSE_NEXT_CLAIM_TIME_STRING, next_claim)

    functions.do_storehouse_chest(task)

    assert 'storehouse_stamina' not in vision.searches
    assert not task.should_update_config
    # Unreadable chest timer falls back to a short retry
    assert task.scheduled_time == clock() + timedelta(minutes=functions.RETRY_MINUTES)


def test_storehouse_not_opened(make_task, clock):
    task = make_task(TaskType.STOREHOUSE_CHEST)
    functions.do_storehouse_chest(task)
    assert task.scheduled_time == clock() + timedelta(minutes=functions.RETRY_MINUTES)


# ============================================================================
# BEAR TRAP
# ============================================================================

def test_bear_trap_not_configured(make_task, clock):
    task = make_task(TaskType.BEAR_TRAP)
    functions.do_bear_trap(task)
    assert task.scheduled_time == get_game_reset(clock())


def test_bear_trap_before_window(make_task, clock, emulators):
    task = make_task(TaskType.BEAR_TRAP)
    anchor = clock() + timedelta(hours=1)
    task.profile.set_config(ConfigKey.BEAR_TRAP_SCHEDULE_DATETIME_STRING, anchor)

    functions.do_bear_trap(task)

    assert task.scheduled_time == anchor - timedelta(minutes=5)
    assert emulators.calls == []


def test_bear_trap_after_window(make_task, clock):
    task = make_task(TaskType.BEAR_TRAP)
    anchor = clock() - timedelta(hours=2)
    task.profile.set_config(ConfigKey.BEAR_TRAP_SCHEDULE_DATETIME_STRING, anchor)

    functions.do_bear_trap(task)

    assert task.scheduled_time == anchor - timedelta(minutes=5) + timedelta(days=2)


def test_bear_trap_inside_window_waits_it_out(make_task, vision, clock, sleeps):
    vision.templates['alliance_war_button'] = True
    vision.templates['autojoin_start'] = True
    task = make_task(TaskType.BEAR_TRAP)
    anchor = clock() - timedelta(minutes=5)
    task.profile.set_config(ConfigKey.BEAR_TRAP_SCHEDULE_DATETIME_STRING, anchor)

    functions.do_bear_trap(task)

    assert sleeps.count(functions.BEAR_TRAP_CHECK_SECONDS) == 25
    assert task.scheduled_time == anchor - timedelta(minutes=5) + timedelta(days=2)


def test_bear_trap_autojoin_failure_retries(make_task, clock):
    task = make_task(TaskType.BEAR_TRAP)
    task.profile.set_config(ConfigKey.BEAR_TRAP_SCHEDULE_DATETIME_STRING, clock())

    functions.do_bear_trap(task)

    assert task.scheduled_time == clock() + timedelta(minutes=1)


# ============================================================================
# ARENA
# ============================================================================

def test_arena_invalid_activation_time(make_task, clock):
    task = make_task(TaskType.ARENA)
    task.profile.set_config(ConfigKey.ARENA_TASK_ACTIVATION_TIME_STRING, 'later')

    functions.do_arena(task)

    assert task.scheduled_time == get_game_reset(clock()) - timedelta(minutes=5)


def test_arena_before_activation(make_task, vision, clock):
    task = make_task(TaskType.ARENA)
    task.profile.set_config(ConfigKey.ARENA_TASK_ACTIVATION_TIME_STRING, '23:59')

    functions.do_arena(task)

    assert vision.searches == []
    assert task.scheduled_time == next_utc_time('23:59', clock())


def test_arena_fights_every_attempt(make_task, vision, clock):
    for template in ('arena_button', 'arena_challenge', 'arena_fight', 'arena_skip'):
        vision.templates[template] = True
    vision.templates['arena_buy_attempt'] = [True, False]
    vision.texts[ARENA_ATTEMPTS_AREA] = '3'
    task = make_task(TaskType.ARENA)
    task.profile.set_config(ConfigKey.ARENA_TASK_ACTIVATION_TIME_STRING, '00:00')
    task.profile.set_config(ConfigKey.ARENA_TASK_EXTRA_ATTEMPTS_INT, 2)

    functions.do_arena(task)

    assert vision.searches.count('arena_buy_attempt') == 2
    assert vision.searches.count('arena_fight') == 4
    assert task.scheduled_time == next_utc_time('00:00', clock())


def test_arena_unreadable_attempts(make_task, vision, clock):
    vision.templates['arena_button'] = True
    task = make_task(TaskType.ARENA)
    task.profile.set_config(ConfigKey.ARENA_TASK_ACTIVATION_TIME_STRING, '00:00')

    functions.do_arena(task)

    assert 'arena_challenge' not in vision.searches
    assert task.scheduled_time == next_utc_time('00:00', clock())


# ============================================================================
# GATHER RESOURCES
# ============================================================================

def test_gather_resource_types(profile):
    profile.set_config(ConfigKey.GATHER_RESOURCE_TYPES_STRING, 'Meat, wood,stone,meat')
    assert functions.gather_resource_types(profile) == ['meat', 'wood']


def test_gather_unknown_resource_retires_task(make_task, clock):
    task = make_task(TaskType.GATHER_RESOURCES, distinct_key='stone', delay=-60)
    functions.do_gather_resources(task)
    assert task.recurring is False
    assert task.scheduled_time == clock()


def test_gather_waits_for_stamina(make_task, services, clock):
    task = make_task(TaskType.GATHER_RESOURCES, distinct_key='meat')
    services.stamina.set_stamina(task.profile_id, 5)

    functions.do_gather_resources(task)

    assert task.scheduled_time == clock() + timedelta(minutes=75)


def test_gather_active_march_reschedules_to_return(make_task, vision, services, clock):
    vision.templates['gather_march_meat'] = True
    vision.texts[GATHER_DURATION_AREA] = '01:00:00'
    task = make_task(TaskType.GATHER_RESOURCES, distinct_key='meat')
    services.stamina.set_stamina(task.profile_id, 50)

    functions.do_gather_resources(task)

    assert 'gather_button' not in vision.searches
    assert task.scheduled_time == clock() + timedelta(hours=1)


def test_gather_sends_march(make_task, vision, services, emulators, clock):
    vision.templates['gather_button'] = True
    vision.templates['deploy_button'] = True
    vision.texts[GATHER_LEVEL_AREA] = '4'
    vision.texts[GATHER_DURATION_AREA] = '00:40:00'
    task = make_task(TaskType.GATHER_RESOURCES, distinct_key='wood')
    services.stamina.set_stamina(task.profile_id, 50)

    functions.do_gather_resources(task)

    taps = [call[1] for call in emulators.calls if call[0] == 'tap']
    assert taps.count(GATHER_LEVEL_PLUS) == 2
    assert functions.GATHER_RESOURCE_TABS['wood'] in taps
    assert services.stamina.get_current_stamina(task.profile_id) == 40
    assert task.scheduled_time == clock() + timedelta(minutes=42)


def test_gather_no_tile_found(make_task, services, clock):
    task = make_task(TaskType.GATHER_RESOURCES, distinct_key='coal')
    services.stamina.set_stamina(task.profile_id, 50)

    functions.do_gather_resources(task)

    assert services.stamina.get_current_stamina(task.profile_id) == 50
    assert task.scheduled_time == clock() + timedelta(minutes=functions.ERROR_RETRY_MINUTES)
