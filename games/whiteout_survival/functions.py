"""
Whiteout Survival Game Functions - execute functions of the feature tasks

Every function takes the Task being run and must end each path with a
task.reschedule(...) call. Screen coordinates are for a 720x1280 emulator.

Template names refer to needle images in the findimg folder.
"""

import math
from datetime import timedelta

from frostbot.game_time import (
    WindowState,
    calculate_window,
    get_game_reset,
    next_utc_time,
    parse_hhmm,
    to_utc,
)
from frostbot.ocr import DIGITS, TIMER, OCRSettings, fraction_to_first_int, parse_duration, parse_number
from frostbot.profiles import ConfigKey

# Short retry after a transient UI failure
RETRY_MINUTES = 5
ERROR_RETRY_MINUTES = 10


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def wait_and_tap(task, template, search_area=None, max_attempts=5, delay=0.2, threshold=0.9):
    """Wait for a template to appear and tap it

    Args:
        task: Task being run
        template: Needle name to find and tap
        search_area: Optional (x, y, w, h) rectangle
        max_attempts: Screenshots to try
        delay: Seconds between attempts
        threshold: Match accuracy threshold

    Returns:
        bool: True if the template was found and tapped
    """
    result = task.find_template(template, search_area, threshold, max_attempts, delay)
    if not result.found:
        return False
    task.tap(result.point)
    return True


def read_number(task, area, settings=DIGITS, attempts=3):
    """OCR an integer from a screen area, retrying on failure

    Returns:
        int or None
    """
    for _ in range(attempts):
        value = parse_number(task.read_text(area, settings))
        if value is not None:
            return value
        task.sleep_task(0.2)
    return None


def read_duration(task, area, settings=TIMER, attempts=3):
    """OCR a countdown from a screen area, retrying on failure

    Returns:
        timedelta or None
    """
    for _ in range(attempts):
        value = parse_duration(task.read_text(area, settings))
        if value is not None:
            return value
        task.sleep_task(0.2)
    return None


# ============================================================================
# STAMINA
# ============================================================================

STAMINA_PROFILE_BUTTON = ((25, 25), (95, 95))
STAMINA_AREA = (582, 1084, 108, 30)
STAMINA_OCR_SETTINGS = OCRSettings(whitelist='0123456789/', white_text=True)


def read_stamina(task):
    """Stamina reader used by the framework before stamina consuming tasks

    Opens the chief profile, reads "current/max" and closes it again.

    Returns:
        int or None
    """
    task.tap_random(*STAMINA_PROFILE_BUTTON)
    task.sleep_task(1)
    text = task.read_text(STAMINA_AREA, STAMINA_OCR_SETTINGS)
    task.tap_back()
    task.sleep_task(0.5)
    return fraction_to_first_int(text)


# ============================================================================
# VIP POINTS
# ============================================================================

VIP_MENU_BUTTON = ((430, 48), (530, 85))
VIP_PURCHASE_CONFIRM = ((520, 810), (650, 850))
VIP_PURCHASE_FINAL_CONFIRM = ((250, 770), (480, 800))
VIP_EXPIRATION_AREA = (273, 1170, 188, 43)
VIP_DAILY_CHEST = ((540, 813), (624, 835))
VIP_POINT_REWARDS = ((602, 263), (650, 293))
VIP_EXPIRATION_SETTINGS = OCRSettings(whitelist='0123456789d: ')


def _vip_next_run(task, buy_monthly, next_buy):
    reset = get_game_reset(task.now())
    if buy_monthly and next_buy and next_buy < reset:
        task.log_info(f"Next run for monthly VIP purchase at {next_buy:%Y-%m-%d %H:%M:%S}")
        return next_buy
    return reset


def _buy_monthly_vip(task, next_buy):
    """Buy monthly VIP if it lapsed and store its expiration time

    Returns:
        datetime or None: Next purchase time
    """
    if next_buy and task.now() < next_buy:
        task.log_info(f"Monthly VIP active until {next_buy:%Y-%m-%d %H:%M:%S}")
        return next_buy

    unlock = task.find_template('vip_unlock_button')
    if unlock.found:
        task.log_info("Monthly VIP is not active. Purchasing.")
        task.tap(unlock.point)
        task.sleep_task(1)
        task.tap_random(*VIP_PURCHASE_CONFIRM)
        task.sleep_task(0.5)
        task.tap_random(*VIP_PURCHASE_FINAL_CONFIRM)
        task.sleep_task(0.5)
        task.tap_back()
        task.sleep_task(0.5)
    else:
        task.log_info("Monthly VIP is already active.")

    remaining = read_duration(task, VIP_EXPIRATION_AREA, VIP_EXPIRATION_SETTINGS)
    if remaining is None:
        task.log_warning("Failed to read VIP expiration time")
        return next_buy

    next_buy = task.now() + remaining
    task.profile.set_config(ConfigKey.VIP_NEXT_MONTHLY_BUY_TIME_STRING, next_buy)
    task.set_should_update_config(True)
    task.log_info(f"VIP expiration stored: {next_buy:%Y-%m-%d %H:%M:%S}")
    return next_buy


def do_vip_points(task):
    """Claim the daily VIP chest and VIP points, optionally keep monthly VIP bought"""
    buy_monthly = task.profile.get_config(ConfigKey.VIP_MONTHLY_BUY_BOOL)
    next_buy = task.profile.get_config(ConfigKey.VIP_NEXT_MONTHLY_BUY_TIME_STRING)

    task.tap_random(*VIP_MENU_BUTTON)
    task.sleep_task(1)
    if not task.find_template('vip_menu').found:
        task.log_warning("Failed to open VIP menu.")
        task.reschedule(_vip_next_run(task, buy_monthly, next_buy))
        return

    if buy_monthly:
        next_buy = _buy_monthly_vip(task, next_buy)

    task.log_info("Claiming daily VIP chest")
    task.tap_random(*VIP_DAILY_CHEST, count=3, delay=0.3)
    task.sleep_task(0.5)

    task.log_info("Claiming VIP point rewards")
    task.tap_random(*VIP_POINT_REWARDS, count=3, delay=0.3)
    task.sleep_task(0.5)

    task.tap_back()
    task.reschedule(_vip_next_run(task, buy_monthly, next_buy))


# ============================================================================
# MAIL REWARDS
# ============================================================================

MAIL_MENU_AREA = (600, 1000, 115, 100)
MAIL_MENU_OPEN_AREA = (75, 10, 100, 50)
MAIL_CLAIM_BUTTON = ((420, 1227), (450, 1250))
MAIL_SCROLL = ((40, 913), (40, 400))
MAIL_TABS = [
    ('Alliance', (230, 120)),
    ('System', (360, 120)),
    ('Reports', (500, 120)),
]
MAX_MAIL_CLAIM_ROUNDS = 100
SWIPES_PER_PAGE = 10


def _claim_visible_mail(task):
    task.tap_random(*MAIL_CLAIM_BUTTON, count=4, delay=0.5)
    task.sleep_task(0.5)


def _claim_mail_tab(task, tab_point):
    task.tap(tab_point)
    task.sleep_task(0.2)
    _claim_visible_mail(task)

    rounds = 0
    while task.find_template('mail_unclaimed_rewards', max_attempts=3, delay=0.1).found:
        if rounds:
            for _ in range(SWIPES_PER_PAGE):
                task.swipe(*MAIL_SCROLL)
        _claim_visible_mail(task)
        rounds += 1
        if rounds >= MAX_MAIL_CLAIM_ROUNDS:
            task.log_error("Unclaimed mail marker never cleared, giving up on this tab")
            break


def do_mail_rewards(task):
    """Claim rewards in every mail tab"""
    if not wait_and_tap(task, 'mail_menu', MAIL_MENU_AREA):
        task.log_error(f"Mail menu not found. Retrying in {ERROR_RETRY_MINUTES} minutes.")
        task.reschedule(task.now() + timedelta(minutes=ERROR_RETRY_MINUTES))
        return

    task.sleep_task(0.5)
    if not task.find_template('mail_menu_open', MAIL_MENU_OPEN_AREA, max_attempts=5, delay=0.2).found:
        task.log_error(f"Mail menu did not open. Retrying in {ERROR_RETRY_MINUTES} minutes.")
        task.reschedule(task.now() + timedelta(minutes=ERROR_RETRY_MINUTES))
        return

    for name, point in MAIL_TABS:
        task.log_info(f"Processing {name} tab")
        _claim_mail_tab(task, point)

    task.tap_back()
    offset = task.profile.get_config(ConfigKey.MAIL_REWARDS_OFFSET_INT)
    task.reschedule(task.now() + timedelta(minutes=offset))


# ============================================================================
# STOREHOUSE CHEST
# ============================================================================

STOREHOUSE_LOCATION = ((30, 430), (50, 470))
STOREHOUSE_CHEST_TIMER_AREA = (266, 1100, 184, 45)
STOREHOUSE_BONUS_STAMINA_AREA = (436, 632, 51, 25)
STOREHOUSE_STAMINA_CLAIM = ((250, 930), (450, 950))
STOREHOUSE_BASE_STAMINA = 120
MAX_CHEST_TIMER = timedelta(hours=2)


def _claim_storehouse_chest(task):
    """
    Returns:
        datetime: When the next chest is ready
    """
    chest = task.find_template('storehouse_chest', max_attempts=3)
    if chest.found:
        task.log_info("Claiming storehouse chest")
        task.tap(chest.point)
        task.sleep_task(0.5)

    remaining = read_duration(task, STOREHOUSE_CHEST_TIMER_AREA)
    if remaining is None or remaining > MAX_CHEST_TIMER:
        task.log_warning("Chest timer unreadable, checking again shortly")
        return task.now() + timedelta(minutes=RETRY_MINUTES)
    return task.now() + remaining


def _claim_storehouse_stamina(task):
    """
    Returns:
        datetime: When the stamina reward is next available
    """
    stamina = task.find_template('storehouse_stamina', max_attempts=3)
    if not stamina.found:
        task.log_warning("Stamina reward not found. Retrying in 1 hour.")
        return task.now() + timedelta(hours=1)

    task.tap(stamina.point)
    task.sleep_task(0.5)
    bonus = read_number(task, STOREHOUSE_BONUS_STAMINA_AREA) or 0
    task.tap_random(*STOREHOUSE_STAMINA_CLAIM)
    task.sleep_task(0.5)

    task.services.stamina.add_stamina(task.profile_id, STOREHOUSE_BASE_STAMINA + bonus)
    task.log_info(f"Claimed {STOREHOUSE_BASE_STAMINA} base stamina + {bonus} bonus")
    return get_game_reset(task.now())


def do_storehouse_chest(task):
    """Claim the storehouse chest and, once a day, its stamina reward"""
    task.tap_random(*STOREHOUSE_LOCATION)
    task.sleep_task(1)
    if not task.find_template('storehouse_open', max_attempts=3).found:
        task.log_warning("Failed to open storehouse.")
        task.reschedule(task.now() + timedelta(minutes=RETRY_MINUTES))
        return

    next_chest = _claim_storehouse_chest(task)

    next_stamina = task.profile.get_config(ConfigKey.STOREHOUSE_NEXT_CLAIM_TIME_STRING)
    if next_stamina is None or next_stamina <= task.now():
        next_stamina = _claim_storehouse_stamina(task)
        task.profile.set_config(ConfigKey.STOREHOUSE_NEXT_CLAIM_TIME_STRING, next_stamina)
        task.set_should_update_config(True)

    task.tap_back()
    task.reschedule(min(next_chest, next_stamina))


# ============================================================================
# BEAR TRAP
# ============================================================================

BEAR_TRAP_DURATION_MINUTES = 30
BEAR_TRAP_INTERVAL_DAYS = 2
ALLIANCE_BUTTON = ((493, 1187), (561, 1240))
AUTOJOIN_BUTTON = ((260, 1200), (450, 1240))
AUTOJOIN_STOP_BUTTON = ((120, 1070), (240, 1110))
BEAR_TRAP_CHECK_SECONDS = 60


def _bear_trap_window(task):
    anchor = task.profile.get_config(ConfigKey.BEAR_TRAP_SCHEDULE_DATETIME_STRING)
    if anchor is None:
        return None
    preparation = task.profile.get_config(ConfigKey.BEAR_TRAP_PREPARATION_TIME_INT)
    return calculate_window(anchor, preparation, BEAR_TRAP_DURATION_MINUTES,
                            BEAR_TRAP_INTERVAL_DAYS, now=task.now())


def do_bear_trap(task):
    """Join Bear Trap rallies through alliance auto-join while the event window is open"""
    window = _bear_trap_window(task)
    if window is None:
        task.log_warning("Bear Trap schedule not configured. Checking again after reset.")
        task.reschedule(get_game_reset(task.now()))
        return

    if window.state is WindowState.BEFORE:
        task.log_info(f"Bear Trap window opens at {window.current_start:%Y-%m-%d %H:%M}")
        task.reschedule(window.current_start)
        return
    if window.state is WindowState.AFTER:
        task.log_info(f"Bear Trap window closed. Next at {window.next_start:%Y-%m-%d %H:%M}")
        task.reschedule(window.next_start)
        return

    task.log_info(f"Inside Bear Trap window until {window.current_end:%H:%M}")
    task.tap_random(*ALLIANCE_BUTTON)
    task.sleep_task(1)
    if not wait_and_tap(task, 'alliance_war_button', max_attempts=3):
        task.log_warning("Alliance war menu not found.")
        task.reschedule(task.now() + timedelta(minutes=1))
        return

    task.sleep_task(1)
    task.tap_random(*AUTOJOIN_BUTTON)
    task.sleep_task(0.5)
    if not wait_and_tap(task, 'autojoin_start', max_attempts=3):
        task.log_warning("Auto-join could not be enabled.")
        task.reschedule(task.now() + timedelta(minutes=1))
        return
    task.log_info("Auto-join enabled")

    remaining = (window.current_end - task.now()).total_seconds()
    for _ in range(max(0, math.ceil(remaining / BEAR_TRAP_CHECK_SECONDS))):
        task.sleep_task(BEAR_TRAP_CHECK_SECONDS)

    task.tap_random(*AUTOJOIN_STOP_BUTTON)
    task.sleep_task(0.5)
    task.tap_back()
    task.log_info("Bear Trap window over, auto-join stopped")
    task.reschedule(window.next_start)


# ============================================================================
# ARENA
# ============================================================================

ARENA_ATTEMPTS_AREA = (581, 1204, 60, 30)
ARENA_BUY_CONFIRM = ((460, 800), (590, 840))
ARENA_FALLBACK_OFFSET = timedelta(minutes=5)


def _arena_activation(task):
    """
    Returns:
        str or None: Valid "HH:MM" activation time
    """
    activation = task.profile.get_config(ConfigKey.ARENA_TASK_ACTIVATION_TIME_STRING)
    try:
        parse_hhmm(activation)
    except ValueError:
        return None
    return activation


def _reschedule_arena(task, activation):
    if activation is None:
        task.log_info("Invalid activation time, running 5 minutes before reset")
        task.reschedule(get_game_reset(task.now()) - ARENA_FALLBACK_OFFSET)
        return
    task.reschedule(next_utc_time(activation, task.now()))


def _buy_arena_attempts(task, wanted):
    bought = 0
    for _ in range(wanted):
        if not wait_and_tap(task, 'arena_buy_attempt', max_attempts=2):
            task.log_info("No more extra attempts available")
            break
        task.sleep_task(0.5)
        task.tap_random(*ARENA_BUY_CONFIRM)
        task.sleep_task(0.5)
        bought += 1
    return bought


def _fight_arena(task):
    """
    Returns:
        bool: True if a challenge was started and finished
    """
    if not wait_and_tap(task, 'arena_challenge', max_attempts=3):
        return False
    task.sleep_task(1)
    if not wait_and_tap(task, 'arena_fight', max_attempts=3):
        return False
    task.sleep_task(2)
    wait_and_tap(task, 'arena_skip', max_attempts=5, delay=0.5)
    task.sleep_task(1)
    task.tap_back()
    task.sleep_task(0.5)
    return True


def do_arena(task):
    """Use the daily arena challenges after the configured activation time (UTC)"""
    activation = _arena_activation(task)
    if activation is None:
        task.log_warning("Invalid arena activation time")
        _reschedule_arena(task, None)
        return

    hour, minute = parse_hhmm(activation)
    now_utc = to_utc(task.now())
    if (now_utc.hour, now_utc.minute) < (hour, minute):
        task.log_info(f"Before activation time {activation} UTC")
        _reschedule_arena(task, activation)
        return

    if not wait_and_tap(task, 'arena_button', max_attempts=3):
        task.log_warning("Arena not found.")
        task.reschedule(task.now() + timedelta(minutes=RETRY_MINUTES))
        return
    task.sleep_task(1)

    attempts = read_number(task, ARENA_ATTEMPTS_AREA)
    if attempts is None:
        task.log_warning("Failed to read arena attempts.")
        task.tap_back()
        _reschedule_arena(task, activation)
        return

    extra = task.profile.get_config(ConfigKey.ARENA_TASK_EXTRA_ATTEMPTS_INT)
    if extra > 0:
        attempts += _buy_arena_attempts(task, extra)

    task.log_info(f"Processing {attempts} challenge attempts")
    while attempts > 0:
        if not _fight_arena(task):
            task.log_warning("Challenge could not be started")
            break
        attempts -= 1

    task.tap_back()
    _reschedule_arena(task, activation)


# ============================================================================
# GATHER RESOURCES
# ============================================================================

GATHER_SEARCH_BUTTON = ((25, 850), (67, 898))
GATHER_RESOURCE_TABS = {
    'meat': (275, 1070),
    'wood': (400, 1070),
    'coal': (525, 1070),
    'iron': (650, 1070),
}
GATHER_LEVEL_AREA = (590, 1189, 50, 30)
GATHER_LEVEL_MINUS = (470, 1200)
GATHER_LEVEL_PLUS = (650, 1200)
GATHER_SEARCH_GO = ((301, 1200), (412, 1229))
GATHER_DURATION_AREA = (521, 1173, 150, 35)
GATHER_NO_TIME_MINUTES = 35


def gather_resource_types(profile):
    """Distinct keys of the gather task: one instance per configured resource"""
    raw = profile.get_config(ConfigKey.GATHER_RESOURCE_TYPES_STRING) or ''
    types = []
    for name in raw.split(','):
        name = name.strip().lower()
        if name in GATHER_RESOURCE_TABS and name not in types:
            types.append(name)
    return types


def _set_gather_level(task, level):
    current = read_number(task, GATHER_LEVEL_AREA)
    if current is None:
        task.log_warning("Failed to read resource level, resetting to 1")
        for _ in range(8):
            task.tap(GATHER_LEVEL_MINUS)
        current = 1
    step = GATHER_LEVEL_PLUS if current < level else GATHER_LEVEL_MINUS
    for _ in range(abs(level - current)):
        task.tap(step)
        task.sleep_task(0.1)


def do_gather_resources(task):
    """Send a gathering march for the resource named by the distinct key"""
    resource = task.distinct_key
    if resource not in GATHER_RESOURCE_TABS:
        task.log_error(f"Unknown resource type {resource!r}, retiring task")
        task.set_recurring(False)
        task.reschedule(task.now())
        return

    cost = task.profile.get_config(ConfigKey.GATHER_STAMINA_COST_INT)
    stamina = task.services.stamina
    if not stamina.check_stamina_or_reschedule(task, cost, cost * 2):
        return

    active = task.find_template(f'gather_march_{resource}')
    if active.found:
        task.tap(active.point)
        task.sleep_task(0.5)
        returns_in = read_duration(task, GATHER_DURATION_AREA)
        task.tap_back()
        if returns_in is not None:
            task.log_info(f"{resource} march active, returns in {returns_in}")
            task.reschedule(task.now() + returns_in)
            return

    task.tap_random(*GATHER_SEARCH_BUTTON)
    task.sleep_task(1)
    task.tap(GATHER_RESOURCE_TABS[resource])
    task.sleep_task(0.5)
    _set_gather_level(task, task.profile.get_config(ConfigKey.GATHER_LEVEL_INT))
    task.tap_random(*GATHER_SEARCH_GO)
    task.sleep_task(2)

    if not wait_and_tap(task, 'gather_button', max_attempts=3):
        task.log_warning(f"No {resource} tile found.")
        task.reschedule(task.now() + timedelta(minutes=ERROR_RETRY_MINUTES))
        return
    task.sleep_task(1)

    duration = read_duration(task, GATHER_DURATION_AREA)
    if not wait_and_tap(task, 'deploy_button', max_attempts=3):
        task.log_warning("Deploy button not found.")
        task.tap_back()
        task.reschedule(task.now() + timedelta(minutes=ERROR_RETRY_MINUTES))
        return

    stamina.subtract_stamina(task.profile_id, cost)
    if duration is None:
        task.log_info(f"{resource} march sent, gather time unknown")
        task.reschedule(task.now() + timedelta(minutes=GATHER_NO_TIME_MINUTES))
        return

    task.log_info(f"{resource} march sent, back in {duration}")
    task.reschedule(task.now() + duration + timedelta(minutes=2))
