"""
Bootstrap - the initialization task that brings emulator and game up

State machine of one run:

    EMULATOR_DOWN -> EMULATOR_STARTING -> GAME_LAUNCHING
        -> AWAITING_HOME_SCREEN -> READY
                                -> FAILED_RETRY -> EMULATOR_DOWN

READY retires the task (non-recurring) after reading the stamina baseline.
FAILED_RETRY closes the emulator, clears the started-flag and makes the task
recurring again with an immediate reschedule, so the worker runs it again
right away. Game not installed stops the queue; a reconnect popup while
waiting for the home screen pauses it.

task.memory['started'] (emulator confirmed running) survives across runs;
everything else lives in task.run_state.
"""

from enum import Enum

from .navigation import ScreenState
from .task import ProfileInReconnectStateException, StopExecutionException

EMULATOR_BOOT_WAIT = 10
GAME_LAUNCH_WAIT = 10
HOME_SCREEN_RETRY_WAIT = 5
MAX_HOME_SCREEN_ATTEMPTS = 10


class BootstrapState(Enum):
    EMULATOR_DOWN = 'emulator_down'
    EMULATOR_STARTING = 'emulator_starting'
    GAME_LAUNCHING = 'game_launching'
    AWAITING_HOME_SCREEN = 'awaiting_home_screen'
    READY = 'ready'
    FAILED_RETRY = 'failed_retry'


def _enter(task, state):
    task.run_state['state'] = state
    task.run_state.setdefault('history', []).append(state)
    task.log_debug(f"Bootstrap state: {state.name}")


def _ensure_emulator_running(task):
    emulators = task.services.emulators
    while not task.memory.get('started'):
        if emulators.is_running(task.emulator_number):
            task.memory['started'] = True
            task.log_info("Emulator is running.")
        else:
            _enter(task, BootstrapState.EMULATOR_STARTING)
            task.log_info("Emulator not found. Attempting to start it...")
            emulators.launch_emulator(task.emulator_number)
            task.sleep_task(EMULATOR_BOOT_WAIT)


def _ensure_game_running(task):
    emulators = task.services.emulators
    if not emulators.is_package_installed(task.emulator_number):
        task.log_error("Game is not installed. Stopping the task queue.")
        raise StopExecutionException("Game not installed")

    if emulators.is_package_running(task.emulator_number):
        task.log_info("Game is already running.")
        return

    task.log_info("Game is not running. Launching the game...")
    emulators.launch_app(task.emulator_number)
    task.sleep_task(GAME_LAUNCH_WAIT)


def _wait_for_home_screen(task):
    """
    Returns:
        bool: True once the home or world screen shows
    """
    navigator = task.services.navigator
    for attempt in range(1, MAX_HOME_SCREEN_ATTEMPTS + 1):
        state, _ = navigator.detect_screen(task.emulator_number)
        if state in (ScreenState.HOME, ScreenState.WORLD):
            return True
        if state is ScreenState.RECONNECT:
            raise ProfileInReconnectStateException(
                f"Profile {task.profile.name} is in reconnect state")

        task.log_warning(f"Home screen not found ({attempt}/{MAX_HOME_SCREEN_ATTEMPTS})")
        task.tap_back()
        task.sleep_task(HOME_SCREEN_RETRY_WAIT)
    return False


def do_initialize(task):
    """Execute function of the INITIALIZE task"""
    task.set_recurring(False)
    task.log_info("Starting initialization task...")

    if not task.memory.get('started'):
        _enter(task, BootstrapState.EMULATOR_DOWN)
    _ensure_emulator_running(task)

    _enter(task, BootstrapState.GAME_LAUNCHING)
    _ensure_game_running(task)

    _enter(task, BootstrapState.AWAITING_HOME_SCREEN)
    if not _wait_for_home_screen(task):
        _enter(task, BootstrapState.FAILED_RETRY)
        task.log_error("Home screen not found. Restarting emulator.")
        task.services.emulators.close_emulator(task.emulator_number)
        task.memory['started'] = False
        task.set_recurring(True)
        task.reschedule(task.now())
        _enter(task, BootstrapState.EMULATOR_DOWN)
        return

    _enter(task, BootstrapState.READY)
    task.log_info("Game is ready.")
    task.update_stamina()
