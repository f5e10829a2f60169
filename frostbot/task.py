"""
Task - one unit of recurring, self-rescheduling work bound to a profile

Every task kind shares the same run() lifecycle; only the execute function
differs. Execute functions live in the game package and receive the task:

    def do_mail_rewards(task):
        if task.find_template('mail_button').found:
            ...
        task.reschedule(datetime.now() + timedelta(hours=1))

Contract for execute functions:
    - end every path having called task.reschedule(when), optionally with
      task.set_recurring(False) to retire the task
    - catch recoverable failures (template not found, OCR failed) and turn
      them into a short reschedule instead of raising
    - raise StopExecutionException / ProfileInReconnectStateException only
      for the fatal / needs-intervention cases

State:
    task.memory     survives across runs (e.g. the bootstrap started-flag)
    task.run_state  reset to {} at the start of every execute
"""

import time
from datetime import datetime
from enum import Enum

from .task_types import TaskType
from .utils import log

# Seconds to let the UI settle after execute before the neutral-screen check
POST_RUN_SETTLE_SECONDS = 2


class StartLocation(Enum):
    HOME = 'home'
    WORLD = 'world'
    ANY = 'any'


class StopExecutionException(Exception):
    """Fatal: the profile's queue must stop (e.g. game not installed)"""
    pass


class ProfileInReconnectStateException(Exception):
    """The game session is disconnected; the queue waits for a reconnect"""
    pass


class HomeNotFoundException(Exception):
    """Navigation could not reach the home or world screen"""
    pass


class TaskServices:
    """Collaborators shared by the tasks of every profile

    Attributes:
        profiles: ProfileRepository (get_profile / save_profile)
        emulators: EmulatorManager (taps, swipes, package queries)
        vision: Vision (find_template / read_text)
        navigator: Navigator (ensure_location)
        stamina: StaminaTracker
        stamina_reader: Callable(task) -> int | None that reads stamina from screen
        sleep: Callable(seconds), blocking sleep
        clock: Callable() -> local datetime
    """

    def __init__(self, profiles, emulators, vision=None, navigator=None, stamina=None,
                 stamina_reader=None, sleep=time.sleep, clock=datetime.now):
        self.profiles = profiles
        self.emulators = emulators
        self.vision = vision
        self.navigator = navigator
        self.stamina = stamina
        self.stamina_reader = stamina_reader
        self.sleep = sleep
        self.clock = clock


class Task:
    """A scheduled task instance

    Identity (equality and hashing) is (task_type, profile_id, distinct_key):
    two instances for the same duty of the same profile are interchangeable.

    Attributes:
        task_type: TaskType member
        profile: Profile snapshot, refreshed at the start of each run
        services: TaskServices
        start_location: StartLocation required before execute
        consumes_stamina: Refresh tracked stamina before execute when stale
        distinct_key: Optional key allowing several instances of one type
        scheduled_time: When the task becomes ready
        recurring: Re-offered to the queue after a run while True
        last_execution_time: End of the previous run (None before the first)
    """

    def __init__(self, task_type, profile, services, execute,
                 start_location=StartLocation.ANY, consumes_stamina=False,
                 distinct_key=None, scheduled_time=None):
        self.task_type = task_type
        self.profile = profile
        self.services = services
        self._execute_func = execute
        self.start_location = start_location
        self.consumes_stamina = consumes_stamina
        self.distinct_key = distinct_key
        self.scheduled_time = scheduled_time or services.clock()
        self.recurring = True
        self.last_execution_time = None
        self.should_update_config = False
        self.memory = {}
        self.run_state = {}

    # ============================================================================
    # IDENTITY
    # ============================================================================

    @property
    def profile_id(self):
        return self.profile.id

    @property
    def emulator_number(self):
        return self.profile.emulator_number

    @property
    def is_bootstrap(self):
        return self.task_type is TaskType.INITIALIZE

    @property
    def name(self):
        if self.distinct_key is not None:
            return f"{self.task_type.display_name} ({self.distinct_key})"
        return self.task_type.display_name

    def identity(self):
        return (self.task_type, self.profile_id, self.distinct_key)

    def __eq__(self, other):
        if not isinstance(other, Task):
            return NotImplemented
        return self.identity() == other.identity()

    def __hash__(self):
        return hash(self.identity())

    def __repr__(self):
        return (f"Task({self.task_type.name}, profile={self.profile_id}, "
                f"key={self.distinct_key!r}, at={self.scheduled_time:%Y-%m-%d %H:%M:%S})")

    # ============================================================================
    # SCHEDULING
    # ============================================================================

    def reschedule(self, when):
        """Set the next execution time; the last call before the run ends wins"""
        self.scheduled_time = when

    def set_recurring(self, recurring):
        self.recurring = bool(recurring)

    def set_should_update_config(self, flag=True):
        """Ask run() to persist the profile after execute"""
        self.should_update_config = bool(flag)

    def delay(self, now=None):
        """Remaining time until ready (negative when overdue)"""
        return self.scheduled_time - (now or self.services.clock())

    def is_ready(self, now=None):
        return self.delay(now).total_seconds() <= 0

    # ============================================================================
    # LIFECYCLE
    # ============================================================================

    def run(self):
        """Run the task through the shared lifecycle

        Raises:
            StopExecutionException: Game not installed / not running
            ProfileInReconnectStateException: Session disconnected
            HomeNotFoundException: Screen could not be brought to home/world
        """
        self.refresh_profile()

        if self.is_bootstrap:
            self._execute()
            return

        self.validate_game_running()
        self.ensure_location(self.start_location)

        if self.consumes_stamina and self.services.stamina.requires_update(self.profile_id):
            self.update_stamina()

        self._execute()

        if self.should_update_config:
            self.services.profiles.save_profile(self.profile)
            self.should_update_config = False

        self.services.sleep(POST_RUN_SETTLE_SECONDS)
        self.ensure_location(StartLocation.ANY)

    def _execute(self):
        self.run_state = {}
        self._execute_func(self)

    def refresh_profile(self):
        """Reload the profile; keep the stale one if that fails"""
        try:
            fresh = self.services.profiles.get_profile(self.profile_id)
        except Exception as e:
            self.log_warning(f"Could not refresh profile, using cached values: {e}")
            return
        if fresh is None:
            self.log_warning("Profile not found, using cached values")
            return
        self.profile = fresh

    def validate_game_running(self):
        if not self.services.emulators.is_package_running(self.emulator_number):
            raise StopExecutionException(f"Game is not running on emulator {self.emulator_number}")

    def ensure_location(self, location):
        navigator = self.services.navigator
        if navigator is not None:
            navigator.ensure_location(self.emulator_number, location, profile_name=self.profile.name)

    def update_stamina(self):
        """Read stamina from screen into the tracker"""
        reader = self.services.stamina_reader
        if reader is None:
            return
        value = reader(self)
        if value is None:
            self.log_warning("Failed to read stamina")
            return
        self.services.stamina.set_stamina(self.profile_id, value)
        self.log_info(f"Stamina: {value}")

    # ============================================================================
    # HELPERS FOR EXECUTE FUNCTIONS
    # ============================================================================

    def find_template(self, template, search_area=None, threshold=0.9, max_attempts=1, delay=0.3):
        return self.services.vision.find_template(
            self.emulator_number, template, search_area, threshold, max_attempts, delay)

    def read_text(self, area, settings=None):
        return self.services.vision.read_text(self.emulator_number, area, settings)

    def tap(self, point):
        self.services.emulators.tap(self.emulator_number, point)

    def tap_random(self, top_left, bottom_right, count=1, delay=0.2):
        self.services.emulators.tap_random(self.emulator_number, top_left, bottom_right, count, delay)

    def swipe(self, start, end):
        self.services.emulators.swipe(self.emulator_number, start, end)

    def tap_back(self):
        self.services.emulators.tap_back(self.emulator_number)

    def sleep_task(self, seconds):
        self.services.sleep(seconds)

    def now(self):
        return self.services.clock()

    def log_info(self, message):
        log(message, level='INFO', task=self.name, profile=self.profile.name)

    def log_warning(self, message):
        log(message, level='WARNING', task=self.name, profile=self.profile.name)

    def log_error(self, message):
        log(message, level='ERROR', task=self.name, profile=self.profile.name)

    def log_debug(self, message):
        log(message, level='DEBUG', task=self.name, profile=self.profile.name)
