"""Shared fakes for the collaborators of tasks and queues"""

from datetime import datetime, timedelta

import pytest

from frostbot import config_loader, utils
from frostbot.database import Database
from frostbot.navigation import ScreenState
from frostbot.profiles import Profile
from frostbot.registry import TaskRegistry
from frostbot.stamina import StaminaTracker
from frostbot.task import StartLocation, Task, TaskServices
from frostbot.task_types import TaskType
from frostbot.vision import NOT_FOUND, MatchResult, Point

START = datetime(2026, 3, 10, 12, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class FakeEmulators:
    """Records every emulator-control call"""

    def __init__(self):
        self.running = True
        self.installed = True
        self.package_running = True
        self.calls = []
        self.launches_until_running = 0

    def _record(self, name, *args):
        self.calls.append((name,) + args)

    def names(self):
        return [call[0] for call in self.calls]

    def is_running(self, emulator_number):
        return self.running

    def launch_emulator(self, emulator_number):
        self._record('launch_emulator', emulator_number)
        if self.launches_until_running <= 1:
            self.running = True
        self.launches_until_running -= 1

    def close_emulator(self, emulator_number):
        self._record('close_emulator', emulator_number)
        self.running = False
        self.package_running = False

    def is_package_installed(self, emulator_number):
        return self.installed

    def is_package_running(self, emulator_number):
        return self.package_running

    def launch_app(self, emulator_number):
        self._record('launch_app', emulator_number)
        self.package_running = True

    def tap(self, emulator_number, point):
        self._record('tap', tuple(point))

    def tap_random(self, emulator_number, top_left, bottom_right, count=1, delay=0.2):
        self._record('tap_random', top_left, bottom_right, count)

    def swipe(self, emulator_number, start, end, duration=500):
        self._record('swipe', start, end)

    def tap_back(self, emulator_number):
        self._record('tap_back')


class FakeVision:
    """Template and OCR answers configured per test

    templates: name -> bool, MatchResult or list of those (consumed in order,
               the last one repeats)
    texts: (x, y, w, h) area -> str or list of str
    """

    def __init__(self):
        self.templates = {}
        self.texts = {}
        self.searches = []

    @staticmethod
    def _next(answers):
        if isinstance(answers, list):
            return answers.pop(0) if len(answers) > 1 else answers[0]
        return answers

    def find_template(self, emulator, template, search_area=None, threshold=0.9,
                      max_attempts=1, delay=0.3):
        self.searches.append(template)
        answer = self._next(self.templates.get(template, False))
        if isinstance(answer, MatchResult):
            return answer
        if answer:
            return MatchResult(True, Point(100, 200), 0.99)
        return NOT_FOUND

    def read_text(self, emulator, area, settings=None):
        return self._next(self.texts.get(tuple(area)))


class FakeNavigator:
    """ensure_location recorder with scripted detect_screen answers"""

    def __init__(self):
        self.locations = []
        self.screens = []
        self.error = None

    def ensure_location(self, emulator, required, profile_name=None):
        self.locations.append(required)
        if self.error is not None:
            raise self.error

    def detect_screen(self, emulator):
        if not self.screens:
            return ScreenState.HOME, None
        state = self.screens.pop(0) if len(self.screens) > 1 else self.screens[0]
        return state, None


class FakeProfiles:
    """In-memory persistence collaborator"""

    def __init__(self):
        self.profiles = {}
        self.saved = []
        self.fail = False

    def add(self, profile):
        self.profiles[profile.id] = profile.copy()
        return profile

    def get_profile(self, profile_id):
        if self.fail:
            raise RuntimeError("database unavailable")
        profile = self.profiles.get(profile_id)
        return profile.copy() if profile else None

    def save_profile(self, profile):
        self.profiles[profile.id] = profile.copy()
        self.saved.append(profile.copy())


@pytest.fixture(autouse=True)
def isolated_framework(tmp_path):
    """Point the config loader at an empty directory and reset logging globals"""
    config_loader.set_project_root(str(tmp_path))
    yield
    config_loader.set_project_root(None)
    utils.set_state_manager(None)
    utils.set_debug_mode(False)
    utils.set_headless_mode(False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def emulators():
    return FakeEmulators()


@pytest.fixture
def vision():
    return FakeVision()


@pytest.fixture
def navigator():
    return FakeNavigator()


@pytest.fixture
def profiles():
    return FakeProfiles()


@pytest.fixture
def profile(profiles):
    return profiles.add(Profile('Main', emulator_number=0, priority=50, profile_id=1))


@pytest.fixture
def services(profiles, emulators, vision, navigator, clock):
    return TaskServices(
        profiles=profiles,
        emulators=emulators,
        vision=vision,
        navigator=navigator,
        stamina=StaminaTracker(clock=clock),
        sleep=lambda seconds: None,
        clock=clock,
    )


@pytest.fixture
def make_task(services, profile):
    """Build a Task with a no-op (or given) execute function"""

    def factory(task_type=TaskType.MAIL_REWARDS, execute=None, delay=0, profile_=None,
                distinct_key=None, start_location=StartLocation.ANY, consumes_stamina=False):
        def execute_default(task):
            task.reschedule(task.now() + timedelta(hours=1))

        return Task(
            task_type,
            profile_ or profile,
            services,
            execute or execute_default,
            start_location=start_location,
            consumes_stamina=consumes_stamina,
            distinct_key=distinct_key,
            scheduled_time=services.clock() + timedelta(seconds=delay),
        )

    return factory


@pytest.fixture
def registry(services):
    return TaskRegistry(services)


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / 'frostbot.db'))
    yield db
    db.close()
