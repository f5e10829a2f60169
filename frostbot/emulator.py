"""
Emulator Manager - emulator control keyed by emulator number

Combines the LDPlayer console (start / stop instances) with one ADB
controller per running instance, and exposes the emulator-control
operations tasks use: taps, swipes, back, screenshots and game package
queries. Also owns the running-emulator slots that limit how many profiles
keep an emulator up at the same time.

Usage:
    emulators = EmulatorManager()
    if not emulators.is_running(0):
        emulators.launch_emulator(0)
    emulators.tap(0, (360, 640))
    image = emulators.capture_screen(0)
"""

import itertools
import random
import threading
import time

from .android import Android
from .config_loader import get_option
from .ldplayer import LDPlayer
from .utils import log


class EmulatorManager:
    """Emulator control for every profile, keyed by emulator number

    Attributes:
        ldplayer: LDPlayer console wrapper (created from master.conf if omitted)
        package: Game package name
    """

    def __init__(self, ldplayer=None, android_factory=Android, package=None):
        """Initialize the manager

        Args:
            ldplayer: LDPlayer instance (default: LDPlayer.from_config())
            android_factory: Callable(serial, device_name, package) -> Android
            package: Game package (default: 'game_package' from master.conf)
        """
        self.ldplayer = ldplayer or LDPlayer.from_config()
        self.package = package or get_option('game_package', 'com.gof.global')
        self._android_factory = android_factory
        self._devices = {}
        self._devices_lock = threading.Lock()

    def get_device(self, emulator_number):
        """Get (connecting on first use) the ADB controller of an emulator"""
        with self._devices_lock:
            device = self._devices.get(emulator_number)
            if device is None:
                serial = self.ldplayer.serial_for_index(emulator_number)
                device = self._android_factory(serial, f"emulator-{emulator_number}", self.package)
                self._devices[emulator_number] = device
            return device

    def _forget_device(self, emulator_number):
        with self._devices_lock:
            device = self._devices.pop(emulator_number, None)
        if device is not None:
            device.stop()

    # ============================================================================
    # EMULATOR LIFECYCLE
    # ============================================================================

    def is_running(self, emulator_number):
        return self.ldplayer.is_running(index=emulator_number)

    def launch_emulator(self, emulator_number):
        log(f"Launching emulator {emulator_number}")
        self._forget_device(emulator_number)
        self.ldplayer.launch(index=emulator_number)

    def close_emulator(self, emulator_number):
        log(f"Closing emulator {emulator_number}")
        self._forget_device(emulator_number)
        self.ldplayer.quit(index=emulator_number)

    # ============================================================================
    # GAME PACKAGE
    # ============================================================================

    def is_package_installed(self, emulator_number):
        return self.get_device(emulator_number).is_package_installed()

    def is_package_running(self, emulator_number):
        return self.get_device(emulator_number).is_package_running()

    def launch_app(self, emulator_number):
        self.get_device(emulator_number).launch_app()

    # ============================================================================
    # INPUT & SCREEN
    # ============================================================================

    def capture_screen(self, emulator_number):
        return self.get_device(emulator_number).capture_screen()

    def tap(self, emulator_number, point):
        x, y = point
        self.get_device(emulator_number).tap(int(x), int(y))

    def tap_random(self, emulator_number, top_left, bottom_right, count=1, delay=0.2):
        """Tap random points inside a rectangle

        Args:
            emulator_number: Emulator to tap on
            top_left: (x, y) corner of the area
            bottom_right: (x, y) opposite corner
            count: Number of taps
            delay: Seconds between taps
        """
        x1, y1 = top_left
        x2, y2 = bottom_right
        device = self.get_device(emulator_number)
        for i in range(count):
            device.tap(random.randint(min(x1, x2), max(x1, x2)),
                       random.randint(min(y1, y2), max(y1, y2)))
            if i < count - 1 and delay:
                time.sleep(delay)

    def swipe(self, emulator_number, start, end, duration=500):
        self.get_device(emulator_number).swipe(int(start[0]), int(start[1]),
                                               int(end[0]), int(end[1]), duration)

    def tap_back(self, emulator_number):
        self.get_device(emulator_number).press_back()


class EmulatorSlots:
    """Limits how many profiles hold a running emulator at once

    Waiting profiles are served by priority (higher first), then by arrival.
    """

    def __init__(self, max_running=None):
        if max_running is None:
            max_running = get_option('max_running_emulators', 1)
        self.max_running = max(1, int(max_running))
        self._cond = threading.Condition()
        self._holders = set()
        self._waiting = []
        self._arrival = itertools.count()

    def acquire(self, profile_id, priority=0, timeout=None):
        """Acquire a slot for a profile

        Args:
            profile_id: Profile asking for a slot
            priority: Profile priority (higher served first)
            timeout: Seconds to wait (None = forever)

        Returns:
            bool: True if the profile holds a slot
        """
        with self._cond:
            if profile_id in self._holders:
                return True

            entry = (-priority, next(self._arrival), profile_id)
            self._waiting.append(entry)
            deadline = None if timeout is None else time.monotonic() + timeout
            try:
                while not (len(self._holders) < self.max_running and min(self._waiting) == entry):
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        return False
                    self._cond.wait(remaining)
                self._holders.add(profile_id)
                return True
            finally:
                self._waiting.remove(entry)
                self._cond.notify_all()

    def release(self, profile_id):
        with self._cond:
            if profile_id in self._holders:
                self._holders.discard(profile_id)
                self._cond.notify_all()

    def holds(self, profile_id):
        with self._cond:
            return profile_id in self._holders

    def holders(self):
        with self._cond:
            return set(self._holders)
