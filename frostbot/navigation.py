"""
Navigation - bring the game screen to the location a task needs

The game has two base screens, HOME (the city) and WORLD (the map), toggled
by one button. Anything else (popups, menus) is UNKNOWN and is backed out of
with the Back key. A reconnect popup means the session was lost.
"""

import time
from enum import Enum

from .task import HomeNotFoundException, ProfileInReconnectStateException, StartLocation
from .utils import log

MAX_SCREEN_LOCATION_ATTEMPTS = 10


class ScreenState(Enum):
    HOME = 'home'
    WORLD = 'world'
    RECONNECT = 'reconnect'
    UNKNOWN = 'unknown'


# Needle names of the screen markers; a game package may override them
DEFAULT_SCREEN_TEMPLATES = {
    ScreenState.HOME: 'game_home_furnace',
    ScreenState.WORLD: 'game_home_world',
    ScreenState.RECONNECT: 'game_home_reconnect',
}


class Navigator:
    """Screen detection and HOME/WORLD navigation

    Attributes:
        vision: Vision used for the screen markers
        emulators: EmulatorManager used for taps and Back
        templates: ScreenState -> needle name
    """

    def __init__(self, vision, emulators, templates=None, sleep=time.sleep):
        self.vision = vision
        self.emulators = emulators
        self.templates = dict(DEFAULT_SCREEN_TEMPLATES)
        self.templates.update(templates or {})
        self._sleep = sleep

    def _find(self, emulator, state):
        return self.vision.find_template(emulator, self.templates[state], threshold=0.9)

    def detect_screen(self, emulator):
        """Detect which base screen is showing

        Returns:
            tuple: (ScreenState, MatchResult of the detected marker or None)
        """
        reconnect = self._find(emulator, ScreenState.RECONNECT)
        if reconnect.found:
            return ScreenState.RECONNECT, reconnect

        home = self._find(emulator, ScreenState.HOME)
        if home.found:
            return ScreenState.HOME, home

        world = self._find(emulator, ScreenState.WORLD)
        if world.found:
            return ScreenState.WORLD, world

        return ScreenState.UNKNOWN, None

    def ensure_location(self, emulator, required, profile_name=None):
        """Navigate until the screen satisfies required

        Args:
            emulator: Emulator number
            required: StartLocation
            profile_name: Used in log records and exception messages

        Raises:
            ProfileInReconnectStateException: Reconnect popup shown
            HomeNotFoundException: No base screen after MAX_SCREEN_LOCATION_ATTEMPTS
        """
        for attempt in range(1, MAX_SCREEN_LOCATION_ATTEMPTS + 1):
            state, marker = self.detect_screen(emulator)

            if state is ScreenState.RECONNECT:
                raise ProfileInReconnectStateException(f"Profile {profile_name} is in reconnect state")

            if state is ScreenState.UNKNOWN:
                log(f"Home/World screen not found. Tapping back ({attempt}/{MAX_SCREEN_LOCATION_ATTEMPTS})",
                    level='DEBUG', task='Navigation', profile=profile_name)
                self.emulators.tap_back(emulator)
                self._sleep(0.3)
                continue

            if required is StartLocation.ANY or required.value == state.value:
                return

            # On the other base screen: the marker is the toggle button
            log(f"Navigating from {state.name} to {required.name}",
                level='DEBUG', task='Navigation', profile=profile_name)
            self.emulators.tap(emulator, marker.point)
            self._sleep(2)

        raise HomeNotFoundException(f"Home not found after {MAX_SCREEN_LOCATION_ATTEMPTS} attempts")
