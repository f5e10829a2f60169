"""
FrostBot Framework - task scheduling engine for emulator game bots

This package provides the generic, game-agnostic part of the bot:
- Task, its run() lifecycle and the failure tiers
- PriorityDelayQueue ordering pending tasks
- TaskQueue / TaskQueueManager running one worker per profile
- Android / LDPlayer / EmulatorManager for device control
- Vision (template matching) and OCR helpers
- Profiles, StateManager and configuration loading
- Flask monitoring API

Game packages (games/<name>) supply the execute functions and register
them as TaskKind entries.
"""

from .android import Android, AndroidStoppedException, ADBTimeoutError
from .ldplayer import LDPlayer
from .emulator import EmulatorManager, EmulatorSlots
from .vision import Vision, MatchResult, Point, NOT_FOUND
from .navigation import Navigator, ScreenState
from .stamina import StaminaTracker
from .profiles import ConfigKey, Profile, ProfileRepository
from .database import Database
from .state_manager import StateManager

from .config_loader import (
    load_config,
    load_master_config,
    load_game_config,
    reload_config,
    get_option,
    get_profile_definitions,
    get_available_profiles,
    resolve_path,
)

from .task_types import TaskType
from .task import (
    Task,
    TaskServices,
    StartLocation,
    StopExecutionException,
    ProfileInReconnectStateException,
    HomeNotFoundException,
)
from .registry import TaskKind, TaskRegistry
from .delay_queue import PriorityDelayQueue, READY_PRIORITY_RULES
from .task_queue import TaskQueue
from .task_queue_manager import TaskQueueManager

from .utils import (
    log,
    set_state_manager,
    add_log_listener,
    remove_log_listener,
    set_debug_mode,
    set_headless_mode,
    is_headless,
    format_cooldown_time,
)

__all__ = [
    # Device control
    'Android',
    'AndroidStoppedException',
    'ADBTimeoutError',
    'LDPlayer',
    'EmulatorManager',
    'EmulatorSlots',

    # Screen
    'Vision',
    'MatchResult',
    'Point',
    'NOT_FOUND',
    'Navigator',
    'ScreenState',
    'StaminaTracker',

    # Persistence
    'ConfigKey',
    'Profile',
    'ProfileRepository',
    'Database',
    'StateManager',

    # Config
    'load_config',
    'load_master_config',
    'load_game_config',
    'reload_config',
    'get_option',
    'get_profile_definitions',
    'get_available_profiles',
    'resolve_path',

    # Tasks and queues
    'TaskType',
    'Task',
    'TaskServices',
    'StartLocation',
    'StopExecutionException',
    'ProfileInReconnectStateException',
    'HomeNotFoundException',
    'TaskKind',
    'TaskRegistry',
    'PriorityDelayQueue',
    'READY_PRIORITY_RULES',
    'TaskQueue',
    'TaskQueueManager',

    # Utils
    'log',
    'set_state_manager',
    'add_log_listener',
    'remove_log_listener',
    'set_debug_mode',
    'set_headless_mode',
    'is_headless',
    'format_cooldown_time',
]
