"""
Whiteout Survival Game Module

This package contains the game-specific part of the bot: the execute
functions of every feature task (functions.py) and the task kind table
that tells the framework which start location and stamina handling each
task needs.

Usage:
    from games.whiteout_survival import TASK_KINDS, read_stamina

    services = TaskServices(..., stamina_reader=read_stamina)
    registry = TaskRegistry(services, TASK_KINDS)
"""

from frostbot.bootstrap import do_initialize
from frostbot.registry import TaskKind
from frostbot.task import StartLocation
from frostbot.task_types import TaskType

from . import functions
from .functions import read_stamina

TASK_KINDS = [
    TaskKind(TaskType.INITIALIZE, do_initialize),
    TaskKind(TaskType.VIP_POINTS, functions.do_vip_points),
    TaskKind(TaskType.MAIL_REWARDS, functions.do_mail_rewards, start_location=StartLocation.HOME),
    TaskKind(TaskType.STOREHOUSE_CHEST, functions.do_storehouse_chest, start_location=StartLocation.HOME),
    TaskKind(TaskType.BEAR_TRAP, functions.do_bear_trap, start_location=StartLocation.HOME),
    TaskKind(TaskType.ARENA, functions.do_arena, start_location=StartLocation.HOME),
    TaskKind(TaskType.GATHER_RESOURCES, functions.do_gather_resources,
             start_location=StartLocation.WORLD, consumes_stamina=True,
             distinct_keys=functions.gather_resource_types),
]

__all__ = ['TASK_KINDS', 'read_stamina', 'functions']
