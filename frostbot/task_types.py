"""
Task Types - the closed set of task kinds the bot knows

Each member carries a numeric id, a display name (used in log records) and
the profile ConfigKey that enables it (None for tasks that always run).
"""

from enum import Enum


class TaskType(Enum):

    def __new__(cls, task_id, display_name, enable_key):
        obj = object.__new__(cls)
        obj._value_ = task_id
        obj.display_name = display_name
        obj.enable_key = enable_key
        return obj

    INITIALIZE = (0, "Initialize", None)
    VIP_POINTS = (1, "VIP Points", 'VIP_POINTS_BOOL')
    MAIL_REWARDS = (2, "Mail Rewards", 'MAIL_REWARDS_BOOL')
    STOREHOUSE_CHEST = (3, "Storehouse Chest", 'STOREHOUSE_CHEST_BOOL')
    BEAR_TRAP = (4, "Bear Trap", 'BEAR_TRAP_EVENT_BOOL')
    ARENA = (5, "Arena", 'ARENA_TASK_BOOL')
    GATHER_RESOURCES = (6, "Gather Resources", 'GATHER_RESOURCES_BOOL')

    @classmethod
    def from_name(cls, name):
        """Look up a task type by member name, case-insensitively

        Raises:
            ValueError: If no task type has that name
        """
        key = str(name).strip().upper()
        if key not in cls.__members__:
            raise ValueError(f"Unknown task type: {name}")
        return cls.__members__[key]
