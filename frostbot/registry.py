"""
Task Registry - builds tasks from the task kind table

A game package describes each task kind once (execute function, required
start location, stamina flag) and registers it here. Queues and the web API
then only deal in TaskType values.

Usage:
    registry = TaskRegistry(services)
    registry.register(TaskKind(TaskType.MAIL_REWARDS, do_mail_rewards,
                               start_location=StartLocation.HOME))

    task = registry.create(TaskType.MAIL_REWARDS, profile)
"""

from .task import StartLocation, Task
from .utils import log


class TaskKind:
    """Table entry describing one task type

    Attributes:
        task_type: TaskType member
        execute: Callable(task) implementing the feature
        start_location: Screen the task must start on
        consumes_stamina: Whether stamina is refreshed before execute
        distinct_keys: Optional callable(profile) -> list of distinct keys;
                       one task instance is scheduled per key
    """

    def __init__(self, task_type, execute, start_location=StartLocation.ANY,
                 consumes_stamina=False, distinct_keys=None):
        self.task_type = task_type
        self.execute = execute
        self.start_location = start_location
        self.consumes_stamina = consumes_stamina
        self.distinct_keys = distinct_keys


class TaskRegistry:
    """Task kind table plus the factory that turns entries into tasks"""

    def __init__(self, services, kinds=None):
        self.services = services
        self._kinds = {}
        for kind in kinds or []:
            self.register(kind)

    def register(self, kind):
        self._kinds[kind.task_type] = kind

    def kinds(self):
        return list(self._kinds.values())

    def get_kind(self, task_type):
        """
        Raises:
            ValueError: If the task type has no registered kind
        """
        kind = self._kinds.get(task_type)
        if kind is None:
            raise ValueError(f"No task registered for {task_type}")
        return kind

    def create(self, task_type, profile, distinct_key=None, scheduled_time=None):
        """Build a task for a profile

        The profile is refreshed from persistence first; the cached one is
        used if the refresh fails.

        Raises:
            ValueError: If the task type has no registered kind
        """
        kind = self.get_kind(task_type)

        fresh = None
        if profile.id is not None:
            try:
                fresh = self.services.profiles.get_profile(profile.id)
            except Exception as e:
                log(f"Could not refresh profile: {e}", level='WARNING', profile=profile.name)

        return Task(
            task_type,
            fresh or profile,
            self.services,
            kind.execute,
            start_location=kind.start_location,
            consumes_stamina=kind.consumes_stamina,
            distinct_key=distinct_key,
            scheduled_time=scheduled_time,
        )

    def create_all(self, task_type, profile, scheduled_time=None):
        """Build every instance of a task type for a profile (one per distinct key)"""
        kind = self.get_kind(task_type)
        keys = kind.distinct_keys(profile) if kind.distinct_keys else [None]
        return [self.create(task_type, profile, key, scheduled_time) for key in keys]

    def enabled_tasks(self, profile):
        """Task types whose enable flag is set in the profile config

        Types without an enable key (the bootstrap task) are not listed.
        """
        enabled = []
        for task_type in self._kinds:
            if task_type.enable_key and profile.get_config(task_type.enable_key):
                enabled.append(task_type)
        return enabled
