"""
Task Queue Manager - owns the per-profile queues

Creates one TaskQueue per profile, fills it with the profile's duties,
starts and stops the workers and accepts on-demand runs:

    manager = TaskQueueManager(registry, state_manager=state_manager)
    manager.schedule_profile(profile)
    manager.start_queues()
    ...
    manager.execute_task_now(TaskType.MAIL_REWARDS, profile.id, replace_existing=True)
    ...
    manager.stop_queues()
"""

import threading
import time

from .config_loader import get_option
from .emulator import EmulatorSlots
from .task_queue import TaskQueue
from .task_types import TaskType
from .utils import log

# Seconds between two worker starts
START_INTERVAL = 0.2


class TaskQueueManager:
    """Registry of TaskQueue objects keyed by profile id"""

    def __init__(self, registry, state_manager=None, slots=None, max_idle_minutes=None,
                 start_interval=START_INTERVAL):
        self.registry = registry
        self.services = registry.services
        self.state_manager = state_manager
        self.slots = slots if slots is not None else EmulatorSlots()
        if max_idle_minutes is None:
            max_idle_minutes = get_option('max_idle_minutes', 15)
        self.max_idle_minutes = max_idle_minutes
        self.start_interval = start_interval
        self._queues = {}
        self._lock = threading.RLock()

    # ============================================================================
    # QUEUES
    # ============================================================================

    def create_queue(self, profile):
        """Create (or return the existing) queue of a profile"""
        with self._lock:
            queue = self._queues.get(profile.id)
            if queue is None:
                queue = TaskQueue(profile, self.registry, slots=self.slots,
                                  state_manager=self.state_manager,
                                  max_idle_minutes=self.max_idle_minutes)
                self._queues[profile.id] = queue
            return queue

    def get_queue(self, profile_id):
        """Queue of a profile, created from persistence if needed

        Raises:
            KeyError: Unknown profile id
        """
        with self._lock:
            queue = self._queues.get(profile_id)
            if queue is not None:
                return queue
            profile = self.services.profiles.get_profile(profile_id)
            if profile is None:
                raise KeyError(f"Profile {profile_id} not found")
            return self.create_queue(profile)

    def queues(self):
        with self._lock:
            return list(self._queues.values())

    def schedule_profile(self, profile, task_types=None):
        """Queue the bootstrap task and the profile's duties

        Args:
            profile: Profile to schedule
            task_types: Task types to queue (default: every enabled type)

        Returns:
            TaskQueue: The profile's queue
        """
        queue = self.create_queue(profile)
        queue.queue_bootstrap()

        if task_types is None:
            task_types = self.registry.enabled_tasks(profile)
        for task_type in task_types:
            for task in self.registry.create_all(task_type, profile):
                queue.add_task_if_absent(task)

        log(f"Scheduled {len(queue.queue)} tasks", task='Manager', profile=profile.name)
        return queue

    # ============================================================================
    # START / STOP / PAUSE
    # ============================================================================

    def _start_order(self, queues):
        """Queues with a task due within max_idle first, then higher priority first"""
        now = self.services.clock()
        horizon = self.max_idle_minutes * 60

        def has_near_task(queue):
            return any(task.delay(now).total_seconds() <= horizon and not task.is_bootstrap
                       for task in queue.pending_tasks())

        return sorted(queues, key=lambda q: (0 if has_near_task(q) else 1, -q.profile.priority))

    def start_queues(self):
        """Start every queue's worker, spaced by start_interval

        Returns:
            list: Queues in the order they were started
        """
        ordered = self._start_order([q for q in self.queues() if not q.is_running])
        for index, queue in enumerate(ordered):
            if index and self.start_interval:
                time.sleep(self.start_interval)
            log(f"Starting queue (priority {queue.profile.priority})",
                task='Manager', profile=queue.profile_name)
            queue.start()
        return ordered

    def stop_queues(self):
        """Stop every worker, drop the pending tasks and forget the queues"""
        with self._lock:
            queues = list(self._queues.values())
            self._queues.clear()
        for queue in queues:
            queue.stop()
            queue.clear()
        if self.state_manager:
            self.state_manager.clear_scheduled()
        log("All queues stopped", task='Manager')

    def pause_queues(self):
        for queue in self.queues():
            queue.pause()

    def resume_queues(self):
        for queue in self.queues():
            queue.resume()

    def pause_queue(self, profile_id):
        """
        Returns:
            bool: False if the profile has no queue
        """
        with self._lock:
            queue = self._queues.get(profile_id)
        if queue is None:
            return False
        queue.pause()
        return True

    def resume_queue(self, profile_id):
        with self._lock:
            queue = self._queues.get(profile_id)
        if queue is None:
            return False
        queue.resume()
        return True

    # ============================================================================
    # ON-DEMAND RUNS
    # ============================================================================

    def execute_task_now(self, task_type, profile_id, replace_existing=False, distinct_key=None):
        """Queue a task to run as soon as the worker is free

        Args:
            task_type: TaskType member or its name
            profile_id: Profile to run it for
            replace_existing: Remove an equal pending task first. Without it an
                              equal pending task is left as is and nothing is queued.
            distinct_key: Instance key for multi-instance task types

        Returns:
            Task that was queued, or None if an equal task was already pending

        Raises:
            KeyError: Unknown profile id
            ValueError: Unknown or unregistered task type
        """
        if isinstance(task_type, str):
            task_type = TaskType.from_name(task_type)

        queue = self.get_queue(profile_id)
        task = self.registry.create(task_type, queue.profile, distinct_key,
                                    scheduled_time=self.services.clock())

        if replace_existing:
            if queue.replace_task(task):
                task.log_debug("Replaced pending instance")
        elif not queue.add_task_if_absent(task):
            task.log_info("Already pending, not queued again")
            return None

        task.log_info("Queued to run now")
        return task

    # ============================================================================
    # STATUS
    # ============================================================================

    def get_active_queue_states(self):
        """
        Returns:
            list: dicts (profile_id, profile_name, running, paused,
                  needs_reconnect, reconnect_at, current_task) sorted by name, case-insensitive
        """
        states = []
        for queue in self.queues():
            status = queue.get_status()
            states.append({key: status[key] for key in (
                'profile_id', 'profile_name', 'running', 'paused',
                'needs_reconnect', 'reconnect_at', 'current_task')})
        states.sort(key=lambda state: state['profile_name'].lower())
        return states
