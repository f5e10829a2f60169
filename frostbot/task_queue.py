"""
Task Queue - one profile's pending tasks plus the worker that drains them

The worker is the only thread that runs tasks for its profile, so tasks of
one profile never run concurrently. Loop:

    take() -> acquire emulator slot -> task.run() -> re-offer if recurring

Outcome handling:
    StopExecutionException            stop the worker
    ProfileInReconnectStateException  reschedule to reconnect_at and pause until
                                      then (or an operator resume), then queue
                                      a bootstrap task
    HomeNotFoundException             reschedule +5 min, queue a bootstrap task
    any other exception               log, reschedule +5 min

After each run, if the next pending task is more than max_idle_minutes away
the emulator is closed, the slot released and a bootstrap task queued for
that task's time.
"""

import threading
import traceback
from datetime import timedelta

from .config_loader import get_option
from .delay_queue import PriorityDelayQueue
from .profiles import ConfigKey
from .task import HomeNotFoundException, ProfileInReconnectStateException, StopExecutionException
from .task_types import TaskType
from .utils import format_cooldown_time, log

RETRY_BACKOFF = timedelta(minutes=5)

# Seconds the worker blocks in take() / slot acquire before re-checking its flags
POLL_INTERVAL = 1.0


class TaskQueue:
    """Pending tasks and worker of one profile

    Attributes:
        profile: Profile this queue belongs to
        registry: TaskRegistry used to build bootstrap tasks
        queue: PriorityDelayQueue of pending tasks
        needs_reconnect: True while paused waiting for a reconnect
        reconnect_at: When the queue resumes after a reconnect pause
        current_task: Task being run by the worker, if any
    """

    def __init__(self, profile, registry, slots=None, state_manager=None, max_idle_minutes=None):
        self.profile = profile
        self.registry = registry
        self.services = registry.services
        self.slots = slots
        self.state_manager = state_manager
        if max_idle_minutes is None:
            max_idle_minutes = get_option('max_idle_minutes', 15)
        self.max_idle = timedelta(minutes=max_idle_minutes)

        self.queue = PriorityDelayQueue(clock=self.services.clock)
        self.needs_reconnect = False
        self.reconnect_at = None
        self.current_task = None

        self._running = False
        self._paused = False
        self._stop_requested = False
        self._signal = threading.Event()
        self._thread = None

    @property
    def profile_id(self):
        return self.profile.id

    @property
    def profile_name(self):
        return self.profile.name

    @property
    def is_running(self):
        return self._running

    @property
    def is_paused(self):
        return self._paused

    def log(self, message, level='INFO'):
        log(message, level=level, task='Queue', profile=self.profile_name)

    def _update_state(self, **fields):
        if self.state_manager:
            self.state_manager.update_queue_state(self.profile_id, profile_name=self.profile_name, **fields)

    # ============================================================================
    # PENDING TASKS
    # ============================================================================

    def _mark_scheduled(self, task):
        if self.state_manager:
            self.state_manager.mark_task_scheduled(
                self.profile_id, task.task_type.name, task.distinct_key,
                scheduled=True, next_execution=task.scheduled_time)

    def add_task(self, task):
        """Offer a task to the queue and mark it scheduled"""
        self.queue.offer(task)
        self._mark_scheduled(task)

    def add_task_if_absent(self, task):
        """Offer a task unless one with the same identity is pending

        Returns:
            bool: True if the task was queued
        """
        if not self.queue.offer_if_absent(task):
            return False
        self._mark_scheduled(task)
        return True

    def replace_task(self, task):
        """Queue a task in place of the pending one with the same identity

        Returns:
            bool: True if a pending task was replaced
        """
        replaced = self.queue.replace(task)
        self._mark_scheduled(task)
        return replaced is not None

    def remove_task(self, task):
        """Remove the pending task with the same identity

        Returns:
            bool: True if one was removed
        """
        removed = self.queue.remove(task)
        if removed and self.state_manager:
            self.state_manager.mark_task_scheduled(
                self.profile_id, task.task_type.name, task.distinct_key, scheduled=False)
        return removed

    def is_task_scheduled(self, task_type, distinct_key=None):
        return any(t.task_type is task_type and t.distinct_key == distinct_key
                   for t in self.queue.snapshot())

    def pending_tasks(self):
        return self.queue.snapshot()

    def clear(self):
        """Drop every pending task and reset their scheduled flags"""
        self.queue.clear()
        if self.state_manager:
            self.state_manager.clear_scheduled(self.profile_id)

    def queue_bootstrap(self, when=None):
        """Queue an INITIALIZE task (unless one is already pending)"""
        task = self.registry.create(TaskType.INITIALIZE, self.profile, scheduled_time=when)
        self.add_task_if_absent(task)

    # ============================================================================
    # WORKER CONTROL
    # ============================================================================

    def start(self):
        """Start the worker thread"""
        if self._running:
            return
        self._running = True
        self._stop_requested = False
        self._thread = threading.Thread(
            target=self._worker_loop,
            daemon=True,
            name=f"TaskQueue-{self.profile_name}"
        )
        self._thread.start()

    def stop(self, timeout=5.0):
        """Stop the worker between tasks

        Args:
            timeout: Seconds to wait for the worker thread (ignored when
                     called from the worker itself)
        """
        self._running = False
        self._stop_requested = True
        self._signal.set()
        self.queue.wakeup()

        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def pause(self):
        """Stop taking tasks until resume(); the current task finishes"""
        self._paused = True
        self.queue.wakeup()
        self._update_state(paused=True)
        self.log("Queue paused")

    def resume(self):
        """Take tasks again; resuming a reconnect pause re-initializes now"""
        if self.needs_reconnect:
            self.needs_reconnect = False
            self.reconnect_at = None
            self._update_state(needs_reconnect=False, reconnect_at=None)
            self.queue_bootstrap()
        self._paused = False
        self._signal.set()
        self._update_state(paused=False)
        self.log("Queue resumed")

    def _worker_loop(self):
        self.log("Worker started")
        self._update_state(is_running=True, paused=self._paused)
        try:
            while self._running:
                if self._paused:
                    reconnect_at = self.reconnect_at
                    if reconnect_at is not None and self.services.clock() >= reconnect_at:
                        self._finish_reconnect()
                        continue
                    self._signal.wait(POLL_INTERVAL)
                    self._signal.clear()
                    continue

                self.process_next(timeout=POLL_INTERVAL)
        except Exception as e:
            self.log(f"Worker crashed: {e}", level='ERROR')
            self.log(traceback.format_exc(), level='DEBUG')
        finally:
            self._running = False
            if self.slots:
                self.slots.release(self.profile_id)
            self._update_state(is_running=False, current_task='')
            self.log("Worker stopped")

    # ============================================================================
    # RUNNING TASKS
    # ============================================================================

    def process_next(self, timeout=None):
        """Take the next ready task and run it

        Args:
            timeout: Seconds to wait for a ready task (None = block)

        Returns:
            Task that was run, or None if nothing ran
        """
        task = self.queue.take(timeout)
        if task is None:
            return None

        if self.slots and not self._acquire_slot():
            self.queue.offer(task)
            return None

        self._run_task(task)
        self._release_if_idle()
        return task

    def _acquire_slot(self):
        while not self._stop_requested:
            if self.slots.acquire(self.profile_id, self.profile.priority, timeout=POLL_INTERVAL):
                return True
        return False

    def _run_task(self, task):
        started_at = self.services.clock()
        scheduled_before = task.scheduled_time
        self.current_task = task
        self._update_state(current_task=task.name)
        if self.state_manager:
            self.state_manager.mark_task_scheduled(
                self.profile_id, task.task_type.name, task.distinct_key, scheduled=False)

        task.log_info("Starting task")
        try:
            task.run()
        except StopExecutionException as e:
            task.log_error(f"Fatal: {e}. Stopping queue.")
            self.stop()
        except ProfileInReconnectStateException as e:
            self._start_reconnect(task, e)
        except HomeNotFoundException as e:
            task.log_error(f"{e}. Retrying in 5 minutes and re-initializing.")
            task.reschedule(self.services.clock() + RETRY_BACKOFF)
            self.queue_bootstrap()
        except Exception as e:
            task.log_error(f"Unexpected error: {e}")
            task.log_debug(traceback.format_exc())
            task.reschedule(self.services.clock() + RETRY_BACKOFF)
        finally:
            task.last_execution_time = self.services.clock()
            self.current_task = None
            self._update_state(current_task='')

        if task.recurring:
            if not self.add_task_if_absent(task):
                # Queued again on demand while it was running
                task.log_info("Newer instance already pending, dropping this one")
            else:
                if not task.is_bootstrap and task.scheduled_time == scheduled_before \
                        and scheduled_before <= started_at:
                    task.log_warning("Task finished without rescheduling")
                task.log_info(f"Next run at {task.scheduled_time:%Y-%m-%d %H:%M:%S}")
        else:
            task.log_info("Task finished")

        if self.state_manager:
            self.state_manager.update_task_execution(
                self.profile_id, task.task_type.name, task.distinct_key,
                last_execution=task.last_execution_time,
                next_execution=task.scheduled_time if task.recurring else None)

    def _start_reconnect(self, task, error):
        minutes = self.profile.get_config(ConfigKey.RECONNECT_TIME_INT)
        self.needs_reconnect = True
        self.reconnect_at = self.services.clock() + timedelta(minutes=minutes)
        task.log_warning(f"{error}. Pausing queue until {self.reconnect_at:%H:%M:%S}")
        task.reschedule(self.reconnect_at)
        self._update_state(needs_reconnect=True, reconnect_at=self.reconnect_at)
        self.pause()

    def _finish_reconnect(self):
        self.log("Reconnect time reached, re-initializing")
        self.resume()

    def _release_if_idle(self):
        """Close the emulator if the next task is far away"""
        if not self._running and self._stop_requested:
            return
        head = self.queue.peek()
        if head is None or head.is_bootstrap:
            return
        if head.delay() <= self.max_idle:
            return

        wait = format_cooldown_time(head.delay().total_seconds())
        self.log(f"Next task {head.name} in {wait}, closing emulator while idle")
        self.services.emulators.close_emulator(self.profile.emulator_number)
        if self.slots:
            self.slots.release(self.profile_id)
        self.queue_bootstrap(head.scheduled_time)

    # ============================================================================
    # STATUS
    # ============================================================================

    def get_status(self):
        """Snapshot of the queue for the web API

        Returns:
            dict
        """
        now = self.services.clock()
        return {
            'profile_id': self.profile_id,
            'profile_name': self.profile_name,
            'running': self._running,
            'paused': self._paused,
            'needs_reconnect': self.needs_reconnect,
            'reconnect_at': self.reconnect_at.isoformat(timespec='seconds') if self.reconnect_at else None,
            'current_task': self.current_task.name if self.current_task else None,
            'pending': [
                {
                    'task_type': task.task_type.name,
                    'name': task.name,
                    'distinct_key': task.distinct_key,
                    'scheduled_time': task.scheduled_time.isoformat(timespec='seconds'),
                    'ready': task.is_ready(now),
                }
                for task in self.queue.snapshot()
            ],
        }
