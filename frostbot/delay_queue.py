"""
Priority Delay Queue - blocking queue of pending tasks

Tasks are ordered by, in precedence:
    1. the bootstrap task, unconditionally
    2. ready tasks (scheduled_time <= now) before not-ready ones
    3. among ready tasks, the latency-sensitive kinds in READY_PRIORITY_RULES
       order, before every other ready task
    4. ascending remaining delay

take() blocks on the head of that order until it is ready and never returns
a task whose scheduled_time is still in the future. Because the order
depends on the current time, it is recomputed at every take() instead of
being kept in a heap; offer() is a constant-time append.

offer_if_absent() and replace() check for an equal pending task and change
the queue under one lock, so at most one task per identity is pending.
"""

import threading
import time
from datetime import datetime

from .task_types import TaskType


def is_bear_trap(task):
    return task.task_type is TaskType.BEAR_TRAP


def is_arena(task):
    return task.task_type is TaskType.ARENA


# Latency-sensitive kinds, highest priority first
READY_PRIORITY_RULES = [
    is_bear_trap,
    is_arena,
]


def priority_key(task, now, rules=None):
    """Sort key of a task at time now (smaller sorts first)"""
    rules = READY_PRIORITY_RULES if rules is None else rules
    delay = (task.scheduled_time - now).total_seconds()
    ready = delay <= 0

    rank = len(rules)
    if ready:
        for index, rule in enumerate(rules):
            if rule(task):
                rank = index
                break

    return (0 if task.is_bootstrap else 1, 0 if ready else 1, rank, delay)


def compare_tasks(a, b, now=None, rules=None):
    """Three-way comparison of two tasks at time now

    Returns:
        int: negative if a sorts first, positive if b does, 0 if equal rank
    """
    now = now or datetime.now()
    key_a, key_b = priority_key(a, now, rules), priority_key(b, now, rules)
    return (key_a > key_b) - (key_a < key_b)


class PriorityDelayQueue:
    """Thread-safe delay queue ordered by priority_key()"""

    def __init__(self, clock=datetime.now, rules=None):
        """
        Args:
            clock: Callable returning the current local datetime
            rules: Latency-sensitive predicates (default READY_PRIORITY_RULES)
        """
        self._clock = clock
        self._rules = rules
        self._items = []
        self._cond = threading.Condition()
        self._wakeup = False

    def __len__(self):
        with self._cond:
            return len(self._items)

    def _head(self, now):
        return min(self._items, key=lambda task: priority_key(task, now, self._rules))

    def offer(self, task):
        with self._cond:
            self._items.append(task)
            self._cond.notify_all()

    def peek(self):
        """Head of the order without removing it (may not be ready)"""
        with self._cond:
            if not self._items:
                return None
            return self._head(self._clock())

    def poll(self):
        """Remove and return the head if it is ready, else None"""
        with self._cond:
            if not self._items:
                return None
            now = self._clock()
            head = self._head(now)
            if head.scheduled_time > now:
                return None
            self._items.remove(head)
            return head

    def take(self, timeout=None):
        """Block until the head task is ready, then remove and return it

        Args:
            timeout: Seconds to wait at most (None = until a task is ready)

        Returns:
            Task, or None on timeout or when wakeup() was called
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while True:
                if self._wakeup:
                    self._wakeup = False
                    return None

                wait = None
                if self._items:
                    now = self._clock()
                    head = self._head(now)
                    wait = (head.scheduled_time - now).total_seconds()
                    if wait <= 0:
                        self._items.remove(head)
                        return head

                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)

                self._cond.wait(wait)

    def wakeup(self):
        """Make one blocked (or the next) take() return None"""
        with self._cond:
            self._wakeup = True
            self._cond.notify_all()

    def remove(self, task):
        """Remove the pending task equal to task (same identity)

        Returns:
            bool: True if a task was removed
        """
        with self._cond:
            for index, pending in enumerate(self._items):
                if pending == task:
                    del self._items[index]
                    self._cond.notify_all()
                    return True
            return False

    def offer_if_absent(self, task):
        """Offer task unless an equal task is already pending

        Returns:
            bool: True if task was added
        """
        with self._cond:
            if any(pending == task for pending in self._items):
                return False
            self._items.append(task)
            self._cond.notify_all()
            return True

    def replace(self, task):
        """Put task in place of the pending task equal to it, if any

        Returns:
            Task that was replaced, or None
        """
        with self._cond:
            replaced = None
            for index, pending in enumerate(self._items):
                if pending == task:
                    replaced = self._items.pop(index)
                    break
            self._items.append(task)
            self._cond.notify_all()
            return replaced

    def get(self, task):
        """Pending task equal to task, or None"""
        with self._cond:
            for pending in self._items:
                if pending == task:
                    return pending
            return None

    def __contains__(self, task):
        return self.get(task) is not None

    def snapshot(self):
        """Pending tasks in current priority order"""
        with self._cond:
            now = self._clock()
            return sorted(self._items, key=lambda task: priority_key(task, now, self._rules))

    def clear(self):
        with self._cond:
            items, self._items = self._items, []
            self._cond.notify_all()
            return items
