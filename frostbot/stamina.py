"""
Stamina Tracker - per-profile regenerating stamina bookkeeping

Stamina regenerates by one point every STAMINA_REGENERATION_MINUTES minutes
(up to REGENERATION_CAP). The tracker remembers the last value read from
the screen and derives the current value from elapsed time, so tasks only
need to open the profile screen when the reading is stale.

All state is keyed by profile id; one tracker is shared by every queue.
"""

import threading
from datetime import datetime, timedelta

STAMINA_REGENERATION_MINUTES = 5
REGENERATION_CAP = 120
DEFAULT_SOLO_STAMINA_COST = 10
DEFAULT_RALLY_STAMINA_COST = 25

# Readings older than this are refreshed before a stamina consumer runs
MAX_READING_AGE = timedelta(hours=1)


class _Entry:
    __slots__ = ('value', 'regen_anchor', 'read_at')

    def __init__(self, value, regen_anchor, read_at):
        self.value = value
        self.regen_anchor = regen_anchor
        self.read_at = read_at


class StaminaTracker:
    """Thread-safe stamina values keyed by profile id"""

    def __init__(self, clock=datetime.now):
        """
        Args:
            clock: Callable returning the current local datetime
        """
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def _materialize(self, entry, now):
        """Fold elapsed regeneration into the stored value"""
        step = timedelta(minutes=STAMINA_REGENERATION_MINUTES)
        points = int((now - entry.regen_anchor) // step)
        if points <= 0:
            return
        if entry.value < REGENERATION_CAP:
            entry.value = min(REGENERATION_CAP, entry.value + points)
        entry.regen_anchor += points * step

    def set_stamina(self, profile_id, value):
        """Record a fresh on-screen reading"""
        now = self._clock()
        with self._lock:
            self._entries[profile_id] = _Entry(max(0, int(value)), now, now)

    def get_current_stamina(self, profile_id):
        """Current stamina including regeneration (0 if never read)"""
        with self._lock:
            entry = self._entries.get(profile_id)
            if entry is None:
                return 0
            self._materialize(entry, self._clock())
            return entry.value

    def add_stamina(self, profile_id, amount):
        if not amount:
            return
        now = self._clock()
        with self._lock:
            entry = self._entries.setdefault(profile_id, _Entry(0, now, None))
            self._materialize(entry, now)
            entry.value += int(amount)

    def subtract_stamina(self, profile_id, amount=None, rally=False):
        """Subtract spent stamina

        Args:
            profile_id: Profile id
            amount: Stamina spent, or None to use the default solo/rally cost
            rally: Whether the action was a rally (only used when amount is None)
        """
        if amount is None:
            amount = DEFAULT_RALLY_STAMINA_COST if rally else DEFAULT_SOLO_STAMINA_COST
        now = self._clock()
        with self._lock:
            entry = self._entries.setdefault(profile_id, _Entry(0, now, None))
            self._materialize(entry, now)
            entry.value = max(0, entry.value - int(amount))

    def requires_update(self, profile_id):
        """True if the profile was never read from screen or the reading is stale"""
        with self._lock:
            entry = self._entries.get(profile_id)
            if entry is None or entry.read_at is None:
                return True
            return self._clock() - entry.read_at > MAX_READING_AGE

    def last_read(self, profile_id):
        with self._lock:
            entry = self._entries.get(profile_id)
            return entry.read_at if entry else None

    @staticmethod
    def regeneration_minutes(current, target):
        """Minutes needed to regenerate from current to target (0 if reached)"""
        if current >= target:
            return 0
        return (target - current) * STAMINA_REGENERATION_MINUTES

    def check_stamina_or_reschedule(self, task, min_stamina, refresh_stamina):
        """Check a task's profile has enough stamina, else reschedule the task

        Args:
            task: Task asking (its profile id is used and it is rescheduled)
            min_stamina: Minimum stamina required to proceed
            refresh_stamina: Stamina level to wait for when rescheduling

        Returns:
            bool: True if the task may proceed, False if it was rescheduled
        """
        current = self.get_current_stamina(task.profile_id)
        task.log_info(f"Current stamina: {current}")

        if current >= min_stamina:
            return True

        minutes = self.regeneration_minutes(current, refresh_stamina)
        when = self._clock() + timedelta(minutes=minutes)
        task.reschedule(when)
        task.log_warning(
            f"Not enough stamina ({current}/{min_stamina}). Rescheduling to {when:%d %H:%M:%S}")
        return False

