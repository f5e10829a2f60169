"""
State Manager - SQLite-backed queue and task state monitoring

Keeps the runtime state of every profile queue in the shared database so the
web API (and anything else reading the file) can see what each profile is
doing: whether its worker runs, is paused or waits for a reconnect, which
task it is executing, which tasks are scheduled and when they last ran, and
the recent log records.

Usage:
    state_mgr = StateManager()

    state_mgr.update_queue_state(1, profile_name="Main", is_running=True)
    state_mgr.mark_task_scheduled(1, "MAIL_REWARDS", next_execution=when)
    state_mgr.update_task_execution(1, "MAIL_REWARDS", last_execution=now,
                                    next_execution=later)
    state_mgr.add_log("Claimed 3 mails", task="Mail Rewards", profile="Main")

    states = state_mgr.get_all_queue_states()
"""

from datetime import datetime

import cv2 as cv

from .database import Database

# Per-profile cap on stored log records
MAX_LOG_ROWS = 500


class StateManager:
    """SQLite-backed state store for all profile queues"""

    # Columns update_queue_state() accepts, with their conversion
    _QUEUE_FIELDS = {
        'profile_name': str,
        'is_running': lambda x: 1 if x else 0,
        'paused': lambda x: 1 if x else 0,
        'needs_reconnect': lambda x: 1 if x else 0,
        'reconnect_at': lambda x: x.isoformat(timespec='seconds') if x else None,
        'current_task': lambda x: x or '',
    }

    def __init__(self, database=None):
        """Initialize state manager

        Args:
            database: Database to use (defaults to the configured one)
        """
        self.db = database or Database()
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema if not exists"""
        self.db.executescript('''
            CREATE TABLE IF NOT EXISTS queue_states (
                profile_id INTEGER PRIMARY KEY,
                profile_name TEXT NOT NULL DEFAULT '',
                is_running INTEGER NOT NULL DEFAULT 0,
                paused INTEGER NOT NULL DEFAULT 0,
                needs_reconnect INTEGER NOT NULL DEFAULT 0,
                reconnect_at TEXT,
                current_task TEXT DEFAULT '',
                last_update TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS task_states (
                profile_id INTEGER NOT NULL,
                task_type TEXT NOT NULL,
                distinct_key TEXT NOT NULL DEFAULT '',
                scheduled INTEGER NOT NULL DEFAULT 0,
                last_execution TEXT,
                next_execution TEXT,
                PRIMARY KEY (profile_id, task_type, distinct_key)
            );

            CREATE TABLE IF NOT EXISTS logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TIMESTAMP NOT NULL,
                level TEXT NOT NULL,
                profile TEXT,
                task TEXT,
                message TEXT NOT NULL,
                screenshot BLOB
            );

            CREATE INDEX IF NOT EXISTS idx_logs_profile ON logs(profile, id);
        ''')

    # ============================================================================
    # QUEUE STATE
    # ============================================================================

    def update_queue_state(self, profile_id, **fields):
        """Create or update the state row of a profile queue

        Args:
            profile_id: Profile id
            **fields: Any of profile_name, is_running, paused, needs_reconnect,
                      reconnect_at (datetime or None), current_task
        """
        updates = {}
        for key, value in fields.items():
            if key in self._QUEUE_FIELDS:
                updates[key] = self._QUEUE_FIELDS[key](value)

        now = datetime.now().isoformat(timespec='seconds')
        with self.db.lock:
            exists = self.db.query_one(
                'SELECT profile_id FROM queue_states WHERE profile_id = ?', (profile_id,))
            if not exists:
                self.db.execute(
                    'INSERT INTO queue_states (profile_id, last_update) VALUES (?, ?)',
                    (profile_id, now))

            if updates:
                assignments = ', '.join(f'{key} = ?' for key in updates)
                self.db.execute(
                    f'UPDATE queue_states SET {assignments}, last_update = ? WHERE profile_id = ?',
                    (*updates.values(), now, profile_id))

    def _queue_row(self, row):
        row['is_running'] = bool(row['is_running'])
        row['paused'] = bool(row['paused'])
        row['needs_reconnect'] = bool(row['needs_reconnect'])
        return row

    def get_queue_state(self, profile_id):
        """Get state of one profile queue

        Returns:
            dict or None
        """
        row = self.db.query_one('SELECT * FROM queue_states WHERE profile_id = ?', (profile_id,))
        return self._queue_row(row) if row else None

    def get_all_queue_states(self):
        rows = self.db.query('SELECT * FROM queue_states ORDER BY profile_name COLLATE NOCASE')
        return [self._queue_row(row) for row in rows]

    # ============================================================================
    # TASK STATE
    # ============================================================================

    def mark_task_scheduled(self, profile_id, task_type, distinct_key=None,
                            scheduled=True, next_execution=None):
        """Record whether a task sits in its profile queue

        Args:
            profile_id: Profile id
            task_type: Task type name (e.g. "MAIL_REWARDS")
            distinct_key: Optional distinct key of the task instance
            scheduled: True while the task is pending in the queue
            next_execution: Scheduled time, if known
        """
        key = distinct_key or ''
        with self.db.lock:
            self.db.execute('''
                INSERT INTO task_states (profile_id, task_type, distinct_key, scheduled, next_execution)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(profile_id, task_type, distinct_key) DO UPDATE SET
                    scheduled = excluded.scheduled,
                    next_execution = COALESCE(excluded.next_execution, task_states.next_execution)
            ''', (profile_id, task_type, key, 1 if scheduled else 0,
                  next_execution.isoformat(timespec='seconds') if next_execution else None))

    def update_task_execution(self, profile_id, task_type, distinct_key=None,
                              last_execution=None, next_execution=None):
        """Record the outcome times of a task run"""
        key = distinct_key or ''
        self.db.execute('''
            INSERT INTO task_states (profile_id, task_type, distinct_key, last_execution, next_execution)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(profile_id, task_type, distinct_key) DO UPDATE SET
                last_execution = excluded.last_execution,
                next_execution = excluded.next_execution
        ''', (profile_id, task_type, key,
              last_execution.isoformat(timespec='seconds') if last_execution else None,
              next_execution.isoformat(timespec='seconds') if next_execution else None))

    def get_task_state(self, profile_id, task_type, distinct_key=None):
        row = self.db.query_one(
            'SELECT * FROM task_states WHERE profile_id = ? AND task_type = ? AND distinct_key = ?',
            (profile_id, task_type, distinct_key or ''))
        if row:
            row['scheduled'] = bool(row['scheduled'])
        return row

    def is_task_scheduled(self, profile_id, task_type, distinct_key=None):
        state = self.get_task_state(profile_id, task_type, distinct_key)
        return bool(state and state['scheduled'])

    def get_task_states(self, profile_id):
        rows = self.db.query(
            'SELECT * FROM task_states WHERE profile_id = ? ORDER BY next_execution', (profile_id,))
        for row in rows:
            row['scheduled'] = bool(row['scheduled'])
        return rows

    def clear_scheduled(self, profile_id=None):
        """Reset the scheduled flag of every task (optionally of one profile)"""
        if profile_id is None:
            self.db.execute('UPDATE task_states SET scheduled = 0')
        else:
            self.db.execute('UPDATE task_states SET scheduled = 0 WHERE profile_id = ?', (profile_id,))

    # ============================================================================
    # LOGS
    # ============================================================================

    def add_log(self, message, level='INFO', task=None, profile=None, screenshot=None):
        """Add a log record

        Args:
            message: Log message text
            level: Log level name
            task: Task name the record belongs to
            profile: Profile name the record belongs to
            screenshot: Optional numpy array (BGR/BGRA format), stored as JPEG

        Note:
            Keeps the last MAX_LOG_ROWS records per profile.
        """
        screenshot_blob = None
        if screenshot is not None:
            success, encoded = cv.imencode('.jpg', screenshot, [cv.IMWRITE_JPEG_QUALITY, 85])
            if success:
                screenshot_blob = encoded.tobytes()

        with self.db.lock:
            row_id = self.db.execute(
                'INSERT INTO logs (timestamp, level, profile, task, message, screenshot) '
                'VALUES (?, ?, ?, ?, ?, ?)',
                (datetime.now().isoformat(timespec='seconds'), level, profile, task, message, screenshot_blob))

            if row_id % 50 == 0:
                self._prune_logs(profile)

    def _prune_logs(self, profile):
        self.db.execute('''
            DELETE FROM logs
            WHERE profile IS ? AND id NOT IN (
                SELECT id FROM logs WHERE profile IS ? ORDER BY id DESC LIMIT ?
            )
        ''', (profile, profile, MAX_LOG_ROWS))

    def get_logs(self, profile=None, limit=50):
        """Get the most recent log records, oldest first

        Args:
            profile: Only records of this profile name (None = all)
            limit: Maximum number of records

        Returns:
            list: dicts with timestamp, level, profile, task, message
        """
        sql = 'SELECT id, timestamp, level, profile, task, message FROM logs'
        params = []
        if profile is not None:
            sql += ' WHERE profile = ?'
            params.append(profile)
        sql += ' ORDER BY id DESC LIMIT ?'
        params.append(limit)
        return list(reversed(self.db.query(sql, params)))

    def get_latest_screenshot(self, profile):
        """Get the most recent JPEG screenshot logged for a profile

        Returns:
            bytes or None
        """
        row = self.db.query_one(
            'SELECT screenshot FROM logs WHERE profile = ? AND screenshot IS NOT NULL '
            'ORDER BY id DESC LIMIT 1', (profile,))
        return row['screenshot'] if row else None
