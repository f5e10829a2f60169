"""
SQLite Database Access - shared connection handling

Every persistent store in the framework (profiles, queue/task state, logs)
lives in one SQLite file. This module owns the connection handling:
thread-local connections (one per worker thread), WAL journaling and a
process-wide write lock per database file.
"""

import os
import sqlite3
import threading

from .config_loader import get_option, resolve_path


class Database:
    """Thread-safe handle on one SQLite file

    Attributes:
        db_path: Absolute path of the database file
        lock: Write lock shared by every Database on the same file
    """

    # Class-level registry of write locks keyed by db path
    _locks = {}
    _locks_mutex = threading.Lock()

    def __init__(self, db_path=None):
        """Open (lazily) the database at db_path

        Args:
            db_path: Path to the SQLite file. Defaults to the 'database' option
                     from master.conf, relative to the project root.
                     ':memory:' is not supported since each thread opens its own connection.
        """
        if db_path is None:
            db_path = resolve_path(get_option('database', 'state/frostbot.db'))

        self.db_path = os.path.abspath(db_path)
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with self._locks_mutex:
            if self.db_path not in self._locks:
                self._locks[self.db_path] = threading.RLock()
            self.lock = self._locks[self.db_path]

        # Thread-local storage for connection pooling (one connection per thread)
        self._thread_local = threading.local()

    def connection(self):
        """Get a database connection using thread-local pooling

        Returns:
            sqlite3.Connection: Database connection for current thread
        """
        conn = getattr(self._thread_local, 'connection', None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            conn.row_factory = sqlite3.Row
            conn.execute('PRAGMA journal_mode=WAL')
            conn.execute('PRAGMA synchronous=NORMAL')
            self._thread_local.connection = conn
        return conn

    def close(self):
        """Close the thread-local connection if it exists"""
        conn = getattr(self._thread_local, 'connection', None)
        if conn is not None:
            conn.close()
            self._thread_local.connection = None

    def execute(self, sql, params=()):
        """Execute a single write statement and commit

        Returns:
            int: lastrowid of the statement
        """
        with self.lock:
            conn = self.connection()
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.lastrowid

    def executescript(self, script):
        with self.lock:
            conn = self.connection()
            conn.executescript(script)
            conn.commit()

    def query(self, sql, params=()):
        """Run a SELECT and return a list of dicts"""
        cursor = self.connection().execute(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    def query_one(self, sql, params=()):
        """Run a SELECT and return the first row as a dict (or None)"""
        row = self.connection().execute(sql, params).fetchone()
        return dict(row) if row is not None else None
