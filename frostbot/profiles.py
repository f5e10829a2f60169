"""
Profiles - configured game sessions and their persistence

A profile is one automated game session: one emulator instance plus the
account running in it, with a bag of key/value settings that tasks read at
the start of every run and may write back.

Usage:
    repo = ProfileRepository()
    repo.seed_from_config(get_profile_definitions())

    profile = repo.get_profile(1)
    if profile.get_config(ConfigKey.VIP_POINTS_BOOL):
        ...
    profile.set_config(ConfigKey.VIP_NEXT_MONTHLY_BUY_TIME_STRING, datetime.now())
    repo.save_profile(profile)
"""

import copy
from datetime import datetime
from enum import Enum

from .database import Database


class ConfigKey(Enum):
    """Known profile configuration keys with their default and value type

    Stored values are always strings; get_config() converts them back using
    value_type.
    """

    def __new__(cls, default, value_type):
        obj = object.__new__(cls)
        obj._value_ = len(cls.__members__) + 1
        obj.default = default
        obj.value_type = value_type
        return obj

    # Queue behaviour
    RECONNECT_TIME_INT = ('5', int)

    # Task enable flags
    VIP_POINTS_BOOL = ('false', bool)
    MAIL_REWARDS_BOOL = ('false', bool)
    STOREHOUSE_CHEST_BOOL = ('false', bool)
    BEAR_TRAP_EVENT_BOOL = ('false', bool)
    ARENA_TASK_BOOL = ('false', bool)
    GATHER_RESOURCES_BOOL = ('false', bool)

    # VIP
    VIP_MONTHLY_BUY_BOOL = ('false', bool)
    VIP_NEXT_MONTHLY_BUY_TIME_STRING = ('', datetime)

    # Mail
    MAIL_REWARDS_OFFSET_INT = ('60', int)

    # Storehouse
    STOREHOUSE_NEXT_CLAIM_TIME_STRING = ('', datetime)

    # Bear Trap
    BEAR_TRAP_SCHEDULE_DATETIME_STRING = ('', datetime)
    BEAR_TRAP_PREPARATION_TIME_INT = ('5', int)

    # Arena
    ARENA_TASK_ACTIVATION_TIME_STRING = ('23:50', str)
    ARENA_TASK_EXTRA_ATTEMPTS_INT = ('0', int)

    # Gathering
    GATHER_RESOURCE_TYPES_STRING = ('meat,wood', str)
    GATHER_LEVEL_INT = ('6', int)
    GATHER_STAMINA_COST_INT = ('10', int)


def _convert(raw, value_type):
    """Convert a stored string to value_type

    Returns:
        Converted value, or None when raw is empty (for datetime) or unparsable
    """
    if raw is None:
        return None
    if value_type is bool:
        return str(raw).strip().lower() in ('1', 'true', 'yes', 'on')
    if value_type is int:
        try:
            return int(str(raw).strip())
        except ValueError:
            return None
    if value_type is datetime:
        text = str(raw).strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return str(raw)


def _serialize(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, datetime):
        return value.isoformat(timespec='seconds')
    if value is None:
        return ''
    return str(value)


class Profile:
    """One configured game session

    Attributes:
        id: Database id (None until saved)
        name: Display name, unique
        emulator_number: LDPlayer instance index
        enabled: Whether the launcher should start a queue for it
        priority: Higher priority profiles get emulator slots first
        configs: dict of ConfigKey name -> stored string value
    """

    def __init__(self, name, emulator_number=0, enabled=True, priority=50,
                 configs=None, profile_id=None):
        self.id = profile_id
        self.name = name
        self.emulator_number = int(emulator_number)
        self.enabled = bool(enabled)
        self.priority = int(priority)
        self.configs = dict(configs or {})

    def get_config(self, key, default=None):
        """Read a config value converted to the key's type

        Args:
            key: ConfigKey member (or its name)
            default: Returned when the stored value is missing or unparsable.
                     When None, the key's own default is used.
        """
        key = ConfigKey[key] if isinstance(key, str) else key
        raw = self.configs.get(key.name)
        value = _convert(raw, key.value_type)
        if value is None:
            if default is not None:
                return default
            return _convert(key.default, key.value_type)
        return value

    def set_config(self, key, value):
        """Store a config value; persisted by the next save_profile()"""
        key = ConfigKey[key] if isinstance(key, str) else key
        self.configs[key.name] = _serialize(value)

    def copy(self):
        return copy.deepcopy(self)

    def __repr__(self):
        return f"Profile(id={self.id!r}, name={self.name!r}, emulator={self.emulator_number})"


class ProfileRepository:
    """SQLite-backed profile store

    This is the persistence collaborator tasks talk to: they reload their
    profile at the start of each run (get_profile) and write it back when a
    task changed configuration (save_profile).
    """

    def __init__(self, database=None):
        self.db = database or Database()
        self._init_schema()

    def _init_schema(self):
        self.db.executescript('''
            CREATE TABLE IF NOT EXISTS profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                emulator_number INTEGER NOT NULL DEFAULT 0,
                enabled INTEGER NOT NULL DEFAULT 1,
                priority INTEGER NOT NULL DEFAULT 50
            );

            CREATE TABLE IF NOT EXISTS profile_configs (
                profile_id INTEGER NOT NULL,
                key TEXT NOT NULL,
                value TEXT,
                PRIMARY KEY (profile_id, key),
                FOREIGN KEY (profile_id) REFERENCES profiles(id)
            );
        ''')

    def _load_configs(self, profile_id):
        rows = self.db.query(
            'SELECT key, value FROM profile_configs WHERE profile_id = ?', (profile_id,))
        return {row['key']: row['value'] for row in rows}

    def _row_to_profile(self, row):
        return Profile(
            name=row['name'],
            emulator_number=row['emulator_number'],
            enabled=bool(row['enabled']),
            priority=row['priority'],
            configs=self._load_configs(row['id']),
            profile_id=row['id'],
        )

    def get_profile(self, profile_id):
        """Load a fresh snapshot of a profile with all its configs

        Returns:
            Profile or None if no such profile exists
        """
        row = self.db.query_one('SELECT * FROM profiles WHERE id = ?', (profile_id,))
        return self._row_to_profile(row) if row else None

    def get_profile_by_name(self, name):
        row = self.db.query_one('SELECT * FROM profiles WHERE name = ?', (name,))
        return self._row_to_profile(row) if row else None

    def list_profiles(self, enabled_only=False):
        sql = 'SELECT * FROM profiles'
        if enabled_only:
            sql += ' WHERE enabled = 1'
        sql += ' ORDER BY priority DESC, name'
        return [self._row_to_profile(row) for row in self.db.query(sql)]

    def add_profile(self, profile):
        """Insert a new profile and its configs, setting profile.id

        Returns:
            Profile: the same instance with id populated
        """
        with self.db.lock:
            profile.id = self.db.execute(
                'INSERT INTO profiles (name, emulator_number, enabled, priority) VALUES (?, ?, ?, ?)',
                (profile.name, profile.emulator_number, int(profile.enabled), profile.priority))
            self._write_configs(profile)
        return profile

    def save_profile(self, profile):
        """Persist profile fields and every config value

        Raises:
            ValueError: If the profile has never been added
        """
        if profile.id is None:
            raise ValueError(f"Profile {profile.name} has no id, use add_profile() first")

        with self.db.lock:
            self.db.execute(
                'UPDATE profiles SET name = ?, emulator_number = ?, enabled = ?, priority = ? WHERE id = ?',
                (profile.name, profile.emulator_number, int(profile.enabled), profile.priority, profile.id))
            self._write_configs(profile)

    def _write_configs(self, profile):
        conn = self.db.connection()
        conn.executemany(
            'INSERT OR REPLACE INTO profile_configs (profile_id, key, value) VALUES (?, ?, ?)',
            [(profile.id, key, value) for key, value in profile.configs.items()])
        conn.commit()

    def seed_from_config(self, definitions):
        """Create profiles from config definitions

        Existing profiles (matched by name) keep their stored values; only
        config keys they do not have yet are added.

        Args:
            definitions: dict name -> {'emulator', 'priority', 'enabled', 'config'}

        Returns:
            list: Profiles after seeding, in definition order
        """
        profiles = []
        for name, definition in definitions.items():
            configs = {key: _serialize(value) for key, value in definition.get('config', {}).items()}
            existing = self.get_profile_by_name(name)

            if existing is None:
                profile = Profile(
                    name=name,
                    emulator_number=definition.get('emulator', 0),
                    enabled=definition.get('enabled', True),
                    priority=definition.get('priority', 50),
                    configs=configs,
                )
                self.add_profile(profile)
            else:
                profile = existing
                missing = {k: v for k, v in configs.items() if k not in profile.configs}
                if missing:
                    profile.configs.update(missing)
                    self.save_profile(profile)
            profiles.append(profile)
        return profiles
