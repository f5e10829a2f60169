"""
Configuration Loader - Handles master.conf and game-specific configs

This module manages loading and merging configuration from:
- master.conf: Global settings (LDPlayer, ADB, database, emulator slots, profiles)
- <game>.conf: Game-specific settings (default task config, per-profile overlays)

Profile definitions are merged, with game-specific settings overlaying master settings.
"""

import json
import os

DEFAULT_GAME = 'whiteout_survival'

# Defaults used when master.conf omits a setting
DEFAULTS = {
    'adb': {'host': '127.0.0.1', 'port': 5037},
    'adb_timeout': 30,
    'max_reconnect_attempts': 10,
    'game_package': 'com.gof.global',
    'max_running_emulators': 1,
    'max_idle_minutes': 15,
    'database': 'state/frostbot.db',
    'findimg_path': 'games/whiteout_survival/findimg',
    'web': {'host': '127.0.0.1', 'port': 5000},
    'profiles': {},
}

# Cached configurations
_project_root = None
_cached_master_config = None
_cached_game_config = None
_cached_merged_config = None
_current_game = None
_merged_game = None


def _get_project_root():
    """Get the project root directory"""
    if _project_root is not None:
        return _project_root
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def set_project_root(path):
    """Point the loader at another directory and drop all caches

    Args:
        path: Directory containing master.conf (None restores the default)
    """
    global _project_root
    _project_root = path
    _clear_cache()


def _clear_cache():
    global _cached_master_config, _cached_game_config, _cached_merged_config
    global _current_game, _merged_game
    _cached_master_config = None
    _cached_game_config = None
    _cached_merged_config = None
    _current_game = None
    _merged_game = None


def resolve_path(path):
    """Resolve a config path relative to the project root"""
    if os.path.isabs(path):
        return path
    return os.path.join(_get_project_root(), path)


def _read_json(path):
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def load_master_config():
    """Load master configuration from master.conf

    Returns:
        dict: Master configuration with DEFAULTS filled in for missing keys

    Note:
        Uses global cache to avoid repeated file I/O operations.
    """
    global _cached_master_config
    if _cached_master_config is None:
        master_path = os.path.join(_get_project_root(), 'master.conf')
        loaded = _read_json(master_path) if os.path.exists(master_path) else {}

        config = {key: (dict(value) if isinstance(value, dict) else value)
                  for key, value in DEFAULTS.items()}
        for key, value in loaded.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value
        _cached_master_config = config
    return _cached_master_config


def load_game_config(game_name=DEFAULT_GAME):
    """Load game-specific configuration

    Args:
        game_name: Name of the game (folder in games/)

    Returns:
        dict: Game configuration dictionary (empty if <game_name>.conf is missing)
    """
    global _cached_game_config, _current_game

    if _cached_game_config is not None and _current_game == game_name:
        return _cached_game_config

    game_conf_path = os.path.join(_get_project_root(), f'{game_name}.conf')
    _cached_game_config = _read_json(game_conf_path) if os.path.exists(game_conf_path) else {}
    _current_game = game_name
    return _cached_game_config


def _merge_profile_definitions(master_profiles, game_profiles, task_defaults):
    """Merge profile definitions from master and game configs

    Args:
        master_profiles: Profile dict from master.conf (emulator, priority, enabled, config)
        game_profiles: Profile dict from game.conf (config overlays)
        task_defaults: Game-wide default task config applied under every profile

    Returns:
        dict: Merged profile definitions
    """
    merged = {}

    for name, definition in master_profiles.items():
        entry = dict(definition)
        entry['config'] = dict(task_defaults)
        entry['config'].update(definition.get('config', {}))
        merged[name] = entry

    for name, overlay in game_profiles.items():
        if name not in merged:
            # Profile only in game config (unusual but allowed)
            merged[name] = {'config': dict(task_defaults)}
        merged[name]['config'].update(overlay.get('config', overlay))

    return merged


def load_config(game_name=DEFAULT_GAME):
    """Load and merge master and game configurations

    Args:
        game_name: Game name whose .conf overlays master. None returns master only.

    Returns:
        dict: Merged configuration dictionary
    """
    global _cached_merged_config, _merged_game

    if _cached_merged_config is not None and _merged_game == game_name:
        return _cached_merged_config

    master = load_master_config()

    if game_name is None:
        _cached_merged_config = dict(master)
        _merged_game = None
        return _cached_merged_config

    game = load_game_config(game_name)

    merged = dict(master)
    for key, value in game.items():
        if key not in ('profiles', 'tasks'):
            merged[key] = value

    merged['profiles'] = _merge_profile_definitions(
        master.get('profiles', {}),
        game.get('profiles', {}),
        game.get('tasks', {}),
    )

    _cached_merged_config = merged
    _merged_game = game_name
    return merged


def reload_config(game_name=DEFAULT_GAME):
    """Force reload configuration from disk

    Returns:
        dict: Fresh configuration dictionary
    """
    _clear_cache()
    return load_config(game_name)


def get_option(option, default=None, game_name=DEFAULT_GAME):
    """Get a top level option from the merged configuration"""
    return load_config(game_name).get(option, default)


def get_profile_definitions(game_name=DEFAULT_GAME):
    """Get the merged profile definitions

    Returns:
        dict: profile name -> {'emulator', 'priority', 'enabled', 'config'}
    """
    return load_config(game_name).get('profiles', {})


def get_available_profiles(game_name=DEFAULT_GAME):
    """Get list of configured profile names

    Returns:
        list: Profile names defined in master.conf / game conf
    """
    return list(get_profile_definitions(game_name).keys())
