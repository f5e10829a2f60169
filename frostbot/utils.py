"""
Core Utilities - Generic helper functions

This module provides utility functions used across the framework.
All logging functionality is centralized here.
"""

import threading
from datetime import datetime

LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')

# Global references for logging
_state_manager = None
_listeners = []
_listeners_lock = threading.Lock()
_debug_enabled = False
_headless_mode = False  # If True, log to console; if False, only log to listeners/web


def set_state_manager(state_manager):
    """Set the state manager for web interface logging

    Args:
        state_manager: StateManager instance (or None to detach)
    """
    global _state_manager
    _state_manager = state_manager


def add_log_listener(listener):
    """Register a callable that receives every log record

    Args:
        listener: Callable taking (level, message, task, profile, screenshot)
    """
    with _listeners_lock:
        if listener not in _listeners:
            _listeners.append(listener)


def remove_log_listener(listener):
    """Unregister a previously added log listener"""
    with _listeners_lock:
        if listener in _listeners:
            _listeners.remove(listener)


def set_debug_mode(enabled):
    """Enable or disable DEBUG records"""
    global _debug_enabled
    _debug_enabled = bool(enabled)


def is_debug_mode():
    return _debug_enabled


def set_headless_mode(enabled):
    """Set headless mode for console logging

    When headless mode is enabled, logs are printed to console with timestamps.
    When disabled (default), logs only go to listeners and the web interface.

    Args:
        enabled: True to enable console logging, False to disable
    """
    global _headless_mode
    _headless_mode = enabled


def is_headless():
    """Check if running in headless mode

    Returns:
        True if headless mode is enabled
    """
    return _headless_mode


def format_log_line(level, message, task=None, profile=None, timestamp=None):
    """Format a record the way it is shown on the console

    Example:
        >>> format_log_line('INFO', 'Done', task='Mail Rewards', profile='Main',
        ...                 timestamp=datetime(2024, 1, 1, 8, 30, 0))
        '[08:30:00][INFO][Main][Mail Rewards] Done'
    """
    timestamp = timestamp or datetime.now()
    parts = [f"[{timestamp.strftime('%H:%M:%S')}]", f"[{level}]"]
    if profile:
        parts.append(f"[{profile}]")
    if task:
        parts.append(f"[{task}]")
    return ''.join(parts) + f" {message}"


def log(message, level='INFO', task=None, profile=None, screenshot=None):
    """Log message to all configured destinations

    This is the central logging function. Tasks, queues and helpers all
    call this. It handles:
    - Console output (only in headless mode)
    - Web interface via state_manager (if available)
    - Registered listeners (GUI hooks, tests)

    Args:
        message: Message string to log
        level: One of DEBUG, INFO, WARNING, ERROR (default: INFO)
        task: Optional task name the record belongs to
        profile: Optional profile name the record belongs to
        screenshot: Optional screenshot image to associate with log entry
    """
    level = level.upper()
    if level not in LEVELS:
        level = 'INFO'

    if level == 'DEBUG' and not _debug_enabled:
        return

    if _headless_mode:
        print(format_log_line(level, message, task, profile))

    if _state_manager:
        try:
            _state_manager.add_log(message, level=level, task=task, profile=profile,
                                   screenshot=screenshot)
        except Exception as e:
            # Never let the log sink break the caller
            if _headless_mode:
                print(f"[Log] state manager write failed: {e}")

    with _listeners_lock:
        listeners = list(_listeners)
    for listener in listeners:
        listener(level, message, task, profile, screenshot)


def format_cooldown_time(seconds):
    """Format remaining time in condensed format

    Args:
        seconds: Remaining seconds

    Returns:
        str: Formatted time - rounded to nearest minute until < 60s
             (e.g., "5m", "3m", "45s"), hours shown as "2h05m"
    """
    if seconds < 60:
        return f"{int(max(seconds, 0))}s"

    minutes = round(seconds / 60)
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h{minutes % 60:02d}m"
