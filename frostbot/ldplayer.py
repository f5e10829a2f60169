"""
LDPlayer Console Interface - Wrapper for ldconsole.exe CLI commands

Controls the LDPlayer emulator instances that back each profile.
Based on: https://www.ldplayer.net/blog/introduction-to-ldplayer-command-line-interface.html

Usage:
    ld = LDPlayer.from_config()

    ld.launch(index=0)
    if ld.is_running(index=0):
        serial = ld.serial_for_index(0)   # "emulator-5554"

    ld.quit(index=0)
"""

import os
import subprocess
from typing import Optional, List, Dict, Any

from .config_loader import get_option

# LDPlayer exposes instance N to ADB as emulator-(5554 + 2N)
BASE_ADB_PORT = 5554


def _instance_args(command, index, name):
    args = [command]
    if index is not None:
        args.extend(['--index', str(index)])
    elif name is not None:
        args.extend(['--name', name])
    else:
        raise ValueError("Either index or name must be provided")
    return args


class LDPlayer:
    """Interface for controlling LDPlayer emulator instances via CLI

    Attributes:
        ldplayer_path: Path to LDPlayer installation directory
        ldconsole_path: Full path to ldconsole.exe
    """

    def __init__(self, ldplayer_path: str):
        """Initialize LDPlayer controller

        Args:
            ldplayer_path: Path to LDPlayer installation directory
                          (e.g., "D:\\LDPlayer\\LDPlayer9\\")

        Raises:
            FileNotFoundError: If ldconsole.exe not found at specified path
        """
        self.ldplayer_path = ldplayer_path
        self.ldconsole_path = os.path.join(ldplayer_path, 'ldconsole.exe')

        if not os.path.exists(self.ldconsole_path):
            raise FileNotFoundError(f"ldconsole.exe not found at: {self.ldconsole_path}")

    @classmethod
    def from_config(cls) -> 'LDPlayer':
        """Create LDPlayer instance from the LDPlayerPath option of master.conf

        Raises:
            KeyError: If LDPlayerPath not in config
        """
        ldplayer_path = get_option('LDPlayerPath')
        if not ldplayer_path:
            raise KeyError("LDPlayerPath not found in config")
        return cls(ldplayer_path)

    @staticmethod
    def serial_for_index(index: int) -> str:
        """ADB serial of an instance index"""
        return f"emulator-{BASE_ADB_PORT + 2 * int(index)}"

    def _run_command(self, args: List[str], wait: bool = True,
                     timeout: Optional[float] = None) -> Optional[str]:
        """Execute ldconsole command

        Args:
            args: Command arguments (without ldconsole.exe)
            wait: If True, wait for command to complete and return output
            timeout: Timeout in seconds (only used if wait=True)

        Returns:
            Command output if wait=True, None otherwise
        """
        cmd = [self.ldconsole_path] + args

        if wait:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
            return result.stdout.strip()
        subprocess.Popen(cmd)
        return None

    # ========================================================================
    # Instance Control
    # ========================================================================

    def launch(self, index: Optional[int] = None, name: Optional[str] = None,
               wait: bool = False) -> Optional[str]:
        """Launch LDPlayer instance by index or name"""
        return self._run_command(_instance_args('launch', index, name), wait=wait)

    def quit(self, index: Optional[int] = None, name: Optional[str] = None,
             wait: bool = False) -> Optional[str]:
        """Quit (close) LDPlayer instance by index or name"""
        return self._run_command(_instance_args('quit', index, name), wait=wait)

    # ========================================================================
    # Instance Information
    # ========================================================================

    def list_instances(self, timeout: float = 5.0) -> List[Dict[str, Any]]:
        """List all LDPlayer instances with their status

        Returns:
            List of dicts with instance info:
            - index: Instance index
            - name: Instance name
            - android_started: Whether Android is started
            - pid: Process ID (-1 if not running)
        """
        output = self._run_command(['list2'], wait=True, timeout=timeout)

        instances = []
        for line in (output or '').split('\n'):
            parts = line.strip().split(',')
            if len(parts) >= 7:
                instances.append({
                    'index': int(parts[0]),
                    'name': parts[1],
                    'android_started': int(parts[4]) == 1,
                    'pid': int(parts[5]),
                })
        return instances

    def is_running(self, index: Optional[int] = None,
                   name: Optional[str] = None) -> bool:
        """Check if an instance is running (Android started)"""
        if index is None and name is None:
            raise ValueError("Either index or name must be provided")

        for instance in self.list_instances():
            if (index is not None and instance['index'] == index) or \
                    (name is not None and instance['name'] == name):
                return instance['android_started'] and instance['pid'] != -1
        return False

