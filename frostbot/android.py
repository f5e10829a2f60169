"""
Android Device Control Module

Provides ADB-based communication and control for an emulator instance via the
ppadb library. Handles device connection, screen capture, touch input and the
package-level queries tasks need (is the game installed / running, launch
it), with automatic reconnection on errors.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from functools import wraps
from typing import Optional

import cv2 as cv
import numpy as np
from ppadb.client import Client
from ppadb.device import Device

from .config_loader import get_option
from .utils import log

DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_ADB_TIMEOUT = 30  # seconds - timeout for ADB operations

KEYCODE_BACK = 4

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
PNG_END_MARKER = b'IEND\xaeB`\x82'


class ADBTimeoutError(Exception):
    """Exception raised when an ADB operation times out"""
    pass


class AndroidStoppedException(Exception):
    """Exception raised when the device connection is given up"""
    pass


# Thread pool for running ADB operations with timeout
_adb_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="adb_timeout")

# Reconnect state shared by every Android instance on the same serial
_reconnect_states = {}
_reconnect_states_mutex = threading.Lock()

# ADB command locks - one per device serial to prevent concurrent ADB commands
_adb_locks = {}
_adb_locks_mutex = threading.Lock()


def _adb_client():
    adb = get_option('adb', {}) or {}
    return Client(host=adb.get('host', '127.0.0.1'), port=int(adb.get('port', 5037)))


def auto_reconnect(func):
    """Decorator to automatically reconnect on device communication errors

    On error, re-establishes the connection (up to max_reconnect_attempts
    from master.conf) and retries the original operation once.

    Note:
        Raises AndroidStoppedException if stopped or max attempts reached.
        Only one thread per serial reconnects; others wait on the same lock
        and reuse its result.
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except AndroidStoppedException:
            raise
        except Exception as e:
            state = self._reconnect_state
            with state['lock']:
                if state.get('permanent_failure'):
                    raise AndroidStoppedException("Device connection permanently failed")

                if state.get('just_reconnected'):
                    state['just_reconnected'] = False
                else:
                    self.log(f"{func.__name__} failed: {e} - Reconnecting...")
                    try:
                        self._initialize_connection()
                    except AndroidStoppedException:
                        state['permanent_failure'] = True
                        raise
                    state['just_reconnected'] = True

            return func(self, *args, **kwargs)
    return wrapper


class Android:
    """Android device controller via ADB

    Attributes:
        devices: List of available ADB devices
        device: Currently connected device instance
        serial_number: Target device serial number (e.g. "emulator-5554")
        device_name: Friendly name used in log records
        package: Game package name used by the package queries
        should_stop: Flag to signal connection attempts should stop
    """

    def __init__(self, serial: str, device_name: Optional[str] = None,
                 package: Optional[str] = None, connect: bool = True):
        """Initialize Android controller

        Args:
            serial: Device serial number to connect to
            device_name: Optional friendly device name for logging
            package: Game package (default: 'game_package' from master.conf)
            connect: Connect immediately (default: True)
        """
        self.devices: list[Device] = []
        self.device: Optional[Device] = None
        self.serial_number = serial
        self.device_name = device_name or serial
        self.package = package or get_option('game_package', 'com.gof.global')
        self.should_stop = False
        self._setup_reconnect_state()
        if connect:
            self._initialize_connection()

    def _setup_reconnect_state(self):
        with _reconnect_states_mutex:
            if self.serial_number not in _reconnect_states:
                _reconnect_states[self.serial_number] = {
                    'lock': threading.Lock(),
                    'permanent_failure': False,
                    'just_reconnected': False,
                }
            self._reconnect_state = _reconnect_states[self.serial_number]
            self._reconnect_state['permanent_failure'] = False

    def _get_adb_lock(self):
        """Get or create the ADB command lock for this device serial"""
        with _adb_locks_mutex:
            if self.serial_number not in _adb_locks:
                _adb_locks[self.serial_number] = threading.Lock()
            return _adb_locks[self.serial_number]

    def _run_with_timeout(self, func, *args, timeout=None, operation_name="ADB operation"):
        """Run a function with a timeout to prevent indefinite hangs

        Raises:
            ADBTimeoutError: If operation times out
        """
        if timeout is None:
            timeout = get_option('adb_timeout', DEFAULT_ADB_TIMEOUT)

        future = _adb_executor.submit(func, *args)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            self.log(f"{operation_name} timed out after {timeout}s", level='WARNING')
            raise ADBTimeoutError(f"{operation_name} timed out after {timeout} seconds")

    def _shell(self, command, operation_name, timeout=None):
        """Run a shell command under the ADB lock with timeout protection

        Returns:
            str: Command output
        """
        assert self.device is not None, "Device not connected"

        lock = self._get_adb_lock()
        if not lock.acquire(timeout=10):
            raise ADBTimeoutError(f"Could not acquire ADB lock for {operation_name} (timeout)")
        try:
            return self._run_with_timeout(self.device.shell, command,
                                          timeout=timeout, operation_name=operation_name)
        finally:
            lock.release()

    def log(self, message, level='DEBUG'):
        """Log message through the central logging system"""
        log(f"[{self.device_name}] {message}", level=level)

    # ============================================================================
    # DEVICE CONNECTION & MANAGEMENT
    # ============================================================================

    def stop(self):
        """Signal the controller to stop connection attempts"""
        self.should_stop = True

    def _initialize_connection(self):
        """Connect to the ADB server and then to the target device

        Raises:
            AndroidStoppedException: If should_stop is set, max attempts reached,
                                     or ADB server not running
        """
        adb = _adb_client()
        max_attempts = get_option('max_reconnect_attempts', DEFAULT_MAX_RECONNECT_ATTEMPTS)
        attempts = 0

        while True:
            try:
                self.devices = adb.devices()
            except Exception as e:
                self.log(f"ADB server not running - {e}", level='ERROR')
                raise AndroidStoppedException(f"ADB server not running: {e}")

            if self._connect_to_device():
                return

            attempts += 1
            if self.should_stop:
                raise AndroidStoppedException("Connection stopped by user")
            if attempts >= max_attempts:
                self.log(f"Connection failed after {max_attempts} attempts", level='ERROR')
                raise AndroidStoppedException(f"Connection failed after {max_attempts} attempts")
            self.log(f"Connection failed, retrying... ({attempts}/{max_attempts})")
            time.sleep(1)

    def _connect_to_device(self):
        """Pick the device matching serial_number from self.devices

        Returns:
            bool: True if connection successful
        """
        for dev in self.devices:
            if dev.serial == self.serial_number:
                self.device = dev
                self.log(f"Connected to device: {self.serial_number}")
                return True

            try:
                dev_serial = dev.shell('getprop ro.boot.serialno')
            except Exception as e:
                self.log(f"Device connection error: {e}")
                continue
            if dev_serial and self.serial_number in dev_serial:
                self.device = dev
                self.log(f"Connected to device: {dev_serial.strip()}")
                return True
        return False

    # ============================================================================
    # SCREEN CAPTURE
    # ============================================================================

    @auto_reconnect
    def capture_screen(self):
        """Capture current device screen as numpy array

        Returns:
            numpy.ndarray: Screenshot in BGR(A) format (OpenCV compatible)
        """
        assert self.device is not None, "Device not connected"

        lock = self._get_adb_lock()
        if not lock.acquire(timeout=10):
            raise ADBTimeoutError("Could not acquire ADB lock for screencap (timeout)")
        try:
            screenshot_bytes = self._run_with_timeout(self.device.screencap, operation_name="screencap")
        finally:
            lock.release()

        if screenshot_bytes is None or len(screenshot_bytes) < 100:
            raise Exception("Screenshot data incomplete - will retry")
        if not screenshot_bytes.startswith(PNG_SIGNATURE):
            raise Exception("Invalid PNG data - will retry")
        if PNG_END_MARKER not in screenshot_bytes[-20:]:
            raise Exception("PNG data truncated (missing IEND) - will retry")

        np_img = cv.imdecode(np.frombuffer(screenshot_bytes, dtype=np.uint8), cv.IMREAD_UNCHANGED)
        if np_img is None:
            raise Exception("PNG decode failed - will retry")
        return np_img

    # ============================================================================
    # TOUCH INPUT & GESTURES
    # ============================================================================

    @auto_reconnect
    def touch(self, x1, y1, x2=-1, y2=-1, delay=500):
        """Execute tap or swipe gesture on device

        Args:
            x1, y1: Starting/tap coordinates
            x2, y2: Ending coordinates for swipe (default: -1 = same as start)
            delay: Swipe duration in milliseconds (default: 500)
        """
        if x2 == -1:
            x2 = x1
        if y2 == -1:
            y2 = y1

        if x2 == x1 and y2 == y1:
            self.log(f"Touch: ({x1}, {y1})")
            self._shell(f'input tap {x1} {y1}', "tap")
        else:
            self.log(f'Swipe: ({x1}, {y1}) -> ({x2}, {y2}) [{delay}ms]')
            swipe_timeout = max(get_option('adb_timeout', DEFAULT_ADB_TIMEOUT), (delay / 1000) + 10)
            self._shell(f'input swipe {x1} {y1} {x2} {y2} {delay}', "swipe", timeout=swipe_timeout)

    def tap(self, x, y):
        self.touch(x, y)

    def swipe(self, x1, y1, x2, y2, duration=500):
        self.touch(x1, y1, x2, y2, delay=duration)

    @auto_reconnect
    def press_back(self):
        """Press the Back key"""
        self._shell(f"input keyevent {KEYCODE_BACK}", "press_back")

    # ============================================================================
    # PACKAGE MANAGEMENT
    # ============================================================================

    @auto_reconnect
    def is_package_installed(self, package=None):
        """Check whether the game package is installed

        Returns:
            bool
        """
        package = package or self.package
        output = self._shell(f'pm list packages {package}', "pm_list") or ''
        return any(line.strip() == f'package:{package}' for line in output.splitlines())

    @auto_reconnect
    def is_package_running(self, package=None):
        """Check whether the game process is alive

        Returns:
            bool
        """
        package = package or self.package
        output = self._shell(f'pidof {package}', "pidof") or ''
        return bool(output.strip())

    @auto_reconnect
    def launch_app(self, package=None):
        """Start the game's launcher activity"""
        package = package or self.package
        self.log(f"Launching {package}", level='INFO')
        self._shell(f'monkey -p {package} -c android.intent.category.LAUNCHER 1', "launch_app")
