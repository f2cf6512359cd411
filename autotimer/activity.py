"""
Activity signals and the platform sources that produce them.

Individual key events are not observable without elevated privileges, so
keyboard presence is approximated from the system idle time: anything
under a one-second floor counts as a keystroke (or any other input).

Sources raise ActivitySignalUnavailable when they cannot be read; the
scheduler drops such a source and keeps monitoring with what is left.
"""

import ctypes
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from .errors import ActivitySignalUnavailable
from .platform import is_macos, is_windows, is_linux, has_command


class ActivityKind(Enum):
    POINTER = "pointer"
    KEYBOARD = "keyboard"


@dataclass(frozen=True)
class ActivityEvent:
    """Ephemeral activity signal; only its timestamp is kept."""
    kind: ActivityKind
    timestamp: float


class PowerEvent(Enum):
    SUSPEND = "suspend"
    RESUME = "resume"
    LOCK_SCREEN = "lock_screen"
    UNLOCK_SCREEN = "unlock_screen"


class PointerPositionSource:
    """
    Samples the pointer position with pynput.

    A change between two samples is pointer activity.
    """

    name = "pointer"

    def __init__(self):
        self._controller = None

    def open(self):
        """
        Acquire the pointer backend.

        Raises:
            ActivitySignalUnavailable: no display, missing backend, or
                accessibility permission denied
        """
        if self._controller is not None:
            return
        try:
            from pynput import mouse
            self._controller = mouse.Controller()
            self._controller.position
        except Exception as e:
            self._controller = None
            raise ActivitySignalUnavailable(self.name, str(e) or type(e).__name__)

    def close(self):
        self._controller = None

    def position(self) -> Tuple[int, int]:
        """Current pointer position in screen coordinates."""
        if self._controller is None:
            self.open()
        try:
            x, y = self._controller.position
        except Exception as e:
            raise ActivitySignalUnavailable(self.name, str(e) or type(e).__name__)
        return int(x), int(y)


class SystemIdleSource:
    """
    Queries seconds since the last user input of any kind.

    Backends:
    - macOS: Quartz CGEventSourceSecondsSinceLastEventType
    - Windows: GetLastInputInfo / GetTickCount
    - Linux (X11): xprintidle
    """

    name = "system_idle"

    def __init__(self):
        self._query = None

    def open(self):
        """
        Pick the backend for this platform.

        Raises:
            ActivitySignalUnavailable: if no backend works here
        """
        if self._query is not None:
            return

        if is_macos():
            self._query = self._open_quartz()
        elif is_windows():
            self._query = _windows_idle_seconds
        elif is_linux():
            if not has_command("xprintidle"):
                raise ActivitySignalUnavailable(self.name, "xprintidle not found")
            self._query = _XprintidleQuery()
        else:
            raise ActivitySignalUnavailable(self.name, "unsupported platform")

        # Probe once so failures surface at start, not mid-session
        self.idle_seconds()

    def close(self):
        self._query = None

    def idle_seconds(self) -> float:
        if self._query is None:
            self.open()
        try:
            return float(self._query())
        except ActivitySignalUnavailable:
            raise
        except Exception as e:
            raise ActivitySignalUnavailable(self.name, str(e) or type(e).__name__)

    def _open_quartz(self):
        try:
            from Quartz import (
                CGEventSourceSecondsSinceLastEventType,
                kCGEventSourceStateHIDSystemState,
                kCGAnyInputEventType,
            )
        except ImportError:
            raise ActivitySignalUnavailable(self.name, "Quartz (pyobjc) not available")

        def query() -> float:
            return CGEventSourceSecondsSinceLastEventType(
                kCGEventSourceStateHIDSystemState,
                kCGAnyInputEventType,
            )

        return query


def _windows_idle_seconds() -> float:
    class LASTINPUTINFO(ctypes.Structure):
        _fields_ = [("cbSize", ctypes.c_uint), ("dwTime", ctypes.c_uint)]

    user32 = ctypes.windll.user32  # type: ignore[attr-defined]
    kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]

    last_input = LASTINPUTINFO()
    last_input.cbSize = ctypes.sizeof(LASTINPUTINFO)
    if not user32.GetLastInputInfo(ctypes.byref(last_input)):
        raise ctypes.WinError()

    # GetLastInputInfo is 32-bit; compare against the 32-bit tick count
    tick_count_ms = int(kernel32.GetTickCount())
    idle_ms = max(0, tick_count_ms - last_input.dwTime)
    return idle_ms / 1000.0


def _xprintidle_seconds() -> float:
    result = subprocess.run(
        ["xprintidle"],
        capture_output=True,
        text=True,
        timeout=1.0
    )
    return _parse_xprintidle(result.returncode, result.stdout, result.stderr)


def _parse_xprintidle(returncode: int, stdout: str, stderr: str) -> float:
    if returncode != 0:
        raise ActivitySignalUnavailable("system_idle", stderr.strip() or "xprintidle failed")
    return int(stdout.strip()) / 1000.0


class _XprintidleQuery:
    """
    xprintidle without waiting on the child process.

    Only the first sample blocks. After that each call returns the most
    recent finished sample and starts the next one, so a sample is at most
    one poll interval old.
    """

    def __init__(self):
        self._proc = None
        self._last = None

    def __call__(self) -> float:
        if self._proc is not None and self._proc.poll() is not None:
            stdout, stderr = self._proc.communicate()
            proc, self._proc = self._proc, None
            self._last = _parse_xprintidle(proc.returncode, stdout, stderr)

        if self._last is None:
            self._last = _xprintidle_seconds()
        elif self._proc is None:
            self._proc = subprocess.Popen(
                ["xprintidle"],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True
            )
        return self._last


# Wall-clock jump, beyond the check interval, that counts as a sleep
SLEEP_GAP_SEC = 10.0


class SleepDetector:
    """
    Infers system sleep from wall-clock jumps.

    The clock's monotonic time stops while the machine sleeps but the wall
    clock does not, so a check that sees much more wall time than
    monotonic time has just woken up. Reports SUSPEND then RESUME.
    """

    def __init__(self, clock, on_event, check_interval_sec: float = 2.0, gap_sec: float = SLEEP_GAP_SEC,
                 wall_time=time.time):
        self.clock = clock
        self.on_event = on_event
        self.check_interval_sec = check_interval_sec
        self.gap_sec = gap_sec
        self._wall_time = wall_time
        self._task = None
        self._last_wall = None
        self._last_mono = None

    def start(self):
        if self._task is not None:
            return
        self._last_wall = self._wall_time()
        self._last_mono = self.clock.now()
        self._task = self.clock.call_every(self.check_interval_sec, self._check, name="sleep-detector")

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _check(self):
        wall, mono = self._wall_time(), self.clock.now()
        unaccounted = (wall - self._last_wall) - (mono - self._last_mono)
        self._last_wall, self._last_mono = wall, mono

        if unaccounted >= self.gap_sec:
            print(f"  [ACTIVITY] System slept for ~{unaccounted:.0f}s")
            self.on_event(PowerEvent.SUSPEND)
            self.on_event(PowerEvent.RESUME)
