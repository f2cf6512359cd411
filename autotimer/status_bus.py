"""
Status Bus - IPC bridge for live status updates.

Publishes the current timer, activity and escalation state to
storage/status.json for UI consumption. Publishing happens on every
StateChanged and on a 1 Hz heartbeat so idle time stays fresh while the
timer itself is quiet.
"""

import json
import os
import time
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, Callable
from pathlib import Path

from .clock import Clock, ScheduledTask
from .settings import storage_root
from .timer_events import TimerEventSink, TimerState


HEARTBEAT_INTERVAL_SEC = 1.0


@dataclass
class StatusSnapshot:
    """Single snapshot of current system state."""
    # Timestamp
    ts_unix: float

    # Timer
    phase: str  # "idle", "running", "paused"
    remaining_seconds: int
    remaining_formatted: str
    duration_min: int
    sessions_completed: int
    pending_restart: bool

    # Activity scheduler
    activity: Dict[str, Any]  # {monitoring, manual_only, idle_seconds, degraded_sources, ...}

    # Escalation
    escalation: Dict[str, Any]  # {escalating, acknowledged, pending_steps, ...}


class StatusBus(TimerEventSink):
    """
    Publisher that writes status snapshots to a JSON file.

    Runs on the clock's timeline; atomic writes, best-effort delivery.
    """

    def __init__(
        self,
        clock: Clock,
        status_file: Optional[str] = None,
        update_interval_sec: float = HEARTBEAT_INTERVAL_SEC
    ):
        """
        Initialize status bus.

        Args:
            clock: Clock whose timeline drives the heartbeat
            status_file: Path to status JSON file (default: storage/status.json)
            update_interval_sec: Heartbeat period (default: 1 Hz)
        """
        if status_file is None:
            status_file = str(storage_root() / "status.json")

        self.clock = clock
        self.status_file = Path(status_file)
        self.status_file.parent.mkdir(parents=True, exist_ok=True)

        self.update_interval_sec = update_interval_sec

        self._heartbeat: Optional[ScheduledTask] = None
        self._snapshot_provider: Optional[Callable[[], Optional[StatusSnapshot]]] = None

        self._error_count = 0
        self._last_error_time = 0.0
        self._backoff_sec = 1.0
        self._retry_at = 0.0

    def set_snapshot_provider(self, provider: Callable[[], Optional[StatusSnapshot]]):
        """
        Set the callback that provides status snapshots.

        Args:
            provider: Function that returns current StatusSnapshot or None
        """
        self._snapshot_provider = provider

    def start(self):
        """Start the heartbeat."""
        if self._heartbeat is not None:
            return

        if not self._snapshot_provider:
            raise ValueError("Must set snapshot provider before starting")

        self._heartbeat = self.clock.call_every(self.update_interval_sec, self.publish, name="status-heartbeat")
        self.publish()

    def stop(self):
        """Stop the heartbeat."""
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None

    def is_running(self) -> bool:
        return self._heartbeat is not None

    def on_state_changed(self, state: TimerState):
        self.publish()

    def publish(self) -> bool:
        """
        Write the current snapshot.

        Returns:
            True if a snapshot was written
        """
        if self._snapshot_provider is None:
            return False

        # Exponential backoff on repeated errors
        if self._error_count > 3 and self.clock.now() < self._retry_at:
            return False

        try:
            snapshot = self._snapshot_provider()
            if snapshot is None:
                return False
            self._write_snapshot(snapshot)
        except Exception as e:
            # Best-effort: log error but keep running
            self._error_count += 1
            current_time = time.time()

            # Only log errors occasionally to avoid spam
            if current_time - self._last_error_time > 10.0:
                print(f"[STATUS_BUS] Error publishing status: {e}")
                self._last_error_time = current_time

            if self._error_count > 3:
                self._backoff_sec = min(self._backoff_sec * 2, 30.0)
                self._retry_at = self.clock.now() + self._backoff_sec
            return False

        # Reset error tracking on success
        self._error_count = 0
        self._backoff_sec = 1.0
        return True

    def _write_snapshot(self, snapshot: StatusSnapshot):
        """
        Write snapshot to file atomically.

        Uses temp file + os.replace() to ensure atomic write.
        """
        json_str = json.dumps(asdict(snapshot), indent=2)

        temp_file = self.status_file.with_suffix('.tmp')
        with open(temp_file, 'w') as f:
            f.write(json_str)

        os.replace(temp_file, self.status_file)


def read_status(status_file: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Read the last published snapshot.

    Returns:
        Snapshot dict, or None if missing or unreadable
    """
    path = Path(status_file) if status_file else storage_root() / "status.json"
    if not path.exists():
        return None
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return None


def create_snapshot(timer, scheduler=None, escalator=None) -> Optional[StatusSnapshot]:
    """
    Create StatusSnapshot from the running components.

    Args:
        timer: TimerEngine instance
        scheduler: ActivityScheduler instance (optional)
        escalator: NotificationEscalator instance (optional)

    Returns:
        StatusSnapshot or None if it could not be built
    """
    try:
        state = timer.get_state()
        settings = timer.settings.get()

        return StatusSnapshot(
            ts_unix=time.time(),
            phase=state.phase.value,
            remaining_seconds=state.remaining_seconds,
            remaining_formatted=state.format_remaining(),
            duration_min=settings.duration,
            sessions_completed=timer.sessions_completed,
            pending_restart=timer.has_pending_restart(),
            activity=scheduler.get_status() if scheduler else {},
            escalation=escalator.get_status() if escalator else {}
        )

    except Exception as e:
        print(f"[STATUS_BUS] Error creating snapshot: {e}")
        return None
