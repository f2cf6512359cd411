"""
Activity-driven scheduling of the timer.

Consumes pointer / system-idle samples and power events, decides when to
start, pause or resume the timer, and issues those decisions through the
TimerEngine's public commands only.

Policy:
- No activity for inactivity_threshold_seconds while running -> pause()
- Activity while paused -> resume() (always)
- Activity while idle -> start() (only if auto_start)
- Suspend / screen lock -> pause(); wake / unlock -> wait for activity
"""

from typing import Optional, Dict, Any, Tuple

from .activity import (
    ActivityEvent,
    ActivityKind,
    PowerEvent,
    PointerPositionSource,
    SystemIdleSource,
)
from .clock import Clock, ScheduledTask
from .errors import ActivitySignalUnavailable
from .event_logger import EventLogger
from .timer_engine import TimerEngine


POINTER_POLL_INTERVAL_SEC = 0.5
IDLE_CHECK_INTERVAL_SEC = 5.0

# System idle below this counts as keyboard (or other input) presence
KEYBOARD_IDLE_FLOOR_SEC = 1.0


class ActivityScheduler:
    """
    Decides timer commands from activity and power signals.

    Owns last_activity; never reads or writes TimerState directly.
    The idle check runs from start() to stop() and also follows the live
    activity_monitoring setting; the pointer poll runs only while that
    setting is on.
    """

    def __init__(
        self,
        clock: Clock,
        timer: TimerEngine,
        settings,
        pointer_source: Optional[PointerPositionSource] = None,
        idle_source: Optional[SystemIdleSource] = None,
        event_logger: Optional[EventLogger] = None
    ):
        """
        Initialize activity scheduler.

        Args:
            clock: Time source and scheduler (same timeline as the timer)
            timer: Timer to command
            settings: Settings provider (anything with get() -> TimerSettings)
            pointer_source: Pointer position source (None = not monitored)
            idle_source: System idle-time source (None = not monitored)
            event_logger: Optional JSONL audit log
        """
        self.clock = clock
        self.timer = timer
        self.settings = settings
        self.pointer_source = pointer_source
        self.idle_source = idle_source
        self.event_logger = event_logger

        self.last_activity: float = clock.now()

        self._monitoring = False
        self._manual_only = False
        self._poll_task: Optional[ScheduledTask] = None
        self._idle_check_task: Optional[ScheduledTask] = None

        self._last_position: Optional[Tuple[int, int]] = None
        self._degraded: Dict[str, str] = {}  # source name -> reason

        # Diagnostics
        self.activity_count = 0
        self.auto_pause_count = 0
        self.last_power_event: Optional[PowerEvent] = None

    # ---- Lifecycle ----

    def start(self):
        """Begin monitoring (no-op if already monitoring)."""
        if self._monitoring:
            return

        self._monitoring = True
        self._set_last_activity(self.clock.now())

        # The idle check also watches the activity_monitoring setting
        self._idle_check_task = self.clock.call_every(
            IDLE_CHECK_INTERVAL_SEC, self._check_idle, name="activity-idle-check"
        )

        if self.settings.get().activity_monitoring:
            self._enable_sampling()
        else:
            self._manual_only = True
            print("  [ACTIVITY] Activity monitoring disabled (manual operation only)")
        print("  [ACTIVITY] Monitoring started")

    def stop(self):
        """Stop monitoring; both periodic tasks are cancelled before returning."""
        if not self._monitoring:
            return

        self._disable_sampling()
        if self._idle_check_task is not None:
            self._idle_check_task.cancel()
            self._idle_check_task = None

        self._monitoring = False
        print("  [ACTIVITY] Monitoring stopped")

    def is_monitoring(self) -> bool:
        return self._monitoring

    def is_manual_only(self) -> bool:
        return self._manual_only

    def is_degraded(self) -> bool:
        """True if any activity source has been dropped."""
        return bool(self._degraded)

    # ---- Signals ----

    def on_activity(self, event: ActivityEvent):
        """
        Handle one activity signal.

        Activity always resumes a paused timer; it only starts an idle
        timer when auto_start is enabled.
        """
        self._set_last_activity(event.timestamp)
        self.activity_count += 1

        if not self._sync_mode():
            return

        if self.timer.is_paused():
            print(f"  [ACTIVITY] {event.kind.value} activity, resuming timer")
            self.timer.resume()
        elif self.timer.is_idle() and self.settings.get().auto_start:
            print(f"  [ACTIVITY] {event.kind.value} activity, starting timer")
            self.timer.start()

    def on_power_event(self, event: PowerEvent):
        """
        Handle a system power / session event.

        Sleep and lock are treated as forced inactivity. Wake and unlock
        deliberately do nothing: the next activity signal resumes.
        """
        self.last_power_event = event

        if event in (PowerEvent.SUSPEND, PowerEvent.LOCK_SCREEN):
            if not self._sync_mode():
                print(f"  [ACTIVITY] {event.value}: timer keeps running (manual operation)")
                return
            if self.timer.is_running_effective():
                print(f"  [ACTIVITY] {event.value}: pausing timer")
                self.timer.pause()
        else:
            print(f"  [ACTIVITY] {event.value}: waiting for activity before resuming")

    # ---- Periodic work ----

    def _poll(self):
        """Sample pointer position and system idle time."""
        if not self._sync_mode():
            return

        now = self.clock.now()
        kind: Optional[ActivityKind] = None

        if self.pointer_source is not None:
            try:
                position = self.pointer_source.position()
            except ActivitySignalUnavailable as e:
                self._degrade("pointer_source", e)
            else:
                if self._last_position is not None and position != self._last_position:
                    kind = ActivityKind.POINTER
                self._last_position = position

        if kind is None and self.idle_source is not None:
            try:
                idle = self.idle_source.idle_seconds()
            except ActivitySignalUnavailable as e:
                self._degrade("idle_source", e)
            else:
                if idle < KEYBOARD_IDLE_FLOOR_SEC:
                    kind = ActivityKind.KEYBOARD

        if self.pointer_source is None and self.idle_source is None and self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
            print("  [ACTIVITY] All activity sources lost; monitoring power events only")

        if kind is not None:
            self.on_activity(ActivityEvent(kind=kind, timestamp=now))

    def _check_idle(self):
        """Pause a running timer once inactivity reaches the threshold."""
        if not self._sync_mode():
            return

        threshold = self.settings.get().inactivity_threshold_seconds
        idle_seconds = self.get_idle_seconds()

        if idle_seconds >= threshold and self.timer.is_running_effective():
            print(f"  [ACTIVITY] No activity for {idle_seconds:.0f}s (threshold {threshold}s), pausing timer")
            self.auto_pause_count += 1
            self.timer.pause()

    # ---- Internal ----

    def _sync_mode(self) -> bool:
        """
        Follow the live activity_monitoring setting.

        Returns:
            True if activity signals should drive the timer
        """
        enabled = self.settings.get().activity_monitoring
        if not self._monitoring or enabled != self._manual_only:
            return enabled

        if enabled:
            print("  [ACTIVITY] Activity monitoring enabled")
            self._manual_only = False
            # Idle time counts from the moment monitoring was switched on
            self._set_last_activity(self.clock.now())
            self._enable_sampling()
        else:
            print("  [ACTIVITY] Activity monitoring disabled (manual operation only)")
            self._manual_only = True
            self._disable_sampling()
        return enabled

    def _enable_sampling(self):
        self._manual_only = False
        self._last_position = None
        self._open_sources()

        if self.pointer_source is not None or self.idle_source is not None:
            self._poll_task = self.clock.call_every(
                POINTER_POLL_INTERVAL_SEC, self._poll, name="activity-poll"
            )
        else:
            print("  [ACTIVITY] No activity source available; monitoring power events only")

    def _disable_sampling(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

        for source in (self.pointer_source, self.idle_source):
            if source is not None:
                source.close()

    def _open_sources(self):
        for attr in ("pointer_source", "idle_source"):
            source = getattr(self, attr)
            if source is None:
                continue
            try:
                source.open()
            except ActivitySignalUnavailable as e:
                self._degrade(attr, e)

    def _degrade(self, attr: str, error: ActivitySignalUnavailable):
        """Drop a source and log it once."""
        source = getattr(self, attr)
        if source is not None:
            source.close()
        setattr(self, attr, None)

        if error.source in self._degraded:
            return
        self._degraded[error.source] = error.reason
        print(f"  [ACTIVITY] WARNING: {error}; continuing without it")
        if self.event_logger:
            self.event_logger.log_degraded(error.source, error.reason)

    def _set_last_activity(self, timestamp: float):
        self.last_activity = timestamp
        self.timer.set_last_activity(timestamp)

    # ---- Diagnostics ----

    def get_idle_seconds(self) -> float:
        """Seconds since the last activity signal."""
        return max(0.0, self.clock.now() - self.last_activity)

    def get_status(self) -> Dict[str, Any]:
        """
        Get scheduler status for diagnostics.

        Returns:
            Dictionary with monitoring mode, idle time and degraded sources
        """
        return {
            "monitoring": self._monitoring,
            "manual_only": self._manual_only,
            "idle_seconds": self.get_idle_seconds(),
            "inactivity_threshold_seconds": self.settings.get().inactivity_threshold_seconds,
            "degraded_sources": dict(self._degraded),
            "activity_count": self.activity_count,
            "auto_pause_count": self.auto_pause_count,
            "last_power_event": self.last_power_event.value if self.last_power_event else None
        }
