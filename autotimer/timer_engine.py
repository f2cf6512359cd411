"""
Countdown timer engine.

Implements states: IDLE, RUNNING, PAUSED
Elapsed time is always now - start_time; resume() shifts start_time forward
by the pause length, so paused time never counts against the countdown and
missed ticks (system sleep) cannot cause drift.
"""

import math
from typing import Optional, List

from .clock import Clock, ScheduledTask
from .event_logger import EventLogger
from .timer_events import TimerState, TimerPhase, TimerEventSink, format_remaining


TICK_INTERVAL_SEC = 1.0

# Grace period between a completion and an automatic new session, so the
# completion alert is noticed before a new session silently begins.
AUTO_RESTART_DELAY_SEC = 5.0


class TimerEngine:
    """
    Countdown state machine.

    Transitions:
    - IDLE -> RUNNING: start()
    - RUNNING -> PAUSED: pause()
    - PAUSED -> RUNNING: resume()
    - RUNNING -> IDLE: stop(), or the tick that reaches zero
    - PAUSED -> IDLE: stop()

    Commands issued in a state where they have no effect are ignored.
    All methods must be called on the clock's timeline.
    """

    def __init__(
        self,
        clock: Clock,
        settings,
        sinks: Optional[List[TimerEventSink]] = None,
        event_logger: Optional[EventLogger] = None
    ):
        """
        Initialize timer engine.

        Args:
            clock: Time source and scheduler
            settings: Settings provider (anything with get() -> TimerSettings)
            sinks: Receivers of StateChanged / Completed events
            event_logger: Optional JSONL audit log
        """
        self.clock = clock
        self.settings = settings
        self.sinks: List[TimerEventSink] = list(sinks or [])
        self.event_logger = event_logger

        self.state = TimerState()

        self._tick_task: Optional[ScheduledTask] = None
        self._restart_task: Optional[ScheduledTask] = None

        self.sessions_completed = 0

    def add_sink(self, sink: TimerEventSink):
        if sink not in self.sinks:
            self.sinks.append(sink)

    def remove_sink(self, sink: TimerEventSink):
        if sink in self.sinks:
            self.sinks.remove(sink)

    # ---- Commands ----

    def start(self):
        """Start a fresh full-duration session (no-op while effectively running)."""
        if self.state.is_running and not self.state.is_paused:
            return

        self._start_session("start")

    def pause(self):
        """Freeze the countdown (no-op unless effectively running)."""
        if not self.state.is_running or self.state.is_paused:
            return

        previous = self.state.phase
        self._cancel_tick()
        self.state.is_paused = True
        self.state.paused_time = self.clock.now()

        print(f"  [TIMER] Paused at {self.state.format_remaining()}")
        self._record_transition(previous, "pause")
        self._emit_state_changed()

    def resume(self):
        """Continue a paused session; the pause length is excluded from elapsed time."""
        if not self.state.is_running or not self.state.is_paused:
            return

        previous = self.state.phase
        now = self.clock.now()
        paused_duration = now - self.state.paused_time
        self.state.start_time += paused_duration
        self.state.paused_time = None
        self.state.is_paused = False
        self._start_tick()

        print(f"  [TIMER] Resumed after {paused_duration:.1f}s pause at {self.state.format_remaining()}")
        self._record_transition(previous, "resume")
        self._emit_state_changed()

    def stop(self):
        """Return to idle unconditionally; cancels the tick and any pending auto-restart."""
        previous = self.state.phase
        changed = self._halt()
        self._emit_reset()

        if changed:
            print("  [TIMER] Stopped")
            self._record_transition(previous, "stop")
            self._emit_state_changed()

    def reset(self):
        """Stop, then show the full configured duration while idle."""
        previous = self.state.phase
        self._halt()
        self.state.remaining_seconds = self.settings.get().duration_seconds

        print(f"  [TIMER] Reset to {self.state.format_remaining()}")
        self._emit_reset()
        self._record_transition(previous, "reset")
        self._emit_state_changed()

    def toggle(self):
        """IDLE -> start, RUNNING -> pause, PAUSED -> resume."""
        if self.state.is_running:
            if self.state.is_paused:
                self.resume()
            else:
                self.pause()
        else:
            self.start()

    def set_last_activity(self, timestamp: float):
        """Mirror the scheduler-owned activity timestamp into published state."""
        self.state.last_activity = timestamp

    # ---- Queries ----

    def is_running_effective(self) -> bool:
        """True iff running and not paused."""
        return self.state.is_running_effective

    def is_paused(self) -> bool:
        return self.state.is_paused

    def is_idle(self) -> bool:
        return not self.state.is_running

    def get_phase(self) -> TimerPhase:
        return self.state.phase

    def get_state(self) -> TimerState:
        """Get a copy of the current state."""
        return self.state.copy()

    def get_remaining_seconds(self) -> int:
        return self.state.remaining_seconds

    def get_formatted_remaining_time(self) -> str:
        """Remaining time as 'MM:SS'."""
        return format_remaining(self.state.remaining_seconds)

    def has_pending_restart(self) -> bool:
        return self._restart_task is not None and self._restart_task.active

    # ---- Internal ----

    def _start_session(self, reason: str):
        previous = self.state.phase
        self._cancel_auto_restart()
        self._cancel_tick()

        settings = self.settings.get()
        self.state = TimerState(
            is_running=True,
            is_paused=False,
            start_time=self.clock.now(),
            paused_time=None,
            remaining_seconds=settings.duration_seconds,
            last_activity=self.state.last_activity
        )
        self._start_tick()

        print(f"  [TIMER] Started: {settings.duration} min")
        self._record_transition(previous, reason)
        self._emit_state_changed()

    def _tick(self):
        """Recompute remaining time from start_time; complete at zero."""
        if not self.state.is_running_effective:
            return

        # Re-read so a duration change applies on the next tick
        settings = self.settings.get()
        elapsed = math.floor(self.clock.now() - self.state.start_time)
        self.state.remaining_seconds = max(0, settings.duration_seconds - elapsed)

        self._emit_state_changed()

        if self.state.remaining_seconds <= 0:
            self._complete(settings)

    def _complete(self, settings):
        self.sessions_completed += 1
        print(f"  [TIMER] Completed ({settings.duration} min session)")

        # Stop ticking before anyone hears about the completion
        self._cancel_tick()
        completed_state = self.state.copy()
        for sink in list(self.sinks):
            self._deliver(sink.on_completed, completed_state)

        previous = self.state.phase
        self._halt()
        self._record_transition(previous, "completed")
        self._emit_state_changed()

        auto_restart = settings.auto_restart_enabled
        if self.event_logger:
            self.event_logger.log_completed(settings.duration, auto_restart)

        if auto_restart:
            print(f"  [TIMER] New session in {AUTO_RESTART_DELAY_SEC:.0f}s")
            self._restart_task = self.clock.call_later(
                AUTO_RESTART_DELAY_SEC, self._auto_restart, name="timer-auto-restart"
            )

    def _auto_restart(self):
        self._restart_task = None
        if self.state.is_running:
            return
        self._start_session("auto_restart")

    def _halt(self) -> bool:
        """Cancel owned tasks and enter the idle shape. Returns True if state changed."""
        self._cancel_tick()
        self._cancel_auto_restart()

        before = self.state.copy()
        self.state.is_running = False
        self.state.is_paused = False
        self.state.start_time = None
        self.state.paused_time = None
        self.state.remaining_seconds = 0
        return before != self.state

    def _start_tick(self):
        self._cancel_tick()
        self._tick_task = self.clock.call_every(TICK_INTERVAL_SEC, self._tick, name="timer-tick")

    def _cancel_tick(self):
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    def _cancel_auto_restart(self):
        if self._restart_task is not None:
            self._restart_task.cancel()
            self._restart_task = None

    def _emit_state_changed(self):
        snapshot = self.state.copy()
        for sink in list(self.sinks):
            self._deliver(sink.on_state_changed, snapshot)

    def _emit_reset(self):
        snapshot = self.state.copy()
        for sink in list(self.sinks):
            self._deliver(sink.on_reset, snapshot)

    def _deliver(self, hook, snapshot: TimerState):
        # A failing observer must never stop the countdown
        try:
            hook(snapshot)
        except Exception as e:
            name = getattr(hook, "__qualname__", repr(hook))
            print(f"  [TIMER] Event sink {name} failed: {e}")

    def _record_transition(self, previous: TimerPhase, reason: str):
        if self.event_logger is None or previous == self.state.phase:
            return
        self.event_logger.log_transition(
            from_state=previous.value,
            to_state=self.state.phase.value,
            reason=reason,
            remaining_seconds=self.state.remaining_seconds
        )
