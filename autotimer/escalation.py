"""
Escalating completion alerts.

A single notification is easy to miss, so one completion produces a short,
time-spaced sequence of alerts on up to three independent channels:

    push:       +0s normal, +2s escalated, +5s critical
    sound:      a burst of tones at +0s, +1s, +2s, +4s
    attention:  +0s, +1.5s, +3s

The +0s steps run synchronously inside on_completed(); later steps are
one-shot clock tasks owned by the escalator. Channel enable flags are read
from live settings when each step fires.
"""

from typing import Optional, List, Dict, Any, Callable

from .clock import Clock, ScheduledTask
from .errors import ChannelUnavailable
from .event_logger import EventLogger
from .notifications import NotificationRequest, Urgency
from .timer_events import TimerEventSink, TimerState


PUSH_OFFSETS = (0.0, 2.0, 5.0)
PUSH_URGENCIES = (Urgency.NORMAL, Urgency.ESCALATED, Urgency.CRITICAL)
SOUND_OFFSETS = (0.0, 1.0, 2.0, 4.0)
ATTENTION_OFFSETS = (0.0, 1.5, 3.0)

SOUND_BURST_TONES = 3

PUSH = "push"
SOUND = "sound"
ATTENTION = "attention"


class NotificationEscalator(TimerEventSink):
    """
    Turns one Completed event into an escalating alert sequence.

    Channels are independent: a failure on one step is logged and never
    affects other channels or later steps. acknowledge() suppresses every
    step after +0s; cancel() (also run on the engine's reset hook) drops
    whatever is still pending.
    """

    def __init__(
        self,
        clock: Clock,
        notifier,
        settings,
        event_logger: Optional[EventLogger] = None
    ):
        """
        Initialize escalator.

        Args:
            clock: Time source and scheduler (same timeline as the timer)
            notifier: Notification collaborator (post / play_sound / beep / request_attention)
            settings: Settings provider (anything with get() -> TimerSettings)
            event_logger: Optional JSONL audit log
        """
        self.clock = clock
        self.notifier = notifier
        self.settings = settings
        self.event_logger = event_logger

        self._tasks: List[ScheduledTask] = []
        self._acknowledged = False
        self._completed_at: Optional[float] = None
        self._completed_duration: Optional[int] = None

        # Diagnostics
        self.escalations_started = 0
        self.delivered: Dict[str, int] = {PUSH: 0, SOUND: 0, ATTENTION: 0}
        self.failures: Dict[str, int] = {PUSH: 0, SOUND: 0, ATTENTION: 0}

    # ---- TimerEventSink ----

    def on_completed(self, state: TimerState):
        """Start a new escalation; any previous one is cancelled first."""
        self.cancel()
        self._acknowledged = False
        self._completed_at = self.clock.now()
        self._completed_duration = self.settings.get().duration
        self.escalations_started += 1

        print(f"  [ESCALATION] Session complete, escalating over {max(PUSH_OFFSETS):.0f}s")

        steps: List[tuple] = []
        for step, offset in enumerate(PUSH_OFFSETS):
            steps.append((offset, self._make_step(self._push_step, step, offset)))
        for step, offset in enumerate(SOUND_OFFSETS):
            steps.append((offset, self._make_step(self._sound_step, step, offset)))
        for step, offset in enumerate(ATTENTION_OFFSETS):
            steps.append((offset, self._make_step(self._attention_step, step, offset)))

        for offset, run in steps:
            if offset <= 0:
                run()
            else:
                self._tasks.append(self.clock.call_later(offset, run, name=f"escalation+{offset:g}s"))

    def on_state_changed(self, state: TimerState):
        # A session started after the completion supersedes its alerts
        if (self._tasks and state.is_running and self._completed_at is not None
                and state.start_time >= self._completed_at):
            self.cancel()

    def on_reset(self, state: TimerState):
        self.cancel()

    # ---- Commands ----

    def acknowledge(self):
        """Mark the current completion as seen; remaining steps are skipped."""
        if self._completed_at is None or self._acknowledged:
            return
        self._acknowledged = True
        print("  [ESCALATION] Acknowledged")

    def cancel(self):
        """Cancel every pending escalation step."""
        pending = [task for task in self._tasks if task.active]
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        if pending:
            print(f"  [ESCALATION] Cancelled {len(pending)} pending step(s)")

    def test_notification(self):
        """One push plus one sound burst, no escalation; lets the user check channels."""
        settings = self.settings.get()
        print("  [ESCALATION] Test notification")

        self._guard(PUSH, 0, 0.0, lambda: self.notifier.post(NotificationRequest(
            title="Test notification",
            body="Notifications are working. This is what a completed session looks like.",
            urgency=Urgency.NORMAL,
        )))

        if settings.sound_enabled:
            self._play_burst(settings, 0, 0.0)

    # ---- Queries ----

    def is_escalating(self) -> bool:
        """True while steps remain to fire."""
        return any(task.active for task in self._tasks)

    def is_acknowledged(self) -> bool:
        return self._acknowledged

    def get_status(self) -> Dict[str, Any]:
        """
        Get escalation status for diagnostics.

        Returns:
            Dictionary with pending steps, acknowledgement and channel counters
        """
        return {
            "escalating": self.is_escalating(),
            "acknowledged": self._acknowledged,
            "pending_steps": sum(1 for task in self._tasks if task.active),
            "completed_at": self._completed_at,
            "escalations_started": self.escalations_started,
            "delivered": dict(self.delivered),
            "failures": dict(self.failures)
        }

    # ---- Steps ----

    def _make_step(self, handler: Callable[[int, float], None], step: int, offset: float) -> Callable[[], None]:
        def run():
            if step > 0 and self._acknowledged:
                return
            handler(step, offset)
        return run

    def _push_step(self, step: int, offset: float):
        settings = self.settings.get()
        if not settings.push_notification_enabled:
            return

        request = self._completion_request(step)
        self._guard(PUSH, step, offset, lambda: self.notifier.post(request), detail=request.urgency.value)

    def _sound_step(self, step: int, offset: float):
        settings = self.settings.get()
        if not settings.sound_enabled:
            return
        self._play_burst(settings, step, offset)

    def _attention_step(self, step: int, offset: float):
        settings = self.settings.get()
        if not settings.flash_enabled:
            return
        self._guard(ATTENTION, step, offset, lambda: self.notifier.request_attention("Timer complete"))

    def _play_burst(self, settings, step: int, offset: float):
        ok = self._guard(SOUND, step, offset, lambda: self.notifier.play_sound(
            settings.custom_sound_path,
            settings.sound_volume,
            SOUND_BURST_TONES,
        ), detail=f"{SOUND_BURST_TONES} tones")
        if not ok:
            self._guard("beep", step, offset, self.notifier.beep)

    def _completion_request(self, step: int) -> NotificationRequest:
        duration = self._completed_duration or self.settings.get().duration
        urgency = PUSH_URGENCIES[min(step, len(PUSH_URGENCIES) - 1)]

        if urgency is Urgency.CRITICAL:
            title = "Important: timer complete"
            body = f"Your {duration} min session ended. Please take a break now."
        elif urgency is Urgency.ESCALATED:
            title = "Timer complete (reminder)"
            body = f"Your {duration} min session has ended. Time to step away."
        else:
            title = "Timer complete"
            body = f"Your {duration} min session is done. Take a break!"

        return NotificationRequest(title=title, body=body, urgency=urgency)

    def _guard(self, channel: str, step: int, offset: float, deliver: Callable[[], Any], detail: str = "") -> bool:
        """Run one channel call; log instead of raising. Returns True on success."""
        try:
            deliver()
        except ChannelUnavailable as e:
            self._record_failure(channel, str(e), unavailable=True)
            return False
        except Exception as e:
            self._record_failure(channel, f"{type(e).__name__}: {e}", unavailable=False)
            return False

        if channel in self.delivered:
            self.delivered[channel] += 1
        if self.event_logger:
            self.event_logger.log_escalation_step(channel, step + 1, offset, detail)
        return True

    def _record_failure(self, channel: str, error: str, unavailable: bool):
        if channel in self.failures:
            self.failures[channel] += 1
        print(f"  [ESCALATION] {channel} channel {'unavailable' if unavailable else 'failed'}: {error}")
        if self.event_logger:
            self.event_logger.log_channel_failure(channel, error, unavailable)
