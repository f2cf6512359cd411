#!/usr/bin/env python3
"""
Simulate a timer session on a manual clock and print the timeline.

Nothing is delivered: notifications, sounds and attention requests are
printed with their simulated timestamps.

Usage:
    python simulate_session.py --duration 1
    python simulate_session.py --duration 1 --idle-at 20 --return-at 70
    python simulate_session.py --duration 1 --auto-start --sleep-at 30
"""

import argparse

from autotimer import (
    ManualClock,
    StaticSettings,
    TimerEngine,
    TimerEventSink,
    ActivityScheduler,
    ActivityEvent,
    ActivityKind,
    PowerEvent,
    NotificationEscalator,
)


class TimelineNotifier:
    """Notification collaborator that prints instead of delivering."""

    def __init__(self, clock):
        self.clock = clock

    def _print(self, text: str):
        print(f"  t={self.clock.now():6.1f}s  {text}")

    def post(self, request):
        self._print(f"PUSH [{request.urgency.value}] {request.title}")
        return True

    def play_sound(self, path, volume, tones):
        self._print(f"SOUND x{tones} (volume {volume})")
        return True

    def beep(self):
        self._print("BEEP")

    def request_attention(self, title: str = ""):
        self._print(f"ATTENTION {title}")
        return True


class TimelinePrinter(TimerEventSink):
    """Prints phase changes (not every tick)."""

    def __init__(self, clock):
        self.clock = clock
        self._last_phase = None

    def on_state_changed(self, state):
        if state.phase != self._last_phase:
            print(f"  t={self.clock.now():6.1f}s  {state.phase.value.upper():8s} remaining {state.format_remaining()}")
            self._last_phase = state.phase

    def on_completed(self, state):
        print(f"  t={self.clock.now():6.1f}s  COMPLETED")


def simulate(
    duration: int = 1,
    threshold: int = 30,
    idle_at: float = None,
    return_at: float = None,
    sleep_at: float = None,
    auto_start: bool = False,
    acknowledge_at: float = None,
    total: float = 90.0
):
    """
    Run one simulated session.

    Args:
        duration: Session length in minutes
        threshold: Inactivity threshold in seconds
        idle_at: Simulated time the user stops producing activity
        return_at: Simulated time activity starts again
        sleep_at: Simulated time of a system suspend
        auto_start: Start on activity and restart after completion
        acknowledge_at: Simulated time the user opens the window
        total: Simulated seconds to run
    """
    clock = ManualClock()
    settings = StaticSettings(
        duration=duration,
        inactivity_threshold_seconds=threshold,
        auto_start=auto_start
    )
    notifier = TimelineNotifier(clock)
    escalator = NotificationEscalator(clock, notifier, settings)
    timer = TimerEngine(clock, settings, sinks=[TimelinePrinter(clock), escalator])
    scheduler = ActivityScheduler(clock, timer, settings)

    print("=" * 80)
    print(f"Simulating {duration} min session, threshold {threshold}s, auto start {'on' if auto_start else 'off'}")
    print("=" * 80)

    scheduler.start()
    timer.start()

    step = 0.5
    t = 0.0
    while t < total:
        clock.advance(step)
        t = clock.now()

        active = idle_at is None or t < idle_at or (return_at is not None and t >= return_at)
        if active:
            scheduler.on_activity(ActivityEvent(kind=ActivityKind.POINTER, timestamp=t))

        if sleep_at is not None and sleep_at <= t < sleep_at + step:
            scheduler.on_power_event(PowerEvent.SUSPEND)
        if acknowledge_at is not None and acknowledge_at <= t < acknowledge_at + step:
            escalator.acknowledge()

    scheduler.stop()
    timer.stop()

    print()
    print(f"Sessions completed: {timer.sessions_completed}")
    print(f"Auto pauses: {scheduler.auto_pause_count}")
    print(f"Escalation: {escalator.get_status()['delivered']}")


def main():
    parser = argparse.ArgumentParser(description="Simulate an AutoTimer session")
    parser.add_argument("--duration", type=int, default=1, help="Session length in minutes (default: 1)")
    parser.add_argument("--threshold", type=int, default=30, help="Inactivity threshold in seconds (default: 30)")
    parser.add_argument("--idle-at", type=float, help="Stop activity at this simulated second")
    parser.add_argument("--return-at", type=float, help="Resume activity at this simulated second")
    parser.add_argument("--sleep-at", type=float, help="Simulate a system suspend at this second")
    parser.add_argument("--acknowledge-at", type=float, help="Acknowledge the completion at this second")
    parser.add_argument("--auto-start", action="store_true", help="Enable auto start and auto restart")
    parser.add_argument("--total", type=float, default=90.0, help="Simulated seconds to run (default: 90)")
    args = parser.parse_args()

    simulate(
        duration=args.duration,
        threshold=args.threshold,
        idle_at=args.idle_at,
        return_at=args.return_at,
        sleep_at=args.sleep_at,
        auto_start=args.auto_start,
        acknowledge_at=args.acknowledge_at,
        total=args.total
    )


if __name__ == "__main__":
    main()
