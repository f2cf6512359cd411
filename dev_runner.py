#!/usr/bin/env python3
"""
AutoTimer Development Runner
Runs the timer, activity monitoring and notification escalation, and prints
status every few seconds for manual verification.

Usage:
    python dev_runner.py [--duration MIN] [--interval SEC] [--no-activity] [--dry-run] [--start]
"""

import argparse
import signal
import sys
import threading
import time

from autotimer import (
    ThreadedClock,
    SettingsStore,
    ConfigurationError,
    TimerEngine,
    ActivityScheduler,
    PointerPositionSource,
    SystemIdleSource,
    SleepDetector,
    NotificationEngine,
    NotificationEscalator,
    EventLogger,
    StatusBus,
    CommandBus,
    create_snapshot,
)


def format_status_line(timer, scheduler, escalator) -> str:
    """Format a single line of status output."""
    line = (
        f"[{timer.get_phase().value.upper()}] "
        f"Remaining: {timer.get_formatted_remaining_time()} | "
        f"Idle: {scheduler.get_idle_seconds():5.1f}s | "
        f"Sessions: {timer.sessions_completed}"
    )
    if timer.has_pending_restart():
        line += " | Restart pending"
    if escalator.is_escalating():
        line += " | Escalating"
    return line


def print_diagnostics(scheduler, escalator):
    """Print activity and escalation diagnostics."""
    activity = scheduler.get_status()
    escalation = escalator.get_status()

    print(f"  Activity: monitoring={activity['monitoring']} manual_only={activity['manual_only']} "
          f"signals={activity['activity_count']} auto_pauses={activity['auto_pause_count']}")
    if activity["degraded_sources"]:
        for source, reason in activity["degraded_sources"].items():
            print(f"  Degraded: {source} ({reason})")
    print(f"  Escalation: delivered={escalation['delivered']} failures={escalation['failures']}")


def main():
    parser = argparse.ArgumentParser(description="AutoTimer Dev Runner")
    parser.add_argument("--duration", type=int, help="Session length in minutes (saved to settings)")
    parser.add_argument("--interval", type=float, default=5.0, help="Print interval in seconds (default: 5.0)")
    parser.add_argument("--no-activity", action="store_true", help="Manual operation only (no activity monitoring)")
    parser.add_argument("--dry-run", action="store_true", help="Print notifications instead of delivering them")
    parser.add_argument("--diagnostics", action="store_true", help="Show detailed diagnostics every interval")
    parser.add_argument("--start", action="store_true", help="Start a session immediately")
    args = parser.parse_args()

    settings = SettingsStore()
    try:
        changes = {}
        if args.duration is not None:
            changes["duration"] = args.duration
        if args.no_activity:
            changes["activity_monitoring"] = False
        if changes:
            settings.update(**changes)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    current = settings.get()

    print("=" * 80)
    print("AutoTimer - Dev Runner")
    print("=" * 80)
    print(f"Duration: {current.duration} min")
    print(f"Inactivity threshold: {current.inactivity_threshold_seconds}s")
    print(f"Activity monitoring: {'enabled' if current.activity_monitoring else 'disabled (manual only)'}")
    print(f"Auto start: {'enabled' if current.auto_start else 'disabled'}")
    print(f"Auto restart: {'enabled' if current.auto_restart_enabled else 'disabled'}")
    print(f"Channels: push={current.push_notification_enabled} sound={current.sound_enabled} "
          f"flash={current.flash_enabled}")
    if args.dry_run:
        print("Mode: DRY RUN (no actual notifications)")
    print(f"Print interval: {args.interval}s")
    print()
    print("Press Ctrl+C to stop")
    print("=" * 80)
    print()

    clock = ThreadedClock()
    event_logger = EventLogger()

    notifier = NotificationEngine(dry_run=args.dry_run)
    escalator = NotificationEscalator(clock, notifier, settings, event_logger=event_logger)
    timer = TimerEngine(clock, settings, sinks=[escalator], event_logger=event_logger)
    scheduler = ActivityScheduler(
        clock,
        timer,
        settings,
        pointer_source=PointerPositionSource(),
        idle_source=SystemIdleSource(),
        event_logger=event_logger
    )
    sleep_detector = SleepDetector(clock, scheduler.on_power_event)

    # Initialize status bus for UI IPC
    status_bus = StatusBus(clock)
    status_bus.set_snapshot_provider(lambda: create_snapshot(timer, scheduler, escalator))
    timer.add_sink(status_bus)

    command_bus = CommandBus(clock, event_logger=event_logger)
    command_bus.bind(timer, escalator)

    stopped = threading.Event()

    def startup():
        scheduler.start()
        sleep_detector.start()
        status_bus.start()
        command_bus.start()
        if args.start:
            timer.start()
        else:
            timer.reset()

    def report():
        print(format_status_line(timer, scheduler, escalator))
        if args.diagnostics:
            print_diagnostics(scheduler, escalator)

    def shutdown():
        # Order matters: no late tick or step may fire after this returns
        command_bus.stop()
        sleep_detector.stop()
        scheduler.stop()
        escalator.cancel()
        timer.stop()
        status_bus.publish()
        status_bus.stop()
        stopped.set()

    def handle_sigterm(signum, frame):
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, handle_sigterm)

    try:
        clock.start()
        clock.submit(startup, name="startup")
        clock.call_every(args.interval, report, name="status-report")
        print("Timer running...")
        print()

        while True:
            time.sleep(0.5)

    except KeyboardInterrupt:
        print()
        print("=" * 80)
        print("Stopping timer...")

        clock.submit(shutdown, name="shutdown")
        if not stopped.wait(timeout=3.0):
            print("WARNING: Clock did not drain in time")
        clock.stop()

        print()
        print("Final Statistics:")
        print(f"  Sessions completed: {timer.sessions_completed}")
        print(f"  Activity signals: {scheduler.activity_count}")
        print(f"  Auto pauses: {scheduler.auto_pause_count}")
        print(f"  Escalations: {escalator.escalations_started}")
        print()
        print("Timer stopped cleanly.")
        print("=" * 80)

        sys.exit(0)

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        clock.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()
