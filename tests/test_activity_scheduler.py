"""Tests for activity-driven start / pause / resume decisions."""

import pytest

from autotimer import (
    ActivityEvent,
    ActivityKind,
    ActivityScheduler,
    EventLogger,
    PowerEvent,
    SleepDetector,
    StaticSettings,
    TimerEngine,
)
from conftest import FakeIdleSource, FakePointerSource


def pointer_event(clock):
    return ActivityEvent(kind=ActivityKind.POINTER, timestamp=clock.now())


@pytest.fixture
def pause_calls(clock, timer):
    """Record every pause() the scheduler issues."""
    calls = []
    original = timer.pause

    def spy():
        calls.append(clock.now())
        original()

    timer.pause = spy
    return calls


@pytest.fixture
def scheduler(clock, timer, settings):
    return ActivityScheduler(clock, timer, settings)


class TestIdleCheck:
    """Auto-pause after inactivity_threshold_seconds."""

    def test_exactly_one_pause_after_threshold(self, clock, timer, scheduler, pause_calls):
        scheduler.start()
        timer.start()
        clock.advance(31)
        assert pause_calls == [30]
        assert timer.is_paused()

        clock.advance(60)
        assert len(pause_calls) == 1

    def test_activity_pushes_the_pause_back(self, clock, timer, scheduler, pause_calls):
        scheduler.start()
        timer.start()
        clock.advance(20)
        scheduler.on_activity(pointer_event(clock))
        clock.advance(31)
        assert pause_calls == [50]

    def test_no_pause_while_active(self, clock, timer, scheduler):
        scheduler.start()
        timer.start()
        for _ in range(5):
            clock.advance(10)
            scheduler.on_activity(pointer_event(clock))
        assert timer.is_running_effective()

    def test_idle_timer_is_not_paused(self, clock, timer, scheduler, pause_calls):
        scheduler.start()
        clock.advance(60)
        assert timer.is_idle()
        assert pause_calls == []

    def test_threshold_is_read_live(self, clock, settings, timer, scheduler, pause_calls):
        scheduler.start()
        timer.start()
        clock.advance(10)
        settings.update(inactivity_threshold_seconds=15)
        clock.advance(6)
        assert pause_calls == [15]


class TestActivitySignals:
    """Start is governed by auto_start; resume is unconditional."""

    def test_activity_resumes_paused_timer_without_auto_start(self, clock, timer, scheduler):
        scheduler.start()
        timer.start()
        clock.advance(31)
        assert timer.is_paused()

        scheduler.on_activity(pointer_event(clock))
        assert timer.is_running_effective()

    def test_activity_does_not_start_idle_timer_without_auto_start(self, clock, timer, scheduler):
        scheduler.start()
        scheduler.on_activity(pointer_event(clock))
        assert timer.is_idle()

    def test_activity_starts_idle_timer_with_auto_start(self, clock):
        settings = StaticSettings(duration=1, auto_start=True)
        timer = TimerEngine(clock, settings)
        scheduler = ActivityScheduler(clock, timer, settings)
        scheduler.start()
        scheduler.on_activity(pointer_event(clock))
        assert timer.is_running_effective()

    def test_activity_while_running_only_updates_timestamp(self, clock, timer, scheduler):
        scheduler.start()
        timer.start()
        clock.advance(7)
        scheduler.on_activity(pointer_event(clock))
        assert timer.get_remaining_seconds() == 53
        assert scheduler.last_activity == 7
        assert timer.get_state().last_activity == 7

    def test_start_records_last_activity(self, clock, timer, scheduler):
        clock.advance(3)
        scheduler.start()
        assert scheduler.last_activity == 3
        assert scheduler.get_idle_seconds() == 0


class TestPowerEvents:
    """Sleep and lock pause; wake and unlock wait for activity."""

    @pytest.mark.parametrize("event", [PowerEvent.SUSPEND, PowerEvent.LOCK_SCREEN])
    def test_suspend_and_lock_pause(self, clock, timer, scheduler, event):
        scheduler.start()
        timer.start()
        clock.advance(5)
        scheduler.on_power_event(event)
        assert timer.is_paused()

    @pytest.mark.parametrize("event", [PowerEvent.RESUME, PowerEvent.UNLOCK_SCREEN])
    def test_wake_does_not_resume(self, clock, timer, scheduler, event):
        scheduler.start()
        timer.start()
        scheduler.on_power_event(PowerEvent.SUSPEND)
        scheduler.on_power_event(event)
        assert timer.is_paused()

        scheduler.on_activity(pointer_event(clock))
        assert timer.is_running_effective()

    def test_suspend_while_idle_is_ignored(self, timer, scheduler):
        scheduler.start()
        scheduler.on_power_event(PowerEvent.SUSPEND)
        assert timer.is_idle()

    def test_sleep_detector_reports_wall_clock_jump(self, clock, timer, scheduler):
        wall = {"t": 1000.0}
        detector = SleepDetector(clock, scheduler.on_power_event, check_interval_sec=2.0,
                                 wall_time=lambda: wall["t"])
        scheduler.start()
        timer.start()
        detector.start()

        wall["t"] += 2.0
        clock.advance(2)
        assert timer.is_running_effective()

        wall["t"] += 3602.0
        clock.advance(2)
        assert timer.is_paused()
        assert scheduler.last_power_event is PowerEvent.RESUME

        detector.stop()


class TestSources:
    """Pointer and system-idle polling."""

    def test_pointer_movement_is_activity(self, clock):
        settings = StaticSettings(duration=1, auto_start=True)
        timer = TimerEngine(clock, settings)
        pointer = FakePointerSource()
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=pointer)
        scheduler.start()

        clock.advance(0.5)
        assert timer.is_idle()

        pointer.move()
        clock.advance(0.5)
        assert timer.is_running_effective()

    def test_recent_input_counts_as_keyboard_activity(self, clock):
        settings = StaticSettings(duration=1, auto_start=True)
        timer = TimerEngine(clock, settings)
        scheduler = ActivityScheduler(clock, timer, settings, idle_source=FakeIdleSource(idle=0.2))
        scheduler.start()
        clock.advance(0.5)
        assert timer.is_running_effective()

    def test_old_input_is_not_activity(self, clock):
        settings = StaticSettings(duration=1, auto_start=True)
        timer = TimerEngine(clock, settings)
        scheduler = ActivityScheduler(clock, timer, settings, idle_source=FakeIdleSource(idle=100.0))
        scheduler.start()
        clock.advance(2)
        assert timer.is_idle()

    def test_typing_keeps_timer_running(self, clock, timer, settings):
        scheduler = ActivityScheduler(clock, timer, settings, idle_source=FakeIdleSource(idle=0.2))
        scheduler.start()
        timer.start()
        clock.advance(45)
        assert timer.is_running_effective()

    def test_stop_cancels_both_tasks(self, clock, timer, settings):
        pointer = FakePointerSource()
        idle = FakeIdleSource()
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=pointer, idle_source=idle)
        scheduler.start()
        assert clock.pending_count() == 2

        scheduler.stop()
        assert clock.pending_count() == 0
        assert pointer.closed and idle.closed
        assert not scheduler.is_monitoring()

    def test_start_twice_schedules_once(self, clock, timer, settings):
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=FakePointerSource())
        scheduler.start()
        scheduler.start()
        assert clock.pending_count() == 2


class TestDegradation:
    """Unavailable sources are dropped; the timer keeps working."""

    def test_source_failing_on_open_is_dropped(self, clock, timer, settings, pause_calls):
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=FakePointerSource(fail_on_open=True))
        scheduler.start()
        assert scheduler.is_degraded()
        assert scheduler.get_status()["degraded_sources"] == {"pointer": "permission denied"}

        # Idle check and power events still work
        timer.start()
        clock.advance(31)
        assert pause_calls == [30]

    def test_source_failing_mid_session_is_logged_once(self, clock, timer, settings, tmp_path):
        logger = EventLogger(str(tmp_path / "events.jsonl"))
        pointer = FakePointerSource()
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=pointer, event_logger=logger)
        scheduler.start()
        timer.start()

        clock.advance(0.5)
        pointer.fail_on_read = True
        clock.advance(10)

        degraded = [e for e in logger.get_recent_events() if e["event_type"] == "activity_degraded"]
        assert len(degraded) == 1
        assert scheduler.pointer_source is None
        # Only the idle check and the timer tick remain
        assert clock.pending_count() == 2

    def test_power_events_work_when_degraded(self, clock, timer, settings):
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=FakePointerSource(fail_on_open=True))
        scheduler.start()
        timer.start()
        scheduler.on_power_event(PowerEvent.LOCK_SCREEN)
        assert timer.is_paused()


class TestManualOnly:
    """activity_monitoring=False disables every automatic decision."""

    @pytest.fixture
    def manual(self, clock):
        settings = StaticSettings(duration=1, activity_monitoring=False, auto_start=True)
        timer = TimerEngine(clock, settings)
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=FakePointerSource())
        return timer, scheduler, settings

    def test_no_sampling_and_no_auto_pause(self, clock, manual):
        timer, scheduler, _ = manual
        scheduler.start()
        assert scheduler.is_manual_only()
        # Only the idle check remains, watching for the setting to change
        assert clock.pending_count() == 1

        timer.start()
        clock.advance(45)
        assert timer.is_running_effective()

    def test_signals_are_ignored(self, clock, manual):
        timer, scheduler, _ = manual
        scheduler.start()
        scheduler.on_activity(pointer_event(clock))
        assert timer.is_idle()

        timer.start()
        scheduler.on_power_event(PowerEvent.SUSPEND)
        assert timer.is_running_effective()
    def test_enabling_mid_session_starts_auto_pause(self, clock, manual):
        timer, scheduler, settings = manual
        scheduler.start()
        timer.start()

        settings.update(activity_monitoring=True)
        clock.advance(40)

        assert not scheduler.is_manual_only()
        assert timer.is_paused()
        assert scheduler.auto_pause_count == 1

    def test_enabling_mid_session_starts_polling(self, clock, manual):
        timer, scheduler, settings = manual
        scheduler.start()
        timer.start()
        timer.pause()

        settings.update(activity_monitoring=True)
        clock.advance(5.5)
        scheduler.pointer_source.move()
        clock.advance(0.5)
        assert timer.is_running_effective()

    def test_disabling_mid_session_stops_sampling(self, clock, timer, settings):
        pointer = FakePointerSource()
        scheduler = ActivityScheduler(clock, timer, settings, pointer_source=pointer)
        scheduler.start()
        timer.start()
        clock.advance(10)

        settings.update(activity_monitoring=False)
        scheduler.on_power_event(PowerEvent.SUSPEND)
        assert scheduler.is_manual_only()
        assert timer.is_running_effective()
        assert pointer.closed

        clock.advance(40)
        assert timer.is_running_effective()
