"""Tests for the countdown state machine and its pause/resume arithmetic."""

from types import SimpleNamespace

import pytest

from autotimer import EventLogger, StaticSettings, TimerEngine, TimerPhase, format_remaining
from autotimer.timer_engine import AUTO_RESTART_DELAY_SEC

from conftest import RecordingSink


class TestCountdown:
    """Ticking and completion."""

    def test_start_sets_full_duration(self, timer):
        timer.start()
        assert timer.get_phase() is TimerPhase.RUNNING
        assert timer.get_remaining_seconds() == 60
        assert timer.get_formatted_remaining_time() == "01:00"

    def test_tick_recomputes_from_start_time(self, clock, timer):
        timer.start()
        clock.advance(10)
        assert timer.get_remaining_seconds() == 50

    def test_one_minute_session_completes_once_at_sixty_seconds(self, clock, timer, sink):
        timer.start()
        clock.advance(59)
        assert timer.get_remaining_seconds() == 1
        assert sink.completed == []

        clock.advance(1)
        assert len(sink.completed) == 1
        assert sink.completed[0].remaining_seconds == 0
        assert timer.is_idle()

        clock.advance(300)
        assert len(sink.completed) == 1
        assert timer.sessions_completed == 1

    def test_completed_event_carries_zero_before_idle(self, clock, timer, sink):
        timer.start()
        clock.advance(60)
        zero_states = [s for s in sink.states if s.is_running and s.remaining_seconds == 0]
        assert len(zero_states) == 1

    def test_no_restart_without_auto_start(self, clock, timer):
        timer.start()
        clock.advance(60 + AUTO_RESTART_DELAY_SEC + 10)
        assert timer.is_idle()
        assert not timer.has_pending_restart()

    def test_auto_restart_after_grace_delay(self, clock, sink):
        settings = StaticSettings(duration=1, auto_start=True)
        timer = TimerEngine(clock, settings, sinks=[sink])
        timer.start()

        clock.advance(60)
        assert timer.is_idle()
        assert timer.has_pending_restart()

        clock.advance(4.9)
        assert timer.is_idle()

        clock.advance(0.1)
        assert clock.now() == pytest.approx(65)
        assert timer.is_running_effective()
        assert timer.get_remaining_seconds() == 60
        assert len(sink.completed) == 1

    def test_auto_restart_can_be_disabled_separately(self, clock):
        settings = StaticSettings(duration=1, auto_start=True, auto_restart=False)
        timer = TimerEngine(clock, settings)
        timer.start()
        clock.advance(70)
        assert timer.is_idle()

    def test_duration_change_applies_on_next_tick(self, clock, settings, timer):
        timer.start()
        clock.advance(10)
        settings.update(duration=2)
        clock.advance(1)
        assert timer.get_remaining_seconds() == 120 - 11

    def test_failing_sink_does_not_stop_countdown(self, clock, settings, sink):
        class Exploding(RecordingSink):
            def on_state_changed(self, state):
                raise RuntimeError("boom")

        timer = TimerEngine(clock, settings, sinks=[Exploding(), sink])
        timer.start()
        clock.advance(60)
        assert len(sink.completed) == 1

    def test_failing_plain_function_hook_is_contained(self, clock, settings, sink, capsys):
        def explode(state):
            raise RuntimeError("boom")

        plain = SimpleNamespace(on_state_changed=explode, on_completed=explode, on_reset=explode)
        timer = TimerEngine(clock, settings, sinks=[plain, sink])
        timer.start()
        clock.advance(60)
        timer.stop()

        assert len(sink.completed) == 1
        assert "Event sink" in capsys.readouterr().out


class TestPauseResume:
    """Paused time never counts against the countdown."""

    def test_pause_freezes_remaining(self, clock, timer):
        timer.start()
        clock.advance(10)
        timer.pause()
        clock.advance(100)
        assert timer.get_remaining_seconds() == 50
        assert timer.is_paused()

    @pytest.mark.parametrize("pause_length", [1, 7.5, 45, 3600])
    def test_resume_excludes_pause_length(self, clock, timer, pause_length):
        timer.start()
        clock.advance(10)
        at_pause = timer.get_remaining_seconds()
        timer.pause()

        clock.advance(pause_length)
        timer.resume()
        assert timer.get_remaining_seconds() == at_pause

        clock.advance(1)
        assert timer.get_remaining_seconds() == at_pause - 1

    def test_resume_with_fractional_pause(self, clock, timer):
        timer.start()
        clock.advance(10.5)
        timer.pause()
        clock.advance(10)
        timer.resume()
        clock.advance(1)
        assert timer.get_remaining_seconds() == 49

    def test_several_pause_pairs(self, clock, timer):
        timer.start()
        for _ in range(3):
            clock.advance(5)
            timer.pause()
            clock.advance(20)
            timer.resume()
        clock.advance(5)
        assert timer.get_remaining_seconds() == 40

    def test_pause_cancels_tick(self, clock, timer):
        timer.start()
        timer.pause()
        assert clock.pending_count() == 0

    def test_session_completes_after_pause(self, clock, timer, sink):
        timer.start()
        clock.advance(30)
        timer.pause()
        clock.advance(30)
        timer.resume()
        clock.advance(29)
        assert sink.completed == []
        clock.advance(1)
        assert len(sink.completed) == 1
        assert clock.now() == 90


class TestCommands:
    """stop / reset / toggle and idempotence."""

    def test_stop_then_start_gives_full_duration(self, clock, settings, timer):
        timer.start()
        clock.advance(20)
        timer.stop()
        settings.update(duration=3)
        timer.start()
        assert timer.get_remaining_seconds() == 180

    def test_stop_cancels_tick(self, clock, timer, sink):
        timer.start()
        timer.stop()
        count = len(sink.states)
        clock.advance(120)
        assert len(sink.states) == count
        assert clock.pending_count() == 0

    def test_stop_cancels_pending_auto_restart(self, clock):
        timer = TimerEngine(clock, StaticSettings(duration=1, auto_start=True))
        timer.start()
        clock.advance(62)
        timer.stop()
        clock.advance(10)
        assert timer.is_idle()

    def test_reset_while_idle_shows_full_duration(self, timer):
        timer.reset()
        assert timer.get_remaining_seconds() == 60
        assert not timer.get_state().is_running

    def test_reset_while_running_stops(self, clock, timer):
        timer.start()
        clock.advance(10)
        timer.reset()
        assert timer.is_idle()
        assert timer.get_remaining_seconds() == 60
        clock.advance(10)
        assert timer.get_remaining_seconds() == 60

    def test_stop_and_reset_fire_reset_hook(self, timer, sink):
        timer.start()
        timer.stop()
        timer.reset()
        assert len(sink.resets) == 2

    def test_toggle_cycle(self, timer):
        phases = []
        for _ in range(5):
            timer.toggle()
            phases.append(timer.get_phase())
        assert phases == [
            TimerPhase.RUNNING,
            TimerPhase.PAUSED,
            TimerPhase.RUNNING,
            TimerPhase.PAUSED,
            TimerPhase.RUNNING,
        ]

    def test_start_while_paused_starts_fresh_session(self, clock, timer):
        timer.start()
        clock.advance(20)
        timer.pause()
        timer.start()
        assert timer.is_running_effective()
        assert timer.get_remaining_seconds() == 60

    def test_start_while_running_is_noop(self, clock, timer):
        timer.start()
        clock.advance(20)
        timer.start()
        assert timer.get_remaining_seconds() == 40

    @pytest.mark.parametrize("command", ["pause", "resume", "stop"])
    def test_commands_are_idempotent(self, clock, timer, sink, command):
        timer.start()
        clock.advance(5)
        if command == "resume":
            timer.pause()

        getattr(timer, command)()
        state_after_first = timer.get_state()
        events_after_first = len(sink.states)

        getattr(timer, command)()
        assert timer.get_state() == state_after_first
        assert len(sink.states) == events_after_first

    def test_pause_and_resume_ignored_when_idle(self, timer, sink):
        timer.pause()
        timer.resume()
        assert timer.is_idle()
        assert sink.states == []


class TestStateAndLogging:

    def test_state_copy_is_detached(self, timer):
        timer.start()
        state = timer.get_state()
        state.remaining_seconds = 1
        assert timer.get_remaining_seconds() == 60

    def test_state_invariants_hold(self, clock, timer):
        timer.start()
        clock.advance(3)
        timer.pause()
        state = timer.get_state()
        assert state.is_running and state.is_paused
        assert state.start_time is not None and state.paused_time is not None

        timer.stop()
        state = timer.get_state()
        assert state.start_time is None and state.paused_time is None

    def test_state_to_dict(self, timer):
        timer.start()
        data = timer.get_state().to_dict()
        assert data["phase"] == "running"
        assert data["remaining_formatted"] == "01:00"

    def test_format_remaining(self):
        assert format_remaining(0) == "00:00"
        assert format_remaining(65) == "01:05"
        assert format_remaining(7200) == "120:00"
        assert format_remaining(-3) == "00:00"

    def test_transitions_are_logged(self, clock, settings, tmp_path):
        logger = EventLogger(str(tmp_path / "events.jsonl"))
        timer = TimerEngine(clock, settings, event_logger=logger)
        timer.start()
        clock.advance(5)
        timer.pause()
        timer.resume()
        clock.advance(60)

        events = logger.get_recent_events()
        reasons = [e["reason"] for e in events if e["event_type"] == "transition"]
        assert reasons == ["start", "pause", "resume", "completed"]
        assert any(e["event_type"] == "completed" for e in events)
