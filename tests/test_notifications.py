"""Tests for the notification collaborator that need no desktop."""

import pytest

from autotimer import ChannelUnavailable, NotificationEngine, NotificationRequest, Urgency


class TestDryRun:

    def test_post_records_active_notification(self):
        engine = NotificationEngine(dry_run=True)
        assert engine.post(NotificationRequest("Timer complete", "Take a break", Urgency.CRITICAL))
        assert engine.has_active_notification()
        assert engine.active_notification["urgency"] == "critical"
        assert engine.get_active_notification_age() >= 0

        engine.clear_active_notification()
        assert engine.get_active_notification_age() is None

    def test_sound_with_custom_file(self, tmp_path, capsys):
        sound = tmp_path / "ding.wav"
        sound.write_bytes(b"RIFF")
        engine = NotificationEngine(dry_run=True)
        assert engine.play_sound(str(sound), volume=80, tones=3)
        assert "sound x3" in capsys.readouterr().out

    def test_muted_sound_plays_nothing(self):
        assert NotificationEngine(dry_run=True).play_sound(None, volume=0, tones=3) is False


class TestChannels:

    def test_missing_sound_files_are_unavailable(self, monkeypatch):
        monkeypatch.setattr("autotimer.notifications._SYSTEM_SOUNDS", {})
        with pytest.raises(ChannelUnavailable) as excinfo:
            NotificationEngine().play_sound("/no/such/file.wav", volume=50, tones=2)
        assert excinfo.value.channel == "sound"

    def test_attention_uses_host_callback(self):
        calls = []
        engine = NotificationEngine(attention_callback=calls.append)
        assert engine.request_attention("Timer complete")
        assert calls == ["Timer complete"]

    def test_request_is_immutable(self):
        request = NotificationRequest("t", "b")
        with pytest.raises(AttributeError):
            request.title = "changed"


class FakePopen:
    """Stands in for a helper process that never finishes on its own."""

    started = []

    def __init__(self, cmd, **kwargs):
        if cmd[0] == "missing":
            raise FileNotFoundError(cmd[0])
        FakePopen.started.append(cmd)


class TestHelpersDoNotBlock:

    @pytest.fixture(autouse=True)
    def linux(self, monkeypatch):
        FakePopen.started = []
        monkeypatch.setattr("autotimer.notifications.is_macos", lambda: False)
        monkeypatch.setattr("autotimer.notifications.is_windows", lambda: False)
        monkeypatch.setattr("autotimer.notifications.is_linux", lambda: True)
        monkeypatch.setattr("autotimer.notifications.subprocess.Popen", FakePopen)

    def test_notify_send_is_started_not_awaited(self):
        engine = NotificationEngine()
        assert engine.post(NotificationRequest("Timer complete", "Take a break", Urgency.CRITICAL))
        assert FakePopen.started[0][:5] == ["notify-send", "-a", "AutoTimer", "-u", "critical"]

    def test_missing_notify_send_is_unavailable(self, monkeypatch):
        monkeypatch.setattr(
            "autotimer.notifications.subprocess.Popen",
            lambda cmd, **kwargs: FakePopen(["missing"])
        )
        with pytest.raises(ChannelUnavailable) as excinfo:
            NotificationEngine().post(NotificationRequest("t", "b"))
        assert excinfo.value.channel == "push"

    def test_wmctrl_attention_is_started_not_awaited(self, monkeypatch):
        monkeypatch.setattr("autotimer.notifications.has_command", lambda name: name == "wmctrl")
        assert NotificationEngine().request_attention("Timer complete")
        assert FakePopen.started == [["wmctrl", "-r", ":ACTIVE:", "-b", "add,demands_attention"]]
