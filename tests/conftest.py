"""Shared fixtures: manual clock, in-memory settings, fake collaborators."""

import pytest

from autotimer import ManualClock, StaticSettings, TimerEngine, TimerEventSink
from autotimer.errors import ActivitySignalUnavailable, ChannelUnavailable


class RecordingSink(TimerEventSink):
    """Records every event the engine emits."""

    def __init__(self):
        self.states = []
        self.completed = []
        self.resets = []

    def on_state_changed(self, state):
        self.states.append(state)

    def on_completed(self, state):
        self.completed.append(state)

    def on_reset(self, state):
        self.resets.append(state)


class FakeNotifier:
    """Notification collaborator recording calls with their clock times."""

    def __init__(self, clock, fail=None):
        self.clock = clock
        self.fail = dict(fail or {})  # channel -> exception class to raise
        self.posts = []
        self.sounds = []
        self.beeps = []
        self.attention = []

    def _maybe_fail(self, channel):
        error = self.fail.get(channel)
        if error is ChannelUnavailable:
            raise ChannelUnavailable(channel, "not supported in tests")
        if error is not None:
            raise error(f"{channel} exploded")

    def post(self, request):
        self._maybe_fail("push")
        self.posts.append((self.clock.now(), request))
        return True

    def play_sound(self, path, volume, tones):
        self._maybe_fail("sound")
        self.sounds.append((self.clock.now(), tones))
        return True

    def beep(self):
        self._maybe_fail("beep")
        self.beeps.append(self.clock.now())

    def request_attention(self, title=""):
        self._maybe_fail("attention")
        self.attention.append(self.clock.now())
        return True


class FakePointerSource:
    """Pointer source whose position the test moves."""

    name = "pointer"

    def __init__(self, fail_on_open=False):
        self.fail_on_open = fail_on_open
        self.fail_on_read = False
        self.x, self.y = 0, 0
        self.opened = False
        self.closed = False

    def open(self):
        if self.fail_on_open:
            raise ActivitySignalUnavailable(self.name, "permission denied")
        self.opened = True

    def close(self):
        self.closed = True

    def move(self, dx=1, dy=0):
        self.x += dx
        self.y += dy

    def position(self):
        if self.fail_on_read:
            raise ActivitySignalUnavailable(self.name, "display lost")
        return self.x, self.y


class FakeIdleSource:
    """System idle source reporting a fixed idle time."""

    name = "system_idle"

    def __init__(self, idle=100.0):
        self.idle = idle
        self.closed = False

    def open(self):
        pass

    def close(self):
        self.closed = True

    def idle_seconds(self):
        return self.idle


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def settings():
    return StaticSettings(duration=1, inactivity_threshold_seconds=30)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def timer(clock, settings, sink):
    return TimerEngine(clock, settings, sinks=[sink])


@pytest.fixture
def notifier(clock):
    return FakeNotifier(clock)


@pytest.fixture(autouse=True)
def _storage(tmp_path, monkeypatch):
    """Keep every default storage path inside the test's tmp dir."""
    monkeypatch.setenv("AUTOTIMER_STORAGE_ROOT", str(tmp_path / "storage"))
