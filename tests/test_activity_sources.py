"""Tests for the platform activity sources that need no desktop."""

import pytest

from autotimer import ActivitySignalUnavailable
from autotimer import activity


class FakeIdleProcess:
    """xprintidle child whose completion the test controls."""

    def __init__(self, stdout="250\n", returncode=0):
        self.stdout_text = stdout
        self.returncode = None
        self._exit_code = returncode

    def finish(self):
        self.returncode = self._exit_code

    def poll(self):
        return self.returncode

    def communicate(self):
        return self.stdout_text, "display lost" if self._exit_code else ""


class TestXprintidleQuery:

    @pytest.fixture
    def spawned(self, monkeypatch):
        processes = []

        def popen(cmd, **kwargs):
            assert cmd == ["xprintidle"]
            processes.append(FakeIdleProcess())
            return processes[-1]

        monkeypatch.setattr("autotimer.activity.subprocess.Popen", popen)
        monkeypatch.setattr("autotimer.activity._xprintidle_seconds", lambda: 42.0)
        return processes

    def test_first_sample_is_synchronous(self, spawned):
        query = activity._XprintidleQuery()
        assert query() == 42.0
        assert spawned == []

    def test_later_samples_never_wait(self, spawned):
        query = activity._XprintidleQuery()
        query()

        # Child still running: the previous sample is returned at once
        assert query() == 42.0
        assert query() == 42.0
        assert len(spawned) == 1

        spawned[0].finish()
        assert query() == 0.25
        assert len(spawned) == 2

    def test_failed_sample_is_unavailable(self, spawned):
        query = activity._XprintidleQuery()
        query()
        query()
        spawned[0]._exit_code = 1
        spawned[0].finish()

        with pytest.raises(ActivitySignalUnavailable):
            query()
