"""
Timer state and the event-sink interface.
"""

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Optional, Dict, Any


class TimerPhase(Enum):
    """Observable timer states. IDLE is both initial and re-entered after every session."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class TimerState:
    """
    Countdown state, owned and mutated only by TimerEngine.

    Invariants:
    - is_paused implies is_running
    - start_time is None iff not running
    - paused_time is None iff not paused
    - remaining_seconds >= 0, recomputed from start_time on every tick
    """
    is_running: bool = False
    is_paused: bool = False
    start_time: Optional[float] = None  # clock seconds; shifted forward on resume
    paused_time: Optional[float] = None  # clock seconds when the pause began
    remaining_seconds: int = 0
    last_activity: Optional[float] = None  # mirrored from the activity scheduler

    @property
    def phase(self) -> TimerPhase:
        if not self.is_running:
            return TimerPhase.IDLE
        if self.is_paused:
            return TimerPhase.PAUSED
        return TimerPhase.RUNNING

    @property
    def is_running_effective(self) -> bool:
        """True only while the countdown progresses."""
        return self.is_running and not self.is_paused

    def copy(self) -> "TimerState":
        return replace(self)

    def format_remaining(self) -> str:
        return format_remaining(self.remaining_seconds)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["phase"] = self.phase.value
        data["remaining_formatted"] = self.format_remaining()
        return data


def format_remaining(seconds: int) -> str:
    """Format seconds as 'MM:SS' (minutes are not wrapped at 60)."""
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


class TimerEventSink:
    """
    Receiver of timer events. All hooks default to no-ops.

    Hooks run on the clock's timeline, synchronously inside the engine
    operation that produced them; they must not block.
    """

    def on_state_changed(self, state: TimerState):
        """Fired on every tick and every state transition."""

    def on_completed(self, state: TimerState):
        """Fired exactly once per session, when the countdown reaches zero."""

    def on_reset(self, state: TimerState):
        """Fired when stop() or reset() is called by a user or collaborator."""
