"""
Time source and scheduled callbacks.

Every component gets its notion of "now" and its timers from a Clock:
- ManualClock: simulated time, advanced explicitly (tests, simulation)
- ThreadedClock: real monotonic time, all callbacks run on one worker thread

The worker thread of ThreadedClock is the single serialization point for
the timer core. Code running on other threads (signal handlers, listeners,
command polling) must hand work to it with submit().
"""

import heapq
import itertools
import threading
import time
from typing import Callable, List, Optional, Tuple


class ScheduledTask:
    """
    Handle for a one-shot or periodic callback.

    cancel() takes effect before it returns: a cancelled task is never
    invoked again, even if its due time has already passed.
    """

    def __init__(
        self,
        clock: "Clock",
        callback: Callable[[], None],
        due: float,
        interval: Optional[float] = None,
        name: str = ""
    ):
        self.clock = clock
        self.callback = callback
        self.due = due
        self.interval = interval
        self.name = name or getattr(callback, "__name__", "task")
        self.cancelled = False
        self.fired = False

    @property
    def periodic(self) -> bool:
        return self.interval is not None

    @property
    def active(self) -> bool:
        """True while the task may still fire."""
        if self.cancelled:
            return False
        return self.periodic or not self.fired

    def cancel(self):
        """Cancel the task (idempotent)."""
        self.clock._cancel(self)

    def __repr__(self) -> str:
        kind = f"every {self.interval}s" if self.periodic else "once"
        return f"<ScheduledTask {self.name} due={self.due:.3f} {kind} active={self.active}>"


class Clock:
    """
    Monotonic time source with cancellable one-shot and periodic callbacks.

    Subclasses implement now() and _push(); scheduling bookkeeping is shared.
    """

    # Periodic tasks that fell behind fire once, then realign to now
    _collapse_missed = False

    def __init__(self):
        self._lock = threading.RLock()
        self._heap: List[Tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        """Run callback once, delay seconds from now."""
        task = ScheduledTask(self, callback, self.now() + max(0.0, delay), name=name)
        self._push(task)
        return task

    def call_every(self, interval: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        """Run callback every interval seconds, first run one interval from now."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        task = ScheduledTask(self, callback, self.now() + interval, interval=interval, name=name)
        self._push(task)
        return task

    def submit(self, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        """Queue callback to run on the clock's timeline as soon as possible."""
        return self.call_later(0.0, callback, name=name)

    def pending_count(self) -> int:
        """Number of tasks that may still fire."""
        with self._lock:
            return len({id(task) for _, _, task in self._heap if task.active})

    def _push(self, task: ScheduledTask):
        with self._lock:
            heapq.heappush(self._heap, (task.due, next(self._seq), task))

    def _cancel(self, task: ScheduledTask):
        with self._lock:
            task.cancelled = True

    def _pop_due(self, limit: float) -> Optional["_Firing"]:
        """
        Pop the earliest live task due at or before limit.

        Periodic tasks are re-queued before they run so that the callback
        itself can cancel them.
        """
        with self._lock:
            while self._heap and self._heap[0][0] <= limit:
                _, _, task = heapq.heappop(self._heap)
                if task.cancelled:
                    continue
                if task.periodic:
                    next_due = task.due + task.interval
                    if self._collapse_missed and next_due <= limit:
                        # Missed runs (e.g. system sleep) collapse into one
                        next_due = limit + task.interval
                    fired_at = task.due
                    task.due = next_due
                    heapq.heappush(self._heap, (task.due, next(self._seq), task))
                    task.fired = True
                    return _Firing(task, fired_at)
                task.fired = True
                return _Firing(task, task.due)
            return None


class _Firing:
    """A task popped for execution together with the time it was due."""

    __slots__ = ("task", "due")

    def __init__(self, task: ScheduledTask, due: float):
        self.task = task
        self.due = due


class ManualClock(Clock):
    """
    Simulated clock for deterministic tests and simulations.

    Time only moves when advance() is called; callbacks run synchronously,
    in due-time order, with now() equal to their due time.
    """

    def __init__(self, start: float = 0.0):
        super().__init__()
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> int:
        """
        Move time forward, running every callback that falls due.

        Args:
            seconds: How far to move (>= 0)

        Returns:
            Number of callbacks run
        """
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")

        target = self._now + seconds
        ran = 0
        while True:
            firing = self._pop_due(target)
            if firing is None:
                break
            self._now = max(self._now, firing.due)
            firing.task.callback()
            ran += 1

        self._now = target
        return ran

    def run_pending(self) -> int:
        """Run callbacks due now (e.g. submitted work) without moving time."""
        return self.advance(0.0)


class ThreadedClock(Clock):
    """
    Real-time clock backed by one worker thread.

    Uses time.monotonic(), so wall-clock adjustments never disturb the
    countdown. All callbacks run on the worker thread, one at a time.
    """

    _collapse_missed = True

    def __init__(self, name: str = "autotimer-clock"):
        super().__init__()
        self.name = name
        self._wakeup = threading.Condition(self._lock)
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self._error_count = 0
        self._last_error_time = 0.0

    def now(self) -> float:
        return time.monotonic()

    def start(self):
        """Start the worker thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        """Stop the worker thread. Pending tasks are dropped."""
        with self._wakeup:
            self._running = False
            self._wakeup.notify_all()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

    def is_running(self) -> bool:
        return self._running

    def in_worker(self) -> bool:
        """True when called from the worker thread."""
        return self._thread is threading.current_thread()

    def _push(self, task: ScheduledTask):
        with self._wakeup:
            super()._push(task)
            self._wakeup.notify_all()

    def _run_loop(self):
        """Main scheduling loop (runs in the worker thread)."""
        while True:
            with self._wakeup:
                if not self._running:
                    return
                firing = self._pop_due(self.now())
                if firing is None:
                    timeout = self._heap[0][0] - self.now() if self._heap else None
                    self._wakeup.wait(timeout=timeout)
                    continue

            try:
                firing.task.callback()
            except Exception as e:
                # Best-effort: one failing callback must not stop the timeline
                self._error_count += 1
                current_time = time.time()
                if current_time - self._last_error_time > 10.0:
                    print(f"[CLOCK] Error in scheduled callback {firing.task.name}: {e}")
                    self._last_error_time = current_time
