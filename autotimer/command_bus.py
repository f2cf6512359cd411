"""
Command Bus - file-based command inbox for the background runner.

The dashboard appends one JSON object per line to storage/commands.jsonl;
the runner claims the file, dispatches each command on the clock's
timeline, and deletes it. Claiming is an os.replace() to a private name,
so a line appended while the runner is reading lands in a fresh inbox.
"""

import json
import os
import time
from pathlib import Path
from typing import Optional, Dict, Any, Callable, List

from .clock import Clock, ScheduledTask
from .event_logger import EventLogger
from .settings import storage_root


COMMANDS = (
    "start",
    "stop",
    "pause",
    "resume",
    "reset",
    "toggle",
    "test_notification",
    "acknowledge",
)

POLL_INTERVAL_SEC = 0.5


class CommandBus:
    """
    Sends and receives timer commands through a JSONL file.

    The sending side (UI process) only needs send(); the receiving side
    binds handlers and polls on its clock.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        command_file: Optional[str] = None,
        poll_interval_sec: float = POLL_INTERVAL_SEC,
        event_logger: Optional[EventLogger] = None
    ):
        """
        Initialize command bus.

        Args:
            clock: Clock to poll on (receiving side only)
            command_file: Path to inbox (default: storage/commands.jsonl)
            poll_interval_sec: How often the receiver drains the inbox
            event_logger: Optional JSONL audit log for dispatched commands
        """
        if command_file is None:
            command_file = str(storage_root() / "commands.jsonl")

        self.clock = clock
        self.command_file = Path(command_file)
        self.command_file.parent.mkdir(parents=True, exist_ok=True)
        self.poll_interval_sec = poll_interval_sec
        self.event_logger = event_logger

        self._handlers: Dict[str, Callable[[], None]] = {}
        self._poll_task: Optional[ScheduledTask] = None
        self._state_provider: Optional[Callable[[], str]] = None

        self.dispatched_count = 0
        self.ignored_count = 0

    # ---- Sending side ----

    def send(self, command: str, origin: str = "ui"):
        """
        Queue a command for the runner.

        Raises:
            ValueError: if command is not one of COMMANDS
        """
        if command not in COMMANDS:
            raise ValueError(f"Unknown command: {command}")

        entry = {"command": command, "origin": origin, "unix_time": time.time()}
        with open(self.command_file, "a") as f:
            f.write(json.dumps(entry) + "\n")

    # ---- Receiving side ----

    def bind(self, timer, escalator=None):
        """Route every command to the timer engine and escalator."""
        self._handlers.update({
            "start": timer.start,
            "stop": timer.stop,
            "pause": timer.pause,
            "resume": timer.resume,
            "reset": timer.reset,
            "toggle": timer.toggle,
        })
        if escalator is not None:
            self._handlers["test_notification"] = escalator.test_notification
            self._handlers["acknowledge"] = escalator.acknowledge
        self._state_provider = lambda: timer.get_phase().value

    def register(self, command: str, handler: Callable[[], None]):
        self._handlers[command] = handler

    def start(self):
        """Start polling the inbox on the clock."""
        if self._poll_task is not None:
            return
        if self.clock is None:
            raise ValueError("CommandBus needs a clock to poll")

        # Commands queued while the runner was down are stale
        self.drain()
        self._poll_task = self.clock.call_every(self.poll_interval_sec, self.poll, name="command-poll")

    def stop(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    def poll(self) -> int:
        """
        Dispatch every queued command.

        Returns:
            Number of commands dispatched
        """
        dispatched = 0
        for entry in self.drain():
            if self.dispatch(entry):
                dispatched += 1
        return dispatched

    def drain(self) -> List[Dict[str, Any]]:
        """Claim and parse the inbox; malformed lines are skipped."""
        if not self.command_file.exists():
            return []

        claimed = self.command_file.with_suffix(".processing")
        try:
            os.replace(self.command_file, claimed)
        except OSError as e:
            print(f"  [COMMAND] WARNING: could not claim inbox: {e}")
            return []

        entries = []
        try:
            with open(claimed, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError:
                        print(f"  [COMMAND] WARNING: skipping malformed line: {line[:80]}")
                        continue
                    if isinstance(entry, dict):
                        entries.append(entry)
        finally:
            claimed.unlink()

        return entries

    def dispatch(self, entry: Dict[str, Any]) -> bool:
        """
        Run the handler for one command entry.

        Returns:
            True if a handler ran, False if the command was unknown or unbound
        """
        command = entry.get("command")
        origin = entry.get("origin", "unknown")
        handler = self._handlers.get(command) if isinstance(command, str) else None

        if handler is None:
            self.ignored_count += 1
            print(f"  [COMMAND] Ignoring unknown command {command!r} from {origin}")
            return False

        print(f"  [COMMAND] {command} (from {origin})")
        handler()
        self.dispatched_count += 1

        if self.event_logger:
            state = self._state_provider() if self._state_provider else ""
            self.event_logger.log_command(command, state, origin)
        return True


def should_acknowledge(status: Optional[Dict[str, Any]], first_view: bool = False, clicked: bool = False) -> bool:
    """
    Decide whether the dashboard should send 'acknowledge'.

    Only a user action counts: the first render of a dashboard session, or
    the acknowledge button. Auto-refresh reruns never acknowledge, so a tab
    left open in the background does not silence the follow-up alerts.
    """
    if not status:
        return False
    escalation = status.get("escalation") or {}
    if not escalation.get("escalating") or escalation.get("acknowledged"):
        return False
    return first_view or clicked
