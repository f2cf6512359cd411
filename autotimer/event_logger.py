"""
Event logger for timer, activity and escalation decisions.

Logs transitions, completions, escalation steps, channel failures and
degraded activity monitoring as JSONL (one JSON object per line).
"""

import json
import time
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

from .settings import storage_root


class EventLogger:
    """
    Append-only audit log of timer core events.

    Each line: timestamp, unix_time, event_type, state, reason, metadata.
    """

    def __init__(self, log_path: Optional[str] = None):
        """
        Initialize event logger.

        Args:
            log_path: Path to log file (default: storage/events.jsonl)
        """
        if log_path is None:
            log_path = str(storage_root() / "events.jsonl")

        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_event(
        self,
        event_type: str,
        state: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        Log an event.

        Args:
            event_type: Type of event (transition, completed, escalation_step, etc.)
            state: Timer phase at time of event
            reason: Brief reason string
            metadata: Additional metadata
        """
        event = {
            "timestamp": datetime.now().isoformat(),
            "unix_time": time.time(),
            "event_type": event_type,
            "state": state,
            "reason": reason,
            "metadata": metadata or {}
        }

        # Append to JSONL file
        with open(self.log_path, "a") as f:
            f.write(json.dumps(event) + "\n")

    def log_transition(self, from_state: str, to_state: str, reason: str, remaining_seconds: int):
        """Log a timer phase change."""
        self.log_event(
            event_type="transition",
            state=to_state,
            reason=reason,
            metadata={
                "from_state": from_state,
                "remaining_seconds": remaining_seconds
            }
        )

    def log_completed(self, duration_min: int, auto_restart: bool):
        """Log a completed session."""
        self.log_event(
            event_type="completed",
            state="idle",
            reason=f"{duration_min} min session completed",
            metadata={"auto_restart": auto_restart}
        )

    def log_escalation_step(self, channel: str, step: int, offset_sec: float, detail: str = ""):
        """Log one delivered escalation step."""
        self.log_event(
            event_type="escalation_step",
            state="idle",
            reason=f"{channel} #{step} at +{offset_sec:g}s",
            metadata={
                "channel": channel,
                "step": step,
                "offset_sec": offset_sec,
                "detail": detail
            }
        )

    def log_channel_failure(self, channel: str, error: str, unavailable: bool):
        """Log a channel that could not deliver."""
        self.log_event(
            event_type="channel_unavailable" if unavailable else "channel_failed",
            state="idle",
            reason=error,
            metadata={"channel": channel}
        )

    def log_degraded(self, source: str, reason: str):
        """Log an activity source dropped from monitoring."""
        self.log_event(
            event_type="activity_degraded",
            state="",
            reason=reason,
            metadata={"source": source}
        )

    def log_command(self, command: str, state: str, origin: str):
        """Log a command issued to the timer by something other than the core."""
        self.log_event(
            event_type=f"command_{command}",
            state=state,
            reason=f"{command} from {origin}",
            metadata={"origin": origin}
        )

    def get_recent_events(self, limit: int = 100) -> list:
        """
        Get recent events from log.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of event dictionaries
        """
        if not self.log_path.exists():
            return []

        events = []
        with open(self.log_path, "r") as f:
            for line in f:
                try:
                    events.append(json.loads(line.strip()))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def purge_logs(self):
        """Delete all logged events."""
        if self.log_path.exists():
            self.log_path.unlink()
