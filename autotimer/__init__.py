"""
AutoTimer Core Module
Activity-aware countdown timer with escalating completion alerts.
"""

from .clock import Clock, ManualClock, ThreadedClock, ScheduledTask
from .errors import AutoTimerError, ConfigurationError, ChannelUnavailable, ActivitySignalUnavailable
from .settings import TimerSettings, SettingsStore, StaticSettings, storage_root
from .timer_events import TimerPhase, TimerState, TimerEventSink, format_remaining
from .timer_engine import TimerEngine
from .activity import ActivityKind, ActivityEvent, PowerEvent, PointerPositionSource, SystemIdleSource, SleepDetector
from .activity_scheduler import ActivityScheduler
from .notifications import NotificationEngine, NotificationRequest, Urgency
from .escalation import NotificationEscalator
from .event_logger import EventLogger
from .status_bus import StatusBus, StatusSnapshot, create_snapshot, read_status
from .command_bus import CommandBus, COMMANDS, should_acknowledge
from .service_manager import ServiceManager

__all__ = [
    "Clock",
    "ManualClock",
    "ThreadedClock",
    "ScheduledTask",
    "AutoTimerError",
    "ConfigurationError",
    "ChannelUnavailable",
    "ActivitySignalUnavailable",
    "TimerSettings",
    "SettingsStore",
    "StaticSettings",
    "storage_root",
    "TimerPhase",
    "TimerState",
    "TimerEventSink",
    "format_remaining",
    "TimerEngine",
    "ActivityKind",
    "ActivityEvent",
    "PowerEvent",
    "PointerPositionSource",
    "SystemIdleSource",
    "SleepDetector",
    "ActivityScheduler",
    "NotificationEngine",
    "NotificationRequest",
    "Urgency",
    "NotificationEscalator",
    "EventLogger",
    "StatusBus",
    "StatusSnapshot",
    "create_snapshot",
    "read_status",
    "CommandBus",
    "should_acknowledge",
    "COMMANDS",
    "ServiceManager"
]
