"""
Timer settings: snapshot, validation and JSON persistence.

The core never caches settings across a session: it calls get() on every
tick and idle check, so edits made while a session runs (e.g. duration)
apply on the next tick.
"""

import json
import os
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Optional, Dict, Any

from .errors import ConfigurationError


SETTINGS_VERSION = "1.0"

# Inclusive ranges
DURATION_RANGE_MIN = (1, 120)
INACTIVITY_THRESHOLD_RANGE_SEC = (10, 300)
SOUND_VOLUME_RANGE = (0, 100)

# Keys used by the settings files of the desktop app this engine replaces
_LEGACY_KEYS = {
    "inactivityThreshold": "inactivity_threshold_seconds",
    "soundEnabled": "sound_enabled",
    "pushNotificationEnabled": "push_notification_enabled",
    "flashEnabled": "flash_enabled",
    "autoStart": "auto_start",
    "autoRestart": "auto_restart",
    "activityMonitoring": "activity_monitoring",
    "soundVolume": "sound_volume",
    "customSoundPath": "custom_sound_path",
}


@dataclass(frozen=True)
class TimerSettings:
    """
    Read-only snapshot of the timer configuration.

    Durations: duration in minutes, inactivity threshold in seconds.
    """
    duration: int = 25  # minutes per session
    inactivity_threshold_seconds: int = 30

    # Completion channels
    sound_enabled: bool = True
    push_notification_enabled: bool = True
    flash_enabled: bool = True

    # Activity policy
    auto_start: bool = False  # start an idle timer on activity (never governs resume)
    auto_restart: Optional[bool] = None  # new session 5s after completion; None = follow auto_start
    activity_monitoring: bool = True  # False = manual-only operation

    sound_volume: int = 50  # 0-100
    custom_sound_path: Optional[str] = None

    @property
    def duration_seconds(self) -> int:
        return self.duration * 60

    @property
    def auto_restart_enabled(self) -> bool:
        """Effective auto-restart flag (falls back to auto_start)."""
        if self.auto_restart is None:
            return self.auto_start
        return self.auto_restart

    def validate(self) -> "TimerSettings":
        """
        Check ranges and types.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: on the first invalid field
        """
        _check_int_range("duration", self.duration, DURATION_RANGE_MIN)
        _check_int_range(
            "inactivity_threshold_seconds",
            self.inactivity_threshold_seconds,
            INACTIVITY_THRESHOLD_RANGE_SEC
        )
        _check_int_range("sound_volume", self.sound_volume, SOUND_VOLUME_RANGE)

        for name in ("sound_enabled", "push_notification_enabled", "flash_enabled",
                     "auto_start", "activity_monitoring"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ConfigurationError(name, value, "must be true or false")

        if self.auto_restart is not None and not isinstance(self.auto_restart, bool):
            raise ConfigurationError("auto_restart", self.auto_restart, "must be true, false or null")

        if self.custom_sound_path is not None and not isinstance(self.custom_sound_path, str):
            raise ConfigurationError("custom_sound_path", self.custom_sound_path, "must be a path string")

        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerSettings":
        """
        Create from dictionary.

        Accepts camelCase keys from older settings files; unknown keys
        are ignored. Does not validate.
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            key = _LEGACY_KEYS.get(key, key)
            if key in known:
                values[key] = value
        return cls(**values)


def _check_int_range(name: str, value, bounds):
    low, high = bounds
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(name, value, "must be an integer")
    if value < low or value > high:
        raise ConfigurationError(name, value, f"must be between {low} and {high}")


class StaticSettings:
    """Settings provider holding one in-memory snapshot (tests, simulations)."""

    def __init__(self, settings: Optional[TimerSettings] = None, **overrides):
        base = settings or TimerSettings()
        self._settings = replace(base, **overrides).validate()

    def get(self) -> TimerSettings:
        return self._settings

    def update(self, **changes) -> TimerSettings:
        """Apply changes after validation; the previous snapshot survives a failure."""
        self._settings = replace(self._settings, **changes).validate()
        return self._settings


class SettingsStore:
    """
    Settings provider persisted to JSON.

    Storage location: storage/settings.json
    get() re-reads the file when it changes on disk, so a background
    service picks up edits made from the dashboard.
    """

    def __init__(self, settings_path: Optional[str] = None):
        """
        Initialize settings store.

        Args:
            settings_path: Path to settings file (default: storage/settings.json)
        """
        if settings_path is None:
            settings_path = str(storage_root() / "settings.json")

        self.settings_path = Path(settings_path)
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)

        self._cached: Optional[TimerSettings] = None
        self._cached_mtime: Optional[float] = None

    def get(self) -> TimerSettings:
        """
        Get the current settings snapshot.

        Falls back to defaults when the file is missing. A file that is
        unreadable or fails validation leaves the last good snapshot in
        place; defaults are used only if nothing has loaded yet.
        """
        mtime = self._mtime()
        if self._cached is not None and mtime == self._cached_mtime:
            return self._cached

        settings = self._load()
        self._cached = settings
        self._cached_mtime = mtime
        return settings

    def update(self, **changes) -> TimerSettings:
        """
        Validate and persist a partial update.

        Args:
            **changes: Field values to change

        Returns:
            The new snapshot

        Raises:
            ConfigurationError: if a field is unknown or out of range
                (nothing is written in that case)
        """
        known = {f.name for f in fields(TimerSettings)}
        for key in changes:
            if key not in known:
                raise ConfigurationError(key, changes[key], "unknown setting")

        updated = replace(self.get(), **changes).validate()
        self._save(updated)
        return updated

    def reset(self) -> TimerSettings:
        """Restore defaults."""
        defaults = TimerSettings()
        self._save(defaults)
        return defaults

    def purge(self):
        """Delete the settings file."""
        if self.settings_path.exists():
            self.settings_path.unlink()
        self._cached = None
        self._cached_mtime = None

    def _mtime(self) -> Optional[float]:
        try:
            return self.settings_path.stat().st_mtime
        except FileNotFoundError:
            return None

    def _load(self) -> TimerSettings:
        if not self.settings_path.exists():
            return TimerSettings()

        try:
            with open(self.settings_path, "r") as f:
                data = json.load(f)

            if data.get("version") != SETTINGS_VERSION:
                print(f"WARNING: Unknown settings file version: {data.get('version')}")

            return TimerSettings.from_dict(data.get("settings", {})).validate()

        except (OSError, json.JSONDecodeError, TypeError, AttributeError) as e:
            print(f"ERROR: Failed to load settings: {e}")
            return self._last_good()
        except ConfigurationError as e:
            print(f"ERROR: Invalid settings file, keeping current settings: {e}")
            return self._last_good()

    def _last_good(self) -> TimerSettings:
        return self._cached if self._cached is not None else TimerSettings()

    def _save(self, settings: TimerSettings):
        data = {
            "version": SETTINGS_VERSION,
            "settings": settings.to_dict()
        }

        # Atomic replace
        temp_file = self.settings_path.with_suffix(".tmp")
        with open(temp_file, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(temp_file, self.settings_path)

        self._cached = settings
        self._cached_mtime = self._mtime()


def storage_root() -> Path:
    """
    Directory for settings, status and event files.

    AUTOTIMER_STORAGE_ROOT overrides the default ./storage.
    """
    override = os.environ.get("AUTOTIMER_STORAGE_ROOT")
    if override:
        return Path(override).expanduser()
    return Path("storage")
