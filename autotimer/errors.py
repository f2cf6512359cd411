"""
Error taxonomy for the timer core.

Nothing here is fatal: every error is local to one channel or one signal
source, and callers degrade instead of stopping the countdown.
A command issued in a state where it has no effect (e.g. pause() while
paused) is not an error and raises nothing.
"""


class AutoTimerError(Exception):
    """Base class for all AutoTimer errors."""


class ConfigurationError(AutoTimerError, ValueError):
    """
    A setting is missing or out of range.

    Raised on the settings-update path; the running timer is unaffected.
    """

    def __init__(self, field: str, value, message: str):
        self.field = field
        self.value = value
        super().__init__(f"{field}={value!r}: {message}")


class ChannelUnavailable(AutoTimerError):
    """A notification, sound or attention channel is not supported on this host."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"{channel} channel unavailable: {reason}")


class ActivitySignalUnavailable(AutoTimerError):
    """An activity source cannot be read (missing backend, permission denied)."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} activity signal unavailable: {reason}")
