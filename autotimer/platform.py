"""Host platform checks shared by the notification and activity backends."""

import shutil
import sys


def is_macos() -> bool:
    return sys.platform == "darwin"


def is_windows() -> bool:
    return sys.platform.startswith("win")


def is_linux() -> bool:
    return sys.platform.startswith("linux")


def platform_key() -> str:
    """'darwin', 'win32' or 'linux' (anything else is treated as linux)."""
    if is_macos():
        return "darwin"
    if is_windows():
        return "win32"
    return "linux"


def has_command(name: str) -> bool:
    """True if an executable is on PATH."""
    return shutil.which(name) is not None
