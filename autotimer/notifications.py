"""
Desktop notification, sound and attention channels.

Uses pync for macOS notifications, with terminal-notifier and osascript as
fallbacks; notify-send on Linux; a PowerShell balloon tip on Windows.
Sound plays through afplay / paplay / aplay / PowerShell in a background
thread so the timer's timeline never blocks on audio.

Every channel raises ChannelUnavailable when the host cannot support it;
callers decide whether that is worth logging.
"""

import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Callable, List

from .errors import ChannelUnavailable
from .platform import is_macos, is_windows, is_linux, platform_key, has_command


class Urgency(Enum):
    """How insistent a notification is. Later escalation steps raise it."""
    NORMAL = "normal"
    ESCALATED = "escalated"
    CRITICAL = "critical"


@dataclass(frozen=True)
class NotificationRequest:
    """One push notification, as issued by the escalator."""
    title: str
    body: str
    urgency: Urgency = Urgency.NORMAL
    sound: bool = False


# Distinct tones per platform; a burst cycles through them in order
_SYSTEM_SOUNDS = {
    "darwin": [
        "/System/Library/Sounds/Glass.aiff",
        "/System/Library/Sounds/Ping.aiff",
        "/System/Library/Sounds/Hero.aiff",
    ],
    "linux": [
        "/usr/share/sounds/freedesktop/stereo/complete.oga",
        "/usr/share/sounds/freedesktop/stereo/bell.oga",
        "/usr/share/sounds/freedesktop/stereo/message.oga",
    ],
    "win32": [
        r"C:\Windows\Media\chimes.wav",
        r"C:\Windows\Media\chord.wav",
        r"C:\Windows\Media\notify.wav",
    ],
}

_NOTIFY_SEND_URGENCY = {
    Urgency.NORMAL: "low",
    Urgency.ESCALATED: "normal",
    Urgency.CRITICAL: "critical",
}

# Gap between tones inside one burst
TONE_GAP_SEC = 0.15


class NotificationEngine:
    """
    Cross-platform notification collaborator.

    post() shows a push notification, play_sound() plays a burst of tones,
    beep() is the fallback when sound playback fails, and
    request_attention() asks the host to draw the user's eye.
    """

    def __init__(
        self,
        app_name: str = "AutoTimer",
        dry_run: bool = False,
        attention_callback: Optional[Callable[[str], None]] = None
    ):
        """
        Initialize notification engine.

        Args:
            app_name: Application name for notifications
            dry_run: Print what would be delivered instead of delivering it
            attention_callback: Host hook for attention requests (e.g. a
                window flash); falls back to platform mechanisms when None
        """
        self.app_name = app_name
        self.dry_run = dry_run
        self.attention_callback = attention_callback
        self.active_notification = None

    # ---- Push ----

    def post(self, request: NotificationRequest) -> bool:
        """
        Post a push notification.

        Returns:
            True once the notification has been handed to the OS

        Raises:
            ChannelUnavailable: no notification mechanism on this host
        """
        if self.dry_run:
            print(f"  [NOTIFICATION] (dry run) [{request.urgency.value}] {request.title}: {request.body}")
        elif is_macos():
            self._post_macos(request)
        elif is_linux():
            self._post_linux(request)
        elif is_windows():
            self._post_windows(request)
        else:
            raise ChannelUnavailable("push", f"unsupported platform {sys.platform}")

        self.active_notification = {
            "title": request.title,
            "message": request.body,
            "urgency": request.urgency.value,
            "posted_at": time.time()
        }
        return True

    def _post_macos(self, request: NotificationRequest):
        try:
            import pync
        except ImportError:
            self._post_with_terminal_notifier(request)
            return

        pync.notify(
            request.body,
            title=request.title,
            subtitle=self._subtitle(request),
            sound="default" if request.sound else None,
            group=f"{self.app_name}-{request.urgency.value}",
        )

    def _post_with_terminal_notifier(self, request: NotificationRequest):
        """
        Post via terminal-notifier (brew install terminal-notifier).

        Non-blocking: the process is given 0.1 s to fail fast, then left
        to finish on its own.
        """
        cmd = [
            "terminal-notifier",
            "-title", request.title,
            "-message", request.body,
        ]
        subtitle = self._subtitle(request)
        if subtitle:
            cmd.extend(["-subtitle", subtitle])
        if request.sound:
            cmd.extend(["-sound", "default"])

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True
            )
        except FileNotFoundError:
            self._post_via_osascript(request)
            return

        try:
            _, stderr = proc.communicate(timeout=0.1)
            if stderr:
                print(f"  [NOTIFICATION] Warning: {stderr.strip()}")
        except subprocess.TimeoutExpired:
            # Still running: the notification was posted
            pass

    def _post_via_osascript(self, request: NotificationRequest):
        script = (
            f'display notification "{_applescript_quote(request.body)}" '
            f'with title "{_applescript_quote(request.title)}"'
        )
        subtitle = self._subtitle(request)
        if subtitle:
            script += f' subtitle "{_applescript_quote(subtitle)}"'

        try:
            _spawn(["osascript", "-e", script])
        except FileNotFoundError:
            raise ChannelUnavailable("push", "no pync, terminal-notifier or osascript")

    def _post_linux(self, request: NotificationRequest):
        cmd = [
            "notify-send",
            "-a", self.app_name,
            "-u", _NOTIFY_SEND_URGENCY[request.urgency],
            request.title,
            request.body,
        ]
        try:
            _spawn(cmd)
        except FileNotFoundError:
            raise ChannelUnavailable("push", "notify-send not found")

    def _post_windows(self, request: NotificationRequest):
        icon = "Warning" if request.urgency is Urgency.CRITICAL else "Info"
        script = (
            "Add-Type -AssemblyName System.Windows.Forms;"
            "$n = New-Object System.Windows.Forms.NotifyIcon;"
            "$n.Icon = [System.Drawing.SystemIcons]::Information;"
            "$n.Visible = $true;"
            f"$n.ShowBalloonTip(5000, '{_powershell_quote(request.title)}', "
            f"'{_powershell_quote(request.body)}', '{icon}');"
            "Start-Sleep -Seconds 6; $n.Dispose()"
        )
        try:
            _spawn(["powershell", "-NoProfile", "-Command", script])
        except FileNotFoundError:
            raise ChannelUnavailable("push", "powershell not found")

    def _subtitle(self, request: NotificationRequest) -> str:
        if request.urgency is Urgency.CRITICAL:
            return "Important"
        if request.urgency is Urgency.ESCALATED:
            return "Reminder"
        return ""

    # ---- Sound ----

    def play_sound(self, path: Optional[str] = None, volume: int = 50, tones: int = 1) -> bool:
        """
        Play a burst of distinct tones without blocking.

        Availability is checked synchronously; playback itself runs on a
        daemon thread and falls back to beep() if the player fails.

        Args:
            path: Custom sound file; every tone uses it when it exists
            volume: 0-100
            tones: Number of tones in the burst

        Returns:
            True if playback was started, False if muted (volume 0)

        Raises:
            ChannelUnavailable: no player or no sound file on this host
        """
        if volume <= 0:
            return False

        files = self._resolve_sound_files(path, tones)

        if self.dry_run:
            print(f"  [NOTIFICATION] (dry run) sound x{len(files)} at volume {volume}")
            return True

        player = self._player_command(volume)

        thread = threading.Thread(
            target=self._play_files,
            args=(player, files),
            name="autotimer-sound",
            daemon=True
        )
        thread.start()
        return True

    def _resolve_sound_files(self, path: Optional[str], tones: int) -> List[str]:
        tones = max(1, tones)
        if path and os.path.exists(path):
            return [path] * tones

        candidates = [p for p in _SYSTEM_SOUNDS.get(platform_key(), []) if os.path.exists(p)]
        if not candidates:
            raise ChannelUnavailable("sound", "no system sound files found")
        return [candidates[i % len(candidates)] for i in range(tones)]

    def _player_command(self, volume: int) -> List[str]:
        """Base command line; the sound file is appended per tone."""
        if is_macos() and has_command("afplay"):
            return ["afplay", "-v", f"{volume / 100:.2f}"]
        if is_linux():
            if has_command("paplay"):
                return ["paplay", f"--volume={int(65536 * volume / 100)}"]
            if has_command("aplay"):
                return ["aplay", "-q"]
        if is_windows() and has_command("powershell"):
            return ["powershell", "-NoProfile", "-Command"]
        raise ChannelUnavailable("sound", "no audio player found")

    def _play_files(self, player: List[str], files: List[str]):
        for index, sound_file in enumerate(files):
            if index:
                time.sleep(TONE_GAP_SEC)
            if player[0] == "powershell":
                cmd = player + [f"(New-Object Media.SoundPlayer '{_powershell_quote(sound_file)}').PlaySync()"]
            else:
                cmd = player + [sound_file]
            try:
                subprocess.run(cmd, capture_output=True, timeout=10.0, check=True)
            except (subprocess.SubprocessError, OSError) as e:
                print(f"  [NOTIFICATION] Sound playback failed ({e}), falling back to beep")
                self.beep()
                return

    def beep(self):
        """System beep; the last-resort audible alert."""
        if self.dry_run:
            print("  [NOTIFICATION] (dry run) beep")
            return
        if is_windows():
            import winsound
            winsound.MessageBeep()
            return
        sys.stdout.write("\a")
        sys.stdout.flush()

    # ---- Attention ----

    def request_attention(self, title: str = "Timer complete") -> bool:
        """
        Ask the host to draw attention to the app (taskbar / dock emphasis).

        Raises:
            ChannelUnavailable: no callback and no usable mechanism
        """
        if self.dry_run:
            print(f"  [NOTIFICATION] (dry run) attention: {title}")
            return True

        if self.attention_callback is not None:
            self.attention_callback(title)
            return True

        if is_linux() and has_command("wmctrl"):
            _spawn(["wmctrl", "-r", ":ACTIVE:", "-b", "add,demands_attention"])
            return True

        if sys.stdout.isatty():
            # Terminal title plus bell; most terminals flag the tab
            sys.stdout.write(f"\033]0;{title}\007\a")
            sys.stdout.flush()
            return True

        raise ChannelUnavailable("attention", "no attention callback and no terminal")

    # ---- Diagnostics ----

    def clear_active_notification(self):
        """Clear the active notification state."""
        self.active_notification = None

    def has_active_notification(self) -> bool:
        """Check if there's an active notification."""
        return self.active_notification is not None

    def get_active_notification_age(self) -> Optional[float]:
        """Get age of active notification in seconds."""
        if self.active_notification:
            return time.time() - self.active_notification["posted_at"]
        return None


def _spawn(cmd: List[str]) -> subprocess.Popen:
    """Start a helper process without waiting for it; callers run on the timer's thread."""
    return subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)


def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _powershell_quote(text: str) -> str:
    return text.replace("'", "''")
