"""
Service Manager - Start/Stop the background timer runner.

Manages the dev_runner.py subprocess with pidfile tracking and graceful shutdown.
"""

import os
import sys
import json
import time
import signal
import subprocess
from pathlib import Path
from typing import Optional, Dict, Any, List
from datetime import datetime

from .settings import storage_root


if hasattr(signal, "SIGKILL"):
    _TERM_SIGNAL = signal.SIGTERM
    _KILL_SIGNAL = signal.SIGKILL
else:
    _TERM_SIGNAL = signal.SIGTERM
    _KILL_SIGNAL = signal.SIGTERM


class ServiceManager:
    """
    Manages the background timer service (dev_runner.py).

    Single-instance enforcement via pidfile.
    Graceful shutdown with SIGTERM + timeout fallback to SIGKILL.
    """

    def __init__(
        self,
        pidfile: Optional[str] = None,
        service_info_file: Optional[str] = None,
        log_file: Optional[str] = None
    ):
        """
        Initialize service manager.

        Args:
            pidfile: Path to PID file (default: storage/autotimer.pid)
            service_info_file: Path to service info JSON (default: storage/service.json)
            log_file: Path to log file for stdout/stderr (default: storage/autotimer.log)
        """
        root = storage_root()
        self.pidfile = Path(pidfile) if pidfile else root / "autotimer.pid"
        self.service_info_file = Path(service_info_file) if service_info_file else root / "service.json"
        self.log_file = Path(log_file) if log_file else root / "autotimer.log"

        self.pidfile.parent.mkdir(parents=True, exist_ok=True)

    def is_running(self) -> bool:
        """
        Check if the background service is running.

        Returns:
            True if running, False otherwise
        """
        pid = self._read_pid()
        if pid is None:
            return False

        try:
            os.kill(pid, 0)  # Signal 0 just checks existence
            return True
        except OSError:
            # Process doesn't exist, clean up stale pidfile
            self._cleanup()
            return False

    def get_pid(self) -> Optional[int]:
        """
        Get the PID of the running service.

        Returns:
            PID if running, None otherwise
        """
        if not self.is_running():
            return None
        return self._read_pid()

    def get_service_info(self) -> Optional[Dict[str, Any]]:
        """
        Get service information (started_at, cmdline, etc.).

        Returns:
            Service info dict or None if not running
        """
        if not self.is_running() or not self.service_info_file.exists():
            return None

        try:
            with open(self.service_info_file, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, FileNotFoundError):
            return None

    def build_command(
        self,
        duration: Optional[int] = None,
        activity: bool = True,
        dry_run: bool = False,
        diagnostics: bool = True,
        start_timer: bool = False
    ) -> List[str]:
        """Command line for the runner subprocess."""
        repo_root = Path(__file__).parent.parent.resolve()
        cmd = [sys.executable, str(repo_root / "dev_runner.py")]

        if duration is not None:
            cmd.extend(["--duration", str(duration)])
        if not activity:
            cmd.append("--no-activity")
        if dry_run:
            cmd.append("--dry-run")
        if diagnostics:
            cmd.append("--diagnostics")
        if start_timer:
            cmd.append("--start")
        return cmd

    def start_background(
        self,
        duration: Optional[int] = None,
        activity: bool = True,
        dry_run: bool = False,
        diagnostics: bool = True,
        start_timer: bool = False
    ) -> Optional[int]:
        """
        Start the background timer service.

        Single-instance enforcement: if already running, returns existing PID.

        Args:
            duration: Session length override in minutes (None = saved settings)
            activity: Enable activity monitoring
            dry_run: Print notifications instead of delivering them
            diagnostics: Enable periodic status output
            start_timer: Start a session immediately

        Returns:
            PID of the service, or None if failed to start
        """
        if self.is_running():
            print(f"[SERVICE] Already running (PID: {self.get_pid()})")
            return self.get_pid()

        cmd = self.build_command(duration, activity, dry_run, diagnostics, start_timer)
        if not Path(cmd[1]).exists():
            print(f"[SERVICE] Error: dev_runner.py not found at {cmd[1]}")
            return None

        # Keep the child on the same storage root as this process
        env = dict(os.environ)
        env["AUTOTIMER_STORAGE_ROOT"] = str(storage_root().resolve())

        try:
            log_handle = open(self.log_file, 'w')

            process = subprocess.Popen(
                cmd,
                env=env,
                stdout=log_handle,
                stderr=subprocess.STDOUT,  # Merge stderr into stdout
                start_new_session=True,  # Detach from parent
            )

            pid = process.pid

            with open(self.pidfile, 'w') as f:
                f.write(str(pid))

            service_info = {
                "pid": pid,
                "started_at": datetime.now().isoformat(),
                "cmdline": cmd,
                "duration": duration,
                "activity": activity,
                "dry_run": dry_run,
                "diagnostics": diagnostics
            }

            # Atomic write
            temp_file = self.service_info_file.with_suffix('.tmp')
            with open(temp_file, 'w') as f:
                json.dump(service_info, f, indent=2)
            os.replace(temp_file, self.service_info_file)

            print(f"[SERVICE] Started background service (PID: {pid})")
            return pid

        except OSError as e:
            print(f"[SERVICE] Error starting service: {e}")
            self._cleanup()
            return None

    def stop_background(self, timeout: float = 5.0) -> bool:
        """
        Stop the background timer service.

        Graceful shutdown: SIGTERM with timeout, fallback to SIGKILL.

        Args:
            timeout: Seconds to wait for graceful shutdown

        Returns:
            True if stopped successfully, False otherwise
        """
        pid = self.get_pid()
        if pid is None:
            print("[SERVICE] Not running")
            return True

        try:
            print(f"[SERVICE] Stopping service (PID: {pid})...")
            os.kill(pid, _TERM_SIGNAL)

            start_time = time.time()
            while time.time() - start_time < timeout:
                try:
                    os.kill(pid, 0)
                    time.sleep(0.1)
                except OSError:
                    print("[SERVICE] Stopped gracefully")
                    self._cleanup()
                    return True

            print("[SERVICE] Timeout, force killing...")
            try:
                os.kill(pid, _KILL_SIGNAL)
                time.sleep(0.5)
            except OSError:
                pass

            self._cleanup()
            print("[SERVICE] Stopped (force)")
            return True

        except OSError as e:
            print(f"[SERVICE] Error stopping service: {e}")
            self._cleanup()
            return False

    def get_logs(self, lines: int = 100) -> str:
        """
        Get recent logs from the service.

        Args:
            lines: Number of lines to return (from end of file)

        Returns:
            Log contents as string
        """
        if not self.log_file.exists():
            return "No logs available (log file not found)"

        try:
            with open(self.log_file, 'r') as f:
                return ''.join(f.readlines()[-lines:])
        except OSError as e:
            return f"Error reading logs: {e}"

    def clear_logs(self):
        """Clear the log file."""
        if self.log_file.exists():
            self.log_file.unlink()

    def _read_pid(self) -> Optional[int]:
        try:
            with open(self.pidfile, 'r') as f:
                return int(f.read().strip())
        except FileNotFoundError:
            return None
        except ValueError:
            # Invalid pidfile
            self._cleanup()
            return None

    def _cleanup(self):
        """Clean up pidfile and service info."""
        for path in (self.pidfile, self.service_info_file):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
