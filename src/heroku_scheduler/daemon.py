"""Scheduler daemon -- long-running foreground process hosting the controller.

Writes a PID file, installs SIGINT/SIGTERM handlers that trigger the
controller's shutdown, logs the initial task and app status, then blocks
until asked to stop. Jobs fire on APScheduler's background threads.
"""

from __future__ import annotations

import atexit
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from . import config
from .config import LOG_FORMAT, ensure_data_dirs
from .scheduler import SchedulerController

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """File log plus stderr when it is usable (it may not be when detached)."""
    handlers: list[logging.Handler] = []
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file)))
    try:
        sys.stderr.write("")
        handlers.append(logging.StreamHandler(sys.stderr))
    except (OSError, ValueError, AttributeError):
        pass

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # APScheduler logs every execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def _is_pid_alive(pid: int) -> bool:
    """Check if a process is still running."""
    if sys.platform == "win32":
        import subprocess
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"PID eq {pid}", "/NH", "/FO", "CSV"],
                capture_output=True, text=True, timeout=5,
            )
            return str(pid) in result.stdout
        except (OSError, subprocess.SubprocessError):
            return False
    try:
        os.kill(pid, 0)
        return True
    except (OSError, ProcessLookupError):
        return False


def get_daemon_pid(pid_file: Optional[Path] = None) -> Optional[int]:
    """PID of a live daemon, or None. Stale PID files are removed."""
    pid_file = pid_file or config.DAEMON_PID_FILE
    if not pid_file.exists():
        return None
    try:
        pid = int(pid_file.read_text().strip())
    except (ValueError, OSError):
        pid_file.unlink(missing_ok=True)
        return None
    if pid != os.getpid() and not _is_pid_alive(pid):
        pid_file.unlink(missing_ok=True)
        return None
    return pid


class SchedulerDaemon:
    """Runs a SchedulerController until SIGINT/SIGTERM or ``request_stop``."""

    def __init__(
        self,
        controller: SchedulerController,
        reporter=None,
        pid_file: Optional[Path] = None,
    ) -> None:
        self.controller = controller
        self.reporter = reporter
        self.pid_file = pid_file or config.DAEMON_PID_FILE
        self._pid = os.getpid()
        self._stop_event = threading.Event()
        self._running = False

    def _handle_shutdown(self, signum, frame) -> None:
        logger.info("Received signal %s, shutting down...", signum)
        self.request_stop()

    def request_stop(self) -> None:
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        signal.signal(signal.SIGINT, self._handle_shutdown)
        if sys.platform != "win32":
            signal.signal(signal.SIGTERM, self._handle_shutdown)
            signal.signal(signal.SIGQUIT, self._handle_shutdown)

    def _cleanup(self) -> None:
        """Stop all jobs and remove the PID file. Runs once."""
        if not self._running:
            return
        self._running = False
        try:
            self.controller.shutdown()
        finally:
            self.pid_file.unlink(missing_ok=True)
            logger.info("Daemon cleanup complete.")

    def _log_current_status(self) -> None:
        logger.info("=" * 50)
        logger.info("SCHEDULER STATUS")
        logger.info("=" * 50)
        for task in self.controller.task_status():
            next_run = task.next_fire_time.isoformat() if task.next_fire_time else "N/A"
            logger.info(
                "Task: %s | Running: %s | Next Run: %s", task.name, task.running, next_run
            )
        for warning in self.controller.warnings:
            logger.warning("Not scheduled: %s", warning)

        if self.reporter is not None:
            logger.info("=" * 50)
            logger.info("APP STATUS")
            logger.info("=" * 50)
            for status in self.reporter.get_all_statuses(self.controller.app_names):
                if status.error:
                    logger.warning("Could not get status for %s: %s", status.name, status.error)
                else:
                    logger.info(
                        "%s: %s (%d dynos)",
                        status.name,
                        "RUNNING" if status.running else "STOPPED",
                        len(status.dynos),
                    )
        logger.info("=" * 50)

    def start(self, block: bool = True) -> None:
        """Start the controller and, with *block*, wait until stopped.

        ValidationError from the controller propagates before the PID file
        is written.
        """
        ensure_data_dirs()
        self.controller.start()

        self.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.pid_file.write_text(str(self._pid))
        self._running = True
        atexit.register(self._cleanup)
        self._install_signal_handlers()

        logger.info(
            "Daemon started (pid=%d, apps=%s)", self._pid, self.controller.app_names
        )
        try:
            self._log_current_status()
        except Exception:
            logger.error("Failed to log current status", exc_info=True)

        if not block:
            return
        logger.info("Heroku scheduler is now running. Press Ctrl+C to stop.")
        try:
            while not self._stop_event.wait(1.0):
                pass
        finally:
            self._cleanup()

    def stop(self) -> None:
        self.request_stop()
        self._cleanup()

    @property
    def running(self) -> bool:
        return self._running
