"""Scheduler controller -- app set, job lifecycle, action execution.

Cron firings and manual commands share one execution path. Firings go
through ``fire``, which records the outcome and never raises, so a flaky
Heroku API cannot take the process down. Manual ``turn_on``/``turn_off``
record the outcome too, then re-raise so the caller can exit non-zero.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from .errors import MalformedScheduleError, RemoteActionError, ValidationError
from .history import ActionLog
from .models import (
    Action,
    ActionRecord,
    ActionStatistics,
    AppSchedule,
    AppState,
    AppStatus,
    SchedulerState,
    ScheduledJobInfo,
)
from .registry import JobRegistry

logger = logging.getLogger(__name__)


class RemoteClient(Protocol):
    def validate_app(self, app_name: str) -> bool: ...
    def get_app_status(self, app_name: str) -> AppStatus: ...
    def turn_on_app(self, app_name: str) -> None: ...
    def turn_off_app(self, app_name: str) -> None: ...


class SchedulerController:
    """Maps configured AppSchedules onto live jobs and records every action."""

    def __init__(
        self,
        client: RemoteClient,
        apps: Optional[list[AppSchedule]] = None,
        action_log: Optional[ActionLog] = None,
        registry: Optional[JobRegistry] = None,
    ) -> None:
        self.client = client
        self.action_log = action_log if action_log is not None else ActionLog()
        self.registry = registry if registry is not None else JobRegistry()
        self._apps: dict[str, AppSchedule] = {a.name: a for a in apps or []}
        self._state = SchedulerState.STOPPED
        self._lock = threading.RLock()
        self.warnings: list[MalformedScheduleError] = []

    # --- Properties ---

    @property
    def apps(self) -> list[AppSchedule]:
        return list(self._apps.values())

    @property
    def app_names(self) -> list[str]:
        return list(self._apps)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    # --- Lifecycle ---

    def _validate_app(self, app_name: str) -> None:
        try:
            ok = self.client.validate_app(app_name)
        except RemoteActionError as e:
            logger.error("App validation failed for %s: %s", app_name, e)
            raise ValidationError(app_name, f"App {app_name} is not accessible: {e}") from e
        if not ok:
            logger.error("App validation failed for %s", app_name)
            raise ValidationError(app_name)
        logger.info("App %s validated successfully", app_name)

    def start(self) -> list[MalformedScheduleError]:
        """Validate every app, then schedule their jobs and start the timer.

        Raises ValidationError before anything is scheduled if an app is
        unreachable. Returns the schedules skipped as malformed.
        """
        with self._lock:
            if self.is_running:
                logger.info("Scheduler already running; start() ignored")
                return list(self.warnings)

            logger.info("Starting scheduler...")
            for app in self._apps.values():
                self._validate_app(app.name)

            self.warnings = []
            for app in self._apps.values():
                self.warnings.extend(self.registry.register(app, self.fire))
            self.registry.start_timer()
            self._state = SchedulerState.RUNNING

        logger.info("Scheduler started with %d scheduled tasks", len(self.registry))
        if self.warnings:
            logger.warning(
                "%d schedule(s) skipped as malformed", len(self.warnings)
            )
        return list(self.warnings)

    def stop(self) -> None:
        """Stop every job. Always succeeds."""
        with self._lock:
            logger.info("Stopping scheduler...")
            self.registry.stop_all()
            self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    def shutdown(self) -> None:
        """Entry point for the hosting process on exit."""
        logger.info("Shutting down gracefully...")
        self.stop()

    def add_app(self, schedule: AppSchedule) -> list[MalformedScheduleError]:
        """Validate and add (or replace) an app; schedule it now if running."""
        self._validate_app(schedule.name)
        skipped: list[MalformedScheduleError] = []
        with self._lock:
            self._apps[schedule.name] = schedule
            if self.is_running:
                skipped = self.registry.register(schedule, self.fire)
                self.warnings.extend(skipped)
        logger.info("Added app to scheduler: %s", schedule.name)
        return skipped

    def remove_app(self, app_name: str) -> bool:
        """Unschedule and drop an app. Returns False if it was not configured."""
        with self._lock:
            self.registry.unregister(app_name)
            self.warnings = [w for w in self.warnings if w.app_name != app_name]
            removed = self._apps.pop(app_name, None) is not None
        if removed:
            logger.info("Removed app from scheduler: %s", app_name)
        return removed

    # --- Actions ---

    def _current_state(self, app_name: str) -> Optional[AppState]:
        """Best-effort state read; never blocks the action."""
        try:
            return self.client.get_app_status(app_name).state
        except Exception as e:
            logger.warning("Could not read state of %s: %s", app_name, e)
            return None

    def execute_action(
        self, app_name: str, action: Action, raise_errors: bool = True
    ) -> ActionRecord:
        """Run one turn-on/turn-off and append the outcome to the action log.

        With ``raise_errors`` the collaborator's exception is re-raised after
        being recorded; otherwise the failed record is returned.
        """
        action = Action(action)
        previous = self._current_state(app_name)
        error: Optional[Exception] = None
        message: Optional[str] = None
        try:
            if action is Action.TURN_ON:
                self.client.turn_on_app(app_name)
            else:
                self.client.turn_off_app(app_name)
        except RemoteActionError as e:
            error, message = e, e.message
        except Exception as e:
            logger.error(
                "Unexpected error during %s of %s", action.value, app_name, exc_info=True
            )
            error, message = e, str(e)[:500] or type(e).__name__

        new_state = self._current_state(app_name)
        record = ActionRecord(
            app_name=app_name,
            action=action,
            success=error is None,
            error=message,
            previous_state=previous,
            new_state=new_state,
        )
        self.action_log.append(record)

        if error is not None:
            logger.error("Could not %s app %s: %s", action.value, app_name, error)
            if raise_errors:
                raise error
        else:
            logger.info("App %s %s completed", app_name, action.value)
        return record

    def fire(self, app_name: str, action: Action) -> None:
        """Cron callback. Records the outcome and never raises."""
        logger.info("Scheduled task: %s app %s", action.value, app_name)
        try:
            self.execute_action(app_name, action, raise_errors=False)
        except Exception as e:
            logger.error(
                "Scheduled task %s for %s failed unexpectedly",
                action.value, app_name, exc_info=True,
            )
            try:
                self.action_log.append(ActionRecord(
                    app_name=app_name,
                    action=action,
                    success=False,
                    error=str(e)[:500] or type(e).__name__,
                ))
            except Exception:
                logger.error("Could not record failed %s for %s", action.value, app_name)

    def turn_on(self, app_name: str) -> ActionRecord:
        logger.info("Manual control: Turning ON %s", app_name)
        return self.execute_action(app_name, Action.TURN_ON)

    def turn_off(self, app_name: str) -> ActionRecord:
        logger.info("Manual control: Turning OFF %s", app_name)
        return self.execute_action(app_name, Action.TURN_OFF)

    # --- Queries ---

    def task_status(self) -> list[ScheduledJobInfo]:
        return self.registry.snapshot()

    def get_stats(self, days: int = 30) -> ActionStatistics:
        return self.action_log.statistics(days)

    def get_history(self, days: int = 7) -> list[ActionRecord]:
        return self.action_log.query(since_days=days)

    def history_report(self, days: int = 7) -> str:
        return self.action_log.generate_report(days)
