"""Exception types raised by the scheduler."""

from __future__ import annotations

from typing import Optional


class SchedulerError(RuntimeError):
    """Base class for scheduler errors."""


class ConfigurationError(SchedulerError):
    """Missing or invalid configuration. Fatal at startup."""


class ValidationError(SchedulerError):
    """A configured app is not reachable through the Heroku API."""

    def __init__(self, app_name: str, message: str = "") -> None:
        self.app_name = app_name
        super().__init__(message or f"App {app_name} not found or not accessible")


class RemoteActionError(SchedulerError):
    """A Heroku Platform API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class MalformedScheduleError(SchedulerError):
    """A cron expression or timezone could not be turned into a trigger."""

    def __init__(self, app_name: str, action: str, expression: str, reason: str) -> None:
        self.app_name = app_name
        self.action = action
        self.expression = expression
        self.reason = reason
        super().__init__(
            f"Invalid schedule for {app_name} ({action}): {expression!r}: {reason}"
        )
