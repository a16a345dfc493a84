"""Pydantic data models for the Heroku scheduler."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Enums ---

class Action(str, Enum):
    TURN_ON = "turn_on"
    TURN_OFF = "turn_off"

    @property
    def suffix(self) -> str:
        """Short form used in job names (``on`` / ``off``)."""
        return "on" if self is Action.TURN_ON else "off"


class AppState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


# --- Schedules ---

class AppSchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Heroku app name (unique key)")
    turn_on_expr: Optional[str] = Field(default=None, description="Cron expression for turning on")
    turn_off_expr: Optional[str] = Field(default=None, description="Cron expression for turning off")
    timezone: str = Field(default="America/New_York")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("App name cannot be empty")
        return v

    def expression_for(self, action: Action) -> Optional[str]:
        return self.turn_on_expr if action is Action.TURN_ON else self.turn_off_expr


class JobKey(NamedTuple):
    app_name: str
    action: Action

    @property
    def job_id(self) -> str:
        return f"{self.app_name}-{self.action.suffix}"


class ScheduledJobInfo(BaseModel):
    name: str
    app_name: str
    action: Action
    cron_expression: str
    timezone: str
    running: bool
    next_fire_time: Optional[datetime] = None


# --- History ---

class ActionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    app_name: str
    action: Action
    success: bool
    error: Optional[str] = None
    previous_state: Optional[AppState] = None
    new_state: Optional[AppState] = None

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class AppActionCounts(BaseModel):
    turn_on: int = 0
    turn_off: int = 0
    failures: int = 0


class ActionStatistics(BaseModel):
    days: int
    total_actions: int = 0
    successful_actions: int = 0
    failed_actions: int = 0
    success_rate: float = 100.0
    actions_by_app: dict[str, AppActionCounts] = Field(default_factory=dict)
    recent_failures: list[ActionRecord] = Field(default_factory=list)


# --- Heroku resources ---

class Dyno(BaseModel):
    id: str = ""
    name: str = ""
    type: str = ""
    size: str = ""
    state: str = ""
    command: str = ""


class AppStatus(BaseModel):
    name: str
    running: bool = False
    dynos: list[Dyno] = Field(default_factory=list)
    formation: list[dict] = Field(default_factory=list)
    web_url: Optional[str] = None
    last_update: datetime = Field(default_factory=_utcnow)
    error: Optional[str] = None

    @property
    def state(self) -> AppState:
        return AppState.RUNNING if self.running else AppState.STOPPED


class HealthSummary(BaseModel):
    running: int = 0
    stopped: int = 0
    errors: int = 0


class HealthReport(BaseModel):
    healthy: bool
    issues: list[str] = Field(default_factory=list)
    summary: HealthSummary = Field(default_factory=HealthSummary)
