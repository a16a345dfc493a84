"""Job registry -- one APScheduler cron job per (app, action) key.

Owns the background timer and the map of live jobs. Registering an app
retires whatever jobs it already had before adding new ones, so a key
never has two live jobs. Malformed cron expressions or timezones are
logged and returned to the caller instead of raised, so one bad entry
never blocks the rest of the configuration.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import JOB_MISFIRE_GRACE_TIME
from .errors import MalformedScheduleError
from .models import Action, AppSchedule, JobKey, ScheduledJobInfo

logger = logging.getLogger(__name__)

# Crontab numbering: 0 and 7 are Sunday. APScheduler numbers Monday as 0,
# so numeric day-of-week fields are rewritten to names before use.
_CRON_DAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]

FireCallback = Callable[[str, Action], None]


def _cron_day_of_week(field: str) -> str:
    """Translate a crontab day-of-week field into APScheduler day names."""
    if field in ("*", "?"):
        return "*"
    if re.search(r"[a-zA-Z]", field):
        return field.lower()

    days: set[int] = set()
    for part in field.split(","):
        span, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if span == "*":
            start, end = 0, 6
        elif "-" in span:
            first, _, last = span.partition("-")
            start, end = int(first), int(last)
        else:
            start = int(span)
            end = 7 if step_text else start
        if not (0 <= start <= 7 and 0 <= end <= 7) or start > end:
            raise ValueError(f"day-of-week out of range: {part!r}")
        days.update(d % 7 for d in range(start, end + 1, step))
    return ",".join(_CRON_DAY_NAMES[d] for d in sorted(days))


def build_trigger(expression: str, timezone: str) -> CronTrigger:
    """Build a CronTrigger from a 5-field crontab or a 6-field (seconds-first) expression.

    Raises ValueError (or KeyError for an unknown timezone) when invalid.
    """
    fields = expression.split()
    if len(fields) == 5:
        second = "0"
        minute, hour, day, month, dow = fields
    elif len(fields) == 6:
        second, minute, hour, day, month, dow = fields
    else:
        raise ValueError(f"expected 5 or 6 fields, got {len(fields)}")

    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_cron_day_of_week(dow),
        timezone=timezone,
    )


def is_valid_cron(expression: str, timezone: str = "UTC") -> bool:
    try:
        build_trigger(expression, timezone)
        return True
    except (ValueError, KeyError, TypeError):
        return False


class JobRegistry:
    """Owns the live scheduled jobs, keyed by JobKey(app_name, action)."""

    def __init__(
        self,
        scheduler_factory: Callable[[], BackgroundScheduler] = BackgroundScheduler,
    ) -> None:
        self._scheduler_factory = scheduler_factory
        self._scheduler: Optional[BackgroundScheduler] = None
        self._jobs: dict[JobKey, dict] = {}
        self._lock = threading.RLock()

    def _ensure_scheduler(self) -> BackgroundScheduler:
        # A shut-down APScheduler cannot be restarted, so each run gets a fresh one.
        if self._scheduler is None:
            self._scheduler = self._scheduler_factory()
        return self._scheduler

    @property
    def timer_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start_timer(self) -> None:
        """Start the background timer so registered jobs begin firing."""
        with self._lock:
            scheduler = self._ensure_scheduler()
            if not scheduler.running:
                scheduler.start()
                logger.info("Timer started with %d job(s)", len(self._jobs))

    def register(
        self, schedule: AppSchedule, callback: FireCallback
    ) -> list[MalformedScheduleError]:
        """Schedule the app's on/off jobs, retiring any it already had.

        Returns the schedules that were skipped as malformed.
        """
        skipped: list[MalformedScheduleError] = []
        with self._lock:
            self.unregister(schedule.name)
            scheduler = self._ensure_scheduler()

            for action in (Action.TURN_ON, Action.TURN_OFF):
                expression = schedule.expression_for(action)
                if not expression:
                    continue
                key = JobKey(schedule.name, action)
                try:
                    trigger = build_trigger(expression, schedule.timezone)
                except (ValueError, KeyError, TypeError) as e:
                    err = MalformedScheduleError(
                        schedule.name, action.value, expression, str(e) or type(e).__name__
                    )
                    logger.warning("Skipping malformed schedule: %s", err)
                    skipped.append(err)
                    continue

                scheduler.add_job(
                    callback,
                    trigger=trigger,
                    args=[schedule.name, action],
                    id=key.job_id,
                    name=key.job_id,
                    replace_existing=True,
                    misfire_grace_time=JOB_MISFIRE_GRACE_TIME,
                    coalesce=True,
                )
                self._jobs[key] = {
                    "expression": expression,
                    "timezone": schedule.timezone,
                }
                logger.info(
                    "Scheduled %s for %s: %s (%s)",
                    action.suffix.upper(), schedule.name, expression, schedule.timezone,
                )
        return skipped

    def unregister(self, app_name: str) -> int:
        """Remove every job belonging to *app_name*. Returns how many were removed."""
        with self._lock:
            keys = [k for k in self._jobs if k.app_name == app_name]
            for key in keys:
                if self._scheduler is not None and self._scheduler.get_job(key.job_id):
                    self._scheduler.remove_job(key.job_id)
                del self._jobs[key]
                logger.info("Removed task: %s", key.job_id)
            return len(keys)

    def stop_all(self, wait: bool = True) -> None:
        """Stop every job and clear the registry. Safe to call repeatedly."""
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
            count = len(self._jobs)
            self._jobs.clear()
            if scheduler is None:
                return
            if scheduler.running:
                scheduler.remove_all_jobs()
                scheduler.shutdown(wait=wait)
            if count:
                logger.info("Stopped %d task(s)", count)

    def _live_job(self, key: JobKey) -> Optional[Job]:
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(key.job_id)

    def snapshot(self) -> list[ScheduledJobInfo]:
        """Read-only view of the registered jobs for status reporting."""
        with self._lock:
            infos = []
            for key, meta in self._jobs.items():
                job = self._live_job(key)
                next_fire = None
                if job is not None and not job.pending:
                    next_fire = job.next_run_time
                infos.append(ScheduledJobInfo(
                    name=key.job_id,
                    app_name=key.app_name,
                    action=key.action,
                    cron_expression=meta["expression"],
                    timezone=meta["timezone"],
                    running=next_fire is not None and self.timer_running,
                    next_fire_time=next_fire,
                ))
            return infos

    def get(self, key: JobKey) -> Optional[Job]:
        with self._lock:
            if key not in self._jobs:
                return None
            return self._live_job(key)

    def keys(self) -> list[JobKey]:
        with self._lock:
            return list(self._jobs)

    def __contains__(self, key: object) -> bool:
        return key in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)
