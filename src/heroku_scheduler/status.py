"""Status and health reporting across the configured apps.

Read-only: queries the Heroku API on demand and never touches scheduling.
One app failing to answer degrades only that app's entry.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Protocol

from .config import STATUS_MAX_WORKERS
from .errors import RemoteActionError
from .models import AppStatus, HealthReport, HealthSummary

logger = logging.getLogger(__name__)


class StatusClient(Protocol):
    def get_app_status(self, app_name: str) -> AppStatus: ...
    def get_formation(self, app_name: str) -> list[dict]: ...
    def get_app(self, app_name: str) -> dict: ...


class StatusReporter:
    def __init__(self, client: StatusClient, max_workers: int = STATUS_MAX_WORKERS) -> None:
        self.client = client
        self.max_workers = max(1, max_workers)

    def get_status(self, app_name: str) -> AppStatus:
        """Dynos, formation and web URL for one app; degraded on failure."""
        try:
            status = self.client.get_app_status(app_name)
            formation = self.client.get_formation(app_name)
            app = self.client.get_app(app_name)
        except RemoteActionError as e:
            logger.error("Failed to get status for %s: %s", app_name, e)
            return AppStatus(name=app_name, running=False, error=str(e)[:500])
        except Exception as e:
            logger.error("Unexpected error getting status for %s", app_name, exc_info=True)
            return AppStatus(name=app_name, running=False, error=str(e)[:500])

        return AppStatus(
            name=app_name,
            running=status.running,
            dynos=status.dynos,
            formation=formation,
            web_url=app.get("web_url"),
        )

    def get_all_statuses(self, app_names: list[str]) -> list[AppStatus]:
        """Fetch every app concurrently. Results follow the order of *app_names*."""
        if not app_names:
            return []
        workers = min(self.max_workers, len(app_names))
        results: dict[str, AppStatus] = {}
        with ThreadPoolExecutor(max_workers=workers) as ex:
            fut_map = {ex.submit(self.get_status, name): name for name in app_names}
            for fut in as_completed(fut_map):
                results[fut_map[fut]] = fut.result()
        return [results[name] for name in app_names]

    def generate_status_report(self, app_names: list[str]) -> str:
        statuses = self.get_all_statuses(app_names)
        lines = [
            "=" * 60,
            "HEROKU APPS STATUS REPORT",
            "=" * 60,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Total Apps: {len(statuses)}",
            "",
        ]
        for status in statuses:
            lines.append(status.name.upper())
            lines.append(f"   Status: {'RUNNING' if status.running else 'STOPPED'}")
            lines.append(f"   Dynos: {len(status.dynos)}")
            for dyno in status.dynos:
                lines.append(f"     - {dyno.type}: {dyno.state} ({dyno.size})")
            if status.web_url:
                lines.append(f"   URL: {status.web_url}")
            if status.error:
                lines.append(f"   Error: {status.error}")
            lines.append(
                f"   Last Check: {status.last_update.astimezone().strftime('%H:%M:%S')}"
            )
            lines.append("")

        running = sum(1 for s in statuses if s.running)
        lines += [
            "SUMMARY",
            "-" * 30,
            f"Running: {running}",
            f"Stopped: {len(statuses) - running}",
            "=" * 60,
        ]
        return "\n".join(lines) + "\n"

    def health_check(self, app_names: list[str]) -> HealthReport:
        """Flag running apps without dynos, crashed dynos, and idle dynos on running apps."""
        statuses = self.get_all_statuses(app_names)
        issues: list[str] = []
        errors = 0

        for status in statuses:
            if status.running and not status.dynos:
                issues.append(f"{status.name}: Reports running but has no dynos")
                errors += 1
            for dyno in status.dynos:
                if dyno.state == "crashed":
                    issues.append(f"{status.name}: Dyno {dyno.name} is crashed")
                    errors += 1
                if dyno.state == "idle" and status.running:
                    issues.append(f"{status.name}: Dyno {dyno.name} is idle")

        running = sum(1 for s in statuses if s.running)
        return HealthReport(
            healthy=not issues,
            issues=issues,
            summary=HealthSummary(
                running=running,
                stopped=len(statuses) - running,
                errors=errors,
            ),
        )
