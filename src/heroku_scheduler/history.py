"""Action history -- bounded, durable audit log of turn-on/turn-off attempts.

Records live in a single SQLite table ordered by an autoincrement id, so
insertion order is the only key. Every append commits immediately and
trims the table back to the configured capacity, dropping the oldest rows.
A process-local lock serializes the insert+trim so concurrent cron firings
never lose updates.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from . import config
from .config import RECENT_FAILURES_LIMIT
from .models import (
    Action,
    ActionRecord,
    ActionStatistics,
    AppActionCounts,
    AppState,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS action_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    app_name TEXT NOT NULL,
    action TEXT NOT NULL,
    success INTEGER NOT NULL,
    error_message TEXT,
    previous_state TEXT,
    new_state TEXT
);
CREATE INDEX IF NOT EXISTS idx_action_history_timestamp ON action_history(timestamp);
CREATE INDEX IF NOT EXISTS idx_action_history_app ON action_history(app_name);
"""


def _ts(dt: datetime) -> str:
    """Fixed-width UTC ISO string so text comparison matches time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _cutoff(days: int) -> str:
    return _ts(datetime.now(timezone.utc) - timedelta(days=days))


def _row_to_record(row: sqlite3.Row) -> ActionRecord:
    return ActionRecord(
        timestamp=datetime.fromisoformat(row["timestamp"]),
        app_name=row["app_name"],
        action=Action(row["action"]),
        success=bool(row["success"]),
        error=row["error_message"],
        previous_state=AppState(row["previous_state"]) if row["previous_state"] else None,
        new_state=AppState(row["new_state"]) if row["new_state"] else None,
    )


class ActionLog:
    """Append-only, size-bounded store of ActionRecords, newest first."""

    def __init__(
        self,
        path: Optional[Path | str] = None,
        capacity: Optional[int] = None,
    ) -> None:
        self.path = Path(path) if path else config.HISTORY_DB_PATH
        self.capacity = capacity if capacity is not None else config.HISTORY_MAX_ENTRIES
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._lock = threading.Lock()
        self._ensure_table()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=30)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_table(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()

    # --- Writes ---

    def append(self, record: ActionRecord) -> ActionRecord:
        """Persist *record* and evict the oldest rows beyond capacity."""
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    """INSERT INTO action_history
                    (timestamp, app_name, action, success, error_message,
                     previous_state, new_state)
                    VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        _ts(record.timestamp),
                        record.app_name,
                        record.action.value,
                        int(record.success),
                        record.error,
                        record.previous_state.value if record.previous_state else None,
                        record.new_state.value if record.new_state else None,
                    ),
                )
                conn.execute(
                    """DELETE FROM action_history WHERE id NOT IN (
                        SELECT id FROM action_history ORDER BY id DESC LIMIT ?
                    )""",
                    (self.capacity,),
                )
                conn.commit()
            finally:
                conn.close()
        logger.debug(
            "History entry added: %s %s success=%s",
            record.app_name, record.action.value, record.success,
        )
        return record

    def cleanup(self, older_than_days: int = 90) -> int:
        """Permanently drop records older than the threshold. Returns count removed."""
        with self._lock:
            conn = self._connect()
            try:
                cur = conn.execute(
                    "DELETE FROM action_history WHERE timestamp < ?",
                    (_cutoff(older_than_days),),
                )
                conn.commit()
                removed = cur.rowcount
            finally:
                conn.close()
        if removed:
            logger.info("Cleaned up %d old history entries", removed)
        return removed

    # --- Reads ---

    def query(
        self,
        since_days: Optional[int] = None,
        app_name: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ActionRecord]:
        """Records newest first, optionally windowed to the trailing *since_days*."""
        clauses = []
        params: list = []
        if since_days is not None:
            clauses.append("timestamp >= ?")
            params.append(_cutoff(since_days))
        if app_name:
            clauses.append("app_name = ?")
            params.append(app_name)
        sql = "SELECT * FROM action_history"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def app_history(self, app_name: str, limit: Optional[int] = None) -> list[ActionRecord]:
        return self.query(app_name=app_name, limit=limit)

    def __len__(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM action_history").fetchone()[0]
        finally:
            conn.close()

    def statistics(self, since_days: int = 30) -> ActionStatistics:
        """Tally the trailing window: totals, per-app counts, recent failures.

        A failure of either action only bumps the app's ``failures`` counter.
        Success rate is 100.0 when the window is empty.
        """
        records = self.query(since_days=since_days)
        successful = sum(1 for r in records if r.success)
        failed = len(records) - successful

        by_app: dict[str, AppActionCounts] = {}
        for r in records:
            counts = by_app.setdefault(r.app_name, AppActionCounts())
            if not r.success:
                counts.failures += 1
            elif r.action is Action.TURN_ON:
                counts.turn_on += 1
            else:
                counts.turn_off += 1

        return ActionStatistics(
            days=since_days,
            total_actions=len(records),
            successful_actions=successful,
            failed_actions=failed,
            success_rate=(successful / len(records) * 100) if records else 100.0,
            actions_by_app=by_app,
            recent_failures=[r for r in records if not r.success][:RECENT_FAILURES_LIMIT],
        )

    def generate_report(self, days: int = 7) -> str:
        """Human-readable history report for the trailing *days*."""
        stats = self.statistics(days)
        lines = [
            "=" * 60,
            f"SCHEDULE HISTORY REPORT (Last {days} days)",
            "=" * 60,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            "OVERALL STATISTICS",
            "-" * 30,
            f"Total Actions: {stats.total_actions}",
            f"Successful: {stats.successful_actions}",
            f"Failed: {stats.failed_actions}",
            f"Success Rate: {stats.success_rate:.1f}%",
            "",
        ]

        if stats.actions_by_app:
            lines += ["BY APPLICATION", "-" * 30]
            for app_name, counts in stats.actions_by_app.items():
                lines += [
                    f"{app_name}:",
                    f"  Turn On: {counts.turn_on}",
                    f"  Turn Off: {counts.turn_off}",
                    f"  Failures: {counts.failures}",
                    "",
                ]

        if stats.recent_failures:
            lines += ["RECENT FAILURES", "-" * 30]
            for failure in stats.recent_failures:
                when = failure.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
                lines.append(f"{when} - {failure.app_name} ({failure.action.value})")
                if failure.error:
                    lines.append(f"   Error: {failure.error}")
            lines.append("")

        lines.append("=" * 60)
        return "\n".join(lines) + "\n"
