"""Command-line interface for the Heroku scheduler.

Usage:
    heroku-scheduler start
    heroku-scheduler status [--app NAME]
    heroku-scheduler history [--days N]
    heroku-scheduler health
    heroku-scheduler stats [--days N]
    heroku-scheduler on --app NAME
    heroku-scheduler off --app NAME
    heroku-scheduler cleanup [--days N]

Can also be run as: python -m heroku_scheduler.cli
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from . import config
from .config import (
    CLEANUP_DEFAULT_DAYS,
    HISTORY_DEFAULT_DAYS,
    STATS_DEFAULT_DAYS,
    config_summary,
    get_api_token,
    load_app_schedules,
    validate_config,
)
from .daemon import SchedulerDaemon, configure_logging, get_daemon_pid
from .errors import ConfigurationError, RemoteActionError, ValidationError
from .heroku import HerokuClient
from .history import ActionLog
from .scheduler import SchedulerController
from .status import StatusReporter

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="heroku-scheduler",
        description="Turn Heroku apps on and off on a cron schedule",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: LOG_LEVEL env var or INFO)",
    )
    sub = parser.add_subparsers(dest="command", metavar="<command>")
    sub.required = True

    sub.add_parser("start", help="Start the scheduler daemon")

    p = sub.add_parser("status", help="Show status of apps (or a specific app)")
    p.add_argument("--app", "-a", help="App name")

    p = sub.add_parser("history", help="Show schedule history")
    p.add_argument("--days", "-d", type=_positive_int, default=HISTORY_DEFAULT_DAYS)

    sub.add_parser("health", help="Perform health check on all apps")

    p = sub.add_parser("stats", help="Show scheduler statistics")
    p.add_argument("--days", "-d", type=_positive_int, default=STATS_DEFAULT_DAYS)

    p = sub.add_parser("on", help="Manually turn on an app")
    p.add_argument("--app", "-a", required=True, help="App name")

    p = sub.add_parser("off", help="Manually turn off an app")
    p.add_argument("--app", "-a", required=True, help="App name")

    p = sub.add_parser("cleanup", help="Delete history entries older than N days")
    p.add_argument("--days", "-d", type=_positive_int, default=CLEANUP_DEFAULT_DAYS)

    return parser


def _build_client() -> HerokuClient:
    return HerokuClient(get_api_token(), base_url=config.HEROKU_API_BASE)


def _build_controller(client: HerokuClient) -> SchedulerController:
    apps = load_app_schedules()
    validate_config(get_api_token(), apps)
    logger.info("Configuration: %s", config_summary(apps))
    return SchedulerController(client, apps, action_log=ActionLog())


# --- Commands ---

def cmd_start(args) -> int:
    pid = get_daemon_pid()
    if pid is not None:
        print(f"Scheduler already running (pid={pid}). Stop it first.", file=sys.stderr)
        return 1
    client = _build_client()
    controller = _build_controller(client)
    daemon = SchedulerDaemon(controller, reporter=StatusReporter(client))
    daemon.start()
    return 0


def cmd_status(args) -> int:
    client = _build_client()
    reporter = StatusReporter(client)
    if args.app:
        status = reporter.get_status(args.app)
        print(f"\nApp: {status.name}")
        print(f"Status: {'RUNNING' if status.running else 'STOPPED'}")
        print(f"Dynos: {len(status.dynos)}")
        for dyno in status.dynos:
            print(f"  - {dyno.type}: {dyno.state} ({dyno.size})")
        if status.error:
            print(f"Error: {status.error}")
            return 1
        return 0
    apps = load_app_schedules()
    print(reporter.generate_status_report([a.name for a in apps]))
    return 0


def cmd_history(args) -> int:
    print(ActionLog().generate_report(args.days))
    return 0


def cmd_health(args) -> int:
    client = _build_client()
    apps = load_app_schedules()
    health = StatusReporter(client).health_check([a.name for a in apps])

    print("\nHEALTH CHECK REPORT")
    print("=" * 40)
    print(f"Overall Health: {'HEALTHY' if health.healthy else 'ISSUES FOUND'}")
    print(f"Running Apps: {health.summary.running}")
    print(f"Stopped Apps: {health.summary.stopped}")
    print(f"Apps with Errors: {health.summary.errors}")
    if health.issues:
        print("\nIssues Found:")
        for issue in health.issues:
            print(f"  - {issue}")
    print("=" * 40)
    return 0 if health.healthy else 1


def cmd_stats(args) -> int:
    stats = ActionLog().statistics(args.days)

    print(f"\nSCHEDULER STATISTICS (Last {stats.days} days)")
    print("=" * 40)
    print(f"Total Actions: {stats.total_actions}")
    print(f"Success Rate: {stats.success_rate:.1f}%")
    print(f"Successful Actions: {stats.successful_actions}")
    print(f"Failed Actions: {stats.failed_actions}")
    if stats.actions_by_app:
        print("\nBy Application:")
        for app_name, counts in stats.actions_by_app.items():
            print(f"  {app_name}:")
            print(f"    Turn On: {counts.turn_on}")
            print(f"    Turn Off: {counts.turn_off}")
            print(f"    Failures: {counts.failures}")
    print("=" * 40)
    return 0


def _manual(args, turn_on: bool) -> int:
    client = _build_client()
    controller = SchedulerController(client, action_log=ActionLog())
    verb = "on" if turn_on else "off"
    try:
        record = controller.turn_on(args.app) if turn_on else controller.turn_off(args.app)
    except RemoteActionError as e:
        print(f"Failed to turn {verb} {args.app}: {e}", file=sys.stderr)
        return 1
    state = record.new_state.value if record.new_state else "unknown"
    print(f"Turned {verb} {args.app} (state: {state})")
    return 0


def cmd_on(args) -> int:
    return _manual(args, turn_on=True)


def cmd_off(args) -> int:
    return _manual(args, turn_on=False)


def cmd_cleanup(args) -> int:
    removed = ActionLog().cleanup(args.days)
    print(f"Removed {removed} history entr{'y' if removed == 1 else 'ies'} older than {args.days} days")
    return 0


COMMANDS = {
    "start": cmd_start,
    "status": cmd_status,
    "history": cmd_history,
    "health": cmd_health,
    "stats": cmd_stats,
    "on": cmd_on,
    "off": cmd_off,
    "cleanup": cmd_cleanup,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config.init()
    config.ensure_data_dirs()
    log_file = config.DAEMON_LOG_FILE if args.command == "start" else None
    configure_logging(args.log_level or config.LOG_LEVEL, log_file)

    try:
        return COMMANDS[args.command](args)
    except (ConfigurationError, ValidationError) as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except RemoteActionError as e:
        logger.error("CLI command failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
