"""Paths, constants, environment loading and app schedule configuration."""

import logging
import os
import re
from pathlib import Path

from .errors import ConfigurationError
from .models import AppSchedule

logger = logging.getLogger(__name__)

# Base directories
PROJECT_ROOT = Path(__file__).parent.parent.parent


def _load_env() -> None:
    """Load .env file from project root if present. Existing env vars take priority."""
    env_file = PROJECT_ROOT / ".env"
    if not env_file.exists():
        return
    with open(env_file) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if not os.environ.get(key):
                os.environ[key] = value


_env_initialized = False


def init() -> None:
    """Load .env and set env-dependent constants. Safe to call multiple times."""
    global _env_initialized
    if _env_initialized:
        return
    _load_env()
    _init_env_vars()
    _env_initialized = True


def _init_env_vars() -> None:
    """Read environment variables into module-level constants."""
    global DATA_DIR, HISTORY_DB_PATH, DAEMON_PID_FILE, DAEMON_LOG_FILE
    global DEFAULT_SCHEDULE_ON, DEFAULT_SCHEDULE_OFF, DEFAULT_TIMEZONE
    global LOG_LEVEL, HISTORY_MAX_ENTRIES, HEROKU_API_BASE

    data_dir = os.environ.get("HEROKU_SCHEDULER_DATA_DIR", "")
    if data_dir:
        DATA_DIR = Path(os.path.expanduser(data_dir))
        HISTORY_DB_PATH = DATA_DIR / "schedule_history.db"
        DAEMON_PID_FILE = DATA_DIR / "scheduler.pid"
        DAEMON_LOG_FILE = DATA_DIR / "scheduler.log"

    DEFAULT_SCHEDULE_ON = os.environ.get("SCHEDULE_ON", "0 9 * * 1-5")
    DEFAULT_SCHEDULE_OFF = os.environ.get("SCHEDULE_OFF", "0 18 * * 1-5")
    DEFAULT_TIMEZONE = os.environ.get("TIMEZONE", "America/New_York")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    HEROKU_API_BASE = os.environ.get("HEROKU_API_BASE", "https://api.heroku.com")

    try:
        HISTORY_MAX_ENTRIES = int(os.environ.get("HISTORY_MAX_ENTRIES", "1000"))
        if HISTORY_MAX_ENTRIES < 1:
            raise ValueError(HISTORY_MAX_ENTRIES)
    except (ValueError, TypeError):
        HISTORY_MAX_ENTRIES = 1000
        logger.warning(
            "Invalid HISTORY_MAX_ENTRIES env var, defaulting to 1000"
        )


DATA_DIR = PROJECT_ROOT / "data"
HISTORY_DB_PATH = DATA_DIR / "schedule_history.db"
DAEMON_PID_FILE = DATA_DIR / "scheduler.pid"
DAEMON_LOG_FILE = DATA_DIR / "scheduler.log"

# --- Heroku Platform API ---
HEROKU_API_BASE = "https://api.heroku.com"
HEROKU_API_ACCEPT = "application/vnd.heroku+json; version=3"
HEROKU_API_TIMEOUT = 30  # seconds
DEFAULT_PROCESS_TYPE = "web"

# --- Schedules ---
DEFAULT_SCHEDULE_ON = "0 9 * * 1-5"    # 9 AM weekdays
DEFAULT_SCHEDULE_OFF = "0 18 * * 1-5"  # 6 PM weekdays
DEFAULT_TIMEZONE = "America/New_York"
JOB_MISFIRE_GRACE_TIME = 300  # seconds a late cron firing is still allowed to run

# --- History ---
HISTORY_MAX_ENTRIES = 1000
HISTORY_DEFAULT_DAYS = 7
STATS_DEFAULT_DAYS = 30
CLEANUP_DEFAULT_DAYS = 90
RECENT_FAILURES_LIMIT = 10

# --- Status ---
STATUS_MAX_WORKERS = 8

# --- Logging ---
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

_TOKEN_RE = re.compile(
    r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$"
)
_APP_NAME_RE = re.compile(r"^[a-z0-9-]+$")


def _env_prefix(app_name: str) -> str:
    """Env var prefix for per-app overrides (``my-app`` -> ``MY_APP``)."""
    return re.sub(r"[^A-Z0-9]", "_", app_name.upper())


def get_api_token() -> str:
    """Return the Heroku API token or raise ConfigurationError."""
    init()
    token = os.environ.get("HEROKU_API_TOKEN", "").strip()
    if not token:
        raise ConfigurationError(
            "Required environment variable HEROKU_API_TOKEN is not set"
        )
    return token


def load_app_schedules() -> list[AppSchedule]:
    """Build the configured app schedules from the environment.

    ``HEROKU_APP_NAME`` adds one app with the default schedules.
    ``HEROKU_APP_NAMES`` adds a comma-separated list where each app may
    override its schedules with ``<NAME>_SCHEDULE_ON``, ``<NAME>_SCHEDULE_OFF``
    and ``<NAME>_TIMEZONE``. A name listed twice keeps the last definition.
    """
    init()
    apps: dict[str, AppSchedule] = {}

    single = os.environ.get("HEROKU_APP_NAME", "").strip()
    if single:
        apps[single] = AppSchedule(
            name=single,
            turn_on_expr=DEFAULT_SCHEDULE_ON,
            turn_off_expr=DEFAULT_SCHEDULE_OFF,
            timezone=DEFAULT_TIMEZONE,
        )

    multiple = os.environ.get("HEROKU_APP_NAMES", "")
    for raw in multiple.split(","):
        name = raw.strip()
        if not name:
            continue
        prefix = _env_prefix(name)
        apps[name] = AppSchedule(
            name=name,
            turn_on_expr=os.environ.get(f"{prefix}_SCHEDULE_ON") or DEFAULT_SCHEDULE_ON,
            turn_off_expr=os.environ.get(f"{prefix}_SCHEDULE_OFF") or DEFAULT_SCHEDULE_OFF,
            timezone=os.environ.get(f"{prefix}_TIMEZONE") or DEFAULT_TIMEZONE,
        )

    if not apps:
        raise ConfigurationError(
            "No Heroku apps configured. Set HEROKU_APP_NAME or HEROKU_APP_NAMES"
        )
    return list(apps.values())


def validate_config(token: str, apps: list[AppSchedule]) -> None:
    """Sanity-check the token and app names. Warns on odd values, raises on empty names."""
    if not _TOKEN_RE.match(token):
        logger.warning("Heroku API token format appears to be invalid")

    for app in apps:
        if not app.name or not app.name.strip():
            raise ConfigurationError("App name cannot be empty")
        if not _APP_NAME_RE.match(app.name):
            logger.warning(
                "App name %r may not follow Heroku naming conventions", app.name
            )

    logger.info("Configuration validation completed")


def config_summary(apps: list[AppSchedule]) -> dict:
    """Summary dict for startup logging (no secrets)."""
    return {
        "apps_count": len(apps),
        "apps": [
            {
                "name": a.name,
                "schedule_on": a.turn_on_expr,
                "schedule_off": a.turn_off_expr,
                "timezone": a.timezone,
            }
            for a in apps
        ],
        "default_timezone": DEFAULT_TIMEZONE,
        "log_level": LOG_LEVEL,
        "history_db": str(HISTORY_DB_PATH),
        "history_max_entries": HISTORY_MAX_ENTRIES,
    }


def ensure_data_dirs() -> None:
    """Create all required data directories if they don't exist."""
    init()
    DATA_DIR.mkdir(parents=True, exist_ok=True)
