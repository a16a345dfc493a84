"""Shared test fixtures."""

from unittest.mock import MagicMock

import pytest

from heroku_scheduler.errors import RemoteActionError
from heroku_scheduler.models import AppStatus, Dyno


@pytest.fixture(autouse=True)
def temp_data_dir(monkeypatch, tmp_path):
    """Override data paths to use a temp dir for each test."""
    import heroku_scheduler.config as config

    data_dir = tmp_path / "data"
    data_dir.mkdir()

    # Keep a developer's .env out of the tests
    monkeypatch.setattr(config, "_env_initialized", True)

    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "HISTORY_DB_PATH", data_dir / "schedule_history.db")
    monkeypatch.setattr(config, "DAEMON_PID_FILE", data_dir / "scheduler.pid")
    monkeypatch.setattr(config, "DAEMON_LOG_FILE", data_dir / "scheduler.log")
    monkeypatch.setattr(config, "HISTORY_MAX_ENTRIES", 1000)
    for name in (
        "DEFAULT_SCHEDULE_ON",
        "DEFAULT_SCHEDULE_OFF",
        "DEFAULT_TIMEZONE",
        "LOG_LEVEL",
        "HEROKU_API_BASE",
    ):
        monkeypatch.setattr(config, name, getattr(config, name))

    for var in (
        "HEROKU_API_TOKEN",
        "HEROKU_APP_NAME",
        "HEROKU_APP_NAMES",
        "HEROKU_SCHEDULER_DATA_DIR",
        "HISTORY_MAX_ENTRIES",
        "SCHEDULE_ON",
        "SCHEDULE_OFF",
        "TIMEZONE",
    ):
        monkeypatch.delenv(var, raising=False)

    return data_dir


class FakeHeroku:
    """In-memory stand-in for HerokuClient.

    Tracks a running flag per app; ``fail`` maps app name to an error
    message raised by turn_on/turn_off.
    """

    def __init__(self, apps=None, running=None, fail=None, unreachable=None):
        self.apps = set(apps or [])
        self.running = dict(running or {})
        self.fail = dict(fail or {})
        self.unreachable = set(unreachable or [])
        self.calls = []

    def validate_app(self, app_name):
        return app_name in self.apps and app_name not in self.unreachable

    def get_app_status(self, app_name):
        if app_name in self.unreachable:
            raise RemoteActionError(f"Failed to get dynos for {app_name}: not found")
        running = self.running.get(app_name, False)
        dynos = [Dyno(name="web.1", type="web", size="basic", state="up")] if running else []
        return AppStatus(name=app_name, running=running, dynos=dynos)

    def get_formation(self, app_name):
        return [{"type": "web", "quantity": 1 if self.running.get(app_name) else 0}]

    def get_app(self, app_name):
        return {"name": app_name, "web_url": f"https://{app_name}.herokuapp.com/"}

    def turn_on_app(self, app_name):
        self.calls.append(("on", app_name))
        if app_name in self.fail:
            raise RemoteActionError(self.fail[app_name])
        self.running[app_name] = True

    def turn_off_app(self, app_name):
        self.calls.append(("off", app_name))
        if app_name in self.fail:
            raise RemoteActionError(self.fail[app_name])
        self.running[app_name] = False


@pytest.fixture
def fake_heroku():
    return FakeHeroku(apps=["alpha", "beta"])


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.validate_app.return_value = True
    client.get_app_status.return_value = AppStatus(name="alpha")
    return client
