"""Tests for the command-line interface."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from heroku_scheduler.cli import build_parser, main
from heroku_scheduler.errors import ValidationError
from heroku_scheduler.history import ActionLog
from heroku_scheduler.models import Action, ActionRecord


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("heroku_scheduler.cli.configure_logging"):
        yield


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("HEROKU_API_TOKEN", "01234567-89ab-cdef-0123-456789abcdef")
    monkeypatch.setenv("HEROKU_APP_NAMES", "alpha,beta")


@pytest.fixture
def heroku(fake_heroku):
    with patch("heroku_scheduler.cli.HerokuClient", return_value=fake_heroku):
        yield fake_heroku


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["history"])
        assert args.days == 7
        assert build_parser().parse_args(["stats"]).days == 30
        assert build_parser().parse_args(["cleanup"]).days == 90

    def test_days_must_be_positive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["history", "--days", "0"])

    def test_on_requires_app(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["on"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestConfigErrors:
    def test_missing_token(self, capsys):
        assert main(["status"]) == 1
        assert "HEROKU_API_TOKEN" in capsys.readouterr().err

    def test_missing_apps(self, monkeypatch, heroku, capsys):
        monkeypatch.setenv("HEROKU_API_TOKEN", "t")
        assert main(["health"]) == 1
        assert "No Heroku apps configured" in capsys.readouterr().err


class TestManualCommands:
    def test_on(self, env, heroku, capsys):
        assert main(["on", "--app", "alpha"]) == 0
        assert "Turned on alpha (state: running)" in capsys.readouterr().out
        assert ActionLog().query()[0].success is True

    def test_off_failure_exits_non_zero(self, env, heroku, capsys):
        heroku.fail["alpha"] = "Failed to scale alpha: forbidden"
        assert main(["off", "--app", "alpha"]) == 1
        assert "forbidden" in capsys.readouterr().err
        newest = ActionLog().query()[0]
        assert newest.success is False
        assert newest.action is Action.TURN_OFF


class TestReadCommands:
    def test_status_all(self, env, heroku, capsys):
        heroku.running["alpha"] = True
        assert main(["status"]) == 0
        out = capsys.readouterr().out
        assert "ALPHA" in out and "BETA" in out

    def test_status_single_app(self, env, heroku, capsys):
        assert main(["status", "--app", "beta"]) == 0
        assert "Status: STOPPED" in capsys.readouterr().out

    def test_status_unreachable_app(self, env, heroku, capsys):
        heroku.unreachable.add("beta")
        assert main(["status", "--app", "beta"]) == 1

    def test_health_ok(self, env, heroku, capsys):
        assert main(["health"]) == 0
        assert "Overall Health: HEALTHY" in capsys.readouterr().out

    def test_history_and_stats(self, capsys):
        log = ActionLog()
        log.append(ActionRecord(app_name="alpha", action=Action.TURN_ON, success=True))
        assert main(["history", "--days", "3"]) == 0
        assert "Last 3 days" in capsys.readouterr().out
        assert main(["stats"]) == 0
        assert "Success Rate: 100.0%" in capsys.readouterr().out

    def test_cleanup(self, capsys):
        ActionLog().append(ActionRecord(
            timestamp=datetime.now(timezone.utc) - timedelta(days=200),
            app_name="alpha",
            action=Action.TURN_OFF,
            success=True,
        ))
        assert main(["cleanup"]) == 0
        assert "Removed 1 history entry" in capsys.readouterr().out
        assert len(ActionLog()) == 0


class TestStart:
    def test_start_runs_daemon(self, env, heroku):
        with patch("heroku_scheduler.cli.SchedulerDaemon") as daemon_cls:
            assert main(["start"]) == 0
        controller = daemon_cls.call_args.args[0]
        assert controller.app_names == ["alpha", "beta"]
        daemon_cls.return_value.start.assert_called_once_with()

    def test_start_validation_failure(self, env, heroku, capsys):
        with patch("heroku_scheduler.cli.SchedulerDaemon") as daemon_cls:
            daemon_cls.return_value.start.side_effect = ValidationError("beta")
            assert main(["start"]) == 1
        assert "App beta not found or not accessible" in capsys.readouterr().err

    def test_start_refuses_when_already_running(self, env, heroku, capsys):
        with patch("heroku_scheduler.cli.get_daemon_pid", return_value=4321), \
             patch("heroku_scheduler.cli.SchedulerDaemon") as daemon_cls:
            assert main(["start"]) == 1
        daemon_cls.assert_not_called()
        assert "already running (pid=4321)" in capsys.readouterr().err
