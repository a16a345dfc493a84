"""Tests for the APScheduler-backed job registry."""

import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from heroku_scheduler.models import Action, AppSchedule, JobKey
from heroku_scheduler.registry import (
    JobRegistry,
    _cron_day_of_week,
    build_trigger,
    is_valid_cron,
)

ALPHA = AppSchedule(
    name="alpha",
    turn_on_expr="0 9 * * 1-5",
    turn_off_expr="0 18 * * 1-5",
    timezone="America/New_York",
)


@pytest.fixture
def registry():
    reg = JobRegistry()
    yield reg
    reg.stop_all(wait=False)


class TestCronDayOfWeek:
    @pytest.mark.parametrize("field,expected", [
        ("*", "*"),
        ("1-5", "mon,tue,wed,thu,fri"),
        ("0", "sun"),
        ("7", "sun"),
        ("0,6", "sun,sat"),
        ("*/2", "sun,tue,thu,sat"),
        ("5/2", "sun,fri"),
        ("6/1", "sun,sat"),
        ("MON-FRI", "mon-fri"),
    ])
    def test_translation(self, field, expected):
        assert _cron_day_of_week(field) == expected

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            _cron_day_of_week("8")


class TestBuildTrigger:
    def test_weekday_numbering_follows_crontab(self):
        trigger = build_trigger("0 9 * * 1", "UTC")
        sunday = datetime(2024, 1, 14, 12, 0, tzinfo=timezone.utc)
        next_fire = trigger.get_next_fire_time(None, sunday)
        assert next_fire.weekday() == 0  # Monday
        assert (next_fire.hour, next_fire.minute, next_fire.second) == (9, 0, 0)

    def test_six_field_expression_has_seconds(self):
        trigger = build_trigger("30 0 9 * * *", "UTC")
        start = datetime(2024, 1, 14, 8, 0, tzinfo=timezone.utc)
        assert trigger.get_next_fire_time(None, start).second == 30

    def test_wrong_field_count(self):
        with pytest.raises(ValueError, match="expected 5 or 6 fields"):
            build_trigger("0 9 * *", "UTC")

    def test_is_valid_cron(self):
        assert is_valid_cron("0 9 * * 1-5", "America/New_York")
        assert not is_valid_cron("61 9 * * *")
        assert not is_valid_cron("0 9 * * *", "Mars/Olympus_Mons")


class TestRegister:
    def test_register_creates_both_jobs(self, registry):
        skipped = registry.register(ALPHA, MagicMock())
        assert skipped == []
        assert JobKey("alpha", Action.TURN_ON) in registry
        assert JobKey("alpha", Action.TURN_OFF) in registry
        assert len(registry) == 2

    def test_snapshot_after_start(self, registry):
        registry.register(ALPHA, MagicMock())
        registry.start_timer()

        infos = {i.name: i for i in registry.snapshot()}
        assert sorted(infos) == ["alpha-off", "alpha-on"]
        assert all(i.running for i in infos.values())
        assert all(i.next_fire_time is not None for i in infos.values())
        assert infos["alpha-on"].cron_expression == "0 9 * * 1-5"

    def test_snapshot_before_start_not_running(self, registry):
        registry.register(ALPHA, MagicMock())
        assert not any(i.running for i in registry.snapshot())

    def test_reregister_replaces_jobs(self, registry):
        registry.register(ALPHA, MagicMock())
        registry.start_timer()
        registry.register(
            AppSchedule(name="alpha", turn_on_expr="0 7 * * *", turn_off_expr="0 19 * * *"),
            MagicMock(),
        )
        assert len(registry) == 2
        infos = {i.name: i for i in registry.snapshot()}
        assert infos["alpha-on"].cron_expression == "0 7 * * *"
        assert len(registry._scheduler.get_jobs()) == 2

    def test_malformed_expression_skipped(self, registry):
        app = AppSchedule(name="alpha", turn_on_expr="not a cron", turn_off_expr="0 18 * * *")
        skipped = registry.register(app, MagicMock())

        assert len(skipped) == 1
        assert skipped[0].app_name == "alpha"
        assert skipped[0].action == "turn_on"
        assert registry.keys() == [JobKey("alpha", Action.TURN_OFF)]

    def test_unknown_timezone_skips_both(self, registry):
        app = AppSchedule(
            name="alpha", turn_on_expr="0 9 * * *", turn_off_expr="0 18 * * *",
            timezone="Mars/Olympus_Mons",
        )
        assert len(registry.register(app, MagicMock())) == 2
        assert len(registry) == 0

    def test_missing_expression_is_not_scheduled(self, registry):
        app = AppSchedule(name="alpha", turn_on_expr="0 9 * * *")
        assert registry.register(app, MagicMock()) == []
        assert registry.keys() == [JobKey("alpha", Action.TURN_ON)]


class TestUnregisterAndStop:
    def test_unregister_only_touches_app(self, registry):
        registry.register(ALPHA, MagicMock())
        registry.register(AppSchedule(name="beta", turn_on_expr="0 9 * * *"), MagicMock())
        registry.start_timer()

        assert registry.unregister("alpha") == 2
        assert registry.keys() == [JobKey("beta", Action.TURN_ON)]
        assert registry.get(JobKey("alpha", Action.TURN_ON)) is None
        assert registry.get(JobKey("beta", Action.TURN_ON)) is not None

    def test_unregister_unknown_app(self, registry):
        assert registry.unregister("ghost") == 0

    def test_stop_all_is_idempotent(self, registry):
        registry.register(ALPHA, MagicMock())
        registry.start_timer()
        registry.stop_all()
        registry.stop_all()
        assert len(registry) == 0
        assert registry.timer_running is False
        assert registry.snapshot() == []

    def test_restart_after_stop(self, registry):
        registry.register(ALPHA, MagicMock())
        registry.start_timer()
        registry.stop_all()

        registry.register(ALPHA, MagicMock())
        registry.start_timer()
        assert registry.timer_running
        assert all(i.running for i in registry.snapshot())


def test_job_fires_callback(registry):
    fired = threading.Event()
    calls = []

    def callback(app_name, action):
        calls.append((app_name, action))
        fired.set()

    registry.register(AppSchedule(name="alpha", turn_on_expr="* * * * * *"), callback)
    registry.start_timer()

    assert fired.wait(5)
    assert calls[0] == ("alpha", Action.TURN_ON)
