"""Unit tests for trigger variants and schedule payload models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from sweeper.enums import DispatchSource, ExecutionStatus, TriggerType
from sweeper.models.domain import ExecutionLogEntry, ScheduleConfig, ScheduleUpdate
from sweeper.models.triggers import (
    CustomFrequency,
    DailyFrequency,
    IdleTrigger,
    MonthlyFrequency,
    StartupTrigger,
    TimeTrigger,
    WeeklyFrequency,
    parse_time_of_day,
    trigger_from_fields,
    trigger_to_fields,
    trigger_type_of,
)


class TestTimeOfDay:
    """HH:MM parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("14:00", (14, 0)), ("9:05", (9, 5)), ("00:00", (0, 0)), ("23:59", (23, 59))],
    )
    def test_valid(self, value, expected):
        assert parse_time_of_day(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", "12", "12:5"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_time_of_day(value)

    def test_time_is_normalized(self):
        assert DailyFrequency(time="9:05").time == "09:05"


class TestScheduleConfig:
    """Schedule definitions accept nested and flat layouts."""

    def test_flat_daily(self):
        config = ScheduleConfig.model_validate(
            {"profileId": "deep-clean", "trigger": "time", "frequency": "daily", "time": "14:00"}
        )
        assert config.profile_id == "deep-clean"
        assert config.trigger == TimeTrigger(schedule=DailyFrequency(time="14:00"))

    def test_flat_weekly_camel_case(self):
        config = ScheduleConfig.model_validate(
            {
                "profileId": "p",
                "trigger": "time",
                "frequency": "weekly",
                "time": "09:00",
                "dayOfWeek": 0,
            }
        )
        assert config.trigger.schedule == WeeklyFrequency(day_of_week=0, time="09:00")

    def test_nested_layout(self):
        config = ScheduleConfig.model_validate(
            {
                "profileId": "p",
                "trigger": {"type": "time", "schedule": {"frequency": "custom", "intervalMinutes": 45}},
            }
        )
        assert config.trigger.schedule == CustomFrequency(interval_minutes=45)

    def test_idle(self):
        config = ScheduleConfig.model_validate(
            {"profileId": "p", "trigger": "idle", "idleMinutes": 15}
        )
        assert config.trigger == IdleTrigger(idle_minutes=15)

    def test_startup(self):
        config = ScheduleConfig.model_validate({"profileId": "p", "trigger": "startup"})
        assert isinstance(config.trigger, StartupTrigger)
        assert config.enabled is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"profileId": "p", "trigger": "time", "frequency": "weekly", "time": "09:00"},
            {"profileId": "p", "trigger": "time", "frequency": "daily"},
            {"profileId": "p", "trigger": "time", "frequency": "daily", "time": "25:00"},
            {"profileId": "p", "trigger": "time", "frequency": "hourly", "time": "10:00"},
            {"profileId": "p", "trigger": "time", "frequency": "monthly", "time": "10:00", "dayOfMonth": 32},
            {"profileId": "p", "trigger": "time", "frequency": "weekly", "time": "10:00", "dayOfWeek": 7},
            {"profileId": "p", "trigger": "time", "frequency": "custom", "intervalMinutes": 0},
            {"profileId": "p", "trigger": "idle"},
            {"profileId": "p", "trigger": "idle", "idleMinutes": 0},
            {"profileId": "p", "trigger": "cron"},
            {"profileId": "", "trigger": "startup"},
            {"trigger": "startup"},
        ],
    )
    def test_malformed_definitions_rejected(self, payload):
        with pytest.raises(ValidationError):
            ScheduleConfig.model_validate(payload)

    def test_serializes_camel_case(self):
        config = ScheduleConfig(profile_id="p", trigger=IdleTrigger(idle_minutes=5))
        data = config.to_dict(mode="json")
        assert data["profileId"] == "p"
        assert data["trigger"] == {"type": "idle", "idleMinutes": 5}


class TestScheduleUpdate:
    """Partial updates."""

    def test_empty_update(self):
        update = ScheduleUpdate.model_validate({})
        assert update.trigger is None
        assert update.enabled is None

    def test_flat_trigger_update(self):
        update = ScheduleUpdate.model_validate({"trigger": "idle", "idleMinutes": 30})
        assert update.trigger == IdleTrigger(idle_minutes=30)


class TestFlatConversion:
    """Conversion between variants and the column layout."""

    @pytest.mark.parametrize(
        "trigger",
        [
            TimeTrigger(schedule=DailyFrequency(time="14:00")),
            TimeTrigger(schedule=WeeklyFrequency(day_of_week=3, time="08:15")),
            TimeTrigger(schedule=MonthlyFrequency(day_of_month=31, time="23:00")),
            TimeTrigger(schedule=CustomFrequency(interval_minutes=90)),
            StartupTrigger(),
            IdleTrigger(idle_minutes=20),
        ],
    )
    def test_fields_rebuild_the_same_trigger(self, trigger):
        assert trigger_from_fields(**trigger_to_fields(trigger)) == trigger

    def test_unused_columns_are_null(self):
        fields = trigger_to_fields(IdleTrigger(idle_minutes=20))
        assert fields["frequency"] is None
        assert fields["time"] is None
        assert fields["idle_minutes"] == 20

    def test_trigger_type_of(self):
        assert trigger_type_of(StartupTrigger()) == TriggerType.STARTUP
        with pytest.raises(TypeError):
            trigger_type_of("time")


class TestExecutionLogEntry:
    """Log entry invariants."""

    def _entry(self, **overrides):
        fields = dict(
            schedule_id="s1",
            profile_id="p",
            source=DispatchSource.TIME,
            started_at=datetime(2024, 1, 15, 10, 0),
            finished_at=datetime(2024, 1, 15, 10, 1),
            status=ExecutionStatus.SUCCESS,
        )
        fields.update(overrides)
        return ExecutionLogEntry(**fields)

    def test_failure_requires_error(self):
        with pytest.raises(ValidationError):
            self._entry(status=ExecutionStatus.FAILURE)

    def test_success_rejects_error(self):
        with pytest.raises(ValidationError):
            self._entry(error="boom")

    def test_finished_before_started_rejected(self):
        with pytest.raises(ValidationError):
            self._entry(finished_at=datetime(2024, 1, 15, 9, 0))

    def test_skipped_carries_reason(self):
        entry = self._entry(status=ExecutionStatus.SKIPPED, skip_reason="On battery power")
        assert entry.error is None
        assert entry.skip_reason == "On battery power"
