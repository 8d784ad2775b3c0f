"""Trigger variants for cleaning schedules.

A schedule is due either on the clock (``TimeTrigger``), once per process
start (``StartupTrigger``) or once per idle session (``IdleTrigger``). Time
triggers carry a nested frequency variant. Both levels are pydantic
discriminated unions, so a payload with an unknown ``type`` or ``frequency``
never validates.

The database and the UI payloads use a flat layout (``trigger``,
``frequency``, ``time``, ``dayOfWeek``...). ``trigger_from_fields`` and
``trigger_to_fields`` convert between the two.
"""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, field_validator

from sweeper.enums import Frequency, TriggerType
from sweeper.models.base import JsonModel

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse an ``HH:MM`` wall-clock string into (hour, minute).

    Raises:
        ValueError: If the string is malformed or out of range.
    """
    match = _TIME_PATTERN.match((value or "").strip())
    if match is None:
        raise ValueError(f"time must look like HH:MM, got {value!r}")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"time out of range: {value!r}")
    return hour, minute


class _WallClockFrequency(JsonModel):
    """Shared ``time`` field for frequencies anchored to a time of day."""

    time: str

    @field_validator("time")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        hour, minute = parse_time_of_day(value)
        return f"{hour:02d}:{minute:02d}"

    @property
    def hour(self) -> int:
        return parse_time_of_day(self.time)[0]

    @property
    def minute(self) -> int:
        return parse_time_of_day(self.time)[1]


class DailyFrequency(_WallClockFrequency):
    """Every day at ``time``."""

    frequency: Literal["daily"] = "daily"


class WeeklyFrequency(_WallClockFrequency):
    """Every week on ``day_of_week`` (0 = Sunday) at ``time``."""

    frequency: Literal["weekly"] = "weekly"
    day_of_week: int = Field(ge=0, le=6)


class MonthlyFrequency(_WallClockFrequency):
    """Every month on ``day_of_month`` at ``time``.

    Days past the end of a short month clamp to its last day.
    """

    frequency: Literal["monthly"] = "monthly"
    day_of_month: int = Field(ge=1, le=31)


class CustomFrequency(JsonModel):
    """Every ``interval_minutes`` minutes, measured from the last run."""

    frequency: Literal["custom"] = "custom"
    interval_minutes: int = Field(gt=0)


FrequencySpec = Annotated[
    Union[DailyFrequency, WeeklyFrequency, MonthlyFrequency, CustomFrequency],
    Field(discriminator="frequency"),
]


class TimeTrigger(JsonModel):
    """Clock-driven trigger; the only kind that has a ``next_run``."""

    type: Literal["time"] = "time"
    schedule: FrequencySpec


class StartupTrigger(JsonModel):
    """Fires once after the scheduler process starts."""

    type: Literal["startup"] = "startup"


class IdleTrigger(JsonModel):
    """Fires once per idle session after ``idle_minutes`` without input."""

    type: Literal["idle"] = "idle"
    idle_minutes: int = Field(gt=0)


Trigger = Annotated[
    Union[TimeTrigger, StartupTrigger, IdleTrigger],
    Field(discriminator="type"),
]

_trigger_adapter: TypeAdapter[Any] = TypeAdapter(Trigger)


def trigger_type_of(trigger: Any) -> TriggerType:
    """Return the TriggerType tag of a trigger variant."""
    if isinstance(trigger, TimeTrigger):
        return TriggerType.TIME
    if isinstance(trigger, StartupTrigger):
        return TriggerType.STARTUP
    if isinstance(trigger, IdleTrigger):
        return TriggerType.IDLE
    raise TypeError(f"Unknown trigger variant: {type(trigger).__name__}")


def trigger_from_fields(
    trigger: str,
    frequency: str | None = None,
    time: str | None = None,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    interval_minutes: int | None = None,
    idle_minutes: int | None = None,
) -> TimeTrigger | StartupTrigger | IdleTrigger:
    """Build a trigger variant from the flat column layout.

    Missing required fields surface as pydantic ``ValidationError``.
    """
    payload: dict[str, Any] = {"type": trigger}

    if trigger == TriggerType.TIME:
        payload["schedule"] = {
            "frequency": frequency,
            "time": time,
            "day_of_week": day_of_week,
            "day_of_month": day_of_month,
            "interval_minutes": interval_minutes,
        }
        # Drop absent keys so "field required" errors name the real culprit.
        payload["schedule"] = {
            key: value
            for key, value in payload["schedule"].items()
            if value is not None
        }
    elif trigger == TriggerType.IDLE:
        if idle_minutes is not None:
            payload["idle_minutes"] = idle_minutes

    return _trigger_adapter.validate_python(payload)


def trigger_to_fields(trigger: Any) -> dict[str, Any]:
    """Flatten a trigger variant into the column layout."""
    fields: dict[str, Any] = {
        "trigger": trigger_type_of(trigger).value,
        "frequency": None,
        "time": None,
        "day_of_week": None,
        "day_of_month": None,
        "interval_minutes": None,
        "idle_minutes": None,
    }

    if isinstance(trigger, IdleTrigger):
        fields["idle_minutes"] = trigger.idle_minutes
    elif isinstance(trigger, TimeTrigger):
        freq = trigger.schedule
        fields["frequency"] = Frequency(freq.frequency).value
        if isinstance(freq, CustomFrequency):
            fields["interval_minutes"] = freq.interval_minutes
        else:
            fields["time"] = freq.time
        if isinstance(freq, WeeklyFrequency):
            fields["day_of_week"] = freq.day_of_week
        if isinstance(freq, MonthlyFrequency):
            fields["day_of_month"] = freq.day_of_month

    return fields


def coerce_trigger(data: Any) -> Any:
    """Turn flat trigger fields inside ``data`` into a nested trigger payload.

    Used as a ``mode="before"`` hook by models that accept either layout.
    Anything that is not a dict with a string ``trigger`` passes through.
    """
    if not isinstance(data, dict) or not isinstance(data.get("trigger"), str):
        return data

    flat_keys = {
        "frequency": ("frequency",),
        "time": ("time",),
        "day_of_week": ("day_of_week", "dayOfWeek"),
        "day_of_month": ("day_of_month", "dayOfMonth"),
        "interval_minutes": ("interval_minutes", "intervalMinutes"),
        "idle_minutes": ("idle_minutes", "idleMinutes"),
    }

    data = dict(data)
    nested: dict[str, Any] = {"type": data.pop("trigger")}
    schedule: dict[str, Any] = {}
    for name, spellings in flat_keys.items():
        for spelling in spellings:
            if spelling in data:
                value = data.pop(spelling)
                if value is None:
                    continue
                if name == "idle_minutes":
                    nested[name] = value
                else:
                    schedule[name] = value

    if nested["type"] == TriggerType.TIME:
        nested["schedule"] = schedule
    data["trigger"] = nested
    return data
