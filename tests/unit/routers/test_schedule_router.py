"""Unit tests for schedule router.

Tests HTTP endpoint behavior, camelCase serialization,
error mapping and delegation to the services.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sweeper.enums import DispatchSource, ExecutionStatus
from sweeper.models.domain import (
    ExecutionAccepted,
    ExecutionLogEntry,
    ExecutionStats,
    Schedule,
)
from sweeper.models.triggers import DailyFrequency, TimeTrigger
from sweeper.routers.schedule_router import create_schedule_router, to_http_error
from sweeper.scheduler.cleaning_scheduler import AlreadyRunningError, ScheduleDisabledError
from sweeper.services.schedule_service import (
    ScheduleNotFoundError,
    SchedulePersistenceError,
    ScheduleValidationError,
)


@pytest.fixture
def mock_schedule_service():
    return AsyncMock()


@pytest.fixture
def mock_log_service():
    return AsyncMock()


@pytest.fixture
def mock_scheduler():
    return AsyncMock()


@pytest.fixture
def client(mock_schedule_service, mock_log_service, mock_scheduler):
    """Create test client with schedule router."""
    app = FastAPI()
    app.include_router(
        create_schedule_router(mock_schedule_service, mock_log_service, mock_scheduler)
    )
    return TestClient(app)


@pytest.fixture
def sample_schedule():
    return Schedule(
        id="sched-1",
        profile_id="deep-clean",
        trigger=TimeTrigger(schedule=DailyFrequency(time="14:00")),
        next_run=datetime(2024, 1, 15, 14, 0),
        created_at=datetime(2024, 1, 15, 10, 0),
        updated_at=datetime(2024, 1, 15, 10, 0),
    )


class TestCreateSchedule:
    """Tests for POST /api/schedules."""

    def test_create_returns_camel_case(self, client, mock_schedule_service, sample_schedule):
        mock_schedule_service.create_schedule.return_value = sample_schedule
        body = {"profileId": "deep-clean", "trigger": "time", "frequency": "daily", "time": "14:00"}

        response = client.post("/api/schedules", json=body)

        assert response.status_code == 201
        data = response.json()
        assert data["profileId"] == "deep-clean"
        assert data["nextRun"] == "2024-01-15T14:00:00"
        assert data["trigger"]["type"] == "time"
        assert data["trigger"]["schedule"]["frequency"] == "daily"
        mock_schedule_service.create_schedule.assert_awaited_once_with(body)

    def test_invalid_definition_is_422(self, client, mock_schedule_service):
        mock_schedule_service.create_schedule.side_effect = ScheduleValidationError(
            "time: must be HH:MM"
        )

        response = client.post("/api/schedules", json={"profileId": "p", "trigger": "time"})

        assert response.status_code == 422
        assert "HH:MM" in response.json()["detail"]

    def test_storage_failure_is_503(self, client, mock_schedule_service):
        mock_schedule_service.create_schedule.side_effect = SchedulePersistenceError(
            "Failed to create schedule: disk I/O error"
        )

        response = client.post("/api/schedules", json={"profileId": "p", "trigger": "startup"})

        assert response.status_code == 503


class TestReadSchedules:
    """Tests for the GET endpoints."""

    def test_list(self, client, mock_schedule_service, sample_schedule):
        mock_schedule_service.list_schedules.return_value = [sample_schedule]

        response = client.get("/api/schedules")

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == ["sched-1"]
        mock_schedule_service.list_schedules.assert_awaited_once_with(enabled_only=False)

    def test_list_enabled_only(self, client, mock_schedule_service):
        mock_schedule_service.list_schedules.return_value = []

        response = client.get("/api/schedules", params={"enabledOnly": "true"})

        assert response.status_code == 200
        mock_schedule_service.list_schedules.assert_awaited_once_with(enabled_only=True)

    def test_upcoming(self, client, mock_schedule_service, sample_schedule):
        mock_schedule_service.list_upcoming.return_value = [sample_schedule]

        response = client.get("/api/schedules/upcoming")

        assert response.status_code == 200
        assert response.json()[0]["id"] == "sched-1"

    def test_by_profile(self, client, mock_schedule_service):
        mock_schedule_service.list_by_profile.return_value = []

        response = client.get("/api/schedules/profile/deep-clean")

        assert response.status_code == 200
        mock_schedule_service.list_by_profile.assert_awaited_once_with("deep-clean")

    def test_get_missing_is_404(self, client, mock_schedule_service):
        mock_schedule_service.get_schedule.side_effect = ScheduleNotFoundError("Schedule not found")

        response = client.get("/api/schedules/nope")

        assert response.status_code == 404


class TestModifySchedule:
    """Tests for PATCH, DELETE and toggle."""

    def test_patch_passes_partial_body(self, client, mock_schedule_service, sample_schedule):
        mock_schedule_service.update_schedule.return_value = sample_schedule

        response = client.patch("/api/schedules/sched-1", json={"time": "09:30"})

        assert response.status_code == 200
        mock_schedule_service.update_schedule.assert_awaited_once_with("sched-1", {"time": "09:30"})

    def test_patch_missing_is_404(self, client, mock_schedule_service):
        mock_schedule_service.update_schedule.side_effect = ScheduleNotFoundError("missing")

        response = client.patch("/api/schedules/nope", json={"enabled": False})

        assert response.status_code == 404

    def test_delete(self, client, mock_schedule_service):
        response = client.delete("/api/schedules/sched-1")

        assert response.status_code == 204
        mock_schedule_service.delete_schedule.assert_awaited_once_with("sched-1")

    def test_delete_missing_is_404(self, client, mock_schedule_service):
        mock_schedule_service.delete_schedule.side_effect = ScheduleNotFoundError("missing")

        response = client.delete("/api/schedules/nope")

        assert response.status_code == 404

    def test_toggle(self, client, mock_schedule_service, sample_schedule):
        mock_schedule_service.toggle_schedule.return_value = sample_schedule.model_copy(
            update={"enabled": False, "next_run": None}
        )

        response = client.post("/api/schedules/sched-1/toggle", json={"enabled": False})

        assert response.status_code == 200
        assert response.json()["enabled"] is False
        assert response.json()["nextRun"] is None
        mock_schedule_service.toggle_schedule.assert_awaited_once_with("sched-1", False)

    def test_toggle_requires_enabled(self, client):
        response = client.post("/api/schedules/sched-1/toggle", json={})

        assert response.status_code == 422


class TestRunNow:
    """Tests for POST /api/schedules/{id}/run."""

    def test_accepted(self, client, mock_scheduler):
        mock_scheduler.execute_now.return_value = ExecutionAccepted(
            schedule_id="sched-1", accepted_at=datetime(2024, 1, 15, 10, 0)
        )

        response = client.post("/api/schedules/sched-1/run")

        assert response.status_code == 202
        assert response.json() == {"scheduleId": "sched-1", "acceptedAt": "2024-01-15T10:00:00"}

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (ScheduleNotFoundError("missing"), 404),
            (ScheduleDisabledError("disabled"), 409),
            (AlreadyRunningError("running"), 409),
        ],
    )
    def test_rejections(self, client, mock_scheduler, error, status_code):
        mock_scheduler.execute_now.side_effect = error

        response = client.post("/api/schedules/sched-1/run")

        assert response.status_code == status_code


class TestHistory:
    """Tests for per-schedule logs and stats."""

    def test_logs(self, client, mock_log_service):
        mock_log_service.get_logs.return_value = [
            ExecutionLogEntry(
                id=7,
                schedule_id="sched-1",
                profile_id="deep-clean",
                source=DispatchSource.TIME,
                started_at=datetime(2024, 1, 15, 14, 0),
                finished_at=datetime(2024, 1, 15, 14, 0, 2),
                duration_seconds=2.0,
                status=ExecutionStatus.SUCCESS,
                items_cleaned=12,
                space_freed=2048,
            )
        ]

        response = client.get("/api/schedules/sched-1/logs", params={"limit": 5})

        assert response.status_code == 200
        entry = response.json()[0]
        assert entry["spaceFreed"] == 2048
        assert entry["durationSeconds"] == 2.0
        assert entry["status"] == "success"
        mock_log_service.get_logs.assert_awaited_once_with("sched-1", 5)

    def test_logs_limit_bounds(self, client):
        assert client.get("/api/schedules/sched-1/logs", params={"limit": 0}).status_code == 422

    def test_stats(self, client, mock_log_service):
        mock_log_service.stats_for.return_value = ExecutionStats(
            schedule_id="sched-1", total_runs=3, success_count=2, failure_count=1
        )

        response = client.get("/api/schedules/sched-1/stats")

        assert response.status_code == 200
        assert response.json()["totalRuns"] == 3
        assert response.json()["failureCount"] == 1


class TestToHttpError:
    def test_unknown_error_propagates(self):
        with pytest.raises(KeyError):
            to_http_error(KeyError("boom"))
