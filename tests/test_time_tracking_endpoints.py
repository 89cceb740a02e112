from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient

from timeclock.db import get_db
from timeclock.main import app
from timeclock.models import Employee, TimeEntry, TimeEntryType, WorkdayStatus, WorkdaySummary
from timeclock.services.schedules import EffectiveSchedule

MODULE = "timeclock.services.time_tracking"


class _FakeDB:
    def __init__(self, scalar_results: list[object | None]):
        self._scalar_results = scalar_results
        self.added: list[object] = []
        self._next_id = 500

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        if not self._scalar_results:
            return None
        return self._scalar_results.pop(0)

    def get(self, _model, _pk):  # type: ignore[no-untyped-def]
        return None

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def flush(self) -> None:
        for obj in self.added:
            if getattr(obj, "id", None) is None:
                obj.id = self._next_id
                self._next_id += 1

    def commit(self) -> None:
        return None

    def refresh(self, _obj) -> None:  # type: ignore[no-untyped-def]
        return None


def _override_get_db(fake_db: _FakeDB):
    def _override() -> Generator[_FakeDB, None, None]:
        yield fake_db

    return _override


def _employee() -> Employee:
    return Employee(id=7, full_name="Api Tester", is_active=True, schedule_template_id=None)


def _entry(entry_type: TimeEntryType, *, minutes_ago: int, entry_id: int = 1) -> TimeEntry:
    return TimeEntry(
        id=entry_id,
        employee_id=7,
        entry_type=entry_type,
        timestamp=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        is_automatic=False,
        is_cancelled=False,
    )


class TimeTrackingEndpointTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _client(self, fake_db: _FakeDB) -> TestClient:
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        return TestClient(app)

    def test_clock_in_creates_entry(self) -> None:
        client = self._client(_FakeDB([_employee()]))
        with (
            patch(f"{MODULE}._resolve_latest_entry", return_value=None),
            patch(f"{MODULE}.update_workday_summary", return_value=None),
        ):
            response = client.post("/api/employees/7/clock/in", json={"note": "morning"})

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["entry"]["entry_type"], "CLOCK_IN")
        self.assertEqual(body["entry"]["note"], "morning")
        self.assertEqual(body["previous_state"], "CLOCKED_OUT")
        self.assertEqual(body["state"], "CLOCKED_IN")
        self.assertEqual(body["automatic_breaks_created"], 0)
        self.assertIn("X-Request-Id", response.headers)

    def test_clock_in_without_body(self) -> None:
        client = self._client(_FakeDB([_employee()]))
        with (
            patch(f"{MODULE}._resolve_latest_entry", return_value=None),
            patch(f"{MODULE}.update_workday_summary", return_value=None),
        ):
            response = client.post("/api/employees/7/clock/in")

        self.assertEqual(response.status_code, 201)

    def test_invalid_transition_returns_error_envelope(self) -> None:
        client = self._client(_FakeDB([_employee()]))
        with patch(f"{MODULE}._resolve_latest_entry", return_value=_entry(TimeEntryType.CLOCK_IN, minutes_ago=30)):
            response = client.post(
                "/api/employees/7/clock/in",
                headers={"X-Request-Id": "req-123"},
            )

        self.assertEqual(response.status_code, 409)
        error = response.json()["error"]
        self.assertEqual(error["code"], "INVALID_CLOCK_TRANSITION")
        self.assertEqual(error["message"], "Already clocked in.")
        self.assertEqual(error["request_id"], "req-123")
        self.assertEqual(error["details"]["state"], "CLOCKED_IN")
        self.assertEqual(error["details"]["allowed_actions"], ["CLOCK_OUT", "BREAK_START"])

    def test_unknown_employee(self) -> None:
        client = self._client(_FakeDB([]))

        response = client.post("/api/employees/999/clock/out")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "EMPLOYEE_NOT_FOUND")
        self.assertNotIn("details", response.json()["error"])

    def test_project_change_validates_payload(self) -> None:
        client = self._client(_FakeDB([_employee()]))

        response = client.post("/api/employees/7/clock/project", json={"project_id": 0})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_status_while_on_break(self) -> None:
        client = self._client(_FakeDB([_employee()]))
        with (
            patch(f"{MODULE}._resolve_latest_entry", return_value=_entry(TimeEntryType.BREAK_START, minutes_ago=5)),
            patch(f"{MODULE}._resolve_current_project_id", return_value=3),
        ):
            response = client.get("/api/employees/7/clock/status")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["state"], "ON_BREAK")
        self.assertEqual(body["allowed_actions"], ["BREAK_END"])
        self.assertEqual(body["current_project_id"], 3)
        self.assertEqual(body["last_entry"]["entry_type"], "BREAK_START")

    def test_today_summary_without_entries(self) -> None:
        client = self._client(_FakeDB([_employee()]))
        schedule = EffectiveSchedule(
            day_date=date.today(),
            is_working_day=True,
            expected_minutes=480,
            source="PERIOD",
            period_name="Regular",
        )
        with (
            patch(f"{MODULE}._load_day_entries", return_value=[]),
            patch(f"{MODULE}._resolve_boundary_entries", return_value=(None, None)),
            patch(f"{MODULE}.get_effective_schedule", return_value=schedule),
            patch(f"{MODULE}.resolve_paid_break_slot_ids", return_value=set()),
            patch(f"{MODULE}._resolve_latest_entry", return_value=None),
        ):
            response = client.get("/api/employees/7/workdays/today")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["state"], "CLOCKED_OUT")
        self.assertEqual(body["totals"]["worked_minutes"], 0)
        self.assertIsNone(body["live"]["kind"])
        self.assertEqual(body["expected_minutes"], 480)
        self.assertEqual(body["schedule_source"], "PERIOD")
        self.assertEqual(body["entries"], [])

    def test_cancel_entry(self) -> None:
        entry = _entry(TimeEntryType.BREAK_START, minutes_ago=20, entry_id=55)
        client = self._client(_FakeDB([_employee(), entry]))
        with patch(f"{MODULE}.update_workday_summary", return_value=None):
            response = client.post(
                "/api/employees/7/time-entries/55/cancel",
                json={"reason": "wrong button"},
            )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["is_cancelled"])
        self.assertEqual(body["cancellation_reason"], "wrong button")

    def test_recalculate_workday(self) -> None:
        summary = WorkdaySummary(
            id=3,
            employee_id=7,
            work_date=date(2026, 2, 2),
            total_worked_minutes=480,
            total_break_minutes=30,
            paid_break_minutes=0,
            expected_minutes=480,
            deviation_minutes=0,
            status=WorkdayStatus.COMPLETED,
            resolution_flags={"crossed_midnight_in": False},
        )
        client = self._client(_FakeDB([_employee()]))
        with patch(f"{MODULE}.update_workday_summary", return_value=summary):
            response = client.post("/api/employees/7/workdays/2026-02-02/recalculate")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["summary"]["status"], "COMPLETED")
        self.assertEqual(body["summary"]["total_worked_minutes"], 480)

    def test_health(self) -> None:
        client = TestClient(app)

        response = client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
