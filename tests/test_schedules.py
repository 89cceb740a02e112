from __future__ import annotations

import unittest
from datetime import date, datetime, timezone

from timeclock.models import (
    SchedulePeriod,
    SchedulePeriodType,
    ScheduleTemplate,
    TimeEntryType,
    TimeSlot,
    TimeSlotType,
    WorkDayPattern,
)
from timeclock.services.schedules import (
    EffectiveTimeSlot,
    build_effective_schedule,
    compute_expected_minutes,
    extract_automatic_break_slots,
    extract_paid_break_slots,
    resolve_active_period,
    resolve_paid_break_slot_ids,
)
from timeclock.services.workday_totals import ClockEvent, PaidBreakSlot

MONDAY = date(2026, 2, 2)
JULY_MONDAY = date(2026, 7, 6)
SUNDAY = date(2026, 2, 8)


def _regular_period() -> SchedulePeriod:
    monday = WorkDayPattern(
        id=1,
        weekday=0,
        is_working_day=True,
        time_slots=[
            TimeSlot(id=10, slot_type=TimeSlotType.WORK, start_minutes=540, end_minutes=1020, counts_as_work=True),
            TimeSlot(
                id=11,
                slot_type=TimeSlotType.BREAK,
                start_minutes=780,
                end_minutes=810,
                counts_as_work=True,
                is_automatic=False,
            ),
            TimeSlot(
                id=12,
                slot_type=TimeSlotType.BREAK,
                start_minutes=660,
                end_minutes=675,
                counts_as_work=False,
                is_automatic=True,
            ),
        ],
    )
    sunday = WorkDayPattern(id=2, weekday=6, is_working_day=False, time_slots=[])
    return SchedulePeriod(
        id=1,
        period_type=SchedulePeriodType.REGULAR,
        name="Regular",
        valid_from=None,
        valid_to=None,
        work_day_patterns=[monday, sunday],
    )


def _intensive_period() -> SchedulePeriod:
    monday = WorkDayPattern(
        id=3,
        weekday=0,
        is_working_day=True,
        time_slots=[
            TimeSlot(id=20, slot_type=TimeSlotType.WORK, start_minutes=480, end_minutes=900, counts_as_work=True),
        ],
    )
    return SchedulePeriod(
        id=2,
        period_type=SchedulePeriodType.INTENSIVE,
        name="Summer",
        valid_from=date(2026, 7, 1),
        valid_to=date(2026, 8, 31),
        work_day_patterns=[monday],
    )


def _template(*periods: SchedulePeriod) -> ScheduleTemplate:
    return ScheduleTemplate(id=1, name="Office", is_active=True, periods=list(periods))


class _ScalarsResult:
    def __init__(self, values: list[int]) -> None:
        self._values = values

    def all(self) -> list[int]:
        return list(self._values)


class _SlotLookupDB:
    def __init__(self, values: list[int]) -> None:
        self._values = values
        self.calls = 0

    def scalars(self, _statement):  # type: ignore[no-untyped-def]
        self.calls += 1
        return _ScalarsResult(self._values)


class ActivePeriodTests(unittest.TestCase):
    def test_regular_period_applies_outside_intensive_range(self) -> None:
        period = resolve_active_period([_regular_period(), _intensive_period()], MONDAY)

        self.assertIsNotNone(period)
        self.assertEqual(period.period_type, SchedulePeriodType.REGULAR)

    def test_intensive_overrides_regular_inside_its_range(self) -> None:
        period = resolve_active_period([_regular_period(), _intensive_period()], JULY_MONDAY)

        self.assertEqual(period.period_type, SchedulePeriodType.INTENSIVE)

    def test_range_bounds_are_inclusive(self) -> None:
        intensive = _intensive_period()

        self.assertIs(resolve_active_period([intensive], date(2026, 7, 1)), intensive)
        self.assertIs(resolve_active_period([intensive], date(2026, 8, 31)), intensive)
        self.assertIsNone(resolve_active_period([intensive], date(2026, 9, 1)))

    def test_special_beats_intensive(self) -> None:
        special = SchedulePeriod(
            id=3,
            period_type=SchedulePeriodType.SPECIAL,
            name="Inventory week",
            valid_from=date(2026, 7, 6),
            valid_to=date(2026, 7, 10),
            work_day_patterns=[],
        )

        period = resolve_active_period([_regular_period(), _intensive_period(), special], JULY_MONDAY)

        self.assertIs(period, special)


class EffectiveScheduleTests(unittest.TestCase):
    def test_regular_working_day(self) -> None:
        schedule = build_effective_schedule(_template(_regular_period(), _intensive_period()), MONDAY)

        self.assertTrue(schedule.is_working_day)
        self.assertEqual(schedule.source, "PERIOD")
        self.assertEqual(schedule.period_name, "Regular")
        self.assertEqual(schedule.expected_minutes, 480)
        self.assertEqual([slot.start_minutes for slot in schedule.time_slots], [540, 660, 780])

    def test_intensive_day_uses_intensive_slots(self) -> None:
        schedule = build_effective_schedule(_template(_regular_period(), _intensive_period()), JULY_MONDAY)

        self.assertEqual(schedule.period_name, "Summer")
        self.assertEqual(schedule.expected_minutes, 420)

    def test_non_working_and_missing_patterns(self) -> None:
        template = _template(_regular_period())

        sunday = build_effective_schedule(template, SUNDAY)
        tuesday = build_effective_schedule(template, date(2026, 2, 3))

        self.assertFalse(sunday.is_working_day)
        self.assertEqual(sunday.expected_minutes, 0)
        self.assertFalse(tuesday.is_working_day)
        self.assertEqual(tuesday.source, "PERIOD")

    def test_without_template(self) -> None:
        schedule = build_effective_schedule(None, MONDAY)

        self.assertEqual(schedule.source, "NO_TEMPLATE")
        self.assertFalse(schedule.is_working_day)

    def test_template_without_covering_period_is_a_configuration_error(self) -> None:
        schedule = build_effective_schedule(_template(_intensive_period()), MONDAY)

        self.assertEqual(schedule.source, "CONFIGURATION_ERROR")
        self.assertIn("Office", schedule.configuration_error)
        self.assertFalse(schedule.is_working_day)

    def test_paid_and_automatic_break_slots(self) -> None:
        schedule = build_effective_schedule(_template(_regular_period()), MONDAY)

        self.assertEqual(extract_paid_break_slots(schedule), [PaidBreakSlot(start_minutes=780, end_minutes=810)])
        automatic = extract_automatic_break_slots(schedule)
        self.assertEqual([slot.time_slot_id for slot in automatic], [12])


class ExpectedMinutesTests(unittest.TestCase):
    def test_overlapping_work_slots_are_merged(self) -> None:
        slots = [
            EffectiveTimeSlot(start_minutes=540, end_minutes=780, slot_type=TimeSlotType.WORK),
            EffectiveTimeSlot(start_minutes=760, end_minutes=1020, slot_type=TimeSlotType.WORK),
        ]

        self.assertEqual(compute_expected_minutes(slots), 480)

    def test_unpaid_breaks_are_excluded_and_gaps_kept(self) -> None:
        slots = [
            EffectiveTimeSlot(start_minutes=540, end_minutes=780, slot_type=TimeSlotType.WORK),
            EffectiveTimeSlot(
                start_minutes=780,
                end_minutes=840,
                slot_type=TimeSlotType.BREAK,
                counts_as_work=False,
            ),
            EffectiveTimeSlot(start_minutes=840, end_minutes=1080, slot_type=TimeSlotType.WORK),
        ]

        self.assertEqual(compute_expected_minutes(slots), 480)

    def test_empty_slots(self) -> None:
        self.assertEqual(compute_expected_minutes([]), 0)


class PaidBreakSlotIdTests(unittest.TestCase):
    def test_no_automatic_events_skips_lookup(self) -> None:
        db = _SlotLookupDB([1])

        result = resolve_paid_break_slot_ids(db, [])

        self.assertEqual(result, set())
        self.assertEqual(db.calls, 0)

    def test_lookup_returns_paid_slot_ids(self) -> None:
        db = _SlotLookupDB([11])
        noon = datetime(2026, 2, 2, 12, tzinfo=timezone.utc)
        events = [
            ClockEvent(type=TimeEntryType.BREAK_START, timestamp=noon, is_automatic=True, automatic_break_slot_id=11),
            ClockEvent(type=TimeEntryType.BREAK_END, timestamp=noon, is_automatic=True, automatic_break_slot_id=11),
        ]

        result = resolve_paid_break_slot_ids(db, events)

        self.assertEqual(result, {11})
        self.assertEqual(db.calls, 1)


if __name__ == "__main__":
    unittest.main()
