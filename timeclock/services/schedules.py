from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from timeclock.models import (
    Employee,
    SchedulePeriod,
    SchedulePeriodType,
    ScheduleTemplate,
    TimeSlot,
    TimeSlotType,
    WorkDayPattern,
)
from timeclock.services.workday_totals import ClockEvent, PaidBreakSlot

logger = logging.getLogger("timeclock.schedules")

_PERIOD_PRIORITY: dict[SchedulePeriodType, int] = {
    SchedulePeriodType.SPECIAL: 300,
    SchedulePeriodType.INTENSIVE: 200,
    SchedulePeriodType.REGULAR: 100,
}

ScheduleSource = Literal["NO_TEMPLATE", "PERIOD", "CONFIGURATION_ERROR"]


@dataclass(frozen=True)
class EffectiveTimeSlot:
    start_minutes: int
    end_minutes: int
    slot_type: TimeSlotType
    counts_as_work: bool = True
    is_automatic: bool = False
    time_slot_id: int | None = None
    description: str | None = None

    @property
    def is_paid_break(self) -> bool:
        return self.slot_type == TimeSlotType.BREAK and self.counts_as_work


@dataclass(frozen=True)
class EffectiveSchedule:
    day_date: date
    is_working_day: bool
    expected_minutes: float
    source: ScheduleSource
    time_slots: list[EffectiveTimeSlot] = field(default_factory=list)
    period_name: str | None = None
    configuration_error: str | None = None


def period_covers_day(period: SchedulePeriod, day_date: date) -> bool:
    if period.valid_from is not None and day_date < period.valid_from:
        return False
    if period.valid_to is not None and day_date > period.valid_to:
        return False
    return True


def resolve_active_period(periods: Iterable[SchedulePeriod], day_date: date) -> SchedulePeriod | None:
    applicable = [period for period in periods if period_covers_day(period, day_date)]
    if not applicable:
        return None

    applicable.sort(
        key=lambda item: (
            _PERIOD_PRIORITY.get(SchedulePeriodType(item.period_type), 0),
            item.valid_from.toordinal() if item.valid_from else 0,
            item.id or 0,
        ),
        reverse=True,
    )
    return applicable[0]


def compute_expected_minutes(slots: Iterable[EffectiveTimeSlot]) -> float:
    intervals = sorted(
        (slot.start_minutes, slot.end_minutes)
        for slot in slots
        if slot.counts_as_work and slot.end_minutes > slot.start_minutes
    )
    total = 0.0
    current_start: int | None = None
    current_end: int | None = None
    for start, end in intervals:
        if current_end is None or start > current_end:
            if current_start is not None and current_end is not None:
                total += current_end - current_start
            current_start, current_end = start, end
        else:
            current_end = max(current_end, end)
    if current_start is not None and current_end is not None:
        total += current_end - current_start
    return total


def _effective_slot(slot: TimeSlot) -> EffectiveTimeSlot:
    return EffectiveTimeSlot(
        start_minutes=int(slot.start_minutes),
        end_minutes=int(slot.end_minutes),
        slot_type=TimeSlotType(slot.slot_type),
        counts_as_work=True if slot.counts_as_work is None else bool(slot.counts_as_work),
        is_automatic=bool(slot.is_automatic),
        time_slot_id=slot.id,
        description=slot.description,
    )


def build_effective_schedule(template: ScheduleTemplate | None, day_date: date) -> EffectiveSchedule:
    if template is None:
        return EffectiveSchedule(
            day_date=day_date,
            is_working_day=False,
            expected_minutes=0.0,
            source="NO_TEMPLATE",
        )

    period = resolve_active_period(template.periods or [], day_date)
    if period is None:
        logger.warning(
            "schedule_period_missing",
            extra={"template_id": template.id, "day_date": day_date.isoformat()},
        )
        return EffectiveSchedule(
            day_date=day_date,
            is_working_day=False,
            expected_minutes=0.0,
            source="CONFIGURATION_ERROR",
            configuration_error=f'Template "{template.name}" has no period covering {day_date.isoformat()}',
        )

    period_name = period.name or SchedulePeriodType(period.period_type).value
    pattern = next(
        (item for item in period.work_day_patterns or [] if item.weekday == day_date.weekday()),
        None,
    )
    if pattern is None or not pattern.is_working_day:
        return EffectiveSchedule(
            day_date=day_date,
            is_working_day=False,
            expected_minutes=0.0,
            source="PERIOD",
            period_name=period_name,
        )

    slots = sorted(
        (_effective_slot(slot) for slot in pattern.time_slots or []),
        key=lambda item: (item.start_minutes, item.end_minutes),
    )
    return EffectiveSchedule(
        day_date=day_date,
        is_working_day=True,
        expected_minutes=compute_expected_minutes(slots),
        source="PERIOD",
        time_slots=slots,
        period_name=period_name,
    )


def extract_paid_break_slots(schedule: EffectiveSchedule) -> list[PaidBreakSlot]:
    return [
        PaidBreakSlot(start_minutes=slot.start_minutes, end_minutes=slot.end_minutes)
        for slot in schedule.time_slots
        if slot.is_paid_break
    ]


def extract_automatic_break_slots(schedule: EffectiveSchedule) -> list[EffectiveTimeSlot]:
    return [
        slot
        for slot in schedule.time_slots
        if slot.slot_type == TimeSlotType.BREAK and slot.is_automatic and slot.time_slot_id is not None
    ]


def _load_template(db: Session, template_id: int) -> ScheduleTemplate | None:
    return db.scalar(
        select(ScheduleTemplate)
        .options(
            selectinload(ScheduleTemplate.periods)
            .selectinload(SchedulePeriod.work_day_patterns)
            .selectinload(WorkDayPattern.time_slots)
        )
        .where(
            ScheduleTemplate.id == template_id,
            ScheduleTemplate.is_active.is_(True),
        )
    )


def get_effective_schedule(db: Session, *, employee: Employee, day_date: date) -> EffectiveSchedule:
    if employee.schedule_template_id is None:
        return build_effective_schedule(None, day_date)
    template = _load_template(db, employee.schedule_template_id)
    return build_effective_schedule(template, day_date)


def resolve_paid_break_slot_ids(db: Session, events: Iterable[ClockEvent | Any]) -> set[int]:
    slot_ids = {
        int(event.automatic_break_slot_id)
        for event in events
        if getattr(event, "automatic_break_slot_id", None) is not None
    }
    if not slot_ids:
        return set()
    return set(
        db.scalars(
            select(TimeSlot.id).where(
                TimeSlot.id.in_(slot_ids),
                TimeSlot.slot_type == TimeSlotType.BREAK,
                TimeSlot.counts_as_work.is_(True),
            )
        ).all()
    )
