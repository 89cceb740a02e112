from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.models import Employee, TimeEntry, TimeEntryType
from timeclock.services.local_days import (
    format_minutes,
    local_day_bounds_utc,
    local_day_of,
    local_day_start,
    minutes_to_utc,
    normalize_ts,
)
from timeclock.services.schedules import (
    EffectiveTimeSlot,
    extract_automatic_break_slots,
    get_effective_schedule,
)
from timeclock.services.workday_totals import BreakInterval, ClockEvent, minutes_of_day, sort_events

logger = logging.getLogger("timeclock.automatic_breaks")


@dataclass(frozen=True)
class PlannedBreak:
    slot_id: int
    start_minutes: float
    end_minutes: float
    start_ts: datetime
    end_ts: datetime
    note: str

    @property
    def duration_minutes(self) -> float:
        return self.end_minutes - self.start_minutes


@dataclass
class AutomaticBreakResult:
    created: int = 0
    skipped: int = 0
    total_minutes: float = 0.0
    reasons: list[str] = field(default_factory=list)
    entries: list[TimeEntry] = field(default_factory=list)


def calculate_effective_break_interval(
    break_start_minutes: float,
    break_end_minutes: float,
    clock_out_minutes: float,
) -> tuple[float, float] | None:
    if clock_out_minutes <= break_start_minutes:
        return None
    if clock_out_minutes < break_end_minutes:
        return break_start_minutes, clock_out_minutes
    return break_start_minutes, break_end_minutes


def has_break_overlap(
    manual_breaks: Iterable[BreakInterval],
    break_start_minutes: float,
    break_end_minutes: float,
) -> bool:
    return any(
        item.start_minutes < break_end_minutes and item.end_minutes > break_start_minutes
        for item in manual_breaks
    )


def extract_manual_breaks(events: Iterable[ClockEvent], day_start: datetime) -> list[BreakInterval]:
    breaks: list[BreakInterval] = []
    current_start: float | None = None
    for event in sort_events(events):
        if event.is_automatic:
            continue
        if event.type == TimeEntryType.BREAK_START:
            current_start = minutes_of_day(day_start, event.timestamp)
        elif event.type == TimeEntryType.BREAK_END and current_start is not None:
            breaks.append(
                BreakInterval(
                    start_minutes=current_start,
                    end_minutes=minutes_of_day(day_start, event.timestamp),
                )
            )
            current_start = None
    return breaks


def build_break_note(start_minutes: float, end_minutes: float) -> str:
    duration = int(end_minutes - start_minutes)
    return f"Automatic break {format_minutes(start_minutes)} - {format_minutes(end_minutes)} ({duration} min)"


def plan_automatic_breaks(
    slots: Iterable[EffectiveTimeSlot],
    events: Iterable[ClockEvent],
    *,
    day_start: datetime,
    clock_out_ts: datetime,
) -> tuple[list[PlannedBreak], list[str]]:
    """Decide which automatic break slots turn into break entries at clock-out.

    Manual breaks always win over automatic ones, an existing automatic break
    for a slot is never duplicated, and a clock-out inside the slot truncates
    the break at the clock-out minute.
    """
    event_list = list(events)
    manual_breaks = extract_manual_breaks(event_list, day_start)
    existing_slot_ids = {
        str(event.automatic_break_slot_id)
        for event in event_list
        if event.type == TimeEntryType.BREAK_START and event.automatic_break_slot_id is not None
    }
    clock_out_minutes = minutes_of_day(day_start, clock_out_ts)

    planned: list[PlannedBreak] = []
    reasons: list[str] = []
    for slot in slots:
        slot_id = slot.time_slot_id
        if slot_id is None:
            continue
        if str(slot_id) in existing_slot_ids:
            reasons.append(f"Slot {slot_id}: already exists")
            continue
        if has_break_overlap(manual_breaks, slot.start_minutes, slot.end_minutes):
            reasons.append(f"Slot {slot_id}: overlaps a manual break")
            continue
        interval = calculate_effective_break_interval(slot.start_minutes, slot.end_minutes, clock_out_minutes)
        if interval is None:
            reasons.append(f"Slot {slot_id}: clock-out before break start")
            continue
        start_minutes, end_minutes = interval
        planned.append(
            PlannedBreak(
                slot_id=slot_id,
                start_minutes=start_minutes,
                end_minutes=end_minutes,
                start_ts=minutes_to_utc(day_start, start_minutes),
                end_ts=minutes_to_utc(day_start, end_minutes),
                note=build_break_note(start_minutes, end_minutes),
            )
        )
    return planned, reasons


def _load_window_entries(
    db: Session,
    *,
    employee_id: int,
    window_start: datetime,
    window_end: datetime,
) -> list[TimeEntry]:
    return list(
        db.scalars(
            select(TimeEntry)
            .where(
                TimeEntry.employee_id == employee_id,
                TimeEntry.is_cancelled.is_(False),
                TimeEntry.timestamp >= window_start,
                TimeEntry.timestamp <= window_end,
            )
            .order_by(TimeEntry.timestamp.asc(), TimeEntry.id.asc())
        ).all()
    )


def process_automatic_breaks(
    db: Session,
    *,
    employee: Employee,
    clock_out_ts: datetime,
) -> AutomaticBreakResult:
    """Insert the automatic breaks of the session closed at ``clock_out_ts``.

    Failures are logged and reported in ``reasons``; they never abort the
    clock-out that triggered them.
    """
    result = AutomaticBreakResult()
    clock_out_ts = normalize_ts(clock_out_ts)
    try:
        # Night shifts: the session may have started on the previous local day.
        window_start, _ = local_day_bounds_utc(local_day_of(clock_out_ts) - timedelta(days=1))
        window_entries = _load_window_entries(
            db,
            employee_id=employee.id,
            window_start=window_start,
            window_end=clock_out_ts,
        )
        last_clock_in = next(
            (entry for entry in reversed(window_entries) if entry.entry_type == TimeEntryType.CLOCK_IN),
            None,
        )
        if last_clock_in is None:
            result.reasons.append("No clock-in found")
            return result

        schedule_day = local_day_of(last_clock_in.timestamp)
        schedule = get_effective_schedule(db, employee=employee, day_date=schedule_day)
        if not schedule.is_working_day:
            result.reasons.append("Not a working day")
            return result

        slots = extract_automatic_break_slots(schedule)
        if not slots:
            result.reasons.append("No automatic breaks configured")
            return result

        day_start = local_day_start(schedule_day)
        session_events = [
            ClockEvent.from_entry(entry)
            for entry in window_entries
            if normalize_ts(entry.timestamp) >= normalize_ts(day_start)
        ]
        planned, reasons = plan_automatic_breaks(
            slots,
            session_events,
            day_start=day_start,
            clock_out_ts=clock_out_ts,
        )
        result.reasons.extend(reasons)
        result.skipped = len(reasons)

        for item in planned:
            for entry_type, ts in (
                (TimeEntryType.BREAK_START, item.start_ts),
                (TimeEntryType.BREAK_END, item.end_ts),
            ):
                entry = TimeEntry(
                    employee_id=employee.id,
                    entry_type=entry_type,
                    timestamp=ts,
                    is_automatic=True,
                    automatic_break_slot_id=item.slot_id,
                    automatic_break_note=item.note,
                    is_cancelled=False,
                )
                db.add(entry)
                result.entries.append(entry)
            result.created += 1
            result.total_minutes += item.duration_minutes
            logger.info(
                "automatic_break_created",
                extra={
                    "employee_id": employee.id,
                    "slot_id": item.slot_id,
                    "break_start": item.start_ts.isoformat(),
                    "break_end": item.end_ts.isoformat(),
                    "minutes": item.duration_minutes,
                },
            )
    except Exception as exc:
        logger.exception(
            "automatic_breaks_failed",
            extra={"employee_id": employee.id, "clock_out_ts": clock_out_ts.isoformat()},
        )
        result.reasons.append(f"Error: {exc}")
    return result
