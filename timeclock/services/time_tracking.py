from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import ApiError, clock_state_details
from timeclock.models import (
    ClockAction,
    ClockState,
    Employee,
    Project,
    TimeEntry,
    TimeEntryType,
    WorkdayStatus,
    WorkdaySummary,
)
from timeclock.services.automatic_breaks import AutomaticBreakResult, process_automatic_breaks
from timeclock.services.clock_state import (
    allowed_actions,
    derive_state_from_last_event,
    describe_rejection,
    get_next_state,
    validate_transition,
)
from timeclock.services.local_days import (
    local_day_bounds_utc,
    local_day_of,
    local_day_start,
    normalize_ts,
)
from timeclock.services.schedules import (
    EffectiveSchedule,
    extract_paid_break_slots,
    get_effective_schedule,
    resolve_paid_break_slot_ids,
)
from timeclock.services.workday_totals import (
    ClockEvent,
    LiveInterval,
    WorkdayTotals,
    calculate_live_minutes,
    calculate_workday_totals,
)
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.time_tracking")

FUTURE_TOLERANCE = timedelta(minutes=5)
RESUME_AFTER_BREAK_NOTE = "Project resumed after break"

_ACTIVE_WORK_TYPES = {
    TimeEntryType.CLOCK_IN,
    TimeEntryType.BREAK_END,
    TimeEntryType.PROJECT_SWITCH,
}
_PROJECT_ENTRY_TYPES = (TimeEntryType.CLOCK_IN, TimeEntryType.PROJECT_SWITCH)


@dataclass
class ClockActionResult:
    entry: TimeEntry
    previous_state: ClockState
    state: ClockState
    summary: WorkdaySummary | None = None
    automatic_breaks: AutomaticBreakResult | None = None
    extra_entries: list[TimeEntry] = field(default_factory=list)


@dataclass(frozen=True)
class DayComputation:
    day_date: date
    day_start: datetime
    entries: list[TimeEntry]
    events: list[ClockEvent]
    totals: WorkdayTotals
    schedule: EffectiveSchedule
    first_clock_in: datetime | None
    last_clock_out: datetime | None
    crossed_midnight_in: bool
    crossed_midnight_out: bool
    carried_break_in: bool

    @property
    def is_closed(self) -> bool:
        return self.last_clock_out is not None or self.crossed_midnight_out


def _resolve_employee(db: Session, employee_id: int, *, for_update: bool = False) -> Employee:
    statement = select(Employee).where(Employee.id == employee_id)
    if for_update:
        # Serialises read-validate-write per employee until commit.
        statement = statement.with_for_update()
    employee = db.scalar(statement)
    if employee is None:
        raise ApiError(
            status_code=404,
            code="EMPLOYEE_NOT_FOUND",
            message="Employee not found.",
        )
    if not employee.is_active:
        raise ApiError(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message="Inactive employee cannot perform clock actions.",
        )
    return employee


def _resolve_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None or not project.is_active:
        raise ApiError(
            status_code=404,
            code="PROJECT_NOT_FOUND",
            message="Active project not found.",
        )
    return project


def _resolve_latest_entry(db: Session, *, employee_id: int) -> TimeEntry | None:
    return db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.employee_id == employee_id,
            TimeEntry.is_cancelled.is_(False),
        )
        .order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc())
    )


def _resolve_current_project_id(
    db: Session,
    *,
    employee_id: int,
    before_ts: datetime | None = None,
) -> int | None:
    statement = (
        select(TimeEntry.project_id)
        .where(
            TimeEntry.employee_id == employee_id,
            TimeEntry.is_cancelled.is_(False),
            TimeEntry.entry_type.in_(_PROJECT_ENTRY_TYPES),
        )
        .order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc())
    )
    if before_ts is not None:
        statement = statement.where(TimeEntry.timestamp < before_ts)
    return db.scalar(statement)


def _load_day_entries(
    db: Session,
    *,
    employee_id: int,
    start_utc: datetime,
    end_utc: datetime,
) -> list[TimeEntry]:
    return list(
        db.scalars(
            select(TimeEntry)
            .where(
                TimeEntry.employee_id == employee_id,
                TimeEntry.is_cancelled.is_(False),
                TimeEntry.timestamp >= start_utc,
                TimeEntry.timestamp < end_utc,
            )
            .order_by(TimeEntry.timestamp.asc(), TimeEntry.id.asc())
        ).all()
    )


def _resolve_boundary_entries(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
) -> tuple[TimeEntry | None, TimeEntry | None]:
    """Last entry of the previous local day and first entry of the next one.

    Only adjacent days are consulted. A shift left open across a whole day
    without entries is not carried past that day: the late clock-out two
    or more days later finds no open interval and credits nothing. A
    forgotten clock-out is corrected by cancelling entries.
    """
    previous_start, day_start_utc = local_day_bounds_utc(day_date - timedelta(days=1))
    next_start, next_end = local_day_bounds_utc(day_date + timedelta(days=1))
    previous_last = db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.employee_id == employee_id,
            TimeEntry.is_cancelled.is_(False),
            TimeEntry.timestamp >= previous_start,
            TimeEntry.timestamp < day_start_utc,
        )
        .order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc())
    )
    next_first = db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.employee_id == employee_id,
            TimeEntry.is_cancelled.is_(False),
            TimeEntry.timestamp >= next_start,
            TimeEntry.timestamp < next_end,
        )
        .order_by(TimeEntry.timestamp.asc(), TimeEntry.id.asc())
    )
    return previous_last, next_first


def _validate_action_timestamp(ts_utc: datetime | None, last_entry: TimeEntry | None) -> datetime:
    now_utc = datetime.now(timezone.utc)
    ts = normalize_ts(ts_utc) if ts_utc is not None else now_utc
    if ts > now_utc + FUTURE_TOLERANCE:
        raise ApiError(
            status_code=422,
            code="TIMESTAMP_IN_FUTURE",
            message="Clock actions cannot be recorded in the future.",
            details={"max_allowed_ts": (now_utc + FUTURE_TOLERANCE).isoformat()},
        )
    if last_entry is not None and ts < normalize_ts(last_entry.timestamp):
        raise ApiError(
            status_code=422,
            code="TIMESTAMP_BEFORE_LAST_ENTRY",
            message="Clock action is earlier than the latest recorded entry.",
            details={"last_entry_ts": normalize_ts(last_entry.timestamp).isoformat()},
        )
    return ts


def build_day_computation(db: Session, *, employee: Employee, day_date: date) -> DayComputation:
    start_utc, end_utc = local_day_bounds_utc(day_date)
    day_start = local_day_start(day_date)
    entries = _load_day_entries(db, employee_id=employee.id, start_utc=start_utc, end_utc=end_utc)
    previous_last, next_first = _resolve_boundary_entries(db, employee_id=employee.id, day_date=day_date)

    events = [ClockEvent.from_entry(entry) for entry in entries]
    crossed_midnight_in = False
    carried_break_in = False
    if previous_last is not None:
        previous_type = TimeEntryType(previous_last.entry_type)
        if previous_type in _ACTIVE_WORK_TYPES:
            crossed_midnight_in = True
            events.insert(0, ClockEvent(type=TimeEntryType.CLOCK_IN, timestamp=start_utc))
        elif previous_type == TimeEntryType.BREAK_START:
            carried_break_in = True
            events.insert(
                0,
                ClockEvent(
                    type=TimeEntryType.BREAK_START,
                    timestamp=start_utc,
                    is_automatic=bool(previous_last.is_automatic),
                    automatic_break_slot_id=previous_last.automatic_break_slot_id,
                ),
            )

    crossed_midnight_out = False
    if next_first is not None:
        last_type = TimeEntryType(entries[-1].entry_type) if entries else None
        if last_type is None and (crossed_midnight_in or carried_break_in):
            last_type = TimeEntryType(previous_last.entry_type) if previous_last is not None else None
        if last_type in _ACTIVE_WORK_TYPES:
            crossed_midnight_out = True
            events.append(ClockEvent(type=TimeEntryType.CLOCK_OUT, timestamp=end_utc))
        elif last_type == TimeEntryType.BREAK_START:
            crossed_midnight_out = True
            events.append(ClockEvent(type=TimeEntryType.BREAK_END, timestamp=end_utc))
            events.append(ClockEvent(type=TimeEntryType.CLOCK_OUT, timestamp=end_utc))

    schedule = get_effective_schedule(db, employee=employee, day_date=day_date)
    totals = calculate_workday_totals(
        events,
        day_start,
        paid_break_slots=extract_paid_break_slots(schedule),
        paid_break_slot_ids=resolve_paid_break_slot_ids(db, events),
    )

    first_clock_in = next(
        (entry.timestamp for entry in entries if entry.entry_type == TimeEntryType.CLOCK_IN),
        None,
    )
    last_clock_out = next(
        (entry.timestamp for entry in reversed(entries) if entry.entry_type == TimeEntryType.CLOCK_OUT),
        None,
    )
    return DayComputation(
        day_date=day_date,
        day_start=day_start,
        entries=entries,
        events=events,
        totals=totals,
        schedule=schedule,
        first_clock_in=first_clock_in,
        last_clock_out=last_clock_out,
        crossed_midnight_in=crossed_midnight_in,
        crossed_midnight_out=crossed_midnight_out,
        carried_break_in=carried_break_in,
    )


def resolve_workday_status(
    *,
    worked_minutes: float,
    expected_minutes: float | None,
    is_closed: bool,
) -> WorkdayStatus:
    if not is_closed:
        return WorkdayStatus.IN_PROGRESS
    if not expected_minutes:
        # Without an expected amount completion cannot be judged.
        return WorkdayStatus.IN_PROGRESS
    threshold = get_settings().completion_threshold_percent
    compliance = worked_minutes / expected_minutes * 100
    if compliance >= threshold:
        return WorkdayStatus.COMPLETED
    return WorkdayStatus.INCOMPLETE


def _find_summary(db: Session, *, employee_id: int, day_date: date) -> WorkdaySummary | None:
    return db.scalar(
        select(WorkdaySummary).where(
            WorkdaySummary.employee_id == employee_id,
            WorkdaySummary.work_date == day_date,
        )
    )


def update_workday_summary(
    db: Session,
    *,
    employee: Employee,
    day_date: date,
    skip_previous_day: bool = False,
) -> WorkdaySummary | None:
    computation = build_day_computation(db, employee=employee, day_date=day_date)
    summary = _find_summary(db, employee_id=employee.id, day_date=day_date)

    if not computation.entries and not computation.crossed_midnight_in and not computation.carried_break_in:
        if summary is not None:
            db.delete(summary)
            logger.info(
                "workday_summary_removed",
                extra={"employee_id": employee.id, "work_date": day_date.isoformat()},
            )
        return None

    totals = computation.totals
    expected_minutes = computation.schedule.expected_minutes if computation.schedule.is_working_day else None
    deviation_minutes = totals.worked_minutes - expected_minutes if expected_minutes else None
    status = resolve_workday_status(
        worked_minutes=totals.worked_minutes,
        expected_minutes=expected_minutes,
        is_closed=computation.is_closed,
    )

    if summary is None:
        summary = WorkdaySummary(employee_id=employee.id, work_date=day_date)
        db.add(summary)
    summary.clock_in = computation.first_clock_in
    summary.clock_out = computation.last_clock_out
    summary.total_worked_minutes = totals.worked_minutes
    summary.total_break_minutes = totals.break_minutes
    summary.paid_break_minutes = totals.paid_break_minutes
    summary.expected_minutes = expected_minutes
    summary.deviation_minutes = deviation_minutes
    summary.status = status
    summary.resolution_flags = {
        "crossed_midnight_in": computation.crossed_midnight_in,
        "crossed_midnight_out": computation.crossed_midnight_out,
        "carried_break_in": computation.carried_break_in,
        "schedule_source": computation.schedule.source,
    }
    logger.info(
        "workday_summary_updated",
        extra={
            "employee_id": employee.id,
            "work_date": day_date.isoformat(),
            "worked_minutes": totals.worked_minutes,
            "break_minutes": totals.break_minutes,
            "paid_break_minutes": totals.paid_break_minutes,
            "status": status.value,
        },
    )

    if (computation.crossed_midnight_in or computation.carried_break_in) and not skip_previous_day:
        update_workday_summary(
            db,
            employee=employee,
            day_date=day_date - timedelta(days=1),
            skip_previous_day=True,
        )
    return summary


def _record_clock_action(
    db: Session,
    *,
    employee_id: int,
    action: ClockAction,
    ts_utc: datetime | None,
    project_id: int | None = None,
    note: str | None = None,
) -> ClockActionResult:
    employee = _resolve_employee(db, employee_id, for_update=True)
    last_entry = _resolve_latest_entry(db, employee_id=employee.id)
    previous_state = derive_state_from_last_event(
        TimeEntryType(last_entry.entry_type) if last_entry is not None else None
    )

    if not validate_transition(previous_state, action):
        logger.info(
            "clock_transition_rejected",
            extra={
                "employee_id": employee.id,
                "state": previous_state.value,
                "action": action.value,
            },
        )
        raise ApiError(
            status_code=409,
            code="INVALID_CLOCK_TRANSITION",
            message=describe_rejection(previous_state, action),
            details=clock_state_details(previous_state, allowed_actions(previous_state)),
        )

    ts = _validate_action_timestamp(ts_utc, last_entry)
    if project_id is not None:
        _resolve_project(db, project_id)

    automatic_breaks: AutomaticBreakResult | None = None
    if action == ClockAction.CLOCK_OUT and get_settings().automatic_breaks_enabled:
        # A break truncated at clock-out shares its timestamp; the pair must get the lower ids.
        automatic_breaks = process_automatic_breaks(db, employee=employee, clock_out_ts=ts)
        db.flush()

    entry = TimeEntry(
        employee_id=employee.id,
        entry_type=TimeEntryType(action.value),
        timestamp=ts,
        is_automatic=False,
        project_id=project_id,
        note=note,
        is_cancelled=False,
    )
    db.add(entry)
    result = ClockActionResult(
        entry=entry,
        previous_state=previous_state,
        state=get_next_state(action),
        automatic_breaks=automatic_breaks,
    )

    if action == ClockAction.BREAK_END and project_id is None and last_entry is not None:
        resumed_project_id = _resolve_current_project_id(
            db,
            employee_id=employee.id,
            before_ts=normalize_ts(last_entry.timestamp),
        )
        if resumed_project_id is not None:
            resume_entry = TimeEntry(
                employee_id=employee.id,
                entry_type=TimeEntryType.PROJECT_SWITCH,
                timestamp=ts,
                is_automatic=True,
                project_id=resumed_project_id,
                note=RESUME_AFTER_BREAK_NOTE,
                is_cancelled=False,
            )
            db.add(resume_entry)
            result.extra_entries.append(resume_entry)

    db.flush()

    result.summary = update_workday_summary(db, employee=employee, day_date=local_day_of(ts))
    db.commit()
    db.refresh(entry)

    logger.info(
        "clock_entry_created",
        extra={
            "employee_id": employee.id,
            "entry_id": entry.id,
            "entry_type": entry.entry_type.value,
            "previous_state": previous_state.value,
            "state": result.state.value,
            "automatic_breaks_created": result.automatic_breaks.created if result.automatic_breaks else 0,
        },
    )
    return result


def clock_in(
    db: Session,
    employee_id: int,
    *,
    ts_utc: datetime | None = None,
    project_id: int | None = None,
    note: str | None = None,
) -> ClockActionResult:
    return _record_clock_action(
        db,
        employee_id=employee_id,
        action=ClockAction.CLOCK_IN,
        ts_utc=ts_utc,
        project_id=project_id,
        note=note,
    )


def clock_out(
    db: Session,
    employee_id: int,
    *,
    ts_utc: datetime | None = None,
    note: str | None = None,
) -> ClockActionResult:
    return _record_clock_action(
        db,
        employee_id=employee_id,
        action=ClockAction.CLOCK_OUT,
        ts_utc=ts_utc,
        note=note,
    )


def start_break(
    db: Session,
    employee_id: int,
    *,
    ts_utc: datetime | None = None,
    note: str | None = None,
) -> ClockActionResult:
    return _record_clock_action(
        db,
        employee_id=employee_id,
        action=ClockAction.BREAK_START,
        ts_utc=ts_utc,
        note=note,
    )


def end_break(
    db: Session,
    employee_id: int,
    *,
    ts_utc: datetime | None = None,
    project_id: int | None = None,
    note: str | None = None,
) -> ClockActionResult:
    return _record_clock_action(
        db,
        employee_id=employee_id,
        action=ClockAction.BREAK_END,
        ts_utc=ts_utc,
        project_id=project_id,
        note=note,
    )


def change_project(
    db: Session,
    employee_id: int,
    *,
    project_id: int,
    ts_utc: datetime | None = None,
) -> ClockActionResult:
    employee = _resolve_employee(db, employee_id, for_update=True)
    last_entry = _resolve_latest_entry(db, employee_id=employee.id)
    state = derive_state_from_last_event(
        TimeEntryType(last_entry.entry_type) if last_entry is not None else None
    )
    if state == ClockState.CLOCKED_OUT:
        raise ApiError(
            status_code=409,
            code="NOT_CLOCKED_IN",
            message="Clock in before changing project.",
            details=clock_state_details(state, allowed_actions(state)),
        )
    if state == ClockState.ON_BREAK:
        raise ApiError(
            status_code=409,
            code="ON_BREAK",
            message="End the current break before changing project.",
            details=clock_state_details(state, allowed_actions(state)),
        )

    _resolve_project(db, project_id)
    ts = _validate_action_timestamp(ts_utc, last_entry)
    entry = TimeEntry(
        employee_id=employee.id,
        entry_type=TimeEntryType.PROJECT_SWITCH,
        timestamp=ts,
        is_automatic=False,
        project_id=project_id,
        is_cancelled=False,
    )
    db.add(entry)
    db.flush()
    summary = update_workday_summary(db, employee=employee, day_date=local_day_of(ts))
    db.commit()
    db.refresh(entry)
    logger.info(
        "project_switched",
        extra={"employee_id": employee.id, "entry_id": entry.id, "project_id": project_id},
    )
    return ClockActionResult(entry=entry, previous_state=state, state=state, summary=summary)


def cancel_entry(
    db: Session,
    employee_id: int,
    entry_id: int,
    *,
    reason: str,
) -> TimeEntry:
    employee = _resolve_employee(db, employee_id, for_update=True)
    entry = db.scalar(
        select(TimeEntry).where(
            TimeEntry.id == entry_id,
            TimeEntry.employee_id == employee.id,
        )
    )
    if entry is None:
        raise ApiError(
            status_code=404,
            code="TIME_ENTRY_NOT_FOUND",
            message="Time entry not found.",
        )
    if entry.is_cancelled:
        raise ApiError(
            status_code=409,
            code="ENTRY_ALREADY_CANCELLED",
            message="Time entry is already cancelled.",
        )

    entry.is_cancelled = True
    entry.cancelled_at = datetime.now(timezone.utc)
    entry.cancellation_reason = reason.strip()
    db.flush()
    update_workday_summary(db, employee=employee, day_date=local_day_of(entry.timestamp))
    db.commit()
    db.refresh(entry)
    logger.info(
        "time_entry_cancelled",
        extra={"employee_id": employee.id, "entry_id": entry.id, "entry_type": entry.entry_type.value},
    )
    return entry


def recalculate_workday_summary(db: Session, employee_id: int, *, day_date: date) -> WorkdaySummary | None:
    employee = _resolve_employee(db, employee_id, for_update=True)
    summary = update_workday_summary(db, employee=employee, day_date=day_date)
    db.commit()
    return summary


def get_current_status(db: Session, employee_id: int) -> dict[str, Any]:
    employee = _resolve_employee(db, employee_id)
    last_entry = _resolve_latest_entry(db, employee_id=employee.id)
    state = derive_state_from_last_event(
        TimeEntryType(last_entry.entry_type) if last_entry is not None else None
    )
    current_project_id = None
    if state != ClockState.CLOCKED_OUT:
        current_project_id = _resolve_current_project_id(db, employee_id=employee.id)
    return {
        "employee_id": employee.id,
        "state": state,
        "last_entry": last_entry,
        "allowed_actions": allowed_actions(state),
        "current_project_id": current_project_id,
    }


def get_today_summary(db: Session, employee_id: int, *, now_utc: datetime | None = None) -> dict[str, Any]:
    employee = _resolve_employee(db, employee_id)
    now = normalize_ts(now_utc)
    computation = build_day_computation(db, employee=employee, day_date=local_day_of(now))
    last_entry = _resolve_latest_entry(db, employee_id=employee.id)
    state = derive_state_from_last_event(
        TimeEntryType(last_entry.entry_type) if last_entry is not None else None
    )
    live: LiveInterval = calculate_live_minutes(computation.events, now)
    return {
        "employee_id": employee.id,
        "work_date": computation.day_date,
        "state": state,
        "totals": computation.totals,
        "live": live,
        "expected_minutes": computation.schedule.expected_minutes,
        "is_working_day": computation.schedule.is_working_day,
        "schedule_source": computation.schedule.source,
        "period_name": computation.schedule.period_name,
        "entries": computation.entries,
    }
