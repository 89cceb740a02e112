from datetime import date

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from timeclock.db import get_db
from timeclock.schemas import (
    ClockActionRequest,
    ClockActionResponse,
    ClockStatusResponse,
    ProjectChangeRequest,
    TimeEntryCancelRequest,
    TimeEntryRead,
    TodaySummaryResponse,
    WorkdayRecalculateResponse,
    WorkdaySummaryRead,
)
from timeclock.services.time_tracking import (
    ClockActionResult,
    cancel_entry,
    change_project,
    clock_in,
    clock_out,
    end_break,
    get_current_status,
    get_today_summary,
    recalculate_workday_summary,
    start_break,
)

router = APIRouter(prefix="/api/employees/{employee_id}", tags=["time-tracking"])


def _to_action_response(request: Request, result: ClockActionResult) -> ClockActionResponse:
    request.state.event_id = result.entry.id
    request.state.clock_state = result.state.value
    return ClockActionResponse(
        entry=TimeEntryRead.model_validate(result.entry),
        previous_state=result.previous_state,
        state=result.state,
        summary=WorkdaySummaryRead.model_validate(result.summary) if result.summary is not None else None,
        automatic_breaks_created=result.automatic_breaks.created if result.automatic_breaks else 0,
        extra_entries=[TimeEntryRead.model_validate(item) for item in result.extra_entries],
    )


@router.get("/clock/status", response_model=ClockStatusResponse)
def read_clock_status(
    employee_id: int,
    request: Request,
    db: Session = Depends(get_db),
) -> ClockStatusResponse:
    request.state.employee_id = employee_id
    payload = get_current_status(db, employee_id)
    return ClockStatusResponse.model_validate(payload, from_attributes=True)


@router.post("/clock/in", response_model=ClockActionResponse, status_code=status.HTTP_201_CREATED)
def post_clock_in(
    employee_id: int,
    request: Request,
    payload: ClockActionRequest | None = None,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = employee_id
    payload = payload or ClockActionRequest()
    result = clock_in(
        db,
        employee_id,
        ts_utc=payload.ts_utc,
        project_id=payload.project_id,
        note=payload.note,
    )
    return _to_action_response(request, result)


@router.post("/clock/out", response_model=ClockActionResponse, status_code=status.HTTP_201_CREATED)
def post_clock_out(
    employee_id: int,
    request: Request,
    payload: ClockActionRequest | None = None,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = employee_id
    payload = payload or ClockActionRequest()
    result = clock_out(db, employee_id, ts_utc=payload.ts_utc, note=payload.note)
    return _to_action_response(request, result)


@router.post("/clock/break/start", response_model=ClockActionResponse, status_code=status.HTTP_201_CREATED)
def post_break_start(
    employee_id: int,
    request: Request,
    payload: ClockActionRequest | None = None,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = employee_id
    payload = payload or ClockActionRequest()
    result = start_break(db, employee_id, ts_utc=payload.ts_utc, note=payload.note)
    return _to_action_response(request, result)


@router.post("/clock/break/end", response_model=ClockActionResponse, status_code=status.HTTP_201_CREATED)
def post_break_end(
    employee_id: int,
    request: Request,
    payload: ClockActionRequest | None = None,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = employee_id
    payload = payload or ClockActionRequest()
    result = end_break(
        db,
        employee_id,
        ts_utc=payload.ts_utc,
        project_id=payload.project_id,
        note=payload.note,
    )
    return _to_action_response(request, result)


@router.post("/clock/project", response_model=ClockActionResponse, status_code=status.HTTP_201_CREATED)
def post_project_change(
    employee_id: int,
    payload: ProjectChangeRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ClockActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = employee_id
    result = change_project(db, employee_id, project_id=payload.project_id, ts_utc=payload.ts_utc)
    return _to_action_response(request, result)


@router.post("/time-entries/{entry_id}/cancel", response_model=TimeEntryRead)
def post_cancel_entry(
    employee_id: int,
    entry_id: int,
    payload: TimeEntryCancelRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> TimeEntryRead:
    request.state.actor = "admin"
    request.state.employee_id = employee_id
    entry = cancel_entry(db, employee_id, entry_id, reason=payload.reason)
    request.state.event_id = entry.id
    return TimeEntryRead.model_validate(entry)


@router.get("/workdays/today", response_model=TodaySummaryResponse)
def read_today_summary(
    employee_id: int,
    request: Request,
    db: Session = Depends(get_db),
) -> TodaySummaryResponse:
    request.state.employee_id = employee_id
    payload = get_today_summary(db, employee_id)
    return TodaySummaryResponse.model_validate(payload, from_attributes=True)


@router.post("/workdays/{work_date}/recalculate", response_model=WorkdayRecalculateResponse)
def post_recalculate_workday(
    employee_id: int,
    work_date: date,
    request: Request,
    db: Session = Depends(get_db),
) -> WorkdayRecalculateResponse:
    request.state.actor = "admin"
    request.state.employee_id = employee_id
    summary = recalculate_workday_summary(db, employee_id, day_date=work_date)
    return WorkdayRecalculateResponse(
        ok=True,
        employee_id=employee_id,
        work_date=work_date,
        summary=WorkdaySummaryRead.model_validate(summary) if summary is not None else None,
    )
