from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from timeclock.models import ClockAction, ClockState, TimeEntryType, WorkdayStatus


class ClockActionRequest(BaseModel):
    ts_utc: datetime | None = None
    project_id: int | None = Field(default=None, ge=1)
    note: str | None = Field(default=None, max_length=1000)


class ProjectChangeRequest(BaseModel):
    project_id: int = Field(ge=1)
    ts_utc: datetime | None = None


class TimeEntryCancelRequest(BaseModel):
    reason: str = Field(min_length=3, max_length=1000)


class TimeEntryRead(BaseModel):
    id: int
    employee_id: int
    entry_type: TimeEntryType
    timestamp: datetime
    is_automatic: bool = False
    automatic_break_slot_id: int | None = None
    automatic_break_note: str | None = None
    project_id: int | None = None
    note: str | None = None
    is_cancelled: bool = False
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class WorkdaySummaryRead(BaseModel):
    employee_id: int
    work_date: date
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    total_worked_minutes: float
    total_break_minutes: float
    paid_break_minutes: float
    expected_minutes: float | None = None
    deviation_minutes: float | None = None
    status: WorkdayStatus
    resolution_flags: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class WorkdayTotalsRead(BaseModel):
    worked_minutes: float
    break_minutes: float
    paid_break_minutes: float

    model_config = ConfigDict(from_attributes=True)


class LiveIntervalRead(BaseModel):
    kind: Literal["WORK", "BREAK"] | None = None
    started_at: datetime | None = None
    minutes: float = 0.0

    model_config = ConfigDict(from_attributes=True)


class ClockStatusResponse(BaseModel):
    employee_id: int
    state: ClockState
    last_entry: TimeEntryRead | None = None
    allowed_actions: list[ClockAction]
    current_project_id: int | None = None


class ClockActionResponse(BaseModel):
    entry: TimeEntryRead
    previous_state: ClockState
    state: ClockState
    summary: WorkdaySummaryRead | None = None
    automatic_breaks_created: int = 0
    extra_entries: list[TimeEntryRead] = Field(default_factory=list)


class TodaySummaryResponse(BaseModel):
    employee_id: int
    work_date: date
    state: ClockState
    totals: WorkdayTotalsRead
    live: LiveIntervalRead
    expected_minutes: float
    is_working_day: bool
    schedule_source: str
    period_name: str | None = None
    entries: list[TimeEntryRead]


class WorkdayRecalculateResponse(BaseModel):
    ok: bool
    employee_id: int
    work_date: date
    summary: WorkdaySummaryRead | None = None
