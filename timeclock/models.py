from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeclock.db import Base


class TimeEntryType(str, enum.Enum):
    CLOCK_IN = "CLOCK_IN"
    CLOCK_OUT = "CLOCK_OUT"
    BREAK_START = "BREAK_START"
    BREAK_END = "BREAK_END"
    PROJECT_SWITCH = "PROJECT_SWITCH"


class ClockState(str, enum.Enum):
    CLOCKED_OUT = "CLOCKED_OUT"
    CLOCKED_IN = "CLOCKED_IN"
    ON_BREAK = "ON_BREAK"


class ClockAction(str, enum.Enum):
    CLOCK_IN = "CLOCK_IN"
    CLOCK_OUT = "CLOCK_OUT"
    BREAK_START = "BREAK_START"
    BREAK_END = "BREAK_END"


class TimeSlotType(str, enum.Enum):
    WORK = "WORK"
    BREAK = "BREAK"


class SchedulePeriodType(str, enum.Enum):
    REGULAR = "REGULAR"
    INTENSIVE = "INTENSIVE"
    SPECIAL = "SPECIAL"


class WorkdayStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    INCOMPLETE = "INCOMPLETE"


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    schedule_template_id: Mapped[int | None] = mapped_column(
        ForeignKey("schedule_templates.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    schedule_template: Mapped[ScheduleTemplate | None] = relationship(back_populates="employees")
    time_entries: Mapped[list[TimeEntry]] = relationship(back_populates="employee")
    workday_summaries: Mapped[list[WorkdaySummary]] = relationship(back_populates="employee")


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    time_entries: Mapped[list[TimeEntry]] = relationship(back_populates="project")


class ScheduleTemplate(Base):
    __tablename__ = "schedule_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    periods: Mapped[list[SchedulePeriod]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
    )
    employees: Mapped[list[Employee]] = relationship(back_populates="schedule_template")


class SchedulePeriod(Base):
    __tablename__ = "schedule_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("schedule_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_type: Mapped[SchedulePeriodType] = mapped_column(
        Enum(SchedulePeriodType, name="schedule_period_type"),
        nullable=False,
        default=SchedulePeriodType.REGULAR,
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    valid_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    template: Mapped[ScheduleTemplate] = relationship(back_populates="periods")
    work_day_patterns: Mapped[list[WorkDayPattern]] = relationship(
        back_populates="period",
        cascade="all, delete-orphan",
    )


class WorkDayPattern(Base):
    __tablename__ = "work_day_patterns"
    __table_args__ = (UniqueConstraint("period_id", "weekday", name="uq_work_day_patterns_period_weekday"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    period_id: Mapped[int] = mapped_column(
        ForeignKey("schedule_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # 0=Monday ... 6=Sunday
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    is_working_day: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    period: Mapped[SchedulePeriod] = relationship(back_populates="work_day_patterns")
    time_slots: Mapped[list[TimeSlot]] = relationship(
        back_populates="pattern",
        cascade="all, delete-orphan",
    )


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pattern_id: Mapped[int] = mapped_column(
        ForeignKey("work_day_patterns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    slot_type: Mapped[TimeSlotType] = mapped_column(
        Enum(TimeSlotType, name="time_slot_type"),
        nullable=False,
        default=TimeSlotType.WORK,
    )
    start_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    end_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    counts_as_work: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    is_automatic: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    pattern: Mapped[WorkDayPattern] = relationship(back_populates="time_slots")


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entry_type: Mapped[TimeEntryType] = mapped_column(
        Enum(TimeEntryType, name="time_entry_type"),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    is_automatic: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    automatic_break_slot_id: Mapped[int | None] = mapped_column(
        ForeignKey("time_slots.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    automatic_break_note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    project_id: Mapped[int | None] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    is_cancelled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(back_populates="time_entries")
    project: Mapped[Project | None] = relationship(back_populates="time_entries")


class WorkdaySummary(Base):
    __tablename__ = "workday_summaries"
    __table_args__ = (UniqueConstraint("employee_id", "work_date", name="uq_workday_summaries_employee_work_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    clock_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_worked_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_break_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    paid_break_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    expected_minutes: Mapped[float | None] = mapped_column(Float, nullable=True)
    deviation_minutes: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[WorkdayStatus] = mapped_column(
        Enum(WorkdayStatus, name="workday_status"),
        nullable=False,
        default=WorkdayStatus.IN_PROGRESS,
    )
    resolution_flags: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="workday_summaries")
