"""Workday aggregation.

Rebuilds worked, break and paid-break minutes for one employee-day from the
ordered clock events of that day. Totals are recomputed from scratch on every
call and only closed intervals are credited; an interval still open after the
last event is reported separately by ``calculate_live_minutes``.

Out-of-sequence events are ignored instead of raising, so the summary view
stays available even when the upstream transition check was bypassed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from timeclock.models import TimeEntryType

logger = logging.getLogger("timeclock.workday_totals")


@dataclass(frozen=True)
class ClockEvent:
    type: TimeEntryType
    timestamp: datetime
    is_automatic: bool = False
    automatic_break_slot_id: int | str | None = None

    @classmethod
    def from_entry(cls, entry: Any) -> ClockEvent:
        return cls(
            type=TimeEntryType(entry.entry_type),
            timestamp=entry.timestamp,
            is_automatic=bool(entry.is_automatic),
            automatic_break_slot_id=entry.automatic_break_slot_id,
        )


@dataclass(frozen=True)
class PaidBreakSlot:
    start_minutes: float
    end_minutes: float


@dataclass(frozen=True)
class BreakInterval:
    start_minutes: float
    end_minutes: float
    slot_id: int | str | None = None

    @property
    def duration_minutes(self) -> float:
        return max(0.0, self.end_minutes - self.start_minutes)


@dataclass(frozen=True)
class WorkdayTotals:
    worked_minutes: float = 0.0
    break_minutes: float = 0.0
    paid_break_minutes: float = 0.0


@dataclass(frozen=True)
class LiveInterval:
    kind: Literal["WORK", "BREAK"] | None
    started_at: datetime | None
    minutes: float


@dataclass
class _WalkResult:
    work_minutes: float = 0.0
    break_minutes: float = 0.0
    breaks: list[BreakInterval] = field(default_factory=list)
    open_work_start: datetime | None = None
    open_break_start: datetime | None = None


def _normalize_ts(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _minutes_between(start: datetime, end: datetime) -> float:
    minutes = (_normalize_ts(end) - _normalize_ts(start)).total_seconds() / 60
    if minutes < 0:
        logger.warning(
            "negative_interval_clamped",
            extra={
                "interval_start": start.isoformat(),
                "interval_end": end.isoformat(),
                "minutes": minutes,
            },
        )
        return 0.0
    return minutes


def minutes_of_day(day_start: datetime, value: datetime) -> float:
    return (_normalize_ts(value) - _normalize_ts(day_start)).total_seconds() / 60


def sort_events(events: Iterable[ClockEvent]) -> list[ClockEvent]:
    # Stable: equal timestamps keep the caller's (timestamp, id) storage order.
    return sorted(events, key=lambda event: _normalize_ts(event.timestamp))


def _ignore(event: ClockEvent, reason: str) -> None:
    logger.debug(
        "clock_event_ignored",
        extra={
            "event_type": TimeEntryType(event.type).value,
            "event_ts": event.timestamp.isoformat(),
            "reason": reason,
        },
    )


def _walk(events: Iterable[ClockEvent], day_start: datetime) -> _WalkResult:
    result = _WalkResult()
    last_clock_in: datetime | None = None
    last_break_start: datetime | None = None
    last_break_slot_id: int | str | None = None

    for event in sort_events(events):
        event_type = TimeEntryType(event.type)
        ts = event.timestamp

        if event_type == TimeEntryType.CLOCK_IN:
            if last_clock_in is not None or last_break_start is not None:
                logger.debug(
                    "stale_open_interval_discarded",
                    extra={"event_ts": ts.isoformat()},
                )
            last_clock_in = ts
            last_break_start = None
            last_break_slot_id = None

        elif event_type == TimeEntryType.PROJECT_SWITCH:
            if last_clock_in is None:
                _ignore(event, "no_open_work_interval")
                continue
            result.work_minutes += _minutes_between(last_clock_in, ts)
            last_clock_in = ts

        elif event_type == TimeEntryType.BREAK_START:
            if last_break_start is not None:
                _ignore(event, "break_already_open")
                continue
            if last_clock_in is not None:
                result.work_minutes += _minutes_between(last_clock_in, ts)
                last_clock_in = None
            last_break_start = ts
            last_break_slot_id = event.automatic_break_slot_id

        elif event_type == TimeEntryType.BREAK_END:
            if last_break_start is None:
                _ignore(event, "no_open_break")
                continue
            duration = _minutes_between(last_break_start, ts)
            result.break_minutes += duration
            start_minutes = minutes_of_day(day_start, last_break_start)
            slot_id = last_break_slot_id
            if slot_id is None:
                slot_id = event.automatic_break_slot_id
            result.breaks.append(
                BreakInterval(
                    start_minutes=start_minutes,
                    end_minutes=start_minutes + duration,
                    slot_id=slot_id,
                )
            )
            last_break_start = None
            last_break_slot_id = None
            last_clock_in = ts

        elif event_type == TimeEntryType.CLOCK_OUT:
            if last_clock_in is not None:
                result.work_minutes += _minutes_between(last_clock_in, ts)
            elif last_break_start is not None:
                result.break_minutes += _minutes_between(last_break_start, ts)
            else:
                _ignore(event, "nothing_open")
            last_clock_in = None
            last_break_start = None
            last_break_slot_id = None

    result.open_work_start = last_clock_in
    result.open_break_start = last_break_start
    return result


def overlap_minutes(start_a: float, end_a: float, start_b: float, end_b: float) -> float:
    # Half-open intervals: touching edges do not overlap.
    return max(0.0, min(end_a, end_b) - max(start_a, start_b))


def calculate_paid_break_minutes(
    breaks: Iterable[BreakInterval],
    *,
    paid_break_slots: Iterable[PaidBreakSlot],
    paid_break_slot_ids: Iterable[int | str],
) -> float:
    slots = list(paid_break_slots)
    paid_ids = {str(slot_id) for slot_id in paid_break_slot_ids}
    paid = 0.0
    for interval in breaks:
        if interval.slot_id is not None:
            if str(interval.slot_id) in paid_ids:
                paid += interval.duration_minutes
            continue
        for slot in slots:
            paid += overlap_minutes(
                interval.start_minutes,
                interval.end_minutes,
                slot.start_minutes,
                slot.end_minutes,
            )
    return paid


def extract_break_intervals(events: Iterable[ClockEvent], day_start: datetime) -> list[BreakInterval]:
    return _walk(events, day_start).breaks


def calculate_workday_totals(
    events: Iterable[ClockEvent],
    day_start: datetime,
    *,
    paid_break_slots: Iterable[PaidBreakSlot] = (),
    paid_break_slot_ids: Iterable[int | str] = (),
) -> WorkdayTotals:
    """Aggregate the closed work and break intervals of one day.

    ``day_start`` is the local midnight used to express breaks as minutes of
    day. A break tagged with an automatic slot id is paid in full when the id
    is in ``paid_break_slot_ids`` and not at all otherwise; an untagged break
    is paid for the part that overlaps a ``PaidBreakSlot``. Paid break time is
    added back to the worked minutes, while ``break_minutes`` stays the raw
    time away.
    """
    walk = _walk(events, day_start)
    paid_break_minutes = calculate_paid_break_minutes(
        walk.breaks,
        paid_break_slots=paid_break_slots,
        paid_break_slot_ids=paid_break_slot_ids,
    )
    return WorkdayTotals(
        worked_minutes=walk.work_minutes + paid_break_minutes,
        break_minutes=walk.break_minutes,
        paid_break_minutes=paid_break_minutes,
    )


def calculate_live_minutes(events: Iterable[ClockEvent], now: datetime) -> LiveInterval:
    walk = _walk(events, now)
    if walk.open_work_start is not None:
        return LiveInterval(
            kind="WORK",
            started_at=walk.open_work_start,
            minutes=_minutes_between(walk.open_work_start, now),
        )
    if walk.open_break_start is not None:
        return LiveInterval(
            kind="BREAK",
            started_at=walk.open_break_start,
            minutes=_minutes_between(walk.open_break_start, now),
        )
    return LiveInterval(kind=None, started_at=None, minutes=0.0)
