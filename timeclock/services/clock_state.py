"""Clock state machine.

The clock state of an employee is never stored: it is derived from the type
of the latest non-cancelled time entry. These helpers only look things up and
never raise; callers decide whether a rejected transition becomes an error.
"""

from __future__ import annotations

from timeclock.models import ClockAction, ClockState, TimeEntryType

INITIAL_STATE = ClockState.CLOCKED_OUT

_TRANSITIONS: dict[ClockState, dict[ClockAction, ClockState]] = {
    ClockState.CLOCKED_OUT: {
        ClockAction.CLOCK_IN: ClockState.CLOCKED_IN,
    },
    ClockState.CLOCKED_IN: {
        ClockAction.CLOCK_OUT: ClockState.CLOCKED_OUT,
        ClockAction.BREAK_START: ClockState.ON_BREAK,
    },
    ClockState.ON_BREAK: {
        ClockAction.BREAK_END: ClockState.CLOCKED_IN,
    },
}

_NEXT_STATE: dict[ClockAction, ClockState] = {
    ClockAction.CLOCK_IN: ClockState.CLOCKED_IN,
    ClockAction.CLOCK_OUT: ClockState.CLOCKED_OUT,
    ClockAction.BREAK_START: ClockState.ON_BREAK,
    ClockAction.BREAK_END: ClockState.CLOCKED_IN,
}

_REJECTION_MESSAGES: dict[tuple[ClockState, ClockAction], str] = {
    (ClockState.CLOCKED_OUT, ClockAction.CLOCK_OUT): "Cannot clock out without a prior clock-in.",
    (ClockState.CLOCKED_OUT, ClockAction.BREAK_START): "Cannot start a break without clocking in first.",
    (ClockState.CLOCKED_OUT, ClockAction.BREAK_END): "Cannot end a break without an active break.",
    (ClockState.CLOCKED_IN, ClockAction.CLOCK_IN): "Already clocked in.",
    (ClockState.CLOCKED_IN, ClockAction.BREAK_END): "Cannot end a break that has not started.",
    (ClockState.ON_BREAK, ClockAction.CLOCK_IN): "Already clocked in; end the current break first.",
    (ClockState.ON_BREAK, ClockAction.CLOCK_OUT): "End the current break before clocking out.",
    (ClockState.ON_BREAK, ClockAction.BREAK_START): "A break is already in progress.",
}

GENERIC_REJECTION_MESSAGE = "Transition not allowed."

_STATE_BY_LAST_ENTRY: dict[TimeEntryType, ClockState] = {
    TimeEntryType.CLOCK_IN: ClockState.CLOCKED_IN,
    TimeEntryType.CLOCK_OUT: ClockState.CLOCKED_OUT,
    TimeEntryType.BREAK_START: ClockState.ON_BREAK,
    TimeEntryType.BREAK_END: ClockState.CLOCKED_IN,
    TimeEntryType.PROJECT_SWITCH: ClockState.CLOCKED_IN,
}


def validate_transition(state: ClockState, action: ClockAction) -> bool:
    return action in _TRANSITIONS.get(state, {})


def get_next_state(action: ClockAction) -> ClockState:
    """Resulting state of ``action``. Only call it after ``validate_transition``."""
    return _NEXT_STATE[action]


def describe_rejection(state: ClockState, action: ClockAction) -> str:
    return _REJECTION_MESSAGES.get((state, action), GENERIC_REJECTION_MESSAGE)


def derive_state_from_last_event(last_event_type: TimeEntryType | None) -> ClockState:
    if last_event_type is None:
        return INITIAL_STATE
    return _STATE_BY_LAST_ENTRY.get(last_event_type, INITIAL_STATE)


def allowed_actions(state: ClockState) -> list[ClockAction]:
    return list(_TRANSITIONS.get(state, {}))
