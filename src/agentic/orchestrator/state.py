from __future__ import annotations

from enum import StrEnum

from agentic.errors import InvalidTransitionError


class State(StrEnum):
    IDLE = "IDLE"
    PLANNING = "PLANNING"
    EXECUTION = "EXECUTION"
    VERIFICATION = "VERIFICATION"
    DONE = "DONE"


class Event(StrEnum):
    TASK_STARTED = "TASK_STARTED"
    PLAN_APPROVED = "PLAN_APPROVED"
    WORK_COMPLETED = "WORK_COMPLETED"
    VERIFICATION_PASS = "VERIFICATION_PASS"
    VERIFICATION_FAIL = "VERIFICATION_FAIL"


TRANSITIONS: dict[tuple[State, Event], State] = {
    (State.IDLE, Event.TASK_STARTED): State.PLANNING,
    (State.PLANNING, Event.PLAN_APPROVED): State.EXECUTION,
    (State.EXECUTION, Event.WORK_COMPLETED): State.VERIFICATION,
    (State.VERIFICATION, Event.VERIFICATION_PASS): State.DONE,
    (State.VERIFICATION, Event.VERIFICATION_FAIL): State.EXECUTION,
}


class StateMachine:
    """Execution phases of a single task session."""

    def __init__(self, initial: State | str = State.IDLE) -> None:
        self.state = State(initial) if initial else State.IDLE
        self.history: list[tuple[State, Event, State]] = []

    @property
    def done(self) -> bool:
        return self.state == State.DONE

    def can_handle(self, event: Event | str) -> bool:
        try:
            return (self.state, Event(event)) in TRANSITIONS
        except ValueError:
            return False

    def handle_event(self, event: Event | str) -> State:
        try:
            event = Event(event)
        except ValueError as exc:
            raise InvalidTransitionError(self.state, str(event)) from exc
        if self.state == State.DONE:
            raise InvalidTransitionError(
                self.state, event, "cannot transition from DONE state"
            )
        target = TRANSITIONS.get((self.state, event))
        if target is None:
            raise InvalidTransitionError(self.state, event)
        self.history.append((self.state, event, target))
        self.state = target
        return target
