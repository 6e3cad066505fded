"""Escrow workflow and proposal lifecycle guards.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the API or a collaborator asks for, an illegal transition
(e.g., offered -> confirmed) is rejected before any record is touched.

Machines are instantiated per-aggregate from the persisted status and
validate a transition before the ORM model's state field is updated.

Escrow workflow transition table (role in brackets):
    offered      -> deposit       (record_deposit)    [client]
    deposit      -> in-progress   (start_work)        [talent]
    in-progress  -> in-progress   (release_funds)     [client]  partial disbursement
    in-progress  -> completed     (complete_work)     [talent]
    completed    -> confirmed     (confirm_delivery)  [client]  terminal

Proposal transition table:
    voting               -> passed               (mark_passed)
    voting               -> rejected             (mark_rejected)
    voting               -> awaiting_resolution  (await_resolution)
    passed | rejected |
    awaiting_resolution  -> resolved             (resolve)          terminal
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from escrow_governance.domain.enums import ParticipantRole, ProposalStatus, WorkflowState
from escrow_governance.domain.exceptions import InvalidStateError, NotAuthorizedError


WORKFLOW_EVENTS = (
    "record_deposit",
    "start_work",
    "release_funds",
    "complete_work",
    "confirm_delivery",
)


class WorkflowStateMachine(StateMachine):
    """State machine that guards an engagement's escrow lifecycle.

    Usage:
        sm = WorkflowStateMachine(current_state="deposit")
        sm.start_work()   # transitions to in-progress
        sm.workflow_state # WorkflowState.IN_PROGRESS
    """

    # --- States ---
    OFFERED = State("Offered", value="offered", initial=True)
    DEPOSIT = State("Deposit", value="deposit")
    IN_PROGRESS = State("In progress", value="in-progress")
    COMPLETED = State("Completed", value="completed")
    CONFIRMED = State("Confirmed", value="confirmed", final=True)

    # --- Events / Transitions ---
    record_deposit = OFFERED.to(DEPOSIT)
    start_work = DEPOSIT.to(IN_PROGRESS)
    release_funds = IN_PROGRESS.to.itself()
    complete_work = IN_PROGRESS.to(COMPLETED)
    confirm_delivery = COMPLETED.to(CONFIRMED)

    def __init__(self, current_state: str = "offered") -> None:
        valid_values = {s.value for s in self.states}
        if current_state not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown workflow state '{current_state}'. Valid states: {valid}")
        super().__init__(start_value=current_state)

    @property
    def workflow_state(self) -> WorkflowState:
        return WorkflowState(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Event names that can fire from the current state, in lifecycle order."""
        current = self.current_state.value
        allowed: list[str] = []
        for name in WORKFLOW_EVENTS:
            probe = WorkflowStateMachine(current_state=current)
            try:
                getattr(probe, name)()
            except TransitionNotAllowed:
                continue
            allowed.append(name)
        return allowed


# Which workflow events each party may fire.
ROLE_EVENTS: dict[ParticipantRole, frozenset[str]] = {
    ParticipantRole.CLIENT: frozenset({"record_deposit", "release_funds", "confirm_delivery"}),
    ParticipantRole.TALENT: frozenset({"start_work", "complete_work"}),
}


def authorize_transition(
    role: ParticipantRole,
    current_state: str,
    event_name: str,
) -> WorkflowState:
    """Check that ``role`` may fire ``event_name`` from ``current_state``.

    Returns:
        The workflow state after the transition.

    Raises:
        NotAuthorizedError: The event belongs to the other party.
        InvalidStateError: The event cannot fire from the current state.
        ValueError: The state or event name is unknown.
    """
    sm = WorkflowStateMachine(current_state=current_state)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_state}: {sm.get_allowed_events()}"
        )

    if event_name not in ROLE_EVENTS[role]:
        raise NotAuthorizedError(f"A {role} cannot perform '{event_name}'")

    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateError(
            f"Cannot {event_name.replace('_', ' ')} when workflow state is '{current_state}'",
            current_state=current_state,
            attempted=event_name,
        ) from err
    return sm.workflow_state


def allowed_events_for(role: ParticipantRole, current_state: str) -> list[str]:
    """Workflow events ``role`` could fire right now."""
    sm = WorkflowStateMachine(current_state=current_state)
    return [name for name in sm.get_allowed_events() if name in ROLE_EVENTS[role]]


class ProposalStateMachine(StateMachine):
    """State machine that guards the proposal lifecycle."""

    VOTING = State("Voting", value="voting", initial=True)
    PASSED = State("Passed", value="passed")
    REJECTED = State("Rejected", value="rejected")
    AWAITING_RESOLUTION = State("Awaiting resolution", value="awaiting_resolution")
    RESOLVED = State("Resolved", value="resolved", final=True)

    mark_passed = VOTING.to(PASSED)
    mark_rejected = VOTING.to(REJECTED)
    await_resolution = VOTING.to(AWAITING_RESOLUTION)
    resolve = (
        PASSED.to(RESOLVED)
        | REJECTED.to(RESOLVED)
        | AWAITING_RESOLUTION.to(RESOLVED)
    )

    def __init__(self, current_status: str = "voting") -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown proposal status '{current_status}'. Valid states: {valid}")
        super().__init__(start_value=current_status)

    @property
    def status(self) -> ProposalStatus:
        return ProposalStatus(self.current_state.value)


def advance_proposal(current_status: str, event_name: str) -> ProposalStatus:
    """Fire ``event_name`` on a proposal in ``current_status`` and return the new status."""
    sm = ProposalStateMachine(current_status=current_status)
    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(f"Unknown proposal event '{event_name}'")
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateError(
            f"Proposal in status '{current_status}' cannot {event_name.replace('_', ' ')}",
            current_state=current_status,
            attempted=event_name,
        ) from err
    return sm.status
