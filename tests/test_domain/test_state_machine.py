"""Tests for the escrow workflow and proposal lifecycle guards.

These tests verify that:
    1. The full lifecycle walks offered -> confirmed.
    2. Out-of-order transitions are blocked.
    3. Each event is reserved for the right party.
    4. Proposals only resolve after voting has closed.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from escrow_governance.domain.enums import ParticipantRole, ProposalStatus, WorkflowState
from escrow_governance.domain.exceptions import InvalidStateError, NotAuthorizedError
from escrow_governance.domain.state_machine import (
    WorkflowStateMachine,
    advance_proposal,
    allowed_events_for,
    authorize_transition,
)


class TestHappyPath:
    def test_full_lifecycle(self) -> None:
        sm = WorkflowStateMachine("offered")
        assert sm.workflow_state is WorkflowState.OFFERED

        sm.record_deposit()
        assert sm.workflow_state is WorkflowState.DEPOSIT

        sm.start_work()
        assert sm.workflow_state is WorkflowState.IN_PROGRESS

        sm.release_funds()
        assert sm.workflow_state is WorkflowState.IN_PROGRESS

        sm.complete_work()
        assert sm.workflow_state is WorkflowState.COMPLETED

        sm.confirm_delivery()
        assert sm.workflow_state is WorkflowState.CONFIRMED


class TestInvalidTransitions:
    def test_cannot_confirm_from_offered(self) -> None:
        sm = WorkflowStateMachine("offered")
        with pytest.raises(TransitionNotAllowed):
            sm.confirm_delivery()

    def test_cannot_complete_before_start(self) -> None:
        sm = WorkflowStateMachine("deposit")
        with pytest.raises(TransitionNotAllowed):
            sm.complete_work()

    def test_no_disbursement_after_completion(self) -> None:
        sm = WorkflowStateMachine("completed")
        with pytest.raises(TransitionNotAllowed):
            sm.release_funds()

    def test_unknown_state_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown workflow state"):
            WorkflowStateMachine("cancelled")

    def test_confirmed_is_final(self) -> None:
        assert WorkflowStateMachine("confirmed").get_allowed_events() == []


class TestAuthorizeTransition:
    def test_client_deposits(self) -> None:
        assert (
            authorize_transition(ParticipantRole.CLIENT, "offered", "record_deposit")
            is WorkflowState.DEPOSIT
        )

    def test_talent_cannot_deposit(self) -> None:
        with pytest.raises(NotAuthorizedError):
            authorize_transition(ParticipantRole.TALENT, "offered", "record_deposit")

    def test_client_cannot_start_work(self) -> None:
        with pytest.raises(NotAuthorizedError):
            authorize_transition(ParticipantRole.CLIENT, "deposit", "start_work")

    def test_wrong_state_is_invalid_state(self) -> None:
        with pytest.raises(InvalidStateError) as exc_info:
            authorize_transition(ParticipantRole.CLIENT, "in-progress", "confirm_delivery")
        assert exc_info.value.current_state == "in-progress"
        assert exc_info.value.attempted == "confirm_delivery"

    def test_unknown_event(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            authorize_transition(ParticipantRole.CLIENT, "offered", "refund")


class TestAllowedEvents:
    def test_offered(self) -> None:
        assert allowed_events_for(ParticipantRole.CLIENT, "offered") == ["record_deposit"]
        assert allowed_events_for(ParticipantRole.TALENT, "offered") == []

    def test_in_progress(self) -> None:
        assert allowed_events_for(ParticipantRole.CLIENT, "in-progress") == ["release_funds"]
        assert allowed_events_for(ParticipantRole.TALENT, "in-progress") == ["complete_work"]

    def test_machine_lists_all_events_in_order(self) -> None:
        assert WorkflowStateMachine("in-progress").get_allowed_events() == [
            "release_funds",
            "complete_work",
        ]


class TestProposalLifecycle:
    @pytest.mark.parametrize(
        ("event", "expected"),
        [
            ("mark_passed", ProposalStatus.PASSED),
            ("mark_rejected", ProposalStatus.REJECTED),
            ("await_resolution", ProposalStatus.AWAITING_RESOLUTION),
        ],
    )
    def test_voting_closes(self, event: str, expected: ProposalStatus) -> None:
        assert advance_proposal("voting", event) is expected

    @pytest.mark.parametrize("status", ["passed", "rejected", "awaiting_resolution"])
    def test_resolve_after_voting(self, status: str) -> None:
        assert advance_proposal(status, "resolve") is ProposalStatus.RESOLVED

    def test_cannot_resolve_while_voting(self) -> None:
        with pytest.raises(InvalidStateError):
            advance_proposal("voting", "resolve")

    def test_resolved_is_terminal(self) -> None:
        with pytest.raises(InvalidStateError):
            advance_proposal("resolved", "resolve")
