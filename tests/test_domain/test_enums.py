"""Tests for domain enumerations."""

from __future__ import annotations

from escrow_governance.domain.enums import (
    DaoStat,
    LedgerEntryKind,
    ProposalStatus,
    VoteChoice,
    WorkflowState,
)


class TestWorkflowState:
    def test_all_states_exist(self) -> None:
        expected = {"offered", "deposit", "in-progress", "completed", "confirmed"}
        assert {s.value for s in WorkflowState} == expected

    def test_state_is_str_enum(self) -> None:
        assert isinstance(WorkflowState.IN_PROGRESS, str)
        assert WorkflowState.IN_PROGRESS == "in-progress"


class TestProposalStatus:
    def test_statuses(self) -> None:
        assert [s.value for s in ProposalStatus] == [
            "voting",
            "passed",
            "rejected",
            "awaiting_resolution",
            "resolved",
        ]


class TestVoteChoice:
    def test_choices_cover_both_proposal_types(self) -> None:
        assert len(VoteChoice) == 6
        assert VoteChoice.SPLIT_FUNDS == "split_funds"


class TestLedgerEntryKind:
    def test_kinds(self) -> None:
        assert LedgerEntryKind.WORK_STARTED == "work_started"
        assert len(LedgerEntryKind) == 5


class TestDaoStat:
    def test_counters(self) -> None:
        assert DaoStat.VOTES_CAST == "votes_cast"
        assert len(DaoStat) == 5
