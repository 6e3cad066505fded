"""Tests for the pure voting rules."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from escrow_governance.domain import governance_rules as rules
from escrow_governance.domain.enums import (
    ProposalCategory,
    ProposalStatus,
    ProposalType,
    VoteChoice,
)
from escrow_governance.domain.exceptions import InvalidChoiceError

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class TestOptions:
    def test_platform_options(self) -> None:
        assert rules.allowed_options("platform") == (
            VoteChoice.APPROVE,
            VoteChoice.REJECT,
            VoteChoice.ABSTAIN,
        )

    def test_dispute_options(self) -> None:
        assert rules.allowed_options(ProposalType.DISPUTE) == (
            VoteChoice.CLIENT_REFUND,
            VoteChoice.TALENT_REFUND,
            VoteChoice.SPLIT_FUNDS,
        )

    def test_default_category(self) -> None:
        assert rules.default_category("dispute") is ProposalCategory.DISPUTE
        assert rules.default_category("platform") is ProposalCategory.PLATFORM

    def test_labels(self) -> None:
        assert rules.OPTION_LABELS[VoteChoice.CLIENT_REFUND] == "Client Refund"


class TestValidateChoice:
    def test_valid_choice(self) -> None:
        assert rules.validate_choice("dispute", "split_funds") is VoteChoice.SPLIT_FUNDS

    def test_platform_choice_on_dispute(self) -> None:
        with pytest.raises(InvalidChoiceError) as exc_info:
            rules.validate_choice("dispute", "approve")
        assert exc_info.value.code == "INVALID_CHOICE"
        assert "client_refund" in exc_info.value.message

    def test_unknown_choice(self) -> None:
        with pytest.raises(InvalidChoiceError):
            rules.validate_choice("platform", "maybe")


class TestTallies:
    def test_every_option_present(self) -> None:
        assert rules.compute_tallies("platform", []) == {
            "approve": 0,
            "reject": 0,
            "abstain": 0,
            "total": 0,
        }

    def test_counts(self) -> None:
        tallies = rules.compute_tallies(
            "dispute", ["split_funds", "talent_refund", "split_funds"]
        )
        assert tallies["split_funds"] == 2
        assert tallies["talent_refund"] == 1
        assert tallies["client_refund"] == 0
        assert tallies["total"] == 3


class TestPickDecision:
    def test_majority_wins(self) -> None:
        tallies = {"approve": 1, "reject": 3, "abstain": 0}
        assert rules.pick_decision("platform", tallies) is VoteChoice.REJECT

    def test_tie_goes_to_first_listed_option(self) -> None:
        tallies = {"client_refund": 0, "talent_refund": 2, "split_funds": 2}
        assert rules.pick_decision("dispute", tallies) is VoteChoice.TALENT_REFUND

    def test_no_votes_means_no_decision(self) -> None:
        assert rules.pick_decision("platform", rules.compute_tallies("platform", [])) is None


class TestStatusAfterVoting:
    def test_platform_approved_passes(self) -> None:
        assert rules.status_after_voting("platform", VoteChoice.APPROVE) is ProposalStatus.PASSED

    def test_platform_abstain_rejects(self) -> None:
        assert rules.status_after_voting("platform", VoteChoice.ABSTAIN) is ProposalStatus.REJECTED

    def test_dispute_awaits_resolution(self) -> None:
        assert (
            rules.status_after_voting("dispute", VoteChoice.CLIENT_REFUND)
            is ProposalStatus.AWAITING_RESOLUTION
        )

    def test_no_decision_rejects(self) -> None:
        assert rules.status_after_voting("dispute", None) is ProposalStatus.REJECTED


class TestVotingWindow:
    def test_window(self) -> None:
        starts, ends = rules.voting_window(NOW, 5)
        assert starts == NOW
        assert ends == NOW + timedelta(days=5)

    def test_open_until_the_last_instant(self) -> None:
        assert rules.is_voting_open("voting", NOW, NOW)
        assert not rules.is_voting_open("voting", NOW, NOW + timedelta(microseconds=1))

    def test_closed_status(self) -> None:
        assert not rules.is_voting_open("passed", NOW + timedelta(days=1), NOW)

    def test_expired(self) -> None:
        assert rules.is_expired(False, NOW, NOW + timedelta(seconds=1))
        assert not rules.is_expired(True, NOW, NOW + timedelta(seconds=1))
        assert not rules.is_expired(False, NOW, NOW)


class TestTimeRemaining:
    def test_never_negative(self) -> None:
        assert rules.time_remaining_ms(NOW - timedelta(hours=1), NOW) == 0

    def test_milliseconds(self) -> None:
        assert rules.time_remaining_ms(NOW + timedelta(seconds=90), NOW) == 90_000

    @pytest.mark.parametrize(
        ("delta", "label"),
        [
            (timedelta(days=4, hours=23, minutes=10), "4d 23h remaining"),
            (timedelta(hours=5, minutes=7), "5h 7m remaining"),
            (timedelta(minutes=42, seconds=30), "42m remaining"),
            (timedelta(seconds=30), "0m remaining"),
            (timedelta(0), "Voting ended"),
        ],
    )
    def test_humanize(self, delta: timedelta, label: str) -> None:
        ms = int(delta.total_seconds() * 1000)
        assert rules.humanize_remaining(ms) == label


class TestParticipationRate:
    def test_rate(self) -> None:
        assert rules.participation_rate(3, 7) == 42.86

    def test_no_eligible_voters(self) -> None:
        assert rules.participation_rate(0, 0) == 0.0
