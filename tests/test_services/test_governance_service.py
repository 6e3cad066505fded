"""Tests for the GovernanceService: proposals, voting, settlement and resolution.

Disputes are raised on eng-1 (client-1 vs talent-1). voter-1..4 and the
mediator are independent DAO members; newbie lacks the activity points to
take part.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from escrow_governance.domain.enums import ProposalStatus, ProposalType, VoteChoice
from escrow_governance.domain.exceptions import (
    AlreadyExistsError,
    AlreadyResolvedError,
    AlreadyVotedError,
    ConflictOfInterestError,
    DepositMissingError,
    DuplicateTransactionError,
    EscrowGovernanceError,
    InvalidAmountError,
    InvalidChoiceError,
    InvalidStateError,
    NotADisputeError,
    NotAuthorizedError,
    NotEligibleError,
    ProposalNotFoundError,
    VotingClosedError,
)

ENG = "eng-1"
CLIENT = "client-1"
TALENT = "talent-1"
CLIENT_WALLET = "0xabc0000000000000000000000000000000000001"
TALENT_WALLET = "0xdef0000000000000000000000000000000000002"


async def fund_and_start(escrow_service, amount_usd: str = "100", amount_crypto: str = "0.05"):  # noqa: ANN001, ANN201
    await escrow_service.record_deposit(
        ENG, CLIENT, "0xdeposit", CLIENT_WALLET, Decimal(amount_usd), Decimal(amount_crypto)
    )
    return await escrow_service.record_work_started(ENG, TALENT, "0xstart", TALENT_WALLET)


async def open_dispute(service, proposer: str = CLIENT):  # noqa: ANN001, ANN201
    return await service.create_proposal(
        proposer_id=proposer,
        title="Work was never delivered",
        description="The talent stopped responding after the first milestone.",
        proposal_type=ProposalType.DISPUTE,
        engagement_id=ENG,
        issue_summary="No delivery",
        client_narrative="Nothing arrived.",
    )


async def open_platform(service, proposer: str = "voter-1"):  # noqa: ANN001, ANN201
    return await service.create_proposal(
        proposer_id=proposer,
        title="Lower the platform fee",
        description="Reduce the fee from 10% to 8%.",
        proposal_type=ProposalType.PLATFORM,
        platform_details={"problem_statement": "Fees are high"},
    )


async def vote_all(service, proposal_id, choices: dict[str, str]) -> None:  # noqa: ANN001
    for voter, choice in choices.items():
        await service.admit_vote(proposal_id, voter, choice)


def end_voting(clock) -> None:  # noqa: ANN001
    clock.advance(days=5, seconds=1)


class TestCreateProposal:
    @pytest.mark.asyncio
    async def test_platform_proposal(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)

        assert proposal.status == "voting"
        assert proposal.category == "platform"
        assert proposal.starts_at == clock.now()
        assert (proposal.ends_at - proposal.starts_at).days == 5
        assert proposal.vote_tallies == {"approve": 0, "reject": 0, "abstain": 0, "total": 0}
        assert proposal.platform_details == {"problem_statement": "Fees are high"}

    @pytest.mark.asyncio
    async def test_dispute_copies_parties(self, governance_service) -> None:
        proposal = await open_dispute(governance_service)
        assert proposal.category == "dispute"
        assert (proposal.client_id, proposal.talent_id) == (CLIENT, TALENT)
        assert proposal.platform_details is None

    @pytest.mark.asyncio
    async def test_needs_activity_points(self, governance_service) -> None:
        with pytest.raises(NotEligibleError):
            await open_platform(governance_service, proposer="newbie")

    @pytest.mark.asyncio
    async def test_dispute_needs_engagement(self, governance_service) -> None:
        with pytest.raises(EscrowGovernanceError) as exc_info:
            await governance_service.create_proposal(
                proposer_id=CLIENT,
                title="Dispute",
                description="Missing engagement",
                proposal_type=ProposalType.DISPUTE,
            )
        assert exc_info.value.code == "ENGAGEMENT_REQUIRED"

    @pytest.mark.asyncio
    async def test_only_parties_raise_disputes(self, governance_service) -> None:
        with pytest.raises(NotAuthorizedError):
            await open_dispute(governance_service, proposer="voter-1")

    @pytest.mark.asyncio
    async def test_one_open_dispute_per_engagement(self, governance_service) -> None:
        await open_dispute(governance_service)
        with pytest.raises(AlreadyExistsError):
            await open_dispute(governance_service, proposer=TALENT)

    @pytest.mark.asyncio
    async def test_missing_proposal(self, governance_service) -> None:
        import uuid

        with pytest.raises(ProposalNotFoundError):
            await governance_service.get_proposal(uuid.uuid4())


class TestVoting:
    @pytest.mark.asyncio
    async def test_tallies_track_votes(self, governance_service, notifier) -> None:
        proposal = await open_dispute(governance_service)
        await vote_all(
            governance_service,
            proposal.id,
            {"voter-1": "split_funds", "voter-2": "talent_refund", "voter-3": "split_funds"},
        )

        proposal = await governance_service.get_proposal(proposal.id)
        assert proposal.vote_tallies == {
            "client_refund": 0,
            "talent_refund": 1,
            "split_funds": 2,
            "total": 3,
        }
        assert proposal.unique_voters == 3
        assert len(proposal.votes) == 3
        assert ("activity_reward", "voter-1", 5, "dao_vote") in notifier.events

    @pytest.mark.asyncio
    async def test_platform_choice_on_dispute(self, governance_service) -> None:
        proposal = await open_dispute(governance_service)
        with pytest.raises(InvalidChoiceError):
            await governance_service.admit_vote(proposal.id, "voter-1", "approve")

    @pytest.mark.asyncio
    async def test_one_vote_per_member(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        await governance_service.admit_vote(proposal.id, "voter-2", "approve")
        with pytest.raises(AlreadyVotedError):
            await governance_service.admit_vote(proposal.id, "voter-2", "reject")

    @pytest.mark.asyncio
    async def test_ineligible_voter(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        with pytest.raises(NotEligibleError):
            await governance_service.admit_vote(proposal.id, "newbie", "approve")

    @pytest.mark.asyncio
    async def test_vote_at_the_deadline_counts(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        clock.advance(days=5)
        proposal = await governance_service.admit_vote(proposal.id, "voter-2", "approve")
        assert proposal.vote_tallies["total"] == 1

    @pytest.mark.asyncio
    async def test_vote_after_window_closes(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        end_voting(clock)
        with pytest.raises(VotingClosedError):
            await governance_service.admit_vote(proposal.id, "voter-2", "approve")
        proposal = await governance_service.get_proposal(proposal.id)
        assert proposal.auto_finalized is True


class TestFinalization:
    @pytest.mark.asyncio
    async def test_still_open_is_noop(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        proposal = await governance_service.finalize_if_expired(proposal.id)
        assert proposal.status == "voting"
        assert proposal.auto_finalized is False

    @pytest.mark.asyncio
    async def test_platform_passes(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        await vote_all(
            governance_service,
            proposal.id,
            {"voter-2": "approve", "voter-3": "approve", "voter-4": "reject"},
        )
        end_voting(clock)

        proposal = await governance_service.finalize_if_expired(proposal.id)

        assert proposal.status == "passed"
        assert proposal.final_decision == "approve"
        assert proposal.outcome == "approve"
        assert proposal.finalized_at == clock.now()
        assert proposal.decided_at == clock.now()

    @pytest.mark.asyncio
    async def test_tie_goes_to_first_option(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        await vote_all(governance_service, proposal.id, {"voter-2": "reject", "voter-3": "approve"})
        end_voting(clock)
        proposal = await governance_service.finalize_if_expired(proposal.id)
        assert proposal.final_decision == "approve"
        assert proposal.status == "passed"

    @pytest.mark.asyncio
    async def test_no_votes_rejects(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        end_voting(clock)
        proposal = await governance_service.finalize_if_expired(proposal.id)
        assert proposal.status == "rejected"
        assert proposal.final_decision is None

    @pytest.mark.asyncio
    async def test_dispute_awaits_resolution(self, governance_service, clock) -> None:
        proposal = await open_dispute(governance_service)
        await vote_all(governance_service, proposal.id, {"voter-1": "client_refund"})
        end_voting(clock)
        proposal = await governance_service.finalize_if_expired(proposal.id)
        assert proposal.status == "awaiting_resolution"

    @pytest.mark.asyncio
    async def test_finalize_is_idempotent(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        await vote_all(governance_service, proposal.id, {"voter-2": "approve"})
        end_voting(clock)
        first = await governance_service.finalize_if_expired(proposal.id)
        finalized_at, version = first.finalized_at, first.version

        clock.advance(days=1)
        again = await governance_service.finalize_if_expired(proposal.id)

        assert again.finalized_at == finalized_at
        assert again.version == version
        assert again.status == "passed"


class TestReadModel:
    @pytest.mark.asyncio
    async def test_describe_for_voter(self, governance_service) -> None:
        proposal = await open_dispute(governance_service)
        await governance_service.admit_vote(proposal.id, "voter-1", "split_funds")
        proposal = await governance_service.get_proposal(proposal.id)

        view = await governance_service.describe(proposal, "voter-2")

        assert view.time_remaining_label == "5d 0h remaining"
        assert view.eligible_voters == 7
        assert view.participation_rate == 14.29
        assert [(o.id, o.label, o.votes) for o in view.vote_options] == [
            ("client_refund", "Client Refund", 0),
            ("talent_refund", "Talent Refund", 0),
            ("split_funds", "Split Funds", 1),
        ]
        assert view.viewer == {
            "can_vote": True,
            "has_voted": False,
            "can_comment": True,
            "can_resolve": False,
        }

    @pytest.mark.asyncio
    async def test_describe_after_vote(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        proposal = await governance_service.admit_vote(proposal.id, "voter-2", "approve")
        view = await governance_service.describe(proposal, "voter-2")
        assert view.viewer["has_voted"] is True
        assert view.viewer["can_vote"] is False

    @pytest.mark.asyncio
    async def test_anonymous_viewer(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        end_voting(clock)
        proposal = await governance_service.get_proposal(proposal.id)
        view = await governance_service.describe(proposal)
        assert view.time_remaining_label == "Voting ended"
        assert view.time_remaining_ms == 0
        assert not any(view.viewer.values())

    @pytest.mark.asyncio
    async def test_list_newest_first_and_filters(self, governance_service, clock) -> None:
        platform = await open_platform(governance_service)
        clock.advance(minutes=1)
        dispute = await open_dispute(governance_service)

        everything = await governance_service.list_proposals()
        assert [p.id for p in everything] == [dispute.id, platform.id]

        disputes = await governance_service.list_proposals(proposal_type=ProposalType.DISPUTE)
        assert [p.id for p in disputes] == [dispute.id]

    @pytest.mark.asyncio
    async def test_list_finalizes_expired(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        end_voting(clock)
        rejected = await governance_service.list_proposals(status=ProposalStatus.REJECTED)
        assert [p.id for p in rejected] == [proposal.id]

    @pytest.mark.asyncio
    async def test_deactivate(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        with pytest.raises(NotAuthorizedError):
            await governance_service.deactivate(proposal.id, "voter-2")
        await governance_service.deactivate(proposal.id, "voter-1")
        assert await governance_service.list_proposals() == []

    @pytest.mark.asyncio
    async def test_deactivate_after_window_finalizes(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        await governance_service.admit_vote(proposal.id, "voter-2", "approve")
        end_voting(clock)

        proposal = await governance_service.deactivate(proposal.id, "voter-1")

        assert proposal.is_active is False
        assert proposal.auto_finalized is True
        assert proposal.status == "passed"
        assert proposal.final_decision == "approve"


class TestComments:
    @pytest.mark.asyncio
    async def test_add_comment(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        proposal = await governance_service.add_comment(proposal.id, "voter-2", "  Sounds good  ")
        assert [(c.author_id, c.body) for c in proposal.comments] == [("voter-2", "Sounds good")]

    @pytest.mark.asyncio
    async def test_too_short(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        with pytest.raises(EscrowGovernanceError) as exc_info:
            await governance_service.add_comment(proposal.id, "voter-2", "ok")
        assert exc_info.value.code == "INVALID_COMMENT"

    @pytest.mark.asyncio
    async def test_needs_standing(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        with pytest.raises(NotEligibleError):
            await governance_service.add_comment(proposal.id, "newbie", "I disagree here")


class TestSettlement:
    @pytest.mark.asyncio
    async def test_mutual_agreement_ends_voting(
        self, governance_service, escrow_service, clock
    ) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        await governance_service.propose_settlement(
            proposal.id, "mediator", talent_amount_usd=Decimal("60"), client_amount_usd=Decimal("30")
        )
        await governance_service.approve_settlement(proposal.id, CLIENT)
        clock.advance(hours=2)

        proposal = await governance_service.approve_settlement(proposal.id, TALENT)

        assert proposal.settlement.settled_by_agreement is True
        assert proposal.status == "awaiting_resolution"
        assert proposal.auto_finalized is True
        assert proposal.ends_at == clock.now()
        with pytest.raises(VotingClosedError):
            await governance_service.admit_vote(proposal.id, "voter-1", "split_funds")

    @pytest.mark.asyncio
    async def test_changed_amounts_withdraw_approvals(
        self, governance_service, escrow_service
    ) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        await governance_service.propose_settlement(
            proposal.id, "mediator", talent_amount_usd=Decimal("50")
        )
        await governance_service.approve_settlement(proposal.id, CLIENT)

        proposal = await governance_service.propose_settlement(
            proposal.id, "voter-1", talent_amount_usd=Decimal("40")
        )

        assert proposal.settlement.client_approved is False
        assert proposal.settlement.talent_amount_usd == Decimal("40")
        assert proposal.settlement.set_by == "voter-1"

    @pytest.mark.asyncio
    async def test_parties_cannot_set_amounts(self, governance_service) -> None:
        proposal = await open_dispute(governance_service)
        with pytest.raises(ConflictOfInterestError):
            await governance_service.propose_settlement(
                proposal.id, TALENT, talent_amount_usd=Decimal("10")
            )

    @pytest.mark.asyncio
    async def test_within_cap(self, governance_service, escrow_service) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        with pytest.raises(InvalidAmountError):
            await governance_service.propose_settlement(
                proposal.id,
                "mediator",
                talent_amount_usd=Decimal("60"),
                client_amount_usd=Decimal("30.01"),
            )

    @pytest.mark.asyncio
    async def test_platform_proposals_have_no_settlement(self, governance_service) -> None:
        proposal = await open_platform(governance_service)
        with pytest.raises(NotADisputeError):
            await governance_service.propose_settlement(
                proposal.id, "mediator", talent_amount_usd=Decimal("1")
            )

    @pytest.mark.asyncio
    async def test_approval_needs_amounts(self, governance_service) -> None:
        proposal = await open_dispute(governance_service)
        with pytest.raises(InvalidStateError):
            await governance_service.approve_settlement(proposal.id, CLIENT)

    @pytest.mark.asyncio
    async def test_locked_after_agreement(self, governance_service, escrow_service) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        await governance_service.propose_settlement(
            proposal.id, "mediator", talent_amount_usd=Decimal("45"), client_amount_usd=Decimal("45")
        )
        await governance_service.approve_settlement(proposal.id, CLIENT)
        await governance_service.approve_settlement(proposal.id, TALENT)
        with pytest.raises(InvalidStateError):
            await governance_service.propose_settlement(
                proposal.id, "mediator", talent_amount_usd=Decimal("90")
            )

    @pytest.mark.asyncio
    async def test_agreement_after_window_keeps_voting_times(
        self, governance_service, escrow_service, clock
    ) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        await governance_service.propose_settlement(
            proposal.id, "mediator", talent_amount_usd=Decimal("30"), client_amount_usd=Decimal("50")
        )
        end_voting(clock)
        closed = await governance_service.get_proposal(proposal.id)
        ends_at, finalized_at = closed.ends_at, closed.finalized_at

        clock.advance(days=2)
        await governance_service.approve_settlement(proposal.id, CLIENT)
        proposal = await governance_service.approve_settlement(proposal.id, TALENT)

        assert proposal.settlement.settled_by_agreement is True
        assert proposal.status == "awaiting_resolution"
        assert proposal.ends_at == ends_at
        assert proposal.finalized_at == finalized_at
        assert proposal.decided_at == finalized_at


class TestResolution:
    @pytest.mark.asyncio
    async def test_split_funds_on_hundred_dollars(
        self, governance_service, escrow_service, clock
    ) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        await vote_all(governance_service, proposal.id, {"voter-1": "split_funds"})
        end_voting(clock)

        instruction = await governance_service.compute_resolution(proposal.id)

        assert instruction.outcome is VoteChoice.SPLIT_FUNDS
        assert instruction.cap_usd == Decimal("90")
        assert instruction.client_amount_usd == Decimal("45")
        assert instruction.talent_amount_usd == Decimal("45")
        assert instruction.client_amount_crypto == Decimal("0.0225")
        assert instruction.client_wallet == CLIENT_WALLET
        assert instruction.talent_wallet == TALENT_WALLET
        assert instruction.settled_by_agreement is False

    @pytest.mark.asyncio
    async def test_talent_refund_after_disbursement(
        self, governance_service, escrow_service, clock
    ) -> None:
        await fund_and_start(escrow_service, amount_usd="200", amount_crypto="0.1")
        await escrow_service.record_disbursement(
            ENG, CLIENT, "0xpart-1", CLIENT_WALLET, Decimal("50")
        )
        proposal = await open_dispute(governance_service)
        await vote_all(
            governance_service,
            proposal.id,
            {"voter-1": "talent_refund", "voter-2": "talent_refund", "voter-3": "client_refund"},
        )
        end_voting(clock)

        instruction = await governance_service.compute_resolution(proposal.id)

        assert instruction.remaining_usd == Decimal("150")
        assert instruction.cap_usd == Decimal("135")
        assert instruction.talent_amount_usd == Decimal("135")
        assert instruction.client_amount_usd == Decimal("0")
        assert instruction.client_amount_crypto == Decimal("0")
        assert instruction.talent_amount_crypto == Decimal("0.0675")

    @pytest.mark.asyncio
    async def test_resolution_leaves_the_ledger_alone(
        self, governance_service, escrow_service, clock
    ) -> None:
        ledger = await fund_and_start(escrow_service)
        version = ledger.version
        proposal = await open_dispute(governance_service)
        await vote_all(governance_service, proposal.id, {"voter-1": "client_refund"})
        end_voting(clock)

        await governance_service.compute_resolution(proposal.id)
        await governance_service.confirm_resolution(proposal.id, "mediator", tx_hash="0xpayout")

        snapshot = await escrow_service.get_snapshot(ENG)
        assert snapshot.ledger.version == version
        assert snapshot.workflow_state.value == "in-progress"

    @pytest.mark.asyncio
    async def test_agreed_amounts_win(self, governance_service, escrow_service) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        await governance_service.propose_settlement(
            proposal.id, "mediator", talent_amount_usd=Decimal("60"), client_amount_usd=Decimal("30")
        )
        await governance_service.approve_settlement(proposal.id, CLIENT)
        await governance_service.approve_settlement(proposal.id, TALENT)

        instruction = await governance_service.compute_resolution(proposal.id)
        assert instruction.settled_by_agreement is True
        assert instruction.outcome is VoteChoice.SPLIT_FUNDS
        assert (instruction.client_amount_usd, instruction.talent_amount_usd) == (
            Decimal("30"),
            Decimal("60"),
        )

        proposal = await governance_service.confirm_resolution(
            proposal.id, "mediator", tx_hash="0xpayout"
        )
        assert proposal.status == "resolved"
        assert proposal.outcome == "split_funds"
        assert proposal.resolution_summary.startswith("Dispute resolved by mutual agreement.")
        assert proposal.settlement.resolved_by == "mediator"

    @pytest.mark.asyncio
    async def test_not_before_voting_ends(self, governance_service, escrow_service) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        with pytest.raises(InvalidStateError):
            await governance_service.compute_resolution(proposal.id)
        with pytest.raises(InvalidStateError):
            await governance_service.confirm_resolution(proposal.id, "mediator", tx_hash="0xpay")

    @pytest.mark.asyncio
    async def test_dispute_without_deposit(self, governance_service, clock) -> None:
        proposal = await open_dispute(governance_service)
        end_voting(clock)
        with pytest.raises(DepositMissingError):
            await governance_service.compute_resolution(proposal.id)

    @pytest.mark.asyncio
    async def test_unvoted_dispute_resolves_as_split(
        self, governance_service, escrow_service, clock
    ) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        end_voting(clock)

        instruction = await governance_service.compute_resolution(proposal.id)
        assert instruction.outcome is VoteChoice.SPLIT_FUNDS
        assert instruction.client_amount_usd == instruction.talent_amount_usd == Decimal("45")

        proposal = await governance_service.confirm_resolution(
            proposal.id, "mediator", tx_hash="0xpayout"
        )
        assert proposal.final_decision is None
        assert proposal.outcome == "split_funds"

    @pytest.mark.asyncio
    async def test_platform_proposal_has_no_instruction(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        end_voting(clock)
        with pytest.raises(NotADisputeError):
            await governance_service.compute_resolution(proposal.id)

    @pytest.mark.asyncio
    async def test_dispute_needs_payout_tx(
        self, governance_service, escrow_service, clock
    ) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        end_voting(clock)
        with pytest.raises(EscrowGovernanceError) as exc_info:
            await governance_service.confirm_resolution(proposal.id, "mediator")
        assert exc_info.value.code == "TX_HASH_REQUIRED"

    @pytest.mark.asyncio
    async def test_payout_tx_must_be_new(self, governance_service, escrow_service, clock) -> None:
        await fund_and_start(escrow_service)
        proposal = await open_dispute(governance_service)
        end_voting(clock)
        with pytest.raises(DuplicateTransactionError):
            await governance_service.confirm_resolution(
                proposal.id, "mediator", tx_hash="0xdeposit"
            )

    @pytest.mark.asyncio
    async def test_resolve_once(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        await vote_all(governance_service, proposal.id, {"voter-2": "approve"})
        end_voting(clock)

        proposal = await governance_service.confirm_resolution(
            proposal.id, "mediator", summary="Fee lowered"
        )
        assert proposal.status == "resolved"
        assert proposal.outcome == "approve"
        assert proposal.resolution_tx_hash is None

        with pytest.raises(AlreadyResolvedError):
            await governance_service.confirm_resolution(proposal.id, "mediator")

    @pytest.mark.asyncio
    async def test_resolver_needs_standing(self, governance_service, clock) -> None:
        proposal = await open_platform(governance_service)
        end_voting(clock)
        with pytest.raises(NotEligibleError):
            await governance_service.confirm_resolution(proposal.id, "newbie")


class TestParticipationStats:
    @pytest.mark.asyncio
    async def test_counters_follow_participation(
        self, governance_service, escrow_service, notifier, clock
    ) -> None:
        await fund_and_start(escrow_service)
        platform = await open_platform(governance_service)
        dispute = await open_dispute(governance_service)
        await governance_service.admit_vote(dispute.id, "voter-2", "split_funds")
        await governance_service.add_comment(dispute.id, "voter-3", "Both sides have a point")
        end_voting(clock)
        await governance_service.confirm_resolution(platform.id, "mediator")
        await governance_service.confirm_resolution(dispute.id, "mediator", tx_hash="0xpayout")

        assert notifier.of_kind("dao_stat") == [
            ("dao_stat", "voter-1", "proposals_submitted"),
            ("dao_stat", CLIENT, "disputes_raised"),
            ("dao_stat", "voter-2", "votes_cast"),
            ("dao_stat", "voter-3", "comments_posted"),
            ("dao_stat", "mediator", "disputes_resolved"),
        ]

    @pytest.mark.asyncio
    async def test_counter_failure_keeps_the_vote(self, governance_service, notifier) -> None:
        proposal = await open_platform(governance_service)
        notifier.fail = True

        proposal = await governance_service.admit_vote(proposal.id, "voter-2", "approve")

        assert proposal.vote_tallies["total"] == 1
