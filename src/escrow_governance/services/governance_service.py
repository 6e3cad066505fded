"""Governance Service: DAO proposals, voting, settlement and dispute resolution.

Finalization is lazy: there is no scheduler. Every read or write path that
touches a proposal first runs ``finalize_if_expired``, so a proposal whose
voting window has passed is never observed (or mutated) as still voting.

Dispute resolution reads the escrow ledger to size the payout but never
writes to it; the payout itself is executed elsewhere and reported back
through ``confirm_resolution``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from escrow_governance.config import get_settings
from escrow_governance.domain import governance_rules as rules
from escrow_governance.domain.clock import SystemClock
from escrow_governance.domain.enums import (
    DaoStat,
    ProposalCategory,
    ProposalStatus,
    ProposalType,
    VoteChoice,
)
from escrow_governance.domain.exceptions import (
    AlreadyExistsError,
    AlreadyResolvedError,
    AlreadyVotedError,
    ConflictOfInterestError,
    DepositMissingError,
    DuplicateTransactionError,
    EngagementNotFoundError,
    EscrowGovernanceError,
    InvalidAmountError,
    InvalidStateError,
    NotADisputeError,
    NotAuthorizedError,
    NotEligibleError,
    ProposalNotFoundError,
    VotingClosedError,
    WalletUnresolvedError,
)
from escrow_governance.domain.payouts import (
    ZERO,
    first_address,
    quantize_usd,
    settlement_cap,
    split_by_decision,
    usd_to_crypto,
)
from escrow_governance.domain.ports import ResolutionInstruction
from escrow_governance.domain.state_machine import advance_proposal
from escrow_governance.infrastructure.database.orm_models import (
    DisputeSettlement,
    Proposal,
    ProposalComment,
    ProposalVote,
)
from escrow_governance.infrastructure.database.repositories import (
    EscrowLedgerRepository,
    ProposalRepository,
)
from escrow_governance.logging_config import get_logger
from escrow_governance.services.concurrency import run_unit_of_work

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_governance.config import Settings
    from escrow_governance.domain.clock import Clock
    from escrow_governance.domain.ports import Collaborators

logger = get_logger(__name__)

COMMENT_MIN_LENGTH = 5
COMMENT_MAX_LENGTH = 1500

# Proposal lifecycle event that produces each post-voting status.
_STATUS_EVENTS = {
    ProposalStatus.PASSED: "mark_passed",
    ProposalStatus.REJECTED: "mark_rejected",
    ProposalStatus.AWAITING_RESOLUTION: "await_resolution",
}


@dataclass(frozen=True)
class VoteOptionView:
    id: str
    label: str
    votes: int


@dataclass
class ProposalView:
    """A proposal plus everything a reader needs to render it."""

    proposal: Proposal
    vote_options: list[VoteOptionView]
    time_remaining_ms: int
    time_remaining_label: str
    eligible_voters: int
    participation_rate: float
    viewer: dict[str, bool] = field(default_factory=dict)


class GovernanceService:
    """Runs proposals from creation to resolution."""

    def __init__(
        self,
        session: AsyncSession,
        collaborators: Collaborators,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._proposals = ProposalRepository(session)
        self._ledgers = EscrowLedgerRepository(session)
        self._collab = collaborators
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_proposal(
        self,
        proposer_id: str,
        title: str,
        description: str,
        proposal_type: ProposalType,
        category: ProposalCategory | None = None,
        summary: str | None = None,
        tags: list[str] | None = None,
        platform_details: dict | None = None,
        engagement_id: str | None = None,
        issue_summary: str | None = None,
        client_narrative: str | None = None,
        talent_narrative: str | None = None,
    ) -> Proposal:
        """Open a proposal for voting.

        Disputes must reference an engagement the proposer is a party to, and
        an engagement carries at most one unresolved dispute at a time.
        """
        if not await self._collab.eligibility.can_propose(proposer_id):
            raise NotEligibleError(proposer_id, "create proposals")

        proposal_type = ProposalType(proposal_type)
        engagement = None
        if proposal_type is ProposalType.DISPUTE:
            if not engagement_id:
                raise EscrowGovernanceError(
                    "Dispute proposals must reference an engagement",
                    code="ENGAGEMENT_REQUIRED",
                )
            engagement = await self._collab.engagements.get_engagement(engagement_id)
            if engagement is None:
                raise EngagementNotFoundError(engagement_id)
            if engagement.role_of(proposer_id) is None:
                raise NotAuthorizedError(
                    "Only the client or talent of an engagement can raise a dispute on it"
                )

        async def operation() -> Proposal:
            if engagement is not None:
                existing = await self._proposals.find_open_dispute(engagement.engagement_id)
                if existing is not None:
                    raise AlreadyExistsError(
                        f"Engagement {engagement.engagement_id} already has an open dispute "
                        f"({existing.id})"
                    )

            now = self._clock.now()
            starts_at, ends_at = rules.voting_window(now, self._settings.voting_duration_days)
            proposal = Proposal(
                title=title,
                summary=summary,
                description=description,
                proposal_type=proposal_type.value,
                category=(category or rules.default_category(proposal_type)).value,
                tags=list(tags or []),
                status=ProposalStatus.VOTING.value,
                proposer_id=proposer_id,
                starts_at=starts_at,
                ends_at=ends_at,
                duration_days=self._settings.voting_duration_days,
                min_activity_points=self._settings.min_vote_activity_points,
                quorum=0,
                auto_finalized=False,
                vote_tallies=rules.compute_tallies(proposal_type, []),
                unique_voters=0,
                is_active=True,
                created_at=now,
                updated_at=now,
                votes=[],
                comments=[],
            )
            if proposal_type is ProposalType.PLATFORM:
                proposal.platform_details = dict(platform_details or {})
            else:
                proposal.engagement_id = engagement.engagement_id
                proposal.client_id = engagement.client_id
                proposal.talent_id = engagement.talent_id
                proposal.issue_summary = issue_summary
                proposal.client_narrative = client_narrative
                proposal.talent_narrative = talent_narrative
            return self._proposals.add(proposal)

        proposal = await self._run("new", operation)
        logger.info(
            "governance.proposal_created",
            proposal_id=str(proposal.id),
            proposal_type=proposal.proposal_type,
            proposer_id=proposer_id,
            engagement_id=proposal.engagement_id,
        )
        await self._announce(proposal)
        await self._count(
            proposer_id,
            DaoStat.DISPUTES_RAISED if proposal.is_dispute else DaoStat.PROPOSALS_SUBMITTED,
        )
        return proposal

    # ------------------------------------------------------------------
    # Reads (always finalized first)
    # ------------------------------------------------------------------

    async def get_proposal(self, proposal_id: uuid.UUID) -> Proposal:
        return await self.finalize_if_expired(proposal_id)

    async def list_proposals(
        self,
        proposal_type: ProposalType | None = None,
        status: ProposalStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Proposal]:
        """Active proposals, newest first, with expired windows finalized before filtering."""
        for expired_id in await self._proposals.list_expired_ids(self._clock.now()):
            await self.finalize_if_expired(expired_id)
        return await self._proposals.list_active(proposal_type, status, limit, offset)

    async def describe(self, proposal: Proposal, viewer_id: str | None = None) -> ProposalView:
        """Build the read model of an already-finalized proposal."""
        now = self._clock.now()
        tallies = proposal.vote_tallies or {}
        options = [
            VoteOptionView(
                id=option.value,
                label=rules.OPTION_LABELS[option],
                votes=int(tallies.get(option.value, 0)),
            )
            for option in rules.allowed_options(proposal.proposal_type)
        ]
        remaining_ms = rules.time_remaining_ms(proposal.ends_at, now)
        eligible = await self._collab.eligibility.count_eligible_voters()

        viewer: dict[str, bool] = {
            "can_vote": False,
            "has_voted": False,
            "can_comment": False,
            "can_resolve": False,
        }
        if viewer_id:
            eligible_viewer = await self._collab.eligibility.can_vote(viewer_id)
            has_voted = proposal.has_voted(viewer_id)
            viewer = {
                "can_vote": eligible_viewer
                and rules.is_voting_open(proposal.status, proposal.ends_at, now)
                and not has_voted,
                "has_voted": has_voted,
                "can_comment": eligible_viewer,
                "can_resolve": eligible_viewer
                and proposal.auto_finalized
                and proposal.resolved_at is None,
            }

        return ProposalView(
            proposal=proposal,
            vote_options=options,
            time_remaining_ms=remaining_ms,
            time_remaining_label=rules.humanize_remaining(remaining_ms),
            eligible_voters=eligible,
            participation_rate=rules.participation_rate(int(tallies.get("total", 0)), eligible),
            viewer=viewer,
        )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def finalize_if_expired(self, proposal_id: uuid.UUID) -> Proposal:
        """Close the voting window if it has passed. A no-op once finalized."""
        finalized = False

        async def operation() -> Proposal:
            nonlocal finalized
            proposal = await self._get_or_raise(proposal_id)
            now = self._clock.now()
            if rules.is_expired(proposal.auto_finalized, proposal.ends_at, now):
                self._apply_finalization(proposal, now)
                finalized = True
            return proposal

        proposal = await self._run(str(proposal_id), operation)
        if finalized:
            logger.info(
                "governance.finalized",
                proposal_id=str(proposal.id),
                decision=proposal.final_decision,
                status=proposal.status,
                total_votes=proposal.vote_tallies.get("total", 0),
            )
            await self._announce(proposal)
        return proposal

    def _apply_finalization(self, proposal: Proposal, now: datetime) -> None:
        tallies = rules.compute_tallies(proposal.proposal_type, [v.choice for v in proposal.votes])
        decision = rules.pick_decision(proposal.proposal_type, tallies)

        proposal.vote_tallies = tallies
        proposal.final_decision = decision.value if decision else None
        proposal.finalized_at = now
        proposal.auto_finalized = True
        proposal.outcome = decision.value if decision else None
        proposal.decided_at = now

        if proposal.status == ProposalStatus.VOTING.value:
            target = rules.status_after_voting(proposal.proposal_type, decision)
            proposal.status = advance_proposal(proposal.status, _STATUS_EVENTS[target]).value
        proposal.touch(now)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    async def admit_vote(
        self,
        proposal_id: uuid.UUID,
        voter_id: str,
        choice: str,
        reason: str | None = None,
    ) -> Proposal:
        await self.finalize_if_expired(proposal_id)

        async def operation() -> Proposal:
            proposal = await self._get_or_raise(proposal_id)
            now = self._clock.now()
            if not rules.is_voting_open(proposal.status, proposal.ends_at, now):
                raise VotingClosedError(str(proposal_id))
            if not await self._collab.eligibility.can_vote(voter_id):
                raise NotEligibleError(voter_id, "vote")
            vote_choice = rules.validate_choice(proposal.proposal_type, choice)
            if proposal.has_voted(voter_id):
                raise AlreadyVotedError(str(proposal_id), voter_id)

            proposal.votes.append(
                ProposalVote(
                    voter_id=voter_id,
                    choice=vote_choice.value,
                    reason=reason,
                    voted_at=now,
                )
            )
            proposal.vote_tallies = rules.compute_tallies(
                proposal.proposal_type, [v.choice for v in proposal.votes]
            )
            proposal.unique_voters = len({v.voter_id for v in proposal.votes})
            proposal.touch(now)
            return proposal

        proposal = await self._run(str(proposal_id), operation)
        logger.info(
            "governance.vote_admitted",
            proposal_id=str(proposal_id),
            voter_id=voter_id,
            choice=choice,
            total_votes=proposal.vote_tallies.get("total", 0),
        )
        await self._announce(proposal)
        await self._best_effort(
            "vote_reward",
            self._collab.notifier.activity_reward(
                voter_id, self._settings.vote_activity_reward, "dao_vote"
            ),
        )
        await self._count(voter_id, DaoStat.VOTES_CAST)
        return proposal

    # ------------------------------------------------------------------
    # Mutual-agreement settlement (disputes only)
    # ------------------------------------------------------------------

    async def propose_settlement(
        self,
        proposal_id: uuid.UUID,
        setter_id: str,
        talent_amount_usd: Decimal | None = None,
        client_amount_usd: Decimal | None = None,
    ) -> Proposal:
        """An independent DAO member proposes how to split the escrow.

        Changing the amounts withdraws any approvals already given.
        """
        await self.finalize_if_expired(proposal_id)

        async def operation() -> Proposal:
            proposal = await self._get_dispute_or_raise(proposal_id)
            if not await self._collab.eligibility.can_vote(setter_id):
                raise NotEligibleError(setter_id, "set settlement amounts")
            if setter_id in (proposal.client_id, proposal.talent_id):
                raise ConflictOfInterestError(setter_id)
            if proposal.status == ProposalStatus.RESOLVED.value:
                raise AlreadyResolvedError(str(proposal_id))

            settlement = proposal.settlement
            if settlement is not None and settlement.both_approved:
                raise InvalidStateError(
                    "Settlement amounts are locked once both parties approved",
                    current_state=proposal.status,
                    attempted="propose_settlement",
                )

            talent = self._non_negative(talent_amount_usd, "talent_amount_usd")
            client = self._non_negative(client_amount_usd, "client_amount_usd")
            if settlement is None:
                settlement = DisputeSettlement()
                proposal.settlement = settlement

            new_talent = talent if talent is not None else settlement.talent_amount_usd
            new_client = client if client is not None else settlement.client_amount_usd
            await self._check_within_cap(proposal, new_talent, new_client)

            changed = (
                new_talent != settlement.talent_amount_usd
                or new_client != settlement.client_amount_usd
            )
            settlement.talent_amount_usd = new_talent
            settlement.client_amount_usd = new_client
            if changed:
                settlement.client_approved = False
                settlement.talent_approved = False
            now = self._clock.now()
            settlement.set_by = setter_id
            settlement.set_at = now
            proposal.touch(now)
            return proposal

        proposal = await self._run(str(proposal_id), operation)
        logger.info(
            "governance.settlement_proposed",
            proposal_id=str(proposal_id),
            setter_id=setter_id,
            talent_amount_usd=str(proposal.settlement.talent_amount_usd),
            client_amount_usd=str(proposal.settlement.client_amount_usd),
        )
        await self._announce(proposal)
        return proposal

    async def approve_settlement(self, proposal_id: uuid.UUID, approver_id: str) -> Proposal:
        """Client or talent accepts the settlement.

        Once both have approved, voting ends immediately and the dispute waits
        for resolution on the agreed amounts.
        """
        await self.finalize_if_expired(proposal_id)
        agreed = False

        async def operation() -> Proposal:
            nonlocal agreed
            proposal = await self._get_dispute_or_raise(proposal_id)
            is_client = approver_id == proposal.client_id
            is_talent = approver_id == proposal.talent_id
            if not (is_client or is_talent):
                raise NotAuthorizedError("Only the client or talent can approve a settlement")
            if proposal.status == ProposalStatus.RESOLVED.value:
                raise AlreadyResolvedError(str(proposal_id))

            settlement = proposal.settlement
            if settlement is None or (
                settlement.talent_amount_usd is None and settlement.client_amount_usd is None
            ):
                raise InvalidStateError(
                    "Settlement amounts must be set first",
                    current_state=proposal.status,
                    attempted="approve_settlement",
                )

            already_agreed = settlement.both_approved
            if is_client:
                settlement.client_approved = True
            if is_talent:
                settlement.talent_approved = True

            now = self._clock.now()
            if settlement.both_approved and not already_agreed:
                agreed = True
                settlement.settled_by_agreement = True
                # A window that already closed keeps its recorded times.
                if proposal.status == ProposalStatus.VOTING.value:
                    proposal.ends_at = now
                    proposal.auto_finalized = True
                    proposal.finalized_at = now
                    proposal.decided_at = now
                    proposal.status = advance_proposal(proposal.status, "await_resolution").value
            proposal.touch(now)
            return proposal

        proposal = await self._run(str(proposal_id), operation)
        logger.info(
            "governance.settlement_approved",
            proposal_id=str(proposal_id),
            approver_id=approver_id,
            settled_by_agreement=agreed,
        )
        await self._announce(proposal)
        return proposal

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def compute_resolution(self, proposal_id: uuid.UUID) -> ResolutionInstruction:
        """Work out who gets paid what for a finalized dispute."""
        proposal = await self.finalize_if_expired(proposal_id)
        if not proposal.is_dispute:
            raise NotADisputeError(str(proposal_id))
        if not proposal.auto_finalized:
            raise InvalidStateError(
                "Voting must be completed before a resolution can be computed",
                current_state=proposal.status,
                attempted="compute_resolution",
            )
        if proposal.status == ProposalStatus.RESOLVED.value:
            raise AlreadyResolvedError(str(proposal_id))

        ledger = await self._ledgers.get_by_engagement(proposal.engagement_id)
        deposit = ledger.deposit if ledger else None
        if deposit is None:
            raise DepositMissingError(proposal.engagement_id)

        remaining = ledger.remaining_usd
        cap = settlement_cap(remaining, self._settings.settlement_percentage)
        settlement = proposal.settlement
        notes: list[str] = []
        if settlement is not None and settlement.both_approved:
            client_usd = quantize_usd(settlement.client_amount_usd or ZERO)
            talent_usd = quantize_usd(settlement.talent_amount_usd or ZERO)
            outcome = VoteChoice.SPLIT_FUNDS
            by_agreement = True
            notes.append("Amounts agreed by both parties")
        else:
            decision = VoteChoice(proposal.final_decision) if proposal.final_decision else None
            client_usd, talent_usd = split_by_decision(cap, decision)
            # No decision pays out as an even split.
            outcome = decision or VoteChoice.SPLIT_FUNDS
            by_agreement = False
            if decision is None:
                notes.append("No votes were cast; the cap is split evenly")

        price = await self._collab.rates.crypto_price_usd()
        minimum = self._settings.min_payout_crypto

        client_wallet = first_address(
            deposit.from_address,
            await self._collab.wallets.get_wallet_address(ledger.client_id),
        )
        if client_wallet is None:
            raise WalletUnresolvedError("client", ledger.client_id)
        work_started, completion = ledger.work_started, ledger.completion
        talent_wallet = first_address(
            work_started.from_address if work_started else None,
            completion.from_address if completion else None,
            deposit.to_address,
            await self._collab.wallets.get_wallet_address(ledger.talent_id),
        )
        if talent_wallet is None:
            raise WalletUnresolvedError("talent", ledger.talent_id)

        instruction = ResolutionInstruction(
            proposal_id=str(proposal.id),
            engagement_id=proposal.engagement_id,
            outcome=outcome,
            settled_by_agreement=by_agreement,
            client_wallet=client_wallet,
            talent_wallet=talent_wallet,
            client_amount_usd=client_usd,
            talent_amount_usd=talent_usd,
            client_amount_crypto=usd_to_crypto(client_usd, price, minimum),
            talent_amount_crypto=usd_to_crypto(talent_usd, price, minimum),
            remaining_usd=remaining,
            cap_usd=cap,
            crypto_price_usd=price,
            notes=notes,
        )
        logger.info(
            "governance.resolution_computed",
            proposal_id=str(proposal.id),
            outcome=outcome.value if outcome else None,
            client_amount_usd=str(client_usd),
            talent_amount_usd=str(talent_usd),
            cap_usd=str(cap),
        )
        return instruction

    async def confirm_resolution(
        self,
        proposal_id: uuid.UUID,
        resolver_id: str,
        tx_hash: str | None = None,
        summary: str | None = None,
        notes: str | None = None,
    ) -> Proposal:
        """Record that the outcome was carried out. Terminal.

        Disputes need the payout transaction hash; platform proposals may omit it.
        """
        await self.finalize_if_expired(proposal_id)

        async def operation() -> Proposal:
            proposal = await self._get_or_raise(proposal_id)
            if not await self._collab.eligibility.can_vote(resolver_id):
                raise NotEligibleError(resolver_id, "resolve proposals")
            if proposal.status == ProposalStatus.RESOLVED.value or proposal.resolved_at:
                raise AlreadyResolvedError(str(proposal_id))
            if not proposal.auto_finalized:
                raise InvalidStateError(
                    "Voting must be completed before resolving a proposal",
                    current_state=proposal.status,
                    attempted="resolve",
                )
            if proposal.is_dispute and not tx_hash:
                raise EscrowGovernanceError(
                    "A payout transaction hash is required to resolve a dispute",
                    code="TX_HASH_REQUIRED",
                )
            if tx_hash and (
                await self._proposals.resolution_tx_exists(tx_hash)
                or await self._ledgers.tx_hash_exists(tx_hash)
            ):
                raise DuplicateTransactionError(tx_hash)

            now = self._clock.now()
            settlement = proposal.settlement
            if settlement is not None and settlement.both_approved:
                proposal.outcome = VoteChoice.SPLIT_FUNDS.value
                settlement.resolved_by = resolver_id
                settlement.resolved_at = now
                summary_text = summary or (
                    "Dispute resolved by mutual agreement. "
                    f"Talent: {settlement.talent_amount_usd}, "
                    f"Client: {settlement.client_amount_usd}"
                )
            else:
                proposal.outcome = proposal.final_decision or (
                    VoteChoice.SPLIT_FUNDS.value if proposal.is_dispute else None
                )
                summary_text = summary

            proposal.status = advance_proposal(proposal.status, "resolve").value
            proposal.resolved_by = resolver_id
            proposal.resolved_at = now
            proposal.resolution_tx_hash = tx_hash
            proposal.resolution_summary = summary_text
            proposal.resolution_notes = notes
            proposal.touch(now)
            return proposal

        proposal = await self._run(str(proposal_id), operation)
        logger.info(
            "governance.resolved",
            proposal_id=str(proposal_id),
            resolver_id=resolver_id,
            outcome=proposal.outcome,
            tx_hash=tx_hash,
        )
        await self._announce(proposal)
        if proposal.is_dispute:
            await self._count(resolver_id, DaoStat.DISPUTES_RESOLVED)
        return proposal

    # ------------------------------------------------------------------
    # Discussion and housekeeping
    # ------------------------------------------------------------------

    async def add_comment(self, proposal_id: uuid.UUID, author_id: str, body: str) -> Proposal:
        await self.finalize_if_expired(proposal_id)
        text = (body or "").strip()
        if not COMMENT_MIN_LENGTH <= len(text) <= COMMENT_MAX_LENGTH:
            raise EscrowGovernanceError(
                f"Comments must be {COMMENT_MIN_LENGTH}-{COMMENT_MAX_LENGTH} characters",
                code="INVALID_COMMENT",
            )

        async def operation() -> Proposal:
            proposal = await self._get_or_raise(proposal_id)
            if not await self._collab.eligibility.can_vote(author_id):
                raise NotEligibleError(author_id, "comment")
            now = self._clock.now()
            proposal.comments.append(
                ProposalComment(author_id=author_id, body=text, created_at=now)
            )
            proposal.touch(now)
            return proposal

        proposal = await self._run(str(proposal_id), operation)
        logger.info("governance.comment_added", proposal_id=str(proposal_id), author_id=author_id)
        await self._announce(proposal)
        await self._count(author_id, DaoStat.COMMENTS_POSTED)
        return proposal

    async def deactivate(self, proposal_id: uuid.UUID, caller_id: str) -> Proposal:
        """Hide a proposal from listings. Proposals are never deleted."""
        await self.finalize_if_expired(proposal_id)

        async def operation() -> Proposal:
            proposal = await self._get_or_raise(proposal_id)
            if proposal.proposer_id != caller_id:
                raise NotAuthorizedError("Only the proposer can deactivate a proposal")
            proposal.is_active = False
            proposal.touch(self._clock.now())
            return proposal

        proposal = await self._run(str(proposal_id), operation)
        logger.info("governance.deactivated", proposal_id=str(proposal_id), caller_id=caller_id)
        await self._announce(proposal)
        return proposal

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        entity_id: str,
        operation: Callable[[], Awaitable[Proposal]],
    ) -> Proposal:
        return await run_unit_of_work(
            self._session,
            operation,
            entity="Proposal",
            entity_id=entity_id,
            max_attempts=self._settings.max_conflict_retries,
        )

    async def _get_or_raise(self, proposal_id: uuid.UUID) -> Proposal:
        proposal = await self._proposals.get_by_id(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(str(proposal_id))
        return proposal

    async def _get_dispute_or_raise(self, proposal_id: uuid.UUID) -> Proposal:
        proposal = await self._get_or_raise(proposal_id)
        if not proposal.is_dispute:
            raise NotADisputeError(str(proposal_id))
        return proposal

    @staticmethod
    def _non_negative(amount: Decimal | None, field_name: str) -> Decimal | None:
        if amount is None:
            return None
        if Decimal(amount) < ZERO:
            raise InvalidAmountError(f"{field_name} cannot be negative")
        return quantize_usd(amount)

    async def _check_within_cap(
        self,
        proposal: Proposal,
        talent_usd: Decimal | None,
        client_usd: Decimal | None,
    ) -> None:
        """Settlement amounts may not exceed the dispute cap of the escrow."""
        ledger = await self._ledgers.get_by_engagement(proposal.engagement_id)
        if ledger is None or ledger.deposit is None:
            return
        cap = settlement_cap(ledger.remaining_usd, self._settings.settlement_percentage)
        total = (talent_usd or ZERO) + (client_usd or ZERO)
        if total > cap:
            raise InvalidAmountError(f"Settlement total {total} exceeds the dispute cap of {cap}")

    async def _announce(self, proposal: Proposal) -> None:
        await self._best_effort(
            "proposal_updated", self._collab.notifier.proposal_updated(str(proposal.id))
        )

    async def _count(self, user_id: str, stat: DaoStat) -> None:
        await self._best_effort("dao_stat", self._collab.notifier.dao_stat(user_id, stat))

    @staticmethod
    async def _best_effort(effect: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("governance.side_effect_failed", effect=effect)
