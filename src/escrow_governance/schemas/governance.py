"""Pydantic schemas for the Governance API."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from escrow_governance.domain.enums import (
    ProposalCategory,
    ProposalStatus,
    ProposalType,
    VoteChoice,
)
from escrow_governance.domain.ports import ResolutionInstruction
from escrow_governance.services.governance_service import ProposalView

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class PlatformDetails(BaseModel):
    problem_statement: str | None = Field(default=None, max_length=5000)
    proposed_solution: str | None = Field(default=None, max_length=5000)
    impact: str | None = Field(default=None, max_length=5000)
    implementation_plan: str | None = Field(default=None, max_length=5000)
    success_metrics: str | None = Field(default=None, max_length=5000)
    dependencies: str | None = Field(default=None, max_length=5000)


class DisputeContextRequest(BaseModel):
    engagement_id: str = Field(..., min_length=1, max_length=64)
    issue_summary: str | None = Field(default=None, max_length=5000)
    client_narrative: str | None = Field(default=None, max_length=10_000)
    talent_narrative: str | None = Field(default=None, max_length=10_000)


class CreateProposalRequest(BaseModel):
    """Request body for opening a proposal."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=20_000)
    summary: str | None = Field(default=None, max_length=500)
    proposal_type: ProposalType
    category: ProposalCategory | None = Field(
        default=None,
        description="Defaults to the proposal type",
    )
    tags: list[str] = Field(default_factory=list, max_length=20)
    platform_details: PlatformDetails | None = None
    dispute_context: DisputeContextRequest | None = Field(
        default=None,
        description="Required for dispute proposals",
    )


class CastVoteRequest(BaseModel):
    choice: str = Field(
        ...,
        min_length=1,
        max_length=30,
        description=(
            "approve/reject/abstain, or client_refund/talent_refund/split_funds for disputes"
        ),
        examples=["split_funds"],
    )
    reason: str | None = Field(default=None, max_length=1000)


class ProposeSettlementRequest(BaseModel):
    talent_amount_usd: Decimal | None = Field(default=None, ge=0)
    client_amount_usd: Decimal | None = Field(default=None, ge=0)


class ConfirmResolutionRequest(BaseModel):
    tx_hash: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Payout transaction; required for disputes",
    )
    summary: str | None = Field(default=None, max_length=2000)
    notes: str | None = Field(default=None, max_length=5000)


class AddCommentRequest(BaseModel):
    body: str = Field(..., min_length=5, max_length=1500)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class VoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    voter_id: str
    choice: VoteChoice
    reason: str | None
    voted_at: datetime


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    author_id: str
    body: str
    created_at: datetime


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    talent_amount_usd: Decimal | None
    client_amount_usd: Decimal | None
    client_approved: bool
    talent_approved: bool
    settled_by_agreement: bool
    set_by: str | None
    set_at: datetime | None
    resolved_by: str | None
    resolved_at: datetime | None


class VoteOptionResponse(BaseModel):
    id: str
    label: str
    votes: int


class VotingResponse(BaseModel):
    starts_at: datetime
    ends_at: datetime
    duration_days: int
    min_activity_points: int
    quorum: int
    final_decision: VoteChoice | None
    finalized_at: datetime | None
    auto_finalized: bool
    time_remaining_ms: int
    time_remaining_label: str


class AnalyticsResponse(BaseModel):
    unique_voters: int
    total_eligible_voters: int
    participation_rate: float


class ResultsResponse(BaseModel):
    outcome: str | None
    decided_at: datetime | None
    resolved_at: datetime | None
    resolved_by: str | None
    resolution_tx_hash: str | None
    summary: str | None
    notes: str | None


class DisputeContextResponse(BaseModel):
    engagement_id: str | None
    client_id: str | None
    talent_id: str | None
    issue_summary: str | None
    client_narrative: str | None
    talent_narrative: str | None
    settlement: SettlementResponse | None


class ViewerContextResponse(BaseModel):
    can_vote: bool = False
    has_voted: bool = False
    can_comment: bool = False
    can_resolve: bool = False


class ProposalResponse(BaseModel):
    """A proposal as rendered for a particular viewer."""

    id: uuid.UUID
    title: str
    summary: str | None
    description: str
    proposal_type: ProposalType
    category: ProposalCategory
    status: ProposalStatus
    tags: list[str]
    proposer_id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    voting: VotingResponse
    vote_tallies: dict[str, int]
    vote_options: list[VoteOptionResponse]
    analytics: AnalyticsResponse
    results: ResultsResponse
    dispute_context: DisputeContextResponse | None
    platform_details: dict | None
    votes: list[VoteResponse]
    comments: list[CommentResponse]
    viewer: ViewerContextResponse

    @classmethod
    def from_view(cls, view: ProposalView) -> ProposalResponse:
        p = view.proposal
        dispute = None
        if p.is_dispute:
            dispute = DisputeContextResponse(
                engagement_id=p.engagement_id,
                client_id=p.client_id,
                talent_id=p.talent_id,
                issue_summary=p.issue_summary,
                client_narrative=p.client_narrative,
                talent_narrative=p.talent_narrative,
                settlement=(
                    SettlementResponse.model_validate(p.settlement) if p.settlement else None
                ),
            )
        return cls(
            id=p.id,
            title=p.title,
            summary=p.summary,
            description=p.description,
            proposal_type=ProposalType(p.proposal_type),
            category=ProposalCategory(p.category),
            status=ProposalStatus(p.status),
            tags=list(p.tags or []),
            proposer_id=p.proposer_id,
            is_active=p.is_active,
            created_at=p.created_at,
            updated_at=p.updated_at,
            voting=VotingResponse(
                starts_at=p.starts_at,
                ends_at=p.ends_at,
                duration_days=p.duration_days,
                min_activity_points=p.min_activity_points,
                quorum=p.quorum,
                final_decision=p.final_decision,
                finalized_at=p.finalized_at,
                auto_finalized=p.auto_finalized,
                time_remaining_ms=view.time_remaining_ms,
                time_remaining_label=view.time_remaining_label,
            ),
            vote_tallies=dict(p.vote_tallies or {}),
            vote_options=[
                VoteOptionResponse(id=o.id, label=o.label, votes=o.votes)
                for o in view.vote_options
            ],
            analytics=AnalyticsResponse(
                unique_voters=p.unique_voters,
                total_eligible_voters=view.eligible_voters,
                participation_rate=view.participation_rate,
            ),
            results=ResultsResponse(
                outcome=p.outcome or p.final_decision,
                decided_at=p.decided_at or p.finalized_at,
                resolved_at=p.resolved_at,
                resolved_by=p.resolved_by,
                resolution_tx_hash=p.resolution_tx_hash,
                summary=p.resolution_summary,
                notes=p.resolution_notes,
            ),
            dispute_context=dispute,
            platform_details=p.platform_details if not p.is_dispute else None,
            votes=[VoteResponse.model_validate(v) for v in p.votes],
            comments=[CommentResponse.model_validate(c) for c in p.comments],
            viewer=ViewerContextResponse(**view.viewer),
        )


class ProposalListResponse(BaseModel):
    items: list[ProposalResponse]
    count: int


class ResolutionInstructionResponse(BaseModel):
    """Payout for an external executor to carry out."""

    proposal_id: str
    engagement_id: str
    outcome: VoteChoice | None
    settled_by_agreement: bool
    client_wallet: str
    talent_wallet: str
    client_amount_usd: Decimal
    talent_amount_usd: Decimal
    client_amount_crypto: Decimal
    talent_amount_crypto: Decimal
    remaining_usd: Decimal
    cap_usd: Decimal
    crypto_price_usd: Decimal
    notes: list[str]

    @classmethod
    def from_instruction(cls, instruction: ResolutionInstruction) -> ResolutionInstructionResponse:
        return cls(
            proposal_id=instruction.proposal_id,
            engagement_id=instruction.engagement_id,
            outcome=instruction.outcome,
            settled_by_agreement=instruction.settled_by_agreement,
            client_wallet=instruction.client_wallet,
            talent_wallet=instruction.talent_wallet,
            client_amount_usd=instruction.client_amount_usd,
            talent_amount_usd=instruction.talent_amount_usd,
            client_amount_crypto=instruction.client_amount_crypto,
            talent_amount_crypto=instruction.talent_amount_crypto,
            remaining_usd=instruction.remaining_usd,
            cap_usd=instruction.cap_usd,
            crypto_price_usd=instruction.crypto_price_usd,
            notes=list(instruction.notes),
        )
