"""REST API routes for DAO governance: proposals, votes, settlements, resolution.

Reads accept an optional ``X-User-Id`` so the response can tell the viewer
whether they may vote, comment or resolve. Writes require it.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from escrow_governance.api.deps import get_caller_id, get_governance_service, get_viewer_id
from escrow_governance.domain.enums import ProposalStatus, ProposalType
from escrow_governance.infrastructure.database.orm_models import Proposal
from escrow_governance.logging_config import get_logger
from escrow_governance.schemas.governance import (
    AddCommentRequest,
    CastVoteRequest,
    ConfirmResolutionRequest,
    CreateProposalRequest,
    ProposalListResponse,
    ProposalResponse,
    ProposeSettlementRequest,
    ResolutionInstructionResponse,
)
from escrow_governance.services.governance_service import GovernanceService

router = APIRouter(prefix="/api/v1/governance", tags=["Governance"])
logger = get_logger(__name__)


async def _render(
    service: GovernanceService, proposal: Proposal, viewer_id: str | None
) -> ProposalResponse:
    view = await service.describe(proposal, viewer_id)
    return ProposalResponse.from_view(view)


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


@router.post(
    "/proposals",
    response_model=ProposalResponse,
    status_code=201,
    summary="Open a platform or dispute proposal",
)
async def create_proposal(
    body: CreateProposalRequest,
    caller_id: str = Depends(get_caller_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    dispute = body.dispute_context
    proposal = await service.create_proposal(
        proposer_id=caller_id,
        title=body.title,
        description=body.description,
        proposal_type=body.proposal_type,
        category=body.category,
        summary=body.summary,
        tags=body.tags,
        platform_details=(
            body.platform_details.model_dump(exclude_none=True)
            if body.platform_details
            else None
        ),
        engagement_id=dispute.engagement_id if dispute else None,
        issue_summary=dispute.issue_summary if dispute else None,
        client_narrative=dispute.client_narrative if dispute else None,
        talent_narrative=dispute.talent_narrative if dispute else None,
    )
    return await _render(service, proposal, caller_id)


@router.get(
    "/proposals",
    response_model=ProposalListResponse,
    summary="List active proposals, newest first",
)
async def list_proposals(
    proposal_type: ProposalType | None = Query(default=None, alias="type"),
    status: ProposalStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    viewer_id: str | None = Depends(get_viewer_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalListResponse:
    proposals = await service.list_proposals(proposal_type, status, limit, offset)
    items = [await _render(service, p, viewer_id) for p in proposals]
    return ProposalListResponse(items=items, count=len(items))


@router.get(
    "/proposals/{proposal_id}",
    response_model=ProposalResponse,
    summary="Get a proposal",
)
async def get_proposal(
    proposal_id: uuid.UUID,
    viewer_id: str | None = Depends(get_viewer_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.get_proposal(proposal_id)
    return await _render(service, proposal, viewer_id)


@router.post(
    "/proposals/{proposal_id}/deactivate",
    response_model=ProposalResponse,
    summary="Hide a proposal from listings (proposer only)",
)
async def deactivate_proposal(
    proposal_id: uuid.UUID,
    caller_id: str = Depends(get_caller_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.deactivate(proposal_id, caller_id)
    return await _render(service, proposal, caller_id)


# ---------------------------------------------------------------------------
# Voting
# ---------------------------------------------------------------------------


@router.post(
    "/proposals/{proposal_id}/votes",
    response_model=ProposalResponse,
    summary="Cast a vote",
    description="One vote per member per proposal; votes cannot be changed.",
)
async def cast_vote(
    proposal_id: uuid.UUID,
    body: CastVoteRequest,
    caller_id: str = Depends(get_caller_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.admit_vote(proposal_id, caller_id, body.choice, body.reason)
    return await _render(service, proposal, caller_id)


@router.post(
    "/proposals/{proposal_id}/finalize",
    response_model=ProposalResponse,
    summary="Finalize a proposal whose voting window has passed",
    description="A no-op while voting is still open or once finalized.",
)
async def finalize_proposal(
    proposal_id: uuid.UUID,
    viewer_id: str | None = Depends(get_viewer_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.finalize_if_expired(proposal_id)
    return await _render(service, proposal, viewer_id)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@router.post(
    "/proposals/{proposal_id}/settlement",
    response_model=ProposalResponse,
    summary="Propose settlement amounts for a dispute",
)
async def propose_settlement(
    proposal_id: uuid.UUID,
    body: ProposeSettlementRequest,
    caller_id: str = Depends(get_caller_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.propose_settlement(
        proposal_id,
        caller_id,
        talent_amount_usd=body.talent_amount_usd,
        client_amount_usd=body.client_amount_usd,
    )
    return await _render(service, proposal, caller_id)


@router.post(
    "/proposals/{proposal_id}/settlement/approve",
    response_model=ProposalResponse,
    summary="Approve the proposed settlement as a dispute party",
)
async def approve_settlement(
    proposal_id: uuid.UUID,
    caller_id: str = Depends(get_caller_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.approve_settlement(proposal_id, caller_id)
    return await _render(service, proposal, caller_id)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


@router.get(
    "/proposals/{proposal_id}/resolution",
    response_model=ResolutionInstructionResponse,
    summary="Compute the payout instruction for a finalized dispute",
)
async def get_resolution_instruction(
    proposal_id: uuid.UUID,
    service: GovernanceService = Depends(get_governance_service),
) -> ResolutionInstructionResponse:
    instruction = await service.compute_resolution(proposal_id)
    return ResolutionInstructionResponse.from_instruction(instruction)


@router.post(
    "/proposals/{proposal_id}/resolution/confirm",
    response_model=ProposalResponse,
    summary="Record that the outcome was carried out",
)
async def confirm_resolution(
    proposal_id: uuid.UUID,
    body: ConfirmResolutionRequest,
    caller_id: str = Depends(get_caller_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.confirm_resolution(
        proposal_id,
        caller_id,
        tx_hash=body.tx_hash,
        summary=body.summary,
        notes=body.notes,
    )
    return await _render(service, proposal, caller_id)


# ---------------------------------------------------------------------------
# Discussion
# ---------------------------------------------------------------------------


@router.post(
    "/proposals/{proposal_id}/comments",
    response_model=ProposalResponse,
    status_code=201,
    summary="Comment on a proposal",
)
async def add_comment(
    proposal_id: uuid.UUID,
    body: AddCommentRequest,
    caller_id: str = Depends(get_caller_id),
    service: GovernanceService = Depends(get_governance_service),
) -> ProposalResponse:
    proposal = await service.add_comment(proposal_id, caller_id, body.body)
    return await _render(service, proposal, caller_id)
