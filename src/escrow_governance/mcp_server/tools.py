"""MCP tool definitions for the escrow & governance engine.

These tools expose read access to escrows and proposals, plus voting, via the
Model Context Protocol so agents can discover and call them programmatically.

Tools:
    - escrow_status: Workflow state and balance of an engagement's escrow
    - get_proposal: A proposal with its tallies and voting window
    - cast_vote: Vote on a proposal as a DAO member
    - resolution_instruction: Payout instruction for a finalized dispute

The MCP server is mounted into FastAPI at /mcp via app.mount().
Each tool manages its own database session (no FastAPI Depends available).
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from mcp.server.fastmcp import FastMCP

from escrow_governance.config import get_settings
from escrow_governance.domain.exceptions import EscrowGovernanceError
from escrow_governance.infrastructure.collaborators import build_collaborators
from escrow_governance.infrastructure.database.engine import get_session_factory
from escrow_governance.infrastructure.redis_client import get_redis_or_none
from escrow_governance.logging_config import get_logger
from escrow_governance.schemas.escrow import EscrowStatusResponse
from escrow_governance.schemas.governance import (
    ProposalResponse,
    ResolutionInstructionResponse,
)
from escrow_governance.services.escrow_service import EscrowWorkflowService
from escrow_governance.services.governance_service import GovernanceService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_governance.domain.ports import Collaborators

logger = get_logger(__name__)

mcp = FastMCP(
    "Escrow Governance",
    json_response=True,
)


@asynccontextmanager
async def _session() -> AsyncIterator[AsyncSession]:
    """A database session outside any FastAPI request."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def _collaborators(session: AsyncSession) -> Collaborators:
    return build_collaborators(session, get_redis_or_none(), get_settings())


def _error(exc: EscrowGovernanceError) -> dict:
    return {"error": exc.code, "message": exc.message}


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def _invalid_id(value: str) -> dict:
    return {"error": "INVALID_INPUT", "message": f"Not a proposal id: {value}"}


@mcp.tool()
async def escrow_status(engagement_id: str) -> dict:
    """Check the escrow of an engagement.

    Args:
        engagement_id: Id of the engagement (contract) the escrow belongs to.

    Returns:
        The workflow state, the amount still held, and which workflow events
        the client and the talent could record next.
    """
    try:
        async with _session() as session:
            svc = EscrowWorkflowService(session, _collaborators(session))
            snapshot = await svc.get_snapshot(engagement_id)
            return EscrowStatusResponse.from_snapshot(snapshot).model_dump(mode="json")
    except EscrowGovernanceError as exc:
        logger.warning("mcp.escrow_status.rejected", code=exc.code, error=exc.message)
        return _error(exc)
    except Exception as exc:
        logger.exception("mcp.escrow_status.error")
        return {"error": "INTERNAL_ERROR", "message": str(exc)}


@mcp.tool()
async def get_proposal(proposal_id: str, viewer_id: str = "") -> dict:
    """Fetch a governance proposal.

    Args:
        proposal_id: UUID of the proposal.
        viewer_id: Optional member id; fills in whether they can still vote.

    Returns:
        The proposal with its vote tallies, time remaining and, for disputes,
        the engagement context and any settlement.
    """
    pid = _parse_uuid(proposal_id)
    if pid is None:
        return _invalid_id(proposal_id)
    try:
        async with _session() as session:
            svc = GovernanceService(session, _collaborators(session))
            proposal = await svc.get_proposal(pid)
            view = await svc.describe(proposal, viewer_id or None)
            return ProposalResponse.from_view(view).model_dump(mode="json")
    except EscrowGovernanceError as exc:
        logger.warning("mcp.get_proposal.rejected", code=exc.code, error=exc.message)
        return _error(exc)
    except Exception as exc:
        logger.exception("mcp.get_proposal.error")
        return {"error": "INTERNAL_ERROR", "message": str(exc)}


@mcp.tool()
async def cast_vote(proposal_id: str, voter_id: str, choice: str, reason: str = "") -> dict:
    """Vote on a proposal.

    Args:
        proposal_id: UUID of the proposal.
        voter_id: Your member id. You need enough activity points to vote.
        choice: 'approve', 'reject' or 'abstain' on platform proposals;
            'client_refund', 'talent_refund' or 'split_funds' on disputes.
        reason: Optional explanation shown alongside your vote.

    Returns:
        The updated tallies. Votes are final and cannot be changed.
    """
    pid = _parse_uuid(proposal_id)
    if pid is None:
        return _invalid_id(proposal_id)
    try:
        async with _session() as session:
            svc = GovernanceService(session, _collaborators(session))
            proposal = await svc.admit_vote(pid, voter_id, choice, reason or None)
            return {
                "proposal_id": str(proposal.id),
                "status": proposal.status,
                "choice": choice,
                "vote_tallies": dict(proposal.vote_tallies or {}),
                "unique_voters": proposal.unique_voters,
                "message": "Vote recorded.",
            }
    except EscrowGovernanceError as exc:
        logger.warning("mcp.cast_vote.rejected", code=exc.code, error=exc.message)
        return _error(exc)
    except Exception as exc:
        logger.exception("mcp.cast_vote.error")
        return {"error": "INTERNAL_ERROR", "message": str(exc)}


@mcp.tool()
async def resolution_instruction(proposal_id: str) -> dict:
    """Compute how a finalized dispute should be paid out.

    Args:
        proposal_id: UUID of the dispute proposal.

    Returns:
        Wallets and USD/crypto amounts for the client and the talent. Nothing
        is transferred; report the payout back with the resolution endpoint.
    """
    pid = _parse_uuid(proposal_id)
    if pid is None:
        return _invalid_id(proposal_id)
    try:
        async with _session() as session:
            svc = GovernanceService(session, _collaborators(session))
            instruction = await svc.compute_resolution(pid)
            return ResolutionInstructionResponse.from_instruction(instruction).model_dump(
                mode="json"
            )
    except EscrowGovernanceError as exc:
        logger.warning("mcp.resolution_instruction.rejected", code=exc.code, error=exc.message)
        return _error(exc)
    except Exception as exc:
        logger.exception("mcp.resolution_instruction.error")
        return {"error": "INTERNAL_ERROR", "message": str(exc)}
