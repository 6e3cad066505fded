"""Tests for the MCP tools, called directly with the database and adapters swapped out."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest

from escrow_governance.domain.clock import SystemClock
from escrow_governance.domain.enums import ProposalType
from escrow_governance.mcp_server import tools
from escrow_governance.services.governance_service import GovernanceService


@pytest.fixture(autouse=True)
def wired_tools(monkeypatch, session_factory, collaborators) -> None:  # noqa: ANN001
    @asynccontextmanager
    async def test_session():  # noqa: ANN202
        async with session_factory() as session:
            yield session

    monkeypatch.setattr(tools, "_session", test_session)
    monkeypatch.setattr(tools, "_collaborators", lambda session: collaborators)


async def open_platform(session, collaborators, settings, clock=None):  # noqa: ANN001, ANN201
    service = GovernanceService(
        session, collaborators, settings=settings, clock=clock or SystemClock()
    )
    return await service.create_proposal(
        proposer_id="voter-1",
        title="Lower the platform fee",
        description="Reduce the fee from 10% to 8%.",
        proposal_type=ProposalType.PLATFORM,
    )


class TestEscrowStatus:
    @pytest.mark.asyncio
    async def test_unfunded_engagement(self) -> None:
        result = await tools.escrow_status("eng-1")
        assert result["workflow_state"] == "offered"
        assert Decimal(result["remaining_usd"]) == 0

    @pytest.mark.asyncio
    async def test_unknown_engagement(self) -> None:
        result = await tools.escrow_status("eng-404")
        assert result["error"] == "NOT_FOUND"


class TestProposalTools:
    @pytest.mark.asyncio
    async def test_get_proposal(self, session, collaborators, settings) -> None:
        proposal = await open_platform(session, collaborators, settings)

        result = await tools.get_proposal(str(proposal.id), viewer_id="voter-2")

        assert result["title"] == "Lower the platform fee"
        assert result["viewer"]["can_vote"] is True

    @pytest.mark.asyncio
    async def test_malformed_id(self) -> None:
        result = await tools.get_proposal("not-a-uuid")
        assert result["error"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_missing_proposal(self) -> None:
        result = await tools.get_proposal(str(uuid.uuid4()))
        assert result["error"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_cast_vote(self, session, collaborators, settings, notifier) -> None:
        proposal = await open_platform(session, collaborators, settings)

        result = await tools.cast_vote(str(proposal.id), "voter-2", "reject", "Too risky")

        assert result["message"] == "Vote recorded."
        assert result["vote_tallies"]["reject"] == 1
        assert result["unique_voters"] == 1
        assert ("activity_reward", "voter-2", 5, "dao_vote") in notifier.events

    @pytest.mark.asyncio
    async def test_ineligible_voter(self, session, collaborators, settings) -> None:
        proposal = await open_platform(session, collaborators, settings)
        result = await tools.cast_vote(str(proposal.id), "newbie", "approve")
        assert result["error"] == "NOT_ELIGIBLE"

    @pytest.mark.asyncio
    async def test_vote_after_window(self, session, collaborators, settings, clock) -> None:
        clock.advance(days=-3650)
        proposal = await open_platform(session, collaborators, settings, clock)

        result = await tools.cast_vote(str(proposal.id), "voter-2", "approve")

        assert result["error"] == "VOTING_CLOSED"

    @pytest.mark.asyncio
    async def test_resolution_needs_a_dispute(self, session, collaborators, settings) -> None:
        proposal = await open_platform(session, collaborators, settings)
        result = await tools.resolution_instruction(str(proposal.id))
        assert result["error"] == "NOT_A_DISPUTE"


class TestUnexpectedFailures:
    @pytest.mark.asyncio
    async def test_internal_error(self, monkeypatch) -> None:
        def broken(session):  # noqa: ANN001, ANN202
            raise RuntimeError("adapter exploded")

        monkeypatch.setattr(tools, "_collaborators", broken)

        result = await tools.escrow_status("eng-1")

        assert result == {"error": "INTERNAL_ERROR", "message": "adapter exploded"}
