"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import exists, func, select

from escrow_governance.infrastructure.database.orm_models import (
    EngagementRecord,
    EscrowLedger,
    LedgerEntry,
    MemberProfile,
    Proposal,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_governance.domain.enums import ProposalStatus, ProposalType


class EscrowLedgerRepository:
    """Data access for escrow ledgers and their entries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_engagement(self, engagement_id: str) -> EscrowLedger | None:
        """Fetch the ledger of an engagement, reloading it from the database."""
        result = await self._session.execute(
            select(EscrowLedger)
            .where(EscrowLedger.engagement_id == engagement_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def add(self, ledger: EscrowLedger) -> EscrowLedger:
        self._session.add(ledger)
        return ledger

    async def tx_hash_exists(self, tx_hash: str) -> bool:
        """True if any ledger entry, on any engagement, already uses ``tx_hash``."""
        result = await self._session.execute(
            select(exists().where(LedgerEntry.tx_hash == tx_hash))
        )
        return bool(result.scalar())


class ProposalRepository:
    """Data access for proposals and their owned rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def add(self, proposal: Proposal) -> Proposal:
        self._session.add(proposal)
        return proposal

    async def get_by_id(self, proposal_id: uuid.UUID) -> Proposal | None:
        """Fetch a proposal by its UUID, reloading it from the database."""
        result = await self._session.execute(
            select(Proposal)
            .where(Proposal.id == proposal_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_active(
        self,
        proposal_type: ProposalType | None = None,
        status: ProposalStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Proposal]:
        """Active proposals, newest first."""
        query = select(Proposal).where(Proposal.is_active.is_(True))
        if proposal_type is not None:
            query = query.where(Proposal.proposal_type == proposal_type.value)
        if status is not None:
            query = query.where(Proposal.status == status.value)
        query = query.order_by(Proposal.created_at.desc()).limit(limit).offset(offset)
        result = await self._session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def list_expired_ids(self, now: datetime) -> list[uuid.UUID]:
        """Ids of active proposals whose window closed but were never finalized."""
        result = await self._session.execute(
            select(Proposal.id).where(
                Proposal.is_active.is_(True),
                Proposal.auto_finalized.is_(False),
                Proposal.ends_at < now,
            )
        )
        return list(result.scalars().all())

    async def find_open_dispute(self, engagement_id: str) -> Proposal | None:
        """An active, unresolved dispute on the engagement, if one exists."""
        result = await self._session.execute(
            select(Proposal)
            .where(
                Proposal.engagement_id == engagement_id,
                Proposal.proposal_type == "dispute",
                Proposal.is_active.is_(True),
                Proposal.status != "resolved",
            )
            .limit(1)
        )
        return result.scalars().first()

    async def resolution_tx_exists(self, tx_hash: str) -> bool:
        result = await self._session.execute(
            select(exists().where(Proposal.resolution_tx_hash == tx_hash))
        )
        return bool(result.scalar())


class MemberDirectoryRepository:
    """Read-only lookups against the marketplace's engagement and profile tables."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_engagement(self, engagement_id: str) -> EngagementRecord | None:
        return await self._session.get(EngagementRecord, engagement_id)

    async def get_profile(self, user_id: str) -> MemberProfile | None:
        return await self._session.get(MemberProfile, user_id)

    async def count_with_points(self, min_points: int) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(MemberProfile)
            .where(MemberProfile.activity_points >= min_points)
        )
        return int(result.scalar_one())
