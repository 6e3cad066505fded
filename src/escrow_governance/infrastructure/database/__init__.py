"""Database infrastructure: engine, ORM models, and repositories."""

from escrow_governance.infrastructure.database.engine import (
    close_db,
    get_async_session,
    init_db,
)
from escrow_governance.infrastructure.database.orm_models import (
    Base,
    DisputeSettlement,
    EngagementRecord,
    EscrowLedger,
    LedgerEntry,
    MemberProfile,
    Proposal,
    ProposalComment,
    ProposalVote,
)
from escrow_governance.infrastructure.database.repositories import (
    EscrowLedgerRepository,
    MemberDirectoryRepository,
    ProposalRepository,
)

__all__ = [
    "Base",
    "DisputeSettlement",
    "EngagementRecord",
    "EscrowLedger",
    "LedgerEntry",
    "MemberProfile",
    "Proposal",
    "ProposalComment",
    "ProposalVote",
    "EscrowLedgerRepository",
    "MemberDirectoryRepository",
    "ProposalRepository",
    "get_async_session",
    "init_db",
    "close_db",
]
