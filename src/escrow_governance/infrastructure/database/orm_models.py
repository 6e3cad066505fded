"""SQLAlchemy 2.0 ORM models for the escrow & governance engine.

Aggregates (each carries a ``version`` column used for optimistic locking):
    1. escrow_ledgers     : One escrow record per engagement.
       ledger_entries     : Transaction-anchored milestones owned by a ledger.
    2. proposals          : Platform and dispute proposals.
       proposal_votes     : One row per (proposal, voter).
       dispute_settlements: Mutual-agreement amounts for a dispute.
       proposal_comments  : Discussion on a proposal.

Read-only tables owned by the marketplace CRUD system:
    engagements, member_profiles

Design decisions:
    - UUIDs as primary keys for the aggregates this engine owns.
    - Decimal amounts (no floating point rounding errors), stored as text on
      SQLite so tests see the same exact values as PostgreSQL.
    - JSON columns (JSONB on PostgreSQL) for identifiers, tallies and details.
    - Timezone-aware UTC datetimes on every backend.
    - tx_hash is UNIQUE across the whole ledger table (no replay).
    - Child rows never change without the aggregate's ``updated_at`` being
      touched, so every write goes through the version check.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import flag_modified

from escrow_governance.domain.enums import LedgerEntryKind
from escrow_governance.domain.payouts import ZERO, remaining_balance

JSONType = JSON().with_variant(JSONB(), "postgresql")

OPEN_DISPUTE_PREDICATE = "proposal_type = 'dispute' AND is_active AND status <> 'resolved'"


class UTCDateTime(TypeDecorator):
    """DateTime that always comes back timezone-aware (SQLite drops the offset)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class ExactDecimal(TypeDecorator):
    """Numeric column that round-trips Decimal exactly, including on SQLite."""

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int, scale: int) -> None:
        super().__init__()
        self.precision = precision
        self.scale = scale

    def load_dialect_impl(self, dialect):  # noqa: ANN001
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(self.precision, self.scale))

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        if dialect.name == "sqlite":
            return str(Decimal(value))
        return Decimal(value)

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        return Decimal(str(value))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. escrow_ledgers
# ---------------------------------------------------------------------------
class EscrowLedger(Base):
    """The escrow record of one engagement and its workflow state."""

    __tablename__ = "escrow_ledgers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Engagement context (copied from the engagement directory) ---
    engagement_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Opaque id of the engagement this escrow belongs to",
    )
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    talent_id: Mapped[str] = mapped_column(String(64), nullable=False)
    linked_work_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    linked_work_kind: Mapped[str] = mapped_column(String(10), nullable=False, default="None")

    # --- Status (guarded by WorkflowStateMachine) ---
    workflow_state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="offered",
    )

    # --- External identifiers, captured once at deposit ---
    identifiers: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="externalJobId/ClientId/TalentId/EngagementId, immutable after deposit",
    )

    # --- Optimistic lock ---
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    entries: Mapped[list[LedgerEntry]] = relationship(
        "LedgerEntry",
        back_populates="ledger",
        cascade="all, delete-orphan",
        order_by="LedgerEntry.sequence.asc()",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "workflow_state IN ('offered', 'deposit', 'in-progress', 'completed', 'confirmed')",
            name="ck_ledger_valid_state",
        ),
        Index("idx_ledger_client", "client_id"),
        Index("idx_ledger_talent", "talent_id"),
    )

    # --- Accessors over the owned entries ---

    def _single(self, kind: LedgerEntryKind) -> LedgerEntry | None:
        for entry in self.entries:
            if entry.kind == kind.value:
                return entry
        return None

    @property
    def deposit(self) -> LedgerEntry | None:
        return self._single(LedgerEntryKind.DEPOSIT)

    @property
    def work_started(self) -> LedgerEntry | None:
        return self._single(LedgerEntryKind.WORK_STARTED)

    @property
    def completion(self) -> LedgerEntry | None:
        return self._single(LedgerEntryKind.COMPLETION)

    @property
    def confirmation(self) -> LedgerEntry | None:
        return self._single(LedgerEntryKind.CONFIRMATION)

    @property
    def disbursements(self) -> list[LedgerEntry]:
        return [e for e in self.entries if e.kind == LedgerEntryKind.DISBURSEMENT.value]

    @property
    def total_disbursed_usd(self) -> Decimal:
        return sum((e.amount_usd or ZERO for e in self.disbursements), ZERO)

    @property
    def remaining_usd(self) -> Decimal:
        deposit = self.deposit
        if deposit is None or deposit.amount_usd is None:
            return ZERO
        released = [e.amount_usd or ZERO for e in self.disbursements]
        return remaining_balance(deposit.amount_usd, released)

    def append_entry(self, entry: LedgerEntry) -> LedgerEntry:
        entry.sequence = len(self.entries) + 1
        self.entries.append(entry)
        return entry

    def touch(self, now: datetime) -> None:
        """Mark the aggregate dirty so the version check runs on flush."""
        self.updated_at = now
        flag_modified(self, "updated_at")

    def __repr__(self) -> str:
        return (
            f"<EscrowLedger engagement={self.engagement_id} "
            f"state={self.workflow_state} v{self.version}>"
        )


class LedgerEntry(Base):
    """A single transaction-anchored escrow milestone."""

    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ledger_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrow_ledgers.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    tx_hash: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="External transaction hash; unique across the whole ledger",
    )
    amount_usd: Mapped[Decimal | None] = mapped_column(ExactDecimal(18, 6), nullable=True)
    amount_crypto: Mapped[Decimal | None] = mapped_column(ExactDecimal(36, 18), nullable=True)
    from_address: Mapped[str] = mapped_column(String(64), nullable=False)
    to_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Extra context, e.g. the declared customer wallet on a deposit",
    )

    ledger: Mapped[EscrowLedger] = relationship("EscrowLedger", back_populates="entries")

    __table_args__ = (
        CheckConstraint(
            "kind IN ('deposit', 'work_started', 'completion', 'disbursement', 'confirmation')",
            name="ck_entry_valid_kind",
        ),
        Index("idx_entry_ledger", "ledger_id"),
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.kind} tx={self.tx_hash}>"


# ---------------------------------------------------------------------------
# 2. proposals
# ---------------------------------------------------------------------------
class Proposal(Base):
    """A platform change or dispute put to a DAO vote."""

    __tablename__ = "proposals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    summary: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    proposal_type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    tags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="voting")
    proposer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # --- Voting window ---
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    min_activity_points: Mapped[int] = mapped_column(Integer, nullable=False)
    quorum: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_decision: Mapped[str | None] = mapped_column(String(30), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    auto_finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    vote_tallies: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    unique_voters: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Dispute context ---
    engagement_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    talent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    issue_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_narrative: Mapped[str | None] = mapped_column(Text, nullable=True)
    talent_narrative: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Resolution ---
    outcome: Mapped[str | None] = mapped_column(String(30), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolution_tx_hash: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        unique=True,
        comment="Transaction the external executor reported for the payout",
    )
    resolution_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    votes: Mapped[list[ProposalVote]] = relationship(
        "ProposalVote",
        back_populates="proposal",
        cascade="all, delete-orphan",
        order_by="ProposalVote.voted_at.asc()",
        lazy="selectin",
    )
    settlement: Mapped[DisputeSettlement | None] = relationship(
        "DisputeSettlement",
        back_populates="proposal",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )
    comments: Mapped[list[ProposalComment]] = relationship(
        "ProposalComment",
        back_populates="proposal",
        cascade="all, delete-orphan",
        order_by="ProposalComment.created_at.asc()",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('voting', 'passed', 'rejected', 'awaiting_resolution', 'resolved')",
            name="ck_proposal_valid_status",
        ),
        CheckConstraint(
            "proposal_type IN ('platform', 'dispute')",
            name="ck_proposal_valid_type",
        ),
        Index("idx_proposal_status", "status"),
        Index("idx_proposal_type", "proposal_type"),
        Index("idx_proposal_engagement", "engagement_id"),
        Index("idx_proposal_created_at", "created_at"),
        # At most one active, unresolved dispute per engagement.
        Index(
            "uq_proposal_open_dispute",
            "engagement_id",
            unique=True,
            postgresql_where=text(OPEN_DISPUTE_PREDICATE),
            sqlite_where=text(OPEN_DISPUTE_PREDICATE),
        ),
    )

    def has_voted(self, user_id: str) -> bool:
        return any(vote.voter_id == user_id for vote in self.votes)

    @property
    def is_dispute(self) -> bool:
        return self.proposal_type == "dispute"

    def touch(self, now: datetime) -> None:
        """Mark the aggregate dirty so the version check runs on flush."""
        self.updated_at = now
        flag_modified(self, "updated_at")

    def __repr__(self) -> str:
        return f"<Proposal id={self.id} type={self.proposal_type} status={self.status}>"


class ProposalVote(Base):
    __tablename__ = "proposal_votes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    voter_id: Mapped[str] = mapped_column(String(64), nullable=False)
    choice: Mapped[str] = mapped_column(String(30), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    voted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    proposal: Mapped[Proposal] = relationship("Proposal", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("proposal_id", "voter_id", name="uq_vote_proposal_voter"),
    )


class DisputeSettlement(Base):
    """Amounts negotiated outside the vote, approved by both parties."""

    __tablename__ = "dispute_settlements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    talent_amount_usd: Mapped[Decimal | None] = mapped_column(ExactDecimal(18, 6), nullable=True)
    client_amount_usd: Mapped[Decimal | None] = mapped_column(ExactDecimal(18, 6), nullable=True)
    client_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    talent_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    settled_by_agreement: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    set_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    set_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    proposal: Mapped[Proposal] = relationship("Proposal", back_populates="settlement")

    @property
    def both_approved(self) -> bool:
        return self.client_approved and self.talent_approved


class ProposalComment(Base):
    __tablename__ = "proposal_comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    proposal: Mapped[Proposal] = relationship("Proposal", back_populates="comments")


# ---------------------------------------------------------------------------
# 3. Marketplace-owned tables (read-only here)
# ---------------------------------------------------------------------------
class EngagementRecord(Base):
    """Client-talent engagement as recorded by the marketplace."""

    __tablename__ = "engagements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    talent_id: Mapped[str] = mapped_column(String(64), nullable=False)
    linked_work_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    linked_work_kind: Mapped[str] = mapped_column(String(10), nullable=False, default="None")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class MemberProfile(Base):
    """Wallet and DAO standing of a marketplace member."""

    __tablename__ = "member_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    wallet_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    activity_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
