"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API and
MCP tools. They are separate from the ORM models to maintain clean
boundaries between the API and database layers.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from escrow_governance.domain.enums import ParticipantRole, WorkflowState
from escrow_governance.domain.state_machine import allowed_events_for
from escrow_governance.infrastructure.database.orm_models import EscrowLedger, LedgerEntry
from escrow_governance.services.escrow_service import EscrowSnapshot

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ExternalIdentifiers(BaseModel):
    """Ids the external settlement system knows this escrow by.

    Captured once at deposit; later steps may echo them back, but the stored
    values always win.
    """

    external_job_id: str | None = Field(default=None, max_length=128)
    external_client_id: str | None = Field(default=None, max_length=128)
    external_talent_id: str | None = Field(default=None, max_length=128)
    external_engagement_id: str | None = Field(default=None, max_length=128)


class TransactionEvidence(BaseModel):
    """An externally verified transaction backing an escrow step."""

    tx_hash: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Hash of the on-chain transaction",
        examples=["0x5e1d3a7c9b2f4e6a8d0c1b3e5f7a9c2d4e6f8a0b1c3d5e7f9a2b4c6d8e0f1a3b"],
    )
    from_address: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Wallet that signed the transaction",
        examples=["0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"],
    )


class RecordDepositRequest(TransactionEvidence):
    amount_usd: Decimal = Field(..., gt=0, description="Deposit value in USD", examples=[100])
    amount_crypto: Decimal = Field(
        ..., gt=0, description="Deposit in the settlement currency", examples=[0.033]
    )
    customer_wallet: str | None = Field(default=None, max_length=64)
    talent_wallet: str | None = Field(
        default=None,
        max_length=64,
        description="Payee wallet, if already known at deposit time",
    )
    identifiers: ExternalIdentifiers | None = None


class RecordMilestoneRequest(TransactionEvidence):
    """Body for work-start and completion."""

    identifiers: ExternalIdentifiers | None = None


class RecordDisbursementRequest(TransactionEvidence):
    amount_usd: Decimal = Field(..., gt=0)
    amount_crypto: Decimal | None = Field(
        default=None,
        gt=0,
        description="Defaults to the deposit's exchange rate",
    )
    to_address: str | None = Field(default=None, max_length=64)


class RecordConfirmationRequest(TransactionEvidence):
    amount_usd: Decimal | None = Field(
        default=None,
        gt=0,
        description="Defaults to everything still held in escrow",
    )
    amount_crypto: Decimal | None = Field(default=None, gt=0)
    talent_wallet: str | None = Field(default=None, max_length=64)
    identifiers: ExternalIdentifiers | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    """One transaction-anchored escrow milestone."""

    model_config = ConfigDict(from_attributes=True)

    kind: str
    tx_hash: str
    amount_usd: Decimal | None
    amount_crypto: Decimal | None
    from_address: str
    to_address: str | None
    performed_by: str
    occurred_at: datetime
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")


def _entry(entry: LedgerEntry | None) -> LedgerEntryResponse | None:
    return LedgerEntryResponse.model_validate(entry) if entry is not None else None


class EscrowResponse(BaseModel):
    """Full escrow ledger of an engagement."""

    engagement_id: str
    client_id: str
    talent_id: str
    linked_work_id: str | None
    linked_work_kind: str
    workflow_state: WorkflowState
    identifiers: dict | None
    deposit: LedgerEntryResponse | None
    work_started: LedgerEntryResponse | None
    completion: LedgerEntryResponse | None
    confirmation: LedgerEntryResponse | None
    disbursements: list[LedgerEntryResponse]
    total_disbursed_usd: Decimal
    remaining_usd: Decimal
    version: int
    allowed_events: dict[str, list[str]] = Field(
        description="Workflow events each party could fire from the current state"
    )

    @classmethod
    def from_ledger(cls, ledger: EscrowLedger) -> EscrowResponse:
        return cls(
            engagement_id=ledger.engagement_id,
            client_id=ledger.client_id,
            talent_id=ledger.talent_id,
            linked_work_id=ledger.linked_work_id,
            linked_work_kind=ledger.linked_work_kind,
            workflow_state=WorkflowState(ledger.workflow_state),
            identifiers=ledger.identifiers,
            deposit=_entry(ledger.deposit),
            work_started=_entry(ledger.work_started),
            completion=_entry(ledger.completion),
            confirmation=_entry(ledger.confirmation),
            disbursements=[LedgerEntryResponse.model_validate(e) for e in ledger.disbursements],
            total_disbursed_usd=ledger.total_disbursed_usd,
            remaining_usd=ledger.remaining_usd,
            version=ledger.version,
            allowed_events={
                role.value: allowed_events_for(role, ledger.workflow_state)
                for role in ParticipantRole
            },
        )

    @classmethod
    def from_snapshot(cls, snapshot: EscrowSnapshot) -> EscrowResponse:
        if snapshot.ledger is not None:
            return cls.from_ledger(snapshot.ledger)
        engagement = snapshot.engagement
        return cls(
            engagement_id=engagement.engagement_id,
            client_id=engagement.client_id,
            talent_id=engagement.talent_id,
            linked_work_id=engagement.linked_work_id,
            linked_work_kind=engagement.linked_work_kind.value,
            workflow_state=snapshot.workflow_state,
            identifiers=None,
            deposit=None,
            work_started=None,
            completion=None,
            confirmation=None,
            disbursements=[],
            total_disbursed_usd=snapshot.total_disbursed_usd,
            remaining_usd=snapshot.remaining_usd,
            version=0,
            allowed_events=snapshot.allowed_events,
        )


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    engagement_id: str
    workflow_state: WorkflowState
    remaining_usd: Decimal
    total_disbursed_usd: Decimal
    allowed_events: dict[str, list[str]] = Field(
        description="Workflow events each party could fire from the current state"
    )

    @classmethod
    def from_snapshot(cls, snapshot: EscrowSnapshot) -> EscrowStatusResponse:
        return cls(
            engagement_id=snapshot.engagement.engagement_id,
            workflow_state=snapshot.workflow_state,
            remaining_usd=snapshot.remaining_usd,
            total_disbursed_usd=snapshot.total_disbursed_usd,
            allowed_events=snapshot.allowed_events,
        )
