"""REST API routes for the escrow workflow.

Every write is backed by an externally verified transaction; the caller is
identified by the ``X-User-Id`` header and must be a party to the engagement.

Endpoints:
    GET  /api/v1/escrow/{engagement_id}            Full ledger
    GET  /api/v1/escrow/{engagement_id}/status     Lightweight status
    POST /api/v1/escrow/{engagement_id}/deposit    Client funds the escrow
    POST /api/v1/escrow/{engagement_id}/start      Talent starts work
    POST /api/v1/escrow/{engagement_id}/complete   Talent marks the work complete
    POST /api/v1/escrow/{engagement_id}/disburse   Client releases part of the escrow
    POST /api/v1/escrow/{engagement_id}/confirm    Client confirms delivery
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from escrow_governance.api.deps import get_caller_id, get_escrow_service
from escrow_governance.logging_config import get_logger
from escrow_governance.schemas.escrow import (
    EscrowResponse,
    EscrowStatusResponse,
    ExternalIdentifiers,
    RecordConfirmationRequest,
    RecordDepositRequest,
    RecordDisbursementRequest,
    RecordMilestoneRequest,
)
from escrow_governance.services.escrow_service import EscrowWorkflowService

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])
logger = get_logger(__name__)

EngagementId = Path(..., min_length=1, max_length=64)


def _identifiers(identifiers: ExternalIdentifiers | None) -> dict[str, str | None] | None:
    return identifiers.model_dump() if identifiers is not None else None


@router.get(
    "/{engagement_id}",
    response_model=EscrowResponse,
    summary="Get the escrow ledger of an engagement",
)
async def get_escrow(
    engagement_id: str = EngagementId,
    service: EscrowWorkflowService = Depends(get_escrow_service),
) -> EscrowResponse:
    snapshot = await service.get_snapshot(engagement_id)
    return EscrowResponse.from_snapshot(snapshot)


@router.get(
    "/{engagement_id}/status",
    response_model=EscrowStatusResponse,
    summary="Get the workflow state and balance",
)
async def get_escrow_status(
    engagement_id: str = EngagementId,
    service: EscrowWorkflowService = Depends(get_escrow_service),
) -> EscrowStatusResponse:
    snapshot = await service.get_snapshot(engagement_id)
    return EscrowStatusResponse.from_snapshot(snapshot)


@router.post(
    "/{engagement_id}/deposit",
    response_model=EscrowResponse,
    summary="Record the client's deposit",
    description="Moves the engagement from offered to deposit and opens the ledger.",
)
async def record_deposit(
    body: RecordDepositRequest,
    engagement_id: str = EngagementId,
    caller_id: str = Depends(get_caller_id),
    service: EscrowWorkflowService = Depends(get_escrow_service),
) -> EscrowResponse:
    ledger = await service.record_deposit(
        engagement_id=engagement_id,
        caller_id=caller_id,
        tx_hash=body.tx_hash,
        from_address=body.from_address,
        amount_usd=body.amount_usd,
        amount_crypto=body.amount_crypto,
        customer_wallet=body.customer_wallet,
        talent_wallet=body.talent_wallet,
        identifiers=_identifiers(body.identifiers),
    )
    return EscrowResponse.from_ledger(ledger)


@router.post(
    "/{engagement_id}/start",
    response_model=EscrowResponse,
    summary="Record that the talent started work",
)
async def record_work_started(
    body: RecordMilestoneRequest,
    engagement_id: str = EngagementId,
    caller_id: str = Depends(get_caller_id),
    service: EscrowWorkflowService = Depends(get_escrow_service),
) -> EscrowResponse:
    ledger = await service.record_work_started(
        engagement_id=engagement_id,
        caller_id=caller_id,
        tx_hash=body.tx_hash,
        from_address=body.from_address,
        identifiers=_identifiers(body.identifiers),
    )
    return EscrowResponse.from_ledger(ledger)


@router.post(
    "/{engagement_id}/complete",
    response_model=EscrowResponse,
    summary="Record that the talent completed the work",
)
async def record_completion(
    body: RecordMilestoneRequest,
    engagement_id: str = EngagementId,
    caller_id: str = Depends(get_caller_id),
    service: EscrowWorkflowService = Depends(get_escrow_service),
) -> EscrowResponse:
    ledger = await service.record_completion(
        engagement_id=engagement_id,
        caller_id=caller_id,
        tx_hash=body.tx_hash,
        from_address=body.from_address,
        identifiers=_identifiers(body.identifiers),
    )
    return EscrowResponse.from_ledger(ledger)


@router.post(
    "/{engagement_id}/disburse",
    response_model=EscrowResponse,
    summary="Record a partial release to the talent",
)
async def record_disbursement(
    body: RecordDisbursementRequest,
    engagement_id: str = EngagementId,
    caller_id: str = Depends(get_caller_id),
    service: EscrowWorkflowService = Depends(get_escrow_service),
) -> EscrowResponse:
    ledger = await service.record_disbursement(
        engagement_id=engagement_id,
        caller_id=caller_id,
        tx_hash=body.tx_hash,
        from_address=body.from_address,
        amount_usd=body.amount_usd,
        amount_crypto=body.amount_crypto,
        to_address=body.to_address,
    )
    return EscrowResponse.from_ledger(ledger)


@router.post(
    "/{engagement_id}/confirm",
    response_model=EscrowResponse,
    summary="Record the client's confirmation of delivery",
    description=(
        "Releases what remains in escrow. Replaying the same transaction "
        "returns the ledger unchanged."
    ),
)
async def record_confirmation(
    body: RecordConfirmationRequest,
    engagement_id: str = EngagementId,
    caller_id: str = Depends(get_caller_id),
    service: EscrowWorkflowService = Depends(get_escrow_service),
) -> EscrowResponse:
    ledger = await service.record_confirmation(
        engagement_id=engagement_id,
        caller_id=caller_id,
        tx_hash=body.tx_hash,
        from_address=body.from_address,
        amount_usd=body.amount_usd,
        amount_crypto=body.amount_crypto,
        talent_wallet=body.talent_wallet,
        identifiers=_identifiers(body.identifiers),
    )
    return EscrowResponse.from_ledger(ledger)
