"""Escrow Workflow Service: the per-engagement escrow lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (role and transition guard)
    - Repositories (the ledger aggregate)
    - Collaborator ports (engagement lookup, wallets, notifications)

Every mutation runs as one optimistic unit of work: read the ledger, check
the guards, append the entry, bump the ledger version, commit. Both REST
routes and MCP tools call into this service, ensuring a single source of
truth for all business rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from escrow_governance.config import get_settings
from escrow_governance.domain.clock import SystemClock
from escrow_governance.domain.enums import LedgerEntryKind, ParticipantRole, WorkflowState
from escrow_governance.domain.exceptions import (
    AlreadyConfirmedError,
    AlreadyDepositedError,
    CompletionMissingError,
    DepositMissingError,
    DuplicateTransactionError,
    EngagementNotFoundError,
    InvalidAmountError,
    InvalidStateError,
    NotAuthorizedError,
    WalletMismatchError,
    WalletUnresolvedError,
)
from escrow_governance.domain.payouts import (
    ZERO,
    first_address,
    normalize_address,
    proportional_crypto,
    quantize_crypto,
    quantize_usd,
    require_positive,
)
from escrow_governance.domain.state_machine import allowed_events_for, authorize_transition
from escrow_governance.infrastructure.database.orm_models import EscrowLedger, LedgerEntry
from escrow_governance.infrastructure.database.repositories import EscrowLedgerRepository
from escrow_governance.logging_config import get_logger
from escrow_governance.services.concurrency import run_unit_of_work

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_governance.config import Settings
    from escrow_governance.domain.clock import Clock
    from escrow_governance.domain.ports import Collaborators, Engagement

logger = get_logger(__name__)

IDENTIFIER_KEYS = (
    "external_job_id",
    "external_client_id",
    "external_talent_id",
    "external_engagement_id",
)


@dataclass
class EscrowSnapshot:
    """Read model of an engagement's escrow, whether or not a ledger exists yet."""

    engagement: Engagement
    ledger: EscrowLedger | None
    workflow_state: WorkflowState
    allowed_events: dict[str, list[str]] = field(default_factory=dict)

    @property
    def total_disbursed_usd(self) -> Decimal:
        return self.ledger.total_disbursed_usd if self.ledger else ZERO

    @property
    def remaining_usd(self) -> Decimal:
        return self.ledger.remaining_usd if self.ledger else ZERO


class EscrowWorkflowService:
    """Records escrow milestones for an engagement."""

    def __init__(
        self,
        session: AsyncSession,
        collaborators: Collaborators,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._ledgers = EscrowLedgerRepository(session)
        self._collab = collaborators
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_snapshot(self, engagement_id: str) -> EscrowSnapshot:
        engagement = await self._get_engagement_or_raise(engagement_id)
        ledger = await self._ledgers.get_by_engagement(engagement_id)
        state = WorkflowState(ledger.workflow_state) if ledger else WorkflowState.OFFERED
        return EscrowSnapshot(
            engagement=engagement,
            ledger=ledger,
            workflow_state=state,
            allowed_events={
                role.value: allowed_events_for(role, state.value) for role in ParticipantRole
            },
        )

    # ------------------------------------------------------------------
    # Deposit
    # ------------------------------------------------------------------

    async def record_deposit(
        self,
        engagement_id: str,
        caller_id: str,
        tx_hash: str,
        from_address: str,
        amount_usd: Decimal,
        amount_crypto: Decimal,
        customer_wallet: str | None = None,
        talent_wallet: str | None = None,
        identifiers: dict[str, str | None] | None = None,
    ) -> EscrowLedger:
        """Client funds the escrow; the ledger and its identifiers are created."""
        engagement = await self._get_engagement_or_raise(engagement_id)

        async def operation() -> EscrowLedger:
            if self._role_or_raise(engagement, caller_id) is not ParticipantRole.CLIENT:
                raise NotAuthorizedError("Only the client can record the deposit")
            ledger = await self._ledgers.get_by_engagement(engagement_id)
            if ledger is not None and ledger.deposit is not None:
                raise AlreadyDepositedError(engagement_id)
            current = ledger.workflow_state if ledger else WorkflowState.OFFERED.value
            new_state = authorize_transition(ParticipantRole.CLIENT, current, "record_deposit")

            usd = require_positive(quantize_usd(amount_usd), "amount_usd")
            crypto = require_positive(quantize_crypto(amount_crypto), "amount_crypto")
            if usd < self._settings.min_deposit_usd:
                raise InvalidAmountError(
                    f"amount_usd must be at least {self._settings.min_deposit_usd}"
                )
            payer = self._wallet_or_raise(from_address, "client", caller_id)
            await self._ensure_unused(tx_hash)

            if ledger is None:
                ledger = self._ledgers.add(
                    EscrowLedger(
                        engagement_id=engagement.engagement_id,
                        client_id=engagement.client_id,
                        talent_id=engagement.talent_id,
                        linked_work_id=engagement.linked_work_id,
                        linked_work_kind=engagement.linked_work_kind.value,
                        workflow_state=WorkflowState.OFFERED.value,
                        entries=[],
                    )
                )

            now = self._clock.now()
            ledger.identifiers = self._initial_identifiers(engagement, identifiers)
            ledger.append_entry(
                LedgerEntry(
                    kind=LedgerEntryKind.DEPOSIT.value,
                    tx_hash=tx_hash,
                    amount_usd=usd,
                    amount_crypto=crypto,
                    from_address=payer,
                    to_address=normalize_address(talent_wallet),
                    performed_by=caller_id,
                    occurred_at=now,
                    metadata_json={"customer_wallet": normalize_address(customer_wallet) or payer},
                )
            )
            ledger.workflow_state = new_state.value
            ledger.touch(now)
            return ledger

        ledger = await self._run(engagement_id, operation)
        logger.info(
            "escrow.deposit_recorded",
            engagement_id=engagement_id,
            tx_hash=tx_hash,
            amount_usd=str(amount_usd),
        )
        await self._announce_state(ledger)
        return ledger

    # ------------------------------------------------------------------
    # Work started / completed (talent)
    # ------------------------------------------------------------------

    async def record_work_started(
        self,
        engagement_id: str,
        caller_id: str,
        tx_hash: str,
        from_address: str,
        identifiers: dict[str, str | None] | None = None,
    ) -> EscrowLedger:
        """Talent accepts the funded job; the deposit learns its payee if it had none."""
        engagement = await self._get_engagement_or_raise(engagement_id)

        async def operation() -> EscrowLedger:
            ledger = await self._load_funded_ledger(engagement, caller_id, ParticipantRole.TALENT)
            new_state = authorize_transition(
                ParticipantRole.TALENT, ledger.workflow_state, "start_work"
            )
            talent_address = self._wallet_or_raise(from_address, "talent", caller_id)
            await self._ensure_unused(tx_hash)
            self._reconcile_identifiers(ledger, identifiers)

            now = self._clock.now()
            ledger.append_entry(
                LedgerEntry(
                    kind=LedgerEntryKind.WORK_STARTED.value,
                    tx_hash=tx_hash,
                    from_address=talent_address,
                    performed_by=caller_id,
                    occurred_at=now,
                )
            )
            deposit = ledger.deposit
            if deposit.to_address is None:
                deposit.to_address = talent_address
            ledger.workflow_state = new_state.value
            ledger.touch(now)
            return ledger

        ledger = await self._run(engagement_id, operation)
        logger.info("escrow.work_started", engagement_id=engagement_id, tx_hash=tx_hash)
        await self._announce_state(ledger)
        return ledger

    async def record_completion(
        self,
        engagement_id: str,
        caller_id: str,
        tx_hash: str,
        from_address: str,
        identifiers: dict[str, str | None] | None = None,
    ) -> EscrowLedger:
        engagement = await self._get_engagement_or_raise(engagement_id)

        async def operation() -> EscrowLedger:
            ledger = await self._load_funded_ledger(engagement, caller_id, ParticipantRole.TALENT)
            new_state = authorize_transition(
                ParticipantRole.TALENT, ledger.workflow_state, "complete_work"
            )
            talent_address = self._wallet_or_raise(from_address, "talent", caller_id)
            await self._ensure_unused(tx_hash)
            self._reconcile_identifiers(ledger, identifiers)

            now = self._clock.now()
            ledger.append_entry(
                LedgerEntry(
                    kind=LedgerEntryKind.COMPLETION.value,
                    tx_hash=tx_hash,
                    from_address=talent_address,
                    performed_by=caller_id,
                    occurred_at=now,
                )
            )
            ledger.workflow_state = new_state.value
            ledger.touch(now)
            return ledger

        ledger = await self._run(engagement_id, operation)
        logger.info("escrow.completion_recorded", engagement_id=engagement_id, tx_hash=tx_hash)
        await self._announce_state(ledger)
        return ledger

    # ------------------------------------------------------------------
    # Partial disbursement (client, while in progress)
    # ------------------------------------------------------------------

    async def record_disbursement(
        self,
        engagement_id: str,
        caller_id: str,
        tx_hash: str,
        from_address: str,
        amount_usd: Decimal,
        amount_crypto: Decimal | None = None,
        to_address: str | None = None,
    ) -> EscrowLedger:
        """Client releases part of the escrow before completion.

        The workflow state does not change.
        """
        engagement = await self._get_engagement_or_raise(engagement_id)

        async def operation() -> EscrowLedger:
            ledger = await self._load_funded_ledger(engagement, caller_id, ParticipantRole.CLIENT)
            authorize_transition(ParticipantRole.CLIENT, ledger.workflow_state, "release_funds")
            if ledger.work_started is None:
                raise InvalidStateError(
                    "Work must be started before funds can be released",
                    current_state=ledger.workflow_state,
                    attempted="release_funds",
                )

            deposit = ledger.deposit
            self._check_same_wallet(deposit.from_address, from_address)

            usd = require_positive(quantize_usd(amount_usd), "amount_usd")
            already = ledger.total_disbursed_usd
            if already + usd > deposit.amount_usd:
                raise InvalidAmountError(
                    f"Disbursement of {usd} exceeds the remaining escrow "
                    f"({deposit.amount_usd - already})"
                )
            if amount_crypto is not None:
                crypto = require_positive(quantize_crypto(amount_crypto), "amount_crypto")
            else:
                crypto = proportional_crypto(usd, deposit.amount_usd, deposit.amount_crypto)

            payee = first_address(
                to_address,
                deposit.to_address,
                ledger.work_started.from_address,
                await self._collab.wallets.get_wallet_address(engagement.talent_id),
            )
            if payee is None:
                raise WalletUnresolvedError("talent", engagement.talent_id)
            await self._ensure_unused(tx_hash)

            now = self._clock.now()
            ledger.append_entry(
                LedgerEntry(
                    kind=LedgerEntryKind.DISBURSEMENT.value,
                    tx_hash=tx_hash,
                    amount_usd=usd,
                    amount_crypto=crypto,
                    from_address=deposit.from_address,
                    to_address=payee,
                    performed_by=caller_id,
                    occurred_at=now,
                )
            )
            ledger.touch(now)
            return ledger

        ledger = await self._run(engagement_id, operation)
        logger.info(
            "escrow.disbursement_recorded",
            engagement_id=engagement_id,
            tx_hash=tx_hash,
            amount_usd=str(amount_usd),
            remaining_usd=str(ledger.remaining_usd),
        )
        return ledger

    # ------------------------------------------------------------------
    # Confirmation (client, terminal)
    # ------------------------------------------------------------------

    async def record_confirmation(
        self,
        engagement_id: str,
        caller_id: str,
        tx_hash: str,
        from_address: str,
        amount_usd: Decimal | None = None,
        amount_crypto: Decimal | None = None,
        talent_wallet: str | None = None,
        identifiers: dict[str, str | None] | None = None,
    ) -> EscrowLedger:
        """Client accepts the delivery and the remaining escrow is released.

        Replaying the confirmation with the same transaction hash is a no-op
        success, so a chain watcher delivering out of order is harmless.
        """
        engagement = await self._get_engagement_or_raise(engagement_id)
        replayed = False

        async def operation() -> EscrowLedger:
            nonlocal replayed
            ledger = await self._load_funded_ledger(engagement, caller_id, ParticipantRole.CLIENT)
            if ledger.completion is None:
                raise CompletionMissingError(engagement_id)

            existing = ledger.confirmation
            if existing is not None:
                if existing.tx_hash == tx_hash:
                    replayed = True
                    return ledger
                raise AlreadyConfirmedError(engagement_id, existing.tx_hash)

            new_state = authorize_transition(
                ParticipantRole.CLIENT, ledger.workflow_state, "confirm_delivery"
            )
            deposit = ledger.deposit
            payer = self._check_same_wallet(deposit.from_address, from_address)
            self._reconcile_identifiers(ledger, identifiers)

            remaining = ledger.remaining_usd
            if amount_usd is not None:
                usd = require_positive(quantize_usd(amount_usd), "amount_usd")
                if usd > remaining:
                    raise InvalidAmountError(
                        f"Confirmation amount {usd} exceeds the remaining escrow ({remaining})"
                    )
            else:
                usd = remaining
            if amount_crypto is not None:
                crypto = require_positive(quantize_crypto(amount_crypto), "amount_crypto")
            else:
                crypto = proportional_crypto(usd, deposit.amount_usd, deposit.amount_crypto)

            payee = first_address(
                talent_wallet,
                deposit.to_address,
                ledger.completion.from_address,
                await self._collab.wallets.get_wallet_address(engagement.talent_id),
            )
            if payee is None:
                logger.warning(
                    "escrow.talent_wallet_unresolved",
                    engagement_id=engagement_id,
                    talent_id=engagement.talent_id,
                )
            elif deposit.to_address is None:
                deposit.to_address = payee
            await self._ensure_unused(tx_hash)

            now = self._clock.now()
            ledger.append_entry(
                LedgerEntry(
                    kind=LedgerEntryKind.CONFIRMATION.value,
                    tx_hash=tx_hash,
                    amount_usd=usd,
                    amount_crypto=crypto,
                    from_address=payer,
                    to_address=payee,
                    performed_by=caller_id,
                    occurred_at=now,
                )
            )
            ledger.workflow_state = new_state.value
            ledger.touch(now)
            return ledger

        ledger = await self._run(engagement_id, operation)
        if replayed:
            logger.info(
                "escrow.confirmation_replayed", engagement_id=engagement_id, tx_hash=tx_hash
            )
            return ledger

        logger.info("escrow.confirmed", engagement_id=engagement_id, tx_hash=tx_hash)
        await self._announce_state(ledger)
        await self._best_effort("work_completed", self._collab.notifier.work_completed(engagement))
        reward = self._settings.completion_activity_reward
        for user_id in (engagement.client_id, engagement.talent_id):
            await self._best_effort(
                "completion_bonus",
                self._collab.notifier.activity_reward(user_id, reward, "engagement_completed"),
            )
        return ledger

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        engagement_id: str,
        operation: Callable[[], Awaitable[EscrowLedger]],
    ) -> EscrowLedger:
        return await run_unit_of_work(
            self._session,
            operation,
            entity="EscrowLedger",
            entity_id=engagement_id,
            max_attempts=self._settings.max_conflict_retries,
        )

    async def _get_engagement_or_raise(self, engagement_id: str) -> Engagement:
        engagement = await self._collab.engagements.get_engagement(engagement_id)
        if engagement is None:
            raise EngagementNotFoundError(engagement_id)
        return engagement

    @staticmethod
    def _role_or_raise(engagement: Engagement, caller_id: str) -> ParticipantRole:
        role = engagement.role_of(caller_id)
        if role is None:
            raise NotAuthorizedError(
                f"User {caller_id} is not a party to engagement {engagement.engagement_id}"
            )
        return role

    async def _load_funded_ledger(
        self,
        engagement: Engagement,
        caller_id: str,
        required_role: ParticipantRole,
    ) -> EscrowLedger:
        """Role check first, then the deposit must exist."""
        role = self._role_or_raise(engagement, caller_id)
        if role is not required_role:
            raise NotAuthorizedError(f"Only the {required_role} can perform this action")
        ledger = await self._ledgers.get_by_engagement(engagement.engagement_id)
        if ledger is None or ledger.deposit is None:
            raise DepositMissingError(engagement.engagement_id)
        return ledger

    async def _ensure_unused(self, tx_hash: str) -> None:
        if await self._ledgers.tx_hash_exists(tx_hash):
            raise DuplicateTransactionError(tx_hash)

    @staticmethod
    def _wallet_or_raise(address: str | None, party: str, user_id: str) -> str:
        normalized = normalize_address(address)
        if normalized is None:
            raise WalletUnresolvedError(party, user_id)
        return normalized

    @staticmethod
    def _check_same_wallet(expected: str, actual: str | None) -> str:
        normalized = normalize_address(actual)
        if normalized != normalize_address(expected):
            raise WalletMismatchError(expected, normalized or "")
        return normalized

    @staticmethod
    def _initial_identifiers(
        engagement: Engagement,
        supplied: dict[str, str | None] | None,
    ) -> dict[str, str]:
        defaults = {
            "external_job_id": engagement.linked_work_id or engagement.engagement_id,
            "external_client_id": engagement.client_id,
            "external_talent_id": engagement.talent_id,
            "external_engagement_id": engagement.engagement_id,
        }
        for key, value in (supplied or {}).items():
            if key in defaults and value:
                defaults[key] = value
        return defaults

    @staticmethod
    def _reconcile_identifiers(
        ledger: EscrowLedger,
        requested: dict[str, str | None] | None,
    ) -> dict[str, str]:
        """Stored identifiers always win; a mismatching request is only logged."""
        stored = dict(ledger.identifiers or {})
        for key in IDENTIFIER_KEYS:
            value = (requested or {}).get(key)
            if value and stored.get(key) and value != stored[key]:
                logger.warning(
                    "escrow.identifier_mismatch",
                    engagement_id=ledger.engagement_id,
                    identifier=key,
                    stored=stored[key],
                    requested=value,
                )
        return stored

    async def _announce_state(self, ledger: EscrowLedger) -> None:
        await self._best_effort(
            "state_changed",
            self._collab.notifier.state_changed(
                ledger.engagement_id, WorkflowState(ledger.workflow_state)
            ),
        )

    @staticmethod
    async def _best_effort(effect: str, awaitable: Awaitable[None]) -> None:
        """Await a side effect; failures are logged and never undo the committed state."""
        try:
            await awaitable
        except Exception:
            logger.exception("escrow.side_effect_failed", effect=effect)
