"""Domain exceptions for the escrow & governance engine.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""


class EscrowGovernanceError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_GOVERNANCE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Lookup Errors ---


class NotFoundError(EscrowGovernanceError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOT_FOUND")


class EngagementNotFoundError(NotFoundError):
    """Raised when the engagement directory has no such engagement."""

    def __init__(self, engagement_id: str) -> None:
        super().__init__(f"Engagement not found: {engagement_id}")
        self.engagement_id = engagement_id


class ProposalNotFoundError(NotFoundError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(f"Proposal not found: {proposal_id}")
        self.proposal_id = proposal_id


# --- State Errors ---


class InvalidStateError(EscrowGovernanceError):
    """Raised when an operation is attempted in the wrong workflow or proposal state.

    Example: recording a completion while the escrow is still in ``deposit``.
    """

    def __init__(
        self,
        message: str,
        current_state: str | None = None,
        attempted: str | None = None,
    ) -> None:
        super().__init__(message=message, code="INVALID_STATE")
        self.current_state = current_state
        self.attempted = attempted


class DepositMissingError(InvalidStateError):
    def __init__(self, engagement_id: str) -> None:
        super().__init__(f"Deposit must be recorded first for engagement {engagement_id}")
        self.code = "DEPOSIT_MISSING"


class CompletionMissingError(InvalidStateError):
    def __init__(self, engagement_id: str) -> None:
        super().__init__(
            f"Completion must be recorded before confirmation for engagement {engagement_id}"
        )
        self.code = "COMPLETION_MISSING"


class NotADisputeError(InvalidStateError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(f"Proposal {proposal_id} is not a dispute")
        self.code = "NOT_A_DISPUTE"


class VotingClosedError(EscrowGovernanceError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(
            message=f"Voting period has ended for proposal {proposal_id}",
            code="VOTING_CLOSED",
        )


class ConcurrentModificationError(EscrowGovernanceError):
    """Raised when optimistic-lock retries are exhausted on one aggregate."""

    def __init__(self, entity: str, entity_id: str, attempts: int) -> None:
        super().__init__(
            message=f"{entity} {entity_id} was modified concurrently ({attempts} attempts)",
            code="CONCURRENT_MODIFICATION",
        )


# --- Authorization Errors ---


class NotAuthorizedError(EscrowGovernanceError):
    """Raised when the caller's role does not permit the operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOT_AUTHORIZED")


class NotEligibleError(NotAuthorizedError):
    """Raised when a member lacks the standing to propose, vote or resolve."""

    def __init__(self, user_id: str, action: str) -> None:
        super().__init__(f"User {user_id} is not eligible to {action}")
        self.code = "NOT_ELIGIBLE"


class ConflictOfInterestError(NotAuthorizedError):
    def __init__(self, user_id: str) -> None:
        super().__init__(
            f"User {user_id} is a party to this dispute and cannot set settlement amounts"
        )
        self.code = "CONFLICT_OF_INTEREST"


# --- Duplicate-Action Guards ---


class AlreadyExistsError(EscrowGovernanceError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="ALREADY_EXISTS")


class AlreadyDepositedError(AlreadyExistsError):
    def __init__(self, engagement_id: str) -> None:
        super().__init__(f"Deposit already recorded for engagement {engagement_id}")
        self.code = "ALREADY_DEPOSITED"


class AlreadyConfirmedError(AlreadyExistsError):
    def __init__(self, engagement_id: str, existing_tx_hash: str) -> None:
        super().__init__(
            f"A different confirmation ({existing_tx_hash}) already exists "
            f"for engagement {engagement_id}"
        )
        self.code = "ALREADY_CONFIRMED"


class AlreadyVotedError(AlreadyExistsError):
    def __init__(self, proposal_id: str, voter_id: str) -> None:
        super().__init__(f"User {voter_id} has already voted on proposal {proposal_id}")
        self.code = "ALREADY_VOTED"


class AlreadyResolvedError(AlreadyExistsError):
    def __init__(self, proposal_id: str) -> None:
        super().__init__(f"Proposal {proposal_id} is already resolved")
        self.code = "ALREADY_RESOLVED"


class DuplicateTransactionError(AlreadyExistsError):
    """Raised when a transaction hash is replayed anywhere in the ledger."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"Transaction already recorded: {tx_hash}")
        self.code = "DUPLICATE_TRANSACTION"
        self.tx_hash = tx_hash


# --- Input Validation ---


class InvalidAmountError(EscrowGovernanceError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_AMOUNT")


class InvalidChoiceError(EscrowGovernanceError):
    def __init__(self, choice: str, allowed: list[str]) -> None:
        super().__init__(
            message=f"Invalid vote option '{choice}'. Allowed: {', '.join(allowed)}",
            code="INVALID_CHOICE",
        )


# --- Wallet Errors ---


class WalletMismatchError(EscrowGovernanceError):
    """Raised when a release is signed from a different wallet than the deposit."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            message=f"Wallet mismatch: expected the deposit wallet {expected}, got {actual}",
            code="WALLET_MISMATCH",
        )
        self.expected = expected
        self.actual = actual


class WalletUnresolvedError(EscrowGovernanceError):
    def __init__(self, party: str, user_id: str) -> None:
        super().__init__(
            message=f"Cannot determine a payout wallet for the {party} ({user_id})",
            code="WALLET_UNRESOLVED",
        )
