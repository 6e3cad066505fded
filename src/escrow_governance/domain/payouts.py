"""Payout maths and wallet resolution.

Amounts are Decimal throughout. USD is carried to 6 places and the
settlement currency to 18 places, always rounding down so a payout can
never exceed what the escrow holds.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_DOWN, Decimal

from escrow_governance.domain.enums import VoteChoice
from escrow_governance.domain.exceptions import InvalidAmountError

USD_QUANTUM = Decimal("0.000001")
CRYPTO_QUANTUM = Decimal("0.000000000000000001")
ZERO = Decimal("0")


def normalize_address(address: str | None) -> str | None:
    """Lower-case and trim a wallet address. Blank input becomes None."""
    if address is None:
        return None
    cleaned = address.strip()
    if not cleaned or cleaned.lower() == "null":
        return None
    return cleaned.lower()


def quantize_usd(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(USD_QUANTUM, rounding=ROUND_DOWN)


def quantize_crypto(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CRYPTO_QUANTUM, rounding=ROUND_DOWN)


def require_positive(amount: Decimal | None, field: str) -> Decimal:
    if amount is None or Decimal(amount) <= ZERO:
        raise InvalidAmountError(f"{field} must be greater than zero")
    return Decimal(amount)


def remaining_balance(deposit_usd: Decimal, disbursed_usd: Iterable[Decimal]) -> Decimal:
    """Deposit minus everything already released, never below zero."""
    remaining = Decimal(deposit_usd) - sum((Decimal(a) for a in disbursed_usd), ZERO)
    return quantize_usd(max(remaining, ZERO))


def settlement_cap(remaining_usd: Decimal, settlement_percentage: Decimal) -> Decimal:
    return quantize_usd(Decimal(remaining_usd) * Decimal(settlement_percentage) / Decimal(100))


def split_by_decision(cap_usd: Decimal, decision: VoteChoice | None) -> tuple[Decimal, Decimal]:
    """Return ``(client_usd, talent_usd)`` for a voting outcome.

    split_funds and "no decision" both divide the cap evenly.
    """
    if decision is VoteChoice.CLIENT_REFUND:
        return quantize_usd(cap_usd), ZERO
    if decision is VoteChoice.TALENT_REFUND:
        return ZERO, quantize_usd(cap_usd)
    half = quantize_usd(Decimal(cap_usd) / 2)
    return half, half


def usd_to_crypto(amount_usd: Decimal, price_usd: Decimal, minimum: Decimal) -> Decimal:
    """Convert USD to the settlement currency at ``price_usd`` per unit.

    A positive result below ``minimum`` is raised to ``minimum``; zero stays zero.
    """
    if Decimal(amount_usd) <= ZERO:
        return ZERO
    if Decimal(price_usd) <= ZERO:
        raise InvalidAmountError("Crypto price must be greater than zero")
    converted = quantize_crypto(Decimal(amount_usd) / Decimal(price_usd))
    return max(converted, Decimal(minimum))


def proportional_crypto(
    amount_usd: Decimal,
    deposit_usd: Decimal,
    deposit_crypto: Decimal,
) -> Decimal:
    """Crypto amount for ``amount_usd`` at the rate the deposit was made at."""
    if Decimal(deposit_usd) <= ZERO:
        return ZERO
    return quantize_crypto(Decimal(amount_usd) * Decimal(deposit_crypto) / Decimal(deposit_usd))


def first_address(*candidates: str | None) -> str | None:
    """First non-blank candidate, normalized."""
    for candidate in candidates:
        address = normalize_address(candidate)
        if address:
            return address
    return None
