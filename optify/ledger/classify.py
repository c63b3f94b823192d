"""
Transaction classification.

The category of a transaction is derived solely from its description prefix
(case-sensitive): "FreeBet..." and "Surebet..." are bonus/arbitrage movements
that always count as profit, whatever their stored `type`.

`classify()` resolves the category once so downstream code can branch on a
`TransactionCategory` instead of re-matching strings.
"""

from __future__ import annotations

from .money import from_cents
from .models import (
    FREEBET_PREFIX,
    SUREBET_PREFIX,
    TransactionCategory,
    TransactionLike,
    as_transaction,
)


def _description_starts_with(t: TransactionLike, prefix: str) -> bool:
    desc = as_transaction(t).description
    return bool(desc) and desc.startswith(prefix)


def is_free_bet(t: TransactionLike) -> bool:
    return _description_starts_with(t, FREEBET_PREFIX)


def is_surebet(t: TransactionLike) -> bool:
    return _description_starts_with(t, SUREBET_PREFIX)


def is_normal_deposit(t: TransactionLike) -> bool:
    """A deposit that is neither FreeBet nor Surebet."""
    return as_transaction(t).type == "deposit" and not is_free_bet(t) and not is_surebet(t)


def should_display_as_positive(t: TransactionLike) -> bool:
    """
    Display sign, independent of the amount:
    FreeBet, Surebet and withdraws show positive; a normal deposit shows negative.
    """
    if is_free_bet(t) or is_surebet(t):
        return True
    return as_transaction(t).type == "withdraw"


def classify(t: TransactionLike) -> TransactionCategory:
    """FreeBet wins over Surebet, and both win over the stored type."""
    tx = as_transaction(t)
    if is_free_bet(tx):
        return TransactionCategory.FREEBET
    if is_surebet(tx):
        return TransactionCategory.SUREBET
    if tx.type == "deposit":
        return TransactionCategory.DEPOSIT
    if tx.type == "withdraw":
        return TransactionCategory.WITHDRAW
    return TransactionCategory.UNKNOWN


def transaction_profit_cents(t: TransactionLike) -> int:
    """
    Signed profit contribution of a single transaction, in centavos.

    FreeBet / Surebet / withdraw add the amount, a normal deposit subtracts it,
    and an untyped transaction contributes nothing.
    """
    tx = as_transaction(t)
    category = classify(tx)
    if category is TransactionCategory.UNKNOWN:
        return 0
    if category is TransactionCategory.DEPOSIT:
        return -tx.amount_cents
    return tx.amount_cents


def transaction_profit(t: TransactionLike) -> float:
    return from_cents(transaction_profit_cents(t))
