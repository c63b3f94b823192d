"""
Profit/deposit/withdraw totals over a list of transactions.

Rule:
  profit = withdraws - deposits + surebet + freebet

where `deposits` excludes FreeBet/Surebet movements. The four partitions are
built independently, exactly as the dashboard always has:
- freebet / surebet: by description prefix, regardless of `type`
- deposits: type == "deposit" and not FreeBet/Surebet
- withdraws: type == "withdraw", regardless of description

So a withdraw whose description starts with "FreeBet"/"Surebet" counts in
both the withdraw sum and its category sum.

All sums run on integer centavos; results are returned as floats.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .classify import is_free_bet, is_normal_deposit, is_surebet
from .models import Transaction, TransactionLike, as_transaction
from .money import from_cents


@dataclass(frozen=True, slots=True)
class ProfitBreakdown:
    deposits: float
    withdraws: float
    surebet: float
    freebet: float
    profit: float


def _normalize(transactions: Optional[Iterable[TransactionLike]]) -> list[Transaction]:
    if not transactions:
        return []
    return [as_transaction(t) for t in transactions]


def _deposit_cents(txs: list[Transaction]) -> int:
    return sum(t.amount_cents for t in txs if is_normal_deposit(t))


def _withdraw_cents(txs: list[Transaction]) -> int:
    return sum(t.amount_cents for t in txs if t.type == "withdraw")


def profit_breakdown(transactions: Optional[Iterable[TransactionLike]]) -> ProfitBreakdown:
    txs = _normalize(transactions)

    freebet = sum(t.amount_cents for t in txs if is_free_bet(t))
    surebet = sum(t.amount_cents for t in txs if is_surebet(t))
    deposits = _deposit_cents(txs)
    withdraws = _withdraw_cents(txs)
    profit = withdraws - deposits + surebet + freebet

    return ProfitBreakdown(
        deposits=from_cents(deposits),
        withdraws=from_cents(withdraws),
        surebet=from_cents(surebet),
        freebet=from_cents(freebet),
        profit=from_cents(profit),
    )


def calculate_profit(transactions: Optional[Iterable[TransactionLike]]) -> float:
    """Total profit; 0 for an empty or missing list."""
    return profit_breakdown(transactions).profit


def calculate_total_deposits(transactions: Optional[Iterable[TransactionLike]]) -> float:
    """Sum of normal deposits only (FreeBet/Surebet excluded)."""
    return from_cents(_deposit_cents(_normalize(transactions)))


def calculate_total_withdraws(transactions: Optional[Iterable[TransactionLike]]) -> float:
    """Sum of every withdraw, whatever its description."""
    return from_cents(_withdraw_cents(_normalize(transactions)))


def is_same_date(date1: Optional[str], date2: Optional[str]) -> bool:
    """
    Strict `YYYY-MM-DD` string comparison after trimming.

    No date parsing: "2024-01-05" and "2024-1-5" are different dates.
    """
    if not date1 or not date2:
        return False
    return date1.strip() == date2.strip()
