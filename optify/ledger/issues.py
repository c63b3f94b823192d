"""
Consistency checks and repairs for stored daily summaries.

Older daily-closure code booked Surebet movements as plain deposits, which
made closed days show a loss. These helpers detect that and rebuild a
summary's totals with Surebet counted as profit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from optify.common.logging import log_event
from optify.persistence.firestore_retry import with_firestore_retry

from .classify import is_surebet
from .firestore import daily_summaries_collection, recalculate_global_financial_state
from .models import TransactionLike, as_transaction
from .money import from_cents, to_cents


logger = logging.getLogger(__name__)

# Cents; a summary whose profit is further than this from withdraws - deposits is flagged.
SUMMARY_TOLERANCE_CENTS = 1000


def detect_financial_issues(
    transactions: Iterable[TransactionLike],
    daily_summaries: Iterable[Mapping[str, Any]],
) -> list[str]:
    issues: list[str] = []

    surebet_as_deposit = sum(1 for t in map(as_transaction, transactions) if is_surebet(t) and t.type == "deposit")
    if surebet_as_deposit:
        issues.append(f"{surebet_as_deposit} transações Surebet marcadas como depósito (deveriam ser positivas)")

    inconsistent = 0
    for summary in daily_summaries:
        profit = to_cents(summary.get("profit")) or to_cents(summary.get("margin"))
        naive = to_cents(summary.get("totalWithdraws")) - to_cents(summary.get("totalDeposits"))
        if abs(profit - naive) > SUMMARY_TOLERANCE_CENTS:
            inconsistent += 1
    if inconsistent:
        issues.append(f"{inconsistent} resumos diários com valores inconsistentes")

    return issues


def corrected_daily_summary(transactions: Iterable[TransactionLike]) -> dict[str, Any]:
    """
    Summary fields recomputed with Surebet as profit:
      totalDeposits = deposits that are not Surebet
      profit = margin = withdraws - totalDeposits + surebet
    """
    txs = [as_transaction(t) for t in transactions]
    surebet = sum(t.amount_cents for t in txs if is_surebet(t))
    deposits = sum(t.amount_cents for t in txs if t.type == "deposit" and not is_surebet(t))
    withdraws = sum(t.amount_cents for t in txs if t.type == "withdraw")
    profit = withdraws - deposits + surebet

    return {
        "totalDeposits": from_cents(deposits),
        "totalWithdraws": from_cents(withdraws),
        "profit": from_cents(profit),
        "margin": from_cents(profit),
        "transactionCount": len(txs),
        "transactionsSnapshot": [t.to_firestore_doc() for t in txs],
    }


def fix_daily_summary(
    *,
    uid: str,
    summary_id: str,
    transactions: Iterable[TransactionLike],
    db: Any = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Rewrite users/{uid}/dailySummaries/{summary_id} totals (merge) and return the update."""
    if not summary_id:
        raise ValueError("summary_id is required")

    update = corrected_daily_summary(transactions)
    update["updatedAt"] = now or datetime.now(timezone.utc)

    ref = daily_summaries_collection(uid=uid, db=db).document(summary_id)
    with_firestore_retry(lambda: ref.set(update, merge=True))

    log_event(
        logger,
        "daily_summary.fixed",
        uid=uid,
        summary_id=summary_id,
        total_deposits=update["totalDeposits"],
        total_withdraws=update["totalWithdraws"],
        profit=update["profit"],
    )
    return update


def fix_all_financial_issues(*, uid: str, db: Any = None, now: Optional[datetime] = None) -> dict[str, Any]:
    """
    Force a full rebuild of users/{uid}/globalFinancialState/main.

    Returns {"success", "message", "issuesFixed"}; failures are reported in the
    result (and logged) instead of raised, so a maintenance screen can show them.
    """
    try:
        recalculate_global_financial_state(uid=uid, db=db, now=now)
    except Exception as e:
        logger.exception("financial_issues.fix_all_failed uid=%s", uid)
        return {"success": False, "message": f"Erro ao corrigir problemas: {e}", "issuesFixed": []}

    log_event(logger, "financial_issues.fixed_all", uid=uid)
    return {
        "success": True,
        "message": "Problemas financeiros corrigidos com sucesso!",
        "issuesFixed": ["Estado financeiro global recalculado"],
    }
