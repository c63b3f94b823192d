"""
Global financial state: the per-user precomputed rollup of profit, deposits and
withdraws by day, month, employee and platform.

Firestore path:
  users/{uid}/globalFinancialState/main

Closed days:
- A daily summary "closes" its date. Its stored totals are authoritative for
  that day, and transactions dated on a closed day are not re-added.
- Employee totals add every summary's `byEmployee` entry to the employee's
  open-day transactions. Platform totals only see open-day transactions
  (summaries carry no platform breakdown).

This module is pure (no Firestore dependency) so it can be tested
deterministically; see `optify.ledger.firestore` for load/store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

from optify.time.business_time import (
    UTC,
    business_today,
    format_date,
    format_month,
    parse_datetime,
    period_starts,
    timestamp_millis,
    to_utc,
)

from .classify import classify, is_surebet
from .models import MANUAL_BALANCE_MARKER, Transaction, TransactionCategory, TransactionLike, as_transaction
from .money import from_cents, to_cents


logger = logging.getLogger(__name__)

DEFAULT_EMPLOYEE_NAME = "Funcionário sem nome"
DEFAULT_PLATFORM_NAME = "Plataforma sem nome"


@dataclass(slots=True)
class _Bucket:
    profit: int = 0
    deposits: int = 0
    withdraws: int = 0

    def add_transaction(self, tx: Transaction) -> None:
        category = classify(tx)
        amount = tx.amount_cents
        if category in (TransactionCategory.FREEBET, TransactionCategory.SUREBET):
            self.profit += amount
        elif category is TransactionCategory.DEPOSIT:
            self.deposits += amount
            self.profit -= amount
        elif category is TransactionCategory.WITHDRAW:
            self.withdraws += amount
            self.profit += amount

    def add(self, *, profit: int, deposits: int, withdraws: int) -> None:
        self.profit += profit
        self.deposits += deposits
        self.withdraws += withdraws

    def freeze(self) -> "FinancialBucket":
        return FinancialBucket(
            profit=from_cents(self.profit),
            deposits=from_cents(self.deposits),
            withdraws=from_cents(self.withdraws),
        )


@dataclass(frozen=True, slots=True)
class FinancialBucket:
    profit: float = 0.0
    deposits: float = 0.0
    withdraws: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"profit": self.profit, "deposits": self.deposits, "withdraws": self.withdraws}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "FinancialBucket":
        return cls(
            profit=from_cents(to_cents(d.get("profit"))),
            deposits=from_cents(to_cents(d.get("deposits"))),
            withdraws=from_cents(to_cents(d.get("withdraws"))),
        )


@dataclass(frozen=True, slots=True)
class EmployeeFinancialState:
    name: str
    profit: float
    deposits: float
    withdraws: float
    platforms: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "profit": self.profit,
            "deposits": self.deposits,
            "withdraws": self.withdraws,
            "platforms": dict(self.platforms),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "EmployeeFinancialState":
        b = FinancialBucket.from_dict(d)
        platforms = d.get("platforms") or {}
        return cls(
            name=str(d.get("name") or DEFAULT_EMPLOYEE_NAME),
            profit=b.profit,
            deposits=b.deposits,
            withdraws=b.withdraws,
            platforms={str(k): from_cents(to_cents(v)) for k, v in platforms.items()},
        )


@dataclass(frozen=True, slots=True)
class PlatformFinancialState:
    name: str
    profit: float
    deposits: float
    withdraws: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "profit": self.profit, "deposits": self.deposits, "withdraws": self.withdraws}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "PlatformFinancialState":
        b = FinancialBucket.from_dict(d)
        return cls(
            name=str(d.get("name") or DEFAULT_PLATFORM_NAME),
            profit=b.profit,
            deposits=b.deposits,
            withdraws=b.withdraws,
        )


@dataclass(frozen=True, slots=True)
class FinancialTotals:
    deposits: float = 0.0
    withdraws: float = 0.0
    profit: float = 0.0
    profit_today: float = 0.0
    profit_this_week: float = 0.0
    profit_this_month: float = 0.0
    profit_this_year: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "deposits": self.deposits,
            "withdraws": self.withdraws,
            "profit": self.profit,
            "profitToday": self.profit_today,
            "profitThisWeek": self.profit_this_week,
            "profitThisMonth": self.profit_this_month,
            "profitThisYear": self.profit_this_year,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "FinancialTotals":
        def _f(k: str) -> float:
            return from_cents(to_cents(d.get(k)))

        return cls(
            deposits=_f("deposits"),
            withdraws=_f("withdraws"),
            profit=_f("profit"),
            profit_today=_f("profitToday"),
            profit_this_week=_f("profitThisWeek"),
            profit_this_month=_f("profitThisMonth"),
            profit_this_year=_f("profitThisYear"),
        )


@dataclass(frozen=True, slots=True)
class GlobalFinancialState:
    """
    Precomputed snapshot for one user.

    `version` is monotonic per recomputation (epoch milliseconds of the build),
    so readers can discard a snapshot older than the one they already hold.
    """

    totals: FinancialTotals
    daily: dict[str, FinancialBucket]
    monthly: dict[str, FinancialBucket]
    employees: dict[str, EmployeeFinancialState]
    platforms: dict[str, PlatformFinancialState]
    updated_at: Optional[datetime] = None
    version: int = 0

    def to_firestore_doc(self) -> dict[str, Any]:
        return {
            "updatedAt": self.updated_at,
            "version": self.version,
            "totals": self.totals.to_dict(),
            "daily": {k: v.to_dict() for k, v in self.daily.items()},
            "monthly": {k: v.to_dict() for k, v in self.monthly.items()},
            "employees": {k: v.to_dict() for k, v in self.employees.items()},
            "platforms": {k: v.to_dict() for k, v in self.platforms.items()},
        }

    def to_json_dict(self) -> dict[str, Any]:
        """Same shape as the stored document, with `updatedAt` as an ISO-8601 string."""
        doc = self.to_firestore_doc()
        doc["updatedAt"] = self.updated_at.isoformat() if self.updated_at is not None else None
        return doc

    @classmethod
    def from_firestore_doc(cls, d: Mapping[str, Any]) -> "GlobalFinancialState":
        updated_at = parse_datetime(d.get("updatedAt"))
        version = d.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            # Documents written before versioning: fall back to the write time.
            version = timestamp_millis(updated_at) or 0
        return cls(
            totals=FinancialTotals.from_dict(d.get("totals") or {}),
            daily={str(k): FinancialBucket.from_dict(v or {}) for k, v in (d.get("daily") or {}).items()},
            monthly={str(k): FinancialBucket.from_dict(v or {}) for k, v in (d.get("monthly") or {}).items()},
            employees={
                str(k): EmployeeFinancialState.from_dict(v or {}) for k, v in (d.get("employees") or {}).items()
            },
            platforms={
                str(k): PlatformFinancialState.from_dict(v or {}) for k, v in (d.get("platforms") or {}).items()
            },
            updated_at=updated_at,
            version=int(version),
        )


def _summary_profit_cents(summary: Mapping[str, Any]) -> int:
    # `profit || margin || 0`: a zero profit falls through to margin.
    profit = to_cents(summary.get("profit"))
    if profit:
        return profit
    return to_cents(summary.get("margin"))


def _index_summaries(daily_summaries: Iterable[Mapping[str, Any]]) -> dict[str, Mapping[str, Any]]:
    """Date key -> summary. Later summaries for the same date replace earlier ones."""
    out: dict[str, Mapping[str, Any]] = {}
    for s in daily_summaries:
        key = format_date(s.get("date"))
        if not key:
            logger.warning("daily_summary_without_date id=%s", s.get("id"))
            continue
        out[key] = s
    return out


def _event_sort_millis(tx: Transaction) -> int:
    for v in (tx.created_at, tx.updated_at, tx.date):
        ms = timestamp_millis(v)
        if ms is not None:
            return ms
    return 0


def manual_balance_cents(transactions: Iterable[Transaction], employee_id: str, platform_id: str) -> Optional[int]:
    """Amount of the latest manual balance adjustment for employee+platform, if any."""
    adjustments = [
        t
        for t in transactions
        if t.employee_id == employee_id
        and t.platform_id == platform_id
        and t.description
        and MANUAL_BALANCE_MARKER in t.description
    ]
    if not adjustments:
        return None
    latest = max(adjustments, key=_event_sort_millis)
    return latest.amount_cents


def employee_platform_balance_cents(transactions: list[Transaction], employee_id: str, platform_id: str) -> int:
    """
    Balance an employee holds on a platform.

    A manual adjustment overrides everything. Otherwise Surebet and withdraws
    add, deposits (FreeBet deposits included) subtract, untyped rows are ignored.
    """
    manual = manual_balance_cents(transactions, employee_id, platform_id)
    if manual is not None:
        return manual

    balance = 0
    for t in transactions:
        if t.employee_id != employee_id or t.platform_id != platform_id:
            continue
        if is_surebet(t) or t.type == "withdraw":
            balance += t.amount_cents
        elif t.type == "deposit":
            balance -= t.amount_cents
    return balance


def _entity_id(e: Mapping[str, Any]) -> Optional[str]:
    v = e.get("id")
    return str(v) if v else None


def build_global_financial_state(
    *,
    employees: Iterable[Mapping[str, Any]],
    platforms: Iterable[Mapping[str, Any]],
    transactions: Iterable[TransactionLike],
    daily_summaries: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
    today: Optional[date] = None,
    tz_name: Optional[str] = None,
) -> GlobalFinancialState:
    """
    Recompute the global financial state from raw documents.

    - now: build time (UTC); stamps `updated_at` and `version`. Defaults to the current time.
    - today: business-calendar date for the period totals. Defaults to `now` in the business timezone.
    """
    now_utc = to_utc(now) if now is not None else datetime.now(tz=UTC)
    today = today or business_today(now=now_utc, tz_name=tz_name)

    employee_docs = [e for e in employees if _entity_id(e)]
    platform_docs = [p for p in platforms if _entity_id(p)]
    txs = [as_transaction(t) for t in transactions]
    summaries = _index_summaries(daily_summaries)
    closed_dates = set(summaries.keys())

    daily: dict[str, _Bucket] = {}
    monthly: dict[str, _Bucket] = {}

    # 1. Closed days come from their summaries.
    for date_key, summary in summaries.items():
        profit = _summary_profit_cents(summary)
        deposits = to_cents(summary.get("totalDeposits"))
        withdraws = to_cents(summary.get("totalWithdraws"))
        daily[date_key] = _Bucket(profit=profit, deposits=deposits, withdraws=withdraws)
        monthly.setdefault(date_key[:7], _Bucket()).add(profit=profit, deposits=deposits, withdraws=withdraws)

    # 2. Open days come from their transactions.
    open_txs: list[Transaction] = []
    undated = 0
    for t in txs:
        date_key = format_date(t.date)
        if not date_key:
            undated += 1
            continue
        if date_key in closed_dates:
            continue
        open_txs.append(t)
        daily.setdefault(date_key, _Bucket()).add_transaction(t)
        monthly.setdefault(format_month(t.date), _Bucket()).add_transaction(t)
    if undated:
        logger.warning("financial_state_undated_transactions count=%d", undated)

    # 3. Totals and period profits.
    periods = period_starts(today)
    total = _Bucket()
    profit_today = profit_week = profit_month = profit_year = 0
    for date_key, bucket in daily.items():
        total.add(profit=bucket.profit, deposits=bucket.deposits, withdraws=bucket.withdraws)
        if date_key >= periods.year_start:
            profit_year += bucket.profit
        if date_key >= periods.month_start:
            profit_month += bucket.profit
        if date_key >= periods.week_start:
            profit_week += bucket.profit
        if date_key == periods.today:
            profit_today = bucket.profit

    totals = FinancialTotals(
        deposits=from_cents(total.deposits),
        withdraws=from_cents(total.withdraws),
        profit=from_cents(total.profit),
        profit_today=from_cents(profit_today),
        profit_this_week=from_cents(profit_week),
        profit_this_month=from_cents(profit_month),
        profit_this_year=from_cents(profit_year),
    )

    # 4. Employees: summary breakdowns + open-day transactions, plus platform balances.
    employees_state: dict[str, EmployeeFinancialState] = {}
    for emp in employee_docs:
        emp_id = _entity_id(emp)
        bucket = _Bucket()
        for summary in summaries.values():
            for row in summary.get("byEmployee") or []:
                if isinstance(row, Mapping) and row.get("employeeId") == emp_id:
                    bucket.add(
                        profit=to_cents(row.get("profit")),
                        deposits=to_cents(row.get("deposits")),
                        withdraws=to_cents(row.get("withdraws")),
                    )
                    break

        balances: dict[str, int] = {}
        for t in open_txs:
            if t.employee_id != emp_id:
                continue
            bucket.add_transaction(t)
            if t.platform_id:
                balances[t.platform_id] = employee_platform_balance_cents(txs, emp_id, t.platform_id)

        for platform in platform_docs:
            pid = _entity_id(platform)
            if balances.get(pid):
                continue
            balance = employee_platform_balance_cents(txs, emp_id, pid)
            if balance != 0:
                balances[pid] = balance

        frozen = bucket.freeze()
        employees_state[emp_id] = EmployeeFinancialState(
            name=str(emp.get("name") or DEFAULT_EMPLOYEE_NAME),
            profit=frozen.profit,
            deposits=frozen.deposits,
            withdraws=frozen.withdraws,
            platforms={pid: from_cents(c) for pid, c in balances.items()},
        )

    # 5. Platforms: open-day transactions only.
    platforms_state: dict[str, PlatformFinancialState] = {}
    for platform in platform_docs:
        pid = _entity_id(platform)
        bucket = _Bucket()
        for t in open_txs:
            if t.platform_id == pid:
                bucket.add_transaction(t)
        frozen = bucket.freeze()
        platforms_state[pid] = PlatformFinancialState(
            name=str(platform.get("name") or DEFAULT_PLATFORM_NAME),
            profit=frozen.profit,
            deposits=frozen.deposits,
            withdraws=frozen.withdraws,
        )

    return GlobalFinancialState(
        totals=totals,
        daily={k: v.freeze() for k, v in daily.items()},
        monthly={k: v.freeze() for k, v in monthly.items()},
        employees=employees_state,
        platforms=platforms_state,
        updated_at=now_utc,
        version=int(now_utc.timestamp() * 1000),
    )
