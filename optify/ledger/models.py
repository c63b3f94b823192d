from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Union

from .money import from_cents, to_cents


logger = logging.getLogger(__name__)

TransactionType = Literal["deposit", "withdraw"]

FREEBET_PREFIX = "FreeBet"
SUREBET_PREFIX = "Surebet"
MANUAL_BALANCE_MARKER = "Ajuste manual de saldo"


class TransactionCategory(str, Enum):
    FREEBET = "freebet"
    SUREBET = "surebet"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A deposit/withdraw movement for an employee on a betting platform.

    Firestore path:
      users/{uid}/transactions/{id}

    Notes:
    - `amount` is non-negative; direction is derived from the category, never stored.
    - `type` is None when the stored document carries no recognizable type.
    - `date` is kept as stored (normally a `YYYY-MM-DD` string).
    """

    type: Optional[TransactionType]
    amount: float
    description: Optional[str] = None
    date: Any = None

    id: Optional[str] = None
    employee_id: Optional[str] = None
    platform_id: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None

    def __post_init__(self) -> None:
        if self.type not in ("deposit", "withdraw", None):
            raise ValueError("type must be 'deposit' or 'withdraw'")
        if not isinstance(self.amount, (int, float)) or isinstance(self.amount, bool):
            raise ValueError("amount must be a number")
        if self.amount < 0:
            raise ValueError("amount must be >= 0")
        object.__setattr__(self, "amount", float(self.amount))

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, doc_id: Optional[str] = None) -> "Transaction":
        """
        Lenient conversion from a stored document.

        Malformed rows never raise: an unknown `type` becomes None and a
        missing, unparseable, negative or out-of-range `amount` becomes 0.
        """
        raw_type = data.get("type")
        tx_type = raw_type if raw_type in ("deposit", "withdraw") else None

        cents = to_cents(data.get("amount"))
        amount = from_cents(cents)
        if cents < 0 or not math.isfinite(amount):
            logger.debug("transaction_amount_ignored id=%s amount=%r", doc_id or data.get("id"), data.get("amount"))
            amount = 0.0

        desc = data.get("description")
        return cls(
            type=tx_type,
            amount=amount,
            description=desc if isinstance(desc, str) else None,
            date=data.get("date"),
            id=doc_id or data.get("id"),
            employee_id=data.get("employeeId"),
            platform_id=data.get("platformId"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_firestore_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"type": self.type, "amount": self.amount}
        optional = {
            "description": self.description,
            "date": self.date,
            "employeeId": self.employee_id,
            "platformId": self.platform_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        doc.update({k: v for k, v in optional.items() if v is not None})
        return doc


TransactionLike = Union[Transaction, Mapping[str, Any]]


def as_transaction(t: TransactionLike) -> Transaction:
    if isinstance(t, Transaction):
        return t
    return Transaction.from_mapping(t)
