"""
Currency amounts as integer minor units (centavos).

Amounts arrive as floats/strings from Firestore and leave as floats, but every
sum in between is done on ints so repeated additions never drift.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_HUNDRED = Decimal("100")


def _D(v: Any) -> Decimal:
    """
    Convert a numeric-ish value to Decimal, mirroring `Number(v || 0)`.

    IMPORTANT:
    - Never call Decimal(float) directly (binary float artifacts).
    - None, "", whitespace, NaN/inf and unparseable strings become 0.
    """
    if v is None or v is False:
        return Decimal("0")
    if v is True:
        return Decimal("1")
    if isinstance(v, Decimal):
        return v if v.is_finite() else Decimal("0")
    if isinstance(v, int):
        return Decimal(v)
    if isinstance(v, float):
        return Decimal(str(v)) if math.isfinite(v) else Decimal("0")
    s = str(v).strip()
    if not s:
        return Decimal("0")
    try:
        d = Decimal(s)
    except InvalidOperation:
        return Decimal("0")
    return d if d.is_finite() else Decimal("0")


def to_cents(v: Any) -> int:
    """
    Round a currency amount to whole centavos (half-up).

    Total for any finite input, however large (no quantize precision trap).
    """
    return int(_D(v).scaleb(2).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> float:
    return float(Decimal(int(cents)) / _HUNDRED)


