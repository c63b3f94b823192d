from __future__ import annotations

import pytest

from optify.ledger.classify import (
    classify,
    is_free_bet,
    is_normal_deposit,
    is_surebet,
    should_display_as_positive,
    transaction_profit,
)
from optify.ledger.models import Transaction, TransactionCategory


def _tx(type_, amount, description=None) -> Transaction:
    return Transaction(type=type_, amount=amount, description=description)


def test_prefix_classification_is_case_sensitive() -> None:
    assert is_free_bet(_tx("deposit", 10, "FreeBet Bet365"))
    assert not is_free_bet(_tx("deposit", 10, "freebet Bet365"))
    assert not is_free_bet(_tx("deposit", 10, "Bonus FreeBet"))

    assert is_surebet(_tx("deposit", 10, "Surebet jogo X"))
    assert not is_surebet(_tx("deposit", 10, "SureBet jogo X"))
    assert not is_surebet(_tx("deposit", 10, None))


def test_normal_deposit_excludes_tagged_descriptions() -> None:
    assert is_normal_deposit(_tx("deposit", 50, "Depósito"))
    assert is_normal_deposit(_tx("deposit", 50))
    assert not is_normal_deposit(_tx("deposit", 50, "FreeBet x"))
    assert not is_normal_deposit(_tx("deposit", 50, "Surebet y"))
    assert not is_normal_deposit(_tx("withdraw", 50))


@pytest.mark.parametrize(
    "type_,description,expected",
    [
        ("deposit", "FreeBet", True),
        ("deposit", "Surebet", True),
        ("withdraw", None, True),
        ("withdraw", "Saque", True),
        ("deposit", None, False),
        ("deposit", "Depósito PIX", False),
    ],
)
def test_should_display_as_positive(type_, description, expected) -> None:
    assert should_display_as_positive(_tx(type_, 1, description)) is expected


def test_display_sign_does_not_depend_on_amount() -> None:
    assert should_display_as_positive(_tx("withdraw", 0)) is True
    assert should_display_as_positive(_tx("deposit", 0)) is False


def test_classify_precedence() -> None:
    # FreeBet checked before Surebet; both before the stored type.
    assert classify(_tx("withdraw", 1, "FreeBet Surebet")) is TransactionCategory.FREEBET
    assert classify(_tx("deposit", 1, "Surebet")) is TransactionCategory.SUREBET
    assert classify(_tx("deposit", 1)) is TransactionCategory.DEPOSIT
    assert classify(_tx("withdraw", 1)) is TransactionCategory.WITHDRAW
    assert classify(_tx(None, 1)) is TransactionCategory.UNKNOWN


def test_transaction_profit_signs() -> None:
    assert transaction_profit(_tx("deposit", 100)) == -100.0
    assert transaction_profit(_tx("withdraw", 40.5)) == 40.5
    assert transaction_profit(_tx("deposit", 25, "FreeBet")) == 25.0
    assert transaction_profit(_tx("deposit", 30, "Surebet")) == 30.0
    assert transaction_profit(_tx(None, 99)) == 0.0


def test_classifier_accepts_raw_documents() -> None:
    raw = {"type": "deposit", "amount": "12.5", "description": "Surebet A x B"}
    assert is_surebet(raw)
    assert classify(raw) is TransactionCategory.SUREBET
    assert transaction_profit(raw) == 12.5


def test_unknown_type_in_document_is_unknown() -> None:
    assert classify({"type": "transfer", "amount": 10}) is TransactionCategory.UNKNOWN
    assert not should_display_as_positive({"type": "transfer", "amount": 10})


def test_transaction_rejects_invalid_direct_construction() -> None:
    with pytest.raises(ValueError):
        Transaction(type="transfer", amount=1)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        Transaction(type="deposit", amount=-1)
    with pytest.raises(ValueError):
        Transaction(type="deposit", amount=True)  # type: ignore[arg-type]


def test_from_mapping_is_lenient() -> None:
    tx = Transaction.from_mapping(
        {"type": "deposit", "amount": -5, "employeeId": "e1", "platformId": "p1", "date": "2024-01-05"},
        doc_id="t1",
    )
    assert tx.amount == 0.0
    assert tx.id == "t1"
    assert tx.employee_id == "e1"
    assert tx.platform_id == "p1"
    assert tx.date == "2024-01-05"

    assert Transaction.from_mapping({"type": "withdraw", "amount": "abc"}).amount == 0.0
    assert Transaction.from_mapping({"amount": 3}).type is None
