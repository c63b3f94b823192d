from __future__ import annotations

from types import SimpleNamespace

import pytest
from firebase_functions import https_fn

from functions import main as fn_main


STATE_PATH = "users/u1/globalFinancialState/main"


def _seed(db) -> None:
    db.put("users/u1/transactions/t1", {"type": "withdraw", "amount": 80, "date": "2024-03-08"})
    db.put("users/u1/transactions/t2", {"type": "deposit", "amount": 30, "date": "2024-03-08"})


def test_require_uid_rejects_anonymous_calls() -> None:
    with pytest.raises(https_fn.HttpsError) as ei:
        fn_main._require_uid(SimpleNamespace(auth=None))
    assert ei.value.code == https_fn.FunctionsErrorCode.UNAUTHENTICATED
    assert fn_main._require_uid(SimpleNamespace(auth=SimpleNamespace(uid="u1"))) == "u1"


def test_handle_recalculate_returns_json_ready_state(fake_db) -> None:
    _seed(fake_db)
    out = fn_main.handle_recalculate("u1", fake_db)

    assert out["totals"]["profit"] == 50.0
    assert isinstance(out["updatedAt"], str)
    assert isinstance(out["version"], int)
    assert STATE_PATH in fake_db.docs


def test_handle_get_state_computes_once(fake_db) -> None:
    _seed(fake_db)
    first = fn_main.handle_get_state("u1", fake_db)
    fake_db.writes.clear()
    second = fn_main.handle_get_state("u1", fake_db)

    assert second == first
    assert fake_db.writes == []


def test_handler_failures_become_internal_errors(fake_db, monkeypatch) -> None:
    def boom(**kwargs):
        raise RuntimeError("firestore down")

    monkeypatch.setattr(fn_main, "recalculate_global_financial_state", boom)
    with pytest.raises(https_fn.HttpsError) as ei:
        fn_main.handle_recalculate("u1", fake_db)
    assert ei.value.code == https_fn.FunctionsErrorCode.INTERNAL


def test_source_write_recalculates(fake_db) -> None:
    _seed(fake_db)
    assert fn_main.handle_source_write("u1", "transactions", fake_db) is True
    assert fake_db.docs[STATE_PATH]["totals"]["profit"] == 50.0


def test_source_write_without_user_is_skipped(fake_db) -> None:
    assert fn_main.handle_source_write(None, "dailySummaries", fake_db) is False
    assert fake_db.writes == []


def test_source_write_failures_do_not_raise(fake_db, monkeypatch) -> None:
    def boom(**kwargs):
        raise RuntimeError("firestore down")

    monkeypatch.setattr(fn_main, "recalculate_global_financial_state", boom)
    assert fn_main.handle_source_write("u1", "surebetRecords", fake_db) is False


def test_trigger_entrypoint_uses_event_user(fake_db, monkeypatch) -> None:
    _seed(fake_db)
    monkeypatch.setattr(fn_main, "_get_firestore", lambda: fake_db)
    event = SimpleNamespace(id="evt-1", params={"userId": "u1", "transactionId": "t1"})

    fn_main._on_source_write(event, "transactions")
    assert fake_db.docs[STATE_PATH]["totals"]["profit"] == 50.0
