from __future__ import annotations

from datetime import datetime, timezone

import pytest
from google.api_core import exceptions as gexc

from optify.ledger import firestore as ledger_fs
from optify.ledger.firestore import (
    get_or_compute_global_financial_state,
    global_state_doc,
    load_user_financial_inputs,
    read_global_financial_state,
    recalculate_global_financial_state,
    user_doc,
)
from optify.persistence.firestore_retry import backoff_delays, with_firestore_retry


NOW = datetime(2024, 3, 9, 15, 0, tzinfo=timezone.utc)
STATE_PATH = "users/u1/globalFinancialState/main"


def _seed(db) -> None:
    db.put("users/u1/employees/e1", {"name": "Ana"})
    db.put("users/u1/platforms/p1", {"name": "Bet365"})
    db.put(
        "users/u1/transactions/t1",
        {"type": "deposit", "amount": 100, "date": "2024-03-08", "employeeId": "e1", "platformId": "p1"},
    )
    db.put(
        "users/u1/transactions/t2",
        {"type": "withdraw", "amount": 160, "date": "2024-03-08", "employeeId": "e1", "platformId": "p1"},
    )
    db.put("users/u1/dailySummaries/s1", {"date": "2024-03-01", "profit": 15, "totalDeposits": 5, "totalWithdraws": 20})
    # Another user's data must not leak in.
    db.put("users/u2/transactions/tx", {"type": "withdraw", "amount": 1000, "date": "2024-03-08"})


def test_user_doc_requires_uid(fake_db) -> None:
    with pytest.raises(ValueError):
        user_doc(uid="", db=fake_db)


def test_load_user_financial_inputs_attaches_ids(fake_db) -> None:
    _seed(fake_db)
    inputs = load_user_financial_inputs(uid="u1", db=fake_db)
    assert [e["id"] for e in inputs.employees] == ["e1"]
    assert [p["id"] for p in inputs.platforms] == ["p1"]
    assert sorted(t["id"] for t in inputs.transactions) == ["t1", "t2"]
    assert inputs.daily_summaries[0]["id"] == "s1"


def test_recalculate_writes_snapshot(fake_db) -> None:
    _seed(fake_db)
    state = recalculate_global_financial_state(uid="u1", db=fake_db, now=NOW)

    assert state.totals.profit == 75.0
    assert state.employees["e1"].platforms == {"p1": 60.0}
    assert fake_db.writes == [STATE_PATH]

    stored = fake_db.docs[STATE_PATH]
    assert stored["version"] == state.version
    assert stored["updatedAt"] == NOW
    assert stored["totals"]["profit"] == 75.0
    assert read_global_financial_state(uid="u1", db=fake_db) == state


def test_get_or_compute_reads_existing_without_writing(fake_db) -> None:
    _seed(fake_db)
    first = recalculate_global_financial_state(uid="u1", db=fake_db, now=NOW)
    fake_db.writes.clear()

    got = get_or_compute_global_financial_state(uid="u1", db=fake_db)
    assert got == first
    assert fake_db.writes == []


def test_get_or_compute_computes_missing_document(fake_db) -> None:
    _seed(fake_db)
    assert read_global_financial_state(uid="u1", db=fake_db) is None

    got = get_or_compute_global_financial_state(uid="u1", db=fake_db)
    assert fake_db.writes == [STATE_PATH]
    assert got.totals.profit == 75.0


def test_recalculate_retries_transient_write_errors(fake_db, monkeypatch) -> None:
    _seed(fake_db)
    ref = global_state_doc(uid="u1", db=fake_db)
    calls = {"n": 0}
    real_set = type(ref).set

    def flaky_set(self, data, merge=False):
        calls["n"] += 1
        if calls["n"] < 3:
            raise gexc.ServiceUnavailable("try again")
        return real_set(self, data, merge=merge)

    monkeypatch.setattr(type(ref), "set", flaky_set)
    recalculate_global_financial_state(uid="u1", db=fake_db, now=NOW)
    assert calls["n"] == 3
    assert STATE_PATH in fake_db.docs


def test_recalculate_propagates_non_transient_errors(fake_db, monkeypatch) -> None:
    _seed(fake_db)

    def boom(**kwargs):
        raise RuntimeError("bad data")

    monkeypatch.setattr(ledger_fs, "build_global_financial_state", boom)
    with pytest.raises(RuntimeError, match="bad data"):
        recalculate_global_financial_state(uid="u1", db=fake_db, now=NOW)
    assert STATE_PATH not in fake_db.docs


def test_with_firestore_retry_gives_up_after_max_attempts() -> None:
    sleeps: list[float] = []
    calls = {"n": 0}

    def always_fails():
        calls["n"] += 1
        raise gexc.Aborted("contention")

    with pytest.raises(gexc.Aborted):
        with_firestore_retry(always_fails, max_attempts=3, sleep=sleeps.append)
    assert calls["n"] == 3
    assert len(sleeps) == 2


def test_with_firestore_retry_does_not_retry_permanent_errors() -> None:
    calls = {"n": 0}

    def denied():
        calls["n"] += 1
        raise gexc.PermissionDenied("nope")

    with pytest.raises(gexc.PermissionDenied):
        with_firestore_retry(denied, sleep=lambda s: None)
    assert calls["n"] == 1


def test_backoff_delays_are_capped(monkeypatch) -> None:
    from optify.persistence import firestore_retry

    monkeypatch.setattr(firestore_retry.random, "random", lambda: 1.0)
    delays = list(backoff_delays(retries=6, base_delay_s=0.5, max_delay_s=3.0))
    assert delays == [0.5, 1.0, 2.0, 3.0, 3.0, 3.0]
