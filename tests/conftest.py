from __future__ import annotations

import pytest

from tests.fakes import FakeFirestore


@pytest.fixture
def fake_db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture(autouse=True)
def _no_firestore_retry_jitter(monkeypatch):
    # Retry backoff sleeps are zero-length in unit tests.
    from optify.persistence import firestore_retry

    monkeypatch.setattr(firestore_retry.random, "random", lambda: 0.0)
