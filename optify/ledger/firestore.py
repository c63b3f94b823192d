from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from optify.common.logging import log_event
from optify.persistence.firebase_client import get_firestore_client
from optify.persistence.firestore_retry import with_firestore_retry

from .financial_state import GlobalFinancialState, build_global_financial_state


logger = logging.getLogger(__name__)

GLOBAL_STATE_COLLECTION = "globalFinancialState"
GLOBAL_STATE_DOC_ID = "main"


def user_doc(*, uid: str, db: Any = None):
    if not uid:
        raise ValueError("uid is required")
    db = db or get_firestore_client()
    return db.collection("users").document(uid)


def user_subcollection(*, uid: str, name: str, db: Any = None):
    return user_doc(uid=uid, db=db).collection(name)


def employees_collection(*, uid: str, db: Any = None):
    return user_subcollection(uid=uid, name="employees", db=db)


def platforms_collection(*, uid: str, db: Any = None):
    return user_subcollection(uid=uid, name="platforms", db=db)


def transactions_collection(*, uid: str, db: Any = None):
    return user_subcollection(uid=uid, name="transactions", db=db)


def daily_summaries_collection(*, uid: str, db: Any = None):
    return user_subcollection(uid=uid, name="dailySummaries", db=db)


def global_state_doc(*, uid: str, db: Any = None):
    """users/{uid}/globalFinancialState/main"""
    return user_subcollection(uid=uid, name=GLOBAL_STATE_COLLECTION, db=db).document(GLOBAL_STATE_DOC_ID)


def _docs_with_ids(collection) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for snap in collection.stream():
        doc = dict(snap.to_dict() or {})
        doc["id"] = snap.id
        out.append(doc)
    return out


@dataclass(frozen=True, slots=True)
class UserFinancialInputs:
    employees: list[dict[str, Any]]
    platforms: list[dict[str, Any]]
    transactions: list[dict[str, Any]]
    daily_summaries: list[dict[str, Any]]


def load_user_financial_inputs(*, uid: str, db: Any = None) -> UserFinancialInputs:
    db = db or get_firestore_client()
    return UserFinancialInputs(
        employees=_docs_with_ids(employees_collection(uid=uid, db=db)),
        platforms=_docs_with_ids(platforms_collection(uid=uid, db=db)),
        transactions=_docs_with_ids(transactions_collection(uid=uid, db=db)),
        daily_summaries=_docs_with_ids(daily_summaries_collection(uid=uid, db=db)),
    )


def recalculate_global_financial_state(
    *,
    uid: str,
    db: Any = None,
    now: Optional[datetime] = None,
) -> GlobalFinancialState:
    """
    Rebuild users/{uid}/globalFinancialState/main from the user's raw documents
    and overwrite the stored snapshot.
    """
    db = db or get_firestore_client()
    log_event(logger, "financial_state.recalculate.start", uid=uid)
    try:
        inputs = load_user_financial_inputs(uid=uid, db=db)
        state = build_global_financial_state(
            employees=inputs.employees,
            platforms=inputs.platforms,
            transactions=inputs.transactions,
            daily_summaries=inputs.daily_summaries,
            now=now,
        )
        doc = state.to_firestore_doc()
        with_firestore_retry(lambda: global_state_doc(uid=uid, db=db).set(doc))
    except Exception:
        logger.exception("financial_state.recalculate.failed uid=%s", uid)
        raise

    log_event(
        logger,
        "financial_state.recalculate.done",
        uid=uid,
        state_version=state.version,
        transactions=len(inputs.transactions),
        daily_summaries=len(inputs.daily_summaries),
    )
    return state


def read_global_financial_state(*, uid: str, db: Any = None) -> Optional[GlobalFinancialState]:
    snap = global_state_doc(uid=uid, db=db).get()
    if not snap.exists:
        return None
    return GlobalFinancialState.from_firestore_doc(snap.to_dict() or {})


def get_or_compute_global_financial_state(*, uid: str, db: Any = None) -> GlobalFinancialState:
    """Return the stored snapshot; a missing document is computed (and stored) now."""
    db = db or get_firestore_client()
    state = read_global_financial_state(uid=uid, db=db)
    if state is not None:
        return state
    logger.info("financial_state.missing uid=%s computing", uid)
    return recalculate_global_financial_state(uid=uid, db=db)
