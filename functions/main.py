"""
Global financial state: Cloud Functions surface.

Callables (authenticated; the uid comes from the caller's ID token):
  recalculateFinancialState -> rebuild users/{uid}/globalFinancialState/main
  getFinancialState         -> stored snapshot, computed on first access

Triggers: any write under a user's transactions, dailySummaries,
surebetRecords or freebetHistory rebuilds that user's snapshot.
"""

import logging
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import firestore
from firebase_functions import firestore_fn, https_fn, options

from optify.common.logging import bind_log_context, init_structured_logging
from optify.ledger.firestore import (
    get_or_compute_global_financial_state,
    recalculate_global_financial_state,
)

init_structured_logging(service="optify-functions")
logger = logging.getLogger(__name__)


def _get_firestore() -> firestore.Client:
    """Get Firestore client, initializing Firebase if needed."""
    if not firebase_admin._apps:
        firebase_admin.initialize_app()
    return firestore.client()


def _require_uid(req: https_fn.CallableRequest) -> str:
    uid = req.auth.uid if req.auth else None
    if not uid:
        raise https_fn.HttpsError(
            code=https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            message="Usuário não autenticado",
        )
    return uid


def handle_recalculate(uid: str, db: Any) -> Dict[str, Any]:
    try:
        state = recalculate_global_financial_state(uid=uid, db=db)
    except Exception as e:
        logger.exception("recalculateFinancialState failed uid=%s", uid)
        raise https_fn.HttpsError(
            code=https_fn.FunctionsErrorCode.INTERNAL,
            message="Erro ao recalcular estado financeiro",
        ) from e
    return state.to_json_dict()


def handle_get_state(uid: str, db: Any) -> Dict[str, Any]:
    try:
        state = get_or_compute_global_financial_state(uid=uid, db=db)
    except Exception as e:
        logger.exception("getFinancialState failed uid=%s", uid)
        raise https_fn.HttpsError(
            code=https_fn.FunctionsErrorCode.INTERNAL,
            message="Erro ao obter estado financeiro",
        ) from e
    return state.to_json_dict()


def handle_source_write(user_id: Optional[str], source: str, db: Any) -> bool:
    """
    Rebuild after a write to one of the user's source collections.

    Errors are logged and swallowed: raising would make the platform retry the
    trigger indefinitely.
    """
    if not user_id:
        logger.warning("financial_state trigger without userId source=%s", source)
        return False
    try:
        logger.info("financial_state refresh after %s write uid=%s", source, user_id)
        recalculate_global_financial_state(uid=user_id, db=db)
        return True
    except Exception:
        logger.exception("financial_state refresh failed source=%s uid=%s", source, user_id)
        return False


@https_fn.on_call(memory=options.MemoryOption.MB_512, timeout_sec=540)
def recalculateFinancialState(req: https_fn.CallableRequest) -> Dict[str, Any]:
    uid = _require_uid(req)
    with bind_log_context(uid=uid):
        return handle_recalculate(uid, _get_firestore())


@https_fn.on_call(memory=options.MemoryOption.MB_256, timeout_sec=60)
def getFinancialState(req: https_fn.CallableRequest) -> Dict[str, Any]:
    uid = _require_uid(req)
    with bind_log_context(uid=uid):
        return handle_get_state(uid, _get_firestore())


_TRIGGER_OPTS: Dict[str, Any] = {"memory": options.MemoryOption.MB_512, "timeout_sec": 540}


def _on_source_write(event: firestore_fn.Event[Any], source: str) -> None:
    user_id = event.params.get("userId")
    with bind_log_context(request_id=getattr(event, "id", None), uid=user_id):
        handle_source_write(user_id, source, _get_firestore())


@firestore_fn.on_document_written(document="users/{userId}/transactions/{transactionId}", **_TRIGGER_OPTS)
def onTransactionWrite(event: firestore_fn.Event[Any]) -> None:
    _on_source_write(event, "transactions")


@firestore_fn.on_document_written(document="users/{userId}/dailySummaries/{summaryId}", **_TRIGGER_OPTS)
def onDailySummaryWrite(event: firestore_fn.Event[Any]) -> None:
    _on_source_write(event, "dailySummaries")


@firestore_fn.on_document_written(document="users/{userId}/surebetRecords/{recordId}", **_TRIGGER_OPTS)
def onSurebetWrite(event: firestore_fn.Event[Any]) -> None:
    _on_source_write(event, "surebetRecords")


@firestore_fn.on_document_written(document="users/{userId}/freebetHistory/{entryId}", **_TRIGGER_OPTS)
def onFreeBetWrite(event: firestore_fn.Event[Any]) -> None:
    _on_source_write(event, "freebetHistory")
