from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import requests

from optify.common import config
from optify.ledger.financial_state import GlobalFinancialState


logger = logging.getLogger(__name__)

RECALCULATE_FUNCTION = "recalculateFinancialState"
GET_STATE_FUNCTION = "getFinancialState"


class RecalculateError(RuntimeError):
    """A callable function invocation failed (transport, HTTP status, or callable error body)."""

    def __init__(self, message: str, *, status: Optional[str] = None, http_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.http_status = http_status

    def __repr__(self) -> str:
        return f"RecalculateError(status={self.status!r}, http_status={self.http_status!r}, message={self.message!r})"


class FinancialStateFunctionsClient:
    """
    Minimal client for the Firebase HTTPS callable protocol.

    Request:  POST {base_url}/{function}  body {"data": {...}}  Authorization: Bearer <Firebase ID token>
    Response: {"result": ...} on success, {"error": {"status": ..., "message": ...}} on failure.

    The callee derives the uid from the ID token; no uid is sent in the body.
    """

    def __init__(
        self,
        *,
        id_token_provider: Callable[[], str],
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._id_token_provider = id_token_provider
        self._base_url = (base_url or config.functions_base_url()).rstrip("/")
        self._timeout_s = float(timeout_s if timeout_s is not None else config.http_timeout_s())
        self._session = session or requests.Session()

    def _call(self, function_name: str, data: Optional[dict[str, Any]] = None) -> Any:
        url = f"{self._base_url}/{function_name}"
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {self._id_token_provider()}"}
        try:
            r = self._session.post(url, json={"data": data or {}}, headers=headers, timeout=self._timeout_s)
        except requests.RequestException as e:
            raise RecalculateError(f"{function_name} request failed: {e}", status="UNAVAILABLE") from e

        try:
            body = r.json() or {}
        except ValueError:
            body = {}

        err = body.get("error") if isinstance(body, dict) else None
        if r.status_code >= 400 or err:
            err = err if isinstance(err, dict) else {}
            raise RecalculateError(
                str(err.get("message") or f"{function_name} failed with HTTP {r.status_code}"),
                status=err.get("status"),
                http_status=r.status_code,
            )
        if not isinstance(body, dict) or "result" not in body:
            raise RecalculateError(f"{function_name} returned no result", http_status=r.status_code)
        return body["result"]

    def recalculate(self, uid: Optional[str] = None) -> GlobalFinancialState:
        """
        Rebuild the caller's state. `uid` is accepted so the bound method can be
        passed as a reader's `recalculate`; the callee always uses the token's uid.
        """
        result = self._call(RECALCULATE_FUNCTION)
        return GlobalFinancialState.from_firestore_doc(result or {})

    def get_state(self, uid: Optional[str] = None) -> GlobalFinancialState:
        result = self._call(GET_STATE_FUNCTION)
        return GlobalFinancialState.from_firestore_doc(result or {})
