"""
Live reader for users/{uid}/globalFinancialState/main.

State machine:
  UNSUBSCRIBED --subscribe(uid)--> SUBSCRIBING
  SUBSCRIBING / any --snapshot exists--> POPULATED
  SUBSCRIBING / any --snapshot missing--> MISSING (+ recompute requested)
  any --listener/recompute failure--> ERROR

Ordering:
- Every applied state carries a monotonic `version`. A snapshot or recompute
  result older than the one already held is discarded, so a late response
  can never clobber newer data.
- Each subscription gets a generation number; callbacks and recompute results
  that belong to a torn-down subscription are ignored.

Firestore invokes `on_snapshot` callbacks on a background thread, and
recomputes run on an executor, so all state transitions happen under a lock.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from optify.common.logging import log_event
from optify.ledger.financial_state import (
    EmployeeFinancialState,
    GlobalFinancialState,
    PlatformFinancialState,
)
from optify.ledger.firestore import global_state_doc


logger = logging.getLogger(__name__)


class ReaderStatus(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    POPULATED = "populated"
    MISSING = "missing"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ReaderSnapshot:
    status: ReaderStatus
    uid: Optional[str]
    data: Optional[GlobalFinancialState]
    is_loading: bool
    error: Optional[BaseException]


class GlobalFinancialStateReader:
    """
    Subscribe to a user's global financial state and request recomputation
    when the document does not exist yet.

    - recalculate: uid -> GlobalFinancialState (e.g. the HTTPS callable client).
    - executor: where recompute requests run; a single worker thread by default.
    - on_change: called with a ReaderSnapshot after every applied transition.
    """

    def __init__(
        self,
        *,
        recalculate: Callable[[str], GlobalFinancialState],
        db: Any = None,
        executor: Optional[Executor] = None,
        on_change: Optional[Callable[[ReaderSnapshot], None]] = None,
    ) -> None:
        self._recalculate = recalculate
        self._db = db
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="financial-state")
        self._on_change = on_change

        self._lock = threading.Lock()
        self._generation = 0
        self._watch: Any = None
        self._uid: Optional[str] = None
        self._status = ReaderStatus.UNSUBSCRIBED
        self._data: Optional[GlobalFinancialState] = None
        self._is_loading = False
        self._error: Optional[BaseException] = None

    # ------------------------------------------------------------------ state

    def snapshot(self) -> ReaderSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> ReaderSnapshot:
        return ReaderSnapshot(
            status=self._status,
            uid=self._uid,
            data=self._data,
            is_loading=self._is_loading,
            error=self._error,
        )

    @property
    def status(self) -> ReaderStatus:
        return self.snapshot().status

    @property
    def data(self) -> Optional[GlobalFinancialState]:
        return self.snapshot().data

    @property
    def is_loading(self) -> bool:
        return self.snapshot().is_loading

    @property
    def error(self) -> Optional[BaseException]:
        return self.snapshot().error

    def _notify(self, snap: Optional[ReaderSnapshot]) -> None:
        if snap is None or self._on_change is None:
            return
        try:
            self._on_change(snap)
        except Exception:
            logger.exception("financial_state_reader.on_change_failed")

    # ----------------------------------------------------------- subscription

    def subscribe(self, uid: Optional[str]) -> None:
        """
        Point the reader at `uid`, tearing down any previous listener.

        A falsy uid leaves the reader UNSUBSCRIBED with no data.
        Re-subscribing to the current uid is a no-op.
        """
        with self._lock:
            if uid and uid == self._uid and self._watch is not None:
                return
            old_watch = self._watch
            self._watch = None
            self._generation += 1
            generation = self._generation
            self._uid = uid or None
            self._data = None
            self._error = None
            if not uid:
                self._status = ReaderStatus.UNSUBSCRIBED
                self._is_loading = False
            else:
                self._status = ReaderStatus.SUBSCRIBING
                self._is_loading = True
            snap = self._snapshot_locked()

        self._unsubscribe(old_watch)
        self._notify(snap)
        if not uid:
            return

        log_event(logger, "financial_state_reader.subscribe", uid=uid)
        try:
            ref = global_state_doc(uid=uid, db=self._db)
            watch = ref.on_snapshot(
                lambda docs, changes, read_time: self._on_snapshot(generation, docs)
            )
        except Exception as e:
            logger.exception("financial_state_reader.listen_failed uid=%s", uid)
            self.handle_listener_error(e, generation=generation)
            return

        with self._lock:
            if generation == self._generation:
                self._watch = watch
                return
        # Superseded while attaching.
        self._unsubscribe(watch)

    def close(self) -> None:
        """Detach the listener and drop the user; owned executors are shut down."""
        self.subscribe(None)
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def __enter__(self) -> "GlobalFinancialStateReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

    @staticmethod
    def _unsubscribe(watch: Any) -> None:
        if watch is None:
            return
        try:
            watch.unsubscribe()
        except Exception:
            logger.exception("financial_state_reader.unsubscribe_failed")

    # -------------------------------------------------------------- callbacks

    def _on_snapshot(self, generation: int, docs: Any) -> None:
        doc = docs[0] if docs else None
        if doc is not None and doc.exists:
            try:
                state = GlobalFinancialState.from_firestore_doc(doc.to_dict() or {})
            except Exception as e:
                logger.exception("financial_state_reader.decode_failed")
                self.handle_listener_error(e, generation=generation)
                return
            self._apply(state, generation=generation)
            return

        with self._lock:
            if generation != self._generation:
                return
            uid = self._uid
            self._status = ReaderStatus.MISSING
            self._is_loading = False
            snap = self._snapshot_locked()
        self._notify(snap)
        logger.info("financial_state_reader.missing uid=%s requesting recompute", uid)
        if uid:
            self._request_recompute(uid, generation)

    def handle_listener_error(self, error: BaseException, *, generation: Optional[int] = None) -> None:
        """Record a listener failure (ERROR state, loading stops)."""
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            self._status = ReaderStatus.ERROR
            self._error = error
            self._is_loading = False
            snap = self._snapshot_locked()
        self._notify(snap)

    def _apply(self, state: GlobalFinancialState, *, generation: int) -> bool:
        with self._lock:
            if generation != self._generation:
                return False
            if self._data is not None and state.version < self._data.version:
                logger.info(
                    "financial_state_reader.stale_discarded held=%d got=%d",
                    self._data.version,
                    state.version,
                )
                return False
            self._data = state
            self._status = ReaderStatus.POPULATED
            self._is_loading = False
            self._error = None
            snap = self._snapshot_locked()
        self._notify(snap)
        return True

    # -------------------------------------------------------------- recompute

    def _request_recompute(self, uid: str, generation: int) -> Future:
        def _run() -> Optional[GlobalFinancialState]:
            try:
                state = self._recalculate(uid)
            except Exception as e:
                logger.exception("financial_state_reader.recompute_failed uid=%s", uid)
                self.handle_listener_error(e, generation=generation)
                raise
            self._apply(state, generation=generation)
            return state

        return self._executor.submit(_run)

    def refetch(self) -> Optional[Future]:
        """
        Request a recomputation regardless of the current state.

        Returns the Future of the request, or None when no user is subscribed.
        """
        with self._lock:
            uid = self._uid
            generation = self._generation
        if not uid:
            return None
        return self._request_recompute(uid, generation)


def get_daily_profit(state: Optional[GlobalFinancialState], date_key: str) -> float:
    if state is None:
        return 0.0
    bucket = state.daily.get(date_key)
    return bucket.profit if bucket is not None else 0.0


def get_monthly_profit(state: Optional[GlobalFinancialState], month_key: str) -> float:
    if state is None:
        return 0.0
    bucket = state.monthly.get(month_key)
    return bucket.profit if bucket is not None else 0.0


def get_employee_state(state: Optional[GlobalFinancialState], employee_id: str) -> Optional[EmployeeFinancialState]:
    if state is None:
        return None
    return state.employees.get(employee_id)


def get_platform_state(state: Optional[GlobalFinancialState], platform_id: str) -> Optional[PlatformFinancialState]:
    if state is None:
        return None
    return state.platforms.get(platform_id)
