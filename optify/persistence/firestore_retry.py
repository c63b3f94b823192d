from __future__ import annotations

import logging
import random
import time
from typing import Callable, Iterator, TypeVar

from google.api_core import exceptions as gexc

from optify.common.logging import log_event

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Errors a Firestore write can succeed after: contention, quota and availability.
TRANSIENT_FIRESTORE_ERRORS: tuple[type[BaseException], ...] = (
    gexc.Aborted,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
    gexc.ResourceExhausted,
    gexc.ServiceUnavailable,
    gexc.TooManyRequests,
)


def backoff_delays(*, retries: int, base_delay_s: float, max_delay_s: float) -> Iterator[float]:
    """Full-jitter exponential delays: uniform in [0, min(max, base * 2**n)]."""
    for n in range(retries):
        yield random.random() * min(max_delay_s, base_delay_s * (2**n))


def with_firestore_retry(
    fn: Callable[[], T],
    *,
    max_attempts: int = 6,
    base_delay_s: float = 0.2,
    max_delay_s: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run a Firestore operation, retrying TRANSIENT_FIRESTORE_ERRORS up to
    `max_attempts` calls in total. Any other error propagates on first sight.
    """
    delays = backoff_delays(retries=max_attempts - 1, base_delay_s=base_delay_s, max_delay_s=max_delay_s)
    attempt = 1
    while True:
        try:
            return fn()
        except TRANSIENT_FIRESTORE_ERRORS as e:
            delay = next(delays, None)
            if delay is None:
                raise
            log_event(
                logger,
                "firestore.retry",
                level=logging.WARNING,
                attempt=attempt,
                error=type(e).__name__,
                delay_s=round(delay, 3),
            )
            sleep(delay)
            attempt += 1
