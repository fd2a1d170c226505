from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from ingress_operator.src.errors import ConflictError
from ingress_operator.src.metrics import METRICS

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Backoff:
    """Bounded exponential backoff with jitter.

    ``steps`` is the maximum number of attempts.  The wait before retry *n*
    (0-based) is ``duration * factor**n``, clamped to ``cap`` when set, plus a
    random extra of up to ``jitter`` times that wait.
    """

    duration: float = 0.01
    factor: float = 5.0
    jitter: float = 0.1
    steps: int = 4
    cap: float | None = None

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError("steps must be >= 1")
        if self.duration < 0:
            raise ValueError("duration must be >= 0")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")

    def delay(self, retry: int) -> float:
        wait = self.duration * (self.factor**retry)
        if self.cap is not None:
            wait = min(wait, self.cap)
        if self.jitter > 0:
            wait += wait * self.jitter * random.random()  # noqa: S311
        return wait


DEFAULT_BACKOFF = Backoff()


def retry_on_conflict(
    body: Callable[[], T],
    backoff: Backoff = DEFAULT_BACKOFF,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run a read-modify-write *body*, retrying it on optimistic-concurrency conflicts.

    *body* must fetch the object afresh, mutate a copy and write it on every
    call: the resourceVersion from a conflicted attempt is stale by
    definition.  Only :class:`ConflictError` is retried; anything else
    propagates at once.  When ``backoff.steps`` attempts all conflict, the
    last conflict is re-raised.
    """
    attempt = 0
    while True:
        try:
            return body()
        except ConflictError as exc:
            attempt += 1
            if attempt >= backoff.steps:
                LOGGER.warning(
                    "Giving up after %d conflicting attempts: %s", backoff.steps, exc
                )
                raise
            delay = backoff.delay(attempt - 1)
            METRICS.conflict_retries_total.inc()
            LOGGER.debug(
                "Write conflicted (%s); retry %d/%d in %.3fs",
                exc,
                attempt,
                backoff.steps - 1,
                delay,
            )
            sleep(delay)
