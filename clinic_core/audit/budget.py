# backend/clinic_core/audit/budget.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from clinic_core.audit.exceptions import ReportTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """
    Wall-clock budget for one report computation.

    ``check()`` is called from inner loops; it raises ReportTimeout once the
    budget is spent so no partial result ever leaves the computation.
    """

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if seconds <= 0:
            raise ValueError("Deadline must be positive.")
        self.seconds = float(seconds)
        self._clock = clock
        self._expires_at = clock() + self.seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self) -> None:
        if self.expired():
            raise ReportTimeout()


@dataclass(frozen=True)
class BudgetedResult(Generic[T]):
    value: T
    span: int
    degraded: bool


def run_with_fallback(
    compute: Callable[[int, Deadline], T],
    *,
    span: int,
    seconds: float,
    factor: float,
) -> BudgetedResult[T]:
    """
    Run ``compute(span, deadline)``. On timeout, retry once over a shorter
    span (``span * factor``, at least 1) and flag the result as degraded.
    A second timeout propagates.
    """
    try:
        return BudgetedResult(value=compute(span, Deadline(seconds)), span=span, degraded=False)
    except ReportTimeout:
        reduced = max(1, int(span * factor))
        logger.warning("Report timed out over span=%s; retrying with span=%s", span, reduced)

    return BudgetedResult(value=compute(reduced, Deadline(seconds)), span=reduced, degraded=True)
