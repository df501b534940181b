"""Timing decorators and in-process counters for the takeoff pipeline."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("estimator-api.perf")


def _log_duration(func: Callable, start: float, message: str) -> None:
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.debug(
        message,
        extra={"function": func.__qualname__, "duration_ms": duration_ms},
    )


def timed(func: Callable) -> Callable:
    """
    Log how long a synchronous call took (DEBUG level).

    Usage::

        @timed
        def compute_job_totals(...):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            _log_duration(func, start, "function timed")
    return wrapper


def timed_async(func: Callable) -> Callable:
    """Async counterpart of :func:`timed`."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            _log_duration(func, start, "async function timed")
    return wrapper


class PerformanceTracker:
    """
    Thread-safe counters behind the ``/metrics`` endpoint.

    Tracks recalculated jobs, priced takeoffs, per-stage durations and
    per-stage error counts.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs_recalculated: int = 0
        self._takeoffs_priced: int = 0
        self._total_recalc_ms: float = 0.0
        self._stage_durations: Dict[str, List[float]] = {}
        self._stage_errors: Dict[str, int] = {}
        self._slowest_stage: Optional[str] = None
        self._slowest_stage_ms: float = 0.0

    def record_job_recalculated(self, duration_ms: float) -> None:
        with self._lock:
            self._jobs_recalculated += 1
            self._total_recalc_ms += duration_ms

    def record_takeoff_priced(self) -> None:
        with self._lock:
            self._takeoffs_priced += 1

    def record_stage_duration(self, stage: str, duration_ms: float) -> None:
        with self._lock:
            self._stage_durations.setdefault(stage, []).append(duration_ms)
            if duration_ms > self._slowest_stage_ms:
                self._slowest_stage_ms = duration_ms
                self._slowest_stage = stage

    def record_stage_error(self, stage: str) -> None:
        with self._lock:
            self._stage_errors[stage] = self._stage_errors.get(stage, 0) + 1

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of every counter; averages are 0.0 when nothing was recorded."""
        with self._lock:
            avg_recalc = (
                round(self._total_recalc_ms / self._jobs_recalculated, 2)
                if self._jobs_recalculated
                else 0.0
            )
            stage_avgs = {
                stage: round(sum(d) / len(d), 2)
                for stage, d in self._stage_durations.items()
                if d
            }
            return {
                "jobs_recalculated": self._jobs_recalculated,
                "takeoffs_priced": self._takeoffs_priced,
                "avg_recalculation_ms": avg_recalc,
                "slowest_stage": self._slowest_stage,
                "slowest_stage_ms": round(self._slowest_stage_ms, 2),
                "error_count": sum(self._stage_errors.values()),
                "error_count_by_stage": dict(self._stage_errors),
                "stage_avg_durations_ms": stage_avgs,
            }

    def reset(self) -> None:
        with self._lock:
            self._jobs_recalculated = 0
            self._takeoffs_priced = 0
            self._total_recalc_ms = 0.0
            self._stage_durations.clear()
            self._stage_errors.clear()
            self._slowest_stage = None
            self._slowest_stage_ms = 0.0


# Module-level singleton
tracker = PerformanceTracker()
