"""
Worker-pool scheduler for the map and reduce stages.

Map units retry in place, since mapping is pure. Reduce units that fail
go back to the pool queue after the backoff delay, freeing their worker for
other keys in the meantime; each re-queue counts as a yield.
"""

import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from rep_digest.config import RetryPolicy
from rep_digest.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class UnitResult(Generic[T]):
    """Outcome of one unit after all of its attempts."""

    unit_id: str
    value: T | None = None
    attempts: int = 0
    errors: list[str] = field(default_factory=list)
    succeeded: bool = False


class ExecutionStats:
    """
    Thread-safe statistics accumulator passed explicitly through a run.

    Tracks external interface calls (usage units), retries per stage,
    yields, and the number of units in flight.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.usage_units = 0
        self.retries: dict[str, int] = {"map": 0, "reduce": 0}
        self.yield_count = 0
        self.active = 0
        self.peak_concurrency = 0
        self.started_at: float | None = None
        self.finished_at: float | None = None

    def start(self) -> None:
        self.started_at = time.monotonic()
        self.finished_at = None

    def stop(self) -> None:
        self.finished_at = time.monotonic()

    def add_usage(self, units: int = 1) -> None:
        with self._lock:
            self.usage_units += units

    def record_retry(self, stage: str) -> None:
        with self._lock:
            self.retries[stage] = self.retries.get(stage, 0) + 1

    def record_yield(self) -> None:
        with self._lock:
            self.yield_count += 1

    def unit_started(self) -> None:
        with self._lock:
            self.active += 1
            self.peak_concurrency = max(self.peak_concurrency, self.active)

    def unit_finished(self) -> None:
        with self._lock:
            self.active -= 1

    @property
    def retry_count(self) -> int:
        return sum(self.retries.values())

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "usage_units": self.usage_units,
                "retries": dict(self.retries),
                "retry_count": sum(self.retries.values()),
                "yield_count": self.yield_count,
                "concurrency": self.peak_concurrency,
                "elapsed_seconds": self.elapsed_seconds,
            }


class StageScheduler:
    """
    Runs stage units on a bounded thread pool.

    Args:
        max_concurrency: Maximum units in flight
        retry_policy: Attempts per unit and reduce backoff
        stats: Accumulator shared with the rest of the run
    """

    def __init__(self, max_concurrency: int, retry_policy: RetryPolicy, stats: ExecutionStats):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.retry_policy = retry_policy
        self.stats = stats

    def _attempt(self, fn: Callable[..., T], *args) -> T:
        self.stats.unit_started()
        try:
            return fn(*args)
        finally:
            self.stats.unit_finished()

    def _map_unit(self, fn: Callable[[int, Any], T], position: int, row: Any, unit_id: str) -> UnitResult[T]:
        result: UnitResult[T] = UnitResult(unit_id=unit_id)
        for attempt in range(1, self.retry_policy.max_attempts + 1):
            if attempt > 1:
                self.stats.record_retry("map")
            result.attempts = attempt
            try:
                result.value = self._attempt(fn, position, row)
                result.succeeded = True
                return result
            except Exception as e:
                result.errors.append(str(e))
                logger.warning(
                    f"Map unit {unit_id} failed (attempt {attempt}/{self.retry_policy.max_attempts}): {e}",
                    extra={"unit_id": unit_id, "attempt": attempt, "stage": "map"},
                )
        return result

    def run_map(
        self,
        rows: Sequence[Any],
        fn: Callable[[int, Any], T],
        unit_ids: Callable[[Any, int], str],
    ) -> list[UnitResult[T]]:
        """
        Map every row in parallel and wait for all of them (the stage barrier).

        Args:
            rows: Input rows, in enumeration order
            fn: Called as fn(position, row)
            unit_ids: Called as unit_ids(row, position) to label a unit

        Returns:
            One UnitResult per row, in input order regardless of completion order
        """
        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="map") as executor:
            futures = [
                executor.submit(self._map_unit, fn, position, row, unit_ids(row, position))
                for position, row in enumerate(rows)
            ]
            return [future.result() for future in futures]

    def run_reduce(self, keys: Iterable[str], fn: Callable[[str, int], T]) -> dict[str, UnitResult[T]]:
        """
        Run one unit per key; a failure in one key never affects another.

        A failed unit waits out its backoff outside the pool, so its worker
        picks up other keys until the unit is due again.

        Args:
            keys: Partition keys
            fn: Called as fn(key, attempt_number)

        Returns:
            Partition key -> UnitResult
        """
        results: dict[str, UnitResult[T]] = {key: UnitResult(unit_id=key) for key in keys}
        max_attempts = self.retry_policy.max_attempts

        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="reduce") as executor:
            pending: dict[Future, str] = {}
            # (ready_at, key) for units sitting out their backoff
            delayed: list[tuple[float, str]] = []

            def submit(key: str) -> None:
                result = results[key]
                result.attempts += 1
                future = executor.submit(self._attempt, fn, key, result.attempts)
                pending[future] = key

            for key in results:
                submit(key)

            while pending or delayed:
                now = time.monotonic()
                due = [key for ready_at, key in delayed if ready_at <= now]
                delayed = [(ready_at, key) for ready_at, key in delayed if ready_at > now]
                for key in due:
                    submit(key)

                timeout = min(ready_at for ready_at, _ in delayed) - now if delayed else None
                if not pending:
                    time.sleep(max(timeout, 0.0))
                    continue

                done, _ = wait(list(pending), timeout=timeout, return_when=FIRST_COMPLETED)
                for future in done:
                    key = pending.pop(future)
                    result = results[key]
                    try:
                        result.value = future.result()
                        result.succeeded = True
                    except Exception as e:
                        result.errors.append(str(e))
                        if result.attempts < max_attempts:
                            logger.warning(
                                f"Reduce unit {key} failed (attempt {result.attempts}/{max_attempts}), re-queued: {e}",
                                extra={"partition_key": key, "attempt": result.attempts, "stage": "reduce"},
                            )
                            self.stats.record_retry("reduce")
                            self.stats.record_yield()
                            delayed.append((time.monotonic() + self.retry_policy.backoff_seconds, key))
                        else:
                            logger.error(
                                f"Reduce unit {key} failed after {result.attempts} attempt(s): {e}",
                                extra={"partition_key": key, "attempt": result.attempts, "stage": "reduce"},
                            )

        return results
