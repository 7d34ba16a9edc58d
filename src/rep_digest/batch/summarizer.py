"""
Summarize stage: turn reduce outcomes and scheduler statistics into an
ExecutionSummary, then log and publish it.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rep_digest.core.errors import ObservationError
from rep_digest.core.models import ExecutionSummary, KeyOutcome, QueryWindow, UnitFailure
from rep_digest.observability import metrics
from rep_digest.observability.logger import get_logger


class Summarizer:
    """
    Pure observer of a finished run.

    Building the summary cannot fail a run, and neither can recording it:
    logging or metrics errors are reported as ObservationError and dropped.
    """

    def __init__(self, logger: logging.Logger | None = None, publish_metrics: bool = True):
        self.logger = logger or get_logger(__name__)
        self.publish_metrics = publish_metrics

    def build(
        self,
        outcomes: Mapping[str, KeyOutcome],
        stats: Mapping[str, Any],
        map_failures: Sequence[UnitFailure] = (),
        window: QueryWindow | None = None,
        input_count: int = 0,
        mapped_count: int = 0,
    ) -> ExecutionSummary:
        return ExecutionSummary(
            per_key_status=dict(outcomes),
            usage_units=stats.get("usage_units", 0),
            elapsed_seconds=stats.get("elapsed_seconds", 0.0),
            concurrency=stats.get("concurrency", 0),
            yield_count=stats.get("yield_count", 0),
            retry_count=stats.get("retry_count", 0),
            input_count=input_count,
            mapped_count=mapped_count,
            map_failures=list(map_failures),
            window_start=window.start if window else None,
            window_end=window.end if window else None,
        )

    def summarize(
        self,
        outcomes: Mapping[str, KeyOutcome],
        stats: Mapping[str, Any],
        map_failures: Sequence[UnitFailure] = (),
        window: QueryWindow | None = None,
        input_count: int = 0,
        mapped_count: int = 0,
    ) -> ExecutionSummary:
        summary = self.build(outcomes, stats, map_failures, window, input_count, mapped_count)
        try:
            self.record(summary, stats)
        except Exception as e:
            error = ObservationError(f"Could not record execution summary: {e}")
            self.logger.warning(str(error), exc_info=True)
        return summary

    def record(self, summary: ExecutionSummary, stats: Mapping[str, Any]) -> None:
        for key, outcome in summary.per_key_status.items():
            self.logger.info(
                f"Summary of key: {key}",
                extra={"partition_key": key, **outcome.model_dump(mode="json", exclude={"key"})},
            )

        self.logger.info(f"Usage Consumed: {summary.usage_units}", extra={"usage_units": summary.usage_units})
        self.logger.info(f"Concurrency: {summary.concurrency}", extra={"concurrency": summary.concurrency})
        self.logger.info(f"Number of Yields: {summary.yield_count}", extra={"yield_count": summary.yield_count})
        self.logger.info(
            f"Run finished in {summary.elapsed_seconds:.2f}s: "
            f"{summary.input_count} row(s), {len(summary.per_key_status)} partition(s), "
            f"{summary.notifications_sent} notification(s) sent",
            extra={
                "elapsed_seconds": round(summary.elapsed_seconds, 3),
                "retry_count": summary.retry_count,
                "input_count": summary.input_count,
                "mapped_count": summary.mapped_count,
            },
        )

        # Failed partitions and dropped rows are only reported here
        if summary.failed_keys:
            self.logger.warning(
                f"{len(summary.failed_keys)} partition(s) failed: {', '.join(summary.failed_keys)}",
                extra={"failed_keys": summary.failed_keys},
            )
        for failure in summary.map_failures:
            self.logger.warning(
                f"Dropped row {failure.unit_id} after {failure.attempts} attempt(s): {failure.errors[-1]}",
                extra={"unit_id": failure.unit_id, "errors": failure.errors},
            )

        if self.publish_metrics:
            metrics.record_run_summary(
                window=_window_label(summary),
                input_count=summary.input_count,
                map_failure_count=len(summary.map_failures),
                partition_statuses={key: o.status for key, o in summary.per_key_status.items()},
                partition_sizes={key: o.row_count for key, o in summary.per_key_status.items()},
                retries_by_stage=dict(stats.get("retries", {})),
                peak_concurrency=summary.concurrency,
            )


def _window_label(summary: ExecutionSummary) -> str:
    if summary.window_start is None or summary.window_end is None:
        return "unknown"
    return QueryWindow(start=summary.window_start, end=summary.window_end).label
