"""
Monthly sales digest pipeline.

Coordinates the flow: enumerate → map → group → reduce → summarize
"""

from collections.abc import Mapping, Sequence
from typing import Any

from rep_digest.batch.enumerator import InputEnumerator
from rep_digest.batch.journal import DispatchJournal
from rep_digest.batch.mapper import map_record, unit_id_for
from rep_digest.batch.partitions import PartitionStore
from rep_digest.batch.reducer import PartitionDelivery, Reducer
from rep_digest.batch.scheduler import ExecutionStats, StageScheduler
from rep_digest.batch.summarizer import Summarizer
from rep_digest.config import DigestSettings
from rep_digest.core.errors import FatalInputError
from rep_digest.core.models import ExecutionSummary, KeyOutcome, QueryWindow, UnitFailure
from rep_digest.notifications.notifier import Notifier
from rep_digest.observability import metrics
from rep_digest.observability.logger import get_logger, log_operation
from rep_digest.store.artifacts import ArtifactStore
from rep_digest.store.sales_orders import SalesOrderSource

logger = get_logger(__name__)


class DigestPipeline:
    """
    Staged batch job producing one sales report per representative.

    Flow:
    1. get_input: query the window's top-level sales orders (fatal on failure)
    2. map: project each row onto its partition, in parallel, then wait for all
    3. reduce: per partition, build the CSV and send one notification, in parallel
    4. summarize: log and publish per-key outcomes and run statistics

    Each run gets its own scheduler and statistics; the pipeline object itself
    keeps no state between runs.
    """

    def __init__(
        self,
        source: SalesOrderSource,
        artifact_store: ArtifactStore,
        notifier: Notifier,
        settings: DigestSettings | None = None,
        journal: DispatchJournal | None = None,
        summarizer: Summarizer | None = None,
    ):
        self.source = source
        self.artifact_store = artifact_store
        self.notifier = notifier
        self.settings = settings or DigestSettings()
        self.journal = journal
        self.summarizer = summarizer or Summarizer()

    def get_input(self, window: QueryWindow, stats: ExecutionStats) -> list[Mapping[str, Any]]:
        """
        Enumerate the window's rows in full.

        Raises:
            FatalInputError: If the query cannot be issued or returns malformed rows
        """
        enumerator = InputEnumerator(self.source, window)
        stats.add_usage()
        rows = enumerator.materialize()
        logger.info(f"Read {len(rows)} sales order row(s)", extra={"input_count": len(rows)})
        return rows

    def map(
        self, rows: Sequence[Mapping[str, Any]], scheduler: StageScheduler
    ) -> tuple[PartitionStore, list[UnitFailure]]:
        """Map every row, then group by key once all units have finished."""
        results = scheduler.run_map(
            rows,
            lambda position, row: map_record(row, unit_id_for(row, position)),
            unit_id_for,
        )

        partitions = PartitionStore()
        failures: list[UnitFailure] = []
        for result in results:
            if result.succeeded:
                key, value = result.value
                partitions.add(key, value)
            else:
                failures.append(
                    UnitFailure(stage="map", unit_id=result.unit_id, attempts=result.attempts, errors=result.errors)
                )

        logger.info(
            f"Grouped {partitions.value_count} row(s) into {len(partitions)} partition(s)",
            extra={"partitions": len(partitions), "map_failures": len(failures)},
        )
        return partitions, failures

    def reduce(
        self,
        partitions: PartitionStore,
        scheduler: StageScheduler,
        window: QueryWindow,
        resume: bool = False,
    ) -> dict[str, KeyOutcome]:
        """Deliver every partition; failures are isolated to their own key."""
        reducer = Reducer(self.artifact_store, self.notifier, self.settings, stats=scheduler.stats)

        already_sent: set[str] = set()
        if resume and self.journal is not None:
            already_sent = self.journal.dispatched_keys(window)

        outcomes: dict[str, KeyOutcome] = {}
        deliveries: dict[str, PartitionDelivery] = {}
        for key, values in partitions.items():
            if key in already_sent:
                logger.info(f"Skipping partition {key}: already notified for {window.label}")
                outcomes[key] = KeyOutcome(key=key, row_count=len(values), email_sent=True, skipped=True)
            else:
                deliveries[key] = reducer.prepare(key, values)

        def deliver(key: str, attempt: int) -> KeyOutcome:
            outcome = reducer.deliver(deliveries[key], attempt)
            if self.journal is not None:
                self.journal.record(window, key)
            return outcome

        results = scheduler.run_reduce(deliveries, deliver)

        for key, delivery in deliveries.items():
            result = results[key]
            if result.succeeded:
                outcome = result.value
                outcome.errors = list(result.errors)
            else:
                outcome = KeyOutcome(
                    key=key,
                    row_count=delivery.artifact.row_count,
                    email_sent=delivery.sent,
                    attempts=result.attempts,
                    errors=list(result.errors),
                    artifact_id=delivery.handle.artifact_id if delivery.handle else None,
                    recipient=delivery.request.recipient,
                )
            outcomes[key] = outcome
        return outcomes

    def summarize(
        self,
        outcomes: Mapping[str, KeyOutcome],
        stats: ExecutionStats,
        map_failures: Sequence[UnitFailure],
        window: QueryWindow,
        input_count: int,
        mapped_count: int,
    ) -> ExecutionSummary:
        return self.summarizer.summarize(
            outcomes,
            stats.snapshot(),
            map_failures=map_failures,
            window=window,
            input_count=input_count,
            mapped_count=mapped_count,
        )

    def run(self, window: QueryWindow, resume: bool = False) -> ExecutionSummary:
        """
        Run all four stages for one window.

        Args:
            window: Creation-date window to report on
            resume: Skip partitions the dispatch journal already records for this window

        Returns:
            The execution summary

        Raises:
            FatalInputError: If the input stage fails; nothing is mapped or sent
        """
        stats = ExecutionStats()
        scheduler = StageScheduler(self.settings.max_concurrency, self.settings.retry, stats)
        stats.start()

        try:
            with log_operation("input stage", logger=logger, window=window.label), \
                    metrics.track_duration(metrics.stage_duration_seconds, stage="input"):
                rows = self.get_input(window, stats)
        except FatalInputError:
            metrics.increment_counter(metrics.runs_total, 1, status="aborted")
            raise

        with log_operation("map stage", logger=logger, window=window.label), \
                metrics.track_duration(metrics.stage_duration_seconds, stage="map"):
            partitions, map_failures = self.map(rows, scheduler)

        with log_operation("reduce stage", logger=logger, window=window.label), \
                metrics.track_duration(metrics.stage_duration_seconds, stage="reduce"):
            outcomes = self.reduce(partitions, scheduler, window, resume=resume)

        stats.stop()
        with metrics.track_duration(metrics.stage_duration_seconds, stage="summarize"):
            summary = self.summarize(
                outcomes,
                stats,
                map_failures,
                window,
                input_count=len(rows),
                mapped_count=partitions.value_count,
            )
        metrics.increment_counter(metrics.runs_total, 1, status="completed")
        return summary
