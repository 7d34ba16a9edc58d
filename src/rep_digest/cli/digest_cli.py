"""
Command-line interface for the monthly sales digest.

Usage:
    python -m rep_digest.cli.digest_cli run [--reference-date YYYY-MM-DD] [options]
    python -m rep_digest.cli.digest_cli window [--reference-date YYYY-MM-DD]
"""

import argparse
import sys
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from rep_digest.batch.journal import DispatchJournal
from rep_digest.batch.pipeline import DigestPipeline
from rep_digest.config import DigestSettings, load_settings
from rep_digest.core.errors import ConfigurationError, FatalInputError
from rep_digest.core.models import ExecutionSummary, previous_month_window
from rep_digest.notifications.notifier import LoggingNotifier, SmtpNotifier
from rep_digest.observability.logger import get_logger
from rep_digest.observability.metrics import generate_metrics, start_metrics_server
from rep_digest.store.artifacts import FileArtifactStore, MemoryArtifactStore
from rep_digest.store.connection import DatabaseConnectionPool
from rep_digest.store.sales_orders import InMemorySalesOrderSource, PostgresSalesOrderSource

logger = get_logger(__name__)


def apply_overrides(settings: DigestSettings, args) -> DigestSettings:
    """Fold command-line overrides into the loaded settings."""
    update = {}
    if args.max_concurrency is not None:
        update["max_concurrency"] = args.max_concurrency
    if args.max_retries is not None:
        update["retry"] = settings.retry.model_copy(update={"max_attempts": args.max_retries + 1})
    if args.artifact_dir is not None:
        update["artifact_dir"] = args.artifact_dir
    if args.escape_csv:
        update["escape_csv_fields"] = True
    if not update:
        return settings
    # Overrides pass the same bounds checks as the file
    try:
        return DigestSettings.model_validate({**settings.model_dump(), **update})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid command-line override: {e}") from e


def log_summary(summary: ExecutionSummary) -> None:
    logger.info("=" * 60)
    logger.info("DIGEST COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Window: {summary.window_start} .. {summary.window_end} (end exclusive)")
    logger.info(f"Rows read: {summary.input_count}")
    logger.info(f"Rows mapped: {summary.mapped_count} ({len(summary.map_failures)} dropped)")
    logger.info(f"Partitions: {len(summary.per_key_status)}")
    logger.info(f"Notifications sent: {summary.notifications_sent}")
    if summary.failed_keys:
        logger.warning(f"Failed partitions: {', '.join(summary.failed_keys)}")
    logger.info("=" * 60)


def run_command(args) -> int:
    """
    Execute one digest run.

    Returns:
        Process exit code (partition failures still exit 0; see the summary)
    """
    try:
        settings = apply_overrides(load_settings(args.config), args)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    window = previous_month_window(args.reference_date)
    logger.info(f"Building sales digest for {window.label}")

    if args.resume and settings.journal_path is None:
        logger.error("--resume needs journal_path in the settings (or DIGEST_JOURNAL_PATH)")
        return 1

    pool = None
    if args.fixture:
        try:
            source = InMemorySalesOrderSource.from_json(args.fixture)
        except FatalInputError as e:
            logger.error(f"Digest aborted: {e}")
            return 1
    else:
        try:
            pool = DatabaseConnectionPool(
                host=args.db_host,
                port=args.db_port,
                database=args.db_name,
                user=args.db_user,
                password=args.db_password,
            )
            pool.open()
        except Exception as e:
            logger.error(f"Cannot connect to the sales order store: {e}")
            return 1
        source = PostgresSalesOrderSource(pool)

    if args.dry_run:
        logger.info("DRY RUN MODE: reports are kept in memory and no e-mail is sent")
        artifact_store = MemoryArtifactStore()
        notifier = LoggingNotifier()
    else:
        artifact_store = FileArtifactStore(settings.artifact_dir)
        notifier = SmtpNotifier(settings.smtp, settings.recipients)

    journal = DispatchJournal(settings.journal_path) if settings.journal_path else None

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    try:
        pipeline = DigestPipeline(
            source=source,
            artifact_store=artifact_store,
            notifier=notifier,
            settings=settings,
            journal=None if args.dry_run else journal,
        )
        summary = pipeline.run(window, resume=args.resume)
    except FatalInputError as e:
        logger.error(f"Digest aborted: {e}", exc_info=True)
        return 1
    finally:
        if pool is not None:
            pool.close()

    log_summary(summary)
    if args.metrics_file:
        write_metrics_file(args.metrics_file)
    return 0


def write_metrics_file(path) -> None:
    """Write the registry in text format for a node_exporter textfile collector."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(generate_metrics())
    logger.info(f"Metrics written to {target}")


def window_command(args) -> int:
    window = previous_month_window(args.reference_date)
    print(f"{window.start.isoformat()} {window.end.isoformat()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rep-digest",
        description="Monthly per-representative sales digest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Send last month's digest
  rep-digest run

  # Re-run September 2026 without sending e-mail
  rep-digest run --reference-date 2026-10-01 --dry-run

  # Resume an interrupted run, skipping partitions already notified
  rep-digest run --reference-date 2026-10-01 --resume

  # Run against a JSON fixture instead of PostgreSQL
  rep-digest run --fixture tests/fixtures/sales_orders.json --dry-run
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Build and send the digest")
    window_parser = subparsers.add_parser("window", help="Print the query window")

    for sub in (run_parser, window_parser):
        sub.add_argument(
            "--reference-date",
            type=date.fromisoformat,
            default=None,
            help="Report on the month before this date (default: today)",
        )

    run_parser.add_argument("--config", default=None, help="Path to digest YAML settings")
    run_parser.add_argument("--max-concurrency", type=int, default=None, help="Worker pool size")
    run_parser.add_argument("--max-retries", type=int, default=None, help="Retries per unit after the first attempt")
    run_parser.add_argument("--artifact-dir", default=None, help="Directory for CSV reports")
    run_parser.add_argument("--escape-csv", action="store_true", help="Quote cells containing commas or quotes")
    run_parser.add_argument("--dry-run", action="store_true", help="Build reports without storing or sending them")
    run_parser.add_argument("--resume", action="store_true", help="Skip partitions already notified for this window")
    run_parser.add_argument("--fixture", default=None, help="Read sales orders from a JSON file instead of PostgreSQL")
    run_parser.add_argument("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port")
    run_parser.add_argument("--metrics-file", default=None, help="Write Prometheus metrics to this file when the run ends")

    run_parser.add_argument("--db-host", default=None, help="Database host (default: env DB_HOST or localhost)")
    run_parser.add_argument("--db-port", type=int, default=None, help="Database port (default: env DB_PORT or 5432)")
    run_parser.add_argument("--db-name", default=None, help="Database name (default: env DB_NAME or sales)")
    run_parser.add_argument("--db-user", default=None, help="Database user (default: env DB_USER or digest)")
    run_parser.add_argument("--db-password", default=None, help="Database password (default: env DB_PASSWORD)")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return run_command(args)
    if args.command == "window":
        return window_command(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
