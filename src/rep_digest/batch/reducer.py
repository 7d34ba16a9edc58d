"""
Reduce stage: one report and one notification per partition.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from rep_digest.config import DigestSettings
from rep_digest.core.errors import PartitionDispatchError
from rep_digest.core.models import (
    ADMIN_KEY,
    ArtifactHandle,
    KeyOutcome,
    NotificationRequest,
    PartitionValue,
    ReportArtifact,
)
from rep_digest.notifications.notifier import Notifier
from rep_digest.observability.logger import get_logger
from rep_digest.store.artifacts import ArtifactStore

logger = get_logger(__name__)

REPORT_HEADER = (
    "Customer Name",
    "Customer Email",
    "Sales Order Document Number",
    "Sales Amount",
)

ADMIN_BODY = (
    "Please find attached the sales data for customers without assigned sales representatives. "
    "Please add sales representatives for these customers."
)
REPRESENTATIVE_BODY = "Please find attached your sales data for the previous month."


def report_row(value: PartitionValue) -> tuple[str, str, str, str]:
    return (
        value.customer_name,
        value.customer_email or "",
        value.document_number,
        str(value.amount),
    )


def build_report(key: str, values: Sequence[PartitionValue], escape_fields: bool = False) -> ReportArtifact:
    """Header plus one row per value, in the order given; no sorting, no dedup."""
    return ReportArtifact(
        filename=f"sales_data_{key}.csv",
        header=REPORT_HEADER,
        rows=tuple(report_row(value) for value in values),
        escaped=escape_fields,
    )


def resolve_recipient(key: str, admin_recipient: str) -> str:
    return admin_recipient if key == ADMIN_KEY else key


def compose_message(key: str, subject: str = "Monthly Sales Data") -> tuple[str, str]:
    body = ADMIN_BODY if key == ADMIN_KEY else REPRESENTATIVE_BODY
    return subject, body


@dataclass
class PartitionDelivery:
    """
    Everything needed to deliver one partition, built once per run.

    The artifact handle is cached after the first successful create so a
    retried delivery only repeats the step that failed.
    """

    key: str
    request: NotificationRequest
    handle: ArtifactHandle | None = None
    sent: bool = False

    @property
    def artifact(self) -> ReportArtifact:
        return self.request.attachment


class Reducer:
    """
    Builds each partition's report and dispatches its notification.

    Args:
        artifact_store: Artifact-creation interface
        notifier: Notification interface
        settings: Sender, admin mailbox, subject and CSV escaping
        stats: Optional accumulator; each store or notifier call adds one usage unit
    """

    def __init__(self, artifact_store: ArtifactStore, notifier: Notifier, settings: DigestSettings, stats=None):
        self.artifact_store = artifact_store
        self.notifier = notifier
        self.settings = settings
        self.stats = stats

    def _use(self) -> None:
        if self.stats is not None:
            self.stats.add_usage()

    def prepare(self, key: str, values: Sequence[PartitionValue]) -> PartitionDelivery:
        """Build the artifact and the notification request; no I/O."""
        artifact = build_report(key, values, escape_fields=self.settings.escape_csv_fields)
        subject, body = compose_message(key, self.settings.subject)
        request = NotificationRequest(
            sender=self.settings.sender,
            recipient=resolve_recipient(key, self.settings.admin_recipient),
            subject=subject,
            body=body,
            attachment=artifact,
        )
        return PartitionDelivery(key=key, request=request)

    def deliver(self, delivery: PartitionDelivery, attempt: int = 1) -> KeyOutcome:
        """
        Create the artifact (once) and dispatch the notification (once).

        Raises:
            PartitionDispatchError: If artifact creation or dispatch fails
        """
        key = delivery.key
        artifact = delivery.artifact

        if delivery.handle is None:
            self._use()
            try:
                delivery.handle = self.artifact_store.create(
                    artifact.filename, artifact.mime_type, artifact.encoded()
                )
            except Exception as e:
                raise PartitionDispatchError(key, f"artifact creation failed: {e}") from e

        if not delivery.sent:
            self._use()
            try:
                self.notifier.send(delivery.request, [delivery.handle])
            except Exception as e:
                raise PartitionDispatchError(key, f"notification dispatch failed: {e}") from e
            delivery.sent = True

        logger.info(
            f"Email sent to: {delivery.request.recipient}",
            extra={"partition_key": key, "rows": artifact.row_count, "attempt": attempt},
        )
        return KeyOutcome(
            key=key,
            row_count=artifact.row_count,
            email_sent=True,
            attempts=attempt,
            artifact_id=delivery.handle.artifact_id,
            recipient=delivery.request.recipient,
        )

    def reduce(self, key: str, values: Sequence[PartitionValue]) -> KeyOutcome:
        """Single-attempt reduce of one partition; retries are the scheduler's job."""
        return self.deliver(self.prepare(key, values))
