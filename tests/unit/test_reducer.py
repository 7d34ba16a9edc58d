"""
Unit tests for the reduce stage.

Tests report construction, recipient resolution and single-partition delivery.
"""

import pytest

from rep_digest.batch.mapper import map_record
from rep_digest.batch.reducer import (
    ADMIN_BODY,
    REPORT_HEADER,
    REPRESENTATIVE_BODY,
    Reducer,
    build_report,
    compose_message,
    resolve_recipient,
)
from rep_digest.batch.scheduler import ExecutionStats
from rep_digest.core.errors import PartitionDispatchError
from rep_digest.core.models import ADMIN_KEY


def values_for(row_factory, *specs):
    return [map_record(row_factory(record_id, amount=amount))[1] for record_id, amount in specs]


class FailingStore:
    def __init__(self):
        self.calls = 0

    def create(self, name, mime_type, content):
        self.calls += 1
        raise OSError("disk full")

    def read(self, handle):
        raise KeyError(handle.name)


class TestBuildReport:
    """Tests for build_report"""

    def test_rows_follow_values(self, row_factory):
        """Test header, row order and file name"""
        values = values_for(row_factory, (2, "250.00"), (1, "100.00"))
        artifact = build_report("rep1", values)

        assert artifact.filename == "sales_data_rep1.csv"
        assert artifact.header == REPORT_HEADER
        assert [row[2] for row in artifact.rows] == ["SO2", "SO1"]
        assert artifact.rows[0] == ("Customer C2", "c2@example.com", "SO2", "250.00")

    def test_duplicates_are_kept(self, row_factory):
        """Test that identical values produce identical rows, not one"""
        value = values_for(row_factory, (1, "10.00"))[0]
        artifact = build_report("rep1", [value, value])
        assert artifact.row_count == 2

    def test_missing_email_is_empty_cell(self, row_factory):
        """Test that a missing customer e-mail renders as an empty cell"""
        _, value = map_record(row_factory(1, customer_email=""))
        artifact = build_report("rep1", [value])
        assert artifact.rows[0][1] == ""

    def test_escape_flag(self, row_factory):
        """Test that the escape flag reaches the artifact"""
        _, value = map_record(row_factory(1, customer_name="Acme, Inc."))
        assert '"Acme, Inc."' in build_report("rep1", [value], escape_fields=True).content()
        assert '"Acme, Inc."' not in build_report("rep1", [value]).content()


class TestMessages:
    """Tests for recipient resolution and message text"""

    def test_resolve_recipient(self):
        """Test that only the admin key is redirected"""
        assert resolve_recipient(ADMIN_KEY, "sales-admin") == "sales-admin"
        assert resolve_recipient("rep1", "sales-admin") == "rep1"

    def test_admin_body(self):
        """Test the body sent for unassigned orders"""
        subject, body = compose_message(ADMIN_KEY)
        assert subject == "Monthly Sales Data"
        assert body == ADMIN_BODY
        assert "without assigned sales representatives" in body

    def test_representative_body(self):
        """Test the body sent to a representative"""
        _, body = compose_message("rep1", "Custom Subject")
        assert body == REPRESENTATIVE_BODY


class TestReducer:
    """Tests for Reducer.prepare / deliver / reduce"""

    def test_reduce_sends_once(self, row_factory, artifact_store, notifier, digest_settings):
        """Test that one partition yields one artifact and one notification"""
        stats = ExecutionStats()
        reducer = Reducer(artifact_store, notifier, digest_settings, stats=stats)

        outcome = reducer.reduce("rep1", values_for(row_factory, (1, "100.00"), (2, "250.00")))

        assert outcome.email_sent is True
        assert outcome.row_count == 2
        assert outcome.recipient == "rep1"
        assert outcome.artifact_id.startswith("sales_data_rep1.csv:")
        assert len(notifier.sent) == 1
        request = notifier.sent[0]
        assert request.sender == "sales-digest@example.com"
        assert request.attachment.filename == "sales_data_rep1.csv"
        assert b"SO1,100.00\n" in artifact_store.artifacts["sales_data_rep1.csv"]
        assert stats.usage_units == 2

    def test_admin_partition(self, row_factory, artifact_store, notifier, digest_settings):
        """Test that the admin partition goes to the admin mailbox"""
        reducer = Reducer(artifact_store, notifier, digest_settings)
        outcome = reducer.reduce(ADMIN_KEY, values_for(row_factory, (3, "50.00")))

        assert outcome.recipient == "sales-admin"
        assert notifier.sent[0].body == ADMIN_BODY

    def test_artifact_failure(self, row_factory, notifier, digest_settings):
        """Test that an artifact failure is a dispatch error and sends nothing"""
        reducer = Reducer(FailingStore(), notifier, digest_settings)

        with pytest.raises(PartitionDispatchError) as exc_info:
            reducer.reduce("rep1", values_for(row_factory, (1, "1.00")))

        assert exc_info.value.key == "rep1"
        assert "artifact creation failed" in str(exc_info.value)
        assert notifier.sent == []

    def test_retry_reuses_artifact(self, row_factory, artifact_store, digest_settings, flaky_notifier_factory):
        """Test that a retried delivery does not re-create the artifact"""
        notifier = flaky_notifier_factory({"rep1": 1})
        stats = ExecutionStats()
        reducer = Reducer(artifact_store, notifier, digest_settings, stats=stats)
        delivery = reducer.prepare("rep1", values_for(row_factory, (1, "1.00")))

        with pytest.raises(PartitionDispatchError):
            reducer.deliver(delivery, attempt=1)
        assert delivery.handle is not None
        assert delivery.sent is False

        outcome = reducer.deliver(delivery, attempt=2)

        assert outcome.attempts == 2
        assert notifier.attempts["rep1"] == 2
        assert len(notifier.sent) == 1
        # one artifact create plus two notify calls
        assert stats.usage_units == 3

    def test_delivered_partition_is_not_resent(self, row_factory, artifact_store, notifier, digest_settings):
        """Test that delivering an already-sent partition does not notify again"""
        reducer = Reducer(artifact_store, notifier, digest_settings)
        delivery = reducer.prepare("rep1", values_for(row_factory, (1, "1.00")))

        reducer.deliver(delivery)
        reducer.deliver(delivery)

        assert len(notifier.sent) == 1
