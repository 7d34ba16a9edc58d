"""
Unit tests for the map stage and the partition store.

Includes property-based testing with hypothesis for grouping.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from rep_digest.batch.mapper import map_record, unit_id_for
from rep_digest.batch.partitions import PartitionStore
from rep_digest.core.errors import UnitTransformError
from rep_digest.core.models import ADMIN_KEY

from factories import make_row


class TestMapRecord:
    """Tests for map_record"""

    def test_owned_row(self, row_factory):
        """Test that an owned row maps to its representative"""
        key, value = map_record(row_factory(1, owner_id="rep1", amount="100.00"))
        assert key == "rep1"
        assert value.amount == Decimal("100.00")
        assert value.document_number == "SO1"

    def test_unowned_row(self, row_factory):
        """Test that an unowned row maps to the admin partition"""
        key, _ = map_record(row_factory(1, owner_id=None))
        assert key == ADMIN_KEY

    def test_missing_field_raises(self, row_factory):
        """Test that a row without a document number is a transform error"""
        row = row_factory(5)
        del row["document_number"]

        with pytest.raises(UnitTransformError) as exc_info:
            map_record(row, "5")

        assert exc_info.value.unit_id == "5"
        assert "document_number" in str(exc_info.value)

    def test_non_mapping_raises(self):
        """Test that an unreadable row is a transform error, not a crash"""
        with pytest.raises(UnitTransformError) as exc_info:
            map_record(None, "row-3")
        assert "row-3" in str(exc_info.value)

    def test_unit_id_for(self, row_factory):
        """Test unit labels prefer the record id"""
        assert unit_id_for(row_factory(9), 0) == "9"
        assert unit_id_for({"record_id": ""}, 4) == "row-4"
        assert unit_id_for("garbage", 2) == "row-2"


class TestPartitionStore:
    """Tests for PartitionStore"""

    def test_group_keeps_emission_order(self, row_factory):
        """Test that values keep the order they were added in"""
        pairs = [map_record(row_factory(i, owner_id=owner)) for i, owner in
                 [(1, "rep1"), (2, None), (3, "rep1"), (4, "rep2"), (5, "rep1")]]
        store = PartitionStore.group(pairs)

        assert store.keys() == ["rep1", ADMIN_KEY, "rep2"]
        assert [v.document_number for v in store.values("rep1")] == ["SO1", "SO3", "SO5"]
        assert len(store) == 3
        assert store.value_count == 5
        assert "rep2" in store
        assert "rep3" not in store

    def test_values_are_a_snapshot(self, row_factory):
        """Test that callers cannot mutate a partition through values()"""
        store = PartitionStore()
        store.add("rep1", map_record(row_factory(1))[1])
        values = store.values("rep1")
        store.add("rep1", map_record(row_factory(2))[1])

        assert len(values) == 1
        assert len(store.values("rep1")) == 2

    def test_empty_store(self):
        """Test an empty store"""
        store = PartitionStore()
        assert len(store) == 0
        assert list(store.items()) == []
        assert repr(store) == "PartitionStore(keys=0, values=0)"

    @given(st.lists(st.sampled_from(["rep1", "rep2", "-5", None]), max_size=40))
    def test_every_value_lands_in_exactly_one_partition(self, owners):
        """Test grouping completeness and per-key ordering"""
        rows = [make_row(i, owner_id=owner) for i, owner in enumerate(owners, start=1)]
        store = PartitionStore.group(map_record(row) for row in rows)

        assert store.value_count == len(rows)
        assert sum(len(values) for _, values in store.items()) == len(rows)

        for key, values in store.items():
            expected = [
                f"SO{i}" for i, owner in enumerate(owners, start=1)
                if (owner or ADMIN_KEY) == key
            ]
            assert [v.document_number for v in values] == expected
