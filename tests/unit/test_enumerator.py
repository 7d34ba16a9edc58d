"""
Unit tests for the input enumerator and the in-memory sales order source.
"""

import json
from datetime import date

import pytest

from rep_digest.batch.enumerator import InputEnumerator
from rep_digest.core.errors import FatalInputError
from rep_digest.core.models import QueryWindow
from rep_digest.store.sales_orders import (
    SALES_ORDER_COLUMNS,
    InMemorySalesOrderSource,
    SalesOrderQuery,
)


class BrokenSource:
    def fetch(self, query):
        raise ConnectionError("connection refused")


class TruncatedSource:
    """Yields some rows and then fails mid-stream."""

    def __init__(self, rows):
        self.rows = rows

    def fetch(self, query):
        yield from self.rows
        raise ConnectionError("server closed the connection")


class TestInMemorySource:
    """Tests for InMemorySalesOrderSource filtering"""

    def test_window_filter(self, row_factory, september_window):
        """Test that only rows created inside the window are returned"""
        source = InMemorySalesOrderSource([
            row_factory(1, created_at="2026-08-31"),
            row_factory(2, created_at="2026-09-01"),
            row_factory(3, created_at="2026-09-30T23:59:59"),
            row_factory(4, created_at="2026-10-01"),
        ])
        rows = list(source.fetch(SalesOrderQuery(window=september_window)))
        assert [row["record_id"] for row in rows] == ["2", "3"]

    def test_mainline_filter(self, row_factory, september_window):
        """Test that non-mainline lines are excluded by default"""
        source = InMemorySalesOrderSource([
            row_factory(1),
            row_factory(2, mainline=False),
        ])
        rows = list(source.fetch(SalesOrderQuery(window=september_window)))
        assert [row["record_id"] for row in rows] == ["1"]

        all_rows = list(source.fetch(SalesOrderQuery(window=september_window, mainline_only=False)))
        assert len(all_rows) == 2

    def test_ordered_by_record_id(self, row_factory, september_window):
        """Test numeric ordering of record ids"""
        source = InMemorySalesOrderSource([row_factory(10), row_factory(9), row_factory(100)])
        rows = list(source.fetch(SalesOrderQuery(window=september_window)))
        assert [row["record_id"] for row in rows] == ["9", "10", "100"]

    def test_projection(self, row_factory, september_window):
        """Test that rows carry exactly the projected columns"""
        source = InMemorySalesOrderSource([row_factory(1)])
        row = next(iter(source.fetch(SalesOrderQuery(window=september_window))))
        assert tuple(row) == SALES_ORDER_COLUMNS

    def test_from_json(self, tmp_path, row_factory, september_window):
        """Test loading rows from a JSON fixture"""
        path = tmp_path / "orders.json"
        path.write_text(json.dumps({"rows": [row_factory(1), row_factory(2)]}))

        source = InMemorySalesOrderSource.from_json(path)

        assert len(list(source.fetch(SalesOrderQuery(window=september_window)))) == 2

    def test_from_json_missing_file(self, tmp_path):
        """Test that a missing fixture is an input failure"""
        with pytest.raises(FatalInputError):
            InMemorySalesOrderSource.from_json(tmp_path / "absent.json")

    @pytest.mark.parametrize("content", ["{not json", '{"orders": []}', '{"rows": 5}', "[1, 2]"])
    def test_from_json_bad_content(self, tmp_path, content):
        """Test that unparsable or wrongly shaped fixtures are input failures"""
        path = tmp_path / "orders.json"
        path.write_text(content)

        with pytest.raises(FatalInputError):
            InMemorySalesOrderSource.from_json(path)

    def test_unknown_column(self, september_window):
        """Test that an unknown projected column is rejected"""
        with pytest.raises(ValueError):
            SalesOrderQuery(window=september_window, columns=("record_id", "margin"))


class TestInputEnumerator:
    """Tests for InputEnumerator"""

    def test_query_uses_window(self, row_factory, september_window):
        """Test that the issued query carries the window and the mainline filter"""
        source = InMemorySalesOrderSource([row_factory(1)])
        rows = InputEnumerator(source, september_window).materialize()

        assert len(rows) == 1
        query = source.queries[0]
        assert query.window == september_window
        assert query.mainline_only is True
        assert query.record_kind == "sales_order"

    def test_restartable(self, row_factory, september_window):
        """Test that iterating twice re-issues the query and yields the same rows"""
        source = InMemorySalesOrderSource([row_factory(2), row_factory(1)])
        enumerator = InputEnumerator(source, september_window)

        first = list(enumerator)
        second = list(enumerator)

        assert first == second
        assert enumerator.queries_issued == 2
        assert len(source.queries) == 2

    def test_empty_window(self, row_factory):
        """Test that a window with no orders enumerates nothing"""
        source = InMemorySalesOrderSource([row_factory(1)])
        window = QueryWindow(start=date(2025, 1, 1), end=date(2025, 2, 1))
        assert InputEnumerator(source, window).materialize() == []

    def test_query_failure_is_fatal(self, september_window):
        """Test that a query that cannot be issued aborts the run"""
        with pytest.raises(FatalInputError) as exc_info:
            InputEnumerator(BrokenSource(), september_window).materialize()
        assert "could not be issued" in str(exc_info.value)

    def test_mid_stream_failure_is_fatal(self, row_factory, september_window):
        """Test that a partial read is not returned"""
        source = TruncatedSource([row_factory(1), row_factory(2)])
        with pytest.raises(FatalInputError) as exc_info:
            InputEnumerator(source, september_window).materialize()
        assert "after 2 row(s)" in str(exc_info.value)

    def test_malformed_row_is_fatal(self, september_window):
        """Test that a non-mapping row aborts the run"""
        class TupleSource:
            def fetch(self, query):
                return [("1", "C1")]

        with pytest.raises(FatalInputError) as exc_info:
            InputEnumerator(TupleSource(), september_window).materialize()
        assert "malformed row" in str(exc_info.value)
