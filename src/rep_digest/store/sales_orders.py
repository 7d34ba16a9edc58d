"""
Sales-order record sources.

Both sources answer a SalesOrderQuery with flat row mappings ordered by
record id, so a re-issued query yields the same rows in the same order.
"""

import json
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal, Protocol

from psycopg import sql
from pydantic import BaseModel, field_validator

from rep_digest.core.errors import FatalInputError
from rep_digest.core.models import QueryWindow
from rep_digest.store.connection import DatabaseConnectionPool

SALES_ORDER_COLUMNS = (
    "record_id",
    "customer_id",
    "customer_name",
    "customer_email",
    "document_number",
    "amount",
    "owner_id",
)

# projection name -> SQL expression over sales_order (so) joined to customer (c)
COLUMN_EXPRESSIONS = {
    "record_id": "so.id",
    "customer_id": "so.customer_id",
    "customer_name": "c.name",
    "customer_email": "so.email",
    "document_number": "so.tranid",
    "amount": "so.total",
    "owner_id": "so.sales_rep_id",
}


class SalesOrderQuery(BaseModel):
    """
    Filtered query over sales orders.

    Attributes:
        record_kind: Record type selector
        window: Creation-date window
        mainline_only: Restrict to top-level order lines
        columns: Projected output fields
    """

    record_kind: Literal["sales_order"] = "sales_order"
    window: QueryWindow
    mainline_only: bool = True
    columns: tuple[str, ...] = SALES_ORDER_COLUMNS

    @field_validator("columns")
    @classmethod
    def check_columns(cls, v):
        """Validate that every projected column has a known source expression."""
        unknown = [name for name in v if name not in COLUMN_EXPRESSIONS]
        if unknown:
            raise ValueError(f"Unknown sales order columns: {', '.join(unknown)}")
        return v

    class Config:
        frozen = True


class SalesOrderSource(Protocol):
    """Query interface consumed by the input enumerator."""

    def fetch(self, query: SalesOrderQuery) -> Iterable[Mapping[str, Any]]:
        ...


class PostgresSalesOrderSource:
    """
    Reads sales orders from PostgreSQL.

    Expected tables (see docker/init-db.sql):
        customer(id, name)
        sales_order(id, customer_id, email, tranid, total, sales_rep_id, mainline, created_at)
    """

    def __init__(self, pool: DatabaseConnectionPool, batch_size: int = 500):
        self.pool = pool
        self.batch_size = batch_size

    def build_statement(self, query: SalesOrderQuery) -> sql.Composed:
        projection = sql.SQL(", ").join(
            sql.SQL("{} AS {}").format(sql.SQL(COLUMN_EXPRESSIONS[name]), sql.Identifier(name))
            for name in query.columns
        )
        conditions = [sql.SQL("so.created_at >= %(start)s"), sql.SQL("so.created_at < %(end)s")]
        if query.mainline_only:
            conditions.append(sql.SQL("so.mainline"))

        return sql.SQL(
            "SELECT {projection} FROM sales_order so "
            "JOIN customer c ON c.id = so.customer_id "
            "WHERE {conditions} ORDER BY so.id"
        ).format(
            projection=projection,
            conditions=sql.SQL(" AND ").join(conditions),
        )

    def fetch(self, query: SalesOrderQuery) -> Iterator[dict]:
        statement = self.build_statement(query)
        params = {"start": query.window.start, "end": query.window.end}
        return self.pool.stream_query(statement, params, batch_size=self.batch_size)


def _created_on(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _record_order(row: Mapping[str, Any]) -> tuple:
    record_id = str(row.get("record_id", ""))
    if record_id.isdigit():
        return (0, int(record_id), "")
    return (1, 0, record_id)


class InMemorySalesOrderSource:
    """
    Sales orders held in memory, filtered and ordered the same way as the SQL source.

    Each row carries the projected columns plus ``created_at`` and an optional
    ``mainline`` flag (defaults to True).
    """

    def __init__(self, rows: Iterable[Mapping[str, Any]]):
        self.rows = [dict(row) for row in rows]
        self.queries: list[SalesOrderQuery] = []

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemorySalesOrderSource":
        """
        Load rows from a JSON list, or from an object with a "rows" list.

        Raises:
            FatalInputError: If the file is missing, unparsable or wrongly shaped
        """
        try:
            with open(path) as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise FatalInputError(f"Sales order fixture {path} could not be read: {e}") from e

        rows = payload.get("rows") if isinstance(payload, dict) else payload
        if not isinstance(rows, list) or not all(isinstance(row, Mapping) for row in rows):
            raise FatalInputError(
                f"Sales order fixture {path} must be a list of rows or an object with a \"rows\" list"
            )
        return cls(rows)

    def fetch(self, query: SalesOrderQuery) -> Iterator[dict]:
        self.queries.append(query)
        matching = [
            row for row in self.rows
            if query.window.contains(_created_on(row["created_at"]))
            and (row.get("mainline", True) or not query.mainline_only)
        ]
        for row in sorted(matching, key=_record_order):
            yield {name: row.get(name) for name in query.columns}
