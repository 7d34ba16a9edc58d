"""
Input stage: enumerate the window's top-level sales orders.
"""

from collections.abc import Iterator, Mapping
from typing import Any

from rep_digest.core.errors import FatalInputError
from rep_digest.core.models import QueryWindow
from rep_digest.observability.logger import get_logger
from rep_digest.store.sales_orders import SalesOrderQuery, SalesOrderSource

logger = get_logger(__name__)


class InputEnumerator:
    """
    Lazy, restartable sequence of raw sales-order rows.

    Every iteration re-issues the same query, so no cursor or offset is kept
    between runs; a restarted run re-derives exactly the same rows provided
    the store has not changed.
    """

    def __init__(self, source: SalesOrderSource, window: QueryWindow):
        self.source = source
        self.window = window
        self.query = SalesOrderQuery(window=window)
        self.queries_issued = 0

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        self.queries_issued += 1
        logger.info(
            f"Querying sales orders created in {self.window.label}",
            extra={"window_start": self.window.start.isoformat(), "window_end": self.window.end.isoformat()},
        )

        try:
            rows = iter(self.source.fetch(self.query))
        except Exception as e:
            raise FatalInputError(f"Sales order query could not be issued: {e}") from e

        position = 0
        while True:
            try:
                row = next(rows)
            except StopIteration:
                return
            except Exception as e:
                raise FatalInputError(
                    f"Sales order query failed after {position} row(s): {e}"
                ) from e

            if not isinstance(row, Mapping):
                raise FatalInputError(
                    f"Sales order query returned a malformed row at position {position}: "
                    f"expected a mapping, got {type(row).__name__}"
                )
            position += 1
            yield row

    def materialize(self) -> list[Mapping[str, Any]]:
        """Drain the query; a failure part-way through discards everything read so far."""
        return list(self)
