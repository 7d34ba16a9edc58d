"""
Map stage: raw store row -> (partition key, partition value).
"""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from rep_digest.core.errors import UnitTransformError
from rep_digest.core.models import PartitionValue, RawRecord, partition_key_for


def unit_id_for(row: Mapping[str, Any], position: int) -> str:
    record_id = row.get("record_id") if isinstance(row, Mapping) else None
    return str(record_id) if record_id not in (None, "") else f"row-{position}"


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc']) or 'row'}: {item['msg']}"
        for item in error.errors()
    )


def map_record(row: Mapping[str, Any], unit_id: str | None = None) -> tuple[str, PartitionValue]:
    """
    Validate a raw row and project it onto its partition.

    Orders without a sales representative go to the "admin" partition, so
    every valid row lands in exactly one partition.

    Args:
        row: Flat sales-order row from the record store
        unit_id: Identifier used in error messages (defaults to the record id)

    Returns:
        (partition key, partition value)

    Raises:
        UnitTransformError: If the row is missing fields or carries malformed values
    """
    unit_id = unit_id or unit_id_for(row, 0)
    try:
        raw = RawRecord.from_row(row)
    except ValidationError as e:
        raise UnitTransformError(unit_id, _describe(e)) from e
    except (AttributeError, TypeError) as e:
        raise UnitTransformError(unit_id, f"unreadable row: {e}") from e

    return partition_key_for(raw), PartitionValue.from_raw(raw)
