"""
Core data models for the monthly sales digest.

All models use Pydantic for runtime validation and type safety.
"""

from .notification import NotificationRequest
from .partition import ADMIN_KEY, PartitionValue, partition_key_for
from .raw_record import CustomerRef, OwnerRef, RawRecord
from .report import ArtifactHandle, ReportArtifact
from .summary import ExecutionSummary, KeyOutcome, UnitFailure
from .window import QueryWindow, previous_month_window

__all__ = [
    "ADMIN_KEY",
    "CustomerRef",
    "OwnerRef",
    "RawRecord",
    "PartitionValue",
    "partition_key_for",
    "ReportArtifact",
    "ArtifactHandle",
    "NotificationRequest",
    "KeyOutcome",
    "UnitFailure",
    "ExecutionSummary",
    "QueryWindow",
    "previous_month_window",
]
