"""
Execution summary models produced once per pipeline run.
"""

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field


class KeyOutcome(BaseModel):
    """
    Result of reducing one partition.

    Attributes:
        key: Partition key (representative id or "admin")
        row_count: Report rows built for the key
        email_sent: Whether the notification was handed off
        attempts: Reduce attempts made (0 when skipped on resume)
        errors: Error messages from failed attempts
        artifact_id: Stored artifact id, once created
        recipient: Resolved recipient identifier
        skipped: True when a resumed run found the key already dispatched
    """

    key: str
    row_count: int = Field(0, ge=0)
    email_sent: bool = False
    attempts: int = Field(0, ge=0)
    errors: list[str] = Field(default_factory=list)
    artifact_id: str | None = None
    recipient: str | None = None
    skipped: bool = False

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        return "sent" if self.email_sent else "failed"


class UnitFailure(BaseModel):
    """A unit that exhausted its retry budget."""

    stage: Literal["map", "reduce"]
    unit_id: str
    attempts: int = Field(..., ge=1)
    errors: list[str] = Field(..., min_length=1)


class ExecutionSummary(BaseModel):
    """
    Statistics for one run; logged, never fed back into the pipeline.

    Attributes:
        per_key_status: Partition key -> outcome
        usage_units: External interface calls made (query, artifact, notify)
        elapsed_seconds: Wall time from input stage start to reduce stage end
        concurrency: Peak units in flight
        yield_count: Times a failed reduce unit gave its worker slot back to the pool
        retry_count: Retry attempts across map and reduce
        input_count: Rows enumerated
        mapped_count: Rows that reached a partition
        map_failures: Rows dropped in the map stage
        window_start: First day of the query window (inclusive)
        window_end: Day after the query window (exclusive)
    """

    per_key_status: dict[str, KeyOutcome] = Field(default_factory=dict)
    usage_units: int = Field(0, ge=0)
    elapsed_seconds: float = Field(0.0, ge=0.0)
    concurrency: int = Field(0, ge=0)
    yield_count: int = Field(0, ge=0)
    retry_count: int = Field(0, ge=0)
    input_count: int = Field(0, ge=0)
    mapped_count: int = Field(0, ge=0)
    map_failures: list[UnitFailure] = Field(default_factory=list)
    window_start: date | None = None
    window_end: date | None = None

    @property
    def failed_keys(self) -> list[str]:
        return [key for key, outcome in self.per_key_status.items() if outcome.status == "failed"]

    @property
    def notifications_sent(self) -> int:
        return sum(1 for outcome in self.per_key_status.values() if outcome.status == "sent")

    class Config:
        json_schema_extra = {
            "example": {
                "per_key_status": {
                    "rep1": {"key": "rep1", "row_count": 2, "email_sent": True, "attempts": 1},
                    "admin": {"key": "admin", "row_count": 1, "email_sent": True, "attempts": 1},
                },
                "usage_units": 5,
                "elapsed_seconds": 1.42,
                "concurrency": 2,
                "yield_count": 0,
                "retry_count": 0,
                "input_count": 3,
                "mapped_count": 3,
                "window_start": "2026-09-01",
                "window_end": "2026-10-01",
            }
        }
