"""
ReportArtifact and ArtifactHandle models for the per-partition CSV report.
"""

import csv
import io
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class ReportArtifact(BaseModel):
    """
    Tabular report built once per partition; never mutated after creation.

    Attributes:
        filename: Attachment file name (sales_data_<key>.csv)
        mime_type: Always text/csv
        header: Column titles, in fixed order
        rows: Data rows, one per partition value, in emission order
        escaped: When True, cells containing delimiters or quotes are quoted
    """

    filename: str = Field(..., min_length=1)
    mime_type: Literal["text/csv"] = "text/csv"
    header: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...] = ()
    escaped: bool = False

    @field_validator("rows")
    @classmethod
    def check_row_width(cls, v, info):
        """Validate that every row has as many cells as the header."""
        header = info.data.get("header", ())
        for index, row in enumerate(v):
            if len(row) != len(header):
                raise ValueError(
                    f"row {index} has {len(row)} cells, header has {len(header)}"
                )
        return v

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def content(self) -> str:
        """Render the artifact as CSV text, one line per row, newline terminated."""
        lines = [self.header, *self.rows]
        if not self.escaped:
            # Literal join: a comma inside a cell shifts the columns
            return "".join(",".join(line) + "\n" for line in lines)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerows(lines)
        return buffer.getvalue()

    def encoded(self) -> bytes:
        return self.content().encode("utf-8")

    class Config:
        frozen = True


class ArtifactHandle(BaseModel):
    """
    Reference to a stored artifact, suitable for attaching to a notification.

    Attributes:
        artifact_id: Store-assigned identifier
        name: File name
        mime_type: Content type
        location: Where the store put it (path or URI)
        size_bytes: Stored content size
    """

    artifact_id: str
    name: str
    mime_type: str
    location: str
    size_bytes: int = Field(..., ge=0)
