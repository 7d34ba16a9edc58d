"""
RawRecord model representing one sales-order line as read from the record store (ephemeral).
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class CustomerRef(BaseModel):
    """Customer the order was placed for."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class OwnerRef(BaseModel):
    """Sales representative that owns the order."""

    id: str = Field(..., min_length=1)


class RawRecord(BaseModel):
    """
    A single top-level sales-order line.

    Attributes:
        record_id: Internal id of the sales order
        customer_ref: Customer id and display name
        customer_email: Customer e-mail address, when one is on file
        document_number: Sales order document number (e.g. "SO1042")
        amount: Order total
        owner_ref: Owning sales representative; None when unassigned
    """

    record_id: str = Field(..., min_length=1)
    customer_ref: CustomerRef
    customer_email: str | None = None
    document_number: str = Field(..., min_length=1)
    amount: Decimal
    owner_ref: OwnerRef | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RawRecord":
        """
        Build a RawRecord from a flat store row.

        Expected columns: record_id, customer_id, customer_name, customer_email,
        document_number, amount, owner_id. A NULL or blank owner_id means the
        order has no sales representative.

        Raises:
            pydantic.ValidationError: If required columns are missing or malformed
        """
        owner_id = _text(row.get("owner_id"))
        return cls(
            record_id=_text(row.get("record_id")),
            customer_ref={
                "id": _text(row.get("customer_id")),
                "name": _text(row.get("customer_name")),
            },
            customer_email=_text(row.get("customer_email")),
            document_number=_text(row.get("document_number")),
            amount=row.get("amount"),
            owner_ref={"id": owner_id} if owner_id else None,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "record_id": "8812",
                "customer_ref": {"id": "311", "name": "Acme Corp"},
                "customer_email": "ap@acme.example",
                "document_number": "SO1042",
                "amount": "1250.00",
                "owner_ref": {"id": "rep1"},
            }
        }
