"""
PartitionValue model: the normalized projection of a RawRecord carried through the shuffle.
"""

from decimal import Decimal

from pydantic import BaseModel

from .raw_record import RawRecord

ADMIN_KEY = "admin"


class PartitionValue(BaseModel):
    """
    One report row's worth of data, independent of the store's row shape.

    Attributes:
        customer_id: Customer internal id
        customer_name: Customer display name
        customer_email: Customer e-mail, None when missing
        document_number: Sales order document number
        amount: Order total
    """

    customer_id: str
    customer_name: str
    customer_email: str | None = None
    document_number: str
    amount: Decimal

    @classmethod
    def from_raw(cls, raw: RawRecord) -> "PartitionValue":
        return cls(
            customer_id=raw.customer_ref.id,
            customer_name=raw.customer_ref.name,
            customer_email=raw.customer_email,
            document_number=raw.document_number,
            amount=raw.amount,
        )

    class Config:
        frozen = True


def partition_key_for(raw: RawRecord) -> str:
    """Return the owning representative id, or the admin sentinel when unassigned."""
    if raw.owner_ref is None:
        return ADMIN_KEY
    return raw.owner_ref.id
