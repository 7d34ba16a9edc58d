"""
Row builders shared by unit, property and end-to-end tests.
"""


def make_row(
    record_id,
    owner_id="rep1",
    amount="100.00",
    created_at="2026-09-15",
    customer_id=None,
    customer_name=None,
    customer_email=None,
    document_number=None,
    mainline=True,
) -> dict:
    """Build a flat sales-order row as the record store returns it."""
    customer_id = customer_id or f"C{record_id}"
    return {
        "record_id": str(record_id),
        "customer_id": customer_id,
        "customer_name": customer_name or f"Customer {customer_id}",
        "customer_email": customer_email if customer_email is not None else f"{customer_id.lower()}@example.com",
        "document_number": document_number or f"SO{record_id}",
        "amount": amount,
        "owner_id": owner_id,
        "created_at": created_at,
        "mainline": mainline,
    }
