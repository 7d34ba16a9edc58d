"""
NotificationRequest model handed to the notification interface.
"""

from pydantic import BaseModel, Field

from .report import ReportArtifact


class NotificationRequest(BaseModel):
    """
    One notification per partition, carrying that partition's report.

    Attributes:
        sender: Sender identity configured for the digest
        recipient: Representative id, or the admin mailbox for unassigned orders
        subject: Message subject
        body: Message body
        attachment: The partition's report artifact
    """

    sender: str = Field(..., min_length=1)
    recipient: str = Field(..., min_length=1)
    subject: str
    body: str
    attachment: ReportArtifact

    class Config:
        frozen = True
