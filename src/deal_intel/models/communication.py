"""Mailbox message metadata used as deal communication history."""

from pydantic import BaseModel, Field


class CommunicationRecord(BaseModel):
    """
    Metadata of one email exchanged with a deal contact.

    ``date`` is the raw Date header. It is human readable but not guaranteed
    to be parseable, so it is never interpreted.
    """

    sender: str = Field(default='', description='From header')
    recipient: str = Field(default='', description='To header')
    subject: str = Field(default='', description='Subject header')
    date: str = Field(default='', description='Date header as provided by the mailbox')
    preview: str = Field(default='', description='Short body snippet')
    contact_name: str | None = Field(
        default=None, description='Name of the deal contact this record was found for'
    )

    def to_line(self) -> str:
        """Render as a single context line."""
        return (
            f'[{self.date}] {self.sender} -> {self.recipient} '
            f'| Subject: {self.subject} | {self.preview}'
        )
