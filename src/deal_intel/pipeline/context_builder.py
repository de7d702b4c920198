"""
Deal context assembly.

Composes one deal's header, contacts, activities and communication history
into the text block the prioritization model reads. No I/O.

Block layout:

    DEAL #<id>: <title>
    Value: <value> <currency> | Stage: <stage> | Days since update: <days>
    Contacts: <Name <email>, ...>
    Recent activities: <type: subject (due); ...>
    Email history (last <n> days):
    <[date] from -> to | Subject: s | preview>
    ---
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import FetchOutcome
from ..models.communication import CommunicationRecord
from ..models.crm import Activity, Contact, Deal

NO_COMMUNICATION_SENTINEL = 'No email communication found.'
NONE_LABEL = 'None'
NO_EMAIL_LABEL = 'no email'
UNKNOWN_STALENESS = -1
CONTEXT_SEPARATOR = '\n\n'


@dataclass
class DealContext:
    """
    The text block for one deal plus what went into it.

    ``failures`` holds the lookups that were collapsed to empty values while
    building this context.
    """

    deal_id: int
    title: str
    text: str
    contact_count: int = 0
    communication_count: int = 0
    failures: list[FetchOutcome] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when at least one lookup for this deal failed."""
        return bool(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            'deal_id': self.deal_id,
            'title': self.title,
            'contact_count': self.contact_count,
            'communication_count': self.communication_count,
            'degraded': self.degraded,
            'failures': [f.to_dict() for f in self.failures],
        }


def format_value(value: float | None) -> str:
    """Render a monetary value, 0 when missing, without a trailing .0 for whole numbers."""
    if value is None:
        return '0'
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def format_contacts(contacts: list[Contact]) -> str:
    if not contacts:
        return NONE_LABEL
    return ', '.join(f'{c.name} <{c.email or NO_EMAIL_LABEL}>' for c in contacts)


def format_activities(activities: list[Activity]) -> str:
    if not activities:
        return NONE_LABEL
    return '; '.join(f'{a.type}: {a.subject} ({a.due_date})' for a in activities)


def format_communications(communications: list[CommunicationRecord]) -> str:
    if not communications:
        return NO_COMMUNICATION_SENTINEL
    return '\n'.join(record.to_line() for record in communications)


def build_context(
    deal: Deal,
    stage_names: dict[int, str],
    contacts: list[Contact],
    activities: list[Activity],
    communications: list[CommunicationRecord],
    email_days: int = 90,
    now: datetime | None = None,
    failures: list[FetchOutcome] | None = None,
) -> DealContext:
    """
    Build the context block for one deal.

    Args:
        deal: CRM deal snapshot
        stage_names: Stage ID to display name lookup
        contacts: Resolved deal contacts (may include contacts without email)
        activities: Recent deal activities
        communications: Union of every contact's communication records
        email_days: Lookback window shown in the email history heading
        now: Reference time for staleness (defaults to current UTC time)
        failures: Failed lookups to attach for diagnostics

    Returns:
        DealContext whose text is never empty
    """
    if deal.stage_id is not None and deal.stage_id in stage_names:
        stage_name = stage_names[deal.stage_id]
    else:
        stage_name = f'Stage {deal.stage_id}'

    staleness = deal.staleness_days(now)
    if staleness is None:
        staleness = UNKNOWN_STALENESS

    lines = [
        f'DEAL #{deal.id}: {deal.title}',
        (
            f'Value: {format_value(deal.value)} {deal.currency or ""} '
            f'| Stage: {stage_name} | Days since update: {staleness}'
        ),
        f'Contacts: {format_contacts(contacts)}',
        f'Recent activities: {format_activities(activities)}',
        f'Email history (last {email_days} days):',
        format_communications(communications),
        '---',
    ]

    return DealContext(
        deal_id=deal.id,
        title=deal.title,
        text='\n'.join(lines),
        contact_count=len(contacts),
        communication_count=len(communications),
        failures=list(failures or []),
    )


def join_contexts(contexts: list[DealContext]) -> str:
    """Concatenate context blocks into the model input."""
    return CONTEXT_SEPARATOR.join(c.text for c in contexts)
