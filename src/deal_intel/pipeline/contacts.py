"""
Contact resolution for deal enrichment.

Turns the persons linked to a deal into Contacts with at most one email
address each. Lookup failures are captured, not raised.
"""

from typing import Protocol

import structlog

from ..errors import FetchOutcome, capture
from ..models.crm import Contact, CRMPerson, PersonEmail

logger = structlog.get_logger(__name__)

UNKNOWN_CONTACT_NAME = 'Unknown'


class ContactSource(Protocol):
    async def get_contacts_for_deal(self, deal_id: int) -> list[CRMPerson]: ...


def resolve_email(emails: list[PersonEmail]) -> str | None:
    """
    Pick the single best address: the one flagged primary, else the first
    listed, else None. Blank values never win.
    """
    usable = [e for e in emails if e.value and e.value.strip()]
    for entry in usable:
        if entry.primary:
            return entry.value.strip()
    if usable:
        return usable[0].value.strip()
    return None


def to_contacts(persons: list[CRMPerson]) -> list[Contact]:
    """Resolve persons to contacts, keeping the first occurrence of each person ID."""
    seen: set[int] = set()
    contacts: list[Contact] = []
    for person in persons:
        if person.id in seen:
            continue
        seen.add(person.id)
        contacts.append(
            Contact(
                id=person.id,
                name=person.name or UNKNOWN_CONTACT_NAME,
                email=resolve_email(person.emails),
            )
        )
    return contacts


class ContactResolver:
    """Resolves the contacts of a deal through the CRM."""

    def __init__(self, crm_client: ContactSource):
        self.crm = crm_client

    async def resolve(self, deal_id: int) -> FetchOutcome[list[Contact]]:
        """
        Fetch and resolve the contacts of one deal.

        Returns:
            FetchOutcome holding the contacts, or the captured failure
        """
        outcome = await capture(
            'resolve_contacts',
            self.crm.get_contacts_for_deal(deal_id),
            target=str(deal_id),
        )
        if not outcome.ok:
            logger.warning(
                'contact_resolver.failed',
                deal_id=deal_id,
                error=str(outcome.error),
                error_type=type(outcome.error).__name__,
            )
            return FetchOutcome.failure(outcome.operation, outcome.error, target=outcome.target)

        contacts = to_contacts(outcome.value or [])
        logger.debug(
            'contact_resolver.resolved',
            deal_id=deal_id,
            contact_count=len(contacts),
            with_email=sum(1 for c in contacts if c.email),
        )
        return FetchOutcome.success(outcome.operation, contacts, target=outcome.target)

    async def resolve_contacts(self, deal_id: int) -> list[Contact]:
        """Contacts of a deal, or an empty list when the lookup failed."""
        return (await self.resolve(deal_id)).unwrap_or([])
