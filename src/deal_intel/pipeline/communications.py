"""
Communication history lookup for deal contacts.

No retries here: backoff against the mailbox provider lives in the client.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog

from ..errors import FetchOutcome, capture
from ..models.communication import CommunicationRecord

logger = structlog.get_logger(__name__)


class CommunicationSource(Protocol):
    async def search_communications(
        self, email: str, after: datetime, max_results: int = 10
    ) -> list[CommunicationRecord]: ...


class CommunicationFetcher:
    """Fetches recent message metadata exchanged with a contact email."""

    def __init__(self, mailbox_client: CommunicationSource):
        self.mailbox = mailbox_client

    async def fetch(
        self,
        email: str,
        lookback_days: int,
        max_results: int,
        now: datetime | None = None,
        contact_name: str | None = None,
    ) -> FetchOutcome[list[CommunicationRecord]]:
        """
        Fetch up to ``max_results`` records newer than ``now - lookback_days``.

        Args:
            email: Contact email address
            lookback_days: Size of the lookback window in days
            max_results: Maximum number of records
            now: Wall-clock reference (defaults to current UTC time)
            contact_name: Attached to each record for attribution

        Returns:
            FetchOutcome holding the records (newest first), or the captured failure
        """
        if max_results <= 0:
            return FetchOutcome.success('fetch_communications', [], target=email)

        after = (now or datetime.now(tz=timezone.utc)) - timedelta(days=lookback_days)

        outcome = await capture(
            'fetch_communications',
            self.mailbox.search_communications(email, after=after, max_results=max_results),
            target=email,
        )
        if not outcome.ok:
            logger.warning(
                'communication_fetcher.failed',
                email=email,
                error=str(outcome.error),
                error_type=type(outcome.error).__name__,
            )
            return outcome

        records = [
            record.model_copy(update={'contact_name': contact_name}) if contact_name else record
            for record in (outcome.value or [])[:max_results]
        ]
        return FetchOutcome.success(outcome.operation, records, target=email)

    async def fetch_communications(
        self,
        email: str,
        lookback_days: int,
        max_results: int,
        now: datetime | None = None,
    ) -> list[CommunicationRecord]:
        """Records for ``email``, or an empty list when the lookup failed."""
        return (await self.fetch(email, lookback_days, max_results, now=now)).unwrap_or([])
