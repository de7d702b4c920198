"""
Bounded-concurrency deal enrichment.

Runs contact resolution, activity lookup and communication fetch for every
deal of a run through a fixed pool of asyncio workers. Each worker claims
the next unclaimed deal index from a shared cursor, enriches that deal to
completion, then claims again. Output order always equals input order.

Fault isolation guarantee: a failing lookup degrades only its own deal's
context and never raises past enrich_all().
"""

import asyncio
from datetime import datetime, timezone
from typing import Protocol

import structlog

from ..errors import EnrichmentError, FetchOutcome, capture
from ..logging import logging_context
from ..models.communication import CommunicationRecord
from ..models.crm import Activity, Contact, Deal
from .communications import CommunicationFetcher
from .contacts import ContactResolver
from .context_builder import DealContext, build_context

logger = structlog.get_logger(__name__)

DEFAULT_CONCURRENCY_LIMIT = 5
DEFAULT_ACTIVITY_LIMIT = 5


class ActivitySource(Protocol):
    async def get_recent_activities(self, deal_id: int, limit: int = 5) -> list[Activity]: ...


class EnrichmentCoordinator:
    """
    Enriches all deals of a run under a fixed concurrency limit.

    The limit bounds how many deals are in flight, not how many requests:
    a deal with several contacts fetches their mail concurrently, so the
    request count can briefly exceed the pool size.
    """

    def __init__(
        self,
        contact_resolver: ContactResolver,
        communication_fetcher: CommunicationFetcher,
        activity_source: ActivitySource,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        activity_limit: int = DEFAULT_ACTIVITY_LIMIT,
    ):
        """
        Initialize the coordinator.

        Args:
            contact_resolver: Resolves deal contacts
            communication_fetcher: Fetches mail per contact email
            activity_source: CRM client providing recent activities
            concurrency_limit: Default number of concurrent workers
            activity_limit: Activities fetched per deal
        """
        self.contacts = contact_resolver
        self.communications = communication_fetcher
        self.activities = activity_source
        self.concurrency_limit = concurrency_limit
        self.activity_limit = activity_limit

    async def enrich_all(
        self,
        deals: list[Deal],
        stage_names: dict[int, str],
        email_days: int,
        max_emails: int,
        concurrency_limit: int | None = None,
        now: datetime | None = None,
    ) -> list[DealContext]:
        """
        Enrich every deal and return one context per deal, in input order.

        Returns only after every deal has finished, successfully or degraded.

        Args:
            deals: Deals to enrich
            stage_names: Stage ID to display name lookup
            email_days: Communication lookback window in days
            max_emails: Maximum communications per contact
            concurrency_limit: Override the default worker count
            now: Reference time shared by every deal of the run

        Returns:
            List of DealContext, ``result[i]`` belonging to ``deals[i]``
        """
        if not deals:
            return []

        if concurrency_limit is None:
            concurrency_limit = self.concurrency_limit
        limit = max(1, concurrency_limit)
        now = now or datetime.now(tz=timezone.utc)
        results: list[DealContext | None] = [None] * len(deals)

        # next() on a shared iterator runs without an await in between, so two
        # workers can never claim the same index or skip one
        cursor = iter(range(len(deals)))

        async def worker(worker_id: int) -> None:
            for index in cursor:
                deal = deals[index]
                logger.debug(
                    'coordinator.claimed',
                    worker_id=worker_id,
                    deal_index=index,
                    deal_id=deal.id,
                )
                results[index] = await self.enrich_deal(
                    deal,
                    stage_names=stage_names,
                    email_days=email_days,
                    max_emails=max_emails,
                    now=now,
                )

        worker_count = min(limit, len(deals))
        await asyncio.gather(*(worker(i) for i in range(worker_count)))

        contexts = [c for c in results if c is not None]
        logger.info(
            'coordinator.complete',
            deal_count=len(contexts),
            workers=worker_count,
            degraded=sum(1 for c in contexts if c.degraded),
        )
        return contexts

    async def enrich_deal(
        self,
        deal: Deal,
        stage_names: dict[int, str],
        email_days: int,
        max_emails: int,
        now: datetime | None = None,
    ) -> DealContext:
        """
        Enrich a single deal. Never raises Exception.

        Contacts and activities are fetched concurrently, then every contact
        with an email address is searched concurrently.
        """
        with logging_context(deal_id=str(deal.id)):
            try:
                return await self._enrich(deal, stage_names, email_days, max_emails, now)
            except Exception as exc:
                # Safety net for bugs below the capture() boundaries
                logger.error(
                    'coordinator.deal_failed',
                    deal_id=deal.id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                failure = FetchOutcome.failure(
                    'enrich_deal',
                    EnrichmentError(
                        f'Enrichment failed: {exc}',
                        context={'error_type': type(exc).__name__},
                    ),
                    target=str(deal.id),
                )
                return build_context(
                    deal,
                    stage_names,
                    contacts=[],
                    activities=[],
                    communications=[],
                    email_days=email_days,
                    now=now,
                    failures=[failure],
                )

    async def _enrich(
        self,
        deal: Deal,
        stage_names: dict[int, str],
        email_days: int,
        max_emails: int,
        now: datetime | None,
    ) -> DealContext:
        contacts_outcome, activities_outcome = await asyncio.gather(
            self.contacts.resolve(deal.id),
            capture(
                'fetch_activities',
                self.activities.get_recent_activities(deal.id, limit=self.activity_limit),
                target=str(deal.id),
            ),
        )
        failures: list[FetchOutcome] = [
            o for o in (contacts_outcome, activities_outcome) if not o.ok
        ]
        if not activities_outcome.ok:
            logger.warning(
                'coordinator.activities_failed',
                deal_id=deal.id,
                error=str(activities_outcome.error),
            )

        contacts: list[Contact] = contacts_outcome.unwrap_or([])
        activities: list[Activity] = activities_outcome.unwrap_or([])

        mail_outcomes = await asyncio.gather(
            *(
                self.communications.fetch(
                    contact.email,
                    lookback_days=email_days,
                    max_results=max_emails,
                    now=now,
                    contact_name=contact.name,
                )
                for contact in contacts
                if contact.email
            )
        )

        communications: list[CommunicationRecord] = []
        for outcome in mail_outcomes:
            if outcome.ok:
                communications.extend(outcome.unwrap_or([]))
            else:
                failures.append(outcome)

        context = build_context(
            deal,
            stage_names,
            contacts=contacts,
            activities=activities,
            communications=communications,
            email_days=email_days,
            now=now,
            failures=failures,
        )

        logger.debug(
            'coordinator.deal_enriched',
            deal_id=deal.id,
            contacts=len(contacts),
            activities=len(activities),
            communications=len(communications),
            failures=len(failures),
        )
        return context
