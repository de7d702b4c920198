"""
Tests for the bounded-concurrency enrichment coordinator.
"""

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from deal_intel.pipeline.communications import CommunicationFetcher
from deal_intel.pipeline.contacts import ContactResolver
from deal_intel.pipeline.context_builder import NO_COMMUNICATION_SENTINEL
from deal_intel.pipeline.coordinator import EnrichmentCoordinator

from fakes import NOW, FakeCRM, FakeMailbox, make_deal, make_person, make_record


def _coordinator(crm, mailbox, concurrency_limit=5, activity_limit=5):
    return EnrichmentCoordinator(
        contact_resolver=ContactResolver(crm),
        communication_fetcher=CommunicationFetcher(mailbox),
        activity_source=crm,
        concurrency_limit=concurrency_limit,
        activity_limit=activity_limit,
    )


async def _enrich(coordinator, deals, **kwargs):
    return await coordinator.enrich_all(
        deals,
        stage_names={3: 'Proposal Made'},
        email_days=90,
        max_emails=10,
        now=NOW,
        **kwargs,
    )


# =============================================================================
# Ordering and concurrency
# =============================================================================


class TestOrderingAndConcurrency:
    @pytest.mark.asyncio
    async def test_output_order_matches_input(self):
        """Random per-deal latency never reorders the output."""
        rng = random.Random(7)
        deals = [make_deal(i, f'Deal {i}') for i in range(1, 21)]
        crm = FakeCRM(
            deals=deals,
            latency={d.id: rng.uniform(0, 0.02) for d in deals},
        )
        coordinator = _coordinator(crm, FakeMailbox(), concurrency_limit=4)

        contexts = await _enrich(coordinator, deals)

        assert [c.deal_id for c in contexts] == [d.id for d in deals]
        assert all(c.text.startswith(f'DEAL #{c.deal_id}:') for c in contexts)

    @pytest.mark.asyncio
    async def test_in_flight_deals_bounded_by_limit(self):
        """50 deals with a limit of 5: never more than 5 in flight, each enriched once."""
        deals = [make_deal(i, f'Deal {i}') for i in range(1, 51)]
        coordinator = _coordinator(FakeCRM(deals=deals), FakeMailbox(), concurrency_limit=5)

        original = coordinator.enrich_deal
        in_flight = 0
        peak = 0
        seen: list[int] = []

        async def tracked(deal, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            seen.append(deal.id)
            try:
                await asyncio.sleep(0.001)
                return await original(deal, **kwargs)
            finally:
                in_flight -= 1

        coordinator.enrich_deal = tracked

        contexts = await _enrich(coordinator, deals)

        assert peak == 5
        assert sorted(seen) == [d.id for d in deals]
        assert len(contexts) == 50

    @pytest.mark.asyncio
    async def test_limit_override_per_call(self):
        deals = [make_deal(i, f'Deal {i}') for i in range(1, 11)]
        coordinator = _coordinator(FakeCRM(deals=deals), FakeMailbox(), concurrency_limit=5)

        original = coordinator.enrich_deal
        in_flight = 0
        peak = 0

        async def tracked(deal, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0.001)
                return await original(deal, **kwargs)
            finally:
                in_flight -= 1

        coordinator.enrich_deal = tracked

        await _enrich(coordinator, deals, concurrency_limit=2)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_zero_limit_runs_one_worker(self):
        deals = [make_deal(i, f'Deal {i}') for i in range(1, 6)]
        coordinator = _coordinator(FakeCRM(deals=deals), FakeMailbox(), concurrency_limit=5)

        original = coordinator.enrich_deal
        in_flight = 0
        peak = 0

        async def tracked(deal, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0.001)
                return await original(deal, **kwargs)
            finally:
                in_flight -= 1

        coordinator.enrich_deal = tracked

        contexts = await _enrich(coordinator, deals, concurrency_limit=0)

        assert peak == 1
        assert [c.deal_id for c in contexts] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        coordinator = _coordinator(FakeCRM(), FakeMailbox())
        assert await _enrich(coordinator, []) == []

    @pytest.mark.asyncio
    async def test_activity_limit_forwarded(self):
        crm = FakeCRM(activities={1: [{'id': i, 'type': 'call', 'subject': f'Call {i}'} for i in range(8)]})
        coordinator = _coordinator(crm, FakeMailbox(), activity_limit=3)

        contexts = await _enrich(coordinator, [make_deal(1, 'Deal 1')])

        assert crm.activity_calls == [(1, 3)]
        assert 'Call 2' in contexts[0].text
        assert 'Call 3' not in contexts[0].text


# =============================================================================
# Fault isolation
# =============================================================================


class TestFaultIsolation:
    @pytest.mark.asyncio
    async def test_contact_failure_degrades_only_that_deal(self):
        deals = [make_deal(i, f'Deal {i}') for i in (1, 2, 3)]
        crm = FakeCRM(
            deals=deals,
            persons={i: [make_person(i * 10, f'Person {i}', f'p{i}@x.com')] for i in (1, 2, 3)},
            failing_contacts=[2],
        )
        mailbox = FakeMailbox(
            messages={f'p{i}@x.com': [make_record(f'p{i}@x.com', 'Hello', 'Mon')] for i in (1, 2, 3)}
        )

        contexts = await _enrich(_coordinator(crm, mailbox), deals)

        assert [c.degraded for c in contexts] == [False, True, False]
        assert 'Contacts: None' in contexts[1].text
        assert NO_COMMUNICATION_SENTINEL in contexts[1].text
        assert contexts[0].communication_count == 1
        assert contexts[2].communication_count == 1
        assert contexts[1].failures[0].operation == 'resolve_contacts'

    @pytest.mark.asyncio
    async def test_mailbox_failure_keeps_other_contacts(self):
        crm = FakeCRM(
            persons={1: [make_person(10, 'Ana', 'ana@x.com'), make_person(11, 'Bob', 'bob@x.com')]}
        )
        mailbox = FakeMailbox(
            messages={'bob@x.com': [make_record('bob@x.com', 'Pricing', 'Tue')]},
            failing=['ana@x.com'],
        )

        [context] = await _enrich(_coordinator(crm, mailbox), [make_deal(1, 'Deal 1')])

        assert 'Subject: Pricing' in context.text
        assert context.contact_count == 2
        assert context.degraded
        assert context.failures[0].target == 'ana@x.com'

    @pytest.mark.asyncio
    async def test_activity_failure_degrades(self):
        crm = FakeCRM(failing_activities=[1])

        [context] = await _enrich(_coordinator(crm, FakeMailbox()), [make_deal(1, 'Deal 1')])

        assert 'Recent activities: None' in context.text
        assert context.failures[0].operation == 'fetch_activities'

    @pytest.mark.asyncio
    async def test_contacts_without_email_skip_mailbox(self):
        crm = FakeCRM(persons={1: [make_person(10, 'Ana')]})
        mailbox = FakeMailbox()

        [context] = await _enrich(_coordinator(crm, mailbox), [make_deal(1, 'Deal 1')])

        assert mailbox.calls == []
        assert 'Ana <no email>' in context.text
        assert not context.degraded

    @pytest.mark.asyncio
    async def test_enrich_deal_never_raises(self):
        """An unexpected bug inside enrichment still yields a context."""
        coordinator = _coordinator(FakeCRM(), FakeMailbox())
        coordinator._enrich = AsyncMock(side_effect=RuntimeError('boom'))

        contexts = await _enrich(coordinator, [make_deal(1, 'Deal 1'), make_deal(2, 'Deal 2')])

        assert [c.deal_id for c in contexts] == [1, 2]
        assert all(c.degraded for c in contexts)
        assert contexts[0].failures[0].operation == 'enrich_deal'
        assert 'Contacts: None' in contexts[0].text

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        crm = FakeCRM(persons={1: [make_person(10, 'Ana', 'ana@x.com')]})
        mailbox = FakeMailbox(raise_on_search=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await _enrich(_coordinator(crm, mailbox), [make_deal(1, 'Deal 1')])
