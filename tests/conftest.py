"""
Pytest configuration and shared fixtures.

Key fixtures:
- now: Fixed reference time for staleness and lookback windows
- crm / mailbox: In-memory Pipedrive and Gmail fakes seeded with three deals
- openai_mock: OpenAIClient stand-in whose tool call returns a canned payload

No test needs network access or API keys.
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from fakes import NOW, FakeCRM, FakeMailbox, make_deal, make_openai_mock, make_person, make_record


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def three_deals():
    """Deal A with a mailed contact, deal B with a silent contact, deal C with no contacts."""
    return [
        make_deal(1, 'Acme website rebuild', value=15600.0, currency='GBP', stage_id=3, days_ago=2),
        make_deal(2, 'Globex SLA renewal', value=4800.0, currency='GBP', stage_id=4, days_ago=12),
        make_deal(3, 'Initech app discovery', value=None, currency=None, stage_id=9, days_ago=40),
    ]


@pytest.fixture
def crm(three_deals):
    return FakeCRM(
        deals=three_deals,
        stages={3: 'Proposal Made', 4: 'Negotiation'},
        persons={
            1: [make_person(11, 'Ana Silva', 'ana@acme.com')],
            2: [make_person(21, 'Bob Stone', 'bob@globex.com')],
        },
    )


@pytest.fixture
def mailbox():
    return FakeMailbox(
        messages={
            'ana@acme.com': [
                make_record('ana@acme.com', 'Re: proposal', 'Wed, 25 Feb 2026 10:00:00 +0000'),
                make_record('ana@acme.com', 'Kickoff notes', 'Mon, 16 Feb 2026 09:30:00 +0000'),
            ],
        }
    )


@pytest.fixture
def openai_mock():
    return make_openai_mock()
