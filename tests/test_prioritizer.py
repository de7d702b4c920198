"""
Tests for the prioritization engine and rank policy.
"""

import json
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from deal_intel.errors import (
    MalformedModelResponseError,
    OpenAIRateLimitError,
    PrioritizationError,
)
from deal_intel.models.priority import DealPriorityAnalysis
from deal_intel.pipeline.prioritizer import (
    PrioritizationEngine,
    enforce_rank_policy,
    validate_priority_payload,
)
from deal_intel.prompts.prioritize_deals import TOOL_NAME

from fakes import make_openai_mock, priority_entry

CONTEXTS = 'DEAL #1: A\n---\n\nDEAL #2: B\n---\n\nDEAL #3: C\n---'


def _analysis(*pairs):
    return DealPriorityAnalysis.model_validate(
        {'deals': [priority_entry(deal_id, rank) for deal_id, rank in pairs]}
    )


# =============================================================================
# Rank policy
# =============================================================================


class TestRankPolicy:
    def test_dense_ranks_unchanged(self):
        analysis, warnings = enforce_rank_policy(_analysis((2, 1), (1, 2), (3, 3)), [1, 2, 3])

        assert [(d.deal_id, d.priority_rank) for d in analysis.deals] == [(2, 1), (1, 2), (3, 3)]
        assert warnings == []

    def test_gaps_renumbered(self):
        analysis, warnings = enforce_rank_policy(_analysis((1, 5), (2, 2), (3, 9)))

        assert [(d.deal_id, d.priority_rank) for d in analysis.deals] == [(2, 1), (1, 2), (3, 3)]
        assert warnings == ['Renumbered ranks [2, 5, 9] to 1..3']

    def test_zero_based_ranks_renumbered(self):
        analysis = validate_priority_payload(
            json.dumps({'deals': [priority_entry(1, 0), priority_entry(2, 1), priority_entry(3, 2)]})
        )

        analysis, warnings = enforce_rank_policy(analysis, [1, 2, 3])

        assert [(d.deal_id, d.priority_rank) for d in analysis.deals] == [(1, 1), (2, 2), (3, 3)]
        assert warnings == ['Renumbered ranks [0, 1, 2] to 1..3']

    def test_negative_rank_sorts_first(self):
        analysis, warnings = enforce_rank_policy(_analysis((1, 2), (2, -1)))

        assert [(d.deal_id, d.priority_rank) for d in analysis.deals] == [(2, 1), (1, 2)]
        assert warnings == ['Renumbered ranks [-1, 2] to 1..2']

    def test_ties_keep_model_order(self):
        analysis, _ = enforce_rank_policy(_analysis((1, 1), (2, 1), (3, 2)))
        assert [d.deal_id for d in analysis.deals] == [1, 2, 3]
        assert [d.priority_rank for d in analysis.deals] == [1, 2, 3]

    def test_unknown_deal_ids_dropped(self):
        analysis, warnings = enforce_rank_policy(_analysis((1, 1), (99, 2), (2, 3)), [1, 2])

        assert analysis.deal_ids() == [1, 2]
        assert [d.priority_rank for d in analysis.deals] == [1, 2]
        assert 'Dropped entries for unknown deal ids: [99]' in warnings

    def test_repeated_deal_id_keeps_first(self):
        source = _analysis((1, 1), (2, 2), (1, 3))

        analysis, warnings = enforce_rank_policy(source, [1, 2])

        assert analysis.deal_ids() == [1, 2]
        assert 'Dropped repeated entry for deal 1' in warnings

    def test_missing_deals_reported(self):
        analysis, warnings = enforce_rank_policy(_analysis((1, 1)), [1, 2, 3])

        assert analysis.deal_ids() == [1]
        assert 'Model returned no entry for deals: [2, 3]' in warnings

    def test_shuffled_input_property(self):
        """Any shuffled, gapped, tied input comes out dense, complete and rank-ordered."""
        rng = random.Random(1234)
        for _ in range(25):
            n = rng.randint(1, 15)
            pairs = [(deal_id, rng.randint(1, 30)) for deal_id in range(1, n + 1)]
            rng.shuffle(pairs)
            source = _analysis(*pairs)

            analysis, _ = enforce_rank_policy(source, list(range(1, n + 1)))

            assert [d.priority_rank for d in analysis.deals] == list(range(1, n + 1))
            assert sorted(analysis.deal_ids()) == list(range(1, n + 1))
            original_rank = dict(pairs)
            ranks_in_order = [original_rank[d] for d in analysis.deal_ids()]
            assert ranks_in_order == sorted(ranks_in_order)


# =============================================================================
# Payload validation
# =============================================================================


class TestValidatePayload:
    def test_schema_violation(self):
        payload = {'deals': [priority_entry(1, 1, urgency='whenever')]}

        with pytest.raises(MalformedModelResponseError) as exc_info:
            validate_priority_payload(json.dumps(payload))

        errors = exc_info.value.context['errors']
        assert errors[0]['loc'] == ['deals', 0, 'urgency']

    def test_reshaped_payload_validates(self):
        analysis = validate_priority_payload(json.dumps([priority_entry(1, 1)]))
        assert analysis.deal_ids() == [1]


# =============================================================================
# Engine
# =============================================================================


class TestPrioritizationEngine:
    @pytest.mark.asyncio
    async def test_single_forced_tool_call(self):
        openai = make_openai_mock()
        engine = PrioritizationEngine(openai)

        analysis = await engine.prioritize(CONTEXTS, expected_deal_ids=[1, 2, 3])

        assert analysis.deal_ids() == [1, 2, 3]
        openai.chat_completion_tool_call.assert_awaited_once()
        kwargs = openai.chat_completion_tool_call.call_args.kwargs
        assert kwargs['tool']['function']['name'] == TOOL_NAME
        assert CONTEXTS in kwargs['messages'][1]['content']
        assert 'Prioritize the following 3 open deals' in kwargs['messages'][1]['content']

    @pytest.mark.asyncio
    async def test_domain_framing_in_system_prompt(self):
        openai = make_openai_mock()
        engine = PrioritizationEngine(openai, domain_framing='industrial HVAC maintenance')

        await engine.prioritize(CONTEXTS, expected_deal_ids=[1, 2, 3])

        system = openai.chat_completion_tool_call.call_args.kwargs['messages'][0]['content']
        assert 'industrial HVAC maintenance' in system

    @pytest.mark.asyncio
    async def test_rank_repair_recorded(self):
        openai = make_openai_mock([priority_entry(3, 4), priority_entry(1, 8), priority_entry(2, 8)])
        engine = PrioritizationEngine(openai)

        analysis = await engine.prioritize(CONTEXTS, expected_deal_ids=[1, 2, 3])

        assert [(d.deal_id, d.priority_rank) for d in analysis.deals] == [(3, 1), (1, 2), (2, 3)]
        assert engine.last_warnings == ['Renumbered ranks [4, 8, 8] to 1..3']

    @pytest.mark.asyncio
    async def test_fenced_plain_content_answer(self):
        payload = {'deals': [priority_entry(1, 1), priority_entry(2, 2), priority_entry(3, 3)]}
        openai = make_openai_mock('```json\n' + json.dumps(payload) + '\n```')

        analysis = await PrioritizationEngine(openai).prioritize(CONTEXTS, expected_deal_ids=[1, 2, 3])

        assert analysis.deal_ids() == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_irreparable_payload(self):
        engine = PrioritizationEngine(make_openai_mock('I could not rank these deals.'))

        with pytest.raises(MalformedModelResponseError):
            await engine.prioritize(CONTEXTS, expected_deal_ids=[1, 2, 3])

    @pytest.mark.asyncio
    async def test_client_error_becomes_prioritization_error(self):
        openai = MagicMock()
        openai.chat_completion_tool_call = AsyncMock(
            side_effect=OpenAIRateLimitError('OpenAI rate limit exceeded', context={'model': 'x'})
        )

        with pytest.raises(PrioritizationError) as exc_info:
            await PrioritizationEngine(openai).prioritize(CONTEXTS)

        assert exc_info.value.context['model'] == 'x'
        assert isinstance(exc_info.value.__cause__, OpenAIRateLimitError)

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_prioritization_error(self):
        openai = MagicMock()
        openai.chat_completion_tool_call = AsyncMock(side_effect=RuntimeError('Connection reset'))

        with pytest.raises(PrioritizationError) as exc_info:
            await PrioritizationEngine(openai).prioritize(CONTEXTS)

        assert exc_info.value.context['error_type'] == 'RuntimeError'
        assert not isinstance(exc_info.value, MalformedModelResponseError)
