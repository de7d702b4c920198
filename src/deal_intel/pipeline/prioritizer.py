"""
Deal prioritization engine.

Sends the concatenated deal contexts to the model in a single forced tool
call, normalizes the payload shape, validates it against
DealPriorityAnalysis and enforces rank density.

Rank policy: entries for deal IDs that were not submitted are dropped,
repeated deal IDs keep their first entry, and the survivors are renumbered
1..N ordered by (model rank, model position). Every adjustment is reported
in ``last_warnings`` and logged. A payload that cannot be normalized or
validated is fatal for the run.
"""

from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..clients.openai_client import OpenAIClient
from ..errors import (
    DealIntelError,
    MalformedModelResponseError,
    PrioritizationError,
    wrap_openai_error,
)
from ..models.priority import DealPriorityAnalysis
from ..prompts.prioritize_deals import build_prioritization_prompt, build_priority_tool
from .normalizer import normalize_priority_payload

logger = structlog.get_logger(__name__)


def validate_priority_payload(raw_payload: Any) -> DealPriorityAnalysis:
    """
    Normalize and schema-validate a raw model payload.

    Raises:
        MalformedModelResponseError: Irreparable shape or schema violation
    """
    normalized = normalize_priority_payload(raw_payload)
    if normalized.was_repaired:
        logger.warning(
            'prioritizer.payload_reshaped',
            shapes=[s.value for s in normalized.shapes],
        )

    try:
        return DealPriorityAnalysis.model_validate(normalized.data)
    except PydanticValidationError as exc:
        errors = exc.errors(include_url=False)
        raise MalformedModelResponseError(
            f'Model payload failed schema validation ({exc.error_count()} errors)',
            context={
                'shapes': [s.value for s in normalized.shapes],
                'errors': [
                    {'loc': list(e['loc']), 'type': e['type'], 'msg': e['msg']}
                    for e in errors[:10]
                ],
            },
        ) from exc


def enforce_rank_policy(
    analysis: DealPriorityAnalysis,
    expected_deal_ids: list[int] | None = None,
) -> tuple[DealPriorityAnalysis, list[str]]:
    """
    Drop unknown / repeated deal IDs and renumber ranks densely from 1.

    Args:
        analysis: Schema-valid model output
        expected_deal_ids: IDs that were submitted (skip the unknown-ID check if None)

    Returns:
        Tuple of (analysis sorted by rank with ranks 1..N, warnings)
    """
    warnings: list[str] = []
    entries = list(enumerate(analysis.deals))

    if expected_deal_ids is not None:
        expected = set(expected_deal_ids)
        unknown = [entry.deal_id for _, entry in entries if entry.deal_id not in expected]
        if unknown:
            warnings.append(f'Dropped entries for unknown deal ids: {unknown}')
            entries = [(pos, entry) for pos, entry in entries if entry.deal_id in expected]

    seen: set[int] = set()
    unique = []
    for pos, entry in entries:
        if entry.deal_id in seen:
            warnings.append(f'Dropped repeated entry for deal {entry.deal_id}')
            continue
        seen.add(entry.deal_id)
        unique.append((pos, entry))

    ordered = sorted(unique, key=lambda item: (item[1].priority_rank, item[0]))
    model_ranks = [entry.priority_rank for _, entry in ordered]
    if model_ranks != list(range(1, len(ordered) + 1)):
        warnings.append(f'Renumbered ranks {model_ranks} to 1..{len(ordered)}')

    if expected_deal_ids is not None:
        missing = [deal_id for deal_id in expected_deal_ids if deal_id not in seen]
        if missing:
            warnings.append(f'Model returned no entry for deals: {missing}')

    deals = [
        entry.model_copy(update={'priority_rank': rank})
        for rank, (_, entry) in enumerate(ordered, start=1)
    ]
    return DealPriorityAnalysis(deals=deals), warnings


class PrioritizationEngine:
    """
    Ranks a batch of enriched deals with one model call.

    The call is never batched and not retried here; retries, if any, are
    configured on the OpenAI client.
    """

    def __init__(
        self,
        openai_client: OpenAIClient,
        domain_framing: str | None = None,
    ):
        """
        Initialize the engine.

        Args:
            openai_client: OpenAI client for the tool call
            domain_framing: Market description for the analyst persona
        """
        self.openai = openai_client
        self.domain_framing = domain_framing
        self.last_warnings: list[str] = []

    async def prioritize(
        self,
        deal_contexts: str,
        expected_deal_ids: list[int] | None = None,
    ) -> DealPriorityAnalysis:
        """
        Rank every deal in ``deal_contexts``.

        Args:
            deal_contexts: All deal context blocks, concatenated
            expected_deal_ids: Submitted deal IDs, for the unknown-ID check

        Returns:
            DealPriorityAnalysis sorted by rank, ranks 1..N

        Raises:
            PrioritizationError: The model call failed
            MalformedModelResponseError: The payload is irreparable
        """
        self.last_warnings = []
        messages = build_prioritization_prompt(
            deal_contexts,
            deal_count=len(expected_deal_ids) if expected_deal_ids is not None else None,
            domain_framing=self.domain_framing,
        )

        logger.info(
            'prioritizer.request',
            deal_count=len(expected_deal_ids) if expected_deal_ids is not None else None,
            prompt_chars=sum(len(m['content']) for m in messages),
        )

        try:
            raw_payload = await self.openai.chat_completion_tool_call(
                messages=messages,
                tool=build_priority_tool(),
            )
        except DealIntelError as exc:
            raise PrioritizationError(
                f'Prioritization call failed: {exc.message}',
                context=exc.context,
            ) from exc
        except Exception as exc:
            wrapped = wrap_openai_error(exc)
            raise PrioritizationError(
                f'Prioritization call failed: {wrapped.message}',
                context=wrapped.context,
            ) from exc

        analysis = validate_priority_payload(raw_payload)
        analysis, warnings = enforce_rank_policy(analysis, expected_deal_ids)
        self.last_warnings = warnings

        for warning in warnings:
            logger.warning('prioritizer.rank_policy', detail=warning)

        logger.info(
            'prioritizer.complete',
            ranked=len(analysis.deals),
            adjustments=len(warnings),
        )
        return analysis
