"""
Deal prioritization prompts.

Provides the system prompt, the user prompt template and the forced tool
definition for ranking a batch of enriched deals. The tool parameters mirror
deal_intel.models.priority.DealPriorityAnalysis field for field.
"""

from typing import Any

from ..models.priority import MAX_HISTORY_ENTRIES, DealHealth, Urgency

TOOL_NAME = 'deal_priority_analysis'


# =============================================================================
# System Prompt
# =============================================================================

DEFAULT_DOMAIN_FRAMING = (
    'software services & consulting (web development, app builds, SLAs, '
    'replatforming, technical consulting)'
)

DEAL_PRIORITIZATION_SYSTEM_PROMPT = """You are a sales intelligence analyst specializing in {domain_framing}.

Apply the Challenger Sales methodology:
- TEACH: Recommend actions that educate the prospect on insights they haven't considered — reframe their thinking about their problem
- TAILOR: Factor in the specific dynamics of each deal — who are the decision-makers, what's their technical evaluation cycle, are there committee decisions
- TAKE CONTROL: Push prospects toward decisions with constructive tension — set deadlines, propose bold next steps, don't accept stalling

Factor in typical dynamics of this market: scope creep risk, decision-by-committee, technical evaluation cycles, budget approval processes.

Analyze these CRM deals and their email communication history. Consider: staleness of communication, deal value, deal stage, email sentiment, and whether the contact is responsive.

## Ranking Rules

- Return exactly one entry per deal in the input, using the numeric id from its "DEAL #<id>" header as deal_id
- Rank every deal with priority_rank 1..N (1 = most urgent), each rank used exactly once — no gaps, no ties
- deal_health must be one of: {health_values}
- urgency must be one of: {urgency_values}

## Formatting Rules

- Return concise bullet points, NOT full sentences
- Each bullet should be a scannable phrase (e.g. "£15.6K value, strong momentum" not "The deal value is £15.6K and there is strong momentum")
- For deal_history: extract the {max_history} most recent actions/activities/emails from the deal context, return in reverse chronological order (latest first), each with a short date and one-line summary
- Only use history that appears in the deal context — do NOT invent events"""


USER_PROMPT_TEMPLATE = """Prioritize the following {deal_count} open deals.

<deals>
{deal_contexts}
</deals>"""


# =============================================================================
# Tool Definition
# =============================================================================


def _string_list(description: str) -> dict[str, Any]:
    return {'type': 'array', 'items': {'type': 'string'}, 'description': description}


def build_priority_tool() -> dict[str, Any]:
    """
    Build the OpenAI tool definition the model is forced to call.

    Returns:
        Tool dict for chat.completions.create(tools=[...])
    """
    deal_schema = {
        'type': 'object',
        'properties': {
            'deal_id': {'type': 'integer'},
            'deal_title': {'type': 'string'},
            'priority_rank': {'type': 'integer', 'minimum': 1},
            'deal_health': {
                'type': 'string',
                'enum': [h.value for h in DealHealth],
            },
            'urgency': {
                'type': 'string',
                'enum': [u.value for u in Urgency],
            },
            'recommended_actions': _string_list(
                'Concise bullet points for next actions using Challenger methodology '
                '— push toward decisions, create tension, reframe thinking'
            ),
            'reasoning': _string_list(
                'Concise bullet points explaining why this deal is ranked here'
            ),
            'key_signals': _string_list('Short signal phrases from emails/activities'),
            'deal_history': {
                'type': 'array',
                'maxItems': MAX_HISTORY_ENTRIES,
                'items': {
                    'type': 'object',
                    'properties': {
                        'date': {
                            'type': 'string',
                            'description': "Short date like 'Feb 5' or 'Jan 30'",
                        },
                        'summary': {
                            'type': 'string',
                            'description': 'One short sentence summarizing the action',
                        },
                    },
                    'required': ['date', 'summary'],
                },
                'description': (
                    f'Last {MAX_HISTORY_ENTRIES} actions/activities/emails, latest first'
                ),
            },
        },
        'required': [
            'deal_id',
            'deal_title',
            'priority_rank',
            'deal_health',
            'urgency',
            'recommended_actions',
            'reasoning',
            'key_signals',
            'deal_history',
        ],
    }

    return {
        'type': 'function',
        'function': {
            'name': TOOL_NAME,
            'description': 'Structured priority analysis of all deals',
            'parameters': {
                'type': 'object',
                'properties': {
                    'deals': {'type': 'array', 'items': deal_schema},
                },
                'required': ['deals'],
            },
        },
    }


# =============================================================================
# Builder Functions
# =============================================================================


def build_prioritization_prompt(
    deal_contexts: str,
    deal_count: int | None = None,
    domain_framing: str | None = None,
) -> list[dict[str, str]]:
    """
    Build prioritization prompt messages.

    Args:
        deal_contexts: All deal context blocks, concatenated
        deal_count: Number of deals in the batch (counted from headers if omitted)
        domain_framing: Market description for the analyst persona

    Returns:
        List of message dicts for OpenAI chat completion
    """
    if deal_count is None:
        deal_count = sum(
            1 for line in deal_contexts.splitlines() if line.startswith('DEAL #')
        )

    system_prompt = DEAL_PRIORITIZATION_SYSTEM_PROMPT.format(
        domain_framing=domain_framing or DEFAULT_DOMAIN_FRAMING,
        health_values=', '.join(h.value for h in DealHealth),
        urgency_values=', '.join(u.value for u in Urgency),
        max_history=MAX_HISTORY_ENTRIES,
    )
    user_prompt = USER_PROMPT_TEMPLATE.format(
        deal_count=deal_count,
        deal_contexts=deal_contexts,
    )

    return [
        {'role': 'system', 'content': system_prompt},
        {'role': 'user', 'content': user_prompt},
    ]
