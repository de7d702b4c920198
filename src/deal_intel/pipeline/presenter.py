"""
Rendering of prioritization results.

Terminal report, dry-run context dump and JSON payload. Formatting only.
"""

from collections import Counter
from typing import TYPE_CHECKING, Any

from ..models.priority import DealHealth, DealPriority, DealPriorityAnalysis, Urgency
from .context_builder import DealContext, join_contexts

if TYPE_CHECKING:
    from .pipeline import DealAnalysisResult

HEALTH_ICONS: dict[DealHealth, str] = {
    DealHealth.HOT: '!!!',
    DealHealth.WARM: '!! ',
    DealHealth.COLD: '!  ',
    DealHealth.AT_RISK: '!!!',
}

URGENCY_LABELS: dict[Urgency, str] = {
    Urgency.IMMEDIATE: 'NOW',
    Urgency.THIS_WEEK: 'THIS WEEK',
    Urgency.NEXT_WEEK: 'NEXT WEEK',
    Urgency.NO_RUSH: 'LOW',
}

BANNER = '\n'.join([
    '========================================',
    '         DEAL PRIORITIES',
    '========================================',
])
SEPARATOR = '----------------------------------------'
NO_DEALS_MESSAGE = 'No open deals found. Nothing to analyze.'


def deal_url(crm_domain: str, deal_id: int) -> str:
    """Pipedrive web URL of a deal."""
    return f'https://{crm_domain}.pipedrive.com/deal/{deal_id}'


def sort_by_rank(analysis: DealPriorityAnalysis) -> list[DealPriority]:
    """Entries by ascending rank. Stable: tied entries keep model order."""
    return sorted(analysis.deals, key=lambda d: d.priority_rank)


def find_rank_conflicts(analysis: DealPriorityAnalysis) -> list[int]:
    """Ranks used by more than one entry."""
    counts = Counter(d.priority_rank for d in analysis.deals)
    return sorted(rank for rank, count in counts.items() if count > 1)


def _bullets(title: str, items: list[str]) -> list[str]:
    return ['', f'{title}:', *(f'  - {item}' for item in items)]


def render_deal(deal: DealPriority, crm_domain: str) -> str:
    """Render one ranked deal."""
    lines = [
        f'#{deal.priority_rank} [{HEALTH_ICONS.get(deal.deal_health, "   ")}] {deal.deal_title}',
        f'URL: {deal_url(crm_domain, deal.deal_id)}',
        (
            f'Health: {deal.deal_health.value.upper()} '
            f'| Urgency: {URGENCY_LABELS.get(deal.urgency, deal.urgency.value)}'
        ),
    ]
    lines += _bullets('Action', deal.recommended_actions)
    lines += _bullets('Why', deal.reasoning)
    if deal.key_signals:
        lines += _bullets('Signals', deal.key_signals)
    if deal.deal_history:
        lines += _bullets(
            'Deal History',
            [f'{entry.date}: {entry.summary}' for entry in deal.deal_history],
        )
    lines += ['', SEPARATOR]
    return '\n'.join(lines)


def render_text(
    analysis: DealPriorityAnalysis,
    crm_domain: str,
    warnings: list[str] | None = None,
    deals_analyzed: int = 0,
) -> str:
    """
    Render the full terminal report.

    Args:
        analysis: Prioritization result
        crm_domain: Pipedrive company subdomain for deal links
        warnings: Data-quality notes to print above the ranking
        deals_analyzed: Deals sent for prioritization

    Returns:
        Report text
    """
    if not analysis.deals:
        if not deals_analyzed:
            return NO_DEALS_MESSAGE
        lines = [f'No usable rankings returned for {deals_analyzed} analyzed deals.']
        lines += [f'Note: {note}' for note in warnings or []]
        return '\n'.join(lines)

    sections = [BANNER, '']

    notes = list(warnings or [])
    conflicts = find_rank_conflicts(analysis)
    if conflicts:
        notes.append(f'Duplicate ranks in result: {conflicts}')
    if notes:
        sections += [f'Note: {note}' for note in notes]
        sections.append('')

    for deal in sort_by_rank(analysis):
        sections += [render_deal(deal, crm_domain), '']

    return '\n'.join(sections)


def render_contexts(contexts: list[DealContext]) -> str:
    """Render the model input for a dry run."""
    return '\n'.join([
        '--- DRY RUN: Deal context that would be sent for prioritization ---',
        '',
        join_contexts(contexts),
        '',
        '[DRY RUN] Prioritization skipped.',
    ])


def render_diagnostics(contexts: list[DealContext]) -> str:
    """One line per deal: counts and failed lookups (verbose mode)."""
    lines = []
    total = len(contexts)
    for i, context in enumerate(contexts, start=1):
        line = (
            f'[{i}/{total}] {context.title}: {context.contact_count} contacts, '
            f'{context.communication_count} emails'
        )
        lines.append(line)
        for failure in context.failures:
            lines.append(f'    ! {failure.operation} ({failure.target}): {failure.error}')
    return '\n'.join(lines)


def to_payload(result: 'DealAnalysisResult', include_diagnostics: bool = False) -> dict[str, Any]:
    """JSON-serializable payload for API responses and --json output."""
    return result.to_dict(include_diagnostics=include_diagnostics)
