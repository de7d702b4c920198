"""
Pipeline components for deal enrichment and prioritization.
"""

from .communications import CommunicationFetcher
from .contacts import ContactResolver, resolve_email
from .context_builder import NO_COMMUNICATION_SENTINEL, DealContext, build_context, join_contexts
from .coordinator import EnrichmentCoordinator
from .normalizer import NormalizedPayload, PayloadShape, normalize_priority_payload
from .pipeline import DealAnalysisPipeline, DealAnalysisResult
from .presenter import deal_url, render_contexts, render_text, sort_by_rank, to_payload
from .prioritizer import PrioritizationEngine, enforce_rank_policy, validate_priority_payload

__all__ = [
    # Main Pipeline
    'DealAnalysisPipeline',
    'DealAnalysisResult',
    # Enrichment
    'ContactResolver',
    'resolve_email',
    'CommunicationFetcher',
    'EnrichmentCoordinator',
    # Context
    'DealContext',
    'build_context',
    'join_contexts',
    'NO_COMMUNICATION_SENTINEL',
    # Prioritization
    'PrioritizationEngine',
    'enforce_rank_policy',
    'validate_priority_payload',
    'NormalizedPayload',
    'PayloadShape',
    'normalize_priority_payload',
    # Presentation
    'render_text',
    'render_contexts',
    'sort_by_rank',
    'deal_url',
    'to_payload',
]
