"""
Deal Intel

Enriches a salesperson's open Pipedrive deals with contact and Gmail history
and ranks them with a single OpenAI structured-output call.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .pipeline import (
    DealAnalysisPipeline,
    DealAnalysisResult,
    DealContext,
    EnrichmentCoordinator,
    PrioritizationEngine,
)
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    PipelineTimer,
)
from .errors import (
    DealIntelError,
    PipelineError,
    ValidationError,
    UpstreamCredentialError,
    EnrichmentError,
    PrioritizationError,
    MalformedModelResponseError,
    FetchOutcome,
)

__all__ = [
    # Version
    '__version__',
    # Main Pipeline
    'DealAnalysisPipeline',
    'DealAnalysisResult',
    # Components
    'DealContext',
    'EnrichmentCoordinator',
    'PrioritizationEngine',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'DealIntelError',
    'PipelineError',
    'ValidationError',
    'UpstreamCredentialError',
    'EnrichmentError',
    'PrioritizationError',
    'MalformedModelResponseError',
    'FetchOutcome',
]
