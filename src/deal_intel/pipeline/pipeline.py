"""
Deal analysis pipeline orchestrator.

Wires credential validation, deal listing, enrichment, and prioritization
into a single analyze() call.

Flow:
1. Validate inputs
2. Validate CRM credentials, then mailbox credentials (fatal on failure)
3. List the owner's open deals (zero deals ends the run successfully)
4. Fetch stage names once
5. Enrich every deal under the concurrency limit
6. Concatenate contexts and rank them in one model call
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from ..errors import ClientError, UpstreamCredentialError, ValidationError
from ..logging import PipelineTimer, logging_context
from ..models.communication import CommunicationRecord
from ..models.crm import Activity, CRMPerson, Deal
from ..models.priority import DealPriorityAnalysis
from .communications import CommunicationFetcher
from .contacts import ContactResolver
from .context_builder import DealContext, join_contexts
from .coordinator import (
    DEFAULT_ACTIVITY_LIMIT,
    DEFAULT_CONCURRENCY_LIMIT,
    EnrichmentCoordinator,
)
from .prioritizer import PrioritizationEngine

logger = structlog.get_logger(__name__)


class CRMSource(Protocol):
    async def validate_credentials(self) -> None: ...

    async def list_open_deals(self, owner_id: int | str, limit: int = 100) -> list[Deal]: ...

    async def get_stage_names(self) -> dict[int, str]: ...

    async def get_contacts_for_deal(self, deal_id: int) -> list[CRMPerson]: ...

    async def get_recent_activities(self, deal_id: int, limit: int = 5) -> list[Activity]: ...


class MailboxSource(Protocol):
    async def validate_credentials(self) -> None: ...

    async def search_communications(
        self, email: str, after: datetime, max_results: int = 10
    ) -> list[CommunicationRecord]: ...


# =============================================================================
# Result Model
# =============================================================================


@dataclass
class DealAnalysisResult:
    """
    Outcome of one analysis run.

    ``to_dict()`` is the public payload; the remaining fields are
    diagnostics for the CLI and logs.
    """

    deals_analyzed: int
    analysis: DealPriorityAnalysis = field(default_factory=DealPriorityAnalysis)

    # Diagnostics
    run_id: str | None = None
    contexts: list[DealContext] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stage_timings: dict[str, float] = field(default_factory=dict)
    processing_time_ms: int | None = None
    dry_run: bool = False

    @property
    def degraded_deals(self) -> list[int]:
        """IDs of deals whose context was built with failed lookups."""
        return [c.deal_id for c in self.contexts if c.degraded]

    def to_dict(self, include_diagnostics: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        payload: dict[str, Any] = {
            'dealsAnalyzed': self.deals_analyzed,
            'analysis': self.analysis.model_dump(mode='json'),
        }
        if include_diagnostics:
            payload['diagnostics'] = {
                'run_id': self.run_id,
                'dry_run': self.dry_run,
                'warnings': self.warnings,
                'degraded_deals': self.degraded_deals,
                'processing_time_ms': self.processing_time_ms,
                'stage_timings': self.stage_timings,
                'contexts': [c.to_dict() for c in self.contexts],
            }
        return payload


# =============================================================================
# DealAnalysisPipeline
# =============================================================================


class DealAnalysisPipeline:
    """
    End-to-end deal enrichment and prioritization for one CRM owner.

    Internally creates the ContactResolver, CommunicationFetcher,
    EnrichmentCoordinator and PrioritizationEngine. Client lifetimes belong
    to the caller.
    """

    def __init__(
        self,
        crm_client: CRMSource,
        mailbox_client: MailboxSource,
        openai_client,
        owner_id: int | str,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        activity_limit: int = DEFAULT_ACTIVITY_LIMIT,
        domain_framing: str | None = None,
    ):
        """
        Initialize the pipeline with all required clients.

        Args:
            crm_client: Pipedrive client (or compatible)
            mailbox_client: Gmail client (or compatible)
            openai_client: OpenAI client for the ranking call
            owner_id: CRM user whose open deals are analyzed
            concurrency_limit: Deals enriched concurrently
            activity_limit: Recent activities fetched per deal
            domain_framing: Market description for the analyst prompt
        """
        self.crm = crm_client
        self.mailbox = mailbox_client
        self.owner_id = owner_id

        self.contact_resolver = ContactResolver(crm_client)
        self.communication_fetcher = CommunicationFetcher(mailbox_client)
        self.coordinator = EnrichmentCoordinator(
            contact_resolver=self.contact_resolver,
            communication_fetcher=self.communication_fetcher,
            activity_source=crm_client,
            concurrency_limit=concurrency_limit,
            activity_limit=activity_limit,
        )
        self.engine = PrioritizationEngine(openai_client, domain_framing=domain_framing)

    async def analyze(
        self,
        limit: int = 50,
        email_days: int = 90,
        max_emails: int = 10,
        dry_run: bool = False,
        now: datetime | None = None,
    ) -> DealAnalysisResult:
        """
        Run one analysis.

        Args:
            limit: Maximum number of open deals to analyze
            email_days: Communication lookback window in days
            max_emails: Maximum communications per contact
            dry_run: Build contexts but skip the model call
            now: Reference time for staleness and the lookback window

        Returns:
            DealAnalysisResult (empty analysis for zero deals or a dry run)

        Raises:
            ValidationError: Invalid inputs
            UpstreamCredentialError: CRM or mailbox credentials rejected
            PrioritizationError: The model call failed or returned garbage
        """
        validate_inputs(limit, email_days, max_emails)

        run_id = uuid.uuid4().hex[:12]
        timer = PipelineTimer()
        now = now or datetime.now(tz=timezone.utc)

        with logging_context(run_id=run_id, owner_id=str(self.owner_id)):
            logger.info(
                'deal_pipeline.started',
                limit=limit,
                email_days=email_days,
                max_emails=max_emails,
                dry_run=dry_run,
            )
            result = DealAnalysisResult(deals_analyzed=0, run_id=run_id, dry_run=dry_run)

            with timer.stage('validate_credentials'):
                await self._validate_credentials()

            with timer.stage('list_deals'):
                deals = await self.crm.list_open_deals(self.owner_id, limit=limit)

            logger.info('deal_pipeline.deals_listed', deal_count=len(deals))

            if not deals:
                return self._finish(result, timer, 'deal_pipeline.complete_no_deals')

            with timer.stage('stage_names'):
                stage_names = await self.crm.get_stage_names()

            with timer.stage('enrichment'):
                contexts = await self.coordinator.enrich_all(
                    deals,
                    stage_names=stage_names,
                    email_days=email_days,
                    max_emails=max_emails,
                    now=now,
                )

            result.deals_analyzed = len(contexts)
            result.contexts = contexts
            degraded = result.degraded_deals
            if degraded:
                result.warnings.append(f'Enrichment degraded for deals: {degraded}')
            logger.info(
                'deal_pipeline.enrichment_complete',
                deal_count=len(contexts),
                degraded=len(degraded),
            )

            if dry_run:
                return self._finish(result, timer, 'deal_pipeline.complete_dry_run')

            with timer.stage('prioritization'):
                result.analysis = await self.engine.prioritize(
                    join_contexts(contexts),
                    expected_deal_ids=[d.id for d in deals],
                )
            result.warnings.extend(self.engine.last_warnings)

            return self._finish(result, timer, 'deal_pipeline.complete')

    async def _validate_credentials(self) -> None:
        """CRM first, then mailbox. Any client failure here is fatal."""
        for service, client in (('crm', self.crm), ('mailbox', self.mailbox)):
            try:
                await client.validate_credentials()
            except ClientError as exc:
                logger.error(
                    'deal_pipeline.credentials_invalid',
                    service=service,
                    error=exc.message,
                )
                raise UpstreamCredentialError(
                    f'{service} credential validation failed: {exc.message}',
                    context={'service': service, **exc.context},
                ) from exc

    def _finish(
        self,
        result: DealAnalysisResult,
        timer: PipelineTimer,
        event: str,
    ) -> DealAnalysisResult:
        result.processing_time_ms = int(timer.total_ms)
        result.stage_timings = timer.stages.copy()
        logger.info(
            event,
            deals_analyzed=result.deals_analyzed,
            ranked=len(result.analysis.deals),
            warnings=len(result.warnings),
            **timer.summary(),
        )
        return result


def validate_inputs(limit: int, email_days: int, max_emails: int) -> None:
    """
    Reject out-of-range run parameters.

    Raises:
        ValidationError: limit < 1, email_days < 0 or max_emails < 0
    """
    problems = {}
    if limit < 1:
        problems['limit'] = limit
    if email_days < 0:
        problems['email_days'] = email_days
    if max_emails < 0:
        problems['max_emails'] = max_emails
    if problems:
        raise ValidationError(
            f'Invalid analysis parameters: {", ".join(sorted(problems))}',
            context=problems,
        )
