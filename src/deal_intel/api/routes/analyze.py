"""POST /tasks/analyze-deals: run one deal analysis for the configured owner."""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from deal_intel.errors import PrioritizationError, UpstreamCredentialError, ValidationError
from deal_intel.pipeline.pipeline import DealAnalysisPipeline

from ..auth import verify_worker_token
from ..config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter()


class AnalyzeDealsRequest(BaseModel):
    """Run parameters. Every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    limit: int = Field(default=50, ge=1)
    email_days: int = Field(default=90, ge=0, alias="emailDays")
    max_emails: int = Field(default=10, ge=0, alias="maxEmails")


def _error_response(status_code: int, error_type: str, exc: Exception) -> JSONResponse:
    content: dict[str, Any] = {
        "error": getattr(exc, "message", str(exc)),
        "error_type": error_type,
    }
    context = getattr(exc, "context", None)
    if context:
        content["context"] = jsonable_encoder(context)
    return JSONResponse(status_code=status_code, content=content)


@router.post("/tasks/analyze-deals")
async def analyze_deals(
    request: Request,
    body: dict[str, Any] | None = Body(default=None),
    _auth: None = Depends(verify_worker_token),
):
    """Enrich and rank the owner's open deals; returns {dealsAnalyzed, analysis}."""
    try:
        params = AnalyzeDealsRequest.model_validate(body or {})
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    settings = get_settings()
    log = logger.bind(
        owner_id=settings.PIPEDRIVE_USER_ID,
        limit=params.limit,
        email_days=params.email_days,
        max_emails=params.max_emails,
    )
    log.info("analyze.received")

    pipeline = DealAnalysisPipeline(
        crm_client=request.app.state.pipedrive,
        mailbox_client=request.app.state.gmail,
        openai_client=request.app.state.openai,
        owner_id=settings.PIPEDRIVE_USER_ID,
        concurrency_limit=settings.ENRICHMENT_CONCURRENCY,
        activity_limit=settings.ACTIVITY_LIMIT,
        domain_framing=settings.DOMAIN_FRAMING,
    )

    try:
        result = await pipeline.analyze(
            limit=params.limit,
            email_days=params.email_days,
            max_emails=params.max_emails,
        )
    except ValidationError as e:
        log.warning("analyze.invalid", error=str(e))
        return _error_response(422, "validation", e)
    except UpstreamCredentialError as e:
        log.error("analyze.credentials_failed", error=str(e))
        return _error_response(502, "upstream_credentials", e)
    except PrioritizationError as e:
        log.error("analyze.prioritization_failed", error=str(e), error_type=type(e).__name__)
        return _error_response(502, "model_response", e)
    except Exception as e:
        log.error("analyze.failed", error=str(e), error_type=type(e).__name__)
        return _error_response(500, "internal", e)

    log.info(
        "analyze.complete",
        deals_analyzed=result.deals_analyzed,
        processing_time_ms=result.processing_time_ms,
        warnings=len(result.warnings),
    )
    return result.to_dict()
