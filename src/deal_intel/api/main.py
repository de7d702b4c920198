"""FastAPI application for the deal analysis service."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from deal_intel.clients.gmail_client import GmailClient
from deal_intel.clients.openai_client import OpenAIClient
from deal_intel.clients.pipedrive_client import PipedriveClient
from deal_intel.logging import configure_logging

from .config import get_settings
from .routes.analyze import router as analyze_router
from .routes.health import router as health_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize persistent clients at startup, clean up at shutdown."""
    settings = get_settings()
    configure_logging(json_output=True)

    logger.info("lifespan.startup", crm_base_url=settings.PIPEDRIVE_BASE_URL)

    pipedrive = PipedriveClient(
        api_token=settings.PIPEDRIVE_API_TOKEN,
        base_url=settings.PIPEDRIVE_BASE_URL,
    )
    gmail = GmailClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        refresh_token=settings.GOOGLE_GMAIL_REFRESH_TOKEN,
    )
    openai = OpenAIClient(
        api_key=settings.OPENAI_API_KEY,
        chat_model=settings.OPENAI_CHAT_MODEL,
        max_attempts=settings.OPENAI_MAX_ATTEMPTS,
    )

    # Store on app.state for request handlers
    app.state.pipedrive = pipedrive
    app.state.gmail = gmail
    app.state.openai = openai

    logger.info("lifespan.ready")
    yield

    # Shutdown
    logger.info("lifespan.shutdown")
    await pipedrive.close()
    await gmail.close()
    await openai.close()


app = FastAPI(
    title="deal-intel",
    description="Scheduled deal enrichment and prioritization for Pipedrive pipelines",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(analyze_router)
