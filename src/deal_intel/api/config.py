"""Configuration for the deal analysis HTTP service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    # Pipedrive
    PIPEDRIVE_API_TOKEN: str
    PIPEDRIVE_USER_ID: str
    PIPEDRIVE_DOMAIN: str
    PIPEDRIVE_BASE_URL: str = "https://api.pipedrive.com"

    # OpenAI
    OPENAI_API_KEY: str
    OPENAI_CHAT_MODEL: str = "gpt-4.1-mini"
    OPENAI_MAX_ATTEMPTS: int = 1

    # Gmail
    GOOGLE_CLIENT_ID: str
    GOOGLE_CLIENT_SECRET: str
    GOOGLE_GMAIL_REFRESH_TOKEN: str

    # Pipeline
    ENRICHMENT_CONCURRENCY: int = 5
    ACTIVITY_LIMIT: int = 5
    DOMAIN_FRAMING: str | None = None

    # Auth
    WORKER_API_KEY: str


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
