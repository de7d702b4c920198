"""
Configuration management for the Deal Intel pipeline.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Config:
    """Configuration settings loaded from environment."""

    # Pipedrive
    PIPEDRIVE_API_TOKEN: str = os.getenv('PIPEDRIVE_API_TOKEN', '')
    PIPEDRIVE_USER_ID: str = os.getenv('PIPEDRIVE_USER_ID', '')
    PIPEDRIVE_DOMAIN: str = os.getenv('PIPEDRIVE_DOMAIN', '')
    PIPEDRIVE_BASE_URL: str = os.getenv('PIPEDRIVE_BASE_URL', 'https://api.pipedrive.com')

    # OpenAI
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    OPENAI_CHAT_MODEL: str = os.getenv('OPENAI_CHAT_MODEL', 'gpt-4.1-mini')
    OPENAI_MAX_ATTEMPTS: int = int(os.getenv('OPENAI_MAX_ATTEMPTS', '1'))

    # Gmail (refresh-token based OAuth2)
    GOOGLE_CLIENT_ID: str = os.getenv('GOOGLE_CLIENT_ID', '')
    GOOGLE_CLIENT_SECRET: str = os.getenv('GOOGLE_CLIENT_SECRET', '')
    GOOGLE_GMAIL_REFRESH_TOKEN: str = os.getenv('GOOGLE_GMAIL_REFRESH_TOKEN', '')

    # Pipeline
    ENRICHMENT_CONCURRENCY: int = int(os.getenv('ENRICHMENT_CONCURRENCY', '5'))
    ACTIVITY_LIMIT: int = int(os.getenv('ACTIVITY_LIMIT', '5'))
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.PIPEDRIVE_API_TOKEN:
            missing.append('PIPEDRIVE_API_TOKEN')
        if not cls.PIPEDRIVE_USER_ID:
            missing.append('PIPEDRIVE_USER_ID')
        if not cls.PIPEDRIVE_DOMAIN:
            missing.append('PIPEDRIVE_DOMAIN')
        if not cls.OPENAI_API_KEY:
            missing.append('OPENAI_API_KEY')
        if not cls.GOOGLE_CLIENT_ID:
            missing.append('GOOGLE_CLIENT_ID')
        if not cls.GOOGLE_CLIENT_SECRET:
            missing.append('GOOGLE_CLIENT_SECRET')
        if not cls.GOOGLE_GMAIL_REFRESH_TOKEN:
            missing.append('GOOGLE_GMAIL_REFRESH_TOKEN')
        return missing


# Singleton config instance
config = Config()
