"""
Gmail REST client for the Deal Intel pipeline.

Handles:
- Access token exchange from a stored OAuth refresh token
- Message search by correspondent and date window
- Concurrent metadata fetch (From / To / Subject / Date + snippet)
- Retry with exponential backoff on 429 / 5xx / transport errors
"""

import asyncio
import os
import time
from datetime import date, datetime
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import MailboxAuthError, is_transient_http_error, wrap_http_error
from ..models.communication import CommunicationRecord

GMAIL_API_BASE = 'https://gmail.googleapis.com/gmail/v1/users/me'
GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'
METADATA_HEADERS = ['From', 'To', 'Subject', 'Date']


def build_search_query(email: str, after: date | datetime) -> str:
    """Gmail search query for mail exchanged with ``email`` since ``after``."""
    return f'(from:{email} OR to:{email}) after:{after.strftime("%Y/%m/%d")}'


class GmailClient:
    """
    Async Gmail client authenticated with a refresh token.

    Configuration via environment variables:
    - GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET: OAuth client
    - GOOGLE_GMAIL_REFRESH_TOKEN: Refresh token with gmail.readonly scope
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        access_token: str | None = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the Gmail client.

        Either a refresh token (with client credentials) or a ready access
        token must be available.

        Args:
            client_id: OAuth client ID (defaults to GOOGLE_CLIENT_ID)
            client_secret: OAuth client secret (defaults to GOOGLE_CLIENT_SECRET)
            refresh_token: Refresh token (defaults to GOOGLE_GMAIL_REFRESH_TOKEN)
            access_token: Pre-issued access token, used until it is rejected
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per request for transient failures
            transport: Custom httpx transport (tests)
        """
        self.client_id = client_id or os.getenv('GOOGLE_CLIENT_ID', '')
        self.client_secret = client_secret or os.getenv('GOOGLE_CLIENT_SECRET', '')
        self.refresh_token = refresh_token or os.getenv('GOOGLE_GMAIL_REFRESH_TOKEN', '')
        if not access_token and not self.refresh_token:
            raise ValueError('GOOGLE_GMAIL_REFRESH_TOKEN environment variable is required')

        self.max_attempts = max(1, max_attempts)
        self._access_token: str | None = access_token
        self._expires_at: float = float('inf') if access_token else 0.0

        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token and self.client_id and self.client_secret)

    async def refresh_access_token(self) -> str:
        """
        Exchange the refresh token for a fresh access token.

        Concurrent callers may each refresh; the last token written wins and
        every issued token stays valid.

        Raises:
            MailboxAuthError: When the token endpoint rejects the credentials
        """
        if not self.can_refresh:
            raise MailboxAuthError('Gmail access token rejected and no refresh credentials configured')

        try:
            response = await self._client.post(
                GOOGLE_TOKEN_URL,
                data={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'refresh_token': self.refresh_token,
                    'grant_type': 'refresh_token',
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            # Google answers invalid_grant with 400
            if status in (400, 401, 403):
                raise MailboxAuthError(
                    f'Gmail token refresh failed (HTTP {status})',
                    context={'status_code': status},
                ) from exc
            raise wrap_http_error(exc, 'mailbox', context={'operation': 'token_refresh'}) from exc
        except httpx.HTTPError as exc:
            raise wrap_http_error(exc, 'mailbox', context={'operation': 'token_refresh'}) from exc

        payload = response.json()
        self._access_token = payload['access_token']
        # Refresh a minute early
        self._expires_at = time.monotonic() + int(payload.get('expires_in', 3600)) - 60
        return self._access_token

    async def _token(self) -> str:
        if self._access_token is None or time.monotonic() >= self._expires_at:
            return await self.refresh_access_token()
        return self._access_token

    async def _send(self, path: str, params: dict[str, Any] | None) -> httpx.Response:
        token = await self._token()
        response = await self._client.get(
            f'{GMAIL_API_BASE}{path}',
            params=params,
            headers={'Authorization': f'Bearer {token}'},
        )
        if response.status_code == 401 and self.can_refresh:
            self._access_token = None
            token = await self._token()
            response = await self._client.get(
                f'{GMAIL_API_BASE}{path}',
                params=params,
                headers={'Authorization': f'Bearer {token}'},
            )
        response.raise_for_status()
        return response

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a Gmail API path and return the decoded body, raising typed mailbox errors."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
                retry=retry_if_exception(is_transient_http_error),
                reraise=True,
            ):
                with attempt:
                    response = await self._send(path, params)
        except httpx.HTTPError as exc:
            raise wrap_http_error(exc, 'mailbox', context={'path': path}) from exc
        return response.json()

    async def validate_credentials(self) -> None:
        """Fetch the mailbox profile. Raises MailboxAuthError on bad credentials."""
        await self._get('/profile')

    async def search_communications(
        self,
        email: str,
        after: date | datetime,
        max_results: int = 10,
    ) -> list[CommunicationRecord]:
        """
        Messages exchanged with ``email`` since ``after``, newest first.

        Args:
            email: Correspondent address
            after: Start of the lookback window
            max_results: Maximum number of messages to return

        Returns:
            Message metadata in the order Gmail returned it
        """
        listing = await self._get(
            '/messages',
            {'q': build_search_query(email, after), 'maxResults': max_results},
        )
        message_ids = [m['id'] for m in listing.get('messages') or []][:max_results]
        if not message_ids:
            return []

        details = await asyncio.gather(
            *(self._get_message_metadata(message_id) for message_id in message_ids)
        )
        return list(details)

    async def _get_message_metadata(self, message_id: str) -> CommunicationRecord:
        detail = await self._get(
            f'/messages/{message_id}',
            {'format': 'metadata', 'metadataHeaders': METADATA_HEADERS},
        )
        headers = (detail.get('payload') or {}).get('headers') or []

        def header(name: str) -> str:
            for h in headers:
                if h.get('name', '').lower() == name.lower():
                    return h.get('value', '')
            return ''

        return CommunicationRecord(
            sender=header('From'),
            recipient=header('To'),
            subject=header('Subject'),
            date=header('Date'),
            preview=detail.get('snippet') or '',
        )

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> 'GmailClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
