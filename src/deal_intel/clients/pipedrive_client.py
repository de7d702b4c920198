"""
Pipedrive REST client for the Deal Intel pipeline.

Thin async wrapper over the Pipedrive v2 API:
- Cursor pagination for open deals
- Stage, person and activity lookups
- Retry with exponential backoff on 429 / 5xx / transport errors
"""

import os
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import CRMError, is_transient_http_error, wrap_http_error
from ..models.crm import Activity, CRMPerson, Deal


class PipedriveClient:
    """
    Async Pipedrive client.

    Configuration via environment variables:
    - PIPEDRIVE_API_TOKEN: Required API token
    - PIPEDRIVE_BASE_URL: API host (default: https://api.pipedrive.com)
    """

    PAGE_SIZE = 100

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the Pipedrive client.

        Args:
            api_token: Pipedrive API token (defaults to PIPEDRIVE_API_TOKEN env var)
            base_url: API host (defaults to PIPEDRIVE_BASE_URL or https://api.pipedrive.com)
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per request for transient failures
            transport: Custom httpx transport (tests)
        """
        self.api_token = api_token or os.getenv('PIPEDRIVE_API_TOKEN')
        if not self.api_token:
            raise ValueError('PIPEDRIVE_API_TOKEN environment variable is required')

        self.base_url = (
            base_url or os.getenv('PIPEDRIVE_BASE_URL', 'https://api.pipedrive.com')
        ).rstrip('/')
        self.max_attempts = max(1, max_attempts)

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={'x-api-token': self.api_token, 'Accept': 'application/json'},
            timeout=timeout,
            transport=transport,
        )

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET ``path`` and return the decoded body, raising typed CRM errors."""
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
                retry=retry_if_exception(is_transient_http_error),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.get(path, params=query)
                    response.raise_for_status()
        except httpx.HTTPError as exc:
            raise wrap_http_error(exc, 'crm', context={'path': path}) from exc
        return response.json()

    async def validate_credentials(self) -> None:
        """Make the cheapest authenticated call. Raises CRMAuthError on a bad token."""
        await self._get('/api/v2/deals', {'limit': 1})

    async def list_open_deals(self, owner_id: int | str, limit: int = 100) -> list[Deal]:
        """
        List open deals owned by ``owner_id``, most recently updated first.

        Args:
            owner_id: Pipedrive user ID
            limit: Maximum number of deals to return

        Returns:
            Up to ``limit`` deals
        """
        deals: list[Deal] = []
        cursor: str | None = None

        while len(deals) < limit:
            body = await self._get(
                '/api/v2/deals',
                {
                    'status': 'open',
                    'owner_id': owner_id,
                    'limit': min(limit - len(deals), self.PAGE_SIZE),
                    'cursor': cursor,
                    'sort_by': 'update_time',
                    'sort_direction': 'desc',
                },
            )
            deals.extend(self._parse_list(Deal, body.get('data'), '/api/v2/deals'))
            cursor = (body.get('additional_data') or {}).get('next_cursor')
            if not cursor:
                break

        return deals[:limit]

    async def get_stage_names(self) -> dict[int, str]:
        """Map every pipeline stage ID to its display name."""
        body = await self._get('/api/v2/stages')
        stages: dict[int, str] = {}
        for stage in body.get('data') or []:
            if stage.get('id') is not None and stage.get('name') is not None:
                stages[int(stage['id'])] = stage['name']
        return stages

    async def get_contacts_for_deal(self, deal_id: int) -> list[CRMPerson]:
        """Persons linked to a deal, with all their email entries."""
        body = await self._get('/api/v2/persons', {'deal_id': deal_id})
        return self._parse_list(CRMPerson, body.get('data'), '/api/v2/persons')

    async def get_recent_activities(self, deal_id: int, limit: int = 5) -> list[Activity]:
        """Most recent activities attached to a deal."""
        body = await self._get('/api/v2/activities', {'deal_id': deal_id, 'limit': limit})
        return self._parse_list(Activity, body.get('data'), '/api/v2/activities')[:limit]

    @staticmethod
    def _parse_list(model: type, items: list[dict] | None, path: str) -> list:
        try:
            return [model.model_validate(item) for item in items or []]
        except PydanticValidationError as exc:
            raise CRMError(
                f'Unexpected Pipedrive payload from {path}',
                context={'path': path, 'errors': exc.errors(include_url=False)},
            ) from exc

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> 'PipedriveClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
