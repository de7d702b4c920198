"""
Custom exceptions and error handling for the Deal Intel pipeline.

Provides:
- Typed exception hierarchy separating fatal failures (credentials, model
  response) from locally recovered ones (per-deal enrichment)
- Error context preservation for debugging
- FetchOutcome, a result type that keeps "what failed and why" for
  diagnostics after a failure has been collapsed to an empty value
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar

import httpx

T = TypeVar('T')


class DealIntelError(Exception):
    """Base exception for all deal intel errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(DealIntelError):
    """Base class for client-related errors."""

    pass


class CRMError(ClientError):
    """Error from Pipedrive API calls."""

    pass


class CRMAuthError(CRMError):
    """Pipedrive rejected the API token."""

    pass


class MailboxError(ClientError):
    """Error from Gmail API calls."""

    pass


class MailboxAuthError(MailboxError):
    """Gmail rejected the credentials or the refresh token exchange failed."""

    pass


class OpenAIError(ClientError):
    """Error from OpenAI API calls."""

    pass


class OpenAIRateLimitError(OpenAIError):
    """Rate limit exceeded on OpenAI API."""

    pass


class OpenAIModelError(OpenAIError):
    """Model refused request or returned invalid response."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(DealIntelError):
    """Base class for pipeline-related errors."""

    pass


class ValidationError(PipelineError):
    """Input validation failed."""

    pass


class UpstreamCredentialError(PipelineError):
    """CRM or mailbox credentials are invalid. Fatal, raised before enrichment."""

    pass


class EnrichmentError(PipelineError):
    """A contact, activity or communication lookup failed for one deal."""

    pass


class PrioritizationError(PipelineError):
    """The prioritization call failed."""

    pass


class MalformedModelResponseError(PrioritizationError):
    """The model payload could not be normalized into a schema-valid result."""

    pass


# =============================================================================
# Outcome Handling
# =============================================================================


@dataclass
class FetchOutcome(Generic[T]):
    """
    Result of a single lookup that is allowed to fail.

    Enrichment collapses a failed outcome to an empty value, but keeps the
    outcome itself so verbose mode and the diagnostics payload can report
    which lookup failed for which deal.
    """

    operation: str
    value: T | None = None
    error: DealIntelError | None = None
    target: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls, operation: str, value: T, target: str | None = None
    ) -> 'FetchOutcome[T]':
        return cls(operation=operation, value=value, target=target)

    @classmethod
    def failure(
        cls, operation: str, error: DealIntelError, target: str | None = None
    ) -> 'FetchOutcome[T]':
        return cls(operation=operation, error=error, target=target)

    def unwrap_or(self, default: T) -> T:
        """Return the value, or ``default`` when the lookup failed."""
        if self.error is not None or self.value is None:
            return default
        return self.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'operation': self.operation,
            'target': self.target,
            'ok': self.ok,
            'error': str(self.error) if self.error else None,
            'error_type': type(self.error).__name__ if self.error else None,
        }


async def capture(
    operation: str,
    awaitable: Awaitable[T],
    target: str | None = None,
) -> FetchOutcome[T]:
    """
    Await ``awaitable`` and wrap its result or failure in a FetchOutcome.

    Non-library exceptions are wrapped in EnrichmentError. Cancellation is
    not an Exception and propagates untouched.
    """
    try:
        value = await awaitable
    except DealIntelError as exc:
        return FetchOutcome.failure(operation, exc, target=target)
    except Exception as exc:
        wrapped = EnrichmentError(
            f"{operation} failed: {exc}",
            context={'error_type': type(exc).__name__, 'target': target},
        )
        return FetchOutcome.failure(operation, wrapped, target=target)
    return FetchOutcome.success(operation, value, target=target)


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_openai_error(exc: Exception, context: dict[str, Any] | None = None) -> OpenAIError:
    """
    Wrap an OpenAI exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed OpenAIError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'rate limit' in error_str or 'rate_limit' in error_str:
        return OpenAIRateLimitError(
            f"OpenAI rate limit exceeded: {exc}",
            context=ctx,
        )
    elif 'content policy' in error_str or 'refused' in error_str:
        return OpenAIModelError(
            f"OpenAI model refused request: {exc}",
            context=ctx,
        )
    else:
        return OpenAIError(
            f"OpenAI API error: {exc}",
            context=ctx,
        )


def is_transient_http_error(exc: BaseException) -> bool:
    """True for failures worth retrying: 429, 5xx and transport errors."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


_SERVICE_ERRORS: dict[str, tuple[type[ClientError], type[ClientError], str]] = {
    'crm': (CRMError, CRMAuthError, 'Pipedrive'),
    'mailbox': (MailboxError, MailboxAuthError, 'Gmail'),
}


def wrap_http_error(
    exc: Exception,
    service: str,
    context: dict[str, Any] | None = None,
) -> ClientError:
    """
    Wrap an httpx exception raised by a REST client in our typed hierarchy.

    401 and 403 responses become the service's auth error so the pipeline can
    tell credential problems apart from transient failures.

    Args:
        exc: The original exception
        service: 'crm' or 'mailbox'
        context: Additional context for debugging

    Returns:
        Typed ClientError subclass
    """
    base_cls, auth_cls, label = _SERVICE_ERRORS[service]
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        ctx['status_code'] = status
        if status in (401, 403):
            return auth_cls(f"{label} authentication failed (HTTP {status})", context=ctx)
        return base_cls(f"{label} API error: HTTP {status}", context=ctx)

    if isinstance(exc, httpx.TimeoutException):
        return base_cls(f"{label} request timed out: {exc}", context=ctx)

    return base_cls(f"{label} request failed: {exc}", context=ctx)
