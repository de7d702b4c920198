"""
Tests for the errors module.
"""

import asyncio

import httpx
import pytest

from deal_intel.errors import (
    ClientError,
    CRMAuthError,
    CRMError,
    DealIntelError,
    EnrichmentError,
    FetchOutcome,
    MailboxAuthError,
    MailboxError,
    MalformedModelResponseError,
    OpenAIError,
    OpenAIModelError,
    OpenAIRateLimitError,
    PipelineError,
    PrioritizationError,
    UpstreamCredentialError,
    ValidationError,
    capture,
    is_transient_http_error,
    wrap_http_error,
    wrap_openai_error,
)


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request('GET', 'https://api.pipedrive.com/api/v2/deals')
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f'HTTP {status}', request=request, response=response)


class TestErrorHierarchy:
    """Test error class hierarchy."""

    def test_base_error_with_context(self):
        """Test that base error captures context."""
        error = DealIntelError(
            "Something went wrong",
            context={"key": "value", "count": 42},
        )

        assert error.message == "Something went wrong"
        assert error.context == {"key": "value", "count": 42}
        assert "key" in str(error)

    def test_base_error_without_context(self):
        error = DealIntelError("Simple error")

        assert error.context == {}
        assert str(error) == "Simple error"

    def test_pipeline_error_inheritance(self):
        assert isinstance(ValidationError("bad"), PipelineError)
        assert isinstance(UpstreamCredentialError("creds"), PipelineError)
        assert isinstance(EnrichmentError("lookup"), PipelineError)
        assert isinstance(MalformedModelResponseError("shape"), PrioritizationError)

    def test_client_error_inheritance(self):
        assert isinstance(CRMAuthError("401"), CRMError)
        assert isinstance(MailboxAuthError("401"), MailboxError)
        assert isinstance(OpenAIRateLimitError("429"), OpenAIError)
        for cls in (CRMError, MailboxError, OpenAIError):
            assert issubclass(cls, ClientError)


class TestErrorWrapping:
    """Test error wrapping utilities."""

    def test_wrap_openai_rate_limit(self):
        wrapped = wrap_openai_error(Exception("Rate limit exceeded"))
        assert isinstance(wrapped, OpenAIRateLimitError)

    def test_wrap_openai_refusal(self):
        wrapped = wrap_openai_error(Exception("The model refused the request"))
        assert isinstance(wrapped, OpenAIModelError)

    def test_wrap_openai_generic(self):
        wrapped = wrap_openai_error(Exception("Connection reset"), context={"model": "gpt-4.1-mini"})
        assert type(wrapped) is OpenAIError
        assert wrapped.context["model"] == "gpt-4.1-mini"
        assert wrapped.context["error_type"] == "Exception"

    @pytest.mark.parametrize("status", [401, 403])
    def test_wrap_http_auth_failure(self, status):
        wrapped = wrap_http_error(_status_error(status), 'crm')

        assert isinstance(wrapped, CRMAuthError)
        assert wrapped.context["status_code"] == status
        assert wrapped.message == f"Pipedrive authentication failed (HTTP {status})"

    def test_wrap_http_server_error(self):
        wrapped = wrap_http_error(_status_error(502), 'mailbox', context={"path": "/profile"})

        assert type(wrapped) is MailboxError
        assert wrapped.message == "Gmail API error: HTTP 502"
        assert wrapped.context["path"] == "/profile"

    def test_wrap_http_timeout(self):
        wrapped = wrap_http_error(httpx.ReadTimeout("read timed out"), 'crm')

        assert type(wrapped) is CRMError
        assert "timed out" in wrapped.message

    @pytest.mark.parametrize("status,expected", [(429, True), (500, True), (503, True), (400, False), (401, False), (404, False)])
    def test_transient_status(self, status, expected):
        assert is_transient_http_error(_status_error(status)) is expected

    def test_transport_errors_are_transient(self):
        assert is_transient_http_error(httpx.ConnectError("refused"))
        assert not is_transient_http_error(ValueError("nope"))


class TestFetchOutcome:
    """Test the lookup result type."""

    def test_success(self):
        outcome = FetchOutcome.success('resolve_contacts', [1, 2], target='42')

        assert outcome.ok
        assert outcome.unwrap_or([]) == [1, 2]
        assert outcome.to_dict() == {
            'operation': 'resolve_contacts',
            'target': '42',
            'ok': True,
            'error': None,
            'error_type': None,
        }

    def test_failure_collapses_to_default(self):
        outcome = FetchOutcome.failure('fetch_activities', CRMError('boom'), target='42')

        assert not outcome.ok
        assert outcome.unwrap_or([]) == []
        assert outcome.to_dict()['error_type'] == 'CRMError'

    @pytest.mark.asyncio
    async def test_capture_success(self):
        async def lookup():
            return ['a']

        outcome = await capture('lookup', lookup(), target='x')
        assert outcome.ok
        assert outcome.value == ['a']

    @pytest.mark.asyncio
    async def test_capture_keeps_typed_errors(self):
        async def lookup():
            raise MailboxAuthError('expired')

        outcome = await capture('lookup', lookup())
        assert isinstance(outcome.error, MailboxAuthError)

    @pytest.mark.asyncio
    async def test_capture_wraps_unexpected_errors(self):
        async def lookup():
            raise KeyError('emails')

        outcome = await capture('lookup', lookup(), target='42')
        assert isinstance(outcome.error, EnrichmentError)
        assert outcome.error.context['error_type'] == 'KeyError'

    @pytest.mark.asyncio
    async def test_capture_propagates_cancellation(self):
        async def lookup():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await capture('lookup', lookup())
