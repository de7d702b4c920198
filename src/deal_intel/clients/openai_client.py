"""
OpenAI client wrapper for the Deal Intel pipeline.

Handles:
- Forced function (tool) calls returning the raw arguments payload
- Optional retry with exponential backoff (off by default)
"""

import os
from typing import Any

from openai import AsyncOpenAI
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from ..errors import OpenAIModelError


class OpenAIClient:
    """
    Async OpenAI client for tool-call based structured output.

    Configuration via environment variables:
    - OPENAI_API_KEY: Required API key
    - OPENAI_CHAT_MODEL: Chat model (default: gpt-4.1-mini)
    - OPENAI_MAX_ATTEMPTS: Attempts per call, 1 disables retries (default: 1)
    """

    def __init__(
        self,
        api_key: str | None = None,
        chat_model: str | None = None,
        max_attempts: int | None = None,
        max_tokens: int = 16384,
        client: AsyncOpenAI | None = None,
    ):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            chat_model: Model for chat completions (defaults to OPENAI_CHAT_MODEL or gpt-4.1-mini)
            max_attempts: Attempts per request (defaults to OPENAI_MAX_ATTEMPTS or 1)
            max_tokens: Completion token ceiling for tool calls
            client: Pre-built AsyncOpenAI instance (tests, custom base URLs)
        """
        self.api_key = api_key or os.getenv('OPENAI_API_KEY')
        if not self.api_key and client is None:
            raise ValueError('OPENAI_API_KEY environment variable is required')

        self.chat_model = chat_model or os.getenv('OPENAI_CHAT_MODEL', 'gpt-4.1-mini')
        self.max_attempts = max(1, max_attempts or int(os.getenv('OPENAI_MAX_ATTEMPTS', '1')))
        self.max_tokens = max_tokens

        self._client = client or AsyncOpenAI(api_key=self.api_key)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    async def chat_completion_tool_call(
        self,
        messages: list[dict[str, str]],
        tool: dict[str, Any],
        model: str | None = None,
        temperature: float = 0.0,
    ) -> str:
        """
        Force the model to call ``tool`` and return its raw arguments.

        The arguments are returned unparsed. Models sometimes deviate from
        the declared schema, so shape repair and validation belong to the
        caller.

        Args:
            messages: List of message dicts with 'role' and 'content'
            tool: OpenAI tool definition ({'type': 'function', 'function': {...}})
            model: Override the default chat model
            temperature: Sampling temperature

        Returns:
            The function-call arguments as returned by the API (a JSON string)

        Raises:
            OpenAIModelError: When the response carries neither a tool call nor content
        """
        tool_name = tool['function']['name']

        async for attempt in self._retrying():
            with attempt:
                response = await self._client.chat.completions.create(
                    model=model or self.chat_model,
                    messages=messages,  # type: ignore
                    tools=[tool],  # type: ignore
                    tool_choice={'type': 'function', 'function': {'name': tool_name}},
                    temperature=temperature,
                    max_tokens=self.max_tokens,
                )

        message = response.choices[0].message
        if message.tool_calls:
            return message.tool_calls[0].function.arguments
        if message.content:
            # Some models answer in plain content despite tool_choice
            return message.content

        raise OpenAIModelError(
            'No structured response from model',
            context={
                'model': model or self.chat_model,
                'finish_reason': response.choices[0].finish_reason,
                'refusal': getattr(message, 'refusal', None),
            },
        )

    async def close(self):
        """Close the client connection."""
        await self._client.close()
