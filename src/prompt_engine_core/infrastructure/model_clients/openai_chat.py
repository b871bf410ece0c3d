"""
OpenAI chat model client
"""

import os
import time

import openai
from openai import OpenAI

from prompt_engine_core.domain import errors
from prompt_engine_core.domain.value_objects import ModelResponse
from prompt_engine_core.infrastructure.model_clients.base import ModelClient, RetryMixin


def map_openai_error(e: Exception) -> errors.APIError:
    """Translate an OpenAI SDK exception into the engine's remote error taxonomy"""
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return errors.AuthenticationError(f"Invalid OpenAI API key: {e}")
    if isinstance(e, openai.RateLimitError):
        return errors.RateLimitError(f"OpenAI rate limit exceeded: {e}")
    if isinstance(e, openai.NotFoundError):
        return errors.RemoteNotFoundError(f"OpenAI resource not found: {e}")
    if isinstance(e, openai.APIConnectionError):
        return errors.APIError(f"Could not reach OpenAI: {e}")
    return errors.APIError(f"OpenAI API error: {e}")


RETRYABLE_OPENAI_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIChatClient(RetryMixin, ModelClient):
    """Client using the OpenAI chat completions API"""

    provider = "openai"

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        base_url: str | None = None,
        max_retries: int = 3,
        max_tokens: int = 1024,
    ):
        """
        Args:
            model_name: Model name (e.g. gpt-4o)
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var if not specified)
            base_url: API endpoint (falls back to OPENAI_BASE_URL env var if not specified)
            max_retries: Maximum number of retries (default: 3)
            max_tokens: Default maximum number of tokens (default: 1024)
        """
        self.model_name = model_name
        self.max_retries = max_retries
        self.max_tokens = max_tokens

        # Configuration priority: argument > environment variable > default value
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        base_url = base_url or os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
        if not api_key:
            raise errors.AuthenticationError("OpenAI API key not configured")

        self.base_url = base_url
        self.client = OpenAI(base_url=base_url, api_key=api_key, max_retries=0)

    def generate(
        self,
        prompt: str,
        *,
        system_message: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        """
        Send a prompt and retrieve the response

        Args:
            prompt: Rendered user content
            system_message: Sent as the first chat message when present
            temperature: Sampling temperature (default: 0.7)
            max_tokens: Overrides the client default

        Returns:
            ModelResponse: The model's response

        Raises:
            APIError: Mapped provider error once retries are exhausted
        """
        messages = []
        if system_message:
            messages.append({"role": "system", "content": system_message})
        messages.append({"role": "user", "content": prompt})

        def _call():
            start_time = time.time()
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=0.7 if temperature is None else temperature,
                max_tokens=max_tokens or self.max_tokens,
            )
            end_time = time.time()

            latency_ms = int((end_time - start_time) * 1000)
            output = (response.choices[0].message.content or "").strip()

            # Retrieve token usage
            input_tokens = 0
            output_tokens = 0
            if response.usage:
                input_tokens = response.usage.prompt_tokens or 0
                output_tokens = response.usage.completion_tokens or 0

            return ModelResponse(
                output=output,
                latency_ms=latency_ms,
                model_name=self.model_name,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        try:
            return self._with_retry(_call, retryable_exceptions=RETRYABLE_OPENAI_ERRORS)
        except openai.APIError as e:
            raise map_openai_error(e) from e
