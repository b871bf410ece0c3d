"""
Anthropic Claude model client
"""

import os
import time

import anthropic
from anthropic import Anthropic, APIConnectionError, InternalServerError, RateLimitError

from prompt_engine_core.domain import errors
from prompt_engine_core.domain.value_objects import ModelResponse
from prompt_engine_core.infrastructure.model_clients.base import ModelClient, RetryMixin


def map_anthropic_error(e: Exception) -> errors.APIError:
    """Translate an Anthropic SDK exception into the engine's remote error taxonomy"""
    if isinstance(e, anthropic.AuthenticationError):
        return errors.AuthenticationError(f"Invalid Anthropic API key: {e}")
    if isinstance(e, anthropic.RateLimitError):
        return errors.RateLimitError(f"Anthropic rate limit exceeded: {e}")
    if isinstance(e, anthropic.NotFoundError):
        return errors.RemoteNotFoundError(f"Anthropic resource not found: {e}")
    return errors.APIError(f"Anthropic API error: {e}")


class ClaudeClient(RetryMixin, ModelClient):
    """Claude client using the Anthropic API"""

    provider = "anthropic"

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        max_retries: int = 3,
        max_tokens: int = 1024,
    ):
        """
        Args:
            model_name: Model name (e.g. claude-3-5-sonnet-20241022)
            api_key: Anthropic API key (falls back to environment variable if not specified)
            max_retries: Maximum number of retries (default: 3)
            max_tokens: Default maximum number of tokens (default: 1024)
        """
        self.model_name = model_name
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.max_retries = max_retries
        self.max_tokens = max_tokens

        if not self.api_key:
            raise errors.AuthenticationError("ANTHROPIC_API_KEY is not set")

        # Initialize the Anthropic client
        self.client = Anthropic(api_key=self.api_key, max_retries=0)

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
            system_message: Passed as the separate system parameter
            temperature: Sampling temperature (default: 0.7)
            max_tokens: Overrides the client default

        Returns:
            ModelResponse: The model's response

        Raises:
            APIError: Mapped provider error once retries are exhausted
        """
        def _call():
            start_time = time.time()
            kwargs = {
                "model": self.model_name,
                "max_tokens": max_tokens or self.max_tokens,
                "temperature": 0.7 if temperature is None else temperature,
                "messages": [{"role": "user", "content": prompt}],
            }
            if system_message:
                kwargs["system"] = system_message
            response = self.client.messages.create(**kwargs)
            end_time = time.time()

            latency_ms = int((end_time - start_time) * 1000)
            output = response.content[0].text.strip()

            # Retrieve token usage
            input_tokens = getattr(response.usage, "input_tokens", 0) or 0
            output_tokens = getattr(response.usage, "output_tokens", 0) or 0

            return ModelResponse(
                output=output,
                latency_ms=latency_ms,
                model_name=self.model_name,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        try:
            return self._with_retry(
                _call,
                retryable_exceptions=(APIConnectionError, RateLimitError, InternalServerError),
            )
        except anthropic.APIError as e:
            raise map_anthropic_error(e) from e
