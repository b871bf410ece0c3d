"""
Model client factory

Creates the appropriate client instance based on the provider name.
"""

from __future__ import annotations

from prompt_engine_core.domain.errors import ValidationError
from prompt_engine_core.engine_config import EngineConfig, load_config
from prompt_engine_core.infrastructure.model_clients.base import ModelClient
from prompt_engine_core.infrastructure.model_clients.claude import ClaudeClient
from prompt_engine_core.infrastructure.model_clients.openai_chat import OpenAIChatClient

PROVIDERS = ("openai", "anthropic")

# Expected key prefix per provider
_KEY_PREFIXES = {
    "anthropic": "sk-ant-",
    "openai": "sk-",
}


def validate_api_key(provider: str, api_key: str | None) -> None:
    """
    Check the provider is known and the key looks like one of its keys

    Raises:
        ValidationError: Unknown provider, missing key or wrong key format
    """
    if provider not in PROVIDERS:
        raise ValidationError(f"Unknown provider: {provider}", field="provider")
    if not api_key:
        raise ValidationError(f"API key is required for {provider}", field="api_key")
    if not api_key.startswith(_KEY_PREFIXES[provider]):
        raise ValidationError(f"Invalid {provider} API key format", field="api_key")


def create_client(
    provider: str,
    api_key: str | None = None,
    model_name: str | None = None,
    config: EngineConfig | None = None,
) -> ModelClient:
    """
    Create the appropriate client based on the provider

    Args:
        provider: "openai" or "anthropic"
        api_key: Provider API key (falls back to the provider's env var)
        model_name: Model name (defaults to the configured playground model)
        config: EngineConfig (loads from env if not provided)

    Returns:
        ModelClient: The appropriate client instance
    """
    if config is None:
        config = load_config()

    playground = config.playground
    retries = config.evals.max_retries

    if provider == "anthropic":
        return ClaudeClient(
            model_name or playground.anthropic_model,
            api_key=api_key,
            max_retries=retries,
            max_tokens=playground.max_tokens,
        )
    elif provider == "openai":
        return OpenAIChatClient(
            model_name or playground.openai_model,
            api_key=api_key,
            base_url=config.evals.base_url,
            max_retries=retries,
            max_tokens=playground.max_tokens,
        )
    raise ValidationError(f"Unknown provider: {provider}", field="provider")
