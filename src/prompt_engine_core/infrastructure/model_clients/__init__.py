"""
Model client package

Provides a unified interface to each chat model provider.
"""

from prompt_engine_core.infrastructure.model_clients.base import ModelClient, RetryMixin
from prompt_engine_core.infrastructure.model_clients.factory import create_client, validate_api_key
from prompt_engine_core.domain.value_objects import ModelResponse

__all__ = ["ModelClient", "ModelResponse", "RetryMixin", "create_client", "validate_api_key"]
