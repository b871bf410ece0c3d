"""
Grading client package

Provides the remote grading service interface used by evaluation runs.
"""

from prompt_engine_core.infrastructure.evals_clients.base import GradingClient
from prompt_engine_core.infrastructure.evals_clients.openai_evals import OpenAIEvalsClient
from prompt_engine_core.domain.value_objects import RemoteRun

__all__ = ["GradingClient", "OpenAIEvalsClient", "RemoteRun"]
