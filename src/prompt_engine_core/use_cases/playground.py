"""
Playground Execution

Renders a document and sends it to a chat model provider (OpenAI or
Anthropic), returning the response with timing and token usage.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from prompt_engine_core.domain.entities import Document, PlaygroundRunResult
from prompt_engine_core.domain.value_objects import PlaygroundResult
from prompt_engine_core.engine_config import EngineConfig, load_config
from prompt_engine_core.infrastructure.model_clients.base import ModelClient
from prompt_engine_core.infrastructure.model_clients.factory import create_client, validate_api_key
from prompt_engine_core.rendering import RenderedOutput, render
from prompt_engine_core.repository import InMemoryRepository

logger = logging.getLogger(__name__)


class PlaygroundExecutor:
    """Executes one document against a provider"""

    def __init__(
        self,
        repository: InMemoryRepository,
        document: Document,
        provider: str,
        api_key: str,
        parameters: Mapping[str, Any] | None = None,
        config: EngineConfig | None = None,
        client: ModelClient | None = None,
    ):
        """
        Args:
            repository: Persistence collaborator
            document: Document to execute
            provider: "openai" or "anthropic"
            api_key: Provider API key, checked for the provider's key format
            parameters: Placeholder values
            config: EngineConfig (loads from env if not provided)
            client: Pre-built model client (created from provider/api_key if omitted)
        """
        self.repository = repository
        self.document = document
        self.provider = provider
        self.api_key = api_key.strip() if api_key else api_key
        self.parameters = dict(parameters or {})
        self.config = config or load_config()
        self.client = client
        self.rendered: RenderedOutput | None = None

    def execute(self) -> PlaygroundResult:
        """
        Render the document and send it to the provider

        Returns:
            PlaygroundResult with execution time in seconds

        Raises:
            ValidationError: Unknown provider or malformed API key
            RenderError: Parameter validation failed
            APIError: The provider call failed
        """
        validate_api_key(self.provider, self.api_key)
        self.rendered = render(self.repository, self.document, self.parameters)

        if self.client is None:
            self.client = create_client(self.provider, api_key=self.api_key, config=self.config)

        start_time = time.time()
        response = self.client.generate(
            self.rendered.content,
            system_message=self.rendered.system_message,
            temperature=self.rendered.temperature,
            max_tokens=self.rendered.max_tokens,
        )
        execution_time = round(time.time() - start_time, 3)

        logger.info(
            "Playground %s via %s/%s in %.3fs",
            self.document.slug, self.provider, response.model_name, execution_time,
        )
        return PlaygroundResult(
            response=response.output,
            execution_time=execution_time,
            token_count=response.input_tokens + response.output_tokens,
            model=response.model_name,
            provider=self.provider,
        )

    def record(self, result: PlaygroundResult) -> PlaygroundRunResult:
        """Persist a result against the document's current version"""
        versions = self.repository.versions_for(self.document.id)
        rendered = self.rendered
        return self.repository.add_playground_result(
            PlaygroundRunResult(
                version_id=versions[0].id,
                provider=result.provider,
                model=result.model,
                rendered_prompt=rendered.content if rendered else "",
                response=result.response,
                execution_time=result.execution_time,
                system_message=rendered.system_message if rendered else self.document.system_message,
                parameters=dict(self.parameters),
                token_count=result.token_count,
            )
        )
