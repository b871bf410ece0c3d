"""
Prompt Engine

Entry point for application code: look documents up by slug and render them.
Only documents with the requested status are visible ("active" by default).
"""

from __future__ import annotations

from typing import Any, Mapping

from prompt_engine_core.domain.entities import Document
from prompt_engine_core.domain.errors import NotFoundError
from prompt_engine_core.engine_config import EngineConfig, load_config
from prompt_engine_core.rendering import RenderedOutput, render
from prompt_engine_core.repository import InMemoryRepository


class PromptEngine:
    """Slug-based lookup and rendering over a repository"""

    def __init__(self, repository: InMemoryRepository, config: EngineConfig | None = None):
        self.repository = repository
        self.config = config or load_config()

    def find(self, slug: str, status: str | None = "active") -> Document:
        """
        Raises:
            NotFoundError: No document with this slug and status (status=None matches any)
        """
        return self.repository.find_document_by_slug(slug, status=status)

    def render(
        self,
        slug: str,
        variables: Mapping[str, Any] | None = None,
        *,
        status: str | None = "active",
        version: int | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        system_message: str | None = None,
    ) -> RenderedOutput:
        """
        Render a document by slug

        Args:
            slug: Document slug
            variables: Placeholder values
            status: Required document status (None for any)
            version: Version number to render instead of the current state
            model, temperature, max_tokens, system_message: Overrides

        Raises:
            NotFoundError: Unknown slug/status or version number
            RenderError: Parameter validation failed
        """
        document = self.find(slug, status=status)
        snapshot = None
        if version is not None:
            snapshot = self.repository.find_version(document.id, version)
            if snapshot is None:
                raise NotFoundError(f"Version {version} of '{slug}' not found")
        return render(
            self.repository,
            document,
            variables,
            version=snapshot,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            system_message=system_message,
        )
