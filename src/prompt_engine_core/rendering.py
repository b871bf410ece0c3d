"""
Rendered Output

Renders a Document (or one of its Versions) with caller-supplied values.

Validation runs before substitution: a missing required value raises
RenderError with the joined messages and no partial content is produced.
Model settings come from the rendered snapshot unless an override is given.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from prompt_engine_core.domain.entities import Document, Parameter, Version
from prompt_engine_core.domain.errors import RenderError
from prompt_engine_core.parameters import cast_parameters, validate_parameters
from prompt_engine_core.repository import InMemoryRepository
from prompt_engine_core.template_engine import substitute, to_text, variable_names

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4"


class RenderedOutput:
    """Substituted content plus the settings and values it was rendered with"""

    def __init__(
        self,
        content: str,
        system_message: str | None,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
        parameters: dict[str, Any],
        version_number: int | None,
        document_slug: str | None = None,
        status: str | None = None,
        options: dict[str, Any] | None = None,
    ):
        self.content = content
        self.system_message = system_message
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.parameters = parameters
        self.version_number = version_number
        self.document_slug = document_slug
        self.status = status
        self.options = options or {}

    def __str__(self) -> str:
        return self.content

    def __repr__(self) -> str:
        return f"RenderedOutput(slug={self.document_slug!r}, version={self.version_number})"

    @property
    def messages(self) -> list[dict[str, str]]:
        """Chat messages: the system message first when present, then the user content"""
        messages = []
        if self.system_message:
            messages.append({"role": "system", "content": self.system_message})
        messages.append({"role": "user", "content": self.content})
        return messages

    def parameter(self, name: str) -> Any:
        return self.parameters.get(name)

    @property
    def parameter_names(self) -> list[str]:
        return list(self.parameters)

    def to_openai_params(self, **extra: Any) -> dict[str, Any]:
        """Keyword arguments for chat.completions.create"""
        params = {
            "model": self.model or DEFAULT_OPENAI_MODEL,
            "messages": self.messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        params.update(extra)
        return {k: v for k, v in params.items() if v is not None}

    def to_anthropic_params(self, **extra: Any) -> dict[str, Any]:
        """Keyword arguments for messages.create (system is passed separately)"""
        params = {
            "model": self.model,
            "system": self.system_message,
            "messages": [{"role": "user", "content": self.content}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        params.update(extra)
        return {k: v for k, v in params.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "system_message": self.system_message,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "parameters": self.parameters,
            "version_number": self.version_number,
            "document_slug": self.document_slug,
            "status": self.status,
            "options": self.options,
        }


def _applicable_parameters(parameters: list[Parameter], content: str) -> list[Parameter]:
    # A historical version only requires the parameters it actually references
    names = set(variable_names(content))
    return [param for param in parameters if param.name in names]


def render(
    repository: InMemoryRepository,
    document: Document,
    variables: Mapping[str, Any] | None = None,
    *,
    version: Version | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    system_message: str | None = None,
) -> RenderedOutput:
    """
    Render a document, or a specific version of it

    Args:
        repository: Persistence collaborator (declared parameters, versions)
        document: Document to render
        variables: Placeholder name -> raw value
        version: Version to render instead of the document's current state
        model, temperature, max_tokens, system_message: Overrides that win
            over the snapshot's own settings

    Returns:
        RenderedOutput

    Raises:
        RenderError: A declared parameter failed validation
    """
    variables = dict(variables or {})
    source = version or document
    content = source.content or ""

    parameters = _applicable_parameters(repository.parameters_for(document.id), content)
    errors = validate_parameters(parameters, variables)
    if errors:
        raise RenderError(", ".join(errors))

    values = cast_parameters(parameters, variables)
    declared = set(values)
    # Placeholders present in content but not declared are substituted as text
    for name in variable_names(content):
        if name not in declared and name in variables:
            values[name] = to_text(variables[name])

    if version is not None:
        version_number = version.version_number
    else:
        current = repository.versions_for(document.id)
        version_number = current[0].version_number if current else None

    options = {
        k: v for k, v in {
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "system_message": system_message,
        }.items() if v is not None
    }

    output = RenderedOutput(
        content=substitute(content, values),
        system_message=system_message if system_message is not None else source.system_message,
        model=model if model is not None else source.model,
        temperature=temperature if temperature is not None else source.temperature,
        max_tokens=max_tokens if max_tokens is not None else source.max_tokens,
        parameters=values,
        version_number=version_number,
        document_slug=document.slug,
        status=document.status,
        options=options,
    )
    logger.debug("Rendered %s v%s", document.slug, version_number)
    return output
