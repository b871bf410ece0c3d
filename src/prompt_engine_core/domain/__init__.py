"""
Domain Layer

Defines constants, entities, value objects, and errors that form the core of the business logic.
Has no dependencies on external libraries.
"""

from prompt_engine_core.domain.constants import (
    GRADER_TYPES,
    PARAMETER_TYPES,
    VERSIONED_FIELDS,
)
from prompt_engine_core.domain.entities import (
    Document,
    EvaluationRun,
    EvaluationSet,
    Parameter,
    PlaygroundRunResult,
    TestCase,
    Version,
    Workflow,
    WorkflowRun,
)
from prompt_engine_core.domain.errors import (
    APIError,
    AuthenticationError,
    EvalTimeoutError,
    ImmutableVersionError,
    InvalidTransitionError,
    NotFoundError,
    PromptEngineError,
    RateLimitError,
    RemoteNotFoundError,
    RenderError,
    ValidationError,
)
from prompt_engine_core.domain.value_objects import (
    FieldChange,
    ModelResponse,
    Placeholder,
    PlaygroundResult,
    RemoteRun,
    StepResult,
    WorkflowResult,
)

__all__ = [
    # constants
    "GRADER_TYPES",
    "PARAMETER_TYPES",
    "VERSIONED_FIELDS",
    # entities
    "Document",
    "EvaluationRun",
    "EvaluationSet",
    "Parameter",
    "PlaygroundRunResult",
    "TestCase",
    "Version",
    "Workflow",
    "WorkflowRun",
    # errors
    "APIError",
    "AuthenticationError",
    "EvalTimeoutError",
    "ImmutableVersionError",
    "InvalidTransitionError",
    "NotFoundError",
    "PromptEngineError",
    "RateLimitError",
    "RemoteNotFoundError",
    "RenderError",
    "ValidationError",
    # value objects
    "FieldChange",
    "ModelResponse",
    "Placeholder",
    "PlaygroundResult",
    "RemoteRun",
    "StepResult",
    "WorkflowResult",
]
