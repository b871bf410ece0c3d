"""
Domain Value Objects

Defines immutable data structures representing values such as detected
placeholders, remote run snapshots, model responses, and step results.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Placeholder:
    """A placeholder detected in template content"""
    name: str
    placeholder: str  # canonical whitespace-free form, e.g. "{{name}}"
    inferred_type: str
    required: bool = True


@dataclass
class RemoteRun:
    """Snapshot of a run on the remote grading service"""
    id: str
    status: str
    report_url: str | None = None
    result_counts: dict[str, int] = field(default_factory=dict)
    error: str | None = None


@dataclass
class ModelResponse:
    """Model response"""
    output: str
    latency_ms: int
    model_name: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class FieldChange:
    """One tracked field compared between two versions"""
    old: Any
    new: Any

    @property
    def changed(self) -> bool:
        return self.old != self.new


@dataclass
class StepResult:
    """Result of a single workflow step"""
    step: str
    document_slug: str
    input: Any
    output: str
    execution_time: float  # milliseconds


@dataclass
class WorkflowResult:
    """Result of a detailed workflow execution"""
    steps: list[StepResult] = field(default_factory=list)
    final_output: str | None = None
    total_execution_time: float = 0.0  # milliseconds


@dataclass
class PlaygroundResult:
    """Result of a playground execution"""
    response: str
    execution_time: float  # seconds
    token_count: int
    model: str
    provider: str
