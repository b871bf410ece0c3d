"""
Domain Entities

Defines the records managed by the prompt engine: documents and their
immutable version history, declared parameters, evaluation sets with their
test cases and runs, and workflows.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from prompt_engine_core.domain.constants import (
    DEFAULT_GRADER_TYPE,
    GRADER_TYPES,
    VERSION_SNAPSHOT_FIELDS,
    VERSIONED_FIELDS,
)
from prompt_engine_core.domain.errors import ImmutableVersionError, InvalidTransitionError


@dataclass
class Document:
    """A named template with its current editable state"""
    name: str
    content: str
    slug: str | None = None
    description: str = ""
    system_message: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    metadata: dict | None = None
    status: str = "draft"
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def tracked_fields(self) -> dict[str, Any]:
        """Snapshot of the fields a Version records"""
        return {name: getattr(self, name) for name in VERSIONED_FIELDS}


@dataclass
class Version:
    """Immutable snapshot of a Document's tracked fields"""
    document_id: int
    version_number: int
    content: str
    system_message: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    metadata: dict | None = None
    change_description: str = ""
    id: int | None = None
    created_at: datetime | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in VERSION_SNAPSHOT_FIELDS and name in self.__dict__:
            raise ImmutableVersionError({name: [f"{name} cannot be changed after creation"]})
        super().__setattr__(name, value)

    def to_document_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in VERSIONED_FIELDS}


@dataclass
class Parameter:
    """A declared placeholder with type and validation rules"""
    document_id: int
    name: str
    parameter_type: str = "string"
    required: bool = True
    default_value: Any = None
    validation_rules: dict | None = None
    description: str = ""
    example_value: str | None = None
    position: int = 0
    id: int | None = None


@dataclass
class TestCase:
    """One input/expected-output pair of an evaluation set"""
    __test__ = False  # not a pytest class

    eval_set_id: int
    input_variables: dict[str, Any]
    expected_output: str
    description: str = ""
    id: int | None = None

    @property
    def display_name(self) -> str:
        return self.description or f"Test case #{self.id}"


@dataclass
class EvaluationSet:
    """A named grading configuration scoped to one Document"""
    document_id: int
    name: str
    grader_type: str = DEFAULT_GRADER_TYPE
    grader_config: dict = field(default_factory=dict)
    description: str = ""
    remote_eval_id: str | None = None
    id: int | None = None

    @property
    def grader_type_display(self) -> str:
        return GRADER_TYPES.get(self.grader_type, self.grader_type.replace("_", " ").capitalize())

    @property
    def requires_grader_config(self) -> bool:
        return self.grader_type in ("regex", "json_schema")


@dataclass
class EvaluationRun:
    """One attempt to grade a Version against an EvaluationSet"""
    eval_set_id: int
    version_id: int
    status: str = "pending"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_count: int = 0
    passed_count: int = 0
    failed_count: int = 0
    remote_run_id: str | None = None
    remote_file_id: str | None = None
    report_url: str | None = None
    error_message: str | None = None
    id: int | None = None
    created_at: datetime | None = None

    # Allowed forward moves only
    _TRANSITIONS = {
        "pending": {"running"},
        "running": {"completed", "failed"},
        "completed": set(),
        "failed": set(),
    }

    def _transition(self, new_status: str) -> None:
        if new_status not in self._TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"EvaluationRun {self.id} cannot move from {self.status} to {new_status}"
            )
        self.status = new_status

    def start(self) -> None:
        self._transition("running")
        self.started_at = datetime.now()

    def complete(self, total: int, passed: int, failed: int) -> None:
        self._transition("completed")
        self.completed_at = datetime.now()
        self.total_count = total
        self.passed_count = passed
        self.failed_count = failed

    def fail(self, message: str) -> None:
        self._transition("failed")
        self.error_message = message

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")

    @property
    def success_rate(self) -> float:
        """Percentage of passed test cases (0 when nothing was graded)"""
        if not self.total_count:
            return 0
        return round(self.passed_count / self.total_count * 100, 1)

    @property
    def duration(self) -> float | None:
        """Seconds between start and completion"""
        if not (self.started_at and self.completed_at):
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def duration_in_words(self) -> str | None:
        if not self.started_at:
            return "Not started"
        if self.status == "running":
            return "Running"
        if self.status == "failed" and not self.completed_at:
            return "Failed"

        seconds = self.duration
        if seconds is None:
            return None
        if seconds < 60:
            return f"{round(seconds)} seconds"
        if seconds < 3600:
            return f"{round(seconds / 60)} minutes"
        return f"{round(seconds / 3600, 1)} hours"


@dataclass
class Workflow:
    """An ordered map of step key -> document slug"""
    name: str
    steps: dict[str, str]
    description: str = ""
    id: int | None = None


@dataclass
class WorkflowRun:
    """Persisted record of a detailed workflow execution"""
    workflow_id: int
    status: str
    input_variables: dict[str, Any]
    results: dict[str, Any]
    execution_time: float
    error_message: str | None = None
    title: str | None = None
    id: int | None = None
    created_at: datetime | None = None


@dataclass
class PlaygroundRunResult:
    """Persisted record of a playground execution against a Version"""
    version_id: int
    provider: str
    model: str
    rendered_prompt: str
    response: str
    execution_time: float
    system_message: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    token_count: int | None = None
    id: int | None = None
    created_at: datetime | None = None
