"""
Bundle Loader

Loads documents, evaluation sets and workflows from a JSON bundle file into a
repository. Every entity goes through its normal create operation, so
versions, parameter sync and validation all apply.

Bundle format:
    {
      "documents": [{"name": ..., "content": ..., "parameters": {"name": {...}}}],
      "eval_sets": [{"document": "<slug>", "name": ..., "test_cases": [...]}],
      "workflows": [{"name": ..., "steps": {"1": "<slug>"}}]
    }
"""

import json
from dataclasses import dataclass, field

from prompt_engine_core.documents import create_document
from prompt_engine_core.domain.entities import Document, EvaluationSet, Workflow
from prompt_engine_core.grading import add_test_case, create_eval_set
from prompt_engine_core.parameters import update_parameter
from prompt_engine_core.repository import InMemoryRepository
from prompt_engine_core.use_cases.workflow import create_workflow

DOCUMENT_FIELDS = [
    "slug",
    "description",
    "system_message",
    "model",
    "temperature",
    "max_tokens",
    "metadata",
    "status",
]


@dataclass
class Bundle:
    """Entities created from a bundle file"""
    documents: list[Document] = field(default_factory=list)
    eval_sets: list[EvaluationSet] = field(default_factory=list)
    workflows: list[Workflow] = field(default_factory=list)


def _require(data: dict, fields: list[str], file_path: str) -> None:
    for name in fields:
        if name not in data:
            raise KeyError(f"Required field '{name}' is missing: {file_path}")


def _load_document(repository: InMemoryRepository, data: dict, file_path: str) -> Document:
    _require(data, ["name", "content"], file_path)
    document = create_document(
        repository,
        data["name"],
        data["content"],
        **{k: data[k] for k in DOCUMENT_FIELDS if k in data},
    )
    # Declared parameter edits on top of the synced defaults
    overrides = data.get("parameters", {})
    for param in repository.parameters_for(document.id):
        if param.name in overrides:
            update_parameter(repository, param, **overrides[param.name])
    return document


def _load_eval_set(repository: InMemoryRepository, data: dict, file_path: str) -> EvaluationSet:
    _require(data, ["document", "name"], file_path)
    document = repository.find_document_by_slug(data["document"])
    eval_set = create_eval_set(
        repository,
        document.id,
        data["name"],
        grader_type=data.get("grader_type", "exact_match"),
        grader_config=data.get("grader_config"),
        description=data.get("description", ""),
    )
    for tc in data.get("test_cases", []):
        _require(tc, ["input_variables", "expected_output"], file_path)
        add_test_case(
            repository,
            eval_set,
            tc["input_variables"],
            tc["expected_output"],
            description=tc.get("description", ""),
        )
    return eval_set


def load_bundle(file_path: str, repository: InMemoryRepository) -> Bundle:
    """
    Load a JSON bundle into the repository

    Args:
        file_path: Path to the bundle JSON file
        repository: Repository receiving the entities

    Returns:
        Bundle: The created entities

    Raises:
        FileNotFoundError: If the file does not exist
        KeyError: If a required field is missing
        ValidationError: If an entity fails validation
    """
    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    _require(data, ["documents"], file_path)

    bundle = Bundle()
    for doc_data in data["documents"]:
        bundle.documents.append(_load_document(repository, doc_data, file_path))
    for set_data in data.get("eval_sets", []):
        bundle.eval_sets.append(_load_eval_set(repository, set_data, file_path))
    for wf_data in data.get("workflows", []):
        _require(wf_data, ["name", "steps"], file_path)
        bundle.workflows.append(
            create_workflow(repository, wf_data["name"], wf_data["steps"], wf_data.get("description", ""))
        )
    return bundle
