"""
Grading

Grader strategies for evaluation sets and the evaluation set / test case
operations that depend on them.

Each grader type produces one remote string_check criterion:
- exact_match (also the fallback for unknown types): output == expected_output
- regex: output matches the configured pattern
- contains: output contains expected_output
- json_schema: validated as a schema at save time, but executed as an exact
  match because the remote service has no schema criterion
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any

from prompt_engine_core.domain.constants import DEFAULT_GRADER_TYPE, GRADER_TYPES, JSON_SCHEMA_TYPES
from prompt_engine_core.domain.entities import EvaluationSet, Parameter, TestCase
from prompt_engine_core.domain.errors import ValidationError
from prompt_engine_core.repository import InMemoryRepository

logger = logging.getLogger(__name__)

OUTPUT_REFERENCE = "{{ sample.output_text }}"
EXPECTED_REFERENCE = "{{ item.expected_output }}"


def validate_grader_config(grader_type: str, grader_config: Any) -> list[str]:
    """
    Validate a grader configuration for its grader type

    Returns:
        Error messages (empty when valid)
    """
    config = grader_config or {}
    if grader_type == "regex":
        pattern = config.get("pattern") if isinstance(config, dict) else None
        if not pattern:
            return ["regex pattern is required"]
        try:
            re.compile(pattern)
        except re.error as e:
            return [f"invalid regex pattern: {e}"]
    elif grader_type == "json_schema":
        schema = config.get("schema") if isinstance(config, dict) else None
        if not schema:
            return ["JSON schema is required"]
        if not isinstance(schema, dict) or "type" not in schema:
            return ["JSON schema must include a 'type' field"]
    return []


def validate_eval_set(eval_set: EvaluationSet, siblings: list[EvaluationSet] = ()) -> None:
    """
    Validate an evaluation set before it is persisted

    Raises:
        ValidationError: Blank or duplicate name, unknown grader type, invalid grader_config
    """
    errors: dict[str, list[str]] = {}
    if not eval_set.name or not eval_set.name.strip():
        errors.setdefault("name", []).append("can't be blank")
    elif any(s.name == eval_set.name and s.id != eval_set.id for s in siblings):
        errors.setdefault("name", []).append("has already been taken")

    if eval_set.grader_type not in GRADER_TYPES:
        errors.setdefault("grader_type", []).append(
            f"is not included in the list: {list(GRADER_TYPES)}"
        )
    else:
        config_errors = validate_grader_config(eval_set.grader_type, eval_set.grader_config)
        if config_errors:
            errors["grader_config"] = config_errors

    if errors:
        raise ValidationError(errors)


def build_testing_criteria(eval_set: EvaluationSet) -> list[dict[str, Any]]:
    """
    Build the remote testing criteria for an evaluation set

    Returns:
        A single-element list of string_check criteria
    """
    grader_type = eval_set.grader_type
    config = eval_set.grader_config or {}

    if grader_type == "regex":
        return [{
            "type": "string_check",
            "name": "Regex match",
            "input": OUTPUT_REFERENCE,
            "operation": "regex",
            "reference": config["pattern"],
        }]
    if grader_type == "contains":
        return [{
            "type": "string_check",
            "name": "Contains text",
            "input": OUTPUT_REFERENCE,
            "operation": "contains",
            "reference": EXPECTED_REFERENCE,
        }]
    if grader_type == "json_schema":
        # No native schema criterion: degrade to an exact comparison
        return [{
            "type": "string_check",
            "name": "JSON format validation",
            "input": OUTPUT_REFERENCE,
            "operation": "eq",
            "reference": EXPECTED_REFERENCE,
        }]
    if grader_type != DEFAULT_GRADER_TYPE:
        logger.warning("Unknown grader type %r, falling back to exact match", grader_type)
    return [{
        "type": "string_check",
        "name": "Exact match",
        "input": OUTPUT_REFERENCE,
        "operation": "eq",
        "reference": EXPECTED_REFERENCE,
    }]


def item_schema(parameters: list[Parameter]) -> dict[str, Any]:
    """
    JSON schema of one data item: every declared parameter plus expected_output

    Returns:
        A custom data source configuration for the remote service
    """
    properties = {
        param.name: {"type": JSON_SCHEMA_TYPES.get(param.parameter_type, "string")}
        for param in parameters
    }
    properties["expected_output"] = {"type": "string"}
    required = [param.name for param in parameters if param.required]
    required.append("expected_output")
    return {
        "type": "custom",
        "item_schema": {
            "type": "object",
            "properties": properties,
            "required": required,
        },
        "include_sample_schema": True,
    }


def create_eval_set(
    repository: InMemoryRepository,
    document_id: int,
    name: str,
    grader_type: str = DEFAULT_GRADER_TYPE,
    grader_config: dict | None = None,
    description: str = "",
) -> EvaluationSet:
    """
    Create an evaluation set; the grader configuration is validated here so
    configuration errors never surface mid-run

    Raises:
        ValidationError: Invalid evaluation set
    """
    repository.get_document(document_id)
    eval_set = EvaluationSet(
        document_id=document_id,
        name=name,
        grader_type=grader_type,
        grader_config=grader_config or {},
        description=description,
    )
    validate_eval_set(eval_set, repository.eval_sets_for(document_id))
    return repository.add_eval_set(eval_set)


def update_eval_set(repository: InMemoryRepository, eval_set: EvaluationSet, **changes: Any) -> EvaluationSet:
    allowed = {"name", "grader_type", "grader_config", "description"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError({"base": [f"cannot update {sorted(unknown)}"]})
    candidate = replace(eval_set, **changes)
    validate_eval_set(candidate, repository.eval_sets_for(eval_set.document_id))
    regrade = any(
        key in changes and changes[key] != getattr(eval_set, key)
        for key in ("grader_type", "grader_config")
    )
    for key, value in changes.items():
        setattr(eval_set, key, value)
    if regrade and eval_set.remote_eval_id:
        # Remote criteria are fixed at creation; the next run creates a fresh eval
        logger.info("Grader changed for %s, dropping remote eval %s", eval_set.name, eval_set.remote_eval_id)
        eval_set.remote_eval_id = None
    return repository.save_eval_set(eval_set)


def add_test_case(
    repository: InMemoryRepository,
    eval_set: EvaluationSet,
    input_variables: dict[str, Any],
    expected_output: str,
    description: str = "",
) -> TestCase:
    """
    Raises:
        ValidationError: Missing input_variables or expected_output
    """
    errors: dict[str, list[str]] = {}
    if not isinstance(input_variables, dict) or not input_variables:
        errors["input_variables"] = ["can't be blank"]
    if expected_output is None or not str(expected_output).strip():
        errors["expected_output"] = ["can't be blank"]
    if errors:
        raise ValidationError(errors)
    return repository.add_test_case(
        TestCase(
            eval_set_id=eval_set.id,
            input_variables=dict(input_variables),
            expected_output=str(expected_output),
            description=description,
        )
    )


def ready_to_run(repository: InMemoryRepository, eval_set: EvaluationSet) -> bool:
    return len(repository.test_cases_for(eval_set.id)) > 0
