"""
Unit tests for grading.py (grader strategies, evaluation sets and test cases)
"""

import pytest

from prompt_engine_core.documents import create_document
from prompt_engine_core.domain.entities import EvaluationSet, Parameter
from prompt_engine_core.domain.errors import NotFoundError, ValidationError
from prompt_engine_core.grading import (
    add_test_case,
    build_testing_criteria,
    create_eval_set,
    item_schema,
    ready_to_run,
    update_eval_set,
    validate_grader_config,
)
from prompt_engine_core.repository import InMemoryRepository


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def doc(repo):
    return create_document(repo, "Translator", "Translate {{text}}")


class TestValidateGraderConfig:
    def test_regex_requires_pattern(self):
        assert validate_grader_config("regex", {}) == ["regex pattern is required"]
        assert validate_grader_config("regex", None) == ["regex pattern is required"]

    def test_regex_must_compile(self):
        errors = validate_grader_config("regex", {"pattern": "[invalid("})
        assert len(errors) == 1
        assert errors[0].startswith("invalid regex pattern")

    def test_regex_ok(self):
        assert validate_grader_config("regex", {"pattern": r"^\d+$"}) == []

    def test_json_schema_required(self):
        assert validate_grader_config("json_schema", {}) == ["JSON schema is required"]

    def test_json_schema_needs_type(self):
        assert validate_grader_config("json_schema", {"schema": {"properties": {}}}) == [
            "JSON schema must include a 'type' field"
        ]
        assert validate_grader_config("json_schema", {"schema": "object"}) == [
            "JSON schema must include a 'type' field"
        ]

    def test_json_schema_ok(self):
        assert validate_grader_config("json_schema", {"schema": {"type": "object"}}) == []

    @pytest.mark.parametrize("grader_type", ["exact_match", "contains"])
    def test_no_config_needed(self, grader_type):
        assert validate_grader_config(grader_type, None) == []


class TestCreateEvalSet:
    def test_defaults(self, repo, doc):
        eval_set = create_eval_set(repo, doc.id, "Smoke")
        assert eval_set.id is not None
        assert eval_set.grader_type == "exact_match"
        assert eval_set.remote_eval_id is None

    def test_invalid_regex_rejected_at_save(self, repo, doc):
        with pytest.raises(ValidationError) as exc_info:
            create_eval_set(repo, doc.id, "Regex", grader_type="regex", grader_config={"pattern": "[invalid("})
        assert "invalid regex pattern" in str(exc_info.value)
        assert list(exc_info.value.errors) == ["grader_config"]
        assert repo.eval_sets_for(doc.id) == []

    def test_unknown_grader_type_rejected(self, repo, doc):
        with pytest.raises(ValidationError) as exc_info:
            create_eval_set(repo, doc.id, "Odd", grader_type="semantic")
        assert "grader_type" in exc_info.value.errors

    def test_name_unique_per_document(self, repo, doc):
        create_eval_set(repo, doc.id, "Smoke")
        with pytest.raises(ValidationError, match="has already been taken"):
            create_eval_set(repo, doc.id, "Smoke")
        other = create_document(repo, "Other", "x")
        assert create_eval_set(repo, other.id, "Smoke").name == "Smoke"

    def test_blank_name(self, repo, doc):
        with pytest.raises(ValidationError):
            create_eval_set(repo, doc.id, " ")

    def test_unknown_document(self, repo):
        with pytest.raises(NotFoundError):
            create_eval_set(repo, 999, "Smoke")


class TestUpdateEvalSet:
    def test_grader_change_drops_remote_eval(self, repo, doc):
        eval_set = create_eval_set(repo, doc.id, "Smoke")
        eval_set.remote_eval_id = "eval_123"
        update_eval_set(repo, eval_set, grader_type="contains")
        assert eval_set.grader_type == "contains"
        assert eval_set.remote_eval_id is None

    def test_description_change_keeps_remote_eval(self, repo, doc):
        eval_set = create_eval_set(repo, doc.id, "Smoke")
        eval_set.remote_eval_id = "eval_123"
        update_eval_set(repo, eval_set, description="Nightly")
        assert eval_set.remote_eval_id == "eval_123"

    def test_invalid_update_is_rejected(self, repo, doc):
        eval_set = create_eval_set(repo, doc.id, "Smoke")
        with pytest.raises(ValidationError):
            update_eval_set(repo, eval_set, grader_type="regex")
        assert eval_set.grader_type == "exact_match"


class TestTestCases:
    def test_add_and_ready(self, repo, doc):
        eval_set = create_eval_set(repo, doc.id, "Smoke")
        assert not ready_to_run(repo, eval_set)
        tc = add_test_case(repo, eval_set, {"text": "hello"}, "hola", description="greeting")
        assert tc.id is not None
        assert ready_to_run(repo, eval_set)
        assert repo.test_cases_for(eval_set.id) == [tc]

    def test_required_fields(self, repo, doc):
        eval_set = create_eval_set(repo, doc.id, "Smoke")
        with pytest.raises(ValidationError) as exc_info:
            add_test_case(repo, eval_set, {}, "")
        assert set(exc_info.value.errors) == {"input_variables", "expected_output"}


class TestBuildTestingCriteria:
    def _criteria(self, grader_type, config=None):
        eval_set = EvaluationSet(document_id=1, name="s", grader_type=grader_type, grader_config=config or {})
        criteria = build_testing_criteria(eval_set)
        assert len(criteria) == 1
        return criteria[0]

    def test_exact_match(self):
        criterion = self._criteria("exact_match")
        assert criterion == {
            "type": "string_check",
            "name": "Exact match",
            "input": "{{ sample.output_text }}",
            "operation": "eq",
            "reference": "{{ item.expected_output }}",
        }

    def test_regex(self):
        criterion = self._criteria("regex", {"pattern": r"^\d+$"})
        assert criterion["operation"] == "regex"
        assert criterion["reference"] == r"^\d+$"

    def test_contains(self):
        criterion = self._criteria("contains")
        assert criterion["operation"] == "contains"
        assert criterion["reference"] == "{{ item.expected_output }}"

    def test_json_schema_degrades_to_exact_comparison(self):
        criterion = self._criteria("json_schema", {"schema": {"type": "object"}})
        assert criterion["name"] == "JSON format validation"
        assert criterion["operation"] == "eq"

    def test_unknown_type_falls_back_to_exact_match(self):
        assert self._criteria("semantic")["name"] == "Exact match"


class TestItemSchema:
    def test_types_and_required(self):
        params = [
            Parameter(document_id=1, name="text"),
            Parameter(document_id=1, name="count", parameter_type="integer"),
            Parameter(document_id=1, name="price", parameter_type="decimal", required=False),
            Parameter(document_id=1, name="flag", parameter_type="boolean"),
            Parameter(document_id=1, name="tags", parameter_type="array"),
            Parameter(document_id=1, name="payload", parameter_type="json"),
            Parameter(document_id=1, name="when", parameter_type="date"),
        ]
        schema = item_schema(params)
        assert schema["type"] == "custom"
        assert schema["include_sample_schema"] is True
        properties = schema["item_schema"]["properties"]
        assert {name: p["type"] for name, p in properties.items()} == {
            "text": "string",
            "count": "integer",
            "price": "number",
            "flag": "boolean",
            "tags": "array",
            "payload": "array",
            "when": "string",
            "expected_output": "string",
        }
        assert schema["item_schema"]["required"] == [
            "text", "count", "flag", "tags", "payload", "when", "expected_output",
        ]
