"""
Unit tests for parameters.py
"""

from datetime import date, datetime

import pytest

from prompt_engine_core.documents import create_document, update_document
from prompt_engine_core.domain.entities import Parameter
from prompt_engine_core.domain.errors import ValidationError
from prompt_engine_core.parameters import (
    cast_parameters,
    cast_value,
    is_blank,
    orphaned_parameters,
    sync_parameters,
    update_parameter,
    validate_definition,
    validate_parameters,
    validate_value,
)
from prompt_engine_core.rendering import render
from prompt_engine_core.repository import InMemoryRepository


def _param(name="value", parameter_type="string", **kwargs):
    return Parameter(document_id=1, name=name, parameter_type=parameter_type, **kwargs)


class TestIsBlank:
    @pytest.mark.parametrize("value", [None, "", "   ", [], {}])
    def test_blank(self, value):
        assert is_blank(value)

    @pytest.mark.parametrize("value", ["x", 0, False, [0], {"a": 1}])
    def test_not_blank(self, value):
        assert not is_blank(value)


class TestCastValue:
    """Lenient casting per declared type"""

    def test_integer(self):
        param = _param("user_id", "integer")
        assert cast_value(param, "42") == 42
        assert cast_value(param, 7.9) == 7

    def test_integer_fallback_is_zero(self):
        assert cast_value(_param("user_id", "integer"), "abc") == 0

    def test_integer_leading_digits(self):
        assert cast_value(_param("user_id", "integer"), "12abc") == 12

    def test_decimal(self):
        param = _param("unit_price", "decimal")
        assert cast_value(param, "3.50") == 3.5
        assert cast_value(param, "oops") == 0.0

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("YES", True), ("1", True), ("on", True), ("t", True),
        ("false", False), ("no", False), ("0", False), ("maybe", False),
        (True, True), (0, False),
    ])
    def test_boolean(self, raw, expected):
        assert cast_value(_param("is_vip", "boolean"), raw) is expected

    def test_date(self):
        param = _param("start", "date")
        assert cast_value(param, "2024-01-15") == date(2024, 1, 15)
        assert cast_value(param, "not a date") is None

    def test_datetime(self):
        param = _param("created_at", "datetime")
        assert cast_value(param, "2024-01-15T10:30:00") == datetime(2024, 1, 15, 10, 30)
        assert cast_value(param, "yesterday") is None

    def test_array(self):
        param = _param("tag_list", "array")
        assert cast_value(param, "a, b,c") == ["a", "b", "c"]
        assert cast_value(param, ["x", "y"]) == ["x", "y"]

    def test_json(self):
        param = _param("payload", "json")
        assert cast_value(param, '{"a": 1}') == {"a": 1}
        assert cast_value(param, "{broken") == {}
        assert cast_value(param, {"already": "parsed"}) == {"already": "parsed"}

    def test_string(self):
        assert cast_value(_param("name"), 5) == "5"

    def test_blank_optional_uses_default(self):
        param = _param("tone", required=False, default_value="friendly")
        assert cast_value(param, "") == "friendly"
        assert cast_value(param, None) == "friendly"

    def test_blank_required_is_cast(self):
        assert cast_value(_param("qty", "integer"), "") == 0


class TestValidateValue:
    def test_required_blank(self):
        assert validate_value(_param("name"), "") == ["name is required"]

    def test_optional_blank(self):
        assert validate_value(_param("name", required=False), None) == []

    def test_length_rules(self):
        param = _param("code", validation_rules={"min_length": 3, "max_length": 5})
        assert validate_value(param, "ab") == ["code must be at least 3 characters"]
        assert validate_value(param, "abcdef") == ["code must be at most 5 characters"]
        assert validate_value(param, "abcd") == []

    def test_pattern_rule(self):
        param = _param("zip", validation_rules={"pattern": r"^\d{5}$"})
        assert validate_value(param, "abcde") == [r"zip must match pattern: ^\d{5}$"]
        assert validate_value(param, "12345") == []

    def test_numeric_bounds_use_cast_value(self):
        param = _param("qty", "integer", validation_rules={"min": 1, "max": 10})
        assert validate_value(param, "20") == ["qty must be at most 10"]
        assert validate_value(param, "0") == ["qty must be at least 1"]
        assert validate_value(param, "5") == []

    def test_numeric_bounds_ignored_for_strings(self):
        param = _param("label", validation_rules={"min": 1})
        assert validate_value(param, "abc") == []

    def test_multiple_violations(self):
        param = _param("code", validation_rules={"min_length": 3, "pattern": r"^\d+$"})
        assert validate_value(param, "a") == [
            "code must be at least 3 characters",
            "code must match pattern: ^\\d+$",
        ]


class TestValidateAndCastParameters:
    def test_collects_errors_in_order(self):
        params = [_param("a"), _param("b"), _param("c", required=False)]
        assert validate_parameters(params, {}) == ["a is required", "b is required"]

    def test_optional_default_is_validated(self):
        params = [_param("code", required=False, default_value="x", validation_rules={"min_length": 2})]
        assert validate_parameters(params, {}) == ["code must be at least 2 characters"]

    def test_cast_parameters(self):
        params = [_param("user_id", "integer"), _param("name")]
        assert cast_parameters(params, {"user_id": "9", "name": "Bo"}) == {"user_id": 9, "name": "Bo"}


class TestValidateDefinition:
    def test_bad_name(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_definition(_param("1bad"))
        assert "name" in exc_info.value.errors

    def test_unknown_type(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_definition(_param("ok", "uuid"))
        assert "parameter_type" in exc_info.value.errors

    def test_duplicate_name(self):
        sibling = _param("ok", id=1)
        with pytest.raises(ValidationError, match="has already been taken"):
            validate_definition(_param("ok", id=2), [sibling])

    def test_invalid_pattern(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_definition(_param("zip", validation_rules={"pattern": "[bad("}))
        assert exc_info.value.errors["validation_rules"][0].startswith("invalid regex pattern")

    @pytest.mark.parametrize("rule", ["min", "max", "min_length", "max_length"])
    def test_non_numeric_bounds(self, rule):
        with pytest.raises(ValidationError) as exc_info:
            validate_definition(_param("qty", "integer", validation_rules={rule: "ten"}))
        assert exc_info.value.errors == {"validation_rules": [f"{rule} must be a number"]}

    def test_valid_rules(self):
        validate_definition(_param("code", validation_rules={"min_length": 2, "max": 9.5, "pattern": r"^\d+$"}))


class TestSync:
    """Declared parameters mirror the content's placeholders"""

    @pytest.fixture
    def repo(self):
        return InMemoryRepository()

    def test_create_declares_placeholders(self, repo):
        doc = create_document(repo, "Order", "Order {{order_id}} for {{name}} at {{created_at}}")
        params = repo.parameters_for(doc.id)
        assert [(p.name, p.parameter_type, p.required, p.position) for p in params] == [
            ("order_id", "integer", True, 1),
            ("name", "string", True, 2),
            ("created_at", "datetime", True, 3),
        ]

    def test_idempotent(self, repo):
        doc = create_document(repo, "Order", "Order {{order_id}} for {{name}}")
        before = repo.parameters_for(doc.id)
        assert sync_parameters(repo, doc) == ([], [])
        assert repo.parameters_for(doc.id) == before

    def test_removed_and_added_on_content_change(self, repo):
        doc = create_document(repo, "Order", "Order {{order_id}} for {{name}}")
        update_document(repo, doc, content="Order {{order_id}} ships {{ship_date}}")
        params = repo.parameters_for(doc.id)
        assert [p.name for p in params] == ["order_id", "ship_date"]
        assert params[-1].position == 2

    def test_manual_edits_survive_resync(self, repo):
        doc = create_document(repo, "Greeting", "Hello {{name}}")
        param = repo.parameters_for(doc.id)[0]
        update_parameter(repo, param, description="Customer first name", validation_rules={"max_length": 20})

        update_document(repo, doc, content="Hello {{name}}, welcome to {{city}}")

        name = next(p for p in repo.parameters_for(doc.id) if p.name == "name")
        assert name.description == "Customer first name"
        assert name.validation_rules == {"max_length": 20}

    def test_dotted_placeholders_are_not_declared(self, repo):
        doc = create_document(repo, "Profile", "Hi {{user.name}} ({{email}})")
        assert [p.name for p in repo.parameters_for(doc.id)] == ["email"]

    def test_orphaned_parameters(self):
        params = [_param("a"), _param("b")]
        assert [p.name for p in orphaned_parameters(params, "only {{a}}")] == ["b"]


class TestUpdateParameter:
    def test_invalid_update_leaves_parameter_untouched(self):
        repo = InMemoryRepository()
        doc = create_document(repo, "Greeting", "Hello {{name}}")
        param = repo.parameters_for(doc.id)[0]

        with pytest.raises(ValidationError):
            update_parameter(repo, param, parameter_type="uuid")

        assert repo.parameters_for(doc.id)[0].parameter_type == "string"

    def test_unknown_attribute(self):
        repo = InMemoryRepository()
        doc = create_document(repo, "Greeting", "Hello {{name}}")
        with pytest.raises(ValidationError, match="cannot edit"):
            update_parameter(repo, repo.parameters_for(doc.id)[0], name="renamed")

    def test_invalid_pattern_is_rejected_before_render(self):
        repo = InMemoryRepository()
        doc = create_document(repo, "Greeting", "Hello {{name}}")
        param = repo.parameters_for(doc.id)[0]

        with pytest.raises(ValidationError, match="invalid regex pattern"):
            update_parameter(repo, param, validation_rules={"pattern": "[bad("})

        assert repo.parameters_for(doc.id)[0].validation_rules is None
        assert render(repo, doc, {"name": "Alice"}).content == "Hello Alice"
