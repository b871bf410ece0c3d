"""
Unit tests for template_engine.py
"""

import pytest

from prompt_engine_core.template_engine import (
    extract,
    has_variables,
    infer_type,
    missing_variables,
    substitute,
    to_remote_template,
    variable_names,
)


class TestExtract:
    """Placeholder extraction"""

    def test_deduplicates_in_first_occurrence_order(self):
        content = "{{b}} then {{a}} then {{b}} and {{a}} again, {{c}}"
        assert variable_names(content) == ["b", "a", "c"]

    def test_whitespace_is_tolerated_and_canonicalised(self):
        placeholders = extract("Hello {{  name }}!")
        assert len(placeholders) == 1
        assert placeholders[0].name == "name"
        assert placeholders[0].placeholder == "{{name}}"
        assert placeholders[0].required is True

    def test_dotted_names(self):
        assert variable_names("Hi {{user.first_name}}") == ["user.first_name"]

    def test_nested_braces_yield_inner_name_only(self):
        assert variable_names("{{a{{b}}}}") == ["b"]

    def test_invalid_identifiers_are_ignored(self):
        assert extract("{{1abc}} {{}} {{ }} {{a-b}}") == []

    def test_empty_content(self):
        assert extract(None) == []
        assert extract("") == []
        assert not has_variables("plain text")
        assert has_variables("x {{y}}")

    def test_inferred_type_is_attached(self):
        placeholders = extract("{{customer_id}} {{is_vip}}")
        assert [p.inferred_type for p in placeholders] == ["integer", "boolean"]


class TestInferType:
    @pytest.mark.parametrize("name,expected", [
        ("user_id", "integer"),
        ("item_count", "integer"),
        ("order_number", "integer"),
        ("stock_qty", "integer"),
        ("line_quantity", "integer"),
        ("created_at", "datetime"),
        ("start_date", "datetime"),
        ("pickup_time", "datetime"),
        ("unit_price", "decimal"),
        ("refund_amount", "decimal"),
        ("shipping_cost", "decimal"),
        ("order_total", "decimal"),
        ("is_active", "boolean"),
        ("has_account", "boolean"),
        ("can_edit", "boolean"),
        ("should_notify", "boolean"),
        ("tag_list", "array"),
        ("id_array", "array"),
        ("cart_items", "array"),
        ("name", "string"),
        ("total", "string"),
    ])
    def test_name_heuristics(self, name, expected):
        assert infer_type(name) == expected

    def test_case_insensitive(self):
        assert infer_type("USER_ID") == "integer"

    def test_first_rule_wins(self):
        # integer suffix is checked before the boolean prefix
        assert infer_type("is_count") == "integer"


class TestSubstitute:
    def test_replaces_every_occurrence(self):
        assert substitute("{{x}} and {{x}}", {"x": "1"}) == "1 and 1"

    def test_unknown_placeholders_are_untouched(self):
        assert substitute("Hi {{name}}, {{other}}", {"name": "Bo"}) == "Hi Bo, {{other}}"

    def test_none_becomes_empty_string(self):
        assert substitute("[{{x}}]", {"x": None}) == "[]"

    def test_booleans_and_numbers(self):
        assert substitute("{{a}} {{b}} {{c}}", {"a": True, "b": False, "c": 3.5}) == "true false 3.5"

    def test_exact_key_only(self):
        # Whitespace forms are detected but only the exact form is replaced
        assert substitute("{{ name }}", {"name": "Bo"}) == "{{ name }}"

    def test_fully_supplied_leaves_no_placeholders(self):
        content = "{{greeting}}, {{name}}! Your id is {{user_id}}."
        values = {name: "v" for name in variable_names(content)}
        assert extract(substitute(content, values)) == []


class TestMissingVariables:
    def test_missing(self):
        assert missing_variables("{{a}} {{b}}", {"a": 1}) == ["b"]


class TestToRemoteTemplate:
    def test_rewrites_simple_names(self):
        assert to_remote_template("Translate {{text}} to {{language}}") == (
            "Translate {{ item.text }} to {{ item.language }}"
        )

    def test_custom_namespace(self):
        assert to_remote_template("{{x}}", namespace="sample") == "{{ sample.x }}"
