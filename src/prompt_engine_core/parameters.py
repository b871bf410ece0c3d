"""
Parameter Store

Casts and validates caller-supplied values against declared parameters and
keeps the declared parameters of a document in sync with its placeholders.

Casting is lenient: unparsable numbers become 0, unparsable dates become
None and unparsable JSON becomes {}. The fallback is logged, never raised.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from prompt_engine_core.domain.entities import Document
    from prompt_engine_core.repository import InMemoryRepository

from prompt_engine_core.domain.constants import (
    PARAMETER_NAME_PATTERN,
    PARAMETER_TYPES,
    TRUTHY_STRINGS,
)
from prompt_engine_core.domain.entities import Parameter
from prompt_engine_core.domain.errors import ValidationError
from prompt_engine_core.template_engine import extract, to_text

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(PARAMETER_NAME_PATTERN)
_INT_PREFIX_RE = re.compile(r"^\s*[+-]?\d+")
_FLOAT_PREFIX_RE = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

# Parameter attributes a caller may edit by hand
EDITABLE_FIELDS = {
    "parameter_type",
    "required",
    "default_value",
    "validation_rules",
    "description",
    "example_value",
    "position",
}

# Validation rule keys whose value must be a number
NUMERIC_RULES = ("min", "max", "min_length", "max_length")


def is_blank(value: Any) -> bool:
    """None, whitespace-only strings and empty collections are blank"""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _to_int(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    match = _INT_PREFIX_RE.match(str(value))
    if match is None:
        logger.warning("Could not cast %r to integer, using 0", value)
        return 0
    return int(match.group(0))


def _to_decimal(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    match = _FLOAT_PREFIX_RE.match(str(value))
    if match is None:
        logger.warning("Could not cast %r to decimal, using 0.0", value)
        return 0.0
    return float(match.group(0))


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in TRUTHY_STRINGS


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        logger.warning("Could not cast %r to datetime", value)
        return None


def _to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        logger.warning("Could not cast %r to date", value)
        return None


def _to_array(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    text = to_text(value)
    if not text:
        return []
    return [part.strip() for part in text.split(",")]


def _to_json(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Could not parse JSON parameter value, using {}")
        return {}


_CASTERS = {
    "integer": _to_int,
    "decimal": _to_decimal,
    "boolean": _to_bool,
    "datetime": _to_datetime,
    "date": _to_date,
    "array": _to_array,
    "json": _to_json,
}


def cast_value(parameter: Parameter, value: Any) -> Any:
    """
    Convert a raw value to the parameter's declared type

    Args:
        parameter: Declared parameter
        value: Raw caller-supplied value

    Returns:
        The typed value; the declared default when the value is blank and
        the parameter is optional
    """
    if is_blank(value) and not parameter.required:
        return parameter.default_value

    caster = _CASTERS.get(parameter.parameter_type)
    if caster is None:
        return to_text(value)
    return caster(value)


def validate_value(parameter: Parameter, value: Any) -> list[str]:
    """
    Check a raw value against the parameter's requirement and validation rules

    Args:
        parameter: Declared parameter
        value: Raw caller-supplied value

    Returns:
        Human-readable error messages (empty when valid)
    """
    errors = []
    name = parameter.name

    if parameter.required and is_blank(value):
        errors.append(f"{name} is required")

    rules = parameter.validation_rules or {}
    if not rules:
        return errors

    text = to_text(value)
    if rules.get("min_length") is not None and len(text) < rules["min_length"]:
        errors.append(f"{name} must be at least {rules['min_length']} characters")
    if rules.get("max_length") is not None and len(text) > rules["max_length"]:
        errors.append(f"{name} must be at most {rules['max_length']} characters")
    if rules.get("pattern") and not re.search(rules["pattern"], text):
        errors.append(f"{name} must match pattern: {rules['pattern']}")

    # Numeric bounds compare the cast value
    if rules.get("min") is not None or rules.get("max") is not None:
        typed = cast_value(parameter, value)
        if isinstance(typed, (int, float)) and not isinstance(typed, bool):
            if rules.get("min") is not None and typed < rules["min"]:
                errors.append(f"{name} must be at least {rules['min']}")
            if rules.get("max") is not None and typed > rules["max"]:
                errors.append(f"{name} must be at most {rules['max']}")

    return errors


def validate_parameters(parameters: list[Parameter], provided: Mapping[str, Any] | None) -> list[str]:
    """
    Validate provided values against every declared parameter

    Optional parameters left blank are validated against their default value.

    Returns:
        All error messages, in parameter order
    """
    provided = provided or {}
    errors: list[str] = []
    for param in parameters:
        value = provided.get(param.name)
        if is_blank(value) and not param.required and not is_blank(param.default_value):
            value = param.default_value
        errors.extend(validate_value(param, value))
    return errors


def cast_parameters(parameters: list[Parameter], provided: Mapping[str, Any] | None) -> dict[str, Any]:
    provided = provided or {}
    return {param.name: cast_value(param, provided.get(param.name)) for param in parameters}


def validate_rules(rules: Any) -> list[str]:
    """Check that validation rules are usable: numeric bounds and a compilable pattern"""
    if not rules:
        return []
    if not isinstance(rules, dict):
        return ["must be a mapping"]

    errors = []
    for key in NUMERIC_RULES:
        bound = rules.get(key)
        if bound is not None and (isinstance(bound, bool) or not isinstance(bound, (int, float))):
            errors.append(f"{key} must be a number")
    pattern = rules.get("pattern")
    if pattern:
        try:
            re.compile(pattern)
        except (re.error, TypeError) as e:
            errors.append(f"invalid regex pattern: {e}")
    return errors


def validate_definition(parameter: Parameter, siblings: list[Parameter] = ()) -> None:
    """
    Validate a parameter declaration before it is persisted

    Raises:
        ValidationError: Bad name, unknown type, duplicate name within the
            document, or unusable validation rules
    """
    errors: dict[str, list[str]] = {}
    if not parameter.name or not _NAME_RE.match(parameter.name):
        errors.setdefault("name", []).append(
            "must start with a letter or underscore and contain only letters, numbers, and underscores"
        )
    elif any(p.name == parameter.name and p.id != parameter.id for p in siblings):
        errors.setdefault("name", []).append("has already been taken")
    if parameter.parameter_type not in PARAMETER_TYPES:
        errors.setdefault("parameter_type", []).append(
            f"is not included in the list: {PARAMETER_TYPES}"
        )
    if not isinstance(parameter.required, bool):
        errors.setdefault("required", []).append("must be true or false")
    rule_errors = validate_rules(parameter.validation_rules)
    if rule_errors:
        errors["validation_rules"] = rule_errors
    if errors:
        raise ValidationError(errors)


def orphaned_parameters(parameters: list[Parameter], content: str | None) -> list[Parameter]:
    """Declared parameters whose name no longer appears in content"""
    detected = {p.name for p in extract(content)}
    return [param for param in parameters if param.name not in detected]


def sync_parameters(
    repository: InMemoryRepository,
    document: Document,
) -> tuple[list[Parameter], list[Parameter]]:
    """
    Mirror the document's placeholders into its declared parameters

    New placeholder names get a parameter with the inferred type, required=True,
    positioned after the current maximum. Declared names absent from the content
    are removed. Existing parameters are never modified, so running it twice
    without a content change is a no-op.

    Returns:
        (added parameters, removed parameters)
    """
    placeholders = extract(document.content)
    existing = repository.parameters_for(document.id)
    existing_names = {p.name for p in existing}
    max_position = max((p.position for p in existing), default=0)

    added = []
    for placeholder in placeholders:
        if placeholder.name in existing_names:
            continue
        if not _NAME_RE.match(placeholder.name):
            # Dotted names are rendered but never declared
            logger.debug("Skipping non-identifier placeholder %s", placeholder.name)
            continue
        param = Parameter(
            document_id=document.id,
            name=placeholder.name,
            parameter_type=placeholder.inferred_type,
            required=placeholder.required,
            position=max_position + len(added) + 1,
        )
        added.append(repository.add_parameter(param))
        existing_names.add(placeholder.name)

    removed = orphaned_parameters(existing, document.content)
    if removed:
        repository.delete_parameters(removed)

    if added or removed:
        logger.info(
            "Synced parameters for %s: added=%s removed=%s",
            document.slug, [p.name for p in added], [p.name for p in removed],
        )
    return added, removed


def update_parameter(repository: InMemoryRepository, parameter: Parameter, **changes: Any) -> Parameter:
    """
    Apply manual edits (description, rules, type, default...) to a parameter

    Raises:
        ValidationError: Unknown attribute or invalid resulting declaration
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError({"base": [f"cannot edit {sorted(unknown)}"]})
    updated = replace(parameter, **changes)
    validate_definition(updated, repository.parameters_for(parameter.document_id))
    return repository.save_parameter(updated)
