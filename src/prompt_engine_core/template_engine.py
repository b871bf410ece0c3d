"""
Template Engine

Extracts and substitutes flat {{name}} placeholders in template content.

Placeholder rules:
- syntax is {{identifier(.identifier)*}}
- whitespace inside the braces is tolerated when detecting, but the emitted
  placeholder text is always the whitespace-free form
- matching stops at the first closing "}}", so nested braces are not parsed:
  "{{a{{b}}}}" yields only "b"
- substitution replaces exact {{key}} occurrences only; unknown placeholders
  are left untouched
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from prompt_engine_core.domain.value_objects import Placeholder

PLACEHOLDER_PATTERN = re.compile(
    r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)\s*\}\}"
)

# Only simple names are rewritten for the remote service
_REMOTE_PATTERN = re.compile(r"\{\{(\w+)\}\}")

# Name heuristics, checked in order (first match wins)
_TYPE_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"(_id|_count|_number|_qty|_quantity)$"), "integer"),
    (re.compile(r"(_at|_date|_time)$"), "datetime"),
    (re.compile(r"(_price|_amount|_cost|_total)$"), "decimal"),
    (re.compile(r"^(is_|has_|can_|should_)"), "boolean"),
    (re.compile(r"(_list|_array|_items)$"), "array"),
]


def infer_type(name: str) -> str:
    """
    Infer a parameter type from its name

    Args:
        name: Placeholder name

    Returns:
        One of integer, datetime, decimal, boolean, array, string
    """
    lowered = name.lower()
    for pattern, type_name in _TYPE_RULES:
        if pattern.search(lowered):
            return type_name
    return "string"


def extract(content: str | None) -> list[Placeholder]:
    """
    Extract placeholders from content

    Args:
        content: Template text

    Returns:
        Placeholders deduplicated by name, in first-occurrence order
    """
    seen: set[str] = set()
    placeholders = []
    for match in PLACEHOLDER_PATTERN.finditer(content or ""):
        name = match.group(1)
        if name in seen:
            continue
        seen.add(name)
        placeholders.append(
            Placeholder(name=name, placeholder=f"{{{{{name}}}}}", inferred_type=infer_type(name))
        )
    return placeholders


def variable_names(content: str | None) -> list[str]:
    return [p.name for p in extract(content)]


def has_variables(content: str | None) -> bool:
    return PLACEHOLDER_PATTERN.search(content or "") is not None


def to_text(value: Any) -> str:
    """String form used when substituting a value"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def substitute(content: str | None, values: Mapping[str, Any] | None) -> str:
    """
    Replace {{key}} with the string form of each provided value

    Args:
        content: Template text
        values: Placeholder name -> value (None becomes an empty string)

    Returns:
        Rendered text; placeholders without a matching key are kept verbatim
    """
    rendered = content or ""
    for key, value in (values or {}).items():
        rendered = rendered.replace(f"{{{{{key}}}}}", to_text(value))
    return rendered


def missing_variables(content: str | None, provided: Mapping[str, Any]) -> list[str]:
    """Names detected in content that have no key in provided"""
    keys = {str(k) for k in provided}
    return [name for name in variable_names(content) if name not in keys]


def to_remote_template(content: str | None, namespace: str = "item") -> str:
    """
    Rewrite {{name}} into the remote service template syntax

    Args:
        content: Template text
        namespace: Object the remote service exposes per data item

    Returns:
        Content where every {{name}} reads {{ item.name }}
    """
    return _REMOTE_PATTERN.sub(lambda m: f"{{{{ {namespace}.{m.group(1)} }}}}", content or "")
