"""
Domain Constants

Centrally manages constants shared across the prompt engine.
"""

# Parameter types a placeholder can be declared with
PARAMETER_TYPES = [
    "string",
    "integer",
    "decimal",
    "boolean",
    "datetime",
    "date",
    "array",
    "json",
]

# Parameter type -> JSON schema primitive used in the remote item schema
JSON_SCHEMA_TYPES = {
    "integer": "integer",
    "decimal": "number",
    "boolean": "boolean",
    "array": "array",
    "json": "array",
}

# Fields whose change produces a new Version
VERSIONED_FIELDS = [
    "content",
    "system_message",
    "model",
    "temperature",
    "max_tokens",
    "metadata",
]

# Fields of a Version that are write-once
VERSION_SNAPSHOT_FIELDS = [
    "document_id",
    "version_number",
    "content",
    "system_message",
    "model",
    "temperature",
    "max_tokens",
    "metadata",
]

DOCUMENT_STATUSES = ["draft", "active", "archived"]

# Grader type -> display name
GRADER_TYPES = {
    "exact_match": "Exact Match",
    "regex": "Regular Expression",
    "contains": "Contains Text",
    "json_schema": "JSON Match (Exact)",
}

DEFAULT_GRADER_TYPE = "exact_match"

# Strings that cast to True for boolean parameters
TRUTHY_STRINGS = {"true", "t", "1", "yes", "y", "on"}

# Remote run statuses
REMOTE_TERMINAL_FAILURES = {"failed", "canceled"}

# Placeholder identifier syntax
PARAMETER_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"
SLUG_PATTERN = r"^[a-z0-9-]+$"

INITIAL_VERSION_LABEL = "Initial version"
TIMEOUT_MESSAGE = "Timeout waiting for eval results"
CANCELLED_MESSAGE = "Eval run cancelled"
