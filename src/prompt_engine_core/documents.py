"""
Versioned Documents

Manages the lifecycle of a document and its append-only version history.

- creating a document produces "Initial version"
- every update that changes a tracked field produces exactly one new version,
  labelled with the changed field names, after the update is persisted
- restoring always produces a new version labelled "Restored from version N",
  even when the document already matched the restored snapshot
- declared parameters follow the placeholders of the content
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import replace
from typing import Any

from prompt_engine_core.domain.constants import (
    DOCUMENT_STATUSES,
    INITIAL_VERSION_LABEL,
    SLUG_PATTERN,
    VERSIONED_FIELDS,
)
from prompt_engine_core.domain.entities import Document, Version
from prompt_engine_core.domain.errors import NotFoundError, ValidationError
from prompt_engine_core.domain.value_objects import FieldChange
from prompt_engine_core.parameters import orphaned_parameters, sync_parameters
from prompt_engine_core.repository import InMemoryRepository

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(SLUG_PATTERN)

UPDATABLE_FIELDS = {"name", "slug", "description", "status", *VERSIONED_FIELDS}


def slugify(name: str) -> str:
    """Lowercase the name and collapse anything non-alphanumeric into '-'"""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def validate_document(document: Document) -> None:
    """
    Raises:
        ValidationError: Missing name/content, malformed slug or unknown status
    """
    errors: dict[str, list[str]] = {}
    if not document.name or not document.name.strip():
        errors.setdefault("name", []).append("can't be blank")
    if not document.content or not document.content.strip():
        errors.setdefault("content", []).append("can't be blank")
    if not document.slug:
        errors.setdefault("slug", []).append("can't be blank")
    elif not _SLUG_RE.match(document.slug):
        errors.setdefault("slug", []).append("is invalid")
    if document.status not in DOCUMENT_STATUSES:
        errors.setdefault("status", []).append(f"is not included in the list: {DOCUMENT_STATUSES}")
    if errors:
        raise ValidationError(errors)


def _snapshot(repository: InMemoryRepository, document: Document) -> dict[str, Any]:
    """Tracked fields as last recorded, so in-place edits still count as changes"""
    versions = repository.versions_for(document.id)
    if versions:
        return copy.deepcopy(versions[0].to_document_fields())
    return copy.deepcopy(document.tracked_fields())


def changed_fields(old: dict[str, Any], new: dict[str, Any]) -> list[str]:
    """Tracked field names whose value differs, in declaration order"""
    return [name for name in VERSIONED_FIELDS if old.get(name) != new.get(name)]


def maybe_create_version(
    repository: InMemoryRepository,
    document: Document,
    old_fields: dict[str, Any],
) -> Version | None:
    """
    Create a version when a tracked field changed since old_fields

    Args:
        repository: Persistence collaborator
        document: The document, already persisted with its new values
        old_fields: Tracked field values before the update

    Returns:
        The new version, or None when nothing tracked changed
    """
    changed = changed_fields(old_fields, document.tracked_fields())
    if not changed:
        return None
    version = repository.add_version(document, f"Updated: {', '.join(changed)}")
    logger.info("Created version %d of %s (%s)", version.version_number, document.slug, version.change_description)
    return version


def create_document(
    repository: InMemoryRepository,
    name: str,
    content: str,
    *,
    slug: str | None = None,
    description: str = "",
    system_message: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    metadata: dict | None = None,
    status: str = "draft",
) -> Document:
    """
    Create a document with its initial version and declared parameters

    Raises:
        ValidationError: Invalid or duplicate fields
    """
    document = Document(
        name=name,
        content=content,
        slug=slug or slugify(name or ""),
        description=description,
        system_message=system_message,
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        metadata=copy.deepcopy(metadata),
        status=status,
    )
    validate_document(document)
    repository.add_document(document)
    repository.add_version(document, INITIAL_VERSION_LABEL)
    sync_parameters(repository, document)
    logger.info("Created document %s", document.slug)
    return document


def _persist_changes(
    repository: InMemoryRepository,
    document: Document,
    changes: dict[str, Any],
) -> tuple[dict[str, Any], bool]:
    """Validate, apply and persist changes; returns (old tracked fields, content changed)"""
    changes = copy.deepcopy(changes)
    candidate = replace(document, **changes)
    validate_document(candidate)
    repository.check_document_uniqueness(candidate)

    old_fields = _snapshot(repository, document)
    content_changed = candidate.content != document.content
    removed = (
        orphaned_parameters(repository.parameters_for(document.id), candidate.content)
        if content_changed else []
    )
    for key, value in changes.items():
        setattr(document, key, value)
    repository.save_document(document, removed_parameters=removed)
    return old_fields, content_changed


def update_document(repository: InMemoryRepository, document: Document, **changes: Any) -> Document:
    """
    Update a document; a change to a tracked field creates one new version

    Parameters whose placeholder disappeared are removed as part of the same
    save, then new placeholders are declared.

    Raises:
        ValidationError: Unknown attribute or invalid resulting document
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError({"base": [f"cannot update {sorted(unknown)}"]})

    with repository.document_lock(document.id):
        old_fields, content_changed = _persist_changes(repository, document, changes)
        maybe_create_version(repository, document, old_fields)
        if content_changed:
            sync_parameters(repository, document)
    return document


def restore_version(repository: InMemoryRepository, document: Document, version_number: int) -> Version:
    """
    Copy a version's snapshot back onto the document

    Restoring is always recorded: if the save created a version its label is
    replaced, otherwise a version is created explicitly.

    Returns:
        The version recording the restore

    Raises:
        NotFoundError: Unknown version number
    """
    version = repository.find_version(document.id, version_number)
    if version is None:
        raise NotFoundError(f"Version {version_number} of '{document.slug}' not found")

    label = f"Restored from version {version.version_number}"
    with repository.document_lock(document.id):
        old_fields, content_changed = _persist_changes(
            repository, document, copy.deepcopy(version.to_document_fields())
        )
        created = maybe_create_version(repository, document, old_fields)
        if created is not None:
            repository.relabel_version(created, label)
        else:
            created = repository.add_version(document, label)
        if content_changed:
            sync_parameters(repository, document)

    logger.info("Restored %s to version %d as version %d", document.slug, version_number, created.version_number)
    return created


def delete_document(repository: InMemoryRepository, document: Document) -> None:
    repository.delete_document(document)
    logger.info("Deleted document %s", document.slug)


def current_version(repository: InMemoryRepository, document: Document) -> Version:
    versions = repository.versions_for(document.id)
    if not versions:
        raise NotFoundError(f"Document '{document.slug}' has no versions")
    return versions[0]


def version_at(repository: InMemoryRepository, document: Document, version_number: int) -> Version | None:
    return repository.find_version(document.id, version_number)


def version_count(repository: InMemoryRepository, document: Document) -> int:
    return len(repository.versions_for(document.id))


def previous_version(repository: InMemoryRepository, version: Version) -> Version:
    """The version just before this one, or the version itself when it is the first"""
    older = [
        v for v in repository.versions_for(version.document_id)
        if v.version_number < version.version_number
    ]
    return older[0] if older else version


def diff_versions(version_a: Version, version_b: Version) -> dict[str, FieldChange]:
    """
    Compare two versions field by field

    Returns:
        Tracked field name -> FieldChange(old=a's value, new=b's value)
    """
    return {
        name: FieldChange(old=getattr(version_a, name), new=getattr(version_b, name))
        for name in VERSIONED_FIELDS
    }
