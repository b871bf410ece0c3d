"""
In-memory Repository

Persistence collaborator for every entity. Enforces the storage-level
invariants: unique slugs, unique (document, version_number), unique parameter
names per document, and cascading deletes. Version numbering is serialised per
document with a lock so concurrent writers never collide.
"""

from __future__ import annotations

import copy
import itertools
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from prompt_engine_core.domain.entities import (
    Document,
    EvaluationRun,
    EvaluationSet,
    Parameter,
    PlaygroundRunResult,
    TestCase,
    Version,
    Workflow,
    WorkflowRun,
)
from prompt_engine_core.domain.errors import NotFoundError, ValidationError


class InMemoryRepository:
    """Thread-safe in-memory store"""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._document_locks: dict[int, threading.RLock] = defaultdict(threading.RLock)

        self._documents: dict[int, Document] = {}
        self._versions: dict[int, Version] = {}
        self._parameters: dict[int, Parameter] = {}
        self._eval_sets: dict[int, EvaluationSet] = {}
        self._test_cases: dict[int, TestCase] = {}
        self._runs: dict[int, EvaluationRun] = {}
        self._workflows: dict[int, Workflow] = {}
        self._workflow_runs: dict[int, WorkflowRun] = {}
        self._playground_results: dict[int, PlaygroundRunResult] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    @contextmanager
    def document_lock(self, document_id: int) -> Iterator[None]:
        """Serialise read-max-then-insert on a document's version counter"""
        with self._lock:
            lock = self._document_locks[document_id]
        with lock:
            yield

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def check_document_uniqueness(self, document: Document) -> None:
        errors: dict[str, list[str]] = {}
        for other in self._documents.values():
            if other.id == document.id:
                continue
            if other.slug == document.slug:
                errors.setdefault("slug", []).append("has already been taken")
            if other.name == document.name and other.status == document.status:
                errors.setdefault("name", []).append("has already been taken")
        if errors:
            raise ValidationError(errors)

    def add_document(self, document: Document) -> Document:
        with self._lock:
            self.check_document_uniqueness(document)
            document.id = self._next_id()
            document.created_at = document.updated_at = datetime.now()
            self._documents[document.id] = document
            return document

    def save_document(self, document: Document, removed_parameters: list[Parameter] = ()) -> Document:
        """Persist a document and drop orphaned parameters in the same unit"""
        with self._lock:
            if document.id not in self._documents:
                raise NotFoundError(f"Document {document.id} not found")
            self.check_document_uniqueness(document)
            document.updated_at = datetime.now()
            self._documents[document.id] = document
            for param in removed_parameters:
                self._parameters.pop(param.id, None)
            return document

    def get_document(self, document_id: int) -> Document:
        try:
            return self._documents[document_id]
        except KeyError:
            raise NotFoundError(f"Document {document_id} not found") from None

    def find_document_by_slug(self, slug: str, status: str | None = None) -> Document:
        for document in self._documents.values():
            if document.slug == slug and (status is None or document.status == status):
                return document
        suffix = f" with status {status}" if status else ""
        raise NotFoundError(f"Document '{slug}'{suffix} not found")

    def slug_exists(self, slug: str) -> bool:
        return any(d.slug == slug for d in self._documents.values())

    def list_documents(self, status: str | None = None) -> list[Document]:
        documents = [d for d in self._documents.values() if status is None or d.status == status]
        return sorted(documents, key=lambda d: d.name)

    def delete_document(self, document: Document) -> None:
        """Delete a document with its versions, parameters and evaluation sets"""
        with self._lock:
            self._documents.pop(document.id, None)
            version_ids = {v.id for v in self._versions.values() if v.document_id == document.id}
            for version_id in version_ids:
                del self._versions[version_id]
            for param in self.parameters_for(document.id):
                del self._parameters[param.id]
            for eval_set in self.eval_sets_for(document.id):
                self.delete_eval_set(eval_set)
            for result_id in [r.id for r in self._playground_results.values() if r.version_id in version_ids]:
                del self._playground_results[result_id]

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def add_version(self, document: Document, change_description: str) -> Version:
        """Snapshot the document's tracked fields as the next version"""
        with self.document_lock(document.id), self._lock:
            number = max(
                (v.version_number for v in self._versions.values() if v.document_id == document.id),
                default=0,
            ) + 1
            if self.find_version(document.id, number) is not None:
                raise ValidationError({"version_number": ["has already been taken"]})
            version = Version(
                document_id=document.id,
                version_number=number,
                change_description=change_description,
                id=self._next_id(),
                created_at=datetime.now(),
                **copy.deepcopy(document.tracked_fields()),
            )
            self._versions[version.id] = version
            return version

    def versions_for(self, document_id: int) -> list[Version]:
        """Versions of a document, newest first"""
        versions = [v for v in self._versions.values() if v.document_id == document_id]
        return sorted(versions, key=lambda v: v.version_number, reverse=True)

    def find_version(self, document_id: int, version_number: int) -> Version | None:
        for version in self._versions.values():
            if version.document_id == document_id and version.version_number == version_number:
                return version
        return None

    def get_version(self, version_id: int) -> Version:
        try:
            return self._versions[version_id]
        except KeyError:
            raise NotFoundError(f"Version {version_id} not found") from None

    def relabel_version(self, version: Version, change_description: str) -> Version:
        """Overwrite only the free-text label of a version"""
        version.change_description = change_description
        return version

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def add_parameter(self, parameter: Parameter) -> Parameter:
        with self._lock:
            if any(p.name == parameter.name for p in self.parameters_for(parameter.document_id)):
                raise ValidationError({"name": ["has already been taken"]})
            parameter.id = self._next_id()
            self._parameters[parameter.id] = parameter
            return parameter

    def save_parameter(self, parameter: Parameter) -> Parameter:
        with self._lock:
            if parameter.id not in self._parameters:
                raise NotFoundError(f"Parameter {parameter.id} not found")
            self._parameters[parameter.id] = parameter
            return parameter

    def delete_parameters(self, parameters: list[Parameter]) -> None:
        with self._lock:
            for param in parameters:
                self._parameters.pop(param.id, None)

    def parameters_for(self, document_id: int) -> list[Parameter]:
        """Declared parameters ordered by position"""
        params = [p for p in self._parameters.values() if p.document_id == document_id]
        return sorted(params, key=lambda p: (p.position, p.id))

    # ------------------------------------------------------------------
    # Evaluation sets, test cases and runs
    # ------------------------------------------------------------------

    def add_eval_set(self, eval_set: EvaluationSet) -> EvaluationSet:
        with self._lock:
            eval_set.id = self._next_id()
            self._eval_sets[eval_set.id] = eval_set
            return eval_set

    def save_eval_set(self, eval_set: EvaluationSet) -> EvaluationSet:
        with self._lock:
            self._eval_sets[eval_set.id] = eval_set
            return eval_set

    def get_eval_set(self, eval_set_id: int) -> EvaluationSet:
        try:
            return self._eval_sets[eval_set_id]
        except KeyError:
            raise NotFoundError(f"EvaluationSet {eval_set_id} not found") from None

    def eval_sets_for(self, document_id: int) -> list[EvaluationSet]:
        eval_sets = [e for e in self._eval_sets.values() if e.document_id == document_id]
        return sorted(eval_sets, key=lambda e: e.name)

    def delete_eval_set(self, eval_set: EvaluationSet) -> None:
        with self._lock:
            self._eval_sets.pop(eval_set.id, None)
            for test_case in self.test_cases_for(eval_set.id):
                del self._test_cases[test_case.id]
            for run in self.runs_for(eval_set.id):
                del self._runs[run.id]

    def add_test_case(self, test_case: TestCase) -> TestCase:
        with self._lock:
            test_case.id = self._next_id()
            self._test_cases[test_case.id] = test_case
            return test_case

    def test_cases_for(self, eval_set_id: int) -> list[TestCase]:
        cases = [t for t in self._test_cases.values() if t.eval_set_id == eval_set_id]
        return sorted(cases, key=lambda t: t.id)

    def add_run(self, run: EvaluationRun) -> EvaluationRun:
        with self._lock:
            run.id = self._next_id()
            run.created_at = datetime.now()
            self._runs[run.id] = run
            return run

    def save_run(self, run: EvaluationRun) -> EvaluationRun:
        with self._lock:
            self._runs[run.id] = run
            return run

    def get_run(self, run_id: int) -> EvaluationRun:
        try:
            return self._runs[run_id]
        except KeyError:
            raise NotFoundError(f"EvaluationRun {run_id} not found") from None

    def runs_for(self, eval_set_id: int) -> list[EvaluationRun]:
        """Runs of an evaluation set, oldest first"""
        runs = [r for r in self._runs.values() if r.eval_set_id == eval_set_id]
        return sorted(runs, key=lambda r: r.id)

    # ------------------------------------------------------------------
    # Workflows and playground results
    # ------------------------------------------------------------------

    def add_workflow(self, workflow: Workflow) -> Workflow:
        with self._lock:
            if any(w.name == workflow.name for w in self._workflows.values()):
                raise ValidationError({"name": ["has already been taken"]})
            workflow.id = self._next_id()
            self._workflows[workflow.id] = workflow
            return workflow

    def save_workflow(self, workflow: Workflow) -> Workflow:
        with self._lock:
            if any(w.name == workflow.name and w.id != workflow.id for w in self._workflows.values()):
                raise ValidationError({"name": ["has already been taken"]})
            self._workflows[workflow.id] = workflow
            return workflow

    def get_workflow(self, workflow_id: int) -> Workflow:
        try:
            return self._workflows[workflow_id]
        except KeyError:
            raise NotFoundError(f"Workflow {workflow_id} not found") from None

    def find_workflow_by_name(self, name: str) -> Workflow:
        for workflow in self._workflows.values():
            if workflow.name == name:
                return workflow
        raise NotFoundError(f"Workflow '{name}' not found")

    def add_workflow_run(self, run: WorkflowRun) -> WorkflowRun:
        with self._lock:
            run.id = self._next_id()
            run.created_at = datetime.now()
            if run.title is None:
                run.title = run.created_at.strftime("%B %d, %Y at %I:%M %p")
            self._workflow_runs[run.id] = run
            return run

    def workflow_runs_for(self, workflow_id: int) -> list[WorkflowRun]:
        """Runs of a workflow, newest first"""
        runs = [r for r in self._workflow_runs.values() if r.workflow_id == workflow_id]
        return sorted(runs, key=lambda r: r.id, reverse=True)

    def add_playground_result(self, result: PlaygroundRunResult) -> PlaygroundRunResult:
        with self._lock:
            result.id = self._next_id()
            result.created_at = datetime.now()
            self._playground_results[result.id] = result
            return result

    def playground_results_for(self, version_id: int) -> list[PlaygroundRunResult]:
        results = [r for r in self._playground_results.values() if r.version_id == version_id]
        return sorted(results, key=lambda r: r.id, reverse=True)
