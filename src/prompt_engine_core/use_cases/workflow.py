"""
Workflow Chaining

Runs the documents of a workflow in step order, feeding the rendered output of
each step into the next one as {{input}}.

Variable scoping of the detailed execution:
- step 1 receives every caller variable plus input
- step 2 receives the caller variables plus input/output from step 1
- from step 3 on, only input/output of the previous step are passed
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from prompt_engine_core.domain.entities import Workflow, WorkflowRun
from prompt_engine_core.domain.errors import NotFoundError, ValidationError
from prompt_engine_core.domain.value_objects import StepResult, WorkflowResult
from prompt_engine_core.engine_config import EngineConfig, load_config
from prompt_engine_core.rendering import render
from prompt_engine_core.repository import InMemoryRepository
from prompt_engine_core.use_cases.playground import PlaygroundExecutor

logger = logging.getLogger(__name__)


def ordered_step_keys(steps: Mapping[str, str]) -> list[str]:
    """Numeric order when every key is a number, lexicographic otherwise"""
    keys = [str(k) for k in steps]
    if keys and all(k.isdigit() for k in keys):
        return sorted(keys, key=int)
    return sorted(keys)


def validate_workflow(repository: InMemoryRepository, workflow: Workflow) -> None:
    """
    Raises:
        ValidationError: Blank name, no steps, or a step referencing an unknown document
    """
    errors: dict[str, list[str]] = {}
    if not workflow.name or not workflow.name.strip():
        errors.setdefault("name", []).append("can't be blank")
    if not workflow.steps:
        errors.setdefault("steps", []).append("can't be blank")
    else:
        for slug in workflow.steps.values():
            if not repository.slug_exists(slug):
                errors.setdefault("steps", []).append(f"Referenced document '{slug}' does not exist")
    if errors:
        raise ValidationError(errors)


def create_workflow(
    repository: InMemoryRepository,
    name: str,
    steps: Mapping[str, str],
    description: str = "",
) -> Workflow:
    workflow = Workflow(
        name=name,
        steps={str(k): v for k, v in (steps or {}).items()},
        description=description,
    )
    validate_workflow(repository, workflow)
    return repository.add_workflow(workflow)


class WorkflowChain:
    """Executes a workflow's steps in sequence"""

    def __init__(
        self,
        repository: InMemoryRepository,
        workflow: Workflow,
        config: EngineConfig | None = None,
    ):
        self.repository = repository
        self.workflow = workflow
        self.config = config or load_config()

    @property
    def document_status(self) -> str:
        return self.config.workflow.document_status

    def _render(self, slug: str, variables: Mapping[str, Any]) -> str:
        document = self.repository.find_document_by_slug(slug, status=self.document_status)
        return render(self.repository, document, variables).content

    def execute(self, initial_input: str = "", variables: Mapping[str, Any] | None = None) -> str | None:
        """
        Execute every step, keeping the caller variables throughout

        Returns:
            Rendered output of the last step

        Raises:
            NotFoundError: A step's document does not exist with the resolved status
            RenderError: A step failed parameter validation
        """
        current = dict(variables or {})
        current["input"] = initial_input

        for key in ordered_step_keys(self.workflow.steps):
            output = self._render(self.workflow.steps[key], current)
            current["input"] = output
            current["output"] = output

        return current.get("output")

    def _execute_step(
        self,
        slug: str,
        variables: dict[str, Any],
        provider: str | None,
        api_key: str | None,
    ) -> tuple[str, float]:
        """Returns (output, execution time in milliseconds)"""
        if provider and api_key:
            try:
                document = self.repository.find_document_by_slug(slug, status=self.document_status)
            except NotFoundError:
                return f"Error: Document '{slug}' not found", 0
            executor = PlaygroundExecutor(
                self.repository, document, provider, api_key, parameters=variables, config=self.config
            )
            result = executor.execute()
            return result.response, result.execution_time * 1000

        start_time = time.perf_counter()
        output = self._render(slug, variables)
        return output, (time.perf_counter() - start_time) * 1000

    def execute_with_steps(
        self,
        initial_input: str = "",
        variables: Mapping[str, Any] | None = None,
        provider: str | None = None,
        api_key: str | None = None,
    ) -> WorkflowResult:
        """
        Execute every step and record each step's input, output and timing

        When provider and api_key are given, each step is sent to the model
        provider through the playground instead of only being rendered.

        Returns:
            WorkflowResult (times in milliseconds)
        """
        current = dict(variables or {})
        current["input"] = initial_input
        result = WorkflowResult()
        start_time = time.perf_counter()

        for index, key in enumerate(ordered_step_keys(self.workflow.steps)):
            slug = self.workflow.steps[key]
            output, execution_time = self._execute_step(slug, current, provider, api_key)
            result.steps.append(
                StepResult(
                    step=key,
                    document_slug=slug,
                    input=current.get("input"),
                    output=output,
                    execution_time=execution_time,
                )
            )
            logger.debug("Workflow %s step %s (%s) done", self.workflow.name, key, slug)

            if index == 0:
                current = {**current, "input": output, "output": output}
            else:
                current = {"input": output, "output": output}

        result.final_output = current.get("output")
        result.total_execution_time = (time.perf_counter() - start_time) * 1000
        return result

    def run(
        self,
        initial_input: str = "",
        variables: Mapping[str, Any] | None = None,
        provider: str | None = None,
        api_key: str | None = None,
        title: str | None = None,
    ) -> WorkflowRun:
        """
        Execute with steps and persist the outcome as a WorkflowRun

        A failing execution is recorded with status "failed" before the
        error propagates.
        """
        input_variables = {**dict(variables or {}), "initial_input": initial_input}
        try:
            result = self.execute_with_steps(initial_input, variables, provider, api_key)
        except Exception as e:
            self.repository.add_workflow_run(
                WorkflowRun(
                    workflow_id=self.workflow.id,
                    status="failed",
                    input_variables=input_variables,
                    results={},
                    execution_time=0,
                    error_message=str(e),
                    title=title,
                )
            )
            logger.warning("Workflow %s failed: %s", self.workflow.name, e)
            raise

        return self.repository.add_workflow_run(
            WorkflowRun(
                workflow_id=self.workflow.id,
                status="completed",
                input_variables=input_variables,
                results={
                    "steps": [vars(step).copy() for step in result.steps],
                    "final_output": result.final_output,
                    "total_execution_time": result.total_execution_time,
                },
                execution_time=result.total_execution_time,
                title=title,
            )
        )
