"""
Use Cases Layer

Aggregates business logic and provides use cases called from the engine and the runner.
"""

from prompt_engine_core.use_cases.evaluation import (
    EvaluationRunner,
    run_evaluation,
)
from prompt_engine_core.use_cases.playground import PlaygroundExecutor
from prompt_engine_core.use_cases.workflow import (
    WorkflowChain,
    create_workflow,
    ordered_step_keys,
    validate_workflow,
)

__all__ = [
    # evaluation
    "EvaluationRunner",
    "run_evaluation",
    # playground
    "PlaygroundExecutor",
    # workflow
    "WorkflowChain",
    "create_workflow",
    "ordered_step_keys",
    "validate_workflow",
]
