"""
prompt-engine-core CLI Runner

Minimal CLI over a JSON bundle of documents, evaluation sets and workflows.

Usage:
    python -m prompt_engine_core.runner render --bundle prompts.json --slug greeting --var name=Alice
    python -m prompt_engine_core.runner eval --bundle prompts.json --slug greeting --eval-set "Smoke tests"
    python -m prompt_engine_core.runner workflow --bundle prompts.json --workflow onboarding --input "Hi"

Run a workflow step by step against a provider:
    python -m prompt_engine_core.runner workflow --bundle prompts.json --workflow onboarding --provider openai
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from prompt_engine_core.bundle_loader import load_bundle
from prompt_engine_core.documents import current_version, version_at
from prompt_engine_core.domain.errors import NotFoundError, PromptEngineError
from prompt_engine_core.engine import PromptEngine
from prompt_engine_core.engine_config import EngineConfig, load_config, mask_api_key
from prompt_engine_core.infrastructure.evals_clients.openai_evals import OpenAIEvalsClient
from prompt_engine_core.reporting import runs_dataframe
from prompt_engine_core.repository import InMemoryRepository
from prompt_engine_core.use_cases.evaluation import run_evaluation
from prompt_engine_core.use_cases.workflow import WorkflowChain


def _parse_vars(pairs: list[str] | None) -> dict[str, str]:
    """Parse repeated key=value options"""
    variables = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise argparse.ArgumentTypeError(f"Expected key=value, got '{pair}'")
        key, value = pair.split("=", 1)
        variables[key.strip()] = value
    return variables


def _status(value: str) -> str | None:
    return None if value == "any" else value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="prompt-engine-core: Render, evaluate and chain versioned prompt documents",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    render_parser = subparsers.add_parser("render", help="Render a document")
    render_parser.add_argument("--bundle", required=True, help="Path to the bundle JSON file")
    render_parser.add_argument("--slug", required=True, help="Document slug")
    render_parser.add_argument("--var", action="append", help="Placeholder value as key=value (repeatable)")
    render_parser.add_argument("--version", type=int, default=None, help="Version number to render")
    render_parser.add_argument(
        "--status",
        default="active",
        help="Document status to resolve the slug with, or 'any' (default: active)",
    )

    eval_parser = subparsers.add_parser("eval", help="Run an evaluation set against a version")
    eval_parser.add_argument("--bundle", required=True, help="Path to the bundle JSON file")
    eval_parser.add_argument("--slug", required=True, help="Document slug")
    eval_parser.add_argument("--eval-set", required=True, help="Evaluation set name")
    eval_parser.add_argument("--version", type=int, default=None, help="Version number (default: current)")
    eval_parser.add_argument("--api-key", default=None, help="OpenAI API key (default: OPENAI_API_KEY)")
    eval_parser.add_argument(
        "--output-dir",
        default="results",
        help="Directory for the run summary CSV (default: results)",
    )

    workflow_parser = subparsers.add_parser("workflow", help="Execute a workflow")
    workflow_parser.add_argument("--bundle", required=True, help="Path to the bundle JSON file")
    workflow_parser.add_argument("--workflow", required=True, help="Workflow name")
    workflow_parser.add_argument("--input", default="", help="Initial input of the first step")
    workflow_parser.add_argument("--var", action="append", help="Variable as key=value (repeatable)")
    workflow_parser.add_argument(
        "--provider",
        default=None,
        choices=["openai", "anthropic"],
        help="Send every step to this provider instead of only rendering",
    )
    workflow_parser.add_argument("--api-key", default=None, help="Provider API key (default: provider env var)")

    return parser.parse_args(argv)


def _load(bundle_path: str) -> InMemoryRepository:
    repository = InMemoryRepository()
    bundle = load_bundle(bundle_path, repository)
    print(f"\n=== Loaded bundle: {bundle_path} ===\n")
    print(f"  Documents: {len(bundle.documents)}")
    print(f"  Eval sets: {len(bundle.eval_sets)}")
    print(f"  Workflows: {len(bundle.workflows)}")
    print()
    return repository


def cmd_render(args: argparse.Namespace, config: EngineConfig) -> int:
    repository = _load(args.bundle)
    engine = PromptEngine(repository, config)
    output = engine.render(
        args.slug,
        _parse_vars(args.var),
        status=_status(args.status),
        version=args.version,
    )
    print(f"=== {args.slug} (version {output.version_number}) ===\n")
    if output.system_message:
        print(f"[system] {output.system_message}\n")
    print(output.content)
    print()
    return 0


def cmd_eval(args: argparse.Namespace, config: EngineConfig) -> int:
    repository = _load(args.bundle)
    document = repository.find_document_by_slug(args.slug)
    eval_set = next((s for s in repository.eval_sets_for(document.id) if s.name == args.eval_set), None)
    if eval_set is None:
        raise NotFoundError(f"Evaluation set '{args.eval_set}' not found for '{args.slug}'")

    if args.version is not None:
        version = version_at(repository, document, args.version)
        if version is None:
            raise NotFoundError(f"Version {args.version} of '{args.slug}' not found")
    else:
        version = current_version(repository, document)

    api_key = args.api_key or os.environ.get("OPENAI_API_KEY")
    client = OpenAIEvalsClient(api_key=api_key, config=config.evals)

    print(f"=== Evaluating {args.slug} v{version.version_number} with '{eval_set.name}' ===\n")
    print(f"  API key: {mask_api_key(api_key)}")
    print(f"  Grader:  {eval_set.grader_type_display}")
    print(f"  Cases:   {len(repository.test_cases_for(eval_set.id))}")
    print()

    run = None
    try:
        run = run_evaluation(repository, client, eval_set, version, config.evals)
    finally:
        runs = repository.runs_for(eval_set.id)
        if runs:
            run = runs[-1]
            print(f"  Status:  {run.status}")
            if run.error_message:
                print(f"  Error:   {run.error_message}")
            if run.report_url:
                print(f"  Report:  {run.report_url}")

    print(f"  Passed:  {run.passed_count}/{run.total_count} ({run.success_rate}%)")
    print(f"  Took:    {run.duration_in_words}")
    print()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    summary_path = output_dir / f"eval_summary_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
    df: pd.DataFrame = runs_dataframe(repository.runs_for(eval_set.id), repository.versions_for(document.id))
    df.to_csv(summary_path, index=False)
    print("=== Output ===\n")
    print(f"  Summary: {summary_path}")
    print()
    return 0 if run.status == "completed" else 1


def cmd_workflow(args: argparse.Namespace, config: EngineConfig) -> int:
    repository = _load(args.bundle)
    workflow = repository.find_workflow_by_name(args.workflow)
    chain = WorkflowChain(repository, workflow, config)

    api_key = args.api_key
    if args.provider and not api_key:
        env_var = "ANTHROPIC_API_KEY" if args.provider == "anthropic" else "OPENAI_API_KEY"
        api_key = os.environ.get(env_var)

    run = chain.run(args.input, _parse_vars(args.var), provider=args.provider, api_key=api_key)

    print(f"=== Workflow: {workflow.name} ===\n")
    for step in run.results["steps"]:
        print(f"  [{step['step']}] {step['document_slug']} ({step['execution_time']:.1f}ms)")
        print(f"      {step['output']}")
    print()
    print(f"  Final output: {run.results['final_output']}")
    print(f"  Total time:   {run.execution_time:.1f}ms")
    print()
    return 0


COMMANDS = {
    "render": cmd_render,
    "eval": cmd_eval,
    "workflow": cmd_workflow,
}


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    config = load_config()

    try:
        return COMMANDS[args.command](args, config)
    except (PromptEngineError, KeyError, FileNotFoundError) as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
