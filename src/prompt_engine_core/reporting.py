"""
Evaluation Reporting

Success-rate metrics over evaluation runs, as plain numbers or pandas tables.
"""

from __future__ import annotations

import pandas as pd

from prompt_engine_core.domain.entities import EvaluationRun, Version
from prompt_engine_core.domain.errors import ValidationError

RUN_COLUMNS = [
    "run_id",
    "eval_set_id",
    "version_id",
    "version_number",
    "status",
    "total_count",
    "passed_count",
    "failed_count",
    "success_rate",
    "started_at",
    "completed_at",
    "duration_seconds",
    "report_url",
]


def success_rate(run: EvaluationRun) -> float:
    return run.success_rate


def _scored(runs: list[EvaluationRun]) -> list[EvaluationRun]:
    return [r for r in runs if r.status == "completed" and r.total_count > 0]


def average_success_rate(runs: list[EvaluationRun]) -> float:
    """Mean success rate of completed runs that graded something"""
    scored = _scored(runs)
    if not scored:
        return 0
    return round(sum(r.success_rate for r in scored) / len(scored), 1)


def overall_pass_rate(runs: list[EvaluationRun]) -> float:
    """Passed test cases over all graded test cases, as a percentage"""
    scored = _scored(runs)
    total = sum(r.total_count for r in scored)
    if not total:
        return 0
    return round(sum(r.passed_count for r in scored) / total * 100, 1)


def runs_dataframe(runs: list[EvaluationRun], versions: list[Version] | None = None) -> pd.DataFrame:
    """
    Table of completed runs, oldest first

    Args:
        runs: Evaluation runs (non-completed runs are dropped)
        versions: Versions used to resolve version_number

    Returns:
        DataFrame with RUN_COLUMNS
    """
    numbers = {v.id: v.version_number for v in (versions or [])}
    rows = [
        {
            "run_id": run.id,
            "eval_set_id": run.eval_set_id,
            "version_id": run.version_id,
            "version_number": numbers.get(run.version_id),
            "status": run.status,
            "total_count": run.total_count,
            "passed_count": run.passed_count,
            "failed_count": run.failed_count,
            "success_rate": run.success_rate,
            "started_at": run.started_at,
            "completed_at": run.completed_at,
            "duration_seconds": run.duration,
            "report_url": run.report_url,
        }
        for run in runs
        if run.status == "completed"
    ]
    df = pd.DataFrame(rows, columns=RUN_COLUMNS)
    return df.sort_values("run_id").reset_index(drop=True)


def success_rate_trend(runs: list[EvaluationRun], versions: list[Version] | None = None) -> pd.DataFrame:
    """Success rate per completed run, in execution order"""
    df = runs_dataframe(runs, versions)
    return df[["run_id", "version_number", "completed_at", "success_rate"]]


def success_rate_by_version(runs: list[EvaluationRun], versions: list[Version]) -> pd.DataFrame:
    """
    Aggregate completed runs per version number

    Returns:
        DataFrame with version_number, runs, avg_success_rate, passed_count, total_count
    """
    df = runs_dataframe(runs, versions)
    columns = ["version_number", "runs", "avg_success_rate", "passed_count", "total_count"]
    if df.empty:
        return pd.DataFrame(columns=columns)
    grouped = df.groupby("version_number").agg(
        runs=("run_id", "count"),
        avg_success_rate=("success_rate", "mean"),
        passed_count=("passed_count", "sum"),
        total_count=("total_count", "sum"),
    ).reset_index()
    grouped["avg_success_rate"] = grouped["avg_success_rate"].round(1)
    return grouped[columns]


def compare_runs(run_a: EvaluationRun, run_b: EvaluationRun) -> dict[str, float]:
    """
    Compare the success rates of two completed runs

    Returns:
        {"run_a": rate, "run_b": rate, "difference": b - a}

    Raises:
        ValidationError: Either run is not completed
    """
    if run_a.status != "completed" or run_b.status != "completed":
        raise ValidationError("Both evaluation runs must be completed to compare", field="base")
    rate_a = run_a.success_rate
    rate_b = run_b.success_rate
    return {
        "run_a": rate_a,
        "run_b": rate_b,
        "difference": round(rate_b - rate_a, 1),
    }
