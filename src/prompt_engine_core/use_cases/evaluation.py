"""
Evaluation Execution

Drives an EvaluationRun through the remote grading service:
pending -> running -> completed | failed.

The remote service completes asynchronously, so execution is a coroutine that
polls on a fixed interval with a bounded number of attempts. Remote calls are
blocking SDK calls and run in worker threads, which lets independent runs be
awaited concurrently. Every failure is recorded on the run before it
propagates.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections import defaultdict
from datetime import datetime

from prompt_engine_core.domain.constants import (
    CANCELLED_MESSAGE,
    REMOTE_TERMINAL_FAILURES,
    TIMEOUT_MESSAGE,
)
from prompt_engine_core.domain.entities import Document, EvaluationRun, EvaluationSet, Version
from prompt_engine_core.domain.errors import APIError, EvalTimeoutError, ValidationError
from prompt_engine_core.engine_config import EvalsConfig
from prompt_engine_core.grading import build_testing_criteria, item_schema, ready_to_run
from prompt_engine_core.infrastructure.evals_clients.base import GradingClient
from prompt_engine_core.repository import InMemoryRepository
from prompt_engine_core.template_engine import to_remote_template

logger = logging.getLogger(__name__)


class EvaluationRunner:
    """Creates and executes evaluation runs against a grading client"""

    def __init__(
        self,
        repository: InMemoryRepository,
        client: GradingClient,
        config: EvalsConfig | None = None,
    ):
        self.repository = repository
        self.client = client
        self.config = config or EvalsConfig()
        # Serialises lazy remote eval creation per evaluation set
        self._eval_locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def create_run(self, eval_set: EvaluationSet, version: Version) -> EvaluationRun:
        """
        Create a pending run of a version against an evaluation set

        Raises:
            ValidationError: Version of another document, or no test cases
        """
        if version.document_id != eval_set.document_id:
            raise ValidationError(
                f"Version {version.version_number} does not belong to the evaluation set's document",
                field="version_id",
            )
        if not ready_to_run(self.repository, eval_set):
            raise ValidationError("Evaluation set has no test cases", field="eval_set_id")
        run = self.repository.add_run(EvaluationRun(eval_set_id=eval_set.id, version_id=version.id))
        logger.info("Created evaluation run %s for %s v%d", run.id, eval_set.name, version.version_number)
        return run

    async def execute(self, run: EvaluationRun) -> EvaluationRun:
        """
        Execute a pending run to a terminal state

        A remote run reported failed/canceled ends the local run failed without
        raising. Timeouts, cancellation and remote client errors fail the run
        and then propagate.

        Args:
            run: A pending EvaluationRun

        Returns:
            The run in its terminal state

        Raises:
            InvalidTransitionError: The run is not pending
            EvalTimeoutError: The polling budget was exhausted
            APIError: The remote client failed
            asyncio.CancelledError: The task was cancelled
        """
        eval_set = self.repository.get_eval_set(run.eval_set_id)
        version = self.repository.get_version(run.version_id)
        document = self.repository.get_document(eval_set.document_id)

        run.start()
        self.repository.save_run(run)
        logger.info("Evaluation run %s running", run.id)

        try:
            eval_id = await self._ensure_remote_eval(eval_set, document)
            file_id = await self._upload_test_cases(run, eval_set)
            await self._create_remote_run(run, eval_id, version, file_id)
            await self._poll(run, eval_id)
        except asyncio.CancelledError:
            self._fail(run, CANCELLED_MESSAGE)
            self._cancel_remote(run, eval_set)
            raise
        except Exception as e:
            if not run.is_terminal:
                self._fail(run, str(e))
            raise
        return run

    async def execute_many(self, runs: list[EvaluationRun]) -> list[EvaluationRun | BaseException]:
        """
        Execute independent runs concurrently

        Returns:
            One entry per run, in order: the run, or the exception it raised
        """
        return await asyncio.gather(*(self.execute(run) for run in runs), return_exceptions=True)

    def _fail(self, run: EvaluationRun, message: str) -> None:
        run.fail(message)
        self.repository.save_run(run)
        logger.warning("Evaluation run %s failed: %s", run.id, message)

    def _cancel_remote(self, run: EvaluationRun, eval_set: EvaluationSet) -> None:
        if not (run.remote_run_id and eval_set.remote_eval_id):
            return
        try:
            self.client.cancel_run(eval_set.remote_eval_id, run.remote_run_id)
        except APIError as e:
            logger.warning("Could not cancel remote run %s: %s", run.remote_run_id, e)

    async def _ensure_remote_eval(self, eval_set: EvaluationSet, document: Document) -> str:
        async with self._eval_locks[eval_set.id]:
            if eval_set.remote_eval_id:
                return eval_set.remote_eval_id

            schema = item_schema(self.repository.parameters_for(document.id))
            criteria = build_testing_criteria(eval_set)
            eval_id = await asyncio.to_thread(
                self.client.create_eval, f"{document.name} - {eval_set.name}", schema, criteria
            )
            eval_set.remote_eval_id = eval_id
            self.repository.save_eval_set(eval_set)
            logger.info("Evaluation set %s bound to remote eval %s", eval_set.name, eval_id)
            return eval_id

    async def _upload_test_cases(self, run: EvaluationRun, eval_set: EvaluationSet) -> str:
        fd, path = tempfile.mkstemp(suffix=".jsonl", prefix="eval_data_", dir=self.config.tmp_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for test_case in self.repository.test_cases_for(eval_set.id):
                    item = {**test_case.input_variables, "expected_output": test_case.expected_output}
                    f.write(json.dumps({"item": item}, ensure_ascii=False, default=str) + "\n")
            file_id = await asyncio.to_thread(self.client.upload_file, path)
        finally:
            if os.path.exists(path):
                os.remove(path)

        run.remote_file_id = file_id
        self.repository.save_run(run)
        logger.info("Evaluation run %s uploaded data file %s", run.id, file_id)
        return file_id

    async def _create_remote_run(
        self,
        run: EvaluationRun,
        eval_id: str,
        version: Version,
        file_id: str,
    ) -> None:
        template = [
            {"role": "system", "content": version.system_message or ""},
            {"role": "user", "content": to_remote_template(version.content)},
        ]
        remote = await asyncio.to_thread(
            self.client.create_run,
            eval_id,
            f"Run at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            version.model or self.config.default_model,
            template,
            file_id,
        )
        run.remote_run_id = remote.id
        run.report_url = remote.report_url
        self.repository.save_run(run)
        logger.info("Evaluation run %s started remote run %s", run.id, remote.id)

    async def _poll(self, run: EvaluationRun, eval_id: str) -> None:
        attempts = self.config.max_poll_attempts
        for attempt in range(attempts):
            remote = await asyncio.to_thread(self.client.get_run, eval_id, run.remote_run_id)
            if remote.report_url:
                run.report_url = remote.report_url

            if remote.status == "completed":
                counts = remote.result_counts or {}
                run.complete(
                    total=counts.get("total", 0),
                    passed=counts.get("passed", 0),
                    failed=counts.get("failed", 0),
                )
                self.repository.save_run(run)
                logger.info(
                    "Evaluation run %s completed: %d/%d passed",
                    run.id, run.passed_count, run.total_count,
                )
                return
            if remote.status in REMOTE_TERMINAL_FAILURES:
                self._fail(run, remote.error or f"Eval run {remote.status}")
                return

            if attempt < attempts - 1:
                await asyncio.sleep(self.config.poll_interval_seconds)

        self._fail(run, TIMEOUT_MESSAGE)
        raise EvalTimeoutError(TIMEOUT_MESSAGE)


def run_evaluation(
    repository: InMemoryRepository,
    client: GradingClient,
    eval_set: EvaluationSet,
    version: Version,
    config: EvalsConfig | None = None,
) -> EvaluationRun:
    """
    Create and execute a run, blocking until it reaches a terminal state

    Raises:
        Same as EvaluationRunner.execute
    """
    runner = EvaluationRunner(repository, client, config)
    run = runner.create_run(eval_set, version)
    return asyncio.run(runner.execute(run))
