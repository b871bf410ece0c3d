"""
EvaluationRunner tests

The grading client is a MagicMock; asyncio.sleep is patched where the poll
interval matters.
"""

import asyncio
import json
import os

import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from prompt_engine_core.documents import create_document, current_version
from prompt_engine_core.domain.errors import (
    APIError,
    EvalTimeoutError,
    InvalidTransitionError,
    ValidationError,
)
from prompt_engine_core.domain.value_objects import RemoteRun
from prompt_engine_core.engine_config import EvalsConfig
from prompt_engine_core.grading import add_test_case, create_eval_set
from prompt_engine_core.infrastructure.evals_clients.base import GradingClient
from prompt_engine_core.repository import InMemoryRepository
from prompt_engine_core.use_cases.evaluation import EvaluationRunner, run_evaluation

SLEEP = "prompt_engine_core.use_cases.evaluation.asyncio.sleep"


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def doc(repo):
    return create_document(
        repo,
        "Translator",
        "Translate {{text}} to {{language}}",
        system_message="You translate.",
        model="gpt-4o-mini",
    )


@pytest.fixture
def eval_set(repo, doc):
    eval_set = create_eval_set(repo, doc.id, "Smoke")
    add_test_case(repo, eval_set, {"text": "hello", "language": "Spanish"}, "hola")
    add_test_case(repo, eval_set, {"text": "bye", "language": "Spanish"}, "adiós")
    return eval_set


@pytest.fixture
def version(repo, doc):
    return current_version(repo, doc)


@pytest.fixture
def config(tmp_path):
    return EvalsConfig(poll_interval_seconds=0.01, max_poll_attempts=3, tmp_dir=str(tmp_path))


@pytest.fixture
def client():
    client = MagicMock(spec=GradingClient)
    client.create_eval.return_value = "eval_abc"
    client.upload_file.return_value = "file_123"
    client.create_run.return_value = RemoteRun(id="evalrun_1", status="queued", report_url="https://report/1")
    client.get_run.return_value = RemoteRun(
        id="evalrun_1",
        status="completed",
        report_url="https://report/1",
        result_counts={"total": 2, "passed": 1, "failed": 1},
    )
    return client


@pytest.fixture
def runner(repo, client, config):
    return EvaluationRunner(repo, client, config)


def _execute(runner, run):
    return asyncio.run(runner.execute(run))


class TestCreateRun:
    def test_pending_run(self, runner, eval_set, version):
        run = runner.create_run(eval_set, version)
        assert run.id is not None
        assert run.status == "pending"
        assert run.version_id == version.id

    def test_requires_test_cases(self, runner, repo, doc, version):
        empty = create_eval_set(repo, doc.id, "Empty")
        with pytest.raises(ValidationError, match="no test cases"):
            runner.create_run(empty, version)

    def test_version_of_other_document(self, runner, repo, eval_set):
        other = create_document(repo, "Other", "x")
        with pytest.raises(ValidationError, match="does not belong"):
            runner.create_run(eval_set, current_version(repo, other))


class TestExecute:
    """Lifecycle: pending -> running -> completed | failed"""

    def test_completed(self, runner, repo, client, eval_set, version):
        run = runner.create_run(eval_set, version)

        result = _execute(runner, run)

        assert result is run
        assert run.status == "completed"
        assert (run.total_count, run.passed_count, run.failed_count) == (2, 1, 1)
        assert run.success_rate == 50.0
        assert run.remote_run_id == "evalrun_1"
        assert run.remote_file_id == "file_123"
        assert run.report_url == "https://report/1"
        assert run.started_at is not None
        assert run.completed_at is not None
        assert repo.get_run(run.id).status == "completed"

    def test_remote_eval_is_created_once(self, runner, repo, client, eval_set, version):
        _execute(runner, runner.create_run(eval_set, version))
        _execute(runner, runner.create_run(eval_set, version))

        client.create_eval.assert_called_once()
        name, schema, criteria = client.create_eval.call_args.args
        assert name == "Translator - Smoke"
        assert schema["item_schema"]["required"] == ["text", "language", "expected_output"]
        assert criteria[0]["operation"] == "eq"
        assert repo.get_eval_set(eval_set.id).remote_eval_id == "eval_abc"
        assert client.upload_file.call_count == 2

    def test_existing_remote_eval_is_reused(self, runner, client, eval_set, version):
        eval_set.remote_eval_id = "eval_existing"
        _execute(runner, runner.create_run(eval_set, version))
        client.create_eval.assert_not_called()
        assert client.create_run.call_args.args[0] == "eval_existing"

    def test_uploaded_jsonl_and_cleanup(self, runner, client, eval_set, version, tmp_path):
        uploaded = {}

        def capture(path):
            with open(path, encoding="utf-8") as f:
                uploaded["lines"] = [json.loads(line) for line in f]
            uploaded["path"] = path
            return "file_123"

        client.upload_file.side_effect = capture
        _execute(runner, runner.create_run(eval_set, version))

        assert uploaded["lines"] == [
            {"item": {"text": "hello", "language": "Spanish", "expected_output": "hola"}},
            {"item": {"text": "bye", "language": "Spanish", "expected_output": "adiós"}},
        ]
        assert uploaded["path"].startswith(str(tmp_path))
        assert not os.path.exists(uploaded["path"])

    def test_message_template(self, runner, client, eval_set, version):
        _execute(runner, runner.create_run(eval_set, version))

        eval_id, name, model, template, file_id = client.create_run.call_args.args
        assert eval_id == "eval_abc"
        assert name.startswith("Run at ")
        assert model == "gpt-4o-mini"
        assert file_id == "file_123"
        assert template == [
            {"role": "system", "content": "You translate."},
            {"role": "user", "content": "Translate {{ item.text }} to {{ item.language }}"},
        ]

    def test_default_model(self, runner, repo, client):
        doc = create_document(repo, "Plain", "Echo {{text}}")
        eval_set = create_eval_set(repo, doc.id, "Smoke")
        add_test_case(repo, eval_set, {"text": "a"}, "a")

        _execute(runner, runner.create_run(eval_set, current_version(repo, doc)))

        _, _, model, template, _ = client.create_run.call_args.args
        assert model == "gpt-4"
        assert template[0] == {"role": "system", "content": ""}

    def test_upload_failure_fails_run_and_cleans_up(self, runner, repo, client, eval_set, version, tmp_path):
        client.upload_file.side_effect = APIError("upload rejected")
        run = runner.create_run(eval_set, version)

        with pytest.raises(APIError):
            _execute(runner, run)

        assert run.status == "failed"
        assert run.error_message == "upload rejected"
        client.create_run.assert_not_called()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("remote_status", ["failed", "canceled"])
    def test_remote_failure_fails_without_raising(self, runner, client, eval_set, version, remote_status):
        client.get_run.return_value = RemoteRun(id="evalrun_1", status=remote_status)
        run = runner.create_run(eval_set, version)

        _execute(runner, run)

        assert run.status == "failed"
        assert run.error_message == f"Eval run {remote_status}"

    def test_remote_error_message_is_kept(self, runner, client, eval_set, version):
        client.get_run.return_value = RemoteRun(id="evalrun_1", status="failed", error="model not found")
        run = runner.create_run(eval_set, version)
        _execute(runner, run)
        assert run.error_message == "model not found"

    def test_polls_until_completed(self, runner, client, eval_set, version):
        client.get_run.side_effect = [
            RemoteRun(id="evalrun_1", status="queued"),
            RemoteRun(id="evalrun_1", status="in_progress"),
            RemoteRun(id="evalrun_1", status="completed", result_counts={"total": 2, "passed": 2, "failed": 0}),
        ]
        run = runner.create_run(eval_set, version)

        with patch(SLEEP, new_callable=AsyncMock) as mock_sleep:
            _execute(runner, run)

        assert run.status == "completed"
        assert run.success_rate == 100.0
        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.01)

    def test_timeout(self, runner, client, eval_set, version):
        client.get_run.return_value = RemoteRun(id="evalrun_1", status="in_progress")
        run = runner.create_run(eval_set, version)

        with patch(SLEEP, new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(EvalTimeoutError):
                _execute(runner, run)

        assert client.get_run.call_count == 3
        # No sleep after the last attempt
        assert mock_sleep.await_count == 2
        assert run.status == "failed"
        assert run.error_message == "Timeout waiting for eval results"

    def test_cancellation_fails_run_and_cancels_remote(self, runner, client, eval_set, version):
        client.get_run.return_value = RemoteRun(id="evalrun_1", status="in_progress")
        run = runner.create_run(eval_set, version)

        with patch(SLEEP, new_callable=AsyncMock, side_effect=asyncio.CancelledError):
            with pytest.raises(asyncio.CancelledError):
                _execute(runner, run)

        assert run.status == "failed"
        assert run.error_message == "Eval run cancelled"
        client.cancel_run.assert_called_once_with("eval_abc", "evalrun_1")

    def test_remote_cancel_failure_is_tolerated(self, runner, client, eval_set, version):
        client.get_run.return_value = RemoteRun(id="evalrun_1", status="in_progress")
        client.cancel_run.side_effect = APIError("already finished")
        run = runner.create_run(eval_set, version)

        with patch(SLEEP, new_callable=AsyncMock, side_effect=asyncio.CancelledError):
            with pytest.raises(asyncio.CancelledError):
                _execute(runner, run)

        assert run.error_message == "Eval run cancelled"

    def test_run_must_be_pending(self, runner, client, eval_set, version):
        run = runner.create_run(eval_set, version)
        _execute(runner, run)

        with pytest.raises(InvalidTransitionError):
            _execute(runner, run)
        assert run.status == "completed"


class TestExecuteMany:
    def test_independent_runs(self, runner, repo, client, eval_set, version):
        client.get_run.side_effect = lambda eval_id, run_id: RemoteRun(
            id=run_id, status="completed", result_counts={"total": 2, "passed": 2, "failed": 0}
        )
        client.upload_file.side_effect = ["file_1", APIError("boom")]
        runs = [runner.create_run(eval_set, version), runner.create_run(eval_set, version)]

        results = asyncio.run(runner.execute_many(runs))

        assert len(results) == 2
        statuses = sorted(run.status for run in runs)
        assert statuses == ["completed", "failed"]
        assert sum(isinstance(r, APIError) for r in results) == 1
        client.create_eval.assert_called_once()


class TestRunEvaluation:
    def test_blocking_wrapper(self, repo, client, eval_set, version, config):
        run = run_evaluation(repo, client, eval_set, version, config)
        assert run.status == "completed"
        assert repo.runs_for(eval_set.id)[0] is run
