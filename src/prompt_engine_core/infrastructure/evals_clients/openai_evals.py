"""
OpenAI Evals grading client
"""

from __future__ import annotations

import logging
import os
from typing import Any

import openai
from openai import OpenAI

from prompt_engine_core.domain.errors import AuthenticationError
from prompt_engine_core.domain.value_objects import RemoteRun
from prompt_engine_core.engine_config import EvalsConfig
from prompt_engine_core.infrastructure.evals_clients.base import GradingClient
from prompt_engine_core.infrastructure.model_clients.base import RetryMixin
from prompt_engine_core.infrastructure.model_clients.openai_chat import (
    RETRYABLE_OPENAI_ERRORS,
    map_openai_error,
)

logger = logging.getLogger(__name__)


def to_remote_run(run: Any) -> RemoteRun:
    """Convert an SDK run object into a RemoteRun"""
    counts = getattr(run, "result_counts", None)
    error = getattr(run, "error", None)
    result_counts = {}
    if counts is not None:
        result_counts = {
            "total": getattr(counts, "total", 0) or 0,
            "passed": getattr(counts, "passed", 0) or 0,
            "failed": getattr(counts, "failed", 0) or 0,
        }
    return RemoteRun(
        id=run.id,
        status=run.status,
        report_url=getattr(run, "report_url", None),
        result_counts=result_counts,
        error=(getattr(error, "message", None) or None) if error is not None else None,
    )


class OpenAIEvalsClient(RetryMixin, GradingClient):
    """Grading client using the OpenAI Evals API"""

    def __init__(
        self,
        api_key: str | None = None,
        config: EvalsConfig | None = None,
    ):
        """
        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var if not specified)
            config: EvalsConfig (defaults if not provided)

        Raises:
            AuthenticationError: No API key available
        """
        config = config or EvalsConfig()
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.max_retries = config.max_retries

        if not self.api_key:
            raise AuthenticationError("OpenAI API key not configured")

        # SDK retries are disabled; RetryMixin owns the backoff
        self.client = OpenAI(
            api_key=self.api_key,
            base_url=config.base_url,
            timeout=config.request_timeout_seconds,
            max_retries=0,
        )

    def _request(self, fn):
        try:
            return self._with_retry(fn, retryable_exceptions=RETRYABLE_OPENAI_ERRORS)
        except openai.APIError as e:
            raise map_openai_error(e) from e

    def create_eval(self, name: str, schema: dict[str, Any], criteria: list[dict[str, Any]]) -> str:
        response = self._request(
            lambda: self.client.evals.create(
                name=name,
                data_source_config=schema,
                testing_criteria=criteria,
            )
        )
        logger.info("Created remote eval %s (%s)", response.id, name)
        return response.id

    def upload_file(self, path: str) -> str:
        def _upload():
            with open(path, "rb") as f:
                return self.client.files.create(file=f, purpose="evals")

        response = self._request(_upload)
        return response.id

    def create_run(
        self,
        eval_id: str,
        name: str,
        model: str,
        message_template: list[dict[str, str]],
        file_id: str,
    ) -> RemoteRun:
        data_source = {
            "type": "completions",
            "model": model,
            "input_messages": {
                "type": "template",
                "template": message_template,
            },
            "source": {"type": "file_id", "id": file_id},
        }
        response = self._request(
            lambda: self.client.evals.runs.create(eval_id, name=name, data_source=data_source)
        )
        return to_remote_run(response)

    def get_run(self, eval_id: str, run_id: str) -> RemoteRun:
        response = self._request(lambda: self.client.evals.runs.retrieve(run_id, eval_id=eval_id))
        return to_remote_run(response)

    def cancel_run(self, eval_id: str, run_id: str) -> RemoteRun | None:
        response = self._request(lambda: self.client.evals.runs.cancel(run_id, eval_id=eval_id))
        return to_remote_run(response)
