"""
Grading client base class

Defines the remote grading service operations the evaluation orchestrator
consumes. Implementations raise the engine's APIError hierarchy, never
provider-specific exceptions.
"""

from abc import ABC, abstractmethod
from typing import Any

from prompt_engine_core.domain.value_objects import RemoteRun


class GradingClient(ABC):
    """Abstract base class for remote grading clients"""

    @abstractmethod
    def create_eval(self, name: str, schema: dict[str, Any], criteria: list[dict[str, Any]]) -> str:
        """Create a remote grading configuration and return its id"""
        pass

    @abstractmethod
    def upload_file(self, path: str) -> str:
        """Upload a JSONL data file and return its id"""
        pass

    @abstractmethod
    def create_run(
        self,
        eval_id: str,
        name: str,
        model: str,
        message_template: list[dict[str, str]],
        file_id: str,
    ) -> RemoteRun:
        """Start a remote run over the uploaded file"""
        pass

    @abstractmethod
    def get_run(self, eval_id: str, run_id: str) -> RemoteRun:
        """Fetch the current state of a remote run"""
        pass

    def cancel_run(self, eval_id: str, run_id: str) -> RemoteRun | None:
        """Ask the service to stop a remote run (optional)"""
        return None
