"""
Prompt Engine Configuration

Manages loading from environment variables and default values.
Credentials are never stored here; they are passed to the clients explicitly.
"""

import os
from dataclasses import dataclass, field, asdict


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_str(key: str, default: str | None) -> str | None:
    """Get an environment variable as a string"""
    return os.environ.get(key, default)


@dataclass
class EvalsConfig:
    """Remote grading service configuration"""
    poll_interval_seconds: float = 5.0
    max_poll_attempts: int = 60
    base_url: str = "https://api.openai.com/v1"
    request_timeout_seconds: int = 30
    max_retries: int = 3
    default_model: str = "gpt-4"
    tmp_dir: str | None = None  # None -> system temp dir


@dataclass
class PlaygroundConfig:
    """Default models for playground execution"""
    openai_model: str = "gpt-4o"
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1024


@dataclass
class WorkflowConfig:
    """Workflow chaining configuration"""
    document_status: str = "active"  # status used to resolve step slugs


@dataclass
class EngineConfig:
    """Overall prompt engine configuration"""
    evals: EvalsConfig = field(default_factory=EvalsConfig)
    playground: PlaygroundConfig = field(default_factory=PlaygroundConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary format"""
        return {"engine_config": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        """Create from dictionary (handles presence/absence of engine_config key)"""
        config_data = data.get("engine_config", data)
        return cls(
            evals=EvalsConfig(**config_data.get("evals", {})),
            playground=PlaygroundConfig(**config_data.get("playground", {})),
            workflow=WorkflowConfig(**config_data.get("workflow", {})),
        )


def load_config() -> EngineConfig:
    """
    Load configuration from environment variables

    Uses default values when environment variables are not set.

    Returns:
        EngineConfig
    """
    evals = EvalsConfig(
        poll_interval_seconds=_env_float("PROMPT_ENGINE_POLL_INTERVAL_SECONDS", 5.0),
        max_poll_attempts=_env_int("PROMPT_ENGINE_MAX_POLL_ATTEMPTS", 60),
        base_url=_env_str("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        request_timeout_seconds=_env_int("PROMPT_ENGINE_REQUEST_TIMEOUT_SECONDS", 30),
        max_retries=_env_int("PROMPT_ENGINE_MAX_RETRIES", 3),
        default_model=_env_str("PROMPT_ENGINE_DEFAULT_MODEL", "gpt-4"),
        tmp_dir=_env_str("PROMPT_ENGINE_TMP_DIR", None),
    )
    playground = PlaygroundConfig(
        openai_model=_env_str("PROMPT_ENGINE_OPENAI_MODEL", "gpt-4o"),
        anthropic_model=_env_str("PROMPT_ENGINE_ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022"),
        max_tokens=_env_int("PROMPT_ENGINE_MAX_TOKENS", 1024),
    )
    workflow = WorkflowConfig(
        document_status=_env_str("PROMPT_ENGINE_WORKFLOW_STATUS", "active"),
    )
    return EngineConfig(evals=evals, playground=playground, workflow=workflow)


def mask_api_key(api_key: str | None) -> str | None:
    """Display form of a key: first 3 and last 3 characters"""
    if not api_key or not api_key.strip():
        return None
    if len(api_key) <= 6:
        return "*****"
    return f"{api_key[:3]}...{api_key[-3:]}"
