"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class SandboxConfig(BaseModel):
    """Sandbox backend configuration."""

    backend: str = "memory"  # memory | local | e2b | daytona
    api_key: str | None = None
    api_url: str | None = None
    template: str = "base"  # For e2b
    image: str = "opencode-agent"  # For daytona
    agent_port: int = 8080
    env: dict[str, str] = Field(default_factory=dict)
    request_timeout_seconds: float = 30.0
    destroy_on_shutdown: bool = False


class ReaperConfig(BaseModel):
    """Idle reaper thresholds."""

    interval_seconds: float = 60.0
    idle_seconds: float = 30 * 60.0
    destroy_seconds: float = 2 * 60 * 60.0
    failed_retention_seconds: float = 300.0


class AgentConfig(BaseModel):
    """Agent invocation settings."""

    provider: str = "http"  # http | claude | mock
    path: str = "/agent/stream"  # For http
    url_template: str = "{ref}"  # Agent base URL; {ref} and {port} are substituted
    dialect: str = "ai-sdk"  # ai-sdk | opencode | claude
    model: str | None = None
    system_prompt: str | None = None
    allowed_tools: list[str] | None = None
    max_turns: int | None = None


class RetryConfig(BaseModel):
    """Caller-side retry policy for session resolution."""

    attempts: int = 3
    backoff_seconds: float = 0.5


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json | text


class Config(BaseModel):
    """Main configuration for boltbox."""

    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    reaper: ReaperConfig = Field(default_factory=ReaperConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def check_thresholds(self) -> "Config":
        """Reap thresholds must be ordered: timeout < idle < destroy."""
        if self.reaper.idle_seconds <= self.sandbox.request_timeout_seconds:
            raise ValueError(
                "reaper.idle_seconds must exceed sandbox.request_timeout_seconds"
            )
        if self.reaper.destroy_seconds <= self.reaper.idle_seconds:
            raise ValueError("reaper.destroy_seconds must exceed reaper.idle_seconds")
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        # Substitute environment variables
        data = substitute_env_vars(data or {})
        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        return cls.model_validate(data)
