"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stepwise.utils.platform import get_config_dir, get_data_dir


class LLMConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Literal["anthropic", "local", "command"] = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: str = ""
    base_url: str = ""
    local_endpoint: str = "http://localhost:11434/v1"
    max_tokens: int = 4096
    temperature: float = 0.2
    # provider == "command": prompt is passed as the last argument
    command: str = ""
    args: str = ""
    timeout: float = 120.0


class ExecutorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    step_timeout: int = 30_000  # ms, 0 = no limit
    input_timeout: int = 0  # ms, 0 = wait indefinitely


class PlannerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_function_tokens: int = 0  # 0 = advertise every function


class CompletionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    max_iterations: int = 3
    # "package.module:factory"; factory(provider) returns a CompletionOrchestrator
    orchestrator: str = ""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STEPWISE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    data_dir: str = ""
    log_level: str = "INFO"
    log_json: bool = False

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return get_data_dir()

    @property
    def sessions_db_path(self) -> Path:
        return self.get_data_dir() / "sessions.db"


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("STEPWISE_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    # Init kwargs outrank env vars in pydantic-settings, so YAML wins on conflict
    return Settings(**yaml_data)
