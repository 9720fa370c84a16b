"""Planner LLM clients."""

from __future__ import annotations

from stepwise.config import LLMConfig
from stepwise.llm.base import PlannerLLMClient


def create_planner_client(config: LLMConfig) -> PlannerLLMClient:
    if config.provider == "anthropic":
        from stepwise.llm.anthropic import AnthropicPlannerClient

        return AnthropicPlannerClient(config)
    if config.provider == "local":
        from stepwise.llm.local import LocalPlannerClient

        return LocalPlannerClient(config)
    if config.provider == "command":
        from stepwise.llm.cli import CommandPlannerClient

        return CommandPlannerClient(config)
    raise ValueError(f"Unknown LLM provider: {config.provider}")


__all__ = ["PlannerLLMClient", "create_planner_client"]
