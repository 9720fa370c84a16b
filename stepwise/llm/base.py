"""Planner LLM client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class PlannerLLMClient(ABC):
    """Turns a fully rendered planning prompt into the model's raw text."""

    @abstractmethod
    async def generate_plan(self, prompt: str) -> str: ...

    async def close(self) -> None:
        """Clean up resources. Override if needed."""
