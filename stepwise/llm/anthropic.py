"""Anthropic planner client."""

from __future__ import annotations

import asyncio
import random
from typing import Any

from anthropic import APIError, AsyncAnthropic, RateLimitError

from stepwise.config import LLMConfig
from stepwise.errors import LLMClientError
from stepwise.llm.base import PlannerLLMClient
from stepwise.utils.logging import get_logger

log = get_logger(__name__)


class AnthropicPlannerClient(PlannerLLMClient):
    def __init__(self, config: LLMConfig, client: AsyncAnthropic | None = None) -> None:
        self._config = config
        self._client = client or AsyncAnthropic(
            api_key=config.api_key or None,
            base_url=config.base_url or None,
            timeout=config.timeout,
        )

    async def generate_plan(self, prompt: str) -> str:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        try:
            response = await self._call_with_retry(kwargs)
        except APIError as e:
            raise LLMClientError(f"Anthropic request failed: {e}", model=self._config.model) from e

        text = "".join(block.text for block in response.content if block.type == "text")
        log.debug(
            "plan_generated",
            model=self._config.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return text

    async def close(self) -> None:
        await self._client.close()

    async def _call_with_retry(self, kwargs: dict[str, Any], max_retries: int = 3) -> Any:
        for attempt in range(max_retries + 1):
            try:
                return await self._client.messages.create(**kwargs)
            except RateLimitError:
                if attempt == max_retries:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("rate_limited", attempt=attempt, wait=wait)
                await asyncio.sleep(wait)
            except APIError as e:
                status = getattr(e, "status_code", None)
                if attempt == max_retries or status is None or status < 500:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("api_error_retry", status=status, attempt=attempt)
                await asyncio.sleep(wait)
