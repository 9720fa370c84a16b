"""OpenAI-compatible planner client (ollama, llama.cpp, vllm, etc.)."""

from __future__ import annotations

import asyncio
import random
from typing import Any

import httpx

from stepwise.config import LLMConfig
from stepwise.errors import LLMClientError
from stepwise.llm.base import PlannerLLMClient
from stepwise.utils.logging import get_logger

log = get_logger(__name__)

_SYSTEM_PROMPT = "You are a planning engine. Reply with a single JSON object and nothing else."


class LocalPlannerClient(PlannerLLMClient):
    def __init__(self, config: LLMConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        endpoint = (config.base_url or config.local_endpoint).rstrip("/")
        headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else None
        self._client = client or httpx.AsyncClient(
            timeout=config.timeout, base_url=endpoint, headers=headers
        )

    async def generate_plan(self, prompt: str) -> str:
        body: dict[str, Any] = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        try:
            resp = await self._post_with_retry("/chat/completions", body)
        except httpx.HTTPError as e:
            raise LLMClientError(f"Local model request failed: {e}", model=self._config.model) from e

        data = resp.json()
        try:
            content = data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError) as e:
            raise LLMClientError("Malformed chat completion response", model=self._config.model) from e
        usage = data.get("usage", {})
        log.debug(
            "plan_generated",
            model=self._config.model,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )
        return content

    async def close(self) -> None:
        await self._client.aclose()

    async def _post_with_retry(
        self, path: str, body: dict[str, Any], max_retries: int = 2
    ) -> httpx.Response:
        for attempt in range(max_retries + 1):
            try:
                resp = await self._client.post(path, json=body)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                if attempt == max_retries or e.response.status_code < 500:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("local_llm_retry", status=e.response.status_code, attempt=attempt)
                await asyncio.sleep(wait)
            except httpx.ConnectError:
                if attempt == max_retries:
                    raise
                wait = (2 ** attempt) + random.uniform(0, 1)
                log.warning("local_llm_connect_retry", attempt=attempt)
                await asyncio.sleep(wait)
        raise RuntimeError("Unreachable")
