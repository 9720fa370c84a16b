"""Planner client that shells out to a command-line model runner."""

from __future__ import annotations

import asyncio
import shlex

from stepwise.config import LLMConfig
from stepwise.errors import LLMClientError
from stepwise.llm.base import PlannerLLMClient
from stepwise.utils.logging import get_logger

log = get_logger(__name__)


class CommandPlannerClient(PlannerLLMClient):
    """Runs ``command args... <prompt>`` and returns its stdout."""

    def __init__(self, config: LLMConfig) -> None:
        if not config.command:
            raise LLMClientError("llm.command must be set for the command provider")
        self._argv = [config.command, *shlex.split(config.args)]
        self._timeout = config.timeout

    async def generate_plan(self, prompt: str) -> str:
        log.debug("command_llm_spawn", command=self._argv[0])
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._argv,
                prompt,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LLMClientError(f"Failed to start {self._argv[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise LLMClientError(
                f"{self._argv[0]} did not finish within {self._timeout}s"
            ) from None

        if proc.returncode != 0:
            raise LLMClientError(
                f"{self._argv[0]} exited with code {proc.returncode}: "
                f"{stderr.decode(errors='replace').strip()}",
                returncode=proc.returncode,
            )
        return stdout.decode(errors="replace")
