"""Tests for planner LLM clients."""

import json
import sys

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from stepwise.config import LLMConfig
from stepwise.errors import LLMClientError
from stepwise.llm import create_planner_client
from stepwise.llm.anthropic import AnthropicPlannerClient
from stepwise.llm.cli import CommandPlannerClient
from stepwise.llm.local import LocalPlannerClient


class TestAnthropicClient:
    async def test_joins_text_blocks(self):
        response = MagicMock()
        response.content = [
            MagicMock(type="text", text='{"steps": '),
            MagicMock(type="tool_use", text="ignored"),
            MagicMock(type="text", text="[]}"),
        ]
        response.usage.input_tokens = 10
        response.usage.output_tokens = 5
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(return_value=response)

        client = AnthropicPlannerClient(LLMConfig(model="m"), client=sdk)
        assert await client.generate_plan("plan this") == '{"steps": []}'
        kwargs = sdk.messages.create.await_args.kwargs
        assert kwargs["model"] == "m"
        assert kwargs["messages"] == [{"role": "user", "content": "plan this"}]


class TestLocalClient:
    async def test_chat_completion(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "{}"}}]})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://llm/v1")
        client = LocalPlannerClient(LLMConfig(provider="local", model="llama3"), client=http)
        assert await client.generate_plan("hi") == "{}"
        assert seen["path"] == "/v1/chat/completions"
        assert seen["body"]["messages"][-1] == {"role": "user", "content": "hi"}
        await client.close()

    async def test_client_error_is_wrapped(self):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(401)), base_url="http://llm"
        )
        client = LocalPlannerClient(LLMConfig(provider="local"), client=http)
        with pytest.raises(LLMClientError, match="Local model request failed"):
            await client.generate_plan("hi")
        await client.close()

    async def test_malformed_response(self):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []})),
            base_url="http://llm",
        )
        client = LocalPlannerClient(LLMConfig(provider="local"), client=http)
        with pytest.raises(LLMClientError, match="Malformed"):
            await client.generate_plan("hi")
        await client.close()


class TestCommandClient:
    async def test_prompt_is_last_argument(self):
        config = LLMConfig(
            provider="command",
            command=sys.executable,
            args="-c 'import sys; print(sys.argv[-1].upper())'",
        )
        assert (await CommandPlannerClient(config).generate_plan("plan")).strip() == "PLAN"

    async def test_nonzero_exit(self):
        config = LLMConfig(provider="command", command=sys.executable, args="-c 'import sys; sys.exit(3)'")
        with pytest.raises(LLMClientError, match="exited with code 3"):
            await CommandPlannerClient(config).generate_plan("plan")

    async def test_timeout(self):
        config = LLMConfig(
            provider="command",
            command=sys.executable,
            args="-c 'import time; time.sleep(5)'",
            timeout=0.2,
        )
        with pytest.raises(LLMClientError, match="did not finish"):
            await CommandPlannerClient(config).generate_plan("plan")

    def test_command_required(self):
        with pytest.raises(LLMClientError):
            CommandPlannerClient(LLMConfig(provider="command"))


class TestFactory:
    def test_command_provider(self):
        client = create_planner_client(LLMConfig(provider="command", command="llm"))
        assert isinstance(client, CommandPlannerClient)

    def test_local_provider(self):
        assert isinstance(create_planner_client(LLMConfig(provider="local")), LocalPlannerClient)
