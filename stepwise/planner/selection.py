"""Choosing and formatting the functions advertised to the planner."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable

import tiktoken

from stepwise.functions.base import FunctionMetadata, FunctionProvider
from stepwise.utils.logging import get_logger

log = get_logger(__name__)

_WORD_RE = re.compile(r"[a-z0-9]+")


def format_function(fn: FunctionMetadata) -> str:
    if fn.parameters:
        params = "\n".join(
            f"    - {p.name} ({p.type}{'' if p.required else ', optional'}): {p.description}"
            for p in fn.parameters
        )
    else:
        params = "    (no parameters)"
    lines = [f"- {fn.name}: {fn.description}"]
    if fn.scenario:
        lines.append(f"  Use when: {fn.scenario}")
    lines.append("  Parameters:")
    lines.append(params)
    lines.append(f"  Returns: {fn.returns.type} - {fn.returns.description}")
    return "\n".join(lines)


def format_functions_for_prompt(functions: list[FunctionMetadata]) -> str:
    if not functions:
        return "No functions are currently available."
    return "\n\n".join(format_function(fn) for fn in functions)


class FunctionSelector(ABC):
    @abstractmethod
    async def select(
        self, user_request: str, provider: FunctionProvider
    ) -> list[FunctionMetadata]: ...


class AllFunctionsSelector(FunctionSelector):
    async def select(
        self, user_request: str, provider: FunctionProvider
    ) -> list[FunctionMetadata]:
        return await provider.list()


def _tiktoken_counter() -> Callable[[str], int]:
    encoding = tiktoken.get_encoding("cl100k_base")
    return lambda text: len(encoding.encode(text))


class TokenBudgetSelector(FunctionSelector):
    """Advertise the functions most relevant to the request that fit ``max_tokens``.

    Relevance is word overlap between the request and each function's name,
    description and scenario; ties keep registration order.
    """

    def __init__(
        self, max_tokens: int, count_tokens: Callable[[str], int] | None = None
    ) -> None:
        self._max_tokens = max_tokens
        self._count_tokens = count_tokens

    def _counter(self) -> Callable[[str], int]:
        if self._count_tokens is None:
            self._count_tokens = _tiktoken_counter()
        return self._count_tokens

    async def select(
        self, user_request: str, provider: FunctionProvider
    ) -> list[FunctionMetadata]:
        functions = await provider.list()
        words = set(_WORD_RE.findall(user_request.lower()))

        def score(fn: FunctionMetadata) -> int:
            text = f"{fn.name} {fn.description} {fn.scenario}".lower().replace("_", " ")
            return len(words & set(_WORD_RE.findall(text)))

        ranked = sorted(enumerate(functions), key=lambda item: (-score(item[1]), item[0]))
        count = self._counter()
        chosen: list[tuple[int, FunctionMetadata]] = []
        used = 0
        for index, fn in ranked:
            cost = count(format_function(fn))
            if used + cost > self._max_tokens:
                continue
            chosen.append((index, fn))
            used += cost

        if len(chosen) < len(functions):
            log.info(
                "functions_trimmed",
                advertised=len(chosen),
                available=len(functions),
                tokens=used,
                budget=self._max_tokens,
            )
        return [fn for _, fn in sorted(chosen, key=lambda item: item[0])]
