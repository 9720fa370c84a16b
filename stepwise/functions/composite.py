"""Composite provider: local functions first, then remote providers."""

from __future__ import annotations

from typing import Any

from stepwise.functions.base import FunctionMetadata, FunctionProvider, FunctionResult
from stepwise.utils.logging import get_logger

log = get_logger(__name__)


class CompositeFunctionProvider(FunctionProvider):
    """Dispatches to the first provider that knows a function.

    Providers are consulted in order, so a local function shadows a remote
    one with the same name.
    """

    def __init__(self, local: FunctionProvider, remotes: list[FunctionProvider] | None = None) -> None:
        self._providers: list[FunctionProvider] = [local, *(remotes or [])]

    @property
    def source(self) -> str:
        return "composite"

    async def list(self) -> list[FunctionMetadata]:
        seen: set[str] = set()
        merged: list[FunctionMetadata] = []
        for provider in self._providers:
            for meta in await provider.list():
                if meta.name in seen:
                    continue
                seen.add(meta.name)
                merged.append(meta)
        return merged

    async def get(self, name: str) -> FunctionMetadata | None:
        for provider in self._providers:
            meta = await provider.get(name)
            if meta is not None:
                return meta
        return None

    async def has(self, name: str) -> bool:
        for provider in self._providers:
            if await provider.has(name):
                return True
        return False

    async def execute(self, name: str, params: dict[str, Any]) -> FunctionResult:
        for provider in self._providers:
            if await provider.has(name):
                log.debug("function_dispatch", function=name, provider=provider.source)
                return await provider.execute(name, params)
        return FunctionResult(success=False, error=f"Function '{name}' not found")

    async def close(self) -> None:
        for provider in self._providers:
            try:
                await provider.close()
            except Exception:
                log.exception("provider_close_error", provider=provider.source)
