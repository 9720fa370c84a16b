"""Function provider interface and metadata."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ParameterDef:
    name: str
    type: str = "any"
    description: str = ""
    required: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "required": self.required,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterDef:
        return cls(
            name=data["name"],
            type=data.get("type", "any"),
            description=data.get("description", ""),
            required=data.get("required", True),
        )


@dataclass
class ReturnDef:
    type: str = "any"
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ReturnDef:
        data = data or {}
        return cls(type=data.get("type", "any"), description=data.get("description", ""))


@dataclass
class FunctionMetadata:
    name: str
    description: str = ""
    parameters: list[ParameterDef] = field(default_factory=list)
    returns: ReturnDef = field(default_factory=ReturnDef)
    scenario: str = ""
    source: str = "local"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "scenario": self.scenario,
            "parameters": [p.to_dict() for p in self.parameters],
            "returns": self.returns.to_dict(),
            "source": self.source,
        }


@dataclass
class FunctionResult:
    success: bool
    result: Any = None
    error: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


class FunctionProvider(ABC):
    """Source of callable functions for planning and execution.

    Implementations must answer from their live registry on every call:
    functions registered between two calls (e.g. by a completion
    orchestrator) have to be visible to the next ``has``/``execute``.
    """

    @property
    @abstractmethod
    def source(self) -> str: ...

    @abstractmethod
    async def list(self) -> list[FunctionMetadata]: ...

    @abstractmethod
    async def get(self, name: str) -> FunctionMetadata | None: ...

    async def has(self, name: str) -> bool:
        return await self.get(name) is not None

    @abstractmethod
    async def execute(self, name: str, params: dict[str, Any]) -> FunctionResult: ...

    async def close(self) -> None:
        """Release provider resources. Override if needed."""
