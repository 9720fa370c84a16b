"""Planner data models and their JSON wire form."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union, assert_never

from stepwise.functions.base import ParameterDef, ReturnDef
from stepwise.inputs.schema import FormSchema

PlanStatus = Literal["executable", "incomplete"]
PLAN_STATUSES: tuple[str, ...] = ("executable", "incomplete")

ParameterKind = Literal["literal", "reference", "composite"]

_VERSIONED_ID_RE = re.compile(r"^(?P<base>.+)-v(?P<version>\d+)$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime | None) -> datetime:
    if value is None:
        return utc_now()
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def split_plan_id(plan_id: str) -> tuple[str, int | None]:
    """Split ``plan-abc-v2`` into ``("plan-abc", 2)``."""
    m = _VERSIONED_ID_RE.match(plan_id)
    if not m:
        return plan_id, None
    return m.group("base"), int(m.group("version"))


@dataclass
class ParameterValue:
    kind: ParameterKind
    value: Any

    @classmethod
    def literal(cls, value: Any) -> ParameterValue:
        return cls(kind="literal", value=value)

    @classmethod
    def reference(cls, path: str) -> ParameterValue:
        return cls(kind="reference", value=path)

    @classmethod
    def composite(cls, members: dict[str, ParameterValue]) -> ParameterValue:
        return cls(kind="composite", value=members)

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "composite":
            return {"type": "composite", "value": {k: v.to_dict() for k, v in self.value.items()}}
        return {"type": self.kind, "value": self.value}

    @classmethod
    def from_dict(cls, data: Any) -> ParameterValue:
        # Bare values from sloppy model output are treated as literals
        if not isinstance(data, dict) or ("type" not in data and "kind" not in data):
            return cls.literal(data)
        kind = data.get("type", data.get("kind"))
        if kind == "composite":
            members = data.get("value") or {}
            if not isinstance(members, dict):
                raise ValueError("composite parameter value must be an object")
            return cls.composite({k: cls.from_dict(v) for k, v in members.items()})
        if kind not in ("literal", "reference"):
            raise ValueError(f"unknown parameter type: {kind!r}")
        return cls(kind=kind, value=data.get("value"))


@dataclass
class FunctionCallStep:
    step_id: int
    function_name: str
    parameters: dict[str, ParameterValue] = field(default_factory=dict)
    description: str = ""
    depends_on: list[int] | None = None

    type = "function_call"


@dataclass
class UserInputStep:
    step_id: int
    schema: FormSchema
    description: str = ""
    output_name: str | None = None

    type = "user_input"


@dataclass
class ConditionalStep:
    step_id: int
    condition: str
    on_true: list[int] = field(default_factory=list)
    on_false: list[int] = field(default_factory=list)
    description: str = ""
    output_variable: str | None = None

    type = "condition"


PlanStep = Union[FunctionCallStep, UserInputStep, ConditionalStep]


def step_to_dict(step: PlanStep) -> dict[str, Any]:
    data: dict[str, Any] = {
        "stepId": step.step_id,
        "type": step.type,
        "description": step.description,
    }
    if isinstance(step, FunctionCallStep):
        data["functionName"] = step.function_name
        data["parameters"] = {k: v.to_dict() for k, v in step.parameters.items()}
        if step.depends_on:
            data["dependsOn"] = list(step.depends_on)
    elif isinstance(step, UserInputStep):
        data["schema"] = step.schema.to_dict()
        if step.output_name:
            data["outputName"] = step.output_name
    elif isinstance(step, ConditionalStep):
        data["condition"] = step.condition
        data["onTrue"] = list(step.on_true)
        data["onFalse"] = list(step.on_false)
        if step.output_variable:
            data["outputVariable"] = step.output_variable
    else:
        assert_never(step)
    return data


def step_from_dict(data: dict[str, Any]) -> PlanStep:
    """Build a typed step from its wire form.

    Raises ``KeyError``/``ValueError``/``TypeError`` on structural defects;
    callers translate these into their own error types.
    """
    step_type = data.get("type")
    if step_type is None and "functionName" in data:
        step_type = "function_call"
    step_id = data["stepId"]
    if isinstance(step_id, bool) or not isinstance(step_id, int):
        raise ValueError(f"stepId must be an integer, got {step_id!r}")
    description = data.get("description") or ""

    if step_type == "function_call":
        raw_params = data["parameters"]
        if not isinstance(raw_params, dict):
            raise ValueError(f"step {step_id}: parameters must be an object")
        depends_on = data.get("dependsOn")
        return FunctionCallStep(
            step_id=step_id,
            function_name=data["functionName"],
            parameters={k: ParameterValue.from_dict(v) for k, v in raw_params.items()},
            description=description,
            depends_on=[int(d) for d in depends_on] if depends_on else None,
        )
    if step_type == "user_input":
        return UserInputStep(
            step_id=step_id,
            schema=FormSchema.from_dict(data["schema"]),
            description=description,
            output_name=data.get("outputName"),
        )
    if step_type == "condition":
        return ConditionalStep(
            step_id=step_id,
            condition=data["condition"],
            on_true=[int(s) for s in data.get("onTrue") or []],
            on_false=[int(s) for s in data.get("onFalse") or []],
            description=description,
            output_variable=data.get("outputVariable"),
        )
    raise ValueError(f"step {step_id}: unknown step type {step_type!r}")


@dataclass
class MissingFunction:
    name: str
    description: str = ""
    suggested_parameters: list[ParameterDef] = field(default_factory=list)
    suggested_returns: ReturnDef = field(default_factory=ReturnDef)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "suggestedParameters": [p.to_dict() for p in self.suggested_parameters],
            "suggestedReturns": self.suggested_returns.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MissingFunction:
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            suggested_parameters=[ParameterDef.from_dict(p) for p in data.get("suggestedParameters") or []],
            suggested_returns=ReturnDef.from_dict(data.get("suggestedReturns")),
        )


@dataclass
class MockFunctionReference:
    name: str
    version: int = 1
    file_path: str = ""
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "filePath": self.file_path,
            "generatedAt": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MockFunctionReference:
        return cls(
            name=data["name"],
            version=data.get("version", 1),
            file_path=data.get("filePath", ""),
            generated_at=parse_timestamp(data.get("generatedAt")),
        )


@dataclass
class PlanMetadata:
    uses_mocks: bool = False
    mock_functions: list[MockFunctionReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "usesMocks": self.uses_mocks,
            "mockFunctions": [m.to_dict() for m in self.mock_functions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanMetadata:
        return cls(
            uses_mocks=bool(data.get("usesMocks", False)),
            mock_functions=[MockFunctionReference.from_dict(m) for m in data.get("mockFunctions") or []],
        )


@dataclass
class ExecutionPlan:
    id: str
    user_request: str
    steps: list[PlanStep]
    status: PlanStatus = "executable"
    missing_functions: list[MissingFunction] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    metadata: PlanMetadata | None = None

    def get_step(self, step_id: int) -> PlanStep | None:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "userRequest": self.user_request,
            "steps": [step_to_dict(s) for s in self.steps],
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
        }
        if self.missing_functions:
            data["missingFunctions"] = [m.to_dict() for m in self.missing_functions]
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionPlan:
        return cls(
            id=data["id"],
            user_request=data["userRequest"],
            steps=[step_from_dict(s) for s in data.get("steps") or []],
            status=data.get("status", "executable"),
            missing_functions=[MissingFunction.from_dict(m) for m in data.get("missingFunctions") or []],
            created_at=parse_timestamp(data.get("createdAt")),
            metadata=PlanMetadata.from_dict(data["metadata"]) if data.get("metadata") else None,
        )


@dataclass
class PlanResult:
    success: bool
    plan: ExecutionPlan | None = None
    error: str | None = None
    completion_errors: list[Any] = field(default_factory=list)
