"""Per-step and whole-run execution results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Union

from stepwise.inputs.schema import FormSchema
from stepwise.planner.models import parse_timestamp, utc_now

BranchTaken = Literal["on_true", "on_false", "none"]


@dataclass
class FunctionCallResult:
    step_id: int
    success: bool
    function_name: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    executed_at: datetime = field(default_factory=utc_now)

    type = "function_call"

    @property
    def output(self) -> Any:
        return self.result


@dataclass
class UserInputResult:
    step_id: int
    success: bool
    values: dict[str, Any] = field(default_factory=dict)
    skipped: bool = False
    error: str | None = None
    executed_at: datetime = field(default_factory=utc_now)

    type = "user_input"

    @property
    def output(self) -> Any:
        return self.values


@dataclass
class ConditionalResult:
    step_id: int
    success: bool
    condition: str = ""
    evaluated_result: bool = False
    executed_branch: BranchTaken = "none"
    skipped_steps: list[int] = field(default_factory=list)
    error: str | None = None
    executed_at: datetime = field(default_factory=utc_now)

    type = "condition"

    @property
    def output(self) -> Any:
        return self.evaluated_result


StepResult = Union[FunctionCallResult, UserInputResult, ConditionalResult]


def step_result_to_dict(result: StepResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "stepId": result.step_id,
        "type": result.type,
        "success": result.success,
        "executedAt": result.executed_at.isoformat(),
    }
    if result.error is not None:
        data["error"] = result.error
    if isinstance(result, FunctionCallResult):
        data.update(functionName=result.function_name, parameters=result.parameters, result=result.result)
    elif isinstance(result, UserInputResult):
        data.update(values=result.values, skipped=result.skipped)
    else:
        data.update(
            condition=result.condition,
            evaluatedResult=result.evaluated_result,
            executedBranch=result.executed_branch,
            skippedSteps=list(result.skipped_steps),
        )
    return data


def step_result_from_dict(data: dict[str, Any]) -> StepResult:
    common = {
        "step_id": data["stepId"],
        "success": data["success"],
        "error": data.get("error"),
        "executed_at": parse_timestamp(data.get("executedAt")),
    }
    kind = data.get("type", "function_call")
    if kind == "user_input":
        return UserInputResult(values=data.get("values") or {}, skipped=data.get("skipped", False), **common)
    if kind == "condition":
        return ConditionalResult(
            condition=data.get("condition", ""),
            evaluated_result=data.get("evaluatedResult", False),
            executed_branch=data.get("executedBranch", "none"),
            skipped_steps=list(data.get("skippedSteps") or []),
            **common,
        )
    return FunctionCallResult(
        function_name=data.get("functionName", ""),
        parameters=data.get("parameters") or {},
        result=data.get("result"),
        **common,
    )


@dataclass
class PendingInput:
    step_id: int
    schema: FormSchema

    def to_dict(self) -> dict[str, Any]:
        return {"stepId": self.step_id, "schema": self.schema.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingInput:
        return cls(step_id=data["stepId"], schema=FormSchema.from_dict(data["schema"]))


@dataclass
class ExecutionResult:
    plan_id: str
    steps: list[StepResult] = field(default_factory=list)
    final_result: Any = None
    success: bool = False
    error: str | None = None
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime = field(default_factory=utc_now)
    waiting_for_input: PendingInput | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "planId": self.plan_id,
            "steps": [step_result_to_dict(s) for s in self.steps],
            "finalResult": self.final_result,
            "success": self.success,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat(),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.waiting_for_input is not None:
            data["waitingForInput"] = self.waiting_for_input.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionResult:
        waiting = data.get("waitingForInput")
        return cls(
            plan_id=data["planId"],
            steps=[step_result_from_dict(s) for s in data.get("steps") or []],
            final_result=data.get("finalResult"),
            success=data.get("success", False),
            error=data.get("error"),
            started_at=parse_timestamp(data.get("startedAt")),
            completed_at=parse_timestamp(data.get("completedAt")),
            waiting_for_input=PendingInput.from_dict(waiting) if waiting else None,
        )
