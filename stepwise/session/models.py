"""Execution session records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal
from uuid import uuid4

from stepwise.executor.results import (
    ExecutionResult,
    PendingInput,
    StepResult,
    step_result_from_dict,
    step_result_to_dict,
)
from stepwise.planner.models import ExecutionPlan, parse_timestamp, utc_now

SessionStatus = Literal["pending", "running", "waiting_input", "completed", "failed"]
SESSION_STATUSES: tuple[str, ...] = ("pending", "running", "waiting_input", "completed", "failed")
Platform = Literal["cli", "web"]

CANCELLED_ERROR = "Session cancelled by user"


def new_session_id() -> str:
    return f"session-{uuid4().hex[:8]}"


@dataclass
class ExecutionSession:
    id: str
    plan_id: str
    plan: ExecutionPlan
    base_plan_id: str = ""
    plan_version: int | None = None
    status: SessionStatus = "pending"
    current_step_id: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    pending_input: PendingInput | None = None
    result: ExecutionResult | None = None
    parent_session_id: str | None = None
    retry_count: int = 0
    platform: Platform = "cli"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    version: int = 0

    @property
    def is_cancelled(self) -> bool:
        return (
            self.status == "failed"
            and self.result is not None
            and self.result.error == CANCELLED_ERROR
        )

    @property
    def error(self) -> str | None:
        return self.result.error if self.result is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "planId": self.plan_id,
            "basePlanId": self.base_plan_id,
            "planVersion": self.plan_version,
            "plan": self.plan.to_dict(),
            "status": self.status,
            "currentStepId": self.current_step_id,
            "stepResults": [step_result_to_dict(r) for r in self.step_results],
            "context": self.context,
            "pendingInput": self.pending_input.to_dict() if self.pending_input else None,
            "result": self.result.to_dict() if self.result else None,
            "parentSessionId": self.parent_session_id,
            "retryCount": self.retry_count,
            "platform": self.platform,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionSession:
        pending = data.get("pendingInput")
        result = data.get("result")
        completed_at = data.get("completedAt")
        return cls(
            id=data["id"],
            plan_id=data["planId"],
            base_plan_id=data.get("basePlanId", ""),
            plan_version=data.get("planVersion"),
            plan=ExecutionPlan.from_dict(data["plan"]),
            status=data.get("status", "pending"),
            current_step_id=data.get("currentStepId", 0),
            step_results=[step_result_from_dict(r) for r in data.get("stepResults") or []],
            context=data.get("context") or {},
            pending_input=PendingInput.from_dict(pending) if pending else None,
            result=ExecutionResult.from_dict(result) if result else None,
            parent_session_id=data.get("parentSessionId"),
            retry_count=data.get("retryCount", 0),
            platform=data.get("platform", "cli"),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            completed_at=parse_timestamp(completed_at) if completed_at else None,
            version=data.get("version", 0),
        )


@dataclass
class SessionStatusInfo:
    """Read-only progress summary of a session."""

    session_id: str
    status: SessionStatus
    current_step_id: int
    completed_steps: int
    total_steps: int
    pending_input: PendingInput | None = None
    error: str | None = None
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_session(cls, session: ExecutionSession) -> SessionStatusInfo:
        return cls(
            session_id=session.id,
            status=session.status,
            current_step_id=session.current_step_id,
            completed_steps=sum(1 for r in session.step_results if r.success),
            total_steps=len(session.plan.steps),
            pending_input=session.pending_input,
            error=session.error,
            updated_at=session.updated_at,
        )
