"""Structural and semantic checks for generated plans."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import assert_never

from stepwise.errors import PlanValidationError
from stepwise.planner.models import (
    PLAN_STATUSES,
    ConditionalStep,
    ExecutionPlan,
    FunctionCallStep,
    ParameterValue,
    UserInputStep,
)

REFERENCE_RE = re.compile(r"^step\.(\d+)\.(.+)$")
# Matches step tokens embedded in a condition expression
CONDITION_REF_RE = re.compile(r"\bstep\.(\d+)\b")


def iter_references(
    parameters: dict[str, ParameterValue], prefix: str = ""
) -> Iterator[tuple[str, str]]:
    """Yield ``(parameter_path, reference)`` for every reference, composites included."""
    for name, param in parameters.items():
        path = f"{prefix}{name}"
        if param.kind == "reference":
            yield path, param.value
        elif param.kind == "composite":
            yield from iter_references(param.value, prefix=f"{path}.")


def validate_plan(plan: ExecutionPlan) -> None:
    """Raise :class:`PlanValidationError` on the first defect found.

    Ids must be positive, unique and strictly increasing in list order. Every
    reference and dependency must point at an existing, earlier step; every
    branch target must point at an existing, later step.
    """
    if not plan.id:
        raise PlanValidationError("Plan ID is required")
    if not plan.user_request:
        raise PlanValidationError("User request is required", plan_id=plan.id)
    if plan.status not in PLAN_STATUSES:
        raise PlanValidationError(f"Invalid plan status: {plan.status}", plan_id=plan.id)
    if not plan.steps:
        raise PlanValidationError("Plan must have at least one step", plan_id=plan.id)

    step_ids: set[int] = set()
    previous = 0
    for step in plan.steps:
        sid = step.step_id
        if isinstance(sid, bool) or not isinstance(sid, int) or sid < 1:
            raise PlanValidationError(f"Invalid step ID: {sid!r}", plan_id=plan.id)
        if sid in step_ids:
            raise PlanValidationError(f"Duplicate step ID: {sid}", plan_id=plan.id, step_id=sid)
        if sid <= previous:
            raise PlanValidationError(
                f"Step IDs must be in increasing order: {sid} follows {previous}",
                plan_id=plan.id,
                step_id=sid,
            )
        step_ids.add(sid)
        previous = sid

    for step in plan.steps:
        _validate_step(plan, step, step_ids)


def _validate_step(
    plan: ExecutionPlan,
    step: FunctionCallStep | UserInputStep | ConditionalStep,
    step_ids: set[int],
) -> None:
    sid = step.step_id
    if isinstance(step, FunctionCallStep):
        if not step.function_name:
            raise PlanValidationError(f"Step {sid}: functionName is required", step_id=sid)
        if not isinstance(step.parameters, dict):
            raise PlanValidationError(f"Step {sid}: parameters must be an object", step_id=sid)
        for param_name, reference in iter_references(step.parameters):
            _check_reference(sid, param_name, reference, step_ids)
        for dep in step.depends_on or []:
            if dep not in step_ids:
                raise PlanValidationError(
                    f"Step {sid} depends on non-existent step {dep}", step_id=sid
                )
            if dep >= sid:
                raise PlanValidationError(
                    f"Step {sid} cannot depend on step {dep} (must be an earlier step)",
                    step_id=sid,
                )
    elif isinstance(step, UserInputStep):
        if step.schema is None or not step.schema.fields:
            raise PlanValidationError(
                f"Step {sid}: user input schema must have at least one field", step_id=sid
            )
    elif isinstance(step, ConditionalStep):
        if not step.condition or not step.condition.strip():
            raise PlanValidationError(f"Step {sid}: condition is required", step_id=sid)
        for match in CONDITION_REF_RE.finditer(step.condition):
            target = int(match.group(1))
            if target not in step_ids or target >= sid:
                raise PlanValidationError(
                    f"Step {sid}: condition references step {target}, "
                    "which must be an existing earlier step",
                    step_id=sid,
                )
        for branch in (step.on_true, step.on_false):
            for target in branch:
                if target not in step_ids:
                    raise PlanValidationError(
                        f"Step {sid}: branch target {target} does not exist", step_id=sid
                    )
                if target <= sid:
                    raise PlanValidationError(
                        f"Step {sid}: branch target {target} must come after the condition",
                        step_id=sid,
                    )
    else:
        assert_never(step)


def _check_reference(sid: int, param_name: str, reference: object, step_ids: set[int]) -> None:
    if not isinstance(reference, str):
        raise PlanValidationError(
            f"Step {sid}: reference for '{param_name}' must be a string", step_id=sid
        )
    m = REFERENCE_RE.match(reference)
    if not m:
        raise PlanValidationError(
            f"Step {sid}: invalid reference format '{reference}' for parameter '{param_name}'",
            step_id=sid,
        )
    target = int(m.group(1))
    if target not in step_ids:
        raise PlanValidationError(
            f"Step {sid} references non-existent step {target}", step_id=sid
        )
    if target >= sid:
        raise PlanValidationError(
            f"Step {sid} cannot reference step {target} (must reference an earlier step)",
            step_id=sid,
        )
