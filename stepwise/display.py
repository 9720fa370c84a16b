"""Plain-text rendering of plans, results and sessions for the CLI."""

from __future__ import annotations

import json
from typing import Any, assert_never

from stepwise.executor.results import (
    ConditionalResult,
    ExecutionResult,
    FunctionCallResult,
    StepResult,
    UserInputResult,
)
from stepwise.planner.models import (
    ConditionalStep,
    ExecutionPlan,
    FunctionCallStep,
    ParameterValue,
    UserInputStep,
)
from stepwise.session.models import ExecutionSession


def _short(value: Any, limit: int = 80) -> str:
    text = json.dumps(value, default=str, ensure_ascii=False)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def format_parameter(param: ParameterValue) -> str:
    if param.kind == "reference":
        return f"${{{param.value}}}"
    if param.kind == "composite":
        inner = ", ".join(f"{k}={format_parameter(v)}" for k, v in param.value.items())
        return f"{{{inner}}}"
    return _short(param.value)


def format_plan(plan: ExecutionPlan) -> str:
    status = "executable" if plan.status == "executable" else "INCOMPLETE"
    lines = [f"Plan {plan.id}", f"Request: {plan.user_request}", f"Status: {status}"]
    if plan.metadata and plan.metadata.uses_mocks:
        names = ", ".join(f"{m.name} v{m.version}" for m in plan.metadata.mock_functions)
        lines.append(f"Generated functions: {names}")
    lines.append("")

    if plan.steps:
        lines.append("Steps:")
    for step in plan.steps:
        if isinstance(step, FunctionCallStep):
            params = ", ".join(f"{k}={format_parameter(v)}" for k, v in step.parameters.items())
            lines.append(f"  Step {step.step_id}: {step.function_name}({params})")
        elif isinstance(step, UserInputStep):
            fields = ", ".join(f.label or f.id for f in step.schema.fields)
            lines.append(f"  Step {step.step_id}: [user input] {fields}")
        elif isinstance(step, ConditionalStep):
            lines.append(
                f"  Step {step.step_id}: [if] {step.condition} "
                f"then {step.on_true or '-'} else {step.on_false or '-'}"
            )
        else:
            assert_never(step)
        if step.description:
            lines.append(f"    -> {step.description}")

    if plan.missing_functions:
        lines.append("")
        lines.append("Missing functions:")
        for fn in plan.missing_functions:
            params = ", ".join(f"{p.name}: {p.type}" for p in fn.suggested_parameters)
            lines.append(f"  - {fn.name}({params}) -> {fn.suggested_returns.type}")
            if fn.description:
                lines.append(f"    {fn.description}")
    return "\n".join(lines)


def format_step_result(result: StepResult) -> str:
    mark = "ok" if result.success else "FAILED"
    if isinstance(result, FunctionCallResult):
        body = f"{result.function_name} = {_short(result.result)}" if result.success else result.function_name
    elif isinstance(result, UserInputResult):
        body = "input skipped" if result.skipped else f"input {_short(result.values)}"
    elif isinstance(result, ConditionalResult):
        body = f"{result.condition} -> {result.evaluated_result} ({result.executed_branch})"
    else:
        assert_never(result)
    line = f"  [{mark}] Step {result.step_id}: {body}"
    if result.error:
        line += f"\n         {result.error}"
    return line


def format_result(result: ExecutionResult) -> str:
    lines = [format_step_result(r) for r in result.steps]
    if result.waiting_for_input is not None:
        lines.append(f"Waiting for input at step {result.waiting_for_input.step_id}")
    elif result.success:
        lines.append(f"Result: {_short(result.final_result, limit=400)}")
    else:
        lines.append(f"Failed: {result.error}")
    elapsed = (result.completed_at - result.started_at).total_seconds()
    lines.append(f"({len(result.steps)} step(s), {elapsed:.2f}s)")
    return "\n".join(lines)


def format_session(session: ExecutionSession) -> str:
    lines = [
        f"Session {session.id} [{session.status}]",
        f"Plan: {session.plan_id}" + (f" (v{session.plan_version})" if session.plan_version else ""),
        f"Current step: {session.current_step_id} of {len(session.plan.steps)}",
    ]
    if session.parent_session_id:
        lines.append(f"Retry #{session.retry_count} of {session.parent_session_id}")
    if session.pending_input is not None:
        lines.append(f"Waiting for input at step {session.pending_input.step_id}")
    lines.extend(format_step_result(r) for r in session.step_results)
    if session.error:
        lines.append(f"Error: {session.error}")
    return "\n".join(lines)


def format_session_row(session: ExecutionSession) -> str:
    return (
        f"{session.id}  {session.status:<13}  {session.plan_id:<20}  "
        f"{session.updated_at:%Y-%m-%d %H:%M}"
    )
