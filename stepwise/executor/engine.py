"""Step executor: ordered walk over a validated plan."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, assert_never

from stepwise.config import ExecutorConfig
from stepwise.errors import (
    ExecutionTimeoutError,
    FunctionExecutionError,
    FunctionNotFoundError,
    InputRequestError,
    InputValidationError,
    OrchestratorError,
    ParameterResolutionError,
    UnsupportedFieldTypeError,
)
from stepwise.executor.conditions import ConditionEvaluator, SafeConditionEvaluator
from stepwise.executor.context import ExecutionContext, find_unresolved
from stepwise.executor.results import (
    ConditionalResult,
    ExecutionResult,
    FunctionCallResult,
    PendingInput,
    StepResult,
    UserInputResult,
)
from stepwise.functions.base import FunctionProvider
from stepwise.inputs.base import UserInputProvider
from stepwise.inputs.validation import validate_values
from stepwise.planner.models import (
    ConditionalStep,
    ExecutionPlan,
    FunctionCallStep,
    PlanStep,
    UserInputStep,
    utc_now,
)
from stepwise.planner.validator import validate_plan
from stepwise.utils.logging import get_logger

log = get_logger(__name__)

CANCELLED_MESSAGE = "Execution cancelled"


@dataclass
class ExecuteOptions:
    """Knobs for resuming and pausing a run.

    ``start_from_step`` is a step id: the walk begins at the first step whose
    id is at least this value. ``previous_results`` seeds the context and the
    result list with an already-committed prefix.
    """

    start_from_step: int = 0
    previous_results: list[StepResult] = field(default_factory=list)
    pause_on_input: bool = False
    is_cancelled: Callable[[], Awaitable[bool]] | None = None


class Executor:
    def __init__(
        self,
        function_provider: FunctionProvider,
        input_provider: UserInputProvider | None = None,
        config: ExecutorConfig | None = None,
        condition_evaluator: ConditionEvaluator | None = None,
    ) -> None:
        self._functions = function_provider
        self._inputs = input_provider
        self._config = config or ExecutorConfig()
        self._conditions = condition_evaluator or SafeConditionEvaluator()

    async def execute(
        self, plan: ExecutionPlan, options: ExecuteOptions | None = None
    ) -> ExecutionResult:
        """Run ``plan`` and return the outcome.

        Raises :class:`PlanValidationError` before anything runs if the plan
        is malformed. Step failures never raise; they stop the walk and are
        reported through the returned result.
        """
        validate_plan(plan)
        options = options or ExecuteOptions()

        started_at = utc_now()
        results: list[StepResult] = list(options.previous_results)
        context = ExecutionContext.from_step_results(results)
        skipped: set[int] = set()
        final_result: Any = None
        for prior in results:
            skipped.update(prior.skipped_steps if isinstance(prior, ConditionalResult) else ())
            if prior.success and not isinstance(prior, ConditionalResult):
                final_result = prior.output

        def finish(success: bool, error: str | None = None, waiting: PendingInput | None = None) -> ExecutionResult:
            return ExecutionResult(
                plan_id=plan.id,
                steps=results,
                final_result=final_result,
                success=success,
                error=error,
                started_at=started_at,
                completed_at=utc_now(),
                waiting_for_input=waiting,
            )

        log.info("execution_started", plan_id=plan.id, steps=len(plan.steps), start_from=options.start_from_step)

        for step in plan.steps:
            if step.step_id < options.start_from_step or context.has(step.step_id):
                continue
            if step.step_id in skipped:
                log.debug("step_skipped", plan_id=plan.id, step_id=step.step_id)
                continue
            if options.is_cancelled is not None and await options.is_cancelled():
                log.info("execution_cancelled", plan_id=plan.id, step_id=step.step_id)
                return finish(False, CANCELLED_MESSAGE)
            if isinstance(step, UserInputStep) and options.pause_on_input:
                log.info("execution_paused", plan_id=plan.id, step_id=step.step_id)
                return finish(True, waiting=PendingInput(step_id=step.step_id, schema=step.schema))

            result = await self._run_step(step, context)
            results.append(result)

            if not result.success:
                log.warning("step_failed", plan_id=plan.id, step_id=step.step_id, error=result.error)
                return finish(False, f"Step {step.step_id} failed: {result.error}")

            context.commit(step.step_id, result.output)
            if isinstance(step, ConditionalStep):
                assert isinstance(result, ConditionalResult)
                skipped.update(result.skipped_steps)
                if step.output_variable:
                    context.set_variable(step.output_variable, result.evaluated_result)
            else:
                final_result = result.output
            log.debug("step_completed", plan_id=plan.id, step_id=step.step_id)

        log.info("execution_completed", plan_id=plan.id, steps=len(results))
        return finish(True)

    async def _run_step(self, step: PlanStep, context: ExecutionContext) -> StepResult:
        if isinstance(step, FunctionCallStep):
            timeout_ms = self._config.step_timeout
            label = step.function_name
        elif isinstance(step, UserInputStep):
            timeout_ms = self._config.input_timeout
            label = "user input"
        elif isinstance(step, ConditionalStep):
            timeout_ms = self._config.step_timeout
            label = "condition"
        else:
            assert_never(step)

        try:
            coro = self._dispatch(step, context)
            if timeout_ms > 0:
                return await asyncio.wait_for(coro, timeout=timeout_ms / 1000)
            return await coro
        except TimeoutError:
            error = ExecutionTimeoutError(step.step_id, label, timeout_ms)
            return self._failed(step, error.message)
        except OrchestratorError as e:
            return self._failed(step, e.message)

    async def _dispatch(self, step: PlanStep, context: ExecutionContext) -> StepResult:
        if isinstance(step, FunctionCallStep):
            return await self._call_function(step, context)
        if isinstance(step, UserInputStep):
            return await self._request_input(step, context)
        if isinstance(step, ConditionalStep):
            return self._evaluate_condition(step, context)
        assert_never(step)

    async def _call_function(self, step: FunctionCallStep, context: ExecutionContext) -> FunctionCallResult:
        params = context.resolve_parameters(step.parameters)
        unresolved = find_unresolved(step.parameters, params)
        if unresolved is not None:
            raise ParameterResolutionError(*unresolved)
        if not await self._functions.has(step.function_name):
            raise FunctionNotFoundError(step.function_name)

        log.info("function_executing", step_id=step.step_id, function=step.function_name)
        try:
            outcome = await self._functions.execute(step.function_name, params)
        except OrchestratorError:
            raise
        except Exception as e:
            raise FunctionExecutionError(step.function_name, params, e) from e
        if not outcome.success:
            raise FunctionExecutionError(step.function_name, params, outcome.error or "unknown error")
        return FunctionCallResult(
            step_id=step.step_id,
            success=True,
            function_name=step.function_name,
            parameters=params,
            result=outcome.result,
        )

    async def _request_input(self, step: UserInputStep, context: ExecutionContext) -> UserInputResult:
        if self._inputs is None:
            raise OrchestratorError(
                "No user input provider configured", step_id=step.step_id
            )
        unsupported = [t for t in step.schema.field_types if not self._inputs.supports_field_type(t)]
        if unsupported:
            raise UnsupportedFieldTypeError(step.step_id, unsupported)

        try:
            response = await self._inputs.request_input(step.schema, context.snapshot())
        except OrchestratorError:
            raise
        except Exception as e:
            raise InputRequestError(step.step_id, e) from e
        if response.skipped:
            return UserInputResult(step_id=step.step_id, success=True, skipped=True)
        values, errors = validate_values(step.schema, response.values)
        if errors:
            raise InputValidationError(errors)
        return UserInputResult(step_id=step.step_id, success=True, values=values)

    def _evaluate_condition(self, step: ConditionalStep, context: ExecutionContext) -> ConditionalResult:
        try:
            outcome = self._conditions.evaluate(step.condition, context)
        except ValueError as e:
            raise OrchestratorError(str(e), step_id=step.step_id) from e
        taken, other = (step.on_true, step.on_false) if outcome else (step.on_false, step.on_true)
        if taken:
            branch = "on_true" if outcome else "on_false"
        else:
            branch = "none"
        log.info("condition_evaluated", step_id=step.step_id, result=outcome, branch=branch)
        return ConditionalResult(
            step_id=step.step_id,
            success=True,
            condition=step.condition,
            evaluated_result=outcome,
            executed_branch=branch,
            skipped_steps=[sid for sid in other if sid not in taken],
        )

    @staticmethod
    def _failed(step: PlanStep, error: str) -> StepResult:
        if isinstance(step, FunctionCallStep):
            return FunctionCallResult(
                step_id=step.step_id, success=False, function_name=step.function_name, error=error
            )
        if isinstance(step, UserInputStep):
            return UserInputResult(step_id=step.step_id, success=False, error=error)
        if isinstance(step, ConditionalStep):
            return ConditionalResult(
                step_id=step.step_id, success=False, condition=step.condition, error=error
            )
        assert_never(step)


def resume_options(
    results: list[StepResult], start_from_step: int, **kwargs: Any
) -> ExecuteOptions:
    """Options that continue a run after an already-committed prefix."""
    prefix = [r for r in results if r.success]
    return ExecuteOptions(start_from_step=start_from_step, previous_results=prefix, **kwargs)
