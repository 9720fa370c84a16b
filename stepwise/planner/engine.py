"""Planner: natural-language request to validated ExecutionPlan."""

from __future__ import annotations

from stepwise.errors import OrchestratorError
from stepwise.functions.base import FunctionProvider
from stepwise.llm.base import PlannerLLMClient
from stepwise.planner.models import FunctionCallStep, PlanResult
from stepwise.planner.prompt import build_plan_prompt, parse_plan_response, plan_from_response
from stepwise.planner.selection import (
    AllFunctionsSelector,
    FunctionSelector,
    format_functions_for_prompt,
)
from stepwise.planner.validator import validate_plan
from stepwise.utils.logging import get_logger

log = get_logger(__name__)


class Planner:
    def __init__(
        self,
        function_provider: FunctionProvider,
        llm_client: PlannerLLMClient,
        selector: FunctionSelector | None = None,
    ) -> None:
        self._functions = function_provider
        self._llm = llm_client
        self._selector = selector or AllFunctionsSelector()

    async def plan(self, user_request: str) -> PlanResult:
        """Generate a plan for ``user_request``.

        Never raises for planning failures: parse, validation and registry
        errors come back as ``PlanResult(success=False, error=...)``.
        """
        try:
            functions = await self._selector.select(user_request, self._functions)
            prompt = build_plan_prompt(user_request, format_functions_for_prompt(functions))
            log.info("planning_started", functions=len(functions), prompt_chars=len(prompt))

            raw = await self._llm.generate_plan(prompt)
            plan = plan_from_response(parse_plan_response(raw), user_request)

            if plan.status == "executable":
                validate_plan(plan)
                unregistered = [
                    step.function_name
                    for step in plan.steps
                    if isinstance(step, FunctionCallStep)
                    and not await self._functions.has(step.function_name)
                ]
                if unregistered:
                    log.warning("plan_uses_unregistered_functions", plan_id=plan.id, functions=unregistered)
                    return PlanResult(
                        success=False,
                        error=f"Plan uses unregistered functions: {', '.join(sorted(set(unregistered)))}",
                    )
        except OrchestratorError as e:
            log.warning("planning_failed", error=e.message, code=e.code)
            return PlanResult(success=False, error=e.message)
        except Exception as e:
            log.exception("planning_error")
            return PlanResult(success=False, error=str(e) or type(e).__name__)

        log.info(
            "plan_created",
            plan_id=plan.id,
            status=plan.status,
            steps=len(plan.steps),
            missing=[m.name for m in plan.missing_functions],
        )
        return PlanResult(success=True, plan=plan)
