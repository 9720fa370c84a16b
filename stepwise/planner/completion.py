"""Completion loop: generate missing functions, then re-plan or promote."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from stepwise.functions.base import FunctionMetadata
from stepwise.planner.engine import Planner
from stepwise.planner.models import (
    ExecutionPlan,
    FunctionCallStep,
    MissingFunction,
    MockFunctionReference,
    PlanMetadata,
    PlanResult,
    PlanStep,
    utc_now,
)
from stepwise.planner.validator import REFERENCE_RE, iter_references
from stepwise.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class ReturnFieldRef:
    path: str
    description: str = ""


@dataclass
class GeneratedFunction:
    function_name: str
    file_path: str = ""
    version: int = 1
    generated_at: datetime = field(default_factory=utc_now)
    definition: FunctionMetadata | None = None


@dataclass
class CompletionError:
    function_name: str
    error: str


@dataclass
class CompletionResult:
    success: bool
    generated_functions: list[GeneratedFunction] = field(default_factory=list)
    errors: list[CompletionError] = field(default_factory=list)


class CompletionOrchestrator(ABC):
    """Produces and registers implementations for missing functions.

    Generated functions must be registered with the same provider the
    planner consults, so the next ``has`` check sees them.
    """

    @abstractmethod
    async def generate_and_register(
        self,
        missing_functions: list[MissingFunction],
        referenced_fields: dict[str, list[ReturnFieldRef]],
    ) -> CompletionResult: ...


def extract_referenced_fields(
    steps: list[PlanStep], missing_names: list[str]
) -> dict[str, list[ReturnFieldRef]]:
    """Map each missing function to the result fields later steps read from it."""
    producer: dict[int, str] = {
        step.step_id: step.function_name for step in steps if isinstance(step, FunctionCallStep)
    }
    wanted = set(missing_names)
    fields: dict[str, list[str]] = {}
    for step in steps:
        if not isinstance(step, FunctionCallStep):
            continue
        for _, reference in iter_references(step.parameters):
            m = REFERENCE_RE.match(str(reference))
            if not m:
                continue
            name = producer.get(int(m.group(1)))
            if name is None or name not in wanted:
                continue
            path = m.group(2)
            if path.startswith("result."):
                path = path[len("result."):]
            seen = fields.setdefault(name, [])
            if path not in seen:
                seen.append(path)
    return {
        name: [ReturnFieldRef(path=p, description=f"Referenced in plan as step.N.{p}") for p in paths]
        for name, paths in fields.items()
    }


def signatures_match(
    missing: list[MissingFunction], generated: list[GeneratedFunction]
) -> tuple[bool, list[str]]:
    """Check every missing function was generated with a compatible signature.

    Compatible means every suggested parameter name exists on the generated
    definition and the return types agree case-insensitively.
    """
    by_name = {g.function_name: g.definition for g in generated}
    mismatches: list[str] = []
    for fn in missing:
        definition = by_name.get(fn.name)
        if definition is None:
            mismatches.append(f"{fn.name}: not generated")
            continue
        names = {p.name for p in definition.parameters}
        for param in fn.suggested_parameters:
            if param.name not in names:
                mismatches.append(f"{fn.name}: expected parameter '{param.name}' is missing")
        if fn.suggested_returns.type.lower() != definition.returns.type.lower():
            mismatches.append(
                f"{fn.name}: expected return type '{fn.suggested_returns.type}', "
                f"got '{definition.returns.type}'"
            )
    return not mismatches, mismatches


class CompletionPlanner:
    """Wraps a :class:`Planner`, filling in missing functions between attempts."""

    def __init__(
        self,
        base: Planner,
        orchestrator: CompletionOrchestrator,
        max_iterations: int = 3,
    ) -> None:
        self._base = base
        self._orchestrator = orchestrator
        self._max_iterations = max_iterations

    async def plan(self, user_request: str) -> PlanResult:
        mocks: list[MockFunctionReference] = []
        errors: list[CompletionError] = []

        for iteration in range(1, self._max_iterations + 1):
            if iteration > 1:
                log.info("completion_replanning", iteration=iteration)
            result = await self._base.plan(user_request)
            if not result.success or result.plan is None:
                return result
            plan = result.plan

            if plan.status == "executable" or not plan.missing_functions:
                self._attach(plan, mocks)
                result.completion_errors = list(errors)
                return result

            missing = plan.missing_functions
            missing_names = [m.name for m in missing]
            referenced = extract_referenced_fields(plan.steps, missing_names)
            log.info(
                "completion_generating",
                missing=missing_names,
                referenced={k: [r.path for r in v] for k, v in referenced.items()},
            )

            completion = await self._orchestrator.generate_and_register(missing, referenced)
            errors.extend(completion.errors)
            for err in completion.errors:
                log.warning("completion_failed", function=err.function_name, error=err.error)

            if not completion.generated_functions:
                self._attach(plan, mocks)
                result.completion_errors = list(errors)
                return result

            for generated in completion.generated_functions:
                mocks.append(
                    MockFunctionReference(
                        name=generated.function_name,
                        version=generated.version,
                        file_path=generated.file_path,
                        generated_at=generated.generated_at,
                    )
                )

            all_generated = len(completion.generated_functions) >= len(missing)
            matched, mismatches = signatures_match(missing, completion.generated_functions)
            if all_generated and matched:
                log.info("completion_promoted", plan_id=plan.id, functions=missing_names)
                plan.status = "executable"
                plan.missing_functions = []
                self._attach(plan, mocks)
                result.completion_errors = list(errors)
                return result
            log.info("completion_mismatch", mismatches=mismatches, all_generated=all_generated)

        log.warning("completion_max_iterations", max_iterations=self._max_iterations)
        final = await self._base.plan(user_request)
        if final.success and final.plan is not None:
            self._attach(final.plan, mocks)
        final.completion_errors = list(errors)
        return final

    @staticmethod
    def _attach(plan: ExecutionPlan, mocks: list[MockFunctionReference]) -> None:
        if mocks:
            plan.metadata = PlanMetadata(uses_mocks=True, mock_functions=list(mocks))
