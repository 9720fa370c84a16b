"""Tests for the missing-function completion loop."""

import pytest
from unittest.mock import AsyncMock

from stepwise.functions.base import FunctionMetadata, ParameterDef, ReturnDef
from stepwise.planner.completion import (
    CompletionError,
    CompletionPlanner,
    CompletionResult,
    GeneratedFunction,
    extract_referenced_fields,
    signatures_match,
)
from stepwise.planner.models import (
    ExecutionPlan,
    FunctionCallStep,
    MissingFunction,
    ParameterValue,
    PlanResult,
)

ref = ParameterValue.reference
lit = ParameterValue.literal


def lookup_missing():
    return MissingFunction(
        name="lookup_inventor",
        description="Find who invented something",
        suggested_parameters=[ParameterDef(name="invention", type="string")],
        suggested_returns=ReturnDef(type="object"),
    )


def incomplete_plan():
    return ExecutionPlan(
        id="plan-1",
        user_request="who invented the telephone and when were they born",
        steps=[
            FunctionCallStep(step_id=1, function_name="lookup_inventor", parameters={"invention": lit("telephone")}),
            FunctionCallStep(
                step_id=2,
                function_name="birth_year",
                parameters={"person": ref("step.1.result.inventor"), "country": ref("step.1.country")},
            ),
        ],
        status="incomplete",
        missing_functions=[lookup_missing()],
    )


def executable_plan():
    return ExecutionPlan(
        id="plan-2",
        user_request="who invented the telephone",
        steps=[FunctionCallStep(step_id=1, function_name="lookup_inventor", parameters={"invention": lit("telephone")})],
    )


def generated(params=("invention",), returns="Object"):
    return GeneratedFunction(
        function_name="lookup_inventor",
        file_path="mocks/lookup_inventor-v1.py",
        version=1,
        definition=FunctionMetadata(
            name="lookup_inventor",
            parameters=[ParameterDef(name=p) for p in params],
            returns=ReturnDef(type=returns),
        ),
    )


@pytest.fixture
def base():
    planner = AsyncMock()
    planner.plan = AsyncMock()
    return planner


@pytest.fixture
def orchestrator():
    o = AsyncMock()
    o.generate_and_register = AsyncMock()
    return o


class TestHelpers:
    def test_extract_referenced_fields(self):
        plan = incomplete_plan()
        fields = extract_referenced_fields(plan.steps, ["lookup_inventor"])
        assert [f.path for f in fields["lookup_inventor"]] == ["inventor", "country"]

    def test_extract_ignores_available_functions(self):
        plan = incomplete_plan()
        assert extract_referenced_fields(plan.steps, ["birth_year"]) == {}

    def test_signatures_match_is_case_insensitive_on_returns(self):
        ok, mismatches = signatures_match([lookup_missing()], [generated()])
        assert ok
        assert mismatches == []

    def test_extra_generated_parameters_are_fine(self):
        ok, _ = signatures_match([lookup_missing()], [generated(params=("invention", "lang"))])
        assert ok

    def test_missing_parameter_is_mismatch(self):
        ok, mismatches = signatures_match([lookup_missing()], [generated(params=("name",))])
        assert not ok
        assert "invention" in mismatches[0]

    def test_return_type_mismatch(self):
        ok, _ = signatures_match([lookup_missing()], [generated(returns="string")])
        assert not ok

    def test_not_generated(self):
        ok, mismatches = signatures_match([lookup_missing()], [])
        assert not ok
        assert "not generated" in mismatches[0]


class TestCompletionPlanner:
    async def test_executable_plan_passes_through(self, base, orchestrator):
        base.plan.return_value = PlanResult(success=True, plan=executable_plan())
        result = await CompletionPlanner(base, orchestrator).plan("x")
        assert result.plan.status == "executable"
        assert result.plan.metadata is None
        orchestrator.generate_and_register.assert_not_awaited()

    async def test_planning_error_is_returned(self, base, orchestrator):
        base.plan.return_value = PlanResult(success=False, error="bad model output")
        result = await CompletionPlanner(base, orchestrator).plan("x")
        assert result.error == "bad model output"

    async def test_matching_signatures_skip_replanning(self, base, orchestrator):
        base.plan.return_value = PlanResult(success=True, plan=incomplete_plan())
        orchestrator.generate_and_register.return_value = CompletionResult(
            success=True, generated_functions=[generated()]
        )
        result = await CompletionPlanner(base, orchestrator).plan("x")

        assert base.plan.await_count == 1
        assert result.success
        assert result.plan.status == "executable"
        assert result.plan.metadata.uses_mocks is True
        assert result.plan.metadata.mock_functions[0].name == "lookup_inventor"
        missing, referenced = orchestrator.generate_and_register.await_args.args
        assert missing[0].name == "lookup_inventor"
        assert [f.path for f in referenced["lookup_inventor"]] == ["inventor", "country"]

    async def test_mismatch_triggers_replan(self, base, orchestrator):
        base.plan.side_effect = [
            PlanResult(success=True, plan=incomplete_plan()),
            PlanResult(success=True, plan=executable_plan()),
        ]
        orchestrator.generate_and_register.return_value = CompletionResult(
            success=True, generated_functions=[generated(returns="string")]
        )
        result = await CompletionPlanner(base, orchestrator).plan("x")

        assert base.plan.await_count == 2
        assert result.plan.id == "plan-2"
        assert result.plan.metadata.uses_mocks is True

    async def test_nothing_generated_returns_incomplete_with_errors(self, base, orchestrator):
        base.plan.return_value = PlanResult(success=True, plan=incomplete_plan())
        orchestrator.generate_and_register.return_value = CompletionResult(
            success=False, errors=[CompletionError(function_name="lookup_inventor", error="synthesis failed")]
        )
        result = await CompletionPlanner(base, orchestrator).plan("x")

        assert result.success
        assert result.plan.status == "incomplete"
        assert result.completion_errors[0].error == "synthesis failed"
        assert base.plan.await_count == 1

    async def test_partial_generation_replans(self, base, orchestrator):
        two_missing = incomplete_plan()
        two_missing.missing_functions.append(
            MissingFunction(
                name="birth_year",
                description="Year a person was born",
                suggested_parameters=[ParameterDef(name="person", type="string")],
                suggested_returns=ReturnDef(type="number"),
            )
        )
        base.plan.side_effect = [
            PlanResult(success=True, plan=two_missing),
            PlanResult(success=True, plan=executable_plan()),
        ]
        orchestrator.generate_and_register.return_value = CompletionResult(
            success=False,
            generated_functions=[generated()],
            errors=[CompletionError(function_name="birth_year", error="synthesis failed")],
        )
        result = await CompletionPlanner(base, orchestrator).plan("x")

        assert base.plan.await_count == 2
        assert result.plan.id == "plan-2"
        assert result.plan.status == "executable"
        assert [m.name for m in result.plan.metadata.mock_functions] == ["lookup_inventor"]
        assert [e.function_name for e in result.completion_errors] == ["birth_year"]

    async def test_max_iterations_then_final_plan(self, base, orchestrator):
        base.plan.side_effect = lambda _req: PlanResult(success=True, plan=incomplete_plan())
        orchestrator.generate_and_register.return_value = CompletionResult(
            success=True, generated_functions=[generated(params=("other",))]
        )
        result = await CompletionPlanner(base, orchestrator, max_iterations=2).plan("x")

        # two loop iterations plus the final unconditional attempt
        assert base.plan.await_count == 3
        assert result.plan.status == "incomplete"
        assert len(result.plan.metadata.mock_functions) == 2
