"""Tests for plan generation."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from stepwise.errors import PlanParseError
from stepwise.functions import LocalFunctionProvider, builtins
from stepwise.planner.engine import Planner
from stepwise.planner.models import (
    ConditionalStep,
    ExecutionPlan,
    FunctionCallStep,
    UserInputStep,
    split_plan_id,
)
from stepwise.planner.prompt import build_plan_prompt, parse_plan_response, plan_from_response
from stepwise.planner.selection import TokenBudgetSelector, format_functions_for_prompt


def response(steps, status="executable", missing=None, fenced=True):
    body = {"steps": steps, "status": status}
    if missing is not None:
        body["missingFunctions"] = missing
    text = json.dumps(body)
    return f"Here is the plan:\n```json\n{text}\n```\n" if fenced else text


ADD_THEN_DOUBLE = [
    {"stepId": 1, "type": "function_call", "functionName": "add", "description": "sum",
     "parameters": {"a": {"type": "literal", "value": 3}, "b": {"type": "literal", "value": 5}}},
    {"stepId": 2, "functionName": "multiply", "description": "double",
     "parameters": {"a": {"type": "reference", "value": "step.1.result"},
                    "b": {"type": "literal", "value": 2}},
     "dependsOn": [1]},
]


@pytest.fixture
def provider():
    p = LocalFunctionProvider()
    builtins.register(p)
    return p


@pytest.fixture
def llm():
    client = AsyncMock()
    client.generate_plan = AsyncMock(return_value=response(ADD_THEN_DOUBLE))
    return client


@pytest.fixture
def planner(provider, llm):
    return Planner(provider, llm)


class TestParsing:
    def test_fenced_json(self):
        data = parse_plan_response(response(ADD_THEN_DOUBLE))
        assert len(data["steps"]) == 2

    def test_bare_json(self):
        data = parse_plan_response(response(ADD_THEN_DOUBLE, fenced=False))
        assert data["status"] == "executable"

    def test_not_json(self):
        with pytest.raises(PlanParseError):
            parse_plan_response("I cannot help with that.")

    def test_steps_must_be_list(self):
        with pytest.raises(PlanParseError, match="steps"):
            parse_plan_response('{"steps": {}, "status": "executable"}')

    def test_unknown_status(self):
        with pytest.raises(PlanParseError, match="status"):
            parse_plan_response('{"steps": [], "status": "maybe"}')

    def test_missing_type_defaults_to_function_call(self):
        plan = plan_from_response(parse_plan_response(response(ADD_THEN_DOUBLE)), "compute")
        assert all(isinstance(s, FunctionCallStep) for s in plan.steps)
        assert plan.steps[1].parameters["a"].kind == "reference"
        assert plan.steps[1].depends_on == [1]
        assert plan.id.startswith("plan-")

    def test_all_step_kinds(self):
        steps = [
            {"stepId": 1, "type": "user_input", "description": "ask",
             "schema": {"fields": [{"id": "n", "type": "number", "label": "N", "required": True}]}},
            {"stepId": 2, "type": "condition", "condition": "step.1.n > 3", "onTrue": [3]},
            {"stepId": 3, "type": "function_call", "functionName": "add",
             "parameters": {"a": {"type": "reference", "value": "step.1.n"}, "b": 1}},
        ]
        plan = plan_from_response(parse_plan_response(response(steps)), "r")
        assert isinstance(plan.steps[0], UserInputStep)
        assert plan.steps[0].schema.fields[0].required is True
        assert isinstance(plan.steps[1], ConditionalStep)
        assert plan.steps[1].on_true == [3]
        # bare values are treated as literals
        assert plan.steps[2].parameters["b"].kind == "literal"

    def test_missing_required_step_field(self):
        steps = [{"stepId": 1, "type": "function_call", "functionName": "add"}]
        with pytest.raises(PlanParseError, match="parameters"):
            plan_from_response(parse_plan_response(response(steps)), "r")

    def test_wire_roundtrip_keeps_camel_case(self):
        plan = plan_from_response(parse_plan_response(response(ADD_THEN_DOUBLE)), "compute")
        data = plan.to_dict()
        assert data["userRequest"] == "compute"
        assert data["steps"][1]["functionName"] == "multiply"
        assert ExecutionPlan.from_dict(data).steps[1].parameters["a"].value == "step.1.result"


class TestPlanIds:
    def test_versioned(self):
        assert split_plan_id("plan-abc12345-v3") == ("plan-abc12345", 3)

    def test_unversioned(self):
        assert split_plan_id("plan-abc12345") == ("plan-abc12345", None)


class TestPrompt:
    def test_contains_functions_request_and_examples(self):
        prompt = build_plan_prompt("double 4", "- add: Add two numbers")
        assert "- add: Add two numbers" in prompt
        assert "double 4" in prompt
        assert prompt.count("### Example") == 4
        assert '"status": "incomplete"' in prompt

    async def test_function_listing(self, provider):
        text = format_functions_for_prompt(await provider.list())
        assert "- add: Add two numbers" in text
        assert "a (number)" in text

    def test_empty_listing(self):
        assert "No functions" in format_functions_for_prompt([])


class TestPlanner:
    async def test_executable_plan(self, planner, llm):
        result = await planner.plan("compute (3 + 5) * 2")
        assert result.success
        assert result.plan.status == "executable"
        assert len(result.plan.steps) == 2
        prompt = llm.generate_plan.await_args.args[0]
        assert "multiply" in prompt
        assert "compute (3 + 5) * 2" in prompt

    async def test_unregistered_function_rejected(self, planner, llm):
        steps = [{"stepId": 1, "functionName": "sqrt", "parameters": {"x": {"type": "literal", "value": 4}}}]
        llm.generate_plan.return_value = response(steps)
        result = await planner.plan("sqrt 4")
        assert not result.success
        assert "sqrt" in result.error

    async def test_registry_is_checked_live(self, planner, llm, provider):
        steps = [{"stepId": 1, "functionName": "sqrt", "parameters": {"x": {"type": "literal", "value": 4}}}]
        llm.generate_plan.return_value = response(steps)
        assert not (await planner.plan("sqrt 4")).success
        provider.register(lambda x: x ** 0.5, name="sqrt")
        assert (await planner.plan("sqrt 4")).success

    async def test_incomplete_plan_skips_checks(self, planner, llm):
        steps = [{"stepId": 1, "functionName": "sqrt", "parameters": {"x": {"type": "literal", "value": 4}}}]
        missing = [{"name": "sqrt", "description": "square root",
                    "suggestedParameters": [{"name": "x", "type": "number", "description": ""}],
                    "suggestedReturns": {"type": "number", "description": ""}}]
        llm.generate_plan.return_value = response(steps, status="incomplete", missing=missing)
        result = await planner.plan("sqrt 4")
        assert result.success
        assert result.plan.status == "incomplete"
        assert result.plan.missing_functions[0].suggested_parameters[0].name == "x"

    async def test_validation_failure_is_returned(self, planner, llm):
        steps = [
            {"stepId": 1, "functionName": "add",
             "parameters": {"a": {"type": "reference", "value": "step.2.result"}, "b": 1}},
            {"stepId": 2, "functionName": "add", "parameters": {"a": 1, "b": 1}},
        ]
        llm.generate_plan.return_value = response(steps)
        result = await planner.plan("bad")
        assert not result.success
        assert result.error.startswith("Plan validation failed")

    async def test_parse_failure_is_returned(self, planner, llm):
        llm.generate_plan.return_value = "no json here"
        result = await planner.plan("x")
        assert not result.success
        assert "JSON" in result.error

    async def test_llm_error_is_returned(self, planner, llm):
        llm.generate_plan.side_effect = RuntimeError("network down")
        result = await planner.plan("x")
        assert not result.success
        assert result.error == "network down"


class TestTokenBudgetSelector:
    async def test_prefers_relevant_functions(self, provider):
        selector = TokenBudgetSelector(max_tokens=60, count_tokens=lambda text: 30)
        chosen = await selector.select("divide then multiply", provider)
        assert [f.name for f in chosen] == ["multiply", "divide"]

    async def test_everything_fits(self, provider):
        selector = TokenBudgetSelector(max_tokens=10_000, count_tokens=len)
        chosen = await selector.select("anything", provider)
        assert [f.name for f in chosen] == ["add", "subtract", "multiply", "divide"]

    async def test_planner_uses_selector(self, provider, llm):
        selector = MagicMock()
        selector.select = AsyncMock(return_value=[])
        planner = Planner(provider, llm, selector)
        await planner.plan("compute")
        selector.select.assert_awaited_once_with("compute", provider)
        assert "No functions are currently available." in llm.generate_plan.await_args.args[0]
