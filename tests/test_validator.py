"""Tests for plan validation."""

import pytest

from stepwise.errors import PlanValidationError
from stepwise.inputs.schema import FormField, FormSchema
from stepwise.planner.models import (
    ConditionalStep,
    ExecutionPlan,
    FunctionCallStep,
    ParameterValue,
    UserInputStep,
)
from stepwise.planner.validator import validate_plan

lit = ParameterValue.literal
ref = ParameterValue.reference


def make_plan(steps, **kwargs):
    return ExecutionPlan(id="plan-1", user_request="do things", steps=steps, **kwargs)


def call(step_id, name="add", **params):
    return FunctionCallStep(step_id=step_id, function_name=name, parameters=params)


class TestPlanLevelChecks:
    def test_valid_chain(self):
        validate_plan(make_plan([
            call(1, a=lit(3), b=lit(5)),
            call(2, "multiply", a=ref("step.1.result"), b=lit(2)),
        ]))

    def test_empty_id(self):
        plan = ExecutionPlan(id="", user_request="x", steps=[call(1)])
        with pytest.raises(PlanValidationError, match="Plan ID"):
            validate_plan(plan)

    def test_empty_request(self):
        plan = ExecutionPlan(id="p", user_request="", steps=[call(1)])
        with pytest.raises(PlanValidationError, match="User request"):
            validate_plan(plan)

    def test_unknown_status(self):
        with pytest.raises(PlanValidationError, match="status"):
            validate_plan(make_plan([call(1)], status="done"))

    @pytest.mark.parametrize("status", ["executable", "incomplete"])
    def test_empty_steps_rejected_for_any_status(self, status):
        with pytest.raises(PlanValidationError, match="at least one step"):
            validate_plan(make_plan([], status=status))

    def test_error_message_prefix(self):
        with pytest.raises(PlanValidationError) as exc:
            validate_plan(make_plan([]))
        assert str(exc.value).startswith("Plan validation failed: ")
        assert exc.value.code == "PLAN_VALIDATION_ERROR"


class TestStepIds:
    def test_duplicate(self):
        with pytest.raises(PlanValidationError, match="Duplicate step ID: 1"):
            validate_plan(make_plan([call(1), call(1)]))

    def test_non_positive(self):
        with pytest.raises(PlanValidationError, match="Invalid step ID"):
            validate_plan(make_plan([call(0)]))

    def test_out_of_order(self):
        with pytest.raises(PlanValidationError, match="increasing"):
            validate_plan(make_plan([call(2), call(1)]))

    def test_gaps_allowed(self):
        validate_plan(make_plan([call(1), call(5, b=ref("step.1.result"))]))


class TestReferences:
    def test_forward_reference_rejected(self):
        plan = make_plan([
            call(1, a=ref("step.2.result")),
            call(2, a=lit(1)),
        ])
        with pytest.raises(PlanValidationError, match="earlier step"):
            validate_plan(plan)

    def test_self_reference_rejected(self):
        with pytest.raises(PlanValidationError, match="earlier step"):
            validate_plan(make_plan([call(1), call(2, a=ref("step.2.result"))]))

    def test_nonexistent_step(self):
        with pytest.raises(PlanValidationError, match="non-existent step 3"):
            validate_plan(make_plan([call(1), call(4, a=ref("step.3.result"))]))

    @pytest.mark.parametrize("bad", ["step.x.result", "steps.1.result", "step.1", "1.result"])
    def test_malformed(self, bad):
        with pytest.raises(PlanValidationError, match="invalid reference format"):
            validate_plan(make_plan([call(1), call(2, a=ref(bad))]))

    def test_reference_inside_composite(self):
        nested = ParameterValue.composite({"inner": ref("step.3.result")})
        with pytest.raises(PlanValidationError):
            validate_plan(make_plan([call(1), call(2, payload=nested), call(3)]))

    def test_depends_on_must_be_earlier(self):
        step = call(2)
        step.depends_on = [2]
        with pytest.raises(PlanValidationError, match="depend"):
            validate_plan(make_plan([call(1), step]))


class TestStepKinds:
    def test_missing_function_name(self):
        with pytest.raises(PlanValidationError, match="functionName"):
            validate_plan(make_plan([FunctionCallStep(step_id=1, function_name="")]))

    def test_user_input_needs_fields(self):
        step = UserInputStep(step_id=1, schema=FormSchema(fields=[]))
        with pytest.raises(PlanValidationError, match="at least one field"):
            validate_plan(make_plan([step]))

    def test_user_input_ok(self):
        step = UserInputStep(step_id=1, schema=FormSchema(fields=[FormField(id="n", type="number")]))
        validate_plan(make_plan([step, call(2, a=ref("step.1.n"))]))

    def test_condition_branch_must_be_later(self):
        cond = ConditionalStep(step_id=2, condition="step.1.result > 1", on_true=[1])
        with pytest.raises(PlanValidationError, match="must come after"):
            validate_plan(make_plan([call(1), cond]))

    def test_condition_branch_must_exist(self):
        cond = ConditionalStep(step_id=2, condition="step.1.result > 1", on_true=[9])
        with pytest.raises(PlanValidationError, match="does not exist"):
            validate_plan(make_plan([call(1), cond]))

    def test_condition_reference_must_be_earlier(self):
        cond = ConditionalStep(step_id=2, condition="step.3.result > 1", on_true=[3])
        with pytest.raises(PlanValidationError, match="condition references step 3"):
            validate_plan(make_plan([call(1), cond, call(3)]))

    def test_empty_condition(self):
        cond = ConditionalStep(step_id=2, condition="  ")
        with pytest.raises(PlanValidationError, match="condition is required"):
            validate_plan(make_plan([call(1), cond]))
