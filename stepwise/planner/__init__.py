"""Plan model, validation and generation."""

from stepwise.planner.engine import Planner
from stepwise.planner.models import (
    ConditionalStep,
    ExecutionPlan,
    FunctionCallStep,
    MissingFunction,
    ParameterValue,
    PlanResult,
    PlanStep,
    UserInputStep,
    split_plan_id,
)
from stepwise.planner.validator import validate_plan

__all__ = [
    "ConditionalStep",
    "ExecutionPlan",
    "FunctionCallStep",
    "MissingFunction",
    "ParameterValue",
    "PlanResult",
    "PlanStep",
    "Planner",
    "UserInputStep",
    "split_plan_id",
    "validate_plan",
]
