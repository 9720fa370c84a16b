"""Plan execution."""

from stepwise.executor.context import UNRESOLVED, ExecutionContext
from stepwise.executor.engine import ExecuteOptions, Executor
from stepwise.executor.results import (
    ConditionalResult,
    ExecutionResult,
    FunctionCallResult,
    PendingInput,
    StepResult,
    UserInputResult,
)

__all__ = [
    "UNRESOLVED",
    "ConditionalResult",
    "ExecuteOptions",
    "ExecutionContext",
    "ExecutionResult",
    "Executor",
    "FunctionCallResult",
    "PendingInput",
    "StepResult",
    "UserInputResult",
]
