"""Built-in arithmetic functions, always available to the planner."""

from __future__ import annotations

from stepwise.functions.base import ParameterDef, ReturnDef
from stepwise.functions.local import LocalFunctionProvider


def add(a: float, b: float) -> float:
    return a + b


def subtract(a: float, b: float) -> float:
    return a - b


def multiply(a: float, b: float) -> float:
    return a * b


def divide(a: float, b: float) -> float:
    if b == 0:
        raise ValueError("Division by zero")
    return a / b


_BINARY = [
    (add, "Add two numbers", "Sum of a and b"),
    (subtract, "Subtract b from a", "Difference a - b"),
    (multiply, "Multiply two numbers", "Product of a and b"),
    (divide, "Divide a by b", "Quotient a / b"),
]


def register(provider: LocalFunctionProvider) -> None:
    for fn, description, returns in _BINARY:
        provider.register(
            fn,
            description=description,
            parameters=[
                ParameterDef(name="a", type="number", description="First operand"),
                ParameterDef(name="b", type="number", description="Second operand"),
            ],
            returns=ReturnDef(type="number", description=returns),
            scenario="arithmetic",
        )
