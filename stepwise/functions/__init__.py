"""Function providers: where plan steps find their callables."""

from stepwise.functions.base import (
    FunctionMetadata,
    FunctionProvider,
    FunctionResult,
    ParameterDef,
    ReturnDef,
)
from stepwise.functions.composite import CompositeFunctionProvider
from stepwise.functions.local import LocalFunctionProvider

__all__ = [
    "FunctionMetadata",
    "FunctionProvider",
    "FunctionResult",
    "ParameterDef",
    "ReturnDef",
    "CompositeFunctionProvider",
    "LocalFunctionProvider",
]
