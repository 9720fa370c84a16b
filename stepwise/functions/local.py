"""In-process function registry backed by Python callables."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable

from stepwise.functions.base import (
    FunctionMetadata,
    FunctionProvider,
    FunctionResult,
    ParameterDef,
    ReturnDef,
)
from stepwise.utils.logging import get_logger

log = get_logger(__name__)

_ANNOTATION_TYPES: dict[Any, str] = {
    str: "string",
    int: "number",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
    "str": "string",
    "int": "number",
    "float": "number",
    "bool": "boolean",
    "dict": "object",
    "list": "array",
}


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and v == v,
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, (list, tuple)),
}


def _type_name(annotation: Any) -> str:
    if annotation is inspect.Parameter.empty:
        return "any"
    if annotation in _ANNOTATION_TYPES:
        return _ANNOTATION_TYPES[annotation]
    origin = getattr(annotation, "__origin__", None)
    if origin in _ANNOTATION_TYPES:
        return _ANNOTATION_TYPES[origin]
    if isinstance(annotation, str):
        # "dict[str, Any]" under postponed evaluation
        return _ANNOTATION_TYPES.get(annotation.split("[", 1)[0].strip(), "any")
    return "any"


def infer_parameters(fn: Callable[..., Any]) -> list[ParameterDef]:
    """Derive parameter definitions from a callable's signature."""
    params: list[ParameterDef] = []
    for p in inspect.signature(fn).parameters.values():
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue
        params.append(ParameterDef(
            name=p.name,
            type=_type_name(p.annotation),
            required=p.default is inspect.Parameter.empty,
        ))
    return params


def check_parameter(name: str, value: Any, expected: str) -> str | None:
    """Return an error message when ``value`` does not match ``expected``."""
    check = _TYPE_CHECKS.get(expected.lower())
    if check is None or check(value):
        return None
    return f"Parameter '{name}' expected {expected.lower()}, got {type(value).__name__}"


@dataclass
class _Registered:
    fn: Callable[..., Any]
    metadata: FunctionMetadata


class LocalFunctionProvider(FunctionProvider):
    def __init__(self) -> None:
        self._functions: dict[str, _Registered] = {}

    @property
    def source(self) -> str:
        return "local"

    def register(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        parameters: list[ParameterDef] | None = None,
        returns: ReturnDef | None = None,
        scenario: str = "",
    ) -> FunctionMetadata:
        fn_name = name or fn.__name__
        metadata = FunctionMetadata(
            name=fn_name,
            description=description if description is not None else inspect.getdoc(fn) or "",
            parameters=parameters if parameters is not None else infer_parameters(fn),
            returns=returns or ReturnDef(),
            scenario=scenario,
            source=self.source,
        )
        if fn_name in self._functions:
            log.info("function_replaced", function=fn_name)
        self._functions[fn_name] = _Registered(fn=fn, metadata=metadata)
        return metadata

    def function(self, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of :meth:`register`."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.register(fn, **options)
            return fn

        return decorator

    def unregister(self, name: str) -> bool:
        return self._functions.pop(name, None) is not None

    async def list(self) -> list[FunctionMetadata]:
        return [r.metadata for r in self._functions.values()]

    async def get(self, name: str) -> FunctionMetadata | None:
        registered = self._functions.get(name)
        return registered.metadata if registered else None

    async def execute(self, name: str, params: dict[str, Any]) -> FunctionResult:
        registered = self._functions.get(name)
        if registered is None:
            return FunctionResult(success=False, error=f"Function '{name}' not found")

        problems: list[str] = []
        for param in registered.metadata.parameters:
            if param.name not in params:
                if param.required:
                    problems.append(f"Missing required parameter '{param.name}'")
                continue
            problem = check_parameter(param.name, params[param.name], param.type)
            if problem:
                problems.append(problem)
        if problems:
            return FunctionResult(success=False, error="; ".join(problems))

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            if inspect.iscoroutinefunction(registered.fn):
                result = await registered.fn(**params)
            else:
                # Worker threads cannot be interrupted by a step timeout
                result = await asyncio.to_thread(registered.fn, **params)
        except Exception as e:
            log.warning("function_raised", function=name, error=str(e))
            return FunctionResult(success=False, error=str(e) or type(e).__name__)

        return FunctionResult(
            success=True,
            result=result,
            metadata={
                "provider": self.source,
                "execution_time_ms": int((loop.time() - started) * 1000),
            },
        )
