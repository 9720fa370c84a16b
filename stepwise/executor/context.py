"""Committed step outputs and ``step.N.path`` reference resolution."""

from __future__ import annotations

import copy
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from stepwise.planner.models import ParameterValue
from stepwise.planner.validator import REFERENCE_RE

if TYPE_CHECKING:
    from stepwise.executor.results import StepResult

CONTEXT_KEY_PREFIX = "step."


class _Unresolved:
    """Sentinel for a reference that points at nothing."""

    _instance: _Unresolved | None = None

    def __new__(cls) -> _Unresolved:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNRESOLVED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Unresolved:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Unresolved:
        return self


UNRESOLVED: Any = _Unresolved()


@dataclass(frozen=True)
class Reference:
    step_id: int
    path: tuple[str, ...]


def parse_reference(reference: str) -> Reference | None:
    """Parse ``step.<N>.<path>``; ``None`` when malformed.

    ``result`` as the first path segment denotes the whole output, so
    ``step.1.result.name`` and ``step.1.name`` address the same value.
    """
    if not isinstance(reference, str):
        return None
    m = REFERENCE_RE.match(reference)
    if not m:
        return None
    segments = m.group(2).split(".")
    if segments[0] == "result":
        segments = segments[1:]
    if any(not s for s in segments):
        return None
    return Reference(step_id=int(m.group(1)), path=tuple(segments))


def walk_path(value: Any, path: Iterable[str]) -> Any:
    current = value
    for segment in path:
        if isinstance(current, dict):
            if segment not in current:
                return UNRESOLVED
            current = current[segment]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return UNRESOLVED
        else:
            return UNRESOLVED
    return current


def context_key(step_id: int) -> str:
    return f"{CONTEXT_KEY_PREFIX}{step_id}"


class ExecutionContext:
    """Write-once store of step outputs for a single run."""

    def __init__(self) -> None:
        self._outputs: dict[int, Any] = {}
        self._variables: dict[str, Any] = {}

    def commit(self, step_id: int, output: Any) -> None:
        if step_id in self._outputs:
            raise ValueError(f"Output for step {step_id} already committed")
        self._outputs[step_id] = output

    def has(self, step_id: int) -> bool:
        return step_id in self._outputs

    def get(self, step_id: int) -> Any:
        return self._outputs.get(step_id, UNRESOLVED)

    def set_variable(self, name: str, value: Any) -> None:
        self._variables[name] = value

    @property
    def variables(self) -> dict[str, Any]:
        return dict(self._variables)

    @property
    def step_ids(self) -> list[int]:
        return sorted(self._outputs)

    def snapshot(self) -> dict[str, Any]:
        """Flattened persisted view, ``{"step.<N>": output}``."""
        return {context_key(sid): copy.deepcopy(self._outputs[sid]) for sid in self.step_ids}

    @classmethod
    def from_step_results(cls, results: Iterable[StepResult]) -> ExecutionContext:
        ctx = cls()
        for result in results:
            if result.success and not ctx.has(result.step_id):
                ctx.commit(result.step_id, result.output)
        return ctx

    def resolve_reference(self, reference: str) -> Any:
        ref = parse_reference(reference)
        if ref is None or ref.step_id not in self._outputs:
            return UNRESOLVED
        return walk_path(self._outputs[ref.step_id], ref.path)

    def resolve_value(self, param: ParameterValue) -> Any:
        if param.kind == "literal":
            return param.value
        if param.kind == "reference":
            return self.resolve_reference(param.value)
        if param.kind == "composite":
            return {name: self.resolve_value(member) for name, member in param.value.items()}
        return UNRESOLVED

    def resolve_parameters(self, parameters: dict[str, ParameterValue]) -> dict[str, Any]:
        """Resolve every parameter. Unresolvable references become ``UNRESOLVED``."""
        return {name: self.resolve_value(param) for name, param in parameters.items()}


def find_unresolved(
    parameters: dict[str, ParameterValue], resolved: dict[str, Any]
) -> tuple[str, str] | None:
    """Return ``(parameter, reference)`` for the first reference that failed to resolve."""
    for name, param in parameters.items():
        value = resolved.get(name, UNRESOLVED)
        if param.kind == "reference" and value is UNRESOLVED:
            return name, str(param.value)
        if param.kind == "composite" and isinstance(value, dict):
            inner = find_unresolved(param.value, value)
            if inner is not None:
                return f"{name}.{inner[0]}", inner[1]
    return None
