"""Exception taxonomy shared by the planner, executor and session manager."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class OrchestratorError(Exception):
    """Base class for every error raised by stepwise."""

    code = "ORCHESTRATOR_ERROR"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# --- Planning ---


class PlanValidationError(OrchestratorError):
    code = "PLAN_VALIDATION_ERROR"

    def __init__(self, reason: str, **details: Any) -> None:
        super().__init__(f"Plan validation failed: {reason}", **details)
        self.reason = reason


class PlanParseError(OrchestratorError):
    code = "PLAN_PARSE_ERROR"


class LLMClientError(OrchestratorError):
    code = "LLM_CLIENT_ERROR"


# --- Execution ---


class FunctionNotFoundError(OrchestratorError):
    code = "FUNCTION_NOT_FOUND"

    def __init__(self, function_name: str, available: list[str] | None = None) -> None:
        super().__init__(
            f"Function '{function_name}' not found",
            function_name=function_name,
            available=available or [],
        )
        self.function_name = function_name


class FunctionExecutionError(OrchestratorError):
    code = "FUNCTION_EXECUTION_ERROR"

    def __init__(
        self, function_name: str, parameters: dict[str, Any], cause: BaseException | str
    ) -> None:
        reason = str(cause) or type(cause).__name__
        super().__init__(
            f"Function '{function_name}' execution failed: {reason}",
            function_name=function_name,
            parameters=parameters,
        )
        self.function_name = function_name
        self.parameters = parameters
        if isinstance(cause, BaseException):
            self.__cause__ = cause


class ParameterResolutionError(OrchestratorError):
    code = "PARAMETER_RESOLUTION_ERROR"

    def __init__(self, parameter: str, reference: str) -> None:
        super().__init__(
            f"Parameter '{parameter}' could not be resolved from '{reference}'",
            parameter=parameter,
            reference=reference,
        )


class ExecutionTimeoutError(OrchestratorError):
    code = "EXECUTION_TIMEOUT"

    def __init__(self, step_id: int, label: str, timeout_ms: int) -> None:
        super().__init__(
            f"Step {step_id} ({label}) execution timed out after {timeout_ms}ms",
            step_id=step_id,
            label=label,
            timeout_ms=timeout_ms,
        )


class UnsupportedFieldTypeError(OrchestratorError):
    code = "UNSUPPORTED_FIELD_TYPE"

    def __init__(self, step_id: int, field_types: list[str]) -> None:
        super().__init__(
            f"Step {step_id} requests unsupported field type(s): {', '.join(field_types)}",
            step_id=step_id,
            field_types=field_types,
        )


class InputRequestError(OrchestratorError):
    """The input provider itself failed (closed stdin, aborted prompt)."""

    code = "INPUT_REQUEST_ERROR"

    def __init__(self, step_id: int, cause: BaseException) -> None:
        reason = str(cause) or type(cause).__name__
        super().__init__(
            f"Input request for step {step_id} failed: {reason}",
            step_id=step_id,
        )
        self.step_id = step_id
        self.__cause__ = cause


class InputValidationError(OrchestratorError):
    code = "INPUT_VALIDATION_ERROR"

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid input: " + "; ".join(errors), errors=errors)
        self.errors = errors


# --- Sessions ---


class SessionError(OrchestratorError):
    code = "SESSION_ERROR"


class SessionNotFoundError(SessionError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", session_id=session_id)


class InvalidSessionStateError(SessionError):
    code = "INVALID_SESSION_STATE"

    def __init__(self, session_id: str, status: str, action: str, expected: str) -> None:
        super().__init__(
            f"Cannot {action} session with status: {status}. {expected}",
            session_id=session_id,
            status=status,
            action=action,
        )
        self.status = status


class ConcurrentUpdateError(SessionError):
    code = "CONCURRENT_UPDATE"

    def __init__(self, session_id: str, expected_version: int) -> None:
        super().__init__(
            f"Session {session_id} was modified concurrently (expected version {expected_version})",
            session_id=session_id,
            expected_version=expected_version,
        )
