"""Planning prompt and response parsing."""

from __future__ import annotations

import json
import re
from typing import Any
from uuid import uuid4

from stepwise.errors import PlanParseError
from stepwise.planner.models import (
    PLAN_STATUSES,
    ExecutionPlan,
    MissingFunction,
    step_from_dict,
    utc_now,
)

_PLAN_PROMPT = """\
You are a function orchestration planner. Given the user's request, work out \
the sequence of function calls that fulfils it, using only the functions listed \
below.

## Available functions

{functions}

## User request

{request}

## Task

1. If the available functions can fulfil the request, produce a concrete call plan.
2. If a value only the user can supply is missing, add a user_input step that asks \
for it, placed right before the first step that needs it.
3. If a required function does not exist, list it under missingFunctions with a \
suggested definition and set status to "incomplete".
"""

_EXAMPLES = """\
## Examples

### Example 1: chaining results
Request: "compute (3 + 5) * 2"
```json
{
  "steps": [
    {"stepId": 1, "type": "function_call", "functionName": "add",
     "description": "add 3 and 5",
     "parameters": {"a": {"type": "literal", "value": 3}, "b": {"type": "literal", "value": 5}}},
    {"stepId": 2, "type": "function_call", "functionName": "multiply",
     "description": "double the sum",
     "parameters": {"a": {"type": "reference", "value": "step.1.result"}, "b": {"type": "literal", "value": 2}},
     "dependsOn": [1]}
  ],
  "status": "executable"
}
```

### Example 2: asking the user for a missing value
Request: "add 10 to a number I choose"
```json
{
  "steps": [
    {"stepId": 1, "type": "user_input", "description": "ask for the number",
     "schema": {"version": "1.0", "fields": [
       {"id": "value", "type": "number", "label": "Number", "required": true}]}},
    {"stepId": 2, "type": "function_call", "functionName": "add",
     "description": "add 10 to the chosen number",
     "parameters": {"a": {"type": "reference", "value": "step.1.value"}, "b": {"type": "literal", "value": 10}},
     "dependsOn": [1]}
  ],
  "status": "executable"
}
```

### Example 3: a required function does not exist
Request: "what is the square root of 16"
```json
{
  "steps": [
    {"stepId": 1, "type": "function_call", "functionName": "sqrt",
     "description": "square root of 16",
     "parameters": {"x": {"type": "literal", "value": 16}}}
  ],
  "missingFunctions": [
    {"name": "sqrt", "description": "square root of a number",
     "suggestedParameters": [{"name": "x", "type": "number", "description": "input value"}],
     "suggestedReturns": {"type": "number", "description": "the square root"}}
  ],
  "status": "incomplete"
}
```

### Example 4: user input in the middle of a sequence
Request: "multiply 4 by 5, then subtract a number I pick from the product"
```json
{
  "steps": [
    {"stepId": 1, "type": "function_call", "functionName": "multiply",
     "description": "multiply 4 by 5",
     "parameters": {"a": {"type": "literal", "value": 4}, "b": {"type": "literal", "value": 5}}},
    {"stepId": 2, "type": "user_input", "description": "ask which number to subtract",
     "schema": {"version": "1.0", "fields": [
       {"id": "amount", "type": "number", "label": "Amount to subtract", "required": true}]}},
    {"stepId": 3, "type": "function_call", "functionName": "subtract",
     "description": "subtract the chosen amount from the product",
     "parameters": {"a": {"type": "reference", "value": "step.1.result"},
                    "b": {"type": "reference", "value": "step.2.amount"}},
     "dependsOn": [1, 2]}
  ],
  "status": "executable"
}
```
"""

_FORMAT_RULES = """\
## Output format

Respond with ONLY a JSON object of the form
{"steps": [...], "missingFunctions": [...], "status": "executable" | "incomplete"}.

Rules:
- Every step has an integer "stepId" (1, 2, 3, ... in order), a "type" of \
"function_call", "user_input" or "condition", and a "description".
- function_call steps carry "functionName", "parameters" and optionally "dependsOn".
- Each parameter is {"type": "literal", "value": ...} or \
{"type": "reference", "value": "step.<stepId>.<path>"}.
- A reference may only point at an earlier step. "step.N.result" is the whole \
output of step N; "step.N.<field>" reads one field of it (for user_input steps, \
the id of a form field).
- user_input steps carry a "schema" with "fields"; field types are text, number, \
boolean, date, single_select and multi_select.
- condition steps carry "condition" (e.g. "step.1.result > 10"), "onTrue" and \
"onFalse" (lists of later step ids).
- status is "executable" only when every function used is available; otherwise \
"incomplete" with missingFunctions filled in.
"""


def build_plan_prompt(user_request: str, functions_description: str) -> str:
    header = _PLAN_PROMPT.format(
        functions=functions_description or "(no functions registered)",
        request=user_request,
    )
    return "\n".join([header, _EXAMPLES, _FORMAT_RULES])


_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def parse_plan_response(text: str) -> dict[str, Any]:
    """Extract and decode the JSON object from a model reply.

    Raises :class:`PlanParseError` if no valid object with a ``steps`` list
    and a known ``status`` can be found.
    """
    m = _JSON_FENCE_RE.search(text)
    candidate = m.group(1) if m else text.strip()
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        # Prose around a bare object: fall back to the outermost braces
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise PlanParseError("Could not parse model response as JSON") from None
        try:
            data = json.loads(candidate[start : end + 1])
        except json.JSONDecodeError as e:
            raise PlanParseError(f"Could not parse model response as JSON: {e.msg}") from None

    if not isinstance(data, dict):
        raise PlanParseError("Model response must be a JSON object")
    if not isinstance(data.get("steps"), list):
        raise PlanParseError("Model response is missing a 'steps' list")
    if data.get("status") not in PLAN_STATUSES:
        raise PlanParseError(f"Unknown plan status: {data.get('status')!r}")
    return data


def plan_from_response(data: dict[str, Any], user_request: str) -> ExecutionPlan:
    steps = []
    for raw in data["steps"]:
        if not isinstance(raw, dict):
            raise PlanParseError("Each step must be a JSON object")
        try:
            steps.append(step_from_dict(raw))
        except KeyError as e:
            raise PlanParseError(
                f"Step {raw.get('stepId', '?')} is missing required field {e.args[0]!r}"
            ) from None
        except (TypeError, ValueError) as e:
            raise PlanParseError(f"Invalid step {raw.get('stepId', '?')}: {e}") from None

    try:
        missing = [MissingFunction.from_dict(m) for m in data.get("missingFunctions") or []]
    except (KeyError, TypeError) as e:
        raise PlanParseError(f"Invalid missingFunctions entry: {e}") from None

    return ExecutionPlan(
        id=f"plan-{uuid4().hex[:8]}",
        user_request=user_request,
        steps=steps,
        status=data["status"],
        missing_functions=missing,
        created_at=utc_now(),
    )
