"""Coercion and validation of submitted form values."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from stepwise.inputs.schema import FormField, FormSchema

_TRUE_WORDS = {"true", "1", "yes", "y", "on"}
_FALSE_WORDS = {"false", "0", "no", "n", "off"}


def coerce_value(form_field: FormField, raw: Any) -> Any:
    """Convert a raw (often string) value to the field's type.

    Raises ``ValueError`` when the value cannot be converted.
    """
    if raw is None:
        return None
    kind = form_field.type
    if kind == "number":
        if isinstance(raw, bool):
            raise ValueError(f"Invalid number value for field '{form_field.id}': {raw!r}")
        if isinstance(raw, (int, float)):
            return raw
        text = str(raw).strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise ValueError(f"Invalid number value for field '{form_field.id}': {raw!r}") from None
    if kind == "boolean":
        if isinstance(raw, bool):
            return raw
        word = str(raw).strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError(f"Invalid boolean value for field '{form_field.id}': {raw!r}")
    if kind == "date":
        if isinstance(raw, datetime):
            return raw.date().isoformat()
        if isinstance(raw, date):
            return raw.isoformat()
        try:
            return date.fromisoformat(str(raw).strip()[:10]).isoformat()
        except ValueError:
            raise ValueError(f"Invalid date value for field '{form_field.id}': {raw!r}") from None
    if kind == "multi_select":
        if isinstance(raw, (list, tuple)):
            return list(raw)
        return [part.strip() for part in str(raw).split(",") if part.strip()]
    return raw


def _check_field(form_field: FormField, value: Any) -> list[str]:
    errors: list[str] = []
    rules = form_field.validation
    label = form_field.label or form_field.id

    if form_field.options:
        allowed = {str(o.value) for o in form_field.options}
        chosen = value if isinstance(value, list) else [value]
        bad = [str(v) for v in chosen if str(v) not in allowed]
        if bad:
            errors.append(f"{label}: invalid option(s) {', '.join(bad)}")

    if rules is None:
        return errors

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if rules.min is not None and value < rules.min:
            errors.append(rules.error_message or f"{label}: must be >= {rules.min}")
        if rules.max is not None and value > rules.max:
            errors.append(rules.error_message or f"{label}: must be <= {rules.max}")
    if isinstance(value, str):
        if rules.min_length is not None and len(value) < rules.min_length:
            errors.append(rules.error_message or f"{label}: must be at least {rules.min_length} characters")
        if rules.max_length is not None and len(value) > rules.max_length:
            errors.append(rules.error_message or f"{label}: must be at most {rules.max_length} characters")
        if rules.pattern is not None and not re.fullmatch(rules.pattern, value):
            errors.append(rules.error_message or f"{label}: does not match {rules.pattern}")
    return errors


def validate_values(schema: FormSchema, values: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Coerce ``values`` against ``schema``.

    Returns the coerced mapping and a list of human-readable errors (empty
    when the submission is valid). Keys not declared by the schema pass
    through untouched.
    """
    coerced = dict(values)
    errors: list[str] = []
    for form_field in schema.fields:
        raw = values.get(form_field.id)
        if raw is None or raw == "":
            if form_field.default is not None:
                coerced[form_field.id] = form_field.default
            elif form_field.required:
                errors.append(f"{form_field.label or form_field.id}: is required")
            continue
        try:
            value = coerce_value(form_field, raw)
        except ValueError as e:
            errors.append(str(e))
            continue
        coerced[form_field.id] = value
        errors.extend(_check_field(form_field, value))
    return coerced, errors
