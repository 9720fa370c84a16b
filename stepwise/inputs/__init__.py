"""User input: form schemas, validation and providers."""

from stepwise.inputs.base import InputResult, UserInputProvider
from stepwise.inputs.schema import FIELD_TYPES, FieldOption, FieldValidation, FormField, FormSchema
from stepwise.inputs.validation import coerce_value, validate_values

__all__ = [
    "FIELD_TYPES",
    "FieldOption",
    "FieldValidation",
    "FormField",
    "FormSchema",
    "InputResult",
    "UserInputProvider",
    "coerce_value",
    "validate_values",
]
