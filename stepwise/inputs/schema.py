"""Form description used by user-input steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

FIELD_TYPES = ("text", "number", "boolean", "date", "single_select", "multi_select")


@dataclass
class FieldValidation:
    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.min is not None or self.max is not None:
            data["range"] = {"min": self.min, "max": self.max}
        if self.min_length is not None or self.max_length is not None:
            data["length"] = {"min": self.min_length, "max": self.max_length}
        if self.pattern is not None:
            data["pattern"] = self.pattern
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldValidation:
        value_range = data.get("range") or {}
        length = data.get("length") or {}
        return cls(
            min=value_range.get("min"),
            max=value_range.get("max"),
            min_length=length.get("min"),
            max_length=length.get("max"),
            pattern=data.get("pattern"),
            error_message=data.get("errorMessage"),
        )


@dataclass
class FieldOption:
    value: str | int | float
    label: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"value": self.value, "label": self.label or str(self.value)}
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class FormField:
    id: str
    type: str = "text"
    label: str = ""
    description: str = ""
    required: bool = False
    default: Any = None
    validation: FieldValidation | None = None
    options: list[FieldOption] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "label": self.label or self.id,
            "required": self.required,
        }
        if self.description:
            data["description"] = self.description
        if self.default is not None:
            data["defaultValue"] = self.default
        if self.validation is not None:
            data["validation"] = self.validation.to_dict()
        if self.options:
            data["config"] = {"options": [o.to_dict() for o in self.options]}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FormField:
        config = data.get("config") or {}
        raw_options = data.get("options") or config.get("options") or []
        return cls(
            id=data["id"],
            type=data.get("type", "text"),
            label=data.get("label", ""),
            description=data.get("description", ""),
            required=bool(data.get("required", False)),
            default=data.get("defaultValue"),
            validation=FieldValidation.from_dict(data["validation"]) if data.get("validation") else None,
            options=[
                FieldOption(
                    value=o["value"],
                    label=o.get("label", ""),
                    description=o.get("description", ""),
                )
                for o in raw_options
            ],
        )


@dataclass
class FormSchema:
    fields: list[FormField] = field(default_factory=list)
    skippable: bool = False

    @property
    def field_types(self) -> list[str]:
        return list(dict.fromkeys(f.type for f in self.fields))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"version": "1.0", "fields": [f.to_dict() for f in self.fields]}
        if self.skippable:
            data["config"] = {"skippable": True}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FormSchema:
        config = data.get("config") or {}
        return cls(
            fields=[FormField.from_dict(f) for f in data.get("fields") or []],
            skippable=bool(config.get("skippable", False)),
        )
