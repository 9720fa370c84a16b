"""User input provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from stepwise.inputs.schema import FIELD_TYPES, FormSchema


@dataclass
class InputResult:
    values: dict[str, Any] = field(default_factory=dict)
    skipped: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class UserInputProvider(ABC):
    supported_types: tuple[str, ...] = FIELD_TYPES

    def supports_field_type(self, field_type: str) -> bool:
        return field_type in self.supported_types

    @abstractmethod
    async def request_input(
        self, schema: FormSchema, context: dict[str, Any] | None = None
    ) -> InputResult:
        """Collect values for ``schema``. May wait for as long as a human takes."""
        ...
