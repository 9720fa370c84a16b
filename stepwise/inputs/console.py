"""Terminal input provider built on click prompts."""

from __future__ import annotations

import asyncio
from typing import Any

import click

from stepwise.inputs.base import InputResult, UserInputProvider
from stepwise.inputs.schema import FormField, FormSchema
from stepwise.inputs.validation import coerce_value, validate_values


class ConsoleInputProvider(UserInputProvider):
    """Prompts for each field in turn, re-asking until the value is valid."""

    async def request_input(
        self, schema: FormSchema, context: dict[str, Any] | None = None
    ) -> InputResult:
        return await asyncio.to_thread(self._prompt_form, schema)

    def _prompt_form(self, schema: FormSchema) -> InputResult:
        if schema.skippable and click.confirm("Skip this input?", default=False):
            return InputResult(skipped=True)

        values: dict[str, Any] = {}
        for form_field in schema.fields:
            values[form_field.id] = self._prompt_field(form_field)
        return InputResult(values=values)

    def _prompt_field(self, form_field: FormField) -> Any:
        label = form_field.label or form_field.id
        if form_field.description:
            click.echo(click.style(form_field.description, dim=True))
        if form_field.type == "boolean":
            return click.confirm(label, default=bool(form_field.default))

        prompt_type: Any = None
        if form_field.type == "single_select" and form_field.options and form_field.required:
            prompt_type = click.Choice([str(o.value) for o in form_field.options])
        elif form_field.type == "multi_select" and form_field.options:
            choices = ", ".join(str(o.value) for o in form_field.options)
            label = f"{label} (comma-separated: {choices})"

        default = form_field.default
        if default is None and not form_field.required:
            default = ""

        while True:
            raw = click.prompt(label, default=default, type=prompt_type, show_default=bool(default))
            if raw == "" and not form_field.required:
                return None
            try:
                value = coerce_value(form_field, raw)
            except ValueError as e:
                click.echo(click.style(str(e), fg="red"))
                continue
            _, errors = validate_values(FormSchema(fields=[form_field]), {form_field.id: value})
            if not errors:
                return value
            for error in errors:
                click.echo(click.style(error, fg="red"))
