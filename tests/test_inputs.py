"""Tests for form schemas and input validation."""

import pytest
from unittest.mock import patch

from stepwise.inputs.console import ConsoleInputProvider
from stepwise.inputs.schema import FieldOption, FieldValidation, FormField, FormSchema
from stepwise.inputs.validation import coerce_value, validate_values


class TestCoerce:
    @pytest.mark.parametrize("raw, expected", [("4", 4), ("2.5", 2.5), (7, 7), (" 10 ", 10)])
    def test_number(self, raw, expected):
        assert coerce_value(FormField(id="n", type="number"), raw) == expected

    def test_bad_number(self):
        with pytest.raises(ValueError, match="Invalid number"):
            coerce_value(FormField(id="n", type="number"), "four")

    def test_bool_is_not_a_number(self):
        with pytest.raises(ValueError):
            coerce_value(FormField(id="n", type="number"), True)

    @pytest.mark.parametrize("raw, expected", [("yes", True), ("0", False), (True, True)])
    def test_boolean(self, raw, expected):
        assert coerce_value(FormField(id="b", type="boolean"), raw) is expected

    def test_date(self):
        assert coerce_value(FormField(id="d", type="date"), "2024-03-01T10:00:00") == "2024-03-01"

    def test_multi_select_from_text(self):
        assert coerce_value(FormField(id="m", type="multi_select"), "red, blue,") == ["red", "blue"]


class TestValidate:
    def test_required_and_default(self):
        schema = FormSchema(fields=[
            FormField(id="name", label="Name", required=True),
            FormField(id="count", type="number", default=1),
        ])
        values, errors = validate_values(schema, {"name": ""})
        assert errors == ["Name: is required"]
        assert values["count"] == 1

    def test_range_and_length(self):
        schema = FormSchema(fields=[
            FormField(id="age", type="number", validation=FieldValidation(min=0, max=120)),
            FormField(id="code", validation=FieldValidation(min_length=3, pattern=r"[A-Z]+")),
        ])
        _, errors = validate_values(schema, {"age": "130", "code": "ab"})
        assert "age: must be <= 120" in errors
        assert "code: must be at least 3 characters" in errors
        assert "code: does not match [A-Z]+" in errors

    def test_custom_error_message(self):
        schema = FormSchema(fields=[
            FormField(id="age", type="number", validation=FieldValidation(min=18, error_message="Too young")),
        ])
        assert validate_values(schema, {"age": 12})[1] == ["Too young"]

    def test_options(self):
        schema = FormSchema(fields=[
            FormField(id="c", type="multi_select", options=[FieldOption(value="red"), FieldOption(value="blue")]),
        ])
        values, errors = validate_values(schema, {"c": "red,green"})
        assert errors == ["c: invalid option(s) green"]
        values, errors = validate_values(schema, {"c": ["blue"]})
        assert errors == []
        assert values["c"] == ["blue"]

    def test_undeclared_keys_pass_through(self):
        values, errors = validate_values(FormSchema(fields=[]), {"extra": 1})
        assert values == {"extra": 1}
        assert errors == []


class TestSchemaWire:
    def test_from_dict(self):
        schema = FormSchema.from_dict({
            "version": "1.0",
            "fields": [{
                "id": "color",
                "type": "single_select",
                "label": "Color",
                "required": True,
                "defaultValue": "red",
                "config": {"options": [{"value": "red", "label": "Red"}]},
                "validation": {"range": {"min": 1}},
            }],
            "config": {"skippable": True},
        })
        field = schema.fields[0]
        assert schema.skippable
        assert field.default == "red"
        assert field.options[0].label == "Red"
        assert field.validation.min == 1
        assert schema.field_types == ["single_select"]

    def test_to_dict_uses_wire_names(self):
        data = FormField(id="n", type="number", default=3).to_dict()
        assert data["defaultValue"] == 3
        assert data["label"] == "n"


class TestConsoleProvider:
    async def test_prompts_each_field(self):
        schema = FormSchema(fields=[
            FormField(id="n", type="number", required=True),
            FormField(id="ok", type="boolean"),
        ])
        with patch("click.prompt", side_effect=["abc", "5"]), patch("click.confirm", return_value=True), \
                patch("click.echo"):
            result = await ConsoleInputProvider().request_input(schema)
        assert result.values == {"n": 5, "ok": True}
        assert result.skipped is False

    async def test_skip(self):
        schema = FormSchema(fields=[FormField(id="n")], skippable=True)
        with patch("click.confirm", return_value=True):
            result = await ConsoleInputProvider().request_input(schema)
        assert result.skipped

    def test_supports_all_builtin_types(self):
        provider = ConsoleInputProvider()
        assert provider.supports_field_type("date")
        assert not provider.supports_field_type("file_upload")
