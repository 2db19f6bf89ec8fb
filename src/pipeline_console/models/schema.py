"""Stage configuration schema models.

A stage schema (GET /stages/{name}/config) describes each configuration field
with a UI hint. The hint selects one of a closed set of field kinds, modelled
here as a discriminated union on ``ui_type`` so consumers dispatch with an
exhaustive ``match`` instead of comparing strings.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, assert_never

from pydantic import BaseModel, Field, model_validator

from pipeline_console.errors import FieldValueError

FIELD_KINDS: frozenset[str] = frozenset(
    {"text", "number", "slider", "checkbox", "select", "multiselect"}
)

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


class _FieldBase(BaseModel):
    """Metadata shared by every field kind."""

    name: str
    type: str = "string"
    python_type: str = ""
    default: Any = None
    required: bool = False
    optional: bool = True
    description: str = ""
    category: str = "general"
    is_inherited: bool = False
    placeholder: str | None = None
    recommended: Any = None


class TextField(_FieldBase):
    ui_type: Literal["text"] = "text"


class NumberField(_FieldBase):
    ui_type: Literal["number"] = "number"
    min: float | None = None
    max: float | None = None
    step: float | None = None


class SliderField(_FieldBase):
    ui_type: Literal["slider"] = "slider"
    min: float | None = None
    max: float | None = None
    step: float | None = None


class CheckboxField(_FieldBase):
    ui_type: Literal["checkbox"] = "checkbox"


class SelectField(_FieldBase):
    ui_type: Literal["select"] = "select"
    options: list[str] = Field(default_factory=list)


class MultiSelectField(_FieldBase):
    ui_type: Literal["multiselect"] = "multiselect"
    options: list[str] = Field(default_factory=list)


ConfigField = Annotated[
    TextField | NumberField | SliderField | CheckboxField | SelectField | MultiSelectField,
    Field(discriminator="ui_type"),
]


class Category(BaseModel):
    """A named group of fields shown together."""

    name: str
    fields: list[str] = Field(default_factory=list)
    field_count: int = 0


class StageConfigSchema(BaseModel):
    """Field metadata for one stage's configuration object."""

    stage_name: str
    config_class: str = ""
    description: str = ""
    fields: list[ConfigField] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    field_count: int = 0

    @model_validator(mode="before")
    @classmethod
    def _default_unknown_ui_types(cls, data: Any) -> Any:
        """Treat missing or unrecognised UI hints as plain text fields."""
        if not isinstance(data, dict) or not isinstance(data.get("fields"), list):
            return data
        fields = []
        for raw in data["fields"]:
            if isinstance(raw, dict) and raw.get("ui_type") not in FIELD_KINDS:
                raw = {**raw, "ui_type": "text"}
            fields.append(raw)
        return {**data, "fields": fields}

    def get_field(self, name: str) -> ConfigField | None:
        """Return the field named ``name``, or None."""
        for field in self.fields:
            if field.name == name:
                return field
        return None


def _parse_number(field: NumberField | SliderField, raw: str) -> int | float:
    text = raw.strip()
    try:
        value: int | float = int(text) if field.type == "integer" else float(text)
    except ValueError as e:
        raise FieldValueError(field.name, f"expected {field.type}, got '{raw}'") from e

    if field.min is not None and value < field.min:
        raise FieldValueError(field.name, f"{value} is below minimum {field.min:g}")
    if field.max is not None and value > field.max:
        raise FieldValueError(field.name, f"{value} is above maximum {field.max:g}")
    return value


def _check_option(field: SelectField | MultiSelectField, value: str) -> str:
    if field.options and value not in field.options:
        raise FieldValueError(
            field.name, f"'{value}' is not one of {sorted(field.options)}"
        )
    return value


def parse_field_input(field: ConfigField, raw: str) -> Any:
    """Convert text input (CLI flag, form value) to the field's value type.

    Args:
        field: Schema entry for the target field.
        raw: Text as typed by the user.

    Returns:
        The converted value.

    Raises:
        FieldValueError: If the text is unparsable, out of bounds or not an
            allowed option.
    """
    match field:
        case TextField():
            return raw
        case NumberField() | SliderField():
            return _parse_number(field, raw)
        case CheckboxField():
            word = raw.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            raise FieldValueError(field.name, f"expected a boolean, got '{raw}'")
        case SelectField():
            return _check_option(field, raw.strip())
        case MultiSelectField():
            items = [item.strip() for item in raw.split(",") if item.strip()]
            return [_check_option(field, item) for item in items]
        case _:
            assert_never(field)
