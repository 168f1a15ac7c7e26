"""Schemas for intake form definitions."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


# Text attributes are plain strings in multi-file schemas and
# {language: text} maps in inline-translation schemas until localized.
LocalizedText = str | dict[str, str]
ConditionScalar = bool | int | float | str

CUSTOM_FIELD_PREFIX = "custom_"
OVERRIDABLE_KEYS = ("label", "enabled", "required", "order")

InputFieldType = Literal[
    "text",
    "email",
    "tel",
    "date",
    "textarea",
    "checkbox",
    "medication_list",
    "signature",
]
ChoiceFieldType = Literal["select", "radio", "checkbox_group"]


class FieldOption(BaseModel):
    value: str
    label: LocalizedText

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class FieldCondition(BaseModel):
    """Visibility rule: active when ``field`` equals ``value`` or contains ``contains``."""

    field: str = Field(..., min_length=1, max_length=100)
    value: ConditionScalar | None = None
    contains: ConditionScalar | None = None


class _FieldBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, max_length=100)
    section: str = Field(..., min_length=1, max_length=100)
    order: int = 0
    required: bool = False
    enabled: bool = True
    label: LocalizedText = ""
    placeholder: LocalizedText | None = None
    info: LocalizedText | None = None
    default: ConditionScalar | None = None
    condition: FieldCondition | None = None
    is_custom: bool = False


class InputField(_FieldBase):
    type: InputFieldType


class ChoiceField(_FieldBase):
    type: ChoiceFieldType
    options: list[FieldOption]


class FileField(_FieldBase):
    type: Literal["file"]
    accept: str | None = None


class ButtonField(_FieldBase):
    type: Literal["button"]
    action: str | None = None


FormField = Annotated[
    Union[InputField, ChoiceField, FileField, ButtonField],
    Field(discriminator="type"),
]
form_field_adapter: TypeAdapter[FormField] = TypeAdapter(FormField)

EffectiveFieldMap = dict[str, FormField]


class FormSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, max_length=100)
    label: LocalizedText = ""
    order: int = 0
    condition: FieldCondition | None = None


class FormDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, max_length=100)
    name: LocalizedText = ""
    description: LocalizedText = ""
    version: str = "1.0"
    sections: list[FormSection] = Field(default_factory=list)
    fields: list[FormField] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def _unique_field_ids(self) -> "FormDefinition":
        seen: set[str] = set()
        for field in self.fields:
            if field.id in seen:
                raise ValueError(f"Duplicate field id: {field.id}")
            seen.add(field.id)
        return self


class FormSummary(BaseModel):
    id: str
    name: str
    description: str
    version: str
    format: str
    languages: list[str]
    source: str


class FormPublicRead(BaseModel):
    """Effective form as handed to the renderer."""

    form_id: str
    name: str
    description: str
    version: str
    language: str
    sections: list[FormSection]
    fields: list[FormField]
    form_token: str
