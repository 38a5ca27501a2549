from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Mapping, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

SiblingPredicate = Callable[[Mapping[str, Any]], bool]


class FieldType(str, Enum):
    input = "input"
    textarea = "textarea"
    richtext = "richtext"
    number = "number"
    select = "select"
    switch = "switch"
    date = "date"
    repeater = "repeater"
    group = "group"


class InputType(str, Enum):
    text = "text"
    email = "email"
    url = "url"


class FieldCondition(BaseModel):
    """Declarative rule over a sibling field's value."""

    field: str
    equals: Any = None
    not_equals: Any = None

    @model_validator(mode="after")
    def _one_comparison(self) -> "FieldCondition":
        if self.equals is None and self.not_equals is None:
            raise ValueError("a condition needs 'equals' or 'not_equals'")
        return self

    def matches(self, siblings: Mapping[str, Any]) -> bool:
        value = siblings.get(self.field)
        if self.equals is not None:
            return value == self.equals
        return value != self.not_equals


Condition = Union[FieldCondition, SiblingPredicate]


def evaluate_condition(condition: Condition | None, siblings: Mapping[str, Any]) -> bool:
    if condition is None:
        return False
    if isinstance(condition, FieldCondition):
        return condition.matches(siblings)
    return bool(condition(siblings))


class FieldDeclaration(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: FieldType
    label: str | None = None
    required: bool = False
    translatable: bool = False
    input_type: InputType = InputType.text
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    options: list[str] = Field(default_factory=list)
    min_date: str | None = None
    max_date: str | None = None
    min_items: int | None = None
    max_items: int | None = None
    fields: list["FieldDeclaration"] = Field(default_factory=list)
    required_when: Condition | None = None
    hidden_when: Condition | None = None

    @property
    def display_label(self) -> str:
        return self.label or self.name


class ComponentSchema(BaseModel):
    name: str
    key: str | None = None
    description: str | None = None
    fields: list[FieldDeclaration] = Field(default_factory=list)

    def data_fields(self) -> list[FieldDeclaration]:
        return flatten_fields(self.fields)


def flatten_fields(fields: Sequence[FieldDeclaration]) -> list[FieldDeclaration]:
    """Expand layout-only groups so every data field sits at component level."""
    flat: list[FieldDeclaration] = []
    for declaration in fields:
        if declaration.type == FieldType.group:
            flat.extend(flatten_fields(declaration.fields))
        else:
            flat.append(declaration)
    return flat


FieldDeclaration.model_rebuild()


__all__ = [
    "FieldType",
    "InputType",
    "FieldCondition",
    "Condition",
    "SiblingPredicate",
    "evaluate_condition",
    "FieldDeclaration",
    "ComponentSchema",
    "flatten_fields",
]
