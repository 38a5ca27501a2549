from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel, Field


class ValidationError(BaseModel):
    """One failing field. Any of these blocks a commit."""

    item_id: str
    field_path: str
    message: str
    component_id: str | None = None
    component_name: str | None = None
    field_label: str | None = None
    repeater_field_name: str | None = None
    repeater_item_index: int | None = None


class ValidationResult(BaseModel):
    error_list: list[ValidationError] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.error_list

    @property
    def errors_by_component(self) -> dict[str, dict[str, str]]:
        grouped: dict[str, dict[str, str]] = {}
        for error in self.error_list:
            bucket = grouped.setdefault(error.component_id or error.item_id, {})
            bucket[error.field_path] = error.message
        return grouped

    @classmethod
    def from_errors(cls, errors: Sequence[ValidationError]) -> "ValidationResult":
        return cls(error_list=list(errors))


__all__ = ["ValidationError", "ValidationResult"]
