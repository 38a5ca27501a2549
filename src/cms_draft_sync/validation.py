"""Field validation for content items.

Pure and synchronous: the engine only reads the item and its schemas. Each
failing field yields one error; fields inside a repeater are reported as
``fieldName.index.nestedField``.
"""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Sequence
from urllib.parse import urlparse

from .models.content import ContentItem
from .models.schema import (
    ComponentSchema,
    FieldDeclaration,
    FieldType,
    InputType,
    evaluate_condition,
    flatten_fields,
)
from .models.validation import ValidationError

SchemaFor = Callable[[str], ComponentSchema | None]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# (path below the field, message)
FieldIssue = tuple[list[str | int], str]


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class ValidationEngine:
    def __init__(self, *, default_locale: str = "en", today: Callable[[], date] = date.today) -> None:
        self.default_locale = default_locale
        self._today = today

    def validate(self, item: ContentItem, schema_for: SchemaFor) -> list[ValidationError]:
        errors: list[ValidationError] = []
        for component in item.components:
            schema = schema_for(component.schema_name)
            if schema is None:
                continue

            siblings = {
                name: value.effective_value(self.default_locale) for name, value in component.data.items()
            }
            for declaration in schema.data_fields():
                field_value = component.data.get(declaration.name)
                value = field_value.effective_value(self.default_locale) if field_value is not None else None
                for sub_path, message in self._check(declaration, value, siblings):
                    path = ".".join(str(part) for part in [declaration.name, *sub_path])
                    repeater_index = sub_path[0] if sub_path and isinstance(sub_path[0], int) else None
                    errors.append(
                        ValidationError(
                            item_id=item.id,
                            component_id=component.id,
                            component_name=component.display_name,
                            field_path=path,
                            field_label=declaration.display_label,
                            message=message,
                            repeater_field_name=declaration.name if repeater_index is not None else None,
                            repeater_item_index=repeater_index,
                        )
                    )
        return errors

    def validate_many(self, items: Iterable[ContentItem], schema_for: SchemaFor) -> list[ValidationError]:
        errors: list[ValidationError] = []
        for item in items:
            errors.extend(self.validate(item, schema_for))
        return errors

    def _check(
        self,
        declaration: FieldDeclaration,
        value: Any,
        siblings: Mapping[str, Any],
    ) -> list[FieldIssue]:
        if evaluate_condition(declaration.hidden_when, siblings):
            return []

        required = declaration.required or evaluate_condition(declaration.required_when, siblings)
        if _is_empty(value):
            if required:
                return [([], f"{declaration.display_label} is required")]
            return []

        if declaration.type == FieldType.repeater:
            return self._check_repeater(declaration, value, required)

        message = self._check_scalar(declaration, value)
        return [([], message)] if message else []

    def _check_scalar(self, declaration: FieldDeclaration, value: Any) -> str | None:
        kind = declaration.type
        if kind in (FieldType.input, FieldType.textarea):
            return self._check_text(declaration, value)
        if kind == FieldType.richtext:
            return self._check_text(declaration, value) if isinstance(value, str) else None
        if kind == FieldType.number:
            return self._check_number(declaration, value)
        if kind == FieldType.select:
            if declaration.options and value not in declaration.options:
                return "Invalid option selected"
            return None
        if kind == FieldType.switch:
            return None if isinstance(value, bool) else "Must be true or false"
        if kind == FieldType.date:
            return self._check_date(declaration, value)
        return None

    def _check_text(self, declaration: FieldDeclaration, value: Any) -> str | None:
        if not isinstance(value, str):
            return "Must be text"
        if declaration.input_type == InputType.email and not _EMAIL_RE.match(value):
            return "Please enter a valid email address"
        if declaration.input_type == InputType.url:
            parsed = urlparse(value)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                return "Please enter a valid URL"
        if declaration.min_length and len(value) < declaration.min_length:
            return f"Minimum {declaration.min_length} characters required"
        if declaration.max_length and len(value) > declaration.max_length:
            return f"Maximum {declaration.max_length} characters allowed"
        if declaration.pattern and not re.fullmatch(declaration.pattern, value):
            return "Invalid format"
        return None

    def _check_number(self, declaration: FieldDeclaration, value: Any) -> str | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            return "Must be a number"
        if declaration.minimum is not None and value < declaration.minimum:
            return f"Must be at least {declaration.minimum:g}"
        if declaration.maximum is not None and value > declaration.maximum:
            return f"Must be at most {declaration.maximum:g}"
        return None

    def _check_date(self, declaration: FieldDeclaration, value: Any) -> str | None:
        if isinstance(value, Mapping):
            # date range: {"start": ..., "end": ...}
            start = self._parse_date(value.get("start"))
            end = self._parse_date(value.get("end"))
            if start is None or end is None:
                return "Please select a complete date range"
            if end < start:
                return "End date must be after start date"
            return self._check_date_bounds(declaration, start) or self._check_date_bounds(declaration, end)

        parsed = self._parse_date(value)
        if parsed is None:
            return "Please enter a valid date"
        return self._check_date_bounds(declaration, parsed)

    def _check_date_bounds(self, declaration: FieldDeclaration, value: date) -> str | None:
        minimum = self._resolve_bound(declaration.min_date)
        maximum = self._resolve_bound(declaration.max_date)
        if minimum is not None and value < minimum:
            return f"Date must be on or after {minimum.isoformat()}"
        if maximum is not None and value > maximum:
            return f"Date must be on or before {maximum.isoformat()}"
        return None

    def _resolve_bound(self, bound: str | None) -> date | None:
        if bound is None:
            return None
        if bound == "today":
            return self._today()
        return self._parse_date(bound)

    @staticmethod
    def _parse_date(value: Any) -> date | None:
        if not isinstance(value, str) or len(value) < 10:
            return None
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None

    def _check_repeater(self, declaration: FieldDeclaration, value: Any, required: bool) -> list[FieldIssue]:
        if not isinstance(value, Sequence) or isinstance(value, str):
            return [([], "Must be a list of items")]

        count = len(value)
        if declaration.min_items is not None and count < declaration.min_items:
            return [([], f"At least {declaration.min_items} item(s) required")]
        if required and count == 0:
            return [([], f"{declaration.display_label} is required")]
        if declaration.max_items is not None and count > declaration.max_items:
            return [([], f"At most {declaration.max_items} item(s) allowed")]

        nested_fields = flatten_fields(declaration.fields)
        issues: list[FieldIssue] = []
        for index, entry in enumerate(value):
            if not isinstance(entry, Mapping):
                issues.append(([index], "Invalid item"))
                continue
            resolved = {
                nested.name: self._resolve_nested(nested, entry.get(nested.name)) for nested in nested_fields
            }
            for nested in nested_fields:
                for sub_path, message in self._check(nested, resolved[nested.name], resolved):
                    issues.append(([index, nested.name, *sub_path], message))
        return issues

    def _resolve_nested(self, declaration: FieldDeclaration, raw: Any) -> Any:
        # Nested repeater values are stored bare; the declaration says whether one is per-locale
        if declaration.translatable and isinstance(raw, Mapping) and raw:
            if self.default_locale in raw:
                return raw[self.default_locale]
            return next(iter(raw.values()))
        return raw


__all__ = ["ValidationEngine", "SchemaFor"]
