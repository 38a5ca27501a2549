from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Protocol

from .models.schema import ComponentSchema


class SchemaLookup(Protocol):
    def __call__(self, schema_name: str) -> ComponentSchema | None:
        ...


class SchemaRegistry:
    """Component schemas by name; a component may also refer to a schema by its key."""

    def __init__(self, schemas: Iterable[ComponentSchema] = ()) -> None:
        self._schemas: dict[str, ComponentSchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: ComponentSchema) -> None:
        self._schemas[schema.name] = schema

    def get(self, schema_name: str) -> ComponentSchema | None:
        schema = self._schemas.get(schema_name)
        if schema is not None:
            return schema
        for candidate in self._schemas.values():
            if candidate.key == schema_name:
                return candidate
        return None

    def __call__(self, schema_name: str) -> ComponentSchema | None:
        return self.get(schema_name)

    def names(self) -> list[str]:
        return sorted(self._schemas)

    @classmethod
    def from_file(cls, path: Path) -> "SchemaRegistry":
        if not path.exists():
            raise FileNotFoundError(f"Schema registry not found: {path}")
        with path.open("r", encoding="utf-8") as fp:
            data = json.load(fp)
        raw_schemas = data.get("schemas", []) if isinstance(data, dict) else data
        return cls(ComponentSchema.model_validate(raw) for raw in raw_schemas)


__all__ = ["SchemaRegistry", "SchemaLookup"]
