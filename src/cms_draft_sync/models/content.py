from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentKind(str, Enum):
    page = "page"
    globals = "globals"


class ItemKey(BaseModel):
    """Identity of a content document: ``(kind, id)``."""

    model_config = ConfigDict(frozen=True)

    kind: ContentKind
    id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"

    @classmethod
    def page(cls, page_id: str) -> "ItemKey":
        return cls(kind=ContentKind.page, id=page_id)

    @classmethod
    def globals(cls) -> "ItemKey":
        return cls(kind=ContentKind.globals, id="globals")

    @classmethod
    def parse(cls, raw: str) -> "ItemKey":
        kind, sep, item_id = raw.partition(":")
        if not sep or not item_id:
            raise ValueError(f"Malformed item key: {raw!r}")
        return cls(kind=ContentKind(kind), id=item_id)


class Scalar(BaseModel):
    tag: Literal["scalar"] = "scalar"
    field_type: str = "unknown"
    value: Any = None
    translatable: bool = False

    def effective_value(self, default_locale: str) -> Any:
        return self.value

    def resolve(self, locale: str) -> Any:
        return self.value

    def to_stored(self) -> dict[str, Any]:
        return {"type": self.field_type, "translatable": self.translatable, "value": self.value}


class TranslationMap(BaseModel):
    tag: Literal["translation"] = "translation"
    field_type: str = "unknown"
    values: dict[str, Any]

    @field_validator("values")
    @classmethod
    def _at_least_one_locale(cls, values: dict[str, Any]) -> dict[str, Any]:
        if not values:
            raise ValueError("a translation map needs at least one locale")
        return values

    def resolve(self, locale: str) -> Any:
        """Value for ``locale``, else the first locale present (insertion order)."""
        if locale in self.values:
            return self.values[locale]
        return next(iter(self.values.values()))

    def effective_value(self, default_locale: str) -> Any:
        return self.resolve(default_locale)

    def to_stored(self) -> dict[str, Any]:
        return {"type": self.field_type, "translatable": True, "value": dict(self.values)}


class InternalLink(BaseModel):
    tag: Literal["internal_link"] = "internal_link"
    field_type: str = "select"
    path: str

    def resolve(self, locale: str) -> str:
        return f"/{locale}{self.path}"

    def effective_value(self, default_locale: str) -> str:
        return self.path

    def to_stored(self) -> dict[str, Any]:
        return {"type": self.field_type, "translatable": False, "value": self.path, "_internalLink": True}


FieldValue = Annotated[Union[Scalar, TranslationMap, InternalLink], Field(discriminator="tag")]


def parse_field_value(raw: Any) -> Scalar | TranslationMap | InternalLink:
    """Turn a stored field record into its tagged variant.

    This is the only place the stored shape is inspected; everything
    downstream switches on ``tag``.
    """
    if isinstance(raw, (Scalar, TranslationMap, InternalLink)):
        return raw
    if not isinstance(raw, Mapping):
        return Scalar(value=raw)
    if "tag" in raw:
        tag = raw["tag"]
        if tag == "translation":
            return TranslationMap.model_validate(raw)
        if tag == "internal_link":
            return InternalLink.model_validate(raw)
        return Scalar.model_validate(raw)

    field_type = str(raw.get("type", "unknown"))
    value = raw.get("value")
    translatable = bool(raw.get("translatable", False))

    if raw.get("_internalLink") and isinstance(value, str):
        return InternalLink(field_type=field_type, path=value)
    if translatable and isinstance(value, Mapping) and value:
        return TranslationMap(field_type=field_type, values=dict(value))
    return Scalar(field_type=field_type, value=value, translatable=translatable)


class ComponentInstance(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    schema_name: str = Field(alias="schemaName")
    alias: str | None = None
    data: dict[str, FieldValue] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _ingest(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return {name: parse_field_value(raw) for name, raw in data.items()}
        return data

    @property
    def display_name(self) -> str:
        return self.alias or self.schema_name

    def to_stored(self) -> dict[str, Any]:
        stored: dict[str, Any] = {"id": self.id, "schemaName": self.schema_name}
        if self.alias:
            stored["alias"] = self.alias
        stored["data"] = {name: value.to_stored() for name, value in self.data.items()}
        return stored


_COLLECTION_FIELD = {ContentKind.page: "components", ContentKind.globals: "variables"}


class ContentItem(BaseModel):
    id: str
    kind: ContentKind
    components: list[ComponentInstance] = Field(default_factory=list)

    @property
    def key(self) -> ItemKey:
        return ItemKey(kind=self.kind, id=self.id)

    def component(self, component_id: str) -> ComponentInstance | None:
        for component in self.components:
            if component.id == component_id:
                return component
        return None

    @classmethod
    def empty(cls, key: ItemKey) -> "ContentItem":
        return cls(id=key.id, kind=key.kind, components=[])

    @classmethod
    def from_document(cls, key: ItemKey, document: Mapping[str, Any] | None) -> "ContentItem":
        if not document:
            return cls.empty(key)
        raw_components = document.get(_COLLECTION_FIELD[key.kind]) or []
        return cls(
            id=key.id,
            kind=key.kind,
            components=[ComponentInstance.model_validate(raw) for raw in raw_components],
        )

    def to_document(self) -> dict[str, Any]:
        return {_COLLECTION_FIELD[self.kind]: [c.to_stored() for c in self.components]}


def empty_document(kind: ContentKind) -> dict[str, Any]:
    return {_COLLECTION_FIELD[kind]: []}


__all__ = [
    "ContentKind",
    "ItemKey",
    "Scalar",
    "TranslationMap",
    "InternalLink",
    "FieldValue",
    "parse_field_value",
    "ComponentInstance",
    "ContentItem",
    "empty_document",
]
