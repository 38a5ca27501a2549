import pytest
from pydantic import ValidationError as PydanticValidationError

from cms_draft_sync.models.content import (
    ComponentInstance,
    ContentItem,
    ContentKind,
    InternalLink,
    ItemKey,
    Scalar,
    TranslationMap,
    empty_document,
    parse_field_value,
)


def test_stored_fields_become_tagged_variants():
    assert isinstance(parse_field_value({"type": "input", "translatable": False, "value": "Hi"}), Scalar)

    translated = parse_field_value({"type": "input", "translatable": True, "value": {"en": "Hi", "ja": "やあ"}})
    assert isinstance(translated, TranslationMap)
    assert translated.values == {"en": "Hi", "ja": "やあ"}

    link = parse_field_value({"type": "select", "translatable": False, "value": "/about", "_internalLink": True})
    assert isinstance(link, InternalLink)
    assert link.resolve("ja") == "/ja/about"


def test_translatable_field_with_plain_value_stays_scalar():
    value = parse_field_value({"type": "input", "translatable": True, "value": "Hello"})
    assert isinstance(value, Scalar)
    assert value.translatable is True
    assert value.effective_value("en") == "Hello"


def test_translation_map_requires_a_locale():
    with pytest.raises(PydanticValidationError):
        TranslationMap(values={})


def test_locale_resolution_is_deterministic():
    value = TranslationMap(values={"ja": "こんにちは", "en": "Hello", "fr": "Bonjour"})
    assert value.resolve("en") == "Hello"
    assert value.resolve("fr") == "Bonjour"
    for _ in range(5):
        assert value.resolve("de") == "こんにちは"


def test_stored_format_survives_ingestion():
    stored = {
        "id": "hero-1",
        "schemaName": "hero",
        "alias": "Main hero",
        "data": {
            "title": {"type": "input", "translatable": True, "value": {"en": "Hi"}},
            "count": {"type": "number", "translatable": False, "value": 3},
            "link": {"type": "select", "translatable": False, "value": "/contact", "_internalLink": True},
        },
    }
    component = ComponentInstance.model_validate(stored)
    assert component.display_name == "Main hero"
    assert component.to_stored() == stored


def test_document_shapes_by_kind():
    assert empty_document(ContentKind.page) == {"components": []}
    assert empty_document(ContentKind.globals) == {"variables": []}

    globals_item = ContentItem.from_document(
        ItemKey.globals(),
        {"variables": [{"id": "site", "schemaName": "contact", "data": {}}]},
    )
    assert globals_item.kind == ContentKind.globals
    assert globals_item.to_document() == {"variables": [{"id": "site", "schemaName": "contact", "data": {}}]}


def test_missing_document_yields_empty_item():
    item = ContentItem.from_document(ItemKey.page("about"), None)
    assert item.components == []
    assert item.key == ItemKey.page("about")


def test_item_key_round_trip():
    key = ItemKey.parse("page:about")
    assert key == ItemKey.page("about")
    assert str(key) == "page:about"
    assert str(ItemKey.globals()) == "globals:globals"

    with pytest.raises(ValueError):
        ItemKey.parse("about")
