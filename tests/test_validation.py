from datetime import date

from conftest import build_registry, field, hero_component, page_document

from cms_draft_sync.models.content import ContentItem, ItemKey
from cms_draft_sync.models.schema import ComponentSchema, FieldCondition, FieldDeclaration, FieldType
from cms_draft_sync.models.validation import ValidationResult
from cms_draft_sync.schema_registry import SchemaRegistry
from cms_draft_sync.validation import ValidationEngine


def make_item(*components, page_id="home"):
    return ContentItem.from_document(ItemKey.page(page_id), page_document(*components))


def single_schema(*fields):
    return SchemaRegistry([ComponentSchema(name="block", fields=list(fields))])


def block(**data):
    return {"id": "block-1", "schemaName": "block", "data": data}


def test_empty_required_title_reports_one_error():
    engine = ValidationEngine()
    errors = engine.validate(make_item(hero_component(title="")), build_registry())

    assert len(errors) == 1
    assert errors[0].field_path == "title"
    assert errors[0].message == "Title is required"
    assert errors[0].component_id == "hero-1"
    assert errors[0].item_id == "home"


def test_translatable_value_uses_default_locale():
    engine = ValidationEngine(default_locale="ja")
    item = make_item(hero_component(title={"en": "Hello", "ja": ""}))
    errors = engine.validate(item, build_registry())
    assert [e.field_path for e in errors] == ["title"]

    english = ValidationEngine(default_locale="en").validate(item, build_registry())
    assert english == []


def test_text_constraints():
    engine = ValidationEngine()
    item = make_item(
        hero_component(
            subtitle=field("x" * 81, "textarea"),
            cta_url=field("not a url"),
        )
    )
    messages = {e.field_path: e.message for e in engine.validate(item, build_registry())}
    assert messages == {
        "subtitle": "Maximum 80 characters allowed",
        "cta_url": "Please enter a valid URL",
    }


def test_email_and_pattern():
    registry = single_schema(
        FieldDeclaration(name="email", type=FieldType.input, input_type="email"),
        FieldDeclaration(name="code", type=FieldType.input, pattern=r"[A-Z]{3}", min_length=3),
    )
    errors = ValidationEngine().validate(make_item(block(email=field("nope"), code=field("abc"))), registry)
    assert {e.field_path: e.message for e in errors} == {
        "email": "Please enter a valid email address",
        "code": "Invalid format",
    }


def test_number_select_and_switch():
    registry = single_schema(
        FieldDeclaration(name="count", type=FieldType.number, minimum=1, maximum=10),
        FieldDeclaration(name="size", type=FieldType.select, options=["s", "m", "l"]),
        FieldDeclaration(name="visible", type=FieldType.switch),
    )
    item = make_item(
        block(
            count=field(11, "number"),
            size=field("xl", "select"),
            visible=field("yes", "switch"),
        )
    )
    errors = ValidationEngine().validate(item, registry)
    assert {e.field_path: e.message for e in errors} == {
        "count": "Must be at most 10",
        "size": "Invalid option selected",
        "visible": "Must be true or false",
    }


def test_date_bounds_with_today_marker():
    registry = single_schema(FieldDeclaration(name="starts", type=FieldType.date, min_date="today"))
    engine = ValidationEngine(today=lambda: date(2024, 5, 1))

    past = engine.validate(make_item(block(starts=field("2024-04-30", "date"))), registry)
    assert past[0].message == "Date must be on or after 2024-05-01"

    assert engine.validate(make_item(block(starts=field("2024-05-01", "date"))), registry) == []

    bad_range = engine.validate(
        make_item(block(starts=field({"start": "2024-06-10", "end": "2024-06-01"}, "date"))),
        registry,
    )
    assert bad_range[0].message == "End date must be after start date"


def test_repeater_errors_carry_index_path():
    item = make_item(
        {
            "id": "faq-1",
            "schemaName": "faq",
            "data": {
                "items": field(
                    [{"question": "What?", "answer": "<p>That</p>"}, {"question": "", "answer": ""}],
                    "repeater",
                )
            },
        }
    )
    errors = ValidationEngine().validate(item, build_registry())

    assert len(errors) == 1
    error = errors[0]
    assert error.field_path == "items.1.question"
    assert error.message == "Question is required"
    assert error.repeater_field_name == "items"
    assert error.repeater_item_index == 1


def test_repeater_min_items():
    item = make_item({"id": "faq-1", "schemaName": "faq", "data": {"items": field([], "repeater")}})
    errors = ValidationEngine().validate(item, build_registry())
    assert [(e.field_path, e.message) for e in errors] == [("items", "At least 1 item(s) required")]


def test_conditional_rules():
    registry = single_schema(
        FieldDeclaration(name="kind", type=FieldType.select, options=["link", "text"]),
        FieldDeclaration(
            name="href",
            type=FieldType.input,
            label="Link",
            required_when=FieldCondition(field="kind", equals="link"),
        ),
        FieldDeclaration(
            name="body",
            type=FieldType.textarea,
            required=True,
            hidden_when=lambda siblings: siblings.get("kind") == "link",
        ),
    )
    engine = ValidationEngine()

    link = engine.validate(make_item(block(kind=field("link", "select"))), registry)
    assert [(e.field_path, e.message) for e in link] == [("href", "Link is required")]

    text = engine.validate(make_item(block(kind=field("text", "select"))), registry)
    assert [e.field_path for e in text] == ["body"]


def test_group_fields_are_flattened():
    registry = single_schema(
        FieldDeclaration(
            name="layout",
            type=FieldType.group,
            fields=[FieldDeclaration(name="heading", type=FieldType.input, required=True)],
        )
    )
    errors = ValidationEngine().validate(make_item(block()), registry)
    assert [e.field_path for e in errors] == ["heading"]


def test_unknown_schema_is_skipped():
    item = make_item({"id": "x", "schemaName": "mystery", "data": {"anything": field("")}})
    assert ValidationEngine().validate(item, build_registry()) == []


def test_validate_many_groups_errors_by_component():
    items = [
        make_item(hero_component(title=""), page_id="home"),
        make_item(hero_component(title="Fine", component_id="hero-2"), page_id="about"),
        ContentItem.from_document(
            ItemKey.globals(),
            {"variables": [{"id": "contact-1", "schemaName": "contact", "data": {"email": field("a@b")}}]},
        ),
    ]
    result = ValidationResult.from_errors(ValidationEngine().validate_many(items, build_registry()))

    assert not result.is_valid
    assert result.errors_by_component == {
        "hero-1": {"title": "Title is required"},
        "contact-1": {"email": "Please enter a valid email address"},
    }


def test_registry_lookup_by_key():
    registry = build_registry()
    assert registry("hero-section").name == "hero"
    assert registry.get("missing") is None
    assert registry.names() == ["contact", "faq", "hero"]
