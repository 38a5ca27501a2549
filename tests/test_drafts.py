from conftest import field, hero_component, page_document

from cms_draft_sync.drafts import DraftOverlayStore
from cms_draft_sync.kv_store import InMemoryKeyValueStore
from cms_draft_sync.models.content import ContentItem, InternalLink, ItemKey, TranslationMap

HOME = ItemKey.page("home")


def test_get_returns_latest_put():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    for title in ["One", "Two", "Three"]:
        drafts.put(HOME, page_document(hero_component(title=title)))

    change = drafts.get(HOME)
    assert change.pending_data == page_document(hero_component(title="Three"))
    assert change.dirty is True
    assert drafts.list_dirty() == ["page:home"]


def test_first_put_fixes_base_data():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    drafts.put(HOME, page_document(hero_component(title="One")), base_data={"components": []})
    drafts.put(HOME, page_document(hero_component(title="Two")), base_data={"ignored": True})
    assert drafts.get(HOME).base_data == {"components": []}


def test_discard_and_clear():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    drafts.put(HOME, page_document())
    drafts.put(ItemKey.globals(), {"variables": []})

    assert drafts.discard(HOME) is True
    assert drafts.discard(HOME) is False
    assert drafts.has_any() is True

    assert drafts.clear(ItemKey.globals()) is True
    assert drafts.has_any() is False


def test_clear_keeps_edit_made_after_commit_started():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    drafts.put(HOME, page_document(hero_component(title="Committed")))
    committed = drafts.get(HOME)
    drafts.put(HOME, page_document(hero_component(title="Newer")))

    assert drafts.clear(HOME, committed=committed) is False
    assert drafts.get(HOME).pending_data == page_document(hero_component(title="Newer"))


def test_clear_all():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    drafts.put(HOME, page_document())
    drafts.put(ItemKey.page("about"), page_document())
    drafts.clear_all()
    assert drafts.list_dirty() == []


def test_unreadable_record_is_dropped():
    store = InMemoryKeyValueStore()
    store.set("drafts", "page:home", {"item_key": "page:home"})
    drafts = DraftOverlayStore(store)
    assert drafts.get(HOME) is None
    assert store.keys("drafts") == []


def test_update_field_per_locale():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    drafts.put(HOME, page_document(hero_component(title={"en": "Hello"})))

    assert drafts.update_field(HOME, "hero-1", "title", "こんにちは", locale="ja") is True

    item = ContentItem.from_document(HOME, drafts.get(HOME).pending_data)
    title = item.component("hero-1").data["title"]
    assert isinstance(title, TranslationMap)
    assert title.values == {"en": "Hello", "ja": "こんにちは"}


def test_update_field_with_locale_on_plain_value_replaces_it():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    drafts.put(HOME, page_document(hero_component(tagline=field("Hello", translatable=True))))

    assert drafts.update_field(HOME, "hero-1", "tagline", "Bonjour", locale="fr") is True

    pending = drafts.get(HOME).pending_data
    assert pending["components"][0]["data"]["tagline"] == field("Bonjour", translatable=True)


def test_update_field_keeps_internal_link_marker():
    link = {"type": "select", "translatable": False, "value": "/about", "_internalLink": True}
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    drafts.put(HOME, page_document(hero_component(link=link)))

    drafts.update_field("page:home", "hero-1", "link", "/pricing")

    item = ContentItem.from_document(HOME, drafts.get(HOME).pending_data)
    assert item.component("hero-1").data["link"] == InternalLink(field_type="select", path="/pricing")


def test_update_field_without_draft_or_component():
    drafts = DraftOverlayStore(InMemoryKeyValueStore())
    assert drafts.update_field(HOME, "hero-1", "title", "x") is False

    drafts.put(HOME, page_document(hero_component()))
    assert drafts.update_field(HOME, "missing", "title", "x") is False
    assert drafts.update_field(HOME, "hero-1", "subtitle", "New", locale=None) is True
    pending = drafts.get(HOME).pending_data
    assert pending["components"][0]["data"]["subtitle"] == {"type": "unknown", "translatable": False, "value": "New"}
    assert pending["components"][0]["data"]["title"] == field("Welcome")
