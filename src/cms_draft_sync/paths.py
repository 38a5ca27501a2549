from __future__ import annotations

import re

from .errors import InvalidItemKeyError
from .models.content import ContentKind, ItemKey
from .models.results import PageInfo

_HOME_ALIASES = {"home": "index"}


def check_page_id(page_id: str) -> str:
    """Reject page ids that are empty or could escape the pages directory."""
    if not page_id or "\0" in page_id:
        raise InvalidItemKeyError(f"Invalid page id: {page_id!r}")
    if "/" in page_id or "\\" in page_id or ".." in page_id:
        raise InvalidItemKeyError(f"Page id must not contain path segments: {page_id!r}")
    return page_id


def normalize_page_id(page_id: str) -> str:
    """Map a UI page id to its file stem, rejecting anything path-like."""
    return _HOME_ALIASES.get(check_page_id(page_id), page_id)


def page_display_name(page_id: str) -> str:
    if page_id == "index":
        return "Home"
    return " ".join(word[:1].upper() + word[1:] for word in re.split(r"[-_]", page_id) if word)


def page_info(page_id: str) -> PageInfo:
    return PageInfo(
        id=page_id,
        name=page_display_name(page_id),
        path="/" if page_id == "index" else f"/{page_id}",
    )


class ContentPaths:
    """Repository layout: one JSON file per page plus a single globals file."""

    def __init__(self, content_root: str = "src/content") -> None:
        self.content_root = content_root.strip("/")

    @property
    def pages_dir(self) -> str:
        return f"{self.content_root}/pages"

    @property
    def globals_path(self) -> str:
        return f"{self.content_root}/globals.json"

    def page_key(self, page_id: str) -> ItemKey:
        return ItemKey.page(normalize_page_id(page_id))

    def path_for(self, key: ItemKey) -> str:
        if key.kind == ContentKind.globals:
            return self.globals_path
        return f"{self.pages_dir}/{check_page_id(key.id)}.json"

    def key_for_path(self, path: str) -> ItemKey | None:
        if path == self.globals_path:
            return ItemKey.globals()
        prefix = f"{self.pages_dir}/"
        if path.startswith(prefix) and path.endswith(".json"):
            stem = path[len(prefix) : -len(".json")]
            try:
                return ItemKey.page(check_page_id(stem))
            except InvalidItemKeyError:
                return None
        return None


__all__ = ["ContentPaths", "check_page_id", "normalize_page_id", "page_display_name", "page_info"]
