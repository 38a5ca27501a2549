from __future__ import annotations

from typing import Any

from .models.content import ComponentInstance, ContentItem, TranslationMap
from .models.results import FieldChange


def _locale_values(value: Any) -> dict[str | None, Any]:
    if isinstance(value, TranslationMap):
        return dict(value.values)
    if value is None:
        return {}
    return {None: value.effective_value("")}


def _as_plain(values: dict[str | None, Any]) -> Any:
    if not values:
        return None
    if None in values:
        return values[None]
    return values


def diff_components(old: ComponentInstance, new: ComponentInstance) -> list[FieldChange]:
    changes: list[FieldChange] = []
    for field_name in dict.fromkeys([*old.data, *new.data]):
        before = _locale_values(old.data.get(field_name))
        after = _locale_values(new.data.get(field_name))
        if None in before or None in after:
            # plain value on at least one side: report the whole field
            if before != after:
                changes.append(
                    FieldChange(
                        component_id=new.id,
                        field_name=field_name,
                        old=_as_plain(before),
                        new=_as_plain(after),
                    )
                )
            continue
        for locale in dict.fromkeys([*before, *after]):
            if before.get(locale) != after.get(locale):
                changes.append(
                    FieldChange(
                        component_id=new.id,
                        field_name=field_name,
                        locale=locale,
                        old=before.get(locale),
                        new=after.get(locale),
                    )
                )
    return changes


def diff_items(
    main: ContentItem, draft: ContentItem
) -> tuple[list[str], list[str], list[FieldChange]]:
    """Compare two versions of one document.

    Returns ``(added_component_ids, removed_component_ids, field_changes)``.
    """
    main_components = {c.id: c for c in main.components}
    draft_components = {c.id: c for c in draft.components}

    added = [cid for cid in draft_components if cid not in main_components]
    removed = [cid for cid in main_components if cid not in draft_components]
    changes: list[FieldChange] = []
    for cid, component in draft_components.items():
        if cid in main_components:
            changes.extend(diff_components(main_components[cid], component))
    return added, removed, changes


__all__ = ["diff_components", "diff_items"]
