"""
grouping.py - Nest reconciled services into categories and groups

services.json is written as:

    {"categories": [
        {"id": "<category>", "groups": [
            {"id": "<group>", "services": [<service>, ...]}]}]}

Categories, groups and services are each sorted by id so regenerating from
the same input yields a byte-identical file.
"""
from __future__ import annotations

from typing import Iterable

from hostlists.locales import LocalizationEntry

DEFAULT_CATEGORY = "uncategorized"
DEFAULT_GROUP = "ungrouped"


def _sort_key(value: object) -> str:
    return str(value)


def group_services(
    services: Iterable[dict],
    translations: LocalizationEntry | None = None,
) -> dict:
    """
    Build the grouped catalog from a flat service list.

    Services without a category or group land in explicit default buckets.
    When translations are given, matching category and group nodes carry
    them under "i18n".
    """
    tree: dict[str, dict[str, list[dict]]] = {}
    for service in services:
        category = service.get("category") or DEFAULT_CATEGORY
        group = service.get("group") or DEFAULT_GROUP
        tree.setdefault(category, {}).setdefault(group, []).append(service)

    def node(node_id: str, **children) -> dict:
        result = {"id": node_id}
        if translations and node_id in translations:
            result["i18n"] = translations[node_id]
        result.update(children)
        return result

    return {
        "categories": [
            node(category, groups=[
                node(group, services=sorted(members, key=lambda s: _sort_key(s.get("id"))))
                for group, members in sorted(groups.items())
            ])
            for category, groups in sorted(tree.items())
        ]
    }


def flatten_catalog(catalog: dict) -> list[dict]:
    """Inverse of group_services: the services of a grouped catalog, in order."""
    return [
        service
        for category in catalog.get("categories", [])
        for group in category.get("groups", [])
        for service in group.get("services", [])
    ]
