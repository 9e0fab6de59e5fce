"""
locales.py - Fold per-locale translation fragments into one mapping

Layout:
    locales/<locale>/tags.json       [{"hostlisttag.<id>.<field>": "..."}, ...]
    locales/<locale>/filters.json    [{"hostlist.<id>.<field>": "..."}, ...]
    locales/<locale>/services.json   [{"servicesgroup.<id>.<field>": "..."}, ...]

Result shape, per fragment kind:
    {id: {locale: {field: value}}}

Locales are distinct keys, so two locales never overwrite each other.
Duplicate keys inside one locale resolve last-write-wins.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import NamedTuple

from hostlists.errors import BuildIOError
from hostlists.storage import list_dirs, read_json_async

LocalizationEntry = dict[str, dict[str, dict[str, str]]]


class FragmentKind(NamedTuple):
    """One family of translation fragments inside a locale directory."""
    filename: str
    prefix: str
    name: str


TAGS = FragmentKind("tags.json", "hostlisttag.", "tags")
FILTERS = FragmentKind("filters.json", "hostlist.", "filters")
SERVICE_GROUPS = FragmentKind("services.json", "servicesgroup.", "groups")

HOSTLIST_KINDS = (TAGS, FILTERS)


def parse_key(key: str, prefix: str) -> tuple[str, str] | None:
    """
    Split "<prefix><id>.<field>" into (id, field).

    The id ends at the first dot after the prefix; the field is whatever
    follows the last dot. Returns None for keys without the prefix or with
    an empty id.

    Example:
        >>> parse_key("hostlist.10.name", "hostlist.")
        ('10', 'name')
        >>> parse_key("hostlisttag.10.name", "hostlist.") is None
        True
    """
    if not key.startswith(prefix):
        return None
    start = len(prefix)
    end = key.find(".", start)
    if end <= start:
        return None
    return key[start:end], key[key.rfind(".") + 1:]


def fold_messages(messages: list[dict], locale: str, prefix: str, into: LocalizationEntry) -> None:
    """Fold one fragment file's messages for a locale into an entry mapping."""
    for message in messages:
        for key, value in message.items():
            parsed = parse_key(key, prefix)
            if parsed is None:
                continue
            entity_id, field_name = parsed
            into.setdefault(entity_id, {}).setdefault(locale, {})[field_name] = value


async def read_locale(locale_dir: Path, kinds: tuple[FragmentKind, ...]) -> dict[str, list[dict]]:
    """Read every fragment kind present in one locale directory."""
    fragments: dict[str, list[dict]] = {}
    for kind in kinds:
        path = locale_dir / kind.filename
        messages = await read_json_async(path)
        if messages is None:
            continue
        if not isinstance(messages, list) or not all(isinstance(m, dict) for m in messages):
            raise BuildIOError(path, "expected a list of message objects")
        if messages:
            fragments[kind.name] = messages
    return fragments


def fold_locales(
    locale_fragments: dict[str, dict[str, list[dict]]],
    kinds: tuple[FragmentKind, ...] = HOSTLIST_KINDS,
) -> dict[str, LocalizationEntry]:
    """
    Fold already-read fragments {locale: {kind name: messages}}.

    Locales are processed in sorted order so the output is reproducible.
    """
    result: dict[str, LocalizationEntry] = {kind.name: {} for kind in kinds}
    for locale in sorted(locale_fragments):
        fragments = locale_fragments[locale]
        for kind in kinds:
            fold_messages(fragments.get(kind.name, []), locale, kind.prefix, result[kind.name])
    return result


async def load_locales(
    locales_dir: Path,
    kinds: tuple[FragmentKind, ...] = HOSTLIST_KINDS,
) -> dict[str, LocalizationEntry]:
    """Read all locale directories concurrently, then fold them."""
    if not locales_dir.is_dir():
        return {kind.name: {} for kind in kinds}
    locale_dirs = list_dirs(locales_dir)
    fragments = await asyncio.gather(*(read_locale(d, kinds) for d in locale_dirs))
    return fold_locales({d.name: f for d, f in zip(locale_dirs, fragments)}, kinds)
