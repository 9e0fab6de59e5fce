#!/usr/bin/env python3
"""
translations.py - Prepare base-locale translation sources

Keeps locales/en/filters.json and locales/en/tags.json in step with the
hostlist metadata: every hostlist gets its name and description as base
strings, every tag used by a hostlist gets a placeholder entry if it has no
translation yet.

Usage:
    python -m hostlists.translations [--root DIR]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from hostlists.locales import FILTERS, TAGS, parse_key
from hostlists.metadata import ListDescriptor, TagDescriptor, load_hostlists, load_tags, resolve_tags
from hostlists.storage import read_json, write_json

BASE_LOCALE = "en"


def _entry_id(entry: dict, prefix: str) -> int:
    for key in entry:
        parsed = parse_key(key, prefix)
        if parsed is not None:
            try:
                return int(parsed[0])
            except ValueError:
                break
    return sys.maxsize


def sort_entries(entries: list[dict], prefix: str) -> list[dict]:
    """Sort base-locale entries by numeric id, unparseable ids last."""
    return sorted(entries, key=lambda entry: _entry_id(entry, prefix))


def update_filter_entries(entries: list[dict], descriptors: list[ListDescriptor]) -> list[dict]:
    """Set name/description strings for each hostlist, appending new ones."""
    entries = [dict(entry) for entry in entries]
    for descriptor in descriptors:
        name_key = f"{FILTERS.prefix}{descriptor.id}.name"
        description_key = f"{FILTERS.prefix}{descriptor.id}.description"
        existing = next((entry for entry in entries if name_key in entry), None)
        if existing is None:
            existing = {}
            entries.append(existing)
        existing[name_key] = descriptor.name
        existing[description_key] = descriptor.description
    return sort_entries(entries, FILTERS.prefix)


def update_tag_entries(entries: list[dict], used_tags: list[TagDescriptor]) -> list[dict]:
    """Append placeholder strings for used tags that have no entry yet."""
    entries = [dict(entry) for entry in entries]
    for tag in used_tags:
        name_key = f"{TAGS.prefix}{tag.tag_id}.name"
        if any(name_key in entry for entry in entries):
            continue
        entries.append({
            name_key: f"TODO: name for tag {tag.keyword}",
            f"{TAGS.prefix}{tag.tag_id}.description": f"TODO: description for tag {tag.keyword}",
        })
    return sort_entries(entries, TAGS.prefix)


def prepare_base_locale(filters_dir: Path, tags_file: Path, base_locale_dir: Path) -> None:
    """
    Rewrite the base locale's filters.json and tags.json.

    Raises MissingTagReference before writing anything if a hostlist uses an
    unknown tag keyword.
    """
    tags = [TagDescriptor.from_json(t) for t in load_tags(tags_file)]
    descriptors = [hostlist.descriptor for hostlist in load_hostlists(filters_dir)]

    used_tags: list[TagDescriptor] = []
    for descriptor in descriptors:
        for tag in resolve_tags(descriptor, tags, tags_file):
            if tag not in used_tags:
                used_tags.append(tag)

    filters_file = base_locale_dir / FILTERS.filename
    base_tags_file = base_locale_dir / TAGS.filename
    filter_entries = update_filter_entries(read_json(filters_file) or [], descriptors)
    tag_entries = update_tag_entries(read_json(base_tags_file) or [], used_tags)

    write_json(filters_file, filter_entries)
    write_json(base_tags_file, tag_entries)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Prepare base-locale translation files")
    parser.add_argument("--root", default=".", help="Registry root directory")
    parser.add_argument("--locale", default=BASE_LOCALE, help="Base locale directory name")
    args = parser.parse_args()

    root = Path(args.root)
    try:
        prepare_base_locale(
            root / "filters",
            root / "tags" / "metadata.json",
            root / "locales" / args.locale,
        )
    except Exception as e:
        print(f"❌ ERROR: {e}", file=sys.stderr)
        return 1

    print(f"✅ Updated base locale '{args.locale}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
