"""Shared pytest fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import pytest

VALID_SVG = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24"><path d="M0 0h24v24H0z"/></svg>'

TAGS = [
    {"tagId": 1, "keyword": "purpose:general"},
    {"tagId": 2, "keyword": "lang:en"},
]


def write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def registry(tmp_path: Path) -> Path:
    """An empty registry root with a tag registry."""
    write_json(tmp_path / "tags" / "metadata.json", TAGS)
    return tmp_path


@pytest.fixture
def add_hostlist(registry: Path) -> Callable[..., Path]:
    """Create filters/<relative>/ with metadata, configuration and a local source."""

    def _add(relative: str, list_id: int, rules: list[str] | None = None, **metadata) -> Path:
        directory = registry / "filters" / relative
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "source.txt").write_text("\n".join(rules or ["||example.org^"]), encoding="utf-8")
        write_json(directory / "metadata.json", {
            "id": list_id,
            "filterId": list_id,
            "name": f"List {list_id}",
            "description": f"Description {list_id}",
            "tags": ["purpose:general"],
            "homepage": f"https://example.org/{list_id}",
            "expires": "4 days",
            "timeAdded": 1600000000000,
            "environment": "prod",
            **metadata,
        })
        write_json(directory / "configuration.json", {
            "name": f"List {list_id}",
            "sources": [{"name": "local", "source": "source.txt", "type": "adblock"}],
        })
        return directory

    return _add
