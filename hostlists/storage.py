"""
storage.py - File helpers shared by the build stages

Reads wrap every OS/parse failure in BuildIOError so the offending path is
always reported. Writes replace whole files through a temporary sibling,
leaving the previous complete file in place if the process dies mid-write.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import aiofiles
import yaml

from hostlists.errors import BuildIOError


def list_dirs(base_dir: Path) -> list[Path]:
    """Return the immediate subdirectories of base_dir, sorted by name."""
    try:
        return sorted(p for p in base_dir.iterdir() if p.is_dir())
    except OSError as e:
        raise BuildIOError(base_dir, e) from e


def walk_leaf_dirs(base_dir: Path, is_leaf: Callable[[Path], bool]) -> list[Path]:
    """
    Collect directories below base_dir for which is_leaf() holds.

    Descent stops at the first leaf on each branch, so a leaf's own
    subdirectories are never inspected.
    """
    leaves: list[Path] = []
    pending = list(reversed(list_dirs(base_dir)))
    while pending:
        directory = pending.pop()
        if is_leaf(directory):
            leaves.append(directory)
        else:
            pending.extend(reversed(list_dirs(directory)))
    return leaves


def read_text(path: Path) -> str | None:
    """Read a UTF-8 file, returning None if it does not exist."""
    if not path.exists():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise BuildIOError(path, e) from e


def read_json(path: Path) -> Any:
    """Parse a JSON file, returning None if it does not exist."""
    text = read_text(path)
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise BuildIOError(path, f"invalid JSON: {e}") from e


async def read_json_async(path: Path) -> Any:
    """Async variant of read_json used inside fan-out tasks."""
    if not path.exists():
        return None
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            text = await f.read()
    except OSError as e:
        raise BuildIOError(path, e) from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise BuildIOError(path, f"invalid JSON: {e}") from e


def read_yaml(path: Path) -> Any:
    text = read_text(path)
    if text is None:
        return None
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise BuildIOError(path, f"invalid YAML: {e}") from e


def write_text(path: Path, content: str) -> None:
    """Replace path with content atomically."""
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        temp_path.replace(path)
    except OSError as e:
        raise BuildIOError(path, e) from e


def write_json(path: Path, data: Any, indent: int | str = "\t") -> None:
    write_text(path, json.dumps(data, indent=indent, ensure_ascii=False))


def write_yaml(path: Path, data: Any) -> None:
    write_text(path, yaml.safe_dump(data, allow_unicode=True, sort_keys=False))
