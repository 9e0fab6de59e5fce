"""
services.py - Reconcile service sources against the published distribution

Two views of the blockable services exist:

    services/*.yml        Source fragments, edited by hand (one or more
                          services per file).
    assets/services.json  The distribution, generated by the previous build.

Per service id:
    source only                   added, kept
    distribution only             removed, restored from the distribution copy
    both, structurally equal      unchanged
    both, different               changed, source version wins

A service missing from the sources is assumed to have been deleted by
accident, so its fragment is recreated instead of dropping it from the
distribution.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from hostlists.errors import BuildIOError, DuplicateServiceId, InvalidServiceId, MissingServiceId
from hostlists.grouping import flatten_catalog
from hostlists.storage import read_json, read_yaml, write_yaml

SOURCE_SUFFIXES = (".yml", ".yaml", ".json")
RESTORED_SUFFIX = ".yml"

#: Ids usable as a file name directly under services/
FRAGMENT_NAME_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.-]*")


@dataclass(frozen=True)
class ChangedEntity:
    id: Any
    before: dict
    after: dict


@dataclass(frozen=True)
class Restoration:
    """Recreate the source fragment of a service from its distribution copy."""
    id: Any
    entity: dict

    def __post_init__(self) -> None:
        name = str(self.id)
        if not FRAGMENT_NAME_PATTERN.fullmatch(name) or ".." in name:
            raise InvalidServiceId(self.id)

    def file_name(self, attempt: int = 0) -> str:
        if attempt == 0:
            return f"{self.id}{RESTORED_SUFFIX}"
        return f"{self.id}.restored-{attempt}{RESTORED_SUFFIX}"


@dataclass
class DiffResult:
    added: list[dict] = field(default_factory=list)
    removed: list[Any] = field(default_factory=list)
    changed: list[ChangedEntity] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.changed)

    @property
    def added_ids(self) -> list[Any]:
        return [entity["id"] for entity in self.added]

    @property
    def changed_ids(self) -> list[Any]:
        return [change.id for change in self.changed]


@dataclass
class ReconcileResult:
    merged: list[dict]
    diff: DiffResult
    restorations: list[Restoration]


def _sort_key(value: Any) -> str:
    return str(value)


def _index(entities: Iterable[dict], origin: str) -> dict[Any, dict]:
    indexed: dict[Any, dict] = {}
    positions: dict[Any, int] = {}
    for position, entity in enumerate(entities):
        if "id" not in entity:
            raise ValueError(f"{origin} service without id: {entity!r}")
        if entity["id"] in indexed:
            first = positions[entity["id"]]
            raise DuplicateServiceId(entity["id"], f"{origin} entry {first}", f"{origin} entry {position}")
        indexed[entity["id"]] = entity
        positions[entity["id"]] = position
    return indexed


def get_differences(distribution: list[dict], sources: list[dict]) -> DiffResult:
    """Compare by id; positions in either list are irrelevant."""
    dist_by_id = _index(distribution, "distribution")
    source_by_id = _index(sources, "source")

    diff = DiffResult()
    for entity_id in sorted(source_by_id, key=_sort_key):
        source = source_by_id[entity_id]
        if entity_id not in dist_by_id:
            diff.added.append(source)
        elif dist_by_id[entity_id] != source:
            diff.changed.append(ChangedEntity(entity_id, dist_by_id[entity_id], source))
    diff.removed = sorted((i for i in dist_by_id if i not in source_by_id), key=_sort_key)
    return diff


def reconcile(distribution: list[dict], sources: list[dict]) -> ReconcileResult:
    """
    Merge sources over the distribution.

    The merged list holds every id from either side, sorted by id: the
    source version where one exists, the distribution copy otherwise.
    """
    diff = get_differences(distribution, sources)
    dist_by_id = _index(distribution, "distribution")
    merged_by_id = {**dist_by_id, **_index(sources, "source")}
    merged = [merged_by_id[i] for i in sorted(merged_by_id, key=_sort_key)]
    restorations = [Restoration(i, dist_by_id[i]) for i in diff.removed]
    return ReconcileResult(merged=merged, diff=diff, restorations=restorations)


def read_distribution(path: Path) -> list[dict]:
    """
    Services of the published distribution, flattened.

    Accepts the grouped catalog and the older flat
    {"blocked_services": [...]} layout. A missing file is an empty
    distribution.
    """
    data = read_json(path)
    if data is None:
        return []
    if not isinstance(data, dict):
        raise BuildIOError(path, "expected a JSON object")
    if "categories" in data:
        return flatten_catalog(data)
    return list(data.get("blocked_services", []))


def read_source_fragments(source_dir: Path) -> list[dict]:
    """Load every service fragment under source_dir, in file name order."""
    if not source_dir.is_dir():
        return []
    entities: list[dict] = []
    origins: dict[Any, Path] = {}
    for path in sorted(p for p in source_dir.rglob("*") if p.suffix in SOURCE_SUFFIXES and p.is_file()):
        data = read_json(path) if path.suffix == ".json" else read_yaml(path)
        if data is None:
            continue
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list) or not all(isinstance(e, dict) for e in data):
            raise BuildIOError(path, "expected a service mapping or a list of them")
        for entity in data:
            entity_id = entity.get("id")
            if entity_id in origins:
                raise DuplicateServiceId(entity_id, origins[entity_id], path)
            if entity_id is not None:
                origins[entity_id] = path
        entities.extend(data)
    return entities


def restore_removed_sources(restorations: list[Restoration], source_dir: Path) -> list[Path]:
    """
    Write a fragment for every restored service. Returns written paths.

    An existing file of the same name is never overwritten; the fragment
    gets a numbered ".restored-N" name instead.
    """
    written = []
    for restoration in restorations:
        attempt = 0
        path = source_dir / restoration.file_name()
        while path.exists():
            attempt += 1
            path = source_dir / restoration.file_name(attempt)
        write_yaml(path, restoration.entity)
        written.append(path)
    return written


def apply_dynamic_rules(
    distribution: list[dict],
    merged: list[dict],
    service_id: str,
    rules: list[str],
) -> list[dict]:
    """
    Replace the rules of a service whose rule list is generated at build time.

    The service must already exist in the distribution. Returns a new merged
    list; the input entities are not mutated.
    """
    if not any(entity.get("id") == service_id for entity in distribution):
        raise MissingServiceId(service_id)
    return [
        {**entity, "rules": list(rules)} if entity.get("id") == service_id else entity
        for entity in merged
    ]
