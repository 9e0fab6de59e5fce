"""
metadata.py - Hostlist metadata aggregation

Walks the filters tree, compiles every enabled hostlist, decides per list
whether its content changed and flattens each list's metadata into the
records published in filters.json (prod only) and filters-dev.json (all).

Nothing is written here. aggregate() returns the catalogs together with the
per-list compile results; the caller persists them once every list has
compiled, so one failing list leaves every output untouched.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from hostlists.compiler import CompileFn
from hostlists.errors import BuildIOError, CompileFailure, HostlistsError, MissingTagReference
from hostlists.revision import RevisionRecord, calculate_revision_hash, make_revision, now_ms
from hostlists.storage import read_json, walk_leaf_dirs


CONFIGURATION_FILE = "configuration.json"
METADATA_FILE = "metadata.json"
REVISION_FILE = "revision.json"
FILTER_FILE = "filter.txt"

HOSTLISTS_URL = "https://adguardteam.github.io/HostlistsRegistry/assets"

PROD_ENVIRONMENT = "prod"

DEFAULT_EXPIRES = 86400
DEFAULT_CONCURRENCY = 4

EXPIRES_UNITS = {"day": 24 * 60 * 60, "days": 24 * 60 * 60, "hour": 60 * 60, "hours": 60 * 60}
EXPIRES_PATTERN = re.compile(r"^\s*(\d+)\s*([a-z]+)\b", re.IGNORECASE)


@dataclass(frozen=True)
class TagDescriptor:
    keyword: str
    tag_id: int

    @classmethod
    def from_json(cls, data: dict) -> "TagDescriptor":
        return cls(keyword=data["keyword"], tag_id=data["tagId"])


@dataclass(frozen=True)
class ListDescriptor:
    """Static metadata of one hostlist, as stored in its metadata.json."""
    id: Any
    name: str
    description: str = ""
    tags: tuple[str, ...] = ()
    homepage: str | None = None
    expires: Any = None
    filter_id: int | None = None
    display_number: int | None = None
    time_added: int | None = None
    environment: str | None = None
    disabled: bool = False

    @classmethod
    def from_json(cls, data: dict) -> "ListDescriptor":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            tags=tuple(data.get("tags", ())),
            homepage=data.get("homepage"),
            expires=data.get("expires"),
            filter_id=data.get("filterId"),
            display_number=data.get("displayNumber"),
            time_added=data.get("timeAdded"),
            environment=data.get("environment"),
            disabled=bool(data.get("disabled", False)),
        )

    @property
    def is_prod(self) -> bool:
        return self.environment == PROD_ENVIRONMENT


@dataclass(frozen=True)
class HostlistSource:
    """One hostlist directory: its descriptor and compiler configuration."""
    directory: Path
    descriptor: ListDescriptor
    configuration: dict = field(default_factory=dict)

    @property
    def configuration_file(self) -> Path:
        return self.directory / CONFIGURATION_FILE

    @property
    def revision_file(self) -> Path:
        return self.directory / REVISION_FILE

    @property
    def filter_file(self) -> Path:
        return self.directory / FILTER_FILE

    @property
    def filter_name(self) -> str:
        return f"filter_{self.descriptor.id}.txt"


@dataclass
class CompiledHostlist:
    """
    Result of processing one hostlist.

    content is set only when changed is True; it is what the caller writes
    to filter.txt and the public assets copy.
    """
    hostlist: HostlistSource
    revision: RevisionRecord
    changed: bool
    metadata: dict
    content: str | None = None


@dataclass
class AggregateResult:
    prod_catalog: list[dict]
    all_catalog: list[dict]
    compiled: list[CompiledHostlist]

    @property
    def updates(self) -> list[CompiledHostlist]:
        return [c for c in self.compiled if c.changed]


def find_hostlist_dirs(filters_dir: Path) -> list[Path]:
    """Hostlist directories under filters_dir; nesting stops at configuration.json."""
    return walk_leaf_dirs(filters_dir, lambda d: (d / CONFIGURATION_FILE).exists())


def load_hostlist(directory: Path) -> HostlistSource:
    metadata_file = directory / METADATA_FILE
    data = read_json(metadata_file)
    if data is None:
        raise BuildIOError(metadata_file, "missing")
    if not isinstance(data, dict) or "id" not in data:
        raise BuildIOError(metadata_file, "expected an object with an id")
    descriptor = ListDescriptor.from_json(data)
    configuration = read_json(directory / CONFIGURATION_FILE) or {}
    return HostlistSource(directory=directory, descriptor=descriptor, configuration=configuration)


def load_hostlists(filters_dir: Path) -> list[HostlistSource]:
    return [load_hostlist(d) for d in find_hostlist_dirs(filters_dir)]


def load_tags(tags_file: Path) -> list[dict]:
    """Raw tag registry entries, published as-is in the catalogs."""
    return read_json(tags_file) or []


def resolve_tags(
    descriptor: ListDescriptor,
    tags: list[TagDescriptor],
    tags_file: Path | None = None,
) -> list[TagDescriptor]:
    """Look up each of the descriptor's tag keywords in the registry."""
    by_keyword = {tag.keyword: tag for tag in tags}
    resolved = []
    for keyword in descriptor.tags:
        if keyword not in by_keyword:
            raise MissingTagReference(keyword, descriptor.id, tags_file)
        resolved.append(by_keyword[keyword])
    return resolved


def resolve_expires(expires: Any) -> int:
    """
    Convert a human "Expires" value to seconds.

    Example:
        >>> resolve_expires("5 days")
        432000
        >>> resolve_expires("4 hours")
        14400
        >>> resolve_expires("banana")
        86400
    """
    if not isinstance(expires, str):
        return DEFAULT_EXPIRES
    match = EXPIRES_PATTERN.match(expires)
    if not match:
        return DEFAULT_EXPIRES
    unit = match.group(2).lower()
    if unit not in EXPIRES_UNITS:
        return DEFAULT_EXPIRES
    return int(match.group(1)) * EXPIRES_UNITS[unit] or DEFAULT_EXPIRES


def resolve_source_url(configuration: dict, homepage: str | None) -> str | None:
    """A single-source list links to its source, anything else to the homepage."""
    sources = configuration.get("sources") or []
    if len(sources) == 1:
        return sources[0].get("source")
    return homepage


def build_download_url(hostlist: HostlistSource, base_url: str = HOSTLISTS_URL) -> str:
    return f"{base_url.rstrip('/')}/{hostlist.filter_name}"


def build_metadata_record(hostlist: HostlistSource, time_updated: int, base_url: str = HOSTLISTS_URL) -> dict:
    descriptor = hostlist.descriptor
    return {
        "filterId": descriptor.filter_id,
        "id": descriptor.id,
        "name": descriptor.name,
        "description": descriptor.description,
        "tags": list(descriptor.tags),
        "homepage": descriptor.homepage,
        "expires": resolve_expires(descriptor.expires),
        "displayNumber": descriptor.display_number,
        "downloadUrl": build_download_url(hostlist, base_url),
        "sourceUrl": resolve_source_url(hostlist.configuration, descriptor.homepage),
        "timeAdded": descriptor.time_added,
        "timeUpdated": time_updated,
    }


async def compile_hostlist(
    hostlist: HostlistSource,
    previous: RevisionRecord | None,
    compile_fn: CompileFn,
    now: int | None = None,
) -> tuple[RevisionRecord, bool, str | None]:
    """
    Compile one hostlist and decide whether it changed.

    Returns (revision, changed, content). Disabled lists are frozen: they are
    not compiled and keep their previous revision.
    """
    now = now_ms() if now is None else now
    if hostlist.descriptor.disabled:
        return previous or RevisionRecord(time_updated=now), False, None

    try:
        compiled = await compile_fn(hostlist)
    except HostlistsError:
        raise
    except Exception as e:
        raise CompileFailure(hostlist.descriptor.id, e) from e

    revision = make_revision(previous, calculate_revision_hash(compiled), now)
    if previous is not None and previous.hash == revision.hash:
        return previous, False, None
    return revision, True, "\n".join(compiled)


async def aggregate(
    hostlists: list[HostlistSource],
    revision_lookup: Callable[[HostlistSource], RevisionRecord | None],
    compile_fn: CompileFn,
    tags: list[TagDescriptor] | None = None,
    *,
    base_url: str = HOSTLISTS_URL,
    concurrency: int = DEFAULT_CONCURRENCY,
    now: int | None = None,
) -> AggregateResult:
    """
    Compile all hostlists concurrently and build both catalogs.

    Tag references are checked before anything is compiled. The first
    compile failure cancels every compile still running, then propagates.
    """
    if tags is not None:
        for hostlist in hostlists:
            resolve_tags(hostlist.descriptor, tags)

    semaphore = asyncio.Semaphore(concurrency)

    async def process(hostlist: HostlistSource) -> CompiledHostlist:
        async with semaphore:
            previous = revision_lookup(hostlist)
            revision, changed, content = await compile_hostlist(hostlist, previous, compile_fn, now)
        return CompiledHostlist(
            hostlist=hostlist,
            revision=revision,
            changed=changed,
            metadata=build_metadata_record(hostlist, revision.time_updated, base_url),
            content=content,
        )

    tasks = [asyncio.ensure_future(process(h)) for h in hostlists]
    try:
        compiled = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    prod_catalog: list[dict] = []
    all_catalog: list[dict] = []
    for result in compiled:
        if result.hostlist.descriptor.is_prod:
            prod_catalog.append(result.metadata)
        all_catalog.append(result.metadata)

    return AggregateResult(prod_catalog=prod_catalog, all_catalog=all_catalog, compiled=list(compiled))
