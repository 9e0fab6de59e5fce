#!/usr/bin/env python3
"""
pipeline.py - Registry build pipeline

Usage:
    python -m hostlists.pipeline [--root DIR] [--compiler-command CMD]

Pipeline stages:
1. Compile every hostlist and aggregate its metadata
2. Fold locale fragments into the i18n catalogs
3. Reconcile service sources with the published distribution, then group
4. Write all outputs

Stages 1-3 only read. Any failure aborts before stage 4, so the previous
outputs stay on disk untouched.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from hostlists import mastodon
from hostlists.compiler import CompileFn, ExternalCompiler, LocalCompiler
from hostlists.grouping import group_services
from hostlists.icons import validate_icons
from hostlists.locales import HOSTLIST_KINDS, SERVICE_GROUPS, LocalizationEntry, load_locales
from hostlists.metadata import (
    DEFAULT_CONCURRENCY,
    HOSTLISTS_URL,
    AggregateResult,
    TagDescriptor,
    aggregate,
    load_hostlists,
    load_tags,
)
from hostlists.revision import load_revision, now_ms
from hostlists.services import (
    ReconcileResult,
    apply_dynamic_rules,
    read_distribution,
    read_source_fragments,
    reconcile,
    restore_removed_sources,
)
from hostlists.storage import write_json, write_text

FILTERS_METADATA_FILE = "filters.json"
FILTERS_METADATA_DEV_FILE = "filters-dev.json"
FILTERS_I18N_METADATA_FILE = "filters_i18n.json"
SERVICES_FILE = "services.json"
SERVICES_I18N_FILE = "services_i18n.json"

DynamicRulesFn = Callable[[], Awaitable[list[str]]]


@dataclass(frozen=True)
class BuildPaths:
    """Registry layout, derived from its root directory."""
    root: Path

    @property
    def filters_dir(self) -> Path:
        return self.root / "filters"

    @property
    def tags_file(self) -> Path:
        return self.root / "tags" / "metadata.json"

    @property
    def locales_dir(self) -> Path:
        return self.root / "locales"

    @property
    def services_dir(self) -> Path:
        return self.root / "services"

    @property
    def assets_dir(self) -> Path:
        return self.root / "assets"

    @property
    def services_file(self) -> Path:
        return self.assets_dir / SERVICES_FILE


@dataclass
class ServicesBuild:
    reconciled: ReconcileResult
    merged: list[dict]
    catalog: dict


@dataclass
class BuildPlan:
    """Everything a build will write, computed up front."""
    hostlists: AggregateResult
    tags: list[dict]
    localizations: dict[str, LocalizationEntry]
    services: ServicesBuild | None
    service_localizations: LocalizationEntry


async def plan_services(
    paths: BuildPaths,
    dynamic_rules: DynamicRulesFn | None,
    translations: LocalizationEntry | None = None,
) -> ServicesBuild:
    distribution = read_distribution(paths.services_file)
    sources = read_source_fragments(paths.services_dir)
    reconciled = reconcile(distribution, sources)

    merged = reconciled.merged
    if dynamic_rules is not None:
        merged = apply_dynamic_rules(distribution, merged, mastodon.SERVICE_ID, await dynamic_rules())

    validate_icons(merged)
    return ServicesBuild(reconciled=reconciled, merged=merged, catalog=group_services(merged, translations))


async def plan_build(
    paths: BuildPaths,
    compile_fn: CompileFn,
    *,
    base_url: str = HOSTLISTS_URL,
    concurrency: int = DEFAULT_CONCURRENCY,
    dynamic_rules: DynamicRulesFn | None = None,
    now: int | None = None,
) -> BuildPlan:
    now = now_ms() if now is None else now

    print("📖 Stage 1: Compiling hostlists...")
    stage_start = time.time()
    tags = load_tags(paths.tags_file)
    hostlists = await aggregate(
        load_hostlists(paths.filters_dir),
        lambda hostlist: load_revision(hostlist.revision_file, now),
        compile_fn,
        [TagDescriptor.from_json(t) for t in tags],
        base_url=base_url,
        concurrency=concurrency,
        now=now,
    )
    for compiled in hostlists.compiled:
        state = "updated" if compiled.changed else ("frozen" if compiled.hostlist.descriptor.disabled else "unchanged")
        print(f"   {compiled.hostlist.descriptor.id}: {state}")
    print(f"   {len(hostlists.all_catalog)} hostlists, {len(hostlists.updates)} updated ({time.time() - stage_start:.1f}s)")

    print("\n🌐 Stage 2: Folding locales...")
    localizations = await load_locales(paths.locales_dir, HOSTLIST_KINDS)
    service_localizations = (await load_locales(paths.locales_dir, (SERVICE_GROUPS,)))[SERVICE_GROUPS.name]
    print(f"   {len(localizations['filters'])} hostlists, {len(localizations['tags'])} tags translated")

    services = None
    if paths.services_dir.is_dir() or paths.services_file.exists():
        print("\n🔧 Stage 3: Reconciling services...")
        services = await plan_services(paths, dynamic_rules, service_localizations)
        diff = services.reconciled.diff
        print(f"   {len(services.merged)} services "
              f"(added: {len(diff.added)}, changed: {len(diff.changed)}, restored: {len(diff.removed)})")

    return BuildPlan(
        hostlists=hostlists,
        tags=tags,
        localizations=localizations,
        services=services,
        service_localizations=service_localizations,
    )


def write_build(plan: BuildPlan, paths: BuildPaths) -> None:
    """Persist a computed build. Every file is replaced whole."""
    print("\n💾 Stage 4: Writing outputs...")
    assets_dir = paths.assets_dir

    for compiled in plan.hostlists.updates:
        hostlist = compiled.hostlist
        write_json(hostlist.revision_file, compiled.revision.to_json())
        write_text(assets_dir / hostlist.filter_name, compiled.content)
        write_text(hostlist.filter_file, compiled.content)

    if plan.services is not None:
        for path in restore_removed_sources(plan.services.reconciled.restorations, paths.services_dir):
            print(f"   restored {path}")
        write_json(paths.services_file, plan.services.catalog, indent=2)

    write_json(assets_dir / FILTERS_METADATA_FILE, {"filters": plan.hostlists.prod_catalog, "tags": plan.tags})
    write_json(assets_dir / FILTERS_METADATA_DEV_FILE, {"filters": plan.hostlists.all_catalog, "tags": plan.tags})
    write_json(assets_dir / FILTERS_I18N_METADATA_FILE, {
        "tags": plan.localizations["tags"],
        "filters": plan.localizations["filters"],
    })
    if plan.service_localizations:
        write_json(assets_dir / SERVICES_I18N_FILE, {"groups": plan.service_localizations}, indent=4)


async def build(paths: BuildPaths, compile_fn: CompileFn, **options) -> BuildPlan:
    plan = await plan_build(paths, compile_fn, **options)
    write_build(plan, paths)
    return plan


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Build the hostlists registry catalogs")
    parser.add_argument("--root", default=".", help="Registry root directory")
    parser.add_argument("--compiler-command", help="External hostlist compiler command (default: built-in local compiler)")
    parser.add_argument("--download-base", default=HOSTLISTS_URL, help="Public base URL of compiled hostlists")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Max concurrent compiles")
    parser.add_argument("--skip-dynamic", action="store_true", help="Do not refresh the Mastodon server list")
    parser.add_argument("--mastodon-url", default=mastodon.SERVERS_URL, help="Mastodon server directory URL")
    args = parser.parse_args()

    compile_fn = ExternalCompiler(args.compiler_command) if args.compiler_command else LocalCompiler()
    dynamic_rules = None if args.skip_dynamic else (lambda: mastodon.fetch_mastodon_rules(args.mastodon_url))

    try:
        print("🚀 Starting registry build...")
        print("-" * 60)

        start_time = time.time()
        asyncio.run(build(
            BuildPaths(Path(args.root)),
            compile_fn,
            base_url=args.download_base,
            concurrency=args.concurrency,
            dynamic_rules=dynamic_rules,
        ))

        print(f"\n⏱️  Total time: {time.time() - start_time:.1f}s")
        print("✅ Build completed successfully!")
        return 0

    except Exception as e:
        print(f"\n❌ ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
