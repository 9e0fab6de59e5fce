"""
compiler.py - Hostlist compile collaborators

The registry treats compilation as a black box: a compile function takes one
hostlist (its directory, metadata and configuration.json) and returns the
compiled rule lines. Two implementations are provided:

    ExternalCompiler  Runs a hostlist compiler command as a subprocess:
                      `<command> -c configuration.json -o <output>`
    LocalCompiler     In-process compiler for sources stored next to the
                      configuration. Cleans rules, converts hosts and plain
                      domains to `||domain^`, drops duplicates and subdomain
                      rules already covered by a parent rule.

Compiled output starts with a header carrying a "! Last modified:" line,
which revision hashing ignores.
"""
from __future__ import annotations

import asyncio
import re
import shlex
import tempfile
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

import aiofiles
import tldextract

from hostlists.cleaner import clean_lines

if TYPE_CHECKING:
    from hostlists.metadata import HostlistSource

CompileFn = Callable[["HostlistSource"], Awaitable[list[str]]]

# No network access for the public suffix list; the bundled snapshot is used.
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())

ABP_DOMAIN_PATTERN = re.compile(
    r"^(@@)?\|\|"          # || or @@||
    r"(\*\.)?"             # optional wildcard
    r"([^^$|*\s]+)"        # domain or IP
    r"\^"
)

HOSTS_PATTERN = re.compile(r"^([\d.:a-fA-F]+)\s+(.+)$")

PLAIN_DOMAIN_PATTERN = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

BLOCKING_IPS = frozenset({"0.0.0.0", "127.0.0.1", "::", "::0", "::1"})

LOCAL_HOSTNAMES = frozenset({
    "localhost", "localhost.localdomain", "local", "broadcasthost",
    "ip6-localhost", "ip6-loopback", "ip6-localnet", "ip6-mcastprefix",
    "ip6-allnodes", "ip6-allrouters", "ip6-allhosts",
})

# A child rule with one of these behaves differently from its parent and is
# never treated as redundant.
SPECIAL_MODIFIERS = frozenset({"important", "badfilter", "dnsrewrite", "denyallow", "dnstype", "client", "ctag"})


def normalize_domain(domain: str) -> str:
    return domain.lower().strip().rstrip(".")


@lru_cache(maxsize=65536)
def parent_domains(domain: str) -> tuple[str, ...]:
    """
    Parents of domain up to its registered domain.

    Example: "a.b.example.com" -> ("b.example.com", "example.com")
    """
    ext = _tld_extract(domain)
    if not ext.suffix or not ext.domain or not ext.subdomain:
        return ()
    registered = f"{ext.domain}.{ext.suffix}"
    labels = ext.subdomain.split(".")
    return tuple(".".join(labels[i:] + [registered]) for i in range(1, len(labels))) + (registered,)


def _modifiers(rule: str) -> frozenset[str]:
    if "$" not in rule:
        return frozenset()
    names = (m.split("=")[0].strip().lower().lstrip("~") for m in rule.split("$", 1)[1].split(","))
    return frozenset(n for n in names if n)


def compile_rules(lines: list[str]) -> list[str]:
    """
    Deduplicate cleaned rules.

    Exception rules (@@) only remove the blocking rules they conflict with and
    are not emitted. A blocking rule is dropped when a parent domain is
    blocked by a rule without modifiers, unless the child carries a modifier
    that changes its behaviour.

    Example:
        >>> compile_rules(["||example.com^", "0.0.0.0 ads.example.com", "other.org"])
        ['||example.com^', '||other.org^']
    """
    blocking: dict[str, tuple[str, frozenset[str]]] = {}
    allowed: set[str] = set()
    other: dict[str, None] = {}

    def add_blocking(domain: str, rule: str, modifiers: frozenset[str]) -> None:
        if domain in LOCAL_HOSTNAMES:
            return
        existing = blocking.get(domain)
        if existing is None or ("important" in modifiers and "important" not in existing[1]):
            blocking[domain] = (rule, modifiers)

    for line in lines:
        match = ABP_DOMAIN_PATTERN.match(line)
        if match:
            domain = normalize_domain(match.group(3))
            if match.group(2):
                domain = f"*.{domain}"
            if match.group(1):
                allowed.add(domain)
            else:
                add_blocking(domain, line, _modifiers(line))
            continue

        if line.startswith("@@"):
            continue

        hosts = HOSTS_PATTERN.match(line)
        if hosts:
            if hosts.group(1) in BLOCKING_IPS or hosts.group(1).startswith("0."):
                for part in hosts.group(2).split():
                    if part.startswith("#"):
                        break
                    if part != hosts.group(1) and PLAIN_DOMAIN_PATTERN.match(part):
                        domain = normalize_domain(part)
                        add_blocking(domain, f"||{domain}^", frozenset())
            continue

        if PLAIN_DOMAIN_PATTERN.match(line):
            domain = normalize_domain(line)
            add_blocking(domain, f"||{domain}^", frozenset())
            continue

        other.setdefault(line, None)

    def covered(domain: str, modifiers: frozenset[str]) -> bool:
        if modifiers & SPECIAL_MODIFIERS:
            return False
        bare = domain[2:] if domain.startswith("*.") else domain
        candidates = list(parent_domains(bare))
        if domain.startswith("*."):
            candidates.insert(0, bare)
        for parent in candidates:
            for key in (parent, f"*.{parent}"):
                if key in blocking and key != domain and not blocking[key][1]:
                    return True
        return False

    def whitelisted(domain: str) -> bool:
        bare = domain[2:] if domain.startswith("*.") else domain
        if domain in allowed or bare in allowed:
            return True
        return any(f"*.{parent}" in allowed for parent in parent_domains(bare))

    result = [
        rule for domain, (rule, modifiers) in blocking.items()
        if not whitelisted(domain) and not covered(domain, modifiers)
    ]
    result.extend(other)
    return result


def make_header(hostlist: "HostlistSource", now: datetime | None = None) -> list[str]:
    descriptor = hostlist.descriptor
    stamp = (now or datetime.now(timezone.utc)).isoformat(timespec="seconds")
    header = [f"! Title: {descriptor.name}"]
    if descriptor.description:
        header.append(f"! Description: {descriptor.description}")
    if descriptor.homepage:
        header.append(f"! Homepage: {descriptor.homepage}")
    header.append(f"! Last modified: {stamp}")
    header.append("!")
    return header


class LocalCompiler:
    """Compile hostlists whose sources are files next to configuration.json."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock

    async def __call__(self, hostlist: "HostlistSource") -> list[str]:
        lines: list[str] = []
        for source in hostlist.configuration.get("sources", []):
            location = source["source"]
            if "://" in location and not location.startswith("file://"):
                raise ValueError(f"remote source {location} is not supported by the local compiler")
            path = hostlist.directory / location.removeprefix("file://")
            async with aiofiles.open(path, encoding="utf-8-sig", errors="replace") as f:
                lines.extend((await f.read()).splitlines())

        cleaned, _ = clean_lines(lines)
        now = self._clock() if self._clock else None
        return make_header(hostlist, now) + compile_rules(cleaned)


class ExternalCompiler:
    """Run an external hostlist compiler command, e.g. `hostlist-compiler`."""

    def __init__(self, command: str | Sequence[str]) -> None:
        self.command = shlex.split(command) if isinstance(command, str) else list(command)

    async def __call__(self, hostlist: "HostlistSource") -> list[str]:
        with tempfile.TemporaryDirectory(prefix="hostlists-") as tmp:
            output = Path(tmp) / "filter.txt"
            process = await asyncio.create_subprocess_exec(
                *self.command,
                "-c", str(hostlist.configuration_file),
                "-o", str(output),
                cwd=hostlist.directory,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await process.communicate()
            except BaseException:
                if process.returncode is None:
                    process.kill()
                await process.wait()
                raise
            if process.returncode != 0:
                detail = stderr.decode("utf-8", errors="replace").strip()
                raise RuntimeError(f"{self.command[0]} exited with {process.returncode}: {detail}")

            async with aiofiles.open(output, encoding="utf-8") as f:
                return (await f.read()).splitlines()
