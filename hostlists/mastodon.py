"""
mastodon.py - Dynamic Mastodon server list

The "mastodon" service cannot be described by a static rule set: new
instances appear daily. Its rules are regenerated on every build from the
public server directory.
"""
from __future__ import annotations

import asyncio

import aiohttp

from hostlists.compiler import PLAIN_DOMAIN_PATTERN, normalize_domain

SERVICE_ID = "mastodon"
SERVERS_URL = "https://api.joinmastodon.org/servers"

DEFAULT_TIMEOUT = 30
DEFAULT_RETRIES = 3


def servers_to_rules(servers: list) -> list[str]:
    """
    Blocking rules for a server directory listing.

    Entries may be plain domain strings or objects with a "domain" key.

    Example:
        >>> servers_to_rules([{"domain": "Mastodon.Social"}, "fosstodon.org"])
        ['||fosstodon.org^', '||mastodon.social^']
    """
    domains = set()
    for server in servers:
        domain = server.get("domain") if isinstance(server, dict) else server
        if not isinstance(domain, str):
            continue
        domain = normalize_domain(domain)
        if PLAIN_DOMAIN_PATTERN.match(domain):
            domains.add(domain)
    return [f"||{domain}^" for domain in sorted(domains)]


async def fetch_mastodon_rules(
    url: str = SERVERS_URL,
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    session: aiohttp.ClientSession | None = None,
) -> list[str]:
    """
    Fetch the server directory and convert it to rules.

    Retries with exponential backoff; the last error propagates, since a
    stale or empty Mastodon list must not be published.
    """
    owns_session = session is None
    if owns_session:
        session = aiohttp.ClientSession()
    try:
        retries = max(retries, 1)
        for attempt in range(retries):
            try:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                    response.raise_for_status()
                    servers = await response.json(content_type=None)
                break
            except (aiohttp.ClientError, asyncio.TimeoutError):
                if attempt == retries - 1:
                    raise
                await asyncio.sleep(2 ** attempt)
    finally:
        if owns_session:
            await session.close()

    if not isinstance(servers, list):
        raise ValueError(f"unexpected server directory payload from {url}")
    rules = servers_to_rules(servers)
    if not rules:
        raise ValueError(f"empty server directory from {url}")
    return rules
