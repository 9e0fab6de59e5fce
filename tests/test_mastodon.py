from __future__ import annotations

import asyncio

import aiohttp
import pytest

from hostlists import mastodon
from hostlists.mastodon import fetch_mastodon_rules, servers_to_rules


class FakeResponse:
    def __init__(self, payload: object, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error

    async def json(self, content_type: str | None = None) -> object:
        return self.payload


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = responses
        self.urls: list[str] = []

    def get(self, url: str, timeout: object = None) -> FakeResponse:
        self.urls.append(url)
        return self.responses.pop(0)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    async def instant(_: float) -> None:
        return None

    monkeypatch.setattr(mastodon.asyncio, "sleep", instant)


def test_servers_to_rules_normalizes_and_sorts() -> None:
    servers = [{"domain": "Mastodon.Social."}, "fosstodon.org", {"domain": None}, 42, "bad domain"]
    assert servers_to_rules(servers) == ["||fosstodon.org^", "||mastodon.social^"]


def test_fetch_converts_directory() -> None:
    session = FakeSession([FakeResponse([{"domain": "b.social"}, {"domain": "a.social"}])])

    rules = asyncio.run(fetch_mastodon_rules("https://dir.example/servers", session=session))

    assert rules == ["||a.social^", "||b.social^"]
    assert session.urls == ["https://dir.example/servers"]


def test_fetch_retries_transient_errors() -> None:
    session = FakeSession([
        FakeResponse(None, aiohttp.ClientError("reset")),
        FakeResponse([{"domain": "a.social"}]),
    ])

    assert asyncio.run(fetch_mastodon_rules(session=session, retries=3)) == ["||a.social^"]
    assert len(session.urls) == 2


def test_fetch_gives_up_after_retries() -> None:
    session = FakeSession([FakeResponse(None, aiohttp.ClientError("down")) for _ in range(2)])

    with pytest.raises(aiohttp.ClientError):
        asyncio.run(fetch_mastodon_rules(session=session, retries=2))


def test_fetch_rejects_empty_directory() -> None:
    with pytest.raises(ValueError, match="empty"):
        asyncio.run(fetch_mastodon_rules(session=FakeSession([FakeResponse([])])))
