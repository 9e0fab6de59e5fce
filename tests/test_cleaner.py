from __future__ import annotations

import pytest

from hostlists.cleaner import clean_line, clean_lines, extract_modifiers, strip_trailing_comment


@pytest.mark.parametrize(
    ("line", "reason"),
    [
        ("", "empty"),
        ("   ", "empty"),
        ("# comment", "comment"),
        ("! Title: x", "comment"),
        ("example.com##.banner", "cosmetic"),
        ("example.com#@#.banner", "cosmetic"),
        ("example.com#%#//scriptlet('abort')", "cosmetic"),
        ("[Adblock Plus 2.0]", "cosmetic"),
        ("||ads.example.com^$third-party", "browser_modifier"),
        ("||ads.example.com^$script,important", "browser_modifier"),
        ("/banner/$image", "browser_modifier"),
    ],
)
def test_discarded_lines(line: str, reason: str) -> None:
    result = clean_line(line)
    assert result.discarded
    assert result.reason == reason


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("  ||ads.example.com^  ", "||ads.example.com^"),
        ("||ads.example.com^$important", "||ads.example.com^$important"),
        ("0.0.0.0 ads.example.com # tracker", "0.0.0.0 ads.example.com"),
        ("@@||good.example.com^", "@@||good.example.com^"),
    ],
)
def test_kept_lines(line: str, expected: str) -> None:
    assert clean_line(line).line == expected


def test_extract_modifiers_strips_values_and_negation() -> None:
    assert extract_modifiers("||a.com^$client=10.0.0.1,~important") == {"client", "important"}


def test_trailing_hash_without_space_is_kept() -> None:
    assert strip_trailing_comment("||example.com^#fragment") == "||example.com^#fragment"


def test_clean_lines_counts_reasons() -> None:
    kept, discarded = clean_lines(["# c", "||a.com^", "", "a.com##.x", "! c"])
    assert kept == ["||a.com^"]
    assert discarded == {"comment": 2, "empty": 1, "cosmetic": 1}
