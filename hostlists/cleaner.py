"""
cleaner.py - Source rule cleaning for the local compiler

Hostlists are consumed by DNS-level blockers, which only ever see a domain
name. Rules that need page or request context cannot be honoured there, so
they are discarded rather than stripped down: stripping `$third-party` from a
rule would turn a narrow block into a blanket one.

Discarded:
    1. Empty lines and comments (# and !)
    2. Cosmetic / element-hiding rules (##, #@#, #$#, #%# ...)
    3. Rules carrying browser-only modifiers
"""
from __future__ import annotations

import re
from typing import Final, NamedTuple


# Modifiers that only make sense inside a browser. A rule carrying any of
# them is dropped entirely.
BROWSER_ONLY_MODIFIERS: Final[frozenset[str]] = frozenset({
    # Content types
    "script", "image", "stylesheet", "font", "media", "object",
    "subdocument", "xmlhttprequest", "websocket", "webrtc", "ping", "other",
    "css", "js",
    # Request context
    "third-party", "3p", "first-party", "1p", "domain",
    "strict-first-party", "strict-third-party", "match-case", "method",
    # Page level
    "document", "doc", "popup", "all", "network",
    # Response rewriting
    "redirect", "redirect-rule", "empty", "mp4", "csp", "permissions",
    "header", "removeparam", "removeheader", "replace", "hls", "jsonprune",
    # Extension exceptions
    "genericblock", "generichide", "elemhide", "specifichide", "jsinject",
    "urlblock", "content", "extension", "stealth", "app",
})

COSMETIC_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"#[@$?%]*#|"      # ## #@# #?# #$# ...
    r"\$#|"            # snippet injection
    r"\[adblock",      # [Adblock Plus 2.0] header
    re.IGNORECASE,
)

COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*[#!]")

#: " # comment" at the end of a rule; a # without leading space is kept
TRAILING_COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"\s+#\s+.*$")

MODIFIER_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$([^$]+)$")


class CleanResult(NamedTuple):
    """
    Outcome for one source line.

    Attributes:
        line: Cleaned rule, or None if discarded
        reason: Why the line was discarded, or None if kept
    """
    line: str | None
    reason: str | None

    @property
    def discarded(self) -> bool:
        return self.line is None


def extract_modifiers(rule: str) -> set[str]:
    """
    Modifier names of a rule, lowercased, without ~ or =value.

    Example:
        >>> sorted(extract_modifiers("||example.com^$script,~third-party"))
        ['script', 'third-party']
        >>> extract_modifiers("||example.com^")
        set()
    """
    match = MODIFIER_PATTERN.search(rule)
    if not match:
        return set()
    names = set()
    for part in match.group(1).split(","):
        name = part.split("=")[0].strip().lower().lstrip("~")
        if name:
            names.add(name)
    return names


def strip_trailing_comment(line: str) -> str:
    # $dnsrewrite values may legitimately contain '#'
    if "$" in line and "#" in line.split("$")[-1]:
        return line
    match = TRAILING_COMMENT_PATTERN.search(line)
    if match:
        return line[:match.start()].rstrip()
    return line


def clean_line(line: str) -> CleanResult:
    """
    Clean a single source line.

    Example:
        >>> clean_line("  ||ads.example.com^  ").line
        '||ads.example.com^'
        >>> clean_line("example.com##.banner").reason
        'cosmetic'
        >>> clean_line("||example.com^$third-party").reason
        'browser_modifier'
    """
    line = line.strip()
    if not line:
        return CleanResult(None, "empty")
    if COMMENT_PATTERN.match(line):
        return CleanResult(None, "comment")
    if COSMETIC_PATTERN.search(line):
        return CleanResult(None, "cosmetic")

    line = strip_trailing_comment(line)

    if "$" in line and extract_modifiers(line) & BROWSER_ONLY_MODIFIERS:
        return CleanResult(None, "browser_modifier")

    return CleanResult(line, None)


def clean_lines(lines: list[str]) -> tuple[list[str], dict[str, int]]:
    """Clean many lines, returning kept rules and discard counts by reason."""
    kept: list[str] = []
    discarded: dict[str, int] = {}
    for raw in lines:
        result = clean_line(raw)
        if result.discarded:
            discarded[result.reason] = discarded.get(result.reason, 0) + 1
        else:
            kept.append(result.line)
    return kept, discarded
