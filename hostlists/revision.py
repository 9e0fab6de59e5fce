"""
revision.py - Content-hash revision tracking

A hostlist's revision is the pair (hash, timeUpdated). timeUpdated only moves
when the hash of the compiled rules changes, so recompiling identical content
is a no-op even though the compiler stamps a fresh "Last modified" header
each run.
"""
from __future__ import annotations

import base64
import hashlib
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from hostlists.storage import read_json

#: Header line rewritten by the compiler on every run
VOLATILE_PREFIX = "! Last modified:"


@dataclass(frozen=True)
class RevisionRecord:
    """Stored revision of one hostlist. hash is None until the first compile."""
    time_updated: int
    hash: str | None = None

    def to_json(self) -> dict:
        return {"timeUpdated": self.time_updated, "hash": self.hash}

    @classmethod
    def from_json(cls, data: dict) -> "RevisionRecord":
        return cls(time_updated=data["timeUpdated"], hash=data.get("hash"))


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def calculate_revision_hash(compiled: Iterable[str]) -> str:
    """
    Hash compiled rules, ignoring the volatile "Last modified" header.

    The binary MD5 digest is treated as a latin-1 string and re-encoded as
    UTF-8 before base64, which is how hashes already stored in revision.json
    were produced.

    Example:
        >>> a = calculate_revision_hash(["! Last modified: 1", "||a.com^"])
        >>> b = calculate_revision_hash(["! Last modified: 2", "||a.com^"])
        >>> a == b
        True
    """
    data = "\n".join(line for line in compiled if not line.startswith(VOLATILE_PREFIX))
    digest = hashlib.md5(data.encode("utf-8")).digest()
    return base64.b64encode(digest.decode("latin-1").encode("utf-8")).decode("ascii").strip()


def make_revision(previous: RevisionRecord | None, new_hash: str, now: int | None = None) -> RevisionRecord:
    """
    Build the revision for freshly compiled content.

    Keeps previous.time_updated when the hash is unchanged, otherwise stamps
    the current time.
    """
    if previous is not None and previous.hash == new_hash:
        return RevisionRecord(time_updated=previous.time_updated, hash=new_hash)
    return RevisionRecord(time_updated=now_ms() if now is None else now, hash=new_hash)


def load_revision(path: Path, now: int | None = None) -> RevisionRecord:
    """Read revision.json, defaulting to an unhashed record stamped now."""
    data = read_json(path)
    if not data:
        return RevisionRecord(time_updated=now_ms() if now is None else now)
    return RevisionRecord.from_json(data)
