"""Blocklist Entity - releases we never want to grab again."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime

from grabarr.domain.value_objects import DownloadProtocol

_WHITESPACE = re.compile(r"\s+")


def fingerprint(indexer_id: int, protocol: DownloadProtocol, title: str) -> str:
    """Stable identity of a release across searches.

    Hey future me - titles come back from indexers with random casing and
    double spaces, so we normalise before hashing. Same release on two
    different indexers = two fingerprints (the indexer is part of the identity).
    """
    normalized_title = _WHITESPACE.sub(" ", title.strip().lower())
    raw = f"{indexer_id}:{protocol.value}:{normalized_title}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class BlocklistEntry:
    """A permanently rejected release. Only removed by explicit user action."""

    id: int | None
    fingerprint: str
    media_id: int
    episode_id: int | None
    source_title: str
    indexer_id: int
    protocol: DownloadProtocol
    reason: str
    date: datetime
