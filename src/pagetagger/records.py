# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL records and the merge-on-write rule shared by every store backend.

``UrlRecord`` is the persisted shape: one per distinct URL string.
``UrlObservation`` is one sighting of a URL, possibly carrying enrichment.

Merge rule for an existing record observed again with ``append=True``:
title, ``last_seen`` and ``access_count`` always move; each enrichment field
is overwritten only when the observation carries a non-empty value, so
completeness never regresses.  ``first_seen`` is never touched.

Pure Python module, no storage dependencies.
"""

from __future__ import annotations

import dataclasses
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from . import TaggedPage
from .addresses import extract_domain
from .url_classifier import GENERAL

# Fields overwritten only by non-empty incoming values
ENRICHMENT_FIELDS: tuple[str, ...] = (
    "categories",
    "confidence",
    "tags",
    "description",
    "image",
    "author",
    "published_date",
    "word_count",
    "language",
    "favicon",
)

DATE_FIELDS = frozenset({"first_seen", "last_seen"})
NUMERIC_FIELDS = frozenset({"access_count", "confidence", "word_count"})
LIST_FIELDS = frozenset({"categories", "tags"})
TEXT_FIELDS = frozenset(
    {"url", "title", "domain", "description", "image", "author", "published_date", "language", "favicon"}
)
SORT_FIELDS = DATE_FIELDS | NUMERIC_FIELDS | LIST_FIELDS | TEXT_FIELDS

DEFAULT_CATEGORIES: tuple[str, ...] = (GENERAL,)


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_present(value: Any) -> bool:
    """True for values that count as enrichment (not None, "", empty list, or 0)."""
    if value is None:
        return False
    if isinstance(value, str | list | tuple):
        return len(value) > 0
    if isinstance(value, int | float):
        return value != 0
    return True


@dataclass
class UrlObservation:
    """One sighting of a URL.  Empty/None fields mean "nothing new to say"."""

    url: str
    title: str = ""
    categories: list[str] = field(default_factory=list)
    confidence: float | None = None
    tags: list[str] = field(default_factory=list)
    description: str = ""
    image: str = ""
    author: str = ""
    published_date: str = ""
    word_count: int | None = None
    language: str = ""
    favicon: str = ""

    @classmethod
    def from_tagged(cls, page: TaggedPage) -> UrlObservation:
        return cls(
            url=page.url,
            title=page.title,
            categories=list(page.categories),
            confidence=page.confidence,
            tags=list(page.tags),
            description=page.description,
            image=page.image,
            author=page.author,
            published_date=page.published_date,
            word_count=page.word_count,
            language=page.language,
            favicon=page.favicon,
        )


@dataclass
class UrlRecord:
    """Persistent knowledge about one URL."""

    url: str
    title: str
    domain: str
    first_seen: datetime
    last_seen: datetime
    access_count: int = 1
    categories: list[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    confidence: float = 0.0
    tags: list[str] = field(default_factory=list)
    description: str = ""
    image: str = ""
    author: str = ""
    published_date: str = ""
    word_count: int = 0
    language: str = ""
    favicon: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["first_seen"] = self.first_seen.isoformat()
        data["last_seen"] = self.last_seen.isoformat()
        return data


def new_record(obs: UrlObservation, now: datetime) -> UrlRecord:
    """First sighting: ``first_seen == last_seen == now``, ``access_count == 1``."""
    return UrlRecord(
        url=obs.url,
        title=obs.title or "",
        domain=extract_domain(obs.url),
        first_seen=now,
        last_seen=now,
        access_count=1,
        categories=list(obs.categories) or list(DEFAULT_CATEGORIES),
        confidence=obs.confidence or 0.0,
        tags=list(obs.tags),
        description=obs.description or "",
        image=obs.image or "",
        author=obs.author or "",
        published_date=obs.published_date or "",
        word_count=obs.word_count or 0,
        language=obs.language or "",
        favicon=obs.favicon or "",
    )


def merge_observation(existing: UrlRecord, obs: UrlObservation, now: datetime) -> UrlRecord:
    """Return *existing* enriched by *obs* (the input record is not mutated)."""
    updates: dict[str, Any] = {
        "title": obs.title or "",
        "last_seen": max(now, existing.first_seen),
        "access_count": max(existing.access_count, 1) + 1,
    }
    for name in ENRICHMENT_FIELDS:
        value = getattr(obs, name)
        if is_present(value):
            updates[name] = list(value) if isinstance(value, list | tuple) else value
    return dataclasses.replace(existing, **updates)


# ---------------------------------------------------------------------------
# Read helpers: sorting, paging, searching, stats
# ---------------------------------------------------------------------------


def _sort_key(field_name: str):
    if field_name in DATE_FIELDS or field_name in NUMERIC_FIELDS:
        return lambda r: getattr(r, field_name)
    if field_name in LIST_FIELDS:
        return lambda r: ", ".join(getattr(r, field_name)).casefold()
    return lambda r: (getattr(r, field_name) or "").casefold()


def sort_records(records: Iterable[UrlRecord], sort_by: str = "last_seen", *, descending: bool = True) -> list[UrlRecord]:
    """Date-aware for first/last seen, numeric for counts, case-insensitive otherwise.

    Raises:
        ValueError: If *sort_by* is not a sortable field.
    """
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"cannot sort by {sort_by!r}; choose one of {sorted(SORT_FIELDS)}")
    return sorted(records, key=_sort_key(sort_by), reverse=descending)


def paginate(records: Sequence[UrlRecord], *, offset: int = 0, limit: int | None = None) -> list[UrlRecord]:
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")
    if limit is None:
        return list(records[offset:])
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    return list(records[offset : offset + limit])


def matches_query(record: UrlRecord, query: str) -> bool:
    """Case-insensitive substring match over title, domain, url, description, categories, tags."""
    q = query.casefold()
    if not q:
        return True
    haystacks = (record.title, record.domain, record.url, record.description, *record.categories, *record.tags)
    return any(q in (h or "").casefold() for h in haystacks)


@dataclass(frozen=True, slots=True)
class UrlStats:
    """Aggregate statistics computed by a full scan."""

    total_urls: int
    unique_domains: int
    unique_categories: int
    total_accesses: int
    top_domains: tuple[tuple[str, int], ...]
    top_categories: tuple[tuple[str, int], ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_urls": self.total_urls,
            "unique_domains": self.unique_domains,
            "unique_categories": self.unique_categories,
            "total_accesses": self.total_accesses,
            "top_domains": [{"domain": d, "count": c} for d, c in self.top_domains],
            "top_categories": [{"category": k, "count": c} for k, c in self.top_categories],
        }


def compute_stats(records: Iterable[UrlRecord], *, top_n: int = 10) -> UrlStats:
    """Counts ties keep scan order.

    Raises:
        ValueError: If *top_n* is negative.
    """
    if top_n < 0:
        raise ValueError(f"top_n must be >= 0, got {top_n}")
    domains: Counter[str] = Counter()
    categories: Counter[str] = Counter()
    total = 0
    accesses = 0
    for record in records:
        total += 1
        accesses += record.access_count
        domains[record.domain] += 1
        categories.update(dict.fromkeys(record.categories, 1))
    return UrlStats(
        total_urls=total,
        unique_domains=len(domains),
        unique_categories=len(categories),
        total_accesses=accesses,
        top_domains=tuple(domains.most_common(top_n)),
        top_categories=tuple(categories.most_common(top_n)),
    )
