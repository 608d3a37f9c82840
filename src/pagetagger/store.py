# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL store abstraction — protocol-based data access layer.

Defines ``UrlStoreProtocol`` for merge-on-write URL storage and
``InMemoryUrlStore`` for tests and short-lived processes.  The SQLite
backend lives in ``store_sqlite.py``.

Pattern: runtime-checkable Protocol + concrete implementations, each
constructed explicitly by the caller (no module-level instances).

Concurrency: the read-modify-write of one key is serialised through
``KeyedLocks``; different keys never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from .errors import StoreWriteError
from .records import (
    UrlObservation,
    UrlRecord,
    UrlStats,
    compute_stats,
    matches_query,
    merge_observation,
    new_record,
    paginate,
    sort_records,
    utcnow,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# ---------------------------------------------------------------------------
# Batch results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SaveError:
    url: str
    error: str


@dataclass
class SaveUrlsResult:
    """Outcome of ``save_urls``: insert/update counts plus per-record errors."""

    saved: int = 0
    updated: int = 0
    errors: list[SaveError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "saved": self.saved,
            "updated": self.updated,
            "errors": [{"url": e.url, "error": e.error} for e in self.errors],
        }


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class UrlStoreProtocol(Protocol):
    """Interface for URL storage (in-memory or SQLite)."""

    async def save_url(self, obs: UrlObservation, append: bool = True) -> UrlRecord: ...

    async def save_urls(self, observations: Iterable[UrlObservation], append: bool = True) -> SaveUrlsResult: ...

    async def get_url(self, url: str) -> UrlRecord | None: ...

    async def get_all_urls(
        self,
        *,
        sort_by: str = "last_seen",
        descending: bool = True,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[UrlRecord]: ...

    async def get_urls_by_domain(self, domain: str) -> list[UrlRecord]: ...

    async def get_urls_by_category(self, category: str) -> list[UrlRecord]: ...

    async def get_urls_by_tag(self, tag: str) -> list[UrlRecord]: ...

    async def search_urls(self, query: str) -> list[UrlRecord]: ...

    async def delete_url(self, url: str) -> bool: ...

    async def clear_all_urls(self) -> int: ...

    async def get_stats(self, top_n: int = 10) -> UrlStats: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


class KeyedLocks:
    """One ``asyncio.Lock`` per key, dropped when the last holder leaves."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def validate_observation(obs: UrlObservation) -> None:
    """Raises StoreWriteError for observations no backend can key."""
    if not isinstance(obs.url, str) or not obs.url:
        raise StoreWriteError("observation has no URL", url=str(obs.url or ""))


async def save_observations(
    store: UrlStoreProtocol, observations: Iterable[UrlObservation], append: bool = True
) -> SaveUrlsResult:
    """Save each observation, isolating failures per record.

    ``updated`` counts records whose post-write ``access_count`` exceeds 1.
    """
    result = SaveUrlsResult()
    for obs in observations:
        url = getattr(obs, "url", "")
        try:
            record = await store.save_url(obs, append)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Failed to save %s: %s", url, exc)
            result.errors.append(SaveError(url=str(url), error=str(exc)))
            continue
        if record.access_count > 1:
            result.updated += 1
        else:
            result.saved += 1
    return result


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryUrlStore:
    """Dict-backed store with the same merge semantics as the SQLite backend.

    Secondary indices are plain dicts of URL sets, kept in step with every
    write.  Records are copied on the way in and out.
    """

    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._records: dict[str, UrlRecord] = {}
        self._by_domain: dict[str, set[str]] = {}
        self._by_category: dict[str, set[str]] = {}
        self._by_tag: dict[str, set[str]] = {}
        self._locks = KeyedLocks()

    # ── index maintenance ─────────────────────────────────────────

    @staticmethod
    def _index_add(index: dict[str, set[str]], keys: Iterable[str], url: str) -> None:
        for key in keys:
            index.setdefault(key, set()).add(url)

    @staticmethod
    def _index_remove(index: dict[str, set[str]], keys: Iterable[str], url: str) -> None:
        for key in keys:
            urls = index.get(key)
            if urls is None:
                continue
            urls.discard(url)
            if not urls:
                del index[key]

    def _unindex(self, record: UrlRecord) -> None:
        self._index_remove(self._by_domain, [record.domain], record.url)
        self._index_remove(self._by_category, record.categories, record.url)
        self._index_remove(self._by_tag, record.tags, record.url)

    def _index(self, record: UrlRecord) -> None:
        self._index_add(self._by_domain, [record.domain], record.url)
        self._index_add(self._by_category, record.categories, record.url)
        self._index_add(self._by_tag, record.tags, record.url)

    def _put(self, record: UrlRecord) -> None:
        old = self._records.get(record.url)
        if old is not None:
            self._unindex(old)
        self._records[record.url] = record
        self._index(record)

    @staticmethod
    def _copy(record: UrlRecord) -> UrlRecord:
        return UrlRecord(**{**record.__dict__, "categories": list(record.categories), "tags": list(record.tags)})

    def _lookup(self, index: dict[str, set[str]], key: str) -> list[UrlRecord]:
        records = (self._records[u] for u in index.get(key, ()))
        return [self._copy(r) for r in sort_records(records, "last_seen")]

    # ── UrlStoreProtocol methods ──────────────────────────────────

    async def save_url(self, obs: UrlObservation, append: bool = True) -> UrlRecord:
        """Insert, merge (``append=True``) or read through (``append=False``)."""
        validate_observation(obs)
        async with self._locks.hold(obs.url):
            existing = self._records.get(obs.url)
            if existing is None:
                record = new_record(obs, self._clock())
            elif append:
                record = merge_observation(existing, obs, self._clock())
            else:
                return self._copy(existing)
            self._put(record)
            return self._copy(record)

    async def save_urls(self, observations: Iterable[UrlObservation], append: bool = True) -> SaveUrlsResult:
        return await save_observations(self, observations, append)

    async def get_url(self, url: str) -> UrlRecord | None:
        record = self._records.get(url)
        return self._copy(record) if record is not None else None

    async def get_all_urls(
        self,
        *,
        sort_by: str = "last_seen",
        descending: bool = True,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[UrlRecord]:
        ordered = sort_records(self._records.values(), sort_by, descending=descending)
        return [self._copy(r) for r in paginate(ordered, offset=offset, limit=limit)]

    async def get_urls_by_domain(self, domain: str) -> list[UrlRecord]:
        return self._lookup(self._by_domain, domain)

    async def get_urls_by_category(self, category: str) -> list[UrlRecord]:
        return self._lookup(self._by_category, category)

    async def get_urls_by_tag(self, tag: str) -> list[UrlRecord]:
        return self._lookup(self._by_tag, tag)

    async def search_urls(self, query: str) -> list[UrlRecord]:
        return [r for r in await self.get_all_urls() if matches_query(r, query)]

    async def delete_url(self, url: str) -> bool:
        async with self._locks.hold(url):
            record = self._records.pop(url, None)
            if record is None:
                return False
            self._unindex(record)
            return True

    async def clear_all_urls(self) -> int:
        count = len(self._records)
        self._records.clear()
        self._by_domain.clear()
        self._by_category.clear()
        self._by_tag.clear()
        return count

    async def get_stats(self, top_n: int = 10) -> UrlStats:
        return compute_stats(await self.get_all_urls(), top_n=top_n)

    async def close(self) -> None:
        """No-op for the in-memory store."""
