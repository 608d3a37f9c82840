# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SQLite-backed URL store — persistent merge-on-write records.

Uses ``aiosqlite`` with a single long-lived connection in autocommit mode:
every write is one ``INSERT ... ON CONFLICT`` statement, so it is atomic on
its own and a failure never rolls back another URL's write.  WAL journal
mode lets reads proceed alongside writes.  Schema versioned via
``PRAGMA user_version``.

Multi-valued fields (categories, tags) are stored as JSON arrays on the
``urls`` row and mirrored into indexed side tables by triggers, which keeps
lookup by category or tag off the full-scan path.

Dependencies: records.py (merge rule, sorting, stats), store.py (protocol
helpers).  The merge rule is expressed in SQL below and must stay in step
with ``records.merge_observation``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from contextlib import suppress
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from .addresses import extract_domain
from .errors import StoreSchemaError, StoreWriteError
from .records import (
    DEFAULT_CATEGORIES,
    DATE_FIELDS,
    SORT_FIELDS,
    NUMERIC_FIELDS,
    UrlObservation,
    UrlRecord,
    UrlStats,
    compute_stats,
    matches_query,
    paginate,
    sort_records,
    utcnow,
)
from .store import Clock, KeyedLocks, SaveUrlsResult, save_observations, validate_observation

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_COLUMNS = (
    "url",
    "title",
    "domain",
    "first_seen",
    "last_seen",
    "access_count",
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
_SELECT = "SELECT " + ", ".join(f"u.{c}" for c in _COLUMNS) + " FROM urls u"


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _ts(value: datetime) -> str:
    """UTC ISO-8601 with fixed precision, so text order matches time order."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _json_list(values: list[str] | tuple[str, ...]) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def _row_to_record(row: aiosqlite.Row) -> UrlRecord:
    """Convert a positional row (``_COLUMNS`` order) to a ``UrlRecord``."""
    return UrlRecord(
        url=row[0],
        title=row[1],
        domain=row[2],
        first_seen=datetime.fromisoformat(row[3]),
        last_seen=datetime.fromisoformat(row[4]),
        access_count=row[5],
        categories=json.loads(row[6]),
        confidence=row[7],
        tags=json.loads(row[8]),
        description=row[9],
        image=row[10],
        author=row[11],
        published_date=row[12],
        word_count=row[13],
        language=row[14],
        favicon=row[15],
    )


def _params(obs: UrlObservation, now: datetime) -> dict[str, Any]:
    """Named parameters for ``_UPSERT``; empty values mean "keep what is stored"."""
    categories = list(obs.categories)
    return {
        "url": obs.url,
        "title": obs.title or "",
        "domain": extract_domain(obs.url),
        "now": _ts(now),
        "insert_categories": _json_list(categories or list(DEFAULT_CATEGORIES)),
        "categories": _json_list(categories),
        "confidence": obs.confidence or 0.0,
        "tags": _json_list(obs.tags),
        "description": obs.description or "",
        "image": obs.image or "",
        "author": obs.author or "",
        "published_date": obs.published_date or "",
        "word_count": obs.word_count or 0,
        "language": obs.language or "",
        "favicon": obs.favicon or "",
    }


# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_CREATE_URLS = """
CREATE TABLE IF NOT EXISTS urls (
    url            TEXT PRIMARY KEY,
    title          TEXT NOT NULL DEFAULT '',
    domain         TEXT NOT NULL,
    first_seen     TEXT NOT NULL,
    last_seen      TEXT NOT NULL,
    access_count   INTEGER NOT NULL DEFAULT 1,
    categories     TEXT NOT NULL DEFAULT '["general"]',
    confidence     REAL NOT NULL DEFAULT 0,
    tags           TEXT NOT NULL DEFAULT '[]',
    description    TEXT NOT NULL DEFAULT '',
    image          TEXT NOT NULL DEFAULT '',
    author         TEXT NOT NULL DEFAULT '',
    published_date TEXT NOT NULL DEFAULT '',
    word_count     INTEGER NOT NULL DEFAULT 0,
    language       TEXT NOT NULL DEFAULT '',
    favicon        TEXT NOT NULL DEFAULT ''
)
"""

_CREATE_URL_CATEGORIES = """
CREATE TABLE IF NOT EXISTS url_categories (
    url      TEXT NOT NULL REFERENCES urls(url) ON DELETE CASCADE,
    category TEXT NOT NULL,
    PRIMARY KEY (url, category)
)
"""

_CREATE_URL_TAGS = """
CREATE TABLE IF NOT EXISTS url_tags (
    url TEXT NOT NULL REFERENCES urls(url) ON DELETE CASCADE,
    tag TEXT NOT NULL,
    PRIMARY KEY (url, tag)
)
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_urls_domain ON urls(domain)",
    "CREATE INDEX IF NOT EXISTS idx_urls_last_seen ON urls(last_seen)",
    "CREATE INDEX IF NOT EXISTS idx_url_categories_category ON url_categories(category)",
    "CREATE INDEX IF NOT EXISTS idx_url_tags_tag ON url_tags(tag)",
]

_CREATE_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_urls_insert AFTER INSERT ON urls BEGIN
        INSERT OR IGNORE INTO url_categories (url, category)
            SELECT NEW.url, value FROM json_each(NEW.categories);
        INSERT OR IGNORE INTO url_tags (url, tag)
            SELECT NEW.url, value FROM json_each(NEW.tags);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_urls_update AFTER UPDATE OF categories, tags ON urls BEGIN
        DELETE FROM url_categories WHERE url = NEW.url;
        INSERT OR IGNORE INTO url_categories (url, category)
            SELECT NEW.url, value FROM json_each(NEW.categories);
        DELETE FROM url_tags WHERE url = NEW.url;
        INSERT OR IGNORE INTO url_tags (url, tag)
            SELECT NEW.url, value FROM json_each(NEW.tags);
    END
    """,
]

_INSERT_VALUES = """
INSERT INTO urls (
    url, title, domain, first_seen, last_seen, access_count, categories, confidence, tags,
    description, image, author, published_date, word_count, language, favicon
) VALUES (
    :url, :title, :domain, :now, :now, 1, :insert_categories, :confidence, :tags,
    :description, :image, :author, :published_date, :word_count, :language, :favicon
)
"""

# Enrichment columns move only when the incoming value is non-empty.
_UPSERT = (
    _INSERT_VALUES
    + """
ON CONFLICT(url) DO UPDATE SET
    title          = :title,
    last_seen      = MAX(:now, urls.first_seen),
    access_count   = MAX(urls.access_count, 1) + 1,
    categories     = CASE WHEN :categories <> '[]' THEN :categories ELSE urls.categories END,
    confidence     = CASE WHEN :confidence <> 0 THEN :confidence ELSE urls.confidence END,
    tags           = CASE WHEN :tags <> '[]' THEN :tags ELSE urls.tags END,
    description    = CASE WHEN :description <> '' THEN :description ELSE urls.description END,
    image          = CASE WHEN :image <> '' THEN :image ELSE urls.image END,
    author         = CASE WHEN :author <> '' THEN :author ELSE urls.author END,
    published_date = CASE WHEN :published_date <> '' THEN :published_date ELSE urls.published_date END,
    word_count     = CASE WHEN :word_count <> 0 THEN :word_count ELSE urls.word_count END,
    language       = CASE WHEN :language <> '' THEN :language ELSE urls.language END,
    favicon        = CASE WHEN :favicon <> '' THEN :favicon ELSE urls.favicon END
"""
)

_INSERT_OR_KEEP = _INSERT_VALUES + "ON CONFLICT(url) DO NOTHING"


# ---------------------------------------------------------------------------
# SqliteUrlStore
# ---------------------------------------------------------------------------


class SqliteUrlStore:
    """SQLite-backed store implementing ``UrlStoreProtocol``.

    The connection is opened lazily on first use; ``create()`` opens it
    eagerly so schema problems surface at startup.
    """

    def __init__(self, db_path: str | Path, *, clock: Clock = utcnow) -> None:
        self._path = Path(db_path).expanduser()
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._open_lock = asyncio.Lock()
        self._locks = KeyedLocks()

    @classmethod
    async def create(cls, db_path: str | Path, *, clock: Clock = utcnow) -> SqliteUrlStore:
        """Open (or create) the database and initialise the schema.

        Raises:
            StoreSchemaError: If the existing database has a newer schema version.
        """
        store = cls(db_path, clock=clock)
        await store._ensure_db()
        return store

    @property
    def path(self) -> Path:
        return self._path

    async def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is not None:
            return self._db
        async with self._open_lock:
            if self._db is None:
                self._db = await self._open()
        return self._db

    async def _open(self) -> aiosqlite.Connection:
        path = self._path.resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(str(path), isolation_level=None)
        try:
            await db.execute("PRAGMA journal_mode = WAL")
            await db.execute("PRAGMA foreign_keys = ON")

            cursor = await db.execute("PRAGMA user_version")
            row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > _SCHEMA_VERSION:
                raise StoreSchemaError(
                    f"Database schema version {current_version} is newer than supported version {_SCHEMA_VERSION}"
                )

            if current_version < _SCHEMA_VERSION:
                await db.execute("BEGIN")
                for ddl in (_CREATE_URLS, _CREATE_URL_CATEGORIES, _CREATE_URL_TAGS, *_CREATE_INDEXES, *_CREATE_TRIGGERS):
                    await db.execute(ddl)
                await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
                await db.execute("COMMIT")
                logger.info("Initialised URL store schema v%d at %s", _SCHEMA_VERSION, path)
        except BaseException:
            await db.close()
            raise
        return db

    async def _fetch(self, sql: str, params: tuple | dict = ()) -> list[UrlRecord]:
        db = await self._ensure_db()
        cursor = await db.execute(sql, params)
        rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    async def _fetch_one(self, db: aiosqlite.Connection, url: str) -> UrlRecord | None:
        cursor = await db.execute(f"{_SELECT} WHERE u.url = ?", (url,))
        row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    # ── UrlStoreProtocol methods ──────────────────────────────────

    async def save_url(self, obs: UrlObservation, append: bool = True) -> UrlRecord:
        """Insert, merge (``append=True``) or read through (``append=False``).

        Raises:
            StoreWriteError: If the observation has no URL or SQLite rejects the write.
        """
        validate_observation(obs)
        db = await self._ensure_db()
        async with self._locks.hold(obs.url):
            try:
                await db.execute(_UPSERT if append else _INSERT_OR_KEEP, _params(obs, self._clock()))
                record = await self._fetch_one(db, obs.url)
            except aiosqlite.Error as exc:
                raise StoreWriteError(f"Failed to save {obs.url}: {exc}", url=obs.url) from exc
        if record is None:
            raise StoreWriteError(f"Record for {obs.url} vanished after write", url=obs.url)
        return record

    async def save_urls(self, observations: Iterable[UrlObservation], append: bool = True) -> SaveUrlsResult:
        return await save_observations(self, observations, append)

    async def get_url(self, url: str) -> UrlRecord | None:
        return await self._fetch_one(await self._ensure_db(), url)

    async def get_all_urls(
        self,
        *,
        sort_by: str = "last_seen",
        descending: bool = True,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[UrlRecord]:
        """Return records sorted by *sort_by*.

        Raises:
            ValueError: On an unknown sort field or a negative offset/limit.
        """
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"cannot sort by {sort_by!r}; choose one of {sorted(SORT_FIELDS)}")
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        if sort_by in DATE_FIELDS or sort_by in NUMERIC_FIELDS:
            # sort_by is whitelisted above; rowid keeps ties in insertion order
            direction = "DESC" if descending else "ASC"
            sql = f"{_SELECT} ORDER BY u.{sort_by} {direction}, u.rowid LIMIT ? OFFSET ?"
            return await self._fetch(sql, (-1 if limit is None else limit, offset))

        # Text and list fields are ordered by casefolded value in Python, like the in-memory store
        records = await self._fetch(f"{_SELECT} ORDER BY u.rowid")
        return paginate(sort_records(records, sort_by, descending=descending), offset=offset, limit=limit)

    async def get_urls_by_domain(self, domain: str) -> list[UrlRecord]:
        return await self._fetch(f"{_SELECT} WHERE u.domain = ? ORDER BY u.last_seen DESC", (domain,))

    async def get_urls_by_category(self, category: str) -> list[UrlRecord]:
        return await self._fetch(
            f"{_SELECT} JOIN url_categories c ON c.url = u.url WHERE c.category = ? ORDER BY u.last_seen DESC",
            (category,),
        )

    async def get_urls_by_tag(self, tag: str) -> list[UrlRecord]:
        return await self._fetch(
            f"{_SELECT} JOIN url_tags t ON t.url = u.url WHERE t.tag = ? ORDER BY u.last_seen DESC",
            (tag,),
        )

    async def search_urls(self, query: str) -> list[UrlRecord]:
        return [r for r in await self.get_all_urls() if matches_query(r, query)]

    async def delete_url(self, url: str) -> bool:
        """Delete one record (its category/tag rows cascade). Returns ``True`` if found."""
        db = await self._ensure_db()
        async with self._locks.hold(url):
            cursor = await db.execute("DELETE FROM urls WHERE url = ?", (url,))
        return cursor.rowcount > 0

    async def clear_all_urls(self) -> int:
        db = await self._ensure_db()
        cursor = await db.execute("SELECT COUNT(*) FROM urls")
        row = await cursor.fetchone()
        await db.execute("DELETE FROM urls")
        return row[0] if row else 0

    async def get_stats(self, top_n: int = 10) -> UrlStats:
        return compute_stats(await self.get_all_urls(), top_n=top_n)

    async def close(self) -> None:
        """Close the database connection. Idempotent."""
        db, self._db = self._db, None
        if db is not None:
            with suppress(Exception):
                await db.close()
