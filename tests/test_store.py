# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Merge-on-write store behaviour, run against every backend.

The ``store`` fixture (conftest.py) is parametrised over the in-memory and
SQLite implementations with a clock that advances one second per call.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from pagetagger.errors import StoreWriteError
from pagetagger.store import KeyedLocks, UrlStoreProtocol
from tests._helpers import T0, make_obs

# ---------------------------------------------------------------------------
# save_url
# ---------------------------------------------------------------------------


class TestSaveUrl:
    async def test_protocol(self, store):
        assert isinstance(store, UrlStoreProtocol)

    async def test_first_save(self, store):
        rec = await store.save_url(make_obs("https://Example.com/a", title="A"))
        assert rec.access_count == 1
        assert rec.first_seen == rec.last_seen == T0
        assert rec.domain == "example.com"
        assert rec.categories == ["general"]

    async def test_description_example(self, store):
        await store.save_url(make_obs(title="first"))
        rec = await store.save_url(make_obs(title="second", description="hello"))
        assert rec.description == "hello"
        assert rec.access_count == 2
        assert rec.title == "second"
        assert rec.first_seen == T0
        assert rec.last_seen == T0 + timedelta(seconds=1)

    async def test_enrichment_never_lost(self, store):
        await store.save_url(
            make_obs(categories=["news", "business"], confidence=0.9, tags=["markets"], author="Ada",
                     language="fr", word_count=800, favicon="/f.ico", image="/i.png", published_date="2024-01-01")
        )
        rec = await store.save_url(make_obs(title="again"))
        assert rec.categories == ["news", "business"]
        assert rec.confidence == 0.9
        assert rec.tags == ["markets"]
        assert rec.author == "Ada"
        assert rec.language == "fr"
        assert rec.word_count == 800
        assert rec.favicon == "/f.ico"
        assert rec.image == "/i.png"
        assert rec.published_date == "2024-01-01"

    async def test_newer_enrichment_replaces(self, store):
        await store.save_url(make_obs(categories=["news"], tags=["a1"]))
        rec = await store.save_url(make_obs(categories=["sports"], tags=["b1", "b2"]))
        assert rec.categories == ["sports"]
        assert rec.tags == ["b1", "b2"]

    async def test_no_append_keeps_existing(self, store):
        await store.save_url(make_obs(title="orig"))
        rec = await store.save_url(make_obs(title="ignored", description="x"), append=False)
        assert rec.title == "orig"
        assert rec.description == ""
        assert rec.access_count == 1

    async def test_no_append_inserts_new(self, store):
        rec = await store.save_url(make_obs("https://new.example/"), append=False)
        assert rec.access_count == 1

    async def test_empty_url_rejected(self, store):
        with pytest.raises(StoreWriteError):
            await store.save_url(make_obs(""))

    async def test_returned_record_is_a_copy(self, store):
        rec = await store.save_url(make_obs(tags=["t1"]))
        rec.tags.append("mutated")
        assert (await store.get_url(rec.url)).tags == ["t1"]


# ---------------------------------------------------------------------------
# save_urls
# ---------------------------------------------------------------------------


class TestSaveUrls:
    async def test_counts_and_isolated_errors(self, store):
        await store.save_url(make_obs("https://a.example/"))
        result = await store.save_urls(
            [make_obs("https://a.example/"), make_obs(""), make_obs("https://b.example/")]
        )
        assert result.saved == 1
        assert result.updated == 1
        assert len(result.errors) == 1
        assert result.errors[0].url == ""
        assert await store.get_url("https://b.example/") is not None

    async def test_to_dict(self, store):
        result = await store.save_urls([make_obs()])
        assert result.to_dict() == {"saved": 1, "updated": 0, "errors": []}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def _seed(store):
    await store.save_url(make_obs("https://github.com/a", title="Alpha", categories=["technology"], tags=["code"]))
    await store.save_url(make_obs("https://github.com/b", title="beta", categories=["technology", "news"]))
    await store.save_url(make_obs("https://news.example/c", title="Gamma", categories=["news"], tags=["code", "daily"],
                                  description="Morning briefing"))


class TestQueries:
    async def test_get_missing(self, store):
        assert await store.get_url("https://missing/") is None

    async def test_get_all_default_newest_first(self, store):
        await _seed(store)
        urls = [r.url for r in await store.get_all_urls()]
        assert urls == ["https://news.example/c", "https://github.com/b", "https://github.com/a"]

    async def test_get_all_sorted_and_paged(self, store):
        await _seed(store)
        recs = await store.get_all_urls(sort_by="title", descending=False, offset=1, limit=1)
        assert [r.title for r in recs] == ["beta"]

    async def test_get_all_by_access_count(self, store):
        await _seed(store)
        await store.save_url(make_obs("https://github.com/a"))
        recs = await store.get_all_urls(sort_by="access_count")
        assert recs[0].url == "https://github.com/a"

    async def test_sort_by_tags_joins_list(self, store):
        await store.save_url(make_obs("https://x.example/1", tags=["b"]))
        await store.save_url(make_obs("https://x.example/2", tags=["a", "c"]))
        await store.save_url(make_obs("https://x.example/3", tags=["a"]))

        asc = await store.get_all_urls(sort_by="tags", descending=False)
        assert [r.url[-1] for r in asc] == ["3", "2", "1"]
        desc = await store.get_all_urls(sort_by="tags", descending=True, limit=2)
        assert [r.url[-1] for r in desc] == ["1", "2"]

    async def test_sort_by_title_folds_non_ascii(self, store):
        await store.save_url(make_obs("https://x.example/1", title="Ébc"))
        await store.save_url(make_obs("https://x.example/2", title="éa"))

        recs = await store.get_all_urls(sort_by="title", descending=False)
        assert [r.title for r in recs] == ["éa", "Ébc"]

    async def test_sort_ties_keep_insertion_order(self, store):
        for i in range(3):
            await store.save_url(make_obs(f"https://x.example/{i}", categories=["news"], word_count=5))

        for field in ("categories", "word_count"):
            recs = await store.get_all_urls(sort_by=field, descending=False)
            assert [r.url[-1] for r in recs] == ["0", "1", "2"]

    async def test_bad_sort_field(self, store):
        with pytest.raises(ValueError):
            await store.get_all_urls(sort_by="bogus")

    async def test_by_domain(self, store):
        await _seed(store)
        assert {r.url for r in await store.get_urls_by_domain("github.com")} == {
            "https://github.com/a",
            "https://github.com/b",
        }

    async def test_by_category(self, store):
        await _seed(store)
        assert {r.url for r in await store.get_urls_by_category("news")} == {
            "https://github.com/b",
            "https://news.example/c",
        }
        assert await store.get_urls_by_category("sports") == []

    async def test_by_tag(self, store):
        await _seed(store)
        assert [r.url for r in await store.get_urls_by_tag("code")] == ["https://news.example/c", "https://github.com/a"]

    async def test_indexes_follow_merges(self, store):
        await _seed(store)
        await store.save_url(make_obs("https://github.com/a", categories=["education"], tags=["learn"]))
        assert "https://github.com/a" not in {r.url for r in await store.get_urls_by_category("technology")}
        assert [r.url for r in await store.get_urls_by_category("education")] == ["https://github.com/a"]
        assert [r.url for r in await store.get_urls_by_tag("code")] == ["https://news.example/c"]

    async def test_search(self, store):
        await _seed(store)
        assert [r.url for r in await store.search_urls("BRIEFING")] == ["https://news.example/c"]
        assert {r.url for r in await store.search_urls("github")} == {"https://github.com/a", "https://github.com/b"}
        assert await store.search_urls("nothing-here") == []


# ---------------------------------------------------------------------------
# Deletes and stats
# ---------------------------------------------------------------------------


class TestDeleteAndStats:
    async def test_delete(self, store):
        await _seed(store)
        assert await store.delete_url("https://github.com/a") is True
        assert await store.delete_url("https://github.com/a") is False
        assert await store.get_url("https://github.com/a") is None
        assert [r.url for r in await store.get_urls_by_tag("code")] == ["https://news.example/c"]

    async def test_clear(self, store):
        await _seed(store)
        assert await store.clear_all_urls() == 3
        assert await store.get_all_urls() == []
        assert await store.get_urls_by_category("news") == []

    async def test_stats(self, store):
        await _seed(store)
        await store.save_url(make_obs("https://github.com/a"))
        stats = await store.get_stats()
        assert stats.total_urls == 3
        assert stats.unique_domains == 2
        assert stats.unique_categories == 2
        assert stats.total_accesses == 4
        assert stats.top_domains[0] == ("github.com", 2)
        assert dict(stats.top_categories) == {"technology": 2, "news": 2}

    async def test_stats_empty(self, store):
        stats = await store.get_stats()
        assert stats.total_urls == 0
        assert stats.top_domains == ()


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    async def test_same_key_writes_all_counted(self, store):
        await asyncio.gather(*(store.save_url(make_obs(title=f"t{i}")) for i in range(40)))
        rec = await store.get_url("https://example.com/a")
        assert rec.access_count == 40
        assert rec.first_seen == T0
        assert rec.first_seen <= rec.last_seen

    async def test_concurrent_enrichment_not_lost(self, store):
        await asyncio.gather(
            store.save_url(make_obs(description="desc")),
            store.save_url(make_obs(author="Ada")),
            store.save_url(make_obs(language="de")),
        )
        rec = await store.get_url("https://example.com/a")
        assert (rec.description, rec.author, rec.language) == ("desc", "Ada", "de")
        assert rec.access_count == 3

    async def test_distinct_keys(self, store):
        await asyncio.gather(*(store.save_url(make_obs(f"https://x.example/{i}")) for i in range(20)))
        assert len(await store.get_all_urls()) == 20


class TestKeyedLocks:
    async def test_locks_released(self):
        locks = KeyedLocks()
        async with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0

    async def test_serialises_same_key(self):
        locks = KeyedLocks()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("k"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]
