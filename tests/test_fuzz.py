# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Property-based fuzz tests using Hypothesis.

Verifies invariants hold for arbitrary inputs across the classification
pipeline, the combiner, tag synthesis, schema mapping and record merging.
"""

from __future__ import annotations

try:
    from hypothesis import HealthCheck, example, given, settings
    from hypothesis import strategies as st
except ImportError:
    import pytest

    pytest.skip("hypothesis not installed", allow_module_level=True)

import re
from datetime import timedelta

import pytest

from pagetagger.combiner import MAX_FINAL_CATEGORIES, ConfidenceCombiner
from pagetagger.pipeline import ClassificationPipeline
from pagetagger.records import UrlObservation, merge_observation, new_record
from pagetagger.schema_mapper import SCHEMA_TYPE_TO_CATEGORY, SchemaMapper
from pagetagger.signals import RawSignalBag
from pagetagger.tags import MAX_TAG_LEN, MAX_TAGS, MIN_TAG_LEN, STOPWORDS, TagSynthesizer, finalize_tags
from pagetagger.text_classifier import CATEGORY_TABLE, LocalTextResult
from tests._helpers import T0

# ---------------------------------------------------------------------------
# Module-level strategies
# ---------------------------------------------------------------------------

GENERAL_TEXT = st.text(min_size=0, max_size=500)

VALID_URL = st.from_regex(
    r"https?://[a-z0-9\-]+(\.[a-z]{2,6}){1,2}(/[a-z0-9\-._~/?=&]*)?",
    fullmatch=True,
)

ANY_URL = st.one_of(VALID_URL, GENERAL_TEXT)

KNOWN_CATEGORIES = sorted({c.name for c in CATEGORY_TABLE} | set(SCHEMA_TYPE_TO_CATEGORY.values()) | {"general"})

CATEGORY = st.one_of(st.sampled_from(KNOWN_CATEGORIES), st.text(min_size=0, max_size=12))

CATEGORY_LIST = st.lists(CATEGORY, min_size=0, max_size=8)

LOCAL_RESULT = st.builds(
    LocalTextResult,
    categories=st.lists(st.sampled_from(KNOWN_CATEGORIES), max_size=3, unique=True).map(tuple),
    confidence=st.floats(0.0, 1.0),
)

SCHEMA_BLOCK = st.dictionaries(
    keys=st.sampled_from(["@type", "type", "name"]),
    values=st.one_of(
        st.sampled_from(sorted(SCHEMA_TYPE_TO_CATEGORY)),
        st.lists(st.sampled_from(sorted(SCHEMA_TYPE_TO_CATEGORY)), max_size=3),
        GENERAL_TEXT,
        st.integers(),
        st.none(),
    ),
    max_size=3,
)

METADATA = st.builds(
    RawSignalBag,
    description=st.one_of(st.none(), GENERAL_TEXT),
    keywords=st.lists(st.text(max_size=30), max_size=8),
    og_data=st.dictionaries(st.sampled_from(["type", "site_name", "title"]), st.text(max_size=30), max_size=3),
    schema_data=st.lists(SCHEMA_BLOCK, max_size=3),
    word_count=st.one_of(st.none(), st.integers(0, 20_000)),
    language=st.one_of(st.none(), st.sampled_from(["en", "en-US", "fr", "pt-BR", ""])),
    has_article_tag=st.booleans(),
)

OPTIONAL_TEXT = st.sampled_from(["", "", "alpha", "beta", "gamma"])

OBSERVATION = st.builds(
    UrlObservation,
    url=st.just("https://example.com/a"),
    title=OPTIONAL_TEXT,
    categories=st.lists(st.sampled_from(KNOWN_CATEGORIES), max_size=3),
    confidence=st.one_of(st.none(), st.floats(0.0, 1.0)),
    tags=st.lists(st.sampled_from(["t1", "t2", "t3"]), max_size=2),
    description=OPTIONAL_TEXT,
    author=OPTIONAL_TEXT,
    word_count=st.one_of(st.none(), st.integers(0, 5)),
    language=st.sampled_from(["", "en", "de"]),
)

_TAG_RE = re.compile(r"[a-z0-9](?:[a-z0-9-]*[a-z0-9])?")

# ---------------------------------------------------------------------------
# Shared settings
# ---------------------------------------------------------------------------

_fuzz_settings = settings(
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)


def _assert_valid_tags(tags: list[str]) -> None:
    assert len(tags) <= MAX_TAGS
    assert len(tags) == len(set(tags))
    for tag in tags:
        assert MIN_TAG_LEN <= len(tag) <= MAX_TAG_LEN
        assert _TAG_RE.fullmatch(tag), tag
        assert tag not in STOPWORDS


# ---------------------------------------------------------------------------
# TestFuzzPipeline
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzPipeline:
    """The pipeline always yields a bounded, non-empty classification."""

    @_fuzz_settings
    @given(url=ANY_URL, title=GENERAL_TEXT, metadata=st.one_of(st.none(), METADATA))
    @example("", "", None)
    @example("not a url", "", None)
    @example("https://github.com/foo/bar", "My Cool Repo", None)
    def test_classify_bounds(self, url: str, title: str, metadata: RawSignalBag | None) -> None:
        page = ClassificationPipeline().classify(url, title, metadata)
        assert 1 <= len(page.categories) <= MAX_FINAL_CATEGORIES
        assert len(page.categories) == len(set(page.categories))
        assert 0.0 <= page.confidence <= 1.0
        assert len(page.classification_text) <= 200
        _assert_valid_tags(page.tags)


# ---------------------------------------------------------------------------
# TestFuzzCombiner
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzCombiner:
    @_fuzz_settings
    @given(
        local=st.one_of(st.none(), LOCAL_RESULT),
        pattern=CATEGORY_LIST,
        schema=CATEGORY_LIST,
        external=CATEGORY_LIST,
    )
    @example(None, [], [], [])
    @example(None, ["general"], [], [])
    def test_combine_bounds(self, local, pattern, schema, external) -> None:
        result = ConfidenceCombiner().combine(local, pattern, schema, external)
        final = result.final_categories
        assert 1 <= len(final) <= MAX_FINAL_CATEGORIES
        assert len(final) == len(set(final))
        assert all(final)
        assert 0.0 <= result.confidence <= 1.0

    @_fuzz_settings
    @given(local=LOCAL_RESULT, pattern=CATEGORY_LIST, schema=CATEGORY_LIST, external=CATEGORY_LIST)
    def test_higher_priority_sources_lead(self, local, pattern, schema, external) -> None:
        result = ConfidenceCombiner().combine(local, pattern, schema, external)
        expected = list(dict.fromkeys(c for c in [*local.categories, *schema, *external] if c))
        k = min(len(expected), len(result.final_categories))
        assert list(result.final_categories[:k]) == expected[:k]


# ---------------------------------------------------------------------------
# TestFuzzTags
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzTags:
    @_fuzz_settings
    @given(candidates=st.lists(st.one_of(GENERAL_TEXT, st.integers(), st.none()), max_size=40))
    @example(["--", "a", "the", "Hello World", "x" * 30, "-ok-"])
    def test_finalize_tags(self, candidates) -> None:
        _assert_valid_tags(finalize_tags(candidates))

    @_fuzz_settings
    @given(
        title=GENERAL_TEXT,
        domain=st.one_of(GENERAL_TEXT, st.sampled_from(["github.com", "www.youtube.com", "unknown"])),
        categories=st.lists(st.sampled_from(KNOWN_CATEGORIES), min_size=1, max_size=4, unique=True),
        metadata=st.one_of(st.none(), METADATA),
    )
    def test_synthesize(self, title, domain, categories, metadata) -> None:
        tags = TagSynthesizer().synthesize(title=title, domain=domain, categories=categories, metadata=metadata)
        _assert_valid_tags(tags)


# ---------------------------------------------------------------------------
# TestFuzzSchemaMapper
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzSchemaMapper:
    @_fuzz_settings
    @given(blocks=st.lists(SCHEMA_BLOCK, max_size=6))
    def test_outputs_are_table_values(self, blocks) -> None:
        mapper = SchemaMapper()
        result = mapper.map(blocks)
        assert set(result) <= set(SCHEMA_TYPE_TO_CATEGORY.values())
        assert len(result) == len(set(result))
        assert mapper.map(blocks) == result


# ---------------------------------------------------------------------------
# TestFuzzMerge
# ---------------------------------------------------------------------------


@pytest.mark.fuzz
class TestFuzzMerge:
    """Folding observations into one record never loses enrichment."""

    @_fuzz_settings
    @given(observations=st.lists(OBSERVATION, min_size=1, max_size=12))
    def test_merge_sequence(self, observations: list[UrlObservation]) -> None:
        record = new_record(observations[0], T0)
        for i, obs in enumerate(observations[1:], start=1):
            record = merge_observation(record, obs, T0 + timedelta(seconds=i))

        assert record.access_count == len(observations)
        assert record.first_seen == T0
        assert record.last_seen == T0 + timedelta(seconds=len(observations) - 1)
        assert record.title == observations[-1].title

        for name, empty in (("description", ""), ("author", ""), ("language", ""), ("tags", [])):
            present = [getattr(o, name) for o in observations if getattr(o, name)]
            assert getattr(record, name) == (present[-1] if present else empty)

        cats = [o.categories for o in observations if o.categories]
        assert record.categories == (cats[-1] if cats else ["general"])

        counts = [o.word_count for o in observations if o.word_count]
        assert record.word_count == (counts[-1] if counts else 0)

    @_fuzz_settings
    @given(obs=OBSERVATION, skew=st.integers(1, 10_000))
    def test_clock_skew_keeps_order(self, obs: UrlObservation, skew: int) -> None:
        record = new_record(obs, T0)
        merged = merge_observation(record, obs, T0 - timedelta(seconds=skew))
        assert merged.first_seen <= merged.last_seen
        assert merged.first_seen == T0
