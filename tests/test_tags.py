# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for tag synthesis."""

from __future__ import annotations

import pytest

from pagetagger.signals import RawSignalBag
from pagetagger.tags import (
    MAX_TAGS,
    TagSynthesizer,
    clean_tag,
    domain_tags,
    finalize_tags,
    is_stopword,
    keyword_tags,
    language_tag,
    length_tags,
    semantic_tags,
    site_name_tag,
    tech_stack_tags,
)

# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


class TestCleanTag:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Machine Learning", "machinelearning"),
            ("-web-dev-", "web-dev"),
            ("C++!", "c"),
            ("Déjà vu", "djvu"),
            (42, "42"),
        ],
    )
    def test_clean(self, raw, expected):
        assert clean_tag(raw) == expected


class TestFinalizeTags:
    def test_dedupes_preserving_order(self):
        assert finalize_tags(["Python", "python", "Django"]) == ["python", "django"]

    def test_drops_stopwords_and_bad_lengths(self):
        assert finalize_tags(["the", "x", "a" * 20, "a" * 19, "home"]) == ["a" * 19]

    def test_caps_at_limit(self):
        tags = finalize_tags([f"tag{i}" for i in range(30)])
        assert tags == [f"tag{i}" for i in range(MAX_TAGS)]

    def test_stopword_check_is_case_insensitive(self):
        assert is_stopword("The")
        assert is_stopword("HTTPS")


# ---------------------------------------------------------------------------
# Individual sources
# ---------------------------------------------------------------------------


class TestSources:
    def test_semantic_tags_by_frequency(self):
        text = "Python python PYTHON tutorial tutorial code 2024 2024 2024 the the the"
        assert semantic_tags(text) == ["python", "tutorial", "code"]

    def test_semantic_tags_length_window(self):
        assert semantic_tags("cat internationalization tree") == ["tree"]

    def test_semantic_tags_empty(self):
        assert semantic_tags(None) == []
        assert semantic_tags("") == []

    def test_domain_tags_first_match(self):
        assert domain_tags("gist.GitHub.com") == ("code", "repository", "git", "opensource")
        assert domain_tags("example.com") == ()

    def test_tech_stack_tags(self):
        assert tech_stack_tags("Learn React and Django") == ["javascript", "python"]

    def test_short_tech_keywords_need_whole_tokens(self):
        assert tech_stack_tags("email marketing tips") == []
        assert tech_stack_tags("AI tools for teams") == ["ai-ml"]

    def test_keyword_tags(self):
        assert keyword_tags(["AI", " Python ", "the", "web dev", "rust", "go lang", "zig"]) == [
            "python",
            "web dev",
            "rust",
            "go lang",
        ]

    def test_site_name_tag(self):
        assert site_name_tag("The Verge!") == "theverge"
        assert site_name_tag("AB") is None
        assert site_name_tag(None) is None
        assert site_name_tag("A Very Long Publication Name") == "averylongpublic"

    @pytest.mark.parametrize(
        "words,article,expected",
        [
            (2500, True, ["in-depth", "long-read", "article"]),
            (1500, False, ["long-read"]),
            (100, False, ["short-read"]),
            (500, False, []),
            (None, True, ["article"]),
        ],
    )
    def test_length_tags(self, words, article, expected):
        assert length_tags(words, article) == expected

    @pytest.mark.parametrize(
        "lang,expected",
        [("fr-FR", "lang-fr"), ("pt_BR", "lang-pt"), ("DE", "lang-de"), ("en-US", None), ("en", None), ("", None)],
    )
    def test_language_tag(self, lang, expected):
        assert language_tag(lang) == expected


# ---------------------------------------------------------------------------
# TagSynthesizer
# ---------------------------------------------------------------------------


class TestTagSynthesizer:
    def test_github_example(self):
        tags = TagSynthesizer().synthesize(
            title="My Cool Repo", domain="github.com", categories=["technology"]
        )
        assert tags[:5] == ["technology", "code", "repository", "git", "opensource"]
        assert "cool" in tags and "repo" in tags

    def test_general_category_excluded(self):
        tags = TagSynthesizer().synthesize(title="", domain="example.com", categories=["general"])
        assert tags == []

    def test_tech_stack_only_for_technology(self):
        synth = TagSynthesizer()
        assert "python" not in synth.synthesize(title="Django tips", domain="x.org", categories=["education"])
        assert "python" in synth.synthesize(title="Django tips", domain="x.org", categories=["technology"])

    def test_metadata_sources(self):
        bag = RawSignalBag(
            description="Kubernetes operators explained. Operators manage state.",
            keywords=["containers", "k8s"],
            og_data={"site_name": "Cloud Weekly"},
            word_count=2400,
            has_article_tag=True,
            language="de",
        )
        tags = TagSynthesizer().synthesize(title="Operators", domain="cloud.example", categories=["technology"], metadata=bag)
        for expected in ("technology", "cloud", "containers", "k8s", "cloudweekly", "in-depth", "long-read",
                         "article", "lang-de", "operators"):
            assert expected in tags
        assert len(tags) <= MAX_TAGS

    def test_custom_cap(self):
        tags = TagSynthesizer(max_tags=2).synthesize(title="", domain="github.com", categories=["technology"])
        assert tags == ["technology", "code"]
