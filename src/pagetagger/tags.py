# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tag synthesis: a bounded, cleaned tag set for a classified page.

Sources, in insertion order:
  1. final categories except "general"
  2. domain tags (first matching entry of ``DOMAIN_TAGS``)
  3. technology-stack tags (only when "technology" is a final category)
  4. up to 4 metadata keywords
  5. the site name
  6. content-length / structure tags (in-depth, long-read, short-read, article)
  7. a ``lang-xx`` tag for non-English pages
  8. top-3 frequent tokens of the description, then of the title

Every candidate is cleaned to ``[a-z0-9-]`` with edge hyphens trimmed, must
be 2–19 characters and not a stopword, and the result is capped at 12.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Sequence

from .signals import RawSignalBag
from .url_classifier import GENERAL

MAX_TAGS = 12
MIN_TAG_LEN = 2
MAX_TAG_LEN = 19
MAX_KEYWORD_TAGS = 4
MAX_SEMANTIC_TAGS = 3
SITE_NAME_MAX = 15
DEFAULT_LANGUAGE = "en"

STOPWORDS: frozenset[str] = frozenset(
    {
        # function words
        "the", "and", "for", "are", "but", "not", "you", "all", "can", "her", "was", "one",
        "our", "had", "how", "what", "said", "each", "which", "she", "their", "time", "will",
        "about", "if", "up", "out", "many", "then", "them", "these", "so", "some", "would",
        "make", "like", "into", "him", "has", "two", "more", "go", "no", "way", "could", "my",
        "than", "first", "been", "call", "who", "its", "now", "find", "long", "down", "day",
        "did", "get", "come", "made", "may", "part", "this", "that", "with", "from", "they",
        "we", "an", "as", "at", "be", "by", "do", "he", "in", "is", "it", "of", "on", "to",
        "have", "i",
        # web boilerplate
        "com", "www", "http", "https", "html", "page", "site", "web", "home", "index", "main",
        "new", "old", "best", "good", "great", "top", "free", "online", "full", "latest",
        "review", "guide",
    }
)

# Checked as substrings of the hostname; first match wins.
DOMAIN_TAGS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("github", ("code", "repository", "git", "opensource")),
    ("stackoverflow", ("qa", "programming", "coding", "help")),
    ("youtube", ("video", "streaming", "content")),
    ("medium", ("blog", "writing", "publication")),
    ("wikipedia", ("reference", "encyclopedia", "knowledge")),
    ("reddit", ("discussion", "community", "forum")),
    ("twitter", ("microblog", "social", "updates")),
    ("linkedin", ("professional", "networking", "career")),
    ("amazon", ("ecommerce", "retail", "marketplace")),
    ("netflix", ("streaming", "movies", "series")),
    ("coursera", ("online-learning", "mooc", "certification")),
    ("arxiv", ("preprint", "research", "academic")),
)

TECH_STACK_TAGS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("javascript", ("javascript", "js", "node", "npm", "react", "vue", "angular")),
    ("python", ("python", "django", "flask", "pandas", "numpy")),
    ("java", ("java", "spring", "maven", "gradle")),
    ("database", ("sql", "mysql", "postgresql", "mongodb", "redis")),
    ("cloud", ("aws", "azure", "gcp", "docker", "kubernetes")),
    ("ai-ml", ("ai", "ml", "machine learning", "tensorflow", "pytorch")),
)

# Keywords this short only match whole tokens ("ai" must not fire on "email")
_SHORT_KEYWORD_LEN = 3

_TAG_STRIP_RE = re.compile(r"[^a-z0-9-]")
_SEMANTIC_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SITE_STRIP_RE = re.compile(r"[^a-z0-9]")
_TOKEN_RE = re.compile(r"[a-z0-9]+")


def is_stopword(word: str) -> bool:
    return word.lower() in STOPWORDS


def clean_tag(tag: object) -> str:
    """Lowercase, keep ``[a-z0-9-]``, trim edge hyphens."""
    return _TAG_STRIP_RE.sub("", str(tag).lower()).strip("-")


def finalize_tags(candidates: Iterable[object], *, limit: int = MAX_TAGS) -> list[str]:
    """Clean, filter and dedupe *candidates*, keeping insertion order, capped at *limit*."""
    out: dict[str, None] = {}
    for candidate in candidates:
        tag = clean_tag(candidate)
        if not MIN_TAG_LEN <= len(tag) <= MAX_TAG_LEN or is_stopword(tag):
            continue
        out.setdefault(tag)
        if len(out) >= limit:
            break
    return list(out)


def semantic_tags(text: str | None, *, limit: int = MAX_SEMANTIC_TAGS) -> list[str]:
    """Most frequent content words of *text* (4–14 chars, not numeric, not stopwords).

    Ties keep first-occurrence order.
    """
    if not text:
        return []
    words = [
        w
        for w in _SEMANTIC_STRIP_RE.sub(" ", text.lower()).split()
        if 3 < len(w) < 15 and not is_stopword(w) and not w.isdigit()
    ]
    return [w for w, _ in Counter(words).most_common(limit)]


def domain_tags(domain: str) -> tuple[str, ...]:
    domain = domain.lower()
    for needle, tags in DOMAIN_TAGS:
        if needle in domain:
            return tags
    return ()


def tech_stack_tags(text: str) -> list[str]:
    text_lower = text.lower()
    tokens = set(_TOKEN_RE.findall(text_lower))
    found: list[str] = []
    for tag, keywords in TECH_STACK_TAGS:
        for kw in keywords:
            hit = kw in tokens if len(kw) <= _SHORT_KEYWORD_LEN else kw in text_lower
            if hit:
                found.append(tag)
                break
    return found


def keyword_tags(keywords: Sequence[str], *, limit: int = MAX_KEYWORD_TAGS) -> list[str]:
    cleaned = (k.lower().strip() for k in keywords if isinstance(k, str))
    return [k for k in cleaned if len(k) > 2 and not is_stopword(k)][:limit]


def site_name_tag(site_name: str | None) -> str | None:
    if not site_name:
        return None
    name = _SITE_STRIP_RE.sub("", site_name.lower())[:SITE_NAME_MAX]
    return name if len(name) > 2 else None


def length_tags(word_count: int | None, has_article_tag: bool) -> list[str]:
    tags: list[str] = []
    if word_count is not None:
        if word_count > 2000:
            tags.append("in-depth")
        if word_count > 1000:
            tags.append("long-read")
        if word_count < 300:
            tags.append("short-read")
    if has_article_tag:
        tags.append("article")
    return tags


def language_tag(language: str | None) -> str | None:
    """``lang-xx`` from the primary subtag, ``None`` for English or unknown."""
    if not language:
        return None
    primary = language.strip().lower().replace("_", "-").split("-")[0]
    if not primary or primary == DEFAULT_LANGUAGE:
        return None
    return f"lang-{primary}"


class TagSynthesizer:
    """Builds the tag list for one page from categories, domain and metadata."""

    def __init__(self, *, max_tags: int = MAX_TAGS) -> None:
        self._max_tags = max_tags

    def synthesize(
        self,
        *,
        title: str,
        domain: str,
        categories: Sequence[str],
        metadata: RawSignalBag | None = None,
    ) -> list[str]:
        candidates: list[str] = [c for c in categories if c != GENERAL]
        candidates.extend(domain_tags(domain))

        description = metadata.description if metadata is not None else None
        if "technology" in categories:
            candidates.extend(tech_stack_tags(f"{title} {description or ''}"))

        if metadata is not None:
            candidates.extend(keyword_tags(metadata.keywords))
            site = site_name_tag(metadata.og_data.get("site_name"))
            if site:
                candidates.append(site)
            candidates.extend(length_tags(metadata.word_count, metadata.has_article_tag))
            lang = language_tag(metadata.language)
            if lang:
                candidates.append(lang)
            candidates.extend(semantic_tags(description))

        candidates.extend(semantic_tags(title))
        return finalize_tags(candidates, limit=self._max_tags)
