# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Local text classifier: weighted keyword scoring over a short text blob.

For each category::

    score      = Σ pattern (2·weight on exact token match, else 1·weight on substring match)
    normalised = (score / pattern_count) × (match_count / max(word_count / 10, 1))

Categories whose normalised score exceeds ``MIN_SCORE`` survive, sorted
descending with ties broken by table order.  The top three are returned and
``confidence = min(top_score × 2, 1.0)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Category table (declaration order is the tie-break order)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class KeywordCategory:
    name: str
    patterns: tuple[str, ...]
    weight: float


CATEGORY_TABLE: tuple[KeywordCategory, ...] = (
    KeywordCategory(
        "technology",
        (
            "api", "software", "code", "programming", "developer", "tech", "app", "digital",
            "system", "algorithm", "data", "framework", "library", "database", "server", "cloud",
            "ai", "ml", "javascript", "python", "java", "react", "vue", "angular", "docker",
            "kubernetes",
        ),
        1.0,
    ),
    KeywordCategory(
        "news",
        (
            "breaking", "report", "news", "update", "latest", "today", "announces", "statement",
            "press", "media", "journalist", "article", "story", "headline", "coverage", "reuters",
            "cnn", "bbc",
        ),
        1.0,
    ),
    KeywordCategory(
        "business",
        (
            "company", "business", "market", "revenue", "profit", "startup", "enterprise",
            "corporate", "industry", "finance", "investment", "funding", "ipo", "merger",
            "acquisition", "forbes", "bloomberg",
        ),
        0.9,
    ),
    KeywordCategory(
        "education",
        (
            "learn", "course", "tutorial", "guide", "education", "training", "lesson", "study",
            "university", "school", "student", "teacher", "professor", "academic", "research",
            "coursera", "udemy",
        ),
        0.9,
    ),
    KeywordCategory(
        "entertainment",
        (
            "movie", "music", "video", "game", "entertainment", "show", "series", "film",
            "streaming", "watch", "play", "fun", "comedy", "drama", "action", "youtube",
            "netflix", "spotify",
        ),
        0.8,
    ),
    KeywordCategory(
        "science",
        (
            "research", "study", "scientific", "discovery", "experiment", "analysis",
            "hypothesis", "theory", "science", "biology", "chemistry", "physics", "astronomy",
            "nature", "arxiv",
        ),
        0.9,
    ),
    KeywordCategory(
        "health",
        (
            "health", "medical", "doctor", "treatment", "wellness", "fitness", "medicine",
            "patient", "care", "hospital", "clinic", "therapy", "nutrition", "webmd", "mayo",
        ),
        0.8,
    ),
    KeywordCategory(
        "finance",
        (
            "finance", "money", "investment", "banking", "crypto", "trading", "stock",
            "financial", "economy", "bitcoin", "ethereum", "currency", "forex", "coinbase",
            "binance",
        ),
        0.8,
    ),
    KeywordCategory(
        "lifestyle",
        (
            "lifestyle", "fashion", "travel", "food", "recipe", "design", "home", "decoration",
            "beauty", "wellness", "personal", "hobby", "pinterest",
        ),
        0.7,
    ),
    KeywordCategory(
        "sports",
        (
            "sport", "football", "basketball", "soccer", "athlete", "game", "match",
            "tournament", "team", "player", "championship", "league", "espn",
        ),
        0.8,
    ),
    KeywordCategory(
        "shopping",
        (
            "shop", "buy", "store", "product", "cart", "checkout", "price", "deal", "amazon",
            "ebay", "retail", "marketplace", "purchase",
        ),
        0.8,
    ),
    KeywordCategory(
        "social",
        (
            "twitter", "facebook", "linkedin", "instagram", "reddit", "discord", "social",
            "community", "forum", "discussion", "post", "share",
        ),
        0.7,
    ),
)

MIN_SCORE = 0.05
MAX_CATEGORIES = 3

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9\s]")


def normalize_text(text: str) -> str:
    """Lowercase and replace punctuation with spaces."""
    return _NON_ALNUM_RE.sub(" ", text).lower().strip()


@dataclass(frozen=True, slots=True)
class CategoryScore:
    category: str
    score: float
    matches: int


@dataclass(frozen=True, slots=True)
class LocalTextResult:
    categories: tuple[str, ...]
    confidence: float  # 0.0–1.0
    scores: tuple[CategoryScore, ...] = ()  # every category above MIN_SCORE, ranked

    @property
    def top_matches(self) -> int:
        return self.scores[0].matches if self.scores else 0


_EMPTY = LocalTextResult(categories=(), confidence=0.0)


class LocalTextClassifier:
    """Scores a text blob against a fixed weighted keyword table."""

    def __init__(
        self,
        table: tuple[KeywordCategory, ...] = CATEGORY_TABLE,
        *,
        min_score: float = MIN_SCORE,
        max_categories: int = MAX_CATEGORIES,
    ) -> None:
        self._table = table
        self._min_score = min_score
        self._max_categories = max_categories

    def score(self, text: str) -> list[CategoryScore]:
        """Rank every category above the threshold (stable sort keeps table order on ties)."""
        text_lower = text.lower()
        words = text_lower.split()
        if not words:
            return []
        word_set = set(words)
        length_factor = max(len(words) / 10, 1)

        ranked: list[CategoryScore] = []
        for cat in self._table:
            score = 0.0
            matches = 0
            for pattern in cat.patterns:
                if pattern in word_set:
                    score += 2 * cat.weight
                    matches += 1
                elif pattern in text_lower:
                    score += cat.weight
                    matches += 1
            normalised = (score / len(cat.patterns)) * (matches / length_factor)
            if normalised > self._min_score:
                ranked.append(CategoryScore(cat.name, normalised, matches))

        ranked.sort(key=lambda s: s.score, reverse=True)
        return ranked

    def classify(self, text: str) -> LocalTextResult:
        ranked = self.score(text)
        if not ranked:
            return _EMPTY
        top = ranked[: self._max_categories]
        return LocalTextResult(
            categories=tuple(s.category for s in top),
            confidence=min(ranked[0].score * 2, 1.0),
            scores=tuple(ranked),
        )
