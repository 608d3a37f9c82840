# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagetagger: semantic categories, tags and confidence for visited pages.

Two halves:
- classification: local text scoring + URL heuristics + structured-data
  mapping, merged into at most 4 categories with a single confidence
- storage: one merge-on-write record per distinct URL that never loses
  previously captured enrichment
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

__version__ = "0.4.0"


@dataclass
class PageRef:
    """A page to tag: address, title and the collaborator's handle for it."""

    url: str
    title: str = ""
    page_id: str | int | None = None  # opaque handle passed to the SignalSource
    favicon: str = ""


@dataclass
class StageBreakdown:
    """Per-signal categories behind a final classification."""

    local: list[str] = field(default_factory=list)
    pattern: list[str] = field(default_factory=list)
    schema: list[str] = field(default_factory=list)
    external: list[str] = field(default_factory=list)


@dataclass
class TaggedPage:
    """Classifier output for one page, ready to be written to a store."""

    url: str
    title: str
    domain: str
    categories: list[str]  # 1-4 entries, priority-ordered, never empty
    confidence: float  # 0.0–1.0
    tags: list[str] = field(default_factory=list)
    classification: StageBreakdown = field(default_factory=StageBreakdown)
    description: str = ""
    image: str = ""
    author: str = ""
    published_date: str = ""
    word_count: int = 0
    language: str = ""
    favicon: str = ""
    classification_text: str = ""  # first 200 chars, for debugging
    degraded: bool = False  # metadata was unavailable; title/domain/path only
    fallback: bool = False  # minimal record returned instead of an error

    def to_dict(self) -> dict:
        return asdict(self)
