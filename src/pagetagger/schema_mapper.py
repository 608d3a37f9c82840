# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Schema.org ``@type`` → category mapping for structured-data blocks.

Each block declares its type under ``@type`` (JSON-LD) or ``type``, as a
single string or a list.  Unknown types are ignored; known ones map to
exactly one category.  Output is deduplicated in first-seen order, so the
mapping is a pure, idempotent function of its input.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

SCHEMA_TYPE_TO_CATEGORY: dict[str, str] = {
    "NewsArticle": "news",
    "Article": "news",
    "BlogPosting": "news",
    "TechArticle": "technology",
    "Recipe": "lifestyle",
    "Course": "education",
    "EducationalResource": "education",
    "Product": "shopping",
    "SoftwareApplication": "technology",
    "WebApplication": "technology",
    "VideoObject": "entertainment",
    "MusicRecording": "entertainment",
    "Movie": "entertainment",
    "TVSeries": "entertainment",
    "Book": "education",
    "JobPosting": "business",
    "Event": "events",
    "SportsEvent": "sports",
    "MedicalCondition": "health",
    "Drug": "health",
    "Exercise": "health",
    "FinancialProduct": "finance",
    "InvestmentOrDeposit": "finance",
    "ScholarlyArticle": "science",
    "ResearchProject": "science",
    "Dataset": "science",
    "SoftwareSourceCode": "technology",
    "APIReference": "technology",
}


def declared_types(block: Mapping[str, Any]) -> list[str]:
    """``@type`` (preferred) or ``type`` of a block, always as a list of strings."""
    raw = block.get("@type") or block.get("type")
    if not raw:
        return []
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list | tuple):
        return [t for t in raw if isinstance(t, str)]
    return []


class SchemaMapper:
    """Maps structured-data blocks to categories via a fixed lookup table."""

    def __init__(self, table: Mapping[str, str] | None = None) -> None:
        self._table = dict(SCHEMA_TYPE_TO_CATEGORY if table is None else table)

    def map(self, blocks: Iterable[Mapping[str, Any]]) -> list[str]:
        seen: dict[str, None] = {}
        for block in blocks:
            if not isinstance(block, Mapping):
                continue
            for schema_type in declared_types(block):
                category = self._table.get(schema_type)
                if category is not None:
                    seen.setdefault(category)
        return list(seen)
