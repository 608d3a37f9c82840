# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SignalSource boundary: the raw metadata bag and the collaborator protocol.

A SignalSource turns a page handle into a ``SignalReport`` (metadata bag plus
any categories the collaborator already inferred) or raises
``SignalUnavailableError``.  Scraping itself lives outside this package; the
bag is validated here because it arrives as loosely-shaped JSON.

Both snake_case and the collaborator's camelCase keys are accepted
(``ogData``, ``twitterData``, ``schemaData``, ``lang``, ``publishedDate``,
``articleData.wordCount`` ...).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from . import PageRef
from .errors import SignalUnavailableError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Raw metadata bag
# ---------------------------------------------------------------------------


class RawSignalBag(BaseModel):
    """Page-level metadata for one classification attempt (never persisted as-is)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str = ""
    title: str = ""
    domain: str = ""
    path: str = ""
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    og_data: dict[str, str] = Field(default_factory=dict, validation_alias=AliasChoices("og_data", "ogData", "og"))
    twitter_data: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("twitter_data", "twitterData", "twitter")
    )
    schema_data: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("schema_data", "schemaData", "structured_data")
    )
    headings: dict[str, list[str]] = Field(default_factory=dict)
    author: str | None = None
    published_date: str | None = Field(None, validation_alias=AliasChoices("published_date", "publishedDate"))
    language: str | None = Field(None, validation_alias=AliasChoices("language", "lang"))
    word_count: int | None = Field(None, validation_alias=AliasChoices("word_count", "wordCount"))
    has_article_tag: bool = Field(False, validation_alias=AliasChoices("has_article_tag", "hasArticleTag"))
    favicon: str | None = None
    image_candidates: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("image_candidates", "imageCandidates", "images")
    )

    @model_validator(mode="before")
    @classmethod
    def _flatten_article_data(cls, data: Any) -> Any:
        """Lift ``articleData.{wordCount,hasArticleTag}`` to top-level fields."""
        if not isinstance(data, dict):
            return data
        article = data.get("articleData") or data.get("article_data")
        if not isinstance(article, dict):
            return data
        merged = dict(data)
        if "wordCount" in article and "word_count" not in merged and "wordCount" not in merged:
            merged["word_count"] = article["wordCount"]
        if "hasArticleTag" in article and "has_article_tag" not in merged and "hasArticleTag" not in merged:
            merged["has_article_tag"] = article["hasArticleTag"]
        return merged

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keywords(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        return v

    @field_validator("schema_data", mode="before")
    @classmethod
    def _wrap_schema_blocks(cls, v: Any) -> Any:
        """Accept a single block, drop non-object entries, expand ``@graph`` containers."""
        if v is None:
            return []
        items = v if isinstance(v, list) else [v]
        blocks: list[dict] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                blocks.extend(g for g in graph if isinstance(g, dict))
            else:
                blocks.append(item)
        return blocks

    @field_validator("og_data", "twitter_data", mode="before")
    @classmethod
    def _stringify_meta(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items() if val is not None}
        return v

    @field_validator("headings", mode="before")
    @classmethod
    def _normalise_headings(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            return v
        headings: dict[str, list[str]] = {}
        for level, texts in v.items():
            if isinstance(texts, str):
                texts = [texts]
            headings[str(level)] = [str(t) for t in (texts or []) if t]
        return headings

    def heading_texts(self, level: str, limit: int) -> list[str]:
        return self.headings.get(level, [])[:limit]


@dataclass(frozen=True, slots=True)
class SignalReport:
    """Successful SignalSource answer: metadata bag + collaborator-inferred categories."""

    metadata: RawSignalBag
    categories: tuple[str, ...] = ()


def coerce_report(value: Any) -> SignalReport:
    """Normalise a bag, report, or raw mapping into a ``SignalReport``.

    Raw mappings may carry hint categories under ``categories``; the rest of
    the mapping is the metadata bag (or sits under ``metadata``).

    Raises:
        ValueError: If the value is not one of the recognised shapes.
    """
    if isinstance(value, SignalReport):
        return value
    if isinstance(value, RawSignalBag):
        return SignalReport(metadata=value)
    if isinstance(value, Mapping):
        hints = value.get("categories") or ()
        if isinstance(hints, str):
            hints = (hints,)
        body = value.get("metadata") if isinstance(value.get("metadata"), Mapping) else value
        try:
            bag = RawSignalBag.model_validate(dict(body))
        except ValidationError as exc:
            raise ValueError(f"invalid metadata bag: {exc.error_count()} error(s)") from exc
        return SignalReport(metadata=bag, categories=tuple(str(c) for c in hints if c))
    raise ValueError(f"unsupported signal payload type: {type(value).__name__}")


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class SignalSource(Protocol):
    """Supplies a metadata bag for a page, or raises ``SignalUnavailableError``."""

    async def fetch(self, page: PageRef) -> SignalReport: ...


@runtime_checkable
class RecoverableSignalSource(SignalSource, Protocol):
    """A source that can re-prepare a page (reload and re-wait) once before giving up."""

    async def recover(self, page: PageRef) -> None: ...


# ---------------------------------------------------------------------------
# In-process source
# ---------------------------------------------------------------------------


class StaticSignalSource:
    """SignalSource backed by a URL → metadata mapping.

    Suitable for tests, replaying captured metadata, and the CLI
    ``--signals FILE`` option.  Entries are validated on fetch, so one
    malformed entry degrades only its own page.  Unknown URLs and invalid
    entries are reported as unavailable.
    """

    def __init__(self, reports: Mapping[str, Any] | None = None) -> None:
        self._reports: dict[str, Any] = dict(reports or {})

    @classmethod
    def from_json(cls, path: str | Path) -> StaticSignalSource:
        """Load ``{url: bag}`` from a JSON file.

        Raises:
            ValueError: If the file is not a JSON object.
        """
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object keyed by URL")
        return cls(data)

    def add(self, url: str, value: Any) -> None:
        self._reports[url] = value

    def __len__(self) -> int:
        return len(self._reports)

    async def fetch(self, page: PageRef) -> SignalReport:
        if page.url not in self._reports:
            logger.debug("No static metadata for %s", page.url)
            raise SignalUnavailableError(f"no metadata for {page.url}", url=page.url, reason="unknown_url")
        try:
            return coerce_report(self._reports[page.url])
        except ValueError as exc:
            logger.warning("Invalid static metadata for %s: %s", page.url, exc)
            raise SignalUnavailableError(
                f"invalid metadata for {page.url}: {exc}", url=page.url, reason="invalid_metadata"
            ) from exc
