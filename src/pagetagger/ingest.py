# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Observation intake and pre-tagging page filtering.

Recognised payload shapes, tried in this order:

1. a JSON array of observation objects
2. a store dump: ``{"urls": [...]}``
3. a page export: ``{"tabs": [...]}`` whose items nest enrichment under
   ``contentTags``
4. a single observation object: ``{"url": ...}``

Anything else raises ``ValueError``.  Keys are never scanned for "the first
list that looks right".  Within a recognised payload each item is validated
on its own: ``read_observations`` collects invalid items as errors keyed by
url (or position) and keeps the rest.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import PageRef
from .records import UrlObservation
from .store import SaveError

logger = logging.getLogger(__name__)


class PayloadShape(StrEnum):
    LIST = "list"
    STORE_DUMP = "store_dump"
    PAGE_EXPORT = "page_export"
    SINGLE = "single"


# ---------------------------------------------------------------------------
# Item models
# ---------------------------------------------------------------------------


class ObservationIn(BaseModel):
    """One observation as it appears in JSON (snake_case or camelCase)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str = Field(min_length=1)
    title: str | None = ""
    categories: list[str] = Field(default_factory=list)
    confidence: float | None = None
    tags: list[str] = Field(default_factory=list)
    description: str | None = ""
    image: str | None = ""
    author: str | None = ""
    published_date: str | None = Field("", validation_alias=AliasChoices("published_date", "publishedDate"))
    word_count: int | None = Field(None, validation_alias=AliasChoices("word_count", "wordCount"))
    language: str | None = Field("", validation_alias=AliasChoices("language", "lang"))
    favicon: str | None = Field("", validation_alias=AliasChoices("favicon", "favIconUrl"))

    @field_validator("categories", "tags", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_observation(self) -> UrlObservation:
        return UrlObservation(
            url=self.url,
            title=self.title or "",
            categories=list(self.categories),
            confidence=self.confidence,
            tags=list(self.tags),
            description=self.description or "",
            image=self.image or "",
            author=self.author or "",
            published_date=self.published_date or "",
            word_count=self.word_count,
            language=self.language or "",
            favicon=self.favicon or "",
        )


def _tab_item(item: Any) -> dict[str, Any]:
    """Flatten a page-export item: top-level url/title/favicon plus ``contentTags``."""
    if not isinstance(item, dict):
        return item
    content = item.get("contentTags") or {}
    if not isinstance(content, dict):
        raise ValueError("contentTags must be an object")
    flat = {k: v for k, v in content.items() if k not in ("url", "title")}
    flat["url"] = item.get("url")
    flat["title"] = item.get("title") or content.get("title") or ""
    if item.get("favIconUrl") and not flat.get("favicon"):
        flat["favicon"] = item["favIconUrl"]
    return flat


# ---------------------------------------------------------------------------
# Shape detection
# ---------------------------------------------------------------------------


def detect_shape(payload: Any) -> PayloadShape:
    """Classify *payload* into one of the recognised shapes.

    Raises:
        ValueError: If the payload matches none of them.
    """
    if isinstance(payload, list):
        return PayloadShape.LIST
    if isinstance(payload, dict):
        if isinstance(payload.get("urls"), list):
            return PayloadShape.STORE_DUMP
        if isinstance(payload.get("tabs"), list):
            return PayloadShape.PAGE_EXPORT
        if "url" in payload:
            return PayloadShape.SINGLE
        raise ValueError(f"unrecognised object payload with keys {sorted(payload)[:8]}")
    raise ValueError(f"unrecognised payload type {type(payload).__name__}")


@dataclass
class IntakeResult:
    """Valid observations in payload order plus one error per rejected item."""

    observations: list[UrlObservation] = field(default_factory=list)
    errors: list[SaveError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.observations) + len(self.errors)


def _item_key(item: Any, index: int) -> str:
    """The item's url when it has one, else its position."""
    url = item.get("url") if isinstance(item, dict) else None
    return url if isinstance(url, str) and url else f"item {index}"


def _payload_items(payload: Any) -> tuple[PayloadShape, list[Any]]:
    shape = detect_shape(payload)
    if shape is PayloadShape.LIST:
        return shape, payload
    if shape is PayloadShape.STORE_DUMP:
        return shape, payload["urls"]
    if shape is PayloadShape.PAGE_EXPORT:
        return shape, payload["tabs"]
    return shape, [payload]


def read_observations(payload: Any) -> IntakeResult:
    """Coerce every item of *payload*, collecting invalid items instead of stopping.

    Raises:
        ValueError: Only for an unrecognised payload shape.
    """
    shape, items = _payload_items(payload)
    result = IntakeResult()
    for index, item in enumerate(items):
        try:
            flat = _tab_item(item) if shape is PayloadShape.PAGE_EXPORT else item
            result.observations.append(ObservationIn.model_validate(flat).to_observation())
        except ValueError as exc:
            detail = exc.errors()[0]["msg"] if isinstance(exc, ValidationError) else str(exc)
            key = _item_key(item, index)
            logger.warning("Skipping invalid observation %s: %s", key, detail)
            result.errors.append(SaveError(url=key, error=f"item {index} is not a valid observation: {detail}"))
    logger.debug(
        "Coerced %d observation(s) from %s payload, %d rejected", len(result.observations), shape, len(result.errors)
    )
    return result


def coerce_observations(payload: Any) -> list[UrlObservation]:
    """Strict variant of ``read_observations``: any invalid item is an error.

    Raises:
        ValueError: For an unrecognised shape or an invalid item (the message
            names the item index).
    """
    result = read_observations(payload)
    if result.errors:
        raise ValueError(result.errors[0].error)
    return result.observations


def load_observations(path: str | Path) -> IntakeResult:
    """Read a JSON file and coerce it with ``read_observations``."""
    payload = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    return read_observations(payload)


# ---------------------------------------------------------------------------
# Page filtering
# ---------------------------------------------------------------------------

AUTH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"login",
        r"signin",
        r"auth",
        r"oauth",
        r"sso",
        r"authenticate",
        r"register",
        r"signup",
        r"password",
        r"forgot",
        r"reset",
        r"verify",
        r"confirm",
        r"2fa",
        r"mfa",
    )
)

AUTH_HOSTS: tuple[str, ...] = (
    "accounts.google.com",
    "login.microsoftonline.com",
    "auth.openai.com",
    "github.com/login",
    "twitter.com/login",
    "facebook.com/login",
    "linkedin.com/login",
)


def is_auth_page(url: str, title: str = "") -> bool:
    """True for sign-in, sign-up and credential-recovery pages."""
    url_lower = url.lower()
    title_lower = (title or "").lower()
    if any(p.search(url_lower) or p.search(title_lower) for p in AUTH_PATTERNS):
        return True
    return any(host in url_lower for host in AUTH_HOSTS)


@dataclass
class FilterResult:
    pages: list[PageRef] = field(default_factory=list)
    original_count: int = 0
    duplicates_removed: int = 0
    auth_pages_removed: int = 0

    @property
    def filtered_count(self) -> int:
        return len(self.pages)


def filter_pages(pages: Iterable[PageRef]) -> FilterResult:
    """Drop repeated URLs (first occurrence wins) and authentication pages."""
    seen: set[str] = set()
    result = FilterResult()
    for page in pages:
        result.original_count += 1
        if page.url in seen:
            result.duplicates_removed += 1
            continue
        seen.add(page.url)
        if is_auth_page(page.url, page.title):
            result.auth_pages_removed += 1
            continue
        result.pages.append(page)
    return result


def pages_from_observations(observations: Sequence[UrlObservation]) -> list[PageRef]:
    return [PageRef(url=o.url, title=o.title, favicon=o.favicon) for o in observations]
