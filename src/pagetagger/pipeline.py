# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Classification pipeline: pure, synchronous, no I/O.

Flow::

    url + title (+ metadata bag, + external categories)
      → text assembly
      → {LocalTextClassifier, UrlHeuristicClassifier, SchemaMapper}  (each isolated)
      → ConfidenceCombiner
      → TagSynthesizer
      → TaggedPage

Safe to share one instance across concurrent tasks: every collaborator is
stateless after construction.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from . import StageBreakdown, TaggedPage
from .addresses import Address, parse_address
from .combiner import ClassificationResult, ConfidenceCombiner, run_stage
from .errors import MalformedAddressError
from .schema_mapper import SchemaMapper
from .signals import RawSignalBag
from .tags import TagSynthesizer
from .text_classifier import LocalTextClassifier, LocalTextResult, normalize_text
from .url_classifier import UrlHeuristicClassifier

logger = logging.getLogger(__name__)

MAX_TEXT_KEYWORDS = 5
MAX_TEXT_H1 = 2
DEBUG_TEXT_LEN = 200

_EMPTY_LOCAL = LocalTextResult(categories=(), confidence=0.0)
_IMAGE_PREFIXES = ("http", "//", "/")


def _address_or_empty(url: str) -> Address:
    try:
        return parse_address(url)
    except MalformedAddressError:
        return Address(url=url, scheme="", domain="", path="")


def assemble_text(title: str, domain: str, path: str, metadata: RawSignalBag | None) -> str:
    """Build the lowercase, punctuation-free blob the local classifier scores.

    With a description available the blob is title, description, domain,
    a few keywords, og type/site name and the first h1 headings; otherwise
    it falls back to title, domain and path.
    """
    if metadata is not None and metadata.description:
        parts: list[str | None] = [
            title,
            metadata.description,
            domain,
            *metadata.keywords[:MAX_TEXT_KEYWORDS],
            metadata.og_data.get("type"),
            metadata.og_data.get("site_name"),
            *metadata.heading_texts("h1", MAX_TEXT_H1),
        ]
        raw = " ".join(p for p in parts if p)
    else:
        raw = f"{title} {domain} {path}"
    return normalize_text(raw)


def pick_image(metadata: RawSignalBag | None) -> str:
    """og:image → twitter:image → og:image:url → candidates → favicon; first usable wins."""
    if metadata is None:
        return ""
    sources = [
        metadata.og_data.get("image"),
        metadata.twitter_data.get("image"),
        metadata.og_data.get("image:url"),
        *metadata.image_candidates,
        metadata.favicon,
    ]
    for src in sources:
        if isinstance(src, str) and src.startswith(_IMAGE_PREFIXES):
            return src
    return ""


class ClassificationPipeline:
    """Runs the three classifier stages, the combiner and tag synthesis."""

    def __init__(
        self,
        *,
        text_classifier: LocalTextClassifier | None = None,
        url_classifier: UrlHeuristicClassifier | None = None,
        schema_mapper: SchemaMapper | None = None,
        combiner: ConfidenceCombiner | None = None,
        tag_synthesizer: TagSynthesizer | None = None,
    ) -> None:
        self.text_classifier = text_classifier or LocalTextClassifier()
        self.url_classifier = url_classifier or UrlHeuristicClassifier()
        self.schema_mapper = schema_mapper or SchemaMapper()
        self.combiner = combiner or ConfidenceCombiner()
        self.tag_synthesizer = tag_synthesizer or TagSynthesizer()

    def classify_signals(
        self,
        url: str,
        title: str,
        metadata: RawSignalBag | None = None,
        external_categories: Sequence[str] = (),
    ) -> tuple[ClassificationResult, str]:
        """Run the stages and combiner only. Returns (result, classification text)."""
        address = _address_or_empty(url)
        domain = (metadata.domain if metadata is not None and metadata.domain else "") or address.domain
        path = (metadata.path if metadata is not None and metadata.path else "") or address.path
        text = assemble_text(title or "", domain, path, metadata)

        failures: list[str] = []
        local = run_stage("local", self.text_classifier.classify, text, default=_EMPTY_LOCAL, failures=failures)
        pattern = run_stage("pattern", self.url_classifier.classify, url, title or "", default=[], failures=failures)
        schema: list[str] = []
        if metadata is not None and metadata.schema_data:
            schema = run_stage("schema", self.schema_mapper.map, metadata.schema_data, default=[], failures=failures)

        result = self.combiner.combine(local, pattern, schema, external_categories, failed_stages=failures)
        return result, text

    def classify(
        self,
        url: str,
        title: str,
        metadata: RawSignalBag | None = None,
        external_categories: Sequence[str] = (),
        *,
        favicon: str = "",
    ) -> TaggedPage:
        """Classify and tag one page.  Never raises for stage failures."""
        result, text = self.classify_signals(url, title, metadata, external_categories)
        domain = _address_or_empty(url).domain
        categories = list(result.final_categories)

        tags = run_stage(
            "tags",
            lambda: self.tag_synthesizer.synthesize(
                title=title or "", domain=domain, categories=categories, metadata=metadata
            ),
            default=[],
        )

        page = TaggedPage(
            url=url,
            title=title or "",
            domain=domain,
            categories=categories,
            confidence=result.confidence,
            tags=tags,
            classification=StageBreakdown(
                local=list(result.local_categories),
                pattern=list(result.pattern_categories),
                schema=list(result.schema_categories),
                external=list(result.external_categories),
            ),
            classification_text=text[:DEBUG_TEXT_LEN],
        )
        if metadata is not None:
            page.description = metadata.description or ""
            page.image = pick_image(metadata)
            page.author = metadata.author or ""
            page.published_date = metadata.published_date or ""
            page.word_count = metadata.word_count or 0
            page.language = metadata.language or ""
            page.favicon = metadata.favicon or ""
        if favicon:
            page.favicon = favicon
        return page
