# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""ContentTagger — async tagging service around the pure pipeline.

Per page: probe the SignalSource (bounded, one recovery), classify with
whatever metadata arrived, synthesize tags.  Failure policy:

- SignalUnavailable → classify from title/domain/path only (``degraded``)
- MalformedAddress  → single page: minimal fallback record;
                      batch: per-item error, batch continues
- anything else     → single page: fallback record; batch: per-item error

Construct one tagger per configuration and pass it to callers; instances
share no state with each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from . import PageRef, StageBreakdown, TaggedPage
from .addresses import parse_address
from .config import TaggerConfig
from .errors import MalformedAddressError
from .pipeline import ClassificationPipeline
from .probe import ProbeOutcome, SignalProbe
from .signals import SignalSource
from .url_classifier import GENERAL

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.3


def fallback_page(url: str, title: str = "", *, domain: str = "") -> TaggedPage:
    """Minimal record returned when a single page cannot be classified."""
    return TaggedPage(
        url=url,
        title=title or "",
        domain=domain,
        categories=[GENERAL],
        confidence=FALLBACK_CONFIDENCE,
        tags=[GENERAL],
        classification=StageBreakdown(pattern=[GENERAL]),
        fallback=True,
    )


@dataclass(frozen=True, slots=True)
class TagError:
    url: str
    error: str
    kind: str  # exception class name


@dataclass
class BatchTagResult:
    """Outcome of ``tag_many``: successes in input order plus per-item errors."""

    pages: list[TaggedPage] = field(default_factory=list)
    errors: list[TagError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.pages) + len(self.errors)


class ContentTagger:
    """Tags pages using an optional SignalSource and a ClassificationPipeline."""

    def __init__(
        self,
        *,
        signal_source: SignalSource | None = None,
        config: TaggerConfig | None = None,
        pipeline: ClassificationPipeline | None = None,
    ) -> None:
        self._source = signal_source
        self._config = config or TaggerConfig()
        self._pipeline = pipeline or ClassificationPipeline()

    @property
    def pipeline(self) -> ClassificationPipeline:
        return self._pipeline

    async def probe(self, page: PageRef) -> ProbeOutcome:
        probe = SignalProbe(
            self._source,
            page,
            timeout=self._config.signal_timeout,
            recovery_timeout=self._config.recovery_timeout,
            recovery_enabled=self._config.recovery_enabled,
        )
        return await probe.run()

    async def _tag(self, page: PageRef, categories: Sequence[str]) -> TaggedPage:
        """Tag one page; raises MalformedAddressError for unparseable URLs."""
        parse_address(page.url)
        outcome = await self.probe(page)

        metadata = outcome.report.metadata if outcome.ok else None
        external = [*categories, *(outcome.report.categories if outcome.ok else ())]
        if not outcome.ok and self._source is not None:
            logger.info("Metadata unavailable for %s (%s); classifying from address only", page.url, outcome.reason)

        tagged = self._pipeline.classify(page.url, page.title, metadata, external, favicon=page.favicon)
        tagged.degraded = not outcome.ok
        return tagged

    async def tag_url(
        self,
        url: str,
        title: str = "",
        *,
        page_id: str | int | None = None,
        categories: Sequence[str] = (),
        favicon: str = "",
    ) -> TaggedPage:
        """Tag a single page.  Never raises: failures yield ``fallback_page``."""
        page = PageRef(url=url, title=title or "", page_id=page_id, favicon=favicon)
        try:
            return await self._tag(page, categories)
        except MalformedAddressError as exc:
            logger.warning("Malformed address, returning fallback record: %s", exc)
            return fallback_page(url, title)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Tagging failed for %s, returning fallback record", url)
            # _tag validated the address before anything else could fail
            return fallback_page(url, title, domain=parse_address(url).domain)

    async def tag_many(self, pages: Iterable[PageRef], *, categories: Sequence[str] = ()) -> BatchTagResult:
        """Tag pages concurrently (bounded by ``max_concurrency``).

        Each page is its own failure domain: errors are collected, never raised.
        """
        refs = list(pages)
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def _one(ref: PageRef) -> TaggedPage | TagError:
            async with semaphore:
                try:
                    return await self._tag(ref, categories)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning("Tagging failed for %s: %s", ref.url, exc)
                    return TagError(url=ref.url, error=str(exc), kind=type(exc).__name__)

        outcomes = await asyncio.gather(*(_one(r) for r in refs))

        result = BatchTagResult()
        for item in outcomes:
            if isinstance(item, TagError):
                result.errors.append(item)
            else:
                result.pages.append(item)
        logger.info("Tagged %d page(s), %d error(s)", len(result.pages), len(result.errors))
        return result
