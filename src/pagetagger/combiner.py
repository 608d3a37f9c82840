# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Confidence combiner: merges stage outputs into final categories + confidence.

Confidence is additive over independent stages::

    +0.5 × local_confidence   if local categories are non-empty
    +0.3                      if pattern categories are non-empty and not just ["general"]
    +0.2                      if schema categories are non-empty

Category priority, highest first: local text → schema → external hints →
URL heuristics.  URL heuristics are the *sole* source only when the three
higher tiers are all empty; otherwise their non-"general" entries are
appended after them.  The merged list is deduplicated by first occurrence
and truncated to ``MAX_FINAL_CATEGORIES`` (later tiers may be cut).  An
empty result collapses to ``["general"]`` at ``FLOOR_CONFIDENCE``.

A stage that raises contributes an empty result via ``run_stage``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import StageFailureError
from .text_classifier import LocalTextResult
from .url_classifier import GENERAL

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_FINAL_CATEGORIES = 4
FLOOR_CONFIDENCE = 0.1

LOCAL_WEIGHT = 0.5
PATTERN_BONUS = 0.3
SCHEMA_BONUS = 0.2


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Per-stage categories plus the merged decision."""

    local_categories: tuple[str, ...]
    pattern_categories: tuple[str, ...]
    schema_categories: tuple[str, ...]
    external_categories: tuple[str, ...]
    final_categories: tuple[str, ...]  # 1–4 entries, never empty
    confidence: float  # 0.0–1.0
    failed_stages: tuple[str, ...] = field(default=())


def run_stage(name: str, fn: Callable[..., T], *args, default: T, failures: list[str] | None = None) -> T:
    """Call a classifier stage, turning any exception into *default*.

    The failing stage name is appended to *failures* when given.
    """
    try:
        return fn(*args)
    except Exception as exc:
        err = exc if isinstance(exc, StageFailureError) else StageFailureError(str(exc), stage=name)
        logger.warning("Classifier stage %r failed: %s", name, err)
        if failures is not None:
            failures.append(name)
        return default


def _dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(c for c in items if c))


class ConfidenceCombiner:
    """Stateless merge of stage outputs; safe to share across tasks."""

    def __init__(self, *, max_categories: int = MAX_FINAL_CATEGORIES) -> None:
        self._max_categories = max_categories

    def combine(
        self,
        local: LocalTextResult | None,
        pattern: Iterable[str] = (),
        schema: Iterable[str] = (),
        external: Iterable[str] = (),
        *,
        failed_stages: Iterable[str] = (),
    ) -> ClassificationResult:
        local_cats = tuple(local.categories) if local is not None else ()
        pattern_cats = tuple(pattern)
        schema_cats = tuple(schema)
        external_cats = tuple(external)

        confidence = 0.0
        if local_cats:
            confidence += LOCAL_WEIGHT * local.confidence
        if any(c != GENERAL for c in pattern_cats):
            confidence += PATTERN_BONUS
        if schema_cats:
            confidence += SCHEMA_BONUS

        merged = _dedupe([*local_cats, *schema_cats, *external_cats])
        if not merged:
            merged = _dedupe(pattern_cats)
        else:
            merged = _dedupe([*merged, *(c for c in pattern_cats if c != GENERAL)])

        final = merged[: self._max_categories]
        if not final:
            final = [GENERAL]
            confidence = FLOOR_CONFIDENCE

        return ClassificationResult(
            local_categories=local_cats,
            pattern_categories=pattern_cats,
            schema_categories=schema_cats,
            external_categories=external_cats,
            final_categories=tuple(final),
            confidence=min(max(confidence, 0.0), 1.0),
            failed_stages=tuple(failed_stages),
        )
