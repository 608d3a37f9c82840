# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagetagger exception hierarchy.

All pagetagger-specific errors inherit from TaggerError, allowing callers
to catch the base class for any tagging or storage failure or specific
subclasses for targeted handling.

Most of these never escape the public batch APIs: they are converted into
per-item error entries or degraded fallback values at the boundary.
"""

from __future__ import annotations


class TaggerError(Exception):
    """Base exception for all pagetagger errors."""


class SignalUnavailableError(TaggerError):
    """Metadata collection failed or timed out for a page."""

    def __init__(self, message: str, *, url: str = "", reason: str = "") -> None:
        super().__init__(message)
        self.url = url
        self.reason = reason


class StageFailureError(TaggerError):
    """A single classifier stage raised while scoring a page."""

    def __init__(self, message: str, *, stage: str = "") -> None:
        super().__init__(message)
        self.stage = stage


class MalformedAddressError(TaggerError):
    """The URL cannot be parsed as an absolute address."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class StoreWriteError(TaggerError):
    """The underlying store rejected a write."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class StoreSchemaError(TaggerError, ValueError):
    """On-disk schema version is newer than this release understands."""
