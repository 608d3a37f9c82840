# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SignalProbe — bounded metadata acquisition for one page.

State machine::

    IDLE → PROBING ──ok──────────────────────────→ DONE
              │fail/timeout
              ├─ recoverable source → RECOVERING → PROBING(once) ─ok→ DONE
              │                                            └─fail→ DEGRADED
              └─ otherwise ──────────────────────────────→ DEGRADED

Exactly one recovery attempt (the "reload and re-wait" step) is made, each
phase is bounded by ``asyncio.timeout``, and cancellation of the enclosing
task propagates unchanged.  A probe never raises for collaborator failures:
the outcome records why it degraded so the pipeline can fall back to
title/domain/path-only classification.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum

from . import PageRef
from .errors import SignalUnavailableError
from .signals import RecoverableSignalSource, SignalReport, SignalSource

logger = logging.getLogger(__name__)

# Browser-internal pages a collaborator can never read
SYSTEM_URL_PREFIXES: tuple[str, ...] = (
    "chrome://",
    "chrome-extension://",
    "edge://",
    "moz-extension://",
    "about:",
)


class ProbeState(StrEnum):
    IDLE = "idle"
    PROBING = "probing"
    RECOVERING = "recovering"
    DONE = "done"
    DEGRADED = "degraded"


@dataclass(frozen=True, slots=True)
class ProbeOutcome:
    """Terminal result of a probe."""

    state: ProbeState
    report: SignalReport | None = None
    reason: str = ""  # why the probe degraded ("" when DONE)
    attempts: int = 0  # fetch calls made
    recovered: bool = False  # a recovery step ran

    @property
    def ok(self) -> bool:
        return self.state is ProbeState.DONE and self.report is not None


def is_system_url(url: str) -> bool:
    return url.lower().startswith(SYSTEM_URL_PREFIXES)


class SignalProbe:
    """One-shot probe: create per page, then ``await probe.run()``."""

    def __init__(
        self,
        source: SignalSource | None,
        page: PageRef,
        *,
        timeout: float = 5.0,
        recovery_timeout: float = 10.0,
        recovery_enabled: bool = True,
    ) -> None:
        self._source = source
        self._page = page
        self._timeout = timeout
        self._recovery_timeout = recovery_timeout
        self._recovery_enabled = recovery_enabled
        self._attempts = 0
        self.state = ProbeState.IDLE

    async def run(self) -> ProbeOutcome:
        if self.state is not ProbeState.IDLE:
            raise RuntimeError(f"SignalProbe already ran (state={self.state})")

        if self._source is None:
            return self._degrade("no_source")
        if is_system_url(self._page.url):
            logger.debug("Skipping metadata for system URL: %s", self._page.url)
            return self._degrade("system_url")

        self.state = ProbeState.PROBING
        report, reason = await self._fetch_once()
        if report is not None:
            return self._done(report, recovered=False)

        if not (self._recovery_enabled and isinstance(self._source, RecoverableSignalSource)):
            return self._degrade(reason)

        self.state = ProbeState.RECOVERING
        logger.info("Recovering page for metadata: %s (%s)", self._page.url, reason)
        try:
            async with asyncio.timeout(self._recovery_timeout):
                await self._source.recover(self._page)
        except TimeoutError:
            return self._degrade("recovery_timeout", recovered=True)
        except Exception as exc:
            logger.warning("Recovery failed for %s: %s", self._page.url, exc)
            return self._degrade("recovery_failed", recovered=True)

        self.state = ProbeState.PROBING
        report, reason = await self._fetch_once()
        if report is not None:
            return self._done(report, recovered=True)
        return self._degrade(reason, recovered=True)

    async def _fetch_once(self) -> tuple[SignalReport | None, str]:
        self._attempts += 1
        try:
            async with asyncio.timeout(self._timeout):
                report = await self._source.fetch(self._page)
        except TimeoutError:
            logger.debug("Metadata fetch timed out after %.1fs: %s", self._timeout, self._page.url)
            return None, "timeout"
        except SignalUnavailableError as exc:
            logger.debug("Metadata unavailable for %s: %s", self._page.url, exc)
            return None, exc.reason or "unavailable"
        except Exception as exc:
            logger.warning("SignalSource raised for %s: %s", self._page.url, exc)
            return None, "source_error"
        if not isinstance(report, SignalReport):
            return None, "invalid_report"
        return report, ""

    def _done(self, report: SignalReport, *, recovered: bool) -> ProbeOutcome:
        self.state = ProbeState.DONE
        return ProbeOutcome(
            state=ProbeState.DONE,
            report=report,
            attempts=self._attempts,
            recovered=recovered,
        )

    def _degrade(self, reason: str, *, recovered: bool = False) -> ProbeOutcome:
        self.state = ProbeState.DEGRADED
        return ProbeOutcome(
            state=ProbeState.DEGRADED,
            reason=reason,
            attempts=self._attempts,
            recovered=recovered,
        )
