# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pagetagger  # noqa: F401
except ImportError:
    raise ImportError("pagetagger is not installed. Run: pip install -e '.[dev]'") from None

import logging

import pytest

from pagetagger.store import InMemoryUrlStore
from pagetagger.store_sqlite import SqliteUrlStore
from tests._helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path, clock):
    """Each store backend with the deterministic clock; closed after the test."""
    if request.param == "memory":
        s = InMemoryUrlStore(clock=clock)
    else:
        s = await SqliteUrlStore.create(tmp_path / "urls.db", clock=clock)
    yield s
    await s.close()


@pytest.fixture(autouse=True)
def _reset_root_logging():
    """Undo handlers installed by ``logging_config.configure``."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
