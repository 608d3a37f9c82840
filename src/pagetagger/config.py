# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Runtime configuration resolved from ``PAGETAGGER_*`` environment variables.

``TaggerConfig`` is immutable and validated on construction; CLI flags
override individual fields via ``dataclasses.replace``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

_ENV_PREFIX = "PAGETAGGER_"
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})

DEFAULT_DB_PATH = Path("~/.pagetagger/urls.db")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(_ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from None


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(_ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(_ENV_PREFIX + name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{_ENV_PREFIX}{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True, slots=True)
class TaggerConfig:
    """Immutable configuration for tagging and storage."""

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    signal_timeout: float = 5.0  # seconds per SignalSource.fetch
    recovery_timeout: float = 10.0  # seconds for the single recover() attempt
    recovery_enabled: bool = True
    max_concurrency: int = 8  # concurrent pages in tag_many
    top_n: int = 10  # stats leaderboard size
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self) -> None:
        if self.signal_timeout <= 0:
            raise ValueError(f"signal_timeout must be > 0, got {self.signal_timeout}")
        if self.recovery_timeout <= 0:
            raise ValueError(f"recovery_timeout must be > 0, got {self.recovery_timeout}")
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.top_n < 1:
            raise ValueError(f"top_n must be >= 1, got {self.top_n}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> TaggerConfig:
        """Build a config from ``PAGETAGGER_*`` variables (``os.environ`` by default)."""
        env = os.environ if env is None else env
        db_raw = env.get(_ENV_PREFIX + "DB_PATH", "").strip()
        return cls(
            db_path=Path(db_raw) if db_raw else DEFAULT_DB_PATH,
            signal_timeout=_env_float(env, "SIGNAL_TIMEOUT", 5.0),
            recovery_timeout=_env_float(env, "RECOVERY_TIMEOUT", 10.0),
            recovery_enabled=_env_bool(env, "RECOVERY", True),
            max_concurrency=_env_int(env, "MAX_CONCURRENCY", 8),
            top_n=_env_int(env, "TOP_N", 10),
            log_level=env.get(_ENV_PREFIX + "LOG_LEVEL", "").strip() or "INFO",
            log_json=_env_bool(env, "LOG_JSON", False),
        )

    @property
    def resolved_db_path(self) -> Path:
        """``db_path`` with ``~`` expanded."""
        return self.db_path.expanduser()
