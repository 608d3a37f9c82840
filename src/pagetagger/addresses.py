# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Absolute-address parsing shared by the classifier, tagger and stores."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from .errors import MalformedAddressError

UNKNOWN_DOMAIN = "unknown"


@dataclass(frozen=True, slots=True)
class Address:
    url: str
    scheme: str
    domain: str  # lowercase hostname, "" for opaque schemes (about:, data:)
    path: str


def parse_address(url: str) -> Address:
    """Parse *url* as an absolute address.

    Raises:
        MalformedAddressError: No scheme, an unparseable authority (bad IPv6
            literal, non-numeric port), or a hierarchical scheme without a host.
    """
    if not isinstance(url, str) or not url.strip():
        raise MalformedAddressError("empty address", url=str(url))
    try:
        parts = urlsplit(url.strip())
        _ = parts.port  # validates the port
        hostname = parts.hostname or ""
    except ValueError as exc:
        raise MalformedAddressError(f"unparseable address: {url!r}", url=url) from exc
    if not parts.scheme:
        raise MalformedAddressError(f"relative address: {url!r}", url=url)
    if parts.scheme in ("http", "https", "ftp", "ws", "wss") and not hostname:
        raise MalformedAddressError(f"address has no host: {url!r}", url=url)
    return Address(url=url, scheme=parts.scheme.lower(), domain=hostname.lower(), path=parts.path)


def extract_domain(url: str) -> str:
    """Hostname of *url*, or ``"unknown"`` when it cannot be parsed."""
    try:
        return parse_address(url).domain or UNKNOWN_DOMAIN
    except MalformedAddressError:
        return UNKNOWN_DOMAIN
