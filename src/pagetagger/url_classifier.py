# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL heuristic classifier: rule-table matching on address and title.

A category qualifies when any of its rules fires:
  - keyword: substring of the lowercased URL or title
  - domain:  substring of the lowercased hostname
  - path:    substring of the lowercased URL (``/docs/``, ``/watch/`` ...)

No scoring: matches are returned in table order, or ``["general"]`` when no
rule fires.  Unparseable addresses raise ``MalformedAddressError`` so the
pipeline can isolate the failure to this stage.
"""

from __future__ import annotations

from dataclasses import dataclass

from .addresses import parse_address

GENERAL = "general"


@dataclass(frozen=True, slots=True)
class UrlRule:
    category: str
    keywords: tuple[str, ...]
    domains: tuple[str, ...]
    url_patterns: tuple[str, ...]

    def matches(self, url_lower: str, title_lower: str, domain: str) -> bool:
        return (
            any(k in url_lower or k in title_lower for k in self.keywords)
            or any(d in domain for d in self.domains)
            or any(p in url_lower for p in self.url_patterns)
        )


RULE_TABLE: tuple[UrlRule, ...] = (
    UrlRule(
        "technology",
        keywords=(
            "github", "stackoverflow", "codepen", "jsfiddle", "codesandbox", "docs.", "documentation",
            "api", "programming", "coding", "developer", "software", "tech", "ai", "machine learning",
            "blockchain",
        ),
        domains=("github.com", "stackoverflow.com", "techcrunch.com", "wired.com", "arstechnica.com"),
        url_patterns=("/api/", "/docs/", "/documentation/"),
    ),
    UrlRule(
        "news",
        keywords=("news", "article", "blog", "post", "breaking", "report", "journalism"),
        domains=("cnn.com", "bbc.com", "reuters.com", "medium.com", "substack.com", "nytimes.com"),
        url_patterns=("/news/", "/article/", "/post/"),
    ),
    UrlRule(
        "social",
        keywords=("twitter", "facebook", "linkedin", "instagram", "reddit", "discord", "social"),
        domains=("twitter.com", "facebook.com", "linkedin.com", "instagram.com", "reddit.com", "discord.com"),
        url_patterns=("/profile/", "/user/", "/post/"),
    ),
    UrlRule(
        "shopping",
        keywords=("amazon", "shop", "store", "buy", "cart", "checkout", "product", "price", "deal"),
        domains=("amazon.com", "ebay.com", "shopify.com", "etsy.com", "alibaba.com"),
        url_patterns=("/product/", "/item/", "/p/", "/shop/"),
    ),
    UrlRule(
        "entertainment",
        keywords=("youtube", "netflix", "video", "watch", "movie", "music", "game", "stream", "entertainment"),
        domains=("youtube.com", "netflix.com", "spotify.com", "twitch.tv", "hulu.com"),
        url_patterns=("/watch/", "/video/", "/play/"),
    ),
    UrlRule(
        "education",
        keywords=("course", "tutorial", "learn", "education", "university", "coursera", "udemy", "study", "training"),
        domains=("coursera.org", "udemy.com", "edx.org", "khanacademy.org"),
        url_patterns=("/course/", "/learn/", "/tutorial/"),
    ),
    UrlRule(
        "business",
        keywords=("business", "startup", "entrepreneur", "company", "corporate", "enterprise", "market"),
        domains=("bloomberg.com", "wsj.com", "forbes.com", "businessinsider.com"),
        url_patterns=("/business/", "/company/", "/enterprise/"),
    ),
    UrlRule(
        "finance",
        keywords=("finance", "investment", "trading", "stock", "crypto", "banking", "fintech", "money"),
        domains=("finance.yahoo.com", "coinbase.com", "binance.com"),
        url_patterns=("/finance/", "/trading/", "/investment/"),
    ),
    UrlRule(
        "health",
        keywords=("health", "medical", "wellness", "fitness", "nutrition", "doctor", "medicine"),
        domains=("webmd.com", "mayoclinic.org", "healthline.com"),
        url_patterns=("/health/", "/medical/", "/wellness/"),
    ),
    UrlRule(
        "sports",
        keywords=("sport", "football", "basketball", "soccer", "athlete", "game", "match", "tournament"),
        domains=("espn.com", "sports.yahoo.com", "bleacherreport.com"),
        url_patterns=("/sports/", "/game/", "/match/"),
    ),
    UrlRule(
        "science",
        keywords=("science", "research", "study", "discovery", "experiment", "academic", "scientific"),
        domains=("nature.com", "sciencemag.org", "arxiv.org"),
        url_patterns=("/research/", "/study/", "/paper/"),
    ),
)


class UrlHeuristicClassifier:
    """Matches an address and title against ``RULE_TABLE``."""

    def __init__(self, rules: tuple[UrlRule, ...] = RULE_TABLE) -> None:
        self._rules = rules

    def classify(self, url: str, title: str = "") -> list[str]:
        """Return matching categories in table order, or ``["general"]``.

        Raises:
            MalformedAddressError: If *url* is not an absolute address.
        """
        domain = parse_address(url).domain
        url_lower = url.lower()
        title_lower = (title or "").lower()
        matched = [r.category for r in self._rules if r.matches(url_lower, title_lower, domain)]
        return matched or [GENERAL]
