from __future__ import annotations

from typing import Optional

from .base import (
    BaseConnector,
    CrawlProvider,
    CrawledPage,
    MapProvider,
    ProviderError,
    ScrapedPage,
    ScrapeProvider,
    SearchHit,
    SearchProvider,
)
from .exa import ExaConnector
from .firecrawl import FirecrawlConnector
from ..caching import ResultCache
from ...core.config import Settings

__all__ = [
    "BaseConnector",
    "CrawlProvider",
    "CrawledPage",
    "ExaConnector",
    "FirecrawlConnector",
    "MapProvider",
    "ProviderError",
    "ScrapedPage",
    "ScrapeProvider",
    "SearchHit",
    "SearchProvider",
    "build_providers",
]


def build_providers(
    settings: Settings,
) -> tuple[Optional[SearchProvider], Optional[ScrapeProvider], Optional[MapProvider]]:
    """
    Instantiate the configured retrieval providers from explicit settings.

    Returns (search, scrape, map). Any slot may be None when its API key is not
    configured; the executor degrades to "no evidence" for that capability.
    """
    cache = ResultCache(settings.REDIS_URL) if settings.REDIS_URL else None
    timeout = settings.RETRIEVAL_TIMEOUT_SECONDS

    firecrawl: Optional[FirecrawlConnector] = None
    if settings.FIRECRAWL_API_KEY:
        firecrawl = FirecrawlConnector(
            settings.FIRECRAWL_API_KEY,
            base_url=settings.FIRECRAWL_BASE_URL,
            timeout=timeout,
            cache=cache,
        )

    search: Optional[SearchProvider] = None
    if settings.SEARCH_PROVIDER == "exa" and settings.EXA_API_KEY:
        search = ExaConnector(settings.EXA_API_KEY, timeout=timeout, cache=cache)
    elif firecrawl is not None:
        search = firecrawl
    elif settings.EXA_API_KEY:
        search = ExaConnector(settings.EXA_API_KEY, timeout=timeout, cache=cache)

    return search, firecrawl, firecrawl
