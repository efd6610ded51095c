# backend/lead_intel/services/connectors/firecrawl.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import (
    MapProvider,
    ProviderError,
    ScrapedPage,
    ScrapeProvider,
    SearchHit,
    SearchProvider,
    as_str_list,
)
from ..caching import ResultCache

logger = logging.getLogger(__name__)

MAX_HIT_CHARS = 8000


class FirecrawlConnector(SearchProvider, ScrapeProvider, MapProvider):
    """
    Firecrawl connector covering three retrieval contracts:

    - search: POST /search with markdown + links scraping per hit.
    - scrape: POST /scrape for a single page (markdown + outbound links).
    - map:    POST /map to list site URLs, optionally filtered by a search term
              (used to target about/team/leadership/contact pages).
    """

    name = "firecrawl"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.firecrawl.dev/v1",
        timeout: float = 30.0,
        cache: Optional[ResultCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._cache = cache
        self._client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        if self._client is not None:
            resp = await self._client.post(url, headers=self._headers(), json=payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, headers=self._headers(), json=payload)

        if resp.status_code >= 400:
            raise ProviderError(self.name, f"{path} returned HTTP {resp.status_code}", resp.status_code)

        data = resp.json()
        if isinstance(data, dict) and data.get("success") is False:
            raise ProviderError(self.name, str(data.get("error") or f"{path} failed"))
        return data if isinstance(data, dict) else {}

    async def search(
        self, query: str, max_results: int, country: Optional[str] = None
    ) -> List[SearchHit]:
        query = (query or "").strip()
        if not query or not self._api_key:
            return []

        cache_key = f"firecrawl:search|{query}|{max_results}|{country or ''}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return cached

        payload: Dict[str, Any] = {
            "query": query,
            "limit": max_results,
            "scrapeOptions": {"formats": ["markdown", "links"], "onlyMainContent": True},
        }
        if country:
            payload["location"] = country

        data = await self._post("/search", payload)

        hits: List[SearchHit] = []
        for item in data.get("data") or []:
            if not isinstance(item, dict) or not item.get("url"):
                continue
            content = item.get("markdown") or item.get("description") or ""
            hits.append(
                {
                    "url": item["url"],
                    "title": item.get("title") or (item.get("metadata") or {}).get("title"),
                    "content": content[:MAX_HIT_CHARS],
                    "links": as_str_list(item.get("links")),
                }
            )
        hits = hits[:max_results]

        if self._cache is not None:
            await self._cache.set(cache_key, hits)
        return hits

    async def scrape(self, url: str, only_main_content: bool = True) -> ScrapedPage:
        data = await self._post(
            "/scrape",
            {"url": url, "formats": ["markdown", "links"], "onlyMainContent": only_main_content},
        )
        page = data.get("data") or {}
        metadata = page.get("metadata") or {}
        return {
            "url": metadata.get("sourceURL") or url,
            "title": metadata.get("title"),
            "markdown": page.get("markdown") or "",
            "links": as_str_list(page.get("links")),
        }

    async def map(self, url: str, search: Optional[str] = None, limit: int = 20) -> List[str]:
        payload: Dict[str, Any] = {"url": url, "limit": limit}
        if search:
            payload["search"] = search
        data = await self._post("/map", payload)
        return as_str_list(data.get("links"))[:limit]
