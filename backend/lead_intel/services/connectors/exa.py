# backend/lead_intel/services/connectors/exa.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import SearchHit, SearchProvider
from ..caching import ResultCache

logger = logging.getLogger(__name__)

# keep prompt size bounded
MAX_HIT_CHARS = 8000


class ExaConnector(SearchProvider):
    """
    Exa /search connector.

    - Uses the `contents` object with `text: true` and `livecrawl: "fallback"`
      so each hit carries extracted page text, not just a snippet.
    - Highlights are requested and prepended to the text so the most
      entity-relevant sentences survive later truncation.
    - Normalises results into the common search-hit shape:
        {"url": ..., "title": ..., "content": ..., "links": []}

    Exa has no country filter; the planner already interpolates the country
    into query text, so the hint is ignored here.
    """

    name = "exa"

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 30.0,
        cache: Optional[ResultCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.search_url = "https://api.exa.ai/search"
        self._api_key = api_key
        self._timeout = timeout
        self._cache = cache
        self._client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    def _build_payload(self, query: str, num_results: int) -> Dict[str, Any]:
        return {
            "query": query,
            "numResults": num_results,
            "type": "auto",
            "contents": {
                "text": True,
                "livecrawl": "fallback",
                "highlights": {
                    "numSentences": 4,
                    "query": (
                        "Role, employer, career history, education, leadership team, "
                        "board members, ownership, funding, revenue, headquarters, "
                        "founding date and recent announcements."
                    ),
                },
            },
        }

    @staticmethod
    def _parse_results(data: Dict[str, Any]) -> List[SearchHit]:
        hits: List[SearchHit] = []
        for r in data.get("results", []) or []:
            url = r.get("url")
            if not url:
                continue

            parts: List[str] = []
            highlights = r.get("highlights")
            if isinstance(highlights, list):
                parts.extend(h for h in highlights if isinstance(h, str))
            text_val = r.get("text")
            if isinstance(text_val, str):
                parts.append(text_val)

            content = "\n".join(p for p in parts if p).strip()[:MAX_HIT_CHARS]
            hits.append(
                {
                    "url": url,
                    "title": r.get("title"),
                    "content": content,
                    "links": [],
                }
            )
        return hits

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        resp = await client.post(self.search_url, headers=self._headers(), json=payload)

        # Handle rate limits with a local, single retry
        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            delay = int(retry_after) if retry_after and retry_after.isdigit() else 2
            await asyncio.sleep(delay)
            resp = await client.post(self.search_url, headers=self._headers(), json=payload)
        return resp

    async def search(
        self, query: str, max_results: int, country: Optional[str] = None
    ) -> List[SearchHit]:
        query = (query or "").strip()
        if not query or not self._api_key:
            return []

        cache_key = f"exa:search|{query}|{max_results}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return cached

        payload = self._build_payload(query, max_results)
        if self._client is not None:
            resp = await self._post(self._client, payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await self._post(client, payload)

        if 400 <= resp.status_code < 500:
            # Treat client errors (including a second 429) as "no data"
            logger.warning(
                "Exa search rejected (%s) for query %r",
                resp.status_code,
                query,
                extra={"connector": self.name},
            )
            return []

        resp.raise_for_status()
        hits = self._parse_results(resp.json())[:max_results]

        if self._cache is not None:
            await self._cache.set(cache_key, hits)
        return hits
