# backend/lead_intel/services/retrieval.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TypeVar
from urllib.parse import urljoin, urlsplit

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .connectors.base import CrawlProvider, MapProvider, ScrapeProvider, SearchProvider
from .types import Query, QueryIntent, RawResult
from .urls import HTTP_SCHEMES, extract_host, is_safe_url, normalize_url, same_site

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Pages we want first when crawling an official site
SITE_TARGET_SEARCH = "about team leadership management board contact"
FALLBACK_SITE_PATHS = ("/about", "/team", "/leadership")


@dataclass(frozen=True)
class RetrievalLimits:
    max_results: int = 10
    timeout_seconds: float = 20.0
    max_concurrency: int = 6
    # One extra attempt on timeout only; other failures are not retried.
    timeout_retries: int = 1
    country: Optional[str] = None


def word_count(text: str) -> int:
    return len((text or "").split())


def _describe(exc: BaseException) -> str:
    # TimeoutError stringifies to ""
    return str(exc) or exc.__class__.__name__


class RetrievalExecutor:
    """
    Concurrent fan-out over the search / scrape / map / crawl providers.

    - Every provider call gets a fixed timeout and at most one retry on timeout.
    - A failed or slow call yields an empty slice for that query or page; the
      batch never aborts because of one call.
    - Results are written into one slot per query (or per page), so the output
      order follows submission order regardless of completion order.
    - Cancelling the awaiting task cancels every in-flight call.
    """

    def __init__(
        self,
        search: Optional[SearchProvider],
        scrape: Optional[ScrapeProvider] = None,
        map_provider: Optional[MapProvider] = None,
        crawl_provider: Optional[CrawlProvider] = None,
        *,
        limits: RetrievalLimits = RetrievalLimits(),
        min_words: int = 50,
    ) -> None:
        self._search = search
        self._scrape = scrape
        self._map = map_provider
        self._crawl = crawl_provider
        self.limits = limits
        self.min_words = min_words

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _once(make_call: Callable[[], Awaitable[T]], timeout: float) -> T:
        return await asyncio.wait_for(make_call(), timeout=timeout)

    async def _call(
        self,
        make_call: Callable[[], Awaitable[T]],
        limits: RetrievalLimits,
    ) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(1 + max(limits.timeout_retries, 0)),
            retry=retry_if_exception_type(asyncio.TimeoutError),
            wait=wait_fixed(0.5),
            reraise=True,
        )
        return await retrying(self._once, make_call, limits.timeout_seconds)

    async def _search_one(
        self,
        query: Query,
        limits: RetrievalLimits,
        run_id: Optional[str],
    ) -> List[RawResult]:
        if self._search is None:
            return []
        provider = self._search
        try:
            hits = await self._call(
                lambda: provider.search(query.text, limits.max_results, limits.country),
                limits,
            )
        except Exception as e:
            # Partial failure: absorbed as missing evidence.
            logger.warning(
                "Search failed for %s query: %s",
                query.intent.value,
                _describe(e),
                extra={"run_id": run_id, "connector": provider.name, "step": "search"},
            )
            return []

        results: List[RawResult] = []
        for hit in (hits or [])[: limits.max_results]:
            url = hit.get("url") if isinstance(hit, dict) else None
            if not url:
                continue
            results.append(
                RawResult(
                    url=url,
                    title=hit.get("title"),
                    content=hit.get("content") or "",
                    links=list(hit.get("links") or []),
                    intent=query.intent,
                    origin="search",
                )
            )
        return results

    async def _scrape_one(
        self,
        url: str,
        limits: RetrievalLimits,
        run_id: Optional[str],
    ) -> Optional[RawResult]:
        if self._scrape is None or not is_safe_url(url):
            return None
        provider = self._scrape
        try:
            page = await self._call(lambda: provider.scrape(url, True), limits)
        except Exception as e:
            logger.warning(
                "Scrape failed for %s: %s",
                url,
                _describe(e),
                extra={"run_id": run_id, "connector": provider.name, "step": "scrape"},
            )
            return None
        return RawResult(
            url=page.get("url") or url,
            title=page.get("title"),
            content=page.get("markdown") or "",
            links=list(page.get("links") or []),
            intent=QueryIntent.SITE_CRAWL,
            origin="crawl",
        )

    async def _site_targets(
        self,
        seed_url: str,
        host: str,
        limit: int,
        limits: RetrievalLimits,
        run_id: Optional[str],
    ) -> List[str]:
        """About/team/leadership-style pages to visit right after the seed."""
        if self._map is not None:
            provider = self._map
            try:
                urls = await self._call(
                    lambda: provider.map(seed_url, SITE_TARGET_SEARCH, limit),
                    limits,
                )
                return [u for u in urls if same_site(u, host)]
            except Exception as e:
                logger.warning(
                    "Site map failed for %s: %s",
                    seed_url,
                    _describe(e),
                    extra={"run_id": run_id, "connector": provider.name, "step": "map"},
                )
        return [urljoin(seed_url, path) for path in FALLBACK_SITE_PATHS]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        queries: List[Query],
        limits: Optional[RetrievalLimits] = None,
        *,
        run_id: Optional[str] = None,
    ) -> List[List[RawResult]]:
        """
        Run all queries concurrently.

        Returns one batch per query, in query order.
        """
        limits = limits or self.limits
        semaphore = asyncio.Semaphore(max(limits.max_concurrency, 1))
        slots: List[List[RawResult]] = [[] for _ in queries]

        async def _run(idx: int, query: Query) -> None:
            async with semaphore:
                slots[idx] = await self._search_one(query, limits, run_id)

        await asyncio.gather(*(_run(i, q) for i, q in enumerate(queries)))

        logger.info(
            "Executed %d queries, %d raw results",
            len(queries),
            sum(len(s) for s in slots),
            extra={"run_id": run_id, "step": "execute"},
        )
        return slots

    async def crawl(
        self,
        seed_url: str,
        query: Optional[str],
        max_pages: int,
        max_depth: int,
        *,
        limits: Optional[RetrievalLimits] = None,
        run_id: Optional[str] = None,
    ) -> List[RawResult]:
        """
        Bounded breadth-first crawl of one site.

        The seed is fetched first, then about/team/leadership-style pages and
        same-site links, level by level. Each level is fetched concurrently.
        At most ``max_pages`` pages are fetched and no page deeper than
        ``max_depth`` links from the seed. Pages under ``min_words`` are dropped.
        """
        limits = limits or self.limits
        seed = normalize_url(seed_url)
        if not seed or not is_safe_url(seed) or max_pages <= 0:
            return []

        if self._crawl is not None:
            return await self._crawl_with_provider(
                self._crawl, seed, query, max_pages, max_depth, limits, run_id
            )

        if self._scrape is None:
            return []

        host = extract_host(seed) or ""
        semaphore = asyncio.Semaphore(max(limits.max_concurrency, 1))
        visited: set[str] = set()
        pages: List[RawResult] = []

        async def _fetch(url: str) -> Optional[RawResult]:
            async with semaphore:
                return await self._scrape_one(url, limits, run_id)

        frontier: List[str] = [seed]
        depth = 0
        while frontier and depth <= max_depth and len(visited) < max_pages:
            batch: List[str] = []
            for url in frontier:
                key = normalize_url(url)
                if not key or key in visited or not same_site(key, host):
                    continue
                if len(visited) >= max_pages:
                    break
                visited.add(key)
                batch.append(key)

            fetched = await asyncio.gather(*(_fetch(u) for u in batch))

            next_frontier: List[str] = []
            if depth == 0 and depth < max_depth:
                next_frontier.extend(
                    await self._site_targets(seed, host, max_pages * 2, limits, run_id)
                )
            for page in fetched:
                if page is None:
                    continue
                if word_count(page.content) >= self.min_words:
                    pages.append(page)
                if depth < max_depth:
                    for link in page.links:
                        target = urljoin(page.url, link)
                        # skip mailto: and other non-web links
                        if urlsplit(target).scheme in HTTP_SCHEMES:
                            next_frontier.append(target)

            frontier = next_frontier
            depth += 1

        logger.info(
            "Crawled %s: %d pages fetched, %d kept",
            host,
            len(visited),
            len(pages),
            extra={"run_id": run_id, "step": "crawl"},
        )
        return pages

    async def _crawl_with_provider(
        self,
        provider: CrawlProvider,
        seed: str,
        query: Optional[str],
        max_pages: int,
        max_depth: int,
        limits: RetrievalLimits,
        run_id: Optional[str],
    ) -> List[RawResult]:
        try:
            crawled = await self._call(
                lambda: provider.crawl(seed, query, max_pages, max_depth), limits
            )
        except Exception as e:
            logger.warning(
                "Site crawl failed for %s: %s",
                seed,
                _describe(e),
                extra={"run_id": run_id, "connector": provider.name, "step": "crawl"},
            )
            return []

        pages: List[RawResult] = []
        for item in (crawled or [])[:max_pages]:
            markdown = item.get("markdown") or ""
            words = item.get("word_count")
            if words is None:
                words = word_count(markdown)
            if not item.get("url") or words < self.min_words:
                continue
            pages.append(
                RawResult(
                    url=item["url"],
                    title=item.get("title"),
                    content=markdown,
                    links=list(item.get("links") or []),
                    intent=QueryIntent.SITE_CRAWL,
                    origin="crawl",
                )
            )
        return pages


def collect_links(batches: List[List[RawResult]]) -> List[str]:
    """Flatten result URLs plus their outbound links, preserving order."""
    links: List[str] = []
    for batch in batches:
        for result in batch:
            links.append(result.url)
            links.extend(result.links)
    return links

