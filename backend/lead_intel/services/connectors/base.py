from abc import ABC, abstractmethod
from typing import Any, List, Optional, TypedDict


class SearchHit(TypedDict, total=False):
    url: str
    title: Optional[str]
    content: str
    links: List[str]


class ScrapedPage(TypedDict, total=False):
    url: str
    title: Optional[str]
    markdown: str
    links: List[str]


class CrawledPage(TypedDict, total=False):
    url: str
    title: Optional[str]
    markdown: str
    word_count: int
    links: List[str]


class BaseConnector(ABC):
    name: str


class SearchProvider(BaseConnector):
    @abstractmethod
    async def search(
        self, query: str, max_results: int, country: Optional[str] = None
    ) -> List[SearchHit]:
        ...


class ScrapeProvider(BaseConnector):
    @abstractmethod
    async def scrape(self, url: str, only_main_content: bool = True) -> ScrapedPage:
        ...


class MapProvider(BaseConnector):
    @abstractmethod
    async def map(self, url: str, search: Optional[str] = None, limit: int = 20) -> List[str]:
        ...


class CrawlProvider(BaseConnector):
    """
    Whole-site crawl in one call, for services that crawl server-side.

    No connector in this package implements it and build_pipeline does not
    inject one: production crawls use RetrievalExecutor's built-in
    breadth-first crawl over ScrapeProvider and MapProvider.
    """

    @abstractmethod
    async def crawl(
        self, seed_url: str, query: Optional[str], max_pages: int, max_depth: int
    ) -> List[CrawledPage]:
        ...


class ProviderError(Exception):
    """A provider call failed in a way the caller may treat as 'no data'."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


def as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v.strip()]
