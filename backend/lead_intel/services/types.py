from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


class QueryIntent(str, Enum):
    OFFICIAL_SITE = "official_site"
    OVERVIEW = "overview"
    CAREER = "career"
    SOCIAL = "social"
    AFFILIATIONS = "affiliations"
    FINANCIALS = "financials"
    LEADERSHIP = "leadership"
    BOARD = "board"
    OWNERSHIP = "ownership"
    NEWS = "news"
    INDUSTRY = "industry"
    LOCATION = "location"
    DIRECT_LOOKUP = "direct_lookup"
    SITE_CRAWL = "site_crawl"


@dataclass(frozen=True)
class Query:
    text: str
    intent: QueryIntent


@dataclass
class RawResult:
    """
    One retrieval hit, as returned by a search, scrape or crawl call.

    origin:
        - "search": web search provider result.
        - "crawl": page reached by the site crawl.
        - "scrape": page fetched directly by URL.
    """

    url: str
    title: Optional[str] = None
    content: str = ""
    links: List[str] = field(default_factory=list)
    intent: Optional[QueryIntent] = None
    origin: Literal["search", "crawl", "scrape"] = "search"


@dataclass(frozen=True)
class EvidenceSource:
    url: str
    title: Optional[str]
    content: str
    content_length: int
    intent: Optional[QueryIntent] = None
    origin: str = "search"
    official: bool = False


@dataclass
class SocialProfileSet:
    linkedin: Optional[str] = None
    twitter: Optional[str] = None
    website: Optional[str] = None
    others: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "linkedin": self.linkedin,
            "twitter": self.twitter,
            "website": self.website,
            "others": list(self.others),
        }
        return {k: v for k, v in data.items() if v}


@dataclass(frozen=True)
class DomainValidation:
    is_valid: bool
    confidence: float
    expected_domains: List[str] = field(default_factory=list)


@dataclass
class SynthesizedProfile:
    """
    Loosely-typed synthesis output, before sanitization.

    ``data`` is whatever JSON object the model returned (or the minimal
    fallback body when parsing failed). ``evidence`` is the exact set of
    sources the model was shown, used later to resolve and ground citations.
    """

    entity_name: str
    entity_type: Literal["person", "company"]
    data: Dict[str, Any]
    raw_text: str
    evidence: List[EvidenceSource] = field(default_factory=list)
    social_profiles: Optional[SocialProfileSet] = None
    parse_failed: bool = False
