# backend/lead_intel/services/planner.py

from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlparse
import logging
import re

from ..schemas.enrichment import CompanyEnrichmentRequest, PersonEnrichmentRequest
from .errors import InvalidRequest
from .types import Query, QueryIntent

logger = logging.getLogger(__name__)

DEFAULT_PERSON_QUERY_CAP = 6
DEFAULT_COMPANY_QUERY_CAP = 10


def _extract_domain(website: Optional[str]) -> Optional[str]:
    if not website:
        return None
    try:
        if "://" not in website:
            website = "https://" + website
        parsed = urlparse(website)
        host = (parsed.netloc or "").lower()
    except ValueError:
        host = website.split("://")[-1].split("/")[0].lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _handle_from_profile_url(url: Optional[str]) -> Optional[str]:
    """
    'https://www.linkedin.com/in/jane-doe-42a1b3/' -> 'jane doe'
    """
    if not url:
        return None
    path = urlparse(url if "://" in url else "https://" + url).path
    segments = [s for s in path.split("/") if s]
    if not segments:
        return None
    slug = segments[-1]
    words = [w for w in re.split(r"[-_.]+", slug) if w and not any(c.isdigit() for c in w)]
    return " ".join(words) or None


def person_subject(request: PersonEnrichmentRequest) -> str:
    if request.full_name:
        return request.full_name
    handle = _handle_from_profile_url(request.linkedin_url)
    if handle:
        return handle
    if request.email:
        local = request.email.split("@")[0]
        return " ".join(w for w in re.split(r"[._+-]+", local) if w)
    return ""


def _scoped(*parts: Optional[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def _plan_person(request: PersonEnrichmentRequest) -> List[Query]:
    subject = f'"{person_subject(request)}"'
    company = request.company
    country = request.country

    queries: List[Query] = [
        Query(_scoped(subject, company, country, "professional profile biography"), QueryIntent.OVERVIEW),
        Query(_scoped(subject, company, "career history experience education"), QueryIntent.CAREER),
        Query(_scoped(subject, "LinkedIn Twitter social profiles"), QueryIntent.SOCIAL),
        Query(_scoped(subject, "investments board member advisor affiliations"), QueryIntent.AFFILIATIONS),
        Query(_scoped(subject, company, country, "recent news announcement"), QueryIntent.NEWS),
    ]

    # Direct-lookup fields are exact identifiers; search them verbatim.
    lookups = [v for v in (request.linkedin_url, request.email) if v]
    for value in lookups:
        queries.append(Query(f'"{value}"', QueryIntent.DIRECT_LOOKUP))

    return queries


def _plan_company(request: CompanyEnrichmentRequest) -> List[Query]:
    domain = _extract_domain(request.website)
    name = request.company_name or domain or ""
    subject = f'"{name}"'

    if domain:
        official = Query(f"site:{domain} about company leadership team", QueryIntent.OFFICIAL_SITE)
    else:
        official = Query(_scoped(subject, request.country, "official website"), QueryIntent.OFFICIAL_SITE)

    queries: List[Query] = [
        official,
        Query(_scoped(subject, "company overview about profile headquarters founded"), QueryIntent.OVERVIEW),
        Query(_scoped(subject, "revenue funding valuation investors financials"), QueryIntent.FINANCIALS),
        Query(_scoped(subject, "founder CEO executives leadership team"), QueryIntent.LEADERSHIP),
        Query(_scoped(subject, "board of directors board members chairman"), QueryIntent.BOARD),
        Query(_scoped(subject, "ownership shareholders parent company owner"), QueryIntent.OWNERSHIP),
        Query(_scoped(subject, "recent news acquisitions partnerships announcements"), QueryIntent.NEWS),
        Query(_scoped(subject, "LinkedIn Twitter Crunchbase"), QueryIntent.SOCIAL),
    ]

    if request.industry:
        queries.append(
            Query(_scoped(subject, request.industry, "market position competitors"), QueryIntent.INDUSTRY)
        )
    if request.country:
        queries.append(
            Query(_scoped(subject, request.country, "office operations"), QueryIntent.LOCATION)
        )

    return queries


def plan_queries(
    request: PersonEnrichmentRequest | CompanyEnrichmentRequest,
    *,
    person_cap: int = DEFAULT_PERSON_QUERY_CAP,
    company_cap: int = DEFAULT_COMPANY_QUERY_CAP,
) -> List[Query]:
    """
    Deterministic, capped query plan for one enrichment request.

    Queries are emitted identity/overview first, so truncation to the cap
    always drops the most specific (least essential) queries.
    """
    if not request.has_identifying_fields():
        raise InvalidRequest("Provide at least a name, website, profile URL or email to enrich.")

    if isinstance(request, PersonEnrichmentRequest):
        queries, cap = _plan_person(request), person_cap
    else:
        queries, cap = _plan_company(request), company_cap

    # Drop accidental duplicates (e.g. company == country) while preserving order
    unique: List[Query] = []
    seen: set[str] = set()
    for q in queries:
        key = q.text.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(q)

    plan = unique[: max(cap, 1)]
    logger.debug(
        "Planned %d queries (%d before cap)",
        len(plan),
        len(unique),
        extra={"step": "plan", "meta": {"intents": [q.intent.value for q in plan]}},
    )
    return plan
