from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Tuple
from urllib.parse import urlsplit
import logging
import re

from .types import DomainValidation, EvidenceSource, SocialProfileSet
from .urls import extract_host, is_safe_url, normalize_url

logger = logging.getLogger(__name__)


class UrlCategory(str, Enum):
    LINKEDIN_PERSON = "linkedin_person"
    LINKEDIN_COMPANY = "linkedin_company"
    TWITTER = "twitter"
    GITHUB = "github"
    CRUNCHBASE = "crunchbase"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    WIKIPEDIA = "wikipedia"
    AGGREGATOR = "aggregator"
    WEB = "web"
    INVALID = "invalid"


# Hosts that are never the entity's own website
NON_CANONICAL_DOMAINS = {
    "linkedin.com",
    "crunchbase.com",
    "pitchbook.com",
    "bloomberg.com",
    "wikipedia.org",
    "twitter.com", "x.com",
    "facebook.com", "instagram.com",
    "youtube.com",
    "glassdoor.com",
    "ycombinator.com",
    "zoominfo.com",
    "rocketreach.co",
    "apollo.io",
    "dnb.com",
    "owler.com",
    "craft.co",
    "cbinsights.com",
    "tracxn.com",
    "github.com",
    "medium.com",
}

PLACEHOLDER_DOMAIN_MARKERS = ("example.com", "placeholder", "test.com", "fake")

# normalized entity name -> official domains
KNOWN_ENTITY_DOMAINS: Dict[str, Tuple[str, ...]] = {
    "microsoft": ("microsoft.com",),
    "apple": ("apple.com",),
    "google": ("google.com", "abc.xyz"),
    "alphabet": ("abc.xyz", "google.com"),
    "amazon": ("amazon.com", "aboutamazon.com"),
    "meta": ("meta.com",),
    "meta platforms": ("meta.com",),
    "netflix": ("netflix.com",),
    "nvidia": ("nvidia.com",),
    "tesla": ("tesla.com",),
    "ibm": ("ibm.com",),
    "international business machines": ("ibm.com",),
    "oracle": ("oracle.com",),
    "salesforce": ("salesforce.com",),
    "openai": ("openai.com",),
    "anthropic": ("anthropic.com",),
    "saudi aramco": ("aramco.com",),
    "aramco": ("aramco.com",),
    "samsung": ("samsung.com",),
    "siemens": ("siemens.com",),
}

_SOCIAL_CATEGORIES = {
    UrlCategory.LINKEDIN_PERSON,
    UrlCategory.LINKEDIN_COMPANY,
    UrlCategory.TWITTER,
    UrlCategory.GITHUB,
    UrlCategory.CRUNCHBASE,
    UrlCategory.FACEBOOK,
    UrlCategory.INSTAGRAM,
    UrlCategory.YOUTUBE,
    UrlCategory.WIKIPEDIA,
}

_TWITTER_RESERVED = {"home", "search", "intent", "share", "i", "hashtag", "explore", "login"}

_LEGAL_SUFFIXES = re.compile(
    r"\b(inc|incorporated|llc|ltd|limited|corp|corporation|co|company|gmbh|ag|pty|plc|sa|bv|nv)\b\.?"
)


def _normalize_name(s: str) -> str:
    """
    Simplify entity name for comparison (remove legal suffixes, lowercase).
    """
    if not s:
        return ""
    s = s.lower().strip()
    s = _LEGAL_SUFFIXES.sub("", s)
    s = re.sub(r"[^a-z0-9\s]", " ", s)
    return re.sub(r"\s+", " ", s).strip()


def _name_tokens(name: str) -> List[str]:
    return [t for t in _normalize_name(name).split() if len(t) > 2]


def _compact(s: str) -> str:
    return re.sub(r"[^a-z0-9]", "", s.lower())


def _domain_core(host: str) -> str:
    """'www.acme-robotics.co.uk' -> 'acme-robotics.co' (TLD dropped)."""
    parts = host.split(".")
    if len(parts) > 1:
        parts = parts[:-1]
    return ".".join(parts)


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def _is_non_canonical(host: str) -> bool:
    return any(_host_matches(host, d) for d in NON_CANONICAL_DOMAINS)


def is_placeholder_domain(host: Optional[str]) -> bool:
    if not host:
        return False
    return any(marker in host for marker in PLACEHOLDER_DOMAIN_MARKERS)


def _path_segments(url: str) -> List[str]:
    try:
        path = urlsplit(url if "://" in url else "https://" + url).path
    except ValueError:
        return []
    return [p for p in path.split("/") if p]


def classify_url(url: str) -> UrlCategory:
    """Tag a URL by the kind of profile it points at, based on host and path."""
    normalized = normalize_url(url)
    if not normalized or not is_safe_url(normalized):
        return UrlCategory.INVALID
    host = extract_host(normalized) or ""
    segments = [s.lower() for s in _path_segments(normalized)]
    first = segments[0] if segments else ""

    if _host_matches(host, "linkedin.com"):
        if first in ("in", "pub") and len(segments) > 1:
            return UrlCategory.LINKEDIN_PERSON
        if first in ("company", "school", "showcase") and len(segments) > 1:
            return UrlCategory.LINKEDIN_COMPANY
        return UrlCategory.AGGREGATOR
    if _host_matches(host, "twitter.com") or _host_matches(host, "x.com"):
        if first and first not in _TWITTER_RESERVED:
            return UrlCategory.TWITTER
        return UrlCategory.AGGREGATOR
    if _host_matches(host, "github.com"):
        return UrlCategory.GITHUB if first else UrlCategory.AGGREGATOR
    if _host_matches(host, "crunchbase.com"):
        return UrlCategory.CRUNCHBASE if len(segments) > 1 else UrlCategory.AGGREGATOR
    if _host_matches(host, "facebook.com") or _host_matches(host, "fb.com"):
        return UrlCategory.FACEBOOK if first else UrlCategory.AGGREGATOR
    if _host_matches(host, "instagram.com"):
        return UrlCategory.INSTAGRAM if first else UrlCategory.AGGREGATOR
    if _host_matches(host, "youtube.com") or _host_matches(host, "youtu.be"):
        return UrlCategory.YOUTUBE if first else UrlCategory.AGGREGATOR
    if _host_matches(host, "wikipedia.org"):
        return UrlCategory.WIKIPEDIA if first == "wiki" and len(segments) > 1 else UrlCategory.AGGREGATOR
    if _is_non_canonical(host):
        return UrlCategory.AGGREGATOR
    return UrlCategory.WEB


def _profile_slug(url: str, category: UrlCategory) -> str:
    segments = _path_segments(url)
    if category in (UrlCategory.LINKEDIN_PERSON, UrlCategory.LINKEDIN_COMPANY,
                    UrlCategory.CRUNCHBASE, UrlCategory.WIKIPEDIA, UrlCategory.YOUTUBE):
        # /in/<slug>, /company/<slug>, /organization/<slug>, /wiki/<slug>, /c/<slug>
        return segments[1] if len(segments) > 1 else ""
    return segments[0] if segments else ""


def _lookup_known_domains(normalized_name: str) -> Tuple[str, ...]:
    if not normalized_name:
        return ()
    if normalized_name in KNOWN_ENTITY_DOMAINS:
        return KNOWN_ENTITY_DOMAINS[normalized_name]
    # Substring match on whole words, longest key first ("meta platforms" before "meta")
    for key in sorted(KNOWN_ENTITY_DOMAINS, key=len, reverse=True):
        if re.search(rf"\b{re.escape(key)}\b", normalized_name):
            return KNOWN_ENTITY_DOMAINS[key]
    return ()


def _token_overlap(entity_name: str, target: str) -> float:
    """Fraction of entity-name tokens (len > 2) present in ``target``."""
    target = _compact(target)
    if not target:
        return 0.0
    whole = _compact(_normalize_name(entity_name))
    if whole and len(whole) > 2 and whole in target:
        return 1.0
    tokens = _name_tokens(entity_name)
    if not tokens:
        return 0.0
    matched = sum(1 for t in tokens if _compact(t) in target)
    return matched / len(tokens)


def validate_domain(
    entity_name: str,
    candidate_url: str,
    threshold: float = 0.5,
) -> DomainValidation:
    """
    Confidence that ``candidate_url`` belongs to ``entity_name``.

    Website candidates are checked against the known-entity table first: a
    matching host is accepted with 0.95, a non-matching one for a known
    entity is rejected with 0.2. Entities not in the table fall back to the
    fraction of name tokens found in the host (or in the profile slug for
    social URLs); the candidate is valid only when that exceeds ``threshold``.

    Aggregator and placeholder hosts never validate as a website.
    """
    host = extract_host(normalize_url(candidate_url) or "")
    normalized_name = _normalize_name(entity_name)
    expected = list(_lookup_known_domains(normalized_name))

    if not host or not is_safe_url(normalize_url(candidate_url)):
        return DomainValidation(is_valid=False, confidence=0.0, expected_domains=expected)
    if is_placeholder_domain(host):
        return DomainValidation(is_valid=False, confidence=0.0, expected_domains=expected)

    category = classify_url(candidate_url)
    if category in _SOCIAL_CATEGORIES:
        score = _token_overlap(entity_name, _profile_slug(candidate_url, category))
        return DomainValidation(
            is_valid=score > threshold,
            confidence=round(score, 2),
            expected_domains=expected,
        )

    if category == UrlCategory.AGGREGATOR:
        return DomainValidation(is_valid=False, confidence=0.0, expected_domains=expected)

    if expected:
        if any(_host_matches(host, d) for d in expected):
            return DomainValidation(is_valid=True, confidence=0.95, expected_domains=expected)
        return DomainValidation(is_valid=False, confidence=0.2, expected_domains=expected)

    score = _token_overlap(entity_name, _domain_core(host))
    return DomainValidation(
        is_valid=score > threshold,
        confidence=round(score, 2),
        expected_domains=expected,
    )


def _candidate_urls(
    website_hint: Optional[str],
    sources: Sequence[EvidenceSource],
    link_sets: Iterable[Iterable[str]],
) -> List[str]:
    urls: List[str] = []
    seen: set[str] = set()

    def push(raw: Optional[str]) -> None:
        if not raw or not isinstance(raw, str):
            return
        url = normalize_url(raw)
        if url and url not in seen:
            seen.add(url)
            urls.append(url)

    push(website_hint)
    for src in sources:
        push(src.url)
    for links in link_sets:
        for link in links:
            push(link)
    return urls


def _site_root(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def resolve_profiles(
    entity_name: str,
    kind: Literal["person", "company"],
    sources: Sequence[EvidenceSource],
    link_sets: Iterable[Iterable[str]] = (),
    website_hint: Optional[str] = None,
    *,
    threshold: float = 0.5,
    max_others: int = 10,
) -> SocialProfileSet:
    """
    Pick the entity's LinkedIn / X / website URLs from everything discovered.

    Candidates are scanned in order (website hint, evidence URLs, then crawled
    outbound links). The first validated match per category wins; validated
    profiles in other categories (GitHub, Crunchbase, Wikipedia ...) go to
    ``others``. When the entity has no usable name tokens the first match per
    category is taken as-is.
    """
    profiles = SocialProfileSet()
    linkedin_kind = UrlCategory.LINKEDIN_PERSON if kind == "person" else UrlCategory.LINKEDIN_COMPANY
    can_validate = bool(_name_tokens(entity_name) or _compact(_normalize_name(entity_name)))
    other_categories: set[UrlCategory] = set()

    for url in _candidate_urls(website_hint, sources, link_sets):
        category = classify_url(url)
        if category in (UrlCategory.INVALID, UrlCategory.AGGREGATOR):
            continue
        if category == UrlCategory.WEB and (profiles.website or is_placeholder_domain(extract_host(url))):
            continue
        if category == linkedin_kind and profiles.linkedin:
            continue
        if category == UrlCategory.TWITTER and profiles.twitter:
            continue
        if category in other_categories:
            continue

        if can_validate and not validate_domain(entity_name, url, threshold).is_valid:
            continue

        if category == UrlCategory.WEB:
            profiles.website = _site_root(url)
        elif category == linkedin_kind:
            profiles.linkedin = url
        elif category == UrlCategory.TWITTER:
            profiles.twitter = url
        elif len(profiles.others) < max_others:
            other_categories.add(category)
            profiles.others.append(url)

    logger.debug(
        "Resolved profiles for %s: %s",
        entity_name,
        profiles.as_dict(),
        extra={"step": "resolve"},
    )
    return profiles
