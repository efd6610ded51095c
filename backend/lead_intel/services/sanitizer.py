# backend/lead_intel/services/sanitizer.py
from __future__ import annotations

import logging
import re
import types
from typing import Any, Dict, Iterable, List, Optional, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from ..schemas.enrichment import (
    BoardMember,
    EducationEntry,
    EnrichmentReport,
    ExperienceEntry,
    KeyPerson,
    LeadershipMember,
    NewsItem,
    Office,
    Shareholder,
)
from .errors import UngroundedOutput
from .types import EvidenceSource, SynthesizedProfile
from .urls import normalize_url

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"
MAX_REPORT_SOURCES = 10

PLACEHOLDER_RE = re.compile(
    r"^(?:"
    r"not\s+found(?:\s+in\s+(?:the\s+)?sources?)?"
    r"|not\s+(?:available|disclosed|specified|provided|stated|mentioned|applicable)"
    r"(?:\s+in\s+(?:the\s+)?(?:available\s+)?sources?)?"
    r"|not\s+publicly\s+(?:available|disclosed)"
    r"|n/?a|none|null|nil|unknown|undisclosed|tbd|-+|\?+"
    r"|no\s+(?:data|information|info|details)(?:\s+(?:available|found))?"
    r")[.!]?$",
    re.IGNORECASE,
)

# alias -> canonical top-level key
KEY_ALIASES: Dict[str, str] = {
    "summary": "overview",
    "profileSummary": "overview",
    "description": "overview",
    "workExperience": "experience",
    "careerHistory": "experience",
    "socialMedia": "socialProfiles",
    "social": "socialProfiles",
    "board": "boardMembers",
    "boardOfDirectors": "boardMembers",
    "directors": "boardMembers",
    "executives": "leadership",
    "keyExecutives": "leadership",
    "headquarters": "location",
    "hq": "location",
    "employeeCount": "employees",
    "foundedYear": "founded",
    "news": "recentNews",
    "linkedin": "linkedinUrl",
    "currentTitle": "title",
    "currentCompany": "company",
}

# top-level lists of people whose names must occur in the evidence text
PEOPLE_LIST_KEYS = ("leadership", "boardMembers", "keyPeople")

# model -> field that a bare string list entry is mapped onto
_STRING_ITEM_FIELD: Dict[type, str] = {
    EducationEntry: "details",
    ExperienceEntry: "description",
    NewsItem: "headline",
    LeadershipMember: "name",
    BoardMember: "name",
    KeyPerson: "name",
    Shareholder: "name",
    Office: "location",
}

_HONORIFICS = re.compile(r"^(?:dr|mr|mrs|ms|mx|prof|sir|dame)\.?\s+", re.IGNORECASE)


def _camel(key: str) -> str:
    if "_" not in key:
        return key
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def is_placeholder(text: str) -> bool:
    return bool(PLACEHOLDER_RE.match(text.strip()))


def prune(value: Any) -> Any:
    """
    Recursively drop empty and placeholder values.

    Strings are trimmed; "", whitespace and "not found"-style placeholders
    become None. Lists and dicts that are empty after pruning become None.
    Returns None when nothing meaningful is left.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text or is_placeholder(text):
            return None
        return text
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            pv = prune(v)
            if pv is not None:
                out[k] = pv
        return out or None
    if isinstance(value, (list, tuple)):
        items = [p for p in (prune(v) for v in value) if p is not None]
        return items or None
    return value


def flatten_aliases(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map the model's key variants onto one canonical camelCase key set.

    A nested ``profile`` object is lifted to the top level. Canonical keys
    win over aliases when both are present.
    """
    lifted: Dict[str, Any] = {}
    nested = data.get("profile")
    if isinstance(nested, dict):
        for k, v in nested.items():
            lifted[_camel(k)] = v

    out: Dict[str, Any] = {}
    for source in (lifted, data):
        for raw_key, v in source.items():
            if raw_key == "profile" and source is data:
                continue
            key = _camel(raw_key)
            key = KEY_ALIASES.get(key, key)
            if key == raw_key or key not in out:
                out[key] = v
    return out


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _coerce(annotation: Any, value: Any) -> Any:
    """Coerce loosely-shaped model output onto a report field type, or None."""
    annotation = _unwrap_optional(annotation)
    if value is None:
        return None

    if get_origin(annotation) is list:
        (item_type,) = get_args(annotation)
        if not isinstance(value, list):
            value = [value]
        items = [_coerce(item_type, v) for v in value]
        items = [i for i in items if i is not None]
        return items or None

    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        if isinstance(value, str):
            key = _STRING_ITEM_FIELD.get(annotation)
            if not key:
                return None
            value = {key: value}
        if not isinstance(value, dict):
            return None
        out: Dict[str, Any] = {}
        for fname, finfo in annotation.model_fields.items():
            alias = finfo.alias or fname
            raw = value.get(alias, value.get(fname))
            coerced = _coerce(finfo.annotation, raw)
            if coerced is not None:
                out[alias] = coerced
            elif finfo.is_required():
                return None
        return out or None

    if annotation is str:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            parts = [str(v) for v in value if isinstance(v, (str, int, float)) and not isinstance(v, bool)]
            return ", ".join(parts) or None
        if isinstance(value, dict):
            # {"name": ..} style objects in a string list
            name = value.get("name") or value.get("title")
            return name if isinstance(name, str) else None
        return None

    return value


def _normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).casefold()


def _name_in_text(name: str, haystack: str) -> bool:
    needle = _normalize_text(name).strip()
    if not needle:
        return False
    if needle in haystack:
        return True
    stripped = _HONORIFICS.sub("", needle)
    return bool(stripped) and stripped in haystack


def ground_people(entries: Any, text: str) -> Any:
    """Keep only people entries whose name occurs in ``text``."""
    if not isinstance(entries, list):
        return entries
    haystack = _normalize_text(text)
    kept = []
    for entry in entries:
        name = entry.get("name") if isinstance(entry, dict) else entry
        if isinstance(name, str) and _name_in_text(name, haystack):
            kept.append(entry)
        else:
            logger.debug("Dropping ungrounded person entry %r", name)
    return kept


def ground_people_lists(data: Dict[str, Any], text: str) -> Dict[str, Any]:
    out = dict(data)
    for key in PEOPLE_LIST_KEYS:
        if key in out:
            out[key] = ground_people(out[key], text)
    ownership = out.get("ownership")
    if isinstance(ownership, dict) and "majorShareholders" in ownership:
        ownership = dict(ownership)
        ownership["majorShareholders"] = ground_people(ownership["majorShareholders"], text)
        out["ownership"] = ownership
    return out


def _evidence_text(evidence: Iterable[EvidenceSource]) -> str:
    return "\n".join(f"{s.title or ''}\n{s.content}" for s in evidence)


def _resolve_sources(cited: Any, evidence: List[EvidenceSource]) -> List[Dict[str, Any]]:
    """
    Cited sources that are part of the evidence set, else the evidence shown
    to the model. Never a URL the pipeline did not retrieve.
    """
    by_url = {s.url: s for s in evidence}
    resolved: List[Dict[str, Any]] = []
    seen: set[str] = set()
    for item in cited if isinstance(cited, list) else []:
        raw_url = item.get("url") if isinstance(item, dict) else item
        url = normalize_url(raw_url) if isinstance(raw_url, str) else None
        if not url or url not in by_url or url in seen:
            continue
        seen.add(url)
        src = by_url[url]
        title = item.get("title") if isinstance(item, dict) else None
        resolved.append({"title": title or src.title, "url": src.url})

    if not resolved:
        resolved = [{"title": s.title, "url": s.url} for s in evidence[:MAX_REPORT_SOURCES]]
    return resolved


def _grounded_url(url: Any, evidence_urls: set[str], evidence_text: str) -> Optional[str]:
    if not isinstance(url, str):
        return None
    normalized = normalize_url(url)
    if not normalized:
        return None
    if normalized in evidence_urls or url in evidence_text:
        return url
    return None


def _merge_social_profiles(
    modeled: Any,
    profile: SynthesizedProfile,
    evidence_urls: set[str],
    evidence_text: str,
) -> Optional[Dict[str, Any]]:
    resolved = profile.social_profiles.as_dict() if profile.social_profiles else {}
    merged: Dict[str, Any] = dict(resolved)
    if isinstance(modeled, dict):
        for key in ("linkedin", "twitter", "website"):
            if key not in merged:
                url = _grounded_url(modeled.get(key), evidence_urls, evidence_text)
                if url:
                    merged[key] = url
        others = list(merged.get("others") or [])
        for url in modeled.get("others") or []:
            url = _grounded_url(url, evidence_urls, evidence_text)
            if url and url not in others:
                others.append(url)
        if others:
            merged["others"] = others
    return merged or None


def sanitize(profile: SynthesizedProfile) -> EnrichmentReport:
    """
    Turn loosely-shaped synthesis output into a typed EnrichmentReport.

    Steps: prune placeholders, flatten aliased keys, coerce onto the report
    types, drop people not named in the evidence, resolve sources against the
    evidence set. Raises UngroundedOutput when no overview or no sources remain.
    """
    pruned = prune(profile.data) or {}
    if not isinstance(pruned, dict):
        pruned = {}
    data = flatten_aliases(pruned)

    evidence_text = _evidence_text(profile.evidence)
    evidence_urls = {s.url for s in profile.evidence}
    data = ground_people_lists(data, evidence_text)

    typed: Dict[str, Any] = {}
    skip = {"name", "type", "sources", "evidence", "socialProfiles", "schemaVersion"}
    for fname, finfo in EnrichmentReport.model_fields.items():
        alias = finfo.alias or fname
        if alias in skip:
            continue
        coerced = prune(_coerce(finfo.annotation, data.get(alias)))
        if coerced is not None:
            typed[alias] = coerced

    overview = typed.get("overview")
    if not overview:
        raise UngroundedOutput("Synthesis produced no overview text")

    sources = _resolve_sources(data.get("sources"), profile.evidence)
    if not sources:
        raise UngroundedOutput("Synthesis has no supporting sources")

    social = _merge_social_profiles(data.get("socialProfiles"), profile, evidence_urls, evidence_text)
    if social:
        typed["socialProfiles"] = social
        if profile.entity_type == "person" and "linkedinUrl" not in typed and social.get("linkedin"):
            typed["linkedinUrl"] = social["linkedin"]
        if profile.entity_type == "company" and "website" not in typed and social.get("website"):
            typed["website"] = social["website"]

    name = data.get("name") if isinstance(data.get("name"), str) else None
    payload = {
        **typed,
        "name": name or profile.entity_name,
        "type": profile.entity_type,
        "sources": sources,
        "evidence": pruned or None,
        "schemaVersion": SCHEMA_VERSION,
    }

    try:
        report = EnrichmentReport.model_validate(payload)
    except ValidationError as e:
        logger.error("Sanitized report failed validation: %s", e, extra={"step": "sanitize"})
        raise UngroundedOutput("Synthesis output could not be mapped to a report") from e

    logger.info(
        "Sanitized %s report with %d sources",
        profile.entity_type,
        len(report.sources),
        extra={"step": "sanitize", "meta": {"parse_failed": profile.parse_failed}},
    )
    return report
