# backend/lead_intel/services/evidence.py
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Sequence

from .types import EvidenceSource, RawResult
from .urls import extract_host, normalize_url

logger = logging.getLogger(__name__)

INJECTION_PHRASES = [
    "ignore previous instructions",
    "ignore all previous instructions",
    "disregard previous instructions",
    "system prompt",
    "you are chatgpt",
    "you are an ai assistant",
]


def _sanitize_snippet(text: str) -> str:
    """
    Best-effort prompt-injection mitigation for external content.
    We only lightly redact common injection phrases; we do NOT modify meaning.
    """
    if not text:
        return text

    sanitized = text
    for phrase in INJECTION_PHRASES:
        sanitized = re.sub(re.escape(phrase), "[redacted]", sanitized, flags=re.IGNORECASE)
    return sanitized


def _is_official(result: RawResult, official_hosts: Sequence[str]) -> bool:
    if result.origin == "crawl":
        return True
    host = extract_host(result.url)
    if not host:
        return False
    return any(host == h or host.endswith("." + h) for h in official_hosts)


def aggregate(
    batches: Iterable[Iterable[RawResult]],
    *,
    min_content_chars: int = 200,
    max_content_chars: int = 4000,
    max_sources: int = 20,
    official_domains: Sequence[str] = (),
) -> List[EvidenceSource]:
    """
    Merge per-query result batches into a deduplicated evidence set.

    - Batches are flattened in submission order; for a duplicated canonical
      URL the first occurrence wins.
    - Sources whose (stripped) content is shorter than ``min_content_chars``
      are dropped; the rest are truncated to ``max_content_chars``.
    - Pages from the official site (crawled, or hosted on one of
      ``official_domains``) are moved ahead of third-party pages, otherwise
      discovery order is kept. The result is capped at ``max_sources``.

    Must be called with fully collected batches.
    """
    official_hosts = [h for h in (extract_host(d) for d in official_domains) if h]

    seen: set[str] = set()
    kept: List[EvidenceSource] = []
    dropped_short = 0
    duplicates = 0

    for batch in batches:
        for result in batch:
            url = normalize_url(result.url)
            if not url:
                continue
            if url in seen:
                duplicates += 1
                continue
            seen.add(url)

            content = _sanitize_snippet((result.content or "").strip())
            if len(content) < min_content_chars:
                dropped_short += 1
                continue
            content = content[:max_content_chars]

            kept.append(
                EvidenceSource(
                    url=url,
                    title=(result.title or "").strip() or None,
                    content=content,
                    content_length=len(content),
                    intent=result.intent,
                    origin=result.origin,
                    official=_is_official(result, official_hosts),
                )
            )

    # sorted() is stable, so discovery order survives within each group
    ordered = sorted(kept, key=lambda s: 0 if s.official else 1)[: max(max_sources, 0)]

    logger.info(
        "Aggregated %d evidence sources (%d duplicates, %d below %d chars)",
        len(ordered),
        duplicates,
        dropped_short,
        min_content_chars,
        extra={"step": "aggregate"},
    )
    return ordered
