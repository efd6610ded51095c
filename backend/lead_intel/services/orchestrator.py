from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from ..core.celery_app import ENRICHMENT_QUEUE, celery_app
from ..core.config import Settings, get_settings
from ..schemas.enrichment import (
    ChatEditRequest,
    ChatEditResponse,
    CompanyEnrichmentRequest,
    EnrichmentReport,
    EnrichmentResponse,
    PersonEnrichmentRequest,
    parse_enrichment_request,
)
from .connectors import build_providers
from .entity_resolution import resolve_profiles, validate_domain
from .errors import EnrichmentError, InsufficientEvidence, InvalidRequest
from .evidence import aggregate
from .llm import OpenAICompletionProvider, build_llm_client
from .planner import person_subject, plan_queries
from .retrieval import RetrievalExecutor, RetrievalLimits, collect_links
from .sanitizer import sanitize
from .synthesis import SynthesisClient
from .tracing import trace_run_step
from .types import RawResult
from .urls import extract_host, normalize_url

logger = logging.getLogger(__name__)

Request = Union[PersonEnrichmentRequest, CompanyEnrichmentRequest]


@dataclass(frozen=True)
class PipelineLimits:
    person_query_cap: int = 6
    company_query_cap: int = 10
    crawl_max_pages: int = 5
    crawl_max_depth: int = 1
    min_content_chars: int = 200
    max_content_chars: int = 4000
    max_sources: int = 20
    min_company_sources: int = 2
    domain_threshold: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineLimits":
        return cls(
            person_query_cap=settings.PERSON_QUERY_CAP,
            company_query_cap=settings.COMPANY_QUERY_CAP,
            crawl_max_pages=settings.CRAWL_MAX_PAGES,
            crawl_max_depth=settings.CRAWL_MAX_DEPTH,
            min_content_chars=settings.MIN_SOURCE_CONTENT_CHARS,
            max_content_chars=settings.MAX_SOURCE_CONTENT_CHARS,
            max_sources=settings.MAX_EVIDENCE_SOURCES,
            min_company_sources=settings.MIN_COMPANY_SOURCES,
            domain_threshold=settings.DOMAIN_VALIDITY_THRESHOLD,
        )


def _entity_name(request: Request) -> str:
    if isinstance(request, PersonEnrichmentRequest):
        return person_subject(request)
    return request.company_name or extract_host(request.website) or ""


def _error_payload(e: EnrichmentError) -> Dict[str, Any]:
    return {"success": False, "error": e.message, "code": e.code}


def _validation_message(e: ValidationError) -> str:
    first = (e.errors() or [{}])[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p is not None)
    msg = first.get("msg", "invalid payload")
    return f"Invalid request: {loc}: {msg}" if loc else f"Invalid request: {msg}"


class EnrichmentPipeline:
    """
    Planner -> Executor -> Aggregator -> Resolver -> Synthesis -> Sanitizer.

    Only the executor performs retrieval I/O and only the synthesis client
    talks to the LLM; both are injected so the pipeline never reads process
    configuration itself.
    """

    def __init__(
        self,
        executor: RetrievalExecutor,
        synthesis: SynthesisClient,
        *,
        limits: PipelineLimits = PipelineLimits(),
    ) -> None:
        self.executor = executor
        self.synthesis = synthesis
        self.limits = limits

    async def _collect(
        self,
        request: Request,
        entity_name: str,
        official_site: Optional[str],
        run_id: str,
    ) -> List[List[RawResult]]:
        queries = plan_queries(
            request,
            person_cap=self.limits.person_query_cap,
            company_cap=self.limits.company_query_cap,
        )
        trace_run_step(
            run_id,
            phase="PLANNING",
            step="plan:done",
            label="Search plan created",
            detail=f"{len(queries)} queries scheduled.",
            meta={"intents": [q.intent.value for q in queries]},
        )

        limits = replace(self.executor.limits, country=request.country)
        trace_run_step(
            run_id,
            phase="COLLECTION",
            step="retrieval:start",
            label="Collecting sources from the web",
            detail="Running search queries" + (" and official site crawl" if official_site else ""),
        )

        if official_site:
            batches, crawled = await asyncio.gather(
                self.executor.execute(queries, limits, run_id=run_id),
                self.executor.crawl(
                    official_site,
                    entity_name,
                    self.limits.crawl_max_pages,
                    self.limits.crawl_max_depth,
                    limits=limits,
                    run_id=run_id,
                ),
            )
            # Official pages first so they win deduplication
            batches = [crawled] + batches
        else:
            batches = await self.executor.execute(queries, limits, run_id=run_id)

        trace_run_step(
            run_id,
            phase="COLLECTION",
            step="retrieval:done",
            label="Finished collecting raw sources",
            meta={"raw_results": sum(len(b) for b in batches)},
        )
        return batches

    async def run(self, request: Request, *, run_id: Optional[str] = None) -> EnrichmentReport:
        run_id = run_id or str(uuid4())
        if not request.has_identifying_fields():
            raise InvalidRequest("Provide at least a name, website, profile URL or email to enrich.")

        entity_name = _entity_name(request)
        logger.info(
            "Starting %s enrichment for %s",
            request.kind,
            entity_name,
            extra={"run_id": run_id, "step": "start"},
        )

        official_site: Optional[str] = None
        if isinstance(request, CompanyEnrichmentRequest) and request.website:
            website = normalize_url(request.website)
            validation = validate_domain(entity_name, website or "", self.limits.domain_threshold)
            trace_run_step(
                run_id,
                phase="RESOLUTION",
                step="validate_website",
                label="Checked supplied website",
                meta={
                    "website": website,
                    "is_valid": validation.is_valid,
                    "confidence": validation.confidence,
                    "expected_domains": validation.expected_domains,
                },
            )
            if validation.is_valid:
                official_site = website
            else:
                logger.warning(
                    "Supplied website %s does not look like %s (confidence %.2f); not crawling it",
                    request.website,
                    entity_name,
                    validation.confidence,
                    extra={"run_id": run_id, "step": "validate_website"},
                )

        batches = await self._collect(request, entity_name, official_site, run_id)

        evidence = aggregate(
            batches,
            min_content_chars=self.limits.min_content_chars,
            max_content_chars=self.limits.max_content_chars,
            max_sources=self.limits.max_sources,
            official_domains=[extract_host(official_site) or ""] if official_site else (),
        )
        trace_run_step(
            run_id,
            phase="AGGREGATION",
            step="aggregate:done",
            label="Evidence set assembled",
            detail=f"{len(evidence)} usable sources.",
            meta={"official": sum(1 for s in evidence if s.official)},
        )

        if not evidence:
            raise InsufficientEvidence(f"No usable sources found for {entity_name}.")
        if request.kind == "company" and len(evidence) < self.limits.min_company_sources:
            raise InsufficientEvidence(
                f"Only {len(evidence)} usable source(s) found for {entity_name}; "
                f"at least {self.limits.min_company_sources} are required."
            )
        if request.kind == "person" and len(evidence) < self.limits.min_company_sources:
            logger.warning(
                "Thin evidence for %s (%d source(s)); report will be sparse",
                entity_name,
                len(evidence),
                extra={"run_id": run_id, "step": "aggregate"},
            )

        direct_links = [request.linkedin_url] if isinstance(request, PersonEnrichmentRequest) and request.linkedin_url else []
        profiles = resolve_profiles(
            entity_name,
            request.kind,
            evidence,
            link_sets=[direct_links, collect_links(batches)],
            website_hint=official_site,
            threshold=self.limits.domain_threshold,
        )
        trace_run_step(
            run_id,
            phase="RESOLUTION",
            step="profiles:done",
            label="Resolved social and official profiles",
            meta=profiles.as_dict(),
        )

        trace_run_step(
            run_id,
            phase="SYNTHESIS",
            step="synthesis:start",
            label="Drafting grounded report",
        )
        synthesized = await self.synthesis.synthesize(
            request, evidence, profiles, entity_name=entity_name, run_id=run_id
        )
        report = sanitize(synthesized)
        trace_run_step(
            run_id,
            phase="DONE",
            step="report:done",
            label="Enrichment report ready",
            meta={"sources": len(report.sources), "parse_failed": synthesized.parse_failed},
        )
        return report

    async def chat_edit(self, request: ChatEditRequest) -> Union[Dict[str, Any], str]:
        return await self.synthesis.edit(
            request.current_report, request.instruction, request.entity_context
        )

    async def handle(self, payload: Dict[str, Any], *, run_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Produced interface: request dict in, ``{"success", ...}`` dict out.

        Enrichment failures come back as ``{"success": False, "error", "code"}``;
        anything else propagates.
        """
        run_id = run_id or str(uuid4())
        kind = payload.get("kind") or payload.get("type")
        try:
            if kind == "chat_edit":
                edit_request = ChatEditRequest.model_validate(payload)
                updated = await self.chat_edit(edit_request)
                return ChatEditResponse(success=True, updated_report=updated).model_dump(
                    by_alias=True, exclude_none=True
                )

            request = parse_enrichment_request(payload)
            report = await self.run(request, run_id=run_id)
            return EnrichmentResponse(success=True, data=report.to_payload()).model_dump(
                exclude_none=True
            )
        except ValidationError as e:
            logger.info("Rejected invalid request: %s", e, extra={"run_id": run_id, "step": "validate"})
            return {"success": False, "error": _validation_message(e), "code": InvalidRequest.code}
        except EnrichmentError as e:
            logger.warning(
                "Enrichment failed (%s): %s",
                e.code,
                e.message,
                extra={"run_id": run_id, "step": "failed"},
            )
            return _error_payload(e)


def build_pipeline(settings: Settings) -> EnrichmentPipeline:
    """Wire providers, executor and synthesis client from explicit settings."""
    search, scrape, map_provider = build_providers(settings)
    executor = RetrievalExecutor(
        search,
        scrape,
        map_provider,
        limits=RetrievalLimits(
            max_results=settings.SEARCH_MAX_RESULTS,
            timeout_seconds=settings.RETRIEVAL_TIMEOUT_SECONDS,
            max_concurrency=settings.RETRIEVAL_MAX_CONCURRENCY,
        ),
        min_words=settings.CRAWL_MIN_WORDS,
    )
    provider = OpenAICompletionProvider(
        build_llm_client(settings),
        settings.LLM_MODEL,
        max_concurrency=settings.LLM_MAX_CONCURRENCY,
    )
    synthesis = SynthesisClient(
        provider,
        max_tokens=settings.LLM_MAX_TOKENS,
        temperature=settings.LLM_TEMPERATURE,
        max_prompt_chars=settings.MAX_PROMPT_EVIDENCE_CHARS,
    )
    return EnrichmentPipeline(executor, synthesis, limits=PipelineLimits.from_settings(settings))


@celery_app.task(name="lead_intel.services.orchestrator.run_enrichment_job", bind=True, queue=ENRICHMENT_QUEUE)
def run_enrichment_job(self, payload: dict) -> dict:
    run_id = self.request.id or str(uuid4())
    trace_run_step(
        run_id,
        phase="INIT",
        step="job_received",
        label="Job received by enrichment worker",
        meta={"kind": payload.get("kind") or payload.get("type")},
    )
    try:
        pipeline = build_pipeline(get_settings())
        return asyncio.run(pipeline.handle(payload, run_id=run_id))
    except Exception:
        logger.exception(
            "Enrichment job failed",
            extra={"run_id": run_id, "step": "failed"},
        )
        raise
