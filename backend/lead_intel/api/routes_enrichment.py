from functools import lru_cache
from typing import Any
from uuid import uuid4
import logging

from celery.result import AsyncResult
from fastapi import APIRouter, Body, Depends, HTTPException, Security
from fastapi.responses import JSONResponse
from fastapi.security.api_key import APIKeyHeader
from pydantic import ValidationError

from ..core.celery_app import ENRICHMENT_QUEUE, celery_app
from ..core.config import get_settings
from ..schemas.enrichment import ChatEditRequest, EnrichmentJobOut, parse_enrichment_request
from ..services.orchestrator import EnrichmentPipeline, build_pipeline

router = APIRouter(tags=["enrichment"])

settings = get_settings()
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
logger = logging.getLogger(__name__)

ENRICHMENT_TASK = "lead_intel.services.orchestrator.run_enrichment_job"

# Failure code -> HTTP status; the body keeps the {"success": false, ...} shape
ERROR_STATUS = {
    "invalid_request": 422,
    "insufficient_evidence": 404,
    "ungrounded_output": 422,
    "synthesis_rate_limited": 429,
    "synthesis_quota_exhausted": 402,
    "synthesis_transport": 503,
    "synthesis_provider_error": 502,
}


def verify_api_key(api_key: str | None = Security(api_key_header)) -> None:
    """
    Simple header-based API key authentication.

    - In dev, if API_AUTH_KEY is not set, auth is skipped.
    - Otherwise, require X-API-Key == API_AUTH_KEY.
    """
    expected = settings.API_AUTH_KEY

    # In dev with no configured key, skip auth for convenience
    if settings.ENV == "dev" and not expected:
        return

    if not expected:
        raise HTTPException(status_code=401, detail="API key not configured")

    if api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


@lru_cache(maxsize=1)
def get_pipeline() -> EnrichmentPipeline:
    return build_pipeline(get_settings())


def _respond(result: dict[str, Any]) -> JSONResponse:
    status = 200 if result.get("success") else ERROR_STATUS.get(result.get("code") or "", 500)
    return JSONResponse(status_code=status, content=result)


@router.post("/enrich")
async def enrich(
    payload: dict[str, Any] = Body(...),
    pipeline: EnrichmentPipeline = Depends(get_pipeline),
    _: None = Depends(verify_api_key),
):
    request_id = str(uuid4())
    logger.info(
        "Enrichment requested",
        extra={
            "request_id": request_id,
            "step": "enrich",
            "meta": {"kind": payload.get("kind") or payload.get("type")},
        },
    )
    result = await pipeline.handle(payload, run_id=request_id)
    return _respond(result)


@router.post("/enrich/chat-edit")
async def chat_edit(
    payload: dict[str, Any] = Body(...),
    pipeline: EnrichmentPipeline = Depends(get_pipeline),
    _: None = Depends(verify_api_key),
):
    data = {k: v for k, v in payload.items() if k not in ("kind", "type")}
    data["kind"] = "chat_edit"
    result = await pipeline.handle(data, run_id=str(uuid4()))
    return _respond(result)


@router.post("/enrich/jobs", response_model=EnrichmentJobOut, status_code=202)
def create_enrichment_job(
    payload: dict[str, Any] = Body(...),
    _: None = Depends(verify_api_key),
):
    # Reject malformed payloads before they reach the queue
    try:
        if (payload.get("kind") or payload.get("type")) == "chat_edit":
            ChatEditRequest.model_validate(payload)
        else:
            parse_enrichment_request(payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    result = celery_app.send_task(ENRICHMENT_TASK, args=[payload], queue=ENRICHMENT_QUEUE)
    logger.info(
        "Enrichment job queued",
        extra={"request_id": result.id, "step": "job_created"},
    )
    return EnrichmentJobOut(id=result.id, status="queued")


@router.get("/enrich/jobs/{job_id}", response_model=EnrichmentJobOut)
def get_enrichment_job(
    job_id: str,
    _: None = Depends(verify_api_key),
):
    async_result = AsyncResult(job_id, app=celery_app)
    state = (async_result.state or "PENDING").lower()
    result = async_result.result if async_result.successful() else None
    if state == "failure":
        logger.warning("Enrichment job %s failed: %s", job_id, async_result.result, extra={"request_id": job_id})
    return EnrichmentJobOut(
        id=job_id,
        status=state,
        result=result if isinstance(result, dict) else None,
    )
