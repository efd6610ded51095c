from celery import Celery

from .config import get_settings
from .logging import configure_logging

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

ENRICHMENT_QUEUE = "enrichment"

celery_app = Celery(
    "lead_intel",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_BROKER_URL,
)

celery_app.conf.update(
    task_routes={"lead_intel.services.orchestrator.run_enrichment_job": {"queue": ENRICHMENT_QUEUE}},
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # One long-running enrichment per worker slot; a crashed worker re-queues its job.
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_time_limit=settings.ENRICHMENT_JOB_TIME_LIMIT_SECONDS,
    result_expires=settings.ENRICHMENT_RESULT_TTL_SECONDS,
    imports=("lead_intel.services.orchestrator",),
)
