# backend/lead_intel/services/tracing.py
from __future__ import annotations

from typing import Any
import logging

logger = logging.getLogger("lead_intel.trace")


def trace_run_step(
    run_id: str | None,
    *,
    phase: str,
    step: str | None = None,
    label: str,
    detail: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """
    Best-effort trace of a pipeline stage transition.

    Trace events are emitted as structured log records so callers can follow a
    single enrichment run end-to-end. Failure must NEVER break the run.
    """
    try:
        logger.info(
            "%s%s",
            label,
            f" - {detail}" if detail else "",
            extra={
                "run_id": run_id,
                "phase": phase,
                "step": step,
                "meta": meta or {},
            },
        )
    except Exception:
        logger.debug("Failed to emit trace event", exc_info=True)
