from __future__ import annotations


class EnrichmentError(Exception):
    """Base class for failures that end an enrichment run."""

    code = "enrichment_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(EnrichmentError):
    """The request carries no identifying field to search for."""

    code = "invalid_request"


class InsufficientEvidence(EnrichmentError):
    code = "insufficient_evidence"


class UngroundedOutput(EnrichmentError):
    """The synthesized report has no overview or no evidence trail."""

    code = "ungrounded_output"


class SynthesisProviderError(EnrichmentError):
    """
    The LLM provider call failed.

    ``kind`` is one of ``rate_limited``, ``quota_exhausted``, ``transport`` or
    ``provider_error`` so callers can show a stable reason without parsing
    provider messages.
    """

    KINDS = ("rate_limited", "quota_exhausted", "transport", "provider_error")

    def __init__(self, kind: str, message: str, status_code: int | None = None) -> None:
        if kind not in self.KINDS:
            kind = "provider_error"
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"synthesis_{self.kind}"
