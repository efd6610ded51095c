"""
Tests for the enrichment HTTP routes.
"""
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from lead_intel.api import routes_enrichment
from lead_intel.api.routes_enrichment import get_pipeline
from lead_intel.core.config import Settings
from lead_intel.main import app, cors_origins
from lead_intel.services.errors import SynthesisProviderError
from lead_intel.services.orchestrator import EnrichmentPipeline
from lead_intel.services.retrieval import RetrievalExecutor, RetrievalLimits
from lead_intel.services.synthesis import SynthesisClient

from tests.fixtures.enrichment_fixtures import (
    ACME_CRAWL_PAGES,
    ACME_SEARCH_HITS,
    FakeCompletion,
    FakeCrawl,
    FakeSearch,
    acme_llm_text,
)


def _pipeline(search=None, completion=None) -> EnrichmentPipeline:
    executor = RetrievalExecutor(
        search or FakeSearch(default=ACME_SEARCH_HITS),
        crawl_provider=FakeCrawl(ACME_CRAWL_PAGES),
        limits=RetrievalLimits(timeout_seconds=5, timeout_retries=0),
    )
    return EnrichmentPipeline(executor, SynthesisClient(completion or FakeCompletion(text=acme_llm_text())))


@pytest.fixture
def client():
    _use_pipeline(_pipeline())
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use_pipeline(pipeline: EnrichmentPipeline) -> None:
    app.dependency_overrides[get_pipeline] = lambda: pipeline


class TestEnrich:
    """Tests for POST /api/enrich."""

    def test_company_enrichment(self, client):
        resp = client.post(
            "/api/enrich",
            json={"type": "company", "companyName": "Acme Robotics", "website": "acme-robotics.com"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert {m["name"] for m in body["data"]["leadership"]} == {"Jane Mercer", "Tom Alvarez"}
        assert body["data"]["schemaVersion"] == "1"

    def test_insufficient_evidence_is_404(self, client):
        _use_pipeline(_pipeline(search=FakeSearch()))
        resp = client.post("/api/enrich", json={"kind": "company", "companyName": "Nobody Corp"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "insufficient_evidence"

    def test_invalid_request_is_422(self, client):
        resp = client.post("/api/enrich", json={"kind": "person"})
        assert resp.status_code == 422
        assert resp.json() == {
            "success": False,
            "error": "Provide at least a name, website, profile URL or email to enrich.",
            "code": "invalid_request",
        }

    @pytest.mark.parametrize(
        "kind,status",
        [("rate_limited", 429), ("quota_exhausted", 402), ("transport", 503), ("provider_error", 502)],
    )
    def test_provider_errors_map_to_status(self, client, kind, status):
        error = SynthesisProviderError(kind, "LLM failure")
        _use_pipeline(_pipeline(completion=FakeCompletion(error=error)))
        resp = client.post("/api/enrich", json={"kind": "company", "companyName": "Acme Robotics"})
        assert resp.status_code == status
        assert resp.json()["code"] == f"synthesis_{kind}"


class TestChatEdit:
    """Tests for POST /api/enrich/chat-edit."""

    def test_chat_edit_returns_updated_report(self, client):
        _use_pipeline(_pipeline(completion=FakeCompletion(text="A shorter report.")))
        resp = client.post(
            "/api/enrich/chat-edit",
            json={"currentReport": "A long report.", "instruction": "Shorten it", "type": "company"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "updatedReport": "A shorter report."}

    def test_missing_instruction_is_422(self, client):
        resp = client.post("/api/enrich/chat-edit", json={"currentReport": "A long report."})
        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_request"


class TestJobs:
    """Tests for the Celery-backed job routes."""

    def test_create_job_queues_task(self, client):
        sent = MagicMock()
        sent.id = "job-123"
        payload = {"kind": "company", "companyName": "Acme Robotics"}
        with patch.object(routes_enrichment.celery_app, "send_task", return_value=sent) as send_task:
            resp = client.post("/api/enrich/jobs", json=payload)
        assert resp.status_code == 202
        assert resp.json() == {"id": "job-123", "status": "queued", "result": None}
        send_task.assert_called_once_with(routes_enrichment.ENRICHMENT_TASK, args=[payload], queue="enrichment")

    def test_create_job_rejects_invalid_payload(self, client):
        with patch.object(routes_enrichment.celery_app, "send_task") as send_task:
            resp = client.post("/api/enrich/jobs", json={"kind": "alien"})
        assert resp.status_code == 422
        send_task.assert_not_called()

    def test_get_job_success(self, client):
        fake = MagicMock()
        fake.state = "SUCCESS"
        fake.successful.return_value = True
        fake.result = {"success": True, "data": {"name": "Acme Robotics"}}
        with patch("lead_intel.api.routes_enrichment.AsyncResult", return_value=fake):
            resp = client.get("/api/enrich/jobs/job-123")
        assert resp.status_code == 200
        assert resp.json() == {"id": "job-123", "status": "success", "result": fake.result}

    def test_get_job_pending(self, client):
        fake = MagicMock()
        fake.state = "PENDING"
        fake.successful.return_value = False
        with patch("lead_intel.api.routes_enrichment.AsyncResult", return_value=fake):
            resp = client.get("/api/enrich/jobs/job-123")
        assert resp.json() == {"id": "job-123", "status": "pending", "result": None}


class TestApiKey:
    """Tests for X-API-Key authentication."""

    def test_key_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(
            routes_enrichment, "settings", Settings(_env_file=None, ENV="prod", API_AUTH_KEY="secret")
        )
        resp = client.post("/api/enrich", json={"kind": "company", "companyName": "Acme Robotics"})
        assert resp.status_code == 401

        resp = client.post(
            "/api/enrich",
            json={"kind": "company", "companyName": "Acme Robotics"},
            headers={"X-API-Key": "secret"},
        )
        assert resp.status_code == 200

    def test_prod_without_key_is_rejected(self, client, monkeypatch):
        monkeypatch.setattr(routes_enrichment, "settings", Settings(_env_file=None, ENV="prod"))
        resp = client.get("/api/enrich/jobs/job-123")
        assert resp.status_code == 401


class TestAppSetup:
    """Tests for CORS policy and the health route."""

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_prod_requires_frontend_origin(self):
        with pytest.raises(RuntimeError):
            cors_origins(Settings(_env_file=None, ENV="prod", FRONTEND_ORIGIN=None))

    def test_prod_uses_configured_origins(self):
        settings = Settings(_env_file=None, ENV="prod", FRONTEND_ORIGIN="https://a.io, https://b.io")
        assert cors_origins(settings) == ["https://a.io", "https://b.io"]

    def test_dev_defaults_to_wildcard(self):
        assert cors_origins(Settings(_env_file=None, ENV="dev", FRONTEND_ORIGIN=None)) == ["*"]
        settings = Settings(_env_file=None, ENV="dev", FRONTEND_ORIGIN="https://a.io", CORS_ALLOW_ALL_ORIGINS=True)
        assert cors_origins(settings) == ["*"]
