"""
Tests for the grounded synthesis client and LLM error mapping.
"""
import asyncio
import json
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from lead_intel.schemas.enrichment import CompanyEnrichmentRequest, PersonEnrichmentRequest
from lead_intel.services.errors import SynthesisProviderError
from lead_intel.services.llm import OpenAICompletionProvider, map_provider_error
from lead_intel.services.synthesis import SynthesisClient, _parse_json
from lead_intel.services.types import SocialProfileSet

from tests.fixtures.enrichment_fixtures import FakeCompletion, make_source


def _status_error(status: int, body=None):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request, json=body or {})
    return openai.APIStatusError("error", response=response, body=body)


EVIDENCE = [make_source(f"https://acme.com/page{i}", title=f"Page {i}") for i in range(8)]
COMPANY = CompanyEnrichmentRequest(company_name="Acme Robotics", website="acme-robotics.com")


class TestParseJson:
    """Tests for tolerant JSON parsing of model output."""

    def test_plain_json(self):
        assert _parse_json('{"name": "Acme"}') == {"name": "Acme"}

    def test_fenced_json(self):
        assert _parse_json('Here you go:\n```json\n{"name": "Acme"}\n```') == {"name": "Acme"}

    def test_json_with_surrounding_prose(self):
        assert _parse_json('Sure! {"name": "Acme"} Hope this helps.') == {"name": "Acme"}

    def test_invalid_and_non_object(self):
        assert _parse_json("not json at all") is None
        assert _parse_json("[1, 2]") is None
        assert _parse_json("") is None


class TestSynthesize:
    """Tests for SynthesisClient.synthesize()."""

    def test_single_completion_with_schema_and_grounding_rule(self):
        provider = FakeCompletion(text='{"name": "Acme Robotics", "overview": "Robots."}')
        client = SynthesisClient(provider, max_tokens=1000, temperature=0.1)
        profile = asyncio.run(client.synthesize(COMPANY, EVIDENCE))

        assert len(provider.calls) == 1
        call = provider.calls[0]
        assert '"boardMembers"' in call["system"]
        assert "Do NOT introduce facts" in call["system"]
        assert "https://acme.com/page0" in call["user"]
        assert call["max_tokens"] == 1000 and call["temperature"] == 0.1
        assert profile.data["overview"] == "Robots."
        assert not profile.parse_failed

    def test_person_prompt_uses_person_schema_and_profiles(self):
        provider = FakeCompletion(text="{}")
        client = SynthesisClient(provider)
        person = PersonEnrichmentRequest(first_name="Jane", last_name="Doe")
        profiles = SocialProfileSet(linkedin="https://www.linkedin.com/in/jane-doe")
        asyncio.run(client.synthesize(person, EVIDENCE, profiles))
        call = provider.calls[0]
        assert '"education"' in call["system"]
        assert "https://www.linkedin.com/in/jane-doe" in call["user"]

    @pytest.mark.parametrize("report_type,marker", [("sales", "buying signals"), ("hr", "career history"), ("executive", "Executive brief")])
    def test_report_intent_changes_emphasis(self, report_type, marker):
        provider = FakeCompletion(text="{}")
        request = CompanyEnrichmentRequest(company_name="Acme", report_type=report_type)
        asyncio.run(SynthesisClient(provider).synthesize(request, EVIDENCE))
        assert marker in provider.calls[0]["system"]

    def test_evidence_is_truncated_to_prompt_budget(self):
        provider = FakeCompletion(text="{}")
        client = SynthesisClient(provider, max_prompt_chars=1500)
        profile = asyncio.run(client.synthesize(COMPANY, EVIDENCE))
        assert len(profile.evidence) < len(EVIDENCE)
        assert "https://acme.com/page7" not in provider.calls[0]["user"]

    def test_malformed_json_falls_back_to_raw_text(self):
        raw = "Acme Robotics is a robotics company (could not format as JSON)."
        client = SynthesisClient(FakeCompletion(text=raw))
        profile = asyncio.run(client.synthesize(COMPANY, EVIDENCE))
        assert profile.parse_failed
        assert profile.data["overview"] == raw
        assert len(profile.data["sources"]) == 5
        assert profile.data["sources"][0]["url"] == "https://acme.com/page0"

    def test_provider_error_propagates(self):
        error = SynthesisProviderError("rate_limited", "slow down", 429)
        client = SynthesisClient(FakeCompletion(error=error))
        with pytest.raises(SynthesisProviderError) as exc:
            asyncio.run(client.synthesize(COMPANY, EVIDENCE))
        assert exc.value.code == "synthesis_rate_limited"

    def test_unexpected_error_maps_to_provider_error(self):
        client = SynthesisClient(FakeCompletion(error=RuntimeError("boom")))
        with pytest.raises(SynthesisProviderError) as exc:
            asyncio.run(client.synthesize(COMPANY, EVIDENCE))
        assert exc.value.kind == "provider_error"


class TestEdit:
    """Tests for SynthesisClient.edit()."""

    CURRENT = {
        "name": "Acme Robotics",
        "overview": "Acme builds robots. CEO Jane Mercer.",
        "leadership": [{"name": "Jane Mercer", "title": "CEO"}],
        "sources": [{"title": "About", "url": "https://acme.com/about"}],
    }

    def test_edit_cannot_add_people_or_sources(self):
        edited = {
            "name": "Acme Robotics",
            "overview": "Acme builds robots.",
            "leadership": [{"name": "Jane Mercer", "title": "CEO"}, {"name": "New Person", "title": "CFO"}],
            "sources": [{"url": "https://acme.com/about"}, {"url": "https://invented.io"}],
        }
        client = SynthesisClient(FakeCompletion(text=json.dumps(edited)))
        result = asyncio.run(client.edit(self.CURRENT, "Shorten the overview", {"name": "Acme Robotics"}))
        assert [p["name"] for p in result["leadership"]] == ["Jane Mercer"]
        assert result["sources"] == [{"url": "https://acme.com/about"}]

    def test_edit_keeps_original_sources_when_model_drops_them(self):
        client = SynthesisClient(FakeCompletion(text='{"name": "Acme Robotics", "overview": "Short."}'))
        result = asyncio.run(client.edit(json.dumps(self.CURRENT), "Shorten"))
        assert result["sources"] == self.CURRENT["sources"]

    def test_edit_prompt_carries_no_new_facts_rule(self):
        provider = FakeCompletion(text="{}")
        asyncio.run(SynthesisClient(provider).edit(self.CURRENT, "Make it formal"))
        assert "must NOT add any fact" in provider.calls[0]["system"]
        assert "Make it formal" in provider.calls[0]["user"]

    def test_plain_text_report_gets_plain_text_back(self):
        client = SynthesisClient(FakeCompletion(text="  A shorter summary.  "))
        assert asyncio.run(client.edit("Some markdown report", "Shorten")) == "A shorter summary."


class TestErrorMapping:
    """Tests for map_provider_error() and OpenAICompletionProvider."""

    def test_429_is_rate_limited(self):
        assert map_provider_error(_status_error(429)).kind == "rate_limited"

    def test_402_is_quota_exhausted(self):
        err = map_provider_error(_status_error(402))
        assert err.kind == "quota_exhausted"
        assert err.status_code == 402

    def test_insufficient_quota_429_is_quota_exhausted(self):
        body = {"code": "insufficient_quota", "message": "You exceeded your current quota"}
        assert map_provider_error(_status_error(429, body)).kind == "quota_exhausted"

    def test_500_is_provider_error(self):
        assert map_provider_error(_status_error(500)).code == "synthesis_provider_error"

    def test_connection_error_is_transport(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        err = map_provider_error(openai.APIConnectionError(request=request))
        assert err.kind == "transport"

    def test_provider_raises_mapped_error(self):
        client = MagicMock()

        async def _create(**kwargs):
            raise _status_error(429)

        client.chat.completions.create = _create
        provider = OpenAICompletionProvider(client, "gpt-4o")
        with pytest.raises(SynthesisProviderError) as exc:
            asyncio.run(provider.complete("sys", "user", 100, 0.0))
        assert exc.value.kind == "rate_limited"

    def test_provider_returns_message_content(self):
        client = MagicMock()
        captured = {}

        async def _create(**kwargs):
            captured.update(kwargs)
            choice = MagicMock()
            choice.message.content = '{"ok": true}'
            resp = MagicMock()
            resp.choices = [choice]
            return resp

        client.chat.completions.create = _create
        provider = OpenAICompletionProvider(client, "gpt-4o")
        text = asyncio.run(provider.complete("sys", "user", 100, 0.3))
        assert text == '{"ok": true}'
        assert captured["model"] == "gpt-4o"
        assert captured["messages"][0] == {"role": "system", "content": "sys"}
