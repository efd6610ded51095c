"""
Tests for the query planner in planner.py and the request models it consumes.
"""
import pytest
from pydantic import ValidationError

from lead_intel.schemas.enrichment import (
    CompanyEnrichmentRequest,
    PersonEnrichmentRequest,
    parse_enrichment_request,
)
from lead_intel.services.errors import InvalidRequest
from lead_intel.services.planner import person_subject, plan_queries
from lead_intel.services.types import QueryIntent


class TestRequestParsing:
    """Tests for request payload normalisation."""

    def test_type_is_accepted_as_kind(self):
        """UI payloads send `type`; it selects the person/company model."""
        req = parse_enrichment_request({"type": "company", "companyName": "Acme Robotics"})
        assert isinstance(req, CompanyEnrichmentRequest)
        assert req.company_name == "Acme Robotics"

    def test_blank_strings_become_none(self):
        req = parse_enrichment_request({"kind": "person", "firstName": "  ", "lastName": "Doe", "email": ""})
        assert req.first_name is None
        assert req.email is None
        assert req.full_name == "Doe"

    def test_discriminated_union_builds_and_strips_values(self):
        """Blank-stripping must not touch `kind`, which selects the model."""
        req = parse_enrichment_request({"kind": "company", "companyName": "  Acme Robotics ", "website": " "})
        assert isinstance(req, CompanyEnrichmentRequest)
        assert req.company_name == "Acme Robotics"
        assert req.website is None
        person = PersonEnrichmentRequest(first_name=" Jane ", last_name="")
        assert person.first_name == "Jane"
        assert person.last_name is None

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_enrichment_request({"kind": " ", "companyName": "Acme"})

    def test_all_countries_means_no_country(self):
        req = parse_enrichment_request({"kind": "company", "companyName": "Acme", "country": "All Countries"})
        assert req.country is None

    def test_report_type_defaults_to_full(self):
        req = parse_enrichment_request({"kind": "company", "companyName": "Acme", "reportType": ""})
        assert req.report_type == "full"

    def test_unknown_report_type_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_enrichment_request({"kind": "company", "companyName": "Acme", "reportType": "poem"})

    def test_requests_are_immutable(self):
        req = CompanyEnrichmentRequest(company_name="Acme")
        with pytest.raises(ValidationError):
            req.company_name = "Other"


class TestPersonPlan:
    """Tests for person query plans."""

    def test_person_plan_is_capped_and_non_empty(self):
        req = PersonEnrichmentRequest(
            first_name="Jane",
            last_name="Doe",
            company="Acme",
            country="Germany",
            linkedin_url="https://www.linkedin.com/in/jane-doe-42a1b3/",
            email="jane@acme.com",
        )
        plan = plan_queries(req)
        assert 0 < len(plan) <= 6
        assert plan[0].intent == QueryIntent.OVERVIEW
        assert '"Jane Doe"' in plan[0].text
        assert "Acme" in plan[0].text and "Germany" in plan[0].text

    def test_direct_lookup_is_appended(self):
        req = PersonEnrichmentRequest(first_name="Jane", last_name="Doe", email="jane@acme.com")
        plan = plan_queries(req)
        assert plan[-1].intent == QueryIntent.DIRECT_LOOKUP
        assert plan[-1].text == '"jane@acme.com"'

    def test_subject_falls_back_to_profile_handle(self):
        req = PersonEnrichmentRequest(linkedin_url="https://www.linkedin.com/in/jane-doe-42a1b3/")
        assert person_subject(req) == "jane doe"

    def test_subject_falls_back_to_email_local_part(self):
        req = PersonEnrichmentRequest(email="jane.doe@acme.com")
        assert person_subject(req) == "jane doe"

    def test_no_identifying_fields_is_rejected(self):
        req = PersonEnrichmentRequest(company="Acme", country="France")
        with pytest.raises(InvalidRequest):
            plan_queries(req)


class TestCompanyPlan:
    """Tests for company query plans."""

    def test_official_site_query_comes_first(self):
        req = CompanyEnrichmentRequest(company_name="Acme Robotics", website="https://www.acme-robotics.com/")
        plan = plan_queries(req)
        assert plan[0].intent == QueryIntent.OFFICIAL_SITE
        assert plan[0].text.startswith("site:acme-robotics.com")

    def test_company_plan_covers_core_intents(self):
        req = CompanyEnrichmentRequest(company_name="Acme Robotics")
        intents = [q.intent for q in plan_queries(req)]
        for intent in (
            QueryIntent.OVERVIEW,
            QueryIntent.FINANCIALS,
            QueryIntent.LEADERSHIP,
            QueryIntent.BOARD,
            QueryIntent.OWNERSHIP,
            QueryIntent.NEWS,
            QueryIntent.SOCIAL,
        ):
            assert intent in intents

    def test_industry_and_country_queries_are_optional(self):
        base = plan_queries(CompanyEnrichmentRequest(company_name="Acme"))
        scoped = plan_queries(CompanyEnrichmentRequest(company_name="Acme", industry="Robotics", country="Japan"))
        assert len(scoped) == len(base) + 2
        assert scoped[-2].intent == QueryIntent.INDUSTRY
        assert scoped[-1].intent == QueryIntent.LOCATION

    def test_truncation_keeps_identity_queries(self):
        req = CompanyEnrichmentRequest(company_name="Acme", industry="Robotics", country="Japan")
        plan = plan_queries(req, company_cap=3)
        assert [q.intent for q in plan] == [
            QueryIntent.OFFICIAL_SITE,
            QueryIntent.OVERVIEW,
            QueryIntent.FINANCIALS,
        ]

    def test_plan_is_deterministic(self):
        req = CompanyEnrichmentRequest(company_name="Acme", industry="Robotics")
        assert plan_queries(req) == plan_queries(req)

    def test_website_only_request_is_valid(self):
        plan = plan_queries(CompanyEnrichmentRequest(website="acme-robotics.com"))
        assert plan
        assert '"acme-robotics.com"' in plan[1].text
