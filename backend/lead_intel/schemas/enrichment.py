# backend/lead_intel/schemas/enrichment.py
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

MAX_NAME_LEN = 200
MAX_WEBSITE_LEN = 2048
MAX_INSTRUCTION_LEN = 4000

# UI placeholder meaning "no country filter"
ANY_COUNTRY = "all countries"

ReportType = Literal["full", "executive", "sales", "hr"]


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class _RequestBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=_camel)

    country: str | None = None
    report_type: ReportType = "full"

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data):
        # "kind" is the union discriminator and must reach pydantic untouched
        if not isinstance(data, dict):
            return data
        cleaned = {}
        for key, value in data.items():
            if key != "kind" and isinstance(value, str):
                value = value.strip() or None
            cleaned[key] = value
        return cleaned

    @field_validator("country")
    @classmethod
    def _any_country_is_none(cls, v: str | None) -> str | None:
        if v is not None and v.lower() == ANY_COUNTRY:
            return None
        return v

    @field_validator("report_type", mode="before")
    @classmethod
    def _default_report_type(cls, v):
        return v or "full"


class PersonEnrichmentRequest(_RequestBase):
    kind: Literal["person"] = "person"
    first_name: str | None = Field(None, max_length=MAX_NAME_LEN)
    last_name: str | None = Field(None, max_length=MAX_NAME_LEN)
    company: str | None = Field(None, max_length=MAX_NAME_LEN)
    linkedin_url: str | None = Field(None, max_length=MAX_WEBSITE_LEN)
    email: str | None = Field(None, max_length=320)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def has_identifying_fields(self) -> bool:
        return bool(self.full_name or self.linkedin_url or self.email)

    @property
    def display_name(self) -> str:
        return self.full_name or self.linkedin_url or self.email or ""


class CompanyEnrichmentRequest(_RequestBase):
    kind: Literal["company"] = "company"
    company_name: str | None = Field(None, max_length=MAX_NAME_LEN)
    industry: str | None = Field(None, max_length=MAX_NAME_LEN)
    website: str | None = Field(None, max_length=MAX_WEBSITE_LEN)

    def has_identifying_fields(self) -> bool:
        return bool(self.company_name or self.website)

    @property
    def display_name(self) -> str:
        return self.company_name or self.website or ""


EnrichmentRequest = Annotated[
    Union[PersonEnrichmentRequest, CompanyEnrichmentRequest],
    Field(discriminator="kind"),
]

_request_adapter: TypeAdapter = TypeAdapter(EnrichmentRequest)


def parse_enrichment_request(payload: dict[str, Any]):
    """
    Validate a raw request payload into the person/company request model.

    The UI historically sends ``type`` instead of ``kind``; both are accepted.
    """
    data = dict(payload)
    if "kind" not in data and "type" in data:
        data["kind"] = data.pop("type")
    return _request_adapter.validate_python(data)


class ChatEditRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["chat_edit"] = Field(
        "chat_edit", validation_alias=AliasChoices("kind", "type")
    )
    current_report: dict[str, Any] | str = Field(
        validation_alias=AliasChoices("currentReport", "current_report")
    )
    instruction: str = Field(
        min_length=1,
        max_length=MAX_INSTRUCTION_LEN,
        validation_alias=AliasChoices("instruction", "editInstruction"),
    )
    entity_context: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("entityContext", "reportContext", "entity_context"),
    )


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


class _ReportModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_camel, extra="ignore")


class SourceRef(_ReportModel):
    title: str | None = None
    url: str


class EducationEntry(_ReportModel):
    degree: str | None = None
    institution: str | None = None
    field: str | None = None
    year: str | None = None
    details: str | None = None


class ExperienceEntry(_ReportModel):
    title: str | None = None
    company: str | None = None
    duration: str | None = None
    location: str | None = None
    description: str | None = None


class LeadershipMember(_ReportModel):
    name: str
    title: str | None = None
    background: str | None = None
    tenure: str | None = None
    linkedin_url: str | None = None


class BoardMember(_ReportModel):
    name: str
    title: str | None = None
    other_roles: str | None = None
    background: str | None = None


class KeyPerson(_ReportModel):
    name: str
    title: str | None = None
    department: str | None = None
    linkedin_url: str | None = None


class Shareholder(_ReportModel):
    name: str
    stake: str | None = None
    type: str | None = None


class Ownership(_ReportModel):
    type: str | None = None
    major_shareholders: list[Shareholder] | None = None
    ultimate_owner: str | None = None


class Financials(_ReportModel):
    revenue: str | None = None
    funding: str | None = None
    valuation: str | None = None
    net_income: str | None = None
    investors: list[str] | None = None


class Office(_ReportModel):
    location: str
    type: str | None = None
    address: str | None = None


class NewsItem(_ReportModel):
    headline: str
    date: str | None = None
    summary: str | None = None
    url: str | None = None


class InvestmentInterests(_ReportModel):
    sectors: list[str] | None = None
    investment_style: str | None = None
    past_investments: list[str] | None = None
    board_positions: list[str] | None = None


class SocialProfiles(_ReportModel):
    linkedin: str | None = None
    twitter: str | None = None
    website: str | None = None
    others: list[str] | None = None


class EnrichmentReport(_ReportModel):
    """
    Final, typed enrichment output.

    Every optional field is either absent or non-empty; the sanitizer
    guarantees this before the model is built.
    """

    name: str
    type: Literal["person", "company"]
    overview: str
    sources: list[SourceRef]

    # person
    title: str | None = None
    company: str | None = None
    linkedin_url: str | None = None
    email: str | None = None
    education: list[EducationEntry] | None = None
    experience: list[ExperienceEntry] | None = None
    skills: list[str] | None = None
    key_insights: list[str] | None = None
    investment_interests: InvestmentInterests | None = None

    # company
    industry: str | None = None
    website: str | None = None
    employees: str | None = None
    founded: str | None = None
    financials: Financials | None = None
    leadership: list[LeadershipMember] | None = None
    board_members: list[BoardMember] | None = None
    key_people: list[KeyPerson] | None = None
    ownership: Ownership | None = None
    offices: list[Office] | None = None
    products: list[str] | None = None
    key_clients: list[str] | None = None
    competitors: list[str] | None = None

    # shared
    location: str | None = None
    key_facts: list[str] | None = None
    recent_news: list[NewsItem] | None = None
    social_profiles: SocialProfiles | None = None
    evidence: dict[str, Any] | None = None
    schema_version: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class EnrichmentResponse(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    code: str | None = None


class ChatEditResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    updated_report: dict[str, Any] | str | None = Field(None, serialization_alias="updatedReport")
    error: str | None = None
    code: str | None = None


class EnrichmentJobOut(BaseModel):
    id: str
    status: str
    result: dict[str, Any] | None = None
