"""
RFP Discovery Schemas

Data models for listings extracted from procurement pages, AI relevance
scores, and fields extracted from uploaded RFP documents.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _lenient_decimal(value) -> Optional[Decimal]:
    """Numbers as models write them: 1500000, "$1,500,000", "15%". Anything else is unknown."""
    value = _blank_to_none(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace("$", "").replace(",", "").rstrip("%").strip()
    try:
        number = Decimal(str(value))
    except (ArithmeticError, ValueError):
        return None
    return number if number.is_finite() else None


class RfpListing(BaseModel):
    """One opportunity found on a scraped procurement page."""
    title: str = Field(..., min_length=1, description="The RFP title")
    rfp_number: Optional[str] = Field(default=None, description="Solicitation number if visible")
    issuing_agency: Optional[str] = Field(default=None, description="The issuing agency")
    due_date: Optional[date] = Field(default=None, description="Due date (YYYY-MM-DD)")
    url: Optional[str] = Field(default=None, description="Link to the RFP detail page")
    pdf_url: Optional[str] = Field(default=None, description="Direct link to the PDF")

    @field_validator("rfp_number", "issuing_agency", "url", "pdf_url", mode="before")
    @classmethod
    def blank_strings(cls, value):
        return _blank_to_none(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def lenient_date(cls, value):
        """Unparseable dates are dropped rather than failing the listing."""
        value = _blank_to_none(value)
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return None
        return value


class RfpScore(BaseModel):
    """AI relevance assessment for a listing."""
    relevance_score: int = Field(default=50, ge=0, le=100, description="0-100 relevance score")
    relevance_reason: str = Field(default="", description="Brief explanation")
    service_tags: list[str] = Field(
        default_factory=list,
        description="Matching service tags like dob_expediting, fdny, consulting, energy, zoning"
    )
    estimated_value: Optional[Decimal] = Field(
        default=None,
        description="Estimated contract value if determinable"
    )

    @field_validator("relevance_score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        if value is None:
            return 50
        return max(0, min(100, int(round(float(value)))))

    @field_validator("estimated_value", mode="before")
    @classmethod
    def zero_value_is_unknown(cls, value):
        return value or None


DEFAULT_SCORE = RfpScore(
    relevance_score=50,
    relevance_reason="Default score - AI scoring unavailable"
)


class KeyDate(BaseModel):
    label: str = Field(..., description="Milestone, e.g. pre-bid conference or Q&A deadline")
    date: Optional[str] = Field(default=None, description="Date as written (YYYY-MM-DD preferred)")


class ExtractedRfp(BaseModel):
    """
    Structured fields extracted from an uploaded RFP document.

    Every field is optional and off-type values degrade to None, so one odd
    field never costs the rest of the extraction. Keys the model adds
    beyond these are kept.
    """
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = Field(default=None, description="RFP title")
    rfp_number: Optional[str] = Field(default=None, description="Solicitation number")
    agency: Optional[str] = Field(default=None, description="Issuing agency")
    due_date: Optional[date] = Field(default=None, description="Submission deadline")
    contract_value: Optional[Decimal] = Field(default=None, description="Estimated contract value")
    contract_value_source: Optional[str] = Field(
        default=None,
        description="\"stated\" or \"estimated\""
    )
    mwbe_goal_min: Optional[float] = Field(default=None, description="Minimum M/WBE participation goal (%)")
    submission_method: Optional[str] = Field(default=None, description="How proposals are submitted")
    scope_summary: Optional[str] = Field(default=None, description="Summary of the scope of work")
    insurance_requirements: Optional[dict[str, Any]] = Field(
        default=None,
        description="general_liability, workers_comp, umbrella, professional_liability"
    )
    key_dates: list[KeyDate] = Field(default_factory=list, description="Pre-bid, questions, award dates")
    required_sections: list[str] = Field(default_factory=list, description="Sections the response must contain")
    estimated_staff_count: Optional[int] = Field(default=None, description="Staff the work likely needs")
    estimated_duration_months: Optional[int] = Field(default=None, description="Contract duration in months")
    notes: Optional[str] = Field(default=None, description="Anything else worth knowing")

    @field_validator("due_date", mode="before")
    @classmethod
    def lenient_date(cls, value):
        value = _blank_to_none(value)
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return None
        return value

    @field_validator(
        "title", "rfp_number", "agency", "contract_value_source",
        "submission_method", "scope_summary", "notes",
        mode="before"
    )
    @classmethod
    def lenient_text(cls, value):
        value = _blank_to_none(value)
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value if isinstance(value, str) else None

    @field_validator("contract_value", mode="before")
    @classmethod
    def lenient_value(cls, value):
        return _lenient_decimal(value)

    @field_validator("mwbe_goal_min", mode="before")
    @classmethod
    def lenient_percentage(cls, value):
        number = _lenient_decimal(value)
        return float(number) if number is not None else None

    @field_validator("estimated_staff_count", "estimated_duration_months", mode="before")
    @classmethod
    def lenient_count(cls, value):
        number = _lenient_decimal(value)
        return int(number.to_integral_value()) if number is not None else None

    @field_validator("insurance_requirements", mode="before")
    @classmethod
    def insurance_object(cls, value):
        return value if isinstance(value, dict) else None

    @field_validator("key_dates", mode="before")
    @classmethod
    def labelled_dates(cls, value):
        if not isinstance(value, list):
            return []
        dates = []
        for entry in value:
            if isinstance(entry, dict) and isinstance(entry.get("label"), str):
                when = entry.get("date")
                dates.append({"label": entry["label"], "date": None if when is None else str(when)})
        return dates

    @field_validator("required_sections", mode="before")
    @classmethod
    def section_names(cls, value):
        if not isinstance(value, list):
            return []
        return [str(section) for section in value if isinstance(section, (str, int, float))]
