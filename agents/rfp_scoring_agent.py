"""
RFP Scoring Agent

Scores how relevant a discovered opportunity is to the firm's services.
"""

from typing import Optional

from crewai import Agent, Task
from pydantic import ValidationError

from agents.base import get_llm, AGENT_VERBOSE, run_task, validate_json_output
from schemas.rfp import RfpListing, RfpScore, DEFAULT_SCORE

FIRM_SERVICES = (
    "DOB permit expediting, FDNY code consulting, zoning analysis, energy compliance, "
    "certificate of occupancy assistance, and building code consulting"
)


def keywords_context(include: Optional[list[str]], exclude: Optional[list[str]]) -> str:
    return (
        f"Include keywords: {', '.join(include or [])}\n"
        f"Exclude keywords: {', '.join(exclude or [])}"
    )


def create_scoring_agent(keywords: str = "") -> Agent:
    return Agent(
        role="Opportunity Qualification Analyst",
        goal="Score RFP relevance for a construction consulting and expediting firm",
        backstory=f"""You qualify public-sector opportunities for a construction consulting
and permit expediting firm. Services include {FIRM_SERVICES}.

{keywords}""",
        llm=get_llm(temperature=0),
        verbose=AGENT_VERBOSE,
        allow_delegation=False
    )


def create_scoring_task(agent: Agent, listing: RfpListing) -> Task:
    return Task(
        description=f"""Score this RFP:
Title: {listing.title}
Agency: {listing.issuing_agency or "Unknown"}
RFP#: {listing.rfp_number or "N/A"}

Return ONLY a JSON object:
{{
    "relevance_score": 0-100,
    "relevance_reason": "brief explanation",
    "service_tags": ["dob_expediting", "fdny", "consulting", "energy", "zoning", ...],
    "estimated_value": number or null
}}""",
        expected_output="A JSON relevance score",
        agent=agent
    )


def parse_score(output: str) -> RfpScore:
    """Parse a score reply. Anything unusable gets the default score."""
    try:
        data = validate_json_output(output, ["relevance_score"])
        return RfpScore.model_validate(data)
    except (ValueError, ValidationError):
        return DEFAULT_SCORE.model_copy()


def score_listing(
    listing: RfpListing,
    keyword_include: Optional[list[str]] = None,
    keyword_exclude: Optional[list[str]] = None,
    has_rules: bool = False
) -> RfpScore:
    keywords = keywords_context(keyword_include, keyword_exclude) if has_rules else ""
    agent = create_scoring_agent(keywords)
    task = create_scoring_task(agent, listing)
    return parse_score(run_task(agent, task))
