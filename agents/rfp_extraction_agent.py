"""
RFP Extraction Agent

Pulls procurement listings out of scraped page markdown, and structured
fields out of uploaded RFP documents.
"""

from crewai import Agent, Task
from pydantic import ValidationError

from agents.base import get_default_llm, get_llm, AGENT_VERBOSE, run_task, parse_json_array, validate_json_output
from schemas.rfp import RfpListing, ExtractedRfp


def create_listing_extraction_agent() -> Agent:
    return Agent(
        role="Procurement Listing Extractor",
        goal="Find every active procurement opportunity on a scraped web page",
        backstory="""You read government and institutional procurement portals every day.
You can tell an open RFP, RFQ, solicitation or IFB apart from navigation, headers,
footers and expired items.""",
        llm=get_llm(temperature=0),
        verbose=AGENT_VERBOSE,
        allow_delegation=False
    )


def create_listing_extraction_task(agent: Agent, source_name: str, source_url: str, page: str) -> Task:
    return Task(
        description=f"""Extract RFP/procurement opportunity listings from this scraped page.

Source: {source_name} ({source_url})

Page content:
---
{page}
---

Return a JSON array of objects with these fields:
- title (string): The RFP title
- rfp_number (string|null): The RFP/solicitation number if visible
- issuing_agency (string|null): The issuing agency
- due_date (string|null): Due date in YYYY-MM-DD format if found
- url (string|null): Link to the RFP detail page (absolute URL preferred)
- pdf_url (string|null): Direct link to PDF if visible

Only include active procurement opportunities (RFPs, RFQs, solicitations, IFBs).
If no listings are found, return an empty array [].
Output ONLY the JSON array.""",
        expected_output="A JSON array of listings",
        agent=agent
    )


def parse_listings(output: str) -> list[RfpListing]:
    """
    Parse extracted listings. Items without a usable title are dropped.

    Raises:
        ValueError: If the output is not a JSON array
    """
    listings = []
    for item in parse_json_array(output):
        if not isinstance(item, dict):
            continue
        try:
            listings.append(RfpListing.model_validate(item))
        except ValidationError:
            continue
    return listings


def extract_listings(source_name: str, source_url: str, page: str) -> list[RfpListing]:
    agent = create_listing_extraction_agent()
    task = create_listing_extraction_task(agent, source_name, source_url, page)
    return parse_listings(run_task(agent, task))


DOCUMENT_EXTRACTION_PROMPT = """Extract the following information from the RFP document.
Return ONLY valid JSON with these fields:
- title: string (the project/RFP title)
- rfp_number: string | null (look for "RFP Number", "PIN", "Contract No.", "Contract Number",
  "Project Code", "Solicitation Number", "Bid Number". Prefer Contract Number if multiple exist.)
- agency: string | null (issuing agency name)
- due_date: string | null (ISO date YYYY-MM-DD)
- contract_value: number | null (dollar value; if not stated, estimate from scope, staff, duration,
  and typical government consulting rates of $150-300/hr)
- contract_value_source: "stated" | "estimated"
- mwbe_goal_min: number | null (M/WBE participation goal percentage)
- submission_method: string | null ("email", "portal", "in-person", or "mail")
- scope_summary: string (2-3 sentence summary of the scope of work)
- insurance_requirements: object | null (keys: general_liability, workers_comp, umbrella, professional_liability)
- key_dates: array of {"label": string, "date": string}
- required_sections: array of strings (sections the RFP asks for in the response)
- estimated_staff_count: number | null
- estimated_duration_months: number | null
- notes: string | null (other important notes or unusual requirements)"""

PARSE_FAILURE_NOTE = "Extraction encountered a parsing error. Please fill in fields manually."


def create_document_extraction_agent() -> Agent:
    return Agent(
        role="RFP Document Analyst",
        goal="Extract the facts a bid/no-bid decision needs from an RFP document",
        backstory="""You analyze government RFP documents for engineering and architecture
consulting firms. You find solicitation numbers, deadlines, M/WBE goals and insurance
requirements even when they are buried in appendices.""",
        llm=get_default_llm(),
        verbose=AGENT_VERBOSE,
        allow_delegation=False
    )


def parse_document_fields(output: str) -> ExtractedRfp:
    """Extraction from a model reply; a reply that is not a JSON object yields the manual-entry note."""
    try:
        return ExtractedRfp.model_validate(validate_json_output(output, []))
    except (ValueError, ValidationError):
        return ExtractedRfp(notes=PARSE_FAILURE_NOTE)


def extract_document_fields(document_text: str) -> ExtractedRfp:
    """
    Extract structured fields from RFP text.

    A reply that cannot be parsed yields an empty extraction with a note
    asking the user to fill the fields in by hand.
    """
    agent = create_document_extraction_agent()
    task = Task(
        description=f"""{DOCUMENT_EXTRACTION_PROMPT}

RFP DOCUMENT TEXT:
---
{document_text}
---""",
        expected_output="A valid JSON object with the extracted RFP fields",
        agent=agent
    )
    return parse_document_fields(run_task(agent, task))
