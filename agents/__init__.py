"""
Ordino - Agents Package

CrewAI agents for RFP discovery, proposal follow-ups and collections.
"""

from agents.base import get_llm, get_default_llm, call_llm, run_task, validate_json_output
from agents.rfp_extraction_agent import (
    create_listing_extraction_agent,
    create_listing_extraction_task,
    extract_listings,
    extract_document_fields
)
from agents.rfp_scoring_agent import (
    create_scoring_agent,
    create_scoring_task,
    score_listing
)
from agents.proposal_followup_agent import (
    create_followup_agent,
    create_followup_task,
    draft_followup_email
)
from agents.payment_agents import (
    create_risk_analyst_agent,
    create_collections_agent,
    predict_payment_risk,
    write_collection_message
)

__all__ = [
    # Base
    "get_llm",
    "get_default_llm",
    "call_llm",
    "run_task",
    "validate_json_output",
    # RFP Discovery
    "create_listing_extraction_agent",
    "create_listing_extraction_task",
    "extract_listings",
    "extract_document_fields",
    "create_scoring_agent",
    "create_scoring_task",
    "score_listing",
    # Proposals
    "create_followup_agent",
    "create_followup_task",
    "draft_followup_email",
    # Payments
    "create_risk_analyst_agent",
    "create_collections_agent",
    "predict_payment_risk",
    "write_collection_message",
]
