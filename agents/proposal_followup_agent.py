"""
Proposal Follow-up Agent

Drafts a follow-up email for a proposal that has been sent to a client.
"""

from crewai import Agent, Task

from agents.base import get_default_llm, AGENT_VERBOSE, run_task, validate_json_output


def create_followup_agent(company_name: str) -> Agent:
    return Agent(
        role="Business Development Assistant",
        goal="Write short, warm, action-oriented proposal follow-up emails",
        backstory=f"""You write client correspondence for {company_name}, a consulting and
permit expediting firm. Your emails are professional and concise (3-5 short paragraphs),
written as plain text with no markdown.""",
        llm=get_default_llm(),
        verbose=AGENT_VERBOSE,
        allow_delegation=False
    )


def create_followup_task(agent: Agent, context: str, tone_guidance: str) -> Task:
    return Task(
        description=f"""Generate a follow-up email for this proposal:

{context}

Tone guidance:
{tone_guidance}

Return ONLY a JSON object:
{{
    "subject": "the email subject line",
    "body": "the email body as plain text, using \\n for line breaks"
}}""",
        expected_output="A JSON object with subject and body",
        agent=agent
    )


def draft_followup_email(company_name: str, context: str, tone_guidance: str) -> dict:
    """
    Draft a proposal follow-up.

    Raises:
        ValueError: If the model returns an empty or malformed draft
    """
    agent = create_followup_agent(company_name)
    task = create_followup_task(agent, context, tone_guidance)
    result = validate_json_output(run_task(agent, task), ["subject", "body"])

    if not result["subject"] or not result["body"]:
        raise ValueError("AI returned empty draft")
    return {"subject": result["subject"], "body": result["body"]}
