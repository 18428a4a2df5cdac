"""
Payment Intelligence Agents

Payment-risk analyst and collections writer. Both return the model's raw
reply; the payments service parses it and falls back to heuristics when
the reply is unusable.
"""

from crewai import Agent, Task

from agents.base import get_default_llm, get_llm, AGENT_VERBOSE, run_task


def create_risk_analyst_agent() -> Agent:
    return Agent(
        role="Payment Risk Analyst",
        goal="Predict how likely and how late a client is to pay an invoice",
        backstory="""You review receivables for a consulting firm. You weigh how overdue an
invoice is against the client's payment history and how they have responded to
reminders, and you state your confidence honestly when history is thin.""",
        llm=get_default_llm(),
        verbose=AGENT_VERBOSE,
        allow_delegation=False
    )


def create_risk_task(agent: Agent, invoice_context: str, history_context: str, follow_ups: str) -> Task:
    return Task(
        description=f"""Analyze this invoice and predict payment likelihood.

Invoice Details:
{invoice_context}

Client Payment History:
{history_context}

Recent Follow-Ups:
{follow_ups}

Respond in JSON only:
{{
  "risk_score": <0-100, where 0=will pay on time, 100=high risk of non-payment>,
  "predicted_days_late": <estimated additional days until payment>,
  "confidence_level": "<high|medium|low>",
  "factors": {{
    "key_factor_1": "<description>",
    "key_factor_2": "<description>"
  }}
}}""",
        expected_output="A JSON risk prediction",
        agent=agent
    )


def predict_payment_risk(invoice_context: str, history_context: str, follow_ups: str) -> str:
    agent = create_risk_analyst_agent()
    task = create_risk_task(agent, invoice_context, history_context, follow_ups)
    return run_task(agent, task)


def create_collections_agent() -> Agent:
    return Agent(
        role="Collections Specialist",
        goal="Write collection emails that get invoices paid without damaging the relationship",
        backstory="""You write accounts-receivable correspondence for an architecture and
engineering consulting firm. You match the requested tone exactly and always include
the specific invoice details and a clear call to action.""",
        llm=get_llm(temperature=0.7),
        verbose=AGENT_VERBOSE,
        allow_delegation=False
    )


def create_collection_task(
    agent: Agent,
    invoice_context: str,
    client_context: str,
    company_name: str,
    tone: str,
    urgency: str,
    offer_payment_plan: bool
) -> Task:
    plan_line = "Include an offer to set up a payment plan.\n" if offer_payment_plan else ""
    return Task(
        description=f"""Generate a professional collection email.

Invoice Details:
{invoice_context}

Client Context:
{client_context}

Company: {company_name}
Tone: {tone} (friendly/firm/urgent)
Urgency Level: {urgency}
{plan_line}
Requirements:
- Professional but {tone}
- Acknowledge the business relationship
- Include specific invoice details
- Clear call to action
- Keep it concise (under 200 words)

Respond in JSON only:
{{
  "subject": "<email subject line>",
  "body": "<email body text>"
}}""",
        expected_output="A JSON object with subject and body",
        agent=agent
    )


def write_collection_message(
    invoice_context: str,
    client_context: str,
    company_name: str,
    tone: str,
    urgency: str,
    offer_payment_plan: bool = False
) -> str:
    agent = create_collections_agent()
    task = create_collection_task(
        agent, invoice_context, client_context, company_name, tone, urgency, offer_payment_plan
    )
    return run_task(agent, task)
